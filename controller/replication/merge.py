"""
Owned-fields merge for replicas.

A replica may be edited by other field managers (people, other controllers).
Each write from this controller replaces the fields it owns, drops the fields
it used to own but no longer wants, and leaves every other field alone. A
field the controller wants that is currently owned by someone else is taken
over (forced overwrite).

Field paths are tuples such as ``("data", "app.yaml")`` or
``("metadata", "annotations", "bennsimon.github.io/mirror")``. Ownership is read
from the object's ``managedFields`` (``FieldsV1`` format).
"""

import copy
from typing import Any, Dict, Iterable, Optional, Set, Tuple

FieldPath = Tuple[str, ...]

MAP_SECTIONS: Tuple[FieldPath, ...] = (
    ("data",),
    ("binaryData",),
    ("metadata", "labels"),
    ("metadata", "annotations"),
)

SCALAR_FIELDS: Tuple[FieldPath, ...] = (
    ("immutable",),
)


def _get(obj: Dict[str, Any], path: Iterable[str]) -> Any:
    node: Any = obj
    for part in path:
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _set(obj: Dict[str, Any], path: FieldPath, value: Any) -> None:
    node = obj
    for part in path[:-1]:
        if not isinstance(node.get(part), dict):
            node[part] = {}
        node = node[part]
    node[path[-1]] = copy.deepcopy(value)


def _delete(obj: Dict[str, Any], path: FieldPath) -> None:
    parent = _get(obj, path[:-1]) if len(path) > 1 else obj
    if isinstance(parent, dict):
        parent.pop(path[-1], None)


def is_tracked(path: FieldPath) -> bool:
    """Whether a path falls inside the sections the merge manages."""
    if path in SCALAR_FIELDS:
        return True
    return any(
        len(path) == len(section) + 1 and path[:len(section)] == section
        for section in MAP_SECTIONS
    )


def field_paths(obj: Optional[Dict[str, Any]]) -> Set[FieldPath]:
    """Every tracked path that is set on an object."""
    if not obj:
        return set()

    paths: Set[FieldPath] = set()
    for section in MAP_SECTIONS:
        mapping = _get(obj, section) or {}
        for key in mapping:
            paths.add(section + (key,))
    for scalar in SCALAR_FIELDS:
        if _get(obj, scalar) is not None:
            paths.add(scalar)
    return paths


def _parse_fields_v1(fields: Dict[str, Any], prefix: FieldPath = ()) -> Set[FieldPath]:
    paths: Set[FieldPath] = set()
    for key, child in fields.items():
        if not key.startswith("f:"):
            continue
        path = prefix + (key[2:],)
        if isinstance(child, dict) and any(k.startswith("f:") for k in child):
            paths |= _parse_fields_v1(child, path)
        else:
            paths.add(path)
    return paths


def owned_paths(obj: Optional[Dict[str, Any]], manager: str) -> Set[FieldPath]:
    """
    Tracked paths recorded against a field manager on the live object.

    Args:
        obj: Live object manifest (or None if it does not exist)
        manager: Field manager identity

    Returns:
        Set of owned field paths
    """
    if not obj:
        return set()

    paths: Set[FieldPath] = set()
    for entry in (obj.get("metadata") or {}).get("managedFields") or []:
        if entry.get("manager") != manager:
            continue
        paths |= _parse_fields_v1(entry.get("fieldsV1") or {})
    return {path for path in paths if is_tracked(path)}


def merge_owned_fields(
    current: Optional[Dict[str, Any]],
    desired: Dict[str, Any],
    previously_owned: Set[FieldPath]
) -> Dict[str, Any]:
    """
    Merge a desired replica into the stored object.

    Args:
        current: Object as stored on the cluster, or None if absent
        desired: Replica as this controller wants it
        previously_owned: Paths this controller owned before the write

    Returns:
        The object to write. ``current`` and ``desired`` are not modified.
    """
    if current is None:
        return copy.deepcopy(desired)

    merged = copy.deepcopy(current)
    desired_paths = field_paths(desired)

    for path in previously_owned - desired_paths:
        _delete(merged, path)

    for path in desired_paths:
        _set(merged, path, _get(desired, path))

    return merged


def tracked_view(obj: Optional[Dict[str, Any]]) -> Dict[FieldPath, Any]:
    """Snapshot of every tracked path and its value."""
    return {path: _get(obj, path) for path in field_paths(obj)}


def has_changes(current: Optional[Dict[str, Any]], merged: Dict[str, Any]) -> bool:
    """Whether writing ``merged`` would change anything the merge manages."""
    return current is None or tracked_view(current) != tracked_view(merged)
