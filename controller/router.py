"""
Reverse router: maps a changed ConfigMap to the ConfigMirrors that must reconcile.

Watching every ConfigMap means the controller also sees the events caused by
its own writes to replicas. Each event is classified first (source or
replica) so that a replica which still exists never produces work, while a
replica that was just deleted resolves back to the definitions that selected
its source, and gets recreated by their next reconcile.
"""

import copy
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Set

from common.constants import SOURCE_NAMESPACE, get_annotation_key
from controller.exceptions import ClusterAPIError, ObjectNotFoundError
from controller.manifests import describe, get_annotations, get_labels, get_name, get_namespace, is_replica
from controller.types import EventKind, MirrorDefinition, ObjectKey

logger = logging.getLogger(__name__)

FetchLive = Callable[[str, str], Dict[str, Any]]


def classify(obj: Dict[str, Any]) -> EventKind:
    """Classify a watched ConfigMap by the presence of the mirror annotation."""
    return EventKind.REPLICA if is_replica(obj) else EventKind.SOURCE


def resolve_replica(
    obj: Dict[str, Any],
    fetch_live: FetchLive,
    log: logging.Logger
) -> Optional[Dict[str, Any]]:
    """
    Decide what a replica event means.

    Returns:
        A copy of the object relocated to its source namespace if the replica
        was deleted, or None if the event needs no work
    """
    namespace, name = get_namespace(obj), get_name(obj)

    try:
        fetch_live(namespace, name)
    except ObjectNotFoundError:
        source_namespace = get_annotations(obj).get(get_annotation_key(SOURCE_NAMESPACE))
        log.info(
            f"Detected deleted replicated configmap {namespace}/{name}, "
            f"recreating if calling configmirror exists"
        )
        resolved = copy.deepcopy(obj)
        resolved.setdefault("metadata", {})["namespace"] = source_namespace
        return resolved
    except ClusterAPIError as e:
        log.error(f"Error occurred while checking replicated configmap {namespace}/{name}: {e}")
        return None

    log.debug(f"Configmap {namespace}/{name} is already replicated, skipping")
    return None


def route(
    obj: Dict[str, Any],
    definitions: Iterable[MirrorDefinition],
    fetch_live: FetchLive,
    log: Optional[logging.Logger] = None
) -> Set[ObjectKey]:
    """
    Compute the definitions that must reconcile after a ConfigMap event.

    Args:
        obj: Snapshot of the changed ConfigMap (never modified)
        definitions: Snapshot of all ConfigMirror definitions
        fetch_live: Reads (namespace, name) from the cluster; raises
            ObjectNotFoundError if absent
        log: Logger handle

    Returns:
        Keys of the definitions to enqueue
    """
    log = log or logger

    if classify(obj) is EventKind.REPLICA:
        obj = resolve_replica(obj, fetch_live, log)
        if obj is None:
            return set()

    namespace = get_namespace(obj)
    labels = get_labels(obj)

    keys = {
        definition.key
        for definition in definitions
        if namespace == definition.source_namespace and definition.selector.matches(labels)
    }

    if keys:
        log.debug(f"ConfigMap {describe(obj)} routed to {sorted(str(key) for key in keys)}")
    return keys
