"""Accessors for Kubernetes object manifests in their JSON (camelCase) form."""

from typing import Any, Dict, Optional

from common.constants import MIRROR_KEY, get_annotation_key


def get_metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


def get_name(obj: Dict[str, Any]) -> Optional[str]:
    return get_metadata(obj).get("name")


def get_namespace(obj: Dict[str, Any]) -> Optional[str]:
    return get_metadata(obj).get("namespace")


def get_uid(obj: Dict[str, Any]) -> Optional[str]:
    return get_metadata(obj).get("uid")


def get_labels(obj: Dict[str, Any]) -> Dict[str, str]:
    return get_metadata(obj).get("labels") or {}


def get_annotations(obj: Dict[str, Any]) -> Dict[str, str]:
    return get_metadata(obj).get("annotations") or {}


def is_replica(obj: Dict[str, Any]) -> bool:
    """A replica is recognised solely by the presence of the mirror annotation."""
    return get_annotation_key(MIRROR_KEY) in get_annotations(obj)


def describe(obj: Dict[str, Any]) -> str:
    return f"{get_namespace(obj)}/{get_name(obj)}"
