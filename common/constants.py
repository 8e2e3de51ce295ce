"""Project-wide constants (API group, annotation keys, field owner)."""

API_GROUP: str = "bennsimon.github.io"
API_VERSION: str = "v1alpha1"
MIRROR_KIND: str = "ConfigMirror"
MIRROR_PLURAL: str = "configmirrors"

CONTROLLER_NAME: str = "configmirror-controller"

MIRROR_KEY: str = "mirror"
SOURCE_NAMESPACE: str = "sourceNamespace"
MANAGED_BY: str = "managed-by"

LAST_APPLIED_ANNOTATION: str = "kubectl.kubernetes.io/last-applied-configuration"

DEFAULT_API_TIMEOUT_SECONDS: int = 10


def get_annotation_key(key: str) -> str:
    """
    Build a provenance annotation key under the controller's API group.

    Args:
        key: Short key (e.g., 'mirror')

    Returns:
        Fully qualified annotation key (e.g., 'bennsimon.github.io/mirror')
    """
    return f"{API_GROUP}/{key}"


def get_field_owner() -> str:
    """Field manager identity recorded against every field this controller writes."""
    return f"{API_GROUP}/{CONTROLLER_NAME}"
