"""Controller-specific data type definitions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from pydantic import ValidationError

from controller.exceptions import InvalidDefinitionError
from controller.schemas.mirror import ConfigMirrorResource
from controller.selector import LabelPredicate, MatchLabels


@dataclass(frozen=True, order=True)
class ObjectKey:
    """
    Namespaced identity of a cluster object.
    """
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class EventKind(Enum):
    """Whether a watched ConfigMap is an original or one of our replicas."""
    SOURCE = "source"
    REPLICA = "replica"


@dataclass(frozen=True)
class MirrorDefinition:
    """
    A ConfigMirror: which ConfigMaps to copy, from where, and to where.
    """
    key: ObjectKey
    source_namespace: str
    target_namespaces: Tuple[str, ...] = ()
    selector: LabelPredicate = field(default_factory=MatchLabels)

    @property
    def managed_by(self) -> str:
        return str(self.key)

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "MirrorDefinition":
        """
        Build a definition from a ConfigMirror object returned by the API.

        Raises:
            InvalidDefinitionError: If the resource does not match the schema
        """
        try:
            parsed = ConfigMirrorResource.model_validate(resource)
        except ValidationError as e:
            metadata = resource.get("metadata") or {}
            raise InvalidDefinitionError(
                f"invalid ConfigMirror {metadata.get('namespace')}/{metadata.get('name')}: {e}"
            ) from e

        return cls(
            key=ObjectKey(parsed.metadata.namespace, parsed.metadata.name),
            source_namespace=parsed.spec.source_namespace,
            target_namespaces=tuple(parsed.spec.target_namespaces),
            selector=MatchLabels(parsed.spec.selector.match_labels)
        )
