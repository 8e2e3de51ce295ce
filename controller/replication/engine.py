"""
Replication engine.

Turns a source ConfigMap into a replica for one target namespace, stamps
provenance annotations, and writes it with the owned-fields merge. When a
repository is configured, every applied replica is recorded after the write.
"""

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from common.constants import (
    LAST_APPLIED_ANNOTATION,
    MANAGED_BY,
    MIRROR_KEY,
    SOURCE_NAMESPACE,
    get_annotation_key,
    get_field_owner,
)
from controller.exceptions import ApplyError, ClusterAPIError, ObjectNotFoundError
from controller.manifests import describe, get_name, get_namespace, get_uid
from controller.replication.merge import has_changes, merge_owned_fields, owned_paths
from controller.types import MirrorDefinition

logger = logging.getLogger(__name__)

SERVER_ASSIGNED_METADATA = (
    "uid",
    "resourceVersion",
    "managedFields",
    "creationTimestamp",
    "generation",
    "selfLink",
    "deletionTimestamp",
    "deletionGracePeriodSeconds",
)


class ApplyOutcome(Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of applying one replica."""
    outcome: ApplyOutcome
    replica: Dict[str, Any]


def build_replica(
    source: Dict[str, Any],
    definition: MirrorDefinition,
    target_namespace: str
) -> Dict[str, Any]:
    """
    Build the replica of a source ConfigMap for a target namespace.

    Server-assigned identity and the last-applied-configuration annotation
    are stripped; provenance annotations overwrite any previous value.

    Args:
        source: Source ConfigMap manifest
        definition: Definition the replica belongs to
        target_namespace: Namespace the replica will live in

    Returns:
        New replica manifest; ``source`` is not modified
    """
    replica = copy.deepcopy(source)
    replica["apiVersion"] = "v1"
    replica["kind"] = "ConfigMap"

    metadata = replica.setdefault("metadata", {})
    metadata["namespace"] = target_namespace
    for field_name in SERVER_ASSIGNED_METADATA:
        metadata.pop(field_name, None)

    annotations = dict(metadata.get("annotations") or {})
    annotations.pop(LAST_APPLIED_ANNOTATION, None)
    annotations[get_annotation_key(MIRROR_KEY)] = get_uid(source) or ""
    annotations[get_annotation_key(SOURCE_NAMESPACE)] = get_namespace(source) or ""
    annotations[get_annotation_key(MANAGED_BY)] = definition.managed_by
    metadata["annotations"] = annotations

    return replica


class ReplicationEngine:
    """
    Applies replicas into target namespaces under a fixed field owner.
    """

    def __init__(self, cluster, repository=None, field_owner: Optional[str] = None):
        """
        Args:
            cluster: Cluster client used for reads and writes
            repository: Optional replica repository; None disables recording
            field_owner: Field manager identity (defaults to the controller's)
        """
        self.cluster = cluster
        self.repository = repository
        self.field_owner = field_owner or get_field_owner()

    def apply(
        self,
        source: Dict[str, Any],
        definition: MirrorDefinition,
        target_namespace: str,
        log: Optional[logging.LoggerAdapter] = None
    ) -> ApplyResult:
        """
        Apply one source ConfigMap into one target namespace.

        Raises:
            ApplyError: If reading or writing the replica fails
            PersistenceError: If recording the applied replica fails
        """
        log = log or logger
        desired = build_replica(source, definition, target_namespace)
        name = get_name(desired)

        try:
            try:
                current = self.cluster.get_config_map(target_namespace, name)
            except ObjectNotFoundError:
                current = None

            if current is None:
                written = self.cluster.create_config_map(target_namespace, desired, self.field_owner)
                outcome = ApplyOutcome.CREATED
            else:
                merged = merge_owned_fields(current, desired, owned_paths(current, self.field_owner))
                if has_changes(current, merged):
                    merged["metadata"].pop("managedFields", None)
                    written = self.cluster.replace_config_map(target_namespace, name, merged, self.field_owner)
                    outcome = ApplyOutcome.UPDATED
                else:
                    written = current
                    outcome = ApplyOutcome.UNCHANGED
        except ClusterAPIError as e:
            raise ApplyError(
                f"failed to replicate {describe(source)} to {target_namespace}/{name} due to: {e}"
            ) from e

        if outcome is ApplyOutcome.UNCHANGED:
            log.debug(f"ConfigMap {target_namespace}/{name} already up to date")
        else:
            log.info(f"Replicated ConfigMap {describe(source)} to {target_namespace}/{name} ({outcome.value})")

        if self.repository is not None:
            self.repository.add_or_update(written)
            log.info(f"ConfigMap {target_namespace}/{name} updated on database")

        return ApplyResult(outcome=outcome, replica=written)
