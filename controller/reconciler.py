"""
Reconciler for ConfigMirror definitions.

One pass fetches the definition, lists the matching source ConfigMaps and
applies each of them into every target namespace, in order. The first
failure ends the pass; replicas applied before it stay applied and the
scheduler re-runs the whole pass later.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from common.logging_config import get_logger, with_context
from controller.exceptions import ClusterAPIError, DefinitionNotFoundError, FetchError, ObjectNotFoundError
from controller.replication.engine import ApplyOutcome, ReplicationEngine
from controller.selector import match
from controller.types import MirrorDefinition, ObjectKey

logger = get_logger(__name__)


@dataclass
class ReconcileResult:
    """Per-outcome counts of one reconcile pass."""
    key: ObjectKey
    matched: int = 0
    outcomes: Dict[ApplyOutcome, int] = field(default_factory=dict)

    @property
    def applied(self) -> int:
        return sum(self.outcomes.values())

    def count(self, outcome: ApplyOutcome) -> int:
        return self.outcomes.get(outcome, 0)


class Reconciler:
    """
    Drives one definition to its desired state.
    """

    def __init__(self, cluster, engine: ReplicationEngine):
        self.cluster = cluster
        self.engine = engine

    def get_definition(self, key: ObjectKey) -> MirrorDefinition:
        """
        Raises:
            DefinitionNotFoundError: If the ConfigMirror no longer exists
            FetchError: If the read fails for any other reason
        """
        try:
            resource = self.cluster.get_mirror(key.namespace, key.name)
        except ObjectNotFoundError as e:
            raise DefinitionNotFoundError(f"ConfigMirror {key} not found") from e
        except ClusterAPIError as e:
            raise FetchError(f"unable to fetch ConfigMirror {key}: {e}") from e
        return MirrorDefinition.from_resource(resource)

    def reconcile(self, key: ObjectKey, log: Optional[logging.LoggerAdapter] = None) -> ReconcileResult:
        """
        Run one reconcile pass for a ConfigMirror.

        Args:
            key: Namespace and name of the ConfigMirror
            log: Logger handle; a handle keyed by the definition is created when omitted

        Returns:
            ReconcileResult with per-outcome counts

        Raises:
            DefinitionNotFoundError: If the definition vanished
            InvalidDefinitionError: If the definition is malformed
            FetchError: If listing the definition or its sources fails
            ApplyError: If writing a replica fails
            PersistenceError: If recording a written replica fails
        """
        log = log or with_context(logger, str(key))
        definition = self.get_definition(key)
        result = ReconcileResult(key=key)

        sources = match(self.cluster, definition.source_namespace, definition.selector, log)
        result.matched = len(sources)
        if not sources:
            return result

        for target_namespace in definition.target_namespaces:
            for source in sources:
                applied = self.engine.apply(source, definition, target_namespace, log)
                result.outcomes[applied.outcome] = result.outcomes.get(applied.outcome, 0) + 1

        log.info(
            f"Reconciled {result.matched} ConfigMaps into {len(definition.target_namespaces)} namespaces "
            f"(created={result.count(ApplyOutcome.CREATED)}, updated={result.count(ApplyOutcome.UPDATED)}, "
            f"unchanged={result.count(ApplyOutcome.UNCHANGED)})"
        )
        return result
