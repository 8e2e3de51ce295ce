"""
Label selector predicates and the source object matcher.

A selector is a predicate over a label mapping. ``MatchLabels`` is the only
operator today (a conjunction of exact equality checks); further operators
can be added by implementing ``LabelPredicate``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from controller.exceptions import ClusterAPIError, FetchError
from controller.manifests import get_labels

logger = logging.getLogger(__name__)


class LabelPredicate(ABC):
    """Capability interface every selector operator implements."""

    @abstractmethod
    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        """Return True if the label set satisfies the predicate."""

    @abstractmethod
    def to_selector_string(self) -> str:
        """Render the predicate as a server-side label selector string."""


class MatchLabels(LabelPredicate):
    """
    Conjunction of exact label equality checks.

    An empty selector matches every object.
    """

    def __init__(self, match_labels: Optional[Mapping[str, str]] = None):
        self.match_labels: Dict[str, str] = dict(match_labels or {})

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        labels = labels or {}
        for key, value in self.match_labels.items():
            if key not in labels or labels[key] != value:
                return False
        return True

    def to_selector_string(self) -> str:
        return ",".join(f"{key}={value}" for key, value in sorted(self.match_labels.items()))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, MatchLabels) and self.match_labels == other.match_labels

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.match_labels.items())))

    def __repr__(self) -> str:
        return f"MatchLabels({self.match_labels!r})"


def match(
    cluster,
    source_namespace: str,
    selector: LabelPredicate,
    log: Optional[logging.LoggerAdapter] = None
) -> List[Dict[str, Any]]:
    """
    Fetch the ConfigMaps in a namespace that satisfy a selector.

    Args:
        cluster: Cluster client used for the list call
        source_namespace: Namespace to list from
        selector: Predicate the objects must satisfy
        log: Logger handle for this reconcile pass

    Returns:
        Matching ConfigMap manifests (possibly empty)

    Raises:
        FetchError: If the list call fails or times out
    """
    log = log or logger
    selector_string = selector.to_selector_string()

    try:
        items = cluster.list_config_maps(source_namespace, label_selector=selector_string)
    except ClusterAPIError as e:
        raise FetchError(
            f"failed to list ConfigMaps in {source_namespace} matching '{selector_string}': {e}"
        ) from e

    matched = [item for item in items if selector.matches(get_labels(item))]

    log.info(
        f"Found {len(matched)} ConfigMaps matching selector '{selector_string}' in {source_namespace} namespace"
    )
    return matched
