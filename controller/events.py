"""Kubernetes Event recording for ConfigMirror reconcile outcomes."""

import uuid
from datetime import datetime, timezone

from common.constants import API_GROUP, API_VERSION, CONTROLLER_NAME, MIRROR_KIND
from common.logging_config import get_logger
from controller.exceptions import ClusterAPIError
from controller.types import ObjectKey

logger = get_logger(__name__)

NORMAL = "Normal"
WARNING = "Warning"


class EventRecorder:
    """
    Emits core/v1 Events against ConfigMirror objects.

    Event delivery is best effort: a failure to record an event is logged
    and never fails the reconcile that produced it.
    """

    def __init__(self, cluster, component: str = CONTROLLER_NAME):
        self.cluster = cluster
        self.component = component

    def build_event(self, key: ObjectKey, event_type: str, reason: str, message: str) -> dict:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "name": f"{key.name}.{uuid.uuid4().hex[:16]}",
                "namespace": key.namespace,
            },
            "involvedObject": {
                "apiVersion": f"{API_GROUP}/{API_VERSION}",
                "kind": MIRROR_KIND,
                "namespace": key.namespace,
                "name": key.name,
            },
            "type": event_type,
            "reason": reason,
            "message": message[:1024],
            "source": {"component": self.component},
            "firstTimestamp": timestamp,
            "lastTimestamp": timestamp,
            "count": 1,
        }

    def record(self, key: ObjectKey, event_type: str, reason: str, message: str) -> None:
        try:
            self.cluster.create_event(key.namespace, self.build_event(key, event_type, reason, message))
        except ClusterAPIError as e:
            logger.warning(f"Failed to record {reason} event for {key}: {e}")
