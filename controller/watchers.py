"""
Watch streams for ConfigMirrors and ConfigMaps.

Each watch runs in its own thread and reconnects with exponential backoff.
ConfigMirror events keep an in-memory definition cache current and queue the
changed definition; ConfigMap events go through the reverse router, which
decides which definitions to queue.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional

from kubernetes import watch
from kubernetes.client.rest import ApiException
import urllib3

from common.constants import API_GROUP, API_VERSION, MIRROR_PLURAL
from common.logging_config import get_logger
from controller.config import WATCH_TIMEOUT_SECONDS
from controller.exceptions import InvalidDefinitionError
from controller.manifests import get_name, get_namespace
from controller.router import route
from controller.types import MirrorDefinition, ObjectKey

logger = get_logger(__name__)

EventHandler = Callable[[str, Dict[str, Any]], None]

MAX_BACKOFF_SECONDS = 60


class DefinitionStore:
    """
    Thread-safe cache of the ConfigMirror definitions seen by the watch.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._definitions: Dict[ObjectKey, MirrorDefinition] = {}

    def upsert(self, definition: MirrorDefinition) -> None:
        with self._lock:
            self._definitions[definition.key] = definition

    def remove(self, key: ObjectKey) -> None:
        with self._lock:
            self._definitions.pop(key, None)

    def snapshot(self) -> List[MirrorDefinition]:
        with self._lock:
            return list(self._definitions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._definitions)


class WatchEventRouter:
    """
    Turns watch events into reconcile work items.
    """

    def __init__(self, cluster, store: DefinitionStore, enqueue: Callable[[ObjectKey], None]):
        self.cluster = cluster
        self.store = store
        self.enqueue = enqueue

    def on_mirror_event(self, event_type: str, obj: Dict[str, Any]) -> None:
        key = ObjectKey(get_namespace(obj), get_name(obj))

        if event_type == "DELETED":
            self.store.remove(key)
            logger.info(f"ConfigMirror {key} deleted, existing replicas are left in place")
            return

        try:
            self.store.upsert(MirrorDefinition.from_resource(obj))
        except InvalidDefinitionError as e:
            self.store.remove(key)
            logger.warning(str(e))
            return

        self.enqueue(key)

    def on_config_map_event(self, event_type: str, obj: Dict[str, Any]) -> None:
        for key in route(obj, self.store.snapshot(), self.cluster.get_config_map, logger):
            self.enqueue(key)


class ResourceWatcher:
    """
    Runs a list-then-watch stream in a background thread.
    """

    def __init__(
        self,
        name: str,
        list_func: Callable,
        handler: EventHandler,
        timeout_seconds: int = WATCH_TIMEOUT_SECONDS,
        **list_kwargs
    ):
        self.name = name
        self.list_func = list_func
        self.handler = handler
        self.timeout_seconds = timeout_seconds
        self.list_kwargs = list_kwargs

        self.resource_version: Optional[str] = None
        self._watch: Optional[watch.Watch] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.alive:
            logger.warning(f"{self.name} watcher already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"watch-{self.name}", daemon=True)
        self._thread.start()
        logger.info(f"Started {self.name} watcher")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._watch is not None:
            self._watch.stop()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info(f"Stopped {self.name} watcher")

    def _run(self) -> None:
        backoff = 1

        while not self._stop_event.is_set():
            try:
                self._stream()
                backoff = 1
                continue
            except ApiException as e:
                if e.status == 410:
                    logger.info(f"{self.name} watch expired, relisting")
                    self.resource_version = None
                    continue
                logger.error(f"Kubernetes API exception in {self.name} watch: {e.status} {e.reason}")
            except urllib3.exceptions.HTTPError as e:
                logger.error(f"Connection error in {self.name} watch: {e}")
            except Exception as e:
                logger.error(f"Unexpected error in {self.name} watch: {e}", exc_info=True)

            if self._stop_event.wait(backoff):
                break
            backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)

    def _stream(self) -> None:
        self._watch = watch.Watch()
        for event in self._watch.stream(
            self.list_func,
            resource_version=self.resource_version,
            timeout_seconds=self.timeout_seconds,
            **self.list_kwargs
        ):
            if self._stop_event.is_set():
                self._watch.stop()
                break
            self.dispatch(event)

    def dispatch(self, event: Dict[str, Any]) -> None:
        """Handle one raw watch event."""
        event_type = event.get("type")
        obj = event.get("raw_object") or {}

        if event_type == "ERROR":
            if obj.get("code") == 410:
                self.resource_version = None
                raise ApiException(status=410, reason="Gone")
            logger.warning(f"{self.name} watch error event: {obj.get('message')}")
            return

        resource_version = (obj.get("metadata") or {}).get("resourceVersion")
        if resource_version:
            self.resource_version = resource_version

        try:
            self.handler(event_type, obj)
        except Exception as e:
            logger.error(f"Failed to handle {event_type} event in {self.name} watch: {e}", exc_info=True)


def build_watchers(cluster, event_router: WatchEventRouter) -> List[ResourceWatcher]:
    """Create the ConfigMirror and ConfigMap watchers."""
    return [
        ResourceWatcher(
            "configmirror",
            cluster.custom.list_cluster_custom_object,
            event_router.on_mirror_event,
            group=API_GROUP,
            version=API_VERSION,
            plural=MIRROR_PLURAL,
        ),
        ResourceWatcher(
            "configmap",
            cluster.core.list_config_map_for_all_namespaces,
            event_router.on_config_map_event,
        ),
    ]
