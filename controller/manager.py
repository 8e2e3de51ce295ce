"""Wiring of the cluster client, reconciler, work queue and watchers."""

from typing import Dict, List, Optional

from common.logging_config import get_logger
from controller.config import save_replication_action
from controller.database import close_database, get_db_connection, init_database, run_migrations
from controller.events import EventRecorder
from controller.kube_client import KubernetesCluster, load_kube_config
from controller.reconciler import Reconciler
from controller.replication.engine import ReplicationEngine
from controller.repositories import ReplicaRepository
from controller.watchers import DefinitionStore, ResourceWatcher, WatchEventRouter, build_watchers
from controller.work_queue import ReconcileQueue

logger = get_logger(__name__)


class ControllerManager:
    """
    Owns every long-lived component of the controller process.
    """

    def __init__(self, cluster: Optional[KubernetesCluster] = None):
        self.cluster = cluster
        self.persistence_enabled = False
        self.store = DefinitionStore()
        self.queue: Optional[ReconcileQueue] = None
        self.watchers: List[ResourceWatcher] = []

    def initialize(self) -> None:
        """
        Prepare the cluster client and, when enabled, the database.

        Raises:
            ConfigurationError: If configuration is missing or the database is unreachable
            MigrationError: If the startup migration fails
        """
        if self.cluster is None:
            load_kube_config()
            self.cluster = KubernetesCluster()

        self.persistence_enabled = save_replication_action()
        if self.persistence_enabled:
            init_database()
            run_migrations()
        else:
            logger.info("saving replication action disabled")

        repository = ReplicaRepository() if self.persistence_enabled else None
        engine = ReplicationEngine(self.cluster, repository)
        self.queue = ReconcileQueue(Reconciler(self.cluster, engine), EventRecorder(self.cluster))

    async def start(self) -> None:
        await self.queue.start()
        event_router = WatchEventRouter(self.cluster, self.store, self.queue.add_threadsafe)
        self.watchers = build_watchers(self.cluster, event_router)
        for watcher in self.watchers:
            watcher.start()

    async def stop(self) -> None:
        for watcher in self.watchers:
            watcher.stop()
        if self.queue is not None:
            await self.queue.stop()
        if self.persistence_enabled:
            close_database()
        if self.cluster is not None:
            self.cluster.close()

    def readiness(self) -> Dict[str, str]:
        """Status of each component, 'ok' when healthy."""
        checks = {
            "queue": "ok" if self.queue is not None and self.queue.running else "not running",
        }
        for watcher in self.watchers:
            checks[f"watch:{watcher.name}"] = "ok" if watcher.alive else "not running"
        if not self.watchers:
            checks["watchers"] = "not started"

        if self.persistence_enabled:
            try:
                with get_db_connection() as conn:
                    conn.cursor().execute("SELECT 1")
                checks["database"] = "ok"
            except Exception as e:
                checks["database"] = f"error: {str(e)}"

        return checks
