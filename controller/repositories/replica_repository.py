"""Replica repository for recording applied replicas."""

import json
from typing import Any, Dict

import psycopg2

from common.constants import MANAGED_BY, SOURCE_NAMESPACE, get_annotation_key
from common.logging_config import get_logger
from controller.database import get_db_connection
from controller.exceptions import PersistenceError
from controller.manifests import get_annotations, get_name, get_namespace

logger = get_logger(__name__)


UPSERT_REPLICA_SQL = """
    INSERT INTO configmirror.configmaps (name, source_namespace, destination_namespace, configmirror, json_data)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (name, destination_namespace) DO UPDATE
    SET json_data = EXCLUDED.json_data, configmirror = EXCLUDED.configmirror, updated_at = now()
"""


class ReplicaRepository:
    @staticmethod
    def add_or_update(replica: Dict[str, Any]) -> None:
        """
        Upsert the audit row of an applied replica.

        Rows are keyed by (name, destination namespace); on conflict the
        stored snapshot and owning ConfigMirror are overwritten and the update
        timestamp refreshed.

        Args:
            replica: Replica manifest as written to the cluster

        Raises:
            PersistenceError: If the statement fails
        """
        annotations = get_annotations(replica)
        name = get_name(replica)
        destination_namespace = get_namespace(replica)
        params = (
            name,
            annotations.get(get_annotation_key(SOURCE_NAMESPACE)),
            destination_namespace,
            annotations.get(get_annotation_key(MANAGED_BY)),
            json.dumps(replica, sort_keys=True),
        )

        try:
            with get_db_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(UPSERT_REPLICA_SQL, params)
                conn.commit()
        except psycopg2.Error as e:
            logger.error(f"Failed to record replica {destination_namespace}/{name}: {e}")
            raise PersistenceError(
                f"failed to record replica {destination_namespace}/{name} on database: {e}"
            ) from e
