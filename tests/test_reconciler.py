"""End-to-end tests for reconciling ConfigMirror definitions."""

from unittest.mock import MagicMock

import pytest

from controller.exceptions import (
    ApplyError,
    ClusterAPIError,
    DefinitionNotFoundError,
    FetchError,
    InvalidDefinitionError,
    PersistenceError,
)
from controller.reconciler import Reconciler
from controller.replication.engine import ApplyOutcome, ReplicationEngine
from controller.router import route
from controller.types import ObjectKey

KEY = ObjectKey("default", "mirror")


class TestReconcileScenarios:
    """Reconcile passes against an in-memory cluster."""

    def test_matching_object_is_replicated(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "test"})
        source = cluster.add_source("default", "cfg", labels={"app": "test"}, data={"k": "v"})

        result = reconciler.reconcile(KEY)

        replica = cluster.get_config_map("team-a", "cfg")
        annotations = replica["metadata"]["annotations"]
        assert annotations["bennsimon.github.io/managed-by"] == "default/mirror"
        assert annotations["bennsimon.github.io/mirror"] == source["metadata"]["uid"]
        assert annotations["bennsimon.github.io/sourceNamespace"] == "default"
        assert replica["data"] == {"k": "v"}
        assert result.matched == 1
        assert result.count(ApplyOutcome.CREATED) == 1

    def test_non_matching_selector_creates_nothing(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "other"})
        cluster.add_source("default", "cfg", labels={"app": "test"})

        result = reconciler.reconcile(KEY)

        assert result.matched == 0
        assert result.applied == 0
        assert ("team-a", "cfg") not in cluster.config_maps

    def test_every_source_reaches_every_target(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a", "team-b"], {"app": "test"})
        cluster.add_source("default", "one", labels={"app": "test"})
        cluster.add_source("default", "two", labels={"app": "test"})

        result = reconciler.reconcile(KEY)

        assert result.applied == 4
        for namespace in ("team-a", "team-b"):
            for name in ("one", "two"):
                assert cluster.get_config_map(namespace, name)["metadata"]["annotations"][
                    "bennsimon.github.io/managed-by"] == "default/mirror"

    def test_second_pass_is_idempotent(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "test"})
        cluster.add_source("default", "cfg", labels={"app": "test"}, data={"k": "v"})
        reconciler.reconcile(KEY)
        first = cluster.get_config_map("team-a", "cfg")

        result = reconciler.reconcile(KEY)

        assert result.count(ApplyOutcome.UNCHANGED) == 1
        assert cluster.get_config_map("team-a", "cfg") == first

    def test_replicas_are_kept_when_targets_shrink(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a", "team-b"], {"app": "test"})
        cluster.add_source("default", "cfg", labels={"app": "test"})
        reconciler.reconcile(KEY)

        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "test"})
        reconciler.reconcile(KEY)

        assert ("team-b", "cfg") in cluster.config_maps

    def test_deleted_replica_is_recreated(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "test"})
        cluster.add_source("default", "cfg", labels={"app": "test"})
        reconciler.reconcile(KEY)
        deleted = cluster.delete_config_map("team-a", "cfg")
        definitions = [reconciler.get_definition(KEY)]

        keys = route(deleted, definitions, cluster.get_config_map)
        for key in keys:
            reconciler.reconcile(key)

        assert keys == {KEY}
        assert ("team-a", "cfg") in cluster.config_maps

    def test_write_to_replica_does_not_retrigger(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["default-copy"], {"app": "test"})
        cluster.add_source("default", "cfg", labels={"app": "test"})
        reconciler.reconcile(KEY)
        replica = cluster.get_config_map("default-copy", "cfg")
        definitions = [reconciler.get_definition(KEY)]

        assert route(replica, definitions, cluster.get_config_map) == set()


class TestReconcileErrors:
    """Failure handling of a reconcile pass."""

    def test_missing_definition(self, reconciler):
        with pytest.raises(DefinitionNotFoundError):
            reconciler.reconcile(KEY)

    def test_definition_read_failure(self, cluster, reconciler):
        cluster.fail("get_mirror", ClusterAPIError("timed out"))

        with pytest.raises(FetchError):
            reconciler.reconcile(KEY)

    def test_invalid_definition(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a"])
        del cluster.mirrors[("default", "mirror")]["spec"]["sourceNamespace"]

        with pytest.raises(InvalidDefinitionError):
            reconciler.reconcile(KEY)

    def test_list_failure_aborts(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "test"})
        cluster.fail("list_config_maps", ClusterAPIError("timed out"))

        with pytest.raises(FetchError):
            reconciler.reconcile(KEY)

    def test_apply_failure_keeps_earlier_targets(self, cluster, reconciler):
        cluster.add_mirror("default", "mirror", "default", ["team-a", "team-b"], {"app": "test"})
        cluster.add_source("default", "cfg", labels={"app": "test"})
        original_create = cluster.create_config_map

        def create(namespace, body, field_manager):
            if namespace == "team-b":
                raise ClusterAPIError("namespace terminating", status=403)
            return original_create(namespace, body, field_manager)

        cluster.create_config_map = create

        with pytest.raises(ApplyError):
            reconciler.reconcile(KEY)

        assert ("team-a", "cfg") in cluster.config_maps
        assert ("team-b", "cfg") not in cluster.config_maps

    def test_persistence_failure_surfaces_after_write(self, cluster):
        cluster.add_mirror("default", "mirror", "default", ["team-a"], {"app": "test"})
        cluster.add_source("default", "cfg", labels={"app": "test"})
        repository = MagicMock()
        repository.add_or_update.side_effect = PersistenceError("db down")
        reconciler = Reconciler(cluster, ReplicationEngine(cluster, repository))

        with pytest.raises(PersistenceError):
            reconciler.reconcile(KEY)

        assert ("team-a", "cfg") in cluster.config_maps
