"""Shared pytest fixtures for all tests."""

import pytest

from controller.replication.engine import ReplicationEngine
from controller.reconciler import Reconciler
from controller.selector import MatchLabels
from controller.types import MirrorDefinition, ObjectKey
from tests.fakes import FakeCluster


@pytest.fixture
def cluster():
    """
    Create an empty in-memory cluster.

    Returns:
        FakeCluster instance
    """
    return FakeCluster()


@pytest.fixture
def engine(cluster):
    """
    Create a replication engine with persistence disabled.
    """
    return ReplicationEngine(cluster)


@pytest.fixture
def reconciler(cluster, engine):
    return Reconciler(cluster, engine)


@pytest.fixture
def make_definition():
    """
    Factory for MirrorDefinition instances.

    Returns:
        Callable building a definition from keyword arguments
    """
    def _make(
        name="mirror",
        namespace="default",
        source_namespace="default",
        target_namespaces=("team-a",),
        match_labels=None
    ):
        return MirrorDefinition(
            key=ObjectKey(namespace, name),
            source_namespace=source_namespace,
            target_namespaces=tuple(target_namespaces),
            selector=MatchLabels(match_labels if match_labels is not None else {"app": "test"})
        )
    return _make
