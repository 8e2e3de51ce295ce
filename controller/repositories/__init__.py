"""Repository layer for data access."""

from controller.repositories.replica_repository import ReplicaRepository

__all__ = [
    "ReplicaRepository",
]
