"""Custom exception classes for the ConfigMirror controller."""

from typing import Optional


class ConfigMirrorException(Exception):
    """
    Base exception class for all controller errors.
    """
    pass


class ConfigurationError(ConfigMirrorException):
    """
    Raised when required startup configuration is missing or invalid.
    """
    pass


class MigrationError(ConfigMirrorException):
    """
    Raised when a startup migration statement fails.
    """
    pass


class ClusterAPIError(ConfigMirrorException):
    """
    Raised when a call to the Kubernetes API server fails or times out.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ObjectNotFoundError(ClusterAPIError):
    """
    Raised when the requested object does not exist on the cluster.
    """

    def __init__(self, message: str):
        super().__init__(message, status=404)


class DefinitionNotFoundError(ConfigMirrorException):
    """
    Raised when the ConfigMirror that triggered a reconcile no longer exists.
    """
    pass


class InvalidDefinitionError(ConfigMirrorException):
    """
    Raised when a ConfigMirror resource does not match the expected schema.
    """
    pass


class FetchError(ConfigMirrorException):
    """
    Raised when listing the source objects of a definition fails.
    """
    pass


class ApplyError(ConfigMirrorException):
    """
    Raised when writing a replica into its target namespace fails.
    """
    pass


class PersistenceError(ConfigMirrorException):
    """
    Raised when recording an applied replica in the database fails.
    """
    pass
