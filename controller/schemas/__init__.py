"""Pydantic schemas for custom resources and probe responses."""

from controller.schemas.mirror import (
    LabelSelectorSpec,
    ConfigMirrorSpec,
    ObjectMetaSpec,
    ConfigMirrorResource
)
from controller.schemas.common import ErrorResponse, HealthResponse, ReadinessResponse

__all__ = [
    "LabelSelectorSpec",
    "ConfigMirrorSpec",
    "ObjectMetaSpec",
    "ConfigMirrorResource",
    "ErrorResponse",
    "HealthResponse",
    "ReadinessResponse"
]
