"""Pydantic schemas for the ConfigMirror custom resource."""

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field


class LabelSelectorSpec(BaseModel):
    """Label selector block of a ConfigMirror spec."""
    model_config = ConfigDict(populate_by_name=True)

    match_labels: Dict[str, str] = Field(default_factory=dict, alias="matchLabels")


class ConfigMirrorSpec(BaseModel):
    """Desired state of a ConfigMirror."""
    model_config = ConfigDict(populate_by_name=True)

    source_namespace: str = Field(alias="sourceNamespace", min_length=1)
    target_namespaces: List[str] = Field(default_factory=list, alias="targetNamespaces")
    selector: LabelSelectorSpec = Field(default_factory=LabelSelectorSpec)


class ObjectMetaSpec(BaseModel):
    """Subset of object metadata the controller reads."""
    name: str
    namespace: str


class ConfigMirrorResource(BaseModel):
    """A ConfigMirror as returned by the API server."""
    model_config = ConfigDict(extra="ignore")

    metadata: ObjectMetaSpec
    spec: ConfigMirrorSpec
