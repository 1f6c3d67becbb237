"""Pydantic models describing the mesh control-plane configuration resource."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from meshreconcile.config.errors import ConfigurationError

MESH_API_VERSION = "istio.banzaicloud.io/v1beta1"
MESH_KIND = "Istio"


class MeshBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)

    def to_document(self) -> dict[str, Any]:
        """Serialise with camelCase keys, dropping unset optional fields."""

        return self.model_dump(by_alias=True, exclude_none=True)


class ServicePort(MeshBaseModel):
    name: str
    port: int
    target_port: int | None = None
    protocol: str | None = None
    node_port: int | None = None


class MeshGatewayConfiguration(MeshBaseModel):
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] | None = None
    replica_count: int | None = None
    min_replicas: int | None = None
    max_replicas: int | None = None
    resources: dict[str, Any] | None = None
    node_selector: dict[str, str] | None = None
    tolerations: list[dict[str, Any]] | None = None
    service_type: str | None = None
    service_annotations: dict[str, str] | None = None
    service_labels: dict[str, str] | None = None

    def gateway_configuration(self) -> MeshGatewayConfiguration:
        """Return only the shared gateway fields, without subclass extras."""

        return MeshGatewayConfiguration.model_validate(
            self.model_dump(include=set(MeshGatewayConfiguration.model_fields))
        )


class EgressGatewayConfiguration(MeshGatewayConfiguration):
    enabled: bool | None = None
    create_only: bool | None = None
    ports: list[ServicePort] = Field(default_factory=list)


class GatewaysConfiguration(MeshBaseModel):
    enabled: bool | None = None
    egress: EgressGatewayConfiguration = Field(default_factory=EgressGatewayConfiguration)


class MeshSpec(MeshBaseModel):
    gateways: GatewaysConfiguration = Field(default_factory=GatewaysConfiguration)
    multi_mesh: bool | None = None


class MeshMetadata(MeshBaseModel):
    name: str
    namespace: str
    uid: str | None = None
    labels: dict[str, str] | None = None


class MeshConfig(MeshBaseModel):
    """The mesh configuration resource driving every component reconciler."""

    api_version: str = MESH_API_VERSION
    kind: str = MESH_KIND
    metadata: MeshMetadata
    spec: MeshSpec = Field(default_factory=MeshSpec)


def load_mesh_config(path: Path | str) -> MeshConfig:
    """Read a mesh configuration from a YAML or JSON file."""

    source = Path(path)
    try:
        payload = yaml.safe_load(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Cannot read mesh configuration {source}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid mesh configuration {source}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigurationError(f"Mesh configuration {source} must be a mapping")
    try:
        return MeshConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid mesh configuration {source}: {exc}") from exc
