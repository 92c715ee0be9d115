from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @classmethod
    def from_value(cls, raw: str | None) -> "Environment":
        if raw and raw.strip().lower() == cls.DEVELOPMENT.value:
            return cls.DEVELOPMENT
        return cls.PRODUCTION


CERT_NONE = "none"


@dataclass(frozen=True)
class AdminState:
    host: str | None = None
    certificate_type: str = CERT_NONE
    lets_encrypt_email: str | None = None
    enable_docker_cleanup: bool = False

    @property
    def tls_enabled(self) -> bool:
        return (self.certificate_type or CERT_NONE) != CERT_NONE


@dataclass(frozen=True)
class Mount:
    source: str
    target: str
    type: str = "bind"
    read_only: bool = False

    def to_api(self) -> dict[str, Any]:
        out: dict[str, Any] = {"Type": self.type, "Source": self.source, "Target": self.target}
        if self.read_only:
            out["ReadOnly"] = True
        return out


@dataclass(frozen=True)
class PortConfig:
    target_port: int
    published_port: int
    publish_mode: str = "host"
    protocol: str = "tcp"

    def to_api(self) -> dict[str, Any]:
        return {
            "TargetPort": self.target_port,
            "PublishedPort": self.published_port,
            "PublishMode": self.publish_mode,
            "Protocol": self.protocol,
        }


@dataclass(frozen=True)
class ServiceSpec:
    """Desired swarm service. Recomputed on every reconciliation."""

    name: str
    image: str
    env: list[str] | None = None
    mounts: list[Mount] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    replicas: int = 1
    ports: list[PortConfig] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)

    def to_api(self) -> dict[str, Any]:
        """Docker Engine API shape (ServiceSpec object)."""
        container: dict[str, Any] = {
            "Image": self.image,
            "Mounts": [m.to_api() for m in self.mounts],
        }
        if self.env is not None:
            container["Env"] = list(self.env)
        return {
            "Name": self.name,
            "TaskTemplate": {
                "ContainerSpec": container,
                "Networks": [{"Target": n} for n in self.networks],
                "Placement": {"Constraints": list(self.constraints)},
            },
            "Mode": {"Replicated": {"Replicas": self.replicas}},
            "Labels": dict(self.labels),
            "EndpointSpec": {"Ports": [p.to_api() for p in self.ports]},
        }


@dataclass(frozen=True)
class LiveService:
    id: str
    version: int
    spec: dict[str, Any]
    ports: list[dict[str, Any]] = field(default_factory=list)  # Endpoint.Ports as reported by the manager
