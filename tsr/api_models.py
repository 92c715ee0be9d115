from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class AssignDomainRequest(BaseModel):
    host: str | None = Field(None, description="Public hostname of the managed application")
    certificate_type: Literal["none", "letsencrypt"] = "none"
    lets_encrypt_email: str | None = Field(None, description="ACME account email")


class EnableDashboardRequest(BaseModel):
    enable_dashboard: bool


class EnableHTTP3Request(BaseModel):
    enable_http3: bool


class ToggleRequest(BaseModel):
    enable: bool


class TraefikConfigRequest(BaseModel):
    traefik_config: str = Field(..., description="Raw YAML document")


class TraefikFileRequest(BaseModel):
    path: str = Field(..., description="Path relative to the main traefik directory")
    traefik_config: str


class TraefikEnvRequest(BaseModel):
    env: str = Field("", description="dotenv-formatted KEY=VALUE lines")
