from __future__ import annotations

import io
from typing import Any

import docker
import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from dotenv import dotenv_values

from .db import log_event
from .errors import (
    ImagePullFailure,
    IndeterminateUpdate,
    OrchestratorRejected,
    OrchestratorUnavailable,
    VersionConflict,
)
from .models import LiveService
from .settings import settings


def _client() -> docker.DockerClient:
    return docker.from_env(timeout=settings.docker_timeout_s)


def parse_env_text(text: str | None) -> list[str]:
    """dotenv-formatted text -> ``["KEY=VALUE", ...]`` (comments and blanks dropped)."""
    if not text:
        return []
    values = dotenv_values(stream=io.StringIO(text))
    return [f"{k}={'' if v is None else v}" for k, v in values.items()]


class NotFoundService(OrchestratorRejected):
    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Service {name} not found.")


def _is_out_of_sequence(exc: APIError) -> bool:
    return "out of sequence" in str(exc).lower()


class DockerOrchestrator:
    """Swarm service operations through the low-level Docker Engine API.

    ``get_service`` treats 404 as a normal "absent" answer; everything else that
    prevents an answer is ``OrchestratorUnavailable``.
    """

    def __init__(self, client: docker.DockerClient | None = None):
        self._docker = client

    @property
    def client(self) -> docker.DockerClient:
        if self._docker is None:
            try:
                self._docker = _client()
            except DockerException as e:
                raise OrchestratorUnavailable(f"Docker is not available: {e}") from e
        return self._docker

    def image_exists(self, ref: str) -> bool:
        try:
            self.client.images.get(ref)
            return True
        except ImageNotFound:
            return False
        except (DockerException, requests.exceptions.RequestException) as e:
            raise OrchestratorUnavailable(f"Cannot inspect image {ref}: {e}") from e

    def pull_image(self, ref: str) -> None:
        try:
            self.client.images.pull(ref)
        except (DockerException, requests.exceptions.RequestException) as e:
            raise ImagePullFailure(f"Failed to pull {ref}: {e}") from e
        log_event("INFO", f"Pulled image {ref}")

    def get_service(self, name: str) -> LiveService | None:
        try:
            data = self.client.api.inspect_service(name)
        except NotFound:
            return None
        except (DockerException, requests.exceptions.RequestException) as e:
            raise OrchestratorUnavailable(f"Cannot inspect service {name}: {e}") from e
        return LiveService(
            id=data["ID"],
            version=int(data["Version"]["Index"]),
            spec=data.get("Spec") or {},
            ports=list((data.get("Endpoint") or {}).get("Ports") or []),
        )

    def create_service(self, spec: dict[str, Any]) -> str:
        try:
            resp = self.client.api.create_service(
                spec["TaskTemplate"],
                name=spec.get("Name"),
                labels=spec.get("Labels"),
                mode=spec.get("Mode"),
                endpoint_spec=spec.get("EndpointSpec"),
            )
        except APIError as e:
            raise OrchestratorRejected(f"Service create rejected: {e.explanation or e}") from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise IndeterminateUpdate(f"Connection lost while creating service: {e}") from e
        return resp.get("ID", "")

    def update_service(self, name: str, version: int, spec: dict[str, Any]) -> None:
        # The engine replaces the whole spec, so every top-level field is sent back.
        try:
            self.client.api.update_service(
                name,
                version,
                task_template=spec.get("TaskTemplate"),
                name=spec.get("Name"),
                labels=spec.get("Labels"),
                mode=spec.get("Mode"),
                update_config=spec.get("UpdateConfig"),
                rollback_config=spec.get("RollbackConfig"),
                endpoint_spec=spec.get("EndpointSpec"),
            )
        except APIError as e:
            if _is_out_of_sequence(e):
                raise VersionConflict(
                    f"Service {name} was modified concurrently (version {version} is stale)."
                ) from e
            raise OrchestratorRejected(f"Service update rejected: {e.explanation or e}") from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise IndeterminateUpdate(f"Connection lost while updating service {name}: {e}") from e

    def scale_service(self, name: str, replicas: int) -> None:
        live = self.get_service(name)
        if live is None:
            raise NotFoundService(name)
        spec = dict(live.spec)
        spec["Mode"] = {"Replicated": {"Replicas": int(replicas)}}
        self.update_service(name, live.version, spec)


# --- maintenance ---------------------------------------------------------


def cleanup_unused_images() -> dict[str, Any]:
    return _client().images.prune(filters={"dangling": False}) or {}


def cleanup_stopped_containers() -> dict[str, Any]:
    return _client().containers.prune() or {}


def cleanup_unused_volumes() -> dict[str, Any]:
    return _client().volumes.prune() or {}


def cleanup_docker_builder() -> dict[str, Any]:
    return _client().api.prune_builds() or {}


def cleanup_system() -> dict[str, Any]:
    c = _client()
    out: dict[str, Any] = {}
    out["containers"] = c.containers.prune() or {}
    out["networks"] = c.networks.prune() or {}
    out["images"] = c.images.prune() or {}
    return out


def cleanup_all() -> dict[str, Any]:
    return {
        "images": cleanup_unused_images(),
        "builder": cleanup_docker_builder(),
        "system": cleanup_system(),
    }


def cleanup_prune() -> dict[str, Any]:
    return {"system": cleanup_system(), "builder": cleanup_docker_builder()}


CLEANUP_TARGETS = {
    "all": cleanup_all,
    "images": cleanup_unused_images,
    "volumes": cleanup_unused_volumes,
    "containers": cleanup_stopped_containers,
    "builder": cleanup_docker_builder,
    "prune": cleanup_prune,
}


def space_reclaimed(result: dict[str, Any]) -> int:
    total = int(result.get("SpaceReclaimed") or 0)
    for value in result.values():
        if isinstance(value, dict):
            total += space_reclaimed(value)
    return total


def run_docker_cleanup(target: str = "all") -> int:
    """Run one of ``CLEANUP_TARGETS``. Returns bytes reclaimed."""
    if target not in CLEANUP_TARGETS:
        raise ValueError(f"Unknown cleanup target {target!r}; expected one of {sorted(CLEANUP_TARGETS)}.")
    reclaimed = space_reclaimed(CLEANUP_TARGETS[target]())
    log_event("INFO", f"Docker cleanup ({target}) finished, reclaimed {reclaimed} bytes.")
    return reclaimed
