from __future__ import annotations

import copy
from typing import Any

from .config_store import MAIN_CONFIG_FILE
from .db import log_event
from .errors import ImagePullFailure
from .models import LiveService, Mount, PortConfig, ServiceSpec
from .settings import settings

TRAEFIK_CONTAINER_CONFIG = "/etc/traefik/traefik.yml"


def traefik_service_spec(
    enable_dashboard: bool = False,
    enable_http3: bool = False,
    env: list[str] | None = None,
) -> ServiceSpec:
    ssl_port = settings.traefik_ssl_port
    web_port = settings.traefik_port

    ports: list[PortConfig] = []
    if enable_http3:
        ports.append(PortConfig(target_port=ssl_port, published_port=ssl_port, protocol="udp"))
    ports.append(PortConfig(target_port=ssl_port, published_port=ssl_port))
    ports.append(PortConfig(target_port=web_port, published_port=web_port))
    if enable_dashboard:
        ports.append(PortConfig(target_port=settings.dashboard_port, published_port=settings.dashboard_port))

    return ServiceSpec(
        name=settings.traefik_service,
        image=settings.traefik_image,
        env=env,
        mounts=[
            Mount(source=f"{settings.main_traefik_path}/{MAIN_CONFIG_FILE}", target=TRAEFIK_CONTAINER_CONFIG),
            Mount(source=settings.dynamic_traefik_path, target=settings.container_dynamic_path),
            Mount(source=settings.docker_socket, target=settings.docker_socket),
        ],
        networks=[settings.docker_network],
        constraints=["node.role==manager"],
        replicas=1,
        ports=ports,
        labels={"traefik.enable": "true"},
    )


def merge_spec(live_spec: dict[str, Any], desired: ServiceSpec) -> dict[str, Any]:
    """Overlay the fields this project owns onto a running service's spec.

    Ports, mounts, networks, constraints, image and replicas are replaced
    wholesale. Labels are merged per key. Env is all-or-nothing: the live list
    stays unless ``desired.env`` is non-empty.
    """
    want = desired.to_api()
    merged = copy.deepcopy(live_spec)

    merged["Name"] = want["Name"]
    merged["Labels"] = {**(merged.get("Labels") or {}), **want["Labels"]}
    merged["Mode"] = want["Mode"]

    endpoint = merged.setdefault("EndpointSpec", {}) or {}
    endpoint["Ports"] = want["EndpointSpec"]["Ports"]
    merged["EndpointSpec"] = endpoint

    task = merged.setdefault("TaskTemplate", {}) or {}
    task["Networks"] = want["TaskTemplate"]["Networks"]
    placement = task.get("Placement") or {}
    placement["Constraints"] = want["TaskTemplate"]["Placement"]["Constraints"]
    task["Placement"] = placement

    container = task.get("ContainerSpec") or {}
    container["Image"] = want["TaskTemplate"]["ContainerSpec"]["Image"]
    container["Mounts"] = want["TaskTemplate"]["ContainerSpec"]["Mounts"]
    if desired.env:
        container["Env"] = list(desired.env)
    task["ContainerSpec"] = container
    merged["TaskTemplate"] = task
    return merged


def live_env(live: LiveService | None) -> list[str]:
    if live is None:
        return []
    return list(((live.spec.get("TaskTemplate") or {}).get("ContainerSpec") or {}).get("Env") or [])


def _published(live: LiveService | None) -> list[dict[str, Any]]:
    if live is None:
        return []
    # Endpoint.Ports reflects what is actually published; fall back to EndpointSpec.
    return live.ports or list((live.spec.get("EndpointSpec") or {}).get("Ports") or [])


def dashboard_enabled(live: LiveService | None) -> bool:
    return any(p.get("PublishedPort") == settings.dashboard_port for p in _published(live))


def http3_published(live: LiveService | None) -> bool:
    return any(
        p.get("Protocol") == "udp" and p.get("PublishedPort") == settings.traefik_ssl_port for p in _published(live)
    )


class ServiceReconciler:
    """Absent -> create; Present(version) -> update(version).

    ``orchestrator`` provides ``image_exists``, ``pull_image``, ``get_service``,
    ``create_service`` and ``update_service`` (see ``docker_ops.DockerOrchestrator``).
    """

    def __init__(self, orchestrator: Any):
        self.orchestrator = orchestrator

    def ensure_image(self, ref: str, bootstrap: bool = False) -> None:
        if self.orchestrator.image_exists(ref):
            return
        try:
            self.orchestrator.pull_image(ref)
        except ImagePullFailure as e:
            # Only the first boot tolerates this: the swarm pulls again when scheduling the task.
            if not bootstrap:
                raise
            log_event("WARN", f"Best-effort pull failed during bootstrap: {e.detail}")

    def reconcile(self, desired: ServiceSpec, bootstrap: bool = False) -> dict[str, Any]:
        self.ensure_image(desired.image, bootstrap=bootstrap)

        live = self.orchestrator.get_service(desired.name)
        if live is None:
            spec = desired.to_api()
            self.orchestrator.create_service(spec)
            log_event("INFO", f"Service {desired.name} not found; created.", service_name=desired.name)
            return spec

        spec = merge_spec(live.spec, desired)
        self.orchestrator.update_service(desired.name, live.version, spec)
        log_event(
            "INFO",
            f"Service {desired.name} updated.",
            service_name=desired.name,
            version=str(live.version),
        )
        return spec
