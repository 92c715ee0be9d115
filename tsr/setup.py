from __future__ import annotations

from typing import Any

import requests
from docker.errors import DockerException

from . import alerts, docker_ops
from .config_store import ConfigStore
from .db import log_event
from .docker_ops import DockerOrchestrator
from .jobs import DOCKER_CLEANUP_JOB, JobRegistry
from .service_spec import ServiceReconciler, dashboard_enabled, traefik_service_spec
from .settings import settings
from .static_config import StaticConfigGenerator


def setup_traefik(
    enable_dashboard: bool = False,
    enable_http3: bool = False,
    env: list[str] | None = None,
    store: ConfigStore | None = None,
    orchestrator: Any = None,
) -> dict[str, Any]:
    """First boot: config files (create-once), then the Traefik service."""
    store = store or ConfigStore()
    store.create_default_server_config()
    StaticConfigGenerator(store).bootstrap(enable_http3=enable_http3)
    store.create_default_middlewares()

    reconciler = ServiceReconciler(orchestrator or DockerOrchestrator())
    desired = traefik_service_spec(enable_dashboard=enable_dashboard, enable_http3=enable_http3, env=env)
    return reconciler.reconcile(desired, bootstrap=True)


def apply_traefik_service(
    orchestrator: Any,
    enable_dashboard: bool | None = None,
    enable_http3: bool | None = None,
    env: list[str] | None = None,
    store: ConfigStore | None = None,
) -> dict[str, Any]:
    """Reconcile the Traefik service, keeping the current value of any flag left as ``None``.

    The dashboard flag is read back from the live service's published ports,
    HTTP/3 from the main config file.
    """
    if enable_dashboard is None:
        enable_dashboard = dashboard_enabled(orchestrator.get_service(settings.traefik_service))
    if enable_http3 is None:
        enable_http3 = StaticConfigGenerator(store).http3_enabled()
    desired = traefik_service_spec(enable_dashboard=enable_dashboard, enable_http3=enable_http3, env=env)
    return ServiceReconciler(orchestrator).reconcile(desired)


def reload_traefik(orchestrator: Any) -> None:
    """Stop and start the proxy so it re-reads ``traefik.yml``."""
    orchestrator.scale_service(settings.traefik_service, 0)
    orchestrator.scale_service(settings.traefik_service, 1)
    log_event("INFO", "Traefik restarted.", service_name=settings.traefik_service)


def docker_cleanup_job() -> None:
    log_event("INFO", "Docker cleanup running...")
    try:
        reclaimed = docker_ops.run_docker_cleanup()
    except (DockerException, requests.exceptions.RequestException) as e:
        log_event("ERROR", f"Docker cleanup failed: {type(e).__name__}: {e}")
        return
    alerts.send_email(
        "Docker cleanup completed",
        f"Scheduled docker cleanup finished.\nSpace reclaimed: {reclaimed / (1024 * 1024):.1f} MB",
    )


def sync_docker_cleanup(registry: JobRegistry, enabled: bool) -> None:
    if enabled:
        registry.register(DOCKER_CLEANUP_JOB, settings.docker_cleanup_schedule, docker_cleanup_job)
    else:
        registry.cancel(DOCKER_CLEANUP_JOB)
