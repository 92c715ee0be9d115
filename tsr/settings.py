from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("TSR_DB_PATH", "tsr.db")
    environment: str = os.getenv("TSR_ENV", "production")
    docker_timeout_s: int = _env_int("TSR_DOCKER_TIMEOUT_S", 60)

    # Managed application
    app_name: str = os.getenv("TSR_APP_NAME", "dokploy")
    app_port: int = _env_int("TSR_APP_PORT", 3000)

    # Traefik
    traefik_image: str = os.getenv("TSR_TRAEFIK_IMAGE", "traefik:v3.1.2")
    traefik_service: str = os.getenv("TSR_TRAEFIK_SERVICE", "dokploy-traefik")
    traefik_port: int = _env_int("TSR_TRAEFIK_PORT", 80)
    traefik_ssl_port: int = _env_int("TSR_TRAEFIK_SSL_PORT", 443)
    dashboard_port: int = _env_int("TSR_DASHBOARD_PORT", 8080)
    docker_network: str = os.getenv("TSR_DOCKER_NETWORK", "dokploy-network")
    docker_socket: str = os.getenv("TSR_DOCKER_SOCKET", "/var/run/docker.sock")

    # Paths on the host, and where the dynamic directory is mounted inside the proxy.
    main_traefik_path: str = os.getenv("TSR_MAIN_TRAEFIK_PATH", "/etc/dokploy/traefik")
    dynamic_traefik_path: str = os.getenv("TSR_DYNAMIC_TRAEFIK_PATH", "/etc/dokploy/traefik/dynamic")
    container_dynamic_path: str = os.getenv("TSR_CONTAINER_DYNAMIC_PATH", "/etc/dokploy/traefik/dynamic")

    # ACME
    cert_resolver: str = os.getenv("TSR_CERT_RESOLVER", "letsencrypt")
    acme_email: str = os.getenv("TSR_ACME_EMAIL", "test@localhost.com")

    # Maintenance
    docker_cleanup_schedule: str = os.getenv("TSR_DOCKER_CLEANUP_SCHEDULE", "0 0 * * *")

    # Admin API
    admin_user: str = os.getenv("TSR_ADMIN_USER", "admin")
    admin_password: str = os.getenv("TSR_ADMIN_PASSWORD", "change-me")
    bootstrap_on_startup: bool = _env_bool("TSR_BOOTSTRAP_ON_STARTUP", False)

    # Email alerting (optional)
    enable_email: bool = _env_bool("TSR_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("TSR_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("TSR_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("TSR_SMTP_USER")
    smtp_password: str | None = os.getenv("TSR_SMTP_PASSWORD")
    email_from: str | None = os.getenv("TSR_EMAIL_FROM")
    email_to: str | None = os.getenv("TSR_EMAIL_TO")


settings = Settings()
