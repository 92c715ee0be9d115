from __future__ import annotations

import os
from typing import Any

from .config_store import ConfigStore
from .db import log_event
from .errors import PreconditionViolation
from .models import Environment
from .settings import settings


def build_main_config(
    environment: Environment,
    enable_http3: bool = False,
    web_port: int | None = None,
    ssl_port: int | None = None,
    container_dynamic_path: str | None = None,
    acme_email: str | None = None,
    cert_resolver: str | None = None,
) -> dict[str, Any]:
    """Static Traefik configuration.

    Development watches plain docker containers with a default ``*.docker.localhost``
    rule; production uses swarm discovery plus an ACME resolver on ``websecure``.
    """
    web_port = web_port or settings.traefik_port
    ssl_port = ssl_port or settings.traefik_ssl_port
    dynamic_dir = container_dynamic_path or settings.container_dynamic_path
    cert_resolver = cert_resolver or settings.cert_resolver

    if environment is Environment.DEVELOPMENT:
        providers: dict[str, Any] = {
            "docker": {"defaultRule": "Host(`{{ trimPrefix `/` .Name }}.docker.localhost`)"},
        }
    else:
        providers = {
            "swarm": {"exposedByDefault": False, "watch": False},
            "docker": {"exposedByDefault": False},
        }
    providers["file"] = {"directory": dynamic_dir, "watch": True}

    websecure: dict[str, Any] = {"address": f":{ssl_port}"}
    if enable_http3:
        websecure["http3"] = {"advertisedPort": ssl_port}
    if environment is Environment.PRODUCTION:
        websecure["http"] = {"tls": {"certResolver": cert_resolver}}

    config: dict[str, Any] = {
        "providers": providers,
        "entryPoints": {
            "web": {"address": f":{web_port}"},
            "websecure": websecure,
        },
        "api": {"insecure": True},
    }
    if environment is Environment.PRODUCTION:
        config["certificatesResolvers"] = {
            cert_resolver: {
                "acme": {
                    "email": acme_email or settings.acme_email,
                    "storage": f"{dynamic_dir}/acme.json",
                    "httpChallenge": {"entryPoint": "web"},
                },
            },
        }
    return config


def access_log_block(container_dynamic_path: str | None = None) -> dict[str, Any]:
    dynamic_dir = container_dynamic_path or settings.container_dynamic_path
    return {
        "filePath": f"{dynamic_dir}/access.log",
        "format": "json",
        "bufferingSize": 100,
        "filters": {"retryAttempts": True, "minDuration": "10ms"},
    }


class StaticConfigGenerator:
    """Writes ``traefik.yml`` once, then only toggles single keys inside it.

    The file may carry operator-added keys this class does not model; toggles
    load the whole document and touch nothing but their own key.
    """

    def __init__(self, store: ConfigStore | None = None, environment: Environment | None = None):
        self.store = store or ConfigStore()
        self.environment = environment or Environment.from_value(settings.environment)

    def _secure_acme_storage(self) -> None:
        acme = self.store.dynamic_path / "acme.json"
        if acme.exists():
            os.chmod(acme, 0o600)

    def bootstrap(self, enable_http3: bool = False) -> dict[str, Any] | None:
        self._secure_acme_storage()
        if self.store.main_exists():
            log_event("INFO", "Main traefik config already exists; left untouched.")
            return None
        config = build_main_config(self.environment, enable_http3=enable_http3)
        self.store.write_main(config)
        log_event("INFO", f"Main traefik config created ({self.environment.value}, http3={enable_http3}).")
        return config

    def set_http3(self, enabled: bool) -> None:
        if not self.store.main_exists():
            raise PreconditionViolation("Main traefik config missing; bootstrap must run before toggling HTTP/3.")
        config = self.store.load_main()
        entry_points = config.get("entryPoints")
        websecure = entry_points.get("websecure") if isinstance(entry_points, dict) else None
        if not isinstance(websecure, dict):
            if not enabled:
                return
            raise PreconditionViolation("Main traefik config has no 'websecure' entry point.")

        if enabled:
            websecure["http3"] = {"advertisedPort": settings.traefik_ssl_port}
        elif "http3" in websecure:
            del websecure["http3"]
        else:
            return
        self.store.write_main(config)
        log_event("INFO", f"HTTP/3 {'enabled' if enabled else 'disabled'} on websecure.")

    def http3_enabled(self) -> bool:
        if not self.store.main_exists():
            return False
        websecure = (self.store.load_main().get("entryPoints") or {}).get("websecure") or {}
        return "http3" in websecure

    def set_access_log(self, enabled: bool) -> None:
        config = self.store.load_main()
        if enabled:
            config["accessLog"] = access_log_block()
        elif "accessLog" in config:
            del config["accessLog"]
        else:
            return
        self.store.write_main(config)
        log_event("INFO", f"Access log {'enabled' if enabled else 'disabled'}.")

    def access_log_enabled(self) -> bool:
        if not self.store.main_exists():
            return False
        access_log = self.store.load_main().get("accessLog")
        return bool(isinstance(access_log, dict) and access_log.get("filePath"))
