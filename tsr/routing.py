from __future__ import annotations

import copy
from typing import Any

from .config_store import REDIRECT_TO_HTTPS, ConfigStore, default_server_config, router_name, service_name
from .db import log_event
from .models import AdminState
from .settings import settings


def host_rule(host: str) -> str:
    return f"Host(`{host}`) && PathPrefix(`/`)"


def _section(document: dict[str, Any], key: str) -> dict[str, Any]:
    http = document.get("http")
    if not isinstance(http, dict):
        http = document["http"] = {}
    section = http.get(key)
    if not isinstance(section, dict):
        section = http[key] = {}
    return section


def _with_redirect(middlewares: list[str]) -> list[str]:
    """Redirect exactly once, at its first existing position, else appended."""
    if REDIRECT_TO_HTTPS not in middlewares:
        return middlewares + [REDIRECT_TO_HTTPS]
    first = middlewares.index(REDIRECT_TO_HTTPS)
    return [m for i, m in enumerate(middlewares) if m != REDIRECT_TO_HTTPS or i == first]


def apply_admin_state(
    document: dict[str, Any],
    admin: AdminState,
    host: str | None,
    app_name: str | None = None,
    app_port: int | None = None,
    cert_resolver: str | None = None,
) -> dict[str, Any]:
    """Compute the next routing document for ``admin`` bound on ``host``.

    Pure: the input document is never mutated. Applying the same state twice
    yields structurally equal documents.
    """
    doc = copy.deepcopy(document)
    if not host:
        return doc

    app_name = app_name or settings.app_name
    app_port = app_port or settings.app_port
    cert_resolver = cert_resolver or settings.cert_resolver

    primary_name = router_name(app_name)
    secure_name = router_name(app_name, secure=True)
    svc_name = service_name(app_name)

    routers = _section(doc, "routers")
    services = _section(doc, "services")
    defaults = default_server_config(app_name, app_port)["http"]

    # A router must never point at a missing service.
    if svc_name not in services:
        services[svc_name] = defaults["services"][svc_name]
    primary = routers.get(primary_name)
    if not isinstance(primary, dict):
        primary = routers[primary_name] = defaults["routers"][primary_name]
    primary["service"] = primary.get("service") if primary.get("service") in services else svc_name

    primary["rule"] = host_rule(host)
    current = list(primary.get("middlewares") or [])

    if not admin.tls_enabled:
        routers.pop(secure_name, None)
        if "middlewares" in primary:
            primary["middlewares"] = [m for m in current if m != REDIRECT_TO_HTTPS]
        return doc

    primary["middlewares"] = _with_redirect(current)

    secure = routers.get(secure_name)
    if not isinstance(secure, dict):
        secure = routers[secure_name] = {}
    secure["rule"] = primary["rule"]
    secure["service"] = primary["service"]
    secure["entryPoints"] = ["websecure"]
    if "middlewares" in secure:
        secure["middlewares"] = [m for m in secure["middlewares"] if m != REDIRECT_TO_HTTPS]
    tls = dict(secure["tls"]) if isinstance(secure.get("tls"), dict) else {}
    if admin.lets_encrypt_email:
        tls["certResolver"] = cert_resolver
    else:
        tls.pop("certResolver", None)
    secure["tls"] = tls
    return doc


def update_server_traefik(admin: AdminState, host: str | None, store: ConfigStore | None = None) -> dict[str, Any]:
    """Load the managed application's document, reconcile it and persist it."""
    store = store or ConfigStore()
    current = store.load_or_create(store.app_name)
    if not host:
        return current
    nxt = apply_admin_state(current, admin, host, app_name=store.app_name, app_port=store.app_port)
    if nxt != current:
        store.write(store.app_name, nxt)
        log_event(
            "INFO",
            f"Routing updated for host {host} (certificate: {admin.certificate_type}).",
            service_name=store.app_name,
        )
    return nxt


def update_lets_encrypt_email(email: str | None, store: ConfigStore | None = None) -> bool:
    """Set the ACME account email on the main config's resolver, if there is one."""
    if not email:
        return False
    store = store or ConfigStore()
    if not store.main_exists():
        return False
    config = store.load_main()
    acme = (
        ((config.get("certificatesResolvers") or {}).get(settings.cert_resolver) or {}).get("acme")
    )
    if not isinstance(acme, dict):
        return False
    if acme.get("email") == email:
        return False
    acme["email"] = email
    store.write_main(config)
    log_event("INFO", f"ACME email set to {email}.")
    return True
