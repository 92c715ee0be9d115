from __future__ import annotations

import secrets

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from tsr import db
from tsr.api_models import (
    AssignDomainRequest,
    EnableDashboardRequest,
    EnableHTTP3Request,
    ToggleRequest,
    TraefikConfigRequest,
    TraefikEnvRequest,
    TraefikFileRequest,
)
from tsr.config_store import MIDDLEWARES, ConfigStore
from tsr.docker_ops import DockerOrchestrator, parse_env_text, run_docker_cleanup
from tsr.errors import TSRError
from tsr.jobs import JobRegistry
from tsr.models import AdminState
from tsr.routing import update_lets_encrypt_email, update_server_traefik
from tsr.service_spec import dashboard_enabled, http3_published, live_env
from tsr.settings import settings
from tsr.setup import apply_traefik_service, reload_traefik, setup_traefik, sync_docker_cleanup
from tsr.static_config import StaticConfigGenerator

app = FastAPI(title="Traefik Setup Reconciler")
security = HTTPBasic()
registry = JobRegistry()


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    ok_user = secrets.compare_digest(credentials.username, settings.admin_user)
    ok_pass = secrets.compare_digest(credentials.password, settings.admin_password)
    if not (ok_user and ok_pass):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


def get_store() -> ConfigStore:
    return ConfigStore()


def get_orchestrator() -> DockerOrchestrator:
    return DockerOrchestrator()


def get_registry() -> JobRegistry:
    return registry


@app.exception_handler(TSRError)
async def tsr_error_handler(request: Request, exc: TSRError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__, "indeterminate": exc.indeterminate},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    registry.start()
    sync_docker_cleanup(registry, db.get_admin().enable_docker_cleanup)
    if settings.bootstrap_on_startup:
        setup_traefik()


@app.on_event("shutdown")
def shutdown() -> None:
    registry.shutdown()


# --- domain / routing ---


@app.post("/settings/assign-domain")
def assign_domain(
    req: AssignDomainRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    admin = db.update_admin(
        host=req.host,
        certificate_type=req.certificate_type,
        lets_encrypt_email=req.lets_encrypt_email,
    )
    update_server_traefik(admin, admin.host, store=store)
    update_lets_encrypt_email(admin.lets_encrypt_email, store=store)
    db.log_event("INFO", f"{user} assigned domain {admin.host!r} ({admin.certificate_type}).")
    return _admin_dict(admin)


@app.get("/settings/admin")
def read_admin(user: str = Depends(get_current_username)) -> dict:
    return _admin_dict(db.get_admin())


# --- traefik service ---


@app.post("/settings/dashboard")
def toggle_dashboard(
    req: EnableDashboardRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    apply_traefik_service(orchestrator, enable_dashboard=req.enable_dashboard, store=store)
    return {"ok": True}


@app.post("/settings/http3")
def toggle_http3(
    req: EnableHTTP3Request,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    StaticConfigGenerator(store).set_http3(req.enable_http3)
    apply_traefik_service(orchestrator, enable_http3=req.enable_http3, store=store)
    return {"ok": True}


@app.get("/settings/traefik/dashboard-enabled")
def have_dashboard(
    user: str = Depends(get_current_username),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    return {"enabled": dashboard_enabled(orchestrator.get_service(settings.traefik_service))}


@app.get("/settings/traefik/http3-enabled")
def have_http3(
    user: str = Depends(get_current_username),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    return {"enabled": http3_published(orchestrator.get_service(settings.traefik_service))}


@app.get("/settings/traefik/env")
def read_traefik_env(
    user: str = Depends(get_current_username),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    return {"env": "\n".join(live_env(orchestrator.get_service(settings.traefik_service)))}


@app.put("/settings/traefik/env")
def write_traefik_env(
    req: TraefikEnvRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    apply_traefik_service(orchestrator, env=parse_env_text(req.env), store=store)
    return {"ok": True}


@app.post("/settings/traefik/reload")
def reload(
    user: str = Depends(get_current_username),
    orchestrator: DockerOrchestrator = Depends(get_orchestrator),
) -> dict:
    reload_traefik(orchestrator)
    return {"ok": True}


# --- configuration documents ---


@app.get("/settings/traefik/main")
def read_main_config(user: str = Depends(get_current_username), store: ConfigStore = Depends(get_store)) -> dict:
    return {"traefik_config": store.read_main_raw()}


@app.put("/settings/traefik/main")
def write_main_config(
    req: TraefikConfigRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    store.write_main_raw(req.traefik_config)
    return {"ok": True}


@app.get("/settings/traefik/web-server")
def read_web_server_config(
    user: str = Depends(get_current_username), store: ConfigStore = Depends(get_store)
) -> dict:
    return {"traefik_config": store.read_raw(store.app_name)}


@app.put("/settings/traefik/web-server")
def write_web_server_config(
    req: TraefikConfigRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    store.write_raw(store.app_name, req.traefik_config)
    return {"ok": True}


@app.get("/settings/traefik/middlewares")
def read_middlewares_config(
    user: str = Depends(get_current_username), store: ConfigStore = Depends(get_store)
) -> dict:
    return {"traefik_config": store.read_raw(MIDDLEWARES)}


@app.put("/settings/traefik/middlewares")
def write_middlewares_config(
    req: TraefikConfigRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    store.write_raw(MIDDLEWARES, req.traefik_config)
    return {"ok": True}


@app.get("/settings/traefik/files")
def read_directories(user: str = Depends(get_current_username), store: ConfigStore = Depends(get_store)) -> list:
    return store.list_files()


@app.get("/settings/traefik/file")
def read_traefik_file(
    path: str,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    return {"traefik_config": store.read_in_path(path)}


@app.put("/settings/traefik/file")
def write_traefik_file(
    req: TraefikFileRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    store.write_in_path(req.path, req.traefik_config)
    return {"ok": True}


@app.get("/settings/traefik/access-log")
def have_access_log(user: str = Depends(get_current_username), store: ConfigStore = Depends(get_store)) -> dict:
    return {"enabled": StaticConfigGenerator(store).access_log_enabled()}


@app.post("/settings/traefik/access-log")
def toggle_access_log(
    req: ToggleRequest,
    user: str = Depends(get_current_username),
    store: ConfigStore = Depends(get_store),
) -> dict:
    StaticConfigGenerator(store).set_access_log(req.enable)
    return {"ok": True}


# --- maintenance ---


@app.post("/settings/docker-cleanup")
def update_docker_cleanup(
    req: ToggleRequest,
    user: str = Depends(get_current_username),
    jobs: JobRegistry = Depends(get_registry),
) -> dict:
    admin = db.update_admin(enable_docker_cleanup=req.enable)
    sync_docker_cleanup(jobs, admin.enable_docker_cleanup)
    return {"ok": True, "scheduled": jobs.job_names()}


@app.post("/settings/docker-cleanup/{target}")
def clean_docker(target: str, user: str = Depends(get_current_username)) -> dict:
    """One-shot cleanup: all, images, volumes, containers, builder or prune."""
    return {"target": target, "reclaimed_bytes": run_docker_cleanup(target)}


@app.get("/events")
def events(limit: int = 100, user: str = Depends(get_current_username)) -> list:
    return db.latest_events(limit=max(1, min(limit, 1000)))


def _admin_dict(admin: AdminState) -> dict:
    return {
        "host": admin.host,
        "certificate_type": admin.certificate_type,
        "lets_encrypt_email": admin.lets_encrypt_email,
        "enable_docker_cleanup": admin.enable_docker_cleanup,
    }
