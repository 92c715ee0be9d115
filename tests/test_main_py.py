import base64

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient

import main
from tsr.errors import IndeterminateUpdate
from tsr.jobs import JobRegistry
from tsr.models import Environment
from tsr.service_spec import traefik_service_spec
from tsr.settings import settings
from tsr.static_config import StaticConfigGenerator

from conftest import FakeOrchestrator

SECURE = "dokploy-router-app-secure"


def _basic_auth(user: str, password: str) -> dict:
    token = base64.b64encode(f"{user}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


AUTH = _basic_auth(settings.admin_user, settings.admin_password)


@pytest.fixture
def fake_orchestrator():
    orch = FakeOrchestrator(images={settings.traefik_image})
    orch.add_live(traefik_service_spec(env=["A=1"]).to_api(), version=10)
    return orch


@pytest.fixture
def client(monkeypatch, store, fake_orchestrator):
    # Real scheduler thread, but private to the test
    monkeypatch.setattr(main, "registry", JobRegistry(BackgroundScheduler()))
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_orchestrator] = lambda: fake_orchestrator
    main.app.dependency_overrides[main.get_registry] = lambda: main.registry
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


def test_requires_basic_auth(client):
    r = client.get("/events")
    assert r.status_code == 401

    r = client.get("/events", headers=_basic_auth(settings.admin_user, "wrong"))
    assert r.status_code == 401

    r = client.get("/events", headers=AUTH)
    assert r.status_code == 200
    assert isinstance(r.json(), list)


def test_assign_domain_rewrites_routing(client, store):
    r = client.post(
        "/settings/assign-domain",
        json={"host": "panel.example.com", "certificate_type": "letsencrypt", "lets_encrypt_email": "ops@example.com"},
        headers=AUTH,
    )
    assert r.status_code == 200
    assert r.json()["host"] == "panel.example.com"

    routers = store.load("dokploy")["http"]["routers"]
    assert routers[SECURE]["rule"] == "Host(`panel.example.com`) && PathPrefix(`/`)"
    assert routers[SECURE]["tls"] == {"certResolver": "letsencrypt"}

    admin = client.get("/settings/admin", headers=AUTH).json()
    assert admin["certificate_type"] == "letsencrypt"
    assert admin["lets_encrypt_email"] == "ops@example.com"

    client.post("/settings/assign-domain", json={"host": "panel.example.com"}, headers=AUTH)
    assert SECURE not in store.load("dokploy")["http"]["routers"]


def test_http3_before_bootstrap_is_conflict(client, store, fake_orchestrator):
    r = client.post("/settings/http3", json={"enable_http3": True}, headers=AUTH)

    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "PreconditionViolation"
    assert body["indeterminate"] is False
    assert not store.main_exists()
    assert not [c for c in fake_orchestrator.calls if c[0] == "update"]


def test_http3_toggle_updates_file_and_service(client, store, fake_orchestrator):
    StaticConfigGenerator(store, environment=Environment.PRODUCTION).bootstrap(enable_http3=False)

    r = client.post("/settings/http3", json={"enable_http3": True}, headers=AUTH)
    assert r.status_code == 200

    assert store.load_main()["entryPoints"]["websecure"]["http3"] == {"advertisedPort": 443}
    assert client.get("/settings/traefik/http3-enabled", headers=AUTH).json() == {"enabled": True}
    # env untouched by a flag toggle
    assert client.get("/settings/traefik/env", headers=AUTH).json() == {"env": "A=1"}

    client.post("/settings/http3", json={"enable_http3": False}, headers=AUTH)
    assert "http3" not in store.load_main()["entryPoints"]["websecure"]
    assert client.get("/settings/traefik/http3-enabled", headers=AUTH).json() == {"enabled": False}


def test_dashboard_and_env(client, store, fake_orchestrator):
    StaticConfigGenerator(store, environment=Environment.PRODUCTION).bootstrap()

    r = client.post("/settings/dashboard", json={"enable_dashboard": True}, headers=AUTH)
    assert r.status_code == 200
    assert client.get("/settings/traefik/dashboard-enabled", headers=AUTH).json() == {"enabled": True}

    r = client.put("/settings/traefik/env", json={"env": "B=2\n# comment\nC=3\n"}, headers=AUTH)
    assert r.status_code == 200
    assert client.get("/settings/traefik/env", headers=AUTH).json() == {"env": "B=2\nC=3"}
    assert client.get("/settings/traefik/dashboard-enabled", headers=AUTH).json() == {"enabled": True}


def test_indeterminate_update_is_reported(client, store, fake_orchestrator, monkeypatch):
    StaticConfigGenerator(store, environment=Environment.PRODUCTION).bootstrap()

    def lost(name, version, spec):
        raise IndeterminateUpdate(f"Connection lost while updating service {name}")

    monkeypatch.setattr(fake_orchestrator, "update_service", lost)

    r = client.post("/settings/dashboard", json={"enable_dashboard": True}, headers=AUTH)

    assert r.status_code == 502
    assert r.json()["indeterminate"] is True


def test_reload(client, fake_orchestrator):
    r = client.post("/settings/traefik/reload", headers=AUTH)

    assert r.status_code == 200
    assert fake_orchestrator.versions["dokploy-traefik"] == 12


def test_config_documents(client, store):
    r = client.get("/settings/traefik/main", headers=AUTH)
    assert r.json() == {"traefik_config": None}

    r = client.put("/settings/traefik/main", json={"traefik_config": "api:\n  insecure: true\n"}, headers=AUTH)
    assert r.status_code == 200
    assert client.get("/settings/traefik/main", headers=AUTH).json()["traefik_config"] == "api:\n  insecure: true\n"

    r = client.put("/settings/traefik/middlewares", json={"traefik_config": "http: [broken"}, headers=AUTH)
    assert r.status_code == 400

    store.create_default_server_config()
    web = client.get("/settings/traefik/web-server", headers=AUTH).json()["traefik_config"]
    assert "dokploy-router-app" in web


def test_files_outside_main_directory_are_rejected(client, store):
    store.write_main({"api": {"insecure": True}})

    r = client.get("/settings/traefik/file", params={"path": "../secrets.yml"}, headers=AUTH)
    assert r.status_code == 400

    r = client.put("/settings/traefik/file", json={"path": "dynamic/extra.yml", "traefik_config": "a: 1\n"}, headers=AUTH)
    assert r.status_code == 200

    names = [n["name"] for n in client.get("/settings/traefik/files", headers=AUTH).json()]
    assert names == ["dynamic", "traefik.yml"]


def test_access_log_toggle(client, store):
    StaticConfigGenerator(store, environment=Environment.PRODUCTION).bootstrap()

    assert client.get("/settings/traefik/access-log", headers=AUTH).json() == {"enabled": False}
    client.post("/settings/traefik/access-log", json={"enable": True}, headers=AUTH)
    assert client.get("/settings/traefik/access-log", headers=AUTH).json() == {"enabled": True}


def test_docker_cleanup_schedule(client):
    r = client.post("/settings/docker-cleanup", json={"enable": True}, headers=AUTH)
    assert r.json()["scheduled"] == ["docker-cleanup"]

    r = client.post("/settings/docker-cleanup", json={"enable": False}, headers=AUTH)
    assert r.json()["scheduled"] == []
    assert client.get("/settings/admin", headers=AUTH).json()["enable_docker_cleanup"] is False


def test_unknown_cleanup_target_is_bad_request(client):
    r = client.post("/settings/docker-cleanup/everything", headers=AUTH)

    assert r.status_code == 400
