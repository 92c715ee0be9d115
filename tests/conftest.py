import copy
import dataclasses
import os as _os
import sys

import pytest

# Ensure project root is importable (so `import main` works without installing the package)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from tsr import db  # noqa: E402
from tsr.config_store import ConfigStore  # noqa: E402
from tsr.errors import ImagePullFailure, VersionConflict  # noqa: E402
from tsr.models import LiveService  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Every test logs events into its own sqlite file."""
    monkeypatch.setattr(db, "settings", dataclasses.replace(db.settings, db_path=str(tmp_path / "events.db")))
    db.init_db()
    yield


@pytest.fixture
def store(tmp_path):
    return ConfigStore(
        dynamic_path=str(tmp_path / "traefik" / "dynamic"),
        main_path=str(tmp_path / "traefik"),
        app_name="dokploy",
        app_port=3000,
    )


class FakeOrchestrator:
    """In-memory swarm: one dict per service, version bumped on every write."""

    def __init__(self, images=None, pull_fails=False):
        self.images = set(images or [])
        self.pull_fails = pull_fails
        self.services: dict[str, dict] = {}
        self.versions: dict[str, int] = {}
        self.pulled: list[str] = []
        self.calls: list[tuple] = []
        self.stale_on_next_update = False

    def add_live(self, spec: dict, version: int = 7) -> None:
        self.services[spec["Name"]] = copy.deepcopy(spec)
        self.versions[spec["Name"]] = version

    def image_exists(self, ref):
        return ref in self.images

    def pull_image(self, ref):
        if self.pull_fails:
            raise ImagePullFailure(f"Failed to pull {ref}: registry unreachable")
        self.pulled.append(ref)
        self.images.add(ref)

    def get_service(self, name):
        self.calls.append(("get", name))
        if name not in self.services:
            return None
        spec = copy.deepcopy(self.services[name])
        return LiveService(
            id=f"id-{name}",
            version=self.versions[name],
            spec=spec,
            ports=list((spec.get("EndpointSpec") or {}).get("Ports") or []),
        )

    def create_service(self, spec):
        self.calls.append(("create", spec["Name"]))
        self.add_live(spec, version=1)
        return f"id-{spec['Name']}"

    def update_service(self, name, version, spec):
        self.calls.append(("update", name, version))
        if self.stale_on_next_update or version != self.versions[name]:
            raise VersionConflict(f"Service {name} was modified concurrently (version {version} is stale).")
        self.services[name] = copy.deepcopy(spec)
        self.versions[name] = version + 1

    def scale_service(self, name, replicas):
        live = self.get_service(name)
        spec = dict(live.spec)
        spec["Mode"] = {"Replicated": {"Replicas": replicas}}
        self.update_service(name, live.version, spec)


@pytest.fixture
def orchestrator():
    return FakeOrchestrator(images={"traefik:v3.1.2"})
