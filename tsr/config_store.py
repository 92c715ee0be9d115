from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path
from typing import Any

import yaml

from .db import log_event
from .errors import CorruptConfig, PreconditionViolation
from .settings import settings

MAIN_CONFIG_FILE = "traefik.yml"
MIDDLEWARES = "middlewares"
REDIRECT_TO_HTTPS = "redirect-to-https"


def router_name(app_name: str, secure: bool = False) -> str:
    return f"{app_name}-router-app" + ("-secure" if secure else "")


def service_name(app_name: str) -> str:
    return f"{app_name}-service-app"


def default_server_config(app_name: str, app_port: int) -> dict[str, Any]:
    """Single router on ``web`` pointing at the managed application."""
    return {
        "http": {
            "routers": {
                router_name(app_name): {
                    "rule": f"Host(`{app_name}.docker.localhost`) && PathPrefix(`/`)",
                    "service": service_name(app_name),
                    "entryPoints": ["web"],
                },
            },
            "services": {
                service_name(app_name): {
                    "loadBalancer": {
                        "servers": [{"url": f"http://{app_name}:{app_port}"}],
                        "passHostHeader": True,
                    },
                },
            },
        },
    }


def default_middlewares() -> dict[str, Any]:
    return {
        "http": {
            "middlewares": {
                REDIRECT_TO_HTTPS: {
                    "redirectScheme": {"scheme": "https", "permanent": True},
                },
            },
        },
    }


def dump_yaml(document: dict[str, Any]) -> str:
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


def parse_yaml(text: str, source: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CorruptConfig(f"{source} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise CorruptConfig(f"{source} must contain a mapping at the top level.")
    return data


def write_text_atomic(path: Path, text: str) -> None:
    """Replace ``path`` in one rename so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if path.exists():
            os.chmod(tmp, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


class ConfigStore:
    """YAML documents under the dynamic directory plus the main ``traefik.yml``.

    Every read goes to disk; nothing is cached between calls.
    """

    def __init__(
        self,
        dynamic_path: str | None = None,
        main_path: str | None = None,
        app_name: str | None = None,
        app_port: int | None = None,
    ):
        self.dynamic_path = Path(dynamic_path or settings.dynamic_traefik_path)
        self.main_path = Path(main_path or settings.main_traefik_path)
        self.app_name = app_name or settings.app_name
        self.app_port = app_port or settings.app_port

    # -- dynamic documents -------------------------------------------------

    def path_for(self, name: str) -> Path:
        if not name or "/" in name or name.startswith("."):
            raise ValueError(f"Invalid configuration name: {name!r}")
        return self.dynamic_path / f"{name}.yml"

    def default_for(self, name: str) -> dict[str, Any]:
        if name == self.app_name:
            return default_server_config(self.app_name, self.app_port)
        if name == MIDDLEWARES:
            return default_middlewares()
        return {"http": {"routers": {}, "services": {}}}

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def load(self, name: str) -> dict[str, Any] | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        return parse_yaml(path.read_text(encoding="utf-8"), str(path))

    def load_or_create(self, name: str) -> dict[str, Any]:
        doc = self.load(name)
        if doc is not None:
            return doc
        doc = self.default_for(name)
        self.write(name, doc)
        log_event("INFO", f"Created default traefik config '{name}'.", service_name=name)
        return doc

    def write(self, name: str, document: dict[str, Any]) -> None:
        write_text_atomic(self.path_for(name), dump_yaml(document))

    def read_raw(self, name: str) -> str | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write_raw(self, name: str, text: str) -> None:
        _validate_text(text)
        write_text_atomic(self.path_for(name), text)
        log_event("INFO", f"Traefik config '{name}' replaced by administrator.", service_name=name)

    def _create_once(self, name: str) -> bool:
        if self.exists(name):
            log_event("INFO", f"Default traefik config '{name}' already exists; left untouched.", service_name=name)
            return False
        self.load_or_create(name)
        return True

    def create_default_server_config(self) -> bool:
        return self._create_once(self.app_name)

    def create_default_middlewares(self) -> bool:
        return self._create_once(MIDDLEWARES)

    # -- main config -------------------------------------------------------

    @property
    def main_config_path(self) -> Path:
        return self.main_path / MAIN_CONFIG_FILE

    def main_exists(self) -> bool:
        return self.main_config_path.exists()

    def load_main(self) -> dict[str, Any]:
        path = self.main_config_path
        if not path.exists():
            raise PreconditionViolation(f"{path} does not exist yet; bootstrap the main config first.")
        return parse_yaml(path.read_text(encoding="utf-8"), str(path))

    def write_main(self, document: dict[str, Any]) -> None:
        write_text_atomic(self.main_config_path, dump_yaml(document))

    def read_main_raw(self) -> str | None:
        path = self.main_config_path
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write_main_raw(self, text: str) -> None:
        _validate_text(text)
        write_text_atomic(self.main_config_path, text)
        log_event("INFO", "Main traefik config replaced by administrator.")

    # -- files under the main directory --------------------------------------

    def _confine(self, path: str) -> Path:
        root = self.main_path.resolve()
        target = (root / path).resolve()  # absolute paths replace root here
        if target != root and root not in target.parents:
            raise ValueError(f"Path {path!r} is outside {root}.")
        return target

    def list_files(self) -> list[dict[str, Any]]:
        """Tree of the main directory: ``[{name, path, type, children?}]``."""
        if not self.main_path.exists():
            return []
        return _walk(self.main_path)

    def read_in_path(self, path: str) -> str | None:
        target = self._confine(path)
        if not target.is_file():
            return None
        return target.read_text(encoding="utf-8")

    def write_in_path(self, path: str, text: str) -> None:
        target = self._confine(path)
        if target.suffix in {".yml", ".yaml"}:
            _validate_text(text)
        write_text_atomic(target, text)
        log_event("INFO", f"Traefik file {target} replaced by administrator.")


def _validate_text(text: str) -> None:
    try:
        parse_yaml(text, "configuration")
    except CorruptConfig as exc:
        raise ValueError(exc.detail) from exc


def _walk(directory: Path) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for child in sorted(directory.iterdir(), key=lambda p: (p.is_file(), p.name)):
        if child.is_dir():
            out.append({"name": child.name, "path": str(child), "type": "directory", "children": _walk(child)})
        else:
            out.append({"name": child.name, "path": str(child), "type": "file"})
    return out
