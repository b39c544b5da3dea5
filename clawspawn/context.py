"""
Central place to resolve on-disk locations and environment settings.

Values are read from the environment at call time (the CLI loads `.env`
through python-dotenv first), so tests can monkeypatch HOME or the
OPENCLAW_SPAWN_* variables without reloading modules.
"""
from __future__ import annotations

import os
import pathlib

from .protocol import AGENT_CONFIG_FILENAME, AGENT_STATE_DIRNAME

DEFAULT_IMAGE = "openclaw-spawn-base:latest"
DEFAULT_NETWORK = "openclaw-network"


def spawn_dir() -> pathlib.Path:
    override = os.environ.get("OPENCLAW_SPAWN_HOME")
    if override:
        return pathlib.Path(override).expanduser()
    return pathlib.Path.home() / ".openclaw-spawn"


def registry_path() -> pathlib.Path:
    return spawn_dir() / "instances.json"


def instances_dir() -> pathlib.Path:
    return spawn_dir() / "instances"


def instance_dir(name: str) -> pathlib.Path:
    return instances_dir() / name


def state_dir(name: str) -> pathlib.Path:
    """Host side of the agent's state directory (bind-mounted into the container)."""
    return instance_dir(name) / AGENT_STATE_DIRNAME


def workspace_dir(name: str) -> pathlib.Path:
    return instance_dir(name) / "workspace"


def config_path(name: str) -> pathlib.Path:
    return state_dir(name) / AGENT_CONFIG_FILENAME


def image() -> str:
    return os.environ.get("OPENCLAW_SPAWN_IMAGE", DEFAULT_IMAGE)


def network() -> str:
    return os.environ.get("OPENCLAW_SPAWN_NETWORK", DEFAULT_NETWORK)


def docker_bin() -> str:
    return os.environ.get("OPENCLAW_SPAWN_DOCKER", "docker")
