"""
clawspawn/protocol.py  •  fixed contract between the orchestrator and a sandbox

Everything here is baked into the base image or into the agent's expectations.
Changing a value is a compatibility break for existing instances.
"""

from __future__ import annotations

# ───────────────────────── host port block ──────────────────────────
# One basePort reserves four host ports at fixed offsets.
GATEWAY_OFFSET = 0
BROWSER_CONTROL_OFFSET = 2
CDP_OFFSET = 11
VNC_OFFSET = 20

PORT_OFFSETS = {
    "gateway": GATEWAY_OFFSET,
    "browser_control": BROWSER_CONTROL_OFFSET,
    "cdp": CDP_OFFSET,
    "vnc": VNC_OFFSET,
}

DEFAULT_BASE_PORT = 18789
# nextPortHint jumps this far past a freshly issued basePort
PORT_HINT_STRIDE = 220

# ───────────────────────── inside the container ─────────────────────
CONTAINER_PREFIX = "openclaw-"
CONTAINER_HOME = "/home/node"
CONTAINER_STATE_DIR = f"{CONTAINER_HOME}/.openclaw"
CONTAINER_WORKSPACE = "/workspace"
SHARED_MOUNT_ROOT = f"{CONTAINER_STATE_DIR}/workspace/user_shared"
DOCKER_SOCKET = "/var/run/docker.sock"
SHM_SIZE = "1g"

AGENT_BIN = "openclaw"
AGENT_STATE_DIRNAME = ".openclaw"
AGENT_CONFIG_FILENAME = "openclaw.json"

CDP_PORT = 18800
VNC_SERVER_PORT = 5900
VNC_RELAY_PORT = 6080
DISPLAY = ":99"
NOVNC_WEB_ROOT = "/usr/share/novnc"

BROWSER_PROCESS = "openclaw-chromium"
BROWSER_BIN = f"{CONTAINER_HOME}/{BROWSER_PROCESS}"
BROWSER_PROFILE = "openclaw"
BROWSER_PROFILE_COLOR = "#FF4500"
# throwaway profile; a reused one restores old tabs and hangs CDP attach
VISIBLE_BROWSER_PROFILE_DIR = "/tmp/openclaw-vnc-profile"

# settle delays (seconds)
BROWSER_SETTLE = 3.0
VNC_SERVER_SETTLE = 1.0
RELAY_STOP_SETTLE = 0.5
RELAY_SETTLE = 1.0


def container_name(name: str) -> str:
    return f"{CONTAINER_PREFIX}{name}"


def port_block(base_port: int) -> dict:
    """Map each role in the block to its host port."""
    return {role: base_port + off for role, off in PORT_OFFSETS.items()}


def vnc_url(base_port: int) -> str:
    port = base_port + VNC_OFFSET
    return f"http://localhost:{port}/vnc.html?autoconnect=true&reconnect=true"


def dashboard_url(base_port: int, token: str | None = None) -> str:
    if token:
        return f"http://localhost:{base_port}/#token={token}"
    return f"http://localhost:{base_port}/"
