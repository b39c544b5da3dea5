"""
clawspawn/tools/browser.py  •  browser takeover and the VNC view

Takeover runs in four steps:

1. kill any visible browser we launched earlier (fine if none is running)
2. launch a fresh visible browser on the virtual display, CDP on 18800
3. set `browser.attachOnly` so the agent attaches instead of launching its own
4. bring up x11vnc + websockify so the operator sees the same session

The operator and the agent share that one browser process.
Closing the view only undoes step 4.
"""

from __future__ import annotations

import logging
import time

from .. import registry
from ..errors import OperationFailed
from ..protocol import (
    BROWSER_BIN,
    BROWSER_PROCESS,
    BROWSER_SETTLE,
    CDP_PORT,
    DISPLAY,
    NOVNC_WEB_ROOT,
    RELAY_SETTLE,
    RELAY_STOP_SETTLE,
    VISIBLE_BROWSER_PROFILE_DIR,
    VNC_RELAY_PORT,
    VNC_SERVER_PORT,
    VNC_SERVER_SETTLE,
    vnc_url,
)
from . import container_engine as engine
from . import health, instance_config

BROWSER_FLAGS = [
    "--no-sandbox",
    "--disable-gpu",
    "--disable-dev-shm-usage",
    f"--user-data-dir={VISIBLE_BROWSER_PROFILE_DIR}",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-background-networking",
    "--disable-extensions",
    "--metrics-recording-only",
    "--safebrowsing-disable-auto-update",
]


# ───────────────────────── container steps ──────────────────────────


def stop_visible_browser(container: str) -> None:
    engine.exec_quiet(container, ["pkill", "-f", BROWSER_PROCESS])


def visible_browser_running(container: str) -> bool:
    # bracket the first letter so pgrep doesn't match this sh -c line
    pattern = f"[{BROWSER_PROCESS[0]}]{BROWSER_PROCESS[1:]}"
    return engine.exec_check(container, f"pgrep -f '{pattern}' > /dev/null")


def launch_visible_browser(container: str, cdp_port: int = CDP_PORT) -> None:
    flags = " ".join(BROWSER_FLAGS + [f"--remote-debugging-port={cdp_port}"])
    engine.exec_detached(container, f"DISPLAY={DISPLAY} {BROWSER_BIN} {flags} 2>/dev/null")
    time.sleep(BROWSER_SETTLE)


def start_vnc(container: str) -> None:
    engine.exec_detached(
        container,
        f"pgrep -x x11vnc > /dev/null || "
        f"x11vnc -display {DISPLAY} -forever -nopw -rfbport {VNC_SERVER_PORT} -quiet",
    )
    time.sleep(VNC_SERVER_SETTLE)
    # only one relay per container can own the port
    engine.exec_quiet(container, ["pkill", "-f", "websockify"])
    time.sleep(RELAY_STOP_SETTLE)
    engine.exec_detached(
        container,
        f"websockify --web {NOVNC_WEB_ROOT} {VNC_RELAY_PORT} localhost:{VNC_SERVER_PORT}",
    )
    time.sleep(RELAY_SETTLE)


def stop_vnc(container: str) -> None:
    engine.exec_quiet(container, ["pkill", "-f", "websockify"])
    engine.exec_quiet(container, ["pkill", "-x", "x11vnc"])


# ───────────────────────── instance workflows ───────────────────────


def bootstrap_browser(name: str) -> None:
    """Steps 1-3: fresh visible browser and agent set to attach to it."""
    inst = registry.get_instance(name)
    stop_visible_browser(inst["container"])
    launch_visible_browser(inst["container"])
    instance_config.enable_browser_takeover(name)


def open_view(name: str) -> str:
    """Full takeover plus VNC relay; returns the noVNC URL for the operator."""
    # instance_manager imports this module
    from .instance_manager import ensure_running

    inst = ensure_running(name)
    ctr = inst["container"]

    if not engine.exec_check(ctr, "command -v Xvfb > /dev/null 2>&1"):
        raise OperationFailed(
            "This container was built without VNC support. "
            "Rebuild the image (openclaw-spawn build) and recreate the instance."
        )

    if visible_browser_running(ctr):
        logging.info("🖥  Visible browser already up in %s, reusing it", ctr)
        instance_config.enable_browser_takeover(name)
    else:
        bootstrap_browser(name)

    logging.info("📺 Starting VNC services in %s", ctr)
    start_vnc(ctr)

    if not health.cdp_reachable(inst["basePort"]):
        logging.warning("⚠️  CDP endpoint for %s is not answering yet", name)
    return vnc_url(inst["basePort"])


def close_view(name: str) -> None:
    """Tear down the VNC relay; browser and attach mode keep running for the agent."""
    inst = registry.get_instance(name)
    stop_vnc(inst["container"])
