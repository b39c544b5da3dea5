"""
clawspawn/tools/instance_config.py  •  partial edits of an instance's openclaw.json

The file belongs to the agent and is written by its onboarding step.  Each
patch here owns a handful of fields, rewrites nothing else, and never creates
the file.  A missing or unreadable file makes the patch a no-op that returns
False (and logs why); an applied patch returns True.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from .. import context
from ..protocol import BROWSER_BIN, BROWSER_PROFILE, BROWSER_PROFILE_COLOR, CDP_PORT

Config = Dict[str, Any]


def _read(name: str) -> Optional[Config]:
    path = context.config_path(name)
    if not path.exists():
        logging.info("⏭️  %s has no config yet (%s); skipping", name, path)
        return None
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logging.warning("⚠️  Could not read config for %s: %s", name, exc)
        return None
    if not isinstance(data, dict):
        logging.warning("⚠️  Config for %s is not a JSON object; skipping", name)
        return None
    return data


def _patch(name: str, apply: Callable[[Config], None]) -> bool:
    config = _read(name)
    if config is None:
        return False
    apply(config)
    with open(context.config_path(name), "w") as f:
        json.dump(config, f, indent=2)
    logging.debug("patched %s config via %s", name, apply.__name__)
    return True


# ─────────────────────────── patches ────────────────────────────────


def set_gateway_port(name: str, port: int) -> bool:
    # bind address stays a CLI flag: host and container want different values
    def gateway_port(cfg: Config) -> None:
        cfg.setdefault("gateway", {})["port"] = port

    return _patch(name, gateway_port)


def enable_browser_tool(name: str) -> bool:
    def browser_tool(cfg: Config) -> None:
        browser = cfg.setdefault("browser", {})
        browser["enabled"] = True
        browser["defaultProfile"] = BROWSER_PROFILE
        browser["headless"] = True
        browser["noSandbox"] = True  # no kernel features for the chrome sandbox
        browser["executablePath"] = BROWSER_BIN
        browser.setdefault("profiles", {})[BROWSER_PROFILE] = {
            "cdpPort": CDP_PORT,
            "color": BROWSER_PROFILE_COLOR,
        }

    return _patch(name, browser_tool)


def enable_browser_takeover(name: str) -> bool:
    """Make the agent attach to our visible browser over CDP instead of launching one."""

    def takeover_on(cfg: Config) -> None:
        cfg.setdefault("browser", {})["attachOnly"] = True

    return _patch(name, takeover_on)


def disable_browser_takeover(name: str) -> bool:
    def takeover_off(cfg: Config) -> None:
        browser = cfg.setdefault("browser", {})
        browser["attachOnly"] = False
        browser["headless"] = True

    return _patch(name, takeover_off)


def gateway_token(name: str) -> Optional[str]:
    config = _read(name)
    if config is None:
        return None
    auth = (config.get("gateway") or {}).get("auth") or {}
    return auth.get("token") or None
