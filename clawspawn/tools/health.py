"""
Cheap HTTP liveness probes against an instance's published host ports.

Only used for reporting (`list`, `browser`); lifecycle decisions always come
from the container engine.
"""
import requests

from ..protocol import CDP_OFFSET

PROBE_TIMEOUT = 2


def _answers(url: str) -> bool:
    try:
        requests.get(url, timeout=PROBE_TIMEOUT)
        return True
    except requests.RequestException:
        return False


def gateway_reachable(base_port: int) -> bool:
    """Any HTTP response from the gateway counts, auth failures included."""
    return _answers(f"http://127.0.0.1:{base_port}/")


def cdp_reachable(base_port: int) -> bool:
    try:
        resp = requests.get(
            f"http://127.0.0.1:{base_port + CDP_OFFSET}/json/version",
            timeout=PROBE_TIMEOUT,
        )
    except requests.RequestException:
        return False
    return resp.ok
