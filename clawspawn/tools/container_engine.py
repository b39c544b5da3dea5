"""
clawspawn/tools/container_engine.py  •  thin wrappers around the docker CLI

Every call shells out to `docker` and either returns a plain value or raises
OperationFailed / EngineUnavailable.  Nothing here reads or writes the
registry.
"""

import logging
import shutil
import subprocess
import sys
from typing import Iterable, List, Optional

from .. import context
from ..errors import EngineUnavailable, OperationFailed
from ..protocol import (
    CDP_OFFSET,
    CDP_PORT,
    BROWSER_CONTROL_OFFSET,
    CONTAINER_HOME,
    CONTAINER_STATE_DIR,
    CONTAINER_WORKSPACE,
    DOCKER_SOCKET,
    SHM_SIZE,
    VNC_OFFSET,
    VNC_RELAY_PORT,
    container_name,
)

NOT_FOUND = "not-found"
STOPPED = "stopped"
RUNNING = "running"
UNKNOWN = "unknown"

# ───────────────────────── helper wrappers ──────────────────────────


def _docker(*args) -> List[str]:
    return [context.docker_bin(), *map(str, args)]


def _run(cmd, **kw) -> None:
    """Log and execute a docker command, raising OperationFailed on error."""
    logging.info("🐳 %s", " ".join(map(str, cmd)))
    try:
        subprocess.check_call(cmd, **kw)
    except FileNotFoundError as exc:
        raise EngineUnavailable(f"{cmd[0]} not found on PATH") from exc
    except subprocess.CalledProcessError as exc:
        raise OperationFailed(
            f"`{' '.join(map(str, cmd))}` exited with code {exc.returncode}",
            cmd=cmd,
            returncode=exc.returncode,
        ) from exc


def _capture(cmd) -> str:
    logging.debug("🐳 %s", " ".join(map(str, cmd)))
    try:
        return subprocess.check_output(cmd, text=True, stderr=subprocess.PIPE)
    except FileNotFoundError as exc:
        raise EngineUnavailable(f"{cmd[0]} not found on PATH") from exc
    except subprocess.CalledProcessError as exc:
        raise OperationFailed(
            f"`{' '.join(map(str, cmd))}` failed: {(exc.stderr or '').strip()}",
            cmd=cmd,
            returncode=exc.returncode,
        ) from exc


def _quiet(cmd) -> int:
    """Run without output or raising; return the exit code."""
    logging.debug("🐳 %s", " ".join(map(str, cmd)))
    try:
        return subprocess.run(
            cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
        ).returncode
    except FileNotFoundError:
        return 127


# ───────────────────────── engine checks ────────────────────────────


def is_installed() -> bool:
    return shutil.which(context.docker_bin()) is not None


def is_running() -> bool:
    return _quiet(_docker("ps")) == 0


def image_exists(image: Optional[str] = None) -> bool:
    out = _capture(_docker("images", "-q", image or context.image()))
    return bool(out.strip())


def ensure_network() -> None:
    net = context.network()
    if _quiet(_docker("network", "inspect", net)) == 0:
        return
    _run(_docker("network", "create", net))


def build_image(context_dir: str = ".") -> None:
    _run(_docker("build", "-t", context.image(), "."), cwd=context_dir)


# ───────────────────────── container control ────────────────────────


def status(container: str) -> str:
    """Live state of *container*: running, stopped, not-found or unknown."""
    out = _capture(
        _docker("ps", "-a", "--filter", f"name=^{container}$", "--format", "{{.Status}}")
    ).strip()
    if not out:
        return NOT_FOUND
    line = out.splitlines()[0]
    if line.startswith("Up"):
        return RUNNING
    if line.startswith(("Exited", "Created")):
        return STOPPED
    return UNKNOWN


def _mount_arg(mount) -> str:
    spec = f"{mount['host']}:{mount['container']}"
    if mount.get("mode") == "ro":
        spec += ":ro"
    return spec


def create(name: str, base_port: int, mounts: Iterable[dict] = ()) -> str:
    """
    `docker run -d` the container for instance *name* on its port block.

    The image CMD (virtual display + idle wait) is left alone; the agent is
    only ever reached through `docker exec`.
    """
    ctr = container_name(name)
    control = base_port + BROWSER_CONTROL_OFFSET
    cmd = _docker(
        "run", "-d",
        "--name", ctr,
        "-e", f"HOME={CONTAINER_HOME}",
        "-e", f"PLAYWRIGHT_BROWSERS_PATH={CONTAINER_HOME}/.cache/ms-playwright",
        "-p", f"{base_port}:{base_port}",
        "-p", f"{control}:{control}",
        "-p", f"{base_port + CDP_OFFSET}:{CDP_PORT}",
        "-p", f"{base_port + VNC_OFFSET}:{VNC_RELAY_PORT}",
        "-v", f"{context.state_dir(name)}:{CONTAINER_STATE_DIR}",
        "-v", f"{context.workspace_dir(name)}:{CONTAINER_WORKSPACE}",
        "-v", f"{DOCKER_SOCKET}:{DOCKER_SOCKET}",
    )
    for mount in mounts:
        cmd += ["-v", _mount_arg(mount)]
    cmd += ["--network", context.network(), "--shm-size", SHM_SIZE, context.image()]
    _run(cmd, stdout=subprocess.DEVNULL)
    return ctr


def start(container: str) -> None:
    _run(_docker("start", container), stdout=subprocess.DEVNULL)


def stop(container: str) -> None:
    _run(_docker("stop", container), stdout=subprocess.DEVNULL)


def remove(container: str) -> None:
    _run(_docker("rm", "-f", container), stdout=subprocess.DEVNULL)


def logs(container: str, follow: bool = False) -> None:
    _run(_docker("logs", "-f", container) if follow else _docker("logs", container))


# ───────────────────────── exec ─────────────────────────────────────


def exec_attached(container: str, command: str) -> int:
    """Run *command* through `sh -c` with the caller's terminal attached."""
    flags = "-it" if sys.stdin.isatty() else "-i"
    cmd = _docker("exec", flags, container, "sh", "-c", command)
    logging.info("🐳 %s", " ".join(cmd))
    try:
        rc = subprocess.run(cmd).returncode
    except FileNotFoundError as exc:
        raise EngineUnavailable(f"{cmd[0]} not found on PATH") from exc
    if rc != 0:
        raise OperationFailed(f"Command exited with code {rc}", cmd=cmd, returncode=rc)
    return rc


def exec_detached(container: str, command: str) -> None:
    """Launch *command* in the background; later failures only show in logs."""
    _run(_docker("exec", "-d", container, "sh", "-c", command))


def exec_quiet(container: str, argv: Iterable[str]) -> int:
    """Run argv (no shell) inside the container, ignoring output and failure."""
    argv = list(argv)
    rc = _quiet(_docker("exec", container, *argv))
    if rc != 0:
        logging.debug("exec %s in %s returned %s", argv, container, rc)
    return rc


def exec_check(container: str, shell_cmd: str) -> bool:
    return _quiet(_docker("exec", container, "sh", "-c", shell_cmd)) == 0
