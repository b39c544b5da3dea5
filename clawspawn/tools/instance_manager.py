import logging
import shutil
from typing import Iterable, List, Tuple

from .. import context, ports, registry
from ..errors import InstanceAlreadyExists, SpawnError
from ..protocol import AGENT_BIN
from . import browser, instance_config
from . import container_engine as engine

# ─────────────────────────── public API ────────────────────────────


def create_instance(name: str, mounts: Iterable[dict] = ()) -> dict:
    """
    Allocate a port block, register *name* and materialize its container.
    When docker refuses the container, any half-made container and the
    registry entry are both rolled back.
    """
    registry.validate_name(name)
    if name in registry.list_instances():
        raise InstanceAlreadyExists(name)

    engine.ensure_network()
    base_port = ports.allocate()
    mounts = list(mounts)
    ctr = registry.create_instance(name, base_port, mounts)["container"]

    logging.info("📦 Creating instance %s on port %s", name, base_port)
    try:
        engine.create(name, base_port, mounts)
    except SpawnError:
        logging.error("❌ Container create failed for %s – rolling back", name)
        _rollback(name, ctr)
        raise
    registry.update_status(name, engine.RUNNING)
    return registry.get_instance(name)


def _rollback(name: str, ctr: str) -> None:
    # docker run can leave a created-but-unstarted container behind
    try:
        if engine.status(ctr) != engine.NOT_FOUND:
            engine.remove(ctr)
    finally:
        registry.remove_instance(name)


def ensure_running(name: str) -> dict:
    """
    Bring the container for *name* to running, whatever docker says it is now.

    stopped   -> start
    not-found -> recreate from the persisted basePort and mounts
    Idempotent for a running container.
    """
    inst = registry.get_instance(name)
    ctr = inst["container"]
    state = engine.status(ctr)

    if state == engine.STOPPED:
        logging.info("⚠️  Instance %s is stopped. Starting...", name)
        engine.start(ctr)
        registry.update_status(name, engine.RUNNING)
    elif state == engine.NOT_FOUND:
        logging.info("⚠️  Container %s not found. Recreating...", ctr)
        engine.ensure_network()
        engine.create(name, inst["basePort"], inst.get("mounts", []))
        registry.update_status(name, engine.RUNNING)
    elif state == engine.UNKNOWN:
        logging.warning("Container %s is in an unexpected state; continuing", ctr)
    return registry.get_instance(name)


def start_instance(name: str) -> dict:
    return ensure_running(name)


def stop_instance(name: str) -> None:
    inst = registry.get_instance(name)
    engine.stop(inst["container"])
    registry.update_status(name, engine.STOPPED)


def remove_instance(name: str) -> None:
    inst = registry.get_instance(name)
    if engine.status(inst["container"]) != engine.NOT_FOUND:
        engine.remove(inst["container"])
    else:
        logging.info("⏭️  Container %s already gone", inst["container"])
    registry.remove_instance(name)


def _prepare_command(name: str, inst: dict, command: str, detach: bool) -> str:
    if not command.startswith("gateway"):
        return command

    instance_config.set_gateway_port(name, inst["basePort"])
    # the gateway has to listen on 0.0.0.0 inside the container
    if "--bind" not in command:
        command = command.replace("gateway", "gateway --bind lan", 1)

    if detach:
        # browser must be up before the gateway looks for it
        browser.bootstrap_browser(name)
    return command


def dispatch(name: str, command: str = "onboard", detach: bool = False) -> None:
    """
    Reconcile *name*, then run `openclaw <command>` inside its container.

    Attached runs block and raise OperationFailed on a non-zero exit.  Detached
    runs only confirm the launch; anything after that shows up in `logs`.
    """
    inst = ensure_running(name)
    command = _prepare_command(name, inst, command.strip() or "onboard", detach)
    full = f"{AGENT_BIN} {command}"

    if detach:
        logging.info("🦞 Starting in background: %s", full)
        engine.exec_detached(inst["container"], full)
        return

    logging.info("🦞 Running: %s", full)
    engine.exec_attached(inst["container"], full)
    if command == "onboard":
        instance_config.set_gateway_port(name, inst["basePort"])
        instance_config.enable_browser_tool(name)


def cleanup() -> List[str]:
    """Remove every container, empty every instance dir, reset the registry."""
    removed = []
    for name, inst in registry.list_instances().items():
        ctr = inst["container"]
        # rm -f stops a running container too
        if engine.status(ctr) != engine.NOT_FOUND:
            try:
                engine.remove(ctr)
            except SpawnError as exc:
                logging.warning("⚠️  Could not remove %s: %s", ctr, exc)
        removed.append(name)

    root = context.instances_dir()
    if root.is_dir():
        for child in root.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
                child.mkdir()

    registry.remove_instance(registry.ALL)
    logging.info("🧹 Cleaned up %d instance(s)", len(removed))
    return removed


def check_registry() -> List[Tuple[str, str, List[int]]]:
    """Report every pair of instances whose port blocks share a host port."""
    blocks = {
        name: set(ports.block_ports(inst["basePort"]))
        for name, inst in registry.list_instances().items()
    }
    names = sorted(blocks)
    clashes = []
    for i, a in enumerate(names):
        for b in names[i + 1:]:
            shared = blocks[a] & blocks[b]
            if shared:
                clashes.append((a, b, sorted(shared)))
    return clashes
