import datetime, json, logging, os, re, tempfile

from . import context
from .errors import InstanceAlreadyExists, InstanceNotFound, InvalidInstanceName
from .protocol import DEFAULT_BASE_PORT, PORT_HINT_STRIDE, container_name

ALL = "__all__"
NAME_RE = re.compile(r"^[a-z0-9-]+$")


def _default():
    return {"instances": {}, "nextPortHint": DEFAULT_BASE_PORT}


def _load():
    path = context.registry_path()
    if path.exists():
        with open(path) as f:
            data = json.load(f)
        data.setdefault("instances", {})
        data.setdefault("nextPortHint", DEFAULT_BASE_PORT)
        return data
    return _default()


def _save(data):
    path = context.registry_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    # write beside the target, then rename over it
    fd, tmp = tempfile.mkstemp(prefix=".instances-", suffix=".json", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def validate_name(name):
    if not name or not NAME_RE.match(name):
        raise InvalidInstanceName(name)


def list_instances():
    return _load()["instances"]


def get_instance(name):
    inst = list_instances().get(name)
    if inst is None:
        raise InstanceNotFound(name)
    return inst


def next_port_hint():
    """Registry-only suggestion for the next basePort (no live probing)."""
    return _load()["nextPortHint"]


def _provision_dirs(name, with_shared):
    # Created here rather than by docker: the daemon makes missing bind-mount
    # parents owned by root and the in-container user can't write to them.
    state = context.state_dir(name)
    (state / "workspace").mkdir(parents=True, exist_ok=True)
    context.workspace_dir(name).mkdir(parents=True, exist_ok=True)
    if with_shared:
        (state / "workspace" / "user_shared").mkdir(parents=True, exist_ok=True)


def create_instance(name, base_port, mounts=()):
    validate_name(name)
    data = _load()
    if name in data["instances"]:
        raise InstanceAlreadyExists(name)

    mounts = [dict(m) for m in mounts]
    data["instances"][name] = {
        "container": container_name(name),
        "basePort": base_port,
        "created": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "status": "created",
        "mounts": mounts,
    }
    data["nextPortHint"] = base_port + PORT_HINT_STRIDE
    _save(data)

    _provision_dirs(name, bool(mounts))
    logging.info("📒 Registered %s on base port %s", name, base_port)
    return data["instances"][name]


def update_status(name, status):
    data = _load()
    inst = data["instances"].get(name)
    if inst is None:
        raise InstanceNotFound(name)
    inst["status"] = status
    _save(data)


def remove_instance(name):
    data = _load()
    if name == ALL:
        data["instances"] = {}
        data["nextPortHint"] = DEFAULT_BASE_PORT
    else:
        data["instances"].pop(name, None)
    _save(data)
