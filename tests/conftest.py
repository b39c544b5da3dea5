import pathlib
import pytest

from clawspawn.tools import container_engine


# Create an isolated HOME so registry writes don't pollute real machine
@pytest.fixture(autouse=True)
def _isolate_home(monkeypatch, tmp_path):
    monkeypatch.setattr(pathlib.Path, "home", lambda: tmp_path)
    for var in ("OPENCLAW_SPAWN_HOME", "OPENCLAW_SPAWN_IMAGE",
                "OPENCLAW_SPAWN_NETWORK", "OPENCLAW_SPAWN_DOCKER"):
        monkeypatch.delenv(var, raising=False)
    yield


class FakeEngine:
    """In-memory stand-in for the docker wrappers; records every call."""

    def __init__(self):
        self.containers = {}   # name -> "running" | "stopped"
        self.calls = []
        self.networks = set()

    def status(self, ctr):
        return self.containers.get(ctr, container_engine.NOT_FOUND)

    def create(self, name, base_port, mounts=()):
        ctr = f"openclaw-{name}"
        assert ctr not in self.containers, "container created twice"
        self.calls.append(("create", name, base_port, list(mounts)))
        self.containers[ctr] = container_engine.RUNNING
        return ctr

    def start(self, ctr):
        self.calls.append(("start", ctr))
        self.containers[ctr] = container_engine.RUNNING

    def stop(self, ctr):
        self.calls.append(("stop", ctr))
        self.containers[ctr] = container_engine.STOPPED

    def remove(self, ctr):
        self.calls.append(("remove", ctr))
        self.containers.pop(ctr, None)

    def ensure_network(self):
        self.networks.add("openclaw-network")

    def exec_attached(self, ctr, command):
        self.calls.append(("exec_attached", ctr, command))
        return 0

    def exec_detached(self, ctr, command):
        self.calls.append(("exec_detached", ctr, command))

    def exec_quiet(self, ctr, argv):
        self.calls.append(("exec_quiet", ctr, list(argv)))
        return 0

    def exec_check(self, ctr, shell_cmd):
        self.calls.append(("exec_check", ctr, shell_cmd))
        return True


@pytest.fixture
def fake_engine(monkeypatch):
    fake = FakeEngine()
    for attr in ("status", "create", "start", "stop", "remove", "ensure_network",
                 "exec_attached", "exec_detached", "exec_quiet", "exec_check"):
        monkeypatch.setattr(container_engine, attr, getattr(fake, attr))
    return fake


@pytest.fixture
def free_ports(monkeypatch):
    """Every loopback port looks bindable."""
    from clawspawn import ports
    monkeypatch.setattr(ports, "is_port_free", lambda port, host=ports.LOOPBACK: True)
