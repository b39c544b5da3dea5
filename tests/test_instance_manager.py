import json
from unittest import mock

import pytest

from clawspawn import context, ports, registry
from clawspawn.errors import EngineUnavailable, InstanceAlreadyExists, InstanceNotFound, OperationFailed
from clawspawn.tools import browser, instance_manager


def _write_config(name, cfg):
    path = context.config_path(name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(cfg))
    return path


def test_create_instance(fake_engine, free_ports):
    mounts = [{"host": "/data", "container": "/data", "mode": "ro"}]
    inst = instance_manager.create_instance("alpha", mounts)
    assert inst["basePort"] == 18789
    assert inst["status"] == "running"
    assert inst["mounts"] == mounts
    assert fake_engine.calls == [("create", "alpha", 18789, mounts)]
    assert fake_engine.networks


def test_create_duplicate_does_not_probe(fake_engine, monkeypatch, free_ports):
    instance_manager.create_instance("alpha")
    allocate = mock.Mock()
    monkeypatch.setattr(ports, "allocate", allocate)
    with pytest.raises(InstanceAlreadyExists):
        instance_manager.create_instance("alpha")
    allocate.assert_not_called()


def test_create_rolls_back_on_engine_failure(fake_engine, monkeypatch, free_ports):
    def refuse(*a, **kw):
        raise OperationFailed("docker run failed")

    monkeypatch.setattr(instance_manager.engine, "create", refuse)
    with pytest.raises(OperationFailed):
        instance_manager.create_instance("alpha")
    assert "alpha" not in registry.list_instances()


def test_second_instance_block_disjoint(fake_engine, free_ports):
    a = instance_manager.create_instance("alpha")["basePort"]
    b = instance_manager.create_instance("beta")["basePort"]
    assert not set(ports.block_ports(a)) & set(ports.block_ports(b))


def test_ensure_running_starts_stopped(fake_engine):
    registry.create_instance("alpha", 18789)
    fake_engine.containers["openclaw-alpha"] = "stopped"
    inst = instance_manager.ensure_running("alpha")
    assert fake_engine.calls == [("start", "openclaw-alpha")]
    assert inst["status"] == "running"


def test_ensure_running_noop_when_running(fake_engine):
    registry.create_instance("alpha", 18789)
    fake_engine.containers["openclaw-alpha"] = "running"
    instance_manager.ensure_running("alpha")
    assert fake_engine.calls == []


def test_reconcile_recreates_twice_after_external_removal(fake_engine):
    mounts = [{"host": "/d", "container": "/d", "mode": "rw"}]
    registry.create_instance("alpha", 18789, mounts)

    instance_manager.dispatch("alpha", "status")
    assert fake_engine.status("openclaw-alpha") == "running"

    fake_engine.containers.clear()   # someone ran `docker rm -f`
    instance_manager.dispatch("alpha", "status")
    assert fake_engine.status("openclaw-alpha") == "running"

    creates = [c for c in fake_engine.calls if c[0] == "create"]
    assert creates == [("create", "alpha", 18789, mounts)] * 2
    execs = [c for c in fake_engine.calls if c[0] == "exec_attached"]
    assert len(execs) == 2


def test_dispatch_unknown_instance(fake_engine):
    with pytest.raises(InstanceNotFound):
        instance_manager.dispatch("ghost", "tui")


def test_dispatch_gateway_adds_bind_and_syncs_port(fake_engine):
    registry.create_instance("alpha", 18789)
    fake_engine.containers["openclaw-alpha"] = "running"
    path = _write_config("alpha", {"gateway": {"port": 1}})

    instance_manager.dispatch("alpha", "gateway")
    assert fake_engine.calls[-1] == ("exec_attached", "openclaw-alpha", "openclaw gateway --bind lan")
    assert json.loads(path.read_text())["gateway"]["port"] == 18789


def test_dispatch_gateway_keeps_explicit_bind(fake_engine):
    registry.create_instance("alpha", 18789)
    instance_manager.dispatch("alpha", "gateway --bind loopback")
    assert fake_engine.calls[-1][2] == "openclaw gateway --bind loopback"


@mock.patch.object(browser.time, "sleep")
def test_detached_gateway_bootstraps_browser(sleep, fake_engine):
    registry.create_instance("alpha", 18789)
    fake_engine.containers["openclaw-alpha"] = "running"
    path = _write_config("alpha", {"browser": {"enabled": True}})

    instance_manager.dispatch("alpha", "gateway", detach=True)

    kinds = [c[0] for c in fake_engine.calls]
    # kill old browser, launch new one, then the gateway
    assert kinds == ["exec_quiet", "exec_detached", "exec_detached"]
    assert "openclaw-chromium" in fake_engine.calls[1][2]
    assert fake_engine.calls[2][2] == "openclaw gateway --bind lan"
    assert json.loads(path.read_text())["browser"]["attachOnly"] is True


def test_onboard_aligns_config(fake_engine):
    registry.create_instance("alpha", 18789)
    fake_engine.containers["openclaw-alpha"] = "running"
    path = _write_config("alpha", {"gateway": {"port": 3000}})

    instance_manager.dispatch("alpha", "onboard")
    cfg = json.loads(path.read_text())
    assert cfg["gateway"]["port"] == 18789
    assert cfg["browser"]["enabled"] is True


def test_stop_and_remove(fake_engine):
    registry.create_instance("alpha", 18789)
    fake_engine.containers["openclaw-alpha"] = "running"
    instance_manager.stop_instance("alpha")
    assert registry.get_instance("alpha")["status"] == "stopped"

    instance_manager.remove_instance("alpha")
    assert "alpha" not in registry.list_instances()
    assert fake_engine.status("openclaw-alpha") == "not-found"


def test_cleanup(fake_engine):
    registry.create_instance("up", 18789)
    registry.create_instance("down", 19009)
    registry.create_instance("gone", 19229)
    fake_engine.containers.update({"openclaw-up": "running", "openclaw-down": "stopped"})
    (context.workspace_dir("up") / "notes.txt").write_text("hi")

    removed = instance_manager.cleanup()

    assert sorted(removed) == ["down", "gone", "up"]
    assert ("remove", "openclaw-up") in fake_engine.calls
    assert not [c for c in fake_engine.calls if c[0] == "stop"]
    assert ("remove", "openclaw-down") in fake_engine.calls
    assert ("remove", "openclaw-gone") not in fake_engine.calls
    assert registry.list_instances() == {}
    assert registry.next_port_hint() == 18789
    assert context.instance_dir("up").is_dir()
    assert list(context.instance_dir("up").iterdir()) == []


def test_check_registry_reports_overlap():
    registry.create_instance("a", 18789)
    registry.create_instance("b", 18798)   # b+2 == a+11, b+11 == a+20
    registry.create_instance("c", 30000)
    assert instance_manager.check_registry() == [("a", "b", [18800, 18809])]


def _docker_rm_fails(ctr):
    raise OperationFailed(f"Error: No such container: {ctr}", cmd=["docker", "rm", "-f", ctr], returncode=1)


def test_remove_when_container_already_gone(fake_engine, monkeypatch):
    registry.create_instance("alpha", 18789)
    monkeypatch.setattr(instance_manager.engine, "remove", _docker_rm_fails)

    instance_manager.remove_instance("alpha")
    assert "alpha" not in registry.list_instances()


def test_create_removes_half_made_container(fake_engine, monkeypatch, free_ports):
    def create_then_fail(name, base_port, mounts=()):
        fake_engine.containers[f"openclaw-{name}"] = "stopped"
        raise OperationFailed("port is already allocated")

    monkeypatch.setattr(instance_manager.engine, "create", create_then_fail)
    with pytest.raises(OperationFailed):
        instance_manager.create_instance("alpha")

    assert registry.list_instances() == {}
    assert fake_engine.containers == {}
    assert ("remove", "openclaw-alpha") in fake_engine.calls


def test_create_rolls_back_when_docker_vanishes(fake_engine, monkeypatch, free_ports):
    def vanish(*a, **kw):
        raise EngineUnavailable("docker not found")

    monkeypatch.setattr(instance_manager.engine, "create", vanish)
    with pytest.raises(EngineUnavailable):
        instance_manager.create_instance("alpha")
    assert "alpha" not in registry.list_instances()
    assert ("remove", "openclaw-alpha") not in fake_engine.calls


def test_cleanup_survives_a_stuck_container(fake_engine, monkeypatch):
    registry.create_instance("stuck", 18789)
    registry.create_instance("fine", 19009)
    fake_engine.containers.update({"openclaw-stuck": "running", "openclaw-fine": "running"})
    real_remove = fake_engine.remove

    def remove(ctr):
        if ctr == "openclaw-stuck":
            raise OperationFailed("device or resource busy")
        real_remove(ctr)

    monkeypatch.setattr(instance_manager.engine, "remove", remove)
    removed = instance_manager.cleanup()

    assert sorted(removed) == ["fine", "stuck"]
    assert "openclaw-fine" not in fake_engine.containers
    assert registry.list_instances() == {}
