"""
Tests for ServiceManager.
Uses real short-lived processes (true, false, sleep, sh) where exit
behavior matters, and fake process handles where only ordering matters.
"""

from __future__ import annotations

import subprocess

import pytest

from initd.config import RestartPolicy, ServiceConfig, ServiceType
from initd.errors import SpawnError
from initd.service import (
    MAX_RESTART_COUNT,
    ServiceManager,
    ServiceState,
    should_restart,
)


def make(
    name: str,
    exec: str,
    *args: str,
    restart: RestartPolicy = RestartPolicy.NEVER,
    service_type: ServiceType = ServiceType.SIMPLE,
    environment: dict[str, str] | None = None,
) -> ServiceConfig:
    return ServiceConfig(
        name=name,
        exec=exec,
        args=args,
        restart=restart,
        service_type=service_type,
        environment=environment or {},
    )


def wait_exit(manager: ServiceManager, name: str) -> None:
    """Block until the tracked process for ``name`` has exited."""
    manager._running[name].process.wait(timeout=10)


@pytest.fixture
def manager():
    mgr = ServiceManager()
    yield mgr
    mgr.stop_all()


# ----------------------------------------------------------------
# Restart decision table
# ----------------------------------------------------------------


@pytest.mark.parametrize(
    "service_type, policy, success, expected",
    [
        (ServiceType.ONESHOT, RestartPolicy.ALWAYS, True, False),
        (ServiceType.ONESHOT, RestartPolicy.ALWAYS, False, False),
        (ServiceType.ONESHOT, RestartPolicy.ON_FAILURE, False, False),
        (ServiceType.ONESHOT, RestartPolicy.NEVER, False, False),
        (ServiceType.SIMPLE, RestartPolicy.ALWAYS, True, True),
        (ServiceType.SIMPLE, RestartPolicy.ALWAYS, False, True),
        (ServiceType.SIMPLE, RestartPolicy.ON_FAILURE, True, False),
        (ServiceType.SIMPLE, RestartPolicy.ON_FAILURE, False, True),
        (ServiceType.SIMPLE, RestartPolicy.NEVER, True, False),
        (ServiceType.SIMPLE, RestartPolicy.NEVER, False, False),
    ],
)
def test_should_restart_table(service_type, policy, success, expected):
    assert should_restart(policy, service_type, success) is expected


# ----------------------------------------------------------------
# Starting
# ----------------------------------------------------------------


def test_new_manager_is_empty():
    mgr = ServiceManager()

    assert mgr.running_count() == 0
    assert mgr.running_service_names() == []
    assert mgr.state("anything") is ServiceState.STOPPED


def test_start_real_process(manager: ServiceManager):
    manager.start_service(make("sleeper", "sleep", "10"))

    assert manager.running_count() == 1
    assert manager.state("sleeper") is ServiceState.RUNNING
    assert manager.restart_count("sleeper") == 0
    assert manager.running_service_names() == ["sleeper"]
    assert manager.pid("sleeper") in manager.running_pids()


def test_start_nonexistent_binary_raises_spawn_error(manager: ServiceManager):
    with pytest.raises(SpawnError) as exc:
        manager.start_service(make("broken", "/nonexistent/binary/path"))

    assert exc.value.service == "broken"
    assert isinstance(exc.value.cause, OSError)
    assert manager.running_count() == 0
    assert manager.state("broken") is ServiceState.STOPPED


def test_start_non_executable_raises_spawn_error(manager, tmp_path):
    script = tmp_path / "not-executable.sh"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)

    with pytest.raises(SpawnError):
        manager.start_service(make("noexec", str(script)))

    assert manager.state("noexec") is ServiceState.STOPPED


def test_starting_running_service_again_is_noop(manager: ServiceManager):
    cfg = make("sleeper", "sleep", "10")
    manager.start_service(cfg)
    pid = manager.pid("sleeper")

    manager.start_service(cfg)

    assert manager.running_count() == 1
    assert manager.pid("sleeper") == pid


def test_service_environment_is_added_to_inherited(manager, monkeypatch):
    monkeypatch.setenv("INHERITED_VAR", "from-parent")
    cfg = make(
        "envtest",
        "sh",
        "-c",
        'test "$MY_VAR" = hello && test "$INHERITED_VAR" = from-parent',
        service_type=ServiceType.ONESHOT,
        environment={"MY_VAR": "hello"},
    )

    manager.start_service(cfg)
    process = manager._running["envtest"].process
    wait_exit(manager, "envtest")
    manager.reap()

    assert process.returncode == 0
    assert manager.state("envtest") is ServiceState.FINISHED


def test_service_environment_overrides_inherited(manager, monkeypatch):
    monkeypatch.setenv("MY_VAR", "parent")
    cfg = make(
        "override",
        "sh",
        "-c",
        'test "$MY_VAR" = child',
        service_type=ServiceType.ONESHOT,
        environment={"MY_VAR": "child"},
    )

    manager.start_service(cfg)
    process = manager._running["override"].process
    wait_exit(manager, "override")
    manager.reap()

    assert process.returncode == 0


# ----------------------------------------------------------------
# Reaping
# ----------------------------------------------------------------


def test_reap_with_nothing_exited_returns_empty(manager: ServiceManager):
    manager.start_service(make("sleeper", "sleep", "10"))

    assert manager.reap() == []
    assert manager.state("sleeper") is ServiceState.RUNNING


def test_reap_detects_exit(manager: ServiceManager):
    manager.start_service(make("quick", "true"))
    wait_exit(manager, "quick")

    exited = manager.reap()

    assert exited == ["quick"]
    assert manager.running_count() == 0
    assert manager.state("quick") is ServiceState.FINISHED


def test_reap_reports_each_exit_once(manager: ServiceManager):
    manager.start_service(make("quick", "true"))
    wait_exit(manager, "quick")

    assert manager.reap() == ["quick"]
    assert manager.reap() == []


def test_on_failure_success_is_not_restarted(manager: ServiceManager):
    manager.start_service(make("ok", "true", restart=RestartPolicy.ON_FAILURE))
    wait_exit(manager, "ok")

    assert manager.reap() == ["ok"]
    assert manager.state("ok") is ServiceState.FINISHED
    assert manager.running_count() == 0


def test_on_failure_failure_is_restarted(manager: ServiceManager):
    manager.start_service(
        make("failing", "false", restart=RestartPolicy.ON_FAILURE)
    )
    first_pid = manager.pid("failing")
    wait_exit(manager, "failing")

    exited = manager.reap()

    assert exited == ["failing"]
    assert manager.state("failing") is ServiceState.RUNNING
    assert manager.restart_count("failing") == 1
    assert manager.pid("failing") != first_pid


def test_restart_count_is_capped(manager: ServiceManager):
    manager.start_service(
        make("failing", "false", restart=RestartPolicy.ON_FAILURE)
    )

    for expected in range(1, MAX_RESTART_COUNT + 1):
        wait_exit(manager, "failing")
        assert manager.reap() == ["failing"]
        assert manager.state("failing") is ServiceState.RUNNING
        assert manager.restart_count("failing") == expected

    # 6th failing exit: policy says restart, the cap says no
    wait_exit(manager, "failing")
    assert manager.reap() == ["failing"]
    assert manager.state("failing") is ServiceState.FINISHED
    assert manager.restart_count("failing") is None


def test_always_policy_restarts_after_success(manager: ServiceManager):
    manager.start_service(make("loop", "true", restart=RestartPolicy.ALWAYS))
    wait_exit(manager, "loop")

    manager.reap()

    assert manager.state("loop") is ServiceState.RUNNING
    assert manager.restart_count("loop") == 1


def test_never_policy_does_not_restart_failure(manager: ServiceManager):
    manager.start_service(make("once", "false", restart=RestartPolicy.NEVER))
    wait_exit(manager, "once")

    manager.reap()

    assert manager.state("once") is ServiceState.FINISHED


def test_oneshot_with_always_runs_exactly_once(manager: ServiceManager):
    manager.start_service(
        make(
            "setup",
            "true",
            restart=RestartPolicy.ALWAYS,
            service_type=ServiceType.ONESHOT,
        )
    )
    wait_exit(manager, "setup")

    assert manager.reap() == ["setup"]
    assert manager.state("setup") is ServiceState.FINISHED
    assert manager.reap() == []


def test_failed_respawn_moves_service_to_finished():
    calls = []

    def flaky_popen(argv, **kwargs):
        calls.append(argv)
        if len(calls) > 1:
            raise PermissionError("permission denied")
        return subprocess.Popen(argv, **kwargs)

    mgr = ServiceManager(popen=flaky_popen)
    mgr.start_service(make("flaky", "false", restart=RestartPolicy.ALWAYS))
    wait_exit(mgr, "flaky")

    exited = mgr.reap()

    assert exited == ["flaky"]
    assert len(calls) == 2
    assert mgr.state("flaky") is ServiceState.FINISHED
    assert mgr.running_count() == 0


def test_killed_process_counts_as_failure(manager: ServiceManager):
    manager.start_service(
        make("victim", "sleep", "30", restart=RestartPolicy.ON_FAILURE)
    )
    manager._running["victim"].process.kill()
    wait_exit(manager, "victim")

    manager.reap()

    assert manager.state("victim") is ServiceState.RUNNING
    assert manager.restart_count("victim") == 1


# ----------------------------------------------------------------
# Stopping
# ----------------------------------------------------------------


def test_stop_service_moves_running_to_finished(manager: ServiceManager):
    manager.start_service(
        make("long", "sleep", "60", restart=RestartPolicy.ALWAYS)
    )
    process = manager._running["long"].process

    manager.stop_service("long")

    assert manager.state("long") is ServiceState.FINISHED
    assert manager.running_count() == 0
    assert "long" not in manager.running_service_names()
    assert process.returncode is not None


def test_stopped_service_is_not_restarted_by_reap(manager: ServiceManager):
    manager.start_service(
        make("long", "sleep", "60", restart=RestartPolicy.ALWAYS)
    )
    manager.stop_service("long")

    assert manager.reap() == []
    assert manager.state("long") is ServiceState.FINISHED


def test_stop_unknown_service_is_noop(manager: ServiceManager):
    manager.stop_service("ghost")

    assert manager.state("ghost") is ServiceState.STOPPED


def test_stop_finished_service_is_noop(manager: ServiceManager):
    manager.start_service(make("quick", "true"))
    wait_exit(manager, "quick")
    manager.reap()

    manager.stop_service("quick")

    assert manager.state("quick") is ServiceState.FINISHED


class FakeProcess:
    next_pid = 4000

    def __init__(self, argv, log, **kwargs):
        FakeProcess.next_pid += 1
        self.pid = FakeProcess.next_pid
        self.args = argv
        self.returncode = None
        self._log = log

    def poll(self):
        return self.returncode

    def terminate(self):
        self._log.append(self.args[0])
        self.returncode = -15

    def wait(self, timeout=None):
        return self.returncode


def test_stop_all_follows_given_order_then_name_order():
    stopped: list[str] = []
    mgr = ServiceManager(popen=lambda argv, **kw: FakeProcess(argv, stopped, **kw))
    for name in ["a", "b", "c", "d"]:
        mgr.start_service(make(name, name))

    mgr.stop_all(order=["c", "a"])

    assert stopped == ["c", "a", "b", "d"]
    assert mgr.running_count() == 0
    assert all(mgr.state(n) is ServiceState.FINISHED for n in "abcd")


def test_stop_all_ignores_names_that_are_not_running():
    stopped: list[str] = []
    mgr = ServiceManager(popen=lambda argv, **kw: FakeProcess(argv, stopped, **kw))
    mgr.start_service(make("a", "a"))

    mgr.stop_all(order=["missing", "a"])

    assert stopped == ["a"]
    assert mgr.state("missing") is ServiceState.STOPPED


def test_name_never_in_running_and_finished_at_once():
    stopped: list[str] = []
    mgr = ServiceManager(popen=lambda argv, **kw: FakeProcess(argv, stopped, **kw))
    cfg = make("svc", "svc", restart=RestartPolicy.ALWAYS)
    mgr.start_service(cfg)
    mgr.stop_service("svc")

    # Explicit start after stop brings it back as running only
    mgr.start_service(cfg)

    assert mgr.state("svc") is ServiceState.RUNNING
    assert "svc" not in mgr._finished
