# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Service lifecycle manager.

ServiceManager is the only component that spawns or terminates service
processes. It keeps two tables:
- running: name -> RunningService (live process + restart count)
- finished: name -> ServiceConfig (exited for good, or stopped)

A name is never in both. Anything in neither is Stopped.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from .config import RestartPolicy, ServiceConfig, ServiceType
from .errors import SpawnError

logger = logging.getLogger(__name__)

MAX_RESTART_COUNT = 5


class ServiceState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass
class RunningService:
    config: ServiceConfig
    process: subprocess.Popen
    restart_count: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def pid(self) -> int:
        return self.process.pid


def should_restart(
    policy: RestartPolicy, service_type: ServiceType, exit_success: bool
) -> bool:
    """Restart decision for one exited process, ignoring the restart cap."""
    if service_type is ServiceType.ONESHOT:
        return False
    if policy is RestartPolicy.ALWAYS:
        return True
    if policy is RestartPolicy.ON_FAILURE:
        return not exit_success
    return False


def describe_exit(returncode: int) -> str:
    if returncode < 0:
        return f"killed by signal {-returncode}"
    return f"exit status {returncode}"


class ServiceManager:
    """Owns and mutates the live-process table."""

    def __init__(
        self,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        environ: dict[str, str] | None = None,
    ):
        """
        Args:
            popen: process factory (subprocess.Popen signature)
            environ: base environment for every service
                (default: this process's environment at spawn time)
        """
        self._popen = popen
        self._environ = environ
        self._running: dict[str, RunningService] = {}
        self._finished: dict[str, ServiceConfig] = {}

    # ---------- spawning ----------

    def _build_env(self, config: ServiceConfig) -> dict[str, str]:
        env = dict(os.environ if self._environ is None else self._environ)
        env.update(config.environment)
        return env

    def _spawn(self, config: ServiceConfig, restart_count: int) -> RunningService:
        try:
            process = self._popen(
                config.argv,
                env=self._build_env(config),
                close_fds=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            raise SpawnError(config.name, e) from e

        svc = RunningService(
            config=config, process=process, restart_count=restart_count
        )
        self._finished.pop(config.name, None)
        self._running[config.name] = svc
        return svc

    def start_service(self, config: ServiceConfig) -> None:
        """Spawn a service process and start tracking it.

        Raises:
            SpawnError: the process could not be created; the service is
                not added to the running table.
        """
        if config.name in self._running:
            logger.warning("service %s is already running", config.name)
            return

        logger.info("starting service %s (%s)", config.name, config.exec)
        svc = self._spawn(config, restart_count=0)
        logger.info("service %s started, pid %d", config.name, svc.pid)

    # ---------- supervision ----------

    def reap(self) -> list[str]:
        """Collect exited services without blocking and apply restart policy.

        Returns the names of every service seen exiting during this call,
        whether or not it was respawned.
        """
        exited: list[tuple[str, int]] = []
        for name, svc in list(self._running.items()):
            try:
                returncode = svc.process.poll()
            except OSError as e:
                logger.error("failed to check service %s: %s", name, e)
                continue
            if returncode is not None:
                exited.append((name, returncode))

        exited.sort()
        for name, returncode in exited:
            svc = self._running.pop(name)
            success = returncode == 0
            if success:
                logger.info("service %s exited successfully", name)
            else:
                logger.warning(
                    "service %s exited with error (%s)",
                    name, describe_exit(returncode),
                )

            restart = should_restart(
                svc.config.restart, svc.config.service_type, success
            )
            if restart and svc.restart_count < MAX_RESTART_COUNT:
                count = svc.restart_count + 1
                logger.info("restarting service %s (restart %d)", name, count)
                try:
                    new = self._spawn(svc.config, restart_count=count)
                except SpawnError as e:
                    logger.error("%s", e)
                    self._finished[name] = svc.config
                    continue
                logger.info("service %s restarted, pid %d", name, new.pid)
                continue

            if restart:
                logger.error(
                    "service %s exceeded max restart count (%d), giving up",
                    name, MAX_RESTART_COUNT,
                )
            self._finished[name] = svc.config

        return [name for name, _ in exited]

    # ---------- stopping ----------

    def stop_service(self, name: str) -> None:
        """Terminate a running service and wait for it, however long it takes.

        No-op when the service is not running.
        """
        svc = self._running.pop(name, None)
        if svc is None:
            return

        logger.info("stopping service %s, pid %d", name, svc.pid)
        try:
            svc.process.terminate()
        except ProcessLookupError:
            pass

        try:
            returncode = svc.process.wait()
            logger.info("service %s stopped (%s)", name, describe_exit(returncode))
        except OSError as e:
            logger.error("error waiting for service %s to stop: %s", name, e)

        self._finished[name] = svc.config

    def stop_all(self, order: Iterable[str] | None = None) -> None:
        """Stop every running service.

        Names in ``order`` go first, in that sequence; whatever is still
        running afterwards is stopped in name order.
        """
        for name in order or ():
            self.stop_service(name)
        for name in sorted(self._running):
            self.stop_service(name)

    # ---------- read accessors ----------

    def state(self, name: str) -> ServiceState:
        if name in self._running:
            return ServiceState.RUNNING
        if name in self._finished:
            return ServiceState.FINISHED
        return ServiceState.STOPPED

    def running_count(self) -> int:
        return len(self._running)

    def running_service_names(self) -> list[str]:
        return sorted(self._running)

    def restart_count(self, name: str) -> int | None:
        svc = self._running.get(name)
        return svc.restart_count if svc is not None else None

    def running_pids(self) -> dict[int, str]:
        return {svc.pid: name for name, svc in self._running.items()}

    def pid(self, name: str) -> int | None:
        svc = self._running.get(name)
        return svc.pid if svc is not None else None
