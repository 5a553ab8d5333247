# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
The supervising loop.

An explicit state machine with no exit:

    booting -> supervising -> shutting_down -> parked

Each step() performs one unit of work for the current state. Any exception
escaping a step is logged, written to the crash log, and the loop goes on.

Important boundary:
- Supervisor does not load YAML or register signals.
- It consumes injected definitions, manager, signal latches and sequencer.
"""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Container
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import NoReturn

from .config import ServiceConfig
from .dependency import resolve_start_order
from .errors import DependencyError, SpawnError
from .interfaces import StatusOutput
from .log import write_crash_log
from .reaper import reap_orphans
from .service import ServiceManager, ServiceState
from .shutdown import ShutdownSequencer
from .signals import SignalController

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    BOOTING = "booting"
    SUPERVISING = "supervising"
    SHUTTING_DOWN = "shutting_down"
    PARKED = "parked"


class _NullStatus:
    def ok(self, message: str) -> None:
        pass

    def failed(self, message: str) -> None:
        pass

    def info(self, message: str) -> None:
        pass

    def warn(self, message: str) -> None:
        pass


@dataclass
class Supervisor:
    """initd session engine."""

    services: list[ServiceConfig]
    manager: ServiceManager
    signals: SignalController
    sequencer: ShutdownSequencer

    console: StatusOutput = field(default_factory=_NullStatus)
    poll_interval: float = 0.1
    shutdown_action: str = "poweroff"
    crash_log: Path | None = None
    sleep: Callable[[float], None] = time.sleep
    orphan_reaper: Callable[[Container[int]], bool] = reap_orphans

    state: LoopState = LoopState.BOOTING
    start_order: list[str] = field(default_factory=list)

    # ---------- states ----------

    def boot(self) -> None:
        """Resolve the start order and start every service in it."""
        try:
            self.start_order = resolve_start_order(self.services)
        except DependencyError as e:
            logger.error("cannot order services, starting none: %s", e)
            self.console.failed(f"Dependency resolution failed: {e}")
            self.start_order = []

        by_name = {svc.name: svc for svc in self.services}
        for name in self.start_order:
            try:
                self.manager.start_service(by_name[name])
            except SpawnError as e:
                logger.error("%s", e)
                self.console.failed(f"Failed to start {name}")
                continue
            self.console.ok(f"Started {name}")

        logger.info(
            "boot complete: %d of %d services running",
            self.manager.running_count(), len(self.services),
        )
        self.state = LoopState.SUPERVISING

    def supervise_once(self) -> None:
        if self.signals.shutdown_requested:
            signum = self.signals.shutdown_signal
            name = signal.Signals(signum).name if signum else "request"
            logger.info("shutdown requested (%s)", name)
            self.state = LoopState.SHUTTING_DOWN
            return

        if self.signals.take_child_exited():
            self.handle_child_exit()

        if self.signals.take_reload_requested():
            logger.info("reload requested; hot reload is not supported, ignoring")

        self.sleep(self.poll_interval)

    def handle_child_exit(self) -> list[str]:
        """Reap services and orphans until no tracked exit is pending."""
        all_exited: list[str] = []
        while True:
            exited = self.manager.reap()
            all_exited.extend(exited)
            for name in exited:
                if self.manager.state(name) is ServiceState.RUNNING:
                    self.console.warn(f"Restarted {name}")
                else:
                    self.console.info(f"{name} finished")

            if not self.orphan_reaper(self.manager.running_pids()):
                break
            if not exited:
                # Tracked child not yet visible to poll(); retry next cycle
                self.signals.notify_child_exited()
                break
        return all_exited

    def shut_down(self) -> NoReturn:
        self.state = LoopState.PARKED
        self.console.info(f"Shutting down ({self.shutdown_action})")
        self.sequencer.run(
            self.shutdown_action, stop_order=list(reversed(self.start_order))
        )

    # ---------- loop ----------

    def step(self) -> LoopState:
        try:
            if self.state is LoopState.BOOTING:
                self.boot()
            elif self.state is LoopState.SUPERVISING:
                self.supervise_once()
            elif self.state is LoopState.SHUTTING_DOWN:
                self.shut_down()
            else:
                self.sequencer.park()
        except Exception as e:
            logger.exception("unexpected error while %s", self.state.value)
            if self.crash_log is not None:
                write_crash_log(e, self.crash_log, state=self.state.value)
            if self.state is LoopState.BOOTING:
                self.state = LoopState.SUPERVISING
            else:
                self.sleep(self.poll_interval)
        return self.state

    def run(self) -> NoReturn:
        logger.info("supervisor loop starting")
        while True:
            self.step()
