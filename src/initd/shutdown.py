# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Shutdown and reboot handling.

Sequence: stop services -> unmount filesystems (reverse mount order) ->
reboot(2) with the requested command -> park forever. The last step runs
whether or not the power action worked, since PID 1 has no successor.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os
import time
from collections.abc import Callable, Container, Sequence
from typing import NoReturn

from .interfaces import MountTeardown, PowerControl, ServiceTable
from .reaper import reap_orphans

logger = logging.getLogger(__name__)

# linux/reboot.h
RB_POWER_OFF = 0x4321FEDC
RB_AUTOBOOT = 0x01234567
RB_HALT_SYSTEM = 0xCDEF0123

POWER_ACTIONS = {
    "poweroff": RB_POWER_OFF,
    "reboot": RB_AUTOBOOT,
    "halt": RB_HALT_SYSTEM,
}


class LibcPowerControl:
    """Calls reboot(2) through libc."""

    def __init__(self) -> None:
        self._libc: ctypes.CDLL | None = None

    def power(self, action: str) -> None:
        command = POWER_ACTIONS[action]
        if self._libc is None:
            # Loaded on first use so wiring at boot cannot fail on it
            self._libc = ctypes.CDLL(
                ctypes.util.find_library("c"), use_errno=True
            )
        os.sync()
        if self._libc.reboot(ctypes.c_int(command)) != 0:
            errno = ctypes.get_errno()
            raise OSError(errno, os.strerror(errno))


class ShutdownSequencer:
    def __init__(
        self,
        manager: ServiceTable,
        mounts: MountTeardown,
        power: PowerControl,
        park_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        orphan_reaper: Callable[[Container[int]], bool] = reap_orphans,
    ):
        self.manager = manager
        self.mounts = mounts
        self.power = power
        self.park_interval = park_interval
        self._sleep = sleep
        self._reap_orphans = orphan_reaper

    def run(
        self, action: str = "poweroff", stop_order: Sequence[str] | None = None
    ) -> NoReturn:
        if action not in POWER_ACTIONS:
            logger.error("unknown shutdown action %r, using poweroff", action)
            action = "poweroff"

        logger.info("initiating %s", action)

        logger.info("stopping all services")
        try:
            self.manager.stop_all(stop_order)
        except Exception:
            logger.exception("error while stopping services, continuing")

        try:
            self.mounts.unmount_all()
        except Exception:
            logger.exception("error while unmounting, continuing")

        logger.info("calling reboot(%s)", action)
        try:
            self.power.power(action)
        except OSError as e:
            logger.error("reboot syscall failed: %s", e)

        self.park()

    def park(self) -> NoReturn:
        logger.critical("system halted; init is parked")
        while True:
            # Orphans still get re-parented to us
            try:
                self._reap_orphans(())
            except Exception:
                logger.exception("orphan reaping failed while parked")
            self._sleep(self.park_interval)
