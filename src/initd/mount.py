# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Early filesystem mounts and their teardown.

Mounting goes through mount(8)/umount(8). The table remembers only mounts
that succeeded, in the order they happened, so shutdown can unmount them
last-mounted first.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Iterable
from pathlib import Path

from .config import MountPoint

logger = logging.getLogger(__name__)

Runner = Callable[[list[str]], "subprocess.CompletedProcess[str]"]


def run_command(argv: list[str]) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        argv, capture_output=True, text=True, errors="replace", check=False
    )


def _error_text(result: subprocess.CompletedProcess[str]) -> str:
    err = (result.stderr or "").strip()
    return err or f"exit status {result.returncode}"


class MountTable:
    def __init__(self, runner: Runner = run_command):
        self._run = runner
        self._mounted: list[MountPoint] = []

    def mounted(self) -> list[str]:
        return [mp.target for mp in self._mounted]

    def mount(self, mp: MountPoint) -> bool:
        try:
            Path(mp.target).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("cannot create mount point %s: %s", mp.target, e)

        argv = ["mount", "-t", mp.fstype]
        if mp.options:
            argv += ["-o", mp.options]
        argv += [mp.source, mp.target]

        try:
            result = self._run(argv)
        except Exception as e:
            logger.error("mount %s (%s) failed: %s", mp.target, mp.fstype, e)
            return False

        if result.returncode != 0:
            logger.error(
                "mount %s (%s) failed: %s",
                mp.target, mp.fstype, _error_text(result),
            )
            return False

        logger.info("mounted %s (%s)", mp.target, mp.fstype)
        self._mounted.append(mp)
        return True

    def mount_all(self, points: Iterable[MountPoint]) -> None:
        for mp in points:
            self.mount(mp)

    def unmount_all(self) -> None:
        """Detach every recorded mount, newest first. Failures are logged."""
        while self._mounted:
            mp = self._mounted.pop()
            try:
                result = self._run(["umount", "-l", mp.target])
            except Exception as e:
                logger.warning("unmount %s failed: %s", mp.target, e)
                continue
            if result.returncode != 0:
                logger.warning(
                    "unmount %s failed: %s", mp.target, _error_text(result)
                )
                continue
            logger.info("unmounted %s", mp.target)
