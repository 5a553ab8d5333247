# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces keep the shutdown sequence and the supervising loop
independent of real processes, mounts and the reboot syscall.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


class ServiceTable(Protocol):
    """Protocol for the live-process table."""

    def reap(self) -> list[str]:
        """Collect exited services; return the names that exited."""
        ...

    def stop_all(self, order: Iterable[str] | None = None) -> None:
        """Stop every running service, optionally in a given order first."""
        ...

    def running_count(self) -> int:
        ...

    def running_pids(self) -> dict[int, str]:
        """Map of pid -> service name for every tracked process."""
        ...


class MountTeardown(Protocol):
    """Protocol for unmounting what was mounted at boot."""

    def unmount_all(self) -> None:
        """Unmount recorded filesystems in reverse mount order."""
        ...


class PowerControl(Protocol):
    """Protocol for the final power action."""

    def power(self, action: str) -> None:
        """Power off, reboot or halt. Raises OSError on failure."""
        ...


class StatusOutput(Protocol):
    """Protocol for console status lines."""

    def ok(self, message: str) -> None:
        ...

    def failed(self, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        ...

    def warn(self, message: str) -> None:
        ...
