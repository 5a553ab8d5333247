# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Exception taxonomy for initd.

None of these may escape the supervising loop. They exist so that callers
can decide per failure class: dependency errors abort ordering, spawn errors
affect a single service, config errors skip a single definition file.
"""

from __future__ import annotations

from collections.abc import Iterable


class InitError(Exception):
    """Base class for every error raised by initd."""


class ConfigError(InitError):
    """A service definition could not be parsed into a ServiceConfig."""

    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"invalid service definition {source}: {detail}")


class DependencyError(InitError):
    """The service set cannot be put into a start order."""


class UnknownDependency(DependencyError):
    def __init__(self, service: str, missing: str):
        self.service = service
        self.missing = missing
        super().__init__(
            f"service '{service}' depends on unknown service '{missing}'"
        )


class CircularDependency(DependencyError):
    def __init__(self, names: Iterable[str]):
        self.names = sorted(names)
        super().__init__(
            "circular dependency detected involving: "
            + ", ".join(self.names)
        )


class DuplicateService(DependencyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"service '{name}' is defined more than once")


class SpawnError(InitError):
    """A service process could not be started."""

    def __init__(self, service: str, cause: BaseException):
        self.service = service
        self.cause = cause
        super().__init__(f"failed to start service '{service}': {cause}")
