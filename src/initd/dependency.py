# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Start ordering for services.

Kahn's topological sort over the depends_on relation. Ties between services
that do not constrain each other are broken lexicographically so the same
definitions always boot in the same order.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence

from .config import ServiceConfig
from .errors import CircularDependency, DuplicateService, UnknownDependency


def resolve_start_order(services: Sequence[ServiceConfig]) -> list[str]:
    """Compute the order in which services must be started.

    Raises:
        DuplicateService: two definitions share a name
        UnknownDependency: a depends_on entry names no known service
        CircularDependency: some services can never be placed; the error
            lists exactly those services
    """
    names: set[str] = set()
    for svc in services:
        if svc.name in names:
            raise DuplicateService(svc.name)
        names.add(svc.name)

    for svc in services:
        for dep in svc.depends_on:
            if dep not in names:
                raise UnknownDependency(svc.name, dep)

    # Edges run dependency -> dependent
    in_degree: dict[str, int] = {svc.name: 0 for svc in services}
    dependents: dict[str, list[str]] = {svc.name: [] for svc in services}
    for svc in services:
        for dep in svc.depends_on:
            in_degree[svc.name] += 1
            dependents[dep].append(svc.name)

    queue: deque[str] = deque(
        sorted(name for name, deg in in_degree.items() if deg == 0)
    )
    order: list[str] = []

    while queue:
        name = queue.popleft()
        order.append(name)

        ready: list[str] = []
        for dependent in dependents[name]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                ready.append(dependent)
        queue.extend(sorted(ready))

    if len(order) != len(services):
        raise CircularDependency(names - set(order))

    return order


def stop_order(services: Sequence[ServiceConfig]) -> list[str]:
    """Reverse start order: dependents stop before what they depend on."""
    return list(reversed(resolve_start_order(services)))
