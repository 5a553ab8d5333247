# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Utility functions for initd.
"""

from collections.abc import Sequence
from typing import Any

from .config import ServiceConfig


def format_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str = ""
) -> str:
    """
    Format rows as a plain text table.

    Args:
        headers: column header names
        rows: one list of values per row
        title: optional line printed above the table

    Returns:
        The table, or "" when there are no rows
    """
    if not rows:
        return ""

    str_rows = [[str(val) for val in row] for row in rows]
    widths = [len(str(h)) for h in headers]
    for row in str_rows:
        for i, val in enumerate(row[:len(widths)]):
            widths[i] = max(widths[i], len(val))

    def _fmt(values: list[str]) -> str:
        cells = [v.ljust(widths[i]) for i, v in enumerate(values[:len(widths)])]
        return "  ".join(cells).rstrip()

    lines = []
    if title:
        lines.append(title)
    lines.append(_fmt([str(h) for h in headers]))
    lines.append("  ".join("-" * w for w in widths))
    for row in str_rows:
        lines.append(_fmt(row))
    return "\n".join(lines)


def start_order_table(
    order: Sequence[str], services: Sequence[ServiceConfig]
) -> str:
    """Render a resolved start order with each service's settings."""
    by_name = {svc.name: svc for svc in services}
    rows = []
    for position, name in enumerate(order, start=1):
        svc = by_name[name]
        rows.append([
            position,
            name,
            svc.service_type.value,
            svc.restart.value,
            ", ".join(svc.depends_on) or "-",
        ])
    return format_table(
        ["#", "service", "type", "restart", "depends on"],
        rows,
        title="Start order:",
    )
