# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Logging setup and crash log.

Log lines go to stderr, which for PID 1 is the kernel console.
"""

from __future__ import annotations

import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import TextIO

LOG_FORMAT = "%(asctime)s %(levelname)-5s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def parse_level(level: str) -> int:
    return _LEVELS.get(level.strip().lower(), logging.INFO)


def setup_logging(level: str = "info", stream: TextIO | None = None) -> None:
    """Configure the ``initd`` logger hierarchy with one stderr handler."""
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    root = logging.getLogger("initd")
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(parse_level(level))


def write_crash_log(
    error: BaseException,
    crash_log_path: Path,
    state: str = "",
    context: str = "",
) -> None:
    """Append an entry to the crash log.

    Records unexpected exceptions caught by the supervising loop.
    Only creates the log directory when actually needed.
    Appends to the file (never overwrites).
    """
    try:
        crash_log_path.parent.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().isoformat()
        lines = [f"{timestamp}"]
        if state:
            lines.append(f"state={state}")
        if context:
            lines.append(f"context={context}")

        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(
            "".join(
                traceback.format_exception(
                    type(error), error, error.__traceback__
                )
            )
        )
        lines.append("----")

        with crash_log_path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except Exception:
        # Nowhere left to report to; the console log already has the error
        pass
