# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Zombie reaping for processes that are not services.

Every orphan on the system is re-parented to PID 1. Those must be waited
for, but exit statuses of tracked services belong to ServiceManager.reap(),
so children are peeked with WNOWAIT first and only untracked ones are
collected here.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Container

logger = logging.getLogger(__name__)


def reap_orphans(tracked_pids: Container[int]) -> bool:
    """Reap exited children that are not tracked services.

    Returns True when it stopped because the next exited child is a tracked
    service; the caller should run ServiceManager.reap() and call again.
    """
    flags = os.WEXITED | os.WNOHANG | os.WNOWAIT
    while True:
        try:
            info = os.waitid(os.P_ALL, 0, flags)
        except ChildProcessError:
            return False
        except InterruptedError:
            continue

        if info is None:
            return False

        pid = info.si_pid
        if pid in tracked_pids:
            return True

        try:
            os.waitpid(pid, 0)
        except ChildProcessError:
            continue
        logger.debug("reaped orphan pid %d (status %d)", pid, info.si_status)
