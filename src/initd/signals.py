# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Signal latches for the supervising loop.

Handlers only flip a boolean attribute. Everything else happens when the
loop polls:
- shutdown_requested: sticky (SIGTERM, SIGINT)
- take_child_exited(): cleared on read (SIGCHLD)
- take_reload_requested(): cleared on read (SIGUSR1)

Several SIGCHLDs between two polls collapse into one pending notification.
That is enough because reaping inspects real process state.
"""

from __future__ import annotations

import signal
from typing import Any

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)
CHILD_SIGNAL = signal.SIGCHLD
RELOAD_SIGNAL = signal.SIGUSR1


class SignalController:
    """Poll-friendly view of asynchronously delivered signals."""

    def __init__(self) -> None:
        self._shutdown = False
        self._child_exited = False
        self._reload = False
        self.shutdown_signal: int | None = None
        self._previous: dict[int, Any] = {}

    # ---------- handler path ----------

    def _on_shutdown(self, signum: int, frame: Any) -> None:
        self.shutdown_signal = signum
        self._shutdown = True

    def _on_child(self, signum: int, frame: Any) -> None:
        self._child_exited = True

    def _on_reload(self, signum: int, frame: Any) -> None:
        self._reload = True

    # ---------- registration ----------

    def register(self) -> SignalController:
        """Install handlers. Must be called from the main thread."""
        handlers = {CHILD_SIGNAL: self._on_child, RELOAD_SIGNAL: self._on_reload}
        for signum in SHUTDOWN_SIGNALS:
            handlers[signum] = self._on_shutdown

        for signum, handler in handlers.items():
            self._previous[signum] = signal.signal(signum, handler)
        return self

    def restore(self) -> None:
        """Reinstate whatever handlers were installed before register()."""
        for signum, previous in self._previous.items():
            signal.signal(
                signum, previous if previous is not None else signal.SIG_DFL
            )
        self._previous.clear()

    # ---------- polling ----------

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown

    def take_child_exited(self) -> bool:
        # A SIGCHLD between read and reset is for a child that has already
        # exited, so the reap that follows sees it.
        pending = self._child_exited
        self._child_exited = False
        return pending

    def take_reload_requested(self) -> bool:
        pending = self._reload
        self._reload = False
        return pending

    # ---------- manual triggers ----------

    def request_shutdown(self, signum: int = signal.SIGTERM) -> None:
        self._on_shutdown(signum, None)

    def notify_child_exited(self) -> None:
        self._on_child(CHILD_SIGNAL, None)

    def request_reload(self) -> None:
        self._on_reload(RELOAD_SIGNAL, None)
