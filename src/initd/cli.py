# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
initd entry point.

Design:
- CLI owns process startup: logging, config, mounts, signal registration.
- Supervisor is the loop engine (definitions + manager + signals +
  sequencer injected).
- `initd --check [DIR]` validates definitions and prints the start order;
  it is the only path that returns.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import NoReturn

from . import config
from .console import Console
from .dependency import resolve_start_order
from .errors import DependencyError
from .log import setup_logging
from .mount import MountTable
from .service import ServiceManager
from .shutdown import LibcPowerControl, ShutdownSequencer
from .signals import SignalController
from .supervisor import Supervisor
from .utils import start_order_table

logger = logging.getLogger("initd")


def check(services_dir: Path) -> int:
    """Validate service definitions and print the resolved start order."""
    services = config.load_services_from_dir(services_dir)
    if not services:
        print(f"No service definitions found in {services_dir}")
        return 0
    try:
        order = resolve_start_order(services)
    except DependencyError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    print(start_order_table(order, services))
    return 0


def build_supervisor(
    cfg: config.SystemConfig,
    signals: SignalController,
    manager: ServiceManager,
    sequencer: ShutdownSequencer,
) -> Supervisor:
    supervisor = Supervisor(
        services=[],
        manager=manager,
        signals=signals,
        sequencer=sequencer,
        poll_interval=cfg.poll_interval,
        shutdown_action=cfg.shutdown_action,
        crash_log=cfg.crash_log,
    )
    supervisor.console = Console(cfg.console_style)
    supervisor.services = config.load_services_from_dir(cfg.services_dir)
    logger.info(
        "loaded %d service definitions from %s",
        len(supervisor.services), cfg.services_dir,
    )
    return supervisor


def boot(cfg: config.SystemConfig) -> NoReturn:
    setup_logging(cfg.log_level)
    logger.info("initd starting, pid %d", os.getpid())

    mounts = MountTable()
    if cfg.mount_enabled:
        try:
            mounts.mount_all(cfg.mounts)
        except Exception:
            logger.exception("early mounts failed, continuing")
    else:
        logger.info("early mounts disabled (INITD_NO_MOUNT=1)")

    # Wired before anything config-driven can fail
    signals = SignalController().register()
    manager = ServiceManager()
    sequencer = ShutdownSequencer(
        manager=manager, mounts=mounts, power=LibcPowerControl()
    )
    try:
        sequencer.park_interval = cfg.park_interval
        supervisor = build_supervisor(cfg, signals, manager, sequencer)
    except Exception:
        logger.exception("cannot load configuration; supervising no services")
        supervisor = Supervisor(
            services=[], manager=manager, signals=signals, sequencer=sequencer
        )

    supervisor.run()


def main() -> None:
    """Main entry point for initd."""
    args = sys.argv[1:]
    try:
        cfg = config.load_system_config()
    except Exception as e:
        print(f"[initd] cannot load system config, using defaults: {e}",
              file=sys.stderr)
        cfg = config.SystemConfig({})

    if args and args[0] == "--check":
        setup_logging(cfg.log_level)
        services_dir = Path(args[1]) if len(args) > 1 else cfg.services_dir
        sys.exit(check(services_dir))

    boot(cfg)


if __name__ == "__main__":
    main()
