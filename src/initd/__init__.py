# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
initd core package.

Brings services up in dependency order, restarts them by policy, reaps
zombies, and shuts the system down on SIGTERM/SIGINT. Never exits.
"""
from .supervisor import Supervisor as Supervisor  # noqa: F401 (re-export)

__version__ = "0.1.0"
