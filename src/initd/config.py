# initd — Minimal PID 1 Init System and Service Supervisor
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Service definitions and system configuration for initd.

Handles:
- ServiceConfig model (+ restart policy / service type enums)
- Parsing one YAML service definition into a ServiceConfig
- Loading every definition from the services directory
- Packaged YAML defaults loading (initd.defaults/system.yaml)
- Environment overrides (INITD_SERVICES_DIR, INITD_LOG, INITD_CRASH_LOG,
  INITD_NO_MOUNT)
"""

from __future__ import annotations

import logging
import os
import types
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

try:
    # Py3.9+
    from importlib import resources as importlib_resources
except Exception:  # pragma: no cover
    import importlib_resources  # type: ignore


logger = logging.getLogger(__name__)

SERVICE_FILE_SUFFIXES = (".yaml", ".yml")


# -----------------------
# Service model
# -----------------------


class RestartPolicy(str, Enum):
    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    NEVER = "never"


class ServiceType(str, Enum):
    SIMPLE = "simple"
    ONESHOT = "oneshot"


@dataclass(frozen=True)
class ServiceConfig:
    """One service definition. Never mutated after it is produced."""

    name: str
    exec: str
    args: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()
    restart: RestartPolicy = RestartPolicy.ON_FAILURE
    service_type: ServiceType = ServiceType.SIMPLE
    environment: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Accept lists and dicts from callers but store read-only copies
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        object.__setattr__(
            self, "environment", types.MappingProxyType(dict(self.environment))
        )
        object.__setattr__(self, "restart", RestartPolicy(self.restart))
        object.__setattr__(
            self, "service_type", ServiceType(self.service_type)
        )

    @property
    def argv(self) -> list[str]:
        return [self.exec, *self.args]


def _require_str(data: dict, key: str, source: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(source, f"'{key}' must be a non-empty string")
    return value


def _str_list(data: dict, key: str, source: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(source, f"'{key}' must be a list")
    out: list[str] = []
    for item in value:
        if isinstance(item, (dict, list)) or item is None:
            raise ConfigError(source, f"'{key}' entries must be scalars")
        out.append(str(item))
    return out


def _enum_value(data: dict, key: str, enum_cls: type[Enum], default: Enum,
                source: str) -> Any:
    raw = data.get(key)
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ConfigError(
            source, f"'{key}' must be one of: {allowed} (got {raw!r})"
        ) from None


def parse_service(data: Any, source: str = "<memory>") -> ServiceConfig:
    """Turn a loaded YAML document into a ServiceConfig.

    The document must be a mapping with a top-level ``service`` key:

        service:
          name: console
          exec: /bin/sh
          args: ["-l"]
          depends_on: [udevd]
          restart: always
          service_type: simple
          environment:
            TERM: linux

    Only ``name`` and ``exec`` are required.
    """
    if not isinstance(data, dict) or not isinstance(data.get("service"), dict):
        raise ConfigError(source, "expected a mapping with a 'service' key")

    svc = data["service"]
    env_raw = svc.get("environment") or {}
    if not isinstance(env_raw, dict):
        raise ConfigError(source, "'environment' must be a mapping")

    environment: dict[str, str] = {}
    for key, value in env_raw.items():
        if isinstance(value, (dict, list)):
            raise ConfigError(
                source, f"environment value for '{key}' must be a scalar"
            )
        environment[str(key)] = "" if value is None else str(value)

    return ServiceConfig(
        name=_require_str(svc, "name", source).strip(),
        exec=_require_str(svc, "exec", source),
        args=tuple(_str_list(svc, "args", source)),
        depends_on=tuple(_str_list(svc, "depends_on", source)),
        restart=_enum_value(
            svc, "restart", RestartPolicy, RestartPolicy.ON_FAILURE, source
        ),
        service_type=_enum_value(
            svc, "service_type", ServiceType, ServiceType.SIMPLE, source
        ),
        environment=environment,
    )


def parse_service_yaml(text: str, source: str = "<memory>") -> ServiceConfig:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(source, f"YAML error: {e}") from e
    return parse_service(data, source)


def load_service_file(path: Path) -> ServiceConfig:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(str(path), f"cannot read file: {e}") from e
    return parse_service_yaml(text, str(path))


def load_services_from_dir(directory: Path) -> list[ServiceConfig]:
    """Load every service definition in ``directory``, in filename order.

    A missing directory yields an empty list. Files with other suffixes are
    ignored. A definition that fails to parse is logged and skipped so that
    one broken file cannot keep the rest of the system from booting.
    """
    if not directory.is_dir():
        logger.warning("service directory %s does not exist", directory)
        return []

    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logger.error("cannot read service directory %s: %s", directory, e)
        return []

    services: list[ServiceConfig] = []
    for path in entries:
        if path.suffix not in SERVICE_FILE_SUFFIXES or not path.is_file():
            continue
        try:
            services.append(load_service_file(path))
        except ConfigError as e:
            logger.error("%s", e)
    return services


# -----------------------
# System config wrapper
# -----------------------


@dataclass(frozen=True)
class MountPoint:
    source: str
    target: str
    fstype: str
    options: str = ""


class SystemConfig:
    """Typed view over system.yaml with environment overrides applied."""

    def __init__(self, config_dict: dict[str, Any],
                 environ: Mapping[str, str] | None = None):
        self._config = config_dict
        self._environ = os.environ if environ is None else environ

    @property
    def services_dir(self) -> Path:
        override = self._environ.get("INITD_SERVICES_DIR")
        if override:
            return Path(override)
        return Path(self._config.get("services_dir", "/etc/initd/services"))

    @property
    def poll_interval(self) -> float:
        return float(self._config.get("poll_interval", 0.1))

    @property
    def log_level(self) -> str:
        override = self._environ.get("INITD_LOG")
        if override:
            return override
        return str(self._config.get("log_level", "info"))

    @property
    def crash_log(self) -> Path:
        override = self._environ.get("INITD_CRASH_LOG")
        if override:
            return Path(override)
        return Path(self._config.get("crash_log", "/run/initd/crash.log"))

    @property
    def shutdown_action(self) -> str:
        return str(self.get_path("shutdown.action", "poweroff"))

    @property
    def park_interval(self) -> float:
        return float(self.get_path("shutdown.park_interval", 1.0))

    @property
    def mount_enabled(self) -> bool:
        return self._environ.get("INITD_NO_MOUNT") != "1"

    @property
    def mounts(self) -> list[MountPoint]:
        points: list[MountPoint] = []
        for entry in self._config.get("mounts", []) or []:
            if not isinstance(entry, dict):
                continue
            missing = [
                k for k in ("source", "target", "fstype") if not entry.get(k)
            ]
            if missing:
                logger.error(
                    "skipping mount entry %r: missing %s", entry, ", ".join(missing)
                )
                continue
            points.append(
                MountPoint(
                    source=str(entry["source"]),
                    target=str(entry["target"]),
                    fstype=str(entry["fstype"]),
                    options=str(entry.get("options", "") or ""),
                )
            )
        return points

    @property
    def console_style(self) -> dict[str, str]:
        style = self.get_path("console.style", {})
        return style if isinstance(style, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("shutdown.action", "poweroff")
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("initd.defaults")
    )  # type: ignore[arg-type]


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from initd/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"Defaults YAML {filename} must load to a mapping/dict."
        )
    return data


def load_system_config(
    environ: Mapping[str, str] | None = None,
) -> SystemConfig:
    """
    Load system.yaml from packaged defaults and return a SystemConfig.
    """
    return SystemConfig(load_defaults_yaml("system.yaml"), environ=environ)
