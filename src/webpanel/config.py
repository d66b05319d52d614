"""Configuration loader for webpanel.

This module centralises the logic for reading configuration values from
multiple sources, in increasing order of precedence:

1. Built-in defaults.
2. ``/etc/webpanel/config.yml`` (or an override path).
3. Environment variables prefixed with ``WEBPANEL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export WEBPANEL_BACKUPS__ROOT=/mnt/backup
    export WEBPANEL_CADDY__RELOAD=false

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` which are handed to each component explicitly; there is no
module-level configuration state.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load webpanel configuration. Install with "
        "`pip install webpanel` or ensure PyYAML>=6.0 is available."
    ) from exc

from .errors import ValidationError

ENV_PREFIX = "WEBPANEL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(ValidationError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class BackupConfig:
    """Backup storage and compression defaults."""

    root: Path = Path("/backup")
    compression_level: int | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"root": str(self.root), "compression_level": self.compression_level}


@dataclass(frozen=True)
class CaddyConfig:
    """Reverse proxy integration values."""

    caddy_bin: str = "caddy"
    caddyfile: Path = Path("/etc/caddy/Caddyfile")
    log_root: Path = Path("/var/log/webpanel/caddy")
    php_fpm_socket: str = "unix//run/php/php8.1-fpm.sock"
    reload: bool = True

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "caddy_bin": self.caddy_bin,
            "caddyfile": str(self.caddyfile),
            "log_root": str(self.log_root),
            "php_fpm_socket": self.php_fpm_socket,
            "reload": self.reload,
        }


@dataclass(frozen=True)
class ScheduleConfig:
    """Where and how recurring backup jobs are registered."""

    cron_dir: Path = Path("/etc/cron.d")
    user: str = "root"
    command: str = "webpanel"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"cron_dir": str(self.cron_dir), "user": self.user, "command": self.command}


@dataclass(frozen=True)
class DatabaseConfig:
    """Database dump tooling."""

    dump_bin: str = "mysqldump"
    user: str = "root"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"dump_bin": self.dump_bin, "user": self.user}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for webpanel."""

    config_file: Path
    web_root: Path
    config_dir: Path
    logs_dir: Path
    templates_dir: Path
    backups: BackupConfig
    caddy: CaddyConfig
    schedule: ScheduleConfig
    database: DatabaseConfig

    @property
    def sites_dir(self) -> Path:
        """Directory holding one configuration document per site."""
        return self.config_dir / "sites"

    @property
    def modules_dir(self) -> Path:
        """Directory holding the rendered module snippets."""
        return self.config_dir / "modules"

    def site_directory(self, domain: str) -> Path:
        """Return the document root parent for *domain*."""
        return self.web_root / domain

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "web_root": str(self.web_root),
            "config_dir": str(self.config_dir),
            "logs_dir": str(self.logs_dir),
            "templates_dir": str(self.templates_dir),
            "backups": self.backups.to_dict(),
            "caddy": self.caddy.to_dict(),
            "schedule": self.schedule.to_dict(),
            "database": self.database.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/webpanel/config.yml",
    "web_root": "/apps/sites",
    "config_dir": "/usr/local/webpanel/config",
    "logs_dir": "/usr/local/webpanel/logs",
    "templates_dir": "/etc/webpanel/templates",
    "backups": {
        "root": "/backup",
        "compression_level": None,
    },
    "caddy": {
        "caddy_bin": "caddy",
        "caddyfile": "/etc/caddy/Caddyfile",
        "log_root": "/var/log/webpanel/caddy",
        "php_fpm_socket": "unix//run/php/php8.1-fpm.sock",
        "reload": True,
    },
    "schedule": {
        "cron_dir": "/etc/cron.d",
        "user": "root",
        "command": "webpanel",
    },
    "database": {
        "dump_bin": "mysqldump",
        "user": "root",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
_SECTION_KEYS: dict[str, set[str]] = {
    section: set(cast(Mapping[str, object], DEFAULTS[section]).keys())
    for section in ("backups", "caddy", "schedule", "database")
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in _SECTION_KEYS.items():
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    schedule_map = _as_dict(raw.get("schedule"), "schedule")
    user = schedule_map.get("user")
    if user is not None and (not isinstance(user, str) or not user.strip()):
        raise ConfigError("schedule.user must be a non-empty string.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    backups_mapping = _as_dict(raw.get("backups"), "backups")
    compression_level_raw = backups_mapping.get("compression_level")
    compression_level: int | None = None
    if compression_level_raw is not None:
        parsed_level = _expect_int(
            compression_level_raw, "backups.compression_level", default=6
        )
        if not 1 <= parsed_level <= 9:
            raise ConfigError("backups.compression_level must be between 1 and 9.")
        compression_level = parsed_level
    backups = BackupConfig(
        root=_to_path(backups_mapping.get("root", "/backup")),
        compression_level=compression_level,
    )

    caddy_mapping = _as_dict(raw.get("caddy"), "caddy")
    caddy = CaddyConfig(
        caddy_bin=str(caddy_mapping.get("caddy_bin", "caddy")),
        caddyfile=_to_path(caddy_mapping.get("caddyfile", "/etc/caddy/Caddyfile")),
        log_root=_to_path(caddy_mapping.get("log_root", "/var/log/webpanel/caddy")),
        php_fpm_socket=str(
            caddy_mapping.get("php_fpm_socket", "unix//run/php/php8.1-fpm.sock")
        ),
        reload=_expect_bool(caddy_mapping.get("reload"), "caddy.reload", default=True),
    )

    schedule_mapping = _as_dict(raw.get("schedule"), "schedule")
    schedule = ScheduleConfig(
        cron_dir=_to_path(schedule_mapping.get("cron_dir", "/etc/cron.d")),
        user=str(schedule_mapping.get("user", "root")).strip(),
        command=str(schedule_mapping.get("command", "webpanel")),
    )

    database_mapping = _as_dict(raw.get("database"), "database")
    database = DatabaseConfig(
        dump_bin=str(database_mapping.get("dump_bin", "mysqldump")),
        user=str(database_mapping.get("user", "root")),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        web_root=_to_path(raw.get("web_root")),
        config_dir=_to_path(raw.get("config_dir")),
        logs_dir=_to_path(raw.get("logs_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        backups=backups,
        caddy=caddy,
        schedule=schedule,
        database=database,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "BackupConfig",
    "CaddyConfig",
    "ConfigError",
    "DatabaseConfig",
    "ScheduleConfig",
    "load_config",
]
