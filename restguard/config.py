"""Config loading for RestGuard.

Reads `.restguard/config.yaml` (or `~/.restguard/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field or wrongly typed values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided: for testing or explicit override)
  2. RESTGUARD_CONFIG environment variable (if set)
  3. `.restguard/config.yaml` (working directory: for development)
  4. `~/.restguard/config.yaml` (home directory: for production deployments)

Environment variable overrides:
  RESTGUARD_DEBUG     : overrides debug (true/false)
  RESTGUARD_API_PREFIX: overrides api.prefix
  RESTGUARD_CONFIG    : sets an explicit config file path to try first

Example::

    version: 1
    debug: false
    api:
      prefix: wp-json
      send_nocache_headers: true
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from restguard.constants import DEFAULT_API_PREFIX
from restguard.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".restguard/config.yaml",
    os.path.expanduser("~/.restguard/config.yaml"),
]

_TRUE_VALUES: frozenset[str] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: frozenset[str] = frozenset({"0", "false", "no", "off"})


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ApiConfig:
    """API namespace configuration.

    prefix:               Path segment that marks API requests (``/wp-json/...``).
                          Blank values fall back to DEFAULT_API_PREFIX.
    send_nocache_headers: Send the host no-cache header set on every API response,
                          authenticated or not.
    """

    prefix: str = DEFAULT_API_PREFIX
    send_nocache_headers: bool = True

    @property
    def effective_prefix(self) -> str:
        prefix = (self.prefix or "").strip().strip("/")
        return prefix or DEFAULT_API_PREFIX


@dataclass
class Config:
    """Root configuration object populated from .restguard/config.yaml.

    All fields have safe defaults: RestGuard can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    api: ApiConfig = field(default_factory=ApiConfig)
    debug: bool = False
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a wrongly typed ``api`` section, ``api.prefix``,
                           ``api.send_nocache_headers`` or ``debug``.
        """
        api_raw = raw.get("api") or {}
        if not isinstance(api_raw, dict):
            _fail(f"CONFIG ERROR: 'api' must be a mapping, got {type(api_raw).__name__}.")

        prefix = api_raw.get("prefix", DEFAULT_API_PREFIX)
        if prefix is None:
            prefix = ""
        if not isinstance(prefix, str):
            _fail(f"CONFIG ERROR: api.prefix must be a string, got {prefix!r}.")

        api = ApiConfig(
            prefix=prefix,
            send_nocache_headers=_require_bool(
                api_raw.get("send_nocache_headers", True), "api.send_nocache_headers"
            ),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            api=api,
            debug=_require_bool(raw.get("debug", False), "debug"),
            path=path,
        )


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate RestGuard configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).

    Environment overrides are applied last, whether or not a file was found.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       wrongly typed values, or an invalid ``RESTGUARD_DEBUG``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("RESTGUARD_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found: using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "RestGuard refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )

    if isinstance(version, bool) or version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.debug:
        logger.warning(
            "debug is enabled: blocked method override attempts will be logged "
            "with their header values. Disable in production to keep logs small."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        api_prefix=config.api.effective_prefix,
        debug=config.debug,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If RESTGUARD_DEBUG is set but not a recognised boolean.
    """
    env_debug = os.environ.get("RESTGUARD_DEBUG")
    if env_debug is not None:
        config.debug = _require_bool(env_debug, "RESTGUARD_DEBUG")

    env_prefix = os.environ.get("RESTGUARD_API_PREFIX")
    if env_prefix is not None:
        config.api.prefix = env_prefix


def _require_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    _fail(f"CONFIG ERROR: {name} must be a boolean (true/false), got {value!r}.")


def _fail(msg: str) -> NoReturn:
    print(msg, file=sys.stderr)
    raise SystemExit(1)
