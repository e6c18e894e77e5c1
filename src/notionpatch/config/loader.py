"""Load and merge configuration from .notionpatch.toml, CLI flags, and env vars."""

from __future__ import annotations

import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from notionpatch.config.defaults import CONFIG_FILENAME, DEFAULT_TOML
from notionpatch.config.schema import (
    AuthConfig,
    ClientConfig,
    NotionPatchConfig,
    OutputConfig,
    RateLimitConfig,
    RetryConfig,
)
from notionpatch.errors import AuthError
from notionpatch.redactor import mask_token

logger = logging.getLogger(__name__)

TOKEN_ENV = "NOTION_TOKEN"


class ConfigError(Exception):
    """Raised when config is malformed or unreadable."""


def find_config_file(
    cwd: Optional[Path] = None,
    override: Optional[str] = None,
    home: Optional[Path] = None,
) -> Optional[Path]:
    """Locate the config file: *override*, then ./, then ~/."""
    if override:
        p = Path(override)
        if not p.is_file():
            raise ConfigError(f"Config file not found: {override}")
        return p
    for directory in (cwd or Path.cwd(), home or Path.home()):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _parse_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _merge_env_overrides(cfg: NotionPatchConfig) -> None:
    """Apply NOTIONPATCH_* environment variable overrides."""
    if val := os.environ.get("NOTIONPATCH_FORMAT"):
        if val in ("terminal", "json"):
            cfg.output.format = val  # type: ignore[assignment]
    if val := os.environ.get("NOTIONPATCH_MAX_ATTEMPTS"):
        try:
            attempts = int(val)
        except ValueError:
            raise ConfigError(f"NOTIONPATCH_MAX_ATTEMPTS must be an integer, got {val!r}")
        if attempts >= 1:
            cfg.retry.max_attempts = attempts


def _build_section(data: Dict[str, Any], cls: type, section: str):
    """Build a dataclass from a TOML section dict, ignoring unknown keys."""
    section_data = data.get(section, {})
    if not isinstance(section_data, dict):
        raise ConfigError(f"[{section}] must be a table")
    valid_fields = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in section_data.items() if k in valid_fields}
    return cls(**filtered)


def _validate(cfg: NotionPatchConfig) -> None:
    if cfg.output.format not in ("terminal", "json"):
        raise ConfigError(f"[output] format must be 'terminal' or 'json', got {cfg.output.format!r}")
    if cfg.rate_limit.max_calls < 1 or cfg.rate_limit.window_seconds <= 0:
        raise ConfigError("[rate_limit] needs max_calls >= 1 and window_seconds > 0")
    if cfg.retry.max_attempts < 1:
        raise ConfigError("[retry] max_attempts must be >= 1")
    if cfg.client.timeout_ms <= 0:
        raise ConfigError("[client] timeout_ms must be > 0")


def load_config(
    config_override: Optional[str] = None,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> NotionPatchConfig:
    """Load, validate, and return a NotionPatchConfig."""
    config_path = find_config_file(cwd, config_override, home)

    if config_path is None:
        cfg = NotionPatchConfig()
    else:
        raw = _parse_toml(config_path)
        cfg = NotionPatchConfig(
            version=str(raw.get("version", "1.0")),
            auth=_build_section(raw, AuthConfig, "auth"),
            client=_build_section(raw, ClientConfig, "client"),
            rate_limit=_build_section(raw, RateLimitConfig, "rate_limit"),
            retry=_build_section(raw, RetryConfig, "retry"),
            output=_build_section(raw, OutputConfig, "output"),
            source=str(config_path),
        )
        logger.debug("Loaded configuration from %s", config_path)

    _merge_env_overrides(cfg)
    _validate(cfg)
    return cfg


def resolve_token(
    cli_token: Optional[str] = None,
    config: Optional[NotionPatchConfig] = None,
) -> str:
    """Pick the API token: --token, then NOTION_TOKEN, then the config file."""
    if cli_token:
        logger.debug("Using token from --token (%s)", mask_token(cli_token))
        return cli_token
    env_token = os.environ.get(TOKEN_ENV)
    if env_token:
        logger.debug("Using token from %s (%s)", TOKEN_ENV, mask_token(env_token))
        return env_token
    if config is not None and config.auth.token:
        logger.debug(
            "Using token from %s (%s)", config.source or "config", mask_token(config.auth.token)
        )
        return config.auth.token
    raise AuthError()


def write_starter_config(path: Path) -> Path:
    """Write the starter config to *path*; refuses to overwrite."""
    if path.exists():
        raise ConfigError(f"{path} already exists; remove it first to regenerate.")
    path.write_text(DEFAULT_TOML, encoding="utf-8")
    return path
