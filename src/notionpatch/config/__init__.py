"""Configuration loading, schema, and defaults."""

from notionpatch.config.loader import (
    ConfigError,
    load_config,
    resolve_token,
    write_starter_config,
)
from notionpatch.config.schema import NotionPatchConfig, OutputFormat

__all__ = [
    "ConfigError",
    "NotionPatchConfig",
    "OutputFormat",
    "load_config",
    "resolve_token",
    "write_starter_config",
]
