"""Configuration schema: one dataclass per .notionpatch.toml section."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

OutputFormat = Literal["terminal", "json"]


@dataclass
class AuthConfig:
    token: Optional[str] = None  # prefer NOTION_TOKEN over storing it here


@dataclass
class ClientConfig:
    timeout_ms: int = 30_000


@dataclass
class RateLimitConfig:
    max_calls: int = 3  # Notion's average of three requests per second
    window_seconds: float = 1.0


@dataclass
class RetryConfig:
    max_attempts: int = 3  # total, including the first attempt
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True


@dataclass
class OutputConfig:
    format: OutputFormat = "terminal"


@dataclass
class NotionPatchConfig:
    version: str = "1.0"
    auth: AuthConfig = field(default_factory=AuthConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    source: Optional[str] = None  # path the config was loaded from
