"""Configuration management for the agent dispatch service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AnthropicConfig:
    """Anthropic API configuration for the Claude agent."""

    api_key: str
    model: str = "claude-3-opus-20240229"
    max_concurrent: int = 8


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    environment: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False
    agents_config_dir: str = "config/agents"
    agents_store_path: Optional[str] = None
    redis_url: Optional[str] = None
    cache_ttl_seconds: int = 300
    max_workers: int = 4
    max_retries: int = 3
    retry_backoff_seconds: float = 0.5
    job_retention_seconds: int = 3600
    shutdown_grace_seconds: float = 10.0
    subprocess_timeout_seconds: float = 10.0
    capture_max_lines: int = 1000
    tmux_binary: str = "tmux"
    anthropic: Optional[AnthropicConfig] = None
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        anthropic_key = os.getenv("ANTHROPIC_API_KEY")

        anthropic_config = None
        if anthropic_key:
            anthropic_config = AnthropicConfig(
                api_key=anthropic_key,
                model=os.getenv("ANTHROPIC_MODEL", "claude-3-opus-20240229"),
                max_concurrent=_env_int("ANTHROPIC_MAX_CONCURRENT", 8),
            )

        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_logs=_env_bool("LOG_JSON"),
            agents_config_dir=os.getenv("AGENTS_CONFIG_DIR", "config/agents"),
            agents_store_path=os.getenv("AGENTS_STORE_PATH") or None,
            redis_url=os.getenv("REDIS_URL") or None,
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", 300),
            max_workers=_env_int("MAX_WORKERS", 4),
            max_retries=_env_int("MAX_RETRIES", 3),
            retry_backoff_seconds=_env_float("RETRY_BACKOFF_SECONDS", 0.5),
            job_retention_seconds=_env_int("JOB_RETENTION_SECONDS", 3600),
            shutdown_grace_seconds=_env_float("SHUTDOWN_GRACE_SECONDS", 10.0),
            subprocess_timeout_seconds=_env_float("SUBPROCESS_TIMEOUT_SECONDS", 10.0),
            capture_max_lines=_env_int("CAPTURE_MAX_LINES", 1000),
            tmux_binary=os.getenv("TMUX_BINARY", "tmux"),
            anthropic=anthropic_config,
            github_token=os.getenv("GITHUB_TOKEN") or None,
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
        )
