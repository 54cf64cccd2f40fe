import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from argus_core.errors import ConfigError
from argus_core.formatter import message_overhead

DEFAULT_CONFIG: dict = {
    "model": "openai",  # "openai" | "anthropic" | "github"
    "model_name": None,  # None = provider default
    "max_monolithic_size": 500_000,
    "concurrent_unit_reviews": 3,
    "unit_max_attempts": 3,
    "retry_base_delay": 1.0,
    "retry_max_delay": 30.0,
    "pipeline_max_attempts": 3,
    "update_existing_results": True,
    "rate_limit_per_window": 60,
    "window_size_ms": 60_000,
    "dedup_ttl": 24 * 60 * 60,
    "cache_ttl": 7 * 24 * 60 * 60,
    "failure_ttl": 30 * 24 * 60 * 60,
    "max_continuation_messages": 5,
    "platform_message_limit": 65_536,
    "continuation_buffer": 200,
    "skip_tolerance": 0.0,
    "breaker_failure_threshold": 5,
    "breaker_reset_timeout": 60.0,
    "exclude": [],  # fnmatch patterns or directory names never sent to the oracle
    "guidelines": None,  # optional path to a Markdown guidelines file
    "store": "sqlite",  # "sqlite" | "memory"
    "store_path": ".argus.db",
}


def load_config(config_path: str = ".argus.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .argus.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_guidelines(config: dict) -> str:
    """Return the custom guidelines text, or "" when none is configured."""
    custom_path = config.get("guidelines")
    if not custom_path:
        return ""
    p = Path(custom_path)
    if not p.exists():
        raise ConfigError(f"Guidelines file not found: {custom_path}")
    return p.read_text()


@dataclass(frozen=True)
class PipelineSettings:
    """Validated view of the config keys the pipeline reads."""

    max_monolithic_size: int = 500_000
    concurrent_unit_reviews: int = 3
    unit_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    pipeline_max_attempts: int = 3
    update_existing_results: bool = True
    rate_limit_per_window: int = 60
    window_size_ms: int = 60_000
    dedup_ttl: int = 24 * 60 * 60
    cache_ttl: int = 7 * 24 * 60 * 60
    failure_ttl: int = 30 * 24 * 60 * 60
    max_continuation_messages: int = 5
    platform_message_limit: int = 65_536
    continuation_buffer: int = 200
    skip_tolerance: float = 0.0
    exclude: tuple[str, ...] = ()

    def __post_init__(self):
        positive = (
            "max_monolithic_size",
            "concurrent_unit_reviews",
            "unit_max_attempts",
            "pipeline_max_attempts",
            "rate_limit_per_window",
            "window_size_ms",
            "platform_message_limit",
        )
        for name in positive:
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1, got {getattr(self, name)!r}")
        if self.max_continuation_messages < 0:
            raise ConfigError("max_continuation_messages must not be negative")
        if not 0 <= self.continuation_buffer < self.platform_message_limit:
            raise ConfigError("continuation_buffer must be smaller than platform_message_limit")
        if self.platform_message_limit <= message_overhead(self.max_continuation_messages):
            raise ConfigError("platform_message_limit is too small to hold part headers and notices")
        if not 0.0 <= self.skip_tolerance <= 1.0:
            raise ConfigError(f"skip_tolerance must be between 0 and 1, got {self.skip_tolerance!r}")
        if self.retry_base_delay < 0 or self.retry_max_delay < self.retry_base_delay:
            raise ConfigError("retry delays must satisfy 0 <= retry_base_delay <= retry_max_delay")

    @classmethod
    def from_config(cls, config: dict) -> "PipelineSettings":
        try:
            return cls(
                max_monolithic_size=int(config["max_monolithic_size"]),
                concurrent_unit_reviews=int(config["concurrent_unit_reviews"]),
                unit_max_attempts=int(config["unit_max_attempts"]),
                retry_base_delay=float(config["retry_base_delay"]),
                retry_max_delay=float(config["retry_max_delay"]),
                pipeline_max_attempts=int(config["pipeline_max_attempts"]),
                update_existing_results=bool(config["update_existing_results"]),
                rate_limit_per_window=int(config["rate_limit_per_window"]),
                window_size_ms=int(config["window_size_ms"]),
                dedup_ttl=int(config["dedup_ttl"]),
                cache_ttl=int(config["cache_ttl"]),
                failure_ttl=int(config["failure_ttl"]),
                max_continuation_messages=int(config["max_continuation_messages"]),
                platform_message_limit=int(config["platform_message_limit"]),
                continuation_buffer=int(config["continuation_buffer"]),
                skip_tolerance=float(config["skip_tolerance"]),
                exclude=tuple(config.get("exclude") or ()),
            )
        except KeyError as e:
            raise ConfigError(f"Missing configuration key: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e
