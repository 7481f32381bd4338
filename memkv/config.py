"""
Configuration management for memkv.

All configuration is done via environment variables. This module provides
typed, frozen configuration sections with validation, aggregated by
BackendConfig.

Invariants:
    - All settings have defaults matching a stock single-node cluster
    - Configuration is read once when a backend handle is built
    - Invalid values raise ConfigError, never fall back silently

How to change safely:
    - Add new settings with defaults that keep existing tests passing
    - Keep env var names prefixed with MEMKV_ (except logging)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .errors import ConfigError

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'", setting=name)


@dataclass(frozen=True)
class StoreConfig:
    """Bucket store configuration.

    Attributes:
        default_n_val: Replication factor in the default bucket properties
        list_empty_buckets: Whether list_buckets includes buckets with no keys
    """

    default_n_val: int = 3
    list_empty_buckets: bool = False

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            default_n_val=_env_int("MEMKV_DEFAULT_N_VAL", 3),
            list_empty_buckets=_env_bool("MEMKV_LIST_EMPTY_BUCKETS", "false"),
        )


@dataclass(frozen=True)
class SearchConfig:
    """Search index registry defaults.

    Attributes:
        default_schema: Schema assigned to indexes created without one
        default_n_val: Replication factor assigned to new indexes
    """

    default_schema: str = "_yz_default"
    default_n_val: int = 3

    @classmethod
    def from_env(cls) -> SearchConfig:
        """Load configuration from environment variables."""
        return cls(
            default_schema=os.getenv("MEMKV_SEARCH_DEFAULT_SCHEMA", "_yz_default"),
            default_n_val=_env_int("MEMKV_SEARCH_DEFAULT_N_VAL", 3),
        )


@dataclass(frozen=True)
class MapReduceConfig:
    """Map/reduce configuration.

    Attributes:
        language: The only phase function language accepted
    """

    language: str = "javascript"

    @classmethod
    def from_env(cls) -> MapReduceConfig:
        """Load configuration from environment variables."""
        return cls(language=os.getenv("MEMKV_MAPRED_LANGUAGE", "javascript").lower())


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class BackendConfig:
    """Complete backend configuration.

    Attributes:
        store: Bucket store configuration
        search: Search registry defaults
        mapreduce: Map/reduce configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    mapreduce: MapReduceConfig = field(default_factory=MapReduceConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> BackendConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigError: If configuration is invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            search=SearchConfig.from_env(),
            mapreduce=MapReduceConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if self.store.default_n_val < 1:
            raise ConfigError("MEMKV_DEFAULT_N_VAL must be at least 1", "MEMKV_DEFAULT_N_VAL")
        if self.search.default_n_val < 1:
            raise ConfigError(
                "MEMKV_SEARCH_DEFAULT_N_VAL must be at least 1", "MEMKV_SEARCH_DEFAULT_N_VAL"
            )
        if not self.search.default_schema:
            raise ConfigError(
                "MEMKV_SEARCH_DEFAULT_SCHEMA must not be empty", "MEMKV_SEARCH_DEFAULT_SCHEMA"
            )
        if not self.mapreduce.language:
            raise ConfigError("MEMKV_MAPRED_LANGUAGE must not be empty", "MEMKV_MAPRED_LANGUAGE")
        if self.observability.log_format not in ("json", "text"):
            raise ConfigError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text",
                "LOG_FORMAT",
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Backend configuration loaded",
            extra={
                "default_n_val": self.store.default_n_val,
                "list_empty_buckets": self.store.list_empty_buckets,
                "search_default_schema": self.search.default_schema,
                "mapred_language": self.mapreduce.language,
                "log_level": self.observability.log_level,
            },
        )
