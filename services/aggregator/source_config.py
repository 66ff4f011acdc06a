"""
Source configuration loader for the aggregator service.

This module centralizes reading and validating ingestion settings from
`config/sources.yml`. The CLI, the service factory and tests all go through
these helpers so configuration handling stays consistent.

Example:
    mode: live                  # or "synthetic"
    quota_allocation: weighted  # or "equal"
    inter_source_delay_seconds: 2
    max_workers: 2
    providers:
      jsearch:
        adapter: jsearch
        weight: 0.7
        retry: {strategy: wait_and_retry, max_attempts: 3, backoff_seconds: 60}
        params: {inter_page_delay: 2}
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError
from .orchestrator import ALLOCATION_EQUAL, DEFAULT_INTER_SOURCE_DELAY, VALID_ALLOCATIONS
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

MODE_LIVE = "live"
MODE_SYNTHETIC = "synthetic"
VALID_MODES = {MODE_LIVE, MODE_SYNTHETIC}

DEFAULT_MAX_WORKERS = 2


@dataclass
class ProviderConfig:
    """Configuration for a single source provider."""

    adapter: str
    enabled: bool = True
    weight: float = 1.0
    params: dict[str, Any] = field(default_factory=dict)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy.wait_and_retry)
    synthetic: dict[str, Any] = field(default_factory=dict)


@dataclass
class AggregatorConfig:
    """Service-wide ingestion settings plus the provider table."""

    mode: str = MODE_LIVE
    quota_allocation: str = ALLOCATION_EQUAL
    inter_source_delay_seconds: float = DEFAULT_INTER_SOURCE_DELAY
    max_workers: int = DEFAULT_MAX_WORKERS
    providers: dict[str, ProviderConfig] = field(default_factory=dict)

    @property
    def enabled_providers(self) -> dict[str, ProviderConfig]:
        return {name: cfg for name, cfg in self.providers.items() if cfg.enabled}


def _project_root() -> Path:
    """Return the project root path based on this file's location."""
    return Path(__file__).resolve().parent.parent.parent


def _resolve_path(config_path: str | None) -> Path:
    if config_path:
        return Path(config_path)
    env_path = os.getenv("AGGREGATOR_CONFIG")
    if env_path:
        return Path(env_path)
    return _project_root() / "config" / "sources.yml"


def _read_yaml(path: Path) -> Mapping[str, Any] | None:
    if not path.exists():
        logger.error("Sources configuration file not found: %s", path)
        raise FileNotFoundError(f"Sources configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            raw_config = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse sources configuration: %s", exc)
        raise ConfigurationError(f"Invalid YAML in sources configuration: {exc}") from exc

    if raw_config is not None and not isinstance(raw_config, Mapping):
        raise ConfigurationError("Sources configuration must be a mapping at the top level")
    return raw_config


def _parse_provider(provider_name: str, provider_data: Any) -> ProviderConfig:
    if not isinstance(provider_data, Mapping):
        raise ConfigurationError(f"Invalid provider configuration for '{provider_name}'")

    adapter = provider_data.get("adapter")
    if not isinstance(adapter, str) or not adapter.strip():
        raise ConfigurationError(f"Provider '{provider_name}' must define a non-empty `adapter` string")

    enabled = bool(provider_data.get("enabled", True))

    weight = provider_data.get("weight", 1.0)
    if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight < 0:
        raise ConfigurationError(f"`weight` for provider '{provider_name}' must be a non-negative number")

    params = provider_data.get("params") or {}
    if not isinstance(params, Mapping):
        raise ConfigurationError(f"`params` for provider '{provider_name}' must be a mapping")

    synthetic = provider_data.get("synthetic") or {}
    if not isinstance(synthetic, Mapping):
        raise ConfigurationError(f"`synthetic` for provider '{provider_name}' must be a mapping")

    try:
        retry_policy = RetryPolicy.from_config(provider_data.get("retry"))
    except ValueError as exc:
        raise ConfigurationError(f"Provider '{provider_name}': {exc}") from exc

    return ProviderConfig(
        adapter=adapter.strip(),
        enabled=enabled,
        weight=float(weight),
        params=dict(params),
        retry_policy=retry_policy,
        synthetic=dict(synthetic),
    )


def load_sources_config(config_path: str | None = None) -> dict[str, ProviderConfig]:
    """
    Load provider configuration from YAML file.

    Args:
        config_path: Optional override for the config file path. When omitted,
            `AGGREGATOR_CONFIG` is used, then `config/sources.yml` relative to
            the project root.

    Returns:
        Dictionary mapping provider names to `ProviderConfig` objects.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If the YAML file cannot be parsed or has invalid structure
            (a ValueError subclass).
    """
    return load_aggregator_config(config_path).providers


def load_aggregator_config(config_path: str | None = None) -> AggregatorConfig:
    """
    Load the full aggregator configuration.

    The `AGGREGATOR_MODE` environment variable, when set, overrides `mode`.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If the YAML file cannot be parsed or has invalid values.
    """
    path = _resolve_path(config_path)
    raw_config = _read_yaml(path)

    if not raw_config:
        logger.warning("Sources configuration file is empty: %s", path)
        raw_config = {}

    mode = os.getenv("AGGREGATOR_MODE") or raw_config.get("mode", MODE_LIVE)
    if mode not in VALID_MODES:
        raise ConfigurationError(f"`mode` must be one of {sorted(VALID_MODES)}, got '{mode}'")

    allocation = raw_config.get("quota_allocation", ALLOCATION_EQUAL)
    if allocation not in VALID_ALLOCATIONS:
        raise ConfigurationError(
            f"`quota_allocation` must be one of {sorted(VALID_ALLOCATIONS)}, got '{allocation}'"
        )

    try:
        inter_source_delay = float(
            raw_config.get("inter_source_delay_seconds", DEFAULT_INTER_SOURCE_DELAY)
        )
        max_workers = int(raw_config.get("max_workers", DEFAULT_MAX_WORKERS))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid numeric setting in sources configuration: {exc}") from exc
    if inter_source_delay < 0:
        raise ConfigurationError("`inter_source_delay_seconds` must not be negative")
    if max_workers < 1:
        raise ConfigurationError("`max_workers` must be at least 1")

    providers_section = raw_config.get("providers", {})
    if not isinstance(providers_section, Mapping):
        raise ConfigurationError("`providers` section is invalid in sources configuration")

    providers = {
        name: _parse_provider(name, data) for name, data in providers_section.items()
    }

    config = AggregatorConfig(
        mode=mode,
        quota_allocation=allocation,
        inter_source_delay_seconds=inter_source_delay,
        max_workers=max_workers,
        providers=providers,
    )

    logger.info(
        "Loaded sources configuration",
        extra={
            "mode": config.mode,
            "sources_count": len(providers),
            "enabled_sources": list(config.enabled_providers),
        },
    )
    return config


__all__ = [
    "AggregatorConfig",
    "ProviderConfig",
    "load_aggregator_config",
    "load_sources_config",
    "MODE_LIVE",
    "MODE_SYNTHETIC",
]
