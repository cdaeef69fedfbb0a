"""Configuration for the dbnexus server.

Configuration file location priority:
1. Explicit path passed to ConfigLoader
2. DBNEXUS_CONFIG environment variable
3. Standard location: ~/.dbnexus/config.yml
4. Built-in defaults (if no config file found)

The DBNEXUS_BRIDGE_URL environment variable overrides ``bridge.url``.

Example config file:
```yaml
bridge:
  url: "http://127.0.0.1:8765/bridge"
  timeout: 30
  headers:
    X-Bridge-Token: "local-dev"

simulation:
  enabled: true
  sql_latency_ms: 400
  document_latency_ms: 300

insights:
  sqlite:
    - id: sq-page-count
      category: Storage
      context: database
      title: Page Count
      description: Total pages in the database file.
      query: "PRAGMA page_count;"
      impact: Low
```
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from .core.dialects import (
    Dialect,
    DialectRegistry,
    DiagnosticInsight,
    ImpactLevel,
    InsightCategory,
    InsightContext,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DBNEXUS_CONFIG"
BRIDGE_URL_ENV_VAR = "DBNEXUS_BRIDGE_URL"

# ===========================================================================
# Configuration Models
# ===========================================================================


class BridgeSettings(BaseModel):
    """Where to reach the remote bridge. No URL means no bridge."""

    url: str | None = Field(default=None, description="HTTP endpoint receiving bridge envelopes")
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds to wait for a reply (unset waits indefinitely)",
    )
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")


class SimulationSettings(BaseModel):
    """Built-in simulated connections and their artificial latency."""

    enabled: bool = Field(default=True, description="List the built-in simulated connections")
    sql_latency_ms: int = Field(default=400, ge=0, le=60000)
    document_latency_ms: int = Field(default=300, ge=0, le=60000)


class InsightOverride(BaseModel):
    """A user-defined diagnostic query."""

    id: str = Field(min_length=1)
    category: InsightCategory
    context: InsightContext = "database"
    title: str
    description: str = ""
    query: str = Field(min_length=1)
    impact: ImpactLevel = "Medium"
    min_version: str | None = None

    def to_insight(self) -> DiagnosticInsight:
        return DiagnosticInsight.from_dict(self.model_dump())


class DbNexusConfig(BaseModel):
    """Root configuration model."""

    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
    insights: dict[str, list[InsightOverride]] = Field(
        default_factory=dict,
        description="Replacement insight catalogs keyed by dialect",
    )

    @field_validator("insights")
    @classmethod
    def validate_insight_dialects(
        cls, v: dict[str, list[InsightOverride]]
    ) -> dict[str, list[InsightOverride]]:
        for dialect in v:
            Dialect.parse(dialect)
        return v

    def insight_overrides(self) -> dict[Dialect, list[DiagnosticInsight]]:
        return {
            Dialect.parse(dialect): [override.to_insight() for override in overrides]
            for dialect, overrides in self.insights.items()
        }

    def build_registry(self) -> DialectRegistry:
        return DialectRegistry(overrides=self.insight_overrides())


# ===========================================================================
# Configuration Loader
# ===========================================================================


class ConfigLoader:
    """Loads ``DbNexusConfig`` from YAML.

    Usage:
        loader = ConfigLoader()
        config = loader.load_config()
    """

    def __init__(self, config_path: str | Path | None = None):
        self._config: DbNexusConfig | None = None
        self._explicit_path = Path(config_path) if config_path else None

    def get_config_path(self) -> Path | None:
        """Determine config file path using priority order.

        Returns:
            Path to config file, or None if file doesn't exist
        """
        if self._explicit_path:
            if self._explicit_path.exists():
                return self._explicit_path
            logger.warning(f"Explicit config path does not exist: {self._explicit_path}")
            return None

        env_path_str = os.getenv(CONFIG_ENV_VAR)
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.exists():
                return env_path
            logger.warning(f"{CONFIG_ENV_VAR} path does not exist: {env_path}")
            return None

        standard_path = Path.home() / ".dbnexus" / "config.yml"
        if standard_path.exists():
            return standard_path

        return None

    def load_config(self) -> DbNexusConfig:
        """Load and validate configuration, caching the result.

        Raises:
            ValueError: If the config file is invalid or fails validation
        """
        if self._config is not None:
            return self._config

        config_path = self.get_config_path()

        if config_path is None:
            logger.info("No config file found, using defaults")
            config = DbNexusConfig()
        else:
            logger.info(f"Loading config from: {config_path}")
            try:
                with open(config_path, encoding="utf-8") as f:
                    raw_config = yaml.safe_load(f)

                # An empty file parses to None
                if raw_config is None:
                    raw_config = {}
                if not isinstance(raw_config, dict):
                    raise ValueError("Config file must contain a YAML dictionary")

                config = DbNexusConfig(**raw_config)
            except (yaml.YAMLError, ValueError) as e:
                raise ValueError(f"Failed to load config from {config_path}: {e}") from e

        bridge_url = os.getenv(BRIDGE_URL_ENV_VAR)
        if bridge_url:
            config.bridge.url = bridge_url

        logger.info(
            f"Bridge: {config.bridge.url or 'not configured'}, "
            f"custom insight catalogs: {len(config.insights)}"
        )
        self._config = config
        return config
