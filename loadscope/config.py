"""Configuration loading — loadscope.yaml, env vars, .env file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from loadscope.models.attribution import ThirdPartyProvider
from loadscope.models.config import (
    ImpactThresholds,
    PerformanceBudget,
    RetentionConfig,
    TrendModelConfig,
)

logger = logging.getLogger(__name__)


class FileConfig(BaseModel):
    """Sections read from loadscope.yaml. Missing or invalid sections keep defaults."""

    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    impact: ImpactThresholds = Field(default_factory=ImpactThresholds)
    budget: PerformanceBudget = Field(default_factory=PerformanceBudget)
    trend_model: TrendModelConfig = Field(default_factory=TrendModelConfig)
    providers: dict[str, ThirdPartyProvider] = Field(default_factory=dict)


class Settings(BaseModel):
    """Global application settings resolved from .env + env vars + config file."""

    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    storage_dir: Path = Field(default=Path("./loadscope_sessions"))
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    impact: ImpactThresholds = Field(default_factory=ImpactThresholds)
    budget: PerformanceBudget = Field(default_factory=PerformanceBudget)
    trend_model: TrendModelConfig = Field(default_factory=TrendModelConfig)
    providers: dict[str, ThirdPartyProvider] = Field(default_factory=dict)

    @classmethod
    def load(cls, config_yaml: Path | str = "loadscope.yaml") -> Settings:
        """Load settings from .env file, environment variables, and loadscope.yaml."""
        # Load .env file (does not override existing env vars)
        load_dotenv()

        settings = cls(openrouter_api_key=os.environ.get("OPENROUTER_API_KEY", ""))

        config_path = Path(config_yaml)
        if config_path.exists():
            file_config = load_file_config(config_path)
            settings.retention = file_config.retention
            settings.impact = file_config.impact
            settings.budget = file_config.budget
            settings.trend_model = file_config.trend_model
            settings.providers = file_config.providers

        base_url = os.environ.get("OPENROUTER_BASE_URL")
        if base_url:
            settings.openrouter_base_url = base_url

        storage_dir = os.environ.get("LOADSCOPE_STORAGE_DIR")
        if storage_dir:
            settings.storage_dir = Path(storage_dir)

        trend_model = os.environ.get("LOADSCOPE_TREND_MODEL")
        if trend_model:
            settings.trend_model = settings.trend_model.model_copy(update={"id": trend_model})

        return settings


def _section(raw: dict[str, Any], name: str, model: type[BaseModel]) -> Any:
    value = raw.get(name)
    if value is None:
        return model()
    if not isinstance(value, dict):
        logger.warning("Ignoring '%s' section in config: expected a mapping", name)
        return model()
    try:
        return model.model_validate(value)
    except ValidationError as e:
        logger.warning("Invalid '%s' section in config, using defaults: %s", name, e)
        return model()


def _budget_section(raw: dict[str, Any]) -> PerformanceBudget:
    value = raw.get("budget")
    if isinstance(value, str):
        try:
            return PerformanceBudget.preset(value)
        except ValueError as e:
            logger.warning("%s. Using default budget", e)
            return PerformanceBudget()
    return _section(raw, "budget", PerformanceBudget)


def _providers_section(raw: dict[str, Any]) -> dict[str, ThirdPartyProvider]:
    value = raw.get("providers") or {}
    if not isinstance(value, dict):
        logger.warning("Ignoring 'providers' section in config: expected a mapping")
        return {}

    providers: dict[str, ThirdPartyProvider] = {}
    for domain, cfg in value.items():
        if not isinstance(cfg, dict):
            logger.warning("Skipping invalid provider entry for '%s'", domain)
            continue
        try:
            providers[str(domain).lower()] = ThirdPartyProvider.model_validate(cfg)
        except ValidationError as e:
            logger.warning("Skipping provider '%s': %s", domain, e)
    return providers


def load_file_config(path: Path) -> FileConfig:
    """Parse loadscope.yaml into FileConfig."""
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.warning("Failed to parse %s: %s. Using defaults", path, e)
        return FileConfig()

    if not raw:
        return FileConfig()
    if not isinstance(raw, dict):
        logger.warning("Ignoring %s: top level is not a mapping", path)
        return FileConfig()

    return FileConfig(
        retention=_section(raw, "retention", RetentionConfig),
        impact=_section(raw, "impact", ImpactThresholds),
        budget=_budget_section(raw),
        trend_model=_section(raw, "trend_model", TrendModelConfig),
        providers=_providers_section(raw),
    )
