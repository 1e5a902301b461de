"""
Settings for scout.

Loaded from a YAML file (settings.yaml). A missing or malformed file falls
back to defaults so the pipeline can run with no configuration at all.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_logger

log = get_logger("scout", "config")

SETTINGS_ENV_VAR = "SCOUT_SETTINGS"
DEFAULT_SETTINGS_PATH = Path(__file__).parent.parent / "config" / "settings.yaml"


class ProviderSettings(BaseModel):
    """Content provider connection."""
    base_url: str = "https://api.firecrawl.dev"
    api_key: Optional[str] = None  # Falls back to FIRECRAWL_API_KEY
    search_timeout_seconds: float = 20


class DiscoverySettings(BaseModel):
    """Search fan-out per run."""
    results_per_term: int = Field(5, ge=1)
    max_search_terms: int = Field(5, ge=1)


class FetchSettings(BaseModel):
    """Scrape options and the sufficiency threshold."""
    timeout_ms: int = Field(15000, ge=1)
    min_content_length: int = Field(500, ge=0)
    formats: list[str] = Field(default_factory=lambda: ["markdown"])
    min_domain_delay_seconds: float = Field(0, ge=0)
    timeout_grace_seconds: float = Field(5, ge=0)  # Client-side wait beyond timeout_ms


class PipelineSettings(BaseModel):
    """Run-level limits."""
    max_in_flight: int = Field(3, ge=1)
    max_fetches_per_run: int = Field(5, ge=0)
    skip_low_priority: bool = False
    lease_ttl_seconds: float = Field(900, gt=0)


class StorageSettings(BaseModel):
    db_path: Path = Path("data/scout.db")


class LoggingSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: str = "INFO"
    json_format: bool = Field(False, alias="json")


class ScoutSettings(BaseModel):
    """All scout settings."""
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(path: Optional[Path] = None) -> ScoutSettings:
    """
    Load settings from YAML.

    Args:
        path: settings.yaml location (defaults to $SCOUT_SETTINGS, then
            scout/config/settings.yaml)

    Returns:
        Validated settings, defaults for anything missing
    """
    # Load environment variables (FIRECRAWL_API_KEY, SCOUT_SETTINGS) from .env
    load_dotenv()

    if path is None:
        env_path = os.environ.get(SETTINGS_ENV_VAR)
        path = Path(env_path) if env_path else DEFAULT_SETTINGS_PATH

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (FileNotFoundError, yaml.YAMLError) as e:
        log.warning("config.load_failed", path=str(path), error=str(e))
        data = {}

    if not isinstance(data, dict):
        log.warning("config.not_a_mapping", path=str(path))
        data = {}

    return ScoutSettings.model_validate(data)
