from __future__ import annotations
from pathlib import Path
from typing import Literal, Union
import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from src.utils.logger import get_logger

logger = get_logger("config")

SETTINGS_SECTION = "context_filter"


class FilterSettings(BaseSettings):
    """Context filter settings. Environment overrides use the APICONTEXT_ prefix."""

    enabled: bool = True
    budget_mode: Literal["conservative", "balanced", "generous", "auto"] = "auto"
    small_collection_threshold: int = 10
    history_scan_depth: int = 6
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    model_config = SettingsConfigDict(env_prefix="APICONTEXT_")


def load_settings(path: Union[str, Path]) -> FilterSettings:
    """Load settings from YAML. Returns defaults if the file doesn't exist or is invalid.

    The file may hold a ``context_filter:`` mapping or the keys at top level.
    """
    path = Path(path)
    if not path.exists():
        return FilterSettings()
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise TypeError(f"expected a mapping, got {type(raw).__name__}")
        section = raw.get(SETTINGS_SECTION, raw)
        if not isinstance(section, dict):
            raise TypeError(f"'{SETTINGS_SECTION}' must be a mapping")
        return FilterSettings(**section)
    except yaml.YAMLError as e:
        logger.error(f"❌ Invalid YAML in {path}: {e}")
        return FilterSettings()
    except (ValidationError, TypeError, ValueError) as e:
        logger.error(f"❌ Invalid settings schema at {path}: {e}")
        return FilterSettings()


def save_settings(settings: FilterSettings, path: Union[str, Path]) -> None:
    """Save settings under ``context_filter:``, creating parent dirs as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(
            {SETTINGS_SECTION: settings.model_dump()},
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
