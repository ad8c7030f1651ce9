"""Configuration management for the deduplication engine."""

import copy
import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field, field_validator


class MatchingConfig(BaseModel):
    """Thresholds for the three detection passes."""

    min_phone_digits: int = Field(default=7, ge=1)
    max_name_distance: int = Field(default=2, ge=0)
    min_name_length: int = Field(default=3, ge=1)


class DependentCollection(BaseModel):
    """A table whose rows reference a contact by id."""

    name: str
    foreign_key: str = "contact_id"
    touch_updated_at: bool = False


DEFAULT_DEPENDENT_COLLECTIONS = [
    {"name": "deals", "foreign_key": "contact_id", "touch_updated_at": True},
    {"name": "crm_interactions", "foreign_key": "contact_id", "touch_updated_at": True},
    {"name": "emails", "foreign_key": "contact_id", "touch_updated_at": False},
    {"name": "calendar_events", "foreign_key": "contact_id", "touch_updated_at": False},
]


class MergeConfig(BaseModel):
    """Collections touched when duplicates are absorbed."""

    contacts_collection: str = "contacts"
    dependent_collections: List[DependentCollection] = Field(
        default_factory=lambda: [DependentCollection(**c) for c in DEFAULT_DEPENDENT_COLLECTIONS]
    )


class LedgerConfig(BaseModel):
    """Where dismissed groups are persisted."""

    directory: str = str(Path.home() / ".crmdedupe")
    storage_key: str = "dismissed-duplicates-v1"

    def path_for(self, user_id: Optional[str] = None) -> Path:
        """Ledger file for ``user_id``; dismissals are scoped per user."""
        name = self.storage_key if not user_id else f"{self.storage_key}-{user_id}"
        return Path(self.directory).expanduser() / f"{name}.json"


class LoggingConfig(BaseModel):
    format: str = "json"
    level: str = "INFO"
    file: Optional[str] = None

    @field_validator("format")
    def validate_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError(f"Unsupported log format: {v}")
        return v

    @field_validator("level")
    def validate_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unsupported log level: {v}")
        return level


class DedupeConfig(BaseModel):
    """Validated engine configuration."""

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages configuration loading and validation."""

    DEFAULT_CONFIG = {
        "matching": {
            "min_phone_digits": 7,
            "max_name_distance": 2,
            "min_name_length": 3,
        },
        "merge": {
            "contacts_collection": "contacts",
            "dependent_collections": copy.deepcopy(DEFAULT_DEPENDENT_COLLECTIONS),
        },
        "ledger": {
            "directory": str(Path.home() / ".crmdedupe"),
            "storage_key": "dismissed-duplicates-v1",
        },
        "logging": {
            "format": "json",
            "level": "INFO",
            "file": None,
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config manager.

        Args:
            config_path: Path to config file. If None, uses defaults + env vars
        """
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[DedupeConfig] = None

    def load(self) -> DedupeConfig:
        """Load configuration from file and environment."""
        if self._config:
            return self._config

        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            with open(self.config_path, "r") as f:
                file_config = json.load(f)
                config_dict = self._deep_merge(config_dict, file_config)

        config_dict = self._apply_env_overrides(config_dict)

        self._config = DedupeConfig(**config_dict)
        return self._config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        log_level = os.getenv("CRMDEDUPE_LOG_LEVEL")
        if log_level:
            config.setdefault("logging", {})["level"] = log_level

        log_format = os.getenv("CRMDEDUPE_LOG_FORMAT")
        if log_format:
            config.setdefault("logging", {})["format"] = log_format

        ledger_dir = os.getenv("CRMDEDUPE_LEDGER_DIR")
        if ledger_dir:
            config.setdefault("ledger", {})["directory"] = ledger_dir

        min_digits = os.getenv("CRMDEDUPE_MIN_PHONE_DIGITS")
        if min_digits:
            config.setdefault("matching", {})["min_phone_digits"] = min_digits

        max_distance = os.getenv("CRMDEDUPE_MAX_NAME_DISTANCE")
        if max_distance:
            config.setdefault("matching", {})["max_name_distance"] = max_distance

        return config

    def save_template(self, path: str):
        """Save a configuration template file."""
        with open(path, "w") as f:
            json.dump(self.DEFAULT_CONFIG, f, indent=2)


def load_config(config_path: Optional[str] = None) -> DedupeConfig:
    """Load configuration."""
    return ConfigManager(config_path).load()
