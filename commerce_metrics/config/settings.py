"""
E-Commerce Metrics Engine
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety. Business targets live in ConfigTargets, an immutable value that is
passed explicitly into aggregation and alert evaluation.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from commerce_metrics.errors import ConfigurationError

logger = structlog.get_logger(__name__)


class ConfigTargets(BaseModel):
    """
    Business targets and thresholds.

    Every field has a documented default that is used whenever the host
    does not supply a value.
    """

    model_config = ConfigDict(frozen=True)

    target_monthly_profit: float = Field(default=800000, ge=0, description="Monthly gross profit goal")
    target_profit_margin_pct: float = Field(default=25, ge=0, le=100, description="Target profit margin (%)")
    target_roi_pct: float = Field(default=30, ge=0, description="Target ROI (%)")
    max_inventory_value: float = Field(default=1000000, ge=0, description="Inventory value ceiling")
    stagnant_days_threshold: int = Field(default=60, ge=0, description="Days in stock before inventory is stagnant")
    low_stock_threshold: int = Field(default=5, ge=0, description="On-hand units at or below which stock is low")


class DatabaseSettings(BaseSettings):
    """History Store database configuration"""

    model_config = SettingsConfigDict(env_prefix="HISTORY_DB_")

    url: str = Field(default="sqlite:///./data/metrics_history.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_pre_ping: bool = Field(default=True, description="Verify connections before use")


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v.lower()


class NormalizationSettings(BaseSettings):
    """Raw record normalization configuration"""

    model_config = SettingsConfigDict(env_prefix="NORMALIZE_")

    product_key_pattern: str = Field(
        default=r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$",
        description="Regex a product key (marketplace item id) must match",
    )
    currency_symbols: str = Field(default="$€£¥￥", description="Symbols stripped from money fields")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="commerce-metrics", description="Application name")
    app_env: str = Field(default="development", description="Environment")
    version: str = Field(default="1.0.0", description="Application version")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    normalization: NormalizationSettings = Field(default_factory=NormalizationSettings)
    targets: ConfigTargets = Field(default_factory=ConfigTargets)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()


# =============================================================================
# TARGET RESOLUTION
# =============================================================================

@dataclass
class TargetResolution:
    """Targets built from a loose key/value store, plus fallback notes"""
    targets: ConfigTargets
    notes: List[ConfigurationError] = field(default_factory=list)

    @property
    def used_defaults(self) -> bool:
        return bool(self.notes)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def resolve_targets(raw: Optional[Mapping[str, Any]] = None) -> TargetResolution:
    """
    Build ConfigTargets from a host property store.

    Keys may be snake_case or camelCase. Missing, empty, unparseable or
    out-of-range values fall back to the documented default; each fallback
    is logged and returned as a ConfigurationError note. Never raises.
    """
    raw = raw or {}
    accepted: Dict[str, Any] = {}
    notes: List[ConfigurationError] = []

    for name, model_field in ConfigTargets.model_fields.items():
        default = model_field.default
        value = raw.get(name, raw.get(_camel(name)))

        if value is None or (isinstance(value, str) and not value.strip()):
            notes.append(ConfigurationError(name, f"{name} not configured, using default {default}", default))
            continue

        try:
            ConfigTargets(**{name: value})
        except ValidationError as e:
            reason = e.errors()[0].get("msg", "invalid value")
            notes.append(ConfigurationError(name, f"{name}={value!r} rejected ({reason}), using default {default}", default))
            continue

        accepted[name] = value

    for note in notes:
        logger.warning("Configuration fallback", field=note.field, message=str(note), default=note.default)

    return TargetResolution(targets=ConfigTargets(**accepted), notes=notes)
