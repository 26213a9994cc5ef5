"""
Olist Star-Schema Warehouse
Centralized Configuration Management

Configuration is handled with Pydantic settings, so every value can be
overridden through environment variables or a local ``.env`` file.
"""

from datetime import date
from functools import lru_cache
from typing import List, Tuple
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WarehouseSettings(BaseSettings):
    """Source and output locations for a warehouse run"""

    model_config = SettingsConfigDict(env_prefix="WAREHOUSE_")

    raw_path: str = Field(default="./data/raw", description="Directory holding the raw source extracts")
    output_path: str = Field(default="./data/warehouse", description="Directory the star schema is published to")
    staging_prefix: str = Field(default=".staging", description="Prefix for in-flight staging directories")
    csv_encoding: str = Field(default="utf8", description="Encoding of the raw CSV extracts (polars encoding name)")

    # Date dimension span
    date_dim_start: date = Field(default=date(2016, 1, 1), description="First day of the date dimension")
    date_dim_end: date = Field(default=date(2025, 12, 31), description="Last day of the date dimension")

    @field_validator("date_dim_end")
    @classmethod
    def validate_span(cls, v: date, info) -> date:
        """The date dimension must cover at least one day"""
        start = info.data.get("date_dim_start")
        if start is not None and v < start:
            raise ValueError("date_dim_end must not be before date_dim_start")
        return v


class ConformanceSettings(BaseSettings):
    """Data quality rules applied while conforming raw records"""

    model_config = SettingsConfigDict(env_prefix="CONFORMANCE_")

    # Brazil bounding box for geolocation plausibility
    lat_min: float = Field(default=-34.0, description="Southern latitude bound")
    lat_max: float = Field(default=6.0, description="Northern latitude bound")
    lng_min: float = Field(default=-74.0, description="Western longitude bound")
    lng_max: float = Field(default=-34.0, description="Eastern longitude bound")
    zip_pattern: str = Field(default=r"^\d{5}$", description="Accepted ZIP prefix format")

    null_markers: List[str] = Field(
        default=["", "NULL", "null", "None", "NA", "N/A"],
        description="Raw values treated as missing",
    )

    # Fixed-date holidays as (month, day)
    holidays: List[Tuple[int, int]] = Field(
        default=[(1, 1), (9, 7), (12, 25)],
        description="Month/day pairs flagged as holidays in the date dimension",
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    enable_validation: bool = Field(
        default=True,
        alias="ENABLE_DATA_QUALITY_CHECKS",
        description="Run star-schema quality checks before publishing",
    )

    # Subsystem configurations
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    conformance: ConformanceSettings = Field(default_factory=ConformanceSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

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

    Returns:
        Settings: Application settings instance
    """
    return Settings()
