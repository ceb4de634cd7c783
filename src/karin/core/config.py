"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from karin.core.types import BusinessDayType


class DeadlineConfig(BaseSettings):
    """Deadline engine configuration."""

    model_config = {"env_prefix": "KARIN_DEADLINES_"}

    catalog_path: str | None = None
    holidays_path: str | None = None
    region: str | None = None
    warning_days: int = 2
    max_extension_days: int = 30
    calendar_type: BusinessDayType = BusinessDayType.ADMINISTRATIVE


class AuditConfig(BaseSettings):
    """Audit logging configuration."""

    model_config = {"env_prefix": "KARIN_AUDIT_"}

    log_dir: str = "data/audit"
    hash_algorithm: str = "sha256"


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "KARIN_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    deadlines: DeadlineConfig = Field(default_factory=DeadlineConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
