"""
Configuration settings for the self-assessment engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Study API (generation + evaluation)
    # ========================================
    study_api_url: str = Field(
        default="http://127.0.0.1:5000",
        description="Base URL of the study API serving quiz generation and evaluation",
    )
    study_api_timeout_ms: int = Field(
        default=30000,
        description="Per-request timeout for study API calls",
    )

    # ========================================
    # Offline question bank
    # ========================================
    question_bank_path: str | None = Field(
        default=None,
        description="JSON question bank used when running without the API",
    )

    # ========================================
    # Mastery & readiness thresholds
    # ========================================
    weak_area_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Concepts with mean mastery below this are weak areas",
    )
    excellent_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Lowest overall score reported as 'Excellent'",
    )
    good_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Lowest overall score reported as 'Good'",
    )

    # ========================================
    # Session defaults
    # ========================================
    default_question_count: int = Field(
        default=10,
        description="Question count offered by default (5, 10 or 20)",
    )
    timeout_resubmit_delay_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Delay before re-issuing a failed time-up submission",
    )
    timeout_resubmit_attempts: int = Field(
        default=3,
        ge=0,
        description="Automatic re-submissions after a failed time-up submission",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for question sampling and feedback phrasing (None = random)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @field_validator("default_question_count")
    @classmethod
    def _check_question_count(cls, value: int) -> int:
        if value not in (5, 10, 20):
            raise ValueError("default_question_count must be one of 5, 10, 20")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
