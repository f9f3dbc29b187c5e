"""
Configuration settings for the PlayPath progression engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PLAYPATH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///~/.playpath/progress.db",
        description="SQLAlchemy connection string for the local progress store",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level for loguru output",
    )

    # ========================================
    # Streaks
    # ========================================
    timezone: str = Field(
        default="UTC",
        description="IANA timezone used to decide calendar-day boundaries for streaks",
    )

    # ========================================
    # Subscription
    # ========================================
    free_activities_per_subject: int = Field(
        default=5,
        ge=0,
        description="Number of activities per subject (by sequence) open to trial accounts",
    )

    # ========================================
    # Difficulty Adviser
    # ========================================
    difficulty_window_size: int = Field(
        default=10,
        ge=1,
        description="Most recent attempts per subject considered for difficulty",
    )
    difficulty_window_days: int = Field(
        default=30,
        ge=1,
        description="Attempts older than this many days are ignored for difficulty",
    )
    difficulty_escalate_threshold: float = Field(
        default=2.5,
        description="Mean stars over confirming attempts needed to move up a tier",
    )
    difficulty_deescalate_threshold: float = Field(
        default=1.5,
        description="Mean stars over confirming attempts that moves down a tier",
    )
    difficulty_confirmation_attempts: int = Field(
        default=2,
        ge=2,
        description="Consecutive attempts at the current tier required to change tier",
    )
    apply_difficulty_changes: bool = Field(
        default=True,
        description="Persist difficulty recommendations on the child profile",
    )

    # ========================================
    # Crown Challenges
    # ========================================
    crown_mastery_threshold: float = Field(
        default=2.7,
        description="Recent mean stars in a subject required for crown challenges",
    )
    crown_window_size: int = Field(
        default=10,
        ge=1,
        description="Recent attempts per subject used for crown mastery",
    )
    crown_min_attempts: int = Field(
        default=5,
        ge=1,
        description="Minimum attempts in the crown window before mastery can count",
    )
    crown_perfect_run: int = Field(
        default=3,
        ge=1,
        description="Consecutive 3-star Medium-tier completions required for crown challenges",
    )

    # ========================================
    # Learning Paths
    # ========================================
    learning_path_window: int = Field(
        default=10,
        ge=1,
        description="Recent attempts whose mean stars pick the learning path tier",
    )
    learning_path_medium_threshold: float = Field(
        default=2.5,
        description="Recent mean stars at which learning paths target Medium",
    )
    learning_path_hard_threshold: float = Field(
        default=2.8,
        description="Recent mean stars at which learning paths target Hard",
    )
    milestone_interval: int = Field(
        default=5,
        ge=1,
        description="Every Nth activity in a subject's sequence is a milestone",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_difficulty_config(self) -> dict[str, float | int]:
        """Get difficulty adviser configuration as a dictionary."""
        return {
            "window_size": self.difficulty_window_size,
            "window_days": self.difficulty_window_days,
            "escalate_threshold": self.difficulty_escalate_threshold,
            "deescalate_threshold": self.difficulty_deescalate_threshold,
            "confirmation_attempts": self.difficulty_confirmation_attempts,
        }

    def get_crown_config(self) -> dict[str, float | int]:
        """Get crown challenge configuration as a dictionary."""
        return {
            "mastery_threshold": self.crown_mastery_threshold,
            "window_size": self.crown_window_size,
            "min_attempts": self.crown_min_attempts,
            "perfect_run": self.crown_perfect_run,
        }

    def get_learning_path_config(self) -> dict[str, float | int]:
        """Get learning path planner configuration as a dictionary."""
        return {
            "window_size": self.learning_path_window,
            "medium_threshold": self.learning_path_medium_threshold,
            "hard_threshold": self.learning_path_hard_threshold,
            "milestone_interval": self.milestone_interval,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
