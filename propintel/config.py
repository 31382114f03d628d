"""
PropIntel Learning Configuration.

Pydantic Settings v2 — loads from .env, environment variables.
"""

from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)


class Settings(BaseSettings):
    """Learning subsystem settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Application ──────────────────────────────────────────────────────
    app_name: str = "PropIntel Learning"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")  # json or console

    # ── Storage ──────────────────────────────────────────────────────────
    data_dir: Path = Field(default=Path("./data/learning"), alias="LEARNING_DATA_DIR")
    storage_backend: str = Field(default="json", alias="LEARNING_STORAGE_BACKEND")  # json or memory
    save_learning_reports: bool = Field(default=True, alias="SAVE_LEARNING_REPORTS")

    # ── Learning switches ────────────────────────────────────────────────
    learning_enabled: bool = Field(default=True, alias="LEARNING_ENABLED")

    # Confidence gates (0-100)
    min_prediction_confidence: float = Field(default=30.0, alias="MIN_PREDICTION_CONFIDENCE")
    fine_region_confidence: float = Field(default=60.0, alias="FINE_REGION_CONFIDENCE")
    city_region_confidence: float = Field(default=40.0, alias="CITY_REGION_CONFIDENCE")
    learned_criteria_confidence: float = Field(default=50.0, alias="LEARNED_CRITERIA_CONFIDENCE")

    # Prediction validation
    validation_min_age_days: int = Field(default=30, alias="VALIDATION_MIN_AGE_DAYS")

    # Windows
    quality_history_window: int = Field(default=10, alias="QUALITY_HISTORY_WINDOW")
    moving_average_window: int = Field(default=10, alias="MOVING_AVERAGE_WINDOW")
    feedback_trend_window_days: int = Field(default=30, alias="FEEDBACK_TREND_WINDOW_DAYS")

    # Running-average windows (arithmetic mean until full, then EMA with alpha = 1/window)
    regional_smoothing_window: int = Field(default=50, alias="REGIONAL_SMOOTHING_WINDOW")
    selection_accuracy_window: int = Field(default=5, alias="SELECTION_ACCURACY_WINDOW")
    valuation_accuracy_window: int = Field(default=10, alias="VALUATION_ACCURACY_WINDOW")
    prompt_smoothing_window: int = Field(default=50, alias="PROMPT_SMOOTHING_WINDOW")

    # A/B testing
    ab_min_uses: int = Field(default=30, alias="AB_MIN_USES")
    ab_chi_square_threshold: float = Field(default=3.84, alias="AB_CHI_SQUARE_THRESHOLD")
    ab_default_duration_days: int = Field(default=7, alias="AB_DEFAULT_DURATION_DAYS")

    # Location learning
    location_decay_days: int = Field(default=30, alias="LOCATION_DECAY_DAYS")
    max_relationships: int = Field(default=1000, alias="MAX_RELATIONSHIPS")
    max_urbanisations: int = Field(default=500, alias="MAX_URBANISATIONS")

    # Progressive deepening
    deepening_min_hours: float = Field(default=24.0, alias="DEEPENING_MIN_HOURS")
    deepening_min_quality: float = Field(default=80.0, alias="DEEPENING_MIN_QUALITY")
    deepening_min_rating: float = Field(default=3.5, alias="DEEPENING_MIN_RATING")

    # Reporting
    report_top_recommendations: int = Field(default=10, alias="REPORT_TOP_RECOMMENDATIONS")

    @field_validator(
        "regional_smoothing_window",
        "selection_accuracy_window",
        "valuation_accuracy_window",
        "prompt_smoothing_window",
    )
    @classmethod
    def validate_window(cls, v: int) -> int:
        """Smoothing windows must fold in at least one observation."""
        if v < 1:
            raise ValueError("smoothing window must be >= 1")
        return v

    @property
    def is_memory_backend(self) -> bool:
        return self.storage_backend.lower() == "memory"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    settings = Settings()

    logger.info(
        "settings_loaded",
        environment=settings.environment,
        storage_backend=settings.storage_backend,
        data_dir=str(settings.data_dir),
        learning_enabled=settings.learning_enabled,
    )

    return settings
