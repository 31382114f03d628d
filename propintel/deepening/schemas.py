"""
Progressive Deepening Schemas.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from propintel.clock import as_naive_utc


@dataclass(frozen=True)
class LevelPerformance:
    average_quality: float
    success_rate: float
    user_satisfaction: float
    data_completeness: float


@dataclass(frozen=True)
class ProgressivePrompt:
    """One rung of the analysis ladder."""
    version: str
    level: int
    template: str
    focus_areas: tuple[str, ...]
    data_requirements: tuple[str, ...]
    expected_outcome: str
    expected_improvements: tuple[str, ...] = field(default_factory=tuple)
    performance: Optional[LevelPerformance] = None
    is_active: bool = True


class AttachedFeedback(BaseModel):
    feedback_id: str
    overall_rating: int
    timestamp: datetime


class AnalysisHistory(BaseModel):
    """Everything known about past analyses of one property identity."""
    id: str                                         # property identity
    address: str = ""
    city: str = ""
    province: str = ""
    analysis_count: int = 0
    first_analysis_date: datetime
    last_analysis_date: datetime
    quality_scores: list[float] = Field(default_factory=list)       # bounded window
    prompt_versions: list[str] = Field(default_factory=list)
    data_gaps: list[str] = Field(default_factory=list)
    session_ids: list[str] = Field(default_factory=list)
    user_feedback: list[AttachedFeedback] = Field(default_factory=list)
    regional_knowledge_updates: int = 0

    @field_validator("first_analysis_date", "last_analysis_date")
    @classmethod
    def normalize_dates(cls, v: datetime) -> datetime:
        return as_naive_utc(v)


class DeepeningStrategy(BaseModel):
    property_id: str
    current_level: int
    next_level: int
    template: str
    focus_areas: list[str]
    additional_queries: list[str]
    expected_improvements: list[str]
    confidence_threshold: float = 75.0
    last_updated: datetime
