"""
Learning Orchestrator Schemas.

Results of the fan-out operations and the system-wide learning report.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from propintel.feedback.schemas import TrendDirection
from propintel.identity import new_id


class RecommendationPriority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: dict[RecommendationPriority, int] = {
    RecommendationPriority.CRITICAL: 4,
    RecommendationPriority.HIGH: 3,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.LOW: 1,
}


class RecommendationType(StrEnum):
    OPTIMIZATION = "optimization"
    DATA_COLLECTION = "data_collection"
    MODEL_ADJUSTMENT = "model_adjustment"
    PROCESS_IMPROVEMENT = "process_improvement"


class InsightType(StrEnum):
    TREND = "trend"
    PATTERN = "pattern"
    ANOMALY = "anomaly"
    OPPORTUNITY = "opportunity"


class Impact(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SystemRecommendation(BaseModel):
    id: str = Field(default_factory=lambda: new_id("rec"))
    type: RecommendationType
    priority: RecommendationPriority
    source: str                                 # component that raised it
    title: str
    description: str
    expected_impact: str = ""
    steps: list[str] = Field(default_factory=list)


class LearningInsight(BaseModel):
    type: InsightType
    title: str
    description: str
    impact: Impact = Impact.MEDIUM
    confidence: float = Field(default=50.0, ge=0, le=100)
    evidence: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class SystemMetrics(BaseModel):
    """Headline numbers for the whole subsystem, all on a 0-100 scale."""
    total_analyses: int = 0
    average_quality_score: float = 0.0
    user_satisfaction_score: float = 0.0
    prediction_accuracy: float = 0.0
    system_reliability: float = Field(default=80.0, ge=0, le=100)
    quality_trend: TrendDirection = TrendDirection.STABLE


class LearningReport(BaseModel):
    id: str = Field(default_factory=lambda: new_id("report"))
    timestamp: datetime
    overall_metrics: SystemMetrics
    component_metrics: dict[str, Any] = Field(default_factory=dict)
    insights: list[LearningInsight] = Field(default_factory=list)
    recommendations: list[SystemRecommendation] = Field(default_factory=list)
    saved_to: Optional[str] = None


class FeedbackProcessingResult(BaseModel):
    success: bool
    message: str
    feedback_id: Optional[str] = None
    skipped: bool = False
    low_rated_components: list[str] = Field(default_factory=list)
    high_confidence_corrections: list[str] = Field(default_factory=list)
    optimizations_triggered: int = 0


class KnowledgeUpdateResult(BaseModel):
    success: bool
    skipped: bool = False
    analysis_quality: Optional[float] = None
    regions_updated: list[str] = Field(default_factory=list)
    prediction_id: Optional[str] = None
    data_gaps: list[str] = Field(default_factory=list)
    analysis_count: int = 0
    error: Optional[str] = None
