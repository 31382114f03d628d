"""
Prompt Performance Schemas.

Per-template usage statistics, the rule-based rewrites applied to weak
templates, and paired A/B comparisons between two templates.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field

from propintel.identity import new_id


class PromptCategory(StrEnum):
    LOCATION_ANALYSIS = "location_analysis"
    MARKET_SUMMARY = "market_summary"
    VALUATION = "valuation"
    INVESTMENT_ADVICE = "investment_advice"
    COMPARABLE_ANALYSIS = "comparable_analysis"


class OptimizationType(StrEnum):
    CLARITY = "clarity"
    SPECIFICITY = "specificity"
    CONTEXT = "context"
    FORMAT = "format"
    TONE = "tone"


class PromptIssue(StrEnum):
    LOW_QUALITY = "low_quality"
    LOW_SUCCESS_RATE = "low_success_rate"
    HIGH_ERROR_RATE = "high_error_rate"
    SLOW_RESPONSE = "slow_response"
    CLARITY_ISSUES = "clarity_issues"
    SPECIFICITY_ISSUES = "specificity_issues"


class ABWinner(StrEnum):
    A = "A"
    B = "B"
    TIE = "tie"


class UsageMetrics(BaseModel):
    """Technical outcome of one prompt execution."""
    response_time_ms: Optional[float] = Field(default=None, ge=0)
    success: Optional[bool] = None
    token_usage: Optional[float] = Field(default=None, ge=0)
    cost: Optional[float] = Field(default=None, ge=0)
    error: bool = False


class PromptPerformance(BaseModel):
    """Running statistics for one (category, template) pair."""
    id: str
    category: PromptCategory
    template: str

    use_count: int = 0
    user_ratings: list[float] = Field(default_factory=list)
    average_quality: float = 0.0                    # 0-5, mean of user ratings
    success_observations: int = 0
    success_count: int = 0
    success_rate: float = 0.0                       # percent
    error_count: int = 0
    error_rate: float = 0.0                         # percent of uses
    response_time_samples: int = 0
    average_response_time: float = 0.0              # milliseconds
    token_samples: int = 0
    token_usage: float = 0.0
    cost_per_use: float = 0.0
    user_comments: list[str] = Field(default_factory=list)
    optimization_history: list[str] = Field(default_factory=list)

    last_used: Optional[datetime] = None

    @property
    def user_satisfaction(self) -> float:
        if not self.user_ratings:
            return 0.0
        return sum(self.user_ratings) / len(self.user_ratings)


class PromptMetrics(BaseModel):
    average_quality: float
    success_rate: float
    user_satisfaction: float
    response_time: float
    token_efficiency: float


class PromptOptimization(BaseModel):
    """A deterministic rewrite proposed for an under-performing template."""
    id: str = Field(default_factory=lambda: new_id("opt"))
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    category: PromptCategory
    prompt_id: str
    original_prompt: str
    optimized_prompt: str
    optimization_type: OptimizationType
    optimization_reason: str
    issues: list[PromptIssue] = Field(default_factory=list)
    before_metrics: PromptMetrics
    after_metrics: Optional[PromptMetrics] = None
    strategy: str = "rule_based"


class ABArmResult(BaseModel):
    uses: int = 0
    average_rating: float = 0.0
    successes: int = 0
    success_rate: float = 0.0


class ABTestResult(BaseModel):
    """Paired comparison of two templates over a fixed window."""
    id: str = Field(default_factory=lambda: new_id("ab"))
    category: PromptCategory
    prompt_a: str
    prompt_b: str
    start: datetime
    end: datetime

    arm_a: ABArmResult = Field(default_factory=ABArmResult)
    arm_b: ABArmResult = Field(default_factory=ABArmResult)

    chi_square: float = 0.0
    winner: ABWinner = ABWinner.TIE
    confidence_level: float = 0.0
    statistical_significance: bool = False
