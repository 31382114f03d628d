"""
Feedback Analyzer.

Turns the raw feedback collection into learning insights:

1. Overall trend - 10-feedback moving average of the overall rating
2. Component insights - averages and short-term trend per report section
3. Correction patterns - which fields users fix, and how sure they are
4. Outcome validation - how close estimates were to real sale prices
5. Recommendations - plain-language actions for operators
"""

from collections import Counter, defaultdict
from typing import Any, Optional

import structlog

from propintel.feedback.schemas import (
    ComponentName,
    Feedback,
    PropertyCorrection,
    TrendDirection,
)
from propintel.feedback.store import FeedbackStore

logger = structlog.get_logger(__name__)


MOVING_AVERAGE_WINDOW: int = 10
TREND_SPAN: int = 5                     # moving averages compared: last 5 vs previous 5
OVERALL_TREND_DELTA: float = 0.1
COMPONENT_TREND_DELTA: float = 0.2
MIN_CORRECTIONS_FOR_PATTERN: int = 3
TARGET_AVERAGE_RATING: float = 3.5
COMPONENT_ATTENTION_RATING: float = 3.0
CORRECTION_RATE_ALERT: float = 0.1      # corrections per feedback


class FeedbackAnalyzer:
    """Analyzes the feedback collection to guide improvements."""

    def __init__(self, store: FeedbackStore, window: int = MOVING_AVERAGE_WINDOW):
        self._store = store
        self._window = window

    def generate_insights(self) -> dict[str, Any]:
        feedback = sorted(self._store.all(), key=lambda f: f.timestamp)
        insights = {
            "overall_trends": self.analyze_overall_trends(feedback),
            "component_insights": self.analyze_components(feedback),
            "correction_patterns": self.analyze_corrections(feedback),
            "outcome_validation": self.analyze_outcomes(feedback),
            "recommendations": self.generate_recommendations(feedback),
        }
        logger.debug("feedback_insights_generated", feedback=len(feedback))
        return insights

    # =========================================================================
    # TRENDS
    # =========================================================================

    def analyze_overall_trends(self, feedback: list[Feedback]) -> Optional[dict[str, Any]]:
        if not feedback:
            return None

        moving_averages = []
        for end in range(self._window, len(feedback) + 1):
            window = feedback[end - self._window:end]
            moving_averages.append({
                "date": window[-1].timestamp.isoformat(),
                "rating": sum(f.overall_rating for f in window) / len(window),
            })

        return {
            "total_feedback": len(feedback),
            "average_rating": sum(f.overall_rating for f in feedback) / len(feedback),
            "moving_averages": moving_averages,
            "trend": _series_trend([m["rating"] for m in moving_averages]),
        }

    def analyze_components(self, feedback: list[Feedback]) -> dict[str, Any]:
        stats: dict[str, Any] = {}
        for component in ComponentName:
            ratings = [r for f in feedback if (r := f.rating_for(component))]
            if not ratings:
                continue
            stats[component.value] = {
                "average_rating": sum(r.rating for r in ratings) / len(ratings),
                "average_accuracy": sum(r.accuracy for r in ratings) / len(ratings),
                "average_usefulness": sum(r.usefulness for r in ratings) / len(ratings),
                "total_ratings": len(ratings),
                "comments": [r.comments for r in ratings if r.comments],
                "trend": _component_trend(feedback, component),
            }
        return stats

    # =========================================================================
    # CORRECTIONS & OUTCOMES
    # =========================================================================

    def analyze_corrections(self, feedback: list[Feedback]) -> Optional[dict[str, Any]]:
        corrections = [c for f in feedback for c in f.corrections]
        if not corrections:
            return None

        by_field: dict[str, list[PropertyCorrection]] = defaultdict(list)
        for correction in corrections:
            by_field[correction.field].append(correction)

        patterns = {
            field: {
                "total_corrections": len(items),
                "average_confidence": sum(c.confidence for c in items) / len(items),
                "common_sources": _common_sources(items),
                "pattern": _correction_pattern(items),
            }
            for field, items in by_field.items()
        }
        most_corrected = sorted(patterns, key=lambda k: patterns[k]["total_corrections"], reverse=True)

        return {
            "total_corrections": len(corrections),
            "corrections_by_field": patterns,
            "most_corrected_fields": most_corrected[:5],
        }

    def analyze_outcomes(self, feedback: list[Feedback]) -> Optional[dict[str, Any]]:
        outcomes = [f.outcome_verification for f in feedback if f.outcome_verification]
        if not outcomes:
            return None

        price_accuracy = [
            max(0.0, 100 - abs(o.final_sale_ratio - 1.0) * 100)
            for o in outcomes
            if o.final_sale_ratio
        ]
        return {
            "total_validations": len(outcomes),
            "price_accuracy": price_accuracy,
            "investment_outcomes": [o.investment_outcome.value for o in outcomes if o.investment_outcome],
            "market_trend_accuracy": [
                o.market_trend_accuracy.value for o in outcomes if o.market_trend_accuracy
            ],
        }

    # =========================================================================
    # RECOMMENDATIONS
    # =========================================================================

    def generate_recommendations(self, feedback: list[Feedback]) -> list[str]:
        recommendations: list[str] = []
        stats = self._store.get_stats()

        if stats.total_feedback and stats.average_rating < TARGET_AVERAGE_RATING:
            recommendations.append(
                "Overall satisfaction is below target. Focus on improving core analysis quality."
            )

        for component, rating in stats.component_satisfaction.items():
            if 0 < rating < COMPONENT_ATTENTION_RATING:
                recommendations.append(
                    f"{component} component needs improvement (rating: {rating:.1f}/5)"
                )

        if stats.recent_trend == TrendDirection.DECLINING:
            recommendations.append(
                "Recent trend is declining. Investigate recent changes and user feedback patterns."
            )

        corrections = self.analyze_corrections(feedback)
        if corrections and corrections["total_corrections"] > len(feedback) * CORRECTION_RATE_ALERT:
            recommendations.append(
                "High correction rate detected. Review data sources and validation processes."
            )

        return recommendations


def _series_trend(values: list[float]) -> TrendDirection:
    if len(values) < 2:
        return TrendDirection.STABLE
    recent = values[-TREND_SPAN:]
    previous = values[-2 * TREND_SPAN:-TREND_SPAN]
    if not previous:
        return TrendDirection.STABLE
    diff = sum(recent) / len(recent) - sum(previous) / len(previous)
    if diff > OVERALL_TREND_DELTA:
        return TrendDirection.IMPROVING
    if diff < -OVERALL_TREND_DELTA:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def _component_trend(feedback: list[Feedback], component: ComponentName) -> TrendDirection:
    ratings = [r.rating for f in feedback[-10:] if (r := f.rating_for(component))]
    if len(ratings) < 4:
        return TrendDirection.STABLE
    diff = sum(ratings[-2:]) / 2 - sum(ratings[-4:-2]) / 2
    if diff > COMPONENT_TREND_DELTA:
        return TrendDirection.IMPROVING
    if diff < -COMPONENT_TREND_DELTA:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def _common_sources(corrections: list[PropertyCorrection]) -> list[str]:
    counts = Counter(c.source for c in corrections if c.source)
    return [source for source, _ in counts.most_common(3)]


def _correction_pattern(corrections: list[PropertyCorrection]) -> str:
    if len(corrections) < MIN_CORRECTIONS_FOR_PATTERN:
        return "insufficient_data"
    average = sum(c.confidence for c in corrections) / len(corrections)
    if average > 4:
        return "high_confidence_corrections"
    if average < 2:
        return "low_confidence_corrections"
    return "mixed_confidence"
