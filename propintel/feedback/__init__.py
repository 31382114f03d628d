"""
User feedback collection and analysis.

Usage:
    from propintel.feedback import FeedbackStore, FeedbackAnalyzer

    store = FeedbackStore(open_store("user-feedback"))
    store.submit(create_feedback_template("session_1"))
    insights = FeedbackAnalyzer(store).generate_insights()
"""

from propintel.feedback.analyzer import FeedbackAnalyzer
from propintel.feedback.schemas import (
    ComponentName,
    ComponentRating,
    Feedback,
    FeedbackStats,
    InvestmentOutcome,
    OutcomeVerification,
    PropertyCorrection,
    SubmissionResult,
    TrendAccuracyLabel,
    TrendDirection,
)
from propintel.feedback.store import (
    FeedbackStore,
    create_feedback_template,
    low_rated_components,
    validate_feedback,
)

__all__ = [
    "ComponentName",
    "ComponentRating",
    "Feedback",
    "FeedbackAnalyzer",
    "FeedbackStats",
    "FeedbackStore",
    "InvestmentOutcome",
    "OutcomeVerification",
    "PropertyCorrection",
    "SubmissionResult",
    "TrendAccuracyLabel",
    "TrendDirection",
    "create_feedback_template",
    "low_rated_components",
    "validate_feedback",
]
