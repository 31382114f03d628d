"""
Feedback Store.

Persists user feedback per analysis session and computes the aggregate
satisfaction metrics the rest of the learning system reads.

Usage:
    from propintel.feedback import FeedbackStore

    store = FeedbackStore(open_store("user-feedback", settings), settings=settings)
    result = store.submit({"session_id": "s1", "overall_rating": 4})
    stats = store.get_stats()
"""

from datetime import datetime, timedelta
from typing import Any, Optional, Union

import pydantic
import structlog

from propintel.clock import resolve_now
from propintel.config import Settings, get_settings
from propintel.exceptions import FeedbackValidationError
from propintel.feedback.schemas import (
    ComponentName,
    ComponentRating,
    Feedback,
    FeedbackStats,
    OutcomeVerification,
    SubmissionResult,
    TrendDirection,
)
from propintel.identity import new_id
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

LOW_RATING_THRESHOLD: int = 3           # component rating or accuracy below this is "low"
TREND_DELTA: float = 0.2                # rating change that counts as a trend


def validate_feedback(feedback: Feedback) -> None:
    """
    Re-check the rating invariants on an already-built record.

    Models built with ``model_construct`` or mutated after creation skip
    pydantic validation, so the store checks again before persisting.
    """
    if not feedback.session_id or not feedback.session_id.strip():
        raise FeedbackValidationError("Session ID is required", field="session_id")

    if not 1 <= feedback.overall_rating <= 5:
        raise FeedbackValidationError(
            "Overall rating must be between 1 and 5",
            field="overall_rating",
            value=feedback.overall_rating,
        )

    for component, rating in feedback.component_ratings.items():
        for name in ("rating", "accuracy", "usefulness"):
            value = getattr(rating, name)
            if not 1 <= value <= 5:
                raise FeedbackValidationError(
                    f"Invalid rating for component: {component}",
                    field=f"component_ratings.{component}.{name}",
                    value=value,
                )

    for correction in feedback.corrections:
        if not 1 <= correction.confidence <= 5:
            raise FeedbackValidationError(
                f"Invalid correction confidence for field: {correction.field}",
                field="corrections.confidence",
                value=correction.confidence,
            )


def low_rated_components(feedback: Feedback) -> list[ComponentName]:
    """Components whose rating or accuracy fell below 3."""
    return [
        component
        for component, rating in feedback.component_ratings.items()
        if rating.rating < LOW_RATING_THRESHOLD or rating.accuracy < LOW_RATING_THRESHOLD
    ]


def create_feedback_template(session_id: str) -> Feedback:
    """Neutral feedback (all ratings 3) pre-filled for every component."""
    neutral = ComponentRating(rating=3, accuracy=3, usefulness=3)
    return Feedback(
        id=new_id("feedback"),
        session_id=session_id,
        overall_rating=3,
        component_ratings={c: neutral.model_copy() for c in ComponentName},
    )


class FeedbackStore:
    """Keyed feedback collection with aggregate statistics."""

    def __init__(self, store: KeyValueStore, settings: Optional[Settings] = None):
        self._store = store
        self._settings = settings or get_settings()

    # =========================================================================
    # WRITES
    # =========================================================================

    def submit(self, feedback: Union[Feedback, dict[str, Any]]) -> SubmissionResult:
        """Validate and persist feedback. Never raises."""
        try:
            if isinstance(feedback, dict):
                feedback = Feedback.model_validate(feedback)
            validate_feedback(feedback)
        except pydantic.ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            field = ".".join(str(p) for p in first.get("loc", ()))
            logger.info("feedback_rejected", field=field, reason=first.get("msg"))
            return SubmissionResult(success=False, message=f"Invalid feedback data: {field}")
        except FeedbackValidationError as e:
            logger.info("feedback_rejected", field=e.field, reason=e.message)
            return SubmissionResult(success=False, message=e.message)

        self._store.set(feedback.id, feedback.model_dump(mode="json"))
        logger.info(
            "feedback_submitted",
            feedback_id=feedback.id,
            session_id=feedback.session_id,
            rating=feedback.overall_rating,
            corrections=len(feedback.corrections),
        )
        return SubmissionResult(
            success=True,
            message="Feedback submitted successfully",
            feedback_id=feedback.id,
        )

    def update_outcome(self, session_id: str, outcome: OutcomeVerification) -> bool:
        """Attach an outcome to the session's feedback; False when none exists."""
        with self._store.transaction():
            for record in self._store.values():
                if record.get("session_id") != session_id:
                    continue
                feedback = Feedback.model_validate(record)
                feedback.outcome_verification = outcome
                self._store.set(feedback.id, feedback.model_dump(mode="json"))
                logger.info("feedback_outcome_updated", session_id=session_id)
                return True

        logger.info("feedback_outcome_unmatched", session_id=session_id)
        return False

    # =========================================================================
    # READS
    # =========================================================================

    def get_by_session(self, session_id: str) -> Optional[Feedback]:
        for record in self._store.values():
            if record.get("session_id") == session_id:
                return Feedback.model_validate(record)
        return None

    def all(self) -> list[Feedback]:
        return [Feedback.model_validate(r) for r in self._store.values()]

    def get_stats(self, now: Optional[datetime] = None) -> FeedbackStats:
        """Totals, per-component satisfaction, and the recent-vs-previous trend."""
        now = resolve_now(now)
        feedback = self.all()
        if not feedback:
            return FeedbackStats()

        average = sum(f.overall_rating for f in feedback) / len(feedback)

        satisfaction: dict[str, float] = {}
        for component in ComponentName:
            ratings = [r.rating for f in feedback if (r := f.rating_for(component))]
            satisfaction[component.value] = sum(ratings) / len(ratings) if ratings else 0.0

        window = timedelta(days=self._settings.feedback_trend_window_days)
        recent = [f.overall_rating for f in feedback if f.timestamp >= now - window]
        previous = [
            f.overall_rating
            for f in feedback
            if now - 2 * window <= f.timestamp < now - window
        ]

        trend = TrendDirection.STABLE
        if recent and previous:
            change = sum(recent) / len(recent) - sum(previous) / len(previous)
            if change > TREND_DELTA:
                trend = TrendDirection.IMPROVING
            elif change < -TREND_DELTA:
                trend = TrendDirection.DECLINING

        return FeedbackStats(
            total_feedback=len(feedback),
            average_rating=average,
            component_satisfaction=satisfaction,
            recent_trend=trend,
        )

    def __len__(self) -> int:
        return len(self._store)
