"""
Progressive Deepening.

Tracks how often each property identity has been analysed and decides
whether the next analysis should climb one level of the prompt ladder.

Upgrade gate (all must hold):
- current level below the ladder maximum
- last quality score above ``deepening_min_quality``
- last attached feedback, if any, rated above ``deepening_min_rating``
- more than ``deepening_min_hours`` since the last analysis
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from propintel.clock import resolve_now
from propintel.config import Settings, get_settings
from propintel.deepening.ladder import PromptLadder
from propintel.deepening.schemas import AnalysisHistory, AttachedFeedback, DeepeningStrategy
from propintel.feedback.schemas import Feedback
from propintel.identity import property_id
from propintel.schemas.report import PropertyData
from propintel.scoring import mean
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


CONFIDENCE_THRESHOLD: float = 75.0
TOP_PROPERTIES: int = 5


def history_key(property: PropertyData) -> str:
    return property_id(property.address, property.city, property.province)


class ProgressiveDeepening:
    """Per-property analysis history driving the level ladder."""

    def __init__(
        self,
        history: KeyValueStore,
        ladder: Optional[PromptLadder] = None,
        settings: Optional[Settings] = None,
    ):
        self._history = history
        self._ladder = ladder or PromptLadder()
        self._settings = settings or get_settings()

    @property
    def ladder(self) -> PromptLadder:
        return self._ladder

    def get_history(self, property: PropertyData) -> Optional[AnalysisHistory]:
        record = self._history.get(history_key(property))
        return AnalysisHistory.model_validate(record) if record else None

    def record_analysis(
        self,
        property: PropertyData,
        session_id: str,
        quality: float,
        prompt_version: Optional[str] = None,
        data_gaps: Iterable[str] = (),
        now: Optional[datetime] = None,
    ) -> AnalysisHistory:
        now = resolve_now(now)
        key = history_key(property)
        window = self._settings.quality_history_window

        with self._history.transaction():
            record = self._history.get(key)
            if record is None:
                history = AnalysisHistory(
                    id=key,
                    address=property.address,
                    city=property.city,
                    province=property.province,
                    first_analysis_date=now,
                    last_analysis_date=now,
                )
            else:
                history = AnalysisHistory.model_validate(record)

            history.analysis_count += 1
            history.last_analysis_date = now
            history.quality_scores = [*history.quality_scores, float(quality)][-window:]
            history.session_ids.append(session_id)

            level = self._ladder.current_level(history.analysis_count)
            version = prompt_version or self._ladder.prompt_for(level).version
            history.prompt_versions.append(version)

            for gap in data_gaps:
                if gap not in history.data_gaps:
                    history.data_gaps.append(gap)

            self._history.set(key, history.model_dump(mode="json"))

        logger.info(
            "analysis_recorded",
            property_id=key,
            analysis_count=history.analysis_count,
            quality=quality,
        )
        return history

    def add_user_feedback(self, property: PropertyData, feedback: Feedback) -> bool:
        """Attach feedback to the property's history. False when it was never analysed."""
        key = history_key(property)
        with self._history.transaction():
            record = self._history.get(key)
            if record is None:
                return False
            history = AnalysisHistory.model_validate(record)
            history.user_feedback.append(AttachedFeedback(
                feedback_id=feedback.id,
                overall_rating=feedback.overall_rating,
                timestamp=feedback.timestamp,
            ))
            self._history.set(key, history.model_dump(mode="json"))
        return True

    def note_regional_update(self, property: PropertyData) -> None:
        key = history_key(property)
        with self._history.transaction():
            record = self._history.get(key)
            if record is None:
                return
            history = AnalysisHistory.model_validate(record)
            history.regional_knowledge_updates += 1
            self._history.set(key, history.model_dump(mode="json"))

    # =========================================================================
    # LEVEL DECISIONS
    # =========================================================================

    def current_level(self, history: AnalysisHistory) -> int:
        return self._ladder.current_level(history.analysis_count)

    def should_upgrade(self, history: AnalysisHistory, now: Optional[datetime] = None) -> bool:
        now = resolve_now(now)

        if self.current_level(history) >= self._ladder.max_level:
            return False

        if not history.quality_scores or history.quality_scores[-1] <= self._settings.deepening_min_quality:
            return False

        if history.user_feedback and history.user_feedback[-1].overall_rating <= self._settings.deepening_min_rating:
            return False

        elapsed = now - history.last_analysis_date
        return elapsed > timedelta(hours=self._settings.deepening_min_hours)

    def get_deepening_strategy(
        self,
        property: PropertyData,
        now: Optional[datetime] = None,
    ) -> Optional[DeepeningStrategy]:
        now = resolve_now(now)
        history = self.get_history(property)
        if history is None or not self.should_upgrade(history, now):
            return None

        current = self.current_level(history)
        next_level = self._ladder.next_level(current)
        prompt = self._ladder.prompt_for(next_level)
        if prompt is None:
            return None

        strategy = DeepeningStrategy(
            property_id=history.id,
            current_level=current,
            next_level=next_level,
            template=prompt.template,
            focus_areas=list(prompt.focus_areas),
            additional_queries=self._ladder.queries_for(prompt, property.city, now.year),
            expected_improvements=list(prompt.expected_improvements),
            confidence_threshold=CONFIDENCE_THRESHOLD,
            last_updated=now,
        )
        logger.info(
            "deepening_strategy_selected",
            property_id=history.id,
            current_level=current,
            next_level=next_level,
        )
        return strategy

    # =========================================================================
    # STATS
    # =========================================================================

    def all_histories(self) -> list[AnalysisHistory]:
        return [AnalysisHistory.model_validate(r) for r in self._history.values()]

    def get_stats(self) -> dict[str, Any]:
        histories = self.all_histories()
        top = sorted(histories, key=lambda h: (-h.analysis_count, h.id))[:TOP_PROPERTIES]
        return {
            "total_properties": len(histories),
            "average_analyses_per_property": mean(h.analysis_count for h in histories) or 0.0,
            "most_analyzed_properties": [
                {
                    "property_id": h.id,
                    "address": h.address,
                    "analysis_count": h.analysis_count,
                    "current_level": self.current_level(h),
                }
                for h in top
            ],
        }
