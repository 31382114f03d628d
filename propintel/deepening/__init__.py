"""
Progressive analysis deepening.

Usage:
    from propintel.deepening import ProgressiveDeepening

    deepening = ProgressiveDeepening(open_store("analysis-history"))
    deepening.record_analysis(property, session_id, quality=85)
    strategy = deepening.get_deepening_strategy(property)
"""

from propintel.deepening.engine import ProgressiveDeepening, history_key
from propintel.deepening.ladder import FOCUS_QUERIES, LADDER, PromptLadder
from propintel.deepening.schemas import (
    AnalysisHistory,
    AttachedFeedback,
    DeepeningStrategy,
    LevelPerformance,
    ProgressivePrompt,
)

__all__ = [
    "FOCUS_QUERIES",
    "LADDER",
    "AnalysisHistory",
    "AttachedFeedback",
    "DeepeningStrategy",
    "LevelPerformance",
    "ProgressiveDeepening",
    "ProgressivePrompt",
    "PromptLadder",
    "history_key",
]
