"""
Actual-outcome sources.

Where real sale prices come from is outside this subsystem. The tracker
asks a source for each aged prediction; ``None`` means "not known yet"
and the prediction is simply left for a later pass.
"""

from abc import ABC, abstractmethod
from typing import Optional

from propintel.predictions.schemas import ActualOutcome, MarketPrediction


class ActualOutcomeSource(ABC):

    @abstractmethod
    def fetch(self, prediction: MarketPrediction) -> Optional[ActualOutcome]:
        """Return the observed outcome, or None when unavailable."""


class NullOutcomeSource(ActualOutcomeSource):
    """Production default: no outcome feed is wired in."""

    def fetch(self, prediction: MarketPrediction) -> Optional[ActualOutcome]:
        return None


class StaticOutcomeSource(ActualOutcomeSource):
    """Serves outcomes registered by property identity."""

    def __init__(self, outcomes: Optional[dict[str, ActualOutcome]] = None):
        self._outcomes: dict[str, ActualOutcome] = dict(outcomes or {})

    def register(self, property_id: str, outcome: ActualOutcome) -> None:
        self._outcomes[property_id] = outcome

    def fetch(self, prediction: MarketPrediction) -> Optional[ActualOutcome]:
        return self._outcomes.get(prediction.property_id)
