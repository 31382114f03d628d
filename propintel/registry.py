"""
Service Registry — composition root for the learning subsystem.

Every component is built once, on first access, over stores opened from
the configured backend, and then shared. The orchestrator receives the
same component instances the rest of the application sees.

Usage:
    from propintel.registry import get_services
    services = get_services()
    services.learning.update_regional_knowledge(session_id, property, report)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from propintel.config import Settings, get_settings
from propintel.log_config import configure_logging
from propintel.predictions.outcomes import ActualOutcomeSource
from propintel.storage import KeyValueStore, open_store

logger = structlog.get_logger(__name__)


@dataclass
class ServiceRegistry:
    """
    Registry of the learning components.

    Lazy-initializes components on first access to avoid import cycles.
    Components are singletons within the registry's lifetime.
    """

    settings: Settings = field(default_factory=get_settings)
    outcome_source: Optional[ActualOutcomeSource] = None

    _stores: dict[str, KeyValueStore] = field(default_factory=dict, repr=False)
    _feedback: Optional[object] = field(default=None, repr=False)
    _feedback_analyzer: Optional[object] = field(default=None, repr=False)
    _predictions: Optional[object] = field(default=None, repr=False)
    _prompts: Optional[object] = field(default=None, repr=False)
    _regional: Optional[object] = field(default=None, repr=False)
    _comparables: Optional[object] = field(default=None, repr=False)
    _location: Optional[object] = field(default=None, repr=False)
    _deepening: Optional[object] = field(default=None, repr=False)
    _learning: Optional[object] = field(default=None, repr=False)

    def store(self, name: str) -> KeyValueStore:
        """The named collection, opened once."""
        if name not in self._stores:
            self._stores[name] = open_store(name, self.settings)
        return self._stores[name]

    @property
    def feedback(self):
        """User feedback store."""
        if self._feedback is None:
            from propintel.feedback import FeedbackStore
            self._feedback = FeedbackStore(self.store("user-feedback"), settings=self.settings)
            logger.debug("service_initialized", service="FeedbackStore")
        return self._feedback

    @property
    def feedback_analyzer(self):
        if self._feedback_analyzer is None:
            from propintel.feedback import FeedbackAnalyzer
            self._feedback_analyzer = FeedbackAnalyzer(
                self.feedback, window=self.settings.moving_average_window
            )
            logger.debug("service_initialized", service="FeedbackAnalyzer")
        return self._feedback_analyzer

    @property
    def predictions(self):
        """Prediction tracker."""
        if self._predictions is None:
            from propintel.predictions import PredictionTracker
            self._predictions = PredictionTracker(
                self.store("market-predictions"),
                self.store("prediction-validations"),
                outcome_source=self.outcome_source,
                settings=self.settings,
            )
            logger.debug("service_initialized", service="PredictionTracker")
        return self._predictions

    @property
    def prompts(self):
        """Prompt performance store."""
        if self._prompts is None:
            from propintel.prompts import PromptPerformanceStore
            self._prompts = PromptPerformanceStore(
                self.store("prompt-performance"),
                self.store("prompt-optimizations"),
                self.store("ab-tests"),
                settings=self.settings,
            )
            logger.debug("service_initialized", service="PromptPerformanceStore")
        return self._prompts

    @property
    def regional(self):
        """Regional intelligence."""
        if self._regional is None:
            from propintel.regional import RegionalIntelligence
            self._regional = RegionalIntelligence(self.store("regional-knowledge"), settings=self.settings)
            logger.debug("service_initialized", service="RegionalIntelligence")
        return self._regional

    @property
    def comparables(self):
        """Comparable selection engine."""
        if self._comparables is None:
            from propintel.comparables import ComparableSelectionEngine
            self._comparables = ComparableSelectionEngine(
                self.store("comparable-intelligence"), settings=self.settings
            )
            logger.debug("service_initialized", service="ComparableSelectionEngine")
        return self._comparables

    @property
    def location(self):
        """Location learner."""
        if self._location is None:
            from propintel.location import LocationLearner
            self._location = LocationLearner(
                self.store("location-relationships"),
                self.store("location-urbanisations"),
                self.store("location-clusters"),
                self.store("location-learning"),
                settings=self.settings,
            )
            logger.debug("service_initialized", service="LocationLearner")
        return self._location

    @property
    def deepening(self):
        """Progressive deepening."""
        if self._deepening is None:
            from propintel.deepening import ProgressiveDeepening
            self._deepening = ProgressiveDeepening(self.store("analysis-history"), settings=self.settings)
            logger.debug("service_initialized", service="ProgressiveDeepening")
        return self._deepening

    @property
    def learning(self):
        """Learning orchestrator over the shared components."""
        if self._learning is None:
            from propintel.learning import LearningOrchestrator
            self._learning = LearningOrchestrator(
                feedback=self.feedback,
                predictions=self.predictions,
                prompts=self.prompts,
                regional=self.regional,
                comparables=self.comparables,
                location=self.location,
                deepening=self.deepening,
                feedback_analyzer=self.feedback_analyzer,
                settings=self.settings,
            )
            logger.debug("service_initialized", service="LearningOrchestrator")
        return self._learning


# ── Singleton ─────────────────────────────────────────────────────────

_registry: Optional[ServiceRegistry] = None


def get_services() -> ServiceRegistry:
    """The process-wide registry; the first call also configures logging."""
    global _registry
    if _registry is None:
        settings = get_settings()
        configure_logging(settings)
        _registry = ServiceRegistry(settings=settings)
        logger.info("service_registry_created", backend=settings.storage_backend)
    return _registry


def reset_services() -> None:
    """Reset the registry (for testing)."""
    global _registry
    _registry = None
