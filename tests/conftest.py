"""
Pytest Configuration and Fixtures.

Provides in-memory stores, sample analysis builders and a fixed clock for
testing the learning components.
"""

import os
from datetime import datetime
from typing import Any, Callable, Optional

import pytest

os.environ["ENVIRONMENT"] = "testing"
os.environ["LEARNING_STORAGE_BACKEND"] = "memory"

from propintel.comparables import ComparableSelectionEngine
from propintel.config import Settings
from propintel.deepening import ProgressiveDeepening
from propintel.feedback import ComponentName, ComponentRating, Feedback, FeedbackStore
from propintel.learning import LearningOrchestrator
from propintel.location import LocationLearner
from propintel.predictions import PredictionTracker, StaticOutcomeSource
from propintel.prompts import PromptPerformanceStore
from propintel.regional import RegionalIntelligence
from propintel.schemas.report import (
    AnalysisReport,
    Comparable,
    Coordinates,
    MarketTrend,
    MarketTrends,
    PropertyData,
    ReportSummary,
    ValuationEstimate,
)
from propintel.storage import InMemoryStore


# ============================================================================
# CLOCK & SETTINGS
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed clock: mid-June, a summer analysis."""
    return datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Memory-backed settings with the documented defaults."""
    return Settings(
        storage_backend="memory",
        data_dir=tmp_path,
        save_learning_reports=False,
        learning_enabled=True,
    )


# ============================================================================
# BUILDERS
# ============================================================================


@pytest.fixture
def make_property() -> Callable[..., PropertyData]:
    """Factory for a subject property in Marbella unless overridden."""

    def _make(**overrides: Any) -> PropertyData:
        data: dict[str, Any] = {
            "address": "Calle Ancha 12, Marbella",
            "city": "Marbella",
            "province": "Málaga",
            "property_type": "apartment",
            "price": 300_000.0,
            "total_area_m2": 100.0,
            "bedrooms": 2,
            "bathrooms": 2,
            "condition": "good",
            "features": ["pool", "terrace", "parking", "lift"],
        }
        data.update(overrides)
        return PropertyData(**data)

    return _make


@pytest.fixture
def make_comparables() -> Callable[..., list[Comparable]]:
    """Factory for comparables priced around ``price_per_m2``."""

    def _make(
        count: int = 3,
        price_per_m2: float = 3000.0,
        area_m2: float = 100.0,
        distance_km: float = 1.0,
        spread: float = 0.0,
    ) -> list[Comparable]:
        comparables = []
        for i in range(count):
            offset = (i - (count - 1) / 2) * spread
            comparables.append(Comparable(
                address=f"Urbanización Los Naranjos {i + 1}, Marbella",
                price=(price_per_m2 + offset) * area_m2,
                area_m2=area_m2,
                distance_km=distance_km,
                bedrooms=2,
                property_type="apartment",
                days_on_market=45,
            ))
        return comparables

    return _make


@pytest.fixture
def make_report(make_comparables) -> Callable[..., AnalysisReport]:
    """Factory for a complete, high-quality analysis report."""

    def _make(
        estimated: float = 300_000.0,
        confidence: float = 85.0,
        comparables: Optional[list[Comparable]] = None,
        trend: MarketTrend = MarketTrend.UP,
        price_change: Optional[float] = 4.0,
        days_on_market: Optional[float] = 60.0,
        **overrides: Any,
    ) -> AnalysisReport:
        data: dict[str, Any] = {
            "valuation": ValuationEstimate(
                low=estimated * 0.9,
                high=estimated * 1.1,
                estimated=estimated,
                confidence=confidence,
            ),
            "market_trends": MarketTrends(
                average_price=3000.0,
                market_trend=trend,
                price_change_6_month=price_change,
                days_on_market=days_on_market,
            ),
            "comparables": make_comparables() if comparables is None else comparables,
            "coordinates": Coordinates(lat=36.51, lng=-4.88),
            "summary": ReportSummary(overview="x" * 250),
        }
        data.update(overrides)
        return AnalysisReport(**data)

    return _make


@pytest.fixture
def make_feedback() -> Callable[..., Feedback]:
    """Factory for feedback with every component rated ``component_rating``."""

    def _make(
        session_id: str = "session_1",
        overall_rating: float = 4.0,
        component_rating: float = 4.0,
        accuracy: Optional[float] = None,
        comments: Optional[dict[ComponentName, str]] = None,
        **overrides: Any,
    ) -> Feedback:
        comments = comments or {}
        ratings = {
            component: ComponentRating(
                rating=component_rating,
                accuracy=accuracy if accuracy is not None else component_rating,
                usefulness=component_rating,
                comments=comments.get(component),
            )
            for component in ComponentName
        }
        data: dict[str, Any] = {
            "session_id": session_id,
            "overall_rating": overall_rating,
            "component_ratings": ratings,
        }
        data.update(overrides)
        return Feedback(**data)

    return _make


# ============================================================================
# COMPONENTS
# ============================================================================


@pytest.fixture
def feedback_store(settings) -> FeedbackStore:
    return FeedbackStore(InMemoryStore("user-feedback"), settings=settings)


@pytest.fixture
def outcome_source() -> StaticOutcomeSource:
    return StaticOutcomeSource()


@pytest.fixture
def tracker(settings, outcome_source) -> PredictionTracker:
    return PredictionTracker(
        InMemoryStore("market-predictions"),
        InMemoryStore("prediction-validations"),
        outcome_source=outcome_source,
        settings=settings,
    )


@pytest.fixture
def prompts(settings) -> PromptPerformanceStore:
    return PromptPerformanceStore(
        InMemoryStore("prompt-performance"),
        InMemoryStore("prompt-optimizations"),
        InMemoryStore("ab-tests"),
        settings=settings,
    )


@pytest.fixture
def regional(settings) -> RegionalIntelligence:
    return RegionalIntelligence(InMemoryStore("regional-knowledge"), settings=settings)


@pytest.fixture
def comparable_engine(settings) -> ComparableSelectionEngine:
    return ComparableSelectionEngine(InMemoryStore("comparable-intelligence"), settings=settings)


@pytest.fixture
def location(settings) -> LocationLearner:
    return LocationLearner(
        InMemoryStore("location-relationships"),
        InMemoryStore("location-urbanisations"),
        InMemoryStore("location-clusters"),
        InMemoryStore("location-learning"),
        settings=settings,
    )


@pytest.fixture
def deepening(settings) -> ProgressiveDeepening:
    return ProgressiveDeepening(InMemoryStore("analysis-history"), settings=settings)


@pytest.fixture
def orchestrator(
    settings, feedback_store, tracker, prompts, regional, comparable_engine, location, deepening
) -> LearningOrchestrator:
    return LearningOrchestrator(
        feedback=feedback_store,
        predictions=tracker,
        prompts=prompts,
        regional=regional,
        comparables=comparable_engine,
        location=location,
        deepening=deepening,
        settings=settings,
    )
