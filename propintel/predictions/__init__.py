"""
Prediction tracking and validation.

Usage:
    from propintel.predictions import PredictionTracker, StaticOutcomeSource

    tracker = PredictionTracker(predictions_store, validations_store, StaticOutcomeSource())
    tracker.store_prediction(session_id, property, report)
    run = tracker.validate_predictions()
"""

from propintel.predictions.outcomes import (
    ActualOutcomeSource,
    NullOutcomeSource,
    StaticOutcomeSource,
)
from propintel.predictions.schemas import (
    ActualOutcome,
    BiasDetection,
    MarketPrediction,
    ModelPerformance,
    PerformanceStats,
    PredictionTimeframe,
    PredictionValidation,
    PriceRange,
    ValidationRun,
)
from propintel.predictions.tracker import (
    PredictionTracker,
    analysis_methods,
    data_quality,
    prediction_investment_grade,
    price_accuracy,
    trend_accuracy,
)

__all__ = [
    "ActualOutcome",
    "ActualOutcomeSource",
    "BiasDetection",
    "MarketPrediction",
    "ModelPerformance",
    "NullOutcomeSource",
    "PerformanceStats",
    "PredictionTimeframe",
    "PredictionTracker",
    "PredictionValidation",
    "PriceRange",
    "StaticOutcomeSource",
    "ValidationRun",
    "analysis_methods",
    "data_quality",
    "prediction_investment_grade",
    "price_accuracy",
    "trend_accuracy",
]
