"""
Prediction Tracker — forecast vs reality bookkeeping.

Flow:
1. ``store_prediction`` snapshots a finished report's forecast
2. ``validate_predictions`` picks predictions older than the aging period
   with no validation yet and asks the outcome source for actuals
3. each resolved prediction gets exactly one validation with price, trend
   and overall accuracy, bias and success/failure factors
4. analytics aggregate validations by method, data quality and time

Predictions with no obtainable outcome are skipped, never marked failed,
and picked up again by the next pass.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from propintel.clock import resolve_now
from propintel.config import Settings, get_settings
from propintel.identity import new_id, property_id
from propintel.predictions.outcomes import ActualOutcomeSource, NullOutcomeSource
from propintel.predictions.schemas import (
    ActualOutcome,
    BiasDetection,
    MarketPrediction,
    ModelPerformance,
    PerformanceStats,
    PredictionValidation,
    PriceRange,
    ValidationRun,
)
from propintel.schemas.report import (
    AnalysisReport,
    DevelopmentImpact,
    InvestmentGrade,
    MarketTrend,
    PropertyData,
)
from propintel.scoring import mean, score_to_grade
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

HIGH_QUALITY_THRESHOLD: float = 80.0
MEDIUM_QUALITY_THRESHOLD: float = 60.0
SUCCESS_ACCURACY: float = 80.0          # overall accuracy above this is a success
FAILURE_ACCURACY: float = 50.0          # overall accuracy below this is a failure
PRICE_BIAS_THRESHOLD: float = 5.0       # percent
TREND_PERIODS: int = 3                  # moving averages compared: last 3 vs previous 3
TREND_DELTA: float = 2.0
OVERCONFIDENCE_MARGIN: float = 20.0

METHOD_COMPARABLES = "comparable_analysis"
METHOD_MARKET = "market_data_analysis"
METHOD_DEVELOPMENT = "development_impact_analysis"
METHOD_MOBILITY = "mobility_analysis"
METHOD_AMENITIES = "amenity_analysis"


# ============================================================================
# ACCURACY RULES
# ============================================================================


def price_accuracy(predicted: float, actual: Optional[float]) -> float:
    """100 minus the absolute percentage error, floored at 0."""
    if not actual or actual <= 0:
        return 0.0
    error = abs(predicted - actual) / actual
    return max(0.0, 100.0 - error * 100.0)


def trend_accuracy(predicted: MarketTrend, actual: Optional[MarketTrend]) -> float:
    """100 for a match, 50 for stable-vs-moving, 0 for opposite directions."""
    if actual is None:
        return 0.0
    if predicted == actual:
        return 100.0
    if MarketTrend.STABLE in (predicted, actual):
        return 50.0
    return 0.0


def prediction_investment_grade(report: AnalysisReport) -> InvestmentGrade:
    score = 0
    confidence = report.valuation.confidence if report.valuation else 0
    if confidence > 80:
        score += 20
    elif confidence > 60:
        score += 15
    elif confidence > 40:
        score += 10

    trend = report.market_trends.market_trend if report.market_trends else None
    if trend == MarketTrend.UP:
        score += 15
    elif trend == MarketTrend.STABLE:
        score += 10

    if len(report.comparables) > 5:
        score += 15
    elif len(report.comparables) > 2:
        score += 10

    if len(report.nearby_amenities) > 10:
        score += 10
    elif len(report.nearby_amenities) > 5:
        score += 5

    positive = sum(1 for d in report.future_developments if d.impact == DevelopmentImpact.POSITIVE)
    if positive > 2:
        score += 10
    elif positive > 0:
        score += 5

    return InvestmentGrade(score_to_grade(score))


def data_quality(report: AnalysisReport) -> float:
    """0-100 score of how much supporting data the report carried."""
    quality = 0
    comparables = len(report.comparables)
    if comparables > 5:
        quality += 30
    elif comparables > 2:
        quality += 20
    elif comparables > 0:
        quality += 10

    if report.market_trends and (report.market_trends.average_price or 0) > 0:
        quality += 25

    amenities = len(report.nearby_amenities)
    if amenities > 10:
        quality += 20
    elif amenities > 5:
        quality += 15
    elif amenities > 0:
        quality += 10

    if report.coordinates:
        quality += 15
    if report.future_developments:
        quality += 10

    return float(quality)


def analysis_methods(report: AnalysisReport) -> list[str]:
    methods = []
    if report.comparables:
        methods.append(METHOD_COMPARABLES)
    if report.market_trends and (report.market_trends.average_price or 0) > 0:
        methods.append(METHOD_MARKET)
    if report.future_developments:
        methods.append(METHOD_DEVELOPMENT)
    if report.walkability_score is not None or report.mobility_data:
        methods.append(METHOD_MOBILITY)
    if report.nearby_amenities:
        methods.append(METHOD_AMENITIES)
    return methods


def data_sources(report: AnalysisReport) -> list[str]:
    sources: list[str] = []
    if report.comparables or (report.market_trends and (report.market_trends.average_price or 0) > 0):
        sources.append("property_feed")
    if report.nearby_amenities:
        sources.append("maps")
    if report.future_developments:
        sources.append("web_search")
    return list(dict.fromkeys(sources))


def _trend_of(values: list[float]) -> str:
    if len(values) < 2:
        return "stable"
    recent = values[-TREND_PERIODS:]
    previous = values[-2 * TREND_PERIODS:-TREND_PERIODS]
    if not previous:
        return "stable"
    diff = sum(recent) / len(recent) - sum(previous) / len(previous)
    if diff > TREND_DELTA:
        return "improving"
    if diff < -TREND_DELTA:
        return "declining"
    return "stable"


# ============================================================================
# TRACKER
# ============================================================================


class PredictionTracker:
    """
    Records forecasts and validates them against observed outcomes.

    One validation per prediction; a prediction without an obtainable
    outcome stays pending.
    """

    def __init__(
        self,
        predictions: KeyValueStore,
        validations: KeyValueStore,
        outcome_source: Optional[ActualOutcomeSource] = None,
        settings: Optional[Settings] = None,
    ):
        self._predictions = predictions
        self._validations = validations
        self._source = outcome_source or NullOutcomeSource()
        self._settings = settings or get_settings()

    # ── Recording ───────────────────────────────────────────────────────

    def store_prediction(
        self,
        session_id: str,
        property: PropertyData,
        report: AnalysisReport,
        now: Optional[datetime] = None,
    ) -> Optional[MarketPrediction]:
        """Snapshot the report's forecast. Returns None when it has no valuation."""
        if report.valuation is None:
            logger.debug("prediction_skipped", session_id=session_id, reason="no_valuation")
            return None

        trends = report.market_trends
        distances = [c.distance_km for c in report.comparables if c.distance_km is not None]

        prediction = MarketPrediction(
            id=new_id("pred"),
            session_id=session_id,
            property_id=property_id(property.address, property.city, property.province),
            timestamp=resolve_now(now),
            city=property.city,
            province=property.province,
            property_type=property.property_type,
            asking_price=property.price,
            average_comparable_distance=mean(distances),
            predicted_price_range=PriceRange(
                low=report.valuation.low,
                high=report.valuation.high,
                estimated=report.valuation.estimated,
                confidence=report.valuation.confidence,
            ),
            predicted_market_trend=trends.market_trend if trends else MarketTrend.STABLE,
            predicted_price_change=(trends.price_change_6_month or 0.0) if trends else 0.0,
            investment_grade=prediction_investment_grade(report),
            data_quality=data_quality(report),
            model_confidence=report.valuation.confidence,
            analysis_methods=analysis_methods(report),
            data_sources=data_sources(report),
        )

        self._predictions.set(prediction.id, prediction.model_dump(mode="json"))
        logger.info(
            "prediction_stored",
            prediction_id=prediction.id,
            property_id=prediction.property_id,
            estimated=prediction.predicted_price_range.estimated,
            grade=prediction.investment_grade.value,
        )
        return prediction

    # ── Lookups ─────────────────────────────────────────────────────────

    def get_prediction(self, prediction_id: str) -> Optional[MarketPrediction]:
        record = self._predictions.get(prediction_id)
        return MarketPrediction.model_validate(record) if record else None

    def predictions_for_property(self, property_id: str) -> list[MarketPrediction]:
        return [p for p in self.all_predictions() if p.property_id == property_id]

    def all_predictions(self) -> list[MarketPrediction]:
        return [MarketPrediction.model_validate(r) for r in self._predictions.values()]

    def all_validations(self) -> list[PredictionValidation]:
        return [PredictionValidation.model_validate(r) for r in self._validations.values()]

    def has_validation(self, prediction_id: str) -> bool:
        return any(r.get("prediction_id") == prediction_id for r in self._validations.values())

    def predictions_due_for_validation(self, now: Optional[datetime] = None) -> list[MarketPrediction]:
        """Predictions older than the aging period with no validation yet."""
        cutoff = resolve_now(now) - timedelta(days=self._settings.validation_min_age_days)
        validated = {r.get("prediction_id") for r in self._validations.values()}
        return [
            p for p in self.all_predictions()
            if p.timestamp < cutoff and p.id not in validated
        ]

    # ── Validation ──────────────────────────────────────────────────────

    def validate_predictions(self, now: Optional[datetime] = None) -> ValidationRun:
        now = resolve_now(now)
        due = self.predictions_due_for_validation(now)
        run = ValidationRun(checked=len(due))

        for prediction in due:
            try:
                outcome = self._source.fetch(prediction)
            except Exception as e:
                logger.warning(
                    "outcome_fetch_failed",
                    prediction_id=prediction.id,
                    error=str(e),
                )
                outcome = None

            if outcome is None:
                run.skipped += 1
                continue

            validation = self.create_validation(prediction, outcome, now=now)
            self._validations.set(validation.id, validation.model_dump(mode="json"))
            run.validations.append(validation)

        run.validated = len(run.validations)
        run.accuracy = mean(v.overall_accuracy for v in run.validations) or 0.0

        logger.info(
            "predictions_validated",
            checked=run.checked,
            validated=run.validated,
            skipped=run.skipped,
            accuracy=round(run.accuracy, 2),
        )
        return run

    def create_validation(
        self,
        prediction: MarketPrediction,
        outcome: ActualOutcome,
        now: Optional[datetime] = None,
    ) -> PredictionValidation:
        estimated = prediction.predicted_price_range.estimated
        price_acc = price_accuracy(estimated, outcome.actual_price)
        trend_acc = trend_accuracy(prediction.predicted_market_trend, outcome.actual_market_trend)
        overall = (price_acc + trend_acc) / 2

        bias = BiasDetection(overconfident=prediction.model_confidence > overall)
        if outcome.actual_price and outcome.actual_price > 0 and estimated:
            signed = (estimated - outcome.actual_price) / outcome.actual_price * 100
            if abs(signed) > PRICE_BIAS_THRESHOLD:
                bias.price_range_bias = signed

        precision = 0.0
        if outcome.actual_price:
            precision = min(100.0, price_acc * prediction.model_confidence / 100)

        return PredictionValidation(
            id=new_id("val"),
            prediction_id=prediction.id,
            validation_date=resolve_now(now),
            actual_outcome=outcome,
            price_accuracy=price_acc,
            trend_accuracy=trend_acc,
            overall_accuracy=overall,
            success_factors=self._success_factors(prediction, overall),
            failure_factors=self._failure_factors(prediction, overall),
            model_performance=ModelPerformance(
                accuracy_score=overall,
                precision_score=precision,
                recall_score=prediction.data_quality,
                confidence_calibration=max(0.0, 100 - abs(prediction.model_confidence - price_acc)),
                bias_detection=bias,
            ),
        )

    @staticmethod
    def _success_factors(prediction: MarketPrediction, accuracy: float) -> list[str]:
        factors = []
        if accuracy > SUCCESS_ACCURACY:
            if prediction.data_quality > 80:
                factors.append("high_data_quality")
            if prediction.model_confidence > 80:
                factors.append("high_model_confidence")
            if len(prediction.analysis_methods) > 3:
                factors.append("comprehensive_analysis")
        return factors

    @staticmethod
    def _failure_factors(prediction: MarketPrediction, accuracy: float) -> list[str]:
        factors = []
        if accuracy < FAILURE_ACCURACY:
            if prediction.data_quality < 50:
                factors.append("low_data_quality")
            if prediction.model_confidence < 50:
                factors.append("low_model_confidence")
            if len(prediction.analysis_methods) < 2:
                factors.append("limited_analysis_methods")
        return factors

    # ── Analytics ───────────────────────────────────────────────────────

    def get_performance_stats(self) -> PerformanceStats:
        total = len(self._predictions)
        validations = self.all_validations()
        if not validations:
            return PerformanceStats(total_predictions=total)

        errors = []
        for v in validations:
            prediction = self.get_prediction(v.prediction_id)
            errors.append(abs(prediction.model_confidence - v.overall_accuracy) if prediction else 0.0)

        return PerformanceStats(
            total_predictions=total,
            validated_predictions=len(validations),
            average_accuracy=mean(v.overall_accuracy for v in validations),
            price_accuracy=mean(v.price_accuracy for v in validations),
            trend_accuracy=mean(v.trend_accuracy for v in validations),
            model_calibration=max(0.0, 100 - mean(errors)),
        )

    def get_performance_analytics(self) -> dict[str, Any]:
        stats = self.get_performance_stats()
        validations = self.all_validations()
        bias = self._bias_analysis(validations)
        return {
            "overall_stats": stats.model_dump(),
            "performance_by_method": self._by_method(validations),
            "performance_by_data_quality": self._by_quality(validations),
            "bias_analysis": bias,
            "improvement_trend": self._improvement_trend(validations),
            "recommendations": self._recommendations(stats, bias),
        }

    def _paired(self, validations: list[PredictionValidation]):
        for v in validations:
            prediction = self.get_prediction(v.prediction_id)
            if prediction is not None:
                yield prediction, v

    def _by_method(self, validations: list[PredictionValidation]) -> dict[str, Any]:
        accuracies: dict[str, list[float]] = defaultdict(list)
        for prediction, v in self._paired(validations):
            for method in prediction.analysis_methods:
                accuracies[method].append(v.overall_accuracy)
        return {
            method: {"count": len(values), "average_accuracy": mean(values)}
            for method, values in accuracies.items()
        }

    def _by_quality(self, validations: list[PredictionValidation]) -> dict[str, Any]:
        buckets: dict[str, list[float]] = {"high": [], "medium": [], "low": []}
        for prediction, v in self._paired(validations):
            if prediction.data_quality >= HIGH_QUALITY_THRESHOLD:
                buckets["high"].append(v.overall_accuracy)
            elif prediction.data_quality >= MEDIUM_QUALITY_THRESHOLD:
                buckets["medium"].append(v.overall_accuracy)
            else:
                buckets["low"].append(v.overall_accuracy)
        return {
            name: {"count": len(values), "average_accuracy": mean(values) or 0.0}
            for name, values in buckets.items()
        }

    def _bias_analysis(self, validations: list[PredictionValidation]) -> dict[str, int]:
        over = under = overconfident = 0
        for prediction, v in self._paired(validations):
            actual = v.actual_outcome.actual_price
            if not actual:
                continue
            estimated = prediction.predicted_price_range.estimated
            if estimated > actual:
                over += 1
            elif estimated < actual:
                under += 1
            if prediction.model_confidence > v.overall_accuracy:
                overconfident += 1
        return {
            "price_overestimation": over,
            "price_underestimation": under,
            "confidence_overconfidence": overconfident,
        }

    def _improvement_trend(self, validations: list[PredictionValidation]) -> dict[str, Any]:
        ordered = sorted(validations, key=lambda v: v.validation_date)
        size = self._settings.moving_average_window
        averages = []
        for end in range(size, len(ordered) + 1):
            window = ordered[end - size:end]
            averages.append({
                "date": window[-1].validation_date.isoformat(),
                "accuracy": sum(v.overall_accuracy for v in window) / len(window),
            })

        values = [a["accuracy"] for a in averages]
        rate = 0.0
        if len(values) >= 2 and values[0] > 0:
            rate = (values[-1] - values[0]) / values[0] * 100 / len(values)

        return {
            "moving_averages": averages,
            "trend": _trend_of(values),
            "improvement_rate": rate,
        }

    @staticmethod
    def _recommendations(stats: PerformanceStats, bias: dict[str, int]) -> list[str]:
        recommendations = []
        if stats.validated_predictions == 0:
            return recommendations
        if stats.average_accuracy < 70:
            recommendations.append(
                "Overall prediction accuracy is below target. Focus on improving data quality and analysis methods."
            )
        if stats.model_calibration < 70:
            recommendations.append(
                "Model confidence calibration needs improvement. Adjust confidence calculation."
            )
        if bias["price_overestimation"] > bias["price_underestimation"] * 1.5:
            recommendations.append("Detected price overestimation bias. Review valuation methodology.")
        if bias["confidence_overconfidence"] > stats.validated_predictions * 0.6:
            recommendations.append("Model is overconfident. Reduce confidence scores or improve accuracy.")
        return recommendations

    def summarize_learning_signals(self, validations: list[PredictionValidation]) -> dict[str, Any]:
        """What the successful and failed validations have in common."""
        methods: Counter = Counter()
        sources: Counter = Counter()
        qualities: list[float] = []
        confidences: list[float] = []
        low_quality: list[str] = []
        overconfident: list[str] = []
        failure_factors: Counter = Counter()

        for prediction, v in self._paired(validations):
            if v.overall_accuracy > SUCCESS_ACCURACY:
                methods.update(prediction.analysis_methods)
                sources.update(prediction.data_sources)
                qualities.append(prediction.data_quality)
                confidences.append(prediction.model_confidence)
            elif v.overall_accuracy < FAILURE_ACCURACY:
                if prediction.data_quality < 50:
                    low_quality.append(prediction.id)
                if prediction.model_confidence > v.overall_accuracy + OVERCONFIDENCE_MARGIN:
                    overconfident.append(prediction.id)
                failure_factors.update(v.failure_factors)

        return {
            "success_patterns": {
                "common_methods": dict(methods),
                "common_data_sources": dict(sources),
                "data_quality_range": [min(qualities), max(qualities)] if qualities else [],
                "confidence_range": [min(confidences), max(confidences)] if confidences else [],
            },
            "failure_patterns": {
                "low_data_quality": low_quality,
                "overconfidence_issues": overconfident,
                "common_failure_factors": dict(failure_factors),
            },
        }
