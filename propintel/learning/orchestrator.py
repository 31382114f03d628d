"""
Learning Orchestrator.

Single entry point for the report pipeline.

Fans finished analyses and user feedback out to every learning component,
and answers the pipeline's read-through queries:

1. process_user_feedback: persist, flag weak components, feed prompt,
   comparable and deepening learners, optimise critically rated prompts
2. update_regional_knowledge: regional, prediction, location, deepening
   and comparable learning from one finished report
3. Queries: criteria, templates, insights and forecasts, each with a
   documented default when knowledge is thin
4. Reporting: system metrics, insights and prioritised recommendations

No public method raises: failures are logged and the default returned.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import pydantic
import structlog

from propintel.clock import resolve_now
from propintel.comparables import ComparableSelectionEngine, EnhancedSearchCriteria, SelectionCriteria
from propintel.comparables.defaults import default_criteria
from propintel.config import Settings, get_settings
from propintel.deepening import DeepeningStrategy, ProgressiveDeepening
from propintel.exceptions import PropIntelError
from propintel.feedback import (
    ComponentName,
    Feedback,
    FeedbackAnalyzer,
    FeedbackStore,
    TrendDirection,
    low_rated_components,
)
from propintel.learning.quality import calculate_analysis_quality, identify_data_gaps
from propintel.learning.schemas import (
    PRIORITY_ORDER,
    FeedbackProcessingResult,
    Impact,
    InsightType,
    KnowledgeUpdateResult,
    LearningInsight,
    LearningReport,
    RecommendationPriority,
    RecommendationType,
    SystemMetrics,
    SystemRecommendation,
)
from propintel.location import LocationLearner
from propintel.predictions import PredictionTracker, ValidationRun
from propintel.prompts import PromptCategory, PromptOptimization, PromptPerformanceStore, UsageMetrics
from propintel.regional import PerformancePrediction, RegionalIntelligence, RegionalKnowledge, RegionType, Season
from propintel.schemas.report import AnalysisReport, Comparable, PropertyData
from propintel.scoring import clamp

logger = structlog.get_logger(__name__)


FALLBACK_TEMPLATE: str = "Analyze the {category} data and provide insights."
CRITICAL_COMPONENT_RATING: float = 2.0      # at or below: optimise immediately
HIGH_CONFIDENCE_CORRECTION: float = 4.0
PROMPT_SUCCESS_RATING: float = 3.0

# System reliability
BASE_RELIABILITY: float = 80.0
RELIABILITY_BONUS: float = 10.0
RELIABILITY_PENALTY: float = 15.0
HIGH_RATING: float = 4.0
LOW_RATING: float = 3.0
HIGH_ACCURACY: float = 80.0
LOW_ACCURACY: float = 60.0
CRITICAL_ACCURACY: float = 50.0

COMPONENT_PROMPT_CATEGORY: dict[ComponentName, PromptCategory] = {
    ComponentName.VALUATION: PromptCategory.VALUATION,
    ComponentName.COMPARABLES: PromptCategory.COMPARABLE_ANALYSIS,
    ComponentName.MARKET_ANALYSIS: PromptCategory.MARKET_SUMMARY,
    ComponentName.AI_SUMMARY: PromptCategory.MARKET_SUMMARY,
    ComponentName.AMENITIES: PromptCategory.LOCATION_ANALYSIS,
    ComponentName.FUTURE_OUTLOOK: PromptCategory.INVESTMENT_ADVICE,
}

REPORT_FILE_PREFIX: str = "learning-report-"


class LearningOrchestrator:
    """Coordinates the learning components behind a single facade."""

    def __init__(
        self,
        feedback: FeedbackStore,
        predictions: PredictionTracker,
        prompts: PromptPerformanceStore,
        regional: RegionalIntelligence,
        comparables: ComparableSelectionEngine,
        location: LocationLearner,
        deepening: ProgressiveDeepening,
        feedback_analyzer: Optional[FeedbackAnalyzer] = None,
        settings: Optional[Settings] = None,
    ):
        self._settings = settings or get_settings()
        self.feedback = feedback
        self.feedback_analyzer = feedback_analyzer or FeedbackAnalyzer(
            feedback, window=self._settings.moving_average_window
        )
        self.predictions = predictions
        self.prompts = prompts
        self.regional = regional
        self.comparables = comparables
        self.location = location
        self.deepening = deepening
        self._enabled = self._settings.learning_enabled

    # ── Switch ──────────────────────────────────────────────────────────

    def enable_learning(self) -> None:
        self._enabled = True
        logger.info("learning_enabled")

    def disable_learning(self) -> None:
        self._enabled = False
        logger.info("learning_disabled")

    def is_learning_enabled(self) -> bool:
        return self._enabled

    # =========================================================================
    # FEEDBACK
    # =========================================================================

    def process_user_feedback(
        self,
        feedback: Union[Feedback, dict[str, Any]],
        property: Optional[PropertyData] = None,
        comparables: Optional[list[Comparable]] = None,
        now: Optional[datetime] = None,
    ) -> FeedbackProcessingResult:
        """
        Persist feedback and feed it to every learner that can use it.

        The feedback is stored first; the learning steps that follow are
        best effort and a failure in one of them is logged without undoing
        the submission.
        """
        if not self._enabled:
            logger.info("feedback_processing_skipped", reason="learning_disabled")
            return FeedbackProcessingResult(success=False, skipped=True, message="Learning is disabled")

        if isinstance(feedback, dict):
            try:
                feedback = Feedback.model_validate(feedback)
            except pydantic.ValidationError as e:
                first = e.errors()[0] if e.errors() else {}
                field = ".".join(str(p) for p in first.get("loc", ()))
                logger.info("feedback_rejected", field=field, reason=first.get("msg"))
                return FeedbackProcessingResult(success=False, message=f"Invalid feedback data: {field}")

        submission = self.feedback.submit(feedback)
        if not submission.success:
            return FeedbackProcessingResult(success=False, message=submission.message)

        result = FeedbackProcessingResult(
            success=True,
            message=submission.message,
            feedback_id=submission.feedback_id,
        )
        now = resolve_now(now)

        try:
            result.low_rated_components = [c.value for c in low_rated_components(feedback)]
            if result.low_rated_components:
                logger.info(
                    "low_rated_components_detected",
                    session_id=feedback.session_id,
                    components=result.low_rated_components,
                )

            result.high_confidence_corrections = self._review_corrections(feedback)
            self._track_summary_prompt(feedback, now)

            if property is not None:
                if comparables is not None:
                    self.comparables.learn_from_feedback(property, comparables, feedback, now=now)
                self.deepening.add_user_feedback(property, feedback)

            result.optimizations_triggered = self._optimize_critical_components(feedback, now)
        except PropIntelError as e:
            logger.warning("feedback_learning_failed", session_id=feedback.session_id, error=str(e))
            result.message = f"Feedback stored; learning incomplete: {e.message}"
        except Exception as e:
            logger.error("feedback_learning_failed", session_id=feedback.session_id, error=str(e), exc_info=True)
            result.message = "Feedback stored; learning incomplete"

        logger.info(
            "feedback_processed",
            session_id=feedback.session_id,
            low_rated=len(result.low_rated_components),
            optimizations=result.optimizations_triggered,
        )
        return result

    @staticmethod
    def _review_corrections(feedback: Feedback) -> list[str]:
        flagged = []
        for correction in feedback.corrections:
            if correction.confidence >= HIGH_CONFIDENCE_CORRECTION:
                flagged.append(correction.field)
        if feedback.corrections:
            logger.info(
                "data_corrections_received",
                session_id=feedback.session_id,
                corrections=len(feedback.corrections),
                high_confidence=flagged,
            )
        return flagged

    def _track_summary_prompt(self, feedback: Feedback, now: datetime) -> None:
        rating = feedback.rating_for(ComponentName.AI_SUMMARY)
        if rating is None:
            return
        category = PromptCategory.MARKET_SUMMARY
        self.prompts.track_usage(
            category,
            self.prompts.get_best_template(category),
            rating=rating.rating,
            metrics=UsageMetrics(success=rating.rating >= PROMPT_SUCCESS_RATING),
            comments=rating.comments,
            now=now,
        )

    def _optimize_critical_components(self, feedback: Feedback, now: datetime) -> int:
        categories: list[PromptCategory] = []
        for component, rating in feedback.component_ratings.items():
            if rating.rating > CRITICAL_COMPONENT_RATING:
                continue
            category = COMPONENT_PROMPT_CATEGORY[component]
            logger.info(
                "immediate_optimization_triggered",
                component=component.value,
                category=category.value,
                comments=rating.comments,
            )
            if category not in categories:
                categories.append(category)

        optimizations = 0
        for category in categories:
            optimizations += len(self.prompts.optimize_category(category, now=now))
        return optimizations

    # =========================================================================
    # ANALYSES
    # =========================================================================

    def update_regional_knowledge(
        self,
        session_id: str,
        property: PropertyData,
        report: AnalysisReport,
        comparables: Optional[list[Comparable]] = None,
        analysis_quality: Optional[float] = None,
        feedback: Optional[Feedback] = None,
        now: Optional[datetime] = None,
    ) -> KnowledgeUpdateResult:
        """Fold one finished analysis into every knowledge store."""
        if not self._enabled:
            logger.info("knowledge_update_skipped", reason="learning_disabled", session_id=session_id)
            return KnowledgeUpdateResult(success=False, skipped=True)

        now = resolve_now(now)
        comparables = report.comparables if comparables is None else comparables
        quality = analysis_quality if analysis_quality is not None else calculate_analysis_quality(report)
        gaps = identify_data_gaps(report)
        result = KnowledgeUpdateResult(success=False, analysis_quality=quality, data_gaps=gaps)

        try:
            reference_price = self._city_price_per_m2(property.city)

            updated = self.regional.learn_from_analysis(
                property, report, comparables=comparables, analysis_quality=quality, now=now,
            )
            result.regions_updated = [k.id for k in updated]

            prediction = self.predictions.store_prediction(session_id, property, report, now=now)
            result.prediction_id = prediction.id if prediction else None

            self.location.learn_from_analysis(property, comparables, now=now)

            history = self.deepening.record_analysis(property, session_id, quality, data_gaps=gaps, now=now)
            if updated:
                self.deepening.note_regional_update(property)
            result.analysis_count = history.analysis_count

            self.comparables.learn_from_analysis(property, comparables, reference_price, now=now)
            if feedback is not None:
                self.comparables.learn_from_feedback(property, comparables, feedback, now=now)

            result.success = True
        except PropIntelError as e:
            logger.warning("knowledge_update_failed", session_id=session_id, error=str(e))
            result.error = e.message
        except Exception as e:
            logger.error("knowledge_update_failed", session_id=session_id, error=str(e), exc_info=True)
            result.error = str(e)

        logger.info(
            "regional_knowledge_updated",
            session_id=session_id,
            city=property.city,
            province=property.province,
            quality=quality,
            success=result.success,
        )
        return result

    def _city_price_per_m2(self, city: str) -> Optional[float]:
        knowledge = self.regional.get_knowledge(RegionType.CITY, city) if city else None
        if knowledge is None or not knowledge.market.price_samples:
            return None
        return knowledge.market.average_price_per_m2

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_optimal_comparable_criteria(self, property: PropertyData) -> SelectionCriteria:
        try:
            return self.comparables.get_optimal_criteria(property)
        except Exception as e:
            logger.warning("criteria_lookup_failed", error=str(e))
            return default_criteria()

    def get_enhanced_search_criteria(self, property: PropertyData) -> Optional[EnhancedSearchCriteria]:
        try:
            return self.comparables.generate_enhanced_criteria(property)
        except Exception as e:
            logger.warning("search_criteria_failed", error=str(e))
            return None

    def get_best_prompt_template(self, category: str) -> str:
        try:
            return self.prompts.get_best_template(category)
        except Exception as e:
            logger.warning("template_lookup_failed", category=category, error=str(e))
            return FALLBACK_TEMPLATE.format(category=category)

    def get_regional_insights(self, region: str) -> Optional[RegionalKnowledge]:
        """Accepts ``"City, Province"`` or a bare region name."""
        try:
            parts = [p.strip() for p in region.split(",")]
            if len(parts) >= 2:
                return self.regional.get_regional_insights(parts[0], parts[1])
            return self.regional.get_regional_insights(region.strip(), "")
        except Exception as e:
            logger.warning("regional_insights_failed", region=region, error=str(e))
            return None

    def predict_property_performance(
        self, property: PropertyData, season: Optional[Season] = None
    ) -> Optional[PerformancePrediction]:
        try:
            return self.regional.predict_property_performance(property, season=season)
        except Exception as e:
            logger.warning("performance_prediction_failed", error=str(e))
            return None

    def get_deepening_strategy(
        self, property: PropertyData, now: Optional[datetime] = None
    ) -> Optional[DeepeningStrategy]:
        try:
            return self.deepening.get_deepening_strategy(property, now=now)
        except Exception as e:
            logger.warning("deepening_strategy_failed", error=str(e))
            return None

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def optimize_prompts(self, now: Optional[datetime] = None) -> list[PromptOptimization]:
        if not self._enabled:
            logger.info("prompt_optimization_skipped", reason="learning_disabled")
            return []
        try:
            return self.prompts.optimize_prompts(now=now)
        except Exception as e:
            logger.error("prompt_optimization_failed", error=str(e), exc_info=True)
            return []

    def validate_predictions(self, now: Optional[datetime] = None) -> ValidationRun:
        """Validate due predictions and feed realised accuracy to comparable learning."""
        if not self._enabled:
            logger.info("prediction_validation_skipped", reason="learning_disabled")
            return ValidationRun()

        now = resolve_now(now)
        try:
            run = self.predictions.validate_predictions(now=now)
        except Exception as e:
            logger.error("prediction_validation_failed", error=str(e), exc_info=True)
            return ValidationRun()

        for validation in run.validations:
            prediction = self.predictions.get_prediction(validation.prediction_id)
            if prediction is None or not prediction.city:
                continue
            subject = PropertyData(
                address="",
                city=prediction.city,
                province=prediction.province,
                property_type=prediction.property_type,
            )
            try:
                self.comparables.improve_from_validation(
                    subject,
                    validation.price_accuracy,
                    average_distance=prediction.average_comparable_distance,
                    now=now,
                )
            except Exception as e:
                logger.warning("validation_routing_failed", prediction_id=prediction.id, error=str(e))
        return run

    # =========================================================================
    # REPORTING
    # =========================================================================

    def generate_learning_report(self, now: Optional[datetime] = None) -> LearningReport:
        now = resolve_now(now)
        report = LearningReport(
            timestamp=now,
            overall_metrics=self.calculate_overall_metrics(now),
            component_metrics=self.calculate_component_metrics(now),
            insights=self.generate_learning_insights(),
            recommendations=self.get_system_recommendations(),
        )
        if self._settings.save_learning_reports and not self._settings.is_memory_backend:
            report.saved_to = self._save_report(report, now)

        logger.info(
            "learning_report_generated",
            report_id=report.id,
            insights=len(report.insights),
            recommendations=len(report.recommendations),
        )
        return report

    def _save_report(self, report: LearningReport, now: datetime) -> Optional[str]:
        path = Path(self._settings.data_dir) / f"{REPORT_FILE_PREFIX}{now.strftime('%Y%m%dT%H%M%S%f')}.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(report.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error("learning_report_save_failed", path=str(path), error=str(e))
            return None
        logger.info("learning_report_saved", path=str(path))
        return str(path)

    def calculate_overall_metrics(self, now: Optional[datetime] = None) -> SystemMetrics:
        feedback_stats = self.feedback.get_stats(now)
        prediction_stats = self.predictions.get_performance_stats()
        satisfaction = feedback_stats.average_rating * 20
        return SystemMetrics(
            total_analyses=feedback_stats.total_feedback,
            average_quality_score=satisfaction,
            user_satisfaction_score=satisfaction,
            prediction_accuracy=prediction_stats.average_accuracy,
            system_reliability=system_reliability(
                feedback_stats.average_rating if feedback_stats.total_feedback else None,
                prediction_stats.average_accuracy if prediction_stats.validated_predictions else None,
            ),
            quality_trend=feedback_stats.recent_trend,
        )

    def calculate_component_metrics(self, now: Optional[datetime] = None) -> dict[str, Any]:
        feedback_stats = self.feedback.get_stats(now)
        return {
            "user_feedback": feedback_stats.model_dump(mode="json"),
            "prediction_accuracy": self.predictions.get_performance_stats().model_dump(mode="json"),
            "prompt_optimization": self.prompts.get_stats(),
            "regional_intelligence": self.regional.get_stats(),
            "comparable_selection": self.comparables.get_stats(),
            "location_learning": self.location.get_stats().model_dump(mode="json"),
            "progressive_deepening": self.deepening.get_stats(),
        }

    def generate_learning_insights(self) -> list[LearningInsight]:
        insights: list[LearningInsight] = []

        overall = self.feedback_analyzer.generate_insights()["overall_trends"]
        if overall and overall["trend"] != TrendDirection.STABLE:
            declining = overall["trend"] == TrendDirection.DECLINING
            insights.append(LearningInsight(
                type=InsightType.TREND,
                title="User satisfaction is declining" if declining else "User satisfaction is improving",
                description=(
                    f"Moving average of overall ratings across {overall['total_feedback']} "
                    f"feedback entries is {overall['trend']}"
                ),
                impact=Impact.HIGH if declining else Impact.MEDIUM,
                confidence=min(100.0, overall["total_feedback"] * 5.0),
                evidence=[f"Average rating: {overall['average_rating']:.2f}/5"],
                recommendations=(
                    ["Review recent changes to analysis prompts and data sources"] if declining else []
                ),
            ))

        patterns = self.regional.detect_market_patterns()
        if patterns.emerging_trends:
            insights.append(LearningInsight(
                type=InsightType.OPPORTUNITY,
                title="Emerging regional market trends",
                description=f"{len(patterns.emerging_trends)} market trends detected across learned regions",
                impact=Impact.MEDIUM,
                confidence=70.0,
                evidence=patterns.emerging_trends,
                recommendations=[f"Highlight opportunities in {area}" for area in patterns.opportunity_areas[:5]],
            ))
        if patterns.market_anomalies:
            insights.append(LearningInsight(
                type=InsightType.ANOMALY,
                title="Regional market anomalies",
                description=f"{len(patterns.market_anomalies)} unusual market conditions detected",
                impact=Impact.HIGH,
                confidence=70.0,
                evidence=patterns.market_anomalies,
                recommendations=[f"Flag elevated risk for {area}" for area in patterns.risk_areas[:5]],
            ))

        analytics = self.predictions.get_performance_analytics()
        bias = analytics["bias_analysis"]
        over, under = bias["price_overestimation"], bias["price_underestimation"]
        if over + under and max(over, under) > 1.5 * min(over, under):
            direction = "over" if over > under else "under"
            insights.append(LearningInsight(
                type=InsightType.PATTERN,
                title=f"Systematic price {direction}estimation",
                description=f"Valuations {direction}estimate realised prices more often than not",
                impact=Impact.HIGH,
                confidence=min(100.0, (over + under) * 10.0),
                evidence=[f"Overestimated: {over}", f"Underestimated: {under}"],
                recommendations=["Review valuation methodology and comparable weighting"],
            ))

        signals = self.predictions.summarize_learning_signals(self.predictions.all_validations())
        failure_factors = signals["failure_patterns"]["common_failure_factors"]
        if failure_factors:
            insights.append(LearningInsight(
                type=InsightType.PATTERN,
                title="Recurring prediction failure factors",
                description="Low-accuracy predictions share common weaknesses",
                impact=Impact.MEDIUM,
                confidence=60.0,
                evidence=[f"{factor}: {count}" for factor, count in sorted(failure_factors.items())],
                recommendations=["Collect more comparables and market data before reporting"],
            ))

        return insights

    def get_system_recommendations(self) -> list[SystemRecommendation]:
        """Recommendations from every component, highest priority first."""
        recommendations: list[SystemRecommendation] = []
        sources = (
            self._feedback_recommendations,
            self._prediction_recommendations,
            self._prompt_recommendations,
            self._regional_recommendations,
            self._comparable_recommendations,
        )
        for source in sources:
            try:
                recommendations.extend(source())
            except Exception as e:
                logger.warning("recommendation_source_failed", source=source.__name__, error=str(e))

        recommendations.sort(key=lambda r: PRIORITY_ORDER[r.priority], reverse=True)
        return recommendations[:self._settings.report_top_recommendations]

    def _feedback_recommendations(self) -> list[SystemRecommendation]:
        texts = self.feedback_analyzer.generate_recommendations(self.feedback.all())
        return [
            _recommendation("feedback", text, RecommendationType.PROCESS_IMPROVEMENT, RecommendationPriority.HIGH)
            for text in texts
        ]

    def _prediction_recommendations(self) -> list[SystemRecommendation]:
        stats = self.predictions.get_performance_stats()
        priority = (
            RecommendationPriority.CRITICAL
            if stats.validated_predictions and stats.average_accuracy < CRITICAL_ACCURACY
            else RecommendationPriority.HIGH
        )
        return [
            _recommendation("predictions", text, RecommendationType.MODEL_ADJUSTMENT, priority)
            for text in self.predictions.get_performance_analytics()["recommendations"]
        ]

    def _prompt_recommendations(self) -> list[SystemRecommendation]:
        return [
            _recommendation("prompts", text, RecommendationType.OPTIMIZATION, RecommendationPriority.MEDIUM)
            for text in self.prompts.get_optimization_recommendations()
        ]

    def _regional_recommendations(self) -> list[SystemRecommendation]:
        regions = self.regional.all_knowledge()
        thin = [k for k in regions if k.confidence_score <= self._settings.city_region_confidence]
        if not thin:
            return []
        return [_recommendation(
            "regional",
            f"{len(thin)} of {len(regions)} regions have low knowledge confidence. "
            "Analyse more properties in these areas.",
            RecommendationType.DATA_COLLECTION,
            RecommendationPriority.LOW,
            steps=[f"Gather analyses for {k.region_name}" for k in thin[:5]],
        )]

    def _comparable_recommendations(self) -> list[SystemRecommendation]:
        return [
            _recommendation("comparables", text, RecommendationType.DATA_COLLECTION, RecommendationPriority.MEDIUM)
            for text in self.comparables.analyze_selection_patterns()["recommendations"]
        ]


def system_reliability(average_rating: Optional[float], prediction_accuracy: Optional[float]) -> float:
    """Base 80, nudged by user satisfaction and prediction accuracy when known."""
    reliability = BASE_RELIABILITY
    if average_rating is not None:
        if average_rating > HIGH_RATING:
            reliability += RELIABILITY_BONUS
        elif average_rating < LOW_RATING:
            reliability -= RELIABILITY_PENALTY
    if prediction_accuracy is not None:
        if prediction_accuracy > HIGH_ACCURACY:
            reliability += RELIABILITY_BONUS
        elif prediction_accuracy < LOW_ACCURACY:
            reliability -= RELIABILITY_PENALTY
    return clamp(reliability, 0.0, 100.0)


def _recommendation(
    source: str,
    text: str,
    type: RecommendationType,
    priority: RecommendationPriority,
    steps: Optional[list[str]] = None,
) -> SystemRecommendation:
    title = text.split(". ")[0].rstrip(".")
    return SystemRecommendation(
        type=type,
        priority=priority,
        source=source,
        title=title,
        description=text,
        expected_impact=f"Improved {source} performance",
        steps=steps or [],
    )
