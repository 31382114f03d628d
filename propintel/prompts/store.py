"""
Prompt Performance Store.

Tracks how each prompt template performs per category, serves the best
one, proposes rule-based rewrites for weak templates, and runs paired
A/B comparisons.

Scoring:
    overall = quality(40%) + success rate(30%) + efficiency(20%) + satisfaction(10%)

A/B significance:
    both arms >= 30 uses AND Pearson chi-square on the 2x2
    success/failure table > 3.84 (p < 0.05). Anything else is a tie
    with 0% confidence.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from propintel.clock import resolve_now
from propintel.config import Settings, get_settings
from propintel.exceptions import DataNotFoundError, ErrorCode, ValidationError
from propintel.identity import new_id, prompt_id
from propintel.prompts.rules import choose_optimization, identify_issues, rewrite, REWRITE_RULES
from propintel.prompts.schemas import (
    ABArmResult,
    ABTestResult,
    ABWinner,
    OptimizationType,
    PromptCategory,
    PromptMetrics,
    PromptOptimization,
    PromptPerformance,
    UsageMetrics,
)
from propintel.prompts.templates import default_template
from propintel.scoring import blend
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

QUALITY_WEIGHT: float = 0.4
SUCCESS_WEIGHT: float = 0.3
EFFICIENCY_WEIGHT: float = 0.2
SATISFACTION_WEIGHT: float = 0.1

OPTIMIZE_BELOW_QUALITY: float = 3.5     # 1-5 scale
OPTIMIZE_BELOW_SUCCESS: float = 80.0    # percent
HIGH_ERROR_RATE: float = 10.0           # percent, for recommendations

AB_RATING_WEIGHT: float = 0.6
AB_SUCCESS_WEIGHT: float = 0.4
AB_TIE_MARGIN: float = 0.05
AB_CONFIDENCE: float = 95.0


def overall_score(performance: PromptPerformance) -> float:
    """Weighted 0-100 score used to rank templates within a category."""
    quality = performance.average_quality / 5 * 100
    success = performance.success_rate
    efficiency = max(0.0, 100 - performance.average_response_time / 1000)
    satisfaction = performance.user_satisfaction / 5 * 100 if performance.user_ratings else quality
    return (
        quality * QUALITY_WEIGHT
        + success * SUCCESS_WEIGHT
        + efficiency * EFFICIENCY_WEIGHT
        + satisfaction * SATISFACTION_WEIGHT
    )


def chi_square_2x2(successes_a: int, uses_a: int, successes_b: int, uses_b: int) -> float:
    """Pearson chi-square statistic for a 2x2 success/failure table."""
    failures_a = uses_a - successes_a
    failures_b = uses_b - successes_b
    n = uses_a + uses_b
    denominator = (
        uses_a * uses_b
        * (successes_a + successes_b)
        * (failures_a + failures_b)
    )
    if n == 0 or denominator == 0:
        return 0.0
    return n * (successes_a * failures_b - failures_a * successes_b) ** 2 / denominator


def arm_score(arm: ABArmResult) -> float:
    return arm.average_rating / 5 * AB_RATING_WEIGHT + arm.success_rate / 100 * AB_SUCCESS_WEIGHT


def needs_optimization(performance: PromptPerformance) -> bool:
    return (
        performance.average_quality < OPTIMIZE_BELOW_QUALITY
        or performance.success_rate < OPTIMIZE_BELOW_SUCCESS
    )


def _parse_category(category: str) -> PromptCategory:
    try:
        return PromptCategory(category)
    except ValueError as e:
        raise ValidationError(
            f"Unknown prompt category: {category}", field="category", value=category
        ) from e


def _check_rating(rating: Optional[float]) -> None:
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("Prompt rating must be between 1 and 5", field="rating", value=rating)


def _metrics_of(performance: PromptPerformance) -> PromptMetrics:
    return PromptMetrics(
        average_quality=performance.average_quality,
        success_rate=performance.success_rate,
        user_satisfaction=performance.user_satisfaction,
        response_time=performance.average_response_time,
        token_efficiency=(
            performance.average_quality / performance.token_usage if performance.token_usage > 0 else 0.0
        ),
    )


class PromptPerformanceStore:
    """Per-category prompt statistics, optimizations and A/B tests."""

    def __init__(
        self,
        performance: KeyValueStore,
        optimizations: KeyValueStore,
        ab_tests: KeyValueStore,
        settings: Optional[Settings] = None,
    ):
        self._performance = performance
        self._optimizations = optimizations
        self._ab_tests = ab_tests
        self._settings = settings or get_settings()

    # =========================================================================
    # TEMPLATE SELECTION
    # =========================================================================

    def by_category(self, category: str) -> list[PromptPerformance]:
        return [
            PromptPerformance.model_validate(r)
            for r in self._performance.values()
            if r.get("category") == category
        ]

    def get_best_template(self, category: str) -> str:
        """Highest-scoring tracked template, or the built-in default."""
        candidates = self.by_category(category)
        if not candidates:
            logger.debug("prompt_default_used", category=category)
            return default_template(category)

        best = candidates[0]
        best_score = overall_score(best)
        for candidate in candidates[1:]:
            score = overall_score(candidate)
            if score > best_score:
                best, best_score = candidate, score
        return best.template

    # =========================================================================
    # USAGE TRACKING
    # =========================================================================

    def track_usage(
        self,
        category: str,
        template: str,
        rating: Optional[float] = None,
        metrics: Optional[UsageMetrics] = None,
        comments: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[PromptPerformance]:
        """Record one use of ``template``. Rejected input is logged and returns None."""
        try:
            category = _parse_category(category)
            _check_rating(rating)
        except ValidationError as e:
            logger.info("prompt_usage_rejected", field=e.field, value=e.value, reason=e.message)
            return None

        key = prompt_id(category.value, template)
        window = self._settings.prompt_smoothing_window

        with self._performance.transaction():
            record = self._performance.get(key)
            performance = (
                PromptPerformance.model_validate(record)
                if record
                else PromptPerformance(id=key, category=category, template=template)
            )

            performance.use_count += 1
            performance.last_used = resolve_now(now)

            if rating is not None:
                performance.user_ratings.append(float(rating))
                performance.average_quality = sum(performance.user_ratings) / len(performance.user_ratings)

            if comments:
                performance.user_comments.append(comments)

            if metrics is not None:
                if metrics.response_time_ms is not None:
                    performance.average_response_time = blend(
                        performance.average_response_time,
                        metrics.response_time_ms,
                        performance.response_time_samples,
                        window,
                    )
                    performance.response_time_samples += 1
                if metrics.token_usage is not None:
                    performance.token_usage = blend(
                        performance.token_usage, metrics.token_usage, performance.token_samples, window
                    )
                    performance.token_samples += 1
                if metrics.cost is not None:
                    performance.cost_per_use = blend(
                        performance.cost_per_use, metrics.cost, performance.use_count - 1, window
                    )
                if metrics.success is not None:
                    performance.success_observations += 1
                    performance.success_count += int(metrics.success)
                    performance.success_rate = (
                        performance.success_count / performance.success_observations * 100
                    )
                if metrics.error:
                    performance.error_count += 1

            performance.error_rate = performance.error_count / performance.use_count * 100
            self._performance.set(key, performance.model_dump(mode="json"))

        logger.debug(
            "prompt_usage_tracked",
            category=category.value,
            prompt_id=key,
            uses=performance.use_count,
            rating=rating,
        )
        return performance

    # =========================================================================
    # OPTIMIZATION
    # =========================================================================

    def optimize_prompts(self, now: Optional[datetime] = None) -> list[PromptOptimization]:
        """Propose one rewrite for every under-performing template."""
        optimizations: list[PromptOptimization] = []
        for category in PromptCategory:
            optimizations.extend(self.optimize_category(category, now=now))
        logger.info("prompts_optimized", optimizations=len(optimizations))
        return optimizations

    def optimize_category(self, category: str, now: Optional[datetime] = None) -> list[PromptOptimization]:
        results: list[PromptOptimization] = []
        for performance in self.by_category(category):
            if not needs_optimization(performance):
                continue
            optimization = self._create_optimization(performance, now)
            if optimization is None:
                continue
            with self._performance.transaction():
                self._optimizations.set(optimization.id, optimization.model_dump(mode="json"))
                performance.optimization_history.append(optimization.id)
                self._performance.set(performance.id, performance.model_dump(mode="json"))
            results.append(optimization)
        return results

    def _create_optimization(
        self, performance: PromptPerformance, now: Optional[datetime]
    ) -> Optional[PromptOptimization]:
        issues = identify_issues(performance)
        optimization_type = choose_optimization(issues)
        optimized = rewrite(performance.template, performance.category.value, optimization_type)

        if optimized == performance.template:
            logger.debug("prompt_rewrite_noop", prompt_id=performance.id, type=optimization_type.value)
            return None

        reason = ", ".join(i.value for i in issues) or "below-target performance"
        return PromptOptimization(
            id=new_id("opt"),
            timestamp=resolve_now(now),
            category=performance.category,
            prompt_id=performance.id,
            original_prompt=performance.template,
            optimized_prompt=optimized,
            optimization_type=optimization_type,
            optimization_reason=f"Addressing {reason} based on performance data",
            issues=issues,
            before_metrics=_metrics_of(performance),
        )

    def all_optimizations(self) -> list[PromptOptimization]:
        return [PromptOptimization.model_validate(r) for r in self._optimizations.values()]

    def generate_variations(self, prompt: str, category: str) -> list[str]:
        """Every rewrite of ``prompt`` that actually changes it."""
        variations: list[str] = []
        for optimization_type in REWRITE_RULES:
            variant = rewrite(prompt, category, optimization_type)
            if variant != prompt and variant not in variations:
                variations.append(variant)
        return variations

    # =========================================================================
    # A/B TESTING
    # =========================================================================

    def start_ab_test(
        self,
        category: str,
        prompt_a: str,
        prompt_b: str,
        duration_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ABTestResult]:
        start = resolve_now(now)
        days = duration_days if duration_days is not None else self._settings.ab_default_duration_days
        try:
            parsed = _parse_category(category)
            if days <= 0:
                raise ValidationError(
                    "A/B test must run for at least one day", field="duration_days", value=days
                )
        except ValidationError as e:
            logger.info("ab_test_rejected", field=e.field, value=e.value, reason=e.message)
            return None

        test = ABTestResult(
            id=new_id("ab"),
            category=parsed,
            prompt_a=prompt_a,
            prompt_b=prompt_b,
            start=start,
            end=start + timedelta(days=days),
        )
        self._ab_tests.set(test.id, test.model_dump(mode="json"))
        logger.info("ab_test_started", test_id=test.id, category=test.category.value, days=days)
        return test

    def get_ab_test(self, test_id: str) -> Optional[ABTestResult]:
        record = self._ab_tests.get(test_id)
        return ABTestResult.model_validate(record) if record else None

    def record_ab_result(
        self,
        test_id: str,
        arm: str,
        rating: float,
        success: bool,
        now: Optional[datetime] = None,
    ) -> Optional[ABTestResult]:
        """Add one observation to an arm. Returns None when it is rejected."""
        try:
            return self._record_ab_result(test_id, arm, rating, success, resolve_now(now))
        except (ValidationError, DataNotFoundError) as e:
            logger.info(
                "ab_result_rejected",
                test_id=test_id,
                error_code=e.error_code.value,
                reason=e.message,
            )
            return None

    def _record_ab_result(
        self, test_id: str, arm: str, rating: float, success: bool, now: datetime
    ) -> ABTestResult:
        if arm not in (ABWinner.A, ABWinner.B):
            raise ValidationError("A/B arm must be 'A' or 'B'", field="arm", value=arm)
        _check_rating(rating)

        with self._ab_tests.transaction():
            test = self.get_ab_test(test_id)
            if test is None:
                raise DataNotFoundError(
                    f"A/B test not found: {test_id}", resource_type="ab_test", resource_id=test_id
                )
            if not test.start <= now <= test.end:
                raise ValidationError(
                    f"A/B test {test_id} is not running at {now.isoformat()}",
                    field="now",
                    value=now,
                    error_code=ErrorCode.DATA_INVALID,
                )
            result = test.arm_a if arm == ABWinner.A else test.arm_b
            result.average_rating = blend(result.average_rating, rating, result.uses, result.uses + 1)
            result.uses += 1
            result.successes += int(success)
            result.success_rate = result.successes / result.uses * 100
            self._ab_tests.set(test.id, test.model_dump(mode="json"))
        return test

    def analyze_ab_test(self, test_id: str) -> Optional[ABTestResult]:
        with self._ab_tests.transaction():
            test = self.get_ab_test(test_id)
            if test is None:
                return None

            a, b = test.arm_a, test.arm_b
            min_uses = self._settings.ab_min_uses
            if a.uses < min_uses or b.uses < min_uses:
                test.chi_square = 0.0
                test.statistical_significance = False
            else:
                test.chi_square = chi_square_2x2(a.successes, a.uses, b.successes, b.uses)
                test.statistical_significance = test.chi_square > self._settings.ab_chi_square_threshold

            if not test.statistical_significance:
                test.winner = ABWinner.TIE
                test.confidence_level = 0.0
            else:
                test.confidence_level = AB_CONFIDENCE
                score_a, score_b = arm_score(a), arm_score(b)
                if abs(score_a - score_b) < AB_TIE_MARGIN:
                    test.winner = ABWinner.TIE
                else:
                    test.winner = ABWinner.A if score_a > score_b else ABWinner.B

            self._ab_tests.set(test.id, test.model_dump(mode="json"))

        logger.info(
            "ab_test_analyzed",
            test_id=test.id,
            winner=test.winner.value,
            significant=test.statistical_significance,
            chi_square=round(test.chi_square, 3),
        )
        return test

    # =========================================================================
    # REPORTING
    # =========================================================================

    def category_performance(self) -> dict[str, Any]:
        summary: dict[str, Any] = {}
        for category in PromptCategory:
            items = self.by_category(category)
            if not items:
                continue
            summary[category.value] = {
                "total_prompts": len(items),
                "average_quality": sum(p.average_quality for p in items) / len(items),
                "average_success_rate": sum(p.success_rate for p in items) / len(items),
                "total_uses": sum(p.use_count for p in items),
                "needs_optimization": sum(1 for p in items if needs_optimization(p)),
            }
        return summary

    def get_optimization_recommendations(self) -> list[str]:
        everything = [PromptPerformance.model_validate(r) for r in self._performance.values()]
        recommendations: list[str] = []

        low_quality = [p for p in everything if p.average_quality < OPTIMIZE_BELOW_QUALITY]
        high_error = [p for p in everything if p.error_rate > HIGH_ERROR_RATE]
        low_success = [p for p in everything if p.success_rate < OPTIMIZE_BELOW_SUCCESS]

        if low_quality:
            recommendations.append(
                f"{len(low_quality)} prompts have low user satisfaction. Consider optimization."
            )
        if high_error:
            recommendations.append(
                f"{len(high_error)} prompts have high error rates. Review for clarity and format issues."
            )
        if low_success:
            recommendations.append(
                f"{len(low_success)} prompts have low success rates. Analyze failure patterns."
            )

        for category, stats in self.category_performance().items():
            if stats["average_quality"] < OPTIMIZE_BELOW_QUALITY:
                recommendations.append(
                    f"{category} category needs improvement - average quality: {stats['average_quality']:.1f}"
                )
        return recommendations

    def get_stats(self) -> dict[str, Any]:
        return {
            "tracked_prompts": len(self._performance),
            "optimizations": len(self._optimizations),
            "ab_tests": len(self._ab_tests),
            "categories": self.category_performance(),
        }
