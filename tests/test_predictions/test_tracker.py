"""
Prediction Tracker Tests.

Forecast snapshots, aging and validation, accuracy rules and analytics.
"""

from datetime import timedelta

import pytest

from propintel.identity import property_id
from propintel.predictions import (
    ActualOutcome,
    NullOutcomeSource,
    PredictionTracker,
    data_quality,
    prediction_investment_grade,
    price_accuracy,
    trend_accuracy,
)
from propintel.schemas.report import (
    Amenity,
    DevelopmentImpact,
    FutureDevelopment,
    InvestmentGrade,
    MarketTrend,
)
from propintel.storage import InMemoryStore


def _register(outcome_source, prop, **outcome):
    outcome_source.register(
        property_id(prop.address, prop.city, prop.province),
        ActualOutcome(**outcome),
    )


class TestAccuracyRules:

    def test_price_accuracy_scenario(self):
        """predicted 300k, actual 330k -> 100 - 30000/330000*100."""
        assert price_accuracy(300_000, 330_000) == pytest.approx(90.909, abs=1e-3)

    def test_price_accuracy_floors_at_zero(self):
        assert price_accuracy(1_000_000, 100_000) == 0.0

    def test_price_accuracy_without_actual(self):
        assert price_accuracy(300_000, None) == 0.0

    @pytest.mark.parametrize(
        "predicted, actual, expected",
        [
            (MarketTrend.UP, MarketTrend.UP, 100.0),
            (MarketTrend.UP, MarketTrend.STABLE, 50.0),
            (MarketTrend.STABLE, MarketTrend.DOWN, 50.0),
            (MarketTrend.UP, MarketTrend.DOWN, 0.0),
            (MarketTrend.UP, None, 0.0),
        ],
    )
    def test_trend_accuracy(self, predicted, actual, expected):
        assert trend_accuracy(predicted, actual) == expected


class TestSnapshotRules:

    def test_full_marks_top_out_at_grade_b(self, make_report, make_comparables):
        report = make_report(
            confidence=85,
            comparables=make_comparables(count=6),
            nearby_amenities=[Amenity(name=f"a{i}") for i in range(11)],
            future_developments=[
                FutureDevelopment(type="metro", impact=DevelopmentImpact.POSITIVE) for _ in range(3)
            ],
        )
        # 20 + 15 + 15 + 10 + 10 is the highest reachable score, below the A band
        assert prediction_investment_grade(report) == InvestmentGrade.B

    def test_investment_grade_bands(self, make_report, make_comparables):
        report = make_report(
            confidence=85,
            comparables=make_comparables(count=6),
            nearby_amenities=[Amenity(name=f"a{i}") for i in range(6)],
            future_developments=[FutureDevelopment(type="metro", impact=DevelopmentImpact.POSITIVE)],
        )
        # 20 + 15 + 15 + 5 + 5
        assert prediction_investment_grade(report) == InvestmentGrade.C

        report = report.model_copy(update={"nearby_amenities": [Amenity(name=f"a{i}") for i in range(11)]})
        # 20 + 15 + 15 + 10 + 5
        assert prediction_investment_grade(report) == InvestmentGrade.B

    def test_sparse_report_grades_low(self, make_report):
        report = make_report(confidence=30, comparables=[], trend=MarketTrend.DOWN)
        assert prediction_investment_grade(report) == InvestmentGrade.F

    def test_data_quality(self, make_report):
        # 3 comparables (20) + market average price (25) + coordinates (15)
        assert data_quality(make_report()) == 60.0


class TestStorePrediction:

    def test_snapshot_fields(self, tracker, make_property, make_report, now):
        prediction = tracker.store_prediction("s1", make_property(), make_report(), now=now)

        assert prediction.timestamp == now
        assert prediction.city == "Marbella"
        assert prediction.property_type == "apartment"
        assert prediction.average_comparable_distance == 1.0
        assert prediction.predicted_price_range.estimated == 300_000
        assert prediction.predicted_market_trend == MarketTrend.UP
        assert prediction.analysis_methods == ["comparable_analysis", "market_data_analysis"]
        assert tracker.get_prediction(prediction.id) == prediction

    def test_report_without_valuation_is_skipped(self, tracker, make_property, make_report):
        assert tracker.store_prediction("s1", make_property(), make_report(valuation=None)) is None
        assert tracker.all_predictions() == []


class TestValidation:

    def test_young_predictions_are_not_due(self, tracker, outcome_source, make_property, make_report, now):
        prop = make_property()
        tracker.store_prediction("s1", prop, make_report(), now=now)
        _register(outcome_source, prop, actual_price=330_000)

        run = tracker.validate_predictions(now + timedelta(days=10))

        assert run.checked == 0
        assert run.validated == 0

    def test_validates_aged_prediction(self, tracker, outcome_source, make_property, make_report, now):
        prop = make_property()
        tracker.store_prediction("s1", prop, make_report(estimated=300_000), now=now)
        _register(outcome_source, prop, actual_price=330_000, actual_market_trend=MarketTrend.UP)

        run = tracker.validate_predictions(now + timedelta(days=31))

        assert run.validated == 1
        validation = run.validations[0]
        assert validation.price_accuracy == pytest.approx(90.909, abs=1e-3)
        assert validation.trend_accuracy == 100.0
        assert validation.overall_accuracy == pytest.approx(95.45, abs=1e-2)
        assert validation.model_performance.bias_detection.price_range_bias == pytest.approx(-9.09, abs=1e-2)
        assert "high_model_confidence" in validation.success_factors

    def test_each_prediction_validated_once(self, tracker, outcome_source, make_property, make_report, now):
        prop = make_property()
        tracker.store_prediction("s1", prop, make_report(), now=now)
        _register(outcome_source, prop, actual_price=300_000)

        tracker.validate_predictions(now + timedelta(days=31))
        second = tracker.validate_predictions(now + timedelta(days=60))

        assert second.checked == 0
        assert len(tracker.all_validations()) == 1

    def test_unavailable_outcome_is_skipped_not_failed(self, settings, make_property, make_report, now):
        tracker = PredictionTracker(
            InMemoryStore(), InMemoryStore(), outcome_source=NullOutcomeSource(), settings=settings,
        )
        tracker.store_prediction("s1", make_property(), make_report(), now=now)

        run = tracker.validate_predictions(now + timedelta(days=40))

        assert run.checked == 1
        assert run.skipped == 1
        assert tracker.all_validations() == []
        assert len(tracker.predictions_due_for_validation(now + timedelta(days=40))) == 1

    def test_failing_source_is_treated_as_unavailable(self, settings, make_property, make_report, now):
        class BrokenSource(NullOutcomeSource):
            def fetch(self, prediction):
                raise RuntimeError("feed down")

        tracker = PredictionTracker(InMemoryStore(), InMemoryStore(), outcome_source=BrokenSource(), settings=settings)
        tracker.store_prediction("s1", make_property(), make_report(), now=now)

        run = tracker.validate_predictions(now + timedelta(days=40))

        assert run.skipped == 1

    def test_low_accuracy_failure_factors(self, tracker, outcome_source, make_property, make_report, now):
        prop = make_property()
        report = make_report(confidence=30, comparables=[], market_trends=None, coordinates=None)
        tracker.store_prediction("s1", prop, report, now=now)
        _register(outcome_source, prop, actual_price=900_000, actual_market_trend=MarketTrend.DOWN)

        validation = tracker.validate_predictions(now + timedelta(days=31)).validations[0]

        assert validation.overall_accuracy < 50
        assert set(validation.failure_factors) == {
            "low_data_quality", "low_model_confidence", "limited_analysis_methods",
        }


class TestAnalytics:

    def test_empty_stats(self, tracker):
        stats = tracker.get_performance_stats()
        assert stats.total_predictions == 0
        assert stats.validated_predictions == 0

    def test_stats_and_bias(self, tracker, outcome_source, make_property, make_report, now):
        for i, actual in enumerate([250_000, 260_000, 280_000]):
            prop = make_property(address=f"Calle {i}")
            tracker.store_prediction(f"s{i}", prop, make_report(estimated=300_000), now=now)
            _register(outcome_source, prop, actual_price=actual, actual_market_trend=MarketTrend.UP)
        tracker.validate_predictions(now + timedelta(days=31))

        stats = tracker.get_performance_stats()
        analytics = tracker.get_performance_analytics()

        assert stats.total_predictions == 3
        assert stats.validated_predictions == 3
        assert analytics["bias_analysis"]["price_overestimation"] == 3
        assert analytics["bias_analysis"]["price_underestimation"] == 0
        assert any("overestimation" in r for r in analytics["recommendations"])
        assert analytics["performance_by_method"]["comparable_analysis"]["count"] == 3

    def test_learning_signals(self, tracker, outcome_source, make_property, make_report, now):
        prop = make_property()
        tracker.store_prediction("s1", prop, make_report(), now=now)
        _register(outcome_source, prop, actual_price=300_000, actual_market_trend=MarketTrend.UP)
        run = tracker.validate_predictions(now + timedelta(days=31))

        signals = tracker.summarize_learning_signals(run.validations)

        assert signals["success_patterns"]["common_methods"] == {
            "comparable_analysis": 1, "market_data_analysis": 1,
        }
        assert signals["failure_patterns"]["common_failure_factors"] == {}
