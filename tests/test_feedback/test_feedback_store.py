"""Tests for the feedback store and analyzer.

Key tests:
- Rating validation on every entry path
- Submission never raises
- Aggregate stats and the 30-day trend
- Outcome attachment
- Analyzer trends, correction patterns and recommendations
"""

from datetime import timedelta

import pydantic
import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from propintel.config import Settings
from propintel.feedback import (
    ComponentName,
    ComponentRating,
    Feedback,
    FeedbackAnalyzer,
    FeedbackStore,
    InvestmentOutcome,
    OutcomeVerification,
    PropertyCorrection,
    TrendDirection,
    create_feedback_template,
    low_rated_components,
)
from propintel.storage import InMemoryStore


out_of_range = st.one_of(st.integers(max_value=0), st.integers(min_value=6))


# =============================================================================
# VALIDATION
# =============================================================================


class TestRatingValidation:
    """Ratings outside [1, 5] are rejected."""

    @hyp_settings(max_examples=50)
    @given(rating=out_of_range)
    def test_overall_rating_out_of_range_is_rejected(self, rating):
        with pytest.raises(pydantic.ValidationError):
            Feedback(session_id="s1", overall_rating=rating)

    @hyp_settings(max_examples=50)
    @given(rating=out_of_range, field=st.sampled_from(["rating", "accuracy", "usefulness"]))
    def test_component_rating_out_of_range_is_rejected(self, rating, field):
        values = {"rating": 3, "accuracy": 3, "usefulness": 3, field: rating}
        with pytest.raises(pydantic.ValidationError):
            ComponentRating(**values)

    @hyp_settings(max_examples=50)
    @given(rating=st.integers(min_value=1, max_value=5))
    def test_in_range_ratings_are_accepted(self, rating):
        feedback = Feedback(
            session_id="s1",
            overall_rating=rating,
            component_ratings={
                ComponentName.VALUATION: ComponentRating(rating=rating, accuracy=rating, usefulness=rating),
            },
        )
        assert feedback.overall_rating == rating

    def test_blank_session_id_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Feedback(session_id="   ", overall_rating=3)

    def test_correction_confidence_is_validated(self):
        with pytest.raises(pydantic.ValidationError):
            PropertyCorrection(field="price", confidence=9)


# =============================================================================
# STORE
# =============================================================================


class TestSubmit:
    """Submission results."""

    def test_submit_model(self, feedback_store, make_feedback):
        result = feedback_store.submit(make_feedback())
        assert result.success is True
        assert result.feedback_id
        assert len(feedback_store) == 1

    def test_submit_dict(self, feedback_store):
        result = feedback_store.submit({"session_id": "s1", "overall_rating": 4})
        assert result.success is True
        assert feedback_store.get_by_session("s1").overall_rating == 4

    def test_invalid_dict_returns_failed_result(self, feedback_store):
        result = feedback_store.submit({"session_id": "s1", "overall_rating": 7})
        assert result.success is False
        assert "overall_rating" in result.message
        assert len(feedback_store) == 0

    def test_mutated_model_is_rechecked(self, feedback_store):
        feedback = Feedback.model_construct(
            id="f1", session_id="s1", overall_rating=0, component_ratings={}, corrections=[],
        )
        result = feedback_store.submit(feedback)
        assert result.success is False
        assert result.message == "Overall rating must be between 1 and 5"

    def test_template_is_neutral(self):
        template = create_feedback_template("s9")
        assert template.overall_rating == 3
        assert set(template.component_ratings) == set(ComponentName)
        assert all(r.rating == 3 for r in template.component_ratings.values())


class TestOutcome:

    def test_update_outcome_attaches_to_session(self, feedback_store, make_feedback):
        feedback_store.submit(make_feedback(session_id="s1"))
        outcome = OutcomeVerification(
            actual_sale_price=310_000, final_sale_ratio=1.03, investment_outcome=InvestmentOutcome.GOOD,
        )

        assert feedback_store.update_outcome("s1", outcome) is True
        assert feedback_store.get_by_session("s1").outcome_verification.actual_sale_price == 310_000

    def test_update_outcome_unknown_session(self, feedback_store):
        assert feedback_store.update_outcome("missing", OutcomeVerification()) is False


class TestStats:

    def test_empty_stats(self, feedback_store):
        stats = feedback_store.get_stats()
        assert stats.total_feedback == 0
        assert stats.recent_trend == TrendDirection.STABLE

    def test_average_and_component_satisfaction(self, feedback_store, make_feedback, now):
        feedback_store.submit(make_feedback(session_id="a", overall_rating=5, component_rating=4, timestamp=now))
        feedback_store.submit(make_feedback(session_id="b", overall_rating=3, component_rating=2, timestamp=now))

        stats = feedback_store.get_stats(now)

        assert stats.total_feedback == 2
        assert stats.average_rating == 4.0
        assert stats.component_satisfaction["valuation"] == 3.0

    @pytest.mark.parametrize(
        "previous, recent, expected",
        [
            (2, 4, TrendDirection.IMPROVING),
            (4, 2, TrendDirection.DECLINING),
            (4, 4, TrendDirection.STABLE),
        ],
    )
    def test_thirty_day_trend(self, feedback_store, make_feedback, now, previous, recent, expected):
        feedback_store.submit(make_feedback(
            session_id="old", overall_rating=previous, timestamp=now - timedelta(days=45),
        ))
        feedback_store.submit(make_feedback(
            session_id="new", overall_rating=recent, timestamp=now - timedelta(days=5),
        ))

        assert feedback_store.get_stats(now).recent_trend == expected

    def test_trend_window_comes_from_settings(self, make_feedback, now):
        store = FeedbackStore(
            InMemoryStore("user-feedback"),
            settings=Settings(storage_backend="memory", feedback_trend_window_days=7),
        )
        store.submit(make_feedback(session_id="old", overall_rating=2, timestamp=now - timedelta(days=10)))
        store.submit(make_feedback(session_id="new", overall_rating=5, timestamp=now - timedelta(days=2)))

        assert store.get_stats(now).recent_trend == TrendDirection.IMPROVING

    def test_low_rated_components(self, make_feedback):
        feedback = make_feedback(component_rating=4)
        feedback.component_ratings[ComponentName.AMENITIES] = ComponentRating(rating=4, accuracy=2, usefulness=4)
        feedback.component_ratings[ComponentName.VALUATION] = ComponentRating(rating=1, accuracy=4, usefulness=4)

        assert set(low_rated_components(feedback)) == {ComponentName.AMENITIES, ComponentName.VALUATION}


# =============================================================================
# ANALYZER
# =============================================================================


class TestAnalyzer:
    """Insights over the whole collection."""

    def test_no_feedback(self, feedback_store):
        insights = FeedbackAnalyzer(feedback_store).generate_insights()
        assert insights["overall_trends"] is None
        assert insights["correction_patterns"] is None
        assert insights["recommendations"] == []

    def test_overall_trend_improving(self, feedback_store, make_feedback, now):
        ratings = [2] * 10 + [5] * 10
        for i, rating in enumerate(ratings):
            feedback_store.submit(make_feedback(
                session_id=f"s{i}", overall_rating=rating, timestamp=now - timedelta(hours=len(ratings) - i),
            ))

        trends = FeedbackAnalyzer(feedback_store).generate_insights()["overall_trends"]

        assert trends["total_feedback"] == 20
        assert len(trends["moving_averages"]) == 11
        assert trends["trend"] == TrendDirection.IMPROVING

    def test_correction_patterns(self, feedback_store, make_feedback):
        corrections = [
            PropertyCorrection(field="total_area_m2", confidence=5, source="catastro"),
            PropertyCorrection(field="total_area_m2", confidence=5, source="catastro"),
            PropertyCorrection(field="total_area_m2", confidence=5, source="owner"),
            PropertyCorrection(field="bedrooms", confidence=1),
        ]
        feedback_store.submit(make_feedback(corrections=corrections))

        patterns = FeedbackAnalyzer(feedback_store).generate_insights()["correction_patterns"]

        assert patterns["total_corrections"] == 4
        assert patterns["most_corrected_fields"][0] == "total_area_m2"
        area = patterns["corrections_by_field"]["total_area_m2"]
        assert area["pattern"] == "high_confidence_corrections"
        assert area["common_sources"] == ["catastro", "owner"]
        assert patterns["corrections_by_field"]["bedrooms"]["pattern"] == "insufficient_data"

    def test_outcome_price_accuracy(self, feedback_store, make_feedback):
        feedback_store.submit(make_feedback(
            outcome_verification=OutcomeVerification(final_sale_ratio=0.9),
        ))
        outcomes = FeedbackAnalyzer(feedback_store).generate_insights()["outcome_validation"]
        assert outcomes["price_accuracy"] == [pytest.approx(90.0)]

    def test_recommendations_for_low_satisfaction(self, feedback_store, make_feedback):
        feedback_store.submit(make_feedback(overall_rating=2, component_rating=2))

        recommendations = FeedbackAnalyzer(feedback_store).generate_insights()["recommendations"]

        assert any("below target" in r for r in recommendations)
        assert any(r.startswith("valuation component needs improvement") for r in recommendations)
