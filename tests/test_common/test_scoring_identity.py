"""
Shared helper tests: running averages, clamping, grades and identities.
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from propintel.clock import as_naive_utc, resolve_now
from propintel.identity import (
    comparable_region_id,
    fold_accents,
    intelligence_id,
    prompt_id,
    property_id,
    region_id,
    slugify,
)
from propintel.scoring import blend, clamp_score, mean, score_to_grade


class TestBlend:
    """Running mean until the window fills, EMA afterwards."""

    def test_first_observation_replaces_current(self):
        assert blend(70.0, 40.0, 0, 10) == 40.0

    def test_exact_mean_inside_window(self):
        value = 0.0
        for count, obs in enumerate([10, 20, 30, 40]):
            value = blend(value, obs, count, 10)
        assert value == pytest.approx(25.0)

    def test_constant_factor_after_window(self):
        # alpha = 1/5 once five observations are in
        assert blend(100.0, 50.0, 20, 5) == pytest.approx(90.0)

    @hyp_settings(max_examples=50)
    @given(
        start=st.floats(min_value=0, max_value=10_000),
        target=st.floats(min_value=0, max_value=10_000),
        window=st.integers(min_value=1, max_value=20),
    )
    def test_converges_to_repeated_value(self, start, target, window):
        """Feeding the same value repeatedly converges on it."""
        value = start
        count = 1
        for _ in range(400):
            value = blend(value, target, count, window)
            count += 1
        assert value == pytest.approx(target, abs=1e-3 * max(1.0, abs(start - target)))


class TestClampAndGrades:

    @hyp_settings(max_examples=50)
    @given(st.floats(allow_nan=False, allow_infinity=False))
    def test_clamp_score_stays_in_range(self, value):
        assert 0.0 <= clamp_score(value) <= 100.0

    @pytest.mark.parametrize(
        "score, grade",
        [(95, "A"), (80, "A"), (79.9, "B"), (65, "B"), (50, "C"), (35, "D"), (34.9, "F"), (0, "F")],
    )
    def test_grade_bands(self, score, grade):
        assert score_to_grade(score) == grade

    def test_mean_of_nothing_is_none(self):
        assert mean([]) is None
        assert mean([1, 2, 3]) == 2


class TestIdentity:

    def test_fold_accents(self):
        assert fold_accents("Málaga Nueva Andalucía") == "Malaga Nueva Andalucia"

    def test_slugify(self):
        assert slugify("  Nueva   Andalucía ") == "nueva-andalucia"

    def test_property_id_is_stable_and_normalised(self):
        a = property_id("Calle Ancha 12", "Marbella", "Málaga")
        b = property_id("  calle ancha 12", "MARBELLA", "Malaga")
        assert a == b
        assert len(a) == 16

    def test_property_id_differs_by_address(self):
        assert property_id("A", "Marbella", "Málaga") != property_id("B", "Marbella", "Málaga")

    def test_region_and_intelligence_ids(self):
        assert region_id("city", "Málaga") == "city_malaga"
        region = comparable_region_id("Marbella", "Málaga")
        assert region == "marbella_malaga"
        assert intelligence_id(region, "Apartment") == "marbella_malaga_apartment"

    def test_prompt_id_covers_full_template(self):
        assert prompt_id("valuation", "abc") != prompt_id("valuation", "abd")
        assert prompt_id("valuation", "abc") != prompt_id("market_summary", "abc")
        assert prompt_id("valuation", "abc").startswith("prompt_")


class TestClock:

    def test_aware_datetimes_become_naive_utc(self):
        aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert as_naive_utc(aware) == datetime(2024, 1, 1, 10, 0)

    def test_resolve_now_prefers_injected_clock(self):
        fixed = datetime(2024, 6, 15, 12, 0)
        assert resolve_now(fixed) == fixed
        assert resolve_now(None).tzinfo is None
