"""
Progressive Deepening Tests.

History per property identity, the upgrade gate and the level ladder.
"""

from datetime import timedelta

import pytest

from propintel.deepening import LADDER, PromptLadder


def _analyse(deepening, prop, now, quality=85.0, times=1, **kwargs):
    history = None
    for i in range(times):
        history = deepening.record_analysis(prop, f"s{i}", quality, now=now, **kwargs)
    return history


class TestHistory:

    def test_first_analysis(self, deepening, make_property, now):
        history = _analyse(deepening, make_property(), now)

        assert history.analysis_count == 1
        assert history.first_analysis_date == now
        assert history.prompt_versions == ["1.0"]
        assert history.session_ids == ["s0"]

    def test_identity_ignores_case_and_accents(self, deepening, make_property, now):
        _analyse(deepening, make_property(), now)
        _analyse(deepening, make_property(address="CALLE ANCHA 12, MARBELLA", province="Malaga"), now)

        assert len(deepening.all_histories()) == 1
        assert deepening.get_history(make_property()).analysis_count == 2

    def test_quality_history_is_bounded(self, deepening, make_property, now):
        history = _analyse(deepening, make_property(), now, times=12)
        assert len(history.quality_scores) == 10

    def test_data_gaps_are_deduplicated(self, deepening, make_property, now):
        prop = make_property()
        deepening.record_analysis(prop, "s1", 70, data_gaps=["rental_data"], now=now)
        history = deepening.record_analysis(prop, "s2", 70, data_gaps=["rental_data", "amenities"], now=now)
        assert history.data_gaps == ["rental_data", "amenities"]

    def test_feedback_needs_prior_analysis(self, deepening, make_property, make_feedback, now):
        prop = make_property()
        assert deepening.add_user_feedback(prop, make_feedback()) is False

        _analyse(deepening, prop, now)
        assert deepening.add_user_feedback(prop, make_feedback(overall_rating=5)) is True
        assert deepening.get_history(prop).user_feedback[0].overall_rating == 5

    def test_regional_updates_are_counted(self, deepening, make_property, now):
        prop = make_property()
        deepening.note_regional_update(prop)
        _analyse(deepening, prop, now)
        deepening.note_regional_update(prop)

        assert deepening.get_history(prop).regional_knowledge_updates == 1


class TestUpgradeGate:

    def test_strategy_for_next_level(self, deepening, make_property, now):
        prop = make_property()
        _analyse(deepening, prop, now, quality=85)

        strategy = deepening.get_deepening_strategy(prop, now + timedelta(hours=25))

        assert strategy.current_level == 1
        assert strategy.next_level == 2
        assert strategy.template == "ENHANCED_MARKET_INTELLIGENCE"
        assert strategy.additional_queries[0] == '"Marbella" seasonal property market patterns 2024'
        assert len(strategy.additional_queries) == 4
        assert strategy.confidence_threshold == 75.0

    def test_level_three_queries_look_ahead(self, deepening, make_property, now):
        prop = make_property()
        _analyse(deepening, prop, now, times=2)

        strategy = deepening.get_deepening_strategy(prop, now + timedelta(days=2))

        assert strategy.next_level == 3
        assert '"Marbella" property market forecast 2025 2026' in strategy.additional_queries

    @pytest.mark.parametrize("hours", [1, 24])
    def test_too_soon(self, deepening, make_property, now, hours):
        prop = make_property()
        _analyse(deepening, prop, now)
        assert deepening.get_deepening_strategy(prop, now + timedelta(hours=hours)) is None

    def test_quality_must_exceed_threshold(self, deepening, make_property, now):
        prop = make_property()
        _analyse(deepening, prop, now, quality=80)
        assert deepening.get_deepening_strategy(prop, now + timedelta(days=2)) is None

    @pytest.mark.parametrize("rating, upgrades", [(3, False), (4, True)])
    def test_latest_feedback_gates_upgrade(self, deepening, make_property, make_feedback, now, rating, upgrades):
        prop = make_property()
        _analyse(deepening, prop, now)
        deepening.add_user_feedback(prop, make_feedback(overall_rating=rating))

        strategy = deepening.get_deepening_strategy(prop, now + timedelta(days=2))

        assert (strategy is not None) is upgrades

    def test_top_of_ladder(self, deepening, make_property, now):
        prop = make_property()
        _analyse(deepening, prop, now, times=4)
        assert deepening.get_deepening_strategy(prop, now + timedelta(days=2)) is None

    def test_unknown_property(self, deepening, make_property, now):
        assert deepening.get_deepening_strategy(make_property(address="Nowhere 1"), now) is None

    def test_should_upgrade_reads_history(self, deepening, make_property, now):
        history = _analyse(deepening, make_property(), now, quality=90)

        assert deepening.should_upgrade(history, now + timedelta(hours=25)) is True
        assert deepening.should_upgrade(history, now + timedelta(hours=23)) is False


class TestLadder:

    def test_levels(self):
        ladder = PromptLadder()
        assert ladder.max_level == 4
        assert ladder.current_level(0) == 1
        assert ladder.current_level(9) == 4
        assert ladder.next_level(4) == 4

    def test_shorter_ladder_caps_levels(self):
        ladder = PromptLadder(LADDER[:2])
        assert ladder.max_level == 2
        assert ladder.prompt_for(3) is None


class TestStats:

    def test_most_analyzed(self, deepening, make_property, now):
        _analyse(deepening, make_property(), now, times=3)
        _analyse(deepening, make_property(address="Calle Real 1"), now)

        stats = deepening.get_stats()

        assert stats["total_properties"] == 2
        assert stats["average_analyses_per_property"] == 2.0
        top = stats["most_analyzed_properties"][0]
        assert top["analysis_count"] == 3
        assert top["current_level"] == 3
