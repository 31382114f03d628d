"""
Analysis level ladder.

Each repeat analysis of the same property may climb one level; every
level adds its own focus areas and search queries.
"""

from typing import Optional

from propintel.deepening.schemas import LevelPerformance, ProgressivePrompt

LADDER: tuple[ProgressivePrompt, ...] = (
    ProgressivePrompt(
        version="1.0",
        level=1,
        template="STANDARD_COMPREHENSIVE",
        focus_areas=("basic_location", "market_data", "comparables", "amenities", "developments"),
        data_requirements=(
            "coordinates", "market_trends", "comparable_properties", "nearby_amenities", "future_developments",
        ),
        expected_outcome="Complete property analysis with all standard sections filled",
        performance=LevelPerformance(85, 95, 4.2, 90),
    ),
    ProgressivePrompt(
        version="2.0",
        level=2,
        template="ENHANCED_MARKET_INTELLIGENCE",
        focus_areas=(
            "market_timing", "investment_metrics", "risk_assessment", "seasonal_patterns", "demographic_insights",
        ),
        data_requirements=(
            "seasonal_data", "demographic_stats", "investment_metrics", "risk_factors", "market_forecasts",
        ),
        expected_outcome="Enhanced market intelligence with investment timing and risk analysis",
        expected_improvements=(
            "Enhanced market timing analysis",
            "Investment metrics and ROI calculations",
            "Risk assessment and mitigation strategies",
            "Seasonal market pattern analysis",
        ),
        performance=LevelPerformance(88, 92, 4.4, 85),
    ),
    ProgressivePrompt(
        version="3.0",
        level=3,
        template="ADVANCED_PREDICTIVE_ANALYTICS",
        focus_areas=(
            "predictive_modeling", "scenario_analysis", "market_disruption", "long_term_trends", "comparative_analysis",
        ),
        data_requirements=(
            "historical_trends", "predictive_models", "scenario_data",
            "market_disruption_indicators", "long_term_forecasts",
        ),
        expected_outcome="Advanced predictive analysis with scenario modeling and long-term forecasts",
        expected_improvements=(
            "Predictive market modeling",
            "Scenario analysis and forecasting",
            "Market disruption impact assessment",
            "Long-term trend analysis",
        ),
        performance=LevelPerformance(92, 88, 4.6, 80),
    ),
    ProgressivePrompt(
        version="4.0",
        level=4,
        template="SPECIALIZED_DEEP_DIVE",
        focus_areas=(
            "niche_markets", "specialized_metrics", "competitive_analysis",
            "opportunity_identification", "strategic_recommendations",
        ),
        data_requirements=(
            "niche_market_data", "competitive_intelligence", "opportunity_metrics",
            "strategic_insights", "specialized_forecasts",
        ),
        expected_outcome="Specialized analysis with niche market insights and strategic recommendations",
        expected_improvements=(
            "Niche market specialization",
            "Competitive market positioning",
            "Strategic investment recommendations",
            "Opportunity identification and analysis",
        ),
        performance=LevelPerformance(95, 85, 4.8, 75),
    ),
)

# focus area -> search query templates ({city}, {year}, {next_year})
FOCUS_QUERIES: dict[str, tuple[str, ...]] = {
    "seasonal_patterns": (
        '"{city}" seasonal property market patterns {year}',
        '"{city}" property market seasonal trends',
    ),
    "demographic_insights": (
        '"{city}" demographic trends population growth',
        '"{city}" income levels property buyers',
    ),
    "predictive_modeling": (
        '"{city}" property market forecast {next_year} {year_after}',
        '"{city}" real estate market predictions',
    ),
    "market_disruption": (
        '"{city}" property market disruption factors',
        '"{city}" real estate market risks {year}',
    ),
    "niche_markets": (
        '"{city}" luxury property market trends',
        '"{city}" investment property market analysis',
    ),
}


class PromptLadder:

    def __init__(self, levels: tuple[ProgressivePrompt, ...] = LADDER):
        self._levels = {p.level: p for p in levels if p.is_active}

    @property
    def max_level(self) -> int:
        return max(self._levels)

    def prompt_for(self, level: int) -> Optional[ProgressivePrompt]:
        return self._levels.get(level)

    def next_level(self, current: int) -> int:
        return min(current + 1, self.max_level)

    def current_level(self, analysis_count: int) -> int:
        return max(1, min(analysis_count, self.max_level))

    @staticmethod
    def queries_for(prompt: ProgressivePrompt, city: str, year: int) -> list[str]:
        queries: list[str] = []
        for area in prompt.focus_areas:
            for template in FOCUS_QUERIES.get(area, ()):
                queries.append(template.format(
                    city=city, year=year, next_year=year + 1, year_after=year + 2,
                ))
        return queries
