"""
Analysis quality rubric.

Scores a finished report out of 100 when the pipeline did not supply its
own quality figure, and lists the sections it was missing.
"""

from propintel.schemas.report import AnalysisReport

# ── Rubric weights (sum to 100) ─────────────────────────────────────────
VALUATION_POINTS: tuple[tuple[float, int], ...] = ((80, 25), (60, 20), (40, 15))
COMPARABLE_POINTS: tuple[tuple[int, int], ...] = ((5, 25), (2, 20), (0, 15))
MARKET_TREND_POINTS: int = 20
COORDINATE_POINTS: int = 15
SUMMARY_POINTS: tuple[tuple[int, int], ...] = ((200, 15), (100, 10))


def _tier(value: float, tiers) -> int:
    for threshold, points in tiers:
        if value > threshold:
            return points
    return 0


def calculate_analysis_quality(report: AnalysisReport) -> float:
    score = 0
    if report.valuation is not None:
        score += _tier(report.valuation.confidence, VALUATION_POINTS)
    score += _tier(len(report.comparables), COMPARABLE_POINTS)
    if report.market_trends is not None and report.market_trends.price_change_6_month is not None:
        score += MARKET_TREND_POINTS
    if report.coordinates is not None:
        score += COORDINATE_POINTS
    if report.summary is not None:
        score += _tier(len(report.summary.overview), SUMMARY_POINTS)
    return float(round(score))


def identify_data_gaps(report: AnalysisReport) -> list[str]:
    gaps = []
    if report.valuation is None:
        gaps.append("valuation")
    if not report.comparables:
        gaps.append("comparables")
    if report.market_trends is None or report.market_trends.price_change_6_month is None:
        gaps.append("market_trends")
    if report.market_trends is None or report.market_trends.average_monthly_rent is None:
        gaps.append("rental_data")
    if report.coordinates is None:
        gaps.append("coordinates")
    if not report.nearby_amenities:
        gaps.append("amenities")
    if not report.future_developments:
        gaps.append("future_developments")
    if report.summary is None or not report.summary.overview:
        gaps.append("summary")
    return gaps
