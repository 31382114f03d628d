"""
Prompt template performance, optimization and A/B testing.

Usage:
    from propintel.prompts import PromptPerformanceStore

    prompts = PromptPerformanceStore(perf_store, opt_store, ab_store)
    template = prompts.get_best_template("valuation")
    prompts.track_usage("valuation", template, rating=4, metrics=UsageMetrics(success=True))
"""

from propintel.prompts.rules import (
    ISSUE_RULES,
    REWRITE_RULES,
    choose_optimization,
    identify_issues,
    rewrite,
)
from propintel.prompts.schemas import (
    ABArmResult,
    ABTestResult,
    ABWinner,
    OptimizationType,
    PromptCategory,
    PromptIssue,
    PromptOptimization,
    PromptPerformance,
    UsageMetrics,
)
from propintel.prompts.store import PromptPerformanceStore, chi_square_2x2, overall_score
from propintel.prompts.templates import DEFAULT_TEMPLATES, default_template

__all__ = [
    "ABArmResult",
    "ABTestResult",
    "ABWinner",
    "DEFAULT_TEMPLATES",
    "ISSUE_RULES",
    "OptimizationType",
    "PromptCategory",
    "PromptIssue",
    "PromptOptimization",
    "PromptPerformance",
    "PromptPerformanceStore",
    "REWRITE_RULES",
    "UsageMetrics",
    "chi_square_2x2",
    "choose_optimization",
    "default_template",
    "identify_issues",
    "overall_score",
    "rewrite",
]
