"""
Prompt rule tables.

Two tables drive optimization:

- ``ISSUE_RULES``: predicate over a template's statistics -> issue
- ``REWRITE_RULES``: optimization type -> deterministic text rewrite

``ISSUE_PRIORITY`` maps the detected issues to the one rewrite applied.
Rules are plain data so new ones can be added and tested in isolation.
"""

import re
from dataclasses import dataclass
from typing import Callable

from propintel.prompts.schemas import OptimizationType, PromptCategory, PromptIssue, PromptPerformance


@dataclass(frozen=True)
class IssueRule:
    issue: PromptIssue
    applies: Callable[[PromptPerformance], bool]


def _comment_mentions(word: str) -> Callable[[PromptPerformance], bool]:
    return lambda p: any(word in comment.lower() for comment in p.user_comments)


ISSUE_RULES: tuple[IssueRule, ...] = (
    IssueRule(PromptIssue.LOW_QUALITY, lambda p: p.average_quality < 3.0),
    IssueRule(PromptIssue.LOW_SUCCESS_RATE, lambda p: p.success_rate < 70),
    IssueRule(PromptIssue.HIGH_ERROR_RATE, lambda p: p.error_rate > 15),
    IssueRule(PromptIssue.SLOW_RESPONSE, lambda p: p.average_response_time > 10_000),
    IssueRule(PromptIssue.CLARITY_ISSUES, _comment_mentions("unclear")),
    IssueRule(PromptIssue.SPECIFICITY_ISSUES, _comment_mentions("generic")),
)

# First matching issue wins; CONTEXT when none match
ISSUE_PRIORITY: tuple[tuple[PromptIssue, OptimizationType], ...] = (
    (PromptIssue.CLARITY_ISSUES, OptimizationType.CLARITY),
    (PromptIssue.SPECIFICITY_ISSUES, OptimizationType.SPECIFICITY),
    (PromptIssue.HIGH_ERROR_RATE, OptimizationType.FORMAT),
    (PromptIssue.SLOW_RESPONSE, OptimizationType.SPECIFICITY),
)


def identify_issues(performance: PromptPerformance) -> list[PromptIssue]:
    return [rule.issue for rule in ISSUE_RULES if rule.applies(performance)]


def choose_optimization(issues: list[PromptIssue]) -> OptimizationType:
    for issue, optimization in ISSUE_PRIORITY:
        if issue in issues:
            return optimization
    return OptimizationType.CONTEXT


# ── Rewrites ────────────────────────────────────────────────────────────

JSON_ONLY_REMINDER = "\n\nIMPORTANT: Return ONLY valid JSON, no additional text."
ACCURACY_SENTENCE = "\n\nEnsure all responses are accurate, precise, and well-reasoned."

CATEGORY_CONTEXT: dict[PromptCategory, str] = {
    PromptCategory.LOCATION_ANALYSIS: "Consider Spanish addressing conventions and regional naming patterns.",
    PromptCategory.MARKET_SUMMARY: "Focus on current Spanish real estate market conditions and regional factors.",
    PromptCategory.VALUATION: "Apply Spanish property valuation standards and local market factors.",
    PromptCategory.INVESTMENT_ADVICE: "Consider Spanish tax implications and investment regulations.",
    PromptCategory.COMPARABLE_ANALYSIS: "Account for Spanish property types and local market characteristics.",
}


def clarity_rewrite(prompt: str, category: str) -> str:
    improved = prompt
    if "Step by step" not in improved:
        improved = re.sub(r"Please|Provide", "Step by step, please", improved, count=1)
    if "JSON format" in improved and "ONLY valid JSON" not in improved:
        improved += JSON_ONLY_REMINDER
    return improved


def specificity_rewrite(prompt: str, category: str) -> str:
    improved = prompt
    if "analyze" in improved and "specific" not in improved:
        improved = improved.replace("analyze", "analyze specifically")
    if "accurate" not in improved and "precise" not in improved:
        improved += ACCURACY_SENTENCE
    return improved


def context_rewrite(prompt: str, category: str) -> str:
    try:
        sentence = CATEGORY_CONTEXT[PromptCategory(category)]
    except ValueError:
        return prompt
    if sentence in prompt:
        return prompt
    return f"{prompt}\n\n{sentence}"


def format_rewrite(prompt: str, category: str) -> str:
    improved = prompt
    if "###" not in improved and "---" not in improved:
        improved = improved.replace("\n\n", "\n\n---\n\n")
    if "JSON format" in improved and "exact structure" not in improved:
        improved = improved.replace("JSON format", "exact JSON structure shown below", 1)
    return improved


def tone_rewrite(prompt: str, category: str) -> str:
    improved = re.sub(r"please", "", prompt, flags=re.IGNORECASE)
    improved = re.sub(r"could you", "you must", improved, flags=re.IGNORECASE)
    improved = re.sub(r"would you", "you will", improved, flags=re.IGNORECASE)
    if "professional" not in improved and improved:
        improved = "As a professional real estate analyst, " + improved[0].lower() + improved[1:]
    return improved


REWRITE_RULES: dict[OptimizationType, Callable[[str, str], str]] = {
    OptimizationType.CLARITY: clarity_rewrite,
    OptimizationType.SPECIFICITY: specificity_rewrite,
    OptimizationType.CONTEXT: context_rewrite,
    OptimizationType.FORMAT: format_rewrite,
    OptimizationType.TONE: tone_rewrite,
}


def rewrite(prompt: str, category: str, optimization: OptimizationType) -> str:
    return REWRITE_RULES[optimization](prompt, category)
