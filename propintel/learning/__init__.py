"""
Learning orchestration.

Usage:
    from propintel.registry import get_services

    learning = get_services().learning
    learning.update_regional_knowledge(session_id, property, report)
    learning.process_user_feedback(feedback, property=property)
    report = learning.generate_learning_report()
"""

from propintel.learning.orchestrator import (
    COMPONENT_PROMPT_CATEGORY,
    FALLBACK_TEMPLATE,
    LearningOrchestrator,
    system_reliability,
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

__all__ = [
    "COMPONENT_PROMPT_CATEGORY",
    "FALLBACK_TEMPLATE",
    "PRIORITY_ORDER",
    "FeedbackProcessingResult",
    "Impact",
    "InsightType",
    "KnowledgeUpdateResult",
    "LearningInsight",
    "LearningOrchestrator",
    "LearningReport",
    "RecommendationPriority",
    "RecommendationType",
    "SystemMetrics",
    "SystemRecommendation",
    "calculate_analysis_quality",
    "identify_data_gaps",
    "system_reliability",
]
