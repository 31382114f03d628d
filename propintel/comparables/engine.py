"""
Comparable Selection Engine.

Learns, per (region, property type), which comparables make good
valuations:

- user feedback on the comparables section (success patterns on high
  ratings, comment-driven rule adjustments on low ones)
- price consistency of repeated analyses in the same region
- validated predictions (valuation accuracy, location weight)

Learned criteria and weights are served only once the record's learning
confidence clears ``learned_criteria_confidence``; below that callers get
the property-type default, never ``None``.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Optional

import structlog

from propintel.clock import resolve_now
from propintel.comparables.defaults import default_criteria, default_feature_weights
from propintel.comparables.rules import apply_comment_rules
from propintel.comparables.schemas import (
    AreaRange,
    ComparableIntelligence,
    ComparablePattern,
    EnhancedSearchCriteria,
    FeatureWeights,
    SelectionCriteria,
)
from propintel.config import Settings, get_settings
from propintel.feedback.schemas import ComponentName, Feedback
from propintel.identity import comparable_region_id, intelligence_id
from propintel.schemas.report import Comparable, PropertyData
from propintel.scoring import blend, clamp_score, mean
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

SUCCESS_RATING: int = 4                 # rating and accuracy at or above
FAILURE_RATING: int = 2                 # rating or accuracy at or below
CONSISTENCY_BAND: float = 5.0           # percent deviation from the regional €/m²
ENHANCED_MAX_RESULTS: int = 20
DEFAULT_AREA_M2: float = 100.0
PATTERN_SHIFT_SUCCESS: float = 80.0     # best pattern must exceed this to move the radius
MIN_SEARCH_RADIUS_KM: float = 1.0
TOP_COMBINATIONS: int = 5


def success_pattern_name(property_type: str) -> str:
    return f"Successful selection for {property_type}"


def consistency_pattern_name(property_type: str) -> str:
    return f"Consistent pricing for {property_type}"


def learning_confidence(intelligence: ComparableIntelligence) -> float:
    score = min(40.0, len(intelligence.success_patterns) * 8.0)

    if intelligence.selection_accuracy > 80:
        score += 30
    elif intelligence.selection_accuracy > 60:
        score += 20
    elif intelligence.selection_accuracy > 40:
        score += 10

    if intelligence.valuation_accuracy > 80:
        score += 20
    elif intelligence.valuation_accuracy > 60:
        score += 15
    elif intelligence.valuation_accuracy > 40:
        score += 10

    score += (mean(p.success_rate for p in intelligence.success_patterns) or 0.0) * 0.1
    return clamp_score(score)


def _average_distance(comparables: list[Comparable]) -> Optional[float]:
    return mean(c.distance_km for c in comparables if c.distance_km is not None)


class ComparableSelectionEngine:
    """Learned comparable-selection criteria per region and property type."""

    def __init__(self, intelligence: KeyValueStore, settings: Optional[Settings] = None):
        self._intelligence = intelligence
        self._settings = settings or get_settings()

    # =========================================================================
    # LOOKUP
    # =========================================================================

    @staticmethod
    def key_for(property: PropertyData) -> tuple[str, str]:
        region = comparable_region_id(property.city, property.province)
        return region, intelligence_id(region, property.property_type)

    def get_intelligence(self, property: PropertyData) -> Optional[ComparableIntelligence]:
        _, key = self.key_for(property)
        record = self._intelligence.get(key)
        return ComparableIntelligence.model_validate(record) if record else None

    def all_intelligence(self) -> list[ComparableIntelligence]:
        return [ComparableIntelligence.model_validate(r) for r in self._intelligence.values()]

    def _learned(self, property: PropertyData) -> Optional[ComparableIntelligence]:
        intelligence = self.get_intelligence(property)
        if intelligence and intelligence.learning_confidence > self._settings.learned_criteria_confidence:
            return intelligence
        return None

    def get_optimal_criteria(self, property: PropertyData) -> SelectionCriteria:
        learned = self._learned(property)
        if learned is not None:
            logger.debug("learned_criteria_used", city=property.city, property_type=property.property_type)
            return learned.optimal_criteria
        logger.debug("default_criteria_used", city=property.city, property_type=property.property_type)
        return default_criteria()

    def get_feature_weights(self, property: PropertyData) -> FeatureWeights:
        learned = self._learned(property)
        if learned is not None:
            return learned.feature_weights
        return default_feature_weights(property.property_type)

    def _load_or_create(self, property: PropertyData, now: datetime) -> ComparableIntelligence:
        region, key = self.key_for(property)
        record = self._intelligence.get(key)
        if record:
            return ComparableIntelligence.model_validate(record)
        return ComparableIntelligence(
            id=key,
            region_id=region,
            property_type=property.property_type,
            optimal_criteria=default_criteria(),
            feature_weights=default_feature_weights(property.property_type),
            last_updated=now,
        )

    def _save(self, intelligence: ComparableIntelligence, now: datetime) -> None:
        intelligence.learning_confidence = learning_confidence(intelligence)
        intelligence.last_updated = now
        self._intelligence.set(intelligence.id, intelligence.model_dump(mode="json"))

    # =========================================================================
    # LEARNING
    # =========================================================================

    def learn_from_feedback(
        self,
        property: PropertyData,
        comparables: list[Comparable],
        feedback: Feedback,
        now: Optional[datetime] = None,
    ) -> Optional[ComparableIntelligence]:
        """Fold the comparables rating of ``feedback`` in. None when it has no such rating."""
        rating = feedback.rating_for(ComponentName.COMPARABLES)
        if rating is None:
            logger.debug("comparable_feedback_skipped", session_id=feedback.session_id)
            return None

        now = resolve_now(now)
        with self._intelligence.transaction():
            intelligence = self._load_or_create(property, now)
            self._update_selection_accuracy(intelligence, (rating.rating + rating.accuracy) / 2 * 20)

            if rating.rating >= SUCCESS_RATING and rating.accuracy >= SUCCESS_RATING:
                self._learn_success(intelligence, property, comparables)
            else:
                if rating.rating <= FAILURE_RATING or rating.accuracy <= FAILURE_RATING:
                    fired = apply_comment_rules(intelligence, rating.comments)
                    if fired:
                        logger.info("comparable_rules_applied", rules=fired, session_id=feedback.session_id)
                self._reinforce(intelligence, property, rating.rating)

            self._save(intelligence, now)

        logger.info(
            "comparable_feedback_learned",
            region_id=intelligence.region_id,
            property_type=intelligence.property_type,
            confidence=intelligence.learning_confidence,
        )
        return intelligence

    def _update_selection_accuracy(self, intelligence: ComparableIntelligence, observation: float) -> None:
        intelligence.selection_accuracy = clamp_score(blend(
            intelligence.selection_accuracy,
            observation,
            intelligence.selection_samples,
            self._settings.selection_accuracy_window,
        ))
        intelligence.selection_samples += 1

    @staticmethod
    def _learn_success(
        intelligence: ComparableIntelligence,
        property: PropertyData,
        comparables: list[Comparable],
    ) -> None:
        criteria = intelligence.optimal_criteria
        distance = _average_distance(comparables)
        if distance is not None and distance < criteria.optimal_distance:
            criteria.optimal_distance = (criteria.optimal_distance + distance) / 2

        subject_area = property.total_area_m2 or DEFAULT_AREA_M2
        ratios = [c.area_m2 / subject_area for c in comparables if c.area_m2 > 0]
        if ratios:
            observed = AreaRange(min=min(ratios), max=max(ratios))
            if observed.width < criteria.area_range.width:
                criteria.area_range = AreaRange(
                    min=(criteria.area_range.min + observed.min) / 2,
                    max=(criteria.area_range.max + observed.max) / 2,
                )

        name = success_pattern_name(property.property_type)
        pattern = intelligence.pattern(name)
        if pattern is None:
            intelligence.success_patterns.append(ComparablePattern(
                pattern_name=name,
                description="Pattern that led to high user satisfaction",
                conditions=[
                    f"Average distance: {(distance or 0.0):.1f}km",
                    f"Size range: {min(ratios, default=0):.2f}-{max(ratios, default=0):.2f}",
                    f"Property type: {property.property_type}",
                ],
                distance_adjustment=(distance - criteria.optimal_distance) if distance is not None else 0.0,
            ))
            return

        pattern.use_count += 1
        pattern.success_rate = (pattern.success_rate + 100) / 2
        pattern.user_satisfaction = (pattern.user_satisfaction + 5) / 2
        if distance is not None:
            pattern.distance_adjustment = distance - criteria.optimal_distance

    @staticmethod
    def _reinforce(intelligence: ComparableIntelligence, property: PropertyData, rating: int) -> None:
        pattern = intelligence.pattern(success_pattern_name(property.property_type))
        if pattern is None:
            return
        pattern.use_count += 1
        pattern.success_rate = (pattern.success_rate + rating * 20) / 2
        pattern.user_satisfaction = (pattern.user_satisfaction + rating) / 2

    def learn_from_analysis(
        self,
        property: PropertyData,
        comparables: list[Comparable],
        reference_price_per_m2: Optional[float],
        now: Optional[datetime] = None,
    ) -> Optional[ComparableIntelligence]:
        """
        Learn from price consistency with the region.

        ``reference_price_per_m2`` is the regional average before this
        analysis was folded in. Nothing is learned without it or without a
        subject €/m².
        """
        price_per_m2 = property.price_per_m2
        if not reference_price_per_m2 or not price_per_m2:
            return None

        now = resolve_now(now)
        deviation = abs(price_per_m2 - reference_price_per_m2) / reference_price_per_m2 * 100
        consistent = deviation <= CONSISTENCY_BAND

        with self._intelligence.transaction():
            intelligence = self._load_or_create(property, now)
            self._update_selection_accuracy(intelligence, max(0.0, 100.0 - 2 * deviation))

            if consistent:
                name = consistency_pattern_name(property.property_type)
                pattern = intelligence.pattern(name)
                if pattern is None:
                    intelligence.success_patterns.append(ComparablePattern(
                        pattern_name=name,
                        description="Analyses priced within the regional band",
                        conditions=[f"Deviation <= {CONSISTENCY_BAND:.0f}%", f"Property type: {property.property_type}"],
                    ))
                else:
                    pattern.use_count += 1
                    pattern.success_rate = (pattern.success_rate + 100) / 2

                criteria = intelligence.optimal_criteria
                distance = _average_distance(comparables)
                if distance is not None and distance < criteria.optimal_distance:
                    criteria.optimal_distance = (criteria.optimal_distance + distance) / 2

            self._save(intelligence, now)

        logger.debug(
            "comparable_consistency_learned",
            region_id=intelligence.region_id,
            deviation=round(deviation, 2),
            consistent=consistent,
        )
        return intelligence

    def improve_from_validation(
        self,
        property: PropertyData,
        price_accuracy: float,
        average_distance: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> ComparableIntelligence:
        now = resolve_now(now)
        with self._intelligence.transaction():
            intelligence = self._load_or_create(property, now)
            intelligence.valuation_accuracy = clamp_score(blend(
                intelligence.valuation_accuracy,
                price_accuracy,
                intelligence.valuation_samples,
                self._settings.valuation_accuracy_window,
            ))
            intelligence.valuation_samples += 1

            if (
                price_accuracy > 80
                and average_distance is not None
                and average_distance < intelligence.optimal_criteria.optimal_distance
            ):
                weights = intelligence.feature_weights
                weights.location = min(0.5, weights.location * 1.1)

            self._save(intelligence, now)

        logger.info(
            "comparable_validation_learned",
            region_id=intelligence.region_id,
            price_accuracy=round(price_accuracy, 1),
        )
        return intelligence

    # =========================================================================
    # SEARCH CRITERIA
    # =========================================================================

    def generate_enhanced_criteria(self, property: PropertyData) -> EnhancedSearchCriteria:
        """
        Search filters from the effective criteria and weights.

        Learned weights can switch filters off: a dominant size weight drops
        the bedroom filter, location+size above 0.5 drops the bathroom
        filter and a small feature weight drops feature filtering.
        """
        learned = self._learned(property)
        criteria = self.get_optimal_criteria(property)
        weights = self.get_feature_weights(property)
        area = property.total_area_m2 or DEFAULT_AREA_M2

        search = EnhancedSearchCriteria(
            property_type=property.property_type,
            city=property.city,
            province=property.province,
            max_distance=criteria.max_distance,
            min_area_m2=area * criteria.area_range.min,
            max_area_m2=area * criteria.area_range.max,
            features=[] if weights.features < 0.15 else list(property.features[:3]),
            max_results=ENHANCED_MAX_RESULTS,
            learned=learned is not None,
        )

        if property.bedrooms is not None and weights.size <= 0.3:
            search.bedrooms_min = max(0, property.bedrooms - 1)
            search.bedrooms_max = property.bedrooms + 1
        if property.bathrooms is not None and weights.location + weights.size <= 0.5:
            search.bathrooms_min = max(0, property.bathrooms - 1)
            search.bathrooms_max = property.bathrooms + 1

        intelligence = self.get_intelligence(property)
        if intelligence and intelligence.success_patterns:
            best = max(intelligence.success_patterns, key=lambda p: p.success_rate)
            if best.success_rate > PATTERN_SHIFT_SUCCESS and best.distance_adjustment:
                search.max_distance = max(MIN_SEARCH_RADIUS_KM, search.max_distance + best.distance_adjustment)

        return search

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def analyze_selection_patterns(self) -> dict[str, Any]:
        records = self.all_intelligence()
        if not records:
            return {
                "regional_insights": [],
                "property_type_insights": [],
                "global_patterns": [],
                "recommendations": [],
            }

        by_region: dict[str, list[ComparableIntelligence]] = defaultdict(list)
        by_type: dict[str, list[ComparableIntelligence]] = defaultdict(list)
        for record in records:
            by_region[record.region_id].append(record)
            by_type[record.property_type].append(record)

        regional = []
        for region, group in sorted(by_region.items()):
            accuracy = mean(r.selection_accuracy for r in group)
            confidence = mean(r.learning_confidence for r in group)
            if accuracy > 80:
                insight = f"High comparable selection accuracy ({accuracy:.1f}%) - good data availability"
            elif accuracy < 60:
                insight = f"Low comparable selection accuracy ({accuracy:.1f}%) - may need data improvement"
            else:
                continue
            regional.append({"region": region, "insight": insight, "confidence": confidence})

        type_insights = sorted(
            (
                {
                    "type": property_type,
                    "insight": f"Average comparable accuracy: {mean(r.selection_accuracy for r in group):.1f}%",
                    "confidence": mean(r.learning_confidence for r in group),
                }
                for property_type, group in by_type.items()
            ),
            key=lambda i: i["confidence"],
            reverse=True,
        )

        global_patterns = [{
            "pattern": f"Average optimal distance: {mean(r.optimal_criteria.optimal_distance for r in records):.1f}km",
            "impact": "Comparables within this distance tend to be most effective",
            "confidence": 70,
        }]
        if mean(r.feature_weights.location for r in records) > 0.35:
            global_patterns.append({
                "pattern": "Location is consistently the most important factor",
                "impact": "Prioritize geographic proximity in comparable selection",
                "confidence": 80,
            })

        recommendations = []
        if mean(r.selection_accuracy for r in records) < 70:
            recommendations.append("Overall comparable selection accuracy is below target. Review selection criteria.")
        low_confidence = sum(1 for r in records if r.learning_confidence < self._settings.learned_criteria_confidence)
        if low_confidence:
            recommendations.append(
                f"{low_confidence} regions have low learning confidence. Gather more feedback data."
            )
        no_patterns = sum(1 for r in records if not r.success_patterns)
        if no_patterns:
            recommendations.append(
                f"{no_patterns} property type/region combinations lack success patterns. "
                "Increase feedback collection."
            )

        return {
            "regional_insights": regional,
            "property_type_insights": type_insights,
            "global_patterns": global_patterns,
            "recommendations": recommendations,
        }

    def get_stats(self) -> dict[str, Any]:
        records = self.all_intelligence()
        ranked = sorted(records, key=lambda r: r.selection_accuracy, reverse=True)

        def summary(record: ComparableIntelligence) -> dict[str, Any]:
            return {"region": record.region_id, "type": record.property_type, "accuracy": record.selection_accuracy}

        return {
            "total_regions": len({r.region_id for r in records}),
            "total_property_types": len({r.property_type for r in records}),
            "average_accuracy": mean(r.selection_accuracy for r in records) or 0.0,
            "average_confidence": mean(r.learning_confidence for r in records) or 0.0,
            "best_performing_combinations": [summary(r) for r in ranked[:TOP_COMBINATIONS]],
            "worst_performing_combinations": [summary(r) for r in ranked[-TOP_COMBINATIONS:]],
        }
