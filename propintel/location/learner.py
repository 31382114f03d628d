"""
Location Learner.

Learns from every analysis which areas appear together:

1. Urbanisation patterns - canonical name, spelling aliases, known streets
2. Relationships - directed edges between areas of the SAME granularity
   (urbanisation<->urbanisation, street<->street...). Cross-type pairs are
   never linked even when they co-occur.
3. Clusters - groups of areas seen in the same analysis, merged whenever
   they share a member

Records expire after ``location_decay_days`` unless they have graduated
(confidence > 0.3 for relationships/urbanisations, frequency > 2 for clusters).
"""

from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from propintel.clock import resolve_now
from propintel.config import Settings, get_settings
from propintel.identity import fold_accents
from propintel.location.clusters import cluster_id, merge_overlapping_clusters
from propintel.location.parser import clean_name, comparable_components, parse_address
from propintel.location.schemas import (
    Area,
    AreaType,
    GeographicCluster,
    LocationComponents,
    LocationLearningState,
    LocationRelationship,
    LocationStats,
    UrbanisationPattern,
)
from propintel.schemas.report import Comparable, PropertyData
from propintel.scoring import blend, mean
from propintel.storage import KeyValueStore

logger = structlog.get_logger(__name__)


GRADUATED_CONFIDENCE: float = 0.3
GRADUATED_CLUSTER_FREQUENCY: int = 2
URBANISATION_FULL_CONFIDENCE_AT: int = 10
RELATIONSHIP_FULL_CONFIDENCE_AT: int = 5
STATE_KEY = "location-learning"


def relationship_key(source: str, target: str, area_type: AreaType) -> str:
    return f"{area_type.value}:{source}:{target}"


class LocationLearner:
    """Learns urbanisations, same-type area relationships and clusters."""

    def __init__(
        self,
        relationships: KeyValueStore,
        urbanisations: KeyValueStore,
        clusters: KeyValueStore,
        state: KeyValueStore,
        settings: Optional[Settings] = None,
    ):
        self._relationships = relationships
        self._urbanisations = urbanisations
        self._clusters = clusters
        self._state = state
        self._settings = settings or get_settings()

    # =========================================================================
    # LEARNING
    # =========================================================================

    def learn_from_analysis(
        self,
        property: PropertyData,
        comparables: list[Comparable],
        now: Optional[datetime] = None,
    ) -> LocationComponents:
        now = resolve_now(now)

        target = parse_address(property.address)
        if target.city is None and property.city:
            target.city = clean_name(property.city)
        others = [comparable_components(c) for c in comparables]

        for components in [target, *others]:
            if components.urbanisation:
                self._update_urbanisation(components.urbanisation, components.street, now)

        target_areas = target.areas()
        for components in others:
            for source in target_areas:
                for other in components.areas():
                    if source.type == other.type and source.name != other.name:
                        self._update_relationship(source, other.name, now)

        distances = [c.distance_km for c in comparables if c.distance_km is not None]
        self._update_clusters(target_areas, [a for c in others for a in c.areas()], mean(distances), now)

        self.decay(now)
        self._enforce_caps()
        self._bump_state(now)

        logger.info(
            "location_learned",
            address=property.address,
            areas=len(target_areas),
            comparables=len(comparables),
        )
        return target

    def _update_urbanisation(self, name: str, street: Optional[str], now: datetime) -> UrbanisationPattern:
        name = clean_name(name)
        key = fold_accents(name)

        with self._urbanisations.transaction():
            record = self._urbanisations.get(key)
            if record is None:
                pattern = UrbanisationPattern(id=key, name=name, first_seen=now, last_seen=now)
            else:
                pattern = UrbanisationPattern.model_validate(record)
                if name != pattern.name and name not in pattern.aliases:
                    pattern.aliases.append(name)

            pattern.frequency += 1
            pattern.last_seen = now
            if street and clean_name(street) not in pattern.common_streets:
                pattern.common_streets.append(clean_name(street))
            pattern.confidence = min(1.0, pattern.frequency / URBANISATION_FULL_CONFIDENCE_AT)
            self._urbanisations.set(key, pattern.model_dump(mode="json"))
        return pattern

    def _update_relationship(self, source: Area, target: str, now: datetime) -> None:
        key = relationship_key(source.name, target, source.type)
        with self._relationships.transaction():
            record = self._relationships.get(key)
            relationship = (
                LocationRelationship.model_validate(record)
                if record
                else LocationRelationship(
                    id=key,
                    source_area=source.name,
                    target_area=target,
                    relationship_type=source.type,
                    last_seen=now,
                )
            )
            relationship.frequency += 1
            relationship.last_seen = now
            relationship.confidence = min(1.0, relationship.frequency / RELATIONSHIP_FULL_CONFIDENCE_AT)
            self._relationships.set(key, relationship.model_dump(mode="json"))

        if source.type == AreaType.URBANISATION:
            self._note_nearby(source.name, target)

    def _note_nearby(self, urbanisation: str, nearby: str) -> None:
        key = fold_accents(urbanisation)
        with self._urbanisations.transaction():
            record = self._urbanisations.get(key)
            if record is None:
                return
            pattern = UrbanisationPattern.model_validate(record)
            if nearby not in pattern.nearby_areas:
                pattern.nearby_areas.append(nearby)
                self._urbanisations.set(key, pattern.model_dump(mode="json"))

    def _update_clusters(
        self,
        target_areas: list[Area],
        comparable_areas: list[Area],
        distance: Optional[float],
        now: datetime,
    ) -> None:
        names = list(dict.fromkeys(a.name for a in [*target_areas, *comparable_areas]))
        if not names:
            return

        with self._clusters.transaction():
            clusters = sorted(
                (GeographicCluster.model_validate(r) for r in self._clusters.values()),
                key=lambda c: c.id,
            )
            wanted = set(names)
            cluster = next((c for c in clusters if wanted.intersection(c.member_areas)), None)

            if cluster is None:
                center = target_areas[0].name if target_areas else "unknown"
                cluster = GeographicCluster(
                    id=cluster_id(center, wanted),
                    center_area=center,
                    member_areas=sorted(wanted),
                    last_updated=now,
                )
                clusters.append(cluster)
            else:
                cluster.member_areas = sorted(wanted.union(cluster.member_areas))

            if distance is not None:
                cluster.average_distance = blend(
                    cluster.average_distance,
                    distance,
                    cluster.frequency,
                    self._settings.regional_smoothing_window,
                )
            cluster.frequency += 1
            cluster.last_updated = now

            merged = merge_overlapping_clusters(clusters)
            self._clusters.replace_all([c.model_dump(mode="json") for c in merged])

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def decay(self, now: Optional[datetime] = None) -> int:
        """Drop stale records that never graduated. Returns how many were removed."""
        cutoff = resolve_now(now) - timedelta(days=self._settings.location_decay_days)
        removed = 0

        with self._relationships.transaction():
            for record in self._relationships.values():
                r = LocationRelationship.model_validate(record)
                if r.last_seen <= cutoff and r.confidence <= GRADUATED_CONFIDENCE:
                    removed += self._relationships.delete(r.id)

        with self._urbanisations.transaction():
            for record in self._urbanisations.values():
                u = UrbanisationPattern.model_validate(record)
                if u.last_seen <= cutoff and u.confidence <= GRADUATED_CONFIDENCE:
                    removed += self._urbanisations.delete(u.id)

        with self._clusters.transaction():
            for record in self._clusters.values():
                c = GeographicCluster.model_validate(record)
                if c.last_updated <= cutoff and c.frequency <= GRADUATED_CLUSTER_FREQUENCY:
                    removed += self._clusters.delete(c.id)

        if removed:
            logger.debug("location_records_decayed", removed=removed)
        return removed

    def _enforce_caps(self) -> None:
        self._trim(self._relationships, self._settings.max_relationships)
        self._trim(self._urbanisations, self._settings.max_urbanisations)

    @staticmethod
    def _trim(store: KeyValueStore, limit: int) -> None:
        if len(store) <= limit:
            return
        with store.transaction():
            ranked = sorted(store.values(), key=lambda r: r.get("frequency", 0), reverse=True)
            for record in ranked[limit:]:
                store.delete(record[store.key_field])

    def _bump_state(self, now: datetime) -> None:
        with self._state.transaction():
            record = self._state.get(STATE_KEY)
            state = LocationLearningState.model_validate(record) if record else LocationLearningState()
            state.analysis_count += 1
            state.last_updated = now
            self._state.set(STATE_KEY, state.model_dump(mode="json"))

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_nearby_areas(self, area: str, area_type: Optional[AreaType] = None) -> list[str]:
        """Graduated neighbours of ``area``, strongest first."""
        name = clean_name(area)
        candidates = [
            LocationRelationship.model_validate(r)
            for r in self._relationships.values()
            if r.get("source_area") == name
        ]
        candidates = [
            r for r in candidates
            if r.confidence > GRADUATED_CONFIDENCE
            and (area_type is None or r.relationship_type == area_type)
        ]
        candidates.sort(key=lambda r: r.confidence * r.frequency, reverse=True)
        return [r.target_area for r in candidates]

    def get_learned_urbanisations(self) -> list[UrbanisationPattern]:
        patterns = [UrbanisationPattern.model_validate(r) for r in self._urbanisations.values()]
        patterns = [p for p in patterns if p.confidence > GRADUATED_CONFIDENCE]
        return sorted(patterns, key=lambda p: p.frequency, reverse=True)

    def resolve_urbanisation(self, name: str) -> Optional[str]:
        """Canonical name for an urbanisation or any of its spellings."""
        record = self._urbanisations.get(fold_accents(clean_name(name)))
        return record["name"] if record else None

    def get_geographic_clusters(self) -> list[GeographicCluster]:
        clusters = [GeographicCluster.model_validate(r) for r in self._clusters.values()]
        clusters = [c for c in clusters if c.frequency > GRADUATED_CLUSTER_FREQUENCY]
        return sorted(clusters, key=lambda c: c.frequency, reverse=True)

    def get_stats(self) -> LocationStats:
        record = self._state.get(STATE_KEY)
        state = LocationLearningState.model_validate(record) if record else LocationLearningState()
        return LocationStats(
            total_analyses=state.analysis_count,
            total_relationships=len(self._relationships),
            total_urbanisations=len(self._urbanisations),
            total_clusters=len(self._clusters),
            last_updated=state.last_updated,
        )

    def export(self) -> dict[str, Any]:
        return {
            "relationships": self._relationships.values(),
            "urbanisations": self._urbanisations.values(),
            "clusters": self._clusters.values(),
            "stats": self.get_stats().model_dump(mode="json"),
        }
