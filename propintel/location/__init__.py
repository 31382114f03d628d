"""
Location relationship and urbanisation learning.

Usage:
    from propintel.location import LocationLearner

    learner = LocationLearner(rel_store, urb_store, cluster_store, state_store)
    learner.learn_from_analysis(property, comparables)
    learner.get_nearby_areas("nueva andalucía")
"""

from propintel.location.clusters import UnionFind, merge_overlapping_clusters
from propintel.location.learner import LocationLearner
from propintel.location.parser import comparable_components, parse_address
from propintel.location.schemas import (
    Area,
    AreaType,
    GeographicCluster,
    LocationComponents,
    LocationRelationship,
    LocationStats,
    UrbanisationPattern,
)

__all__ = [
    "Area",
    "AreaType",
    "GeographicCluster",
    "LocationComponents",
    "LocationLearner",
    "LocationRelationship",
    "LocationStats",
    "UnionFind",
    "UrbanisationPattern",
    "comparable_components",
    "merge_overlapping_clusters",
    "parse_address",
]
