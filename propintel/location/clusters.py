"""
Geographic cluster merging.

Clusters sharing at least one member area are merged. Grouping uses a
union-find keyed by area name, so the pass is near-linear and its result
does not depend on input order:

- center: center of the member cluster with the highest frequency
  (ties: alphabetically first center)
- members: sorted union
- frequency: sum
- average distance: mean of the member clusters
- last update: latest
- id: center slug plus a digest of the member set, so disjoint clusters
  whose centers fold to the same slug keep separate records
"""

import hashlib
import math
from collections import defaultdict
from typing import Iterable

from propintel.identity import slugify
from propintel.location.schemas import GeographicCluster


class UnionFind:
    """Disjoint sets over hashable items with path halving and union by size."""

    def __init__(self):
        self._parent: dict = {}
        self._size: dict = {}

    def add(self, item) -> None:
        if item not in self._parent:
            self._parent[item] = item
            self._size[item] = 1

    def find(self, item):
        self.add(item)
        while self._parent[item] != item:
            self._parent[item] = self._parent[self._parent[item]]
            item = self._parent[item]
        return item

    def union(self, a, b) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        self._size[root_a] += self._size[root_b]


def cluster_id(center: str, members: Iterable[str]) -> str:
    digest = hashlib.sha256("\n".join(sorted(set(members))).encode("utf-8")).hexdigest()[:8]
    return f"cluster_{slugify(center) or 'unknown'}_{digest}"


def combine(group: list[GeographicCluster]) -> GeographicCluster:
    if len(group) == 1:
        return group[0]
    lead = min(group, key=lambda c: (-c.frequency, c.center_area))
    members = sorted({m for c in group for m in c.member_areas})
    return GeographicCluster(
        id=cluster_id(lead.center_area, members),
        center_area=lead.center_area,
        member_areas=members,
        average_distance=math.fsum(c.average_distance for c in group) / len(group),
        frequency=sum(c.frequency for c in group),
        last_updated=max(c.last_updated for c in group),
    )


def merge_overlapping_clusters(clusters: Iterable[GeographicCluster]) -> list[GeographicCluster]:
    """Merge every set of clusters connected through shared member areas."""
    clusters = list(clusters)
    uf = UnionFind()
    owner: dict[str, int] = {}

    for index, cluster in enumerate(clusters):
        uf.add(index)
        for member in cluster.member_areas:
            if member in owner:
                uf.union(owner[member], index)
            else:
                owner[member] = index

    groups: dict[int, list[GeographicCluster]] = defaultdict(list)
    for index, cluster in enumerate(clusters):
        groups[uf.find(index)].append(cluster)

    merged = [combine(group) for group in groups.values()]
    return sorted(merged, key=lambda c: (c.center_area, c.id))
