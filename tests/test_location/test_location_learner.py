"""Tests for location learning.

Key tests:
- Address parsing (keyword patterns, known urbanisations, trailing city)
- Same-type relationships only
- Urbanisation aliases and graduation
- Cluster merging is order independent and idempotent
- Decay and size caps
"""

from datetime import datetime, timedelta

from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from propintel.config import Settings
from propintel.location import (
    AreaType,
    GeographicCluster,
    LocationLearner,
    merge_overlapping_clusters,
    parse_address,
)
from propintel.schemas.report import Comparable
from propintel.storage import InMemoryStore


TARGET_ADDRESS = "Urbanización Nueva Andalucía, Calle Jazmín 5, Marbella"


def _comparables(count=3, **fields):
    return [
        Comparable(address=f"Piso {i}, Marbella", price=300_000, area_m2=100, distance_km=1.0, **fields)
        for i in range(count)
    ]


# =============================================================================
# PARSING
# =============================================================================


class TestParseAddress:

    def test_keyword_patterns(self):
        components = parse_address(TARGET_ADDRESS)
        assert components.urbanisation == "nueva andalucía"
        assert components.street == "jazmín"
        assert components.city == "marbella"

    def test_known_urbanisation_without_keyword(self):
        assert parse_address("Edificio Sol, Puerto Banús, Marbella").urbanisation == "puerto banús"

    def test_suburb_pattern(self):
        assert parse_address("Barrio San Juan 4, Sevilla").suburb == "san juan"

    def test_trailing_province_code_and_postcode_are_skipped(self):
        assert parse_address("Calle Real 3, Estepona, 29680, MA").city == "estepona"

    def test_single_segment_has_no_city(self):
        assert parse_address("Calle Real 3").city is None


# =============================================================================
# LEARNING
# =============================================================================


class TestRelationships:

    def test_same_type_neighbours_graduate(self, location, make_property, now):
        prop = make_property(address=TARGET_ADDRESS)
        comparables = _comparables(count=1, urbanisation="Puerto Banús")

        location.learn_from_analysis(prop, comparables, now=now)
        assert location.get_nearby_areas("Nueva Andalucía") == []

        location.learn_from_analysis(prop, comparables, now=now)
        assert location.get_nearby_areas("Nueva Andalucía") == ["puerto banús"]
        assert location.get_nearby_areas("nueva andalucía", AreaType.STREET) == []

    def test_cross_type_pairs_are_never_linked(self, location, make_property, now):
        prop = make_property(address="Urbanización Nueva Andalucía")
        comparables = _comparables(count=1, suburb="San Pedro")

        for _ in range(5):
            location.learn_from_analysis(prop, comparables, now=now)

        assert location.get_stats().total_relationships == 0

    def test_urbanisation_is_noted_as_nearby(self, location, make_property, now):
        location.learn_from_analysis(
            make_property(address=TARGET_ADDRESS), _comparables(count=1, urbanisation="Elviria"), now=now,
        )
        pattern = [p for p in location.export()["urbanisations"] if p["id"] == "nueva andalucia"][0]
        assert pattern["nearby_areas"] == ["elviria"]
        assert pattern["common_streets"] == ["jazmín"]


class TestUrbanisations:

    def test_spelling_variants_become_aliases(self, location, make_property, now):
        comparables = _comparables(count=3, urbanisation="Nueva Andalucia")

        location.learn_from_analysis(make_property(address=TARGET_ADDRESS), comparables, now=now)

        assert location.resolve_urbanisation("NUEVA ANDALUCIA") == "nueva andalucía"
        learned = location.get_learned_urbanisations()
        assert len(learned) == 1
        assert learned[0].frequency == 4
        assert learned[0].aliases == ["nueva andalucia"]
        assert learned[0].confidence == 0.4

    def test_unknown_urbanisation(self, location):
        assert location.resolve_urbanisation("Atlantis") is None


class TestClusters:

    def test_repeated_analyses_build_one_cluster(self, location, make_property, make_comparables, now):
        for _ in range(3):
            location.learn_from_analysis(make_property(), make_comparables(), now=now)

        clusters = location.get_geographic_clusters()

        assert len(clusters) == 1
        cluster = clusters[0]
        assert cluster.frequency == 3
        assert cluster.center_area == "ancha"
        assert set(cluster.member_areas) == {"ancha", "marbella", "los naranjos"}
        assert cluster.average_distance == 1.0

    def test_single_analysis_cluster_is_not_reported(self, location, make_property, make_comparables, now):
        location.learn_from_analysis(make_property(), make_comparables(), now=now)
        assert location.get_geographic_clusters() == []
        assert location.get_stats().total_clusters == 1

    def test_same_slug_clusters_keep_separate_records(self, location, make_property, now):
        location.learn_from_analysis(
            make_property(address="Urbanización Los Álamos, Benalmádena", city="Benalmádena"), [], now=now,
        )
        location.learn_from_analysis(
            make_property(address="Urbanización Los Alamos, Torremolinos", city="Torremolinos"), [], now=now,
        )

        clusters = location.export()["clusters"]

        assert location.get_stats().total_clusters == 2
        assert len({c["id"] for c in clusters}) == 2
        assert sorted(c["member_areas"] for c in clusters) == [
            ["benalmádena", "los álamos"],
            ["los alamos", "torremolinos"],
        ]

    def test_cityless_clusters_keep_separate_records(self, location, make_property, now):
        for urbanisation in ("Elviria", "Puerto Banús"):
            location.learn_from_analysis(
                make_property(address="Sin nombre", city=""),
                [Comparable(price=300_000, area_m2=100, urbanisation=urbanisation)],
                now=now,
            )

        assert location.get_stats().total_clusters == 2


members_strategy = st.lists(
    st.sampled_from(["a", "b", "c", "d", "e", "f", "g", "h"]), min_size=1, max_size=4, unique=True,
)

cluster_strategy = st.builds(
    lambda members, frequency, distance, updated: GeographicCluster(
        id=f"cluster_{members[0]}",
        center_area=members[0],
        member_areas=members,
        average_distance=distance,
        frequency=frequency,
        last_updated=updated,
    ),
    members_strategy,
    st.integers(min_value=1, max_value=20),
    st.floats(min_value=0, max_value=50, allow_nan=False),
    st.datetimes(min_value=datetime(2024, 1, 1), max_value=datetime(2025, 1, 1)),
)


class TestClusterMerge:
    """Union-find merge properties."""

    def test_overlapping_clusters_merge(self, now):
        a = GeographicCluster(id="cluster_a", center_area="a", member_areas=["a", "b"], frequency=1,
                              average_distance=1.0, last_updated=now)
        b = GeographicCluster(id="cluster_c", center_area="c", member_areas=["b", "c"], frequency=3,
                              average_distance=3.0, last_updated=now + timedelta(days=1))
        lone = GeographicCluster(id="cluster_z", center_area="z", member_areas=["z"], frequency=1,
                                 last_updated=now)

        merged = merge_overlapping_clusters([a, b, lone])

        assert [c.center_area for c in merged] == ["c", "z"]
        combined = merged[0]
        assert combined.member_areas == ["a", "b", "c"]
        assert combined.frequency == 4
        assert combined.average_distance == 2.0
        assert combined.last_updated == now + timedelta(days=1)

    def test_disjoint_clusters_with_one_slug_keep_distinct_ids(self, now):
        a = GeographicCluster(id="a", center_area="los álamos", member_areas=["los álamos"], last_updated=now)
        z = GeographicCluster(id="z", center_area="z", member_areas=["los álamos", "z"], last_updated=now)
        b = GeographicCluster(id="b", center_area="los alamos", member_areas=["los alamos"], last_updated=now)
        c = GeographicCluster(id="c", center_area="los alamos", member_areas=["los alamos", "x"], last_updated=now)
        d = GeographicCluster(id="d", center_area="x", member_areas=["x", "y"], last_updated=now)

        merged = merge_overlapping_clusters([a, z, b, c, d])

        assert [m.center_area for m in merged] == ["los alamos", "los álamos"]
        assert all(m.id.startswith("cluster_los-alamos_") for m in merged)
        assert merged[0].id != merged[1].id

    def test_transitive_overlap_merges_everything(self, now):
        chain = [
            GeographicCluster(id=f"c{i}", center_area=x, member_areas=[x, y], last_updated=now)
            for i, (x, y) in enumerate([("a", "b"), ("c", "d"), ("b", "c")])
        ]
        assert len(merge_overlapping_clusters(chain)) == 1

    @hyp_settings(max_examples=50)
    @given(data=st.data(), clusters=st.lists(cluster_strategy, max_size=8))
    def test_merge_is_order_independent(self, data, clusters):
        shuffled = data.draw(st.permutations(clusters))
        assert merge_overlapping_clusters(shuffled) == merge_overlapping_clusters(clusters)

    @hyp_settings(max_examples=50)
    @given(clusters=st.lists(cluster_strategy, max_size=8))
    def test_merge_is_idempotent(self, clusters):
        once = merge_overlapping_clusters(clusters)
        assert merge_overlapping_clusters(once) == once

    @hyp_settings(max_examples=50)
    @given(clusters=st.lists(cluster_strategy, max_size=8))
    def test_merged_clusters_are_disjoint(self, clusters):
        seen: set[str] = set()
        for cluster in merge_overlapping_clusters(clusters):
            assert seen.isdisjoint(cluster.member_areas)
            seen.update(cluster.member_areas)


# =============================================================================
# MAINTENANCE
# =============================================================================


class TestMaintenance:

    def test_stale_ungraduated_records_decay(self, location, make_property, make_comparables, now):
        location.learn_from_analysis(make_property(), make_comparables(), now=now)

        removed = location.decay(now + timedelta(days=31))

        stats = location.get_stats()
        assert removed > 0
        assert stats.total_urbanisations == 0
        assert stats.total_clusters == 0
        assert stats.total_analyses == 1

    def test_fresh_records_survive_decay(self, location, make_property, make_comparables, now):
        location.learn_from_analysis(make_property(), make_comparables(), now=now)
        assert location.decay(now + timedelta(days=5)) == 0

    def test_urbanisation_cap_keeps_most_frequent(self, make_property, now):
        learner = LocationLearner(
            InMemoryStore(), InMemoryStore(), InMemoryStore(), InMemoryStore(),
            settings=Settings(storage_backend="memory", max_urbanisations=1),
        )
        learner.learn_from_analysis(
            make_property(address=TARGET_ADDRESS), _comparables(count=3, urbanisation="Puerto Banús"), now=now,
        )

        assert learner.resolve_urbanisation("puerto banús") == "puerto banús"
        assert learner.resolve_urbanisation("nueva andalucía") is None
