from __future__ import annotations

import pytest
import seaborn as sns

from bioregion_network.coloring import (attribute_colors, cluster_colors, palette_size,
                                        rank_clusters)
from bioregion_network.errors import ConfigurationError
from bioregion_network.partition import PartitionTable

pytestmark = pytest.mark.unit


@pytest.fixture
def five_clusters() -> PartitionTable:
    # sizes: a=4, b=3, c=2, d=1, e=1
    paths = {}
    for cluster, size in [("c", 2), ("a", 4), ("b", 3), ("e", 1), ("d", 1)]:
        for i in range(size):
            paths[f"{cluster}{i}"] = [cluster]
    return PartitionTable.from_paths(paths)


def test_frequency_order_follows_the_domain(five_clusters) -> None:
    ranks = rank_clusters(five_clusters, "lvl1")
    assert ranks["cluster"].tolist() == ["a", "b", "c", "e", "d"]
    assert ranks["rank"].tolist() == [1, 2, 3, 4, 5]
    assert ranks["n.nodes"].tolist() == [4, 3, 2, 1, 1]


def test_insertion_order(five_clusters) -> None:
    ranks = rank_clusters(five_clusters, "lvl1", order_by="insertion")
    assert ranks["cluster"].tolist() == ["c", "a", "b", "e", "d"]


def test_count_orders_need_node_types(five_clusters) -> None:
    with pytest.raises(ConfigurationError):
        rank_clusters(five_clusters, "lvl1", order_by="sites")


def test_site_order_uses_the_relation(scenario_relation, scenario_table) -> None:
    ranks = rank_clusters(scenario_table, "lvl1", order_by="species")
    assert ranks["cluster"].tolist() == ["1", "2"]
    assert ranks["n.sites"].tolist() == [1, 1]
    assert ranks["n.species"].tolist() == [3, 1]
    # equal site counts: first appearance decides
    assert rank_clusters(scenario_table, "lvl1", order_by="sites")["cluster"].tolist() == ["1", "2"]


def test_unknown_order_mode(five_clusters) -> None:
    with pytest.raises(ConfigurationError):
        rank_clusters(five_clusters, "lvl1", order_by="alphabetical")


def test_palette_colors_then_single_overflow(five_clusters) -> None:
    colors = cluster_colors(five_clusters, "lvl1", max_colors=3, palette="Paired")
    expected = sns.color_palette("Paired", 3).as_hex()
    assert colors["color"].tolist() == expected + ["#7f7f7f", "#7f7f7f"]


def test_grey_overflow_ramp(five_clusters) -> None:
    colors = cluster_colors(five_clusters, "lvl1", max_colors=3, overflow="grey")
    assert colors["color"].tolist()[3:] == ["#000000", "#cccccc"]


def test_no_overflow_policy_is_an_error(five_clusters) -> None:
    with pytest.raises(ConfigurationError):
        cluster_colors(five_clusters, "lvl1", max_colors=3, overflow=None)
    # enough colors: fine
    assert len(cluster_colors(five_clusters, "lvl1", max_colors=5, overflow=None)) == 5


def test_two_clusters_use_the_outer_colors(scenario_table) -> None:
    colors = cluster_colors(scenario_table, "lvl1", palette="Paired")
    outer = sns.color_palette("Paired", 3).as_hex()
    assert colors["color"].tolist() == [outer[0], outer[2]]


@pytest.mark.parametrize("max_colors", [0, 13, 2.5])
def test_max_colors_is_checked_against_the_palette(five_clusters, max_colors) -> None:
    assert palette_size("Paired") == 12
    with pytest.raises(ConfigurationError):
        cluster_colors(five_clusters, "lvl1", max_colors=max_colors, palette="Paired")


def test_unknown_palette(five_clusters) -> None:
    with pytest.raises(ConfigurationError):
        cluster_colors(five_clusters, "lvl1", palette="no-such-palette")


def test_attribute_colors_is_deterministic(five_clusters) -> None:
    first = attribute_colors(five_clusters, "lvl1", max_colors=4)
    second = attribute_colors(five_clusters, "lvl1", max_colors=4)
    assert first["color"].tolist() == second["color"].tolist()
    assert "color" not in five_clusters
    by_node = dict(zip(first["Name"], first["color"]))
    assert by_node["a0"] == by_node["a3"]
    assert by_node["a0"] != by_node["b0"]


def test_nodes_without_a_level_value_get_no_color() -> None:
    table = PartitionTable.from_paths({"s1": ["1", "1"], "s2": ["2"]})
    colored = attribute_colors(table, "lvl2", max_colors=3)
    assert colored["color"].iloc[1] is None
