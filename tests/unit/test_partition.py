from __future__ import annotations

import io

import pandas as pd
import pytest

from bioregion_network import OccurrenceRelation, QualityReport, UnclassifiedNodeWarning
from bioregion_network.errors import BipartiteViolationError, ConfigurationError
from bioregion_network.partition import (NODE_TYPE_COLUMN, PartitionTable, get_site_table,
                                         get_species_table, read_hierarchy, tag_node_types)

pytestmark = pytest.mark.unit


def test_read_hierarchy_builds_levels_and_node_types(scenario_table) -> None:
    assert len(scenario_table) == 6
    assert scenario_table.levels == ("lvl1", "lvl2")
    assert scenario_table.domain("lvl1") == ("1", "2")
    assert list(scenario_table["lvl1"]) == ["1", "1", "1", "1", "2", "2"]
    # leaf names replace the deepest level
    assert list(scenario_table["lvl2"]) == ["A", "Sp1", "Sp2", "Sp3", "B", "Sp4"]
    assert list(scenario_table[NODE_TYPE_COLUMN]) == ["site", "species", "species", "species", "site", "species"]
    assert list(scenario_table["NodeId"]) == [1, 2, 3, 4, 5, 6]


def test_frame_puts_node_type_after_base_columns(scenario_table) -> None:
    columns = list(scenario_table.frame.columns)
    assert columns == ["Name", "NodeId", "CodeLength", "nodetype", "lvl1", "lvl2"]


def test_without_leaf_replacement_levels_keep_paths(scenario_tree_text) -> None:
    table = read_hierarchy(io.StringIO(scenario_tree_text), replace_leaf_names=False)
    assert list(table["lvl2"]) == ["1.1", "1.2", "1.3", "1.4", "2.1", "2.2"]
    assert NODE_TYPE_COLUMN not in table


def test_with_column_returns_a_new_table(scenario_table) -> None:
    extended = scenario_table.with_column("score", {"A": 1.0, "B": 2.0})
    assert "score" in extended
    assert "score" not in scenario_table
    assert extended["score"].tolist()[0] == 1.0
    assert pd.isna(extended["score"].tolist()[1])


def test_with_column_never_overwrites(scenario_table) -> None:
    with pytest.raises(ValueError):
        scenario_table.with_column("lvl1", ["x"] * len(scenario_table))
    with pytest.raises(ValueError):
        scenario_table.with_column(NODE_TYPE_COLUMN, ["x"] * len(scenario_table))


def test_with_column_rejects_wrong_length(scenario_table) -> None:
    with pytest.raises(ValueError):
        scenario_table.with_column("short", [1, 2])


def test_getitem_returns_copies(scenario_table) -> None:
    column = scenario_table["lvl1"]
    column[:] = "changed"
    assert scenario_table["lvl1"].iloc[0] == "1"


def test_unknown_level_is_a_configuration_error(scenario_table) -> None:
    with pytest.raises(ConfigurationError):
        scenario_table.domain("lvl9")


def test_site_and_species_tables_prune_domains(scenario_relation, scenario_table) -> None:
    sites = get_site_table(scenario_relation, scenario_table)
    species = get_species_table(scenario_relation, scenario_table)
    assert sites.names == ["A", "B"]
    assert species.names == ["Sp1", "Sp2", "Sp3", "Sp4"]
    assert sites.domain("lvl2") == ("A", "B")
    assert species.domain("lvl1") == ("1", "2")
    # parent keeps its domains
    assert len(scenario_table.domain("lvl2")) == 6


def test_from_paths_accepts_arbitrary_cluster_ids() -> None:
    table = PartitionTable.from_paths({
        "s1": ["north", "coast"],
        "s2": ["north", "hills"],
        "s3": ["south"],
    })
    assert list(table["lvl1"]) == ["north", "north", "south"]
    assert list(table["lvl2"])[:2] == ["north.coast", "north.hills"]
    assert table["lvl2"].iloc[2] is None
    assert table.domain("lvl1") == ("north", "south")
    assert table.cluster_of("lvl2") == {"s1": "north.coast", "s2": "north.hills"}
    assert table.members("lvl1", "north") == ["s1", "s2"]


def test_tag_node_types_reports_unknown_nodes(scenario_tree_text) -> None:
    relation = OccurrenceRelation.from_records([("A", "Sp1"), ("A", "Sp2"), ("C", "Sp2")])
    table = read_hierarchy(io.StringIO(scenario_tree_text))
    report = QualityReport()
    tagged = tag_node_types(table, relation, report=report)
    types = tagged[NODE_TYPE_COLUMN]
    assert list(types[:3]) == ["site", "species", "species"]
    assert all(t is None for t in types[3:])
    assert set(report.entities(UnclassifiedNodeWarning)) == {"Sp3", "B", "Sp4", "C"}


def test_tag_node_types_warns_when_it_owns_the_report(scenario_tree_text) -> None:
    relation = OccurrenceRelation.from_records([("A", "Sp1")])
    table = read_hierarchy(io.StringIO(scenario_tree_text))
    with pytest.warns(UnclassifiedNodeWarning):
        tag_node_types(table, relation)


def test_bipartite_check_names_overlapping_labels() -> None:
    relation = OccurrenceRelation.from_records([("A", "B"), ("B", "C")])
    with pytest.raises(BipartiteViolationError, match="B"):
        relation.check_bipartite()


def test_relation_drops_rows_without_labels() -> None:
    frame = pd.DataFrame({"plot": ["A", None, "B"], "taxon": ["x", "y", None], "n": [1, 2, 3]})
    relation = OccurrenceRelation(frame, site_field="plot", species_field=1, abundance_field=2)
    assert len(relation) == 1
    assert relation.sites == ("A",)
    assert relation.weights().tolist() == [1]


def test_relation_rejects_unknown_columns() -> None:
    frame = pd.DataFrame({"site": ["A"], "species": ["x"]})
    with pytest.raises(ConfigurationError):
        OccurrenceRelation(frame, site_field="plot")
    with pytest.raises(ConfigurationError):
        OccurrenceRelation(frame, species_field=5)


def test_renamed_levels_keep_missing_values_as_none() -> None:
    table = PartitionTable.from_paths({"s1": ["1", "1"], "s2": ["1", "2"], "s3": ["2"]})
    renamed = table.replace_level_values("lvl2", {"1.1": "coast"})
    assert list(renamed["lvl2"])[:2] == ["coast", "1.2"]
    assert renamed["lvl2"].iloc[2] is None
    assert renamed.domain("lvl2") == ("coast", "1.2")
