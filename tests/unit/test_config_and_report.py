from __future__ import annotations

import logging

import pytest

from bioregion_network.config import AnalysisConfig
from bioregion_network.errors import (ConfigurationError, QualityReport, UnclassifiedNodeWarning,
                                      UndefinedMetricWarning)

pytestmark = pytest.mark.unit


def test_defaults_are_valid() -> None:
    config = AnalysisConfig().validate()
    assert config.level == "lvl1"
    assert config.max_colors == 12
    assert config.overflow == "single"


def test_from_dict_overrides_defaults() -> None:
    config = AnalysisConfig.from_dict({"level": "lvl2", "order_by": "combined", "overflow": None,
                                       "site_field": "plot", "species_field": "taxon"})
    assert config.level == "lvl2"
    assert config.overflow is None
    assert config.to_dict()["species_field"] == "taxon"


@pytest.mark.parametrize("cfg", [
    {"colour": "red"},
    {"level": "level1"},
    {"level": "lvl0"},
    {"order_by": "size"},
    {"overflow": "rainbow"},
    {"max_colors": 0},
    {"max_colors": 40},
    {"palette": "not-a-palette"},
    {"other_color": "not-a-color"},
    {"site_field": "x", "species_field": "x"},
    {"directed": "yes"},
])
def test_invalid_options_fail_up_front(cfg) -> None:
    with pytest.raises(ConfigurationError):
        AnalysisConfig.from_dict(cfg)


def test_report_counts_entities_once() -> None:
    report = QualityReport()
    report.record(UnclassifiedNodeWarning, "A", "missing")
    report.record(UnclassifiedNodeWarning, "A", "missing")
    report.record(UndefinedMetricWarning, "Sp1", "zero denominator")
    assert len(report) == 3
    assert report.count(UnclassifiedNodeWarning) == 1
    assert report.count() == 2
    assert report.summary_lines()[0] == "UnclassifiedNodeWarning: 1 entities (A)"


def test_report_merge() -> None:
    first, second = QualityReport(), QualityReport()
    first.record(UnclassifiedNodeWarning, "A", "missing")
    second.record(UnclassifiedNodeWarning, "B", "missing")
    first.merge(second)
    assert first.entities() == ["A", "B"]


def test_emit_warns_and_logs_per_category(caplog) -> None:
    report = QualityReport()
    for name in ["s1", "s2", "s3", "s4", "s5", "s6"]:
        report.record(UnclassifiedNodeWarning, name, "missing")
    report.record(UndefinedMetricWarning, "Sp1", "zero denominator")
    with caplog.at_level(logging.WARNING, logger="bioregion_network.errors"):
        with pytest.warns(UnclassifiedNodeWarning, match="6 entities affected") as record:
            report.emit()
    categories = {w.category for w in record}
    assert categories == {UnclassifiedNodeWarning, UndefinedMetricWarning}
    assert "s1, s2, s3, s4, s5, ..." in caplog.text
