from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from bioregion_network.errors import ConfigurationError

pytestmark = pytest.mark.integration

SCRIPT_DIR = "scripts/phase_05_bioregions"


def _script(module_loader, repo_root: Path, filename: str, name: str):
    return module_loader(str(repo_root / SCRIPT_DIR / filename), name)


def test_write_network_script(module_loader, repo_root, scenario_files) -> None:
    module = _script(module_loader, repo_root, "01_write_network.py", "phase05_step01_write_network")
    root = scenario_files["root"]
    net_file = module.main([
        "--occurrences", str(scenario_files["occurrences"]),
        "--abundance-field", "abundance",
        "--output-dir", str(root / "network"),
        "--log-dir", str(root / "logs"),
    ])
    lines = Path(net_file).read_text(encoding="utf-8").splitlines()
    assert lines[0] == "*Vertices 6"
    assert "1 5 10" in lines
    assert (root / "logs" / "step01_write_network_summary.txt").exists()


def test_cluster_metrics_script(module_loader, repo_root, scenario_files) -> None:
    module = _script(module_loader, repo_root, "02_cluster_metrics.py", "phase05_step02_cluster_metrics")
    root = scenario_files["root"]
    outputs = module.main([
        "--tree", str(scenario_files["tree"]),
        "--occurrences", str(scenario_files["occurrences"]),
        "--output-dir", str(root / "clusters"),
        "--log-dir", str(root / "logs"),
        "--no-progress",
    ])
    for path in outputs.values():
        assert Path(path).exists()
    partition = pd.read_csv(outputs["partition"])
    assert {"nodetype", "participation.coef", "color"} <= set(partition.columns)
    species = pd.read_csv(outputs["species"]).set_index("species")
    assert species.loc["Sp1", "Occ.IndVal"] == pytest.approx(0.5)
    summary = (root / "logs" / "step02_cluster_metrics_summary.txt").read_text(encoding="utf-8")
    assert "Clusters at lvl1: 2" in summary


def test_cluster_metrics_script_rejects_bad_options(module_loader, repo_root, scenario_files) -> None:
    module = _script(module_loader, repo_root, "02_cluster_metrics.py", "phase05_step02_cluster_metrics")
    with pytest.raises(ConfigurationError):
        module.main(["--order-by", "alphabetical", "--output-dir", str(scenario_files["root"] / "never")])
    assert not (scenario_files["root"] / "never").exists()


def test_cluster_metrics_script_sums_abundances_in_links(module_loader, repo_root, scenario_files) -> None:
    module = _script(module_loader, repo_root, "02_cluster_metrics.py", "phase05_step02_cluster_metrics")
    root = scenario_files["root"]
    outputs = module.main([
        "--tree", str(scenario_files["tree"]),
        "--occurrences", str(scenario_files["occurrences"]),
        "--abundance-field", "abundance",
        "--output-dir", str(root / "weighted"),
        "--log-dir", str(root / "logs"),
        "--no-progress",
    ])
    links = pd.read_csv(outputs["links"], dtype={"From": str, "To": str})
    rows = list(zip(links["From"], links["To"], links["Weight"]))
    assert rows == [("1", "1", 28), ("1", "2", 1), ("2", "2", 12)]


def test_cluster_heatmap_script(module_loader, repo_root, scenario_files) -> None:
    module = _script(module_loader, repo_root, "03_cluster_heatmap.py", "phase05_step03_cluster_heatmap")
    root = scenario_files["root"]
    sizes_file, links_file = module.main([
        "--tree", str(scenario_files["tree"]),
        "--occurrences", str(scenario_files["occurrences"]),
        "--fig-dir", str(root / "figures"),
    ])
    assert Path(sizes_file).exists()
    assert Path(links_file).exists()
