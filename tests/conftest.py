from __future__ import annotations

import importlib.util
import io
import sys
from functools import lru_cache
from pathlib import Path
from types import ModuleType

import matplotlib

matplotlib.use("Agg")

import pytest

from bioregion_network import OccurrenceRelation, read_hierarchy

REPO_ROOT = Path(__file__).resolve().parents[1]

# Sites A and B; Sp1 occurs at both, so it is the only non-endemic species.
SCENARIO_RECORDS = [
    ("A", "Sp1", 10),
    ("A", "Sp2", 15),
    ("A", "Sp3", 3),
    ("B", "Sp1", 1),
    ("B", "Sp4", 12),
]

SCENARIO_TREE = """# path flow name node_id
1:1 0.20 "A" 1
1:2 0.15 "Sp1" 2
1:3 0.15 "Sp2" 3
1:4 0.10 "Sp3" 4
2:1 0.25 "B" 5
2:2 0.15 "Sp4" 6
"""


@lru_cache(maxsize=16)
def load_module_from_file(file_path: str, module_name: str) -> ModuleType:
    path = Path(file_path).resolve()
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Failed to load module spec from {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="session")
def repo_root() -> Path:
    return REPO_ROOT


@pytest.fixture(scope="session")
def module_loader():
    return load_module_from_file


@pytest.fixture
def scenario_relation() -> OccurrenceRelation:
    return OccurrenceRelation.from_records(SCENARIO_RECORDS)


@pytest.fixture
def scenario_tree_text() -> str:
    return SCENARIO_TREE


@pytest.fixture
def scenario_table(scenario_relation):
    return read_hierarchy(io.StringIO(SCENARIO_TREE), relation=scenario_relation)


@pytest.fixture
def scenario_files(tmp_path: Path) -> dict:
    occurrences = tmp_path / "occurrences.csv"
    occurrences.write_text(
        "site,species,abundance\n" + "\n".join(f"{s},{sp},{w}" for s, sp, w in SCENARIO_RECORDS) + "\n",
        encoding="utf-8",
    )
    tree = tmp_path / "occurrences.tree"
    tree.write_text(SCENARIO_TREE, encoding="utf-8")
    return {"occurrences": occurrences, "tree": tree, "root": tmp_path}
