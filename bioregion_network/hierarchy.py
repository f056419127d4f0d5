"""
Parsing of Infomap hierarchical clustering output.

A tree file starts with header lines (every leading "#" line, as Infomap
writes them, or a single plain line) and then holds one record per node::

    <path> <codelength> <name> <id>
    1:2:1 0.00213 "Site 12" 54

where <path> is a ':'-separated list of positive cluster indices, coarsest
level first. Every node is expanded into materialized level columns
(lvl1 = "1", lvl2 = "1.2", lvl3 = "1.2.1") so that two nodes belong to the
same level-i cluster iff their lvl<i> strings are equal.
"""
import io
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .errors import ParseError

logger = logging.getLogger(__name__)

RECORD_COLUMNS = ['Path', 'CodeLength', 'Name', 'NodeId']
LEVEL_PREFIX = 'lvl'


def level_name(i: int) -> str:
    return f"{LEVEL_PREFIX}{i}"


def level_columns(columns: Iterable[str]) -> List[str]:
    """Level columns of a frame, ordered by depth."""
    found = [c for c in columns if c.startswith(LEVEL_PREFIX) and c[len(LEVEL_PREFIX):].isdigit()]
    return sorted(found, key=lambda c: int(c[len(LEVEL_PREFIX):]))


def _record_text(source, skip_header: bool) -> str:
    """Body of a tree file without its header: every leading '#' line, or one plain header line."""
    if hasattr(source, 'read'):
        text = source.read()
    else:
        with open(source, encoding='utf-8') as fh:
            text = fh.read()
    lines = text.splitlines()
    start = 0
    while start < len(lines) and lines[start].lstrip().startswith('#'):
        start += 1
    if start == 0 and skip_header:
        start = 1
    return '\n'.join(lines[start:])


def read_tree_records(source, skip_header: bool = True) -> pd.DataFrame:
    """Read the raw records of a tree file (path or file-like) as strings."""
    body = _record_text(source, skip_header)
    if not body.strip():
        raise ParseError("Hierarchy file holds no records")
    try:
        records = pd.read_csv(io.StringIO(body), sep=r'\s+', header=None,
                              names=RECORD_COLUMNS, dtype=str, quotechar='"', keep_default_na=False)
    except pd.errors.ParserError as exc:
        raise ParseError(f"Malformed hierarchy file: {exc}") from exc
    blank = records[['Path', 'Name']].fillna('').eq('').any(axis=1)
    if blank.any():
        raise ParseError(f"Record {int(blank.to_numpy().argmax()) + 1} is missing its path or name")
    return records


def split_path(path: str, delimiter: str = ':') -> List[int]:
    tokens = str(path).split(delimiter)
    indices = []
    for token in tokens:
        token = token.strip()
        if not (token.isascii() and token.isdigit()) or int(token) < 1:
            raise ParseError(f"Invalid cluster index '{token}' in path '{path}'")
        indices.append(int(token))
    return indices


def rank_level_values(values: pd.Series, extra: Sequence[str] = ()) -> Tuple[str, ...]:
    """
    Canonical order of the distinct values of one level column.

    Most populous first; ties keep the order of first appearance. Values in
    `extra` that never appear are appended in the given order.
    """
    present = values.dropna()
    counts = present.value_counts(sort=False)
    first_seen = {v: i for i, v in reversed(list(enumerate(present)))}
    ordered = sorted(counts.index, key=lambda v: (-counts[v], first_seen[v]))
    tail = [v for v in extra if v not in counts.index]
    return tuple(ordered) + tuple(tail)


def materialize_levels(paths: Sequence[str], delimiter: str = ':', separator: str = '.') -> pd.DataFrame:
    """
    Expand paths into lvl1..lvlD columns of materialized path strings.

    Every path is parsed before anything is materialized, so a single bad
    token aborts the whole parse.
    """
    tokens = [split_path(p, delimiter) for p in paths]
    depth = max((len(t) for t in tokens), default=0)
    columns: Dict[str, List[Optional[str]]] = {level_name(i): [] for i in range(1, depth + 1)}
    for path in tokens:
        parts = [str(t) for t in path]
        for i in range(1, depth + 1):
            columns[level_name(i)].append(separator.join(parts[:i]) if i <= len(parts) else None)
    return pd.DataFrame({col: pd.Series(values, dtype=object) for col, values in columns.items()})


def level_domains(levels: pd.DataFrame, first_level_size: Optional[int] = None) -> Dict[str, Tuple[str, ...]]:
    """
    Domains of every level column.

    The first level is bounded to "1".."first_level_size" so that a top-level
    index keeps its identity even when no node of the table carries it.
    """
    domains = {}
    for col in level_columns(levels.columns):
        extra: Sequence[str] = ()
        if col == level_name(1) and first_level_size:
            extra = [str(i) for i in range(1, first_level_size + 1)]
        domains[col] = rank_level_values(levels[col], extra)
    return domains


def resolve_leaf_names(levels: pd.DataFrame, names: Sequence[str]) -> pd.DataFrame:
    """
    Write each node's name over its own deepest level.

    The column replaced is the last defined one (just before the first absent
    level, or the last column for full-depth nodes); ancestor columns are kept.
    """
    cols = level_columns(levels.columns)
    if len(names) != len(levels):
        raise ValueError(f"Got {len(names)} names for {len(levels)} hierarchy rows")
    resolved = levels.copy()
    defined = resolved[cols].notna().to_numpy()
    for row, name in enumerate(names):
        depth = int(defined[row].sum())
        if depth == 0:
            continue
        resolved.iat[row, resolved.columns.get_loc(cols[depth - 1])] = name
    return resolved


def summarize_levels(domains: Dict[str, Tuple[str, ...]]) -> str:
    lines = [f"Biogeographical network with up to {len(domains)} levels of complexity."]
    lines.extend(f"{col}: {len(values)} clusters/leaf nodes" for col, values in domains.items())
    return '\n'.join(lines)
