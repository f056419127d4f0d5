import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import ConfigurationError, ParseError, QualityReport, UnclassifiedNodeWarning
from .hierarchy import (level_columns, level_domains, level_name, materialize_levels,
                        rank_level_values, read_tree_records, resolve_leaf_names,
                        summarize_levels)
from .relation import Field, OccurrenceRelation, resolve_field

logger = logging.getLogger(__name__)

NODE_TYPE_COLUMN = 'nodetype'
BASE_COLUMNS = ['Name', 'NodeId', 'CodeLength']


class PartitionTable:
    """
    One row per node of the hierarchy: Name, NodeId, CodeLength, lvl1..lvlD.

    The base frame never changes once built. Derived columns (node types,
    colors, participation coefficients...) are added with with_column(),
    which returns a new table; existing columns are never overwritten.
    Each level carries a domain, the tuple of its cluster values in canonical
    order (most populous first).
    """

    def __init__(self, base: pd.DataFrame, domains: Optional[Mapping[str, Sequence[str]]] = None,
                 derived: Optional[Mapping[str, pd.Series]] = None):
        missing = [c for c in BASE_COLUMNS if c not in base.columns]
        if missing:
            raise ValueError(f"Partition table is missing columns: {missing}")
        self._base = base.reset_index(drop=True).copy()
        self._levels = tuple(level_columns(self._base.columns))
        if domains is None:
            domains = level_domains(self._base[list(self._levels)])
        self._domains = {lvl: tuple(domains[lvl]) for lvl in self._levels}
        self._derived: Dict[str, pd.Series] = {}
        for name, values in (derived or {}).items():
            self._derived[name] = values.reset_index(drop=True)

    @classmethod
    def from_paths(cls, paths: Mapping[str, Sequence], separator: str = '.') -> 'PartitionTable':
        """
        Build a table from per-node cluster labels, coarsest first.

        Labels can be any strings; lvl<i> is the join of the first i labels.
        """
        depth = max((len(p) for p in paths.values()), default=0)
        labels = [[str(label) for label in path] for path in paths.values()]
        base = pd.DataFrame({
            'Name': [str(name) for name in paths],
            'NodeId': np.arange(1, len(labels) + 1),
            'CodeLength': np.full(len(labels), np.nan),
        })
        for i in range(1, depth + 1):
            base[level_name(i)] = pd.Series([separator.join(p[:i]) if i <= len(p) else None for p in labels],
                                            dtype=object)
        return cls(base)

    def __len__(self) -> int:
        return len(self._base)

    def __repr__(self) -> str:
        return f"PartitionTable({len(self)} nodes, {self.depth} levels, derived={list(self._derived)})"

    def __contains__(self, column: str) -> bool:
        return column in self._base.columns or column in self._derived

    def __getitem__(self, column: str) -> pd.Series:
        if column in self._derived:
            return self._derived[column].copy()
        if column in self._base.columns:
            return self._base[column].copy()
        raise KeyError(column)

    @property
    def levels(self) -> Tuple[str, ...]:
        return self._levels

    @property
    def depth(self) -> int:
        return len(self._levels)

    @property
    def names(self) -> List[str]:
        return list(self._base['Name'])

    @property
    def frame(self) -> pd.DataFrame:
        """A fresh DataFrame with base and derived columns."""
        frame = self._base.copy()
        if NODE_TYPE_COLUMN in self._derived:
            frame.insert(len(BASE_COLUMNS), NODE_TYPE_COLUMN, self._derived[NODE_TYPE_COLUMN])
        for name, values in self._derived.items():
            if name != NODE_TYPE_COLUMN:
                frame[name] = values
        return frame

    def check_level(self, level: str) -> str:
        if level not in self._levels:
            raise ConfigurationError(f"Unknown hierarchy level '{level}' (available: {', '.join(self._levels)})")
        return level

    def domain(self, level: str) -> Tuple[str, ...]:
        return self._domains[self.check_level(level)]

    def cluster_of(self, level: str) -> Dict[str, str]:
        """Name -> cluster value at `level`, for nodes defined at that level."""
        col = self._base[self.check_level(level)]
        mapping: Dict[str, str] = {}
        for name, value in zip(self._base['Name'], col):
            if value is not None and not pd.isna(value):
                mapping.setdefault(name, value)
        return mapping

    def members(self, level: str, value: str) -> List[str]:
        col = self._base[self.check_level(level)]
        return list(self._base.loc[col == value, 'Name'])

    def node_depths(self) -> pd.Series:
        return self._base[list(self._levels)].notna().sum(axis=1)

    def with_column(self, name: str, values: Union[Mapping, pd.Series, Sequence]) -> 'PartitionTable':
        """Series and mappings are matched on Name; plain sequences are positional."""
        if name in self:
            raise ValueError(f"Column '{name}' already exists; derived columns are append-only")
        if isinstance(values, pd.Series):
            series = self._base['Name'].map(values)
        elif isinstance(values, Mapping):
            series = self._base['Name'].map(lambda n: values.get(n))
        else:
            values = list(values)
            if len(values) != len(self):
                raise ValueError(f"Column '{name}' has {len(values)} values for {len(self)} nodes")
            # None marks a missing value and must survive dtype inference
            has_none = not values or any(v is None for v in values)
            series = pd.Series(values, dtype=object if has_none else None)
        derived = dict(self._derived)
        derived[name] = series.rename(name)
        return PartitionTable(self._base, self._domains, derived)

    def take(self, mask: Union[pd.Series, np.ndarray, Sequence[bool]], drop_unused: bool = True) -> 'PartitionTable':
        """Row subset; with drop_unused, domains keep only values still present."""
        mask = np.asarray(mask, dtype=bool)
        base = self._base.loc[mask]
        domains = {}
        for lvl in self._levels:
            if drop_unused:
                present = set(base[lvl].dropna())
                domains[lvl] = tuple(v for v in self._domains[lvl] if v in present)
            else:
                domains[lvl] = self._domains[lvl]
        derived = {name: values.loc[mask] for name, values in self._derived.items()}
        return PartitionTable(base, domains, derived)

    def replace_level_values(self, level: str, mapping: Mapping[str, str]) -> 'PartitionTable':
        """New table where values of one level column are renamed."""
        base = self._base.copy()
        base[self.check_level(level)] = pd.Series([mapping.get(v, v) for v in base[level]], dtype=object)
        domains = dict(self._domains)
        domains[level] = rank_level_values(base[level])
        return PartitionTable(base, domains, self._derived)


def build_partition_table(records: pd.DataFrame, relation: Optional[OccurrenceRelation] = None,
                          replace_leaf_names: bool = True, delimiter: str = ':',
                          report: Optional[QualityReport] = None) -> PartitionTable:
    """Partition table from raw tree records (columns Path, CodeLength, Name, NodeId)."""
    levels = materialize_levels(list(records['Path']), delimiter=delimiter)
    first_level_size = int(levels[level_name(1)].astype(int).max()) if len(levels) else 0
    names = [str(n) for n in records['Name']]
    if replace_leaf_names:
        levels = resolve_leaf_names(levels, names)

    base = pd.DataFrame({
        'Name': names,
        'NodeId': _numeric_column(records['NodeId'], 'node id', default=np.arange(1, len(records) + 1)),
        'CodeLength': _numeric_column(records['CodeLength'], 'codelength', default=np.full(len(records), np.nan)),
    })
    base = pd.concat([base, levels.reset_index(drop=True)], axis=1)
    domains = level_domains(levels, first_level_size)
    logger.info(summarize_levels(domains))

    table = PartitionTable(base, domains)
    if relation is not None:
        table = tag_node_types(table, relation, report=report)
    return table


def read_hierarchy(source, relation: Optional[OccurrenceRelation] = None, replace_leaf_names: bool = True,
                   delimiter: str = ':', report: Optional[QualityReport] = None) -> PartitionTable:
    """Read an Infomap tree file into a PartitionTable."""
    records = read_tree_records(source)
    return build_partition_table(records, relation=relation, replace_leaf_names=replace_leaf_names,
                                 delimiter=delimiter, report=report)


def _numeric_column(values: pd.Series, what: str, default) -> pd.Series:
    values = values.fillna('')
    if values.eq('').all():
        return pd.Series(default)
    try:
        converted = pd.to_numeric(values)
    except (ValueError, TypeError) as exc:
        raise ParseError(f"Invalid {what} in hierarchy records: {exc}") from exc
    return converted.reset_index(drop=True)


def tag_node_types(table: PartitionTable, relation: OccurrenceRelation,
                   report: Optional[QualityReport] = None) -> PartitionTable:
    """Add the nodetype column: 'site', 'species', or None for nodes the relation does not know."""
    own_report = report is None
    report = QualityReport() if own_report else report
    sites = set(relation.sites)
    species = set(relation.species)

    types: List[Optional[str]] = []
    for name in table.names:
        if name in species:
            types.append('species')
        elif name in sites:
            types.append('site')
        else:
            types.append(None)
            report.record(UnclassifiedNodeWarning, name, "hierarchy node absent from the occurrence table")

    known = set(table.names)
    for label in sorted((sites | species) - known):
        report.record(UnclassifiedNodeWarning, label, "occurrence label absent from the hierarchy")

    n_unknown = sum(t is None for t in types)
    logger.info("Node types: %d sites, %d species, %d unclassified",
                types.count('site'), types.count('species'), n_unknown)
    if own_report:
        report.emit()
    return table.with_column(NODE_TYPE_COLUMN, types)


def _labels(relation: OccurrenceRelation, selector: Optional[Field], default: Iterable[str]) -> set:
    if selector is None:
        return set(default)
    column = resolve_field(relation.data, selector, 'field')
    return set(relation.data[column].astype(str))


def get_site_table(relation: OccurrenceRelation, table: PartitionTable, site_field: Optional[Field] = None,
                   drop_levels: bool = True) -> PartitionTable:
    """Rows of `table` whose Name is a site of `relation`."""
    sites = _labels(relation, site_field, relation.sites)
    return table.take(table['Name'].isin(sites), drop_unused=drop_levels)


def get_species_table(relation: OccurrenceRelation, table: PartitionTable,
                      species_field: Optional[Field] = None, drop_levels: bool = True) -> PartitionTable:
    """Rows of `table` whose Name is a species of `relation`."""
    species = _labels(relation, species_field, relation.species)
    return table.take(table['Name'].isin(species), drop_unused=drop_levels)
