import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from .errors import BipartiteViolationError, ConfigurationError

logger = logging.getLogger(__name__)

Field = Union[str, int]


def resolve_field(data: pd.DataFrame, selector: Optional[Field], role: str) -> Optional[str]:
    """Turn a column name or position into a column name."""
    if selector is None:
        return None
    if isinstance(selector, (int, np.integer)) and not isinstance(selector, bool):
        if not 0 <= selector < data.shape[1]:
            raise ConfigurationError(f"{role} position {selector} is out of range for {data.shape[1]} columns")
        return data.columns[int(selector)]
    if selector not in data.columns:
        raise ConfigurationError(f"{role} '{selector}' is not a column of the occurrence table")
    return selector


def build_biadjacency(edges: pd.DataFrame, src_col: str, tgt_col: str,
                      weight_col: Optional[str] = None) -> Tuple[csr_matrix, List[str], List[str]]:
    """
    Presence (or summed weight) matrix between two label columns.

    Rows and columns follow the sorted distinct labels of src_col and tgt_col.
    """
    if weight_col is None:
        edges = edges[[src_col, tgt_col]].drop_duplicates().copy()
        data = np.ones(len(edges), dtype=np.float64)
    else:
        edges = edges[[src_col, tgt_col, weight_col]].copy()
        data = edges[weight_col].to_numpy(dtype=np.float64)
    rows = sorted(edges[src_col].unique())
    cols = sorted(edges[tgt_col].unique())
    r_index = {v: i for i, v in enumerate(rows)}
    c_index = {v: i for i, v in enumerate(cols)}
    r_idx = edges[src_col].map(r_index).to_numpy()
    c_idx = edges[tgt_col].map(c_index).to_numpy()
    # duplicate coordinates are summed by csr_matrix
    biadj = csr_matrix((data, (r_idx, c_idx)), shape=(len(rows), len(cols)))
    return biadj, rows, cols


class OccurrenceRelation:
    """
    The bipartite site-species (optionally abundance) table.

    The wrapped frame is copied on construction and never modified afterwards;
    site and species labels are normalised to strings.
    """

    def __init__(self, data: pd.DataFrame, site_field: Field = 0, species_field: Field = 1,
                 abundance_field: Optional[Field] = None):
        self.site_field = resolve_field(data, site_field, 'site field')
        self.species_field = resolve_field(data, species_field, 'species field')
        self.abundance_field = resolve_field(data, abundance_field, 'abundance field')
        if self.site_field == self.species_field:
            raise ConfigurationError("site field and species field must be different columns")

        data = data.copy()
        missing = data[[self.site_field, self.species_field]].isna().any(axis=1)
        if missing.any():
            logger.warning("Dropping %d occurrence rows without a site or species label", int(missing.sum()))
            data = data.loc[~missing]
        data[self.site_field] = data[self.site_field].astype(str)
        data[self.species_field] = data[self.species_field].astype(str)
        self._data = data.reset_index(drop=True)

    @classmethod
    def from_records(cls, records: Iterable[Sequence]) -> 'OccurrenceRelation':
        """Build from (site, species) or (site, species, abundance) tuples."""
        records = [tuple(r) for r in records]
        if records and all(len(r) == 3 for r in records):
            frame = pd.DataFrame(records, columns=['site', 'species', 'abundance'])
            return cls(frame, 'site', 'species', 'abundance')
        frame = pd.DataFrame([r[:2] for r in records], columns=['site', 'species'])
        return cls(frame, 'site', 'species')

    @classmethod
    def read_csv(cls, path, site_field: Field = 0, species_field: Field = 1,
                 abundance_field: Optional[Field] = None, **kwargs) -> 'OccurrenceRelation':
        return cls(pd.read_csv(path, **kwargs), site_field, species_field, abundance_field)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return (f"OccurrenceRelation({len(self)} rows, {len(self.sites)} sites, "
                f"{len(self.species)} species)")

    @property
    def data(self) -> pd.DataFrame:
        return self._data.copy()

    @property
    def sites(self) -> Tuple[str, ...]:
        return tuple(sorted(self._data[self.site_field].unique()))

    @property
    def species(self) -> Tuple[str, ...]:
        return tuple(sorted(self._data[self.species_field].unique()))

    def weights(self) -> pd.Series:
        if self.abundance_field is None:
            return pd.Series(1, index=self._data.index, name='weight')
        return self._data[self.abundance_field].rename('weight')

    def links(self) -> pd.DataFrame:
        """One row per relation row, with normalised column names site/species/weight."""
        return pd.DataFrame({
            'site': self._data[self.site_field],
            'species': self._data[self.species_field],
            'weight': self.weights(),
        })

    def site_species(self) -> Dict[str, List[str]]:
        """Distinct species observed at each site, in order of first occurrence."""
        pairs = self._data[[self.site_field, self.species_field]].drop_duplicates()
        return {site: list(grp[self.species_field]) for site, grp in pairs.groupby(self.site_field, sort=True)}

    def overlapping_labels(self) -> List[str]:
        return sorted(set(self.sites) & set(self.species))

    def check_bipartite(self) -> None:
        overlap = self.overlapping_labels()
        if overlap:
            shown = ', '.join(overlap[:10]) + (', ...' if len(overlap) > 10 else '')
            raise BipartiteViolationError(
                f"The network does not appear to be bipartite: {len(overlap)} label(s) "
                f"used both as site and species ({shown})"
            )
