import logging
from typing import List, Optional

import matplotlib
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.colors import to_hex

from .errors import ConfigurationError
from .partition import NODE_TYPE_COLUMN, PartitionTable
from .relation import OccurrenceRelation

logger = logging.getLogger(__name__)

ORDER_MODES = ('frequency', 'insertion', 'sites', 'species', 'combined')
OVERFLOW_MODES = ('single', 'grey', None)
DEFAULT_OTHER_COLOR = '#7f7f7f'


def palette_size(palette: str) -> int:
    """Number of distinct colors a named matplotlib/seaborn palette provides."""
    if palette in sns.palettes.SEABORN_PALETTES:
        return len(sns.palettes.SEABORN_PALETTES[palette])
    try:
        cmap = matplotlib.colormaps[palette]
    except KeyError:
        raise ConfigurationError(f"Unknown palette '{palette}'") from None
    return int(cmap.N)


def check_order_mode(order_by: str) -> str:
    if order_by not in ORDER_MODES:
        raise ConfigurationError(f"Invalid ordering mode '{order_by}' (expected one of {', '.join(ORDER_MODES)})")
    return order_by


def check_color_options(max_colors: int, palette: str, overflow: Optional[str], other_color: str) -> None:
    if isinstance(max_colors, bool) or not isinstance(max_colors, (int, np.integer)) or max_colors < 1:
        raise ConfigurationError(f"max_colors must be a positive integer, got {max_colors!r}")
    available = palette_size(palette)
    if max_colors > available:
        raise ConfigurationError(f"Palette '{palette}' has {available} colors, {max_colors} requested")
    if overflow not in OVERFLOW_MODES:
        raise ConfigurationError(f"Invalid overflow mode {overflow!r} (expected 'single', 'grey' or None)")
    try:
        to_hex(other_color)
    except ValueError:
        raise ConfigurationError(f"Invalid overflow color {other_color!r}") from None


def _node_types(table: PartitionTable, relation: Optional[OccurrenceRelation]) -> Optional[pd.Series]:
    if NODE_TYPE_COLUMN in table:
        return table[NODE_TYPE_COLUMN]
    if relation is None:
        return None
    sites, species = set(relation.sites), set(relation.species)
    return pd.Series(['species' if n in species else 'site' if n in sites else None for n in table.names])


def rank_clusters(table: PartitionTable, level: str = 'lvl1', order_by: str = 'frequency',
                  relation: Optional[OccurrenceRelation] = None) -> pd.DataFrame:
    """
    Rank 1..K over the clusters of `level`.

    "frequency" keeps the canonical domain order; "insertion" follows first
    appearance in the table; "sites", "species" and "combined" sort by the
    number of site nodes, species nodes, or both. Ties fall back to first
    appearance, then to domain order.
    """
    check_order_mode(order_by)
    domain = list(table.domain(level))
    values = table[level]
    types = _node_types(table, relation)
    if types is None and order_by in ('sites', 'species', 'combined'):
        raise ConfigurationError(f"Ordering by '{order_by}' needs node types: tag the table or pass the relation")

    first_seen = {}
    for i, v in enumerate(values):
        if v is not None and not pd.isna(v):
            first_seen.setdefault(v, i)
    ranks = pd.DataFrame({'cluster': domain, 'position': range(len(domain))})
    ranks['first.seen'] = [first_seen.get(v, len(values)) for v in domain]
    ranks['n.nodes'] = values.value_counts().reindex(domain, fill_value=0).to_numpy()
    if types is not None:
        ranks['n.sites'] = values[types == 'site'].value_counts().reindex(domain, fill_value=0).to_numpy()
        ranks['n.species'] = values[types == 'species'].value_counts().reindex(domain, fill_value=0).to_numpy()
        ranks['n.combined'] = ranks['n.sites'] + ranks['n.species']

    if order_by == 'frequency':
        keys, ascending = ['position'], [True]
    elif order_by == 'insertion':
        keys, ascending = ['first.seen', 'position'], [True, True]
    else:
        count = {'sites': 'n.sites', 'species': 'n.species', 'combined': 'n.combined'}[order_by]
        keys, ascending = [count, 'first.seen', 'position'], [False, True, True]
    ranks = ranks.sort_values(keys, ascending=ascending, kind='mergesort').reset_index(drop=True)
    ranks['rank'] = np.arange(1, len(ranks) + 1)

    columns = ['cluster', 'rank', 'n.nodes'] + (['n.sites', 'n.species'] if types is not None else [])
    return ranks[columns]


def _overflow_colors(n: int, overflow: Optional[str], other_color: str) -> List[str]:
    if n <= 0:
        return []
    if overflow == 'grey':
        return [to_hex((g, g, g)) for g in np.linspace(0, 0.8, n)]
    return [to_hex(other_color)] * n


def cluster_colors(table: PartitionTable, level: str = 'lvl1', max_colors: int = 12, palette: str = 'Paired',
                   order_by: str = 'frequency', overflow: Optional[str] = 'single',
                   other_color: str = DEFAULT_OTHER_COLOR,
                   relation: Optional[OccurrenceRelation] = None) -> pd.DataFrame:
    """
    Color of every cluster of `level`, by rank.

    The first min(K, max_colors) ranks get palette colors; the others get
    `other_color` (overflow="single") or a grey ramp (overflow="grey").
    Binary splits use the two outer colors of the 3-color palette.
    """
    check_color_options(max_colors, palette, overflow, other_color)
    check_order_mode(order_by)
    table.check_level(level)
    ranks = rank_clusters(table, level, order_by, relation)
    k = len(ranks)
    if overflow is None and k > max_colors:
        raise ConfigurationError(
            f"{k} clusters at {level} but only {max_colors} colors and no overflow policy")

    n_palette = min(k, max_colors)
    if k == 2 or max_colors == 2:
        outer = sns.color_palette(palette, 3).as_hex()
        base = [outer[0], outer[2]][:n_palette]
    else:
        base = sns.color_palette(palette, max(n_palette, 1)).as_hex()[:n_palette]
    colors = base + _overflow_colors(k - len(base), overflow, other_color)
    if k > max_colors:
        logger.info("%d clusters at %s beyond the %d palette colors (overflow=%s)", k - max_colors, level,
                    max_colors, overflow)

    result = ranks[['cluster', 'rank']].copy()
    result['color'] = colors
    return result


def attribute_colors(table: PartitionTable, level: str = 'lvl1', max_colors: int = 12, palette: str = 'Paired',
                     order_by: str = 'frequency', overflow: Optional[str] = 'single',
                     other_color: str = DEFAULT_OTHER_COLOR, colname: str = 'color',
                     relation: Optional[OccurrenceRelation] = None) -> PartitionTable:
    """New table with a color column for the clusters of `level`."""
    colors = cluster_colors(table, level, max_colors, palette, order_by, overflow, other_color, relation)
    lookup = dict(zip(colors['cluster'], colors['color']))
    return table.with_column(colname, [lookup.get(v) for v in table[level]])
