import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import QualityReport, UnclassifiedNodeWarning
from .partition import PartitionTable
from .relation import OccurrenceRelation

logger = logging.getLogger(__name__)

SMALL_CLUSTERS = 'small.clusters'


def group_nodes_per_cluster(relation: OccurrenceRelation, table: PartitionTable, level: str = 'lvl1',
                            directed: bool = False, weighted: bool = False,
                            color_field: Optional[str] = None,
                            report: Optional[QualityReport] = None) -> pd.DataFrame:
    """
    Collapse the bipartite network into a cluster-to-cluster link table.

    Each occurrence links the cluster of its site (From) to the cluster of its
    species (To). Weight is the number of occurrences, or the summed abundance
    when `weighted`. Undirected tables merge (a, b) with (b, a), keeping the
    cluster of better rank first.
    """
    domain = table.domain(level)
    position = {v: i for i, v in enumerate(domain)}
    own_report = report is None
    report = QualityReport() if own_report else report

    clusters = table.cluster_of(level)
    links = relation.links()
    links['From'] = links['site'].map(clusters)
    links['To'] = links['species'].map(clusters)
    unplaced = links['From'].isna() | links['To'].isna()
    if unplaced.any():
        for label in pd.concat([links.loc[links['From'].isna(), 'site'], links.loc[links['To'].isna(), 'species']]).unique():
            report.record(UnclassifiedNodeWarning, label, f"no {level} cluster; its occurrences are not grouped")
        links = links.loc[~unplaced]

    if weighted:
        grouped = links.groupby(['From', 'To'], sort=False)['weight'].sum()
    else:
        grouped = links.groupby(['From', 'To'], sort=False).size()
    cluster_links = grouped.rename('Weight').reset_index()

    if not directed and len(cluster_links):
        swap = (cluster_links['From'].map(position) > cluster_links['To'].map(position)).to_numpy()
        low = np.where(swap, cluster_links['To'], cluster_links['From'])
        high = np.where(swap, cluster_links['From'], cluster_links['To'])
        cluster_links = (pd.DataFrame({'From': low, 'To': high, 'Weight': cluster_links['Weight']})
                         .groupby(['From', 'To'], sort=False)['Weight'].sum().reset_index())

    order = np.lexsort((cluster_links['To'].map(position).to_numpy(), cluster_links['From'].map(position).to_numpy()))
    cluster_links = cluster_links.iloc[order].reset_index(drop=True)

    if color_field is not None:
        colors = {}
        for value, color in zip(table[level], table[color_field]):
            if value is not None and not pd.isna(value):
                colors.setdefault(value, color)
        cluster_links[color_field] = cluster_links['From'].map(colors)

    if own_report:
        report.emit()
    return cluster_links


def clusters_below_limit(table: PartitionTable, level: str, limit: int, rename: bool = False,
                         remove: bool = False) -> Tuple[List[str], PartitionTable]:
    """
    Clusters of `level` holding fewer than `limit` nodes.

    With rename, their nodes are moved to a single "small.clusters" value;
    with remove, their nodes are dropped. The input table is left unchanged.
    """
    counts = table[level].value_counts().reindex(table.domain(level), fill_value=0)
    below = [c for c, n in counts.items() if n < limit]
    if not below:
        logger.info("No cluster of %s below %d nodes", level, limit)
        return below, table

    nodes = table['Name'][table[level].isin(below)]
    logger.info("%d clusters of %s are below the limit, corresponding to %d nodes: %s",
                len(below), level, len(nodes), ', '.join(below))
    if rename:
        table = table.replace_level_values(level, {c: SMALL_CLUSTERS for c in below})
    elif remove:
        table = table.take(~table[level].isin(below))
    return below, table
