from typing import Optional

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .partition import NODE_TYPE_COLUMN, PartitionTable


def plot_cluster_sizes(table: PartitionTable, level: str, output_path: str,
                       color_field: Optional[str] = None, max_display: int = 50) -> None:
    """Bar plots of site and species nodes per cluster, in canonical cluster order."""
    domain = list(table.domain(level))[:max_display]
    values = table[level]
    types = table[NODE_TYPE_COLUMN] if NODE_TYPE_COLUMN in table else pd.Series([None] * len(table))

    colors = None
    if color_field is not None:
        lookup = {}
        for value, color in zip(values, table[color_field]):
            if value is not None and not pd.isna(value):
                lookup.setdefault(value, color)
        colors = [lookup.get(c, '#7f7f7f') for c in domain]

    fig, axes = plt.subplots(1, 2, figsize=(12, 5))
    for ax, node_type, title in ((axes[0], 'site', 'Sites'), (axes[1], 'species', 'Species')):
        counts = values[types == node_type].value_counts().reindex(domain, fill_value=0)
        ax.bar(range(len(counts)), counts.values, color=colors)
        ax.set_title(f'{title} per cluster ({level})')
        ax.set_xlabel('Cluster')
        ax.set_ylabel(f'Number of {title.lower()}')
        ax.set_xticks(range(len(counts)))
        ax.set_xticklabels(counts.index, rotation=45, ha='right')

    plt.tight_layout()
    plt.savefig(output_path, dpi=300, bbox_inches='tight')
    plt.close(fig)


def plot_cluster_links(cluster_links: pd.DataFrame, output_path: str, title: str = 'Cluster links') -> None:
    """Heatmap of a From/To/Weight cluster link table."""
    matrix = cluster_links.pivot_table(index='From', columns='To', values='Weight',
                                       aggfunc='sum', fill_value=0, sort=False)
    plt.figure(figsize=(10, 8))
    sns.heatmap(matrix,
                cmap='Blues',
                cbar_kws={'label': 'Weight'},
                annot=matrix.size <= 400, fmt='g',
                square=True)
    plt.title(title)
    plt.xlabel('Species cluster')
    plt.ylabel('Site cluster')
    plt.tight_layout()
    plt.savefig(output_path, dpi=300, bbox_inches='tight')
    plt.close()
