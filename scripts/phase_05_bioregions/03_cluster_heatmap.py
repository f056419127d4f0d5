#!/usr/bin/env python3

import argparse
import os
from datetime import datetime

import pandas as pd

from bioregion_network import (AnalysisConfig, OccurrenceRelation, attribute_colors,
                               group_nodes_per_cluster, plot_cluster_links, plot_cluster_sizes,
                               read_hierarchy)


def ts() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S %Z")


def safe_dir(path: str) -> None:
    if not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Cluster size and cluster link plots")
    parser.add_argument('--tree')
    parser.add_argument('--occurrences')
    parser.add_argument('--level')
    parser.add_argument('--directed', action='store_true')
    parser.add_argument('--fig-dir')
    return parser.parse_args(argv)


def main(argv=None):
    cfg = {
        'tree_file': 'results/phase_05/network/occurrences.tree',
        'occurrences_file': 'results/phase_05/occurrences.csv',
        'fig_dir': 'results/phase_05/figures',
        'analysis': {
            'site_field': 'site',
            'species_field': 'species',
            'level': 'lvl1',
            'directed': False,
        },
    }
    args = parse_args(argv)
    if args.tree:
        cfg['tree_file'] = args.tree
    if args.occurrences:
        cfg['occurrences_file'] = args.occurrences
    if args.fig_dir:
        cfg['fig_dir'] = args.fig_dir
    if args.level:
        cfg['analysis']['level'] = args.level
    if args.directed:
        cfg['analysis']['directed'] = True
    config = AnalysisConfig.from_dict(cfg['analysis'])

    safe_dir(cfg['fig_dir'])

    print("=== Phase 05 Step 03: Cluster plots ===")
    print("Timestamp:", ts())

    for key in ('tree_file', 'occurrences_file'):
        if not os.path.isfile(cfg[key]):
            raise FileNotFoundError(f"Missing {key.replace('_', ' ')}: {cfg[key]}")

    relation = OccurrenceRelation.read_csv(cfg['occurrences_file'], config.site_field, config.species_field)
    table = read_hierarchy(cfg['tree_file'], relation=relation)
    table = attribute_colors(table, config.level, config.max_colors, config.palette, config.order_by,
                             config.overflow, config.other_color, relation=relation)

    sizes_file = os.path.join(cfg['fig_dir'], f'cluster_sizes_{config.level}.png')
    plot_cluster_sizes(table, config.level, sizes_file, color_field='color')
    print(f"[{ts()}] Cluster size plot saved: {sizes_file}")

    links = group_nodes_per_cluster(relation, table, config.level, directed=config.directed)
    links_file = os.path.join(cfg['fig_dir'], f'cluster_links_{config.level}.png')
    if links.empty:
        print(f"[{ts()}] No cluster links at {config.level}; heatmap skipped")
        links_file = None
    else:
        plot_cluster_links(links, links_file, title=f'Site-species cluster links ({config.level})')
        print(f"[{ts()}] Cluster link heatmap saved: {links_file}")

    print("\n=== Summary ===")
    counts = pd.Series(table[config.level]).value_counts()
    print(f"Clusters at {config.level}: {len(table.domain(config.level))} "
          f"(largest: {int(counts.max()) if len(counts) else 0} nodes)")
    return sizes_file, links_file


if __name__ == '__main__':
    main()
