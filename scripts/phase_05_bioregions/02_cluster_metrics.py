#!/usr/bin/env python3

import argparse
import logging
import os
from datetime import datetime

import pandas as pd

from bioregion_network import (AnalysisConfig, OccurrenceRelation, QualityReport, attribute_colors,
                               cluster_colors, cluster_metrics, group_nodes_per_cluster,
                               participation_coefficient, read_hierarchy, write_gdf)


def ts() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S %Z")


def safe_dir(path: str) -> None:
    if not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Partition table and cluster metrics from an Infomap tree")
    parser.add_argument('--tree', help="Infomap .tree file")
    parser.add_argument('--occurrences', help="occurrence CSV (site, species[, abundance])")
    parser.add_argument('--site-area', help="CSV with name and area columns")
    parser.add_argument('--abundance-field', help="abundance column; cluster links then sum abundances")
    parser.add_argument('--level')
    parser.add_argument('--order-by')
    parser.add_argument('--max-colors', type=int)
    parser.add_argument('--output-dir')
    parser.add_argument('--log-dir')
    parser.add_argument('--no-progress', action='store_true')
    return parser.parse_args(argv)


def main(argv=None):
    cfg = {
        'tree_file': 'results/phase_05/network/occurrences.tree',
        'occurrences_file': 'results/phase_05/occurrences.csv',
        'output_dir': 'results/phase_05/clusters',
        'log_dir': 'docs/phase_05/logs',
        'analysis': {
            'site_field': 'site',
            'species_field': 'species',
            'abundance_field': None,
            'level': 'lvl1',
            'max_colors': 12,
            'palette': 'Paired',
            'overflow': 'single',
            'order_by': 'frequency',
            'site_area_file': None,
            'progress': True,
        },
    }
    args = parse_args(argv)
    overrides = {
        'tree_file': args.tree,
        'occurrences_file': args.occurrences,
        'output_dir': args.output_dir,
        'log_dir': args.log_dir,
    }
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    analysis_overrides = {
        'site_area_file': args.site_area,
        'abundance_field': args.abundance_field,
        'level': args.level,
        'order_by': args.order_by,
        'max_colors': args.max_colors,
    }
    cfg['analysis'].update({k: v for k, v in analysis_overrides.items() if v is not None})
    if args.no_progress:
        cfg['analysis']['progress'] = False
    # invalid options fail here, before anything is read
    config = AnalysisConfig.from_dict(cfg['analysis'])

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
    safe_dir(cfg['output_dir'])
    safe_dir(cfg['log_dir'])

    print("=== Phase 05 Step 02: Cluster metrics ===")
    print("Timestamp:", ts())
    print(f"Level: {config.level} | ordering: {config.order_by} | colors: {config.max_colors} ({config.palette})")
    print()

    for key in ('tree_file', 'occurrences_file'):
        if not os.path.isfile(cfg[key]):
            raise FileNotFoundError(f"Missing {key.replace('_', ' ')}: {cfg[key]}")
    site_area = None
    if config.site_area_file:
        if not os.path.isfile(config.site_area_file):
            raise FileNotFoundError(f"Missing site area file: {config.site_area_file}")
        site_area = pd.read_csv(config.site_area_file)

    relation = OccurrenceRelation.read_csv(cfg['occurrences_file'], config.site_field,
                                           config.species_field, config.abundance_field)
    print(f"[{ts()}] Loaded {relation}")

    report = QualityReport()
    table = read_hierarchy(cfg['tree_file'], relation=relation,
                           replace_leaf_names=config.replace_leaf_names, report=report)
    table.check_level(config.level)
    print(f"[{ts()}] Loaded {table}")

    table = participation_coefficient(table, relation, config.level, report=report)
    colors = cluster_colors(table, config.level, config.max_colors, config.palette, config.order_by,
                            config.overflow, config.other_color, relation)
    table = attribute_colors(table, config.level, config.max_colors, config.palette, config.order_by,
                             config.overflow, config.other_color, relation=relation)
    print(f"[{ts()}] Participation coefficients and colors attributed")

    metrics = cluster_metrics(relation, table, config.level, site_area=site_area, report=report,
                              progress=config.progress)
    links = group_nodes_per_cluster(relation, table, config.level, directed=config.directed,
                                    weighted=config.abundance_field is not None,
                                    color_field='color', report=report)
    print(f"[{ts()}] Metrics computed for {len(metrics.region_stats)} clusters")

    outputs = {
        'partition': os.path.join(cfg['output_dir'], f'partition_{config.level}.csv'),
        'colors': os.path.join(cfg['output_dir'], f'cluster_colors_{config.level}.csv'),
        'regions': os.path.join(cfg['output_dir'], f'region_stats_{config.level}.csv'),
        'species': os.path.join(cfg['output_dir'], f'species_stats_{config.level}.csv'),
        'sites': os.path.join(cfg['output_dir'], f'site_stats_{config.level}.csv'),
        'links': os.path.join(cfg['output_dir'], f'cluster_links_{config.level}.csv'),
        'gdf': os.path.join(cfg['output_dir'], f'network_{config.level}.gdf'),
    }
    table.frame.to_csv(outputs['partition'], index=False)
    colors.to_csv(outputs['colors'], index=False)
    metrics.region_stats.to_csv(outputs['regions'], index=False)
    metrics.species_stats.to_csv(outputs['species'], index=False)
    metrics.site_stats.to_csv(outputs['sites'], index=False)
    links.to_csv(outputs['links'], index=False)
    write_gdf(relation, outputs['gdf'], table=table, color_field='color',
              hex2rgb=config.hex2rgb, directed=config.directed)

    report.emit()

    regions = metrics.region_stats
    summary_lines = [
        'Phase 05 Step 02 summary',
        f"Timestamp: {ts()}",
        '',
        f"Nodes in hierarchy: {len(table)} | levels: {table.depth}",
        f"Clusters at {config.level}: {len(regions)} ({int((regions['nb.sites'] > 0).sum())} with sites)",
        f"Endemic species: {int(metrics.species_stats['endemic'].sum())} / {len(metrics.species_stats)}",
        f"Mean Occ.RRg: {metrics.site_stats['Occ.RRg'].mean():.4f}",
        f"Area-based metrics: {metrics.has_area}",
        '',
        'Data quality:',
    ]
    summary_lines.extend(report.summary_lines() or ['  no issues'])
    summary_lines.append('')
    summary_lines.extend(f"{name.title()} file: {path}" for name, path in outputs.items())

    summary_file = os.path.join(cfg['log_dir'], 'step02_cluster_metrics_summary.txt')
    with open(summary_file, 'w') as fh:
        fh.write("\n".join(summary_lines))
    print("\n".join(summary_lines))
    return outputs


if __name__ == '__main__':
    main()
