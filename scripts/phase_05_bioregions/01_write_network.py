#!/usr/bin/env python3

import argparse
import os
from datetime import datetime

from bioregion_network import AnalysisConfig, OccurrenceRelation, write_pajek


def ts() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S %Z")


def safe_dir(path: str) -> None:
    if not os.path.isdir(path):
        os.makedirs(path, exist_ok=True)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Write the site-species occurrence network for Infomap")
    parser.add_argument('--occurrences', help="occurrence CSV (site, species[, abundance])")
    parser.add_argument('--output-dir')
    parser.add_argument('--log-dir')
    parser.add_argument('--abundance-field', help="abundance column; omit for presence/absence")
    return parser.parse_args(argv)


def main(argv=None):
    cfg = {
        'occurrences_file': 'results/phase_05/occurrences.csv',
        'output_dir': 'results/phase_05/network',
        'log_dir': 'docs/phase_05/logs',
        'analysis': {
            'site_field': 'site',
            'species_field': 'species',
            'abundance_field': None,
        },
    }
    args = parse_args(argv)
    if args.occurrences:
        cfg['occurrences_file'] = args.occurrences
    if args.output_dir:
        cfg['output_dir'] = args.output_dir
    if args.log_dir:
        cfg['log_dir'] = args.log_dir
    if args.abundance_field:
        cfg['analysis']['abundance_field'] = args.abundance_field
    config = AnalysisConfig.from_dict(cfg['analysis'])

    safe_dir(cfg['output_dir'])
    safe_dir(cfg['log_dir'])

    print("=== Phase 05 Step 01: Occurrence network for Infomap ===")
    print("Timestamp:", ts())

    if not os.path.isfile(cfg['occurrences_file']):
        raise FileNotFoundError(f"Missing occurrences file: {cfg['occurrences_file']}")

    relation = OccurrenceRelation.read_csv(cfg['occurrences_file'], config.site_field,
                                           config.species_field, config.abundance_field)
    print(f"[{ts()}] Loaded {relation}")
    relation.check_bipartite()

    net_file = os.path.join(cfg['output_dir'], 'occurrences.net')
    ids = write_pajek(relation, net_file)
    print(f"[{ts()}] Pajek network written: {net_file}")

    summary_lines = [
        'Phase 05 Step 01 summary',
        f"Timestamp: {ts()}",
        '',
        f"Occurrences: {len(relation)}",
        f"Species (vertex ids 1..{len(relation.species)}): {len(relation.species)}",
        f"Sites (vertex ids {len(relation.species) + 1}..{len(ids)}): {len(relation.sites)}",
        f"Weighted: {config.abundance_field is not None}",
        f"Network file: {net_file}",
    ]
    summary_file = os.path.join(cfg['log_dir'], 'step01_write_network_summary.txt')
    with open(summary_file, 'w') as fh:
        fh.write("\n".join(summary_lines))
    print("\n".join(summary_lines))
    return net_file


if __name__ == '__main__':
    main()
