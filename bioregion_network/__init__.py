"""Bioregionalisation from hierarchical clustering of site-species networks."""

from .coloring import attribute_colors, cluster_colors, rank_clusters
from .config import AnalysisConfig
from .errors import (BioregionError, BipartiteViolationError, ConfigurationError, ParseError,
                     QualityReport, UnclassifiedNodeWarning, UndefinedMetricWarning)
from .grouping import clusters_below_limit, group_nodes_per_cluster
from .hierarchy import materialize_levels, read_tree_records, resolve_leaf_names, split_path
from .metrics import ClusterMetrics, cluster_metrics, focal_site_robustness, participation_coefficient
from .network_io import read_pajek, to_rgb_triplet, write_gdf, write_pajek
from .partition import (PartitionTable, build_partition_table, get_site_table, get_species_table,
                        read_hierarchy, tag_node_types)
from .plotting import plot_cluster_links, plot_cluster_sizes
from .relation import OccurrenceRelation

__version__ = '0.1.0'
