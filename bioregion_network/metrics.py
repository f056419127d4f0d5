"""
Species and site metrics relative to the clusters of one hierarchy level.

Species-level metrics compare the occurrences (or range area) of a species in
its own cluster with the size of that cluster and with its total range:

    Ai = Ri / Z          affinity (Z: number of sites, or area, of the cluster)
    Fi = Ri / Di         fidelity
    IndVal = Ai * Fi
    DilVal = Ai * (1 - Fi)

Site-level robustness sums the IndVal of the characteristic species of the
site's cluster and subtracts the DilVal of the other species:

    Rg  = sum(IndVal, characteristic) - sum(DilVal, non-characteristic)
    RRg = Rg / S         S: species richness of the site

Occurrence-based columns are prefixed with "Occ."; area-based columns are only
produced when a site area table is given.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from .errors import ConfigurationError, QualityReport, UnclassifiedNodeWarning, UndefinedMetricWarning
from .partition import PartitionTable
from .relation import OccurrenceRelation, build_biadjacency

logger = logging.getLogger(__name__)

PARTICIPATION_COLUMN = 'participation.coef'


@dataclass
class ClusterMetrics:
    level: str
    region_stats: pd.DataFrame
    species_stats: pd.DataFrame
    site_stats: pd.DataFrame
    report: QualityReport = field(default_factory=QualityReport)

    @property
    def has_area(self) -> bool:
        return 'IndVal' in self.species_stats.columns


def _participation(links: pd.DataFrame, node_col: str, cluster_col: str, weighted: bool) -> pd.Series:
    assigned = links.dropna(subset=[cluster_col])
    if weighted:
        counts = assigned.groupby([node_col, cluster_col])['weight'].sum()
        counts = counts[counts > 0]
    else:
        counts = assigned.groupby([node_col, cluster_col]).size()
    shares = counts / counts.groupby(level=0).transform('sum')
    return 1.0 - (shares ** 2).groupby(level=0).sum()


def participation_coefficient(table: PartitionTable, relation: OccurrenceRelation, level: str = 'lvl1',
                              weighted: bool = False, colname: str = PARTICIPATION_COLUMN,
                              report: Optional[QualityReport] = None) -> PartitionTable:
    """
    Participation coefficient of every site and species node at `level`.

    The links of a node are grouped by the cluster of the node at the other end;
    PC = 1 - sum((n_j / n)^2). 0 means all neighbours share one cluster.
    """
    table.check_level(level)
    relation.check_bipartite()
    own_report = report is None
    report = QualityReport() if own_report else report

    clusters = table.cluster_of(level)
    links = relation.links()
    links['site.cluster'] = links['site'].map(clusters)
    links['species.cluster'] = links['species'].map(clusters)
    for label in links.loc[links['species.cluster'].isna(), 'species'].unique():
        report.record(UnclassifiedNodeWarning, label, f"species without a {level} cluster ignored as a neighbour")
    for label in links.loc[links['site.cluster'].isna(), 'site'].unique():
        report.record(UnclassifiedNodeWarning, label, f"site without a {level} cluster ignored as a neighbour")

    pc_sites = _participation(links, 'site', 'species.cluster', weighted)
    pc_species = _participation(links, 'species', 'site.cluster', weighted)
    sites = set(relation.sites)
    species = set(relation.species)

    values: Dict[str, float] = {}
    for name in table.names:
        if name in sites:
            values[name] = float(pc_sites.get(name, np.nan))
        elif name in species:
            values[name] = float(pc_species.get(name, np.nan))
        else:
            continue
        if np.isnan(values[name]):
            report.record(UndefinedMetricWarning, name, "no neighbour with a cluster; participation undefined")

    if own_report:
        report.emit()
    return table.with_column(colname, pd.Series(values, dtype=float))


def _site_areas(site_area: Union[pd.DataFrame, pd.Series, Mapping]) -> pd.Series:
    if isinstance(site_area, pd.DataFrame):
        if not {'name', 'area'} <= set(site_area.columns):
            raise ConfigurationError("site area table needs 'name' and 'area' columns")
        areas = pd.Series(site_area['area'].to_numpy(dtype=float), index=site_area['name'].astype(str))
    else:
        areas = pd.Series(site_area, dtype=float)
        areas.index = areas.index.astype(str)
    return areas[~areas.index.duplicated()]


def _endemism(occ: pd.DataFrame, species: List[str]) -> pd.DataFrame:
    """
    Number of clusters each species occurs in, through a species x cluster
    presence matrix (species x site incidence times site x cluster membership).
    """
    placed = occ.dropna(subset=['site.cluster'])
    if placed.empty:
        found = pd.DataFrame({'n.clusters': [], 'home': []})
    else:
        incidence, sp_rows, site_cols = build_biadjacency(placed, 'species', 'site')
        membership, site_rows, cluster_cols = build_biadjacency(
            placed[['site', 'site.cluster']].drop_duplicates(), 'site', 'site.cluster')
        if site_cols != site_rows:
            raise ValueError("Incidence and membership matrices disagree on the site order")
        presence = ((incidence @ membership) > 0).astype(np.int8).tocsr()
        n_clusters = np.asarray(presence.sum(axis=1)).ravel()
        home_idx = np.asarray(presence.argmax(axis=1)).ravel()
        found = pd.DataFrame({
            'n.clusters': n_clusters,
            'home': [cluster_cols[j] if n == 1 else None for j, n in zip(home_idx, n_clusters)],
        }, index=sp_rows)
    result = found.reindex(species)
    result['n.clusters'] = result['n.clusters'].fillna(0).astype(int)
    result['endemic'] = result['n.clusters'] == 1
    return result


def _region_stats(table: PartitionTable, level: str, occ: pd.DataFrame, site_clusters: pd.Series,
                  species_clusters: pd.Series, endemism: pd.DataFrame,
                  areas: Optional[pd.Series]) -> pd.DataFrame:
    domain = list(table.domain(level))
    stats = pd.DataFrame({'region': domain})
    stats['nb.sites'] = site_clusters.value_counts().reindex(domain, fill_value=0).to_numpy()
    if areas is not None:
        node_area = table['Name'].map(areas)
        area = node_area.groupby(table[level]).sum()
        stats['area'] = area.reindex(domain, fill_value=0.0).to_numpy(dtype=float)
    placed = occ.dropna(subset=['site.cluster'])
    stats['richness'] = placed.groupby('site.cluster')['species'].nunique().reindex(domain, fill_value=0).to_numpy()
    stats['char.richness'] = species_clusters.value_counts().reindex(domain, fill_value=0).to_numpy()
    endemics = endemism.loc[endemism['endemic'], 'home']
    stats['end.richness'] = endemics.value_counts().reindex(domain, fill_value=0).to_numpy()
    nested = table.node_depths().groupby(table[level]).max()
    stats['nested.levels'] = nested.reindex(domain, fill_value=0).to_numpy().astype(int)
    return stats


def _safe_ratio(num: pd.Series, den: pd.Series) -> pd.Series:
    den = den.astype(float).where(den != 0)
    return num.astype(float) / den


def _species_stats(species_clusters: pd.Series, occ: pd.DataFrame, region_stats: pd.DataFrame,
                   endemism: pd.DataFrame, areas: Optional[pd.Series],
                   report: QualityReport) -> pd.DataFrame:
    sp_list = list(species_clusters.index)
    own = occ[occ['site.cluster'] == occ['species.cluster']]
    by_region = region_stats.set_index('region')

    stats = pd.DataFrame({'species': sp_list, 'cluster': species_clusters.to_numpy()}, index=sp_list)
    stats['Occ.Ri'] = own.groupby('species')['site'].nunique().reindex(sp_list, fill_value=0).astype(int)
    stats['Occ.Di'] = occ.groupby('species')['site'].nunique().reindex(sp_list, fill_value=0).astype(int)
    nb_sites = by_region['nb.sites'].reindex(stats['cluster']).to_numpy()
    stats['Occ.Ai'] = _safe_ratio(stats['Occ.Ri'], pd.Series(nb_sites, index=sp_list))
    stats['Occ.Fi'] = _safe_ratio(stats['Occ.Ri'], stats['Occ.Di'])
    stats['Occ.IndVal'] = stats['Occ.Ai'] * stats['Occ.Fi']
    stats['Occ.DilVal'] = stats['Occ.Ai'] * (1 - stats['Occ.Fi'])

    if areas is not None:
        own_area = own.assign(area=own['site'].map(areas).fillna(0.0))
        all_area = occ.assign(area=occ['site'].map(areas).fillna(0.0))
        stats['Ri'] = own_area.groupby('species')['area'].sum().reindex(sp_list, fill_value=0.0)
        stats['Di'] = all_area.groupby('species')['area'].sum().reindex(sp_list, fill_value=0.0)
        region_area = by_region['area'].reindex(stats['cluster']).to_numpy()
        stats['Ai'] = _safe_ratio(stats['Ri'], pd.Series(region_area, index=sp_list))
        stats['Fi'] = _safe_ratio(stats['Ri'], stats['Di'])
        stats['IndVal'] = stats['Ai'] * stats['Fi']
        stats['DilVal'] = stats['Ai'] * (1 - stats['Fi'])

    stats['endemic'] = endemism['endemic'].reindex(sp_list, fill_value=False).astype(bool)
    for sp in stats.index[stats['Occ.Ai'].isna()]:
        report.record(UndefinedMetricWarning, sp, "cluster has no site; occurrence affinity undefined")
    if areas is not None:
        for sp in stats.index[stats['Ai'].isna() | stats['Fi'].isna()]:
            report.record(UndefinedMetricWarning, sp, "zero area; area-based affinity or fidelity undefined")
    return stats.reset_index(drop=True)


def _lookup_sum(values: Mapping[str, float], names: Iterable[str]) -> float:
    # an undefined IndVal/DilVal makes Rg undefined
    return float(np.sum([values[n] for n in names], dtype=float))


def _site_stats(sites: List[str], site_clusters: pd.Series, species_stats: pd.DataFrame,
                index: Dict[str, List[str]], has_area: bool, level: str,
                report: QualityReport, progress: bool) -> pd.DataFrame:
    sp_cluster = dict(zip(species_stats['species'], species_stats['cluster']))
    occ_indval = dict(zip(species_stats['species'], species_stats['Occ.IndVal']))
    occ_dilval = dict(zip(species_stats['species'], species_stats['Occ.DilVal']))
    if has_area:
        indval = dict(zip(species_stats['species'], species_stats['IndVal']))
        dilval = dict(zip(species_stats['species'], species_stats['DilVal']))

    rows = []
    for site in tqdm(sites, desc=f'site robustness ({level})', disable=not progress):
        if site not in site_clusters.index:
            continue
        cluster = site_clusters[site]
        observed = index.get(site, [])
        characteristic = [sp for sp in observed if sp_cluster.get(sp) == cluster]
        others = [sp for sp in observed if sp in sp_cluster and sp_cluster[sp] != cluster]
        richness = len(observed)
        row = {'site': site, 'cluster': cluster, 'richness': richness}
        row['Occ.Rg'] = _lookup_sum(occ_indval, characteristic) - _lookup_sum(occ_dilval, others)
        row['Occ.RRg'] = row['Occ.Rg'] / richness if richness else np.nan
        if has_area:
            row['Rg'] = _lookup_sum(indval, characteristic) - _lookup_sum(dilval, others)
            row['RRg'] = row['Rg'] / richness if richness else np.nan
        if np.isnan(row['Occ.RRg']):
            report.record(UndefinedMetricWarning, site, "robustness undefined (undefined species metrics)")
        rows.append(row)
    columns = ['site', 'cluster', 'richness', 'Occ.Rg', 'Occ.RRg'] + (['Rg', 'RRg'] if has_area else [])
    return pd.DataFrame(rows, columns=columns)


def cluster_metrics(relation: OccurrenceRelation, table: PartitionTable, level: str = 'lvl1',
                    site_area: Optional[Union[pd.DataFrame, pd.Series, Mapping]] = None,
                    report: Optional[QualityReport] = None, progress: bool = False) -> ClusterMetrics:
    """
    Region, species and site statistics for the clusters at `level`.

    Species and sites of the relation without a cluster at `level` are skipped
    (recorded in the report); they still count in the species richness of sites.
    """
    table.check_level(level)
    relation.check_bipartite()
    areas = _site_areas(site_area) if site_area is not None else None
    own_report = report is None
    report = QualityReport() if own_report else report

    clusters = table.cluster_of(level)
    occ = relation.links()[['site', 'species']].drop_duplicates().reset_index(drop=True)
    occ['site.cluster'] = occ['site'].map(clusters)
    occ['species.cluster'] = occ['species'].map(clusters)

    sites = list(relation.sites)
    species = list(relation.species)
    site_clusters = pd.Series({s: clusters[s] for s in sites if s in clusters}, dtype=object)
    species_clusters = pd.Series({s: clusters[s] for s in species if s in clusters}, dtype=object)
    for s in sites:
        if s not in clusters:
            report.record(UnclassifiedNodeWarning, s, f"site has no {level} cluster; skipped")
    for s in species:
        if s not in clusters:
            report.record(UnclassifiedNodeWarning, s, f"species has no {level} cluster; skipped")
    if areas is not None:
        for s in sites:
            if s not in areas.index:
                report.record(UndefinedMetricWarning, s, "site missing from the area table; area counted as 0")

    endemism = _endemism(occ, species)
    region_stats = _region_stats(table, level, occ, site_clusters, species_clusters, endemism, areas)
    species_stats = _species_stats(species_clusters, occ, region_stats, endemism, areas, report)
    site_stats = _site_stats(sites, site_clusters, species_stats, relation.site_species(),
                             areas is not None, level, report, progress)

    logger.info("Cluster metrics at %s: %d regions, %d species, %d sites",
                level, len(region_stats), len(species_stats), len(site_stats))
    if own_report:
        report.emit()
    return ClusterMetrics(level, region_stats, species_stats, site_stats, report)


def focal_site_robustness(metrics: ClusterMetrics, relation: OccurrenceRelation, table: PartitionTable,
                          focal: str, report: Optional[QualityReport] = None) -> pd.DataFrame:
    """
    Robustness of every site with respect to one focal cluster.

    Species of a site are split by (own cluster of the site?) x (focal cluster?).
    For sites of the focal cluster this is the ordinary robustness
    (mode "own"): sum IndVal(own) - sum DilVal(other). For other sites
    (mode "focal"): sum IndVal(focal) - sum DilVal(own) - sum DilVal(other),
    i.e. how well the site would hold if it were assigned to `focal`.
    """
    level = metrics.level
    if focal not in table.domain(level):
        raise ConfigurationError(f"'{focal}' is not a cluster of {level}")
    own_report = report is None
    report = QualityReport() if own_report else report

    stats = metrics.species_stats
    sp_cluster = dict(zip(stats['species'], stats['cluster']))
    columns = [('Occ.IndVal', 'Occ.DilVal', 'Occ.Rg.focal', 'Occ.RRg.focal')]
    if metrics.has_area:
        columns.append(('IndVal', 'DilVal', 'Rg.focal', 'RRg.focal'))
    lookups = [(dict(zip(stats['species'], stats[i])), dict(zip(stats['species'], stats[d])), rg, rrg)
               for i, d, rg, rrg in columns]

    clusters = table.cluster_of(level)
    rows = []
    for site, observed in relation.site_species().items():
        if site not in clusters:
            report.record(UnclassifiedNodeWarning, site, f"site has no {level} cluster; skipped")
            continue
        cluster = clusters[site]
        assigned = [sp for sp in observed if sp in sp_cluster]
        own = [sp for sp in assigned if sp_cluster[sp] == cluster]
        in_focal = [sp for sp in assigned if sp_cluster[sp] == focal]
        other = [sp for sp in assigned if sp_cluster[sp] not in (cluster, focal)]
        mode = 'own' if cluster == focal else 'focal'
        row = {'site': site, 'cluster': cluster, 'focal': focal, 'mode': mode,
               'n.own': len(own), 'n.focal': len(in_focal), 'n.other': len(other)}
        for indval, dilval, rg_col, rrg_col in lookups:
            if mode == 'own':
                rg = _lookup_sum(indval, own) - _lookup_sum(dilval, other)
            else:
                rg = _lookup_sum(indval, in_focal) - _lookup_sum(dilval, own) - _lookup_sum(dilval, other)
            row[rg_col] = rg
            row[rrg_col] = rg / len(observed)
        rows.append(row)

    if own_report:
        report.emit()
    return pd.DataFrame(rows)
