"""
Writers for the files exchanged with external tools.

Pajek (.net) is the input of Infomap; species get ids 1..S and sites
S+1..S+T, and every occurrence becomes a species -> site edge. GDF is read by
Gephi; nodes carry their hierarchy levels and optionally a color.
"""
import logging
import shlex
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd
from matplotlib.colors import to_rgb

from .errors import ParseError
from .partition import PartitionTable, get_site_table, get_species_table
from .relation import OccurrenceRelation

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
GREY = '#7f7f7f'


def _format_weight(value) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def to_rgb_triplet(color: str) -> str:
    """'red' or '#ff0000' -> "'255,0,0'"."""
    r, g, b = (int(round(c * 255)) for c in to_rgb(str(color).lower()))
    return f"'{r},{g},{b}'"


def write_pajek(relation: OccurrenceRelation, filename: PathLike) -> Dict[str, int]:
    """Write the occurrence network in Pajek format; returns the label -> vertex id map."""
    species = relation.species
    sites = relation.sites
    ids = {sp: i for i, sp in enumerate(species, start=1)}
    ids.update({site: len(species) + i for i, site in enumerate(sites, start=1)})

    links = relation.links()
    lines = [f"*Vertices {len(species) + len(sites)}"]
    lines.extend(f'{ids[sp]} "{sp}"' for sp in species)
    lines.extend(f'{ids[site]} "{site}"' for site in sites)
    lines.append("*Edges")
    lines.extend(f"{ids[sp]} {ids[site]} {_format_weight(w)}"
                 for sp, site, w in zip(links['species'], links['site'], links['weight']))

    with open(filename, 'w', encoding='utf-8') as fh:
        fh.write("\n".join(lines) + "\n")
    logger.info("Pajek network written to %s (%d species, %d sites, %d edges)",
                filename, len(species), len(sites), len(links))
    return ids


def read_pajek(filename: PathLike) -> OccurrenceRelation:
    """
    Read a species -> site Pajek network written by write_pajek.

    The first vertex of each edge is the species, the second the site.
    """
    labels: Dict[int, str] = {}
    edges: List[tuple] = []
    section = None
    with open(filename, encoding='utf-8') as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            if line.startswith('*'):
                section = line.split()[0].lower()
                continue
            try:
                if section == '*vertices':
                    vertex_id, label = shlex.split(line)[:2]
                    labels[int(vertex_id)] = label
                elif section in ('*edges', '*arcs'):
                    parts = line.split()
                    weight = float(parts[2]) if len(parts) > 2 else 1.0
                    edges.append((int(parts[0]), int(parts[1]), weight))
            except (ValueError, IndexError) as exc:
                raise ParseError(f"{filename}:{lineno}: malformed Pajek line '{line}'") from exc

    frame = pd.DataFrame(edges, columns=['species', 'site', 'weight'])
    try:
        frame['species'] = frame['species'].map(lambda i: labels[i])
        frame['site'] = frame['site'].map(lambda i: labels[i])
    except KeyError as exc:
        raise ParseError(f"{filename}: edge refers to undeclared vertex {exc}") from None
    return OccurrenceRelation(frame[['site', 'species', 'weight']], 'site', 'species', 'weight')


def _node_rows(table: PartitionTable, color_field: Optional[str], hex2rgb: bool) -> List[str]:
    frame = table.frame
    levels = frame[list(table.levels)].astype(object).where(frame[list(table.levels)].notna(), '0')
    rows = []
    for i in range(len(frame)):
        fields = [str(frame['NodeId'].iat[i]), str(frame['Name'].iat[i])]
        fields.extend(str(v) for v in levels.iloc[i])
        if color_field is not None:
            color = frame[color_field].iat[i]
            color = GREY if color is None or pd.isna(color) else color
            fields.append(to_rgb_triplet(color) if hex2rgb else str(color))
        rows.append(','.join(fields))
    return rows


def write_gdf(relation: OccurrenceRelation, filename: PathLike, table: Optional[PartitionTable] = None,
              color_field: Optional[str] = None, hex2rgb: bool = True, directed: bool = False) -> None:
    """
    Write the network in GDF format.

    With a partition table, nodes are the table's species then sites with their
    level columns, and edges go from species id to site id. Without one, nodes
    are the raw labels and edges go from site to species; `color_field` is then a
    column of the relation giving each site's color (species get grey).
    """
    links = relation.links()
    edge_header = "edgedef>node1 VARCHAR,node2 VARCHAR,weight INTEGER" + (",directed BOOLEAN" if directed else "")
    direction = [",true" if directed else ""] * len(links)

    if table is not None:
        species_table = get_species_table(relation, table)
        sites_table = get_site_table(relation, table)
        level_header = ','.join(f"{lvl} VARCHAR" for lvl in table.levels)
        node_header = f"nodedef>name VARCHAR,label VARCHAR,{level_header}"
        if color_field is not None:
            node_header += ",color VARCHAR" if hex2rgb else ",ccolor VARCHAR"
        species_ids = dict(zip(species_table['Name'], species_table['NodeId']))
        site_ids = dict(zip(sites_table['Name'], sites_table['NodeId']))
        lines = [node_header]
        lines.extend(_node_rows(species_table, color_field, hex2rgb))
        lines.extend(_node_rows(sites_table, color_field, hex2rgb))
        lines.append(edge_header)
        skipped = 0
        for sp, site, w, d in zip(links['species'], links['site'], links['weight'], direction):
            if sp not in species_ids or site not in site_ids:
                skipped += 1
                continue
            lines.append(f"{species_ids[sp]},{site_ids[site]},{_format_weight(w)}{d}")
        if skipped:
            logger.warning("%d occurrences left out of %s: site or species missing from the hierarchy",
                           skipped, filename)
    else:
        labels = list(dict.fromkeys(list(relation.sites) + list(relation.species)))
        lines = ["nodedef>name VARCHAR" + (",color VARCHAR" if color_field is not None else "")]
        if color_field is not None:
            data = relation.data
            site_colors = dict(zip(data[relation.site_field], data[color_field]))
            for label in labels:
                color = site_colors.get(label, GREY)
                lines.append(f"{label},{to_rgb_triplet(color) if hex2rgb else color}")
        else:
            lines.extend(labels)
        lines.append(edge_header)
        for site, sp, w, d in zip(links['site'], links['species'], links['weight'], direction):
            lines.append(f"{site},{sp},{_format_weight(w)}{d}")

    with open(filename, 'w', encoding='utf-8') as fh:
        fh.write("\n".join(lines) + "\n")
    logger.info("GDF network written to %s", filename)
