"""Extract community-based CSVs from the spillover graph JSON."""

from __future__ import annotations

import argparse
import csv
import json
from pathlib import Path
from typing import Dict, List, Sequence

GRAPH_JSON = Path("output") / "spillover_graph.json"
OUTPUT_DIR = Path("extracted")

EDGE_FIELDS = ["source", "target", "weight", "normalizedWeight", "source_community", "target_community"]
NODE_FIELDS = ["country", "region", "community", "betweenness"]


def _write_rows(path: Path, fieldnames: Sequence[str], rows: List[Dict]) -> None:
    with path.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)


def community_edges(graph: Dict) -> List[Dict]:
    """Annotate every link with the communities of its endpoints."""
    node_community = {node["id"]: node.get("community", -1) for node in graph["nodes"]}
    rows = []
    for edge in graph["links"]:
        source = edge["sourceCode"]
        target = edge["targetCode"]
        rows.append(
            {
                "source": source,
                "target": target,
                "weight": edge["weight"],
                "normalizedWeight": edge["normalizedWeight"],
                "source_community": node_community.get(source, -1),
                "target_community": node_community.get(target, -1),
            }
        )
    return rows


def is_bridge(edge: Dict) -> bool:
    return edge["source_community"] != edge["target_community"]


def extract_edges(graph: Dict, output_dir: Path) -> Dict[str, int]:
    """Write one CSV per community (intra-community edges) plus the bridge edges."""
    all_edges = community_edges(graph)
    communities = sorted({node.get("community", -1) for node in graph["nodes"]})
    written: Dict[str, int] = {}
    for comm in communities:
        rows = [
            edge for edge in all_edges
            if edge["source_community"] == comm and edge["target_community"] == comm
        ]
        path = output_dir / f"edges_community_{comm}.csv"
        _write_rows(path, EDGE_FIELDS, rows)
        print(f"Created {path} with {len(rows)} edges")
        written[path.name] = len(rows)

    bridges = [edge for edge in all_edges if is_bridge(edge)]
    bridge_path = output_dir / "edges_community_bridges.csv"
    _write_rows(bridge_path, EDGE_FIELDS, bridges)
    print(f"Created {bridge_path} with {len(bridges)} edges")
    written[bridge_path.name] = len(bridges)
    return written


def extract_nodes(graph: Dict, output_dir: Path) -> Dict[str, int]:
    """Write one CSV per community listing its countries, most central first."""
    by_community: Dict[int, List[Dict]] = {}
    for node in graph["nodes"]:
        by_community.setdefault(node.get("community", -1), []).append(
            {
                "country": node["id"],
                "region": node.get("region") or "",
                "community": node.get("community", -1),
                "betweenness": node.get("centrality", {}).get("betweenness", 0),
            }
        )
    written: Dict[str, int] = {}
    for comm in sorted(by_community):
        rows = sorted(by_community[comm], key=lambda row: row["betweenness"], reverse=True)
        path = output_dir / f"nodes_community_{comm}.csv"
        _write_rows(path, NODE_FIELDS, rows)
        print(f"Created {path} with {len(rows)} nodes")
        written[path.name] = len(rows)
    return written


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Extract community-based CSVs from the spillover graph.")
    parser.add_argument('--graph', type=Path, default=GRAPH_JSON, help='Graph JSON written by prepare_data.py (default: %(default)s).')
    parser.add_argument('--output-dir', type=Path, default=OUTPUT_DIR, help='Directory for the CSV files (default: %(default)s).')
    parser.add_argument('--nodes-only', action='store_true', help='Output node-level CSVs (one row per country, with betweenness) instead of edge lists.')
    args = parser.parse_args(argv)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    with args.graph.open('r', encoding='utf-8') as f:
        graph = json.load(f)

    if args.nodes_only:
        extract_nodes(graph, args.output_dir)
    else:
        extract_edges(graph, args.output_dir)


if __name__ == "__main__":
    main()
