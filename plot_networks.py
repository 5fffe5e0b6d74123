"""Plot the prepared spillover graph: community sizes, centrality distributions, and a community dendrogram.

Run after `prepare_data.py` has written `output/spillover_graph.json`.

Example:
    python plot_networks.py --output-dir plots
"""
from __future__ import annotations

import argparse
from collections import Counter
from pathlib import Path
from typing import Dict, List, Sequence

import json

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.lines import Line2D

try:  # Optional dependency for dendrogram visualization
    from scipy.cluster.hierarchy import dendrogram, linkage
    from scipy.spatial.distance import squareform
except Exception:  # pragma: no cover - SciPy may be unavailable
    dendrogram = linkage = squareform = None

THIS_DIR = Path(__file__).resolve().parent
GRAPH_JSON = THIS_DIR / "output" / "spillover_graph.json"
EXTRACTED_DIR = THIS_DIR / "extracted"


def _load_graph(path: Path) -> Dict:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _community_sizes(graph: Dict) -> Dict[int, int]:
    """Return community id -> number of countries."""
    counter = Counter(
        node.get("community") for node in graph.get("nodes", []) if node.get("community") is not None
    )
    return dict(sorted(counter.items()))


def _summarize_communities(graph: Dict, graph_name: str) -> Dict[int, int]:
    sizes = _community_sizes(graph)
    meta = graph.get("meta", {})
    if sizes:
        print(f"[{graph_name}] {len(sizes)} communities (modularity {meta.get('modularity')}):")
        for community, size in sizes.items():
            members = [n["id"] for n in graph["nodes"] if n.get("community") == community]
            print(f"  - community {community}: {size} countries ({', '.join(members)})")
    else:
        print(f"[{graph_name}] no community assignments available")
    return sizes


def _plot_community_dendrogram(
    graph: Dict,
    output_dir: Path,
    graph_name: str = "spillover",
) -> None:
    """Plot a dendrogram of countries (inverse spillover weight) coloured by Louvain community."""

    if linkage is None or dendrogram is None or squareform is None:
        print(f"[{graph_name}] SciPy not available - skipping dendrogram visualization")
        return

    nodes = graph.get("nodes", [])
    if len(nodes) < 2:
        print(f"[{graph_name}] Not enough nodes to plot dendrogram")
        return
    node_ids = [node["id"] for node in nodes]
    communities = {node["id"]: node.get("community") for node in nodes}
    node_index = {node_id: idx for idx, node_id in enumerate(node_ids)}

    links = graph.get("links", [])
    if not links:
        print(f"[{graph_name}] No edges available for dendrogram computation")
        return

    max_weight = max((float(link.get("weight", 0) or 0) for link in links), default=0.0)
    if max_weight <= 0:
        print(f"[{graph_name}] Edge weights missing - skipping dendrogram visualization")
        return

    fill_value = max_weight * 2.0
    n = len(node_ids)
    distance_matrix = np.full((n, n), fill_value, dtype=float)
    np.fill_diagonal(distance_matrix, 0.0)

    for link in links:
        source = link.get("sourceCode")
        target = link.get("targetCode")
        if source not in node_index or target not in node_index:
            continue
        weight = float(link.get("weight", 0) or 0)
        dist = max(fill_value - weight, 0.0)
        i, j = node_index[source], node_index[target]
        if dist < distance_matrix[i, j]:
            distance_matrix[i, j] = distance_matrix[j, i] = dist

    condensed = squareform(distance_matrix)
    linkage_matrix = linkage(condensed, method="average")

    plot_dir = output_dir / "dendrograms"
    plot_dir.mkdir(parents=True, exist_ok=True)
    out_path = plot_dir / f"{graph_name}_community_dendrogram.png"

    fig_height = max(6, 0.3 * n)
    fig, ax = plt.subplots(figsize=(9, fig_height))
    dendrogram(
        linkage_matrix,
        labels=node_ids,
        orientation="right",
        ax=ax,
        color_threshold=0,
        above_threshold_color="black",
    )
    ax.set_title("Spillover communities dendrogram")
    ax.set_xlabel("distance (inverse spillover weight)")

    unique_comms = sorted({c for c in communities.values() if c is not None})
    if unique_comms:
        cmap = plt.get_cmap("tab10")
        color_lookup = {
            community: cmap(idx % cmap.N)
            for idx, community in enumerate(unique_comms)
        }
        for label in ax.get_ymajorticklabels():
            community_id = communities.get(label.get_text())
            if community_id is not None:
                label.set_color(color_lookup.get(community_id, "black"))

        legend_handles = [
            Line2D(
                [0],
                [0],
                marker="o",
                color="none",
                markerfacecolor=color_lookup[community],
                label=f"community {community}",
            )
            for community in unique_comms
        ]
        ax.legend(handles=legend_handles, loc="lower right", fontsize="small")

    fig.tight_layout()
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    print(f"[{graph_name}] Saved community dendrogram: {out_path}")


def _collect_centrality(graph: Dict, metric: str) -> List[float]:
    """Collect centrality values for a given metric across all nodes."""
    values: List[float] = []
    for node in graph.get("nodes", []):
        cent = node.get("centrality") or {}
        if metric in cent and cent[metric] is not None:
            try:
                values.append(float(cent[metric]))
            except (TypeError, ValueError):
                continue
    return values


def _plot_histograms(
    data: Dict[str, List[float]],
    output_dir: Path,
    graph_name: str,
    bins: int = 10,
) -> List[Path]:
    """Create one histogram per centrality metric and save them as PNGs."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for metric, values in data.items():
        if not values:
            continue
        arr = np.asarray(values, dtype=float)
        fig, ax = plt.subplots(figsize=(6, 4))
        ax.hist(arr, bins=bins, range=(0.0, 1.0), color="steelblue", edgecolor="black", alpha=0.8)
        ax.set_title(f"{graph_name}: {metric} centrality")
        ax.set_xlabel("normalized centrality")
        ax.set_ylabel("countries")
        ax.grid(True, linestyle=":", alpha=0.4)

        out_path = output_dir / f"{graph_name}_centrality_{metric}.png"
        fig.tight_layout()
        fig.savefig(out_path, dpi=200)
        plt.close(fig)
        print(f"Saved histogram: {out_path}")
        written.append(out_path)
    return written


def _plot_community_sizes(sizes: Dict[int, int], output_dir: Path, graph_name: str) -> Path | None:
    if not sizes:
        return None
    output_dir.mkdir(parents=True, exist_ok=True)
    labels = [str(comm) for comm in sizes]
    counts = list(sizes.values())
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.bar(labels, counts, color="darkorange", edgecolor="black", alpha=0.8)
    ax.set_title("Countries per Louvain community")
    ax.set_xlabel("Community")
    ax.set_ylabel("Number of countries")
    ax.grid(True, linestyle=":", alpha=0.4, axis="y")
    for i, count in enumerate(counts):
        ax.text(i, count, str(count), ha="center", va="bottom")

    out_path = output_dir / f"{graph_name}_community_sizes.png"
    fig.tight_layout()
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    print(f"Saved community size distribution: {out_path}")
    return out_path


def _convert_csv_to_markdown(data_dir: Path, output_dir: Path) -> None:
    """Convert extracted CSV files to markdown tables."""
    csv_files = sorted(data_dir.glob("*.csv"))
    if not csv_files:
        print(f"No CSV files found in {data_dir}")
        return

    tables_dir = output_dir / "tables"
    tables_dir.mkdir(parents=True, exist_ok=True)

    for csv_file in csv_files:
        df = pd.read_csv(csv_file)
        md_content = [
            f"# {csv_file.stem.replace('_', ' ').title()}\n",
            f"**Source:** `{csv_file.name}`  ",
            f"**Shape:** {df.shape[0]} rows × {df.shape[1]} columns\n",
            "## Data\n",
            df.to_markdown(index=False),
            "\n",
        ]
        numeric_cols = df.select_dtypes(include=[np.number]).columns
        if len(numeric_cols) > 0 and not df.empty:
            md_content.append("## Summary Statistics\n")
            md_content.append(df[numeric_cols].describe().to_markdown())
            md_content.append("\n")

        md_path = tables_dir / f"{csv_file.stem}.md"
        md_path.write_text("\n".join(md_content), encoding="utf-8")
        print(f"Converted {csv_file.name} to markdown: {md_path}")


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description=(
            "Analyze the prepared spillover graph: report communities, plot centrality "
            "distributions, and visualize a community-coloured dendrogram."
        )
    )
    parser.add_argument(
        "--graph",
        type=Path,
        default=GRAPH_JSON,
        help="Graph JSON written by prepare_data.py (default: %(default)s)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=THIS_DIR / "plots",
        help="Directory to save PNGs (default: %(default)s)",
    )
    parser.add_argument(
        "--bins",
        type=int,
        default=10,
        help="Number of bins for histograms (default: %(default)s)",
    )
    parser.add_argument(
        "--convert-csv-to-markdown",
        action="store_true",
        help="Convert CSV files from extract_csv.py to markdown tables in plots/tables",
    )
    args = parser.parse_args(argv)

    if not args.graph.exists():
        print(f"[spillover] missing file: {args.graph} (run prepare_data.py first)")
        return
    graph = _load_graph(args.graph)

    sizes = _summarize_communities(graph, "spillover")
    _plot_community_sizes(sizes, args.output_dir, "spillover")
    if len(sizes) > 1:
        _plot_community_dendrogram(graph, args.output_dir, "spillover")

    metrics = graph.get("meta", {}).get("centralityMetrics", [])
    centrality_data = {}
    for metric in metrics:
        vals = _collect_centrality(graph, metric)
        if vals:
            centrality_data[metric] = vals
            print(f"[spillover] collected {len(vals)} values for centrality metric '{metric}'")
    if centrality_data:
        _plot_histograms(centrality_data, args.output_dir, "spillover", bins=args.bins)
    else:
        print("No centrality data found in graph; nothing to plot.")

    if args.convert_csv_to_markdown:
        _convert_csv_to_markdown(EXTRACTED_DIR, args.output_dir)


if __name__ == "__main__":
    main()
