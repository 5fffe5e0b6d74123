"""Build the spillover network JSON (communities, centrality, layout) for the D3 view."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from time import perf_counter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

import networkx as nx
import pandas as pd
from networkx.algorithms.community import modularity

from country_positions import DEFAULT_POSITION, INITIAL_POSITIONS
from force_atlas2 import DEFAULT_TOTAL_FRAMES, create_layout_nodes, layout_edges
from graph_algorithms import (
    DEFAULT_CENTRALITY_THRESHOLD,
    DEFAULT_MIN_WEIGHT,
    InvalidInput,
    SpilloverMatrix,
    betweenness_centrality,
    build_edge_list,
    build_symmetric_adjacency,
    edge_degrees,
    louvain_communities,
    validate_spillover_matrix,
)
from layout_animation import DEFAULT_PUBLISH_EVERY, run_layout

CENTRALITY_METRICS = ("betweenness", "degree", "strength", "closeness", "eigenvector")
DEFAULT_CENTRALITY_METRICS = ("betweenness",)
PLACEHOLDER_CENTRALITY = 0.5

# Overrides merged over the ForceAtlas2 defaults for the 26-country view.
LAYOUT_OVERRIDES: Dict[str, Any] = {
    "scaling_ratio": 50.0,
    "gravity": 2.5,
    "lin_log_mode": True,
    "jitter_tolerance": 1.0,
    "slowing_ratio": 1.5,
}

DATA_DIR = Path(__file__).resolve().parent / "data"
MATRIX_JSON = DATA_DIR / "spillover_matrix.json"
OUTPUT_DIR = Path(__file__).resolve().parent / "output"

Position = Tuple[float, float]


def _log_progress(message: str) -> None:
    print(f"[prepare_data] {message}")


def _graph_logger(graph_label: str):
    return lambda message: _log_progress(f"[{graph_label}] {message}")


def _load_matrix(path: Path) -> Dict[str, Dict[str, float]]:
    """Load a spillover matrix from nested JSON or a source,target,weight CSV."""
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path)
        missing = {"source", "target", "weight"} - set(df.columns)
        if missing:
            raise InvalidInput(f"{path} is missing columns: {', '.join(sorted(missing))}")
        df = df.dropna(subset=["source", "target"])
        df["source"] = df["source"].astype(str).str.strip()
        df["target"] = df["target"].astype(str).str.strip()
        df["weight"] = pd.to_numeric(df["weight"], errors="coerce")
        duplicates = df[df.duplicated(subset=["source", "target"])]
        if not duplicates.empty:
            row = duplicates.iloc[0]
            raise InvalidInput(f"Duplicate weight for {row['source']}->{row['target']} in {path}")
        matrix: Dict[str, Dict[str, float]] = {}
        for row in df.itertuples(index=False):
            matrix.setdefault(row.source, {})[row.target] = float(row.weight)
        return matrix

    data = json.loads(path.read_text(encoding="utf-8"))
    # API payloads wrap the matrix; bare nested mappings are accepted too.
    if isinstance(data, dict) and isinstance(data.get("spillover_matrix"), dict):
        data = data["spillover_matrix"]
    if not isinstance(data, dict):
        raise InvalidInput(f"{path} does not contain a code -> code -> weight mapping")
    return data


def _load_positions(path: Path | None) -> Dict[str, Tuple[float, float, str | None]]:
    """Return code → (x, y, region); the built-in country table when no file is given."""
    if path is None:
        return dict(INITIAL_POSITIONS)
    raw = json.loads(path.read_text(encoding="utf-8"))
    positions: Dict[str, Tuple[float, float, str | None]] = {}
    for code, value in raw.items():
        if isinstance(value, Mapping):
            positions[code] = (float(value["x"]), float(value["y"]), value.get("region"))
        else:
            x, y = value[:2]
            positions[code] = (float(x), float(y), None)
    return positions


def _parse_position(raw_value: str | None) -> Position | None:
    if raw_value is None:
        return None
    parts = [part.strip() for part in raw_value.split(",") if part.strip()]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError(f"Expected X,Y but got '{raw_value}'")
    return float(parts[0]), float(parts[1])


def _parse_positive_int(raw_value: str) -> int:
    value = int(raw_value)
    if value < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer but got {raw_value}")
    return value


def _parse_codes(raw_value: str | None) -> List[str] | None:
    if raw_value is None:
        return None
    codes = [part.strip() for part in raw_value.split(",") if part.strip()]
    return codes or None


def _parse_centrality_metrics(raw_value: str | None) -> List[str]:
    """Parse CLI string into requested centrality metrics, honoring 'none'."""
    if raw_value is None:
        return list(DEFAULT_CENTRALITY_METRICS)
    values = [part.strip().lower() for part in raw_value.split(",") if part.strip()]
    if not values:
        return list(DEFAULT_CENTRALITY_METRICS)
    if any(value == "none" for value in values):
        return []
    return [val for val in values if val in CENTRALITY_METRICS]


def _matrix_codes(matrix: SpilloverMatrix) -> List[str]:
    """Row codes first, then codes only seen as targets, in first-seen order."""
    codes: Dict[str, None] = {}
    for source, row in matrix.items():
        codes.setdefault(source, None)
    for row in matrix.values():
        for target in (row or {}):
            codes.setdefault(target, None)
    return list(codes)


def select_codes(
    matrix: SpilloverMatrix,
    positions: Mapping[str, Any],
    requested: Sequence[str] | None = None,
    default_position: Position | None = None,
    log_func: Callable[[str], None] = _log_progress,
) -> List[str]:
    """Choose the node list.

    Codes taken from the matrix silently drop those without a known position
    (unless a default position is agreed). Explicitly requested codes must
    all be placeable.
    """
    if requested:
        missing = [code for code in requested if code not in positions]
        if missing and default_position is None:
            raise InvalidInput(
                f"No initial position for {', '.join(missing)} and no default position given"
            )
        return list(requested)

    codes = _matrix_codes(matrix)
    if default_position is not None:
        return codes
    kept = [code for code in codes if code in positions]
    dropped = [code for code in codes if code not in positions]
    if dropped:
        log_func(f"Skipping {len(dropped)} codes without an initial position: {', '.join(dropped)}")
    return kept


def resolve_initial_positions(
    codes: Sequence[str],
    positions: Mapping[str, Tuple[float, ...]],
    default_position: Position | None = None,
) -> List[Position]:
    resolved = []
    for code in codes:
        if code in positions:
            x, y = positions[code][:2]
            resolved.append((float(x), float(y)))
        elif default_position is not None:
            resolved.append(default_position)
        else:
            raise InvalidInput(f"No initial position for '{code}' and no default position given")
    return resolved


def _thresholded_graph(codes: Sequence[str], adj, threshold: float) -> nx.Graph:
    graph = nx.Graph()
    graph.add_nodes_from(codes)
    n = len(codes)
    for i in range(n):
        for j in range(i + 1, n):
            if adj[i][j] >= threshold:
                graph.add_edge(codes[i], codes[j], weight=float(adj[i][j]))
    return graph


def _compute_centrality_scores(
    graph: nx.Graph,
    metrics: Iterable[str],
    log_func=_log_progress,
) -> Dict[str, Dict[str, float]]:
    """Compute networkx centrality metrics, returning metric→{node: score}."""
    metrics = [metric for metric in metrics if metric != "betweenness"]
    if not metrics:
        return {}
    if graph.number_of_nodes() == 0 or graph.number_of_edges() == 0:
        log_func("Extra centrality metrics skipped (graph too small)")
        return {}

    scores: Dict[str, Dict[str, float]] = {}
    for metric in metrics:
        start = perf_counter()
        if metric == "degree":
            scores[metric] = nx.degree_centrality(graph)
        elif metric == "strength":
            strength = dict(graph.degree(weight="weight"))
            top = max(strength.values()) or 1.0
            scores[metric] = {node: value / top for node, value in strength.items()}
        elif metric == "closeness":
            distance_graph = graph.copy()
            for _, _, data in distance_graph.edges(data=True):
                weight = data.get("weight", 1) or 1
                data["distance"] = 1.0 / float(weight)
            scores[metric] = nx.closeness_centrality(distance_graph, distance="distance")
        elif metric == "eigenvector":
            try:
                scores[metric] = nx.eigenvector_centrality(
                    graph,
                    max_iter=5000,
                    tol=1e-4,
                    weight="weight",
                )
            except nx.NetworkXException as exc:  # pragma: no cover - rare convergence failure
                log_func(f"Eigenvector centrality failed to converge: {exc}")
                continue
        else:
            log_func(f"Unknown centrality metric '{metric}' - skipping")
            continue

        elapsed = perf_counter() - start
        log_func(f"Computed {metric} centrality in {elapsed:.2f}s")

    return scores


def _assign_centrality_tiers(centrality_scores: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, str]]:
    """Bucket each metric's scores into outer/periphery/central quantile tiers."""
    tiers: Dict[str, Dict[str, str]] = {}
    for metric, values in centrality_scores.items():
        if not values:
            continue
        series = pd.Series(values)
        lower = series.quantile(0.34)
        upper = series.quantile(0.67)
        metric_tiers: Dict[str, str] = {}
        for node, score in values.items():
            if score >= upper:
                metric_tiers[node] = "central"
            elif score <= lower:
                metric_tiers[node] = "outer"
            else:
                metric_tiers[node] = "periphery"
        tiers[metric] = metric_tiers
    return tiers


def _partition_modularity(adj, communities: Sequence[int]) -> float | None:
    graph = nx.from_numpy_array(adj)
    if graph.number_of_edges() == 0:
        return None
    groups: Dict[int, set] = {}
    for node, community_id in enumerate(communities):
        groups.setdefault(community_id, set()).add(node)
    return float(modularity(graph, groups.values(), weight="weight"))


def build_spillover_graph(
    matrix: SpilloverMatrix,
    codes: Sequence[str],
    positions: Mapping[str, Tuple[Any, ...]],
    *,
    default_position: Position | None = None,
    min_weight: float = DEFAULT_MIN_WEIGHT,
    threshold: float = DEFAULT_CENTRALITY_THRESHOLD,
    centrality_metrics: Sequence[str] = DEFAULT_CENTRALITY_METRICS,
    total_frames: int = DEFAULT_TOTAL_FRAMES,
    publish_every: int = DEFAULT_PUBLISH_EVERY,
    layout_overrides: Dict[str, Any] | None = None,
    on_publish=None,
    graph_label: str = "spillover",
) -> Dict:
    """Return graph JSON (meta+nodes+links) with communities, centrality and layout."""
    log = _graph_logger(graph_label)
    validate_spillover_matrix(matrix)
    initial = resolve_initial_positions(codes, positions, default_position)
    n = len(codes)

    log(f"Building symmetric adjacency for {n} codes…")
    adj = build_symmetric_adjacency(matrix, codes)

    start = perf_counter()
    communities = louvain_communities(adj, n)
    community_count = len(set(communities))
    log(f"Louvain detected {community_count} communities in {perf_counter() - start:.2f}s")
    modularity_score = _partition_modularity(adj, communities)
    if modularity_score is not None:
        log(f"Partition modularity: {modularity_score:.4f}")

    start = perf_counter()
    betweenness = betweenness_centrality(adj, n, threshold=threshold)
    log(f"Computed betweenness centrality in {perf_counter() - start:.2f}s")

    edges = build_edge_list(matrix, codes, min_weight=min_weight)
    degrees = edge_degrees(edges, n)
    log(f"Kept {len(edges)} edges with weight >= {min_weight}")

    graph = _thresholded_graph(codes, adj, threshold)
    if graph.number_of_edges() > 0:
        components = list(nx.connected_components(graph))
        log(f"Connected components: {len(components)} (largest {len(max(components, key=len))})")

    centrality_scores: Dict[str, Dict[str, float]] = {}
    metrics = list(centrality_metrics)
    if "betweenness" in metrics:
        centrality_scores["betweenness"] = dict(zip(codes, betweenness))
    centrality_scores.update(_compute_centrality_scores(graph, metrics, log_func=log))
    centrality_tiers = _assign_centrality_tiers(centrality_scores)

    nodes = create_layout_nodes(initial, degrees)
    overrides = dict(LAYOUT_OVERRIDES if layout_overrides is None else layout_overrides)
    start = perf_counter()
    final_positions = run_layout(
        nodes,
        layout_edges(edges),
        overrides=overrides,
        total_frames=total_frames,
        publish_every=publish_every,
        on_publish=on_publish,
        log_func=log,
    )
    log(f"Layout converged over {total_frames} frames in {perf_counter() - start:.2f}s")

    node_payload = []
    for idx, code in enumerate(codes):
        x, y = final_positions[idx]
        region = positions[code][2] if code in positions and len(positions[code]) > 2 else None
        node_payload.append(
            {
                "id": code,
                "label": code,
                "index": idx,
                "region": region,
                "community": communities[idx],
                "degree": degrees[idx],
                "mass": nodes[idx].mass,
                "centrality": {
                    metric: float(values[code])
                    for metric, values in centrality_scores.items()
                    if code in values
                },
                "centralityTier": {
                    metric: tiers[code]
                    for metric, tiers in centrality_tiers.items()
                    if code in tiers
                },
                "x": round(x, 3),
                "y": round(y, 3),
            }
        )

    result = {
        "meta": {
            "nodeCount": n,
            "edgeCount": len(edges),
            "minEdgeWeight": min_weight,
            "centralityThreshold": threshold,
            "communityCount": community_count,
            "modularity": modularity_score,
            "frames": total_frames,
            "publishEvery": publish_every,
            "centralityMetrics": sorted(centrality_scores.keys()),
            "layoutConfig": overrides,
        },
        "nodes": node_payload,
        "links": [edge.to_json() for edge in edges],
    }
    log(f"Graph ready with {n} nodes and {len(edges)} edges.")
    return result


def build_placeholder_graph(
    codes: Sequence[str],
    positions: Mapping[str, Tuple[Any, ...]],
    *,
    default_position: Position | None = None,
    graph_label: str = "placeholder",
) -> Dict:
    """Graph JSON for a view without spillover data.

    Every code sits at its initial position in community 0 with a neutral
    betweenness of 0.5 and no links; the layout is reported as settled
    without simulating any frame.
    """
    log = _graph_logger(graph_label)
    initial = resolve_initial_positions(codes, positions, default_position)
    centrality_scores = {"betweenness": {code: PLACEHOLDER_CENTRALITY for code in codes}}
    centrality_tiers = _assign_centrality_tiers(centrality_scores)

    node_payload = []
    for idx, code in enumerate(codes):
        x, y = initial[idx]
        region = positions[code][2] if code in positions and len(positions[code]) > 2 else None
        node_payload.append(
            {
                "id": code,
                "label": code,
                "index": idx,
                "region": region,
                "community": 0,
                "degree": 0,
                "mass": 1.0,
                "centrality": {"betweenness": PLACEHOLDER_CENTRALITY},
                "centralityTier": {"betweenness": centrality_tiers["betweenness"][code]},
                "x": round(x, 3),
                "y": round(y, 3),
            }
        )

    log(f"Placeholder graph ready with {len(codes)} nodes at their initial positions.")
    return {
        "meta": {
            "nodeCount": len(codes),
            "edgeCount": 0,
            "minEdgeWeight": None,
            "centralityThreshold": None,
            "communityCount": 1 if codes else 0,
            "modularity": None,
            "frames": 0,
            "publishEvery": None,
            "centralityMetrics": ["betweenness"],
            "layoutConfig": {},
            "placeholder": True,
        },
        "nodes": node_payload,
        "links": [],
    }


def _write_graph(graph: Dict, output_dir: Path) -> Path:
    graph_path = output_dir / "spillover_graph.json"
    graph_path.write_text(json.dumps(graph, indent=2))
    _log_progress(f"Wrote {graph_path}")
    return graph_path


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Prepare the spillover network JSON for the D3 view.")
    parser.add_argument(
        "--input",
        type=Path,
        default=MATRIX_JSON,
        help="Spillover matrix as nested JSON or source,target,weight CSV (default: %(default)s).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=OUTPUT_DIR,
        help="Directory for the generated JSON files (default: %(default)s).",
    )
    parser.add_argument(
        "--positions",
        type=Path,
        default=None,
        help="JSON file mapping code -> {x, y, region}; defaults to the built-in country table.",
    )
    parser.add_argument(
        "--codes",
        type=str,
        default=None,
        help="Comma-separated node codes to include, in order (default: every placeable matrix code).",
    )
    parser.add_argument(
        "--default-position",
        type=_parse_position,
        default=None,
        help=f"X,Y used for codes without a known position (e.g. {DEFAULT_POSITION[0]:g},{DEFAULT_POSITION[1]:g}).",
    )
    parser.add_argument(
        "--min-weight",
        type=float,
        default=DEFAULT_MIN_WEIGHT,
        help="Minimum symmetric weight to keep an edge (default: %(default)s).",
    )
    parser.add_argument(
        "--centrality-threshold",
        type=float,
        default=DEFAULT_CENTRALITY_THRESHOLD,
        help="Minimum weight for an edge to count in shortest paths (default: %(default)s).",
    )
    parser.add_argument(
        "--centrality-metrics",
        type=str,
        default=None,
        help=(
            "Comma-separated centrality metrics (betweenness, degree, strength, closeness, eigenvector) "
            "or 'none'; defaults to betweenness."
        ),
    )
    parser.add_argument(
        "--frames",
        type=_parse_positive_int,
        default=DEFAULT_TOTAL_FRAMES,
        help="Number of ForceAtlas2 frames to simulate (default: %(default)s).",
    )
    parser.add_argument(
        "--publish-every",
        type=_parse_positive_int,
        default=DEFAULT_PUBLISH_EVERY,
        help="Publish node positions every N frames, plus the final frame (default: %(default)s).",
    )
    parser.add_argument(
        "--frames-out",
        type=Path,
        default=None,
        help="Optional JSON-lines file receiving every published position snapshot.",
    )

    args = parser.parse_args(argv)
    args.output_dir.mkdir(parents=True, exist_ok=True)

    _log_progress(f"Loading spillover matrix from {args.input}…")
    positions = _load_positions(args.positions)
    default_position = args.default_position
    requested = _parse_codes(args.codes)
    try:
        matrix = _load_matrix(args.input)
        validate_spillover_matrix(matrix)
        codes = select_codes(
            matrix,
            positions,
            requested=requested,
            default_position=default_position,
        )
        if not matrix:
            _log_progress("Spillover matrix is empty; writing placeholder graph at the initial positions.")
            graph = build_placeholder_graph(
                codes if requested else list(positions),
                positions,
                default_position=default_position,
            )
            _write_graph(graph, args.output_dir)
            return
    except InvalidInput as exc:
        _log_progress(f"Invalid input: {exc}")
        raise SystemExit(1) from exc
    if not codes:
        _log_progress("No placeable codes in the matrix; nothing to do.")
        raise SystemExit(1)
    _log_progress(f"Using {len(codes)} codes: {', '.join(codes)}")

    snapshots: List[Dict[str, Any]] = []

    def _record(frame: int, frame_positions: List[Position]) -> None:
        snapshots.append(
            {
                "frame": frame,
                "positions": {
                    code: [round(x, 3), round(y, 3)] for code, (x, y) in zip(codes, frame_positions)
                },
            }
        )

    graph = build_spillover_graph(
        matrix,
        codes,
        positions,
        default_position=default_position,
        min_weight=args.min_weight,
        threshold=args.centrality_threshold,
        centrality_metrics=_parse_centrality_metrics(args.centrality_metrics),
        total_frames=args.frames,
        publish_every=args.publish_every,
        on_publish=_record if args.frames_out else None,
    )

    _write_graph(graph, args.output_dir)

    if args.frames_out:
        with args.frames_out.open("w", encoding="utf-8") as handle:
            for snapshot in snapshots:
                handle.write(json.dumps(snapshot) + "\n")
        _log_progress(f"Wrote {len(snapshots)} position snapshots to {args.frames_out}")


if __name__ == "__main__":
    main()
