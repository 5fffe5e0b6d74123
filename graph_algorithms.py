"""Graph analytics for the spillover network view.

Pure functions over a directed spillover matrix (code → code → weight):
symmetric adjacency, single-level Louvain communities, Brandes betweenness
and a normalized edge list for the D3 layout.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import numpy as np

SpilloverMatrix = Mapping[str, Mapping[str, float]]

DEFAULT_MIN_WEIGHT = 0.005
DEFAULT_CENTRALITY_THRESHOLD = 0.005
MAX_LOUVAIN_PASSES = 15
FALLBACK_COMMUNITY_BUCKETS = 4


class InvalidInput(ValueError):
    """Raised when spillover data is malformed (as opposed to merely sparse)."""


@dataclass(frozen=True)
class GraphEdge:
    source: int
    target: int
    source_code: str
    target_code: str
    weight: float
    normalized_weight: float

    def to_json(self) -> Dict[str, Any]:
        """Return the camelCase payload consumed by the D3 view."""
        data = asdict(self)
        return {
            "source": data["source"],
            "target": data["target"],
            "sourceCode": data["source_code"],
            "targetCode": data["target_code"],
            "weight": data["weight"],
            "normalizedWeight": data["normalized_weight"],
        }


def validate_spillover_matrix(matrix: SpilloverMatrix) -> None:
    """Reject negative, NaN or non-numeric weights."""
    for source, row in matrix.items():
        if row is None:
            continue
        if not isinstance(row, Mapping):
            raise InvalidInput(f"Row for '{source}' must be a mapping, got {type(row).__name__}")
        for target, value in row.items():
            if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
                raise InvalidInput(f"Weight {source}->{target} is not numeric: {value!r}")
            if math.isnan(float(value)):
                raise InvalidInput(f"Weight {source}->{target} is NaN")
            if value < 0:
                raise InvalidInput(f"Weight {source}->{target} is negative: {value}")


def _pair_weight(matrix: SpilloverMatrix, code_a: str, code_b: str) -> float:
    forward = (matrix.get(code_a) or {}).get(code_b, 0.0) or 0.0
    backward = (matrix.get(code_b) or {}).get(code_a, 0.0) or 0.0
    return float(max(forward, backward))


def build_symmetric_adjacency(matrix: SpilloverMatrix, codes: Sequence[str]) -> np.ndarray:
    """Collapse the directed matrix into an undirected n×n array.

    ``adj[i][j]`` is the larger of the two directed weights between
    ``codes[i]`` and ``codes[j]``; the diagonal stays zero. The returned
    array is read-only.
    """
    n = len(codes)
    adj = np.zeros((n, n), dtype=float)
    for i in range(n):
        for j in range(i + 1, n):
            weight = _pair_weight(matrix, codes[i], codes[j])
            adj[i, j] = weight
            adj[j, i] = weight
    adj.setflags(write=False)
    return adj


def louvain_communities(adj: np.ndarray, n: int | None = None) -> List[int]:
    """Single-level greedy modularity optimization.

    Nodes are visited in index order for up to ``MAX_LOUVAIN_PASSES`` passes.
    A node moves only when the gain into a neighboring community is strictly
    positive; ties keep the community first met in ascending neighbor order.
    There is no aggregation phase.
    """
    adj = np.asarray(adj, dtype=float)
    n = adj.shape[0] if n is None else n

    total_weight = float(np.triu(adj[:n, :n], k=1).sum())
    if total_weight == 0:
        # Graph without edges: spread nodes over a handful of colour buckets.
        return [i % FALLBACK_COMMUNITY_BUCKETS for i in range(n)]
    m2 = total_weight * 2

    degree = [float(adj[i, :n].sum()) for i in range(n)]
    community = list(range(n))
    sigma_tot = list(degree)

    for _ in range(MAX_LOUVAIN_PASSES):
        moved = False
        for i in range(n):
            current = community[i]

            # dict preserves insertion order: first-seen neighbor community wins ties
            neighbor_weights: Dict[int, float] = {}
            for j in range(n):
                if i != j and adj[i, j] > 0:
                    c = community[j]
                    neighbor_weights[c] = neighbor_weights.get(c, 0.0) + float(adj[i, j])

            k_i = degree[i]
            sigma_tot[current] -= k_i

            best_comm = current
            best_gain = 0.0
            for c, w_ic in neighbor_weights.items():
                gain = w_ic - sigma_tot[c] * k_i / m2
                if gain > best_gain:
                    best_gain = gain
                    best_comm = c

            community[i] = best_comm
            sigma_tot[best_comm] += k_i
            if best_comm != current:
                moved = True

        if not moved:
            break

    remap: Dict[int, int] = {}
    for c in community:
        if c not in remap:
            remap[c] = len(remap)
    return [remap[c] for c in community]


def betweenness_centrality(
    adj: np.ndarray,
    n: int | None = None,
    threshold: float = DEFAULT_CENTRALITY_THRESHOLD,
) -> List[float]:
    """Brandes betweenness over edges with weight >= threshold, scaled to [0, 1].

    Path lengths are hop counts; the weight only decides whether an edge
    exists. Scores are divided by the largest raw score (floored at 1e-10).
    """
    adj = np.asarray(adj, dtype=float)
    n = adj.shape[0] if n is None else n
    neighbors = [
        [w for w in range(n) if w != v and adj[v, w] >= threshold]
        for v in range(n)
    ]
    scores = [0.0] * n

    for s in range(n):
        stack: List[int] = []
        predecessors: List[List[int]] = [[] for _ in range(n)]
        sigma = [0.0] * n
        dist = [-1] * n
        delta = [0.0] * n
        sigma[s] = 1.0
        dist[s] = 0
        queue = deque([s])

        while queue:
            v = queue.popleft()
            stack.append(v)
            for w in neighbors[v]:
                if dist[w] < 0:
                    queue.append(w)
                    dist[w] = dist[v] + 1
                if dist[w] == dist[v] + 1:
                    sigma[w] += sigma[v]
                    predecessors[w].append(v)

        while stack:
            w = stack.pop()
            for v in predecessors[w]:
                delta[v] += (sigma[v] / sigma[w]) * (1 + delta[w])
            if w != s:
                scores[w] += delta[w]

    max_score = max(scores + [1e-10])
    return [score / max_score for score in scores]


def build_edge_list(
    matrix: SpilloverMatrix,
    codes: Sequence[str],
    min_weight: float = DEFAULT_MIN_WEIGHT,
) -> List[GraphEdge]:
    """Return undirected edges (i < j) whose symmetric weight is >= min_weight.

    Computed straight from the directed matrix rather than from the
    adjacency array. ``normalized_weight`` is relative to the heaviest kept edge.
    """
    n = len(codes)
    kept = []
    max_weight = 0.0
    for i in range(n):
        for j in range(i + 1, n):
            weight = _pair_weight(matrix, codes[i], codes[j])
            if weight >= min_weight:
                kept.append((i, j, weight))
                max_weight = max(max_weight, weight)

    return [
        GraphEdge(
            source=i,
            target=j,
            source_code=codes[i],
            target_code=codes[j],
            weight=weight,
            normalized_weight=weight / max_weight if max_weight > 0 else 0.0,
        )
        for i, j, weight in kept
    ]


def edge_degrees(edges: Iterable[GraphEdge], n: int) -> List[int]:
    """Count edge endpoints per node index."""
    degrees = [0] * n
    for edge in edges:
        degrees[edge.source] += 1
        degrees[edge.target] += 1
    return degrees
