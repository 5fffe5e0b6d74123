"""ForceAtlas2 layout step with LinLog attraction.

Tuned for a couple of dozen nodes on a 1000×600 viewBox: all-pairs
repulsion, edge attraction, gravity toward the center, adaptive per-node
speed, then overlap and soft-bounds correction. ``fa2_iterate`` advances the
simulation by exactly one frame and mutates the node list in place.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, List, Sequence, Tuple

from graph_algorithms import GraphEdge, InvalidInput

VIEWBOX_WIDTH = 1000.0
VIEWBOX_HEIGHT = 600.0
CENTER = (VIEWBOX_WIDTH / 2, VIEWBOX_HEIGHT / 2)
MIN_DISTANCE = 0.01
MAX_SPEED = 10.0
MAX_DISPLACEMENT = 10.0
MIN_SEPARATION = 65.0
BOUNDS_MARGIN = 60.0
BOUNDS_FORCE = 0.6
DEFAULT_TOTAL_FRAMES = 300


@dataclass(frozen=True)
class LayoutConfig:
    scaling_ratio: float = 10.0
    gravity: float = 1.0
    edge_weight_influence: float = 1.0
    lin_log_mode: bool = True
    strong_gravity: bool = False
    outbound_attraction_distribution: bool = False
    slowing_ratio: float = 2.0
    jitter_tolerance: float = 1.0

    def merged(self, **overrides: Any) -> "LayoutConfig":
        """Return a copy with the given fields replaced (unknown keys raise TypeError)."""
        return replace(self, **overrides)


DEFAULT_CONFIG = LayoutConfig()


@dataclass
class LayoutNode:
    x: float
    y: float
    mass: float
    dx: float = 0.0
    dy: float = 0.0
    old_dx: float = 0.0
    old_dy: float = 0.0
    convergence: float = 1.0


@dataclass(frozen=True)
class LayoutEdge:
    source: int
    target: int
    weight: float


def create_layout_nodes(
    positions: Sequence[Tuple[float, float]],
    degrees: Sequence[int],
) -> List[LayoutNode]:
    """Build fresh layout nodes; mass is ``degree + 1``."""
    if len(positions) != len(degrees):
        raise InvalidInput(
            f"Got {len(positions)} positions but {len(degrees)} degrees"
        )
    return [
        LayoutNode(x=float(x), y=float(y), mass=float((degree or 0) + 1))
        for (x, y), degree in zip(positions, degrees)
    ]


def layout_edges(edges: Sequence[GraphEdge]) -> List[LayoutEdge]:
    """Project graph edges onto ``{source, target, normalized weight}`` triples."""
    return [LayoutEdge(e.source, e.target, e.normalized_weight) for e in edges]


def phase_multiplier(frame: int, total_frames: int) -> float:
    """Force multiplier for the separation / settling / fine-tuning phases."""
    progress = frame / total_frames
    if progress < 0.2:
        return 2.0
    if progress < 0.67:
        return 1.0
    return 0.3 + 0.7 * (1 - (progress - 0.67) / 0.33)


def _distance(dx: float, dy: float) -> float:
    return max(math.sqrt(dx * dx + dy * dy), MIN_DISTANCE)


def _apply_repulsion(nodes: List[LayoutNode], scaling_ratio: float) -> None:
    n = len(nodes)
    for i in range(n):
        a = nodes[i]
        for j in range(i + 1, n):
            b = nodes[j]
            dx = b.x - a.x
            dy = b.y - a.y
            dist = _distance(dx, dy)
            force = scaling_ratio * a.mass * b.mass / dist
            fx = (dx / dist) * force
            fy = (dy / dist) * force
            a.dx -= fx
            a.dy -= fy
            b.dx += fx
            b.dy += fy


def _apply_attraction(nodes: List[LayoutNode], edges: Sequence[LayoutEdge], cfg: LayoutConfig) -> None:
    for edge in edges:
        s = nodes[edge.source]
        t = nodes[edge.target]
        dx = t.x - s.x
        dy = t.y - s.y
        dist = _distance(dx, dy)
        weight_factor = math.pow(edge.weight, cfg.edge_weight_influence)
        if cfg.lin_log_mode:
            force = math.log(1 + dist) * weight_factor
        else:
            force = dist * weight_factor
        if cfg.outbound_attraction_distribution:
            force /= s.mass
        fx = (dx / dist) * force
        fy = (dy / dist) * force
        s.dx += fx
        s.dy += fy
        t.dx -= fx
        t.dy -= fy


def _apply_gravity(nodes: List[LayoutNode], cfg: LayoutConfig, phase: float) -> None:
    cx, cy = CENTER
    for node in nodes:
        dx = node.x - cx
        dy = node.y - cy
        dist = _distance(dx, dy)
        if cfg.strong_gravity:
            grav = cfg.gravity * node.mass
        else:
            grav = cfg.gravity * node.mass / dist
        node.dx -= (dx / dist) * grav * phase
        node.dy -= (dy / dist) * grav * phase


def _adaptive_speed(nodes: List[LayoutNode], jitter_tolerance: float) -> float:
    """Update per-node convergence and return the capped global speed."""
    jt2 = jitter_tolerance * jitter_tolerance
    total_swing = 0.0
    total_traction = 0.0
    for node in nodes:
        swinging = math.hypot(node.dx - node.old_dx, node.dy - node.old_dy)
        traction = math.hypot(node.dx + node.old_dx, node.dy + node.old_dy) / 2
        total_swing += node.mass * swinging
        total_traction += node.mass * traction
        node.convergence = min(1.0, jt2 * traction / (swinging + 0.01))
    global_speed = jt2 * total_traction / (total_swing + 0.01)
    return min(global_speed, MAX_SPEED)


def _apply_displacement(nodes: List[LayoutNode], speed: float, slowing_ratio: float) -> None:
    for node in nodes:
        displacement = math.hypot(node.dx, node.dy)
        if displacement <= 0:
            continue
        node_speed = speed * node.convergence / slowing_ratio
        factor = min(node_speed * displacement, MAX_DISPLACEMENT) / displacement
        node.x += node.dx * factor
        node.y += node.dy * factor


def _separate_overlaps(nodes: List[LayoutNode]) -> None:
    n = len(nodes)
    for i in range(n):
        a = nodes[i]
        for j in range(i + 1, n):
            b = nodes[j]
            dx = b.x - a.x
            dy = b.y - a.y
            dist = math.sqrt(dx * dx + dy * dy)
            # coincident nodes have no direction to push along
            if MIN_DISTANCE < dist < MIN_SEPARATION:
                push = (MIN_SEPARATION - dist) * 0.5
                ux = (dx / dist) * push
                uy = (dy / dist) * push
                a.x -= ux
                a.y -= uy
                b.x += ux
                b.y += uy


def _apply_soft_bounds(nodes: List[LayoutNode]) -> None:
    max_x = VIEWBOX_WIDTH - BOUNDS_MARGIN
    max_y = VIEWBOX_HEIGHT - BOUNDS_MARGIN
    for node in nodes:
        if node.x < BOUNDS_MARGIN:
            node.x += (BOUNDS_MARGIN - node.x) * BOUNDS_FORCE
        if node.x > max_x:
            node.x -= (node.x - max_x) * BOUNDS_FORCE
        if node.y < BOUNDS_MARGIN:
            node.y += (BOUNDS_MARGIN - node.y) * BOUNDS_FORCE
        if node.y > max_y:
            node.y -= (node.y - max_y) * BOUNDS_FORCE


def fa2_iterate(
    nodes: List[LayoutNode],
    edges: Sequence[LayoutEdge],
    config: LayoutConfig | None = None,
    frame: int = 0,
    total_frames: int = DEFAULT_TOTAL_FRAMES,
) -> None:
    """Run one ForceAtlas2 iteration, mutating ``nodes`` in place."""
    cfg = config or DEFAULT_CONFIG
    phase = phase_multiplier(frame, total_frames)

    for node in nodes:
        node.old_dx = node.dx
        node.old_dy = node.dy
        node.dx = 0.0
        node.dy = 0.0

    _apply_repulsion(nodes, cfg.scaling_ratio * phase)
    _apply_attraction(nodes, edges, cfg)
    _apply_gravity(nodes, cfg, phase)

    speed = _adaptive_speed(nodes, cfg.jitter_tolerance)
    _apply_displacement(nodes, speed, cfg.slowing_ratio)

    _separate_overlaps(nodes)
    _apply_soft_bounds(nodes)


def node_positions(nodes: Sequence[LayoutNode]) -> List[Tuple[float, float]]:
    return [(node.x, node.y) for node in nodes]
