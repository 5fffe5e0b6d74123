"""Frame-driven ForceAtlas2 runs.

``LayoutAnimation`` owns the node list of one visualization session and
advances it one ``fa2_iterate`` step per tick. Ticks come from an injected
scheduler (``schedule(step_fn) -> CancelHandle``), so the same animation can
be driven by a UI frame loop or, as in the scripts and tests, by
``SynchronousScheduler``.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence, Tuple

from force_atlas2 import (
    DEFAULT_CONFIG,
    DEFAULT_TOTAL_FRAMES,
    LayoutConfig,
    LayoutEdge,
    LayoutNode,
    fa2_iterate,
    node_positions,
)

DEFAULT_PUBLISH_EVERY = 3

Positions = List[Tuple[float, float]]


class CancelHandle(Protocol):
    def cancel(self) -> None:
        ...


class FrameScheduler(Protocol):
    def schedule(self, step_fn: Callable[[], None]) -> CancelHandle:
        ...


class _QueuedCall:
    def __init__(self, step_fn: Callable[[], None]):
        self.step_fn = step_fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SynchronousScheduler:
    """Queue scheduled callbacks and run them on ``run_until_idle``."""

    def __init__(self) -> None:
        self._pending: Deque[_QueuedCall] = deque()
        self.ticks = 0

    def schedule(self, step_fn: Callable[[], None]) -> _QueuedCall:
        call = _QueuedCall(step_fn)
        self._pending.append(call)
        return call

    def run_until_idle(self, max_ticks: int | None = None) -> int:
        """Drain the queue (callbacks may enqueue more); return ticks executed."""
        executed = 0
        while self._pending:
            if max_ticks is not None and executed >= max_ticks:
                break
            call = self._pending.popleft()
            if call.cancelled:
                continue
            call.step_fn()
            executed += 1
        self.ticks += executed
        return executed

    @property
    def pending(self) -> int:
        return sum(1 for call in self._pending if not call.cancelled)


class LayoutAnimation:
    def __init__(
        self,
        nodes: List[LayoutNode],
        edges: Sequence[LayoutEdge],
        scheduler: FrameScheduler,
        *,
        config: LayoutConfig | None = None,
        overrides: Dict[str, Any] | None = None,
        total_frames: int = DEFAULT_TOTAL_FRAMES,
        publish_every: int = DEFAULT_PUBLISH_EVERY,
        on_publish: Optional[Callable[[int, Positions], None]] = None,
        on_finish: Optional[Callable[[Positions], None]] = None,
        log_func: Optional[Callable[[str], None]] = None,
    ):
        if total_frames < 1:
            raise ValueError(f"total_frames must be >= 1, got {total_frames}")
        if publish_every < 1:
            raise ValueError(f"publish_every must be >= 1, got {publish_every}")
        self.nodes = nodes
        self.edges = list(edges)
        self.scheduler = scheduler
        self.config = (config or DEFAULT_CONFIG).merged(**(overrides or {}))
        self.total_frames = total_frames
        self.publish_every = publish_every
        self.on_publish = on_publish
        self.on_finish = on_finish
        self.log = log_func or (lambda message: None)
        self.frame = 0
        self.ready = False
        self._handle: CancelHandle | None = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        self.cancel()
        self.frame = 0
        self.ready = False
        self.log(
            f"Starting layout: {len(self.nodes)} nodes, {len(self.edges)} edges, "
            f"{self.total_frames} frames"
        )
        self._handle = self.scheduler.schedule(self._tick)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def restart(self, nodes: List[LayoutNode], edges: Sequence[LayoutEdge]) -> None:
        """Replace the simulated data and run from frame 0 again."""
        self.cancel()
        self.nodes = nodes
        self.edges = list(edges)
        self.start()

    def drag_node(self, index: int, x: float, y: float) -> None:
        """Out-of-band position write between two steps."""
        node = self.nodes[index]
        node.x = float(x)
        node.y = float(y)

    def positions(self) -> Positions:
        return node_positions(self.nodes)

    def _tick(self) -> None:
        self._handle = None
        if self.frame >= self.total_frames:
            self._finish()
            return

        fa2_iterate(self.nodes, self.edges, self.config, self.frame, self.total_frames)
        self.frame += 1

        if self.frame % self.publish_every == 0 or self.frame >= self.total_frames:
            if self.on_publish is not None:
                self.on_publish(self.frame, self.positions())

        if self.frame >= self.total_frames:
            self._finish()
        else:
            self._handle = self.scheduler.schedule(self._tick)

    def _finish(self) -> None:
        self.ready = True
        self.log(f"Layout finished after {self.frame} frames")
        if self.on_finish is not None:
            self.on_finish(self.positions())


def run_layout(
    nodes: List[LayoutNode],
    edges: Sequence[LayoutEdge],
    *,
    overrides: Dict[str, Any] | None = None,
    total_frames: int = DEFAULT_TOTAL_FRAMES,
    publish_every: int = DEFAULT_PUBLISH_EVERY,
    on_publish: Optional[Callable[[int, Positions], None]] = None,
    log_func: Optional[Callable[[str], None]] = None,
) -> Positions:
    """Run the whole frame budget synchronously and return final positions."""
    scheduler = SynchronousScheduler()
    animation = LayoutAnimation(
        nodes,
        edges,
        scheduler,
        overrides=overrides,
        total_frames=total_frames,
        publish_every=publish_every,
        on_publish=on_publish,
        log_func=log_func,
    )
    animation.start()
    scheduler.run_until_idle()
    return animation.positions()
