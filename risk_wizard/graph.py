"""
Force-directed layout for the entity relationship graph.

Positions and velocities live in numpy arrays owned by the engine.
Each tick applies a link force, pairwise repulsion and a centering
shift scaled by a decaying ``alpha``, then integrates velocities into
positions (the same scheme as d3-force).  Nodes held by a drag gesture
are pinned: after every tick they sit exactly at the drag coordinate.

Callers read positions through ``snapshot()`` and move nodes only via
``drag_start`` / ``drag_to`` / ``drag_end``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Optional

import numpy as np
import pandas as pd

from risk_wizard.errors import LayoutClosedError
from risk_wizard.scheduler import Scheduler, TimerHandle


class NodeKind(str, Enum):
    """Role of a node in the relationship graph.  Drives styling only."""

    SUBJECT = "subject"
    FEATURE = "feature"
    EXTERNAL_ENTITY = "external_entity"
    RISK_SIGNAL = "risk_signal"

    @property
    def radius(self) -> float:
        """Drawn radius, also used for hit-testing."""
        return 35.0 if self is NodeKind.SUBJECT else 25.0


@dataclass
class GraphNode:
    """A node of the relationship graph.

    ``position`` and ``pinned`` are informational on nodes handed out by
    the engine; changing them on a copy has no effect on the layout.
    """

    id: str
    name: str
    kind: NodeKind
    position: Optional[tuple[float, float]] = None
    pinned: bool = False


@dataclass(frozen=True)
class GraphEdge:
    """Relationship between two nodes, stored source -> target."""

    source_id: str
    target_id: str


@dataclass(frozen=True)
class EdgeSegment:
    """An edge resolved to endpoint coordinates."""

    source_id: str
    target_id: str
    x1: float
    y1: float
    x2: float
    y2: float


@dataclass(frozen=True)
class LayoutSnapshot:
    """Read-only view of the layout after a tick."""

    tick: int
    alpha: float
    width: float
    height: float
    nodes: tuple[GraphNode, ...]
    edges: tuple[EdgeSegment, ...]

    def node(self, node_id: str) -> GraphNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)


@dataclass(frozen=True)
class LayoutConfig:
    """Simulation parameters.

    ``alpha_decay`` defaults to the rate that cools ``alpha`` from 1 to
    ``alpha_min`` in 300 ticks.  ``link_strength`` defaults to the
    degree-based strength ``1 / min(deg(source), deg(target))``.
    """

    width: float = 800.0
    height: float = 500.0
    link_distance: float = 120.0
    link_strength: Optional[float] = None
    charge_strength: float = -400.0
    distance_min: float = 1.0
    center_strength: float = 1.0
    alpha: float = 1.0
    alpha_min: float = 0.001
    alpha_decay: Optional[float] = None
    velocity_decay: float = 0.4
    drag_alpha_target: float = 0.3
    reheat_alpha: float = 0.3
    frame_interval_ms: float = 16.0

    @property
    def effective_alpha_decay(self) -> float:
        if self.alpha_decay is not None:
            return self.alpha_decay
        return 1.0 - self.alpha_min ** (1.0 / 300.0)


SnapshotCallback = Callable[[LayoutSnapshot], None]

_INITIAL_RADIUS = 10.0
_INITIAL_ANGLE = math.pi * (3.0 - math.sqrt(5.0))


class GraphLayoutEngine:
    """Physics layout and drag interaction for a small node-link graph.

    Args:
        nodes: Graph nodes; ids must be unique.
        edges: Edges whose endpoints must resolve to ``nodes``.
        config: Simulation parameters.
        rng: Source for the sub-micron jitter that separates coincident
            nodes.  Seeded with 0 when omitted.
    """

    def __init__(
        self,
        nodes: Iterable[GraphNode],
        edges: Iterable[GraphEdge],
        config: Optional[LayoutConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self._config = config or LayoutConfig()
        self._rng = rng if rng is not None else np.random.default_rng(0)

        self._nodes: list[GraphNode] = [replace(n) for n in nodes]
        self._edges: list[GraphEdge] = list(edges)
        self._index: dict[str, int] = {}
        for i, node in enumerate(self._nodes):
            if node.id in self._index:
                raise ValueError(f"Duplicate node id {node.id!r}")
            self._index[node.id] = i

        self._sources = np.array(
            [self._resolve(e.source_id, e) for e in self._edges], dtype=np.intp
        )
        self._targets = np.array(
            [self._resolve(e.target_id, e) for e in self._edges], dtype=np.intp
        )
        if np.any(self._sources == self._targets):
            raise ValueError("Self-loops are not supported")

        n = len(self._nodes)
        self._pos = self._initial_positions()
        self._vel = np.zeros((n, 2), dtype=np.float64)
        self._pin = np.full((n, 2), np.nan, dtype=np.float64)
        self._init_link_weights()

        self._alpha: float = self._config.alpha
        self._alpha_target: float = 0.0
        self._alpha_decay: float = self._config.effective_alpha_decay
        self._ticks: int = 0

        self._scheduler: Optional[Scheduler] = None
        self._handle: Optional[TimerHandle] = None
        self._closed: bool = False
        self._observers: list[SnapshotCallback] = []

    def __enter__(self) -> "GraphLayoutEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame loop
    # ------------------------------------------------------------------

    def start(self, scheduler: Scheduler) -> None:
        """Run ``step`` once per frame on ``scheduler`` until cooled."""
        self._ensure_open()
        self._scheduler = scheduler
        self.restart()

    def restart(self) -> None:
        """Schedule the next frame if the loop is idle."""
        if self._closed or self._scheduler is None or self._handle is not None:
            return
        self._handle = self._scheduler.call_later(
            self._config.frame_interval_ms / 1000.0, self._frame
        )

    def stop(self) -> None:
        """Cancel the pending frame; the engine stays usable."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def close(self) -> None:
        """Tear down: cancel the frame loop and drop observers.  Idempotent."""
        self.stop()
        self._closed = True
        self._scheduler = None
        self._observers.clear()

    @property
    def is_running(self) -> bool:
        """Whether a frame is scheduled."""
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _frame(self) -> None:
        self._handle = None
        if self._closed:
            return
        if self.step():
            self.restart()

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def step(self) -> bool:
        """Advance the simulation by one tick.

        Returns:
            ``False`` without changing anything when the layout has
            cooled and no node is pinned, ``True`` otherwise.
        """
        self._ensure_open()
        if not self.is_hot:
            return False

        self._alpha += (self._alpha_target - self._alpha) * self._alpha_decay
        self._apply_link_force()
        self._apply_repulsion()
        self._apply_centering()
        self._integrate()
        self._ticks += 1

        if self._observers:
            snapshot = self.snapshot()
            for callback in list(self._observers):
                callback(snapshot)
        return True

    def run(self, max_ticks: int = 1000) -> int:
        """Tick synchronously until cooled or ``max_ticks`` is reached."""
        ticks = 0
        while ticks < max_ticks and self.step():
            ticks += 1
        return ticks

    @property
    def is_hot(self) -> bool:
        """Whether another tick would move anything."""
        return (
            self._alpha >= self._config.alpha_min
            or self._alpha_target > self._config.alpha_min
            or bool(self._pinned_mask().any())
        )

    @property
    def alpha(self) -> float:
        return self._alpha

    @property
    def alpha_target(self) -> float:
        return self._alpha_target

    @property
    def ticks(self) -> int:
        return self._ticks

    def kinetic_energy(self) -> float:
        """Total ``0.5 * |v|^2`` over free nodes."""
        free = ~self._pinned_mask()
        return float(0.5 * np.sum(self._vel[free] ** 2))

    def _apply_link_force(self) -> None:
        if len(self._edges) == 0:
            return
        src, tgt = self._sources, self._targets
        delta = (self._pos[tgt] + self._vel[tgt]) - (self._pos[src] + self._vel[src])
        length = np.hypot(delta[:, 0], delta[:, 1])
        zero = length == 0
        if zero.any():
            delta[zero] = self._jiggle((int(zero.sum()), 2))
            length = np.hypot(delta[:, 0], delta[:, 1])

        scale = (length - self._config.link_distance) / length
        scale *= self._alpha * self._link_strength
        delta *= scale[:, None]

        np.add.at(self._vel, tgt, -delta * self._link_bias[:, None])
        np.add.at(self._vel, src, delta * (1.0 - self._link_bias)[:, None])

    def _apply_repulsion(self) -> None:
        n = len(self._nodes)
        if n < 2:
            return
        # diff[i, j] points from node i to node j
        diff = self._pos[None, :, :] - self._pos[:, None, :]
        dist2 = np.einsum("ijk,ijk->ij", diff, diff)
        np.fill_diagonal(dist2, np.inf)

        coincident = dist2 == 0
        if coincident.any():
            diff[coincident] = self._jiggle((int(coincident.sum()), 2))
            dist2 = np.einsum("ijk,ijk->ij", diff, diff)
            np.fill_diagonal(dist2, np.inf)

        dmin2 = self._config.distance_min ** 2
        close = dist2 < dmin2
        dist2 = np.where(close, np.sqrt(dmin2 * dist2), dist2)

        weight = self._config.charge_strength * self._alpha / dist2
        self._vel += np.einsum("ijk,ij->ik", diff, weight)

    def _apply_centering(self) -> None:
        if not self._nodes:
            return
        center = np.array(
            [self._config.width / 2.0, self._config.height / 2.0]
        )
        shift = (self._pos.mean(axis=0) - center) * self._config.center_strength
        self._pos -= shift

    def _integrate(self) -> None:
        pinned = self._pinned_mask()
        free = ~pinned
        self._vel[free] *= 1.0 - self._config.velocity_decay
        self._pos[free] += self._vel[free]
        # Drag wins over the forces applied this tick.
        self._pos[pinned] = self._pin[pinned]
        self._vel[pinned] = 0.0

    # ------------------------------------------------------------------
    # Drag interaction
    # ------------------------------------------------------------------

    def drag_start(self, node_id: str) -> None:
        """Pin ``node_id`` where it is and keep the layout warm."""
        self._ensure_open()
        i = self._lookup(node_id)
        self._pin[i] = self._pos[i]
        self._vel[i] = 0.0
        self._alpha_target = self._config.drag_alpha_target
        self.restart()

    def drag_to(self, node_id: str, x: float, y: float) -> None:
        """Move a dragged node to ``(x, y)``, pinning it if necessary."""
        self._ensure_open()
        i = self._lookup(node_id)
        if not self._pinned_mask()[i]:
            self.drag_start(node_id)
        self._pin[i] = (x, y)
        self._pos[i] = (x, y)
        self._vel[i] = 0.0
        self.restart()

    def drag_end(self, node_id: str) -> None:
        """Release ``node_id`` and reheat so its neighbours resettle."""
        self._ensure_open()
        i = self._lookup(node_id)
        self._pin[i] = np.nan
        if not self._pinned_mask().any():
            self._alpha_target = 0.0
        self._alpha = max(self._alpha, self._config.reheat_alpha)
        self.restart()

    def is_pinned(self, node_id: str) -> bool:
        return bool(self._pinned_mask()[self._lookup(node_id)])

    def node_at(
        self, x: float, y: float, radius: Optional[float] = None
    ) -> Optional[str]:
        """Id of the node nearest ``(x, y)`` whose circle contains the point.

        Each node is hit-tested against its own ``kind.radius`` unless a
        uniform ``radius`` is given.
        """
        if not self._nodes:
            return None
        if radius is None:
            radii = np.array([node.kind.radius for node in self._nodes])
        else:
            radii = np.full(len(self._nodes), float(radius))
        d = np.hypot(self._pos[:, 0] - x, self._pos[:, 1] - y)
        d = np.where(d <= radii, d, np.inf)
        i = int(np.argmin(d))
        return self._nodes[i].id if np.isfinite(d[i]) else None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Call ``callback(snapshot)`` after every tick.

        Returns:
            A function that removes the subscription.
        """
        self._ensure_open()
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def position(self, node_id: str) -> tuple[float, float]:
        x, y = self._pos[self._lookup(node_id)]
        return float(x), float(y)

    @property
    def nodes(self) -> list[GraphNode]:
        pinned = self._pinned_mask()
        return [
            replace(
                node,
                position=(float(self._pos[i, 0]), float(self._pos[i, 1])),
                pinned=bool(pinned[i]),
            )
            for i, node in enumerate(self._nodes)
        ]

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges)

    @property
    def config(self) -> LayoutConfig:
        return self._config

    def snapshot(self) -> LayoutSnapshot:
        """Copy of the current positions for rendering."""
        segments = tuple(
            EdgeSegment(
                source_id=edge.source_id,
                target_id=edge.target_id,
                x1=float(self._pos[s, 0]),
                y1=float(self._pos[s, 1]),
                x2=float(self._pos[t, 0]),
                y2=float(self._pos[t, 1]),
            )
            for edge, s, t in zip(self._edges, self._sources, self._targets)
        )
        return LayoutSnapshot(
            tick=self._ticks,
            alpha=self._alpha,
            width=self._config.width,
            height=self._config.height,
            nodes=tuple(self.nodes),
            edges=segments,
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Export node positions and velocities as a DataFrame."""
        return pd.DataFrame({
            "id": [n.id for n in self._nodes],
            "name": [n.name for n in self._nodes],
            "kind": [n.kind.value for n in self._nodes],
            "x": self._pos[:, 0],
            "y": self._pos[:, 1],
            "vx": self._vel[:, 0],
            "vy": self._vel[:, 1],
            "pinned": self._pinned_mask(),
        })

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise LayoutClosedError("Graph layout has been torn down")

    def _lookup(self, node_id: str) -> int:
        try:
            return self._index[node_id]
        except KeyError:
            raise KeyError(f"Unknown node {node_id!r}") from None

    def _resolve(self, node_id: str, edge: GraphEdge) -> int:
        if node_id not in self._index:
            raise ValueError(
                f"Edge {edge.source_id!r} -> {edge.target_id!r} references "
                f"unknown node {node_id!r}"
            )
        return self._index[node_id]

    def _pinned_mask(self) -> np.ndarray:
        return ~np.isnan(self._pin[:, 0])

    def _jiggle(self, shape: tuple[int, int]) -> np.ndarray:
        return (self._rng.random(shape) - 0.5) * 1e-6

    def _initial_positions(self) -> np.ndarray:
        """Given positions, or a phyllotaxis spiral around the centre."""
        cx, cy = self._config.width / 2.0, self._config.height / 2.0
        pos = np.zeros((len(self._nodes), 2), dtype=np.float64)
        for i, node in enumerate(self._nodes):
            if node.position is not None:
                pos[i] = node.position
                continue
            radius = _INITIAL_RADIUS * math.sqrt(0.5 + i)
            angle = i * _INITIAL_ANGLE
            pos[i] = (cx + radius * math.cos(angle), cy + radius * math.sin(angle))
        return pos

    def _init_link_weights(self) -> None:
        degree = np.bincount(
            np.concatenate([self._sources, self._targets]),
            minlength=len(self._nodes),
        ).astype(np.float64)
        src_deg = degree[self._sources]
        tgt_deg = degree[self._targets]
        self._link_bias = src_deg / (src_deg + tgt_deg)
        if self._config.link_strength is not None:
            self._link_strength = np.full(len(self._edges), self._config.link_strength)
        else:
            self._link_strength = 1.0 / np.minimum(src_deg, tgt_deg)


# ----------------------------------------------------------------------
# Case graphs
# ----------------------------------------------------------------------


def case_graph() -> tuple[list[GraphNode], list[GraphEdge]]:
    """The seed relationship graph of the subject under review."""
    nodes = [
        GraphNode("user", "Subject under review", NodeKind.SUBJECT),
        GraphNode("basic", "Basic profile", NodeKind.FEATURE),
        GraphNode("behavior", "Behaviour features", NodeKind.FEATURE),
        GraphNode("social", "Social features", NodeKind.FEATURE),
        GraphNode("contact1", "Contact A", NodeKind.EXTERNAL_ENTITY),
        GraphNode("device", "Device fingerprint", NodeKind.EXTERNAL_ENTITY),
        GraphNode("risk1", "Abnormal login", NodeKind.RISK_SIGNAL),
    ]
    edges = [
        GraphEdge("user", "basic"),
        GraphEdge("user", "behavior"),
        GraphEdge("user", "social"),
        GraphEdge("user", "contact1"),
        GraphEdge("user", "device"),
        GraphEdge("behavior", "risk1"),
    ]
    return nodes, edges


def random_case_graph(
    n_features: int = 3,
    n_entities: int = 2,
    n_signals: int = 1,
    rng: Optional[np.random.Generator] = None,
) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Build a star-shaped case graph of arbitrary size.

    The subject links to every feature and external entity; each risk
    signal hangs off a randomly chosen feature.
    """
    if n_features < 1 and n_signals > 0:
        raise ValueError("Risk signals need at least one feature node")
    rng = rng if rng is not None else np.random.default_rng(42)

    nodes = [GraphNode("subject", "Subject", NodeKind.SUBJECT)]
    edges: list[GraphEdge] = []
    features = [f"feature_{i}" for i in range(n_features)]
    for i, fid in enumerate(features):
        nodes.append(GraphNode(fid, f"Feature {i + 1}", NodeKind.FEATURE))
        edges.append(GraphEdge("subject", fid))
    for i in range(n_entities):
        eid = f"entity_{i}"
        nodes.append(GraphNode(eid, f"Entity {i + 1}", NodeKind.EXTERNAL_ENTITY))
        edges.append(GraphEdge("subject", eid))
    for i in range(n_signals):
        sid = f"signal_{i}"
        nodes.append(GraphNode(sid, f"Signal {i + 1}", NodeKind.RISK_SIGNAL))
        edges.append(GraphEdge(str(rng.choice(features)), sid))
    return nodes, edges
