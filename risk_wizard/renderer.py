"""
Rendering of the relationship graph with matplotlib.

Draws edges as line segments, nodes as circles sized and coloured by
kind, and labels below each node.  A renderer can follow a running
layout engine, redrawing on every tick, and can translate mouse drags
on an interactive figure into the engine's drag calls.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import matplotlib.pyplot as plt
from matplotlib.lines import Line2D
from matplotlib.patches import Circle

from risk_wizard.graph import GraphLayoutEngine, LayoutSnapshot, NodeKind


class GraphRenderer:
    """Draws ``LayoutSnapshot`` objects onto a matplotlib figure.

    The figure uses layout coordinates directly, with the y axis pointing
    down as on screen.
    """

    NODE_COLORS = {
        NodeKind.SUBJECT: "#4dabf7",
        NodeKind.FEATURE: "#52c41a",
        NodeKind.EXTERNAL_ENTITY: "#fa8c16",
        NodeKind.RISK_SIGNAL: "#f5222d",
    }
    NODE_RADII = {kind: kind.radius for kind in NodeKind}
    LEGEND_LABELS = {
        NodeKind.SUBJECT: "Subject under review",
        NodeKind.FEATURE: "Compliance features",
        NodeKind.EXTERNAL_ENTITY: "External entities",
        NodeKind.RISK_SIGNAL: "Detected risk signals",
    }
    EDGE_COLOR = "#aaaaaa"
    LABEL_OFFSET = 45.0
    BACKGROUND = "#fafafa"

    def __init__(self, output_dir: Optional[str | Path] = None) -> None:
        """
        Args:
            output_dir: Directory for saving frames. Created if missing.
                If ``None``, frames are shown but not saved.
        """
        self._output_dir: Optional[Path] = None
        if output_dir:
            self._output_dir = Path(output_dir)
            self._output_dir.mkdir(parents=True, exist_ok=True)

        self._fig: Optional[plt.Figure] = None
        self._ax: Optional[plt.Axes] = None
        self._edge_lines: list[Line2D] = []
        self._circles: dict[str, Circle] = {}
        self._labels: dict[str, plt.Text] = {}
        self._detach: Optional[Callable[[], None]] = None
        self._connections: list[int] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @classmethod
    def radius_for(cls, kind: NodeKind) -> float:
        return cls.NODE_RADII[kind]

    @classmethod
    def color_for(cls, kind: NodeKind) -> str:
        return cls.NODE_COLORS[kind]

    def draw(self, snapshot: LayoutSnapshot) -> plt.Figure:
        """Draw ``snapshot``, reusing existing artists when possible."""
        if self._fig is None or set(self._circles) != {n.id for n in snapshot.nodes}:
            self._build(snapshot)
        else:
            self._update(snapshot)
        return self._fig

    def render(
        self,
        snapshot: LayoutSnapshot,
        *,
        filename: str = "relationship_graph.png",
        show: bool = False,
    ) -> Optional[Path]:
        """Draw a single frame and save and/or display it.

        Returns:
            Path to the saved image, or ``None`` if not saving.
        """
        fig = self.draw(snapshot)
        path = self._save_or_show(fig, filename, show=show)
        if not show:
            self.close()
        return path

    def attach(self, engine: GraphLayoutEngine) -> None:
        """Redraw after every tick of ``engine``."""
        self.detach()
        self.draw(engine.snapshot())
        self._detach = engine.subscribe(self._on_tick)

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def enable_drag(self, engine: GraphLayoutEngine) -> None:
        """Route mouse press/move/release on the figure to ``engine``."""
        if self._fig is None:
            self.draw(engine.snapshot())
        canvas = self._fig.canvas
        dragged: dict[str, Optional[str]] = {"node": None}

        def on_press(event) -> None:
            if event.inaxes is not self._ax or event.xdata is None:
                return
            node_id = engine.node_at(event.xdata, event.ydata)
            if node_id is not None:
                dragged["node"] = node_id
                engine.drag_start(node_id)

        def on_motion(event) -> None:
            if dragged["node"] is None or event.xdata is None:
                return
            engine.drag_to(dragged["node"], event.xdata, event.ydata)

        def on_release(event) -> None:
            if dragged["node"] is None:
                return
            engine.drag_end(dragged["node"])
            dragged["node"] = None

        self._connections = [
            canvas.mpl_connect("button_press_event", on_press),
            canvas.mpl_connect("motion_notify_event", on_motion),
            canvas.mpl_connect("button_release_event", on_release),
        ]

    def close(self) -> None:
        """Detach from any engine and release the figure."""
        self.detach()
        if self._fig is not None:
            for cid in self._connections:
                self._fig.canvas.mpl_disconnect(cid)
            plt.close(self._fig)
        self._connections = []
        self._fig = None
        self._ax = None
        self._edge_lines = []
        self._circles = {}
        self._labels = {}

    @property
    def figure(self) -> Optional[plt.Figure]:
        return self._fig

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_tick(self, snapshot: LayoutSnapshot) -> None:
        self.draw(snapshot)
        if self._fig is not None:
            self._fig.canvas.draw_idle()

    def _build(self, snapshot: LayoutSnapshot) -> None:
        if self._fig is not None:
            plt.close(self._fig)
        fig, ax = plt.subplots(figsize=(snapshot.width / 100.0, snapshot.height / 100.0))
        fig.patch.set_facecolor(self.BACKGROUND)
        ax.set_facecolor(self.BACKGROUND)
        ax.set_xlim(0, snapshot.width)
        ax.set_ylim(snapshot.height, 0)
        ax.set_aspect("equal")
        ax.axis("off")

        self._edge_lines = []
        for seg in snapshot.edges:
            (line,) = ax.plot(
                [seg.x1, seg.x2],
                [seg.y1, seg.y2],
                color=self.EDGE_COLOR,
                alpha=0.6,
                linewidth=2,
                zorder=1,
            )
            self._edge_lines.append(line)

        self._circles = {}
        self._labels = {}
        for node in snapshot.nodes:
            x, y = node.position
            circle = Circle(
                (x, y),
                radius=self.NODE_RADII[node.kind],
                facecolor=self.NODE_COLORS[node.kind],
                edgecolor="white",
                linewidth=2,
                zorder=2,
            )
            ax.add_patch(circle)
            self._circles[node.id] = circle
            self._labels[node.id] = ax.text(
                x,
                y + self.LABEL_OFFSET,
                node.name,
                ha="center",
                va="center",
                fontsize=8,
                color="#333333",
                zorder=3,
            )

        handles = [
            Line2D(
                [0], [0],
                marker="o",
                linestyle="",
                markersize=9,
                markerfacecolor=color,
                markeredgecolor="white",
                label=self.LEGEND_LABELS[kind],
            )
            for kind, color in self.NODE_COLORS.items()
        ]
        ax.legend(handles=handles, loc="lower left", fontsize=7, frameon=False)
        ax.set_title(f"Relationship graph (tick {snapshot.tick})", fontsize=10)

        self._fig, self._ax = fig, ax

    def _update(self, snapshot: LayoutSnapshot) -> None:
        for line, seg in zip(self._edge_lines, snapshot.edges):
            line.set_data([seg.x1, seg.x2], [seg.y1, seg.y2])
        for node in snapshot.nodes:
            x, y = node.position
            self._circles[node.id].center = (x, y)
            self._labels[node.id].set_position((x, y + self.LABEL_OFFSET))
        self._ax.set_title(f"Relationship graph (tick {snapshot.tick})", fontsize=10)

    def _save_or_show(
        self,
        fig: plt.Figure,
        filename: str,
        *,
        show: bool,
    ) -> Optional[Path]:
        """Save figure to disk and/or display it."""
        saved_path: Optional[Path] = None
        if self._output_dir:
            saved_path = self._output_dir / filename
            fig.savefig(saved_path, bbox_inches="tight", dpi=150)

        if show:
            plt.show()

        return saved_path
