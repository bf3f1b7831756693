"""Diagram controller — load state machine, selection and manual connections.

State machine::

    LOADING ──ok──────────▶ READY   (nodes/edges live, interaction accepted)
            └─any failure─▶ FAILED  (terminal for this fetch, shows the error)

Each :class:`WorkflowDiagram` owns its own state; nothing is module-global.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from workflow_diagram.client import FetchResult
from workflow_diagram.errors import DiagramError
from workflow_diagram.graph import Edge, GraphModel, build_graph_model, edge_id, find_orphan_edges
from workflow_diagram.layout import Direction, LayoutResult, RoutedEdge, layout_graph
from workflow_diagram.renderers.base import DiagramSurface
from workflow_diagram.viewport import DEFAULT_FIT_PADDING

logger = logging.getLogger(__name__)

Fetcher = Callable[[], FetchResult]


class Status(Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class DiagramState:
    status: Status = Status.LOADING
    model: GraphModel = field(default_factory=GraphModel)
    layout: LayoutResult | None = None
    error: str | None = None
    selection: Mapping[str, Any] | None = None


def apply_fetch_result(
    state: DiagramState,
    result: FetchResult,
    direction: Direction = Direction.LR,
) -> DiagramState:
    """Transition out of LOADING. Builder and layout failures also end in FAILED."""
    if state.status is not Status.LOADING:
        return state

    if not result.ok:
        return replace(state, status=Status.FAILED, error=result.message)

    try:
        model = build_graph_model(result.steps)
        orphans = find_orphan_edges(model)
        if orphans:
            logger.warning(
                "Dropping %d edge(s) that reference unknown steps: %s",
                len(orphans),
                ", ".join(e.id for e in orphans),
            )
        layout = layout_graph(model, direction)
    except DiagramError as exc:
        logger.error("Failed to build workflow diagram: %s", exc)
        return replace(state, status=Status.FAILED, error=str(exc))

    return replace(state, status=Status.READY, model=model, layout=layout, error=None)


def drawable(layout: LayoutResult) -> LayoutResult:
    """Copy of ``layout`` without orphan placeholders and the edges touching them."""
    known = {n.id for n in layout.nodes if n.known}
    return LayoutResult(
        nodes=[n for n in layout.nodes if n.known],
        edges=[e for e in layout.edges if e.source in known and e.target in known],
        direction=layout.direction,
        reversed_edges=layout.reversed_edges,
    )


class WorkflowDiagram:
    """Drives one diagram surface from a single fetch of the workflow."""

    def __init__(
        self,
        surface: DiagramSurface,
        fetcher: Fetcher,
        direction: Direction | str = Direction.LR,
        fit_padding: float = DEFAULT_FIT_PADDING,
    ) -> None:
        self.surface = surface
        self.fetcher = fetcher
        self.direction = Direction.parse(direction)
        self.fit_padding = fit_padding
        self.state = DiagramState()
        self._mounted = False

        surface.on_node_click(self.select_node)
        surface.on_pane_click(self.clear_selection)
        surface.on_connect(self.connect)

    # ─── Loading ──────────────────────────────────────────────────────────────

    @property
    def status(self) -> Status:
        return self.state.status

    @property
    def selection(self) -> Mapping[str, Any] | None:
        return self.state.selection

    def mount(self) -> DiagramState:
        """Fetch once and draw. Later calls return the current state unchanged."""
        if self._mounted:
            return self.state
        self._mounted = True

        self.state = apply_fetch_result(self.state, self.fetcher(), self.direction)
        if self.state.layout is not None:
            self._draw(self.state.layout, fit=True)
        return self.state

    def _draw(self, layout: LayoutResult, fit: bool = False) -> None:
        visible = drawable(layout)
        self.surface.set_nodes(visible.nodes)
        self.surface.set_edges(visible.edges)
        if fit:
            self.surface.fit_view(self.fit_padding)

    # ─── Selection ────────────────────────────────────────────────────────────

    def _set_selection(self, record: Mapping[str, Any] | None) -> None:
        self.state = replace(self.state, selection=record)

    def resolve_record(self, node_id: str) -> Mapping[str, Any]:
        """The node's step record, or a minimal ``{id, label}`` stand-in."""
        node = self.state.model.find_node(node_id)
        if node is not None:
            return node.record
        label = node_id
        if self.state.layout is not None:
            ln = self.state.layout.node(node_id)
            if ln is not None and ln.label:
                label = ln.label
        return {"id": node_id, "label": label}

    def select_node(self, node_id: str) -> None:
        if self.state.status is not Status.READY:
            return
        self._set_selection(self.resolve_record(node_id))

    def clear_selection(self) -> None:
        if self.state.selection is not None:
            self._set_selection(None)

    # ─── Manual Connections ───────────────────────────────────────────────────

    def connect(self, source: str, target: str) -> Edge | None:
        """Append a user-drawn edge. Returns ``None`` when the connection is ignored."""
        layout = self.state.layout
        if self.state.status is not Status.READY or layout is None:
            return None

        placed = {n.id: n for n in layout.nodes if n.known}
        src, tgt = placed.get(source), placed.get(target)
        if src is None or tgt is None or source == target:
            logger.debug("Ignoring connection %s → %s", source, target)
            return None
        if any(e.source == source and e.target == target for e in self.state.model.edges):
            return None

        edge = Edge(id=edge_id(source, target), source=source, target=target, manual=True)
        # Nodes keep their positions; only the new connector gets waypoints.
        routed = RoutedEdge(
            id=edge.id,
            source=source,
            target=target,
            waypoints=[src.source_anchor(layout.direction), tgt.target_anchor(layout.direction)],
            kind=edge.kind,
            animated=edge.animated,
            manual=True,
        )
        model = GraphModel(nodes=self.state.model.nodes, edges=[*self.state.model.edges, edge])
        layout = replace(layout, edges=[*layout.edges, routed])
        self.state = replace(self.state, model=model, layout=layout)
        self._draw(layout)
        return edge
