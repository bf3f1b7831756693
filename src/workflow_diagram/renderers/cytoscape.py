"""Cytoscape surface — draws a laid-out workflow with dash_cytoscape.

Node positions come from our own layout and are passed with the ``preset``
layout; the zoom/pan that fits them in view is computed here as well.
"""

from __future__ import annotations

from workflow_diagram.layout import LayoutNode, RoutedEdge
from workflow_diagram.renderers.base import ConnectHandler, NodeClickHandler, PaneClickHandler
from workflow_diagram.viewport import Viewport, fit_view

BORDER_COLOR = "#b0bec5"
EDGE_COLOR = "#90a4ae"
SELECTED_COLOR = "#1976d2"
PENDING_COLOR = "#ff9800"

STYLESHEET: list[dict] = [
    {
        "selector": "node",
        "style": {
            "shape": "round-rectangle",
            "width": "data(width)",
            "height": "data(height)",
            "background-color": "data(fill)",
            "border-width": 1,
            "border-color": BORDER_COLOR,
            "underlay-color": "#000000",
            "underlay-opacity": 0.08,
            "underlay-padding": 2,
            "label": "data(label)",
            "text-wrap": "wrap",
            "text-max-width": "200px",
            "text-valign": "center",
            "text-halign": "center",
            "font-size": 12,
        },
    },
    {
        "selector": "edge",
        "style": {
            "curve-style": "bezier",
            "width": 1.5,
            "line-color": EDGE_COLOR,
            "target-arrow-color": EDGE_COLOR,
            "target-arrow-shape": "triangle",
            "arrow-scale": 1.1,
        },
    },
    {"selector": "edge.animated", "style": {"line-style": "dashed", "line-dash-pattern": [6, 4]}},
    {"selector": "node.pending", "style": {"border-width": 3, "border-color": PENDING_COLOR}},
    {"selector": ":selected", "style": {"border-width": 2, "border-color": SELECTED_COLOR}},
]


def node_element(ln: LayoutNode) -> dict:
    # Cytoscape positions are node centres.
    centre = ln.center
    return {
        "data": {
            "id": ln.id,
            "label": ln.label or ln.id,
            "category": ln.category,
            "fill": ln.fill,
            "width": ln.width,
            "height": ln.height,
        },
        "position": {"x": centre.x, "y": centre.y},
        "classes": ln.category,
        "grabbable": True,
        "selectable": True,
    }


def edge_element(re: RoutedEdge) -> dict:
    classes = [re.kind]
    if re.animated:
        classes.append("animated")
    if re.manual:
        classes.append("manual")
    return {
        "data": {"id": re.id, "source": re.source, "target": re.target},
        "classes": " ".join(classes),
    }


class CytoscapeSurface:
    """A :class:`~workflow_diagram.renderers.base.DiagramSurface` over Cytoscape elements.

    Dash callbacks feed browser events in through :meth:`tap_node` and
    :meth:`tap_background`; the diagram controller pushes state out through
    the ``set_*`` methods.
    """

    def __init__(self, width: float = 1200, height: float = 800) -> None:
        self.width = width
        self.height = height
        self.nodes: list[LayoutNode] = []
        self.edges: list[RoutedEdge] = []
        self.viewport = Viewport()
        self.pending_source: str | None = None
        self._node_click: list[NodeClickHandler] = []
        self._connect: list[ConnectHandler] = []
        self._pane_click: list[PaneClickHandler] = []

    # ─── DiagramSurface ───────────────────────────────────────────────────────

    def set_nodes(self, nodes: list[LayoutNode]) -> None:
        self.nodes = list(nodes)

    def set_edges(self, edges: list[RoutedEdge]) -> None:
        self.edges = list(edges)

    def fit_view(self, padding: float) -> None:
        if not self.nodes:
            self.viewport = Viewport()
            return
        bounds = (
            min(n.x for n in self.nodes),
            min(n.y for n in self.nodes),
            max(n.x + n.width for n in self.nodes),
            max(n.y + n.height for n in self.nodes),
        )
        self.viewport = fit_view(bounds, self.width, self.height, padding)

    def on_node_click(self, handler: NodeClickHandler) -> None:
        self._node_click.append(handler)

    def on_connect(self, handler: ConnectHandler) -> None:
        self._connect.append(handler)

    def on_pane_click(self, handler: PaneClickHandler) -> None:
        self._pane_click.append(handler)

    # ─── Browser Events ───────────────────────────────────────────────────────

    def tap_node(self, node_id: str, connect_mode: bool = False) -> None:
        """A node was tapped. In connect mode two taps draw an edge between them."""
        if not connect_mode:
            self.pending_source = None
            for handler in self._node_click:
                handler(node_id)
            return

        if self.pending_source is None:
            self.pending_source = node_id
            return

        source, self.pending_source = self.pending_source, None
        for handler in self._connect:
            handler(source, node_id)

    def tap_background(self) -> None:
        self.pending_source = None
        for handler in self._pane_click:
            handler()

    # ─── Cytoscape Props ──────────────────────────────────────────────────────

    def elements(self) -> list[dict]:
        nodes = [node_element(n) for n in self.nodes]
        if self.pending_source is not None:
            for el in nodes:
                if el["data"]["id"] == self.pending_source:
                    el["classes"] += " pending"

        # Edge ids may repeat (duplicate dependencies); the last one wins.
        edges: dict[str, dict] = {}
        for re in self.edges:
            edges[re.id] = edge_element(re)
        return nodes + list(edges.values())

    def zoom(self) -> float:
        return self.viewport.zoom

    def pan(self) -> dict[str, float]:
        return {"x": self.viewport.x, "y": self.viewport.y}
