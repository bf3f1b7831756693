"""Renderer and interactive surface protocols."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from workflow_diagram.layout import LayoutNode, LayoutResult, RoutedEdge

NodeClickHandler = Callable[[str], None]
ConnectHandler = Callable[[str, str], None]
PaneClickHandler = Callable[[], None]


class Renderer(Protocol):
    """Protocol that all static renderers must implement."""

    def render(self, result: LayoutResult) -> str:
        """Render a laid-out graph to an output string."""
        ...


class DiagramSurface(Protocol):
    """An interactive pannable/zoomable canvas the diagram draws on.

    The surface owns drawing and input; the diagram controller owns state.
    Handlers registered through the ``on_*`` methods are called with node ids.
    """

    def set_nodes(self, nodes: list[LayoutNode]) -> None: ...

    def set_edges(self, edges: list[RoutedEdge]) -> None: ...

    def fit_view(self, padding: float) -> None: ...

    def on_node_click(self, handler: NodeClickHandler) -> None: ...

    def on_connect(self, handler: ConnectHandler) -> None: ...

    def on_pane_click(self, handler: PaneClickHandler) -> None: ...
