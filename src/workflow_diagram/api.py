"""High-level entry points: steps in, laid-out diagram out."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from workflow_diagram.client import DEFAULT_TIMEOUT, request_steps
from workflow_diagram.graph import build_graph_model
from workflow_diagram.layout import Direction, LayoutResult, layout_graph
from workflow_diagram.renderers.svg import render_svg as _render_layout_svg


def layout_steps(steps: Sequence[Mapping[str, Any]], direction: Direction | str = Direction.LR) -> LayoutResult:
    """Build and lay out the graph for ``steps``."""
    return layout_graph(build_graph_model(steps), direction)


def render_svg(steps: Sequence[Mapping[str, Any]], direction: Direction | str = Direction.LR) -> str:
    """Render ``steps`` to a static SVG snapshot."""
    return _render_layout_svg(layout_steps(steps, direction))


def load_layout(url: str, direction: Direction | str = Direction.LR, timeout: float = DEFAULT_TIMEOUT) -> LayoutResult:
    """Fetch steps from the workflow API and lay them out.

    Raises:
        FetchTimeout, FetchError, MalformedInput: the fetch failed.
        LayoutError: layout failed.
    """
    return layout_steps(request_steps(url, timeout=timeout), direction)
