"""SVG renderer — renders a laid-out workflow to a static SVG string."""

from __future__ import annotations

from workflow_diagram.layout import Direction, LayoutNode, LayoutResult, Point, RoutedEdge
from workflow_diagram.renderers.base import Renderer

# ─── Constants ──────────────────────────────────────────────────────────────

FONT_SIZE = 14
ID_FONT_SIZE = 11
FONT_FAMILY = "sans-serif"
PADDING = 40  # canvas padding in pixels
CORNER_RADIUS = 8
BORDER = 'stroke="#b0bec5" stroke-width="1"'
EDGE_STROKE = 'fill="none" stroke="#90a4ae" stroke-width="1.5"'
DASH = 'stroke-dasharray="6 4"'


def _escape(s: str) -> str:
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def _font(size: int = FONT_SIZE) -> str:
    return f'font-family="{FONT_FAMILY}" font-size="{size}"'


def _num(v: float) -> str:
    """Compact number formatting: integers without a trailing ``.0``."""
    return str(int(v)) if float(v).is_integer() else f"{v:.1f}"


# ─── Shape Rendering ────────────────────────────────────────────────────────


def _render_node(ln: LayoutNode, ox: float, oy: float) -> str:
    x, y = ln.x + ox, ln.y + oy
    cx, cy = x + ln.width / 2, y + ln.height / 2
    lines = ln.label.split("\n") if ln.label else [ln.id]

    rect = (
        f'<rect x="{_num(x)}" y="{_num(y)}" width="{ln.width}" height="{ln.height}" '
        f'rx="{CORNER_RADIUS}" fill="{_escape(ln.fill)}" {BORDER} filter="url(#shadow)"/>'
    )
    if len(lines) == 1:
        text = (
            f'<text x="{_num(cx)}" y="{_num(cy)}" dominant-baseline="central" text-anchor="middle" '
            f'{_font()} font-weight="600">{_escape(lines[0])}</text>'
        )
    else:
        title, sub = lines[0], " ".join(lines[1:])
        text = (
            f'<text text-anchor="middle" {_font()}>'
            f'<tspan x="{_num(cx)}" y="{_num(cy - 2)}" font-weight="600">{_escape(title)}</tspan>'
            f'<tspan x="{_num(cx)}" y="{_num(cy + ID_FONT_SIZE + 2)}" font-size="{ID_FONT_SIZE}" '
            f'opacity="0.7">{_escape(sub)}</tspan></text>'
        )
    return f'<g class="node" data-id="{_escape(ln.id)}">\n{rect}\n{text}\n</g>'


# ─── Edge Rendering ─────────────────────────────────────────────────────────


def curve_path(points: list[Point], direction: Direction, ox: float = 0, oy: float = 0) -> str:
    """SVG path data for a smooth curve through ``points``.

    Each segment is a cubic Bézier whose control points lie on the primary
    axis, so the curve leaves and enters every point along the flow.
    """
    if len(points) < 2:
        return ""
    first = points[0]
    parts = [f"M {_num(first.x + ox)} {_num(first.y + oy)}"]
    for p, q in zip(points, points[1:]):
        if direction.is_horizontal:
            mid = (q.x - p.x) / 2
            c1 = (p.x + mid, p.y)
            c2 = (q.x - mid, q.y)
        else:
            mid = (q.y - p.y) / 2
            c1 = (p.x, p.y + mid)
            c2 = (q.x, q.y - mid)
        parts.append(
            f"C {_num(c1[0] + ox)} {_num(c1[1] + oy)}, {_num(c2[0] + ox)} {_num(c2[1] + oy)}, "
            f"{_num(q.x + ox)} {_num(q.y + oy)}"
        )
    return " ".join(parts)


def _render_edge(re: RoutedEdge, direction: Direction, ox: float, oy: float) -> str:
    d = curve_path(re.waypoints, direction, ox, oy)
    if not d:
        return ""
    dash = ""
    motion = ""
    if re.animated:
        dash = f" {DASH}"
        motion = '<animate attributeName="stroke-dashoffset" from="20" to="0" dur="1s" repeatCount="indefinite"/>'
    return (
        f'<path class="edge" data-id="{_escape(re.id)}" d="{d}" {EDGE_STROKE}{dash} '
        f'marker-end="url(#arrowhead)">{motion}</path>'
    )


# ─── Public Renderer ────────────────────────────────────────────────────────


class SvgRenderer:
    """SVG renderer — consumes a LayoutResult, produces an SVG string.

    Orphan placeholder nodes and edges without waypoints are not drawn.
    """

    def render(self, result: LayoutResult) -> str:
        nodes = [n for n in result.nodes if n.known]
        if not nodes:
            return ""
        known = {n.id for n in nodes}
        edges = [e for e in result.edges if e.source in known and e.target in known and len(e.waypoints) >= 2]

        min_x, min_y, max_x, max_y = result.bounds()
        ox, oy = PADDING - min_x, PADDING - min_y
        svg_w = int(max_x - min_x) + PADDING * 2
        svg_h = int(max_y - min_y) + PADDING * 2

        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{svg_w}" height="{svg_h}" viewBox="0 0 {svg_w} {svg_h}">',
            "<defs>",
            '  <marker id="arrowhead" markerWidth="10" markerHeight="7" refX="10" refY="3.5" orient="auto">',
            '    <polygon points="0 0, 10 3.5, 0 7" fill="#90a4ae"/>',
            "  </marker>",
            '  <filter id="shadow" x="-10%" y="-10%" width="120%" height="130%">',
            '    <feDropShadow dx="0" dy="2" stdDeviation="2" flood-opacity="0.08"/>',
            "  </filter>",
            '  <pattern id="grid" width="24" height="24" patternUnits="userSpaceOnUse">',
            '    <circle cx="1" cy="1" r="1" fill="#e0e0e0"/>',
            "  </pattern>",
            "</defs>",
            f'<rect width="{svg_w}" height="{svg_h}" fill="white"/>',
            f'<rect width="{svg_w}" height="{svg_h}" fill="url(#grid)"/>',
        ]

        # Edges (behind nodes), in model order.
        for re in edges:
            parts.append(_render_edge(re, result.direction, ox, oy))

        for ln in nodes:
            parts.append(_render_node(ln, ox, oy))

        parts.append("</svg>")
        return "\n".join(parts)


def render_svg(result: LayoutResult) -> str:
    renderer: Renderer = SvgRenderer()
    return renderer.render(result)
