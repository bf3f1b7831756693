"""Viewport transform used to fit a laid-out diagram into a visible area."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_FIT_PADDING = 0.2
MIN_ZOOM = 0.5
MAX_ZOOM = 2.0


@dataclass(frozen=True)
class Viewport:
    """Screen transform: screen = (world * zoom) + (x, y)."""

    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0


def fit_view(
    bounds: tuple[float, float, float, float],
    width: float,
    height: float,
    padding: float = DEFAULT_FIT_PADDING,
    min_zoom: float = MIN_ZOOM,
    max_zoom: float = MAX_ZOOM,
) -> Viewport:
    """Scale and translate so ``bounds`` (min_x, min_y, max_x, max_y) is centred
    in a ``width`` × ``height`` area with ``padding`` (a fraction of the
    content size) left around it.
    """
    min_x, min_y, max_x, max_y = bounds
    bw = max_x - min_x
    bh = max_y - min_y

    zooms = []
    if bw > 0:
        zooms.append(width / (bw * (1 + padding)))
    if bh > 0:
        zooms.append(height / (bh * (1 + padding)))
    zoom = min(zooms) if zooms else 1.0
    zoom = max(min_zoom, min(max_zoom, zoom))

    cx = min_x + bw / 2
    cy = min_y + bh / 2
    return Viewport(x=width / 2 - cx * zoom, y=height / 2 - cy * zoom, zoom=zoom)
