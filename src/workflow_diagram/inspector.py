"""Inspector side panel showing the full record of the selected node."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from dash import html

logger = logging.getLogger(__name__)

PANEL_WIDTH = 320

# Fields shown in the panel header rather than in the generic listing.
SURFACED_FIELDS = ("id", "title", "name", "dependencies")


class Clipboard(Protocol):
    def write_text(self, text: str) -> None: ...


@dataclass
class InspectorPanel:
    """What the panel shows for one selected record.

    ``dependencies`` is ``None`` when the record has no such field (section
    omitted) and an empty list when the field is present but empty.
    """

    title: str
    node_id: str
    dependencies: list[str] | None = None
    fields: list[tuple[str, str]] = field(default_factory=list)
    copy_text: str = ""


def panel_title(record: Mapping[str, Any]) -> str:
    for key in ("title", "name"):
        value = record.get(key)
        if value:
            return str(value)
    return f"Node {record.get('id')}"


def format_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, default=str)
    return str(value)


def copy_text(record: Mapping[str, Any]) -> str:
    """The full record as indented JSON."""
    return json.dumps(dict(record), indent=2, default=str)


def build_panel(record: Mapping[str, Any] | None) -> InspectorPanel | None:
    if record is None:
        return None

    dependencies = None
    if "dependencies" in record:
        dependencies = [str(d) for d in record.get("dependencies") or []]

    return InspectorPanel(
        title=panel_title(record),
        node_id=str(record.get("id", "")),
        dependencies=dependencies,
        fields=[(key, format_value(value)) for key, value in record.items() if key not in SURFACED_FIELDS],
        copy_text=copy_text(record),
    )


def copy_to_clipboard(record: Mapping[str, Any] | None, clipboard: Clipboard) -> bool:
    """Write ``record`` to the clipboard. Failures are dropped without notice."""
    if record is None:
        return False
    try:
        clipboard.write_text(copy_text(record))
    except Exception as exc:  # noqa: BLE001 - clipboard failures are never shown to the user
        logger.debug("Clipboard write failed: %s", exc)
        return False
    return True


# ─── Dash Components ──────────────────────────────────────────────────────────

panel_style = {
    "position": "absolute",
    "top": "0",
    "right": "0",
    "width": f"{PANEL_WIDTH}px",
    "height": "100%",
    "overflowY": "auto",
    "padding": "16px",
    "backgroundColor": "#FFFFFF",
    "borderLeft": "1px solid #E0E0E0",
    "boxShadow": "-2px 0 8px rgba(0,0,0,0.08)",
    "fontFamily": "Roboto, sans-serif",
    "zIndex": 10,
}

chip_style = {
    "display": "inline-block",
    "padding": "2px 8px",
    "margin": "0 6px 6px 0",
    "borderRadius": "12px",
    "backgroundColor": "#eceff1",
    "fontSize": "12px",
}

value_style = {"whiteSpace": "pre-wrap", "fontFamily": "monospace", "fontSize": "12px", "margin": "0 0 8px 0"}


def _dependency_section(dependencies: list[str]) -> html.Div:
    if dependencies:
        chips = [html.Span(dep, className="dependency-chip", style=chip_style) for dep in dependencies]
    else:
        chips = [html.Span("None", style={"opacity": 0.6})]
    return html.Div([html.Strong("Dependencies"), html.Div(chips, style={"marginTop": "6px"})], id="inspector-dependencies")


def render_panel(panel: InspectorPanel | None) -> list:
    """Body of the inspector panel; empty when nothing is selected.

    The close and copy controls live in the app layout so their callbacks
    always have a target.
    """
    if panel is None:
        return []

    body: list = [
        html.H4(panel.title, id="inspector-title", style={"margin": "0 0 4px 0"}),
        html.P(f"ID: {panel.node_id}", style={"opacity": 0.7, "marginTop": 0}),
    ]
    if panel.dependencies is not None:
        body.append(_dependency_section(panel.dependencies))

    if panel.fields:
        rows = []
        for key, text in panel.fields:
            rows.append(html.Dt(key, style={"fontWeight": "bold"}))
            rows.append(html.Dd(html.Pre(text, style=value_style), style={"marginLeft": 0}))
        body.append(html.Dl(rows, id="inspector-fields", style={"marginTop": "12px"}))

    return body


def panel_container_style(visible: bool) -> dict:
    return {**panel_style, "display": "block" if visible else "none"}
