"""Dash application serving the interactive workflow diagram."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from functools import partial

import dash
import dash_cytoscape as cyto
from dash import Input, Output, State, ctx, dcc, html
from dash.exceptions import PreventUpdate

from workflow_diagram.client import fetch_steps
from workflow_diagram.config import DiagramConfig
from workflow_diagram.diagram import Fetcher, Status, WorkflowDiagram
from workflow_diagram.inspector import build_panel, panel_container_style, render_panel
from workflow_diagram.renderers.cytoscape import STYLESHEET, CytoscapeSurface
from workflow_diagram.viewport import MAX_ZOOM, MIN_ZOOM

logger = logging.getLogger(__name__)

ZOOM_STEP = 1.2
MAX_SESSIONS = 64

# Fired once the page has mounted, carrying the canvas size measured in the browser.
MOUNT = "canvas-size.data"

MEASURE_CANVAS = """
function(n_intervals) {
    const el = document.getElementById("workflow");
    return el ? {width: el.clientWidth, height: el.clientHeight} : {};
}
"""

button_style = {
    "backgroundColor": "#FFFFFF",
    "border": "1px solid #cfd8dc",
    "borderRadius": "4px",
    "padding": "4px 10px",
    "marginRight": "6px",
    "cursor": "pointer",
}

toolbar_style = {
    "position": "absolute",
    "left": "16px",
    "bottom": "16px",
    "zIndex": 11,
    "display": "flex",
    "alignItems": "center",
    "fontFamily": "Roboto, sans-serif",
}

canvas_style = {
    "width": "100%",
    "height": "100vh",
    "backgroundColor": "#fafafa",
    "backgroundImage": "radial-gradient(#e0e0e0 1px, transparent 1px)",
    "backgroundSize": "24px 24px",
}


def status_view(diagram: WorkflowDiagram) -> tuple[str, dict]:
    if diagram.status is Status.LOADING:
        return "Loading workflow...", {"padding": "16px"}
    if diagram.status is Status.FAILED:
        return f"Error: {diagram.state.error}", {"padding": "16px", "color": "red"}
    return "", {"display": "none"}


def build_layout() -> html.Div:
    return html.Div(
        [
            # Fires exactly once per page load, after the page has mounted.
            dcc.Interval(id="mount", interval=1, max_intervals=1),
            dcc.Store(id="canvas-size"),
            dcc.Store(id="session"),
            html.Div("Loading workflow...", id="status", style={"padding": "16px"}),
            cyto.Cytoscape(
                id="workflow",
                elements=[],
                layout={"name": "preset", "fit": False},
                stylesheet=STYLESHEET,
                style=canvas_style,
                minZoom=MIN_ZOOM,
                maxZoom=MAX_ZOOM,
                zoom=1.0,
                pan={"x": 0, "y": 0},
                userZoomingEnabled=True,
                userPanningEnabled=True,
                autoungrabify=False,
                autounselectify=False,
            ),
            html.Div(
                [
                    html.Button("+", id="zoom-in", n_clicks=0, style=button_style, title="Zoom in"),
                    html.Button("−", id="zoom-out", n_clicks=0, style=button_style, title="Zoom out"),
                    html.Button("Fit", id="zoom-fit", n_clicks=0, style=button_style, title="Fit view"),
                    dcc.Checklist(id="connect-mode", options=[{"label": " Connect", "value": "on"}], value=[]),
                ],
                style=toolbar_style,
            ),
            html.Div(
                [
                    html.Div(
                        [
                            dcc.Clipboard(id="inspector-copy", title="Copy record", content=""),
                            html.Button("×", id="inspector-close", n_clicks=0, title="Close", style=button_style),
                        ],
                        style={"display": "flex", "justifyContent": "space-between", "marginBottom": "8px"},
                    ),
                    html.Div(id="inspector-body"),
                ],
                id="inspector",
                style=panel_container_style(False),
            ),
        ],
        style={"position": "relative", "width": "100%", "height": "100vh", "overflow": "hidden"},
    )


def apply_event(
    diagram: WorkflowDiagram,
    surface: CytoscapeSurface,
    triggered: set[str],
    tap_node: dict | None = None,
    selected: list | None = None,
    connect_mode: list | None = None,
    zoom: float | None = None,
) -> tuple:
    """Route one browser event to the diagram and return the callback outputs.

    ``triggered`` holds Dash prop ids such as ``"workflow.tapNode"``.
    """
    zoom_out = dash.no_update
    pan_out = dash.no_update

    if MOUNT in triggered:
        diagram.mount()
        zoom_out, pan_out = surface.zoom(), surface.pan()
    elif "workflow.tapNode" in triggered and tap_node:
        surface.tap_node(tap_node["data"]["id"], connect_mode=bool(connect_mode))
    elif "workflow.selectedNodeData" in triggered and not selected:
        surface.tap_background()
    elif "inspector-close.n_clicks" in triggered:
        diagram.clear_selection()
    elif "zoom-in.n_clicks" in triggered:
        zoom_out = min(MAX_ZOOM, (zoom or 1.0) * ZOOM_STEP)
    elif "zoom-out.n_clicks" in triggered:
        zoom_out = max(MIN_ZOOM, (zoom or 1.0) / ZOOM_STEP)
    elif "zoom-fit.n_clicks" in triggered:
        surface.fit_view(diagram.fit_padding)
        zoom_out, pan_out = surface.zoom(), surface.pan()

    status_text, status_style = status_view(diagram)
    panel = build_panel(diagram.selection)
    return (
        status_text,
        status_style,
        surface.elements(),
        zoom_out,
        pan_out,
        panel_container_style(panel is not None),
        render_panel(panel),
        panel.copy_text if panel is not None else "",
    )


@dataclass
class Session:
    """One page load: its own diagram, surface and lock."""

    diagram: WorkflowDiagram
    surface: CytoscapeSurface
    lock: threading.Lock = field(default_factory=threading.Lock)


class DiagramSessions:
    """Per-page diagrams keyed by an id kept in the page's ``session`` store.

    Every mount starts a new session, so reloading the page fetches again.
    The oldest sessions are dropped past ``max_sessions``.
    """

    def __init__(self, config: DiagramConfig, fetcher: Fetcher, max_sessions: int = MAX_SESSIONS) -> None:
        self.config = config
        self.fetcher = fetcher
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, Session] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def start(self, canvas: dict | None = None) -> tuple[str, Session]:
        canvas = canvas or {}
        surface = CytoscapeSurface(canvas.get("width") or 1200, canvas.get("height") or 800)
        diagram = WorkflowDiagram(surface, self.fetcher, self.config.direction, self.config.fit_padding)
        session_id = uuid.uuid4().hex
        session = Session(diagram=diagram, surface=surface)
        with self._lock:
            self._sessions[session_id] = session
            while len(self._sessions) > self.max_sessions:
                dropped, _ = self._sessions.popitem(last=False)
                logger.debug("Dropped diagram session %s", dropped)
        return session_id, session

    def get(self, session_id: str | None) -> Session | None:
        if session_id is None:
            return None
        with self._lock:
            return self._sessions.get(session_id)


def dispatch(
    sessions: DiagramSessions,
    session_id: str | None,
    triggered: set[str],
    tap_node: dict | None = None,
    selected: list | None = None,
    connect_mode: list | None = None,
    zoom: float | None = None,
    canvas: dict | None = None,
) -> tuple:
    """Find or start the page's session, apply the event, return ``(session_id, *outputs)``.

    Raises:
        PreventUpdate: the event belongs to a session that no longer exists.
    """
    if MOUNT in triggered:
        session_id, session = sessions.start(canvas)
    else:
        session = sessions.get(session_id)
        if session is None:
            raise PreventUpdate

    with session.lock:
        outputs = apply_event(
            session.diagram, session.surface, triggered, tap_node, selected, connect_mode, zoom
        )
    return (session_id, *outputs)


def create_app(config: DiagramConfig | None = None, fetcher: Fetcher | None = None) -> dash.Dash:
    """Build a Dash app that gives every page load its own :class:`WorkflowDiagram`."""
    config = config or DiagramConfig.from_env()
    if fetcher is None:
        fetcher = partial(fetch_steps, config.api_url, config.timeout)
    sessions = DiagramSessions(config, fetcher)

    app = dash.Dash(__name__, title="Workflow")
    app.layout = build_layout()

    app.clientside_callback(
        MEASURE_CANVAS,
        Output("canvas-size", "data"),
        Input("mount", "n_intervals"),
        prevent_initial_call=True,
    )

    @app.callback(
        Output("session", "data"),
        Output("status", "children"),
        Output("status", "style"),
        Output("workflow", "elements"),
        Output("workflow", "zoom"),
        Output("workflow", "pan"),
        Output("inspector", "style"),
        Output("inspector-body", "children"),
        Output("inspector-copy", "content"),
        Input("canvas-size", "data"),
        Input("workflow", "tapNode"),
        Input("workflow", "selectedNodeData"),
        Input("inspector-close", "n_clicks"),
        Input("zoom-in", "n_clicks"),
        Input("zoom-out", "n_clicks"),
        Input("zoom-fit", "n_clicks"),
        State("session", "data"),
        State("connect-mode", "value"),
        State("workflow", "zoom"),
        prevent_initial_call=True,
    )
    def handle_event(canvas, tap_node, selected, _close, _zin, _zout, _fit, session_id, connect_mode, zoom):
        return dispatch(
            sessions,
            session_id,
            set(ctx.triggered_prop_ids),
            tap_node,
            selected,
            connect_mode,
            zoom,
            canvas,
        )

    return app
