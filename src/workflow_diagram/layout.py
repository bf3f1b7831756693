"""Layout module — Sugiyama-style layered layout for workflow graphs.

Phases:
  1. Cycle removal  (greedy-FAS approach)
  2. Layer assignment (longest path from the sources)
  3. Crossing minimization (barycenter heuristic)
  4. Coordinate assignment (x/y positions in pixels)
  5. Edge routing (waypoints through the dummy nodes of long edges)

Every phase iterates nodes and edges in insertion order, so the same model
always produces the same coordinates.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations

import networkx as nx

from workflow_diagram.errors import LayoutError
from workflow_diagram.graph import DEFAULT_CATEGORY, Edge, GraphModel

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Flow direction of the primary (layer) axis."""

    LR = "LR"  # source → target left-to-right
    TB = "TB"  # source → target top-to-bottom

    @classmethod
    def parse(cls, value: str | Direction) -> Direction:
        if isinstance(value, Direction):
            return value
        key = value.strip().upper()
        if key == "TD":
            key = "TB"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"unknown direction {value!r} (expected LR or TB)") from None

    @property
    def is_horizontal(self) -> bool:
        return self is Direction.LR

    @property
    def source_position(self) -> str:
        return "right" if self.is_horizontal else "bottom"

    @property
    def target_position(self) -> str:
        return "left" if self.is_horizontal else "top"


# Pixel geometry. Every node shares the same footprint.
NODE_WIDTH: int = 220
NODE_HEIGHT: int = 70
RANK_GAP: int = 50  # gap between adjacent layers along the primary axis
NODE_GAP: int = 50  # gap between neighbours inside one layer
DUMMY_EXTENT: int = 20  # room reserved in a layer for a long edge passing through


# ─── Graph Construction ───────────────────────────────────────────────────────


def build_digraph(model: GraphModel) -> nx.DiGraph:
    """Build the layout graph for ``model``.

    Ids that only appear as edge endpoints are added as isolated nodes with
    ``known=False``; edges touching them are left out so they take part in
    coordinate assignment without influencing anyone's rank.
    """
    g: nx.DiGraph = nx.DiGraph()
    for node in model.nodes:
        g.add_node(node.id, known=True)

    known = set(g.nodes)
    for edge in model.edges:
        for endpoint in (edge.source, edge.target):
            if endpoint not in g:
                g.add_node(endpoint, known=False)

    for edge in model.edges:
        if edge.source in known and edge.target in known:
            g.add_edge(edge.source, edge.target)
    return g


# ─── Cycle Removal (Greedy-FAS) ───────────────────────────────────────────────


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Order nodes so that as few edges as possible point backwards.

    Greedy feedback-arc-set heuristic of Eades, Lin and Smyth: peel sinks onto
    the tail and sources onto the head until neither is left, then move the
    node with the largest out-minus-in degree to the head and repeat.

    ``active`` is an insertion-ordered dict so ties always resolve the same way.
    """
    active: dict[str, None] = dict.fromkeys(graph.nodes)

    out_deg: dict[str, int] = {n: graph.out_degree(n) for n in graph.nodes}
    in_deg: dict[str, int] = {n: graph.in_degree(n) for n in graph.nodes}

    s1: list[str] = []
    s2: list[str] = []

    while active:
        changed = True
        while changed:
            changed = False
            sinks = [n for n in active if out_deg[n] == 0]
            if sinks:
                changed = True
                for sink in sinks:
                    del active[sink]
                    s2.append(sink)
                    for pred in graph.predecessors(sink):
                        if pred in active:
                            out_deg[pred] -= 1

        changed = True
        while changed:
            changed = False
            sources = [n for n in active if in_deg[n] == 0]
            if sources:
                changed = True
                for source in sources:
                    del active[source]
                    s1.append(source)
                    for succ in graph.successors(source):
                        if succ in active:
                            in_deg[succ] -= 1

        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            del active[best]
            s1.append(best)
            for succ in graph.successors(best):
                if succ in active:
                    in_deg[succ] -= 1
            for pred in graph.predecessors(best):
                if pred in active:
                    out_deg[pred] -= 1

    s2.reverse()
    s1.extend(s2)
    return s1


def remove_cycles(graph: nx.DiGraph) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Return a DAG copy of ``graph`` plus the set of edges that were reversed.

    Back-edges (source after target in the greedy-FAS ordering) are reversed;
    self-loops are counted as reversed and dropped from the DAG.
    """
    if graph.number_of_nodes() == 0:
        return graph.copy(), set()

    if nx.is_directed_acyclic_graph(graph):
        return graph.copy(), set()

    position = {node: pos for pos, node in enumerate(greedy_fas_ordering(graph))}

    reversed_edges: set[tuple[str, str]] = set()
    for src, tgt in graph.edges():
        if src == tgt or position[src] > position[tgt]:
            reversed_edges.add((src, tgt))

    dag: nx.DiGraph = nx.DiGraph()
    for node_id in graph.nodes:
        dag.add_node(node_id, **graph.nodes[node_id])

    for src, tgt, attrs in graph.edges(data=True):
        if src == tgt:
            continue
        if (src, tgt) in reversed_edges:
            dag.add_edge(tgt, src, **attrs)
        else:
            dag.add_edge(src, tgt, **attrs)

    return dag, reversed_edges


# ─── Layer Assignment ─────────────────────────────────────────────────────────


class LayerAssignment:
    """Result of layer assignment: each node is assigned a layer (rank).

    Layer 0 is the first layer (left for LR, top for TB).

    Attributes:
        layers: Maps node id → layer index.
        layer_count: Total number of layers.
        reversed_edges: Edges reversed during cycle removal.
    """

    def __init__(
        self,
        layers: dict[str, int],
        layer_count: int,
        reversed_edges: set[tuple[str, str]],
    ) -> None:
        self.layers = layers
        self.layer_count = layer_count
        self.reversed_edges = reversed_edges

    @classmethod
    def assign(
        cls,
        dag: nx.DiGraph,
        reversed_edges: set[tuple[str, str]] | None = None,
    ) -> LayerAssignment:
        """Rank every node of ``dag`` by its longest path from a source.

        ``dag`` must already be acyclic (see :func:`remove_cycles`).
        Fixed-point iteration: for each DAG edge u→v, rank[v] = max(rank[v], rank[u]+1).
        Nodes without incoming edges, including isolated ones, stay at rank 0.
        """
        if not nx.is_directed_acyclic_graph(dag):
            raise ValueError("layer assignment needs an acyclic graph")

        layers: dict[str, int] = {node_id: 0 for node_id in dag.nodes}

        changed = True
        while changed:
            changed = False
            for src, tgt in dag.edges():
                if layers[tgt] < layers[src] + 1:
                    layers[tgt] = layers[src] + 1
                    changed = True

        layer_count = (max(layers.values()) + 1) if layers else 0
        return cls(layers=layers, layer_count=layer_count, reversed_edges=reversed_edges or set())


# ─── Dummy Node Insertion ──────────────────────────────────────────────────────

DUMMY_PREFIX = "__dummy_"


@dataclass
class DummyEdge:
    """A DAG edge spanning several layers, replaced by a chain of dummy nodes."""

    original_src: str
    original_tgt: str
    dummy_ids: list[str]


@dataclass
class AugmentedGraph:
    """A DAG in which every edge connects adjacent layers."""

    graph: nx.DiGraph
    layers: dict[str, int]
    layer_count: int
    dummy_edges: list[DummyEdge]


def insert_dummy_nodes(dag: nx.DiGraph, la: LayerAssignment) -> AugmentedGraph:
    """Replace each edge u → v with layer[v] - layer[u] > 1 by u → d₁ → … → dₖ → v."""
    g: nx.DiGraph = nx.DiGraph()
    for node_id in dag.nodes:
        g.add_node(node_id, **dag.nodes[node_id])

    layers: dict[str, int] = copy.copy(la.layers)
    dummy_edges: list[DummyEdge] = []

    for src_id, tgt_id in list(dag.edges()):
        src_layer = layers[src_id]
        layer_diff = layers[tgt_id] - src_layer

        if layer_diff <= 1:
            g.add_edge(src_id, tgt_id)
            continue

        this_edge = len(dummy_edges)
        dummy_ids: list[str] = []
        chain_prev = src_id
        for i in range(layer_diff - 1):
            dummy_id = f"{DUMMY_PREFIX}{this_edge}_{i}"
            while dummy_id in g:  # a step may already use this id
                dummy_id += "_"
            g.add_node(dummy_id, known=True, dummy=True)
            layers[dummy_id] = src_layer + i + 1
            dummy_ids.append(dummy_id)
            g.add_edge(chain_prev, dummy_id)
            chain_prev = dummy_id
        g.add_edge(chain_prev, tgt_id)

        dummy_edges.append(DummyEdge(original_src=src_id, original_tgt=tgt_id, dummy_ids=dummy_ids))

    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count, dummy_edges=dummy_edges)


# ─── Crossing Minimization (Barycenter) ───────────────────────────────────────

MAX_SWEEPS = 24


def minimise_crossings(aug: AugmentedGraph) -> list[list[str]]:
    """Order the nodes of each layer to reduce edge crossings.

    Starts from graph insertion order (input order, then dummies) and runs
    top-down + bottom-up barycenter sweeps, keeping the best ordering seen.
    Sorts are stable, so ties keep their previous relative order.
    """
    ordering: list[list[str]] = [[] for _ in range(aug.layer_count)]
    for node_id in aug.graph.nodes:
        ordering[aug.layers[node_id]].append(node_id)

    best_ordering = [list(layer) for layer in ordering]
    best = count_crossings(ordering, aug.graph)

    for _pass in range(MAX_SWEEPS):
        if best == 0:
            break

        for layer_idx in range(1, aug.layer_count):
            prev = {nid: float(i) for i, nid in enumerate(ordering[layer_idx - 1])}
            ordering[layer_idx].sort(key=lambda a, p=prev: _barycenter(a, aug.graph, p, "incoming"))

        for layer_idx in range(max(0, aug.layer_count - 2), -1, -1):
            nxt = {nid: float(i) for i, nid in enumerate(ordering[layer_idx + 1])}
            ordering[layer_idx].sort(key=lambda a, n=nxt: _barycenter(a, aug.graph, n, "outgoing"))

        new = count_crossings(ordering, aug.graph)
        if new >= best:
            break
        best = new
        best_ordering = [list(layer) for layer in ordering]

    return best_ordering


def _barycenter(
    node_id: str,
    graph: nx.DiGraph,
    neighbor_pos: dict[str, float],
    direction: str,
) -> float:
    """Average position of a node's neighbours in the adjacent layer.

    Returns float('inf') if the node has no neighbours there.
    """
    if node_id not in graph:
        return float("inf")

    neighbors = graph.predecessors(node_id) if direction == "incoming" else graph.successors(node_id)
    positions = [neighbor_pos[nb] for nb in neighbors if nb in neighbor_pos]
    if not positions:
        return float("inf")
    return sum(positions) / len(positions)


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Count edge crossings between consecutive layers (inversion count)."""
    total = 0
    for upper, lower in zip(ordering, ordering[1:]):
        below = {nid: i for i, nid in enumerate(lower)}
        segments = [
            (i, below[succ])
            for i, nid in enumerate(upper)
            if nid in graph
            for succ in graph.successors(nid)
            if succ in below
        ]
        # two segments cross when their ends are ordered differently on each layer
        total += sum(1 for (a1, b1), (a2, b2) in combinations(segments, 2) if (a1 - a2) * (b1 - b2) < 0)
    return total


# ─── Coordinate Assignment ────────────────────────────────────────────────────


@dataclass
class LayoutNode:
    """A positioned node. ``x``/``y`` is the top-left corner in pixels."""

    id: str
    layer: int
    order: int
    x: float
    y: float
    width: int = NODE_WIDTH
    height: int = NODE_HEIGHT
    source_position: str = "right"
    target_position: str = "left"
    known: bool = True
    dummy: bool = False
    label: str = ""
    category: str = DEFAULT_CATEGORY.category
    fill: str = DEFAULT_CATEGORY.fill

    @property
    def center(self) -> Point:
        return Point(x=self.x + self.width / 2, y=self.y + self.height / 2)

    def source_anchor(self, direction: Direction) -> Point:
        if direction.is_horizontal:
            return Point(x=self.x + self.width, y=self.y + self.height / 2)
        return Point(x=self.x + self.width / 2, y=self.y + self.height)

    def target_anchor(self, direction: Direction) -> Point:
        if direction.is_horizontal:
            return Point(x=self.x, y=self.y + self.height / 2)
        return Point(x=self.x + self.width / 2, y=self.y)


def _extents(direction: Direction, is_dummy: bool) -> tuple[int, int]:
    """(primary, secondary) extent of a node for ``direction``."""
    if direction.is_horizontal:
        primary, secondary = NODE_WIDTH, NODE_HEIGHT
    else:
        primary, secondary = NODE_HEIGHT, NODE_WIDTH
    return (primary, DUMMY_EXTENT if is_dummy else secondary)


def assign_coordinates(
    ordering: list[list[str]],
    aug: AugmentedGraph,
    direction: Direction = Direction.LR,
) -> list[LayoutNode]:
    """Assign pixel coordinates to every node in the augmented graph.

    Primary axis (x for LR, y for TB): ``layer × (extent + RANK_GAP)``.
    Secondary axis: nodes of a layer are packed ``extent + NODE_GAP`` apart,
    centred on the widest layer, then shifted as a block towards their
    neighbours' centres.
    """
    primary_step = _extents(direction, False)[0] + RANK_GAP

    def is_dummy(node_id: str) -> bool:
        return bool(aug.graph.nodes[node_id].get("dummy", False))

    def span(node_id: str) -> int:
        return _extents(direction, is_dummy(node_id))[1]

    layer_totals: list[int] = []
    for layer_nodes in ordering:
        total = sum(span(nid) for nid in layer_nodes)
        total += NODE_GAP * max(0, len(layer_nodes) - 1)
        layer_totals.append(total)
    max_total = max(layer_totals, default=0)

    # secondary-axis start of every node, keyed by id
    secondary: dict[str, float] = {}
    for layer_idx, layer_nodes in enumerate(ordering):
        s = float((max_total - layer_totals[layer_idx]) // 2)
        for node_id in layer_nodes:
            secondary[node_id] = s
            s += span(node_id) + NODE_GAP

    def centre(node_id: str) -> float:
        return secondary[node_id] + span(node_id) / 2

    def shift_layer(layer_idx: int, neighbours_of) -> None:
        own: list[float] = []
        theirs: list[float] = []
        for node_id in ordering[layer_idx]:
            for nb in neighbours_of(node_id):
                own.append(centre(node_id))
                theirs.append(centre(nb))
        if not own:
            return
        shift = sum(theirs) / len(theirs) - sum(own) / len(own)
        if abs(shift) > NODE_GAP:
            return
        for node_id in ordering[layer_idx]:
            secondary[node_id] += shift

    # Top-down pass: align each layer under its parents.
    for layer_idx in range(1, len(ordering)):
        shift_layer(
            layer_idx,
            lambda nid, li=layer_idx: [p for p in aug.graph.predecessors(nid) if aug.layers[p] == li - 1],
        )

    # Bottom-up pass: align each layer over its children.
    for layer_idx in range(max(0, len(ordering) - 2), -1, -1):
        shift_layer(
            layer_idx,
            lambda nid, li=layer_idx: [c for c in aug.graph.successors(nid) if aug.layers[c] == li + 1],
        )

    if secondary:
        min_s = min(secondary.values())
        for node_id in secondary:
            secondary[node_id] -= min_s

    nodes: list[LayoutNode] = []
    for layer_idx, layer_nodes in enumerate(ordering):
        primary = float(layer_idx * primary_step)
        for order, node_id in enumerate(layer_nodes):
            dummy = is_dummy(node_id)
            if direction.is_horizontal:
                x, y = primary, secondary[node_id]
                width, height = (NODE_WIDTH, DUMMY_EXTENT) if dummy else (NODE_WIDTH, NODE_HEIGHT)
            else:
                x, y = secondary[node_id], primary
                width, height = (DUMMY_EXTENT, NODE_HEIGHT) if dummy else (NODE_WIDTH, NODE_HEIGHT)
            nodes.append(
                LayoutNode(
                    id=node_id,
                    layer=layer_idx,
                    order=order,
                    x=x,
                    y=y,
                    width=width,
                    height=height,
                    source_position=direction.source_position,
                    target_position=direction.target_position,
                    known=bool(aug.graph.nodes[node_id].get("known", True)),
                    dummy=dummy,
                )
            )

    return nodes


# ─── Edge Routing ─────────────────────────────────────────────────────────────


@dataclass
class Point:
    """A 2D point in pixels."""

    x: float
    y: float


@dataclass
class RoutedEdge:
    """A model edge with the waypoints its connector passes through.

    Waypoints run from the source anchor, through the centres of the dummy
    nodes of a long edge, to the target anchor. Orphan edges have none.
    """

    id: str
    source: str
    target: str
    waypoints: list[Point] = field(default_factory=list)
    kind: str = "smoothstep"
    animated: bool = True
    manual: bool = False


def route_edges(
    edges: list[Edge],
    layout_nodes: list[LayoutNode],
    aug: AugmentedGraph,
    reversed_edges: set[tuple[str, str]],
    direction: Direction,
) -> list[RoutedEdge]:
    """Route every model edge, in model order."""
    node_map = {n.id: n for n in layout_nodes}

    dummy_points: dict[tuple[str, str], list[Point]] = {}
    for de in aug.dummy_edges:
        dummy_points[(de.original_src, de.original_tgt)] = [node_map[d].center for d in de.dummy_ids]

    routes: list[RoutedEdge] = []
    for edge in edges:
        src = node_map.get(edge.source)
        tgt = node_map.get(edge.target)
        waypoints: list[Point] = []

        if src is not None and tgt is not None and src.known and tgt.known:
            if (edge.source, edge.target) in reversed_edges:
                middle = list(reversed(dummy_points.get((edge.target, edge.source), [])))
            else:
                middle = dummy_points.get((edge.source, edge.target), [])
            waypoints = [src.source_anchor(direction), *middle, tgt.target_anchor(direction)]

        routes.append(
            RoutedEdge(
                id=edge.id,
                source=edge.source,
                target=edge.target,
                waypoints=waypoints,
                kind=edge.kind,
                animated=edge.animated,
                manual=edge.manual,
            )
        )
    return routes


# ─── Full Layout Pipeline ──────────────────────────────────────────────────────


@dataclass
class LayoutResult:
    """Positioned nodes (in model order, orphan placeholders last) and routed edges."""

    nodes: list[LayoutNode]
    edges: list[RoutedEdge]
    direction: Direction = Direction.LR
    reversed_edges: set[tuple[str, str]] = field(default_factory=set)

    def node(self, node_id: str) -> LayoutNode | None:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def bounds(self, include_unknown: bool = False) -> tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) of the drawn nodes, all zero when empty."""
        nodes = [n for n in self.nodes if include_unknown or n.known]
        if not nodes:
            return (0.0, 0.0, 0.0, 0.0)
        return (
            min(n.x for n in nodes),
            min(n.y for n in nodes),
            max(n.x + n.width for n in nodes),
            max(n.y + n.height for n in nodes),
        )


def layout_graph(model: GraphModel, direction: Direction | str = Direction.LR) -> LayoutResult:
    """Run the full layout pipeline over ``model``.

    Raises:
        LayoutError: any phase failed.
    """
    direction = Direction.parse(direction)
    try:
        graph = build_digraph(model)
        dag, reversed_edges = remove_cycles(graph)
        la = LayerAssignment.assign(dag, reversed_edges)
        aug = insert_dummy_nodes(dag, la)
        ordering = minimise_crossings(aug)
        positioned = assign_coordinates(ordering, aug, direction)
        routed = route_edges(model.edges, positioned, aug, reversed_edges, direction)
    except (KeyError, ValueError, nx.NetworkXException) as exc:
        raise LayoutError(f"layout failed: {exc}") from exc

    if reversed_edges:
        logger.warning("workflow graph has cycles; reversed %d edge(s) for layout", len(reversed_edges))

    index = {node_id: i for i, node_id in enumerate(graph.nodes)}
    real = sorted((n for n in positioned if not n.dummy), key=lambda n: index[n.id])
    by_id = {n.id: n for n in model.nodes}
    for ln in real:
        node = by_id.get(ln.id)
        if node is None:
            ln.label = ln.id
            continue
        ln.label = node.label
        ln.category = node.category
        ln.fill = node.fill
    return LayoutResult(nodes=real, edges=routed, direction=direction, reversed_edges=reversed_edges)
