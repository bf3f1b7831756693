"""Tests for layout.py — cycle removal, layering, crossing minimization,
coordinate assignment and the full layout pipeline.

Cycle removal tests:
  - test_dag_has_no_reversed_edges
  - test_single_cycle_reversed
  - test_self_loop_reversed
  - test_complex_cycle
  - test_empty_graph

Pipeline tests cover the flow-direction invariant, determinism, disconnected
nodes and orphan endpoints.
"""

from __future__ import annotations

import networkx as nx
import pytest

import workflow_diagram.layout as layout_module
from workflow_diagram.errors import LayoutError
from workflow_diagram.graph import build_graph_model
from workflow_diagram.layout import (
    DUMMY_EXTENT,
    DUMMY_PREFIX,
    NODE_GAP,
    NODE_HEIGHT,
    NODE_WIDTH,
    RANK_GAP,
    AugmentedGraph,
    Direction,
    LayerAssignment,
    LayoutNode,
    assign_coordinates,
    build_digraph,
    count_crossings,
    greedy_fas_ordering,
    insert_dummy_nodes,
    layout_graph,
    minimise_crossings,
    remove_cycles,
)

# ─── Helpers ──────────────────────────────────────────────────────────────────


def make_graph(*edges: tuple[str, str]) -> nx.DiGraph:
    """Build a DiGraph from a list of (src, tgt) string pairs."""
    g: nx.DiGraph = nx.DiGraph()
    for src, tgt in edges:
        g.add_edge(src, tgt)
    return g


def make_graph_nodes(*nodes: str) -> nx.DiGraph:
    """Build a DiGraph with only nodes (no edges)."""
    g: nx.DiGraph = nx.DiGraph()
    for node in nodes:
        g.add_node(node)
    return g


def make_augmented_graph(
    edges: list[tuple[str, str]],
    layers: dict[str, int],
) -> AugmentedGraph:
    """Build a minimal AugmentedGraph from (src, tgt) edges and explicit layers."""
    g: nx.DiGraph = nx.DiGraph()
    all_node_ids: dict[str, None] = dict.fromkeys(layers)
    for src, tgt in edges:
        all_node_ids.setdefault(src)
        all_node_ids.setdefault(tgt)

    for nid in all_node_ids:
        g.add_node(nid, known=True, dummy=nid.startswith(DUMMY_PREFIX))

    for src, tgt in edges:
        g.add_edge(src, tgt)

    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count, dummy_edges=[])


def step(step_id: str, title: str = "", deps: list[str] | None = None) -> dict:
    return {"id": step_id, "title": title or step_id, "dependencies": deps or []}


def assert_no_overlap(nodes: list[LayoutNode]) -> None:
    for i, a in enumerate(nodes):
        for b in nodes[i + 1 :]:
            separate = (
                a.x + a.width <= b.x or b.x + b.width <= a.x or a.y + a.height <= b.y or b.y + b.height <= a.y
            )
            assert separate, f"Nodes {a.id} and {b.id} overlap"


# ─── Cycle Removal Tests ──────────────────────────────────────────────────────


class TestCycleRemoval:
    def test_dag_has_no_reversed_edges(self):
        """A → B → C (simple DAG, no cycles) — should have zero reversed edges."""
        g = make_graph(("A", "B"), ("B", "C"))
        dag, reversed_edges = remove_cycles(g)
        assert reversed_edges == set()
        assert nx.is_directed_acyclic_graph(dag)

    def test_single_cycle_reversed(self):
        """A → B → A (2-cycle) — should reverse exactly one edge, result is a DAG."""
        g = make_graph(("A", "B"), ("B", "A"))
        dag, reversed_edges = remove_cycles(g)
        assert len(reversed_edges) == 1
        assert nx.is_directed_acyclic_graph(dag)

    def test_self_loop_reversed(self):
        """A → A (self-loop) — counted as reversed, removed from the result DAG."""
        g = make_graph(("A", "A"))
        dag, reversed_edges = remove_cycles(g)
        assert reversed_edges == {("A", "A")}
        assert dag.number_of_edges() == 0

    def test_complex_cycle(self):
        """A → B → C → A (3-cycle) plus D → B — result must be a DAG."""
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"), ("D", "B"))
        dag, reversed_edges = remove_cycles(g)
        assert nx.is_directed_acyclic_graph(dag)
        assert len(reversed_edges) >= 1

    def test_empty_graph(self):
        """Empty graph — should return empty graph with no reversed edges."""
        dag, reversed_edges = remove_cycles(nx.DiGraph())
        assert dag.number_of_nodes() == 0
        assert reversed_edges == set()

    def test_cycle_removal_is_deterministic(self):
        g = make_graph(("A", "B"), ("B", "C"), ("C", "A"), ("C", "D"), ("D", "B"))
        first = remove_cycles(g)[1]
        for _ in range(5):
            assert remove_cycles(g)[1] == first


class TestGreedyFasOrdering:
    def test_chain_ordering(self):
        """A → B → C — ordering puts A before B before C."""
        assert greedy_fas_ordering(make_graph(("A", "B"), ("B", "C"))) == ["A", "B", "C"]

    def test_single_node(self):
        assert greedy_fas_ordering(make_graph_nodes("A")) == ["A"]

    def test_empty_graph(self):
        assert greedy_fas_ordering(nx.DiGraph()) == []

    def test_all_nodes_present(self):
        ordering = greedy_fas_ordering(make_graph(("A", "B"), ("B", "C"), ("C", "A")))
        assert sorted(ordering) == ["A", "B", "C"]


# ─── Layer Assignment ─────────────────────────────────────────────────────────


class TestLayerAssignment:
    def test_longest_path_rank(self):
        """A → B → C plus A → C: C sits after B, not next to A."""
        la = LayerAssignment.assign(make_graph(("A", "B"), ("B", "C"), ("A", "C")))
        assert la.layers == {"A": 0, "B": 1, "C": 2}
        assert la.layer_count == 3

    def test_isolated_node_is_its_own_root(self):
        g = make_graph(("A", "B"))
        g.add_node("X")
        la = LayerAssignment.assign(g)
        assert la.layers["X"] == 0

    def test_empty(self):
        la = LayerAssignment.assign(nx.DiGraph())
        assert la.layers == {}
        assert la.layer_count == 0

    def test_rejects_cyclic_graph(self):
        with pytest.raises(ValueError):
            LayerAssignment.assign(make_graph(("A", "B"), ("B", "A")))

    def test_keeps_reversed_edges(self):
        dag, reversed_edges = remove_cycles(make_graph(("A", "B"), ("B", "A")))
        assert LayerAssignment.assign(dag, reversed_edges).reversed_edges == reversed_edges


class TestInsertDummyNodes:
    def test_long_edge_gets_dummy_chain(self):
        g = make_graph(("A", "B"), ("B", "C"), ("A", "C"))
        la = LayerAssignment.assign(g)
        dag, _ = remove_cycles(g)
        aug = insert_dummy_nodes(dag, la)

        assert len(aug.dummy_edges) == 1
        de = aug.dummy_edges[0]
        assert (de.original_src, de.original_tgt) == ("A", "C")
        assert len(de.dummy_ids) == 1
        assert aug.layers[de.dummy_ids[0]] == 1
        assert not aug.graph.has_edge("A", "C")

    def test_dummy_ids_never_reuse_a_node_id(self):
        taken = f"{DUMMY_PREFIX}0_0"
        g = make_graph(("A", "B"), ("B", "C"), ("A", "C"))
        g.add_node(taken)
        aug = insert_dummy_nodes(g, LayerAssignment.assign(g))
        (dummy_id,) = aug.dummy_edges[0].dummy_ids
        assert dummy_id != taken
        assert not aug.graph.nodes[taken].get("dummy", False)

    def test_every_edge_spans_one_layer(self):
        g = make_graph(("A", "B"), ("B", "C"), ("C", "D"), ("A", "D"))
        la = LayerAssignment.assign(g)
        dag, _ = remove_cycles(g)
        aug = insert_dummy_nodes(dag, la)
        for src, tgt in aug.graph.edges():
            assert aug.layers[tgt] - aug.layers[src] == 1


# ─── count_crossings / minimise_crossings ─────────────────────────────────────


class TestCountCrossings:
    def test_no_crossings_simple_chain(self):
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        assert count_crossings([["A"], ["B"]], aug.graph) == 0

    def test_one_crossing(self):
        """A→D and B→C with A before B in layer 0 — one crossing because D after C."""
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert count_crossings([["A", "B"], ["C", "D"]], aug.graph) == 1

    def test_crossing_reduces_with_swap(self):
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert count_crossings([["A", "B"], ["D", "C"]], aug.graph) == 0

    def test_empty_graph_no_crossings(self):
        assert count_crossings([], nx.DiGraph()) == 0


class TestMinimiseCrossings:
    def test_removes_simple_crossing(self):
        aug = make_augmented_graph([("A", "D"), ("B", "C")], {"A": 0, "B": 0, "C": 1, "D": 1})
        result = minimise_crossings(aug)
        assert count_crossings(result, aug.graph) == 0

    def test_each_node_in_correct_layer(self):
        layers = {"A": 0, "B": 1, "C": 1, "D": 2}
        aug = make_augmented_graph([("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")], layers)
        result = minimise_crossings(aug)
        for node_id, expected_layer in layers.items():
            assert node_id in result[expected_layer]

    def test_keeps_input_order_when_there_is_nothing_to_fix(self):
        aug = make_augmented_graph([("A", "C"), ("B", "D")], {"A": 0, "B": 0, "C": 1, "D": 1})
        assert minimise_crossings(aug) == [["A", "B"], ["C", "D"]]

    def test_empty_graph(self):
        aug = AugmentedGraph(graph=nx.DiGraph(), layers={}, layer_count=0, dummy_edges=[])
        assert minimise_crossings(aug) == []


# ─── assign_coordinates ───────────────────────────────────────────────────────


class TestAssignCoordinates:
    def test_single_node_at_origin(self):
        aug = make_augmented_graph([], {"A": 0})
        result = assign_coordinates([["A"]], aug)
        assert len(result) == 1
        assert (result[0].x, result[0].y) == (0, 0)
        assert (result[0].width, result[0].height) == (NODE_WIDTH, NODE_HEIGHT)

    def test_lr_layer_spacing(self):
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        nodes = {n.id: n for n in assign_coordinates([["A"], ["B"]], aug, Direction.LR)}
        assert nodes["B"].x - nodes["A"].x == NODE_WIDTH + RANK_GAP
        assert nodes["A"].y == nodes["B"].y

    def test_tb_layer_spacing(self):
        aug = make_augmented_graph([("A", "B")], {"A": 0, "B": 1})
        nodes = {n.id: n for n in assign_coordinates([["A"], ["B"]], aug, Direction.TB)}
        assert nodes["B"].y - nodes["A"].y == NODE_HEIGHT + RANK_GAP
        assert nodes["A"].x == nodes["B"].x

    def test_same_layer_spacing(self):
        aug = make_augmented_graph([], {"A": 0, "B": 0})
        nodes = {n.id: n for n in assign_coordinates([["A", "B"]], aug, Direction.LR)}
        assert nodes["B"].y - nodes["A"].y == NODE_HEIGHT + NODE_GAP
        assert nodes["A"].x == nodes["B"].x == 0

    def test_anchor_sides_follow_direction(self):
        aug = make_augmented_graph([], {"A": 0})
        lr = assign_coordinates([["A"]], aug, Direction.LR)[0]
        tb = assign_coordinates([["A"]], aug, Direction.TB)[0]
        assert (lr.source_position, lr.target_position) == ("right", "left")
        assert (tb.source_position, tb.target_position) == ("bottom", "top")

    def test_dummy_node_is_narrow(self):
        dummy_id = f"{DUMMY_PREFIX}0_0"
        aug = make_augmented_graph([("A", dummy_id), (dummy_id, "B")], {"A": 0, dummy_id: 1, "B": 2})
        nodes = {n.id: n for n in assign_coordinates([["A"], [dummy_id], ["B"]], aug)}
        assert nodes[dummy_id].dummy
        assert nodes[dummy_id].height == DUMMY_EXTENT

    def test_non_negative_and_non_overlapping(self):
        layers = {"A": 0, "B": 0, "C": 1, "D": 1, "E": 1}
        aug = make_augmented_graph([("A", "C"), ("A", "D"), ("B", "E")], layers)
        result = assign_coordinates([["A", "B"], ["C", "D", "E"]], aug)
        for n in result:
            assert n.x >= 0 and n.y >= 0
        assert_no_overlap(result)


# ─── Full Pipeline ────────────────────────────────────────────────────────────


class TestLayoutGraph:
    def test_wing_spar_scenario(self):
        model = build_graph_model(
            [
                {"id": "A", "title": "Wing Spar", "dependencies": []},
                {"id": "B", "title": "Fuselage Frame", "dependencies": ["A"]},
            ]
        )
        result = layout_graph(model)
        assert [n.id for n in result.nodes] == ["A", "B"]
        assert [e.id for e in result.edges] == ["e-A-B"]
        assert result.node("A").x < result.node("B").x

    def test_target_after_source_on_primary_axis(self):
        steps = [
            step("A"),
            step("B", deps=["A"]),
            step("C", deps=["A"]),
            step("D", deps=["B", "C"]),
            step("E", deps=["A", "D"]),
            step("F"),
        ]
        model = build_graph_model(steps)
        for direction in (Direction.LR, Direction.TB):
            result = layout_graph(model, direction)
            for edge in model.edges:
                src, tgt = result.node(edge.source), result.node(edge.target)
                if direction is Direction.LR:
                    assert tgt.x > src.x, edge.id
                else:
                    assert tgt.y > src.y, edge.id

    def test_deterministic(self):
        steps = [step("A"), step("B", deps=["A"]), step("C", deps=["A"]), step("D", deps=["C", "B"]), step("X")]
        model = build_graph_model(steps)
        first = layout_graph(model)
        for _ in range(3):
            again = layout_graph(build_graph_model(steps))
            assert [(n.id, n.x, n.y) for n in again.nodes] == [(n.id, n.x, n.y) for n in first.nodes]

    def test_disconnected_nodes_do_not_overlap(self):
        steps = [step("A"), step("B"), step("C", deps=["A"]), step("D")]
        result = layout_graph(build_graph_model(steps))
        assert {n.layer for n in result.nodes if n.id in ("A", "B", "D")} == {0}
        assert_no_overlap(result.nodes)

    def test_orphan_endpoint_becomes_unknown_node(self):
        steps = [step("A"), step("B", deps=["A", "ghost"])]
        result = layout_graph(build_graph_model(steps))
        ghost = result.node("ghost")
        assert ghost is not None
        assert not ghost.known
        assert ghost.layer == 0
        assert_no_overlap(result.nodes)
        orphan = next(e for e in result.edges if e.source == "ghost")
        assert orphan.waypoints == []

    def test_cycle_is_broken_not_fatal(self):
        steps = [step("A", deps=["B"]), step("B", deps=["A"])]
        result = layout_graph(build_graph_model(steps))
        assert len(result.reversed_edges) == 1
        assert_no_overlap(result.nodes)

    def test_long_edge_routed_through_dummy(self):
        steps = [step("A"), step("B", deps=["A"]), step("C", deps=["B", "A"])]
        result = layout_graph(build_graph_model(steps))
        long_edge = next(e for e in result.edges if e.id == "e-A-C")
        assert len(long_edge.waypoints) == 3
        a = result.node("A")
        first = long_edge.waypoints[0]
        assert (first.x, first.y) == (a.x + a.width, a.y + a.height / 2)

    def test_step_named_like_a_dummy(self):
        odd = f"{DUMMY_PREFIX}0_0"
        steps = [step("A"), step("B", deps=["A"]), step("C", deps=["B", "A"]), step(odd)]
        result = layout_graph(build_graph_model(steps))
        node = result.node(odd)
        assert node is not None
        assert not node.dummy
        assert node.label == f"{odd}\n({odd})"
        assert [n.id for n in result.nodes] == ["A", "B", "C", odd]
        assert len(next(e for e in result.edges if e.id == "e-A-C").waypoints) == 3

    def test_cycles_removed_once(self, monkeypatch):
        calls = []
        real = layout_module.remove_cycles

        def counting(graph):
            calls.append(graph)
            return real(graph)

        monkeypatch.setattr(layout_module, "remove_cycles", counting)
        layout_graph(build_graph_model([step("A", deps=["B"]), step("B", deps=["A"])]))
        assert len(calls) == 1

    def test_duplicate_dependencies_route_twice(self):
        result = layout_graph(build_graph_model([step("A"), step("B", deps=["A", "A"])]))
        assert [e.id for e in result.edges] == ["e-A-B", "e-A-B"]

    def test_nodes_carry_label_and_fill(self):
        result = layout_graph(build_graph_model([step("A", title="Landing Gear Bay")]))
        node = result.node("A")
        assert node.label == "Landing Gear Bay\n(A)"
        assert node.category == "gear"
        assert node.fill == "#f3e5f5"

    def test_empty_model(self):
        result = layout_graph(build_graph_model([]))
        assert result.nodes == []
        assert result.edges == []
        assert result.bounds() == (0.0, 0.0, 0.0, 0.0)

    def test_direction_string_accepted(self):
        assert layout_graph(build_graph_model([step("A")]), "TD").direction is Direction.TB

    def test_unknown_direction_rejected(self):
        with pytest.raises(ValueError):
            Direction.parse("diagonal")

    def test_internal_failure_wrapped(self, monkeypatch):
        def boom(*_args, **_kwargs):
            raise KeyError("missing")

        monkeypatch.setattr("workflow_diagram.layout.minimise_crossings", boom)
        with pytest.raises(LayoutError):
            layout_graph(build_graph_model([step("A")]))


class TestBuildDigraph:
    def test_orphan_edges_left_out(self):
        g = build_digraph(build_graph_model([step("A", deps=["ghost"])]))
        assert g.nodes["ghost"]["known"] is False
        assert g.number_of_edges() == 0
