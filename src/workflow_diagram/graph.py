"""Graph model builder — turns raw workflow steps into diagram nodes and edges.

A step record is a mapping shaped like::

    {"id": "B", "title": "Fuselage Frame", "dependencies": ["A"], ...}

Every step becomes one node; every entry in a step's ``dependencies`` becomes
one edge pointing from the dependency to the step. The builder is a pure
transform: it never checks that dependency ids resolve to nodes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from workflow_diagram.errors import MalformedInput

# ─── Color Rules ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ColorRule:
    """Maps a title keyword (matched case-insensitively) to a color category."""

    keyword: str
    category: str
    fill: str


COLOR_RULES: tuple[ColorRule, ...] = (
    ColorRule(keyword="wing", category="wing", fill="#e3f2fd"),
    ColorRule(keyword="fuselage", category="fuselage", fill="#e8f5e9"),
    ColorRule(keyword="tail", category="tail", fill="#fff3e0"),
    ColorRule(keyword="gear", category="gear", fill="#f3e5f5"),
)

DEFAULT_CATEGORY = ColorRule(keyword="", category="default", fill="#f5f5f5")


def categorize(title: str, rules: Sequence[ColorRule] = COLOR_RULES) -> ColorRule:
    """Return the first rule whose keyword occurs in ``title``, else the default."""
    lowered = (title or "").lower()
    for rule in rules:
        if rule.keyword.lower() in lowered:
            return rule
    return DEFAULT_CATEGORY


# ─── Diagram Entities ─────────────────────────────────────────────────────────

EDGE_KIND = "smoothstep"


def edge_id(source: str, target: str) -> str:
    return f"e-{source}-{target}"


@dataclass
class Node:
    """A diagram node built from one step record."""

    id: str
    title: str
    category: str
    fill: str
    record: Mapping[str, Any] = field(repr=False, compare=True)

    @property
    def label(self) -> str:
        """Two-line display label: the title, then the id in parentheses."""
        return f"{self.title}\n({self.id})"


@dataclass
class Edge:
    """A dependency edge: ``source`` must happen before ``target``."""

    id: str
    source: str
    target: str
    kind: str = EDGE_KIND
    animated: bool = True
    manual: bool = False


@dataclass
class GraphModel:
    """Nodes and edges in input order. Replaced wholesale on every fetch."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def find_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


# ─── Builder ──────────────────────────────────────────────────────────────────


def parse_tree_payload(payload: Any) -> list[Mapping[str, Any]]:
    """Extract the step list from an API response body ``{"tree": [...]}``."""
    if not isinstance(payload, Mapping):
        raise MalformedInput(f"expected a JSON object, got {type(payload).__name__}")
    if "tree" not in payload:
        raise MalformedInput("response has no 'tree' field")
    tree = payload["tree"]
    if not isinstance(tree, list):
        raise MalformedInput(f"'tree' must be a list, got {type(tree).__name__}")
    return tree


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def build_graph_model(steps: Any, rules: Sequence[ColorRule] = COLOR_RULES) -> GraphModel:
    """Build one node per step and one edge per listed dependency.

    Raises:
        MalformedInput: ``steps`` is not a sequence, a step is not a mapping,
            has no ``id``, or has a ``dependencies`` value that is not a list.
    """
    if not _is_sequence(steps):
        raise MalformedInput(f"steps must be a sequence, got {type(steps).__name__}")

    model = GraphModel()

    for index, step in enumerate(steps):
        if not isinstance(step, Mapping):
            raise MalformedInput(f"step #{index} is not an object")
        if step.get("id") is None:
            raise MalformedInput(f"step #{index} has no 'id'")

        step_id = str(step["id"])
        title = step.get("title") or ""
        rule = categorize(str(title), rules)
        model.nodes.append(
            Node(
                id=step_id,
                title=str(title),
                category=rule.category,
                fill=rule.fill,
                record=step,
            )
        )

    for index, step in enumerate(steps):
        dependencies = step.get("dependencies", [])
        if dependencies is None:
            continue
        if not isinstance(dependencies, list):
            raise MalformedInput(f"step #{index} 'dependencies' must be a list")
        step_id = str(step["id"])
        for dep in dependencies:
            dep_id = str(dep)
            model.edges.append(Edge(id=edge_id(dep_id, step_id), source=dep_id, target=step_id))

    return model


def find_orphan_edges(model: GraphModel) -> list[Edge]:
    """Edges with an endpoint that is not a node id in ``model``."""
    known = set(model.node_ids())
    return [e for e in model.edges if e.source not in known or e.target not in known]
