import random
from dataclasses import replace

import pytest

from plan_canvas.core.layout.layout_config import DEFAULT_LAYOUT_CONFIG as C, LayoutConfig
from plan_canvas.core.layout.layout_graph import check_layout, is_local_edge, layout_graph
from plan_canvas.core.model import GraphEdge, GraphNode


def _row_layout(nodes, edges, direction, spacing):
    """Deterministic stand-in: one row, left to right, in input order."""
    out = {}
    x = 0.0
    for n in nodes:
        out[n.id] = (x + n.width / 2.0, n.height / 2.0)
        x += n.width + spacing.node_sep
    return out


def _by_id(laid_out):
    return {n.id: n for n in laid_out}


def test_single_leaf_root_is_offset_by_root_margin():
    out = layout_graph([GraphNode("a")], [], layered=_row_layout)
    a = _by_id(out)["a"]
    assert (a.width, a.height) == (C.leaf_width, C.leaf_height)
    assert (a.abs_x, a.abs_y) == (C.root_margin, C.root_margin)
    assert (a.x, a.y) == (a.abs_x, a.abs_y)


def test_single_child_group_wraps_child_with_margins():
    out = _by_id(layout_graph([GraphNode("g"), GraphNode("c", parent_id="g")], [], layered=_row_layout))
    g, c = out["g"], out["c"]

    assert g.width == C.leaf_width + 2 * C.side_margin
    assert g.height == C.leaf_height + C.side_margin + C.top_margin
    assert (c.x, c.y) == (C.side_margin, C.top_margin)
    assert (c.abs_x, c.abs_y) == (g.abs_x + C.side_margin, g.abs_y + C.top_margin)


def test_two_children_group_uses_bounding_box_and_minimums():
    nodes = [GraphNode("g"), GraphNode("a", parent_id="g"), GraphNode("b", parent_id="g")]
    out = _by_id(layout_graph(nodes, [], layered=_row_layout))
    g = out["g"]

    bbox_w = 2 * C.leaf_width + C.node_sep
    assert g.width == bbox_w + 2 * C.side_margin
    assert g.height == C.min_group_height
    assert (out["a"].x, out["a"].y) == (C.side_margin, C.top_margin)
    assert (out["b"].x, out["b"].y) == (C.side_margin + C.leaf_width + C.node_sep, C.top_margin)


def test_min_group_size_applies_to_small_children():
    nodes = [GraphNode("g"), GraphNode("a", parent_id="g"), GraphNode("b", parent_id="g")]

    def stacked(nodes, edges, direction, spacing):
        return {n.id: (10.0, 10.0 + i * 20.0) for i, n in enumerate(nodes)}

    config = LayoutConfig(leaf_width=20, leaf_height=10)
    g = _by_id(layout_graph(nodes, [], config=config, layered=stacked))["g"]
    assert (g.width, g.height) == (config.min_group_width, config.min_group_height)


def test_nested_groups_size_bottom_up():
    nodes = [
        GraphNode("outer"),
        GraphNode("inner", parent_id="outer"),
        GraphNode("leaf", parent_id="inner"),
    ]
    out = _by_id(layout_graph(nodes, [], layered=_row_layout))
    inner, outer = out["inner"], out["outer"]
    assert outer.width == inner.width + 2 * C.side_margin
    assert out["leaf"].abs_x == outer.abs_x + C.side_margin + C.side_margin
    assert out["leaf"].abs_y == outer.abs_y + C.top_margin + C.top_margin


def test_group_with_three_children_contains_them():
    nodes = [
        GraphNode("g"),
        GraphNode("a", parent_id="g"),
        GraphNode("b", parent_id="g"),
        GraphNode("c", parent_id="g"),
    ]
    edges = [GraphEdge("e1", "a", "b"), GraphEdge("e2", "a", "c")]
    out = _by_id(layout_graph(nodes, edges))
    g = out["g"]
    kids = [out[k] for k in ("a", "b", "c")]

    min_x = min(k.abs_x for k in kids)
    max_x = max(k.abs_x + k.width for k in kids)
    min_y = min(k.abs_y for k in kids)
    max_y = max(k.abs_y + k.height for k in kids)
    assert g.width >= (max_x - min_x) + 2 * C.side_margin - 1e-6
    assert g.height >= (max_y - min_y) + C.side_margin + C.top_margin - 1e-6

    for k in kids:
        assert k.abs_x >= g.abs_x + C.side_margin - 1e-6
        assert k.abs_y >= g.abs_y + C.top_margin - 1e-6
        assert k.abs_x + k.width <= g.abs_x + g.width - C.side_margin + 1e-6
        assert k.abs_y + k.height <= g.abs_y + g.height - C.side_margin + 1e-6

    assert check_layout(list(out.values())) == []


def test_edge_ranks_follow_direction():
    nodes = [GraphNode("a"), GraphNode("b")]
    edges = [GraphEdge("e", "a", "b")]

    tb = _by_id(layout_graph(nodes, edges, direction="TB"))
    assert tb["b"].abs_y > tb["a"].abs_y

    lr = _by_id(layout_graph(nodes, edges, direction="LR"))
    assert lr["b"].abs_x > lr["a"].abs_x


def test_unconnected_roots_do_not_overlap():
    nodes = [GraphNode(n) for n in ("a", "b", "c")]
    out = layout_graph(nodes, [])
    assert check_layout(out) == []


def test_layout_is_idempotent():
    nodes = [
        GraphNode("g"),
        GraphNode("a", parent_id="g"),
        GraphNode("b", parent_id="g"),
        GraphNode("r"),
    ]
    edges = [GraphEdge("e1", "a", "b"), GraphEdge("e2", "g", "r")]
    assert layout_graph(nodes, edges) == layout_graph(nodes, edges)


def test_non_local_edges_are_ignored():
    seen = []

    def recording(nodes, edges, direction, spacing):
        seen.append(list(edges))
        return _row_layout(nodes, edges, direction, spacing)

    nodes = [
        GraphNode("g"),
        GraphNode("a", parent_id="g"),
        GraphNode("b", parent_id="g"),
        GraphNode("r"),
    ]
    edges = [GraphEdge("cross", "a", "r"), GraphEdge("self", "r", "r"), GraphEdge("ok", "a", "b")]
    layout_graph(nodes, edges, layered=recording)
    assert [("a", "b")] in seen
    assert all(("a", "r") not in call for call in seen)
    assert all(("r", "r") not in call for call in seen)


def test_output_follows_input_order_and_preserves_hints():
    nodes = [
        GraphNode("b", label="B", status_hint="completed"),
        GraphNode("a", label="A", status_hint="pending", is_group=True),
        GraphNode("a1", parent_id="a"),
    ]
    out = layout_graph(nodes, [], layered=_row_layout)
    assert [n.id for n in out] == ["b", "a", "a1"]
    assert out[0].label == "B" and out[0].status_hint == "completed"
    assert out[1].is_group is True


def test_unknown_parent_is_treated_as_root():
    out = _by_id(layout_graph([GraphNode("a", parent_id="missing")], [], layered=_row_layout))
    assert out["a"].parent_id is None


def test_parent_cycle_nodes_are_dropped():
    nodes = [GraphNode("r"), GraphNode("x", parent_id="y"), GraphNode("y", parent_id="x")]
    out = layout_graph(nodes, [], layered=_row_layout)
    assert [n.id for n in out] == ["r"]


def test_empty_input():
    assert layout_graph([], []) == []


def test_inputs_are_not_mutated():
    nodes = [GraphNode("a"), GraphNode("b")]
    edges = [GraphEdge("e", "a", "b")]
    snapshot = (list(nodes), list(edges))
    layout_graph(nodes, edges)
    assert (nodes, edges) == snapshot


def test_is_local_edge():
    parent_of = {"a": None, "b": None, "a1": "a", "a2": "a"}
    assert is_local_edge(parent_of, "a", "b")
    assert is_local_edge(parent_of, "a1", "a2")
    assert not is_local_edge(parent_of, "a1", "b")
    assert not is_local_edge(parent_of, "a", "ghost")


def test_check_layout_reports_overlap_and_escape():
    nodes = [GraphNode("g"), GraphNode("a", parent_id="g"), GraphNode("b", parent_id="g")]
    out = _by_id(layout_graph(nodes, [], layered=_row_layout))
    moved = replace(out["b"], abs_x=out["a"].abs_x, abs_y=out["a"].abs_y)
    problems = check_layout([out["g"], out["a"], moved])
    assert any("overlaps sibling" in p for p in problems)

    escaped = replace(moved, abs_x=out["g"].abs_x - 500)
    problems = check_layout([out["g"], out["a"], escaped])
    assert any("outside content box of g" in p for p in problems)


def _random_project(seed):
    """Forest of nodes with groups, plus sibling edges including cycles, repeats and self-links."""
    rng = random.Random(seed)
    nodes = []
    for i in range(rng.randint(6, 18)):
        parent = None
        if nodes and rng.random() < 0.6:
            parent = rng.choice(nodes).id
        nodes.append(GraphNode(f"n{i}", parent_id=parent))

    by_parent = {}
    for n in nodes:
        by_parent.setdefault(n.parent_id, []).append(n.id)

    edges = []
    for kids in by_parent.values():
        for _ in range(rng.randint(0, 2 * len(kids))):
            s, t = rng.choice(kids), rng.choice(kids)
            edges.append(GraphEdge(f"e{len(edges)}", s, t))
            if rng.random() < 0.3:
                edges.append(GraphEdge(f"e{len(edges)}", t, s))
            if rng.random() < 0.2:
                edges.append(GraphEdge(f"e{len(edges)}", s, t))
    return nodes, edges


@pytest.mark.parametrize("direction", ["TB", "LR"])
@pytest.mark.parametrize("seed", range(40))
def test_random_projects_are_sound_and_repeatable(seed, direction):
    nodes, edges = _random_project(seed)
    first = layout_graph(nodes, edges, direction=direction)

    assert [n.id for n in first] == [n.id for n in nodes]
    assert check_layout(first) == []

    for _ in range(3):
        churn = [GraphNode(f"junk{i}") for i in range(200)]
        assert layout_graph(list(nodes), list(edges), direction=direction) == first
        del churn
