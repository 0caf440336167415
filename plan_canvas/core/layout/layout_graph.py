from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from plan_canvas.core.layout.layered import LayeredLayout, SizedNode, sugiyama_layout
from plan_canvas.core.layout.layout_config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from plan_canvas.core.model import Direction, GraphEdge, GraphNode, LayoutNode

logger = logging.getLogger(__name__)

_EPS = 1e-6


def layout_graph(
    nodes: Sequence[GraphNode],
    edges: Iterable[GraphEdge],
    *,
    direction: Direction = "TB",
    config: LayoutConfig = DEFAULT_LAYOUT_CONFIG,
    layered: LayeredLayout = sugiyama_layout,
) -> list[LayoutNode]:
    """Size and place a containment tree of nodes.

    Two passes:
      - bottom-up: every group is sized from a layered layout of its immediate
        children (using their already computed sizes); the normalised child
        positions are kept per group.
      - top-down: roots are placed with one layered layout, then each group's
        stored child layout is offset by the group's absolute position.

    Only edges whose endpoints are both roots or share an immediate parent take
    part; anything else has undefined geometry and is ignored here. Inputs are
    not mutated. Output follows input order; nodes that cannot be reached from
    a root (parent cycles) are dropped.
    """

    by_id: dict[str, GraphNode] = {}
    for n in nodes:
        if n.id in by_id:
            logger.debug("ignoring duplicate node id %r", n.id)
            continue
        by_id[n.id] = n

    parent_of: dict[str, Optional[str]] = {}
    children: dict[Optional[str], list[str]] = {None: []}
    for nid, n in by_id.items():
        pid = n.parent_id
        if pid is not None and pid not in by_id:
            logger.debug("node %r names unknown parent %r; treating it as a root", nid, pid)
            pid = None
        parent_of[nid] = pid
        children.setdefault(pid, []).append(nid)

    local_edges = _local_edges(edges, parent_of)

    sizes: dict[str, tuple[float, float]] = {}
    child_layouts: dict[str, dict[str, tuple[float, float]]] = {}

    for nid in _post_order(children):
        kids = children.get(nid, [])
        if not kids:
            sizes[nid] = (config.leaf_width, config.leaf_height)
            continue

        if len(kids) == 1:
            cw, ch = sizes[kids[0]]
            sizes[nid] = (cw + 2 * config.side_margin, ch + config.side_margin + config.top_margin)
            child_layouts[nid] = {kids[0]: (config.side_margin, config.top_margin)}
            continue

        centers = layered(
            [SizedNode(k, *sizes[k]) for k in kids],
            local_edges.get(nid, []),
            direction,
            config.child_spacing,
        )
        top_lefts = {
            k: (centers[k][0] - sizes[k][0] / 2.0, centers[k][1] - sizes[k][1] / 2.0) for k in kids
        }
        min_x = min(x for x, _ in top_lefts.values())
        min_y = min(y for _, y in top_lefts.values())
        max_x = max(top_lefts[k][0] + sizes[k][0] for k in kids)
        max_y = max(top_lefts[k][1] + sizes[k][1] for k in kids)

        sizes[nid] = (
            max(config.min_group_width, (max_x - min_x) + 2 * config.side_margin),
            max(config.min_group_height, (max_y - min_y) + config.side_margin + config.top_margin),
        )
        child_layouts[nid] = {
            k: (x - min_x + config.side_margin, y - min_y + config.top_margin)
            for k, (x, y) in top_lefts.items()
        }

    root_ids = children[None]
    absolute: dict[str, tuple[float, float]] = {}
    local: dict[str, tuple[float, float]] = {}

    if root_ids:
        centers = layered(
            [SizedNode(r, *sizes[r]) for r in root_ids],
            local_edges.get(None, []),
            direction,
            config.root_spacing,
        )
        top_lefts = {
            r: (centers[r][0] - sizes[r][0] / 2.0, centers[r][1] - sizes[r][1] / 2.0)
            for r in root_ids
        }
        dx = config.root_margin - min(x for x, _ in top_lefts.values())
        dy = config.root_margin - min(y for _, y in top_lefts.values())
        for r, (x, y) in top_lefts.items():
            absolute[r] = local[r] = (x + dx, y + dy)

    stack = list(reversed(root_ids))
    while stack:
        nid = stack.pop()
        ax, ay = absolute[nid]
        layout = child_layouts.get(nid, {})
        for k in children.get(nid, []):
            lx, ly = layout[k]
            local[k] = (lx, ly)
            absolute[k] = (ax + lx, ay + ly)
        stack.extend(reversed(children.get(nid, [])))

    out: list[LayoutNode] = []
    for nid, n in by_id.items():
        if nid not in absolute:
            logger.debug("node %r is not reachable from a root; dropped", nid)
            continue
        w, h = sizes[nid]
        out.append(
            LayoutNode(
                id=nid,
                parent_id=parent_of[nid],
                x=local[nid][0],
                y=local[nid][1],
                width=w,
                height=h,
                abs_x=absolute[nid][0],
                abs_y=absolute[nid][1],
                label=n.label,
                status_hint=n.status_hint,
                is_group=n.is_group,
            )
        )
    return out


def is_local_edge(parent_of: dict[str, Optional[str]], source: str, target: str) -> bool:
    """Both endpoints are roots, or both share the same immediate parent."""
    if source not in parent_of or target not in parent_of:
        return False
    return parent_of[source] == parent_of[target]


def check_layout(nodes: Sequence[LayoutNode], config: LayoutConfig = DEFAULT_LAYOUT_CONFIG) -> list[str]:
    """Return containment and sibling-overlap violations (empty when the layout is sound)."""

    problems: list[str] = []
    by_id = {n.id: n for n in nodes}
    siblings: dict[Optional[str], list[LayoutNode]] = {}

    for n in nodes:
        siblings.setdefault(n.parent_id, []).append(n)
        if n.parent_id is None:
            continue
        p = by_id.get(n.parent_id)
        if p is None:
            continue
        left = p.abs_x + config.side_margin
        right = p.abs_x + p.width - config.side_margin
        top = p.abs_y + config.top_margin
        bottom = p.abs_y + p.height - config.side_margin
        if (
            n.abs_x < left - _EPS
            or n.abs_y < top - _EPS
            or n.abs_x + n.width > right + _EPS
            or n.abs_y + n.height > bottom + _EPS
        ):
            problems.append(f"{n.id}: outside content box of {p.id}")

    for pid, group in siblings.items():
        for i, a in enumerate(group):
            for b in group[i + 1 :]:
                if _overlaps(a, b):
                    problems.append(f"{a.id}: overlaps sibling {b.id}")
    return problems


def _overlaps(a: LayoutNode, b: LayoutNode) -> bool:
    return (
        a.abs_x < b.abs_x + b.width - _EPS
        and b.abs_x < a.abs_x + a.width - _EPS
        and a.abs_y < b.abs_y + b.height - _EPS
        and b.abs_y < a.abs_y + a.height - _EPS
    )


def _local_edges(
    edges: Iterable[GraphEdge], parent_of: dict[str, Optional[str]]
) -> dict[Optional[str], list[tuple[str, str]]]:
    out: dict[Optional[str], list[tuple[str, str]]] = {}
    for e in edges:
        if e.source == e.target:
            continue
        if not is_local_edge(parent_of, e.source, e.target):
            logger.debug("edge %r (%s -> %s) crosses containment levels; not laid out", e.id, e.source, e.target)
            continue
        out.setdefault(parent_of[e.source], []).append((e.source, e.target))
    return out


def _post_order(children: dict[Optional[str], list[str]]) -> list[str]:
    """Every node reachable from the roots, children before parents."""

    order: list[str] = []
    stack: list[tuple[str, bool]] = [(r, False) for r in reversed(children[None])]
    while stack:
        nid, expanded = stack.pop()
        if expanded:
            order.append(nid)
            continue
        stack.append((nid, True))
        for k in reversed(children.get(nid, [])):
            stack.append((k, False))
    return order
