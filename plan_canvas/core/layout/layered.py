from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence, Union

import networkx as nx

from plan_canvas.core.layout.layout_config import Spacing
from plan_canvas.core.model import Direction

logger = logging.getLogger(__name__)

# Upper bound on barycenter sweeps; ordering stops earlier once crossings stop dropping.
MAX_ORDERING_PASSES = 24
# Coordinate refinement sweeps (down then up) after ordering.
COORDINATE_PASSES = 4

# Dummy vertices are keyed by (edge index, step) so they never collide with task ids.
_Key = Union[str, tuple[int, int]]


@dataclass(frozen=True)
class SizedNode:
    id: str
    width: float
    height: float


class LayeredLayout(Protocol):
    """Flat (non-nested) layered placement.

    Returns the centre (x, y) of every node. Ranks run top-to-bottom for "TB"
    and left-to-right for "LR".
    """

    def __call__(
        self,
        nodes: Sequence[SizedNode],
        edges: Sequence[tuple[str, str]],
        direction: Direction,
        spacing: Spacing,
    ) -> dict[str, tuple[float, float]]: ...


def sugiyama_layout(
    nodes: Sequence[SizedNode],
    edges: Sequence[tuple[str, str]],
    direction: Direction,
    spacing: Spacing,
) -> dict[str, tuple[float, float]]:
    """Sugiyama-style layered layout.

    Phases: cycle removal (greedy feedback arc set), longest-path ranking,
    dummy vertices on long edges, barycenter ordering, then balanced
    coordinates. Every phase walks nodes and edges in input order and breaks
    ties by position, so equal input gives bit-identical output.

    Connected components are laid out one at a time and placed side by side
    across the rank axis, in order of first appearance. Work happens in a frame
    where ranks grow along y; for "LR" sizes are transposed going in and
    coordinates coming out.
    """

    if not nodes:
        return {}

    horizontal = direction == "LR"
    frame_size: dict[str, tuple[float, float]] = {}
    for n in nodes:
        if n.id not in frame_size:
            frame_size[n.id] = (n.height, n.width) if horizontal else (n.width, n.height)

    graph = nx.DiGraph()
    graph.add_nodes_from(frame_size)
    for source, target in edges:
        if source == target or source not in frame_size or target not in frame_size:
            continue
        graph.add_edge(source, target)

    centers: dict[str, tuple[float, float]] = {}
    offset = 0.0
    for component in _components(graph):
        local, extent = _layout_component(component, frame_size, spacing)
        for nid, (cx, cy) in local.items():
            centers[nid] = (cx + offset, cy)
        offset += extent + spacing.node_sep

    if horizontal:
        return {nid: (cy, cx) for nid, (cx, cy) in centers.items()}
    return centers


def _components(graph: nx.DiGraph) -> list[nx.DiGraph]:
    index = {nid: i for i, nid in enumerate(graph.nodes)}
    groups = [sorted(c, key=index.__getitem__) for c in nx.weakly_connected_components(graph)]
    groups.sort(key=lambda members: index[members[0]])
    logger.debug("layered layout: %d nodes in %d components", len(index), len(groups))
    out: list[nx.DiGraph] = []
    for members in groups:
        sub = nx.DiGraph()
        sub.add_nodes_from(members)
        member_set = set(members)
        sub.add_edges_from((s, t) for s, t in graph.edges if s in member_set)
        out.append(sub)
    return out


def _layout_component(
    graph: nx.DiGraph,
    frame_size: dict[str, tuple[float, float]],
    spacing: Spacing,
) -> tuple[dict[str, tuple[float, float]], float]:
    """Return centres normalised so the component's box starts at (0, 0), and its cross-axis width."""

    ids: list[str] = list(graph.nodes)
    if len(ids) == 1:
        w, h = frame_size[ids[0]]
        return {ids[0]: (w / 2.0, h / 2.0)}, w

    dag_edges = _acyclic_edges(graph)
    rank = _ranks(ids, dag_edges)
    layers, down, up = _insert_dummies(ids, dag_edges, rank)
    _order_layers(layers, down, up)

    def size(key: _Key) -> tuple[float, float]:
        return frame_size[key] if isinstance(key, str) else (0.0, 0.0)

    xs = _assign_x(layers, down, up, size, spacing.node_sep)

    out: dict[str, tuple[float, float]] = {}
    band_top = 0.0
    for layer in layers:
        band = max(size(k)[1] for k in layer)
        for k in layer:
            if isinstance(k, str):
                out[k] = (xs[k], band_top + band / 2.0)
        band_top += band + spacing.rank_sep

    min_x = min(out[nid][0] - frame_size[nid][0] / 2.0 for nid in ids)
    min_y = min(out[nid][1] - frame_size[nid][1] / 2.0 for nid in ids)
    max_x = max(out[nid][0] + frame_size[nid][0] / 2.0 for nid in ids)
    return {nid: (x - min_x, y - min_y) for nid, (x, y) in out.items()}, max_x - min_x


def _acyclic_edges(graph: nx.DiGraph) -> list[tuple[str, str]]:
    """Edges with the feedback set reversed, following a greedy-FAS vertex sequence."""

    out_deg = {n: graph.out_degree(n) for n in graph.nodes}
    in_deg = {n: graph.in_degree(n) for n in graph.nodes}
    active: dict[str, None] = dict.fromkeys(graph.nodes)
    head: list[str] = []
    tail: list[str] = []

    def remove(n: str) -> None:
        del active[n]
        for p in graph.predecessors(n):
            if p in active:
                out_deg[p] -= 1
        for s in graph.successors(n):
            if s in active:
                in_deg[s] -= 1

    while active:
        changed = True
        while changed:
            changed = False
            for n in [n for n in active if out_deg[n] == 0]:
                remove(n)
                tail.append(n)
                changed = True
            for n in [n for n in active if in_deg[n] == 0]:
                remove(n)
                head.append(n)
                changed = True
        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            remove(best)
            head.append(best)

    position = {n: i for i, n in enumerate(head + tail[::-1])}
    edges: dict[tuple[str, str], None] = {}
    for s, t in graph.edges:
        edges[(s, t) if position[s] < position[t] else (t, s)] = None
    return list(edges)


def _ranks(ids: list[str], dag_edges: list[tuple[str, str]]) -> dict[str, int]:
    """Longest-path ranking: every edge points to a strictly higher rank."""

    dag = nx.DiGraph()
    dag.add_nodes_from(ids)
    dag.add_edges_from(dag_edges)
    rank = {nid: 0 for nid in ids}
    for n in nx.lexicographical_topological_sort(dag, key=ids.index):
        for t in dag.successors(n):
            rank[t] = max(rank[t], rank[n] + 1)
    return rank


def _insert_dummies(
    ids: list[str], dag_edges: list[tuple[str, str]], rank: dict[str, int]
) -> tuple[list[list[_Key]], dict[_Key, list[_Key]], dict[_Key, list[_Key]]]:
    layers: list[list[_Key]] = [[] for _ in range(max(rank.values()) + 1)]
    for nid in ids:
        layers[rank[nid]].append(nid)

    down: dict[_Key, list[_Key]] = {nid: [] for nid in ids}
    up: dict[_Key, list[_Key]] = {nid: [] for nid in ids}
    for i, (s, t) in enumerate(dag_edges):
        prev: _Key = s
        for step, r in enumerate(range(rank[s] + 1, rank[t])):
            dummy: _Key = (i, step)
            layers[r].append(dummy)
            down[dummy] = []
            up[dummy] = []
            down[prev].append(dummy)
            up[dummy].append(prev)
            prev = dummy
        down[prev].append(t)
        up[t].append(prev)
    return layers, down, up


def _order_layers(
    layers: list[list[_Key]], down: dict[_Key, list[_Key]], up: dict[_Key, list[_Key]]
) -> None:
    """Barycenter sweeps (down then up), keeping the ordering with the fewest crossings."""

    best = [list(layer) for layer in layers]
    best_crossings = _crossings(layers, down)

    for _ in range(MAX_ORDERING_PASSES):
        for i in range(1, len(layers)):
            _sort_by_barycenter(layers[i], layers[i - 1], up)
        for i in range(len(layers) - 2, -1, -1):
            _sort_by_barycenter(layers[i], layers[i + 1], down)
        crossings = _crossings(layers, down)
        if crossings >= best_crossings:
            break
        best = [list(layer) for layer in layers]
        best_crossings = crossings

    layers[:] = best


def _sort_by_barycenter(layer: list[_Key], fixed: list[_Key], neighbours: dict[_Key, list[_Key]]) -> None:
    pos = {k: i for i, k in enumerate(fixed)}
    current = {k: i for i, k in enumerate(layer)}

    def key(k: _Key) -> tuple[float, int]:
        near = [pos[n] for n in neighbours[k] if n in pos]
        bary = sum(near) / len(near) if near else float(current[k])
        return bary, current[k]

    layer.sort(key=key)


def _crossings(layers: list[list[_Key]], down: dict[_Key, list[_Key]]) -> int:
    total = 0
    for upper, lower in zip(layers, layers[1:]):
        lower_pos = {k: i for i, k in enumerate(lower)}
        segments = [
            (i, lower_pos[t]) for i, s in enumerate(upper) for t in down[s] if t in lower_pos
        ]
        for a, (s1, t1) in enumerate(segments):
            for s2, t2 in segments[a + 1 :]:
                if (s1 - s2) * (t1 - t2) < 0:
                    total += 1
    return total


def _assign_x(
    layers: list[list[_Key]],
    down: dict[_Key, list[_Key]],
    up: dict[_Key, list[_Key]],
    size,
    sep: float,
) -> dict[_Key, float]:
    """Centre x per vertex: packed start, then sweeps pulling each vertex toward its neighbours."""

    xs: dict[_Key, float] = {}
    for layer in layers:
        x = 0.0
        for k in layer:
            w = size(k)[0]
            xs[k] = x + w / 2.0
            x += w + sep

    for _ in range(COORDINATE_PASSES):
        for layer in layers[1:]:
            _place(layer, [_mean(xs, up[k], xs[k]) for k in layer], xs, size, sep)
        for layer in reversed(layers[:-1]):
            _place(layer, [_mean(xs, down[k], xs[k]) for k in layer], xs, size, sep)
    return xs


def _mean(xs: dict[_Key, float], keys: list[_Key], default: float) -> float:
    if not keys:
        return default
    return sum(xs[k] for k in keys) / len(keys)


def _place(layer: list[_Key], desired: list[float], xs: dict[_Key, float], size, sep: float) -> None:
    """Move a layer as close to `desired` as its order and separation allow.

    Averages a left-to-right and a right-to-left constrained pass; both keep
    neighbours at least `gap` apart, so the average does too.
    """

    n = len(layer)
    gaps = [0.0] + [size(layer[i - 1])[0] / 2.0 + sep + size(layer[i])[0] / 2.0 for i in range(1, n)]

    left = list(desired)
    for i in range(1, n):
        left[i] = max(desired[i], left[i - 1] + gaps[i])
    right = list(desired)
    for i in range(n - 2, -1, -1):
        right[i] = min(desired[i], right[i + 1] - gaps[i + 1])

    for i, k in enumerate(layer):
        xs[k] = (left[i] + right[i]) / 2.0
