"""Hierarchy structure and summation matrix construction.

The key data of a mable is turned into a forest of nodes: every node belongs
to a *level* (the set of key variables it aggregates over) and its children
are the nodes of the next less-aggregated level that agree with it on every
non-aggregated variable. Summation rows are propagated from the leaves up
that forest, then returned in the mable's node order.

Example structure (keys ``state``/``region``):

    <aggregated>/<aggregated>
    ├── A/<aggregated>
    │   ├── A/r1
    │   └── A/r2
    └── B/<aggregated>
        └── B/r3
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import reduce

import numpy as np
import pandas as pd

from mabletools.core.errors import DisjointHierarchyError

from .keys import KeyData, format_node


@dataclass
class HierarchyNode:
    """One entry of the hierarchy arena.

    ``children`` are the members summed into this node. In a grouped
    structure a node sits in several margins; ``parent`` is the first
    aggregate linked to it.
    """

    position: int
    key: tuple
    level: frozenset[str]
    children: list[int] = field(default_factory=list)
    parent: int | None = None

    @property
    def is_leaf(self) -> bool:
        return not self.level


@dataclass(frozen=True)
class HierarchyForest:
    """Parent/child arena built once from a key structure.

    Attributes:
        key_vars: Key variable names
        nodes: Nodes in node (row) order
        levels: Node positions per level, least aggregated first
        leaf_rows: Node positions of the leaves; leaf ``j`` is column ``j`` of S
        smat: Summation matrix, one row per node, one column per leaf
    """

    key_vars: list[str]
    nodes: list[HierarchyNode]
    levels: dict[frozenset[str], list[int]]
    leaf_rows: list[int]
    smat: np.ndarray = field(repr=False)

    @classmethod
    def from_key_data(cls, key_data: KeyData) -> HierarchyForest:
        """Build the forest and its summation matrix.

        Raises:
            DisjointHierarchyError: If the key data is not one nested or
                grouped hierarchy over a common set of leaves
        """
        expanded = key_data.expanded()
        key_vars = key_data.key_vars
        mask = key_data.aggregation_mask()
        _check_disjoint(expanded, mask)

        node_keys = key_data.node_ids()
        flags = mask.to_numpy()
        nodes = [
            HierarchyNode(
                position=pos,
                key=node_keys[pos],
                level=frozenset(v for v, agg in zip(key_vars, flags[pos]) if agg),
            )
            for pos in range(len(expanded))
        ]

        levels: dict[frozenset[str], list[int]] = {}
        for node in nodes:
            levels.setdefault(node.level, []).append(node.position)
        levels = dict(sorted(levels.items(), key=lambda item: len(item[0])))

        leaf_rows = levels.get(frozenset(), [])
        if not leaf_rows:
            raise DisjointHierarchyError(
                "Key structure has no bottom-level series",
                context={"levels": [_describe_level(key_vars, lvl) for lvl in levels]},
            )

        n_leaf = len(leaf_rows)
        rows = np.zeros((len(nodes), n_leaf))
        for j, pos in enumerate(leaf_rows):
            rows[pos, j] = 1.0

        done: list[frozenset[str]] = [frozenset()]
        for level, members in levels.items():
            if not level:
                continue
            below = [lvl for lvl in done if lvl < level]
            immediate = [lvl for lvl in below if not any(lvl < other for other in below)]
            child_level = max(immediate, key=len)
            _link_level(nodes, key_vars, level, members, child_level, levels[child_level])
            for other in immediate:
                if other != child_level:
                    _adopt(nodes, key_vars, level, members, levels[other])
            for pos in members:
                rows[pos] = rows[nodes[pos].children].sum(axis=0)
            _check_partition(nodes, key_vars, level, members, rows, leaf_rows)
            done.append(level)

        return cls(
            key_vars=key_vars,
            nodes=nodes,
            levels=levels,
            leaf_rows=leaf_rows,
            smat=rows,
        )

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_leaves(self) -> int:
        return len(self.leaf_rows)

    def children(self, position: int) -> list[int]:
        return list(self.nodes[position].children)

    def parent(self, position: int) -> int | None:
        return self.nodes[position].parent

    def roots(self) -> list[int]:
        return [n.position for n in self.nodes if n.parent is None]

    def label(self, position: int) -> str:
        return format_node(self.key_vars, self.nodes[position].key)


def _check_disjoint(expanded: pd.DataFrame, mask: pd.DataFrame) -> None:
    """Reject key variables that split the data into unrelated hierarchies."""
    for var in expanded.columns:
        agg = mask[var].to_numpy()
        observed = pd.unique(expanded[var][~agg])
        if not agg.any() and len(observed) > 1:
            raise DisjointHierarchyError(
                f"Key variable '{var}' has {len(observed)} levels but is never aggregated; "
                "reconciliation of disjoint hierarchical structures is not supported",
                context={"variable": var, "levels": [str(v) for v in observed[:10]]},
            )


def _link_level(
    nodes: list[HierarchyNode],
    key_vars: list[str],
    level: frozenset[str],
    members: list[int],
    child_level: frozenset[str],
    child_members: list[int],
) -> None:
    """Attach the nodes of ``child_level`` to the matching nodes of ``level``."""
    match_idx = [i for i, var in enumerate(key_vars) if var not in level]

    by_match: dict[tuple, list[int]] = {}
    for pos in child_members:
        key = tuple(nodes[pos].key[i] for i in match_idx)
        by_match.setdefault(key, []).append(pos)

    for pos in members:
        node = nodes[pos]
        children = by_match.get(tuple(node.key[i] for i in match_idx), [])
        if not children:
            raise DisjointHierarchyError(
                f"Aggregate node {format_node(key_vars, node.key)} has no member series "
                f"at level {_describe_level(key_vars, child_level)}",
                context={"node": format_node(key_vars, node.key)},
            )
        node.children = children
        for child in children:
            if nodes[child].parent is None:
                nodes[child].parent = pos


def _adopt(
    nodes: list[HierarchyNode],
    key_vars: list[str],
    level: frozenset[str],
    members: list[int],
    child_members: list[int],
) -> None:
    """Set the parent of orphaned nodes in a further margin of a grouped structure."""
    match_idx = [i for i, var in enumerate(key_vars) if var not in level]
    by_key = {tuple(nodes[pos].key[i] for i in match_idx): pos for pos in members}
    for pos in child_members:
        parent = by_key.get(tuple(nodes[pos].key[i] for i in match_idx))
        if parent is not None and nodes[pos].parent is None:
            nodes[pos].parent = parent


def _check_partition(
    nodes: list[HierarchyNode],
    key_vars: list[str],
    level: frozenset[str],
    members: list[int],
    rows: np.ndarray,
    leaf_rows: list[int],
) -> None:
    """Every leaf must be covered exactly once by the nodes of a level."""
    coverage = rows[members].sum(axis=0)
    bad = np.flatnonzero(coverage != 1)
    if len(bad):
        j = int(bad[0])
        leaf = format_node(key_vars, nodes[leaf_rows[j]].key)
        times = int(coverage[j])
        raise DisjointHierarchyError(
            f"Level {_describe_level(key_vars, level)} covers series {leaf} {times} times "
            "(expected exactly once)",
            context={
                "level": _describe_level(key_vars, level),
                "series": leaf,
                "coverage": times,
            },
        )


def _describe_level(key_vars: list[str], level: frozenset[str]) -> str:
    return "(" + ", ".join(f"{v}=<aggregated>" if v in level else v for v in key_vars) + ")"


def build_smat_rows(key_data: KeyData) -> np.ndarray:
    """Summation matrix with rows in node order.

    Args:
        key_data: Aggregation key structure of the mable

    Returns:
        Array of shape (n_nodes, n_leaves); column ``j`` is the ``j``-th leaf
        in node order

    Example:
        >>> kd = KeyData.from_frame(pd.DataFrame({"state": [AGGREGATED, "A", "B"]}), ["state"])
        >>> build_smat_rows(kd)
        array([[1., 1.],
               [1., 0.],
               [0., 1.]])
    """
    return HierarchyForest.from_key_data(key_data).smat


def build_smat(key_data: KeyData) -> np.ndarray:
    """Summation matrix as a dummy-encoded cross product of the key variables.

    Each key variable is one-hot encoded over its observed levels, with
    aggregated cells set to one across the whole range. The per-variable
    encodings are multiplied out and the columns restricted to the leaf
    combinations, in leaf order.
    """
    expanded = key_data.expanded()
    mask = key_data.aggregation_mask()
    n = len(expanded)
    if not key_data.key_vars:
        return np.ones((n, 1))

    encodings: list[tuple[np.ndarray, list[tuple]]] = []
    for var in key_data.key_vars:
        values = expanded[var].to_numpy()
        agg = mask[var].to_numpy()
        levels = list(pd.unique(values[~agg]))
        if not agg.any() and len(levels) > 1:
            raise DisjointHierarchyError(
                f"Key variable '{var}' has {len(levels)} levels but is never aggregated; "
                "reconciliation of disjoint hierarchical structures is not supported",
                context={"variable": var, "levels": [str(v) for v in levels[:10]]},
            )
        index = {level: i for i, level in enumerate(levels)}
        mat = np.zeros((n, len(levels)))
        for i in np.flatnonzero(~agg):
            mat[i, index[values[i]]] = 1.0
        mat[agg] = 1.0
        encodings.append((mat, [(level,) for level in levels]))

    def join_smat(x, y):
        xmat, xlab = x
        ymat, ylab = y
        blocks = [xmat[:, [c]] * ymat for c in range(xmat.shape[1])]
        labels = [xl + yl for xl in xlab for yl in ylab]
        return np.hstack(blocks), labels

    smat, labels = reduce(join_smat, encodings)
    leaf = ~mask.to_numpy().any(axis=1)
    column = {label: j for j, label in enumerate(labels)}
    leaf_labels = list(expanded[leaf].itertuples(index=False, name=None))
    return smat[:, [column[label] for label in leaf_labels]]


__all__ = [
    "HierarchyForest",
    "HierarchyNode",
    "build_smat",
    "build_smat_rows",
]
