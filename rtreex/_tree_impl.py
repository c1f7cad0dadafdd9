"""
Node arena and balancing heuristics for the dynamic R-tree.

Nodes live in a flat list addressed by integer handles. Each node records
the handle of its parent (``NO_NODE`` for the root or a detached node), so
upward dirty propagation is an index walk while the arena alone owns every
node. A node's cached box is only ever recomputed when it is read while
dirty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Sequence
from jaxtyping import jaxtyped

from .bounds import Box, union_all
from .protocols import BoundedItem

NO_NODE = -1

NodeKind = Literal["empty", "leaf", "internal"]


class TreeInvariantError(RuntimeError):
    """Raised when the tree reaches a state no correct update sequence produces."""


@dataclass
class _Node:
    """
    Arena record for a single tree node.

    Attributes:
        parent: Handle of the owning node, ``NO_NODE`` for the root
        item: Stored item for leaves, ``None`` otherwise
        children: Ordered child handles for internal nodes, ``None`` otherwise
        level: 0 for leaves, ``1 + max(child levels)`` for internal nodes
        cached_bounds: Last computed box; stale while ``dirty`` is set
        dirty: Whether ``cached_bounds`` must be recomputed before use
    """

    parent: int = NO_NODE
    item: Optional[BoundedItem] = None
    children: Optional[list[int]] = None
    level: int = 0
    cached_bounds: Box = field(default_factory=Box.empty)
    dirty: bool = True

    @property
    def kind(self) -> NodeKind:
        if self.item is not None:
            return "leaf"
        if self.children is not None:
            return "internal"
        return "empty"


class NodeArena:
    """Flat node storage with handle recycling."""

    def __init__(self) -> None:
        self._nodes: list[Optional[_Node]] = []
        self._free: list[int] = []

    def __len__(self) -> int:
        return len(self._nodes) - len(self._free)

    def _allocate(self, node: _Node) -> int:
        if self._free:
            handle = self._free.pop()
            self._nodes[handle] = node
        else:
            handle = len(self._nodes)
            self._nodes.append(node)
        return handle

    def is_live(self, handle: int) -> bool:
        return 0 <= handle < len(self._nodes) and self._nodes[handle] is not None

    def node(self, handle: int) -> _Node:
        if not self.is_live(handle):
            raise TreeInvariantError(f"node handle {handle} is not live")
        return self._nodes[handle]

    def allocate_empty(self) -> int:
        return self._allocate(_Node(dirty=False))

    def allocate_leaf(self, item: BoundedItem) -> int:
        return self._allocate(_Node(item=item))

    def allocate_internal(self, children: Sequence[int]) -> int:
        handle = self._allocate(_Node(children=[]))
        self.set_children(handle, children)
        return handle

    def release(self, handle: int) -> None:
        self.node(handle)
        self._nodes[handle] = None
        self._free.append(handle)

    def dissolve(self, handle: int) -> list[int]:
        """Release an internal node and return its now parentless children."""

        children = self.children(handle)
        for child in children:
            self.node(child).parent = NO_NODE
        self.release(handle)
        return children

    def kind(self, handle: int) -> NodeKind:
        return self.node(handle).kind

    def level(self, handle: int) -> int:
        return self.node(handle).level

    def parent(self, handle: int) -> int:
        return self.node(handle).parent

    def item(self, handle: int) -> Optional[BoundedItem]:
        return self.node(handle).item

    def children(self, handle: int) -> list[int]:
        children = self.node(handle).children
        if children is None:
            raise TreeInvariantError(f"node {handle} has no child list")
        return children

    def set_item(self, handle: int, item: Optional[BoundedItem]) -> None:
        """Turn a childless node into a leaf for ``item`` (or empty for ``None``)."""

        node = self.node(handle)
        if node.children is not None:
            raise TreeInvariantError(f"node {handle} has children and cannot hold an item")
        node.item = item
        node.level = 0
        self.mark_dirty(handle)

    def set_children(self, handle: int, children: Sequence[int]) -> None:
        """Replace the child list, re-parent every child and mark the node dirty."""

        if not children:
            raise TreeInvariantError(f"node {handle} cannot be given an empty child list")
        node = self.node(handle)
        node.children = list(children)
        for child in node.children:
            self.node(child).parent = handle
        node.level = 1 + max(self.node(child).level for child in node.children)
        self.mark_dirty(handle)

    def append_child(self, handle: int, child: int) -> None:
        self.children(handle).append(child)
        self.node(child).parent = handle
        self.mark_dirty(handle)

    def detach_child(self, handle: int, child: int) -> int:
        """Remove ``child`` from the node and return how many children remain."""

        children = self.children(handle)
        if not children:
            raise TreeInvariantError(f"cannot detach from node {handle}: child list is empty")
        try:
            children.remove(child)
        except ValueError:
            raise TreeInvariantError(
                f"node {child} is not a child of node {handle}"
            ) from None
        self.node(child).parent = NO_NODE
        self.mark_dirty(handle)
        return len(children)

    def mark_dirty(self, handle: int) -> None:
        """Flag a node and its ancestors, stopping at the first already dirty one."""

        current = handle
        while current != NO_NODE:
            node = self.node(current)
            if node.dirty:
                break
            node.dirty = True
            current = node.parent

    def bounds(self, handle: int) -> Box:
        """Return the node's box, recomputing it first when dirty."""

        node = self.node(handle)
        if node.dirty:
            node.cached_bounds = self._recompute(node, refresh=True)
            node.dirty = False
        return node.cached_bounds

    def peek_bounds(self, handle: int) -> Box:
        """Recompute the node's box from scratch without touching any cache."""

        return self._recompute(self.node(handle), refresh=False)

    def _recompute(self, node: _Node, *, refresh: bool) -> Box:
        if node.item is not None:
            return node.item.bounds()
        if node.children is not None:
            read = self.bounds if refresh else self.peek_bounds
            return union_all([read(child) for child in node.children])
        return Box.empty()


@jaxtyped(typechecker=beartype)
def choose_subtree(candidates: Sequence[Box], box: Box) -> int:
    """Index of the candidate that grows least, relatively, when absorbing ``box``.

    Growth is ``(union volume + 1) / (volume + 1)``; the offsets keep
    zero-volume boxes comparable. Ties go to the smaller resulting volume and
    then to the earliest candidate.
    """

    if not candidates:
        raise TreeInvariantError("cannot choose a subtree among zero candidates")
    lower = jnp.stack([candidate.minimum for candidate in candidates])
    upper = jnp.stack([candidate.maximum for candidate in candidates])
    old_volume = jnp.prod(upper - lower, axis=1) + 1.0
    new_volume = (
        jnp.prod(
            jnp.maximum(upper, box.maximum) - jnp.minimum(lower, box.minimum),
            axis=1,
        )
        + 1.0
    )
    growth = new_volume / old_volume
    order = jnp.lexsort((new_volume, growth))
    return int(order[0])


@jaxtyped(typechecker=beartype)
def pick_seeds(boxes: Sequence[Box]) -> tuple[int, int]:
    """Pick the two most separated boxes as seeds for a split.

    Per axis, the box with the greatest minimum corner and the box with the
    least maximum corner bound the separation on that axis. The axis with the
    widest separation wins (earliest axis on ties). When both seeds would be
    the same box, as happens for identical boxes, the first two are used.
    """

    if len(boxes) < 2:
        raise TreeInvariantError(f"cannot split {len(boxes)} entries")
    lower = jnp.stack([box.minimum for box in boxes])
    upper = jnp.stack([box.maximum for box in boxes])
    highest_lower = jnp.argmax(lower, axis=0)
    lowest_upper = jnp.argmin(upper, axis=0)
    axes = jnp.arange(lower.shape[1])
    separation = lower[highest_lower, axes] - upper[lowest_upper, axes]
    axis = int(jnp.argmax(separation))
    first = int(lowest_upper[axis])
    second = int(highest_lower[axis])
    if first == second:
        return 0, 1
    return first, second


def distribute(
    boxes: Sequence[Box],
    seeds: tuple[int, int],
    min_children: int,
) -> tuple[list[int], list[int]]:
    """Greedily assign every box index to one of two groups grown from ``seeds``.

    Once a group holds ``min_children`` entries the rest are forced into the
    other one. Otherwise an entry joins the group that keeps the summed group
    volume smallest, then the group whose own volume ends up smaller; exact
    ties go to the second group.
    """

    groups: tuple[list[int], list[int]] = ([seeds[0]], [seeds[1]])
    group_bounds = [boxes[seeds[0]], boxes[seeds[1]]]
    volumes = [group_bounds[0].volume + 1.0, group_bounds[1].volume + 1.0]

    for index, box in enumerate(boxes):
        if index in seeds:
            continue
        if len(groups[0]) >= min_children:
            target = 1
        elif len(groups[1]) >= min_children:
            target = 0
        else:
            grown = (group_bounds[0].union(box), group_bounds[1].union(box))
            grown_volumes = (grown[0].volume + 1.0, grown[1].volume + 1.0)
            total_if_first = grown_volumes[0] + volumes[1]
            total_if_second = grown_volumes[1] + volumes[0]
            if total_if_first != total_if_second:
                target = 0 if total_if_first < total_if_second else 1
            else:
                target = 0 if grown_volumes[0] < grown_volumes[1] else 1
            group_bounds[target] = grown[target]
            volumes[target] = grown_volumes[target]
        groups[target].append(index)
    return groups


def find_invariant_violations(
    arena: NodeArena,
    root: int,
    *,
    min_children: int,
    max_children: int,
    expected_items: Optional[int] = None,
) -> tuple[str, ...]:
    """Walk every node under ``root`` and describe each broken invariant.

    Cached boxes are compared against a from-scratch recomputation that does
    not refresh any dirty descendant; dirty nodes are skipped since they are
    already known to be stale.
    """

    violations: list[str] = []
    seen: set[int] = set()
    leaves = 0
    stack = [root]
    while stack:
        handle = stack.pop()
        if handle in seen:
            violations.append(f"node {handle} is reachable more than once")
            continue
        seen.add(handle)
        if not arena.is_live(handle):
            violations.append(f"node {handle} is referenced but not live")
            continue
        node = arena.node(handle)

        if node.item is not None and node.children is not None:
            violations.append(f"node {handle} holds both an item and children")

        if handle == root:
            if node.parent != NO_NODE:
                violations.append(f"root node {handle} has parent {node.parent}")
        else:
            if node.kind == "empty":
                violations.append(f"non-root node {handle} is empty")
            if node.parent == NO_NODE:
                violations.append(f"node {handle} has no parent")
            elif not arena.is_live(node.parent):
                violations.append(f"node {handle} points at dead parent {node.parent}")
            else:
                parent = arena.node(node.parent)
                if parent.children is None or handle not in parent.children:
                    violations.append(
                        f"node {handle} is not listed by its parent {node.parent}"
                    )
                if node.level != parent.level - 1:
                    violations.append(
                        f"node {handle} has level {node.level} under parent "
                        f"{node.parent} at level {parent.level}"
                    )

        if node.children is not None:
            count = len(node.children)
            if count == 0:
                violations.append(f"internal node {handle} has no children")
            if count > max_children:
                violations.append(
                    f"node {handle} has {count} children (max {max_children})"
                )
            if handle != root and count < min_children:
                violations.append(
                    f"node {handle} has {count} children (min {min_children})"
                )
            if node.level == 0:
                violations.append(f"internal node {handle} sits at level 0")
            stack.extend(reversed(node.children))

        if node.item is not None:
            leaves += 1
            if node.level != 0:
                violations.append(f"leaf node {handle} sits at level {node.level}")

        if not node.dirty:
            fresh = arena.peek_bounds(handle)
            if node.cached_bounds != fresh:
                violations.append(
                    f"node {handle} caches {node.cached_bounds!r} but spans {fresh!r}"
                )

    if expected_items is not None and leaves != expected_items:
        violations.append(f"tree holds {leaves} leaves but reports {expected_items} items")
    return tuple(violations)


__all__ = [
    "NO_NODE",
    "NodeArena",
    "NodeKind",
    "TreeInvariantError",
    "choose_subtree",
    "distribute",
    "find_invariant_violations",
    "pick_seeds",
]
