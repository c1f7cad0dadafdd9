"""Public dynamic R-tree API for rtreex."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

from jaxtyping import ArrayLike

from . import _tree_impl, traversal
from .bounds import Box
from .protocols import BoundedItem
from .traversal import SearchMode
from .types import TreeStats

MIN_CHILDREN = 4
MAX_CHILDREN = 2 * MIN_CHILDREN - 1

NO_NODE = _tree_impl.NO_NODE
TreeInvariantError = _tree_impl.TreeInvariantError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RTreeConfig:
    """Resolved node-capacity options for an :class:`RTree`."""

    min_children: int = MIN_CHILDREN

    def __post_init__(self) -> None:
        if self.min_children < 2:
            raise ValueError(f"min_children must be >= 2, received {self.min_children}")

    @property
    def max_children(self) -> int:
        """Largest child count a node may hold before it must split."""

        return 2 * self.min_children - 1


class RTree:
    """Self-balancing tree of items indexed by their axis-aligned boxes.

    Leaves each wrap one item and sit at level 0; internal nodes hold
    between ``min_children`` and ``max_children`` children of one level
    below (the root may hold fewer). Node boxes are cached and recomputed
    lazily after structural changes.

    The tree is not thread-safe, and iterators returned by :meth:`search` and
    :meth:`items` must not be consumed across a mutation.
    """

    def __init__(
        self,
        *,
        min_children: int = MIN_CHILDREN,
        config: Optional[RTreeConfig] = None,
    ) -> None:
        self._config = config or RTreeConfig(min_children=min_children)
        self._arena = _tree_impl.NodeArena()
        self._root = self._arena.allocate_empty()
        self._size = 0
        self._dimension: Optional[int] = None

    @property
    def config(self) -> RTreeConfig:
        return self._config

    @property
    def height(self) -> int:
        """Number of levels, 0 for an empty tree and 1 for a single item."""

        if self._arena.kind(self._root) == "empty":
            return 0
        return self._arena.level(self._root) + 1

    @property
    def dimension(self) -> Optional[int]:
        """Axis count shared by every stored box, ``None`` while empty."""

        return self._dimension

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[BoundedItem]:
        return self.items()

    def __contains__(self, item: object) -> bool:
        return self._find_leaf(item) is not None

    def __repr__(self) -> str:
        return f"RTree(items={self._size}, height={self.height})"

    def bounds(self) -> Box:
        """Box enclosing every stored item (empty for an empty tree)."""

        return self._arena.bounds(self._root)

    def items(self) -> Iterator[BoundedItem]:
        """Lazily enumerate every stored item depth-first."""

        return self._iter_items()

    def _iter_items(self) -> Iterator[BoundedItem]:
        yield from traversal.iter_items(self._arena, self._root)

    def search(self, box: Box, mode: str = "overlaps") -> Iterator[BoundedItem]:
        """Lazily yield the items whose boxes match ``box`` under ``mode``.

        Modes:
            ``"contained_within"``: item box lies inside ``box``
            ``"contains"``: item box encloses ``box``
            ``"overlaps"``: item box and ``box`` share at least one point
            ``"exact_match"``: item box equals ``box``

        Each call starts an independent traversal.
        """

        resolved = traversal.resolve_search_mode(mode)
        if (
            not box.is_empty
            and self._dimension is not None
            and box.dimension != self._dimension
        ):
            raise ValueError(
                f"search box has dimension {box.dimension}; "
                f"tree stores dimension {self._dimension}"
            )
        return self._iter_matches(box, resolved)

    def _iter_matches(self, box: Box, mode: SearchMode) -> Iterator[BoundedItem]:
        yield from traversal.iter_matches(self._arena, self._root, box, mode)

    def query_point(self, point: ArrayLike) -> Iterator[BoundedItem]:
        """Lazily yield the items whose boxes contain ``point``."""

        return self.search(Box.from_point(point), "contains")

    def insert(self, item: BoundedItem) -> None:
        """Index ``item`` under its current box."""

        box = self._checked_bounds(item)
        kind = self._arena.kind(self._root)
        if kind == "empty":
            self._arena.set_item(self._root, item)
        elif kind == "leaf":
            leaf = self._arena.allocate_leaf(item)
            self._root = self._arena.allocate_internal([leaf, self._root])
        else:
            leaf = self._arena.allocate_leaf(item)
            # Leaves are attached to nodes at level 1.
            self._insert_subtree(leaf, box, 1)
        self._size += 1
        self._dimension = box.dimension

    def remove(self, item: BoundedItem) -> bool:
        """Remove ``item`` and report whether it was stored in the tree."""

        leaf = self._find_leaf(item)
        if leaf is None:
            logger.debug("remove: %s instance not found", type(item).__name__)
            return False

        if leaf == self._root:
            self._arena.set_item(self._root, None)
        else:
            self._remove_from(self._arena.parent(leaf), leaf)
            self._arena.release(leaf)
        self._size -= 1
        if self._size == 0:
            self._dimension = None
        return True

    def stats(self) -> TreeStats:
        """Summarise the current tree shape."""

        if self._arena.kind(self._root) == "empty":
            return TreeStats(num_items=0, num_nodes=0, height=0, nodes_per_level=())
        counts = [0] * self.height
        for handle in traversal.iter_nodes(self._arena, self._root):
            counts[self._arena.level(handle)] += 1
        return TreeStats(
            num_items=self._size,
            num_nodes=sum(counts),
            height=self.height,
            nodes_per_level=tuple(counts),
        )

    def invariant_violations(self) -> tuple[str, ...]:
        """Describe every broken structural or cached-bounds invariant."""

        return _tree_impl.find_invariant_violations(
            self._arena,
            self._root,
            min_children=self._config.min_children,
            max_children=self._config.max_children,
            expected_items=self._size,
        )

    def is_valid(self) -> bool:
        """Whether the tree satisfies every structural invariant."""

        return not self.invariant_violations()

    def require_valid(self) -> None:
        """Raise ``TreeInvariantError`` when any invariant is broken."""

        violations = self.invariant_violations()
        if not violations:
            return
        raise TreeInvariantError(
            "R-tree invariants violated: " + "; ".join(violations)
        )

    def _checked_bounds(self, item: object) -> Box:
        if not isinstance(item, BoundedItem):
            raise TypeError(
                f"items must provide bounds(); received {type(item).__name__}"
            )
        box = item.bounds()
        if not isinstance(box, Box):
            raise TypeError(
                f"bounds() must return a Box; received {type(box).__name__}"
            )
        if box.is_empty:
            raise ValueError("cannot index an item with an empty bounding box")
        if self._dimension is not None and box.dimension != self._dimension:
            raise ValueError(
                f"item box has dimension {box.dimension}; "
                f"tree stores dimension {self._dimension}"
            )
        return box

    def _find_leaf(self, item: object) -> Optional[int]:
        if self._dimension is None or not isinstance(item, BoundedItem):
            return None
        box = item.bounds()
        if not isinstance(box, Box) or box.dimension != self._dimension:
            return None
        # Distinct items may report equal boxes, so match by identity.
        for handle in traversal.iter_matching_leaves(
            self._arena, self._root, box, "exact_match"
        ):
            if self._arena.item(handle) is item:
                return handle
        return None

    def _insert_subtree(self, handle: int, box: Box, level: int) -> None:
        """Attach ``handle`` below a node at ``level``, growing the root on overflow."""

        sibling = self._insert_at_level(self._root, handle, box, level)
        if sibling is not None:
            self._root = self._arena.allocate_internal([self._root, sibling])
            logger.debug("Root split; tree height is now %d", self.height)

    def _insert_at_level(
        self,
        search: int,
        handle: int,
        box: Box,
        level: int,
    ) -> Optional[int]:
        search_level = self._arena.level(search)
        if search_level == level:
            pending: Optional[int] = handle
        elif search_level > level:
            children = self._arena.children(search)
            chosen = _tree_impl.choose_subtree(
                [self._arena.bounds(child) for child in children], box
            )
            pending = self._insert_at_level(children[chosen], handle, box, level)
        else:
            raise TreeInvariantError(
                f"cannot insert at level {level} below node {search} at level {search_level}"
            )

        if pending is None:
            return None
        if len(self._arena.children(search)) < self._config.max_children:
            self._arena.append_child(search, pending)
            return None
        return self._split(search, pending)

    def _split(self, handle: int, extra: int) -> int:
        """Split an overflowing node; return the new sibling for the parent."""

        entries = self._arena.children(handle) + [extra]
        boxes = [self._arena.bounds(entry) for entry in entries]
        seeds = _tree_impl.pick_seeds(boxes)
        first, second = _tree_impl.distribute(boxes, seeds, self._config.min_children)
        self._arena.set_children(handle, [entries[index] for index in first])
        sibling = self._arena.allocate_internal([entries[index] for index in second])
        logger.debug(
            "Split node %d at level %d into %d + %d children",
            handle,
            self._arena.level(handle),
            len(first),
            len(second),
        )
        return sibling

    def _remove_from(self, parent: int, handle: int) -> None:
        """Detach ``handle`` from ``parent`` and condense underflowing ancestors."""

        remaining = self._arena.detach_child(parent, handle)
        if parent == self._root:
            if remaining == 0:
                raise TreeInvariantError(f"root node {parent} lost its last child")
            if remaining == 1:
                (only_child,) = self._arena.dissolve(parent)
                self._root = only_child
                logger.debug("Root collapsed; tree height is now %d", self.height)
        elif remaining < self._config.min_children:
            level = self._arena.level(parent)
            self._remove_from(self._arena.parent(parent), parent)
            orphans = self._arena.dissolve(parent)
            logger.debug(
                "Condensed node %d at level %d; reinserting %d children",
                parent,
                level,
                len(orphans),
            )
            for orphan in orphans:
                self._insert_subtree(orphan, self._arena.bounds(orphan), level)


__all__ = [
    "MAX_CHILDREN",
    "MIN_CHILDREN",
    "NO_NODE",
    "RTree",
    "RTreeConfig",
    "TreeInvariantError",
]
