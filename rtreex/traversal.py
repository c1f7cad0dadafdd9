"""Depth-first traversal and box queries over the R-tree node arena.

Every generator here keeps its own worklist, so each call is an independent
traversal. None of them snapshot the tree: mutating the tree while one is
being consumed is the caller's responsibility to avoid.
"""

from __future__ import annotations

from typing import Callable, Iterator, Literal

from ._tree_impl import NodeArena
from .bounds import Box
from .protocols import BoundedItem

SearchMode = Literal["contained_within", "contains", "overlaps", "exact_match"]

BoxTest = Callable[[Box, Box], bool]


def _contained_within(search: Box, box: Box) -> bool:
    return search.contains_box(box)


def _contains(search: Box, box: Box) -> bool:
    return box.contains_box(search)


def _overlaps(search: Box, box: Box) -> bool:
    return search.overlaps(box)


def _exact_match(search: Box, box: Box) -> bool:
    return search == box


# (leaf test, descend-if test) per mode. An ancestor's box always encloses
# its descendants, so leaves that must contain the search box can only sit
# below nodes that contain it too.
_SEARCH_TESTS: dict[str, tuple[BoxTest, BoxTest]] = {
    "contained_within": (_contained_within, _overlaps),
    "contains": (_contains, _overlaps),
    "overlaps": (_overlaps, _overlaps),
    "exact_match": (_exact_match, _contains),
}


def resolve_search_mode(mode: str) -> SearchMode:
    """Validate a search mode string."""

    if mode not in _SEARCH_TESTS:
        supported = ", ".join(f"'{name}'" for name in _SEARCH_TESTS)
        raise ValueError(f"Unsupported search mode '{mode}'. Supported: ({supported})")
    return mode  # type: ignore[return-value]


def iter_nodes(arena: NodeArena, root: int) -> Iterator[int]:
    """Yield every node handle under ``root`` in depth-first pre-order."""

    stack = [root]
    while stack:
        handle = stack.pop()
        yield handle
        children = arena.node(handle).children
        if children:
            stack.extend(reversed(children))


def iter_items(arena: NodeArena, root: int) -> Iterator[BoundedItem]:
    """Yield every stored item, depth-first, without any pruning."""

    for handle in iter_nodes(arena, root):
        item = arena.node(handle).item
        if item is not None:
            yield item


def iter_matching_leaves(
    arena: NodeArena,
    root: int,
    box: Box,
    mode: SearchMode,
) -> Iterator[int]:
    """Yield handles of leaves whose box satisfies ``mode`` against ``box``."""

    leaf_test, descend_test = _SEARCH_TESTS[resolve_search_mode(mode)]
    stack = [root]
    while stack:
        handle = stack.pop()
        node = arena.node(handle)
        kind = node.kind
        if kind == "empty":
            continue
        node_box = arena.bounds(handle)
        if kind == "leaf":
            if leaf_test(box, node_box):
                yield handle
        elif descend_test(box, node_box):
            stack.extend(reversed(node.children))


def iter_matches(
    arena: NodeArena,
    root: int,
    box: Box,
    mode: SearchMode,
) -> Iterator[BoundedItem]:
    """Yield the items stored in leaves matching ``mode`` against ``box``."""

    for handle in iter_matching_leaves(arena, root, box, mode):
        yield arena.node(handle).item


__all__ = [
    "SearchMode",
    "iter_items",
    "iter_matches",
    "iter_matching_leaves",
    "iter_nodes",
    "resolve_search_mode",
]
