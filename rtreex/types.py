"""Shared result contracts for rtreex consumers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TreeStats:
    """Shape summary of an R-tree at one point in time."""

    num_items: int
    num_nodes: int
    height: int
    # Indexed by level; entry 0 counts leaves.
    nodes_per_level: tuple[int, ...]

    @property
    def num_internal_nodes(self) -> int:
        return self.num_nodes - self.num_items


__all__ = ["TreeStats"]
