"""Structural protocols for items stored in an R-tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from .bounds import Box


@runtime_checkable
class BoundedItem(Protocol):
    """Anything able to report its axis-aligned bounding box.

    Items are identified by reference, so two items reporting equal boxes
    are still distinct entries. ``bounds()`` must stay stable while the item
    is stored in a tree.
    """

    def bounds(self) -> Box: ...


@dataclass(eq=False)
class BoxEntry:
    """Identity-compared item pairing a fixed box with an arbitrary payload."""

    box: Box
    payload: Any = None

    def bounds(self) -> Box:
        return self.box


__all__ = ["BoundedItem", "BoxEntry"]
