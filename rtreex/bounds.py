"""Axis-aligned bounding boxes consumed by the R-tree."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Iterable, Union

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, ArrayLike, Float, jaxtyped

from .dtypes import COORD_DTYPE, as_coords

# Shape (0,) corners are reserved for the single empty box.
_EMPTY_CORNER = jnp.zeros((0,), dtype=COORD_DTYPE)


@dataclass(frozen=True, eq=False)
class Box:
    """Immutable axis-aligned box described by its minimum/maximum corners.

    Corners are 1D coordinate arrays of equal length and must be finite. A
    corner pair with ``minimum > maximum`` on any axis collapses to the one
    empty box, which has zero-length corners. The empty box is the identity
    of :meth:`union`; it contains nothing, overlaps nothing and is contained
    by nothing.
    """

    minimum: Array
    maximum: Array

    def __post_init__(self) -> None:
        lower = as_coords(self.minimum)
        upper = as_coords(self.maximum)
        if lower.ndim != 1 or upper.shape != lower.shape:
            raise ValueError(
                "box corners must be 1D arrays of equal length; "
                f"received shapes {lower.shape} and {upper.shape}"
            )
        if not (bool(jnp.all(jnp.isfinite(lower))) and bool(jnp.all(jnp.isfinite(upper)))):
            raise ValueError(
                "box corners must be finite; "
                f"received minimum={lower.tolist()} maximum={upper.tolist()}"
            )
        if not bool(jnp.all(lower <= upper)):
            lower = upper = _EMPTY_CORNER
        object.__setattr__(self, "minimum", lower)
        object.__setattr__(self, "maximum", upper)

    @classmethod
    def _from_trusted(cls, lower: Array, upper: Array) -> "Box":
        # Corners derived from already-validated boxes skip the checks.
        box = cls.__new__(cls)
        object.__setattr__(box, "minimum", lower)
        object.__setattr__(box, "maximum", upper)
        return box

    @classmethod
    def empty(cls) -> "Box":
        """Return the canonical empty box."""

        return _EMPTY_BOX

    @classmethod
    def from_point(cls, point: ArrayLike) -> "Box":
        """Return the zero-size box sitting on ``point``."""

        coords = as_coords(point)
        return cls(coords, coords)

    @property
    def is_empty(self) -> bool:
        return self.minimum.shape[0] == 0

    @property
    def dimension(self) -> int:
        """Number of axes (0 for the empty box)."""

        return int(self.minimum.shape[0])

    @property
    def size(self) -> Array:
        return self.maximum - self.minimum

    @property
    def center(self) -> Array:
        return 0.5 * (self.minimum + self.maximum)

    @property
    def volume(self) -> float:
        """Product of the per-axis extents; 0 for empty or degenerate boxes."""

        if self.is_empty:
            return 0.0
        return float(jnp.prod(self.size))

    def _require_dimension(self, other_dim: int) -> None:
        if other_dim != self.dimension:
            raise ValueError(
                "box dimensions must match; "
                f"received {self.dimension} and {other_dim}"
            )

    def contains_point(self, point: ArrayLike) -> bool:
        """Whether ``point`` lies inside the box, boundary included."""

        if self.is_empty:
            return False
        coords = as_coords(point)
        if coords.shape != self.minimum.shape:
            raise ValueError(
                f"point must have shape {self.minimum.shape}; received {coords.shape}"
            )
        return bool(jnp.all((coords >= self.minimum) & (coords <= self.maximum)))

    def contains_box(self, other: "Box") -> bool:
        """Whether ``other`` lies entirely inside the box."""

        if self.is_empty or other.is_empty:
            return False
        self._require_dimension(other.dimension)
        return bool(
            jnp.all(other.minimum >= self.minimum)
            & jnp.all(other.maximum <= self.maximum)
        )

    def contains(self, other: Union["Box", ArrayLike]) -> bool:
        """Dispatch to :meth:`contains_box` or :meth:`contains_point`."""

        if isinstance(other, Box):
            return self.contains_box(other)
        return self.contains_point(other)

    def clear_of(self, other: "Box") -> bool:
        """Whether the two boxes are separated along at least one axis."""

        if self.is_empty or other.is_empty:
            return True
        self._require_dimension(other.dimension)
        return bool(
            jnp.any(self.minimum > other.maximum)
            | jnp.any(other.minimum > self.maximum)
        )

    def overlaps(self, other: "Box") -> bool:
        """Whether the boxes share at least one point (touching counts)."""

        return not self.clear_of(other)

    def union(self, other: "Box") -> "Box":
        """Smallest box enclosing both boxes."""

        if self.is_empty:
            return other
        if other.is_empty:
            return self
        self._require_dimension(other.dimension)
        return Box._from_trusted(
            jnp.minimum(self.minimum, other.minimum),
            jnp.maximum(self.maximum, other.maximum),
        )

    def encapsulating(self, point: ArrayLike) -> "Box":
        """Smallest box enclosing this box and ``point``."""

        return self.union(Box.from_point(point))

    def expanded_by(self, amount: float) -> "Box":
        """Grow (or shrink, for negative ``amount``) every face by ``amount``."""

        if self.is_empty:
            return self
        return Box(self.minimum - amount, self.maximum + amount)

    def corners(self) -> tuple[Array, ...]:
        """All ``2**dimension`` corner points, minimum corner first."""

        if self.is_empty:
            return ()
        return tuple(
            jnp.where(jnp.asarray(mask), self.maximum, self.minimum)
            for mask in itertools.product((False, True), repeat=self.dimension)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Box):
            return NotImplemented
        if self.minimum.shape != other.minimum.shape:
            return False
        return bool(
            jnp.array_equal(self.minimum, other.minimum)
            and jnp.array_equal(self.maximum, other.maximum)
        )

    def __hash__(self) -> int:
        return hash((tuple(self.minimum.tolist()), tuple(self.maximum.tolist())))

    def __repr__(self) -> str:
        if self.is_empty:
            return "Box(empty)"
        return f"Box(minimum={self.minimum.tolist()}, maximum={self.maximum.tolist()})"


_EMPTY_BOX = Box._from_trusted(_EMPTY_CORNER, _EMPTY_CORNER)


def union_all(boxes: Iterable[Box]) -> Box:
    """Union an arbitrary number of boxes in one vectorised reduction."""

    populated = [box for box in boxes if not box.is_empty]
    if not populated:
        return _EMPTY_BOX
    if len(populated) == 1:
        return populated[0]
    lower = jnp.min(jnp.stack([box.minimum for box in populated]), axis=0)
    upper = jnp.max(jnp.stack([box.maximum for box in populated]), axis=0)
    return Box._from_trusted(lower, upper)


@jaxtyped(typechecker=beartype)
def infer_bounds(
    points: Float[Array, "n dim"],
    *,
    relative_padding: float = 0.0,
    min_padding: float = 0.0,
) -> Box:
    """Infer the box enclosing a point cloud, optionally padded on every side."""

    minimum = jnp.min(points, axis=0)
    maximum = jnp.max(points, axis=0)
    span = maximum - minimum
    padding = jnp.maximum(span * relative_padding, jnp.full_like(span, min_padding))
    return Box(minimum - padding, maximum + padding)


__all__ = ["Box", "infer_bounds", "union_all"]
