"""rtreex: a self-balancing R-tree over axis-aligned boxes."""

from jax import config as _jax_config

# Box coordinates are float64 so cached unions compare exactly.
_jax_config.update("jax_enable_x64", True)

from .bounds import Box, infer_bounds, union_all
from .dtypes import COORD_DTYPE, as_coords
from .protocols import BoundedItem, BoxEntry
from .traversal import SearchMode
from .tree import (
    MAX_CHILDREN,
    MIN_CHILDREN,
    RTree,
    RTreeConfig,
    TreeInvariantError,
)
from .types import TreeStats

__all__ = [
    "COORD_DTYPE",
    "MAX_CHILDREN",
    "MIN_CHILDREN",
    "BoundedItem",
    "Box",
    "BoxEntry",
    "RTree",
    "RTreeConfig",
    "SearchMode",
    "TreeInvariantError",
    "TreeStats",
    "as_coords",
    "infer_bounds",
    "union_all",
]
