"""Local dtype policy for rtreex box coordinates."""

import jax.numpy as jnp

# Cached unions are compared exactly against recomputed ones.
COORD_DTYPE = jnp.float64


def as_coords(x):
    """Convert a scalar/array to the rtreex coordinate dtype."""
    return jnp.asarray(x, dtype=COORD_DTYPE)


__all__ = ["COORD_DTYPE", "as_coords"]
