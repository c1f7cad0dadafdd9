"""Smoke test for the documented quick-start path."""

import jax
import jax.numpy as jnp

from rtreex import Box, BoxEntry, RTree, infer_bounds


def test_quickstart_pipeline_smoke():
    key = jax.random.PRNGKey(0)
    key_pos, key_size = jax.random.split(key)
    centers = jax.random.uniform(
        key_pos,
        (128, 3),
        minval=-1.0,
        maxval=1.0,
    )
    half_sizes = jax.random.uniform(
        key_size,
        (128, 3),
        minval=0.001,
        maxval=0.05,
    )

    tree = RTree()
    entries = [
        BoxEntry(Box(centers[i] - half_sizes[i], centers[i] + half_sizes[i]), payload=i)
        for i in range(128)
    ]
    for entry in entries:
        tree.insert(entry)

    domain = infer_bounds(centers, relative_padding=0.1)
    everything = list(tree.search(domain, "contained_within"))
    near_origin = list(tree.query_point(jnp.zeros(3)))

    assert len(tree) == 128
    assert tree.height >= 3
    assert len(everything) == 128
    assert all(entry.bounds().contains(jnp.zeros(3)) for entry in near_origin)
    assert tree.is_valid()

    for entry in entries[::2]:
        assert tree.remove(entry)
    assert len(tree) == 64
    assert tree.is_valid()
