"""Unit coverage for the rtreex box value type."""

import jax.numpy as jnp
import numpy as np
import pytest

from rtreex import Box, infer_bounds, union_all


def _cube(lo: float, hi: float) -> Box:
    return Box([lo, lo, lo], [hi, hi, hi])


def test_inverted_corners_collapse_to_the_canonical_empty_box():
    inverted = Box([1.0, 0.0, 0.0], [0.0, 0.0, 0.0])

    assert inverted.is_empty
    assert inverted == Box.empty()
    assert hash(inverted) == hash(Box.empty())
    assert inverted.dimension == 0
    assert inverted.volume == 0.0


def test_empty_box_is_the_union_identity():
    box = _cube(0.0, 2.0)

    assert box.union(Box.empty()) == box
    assert Box.empty().union(box) == box
    assert Box.empty().union(Box.empty()).is_empty


def test_empty_box_contains_and_overlaps_nothing():
    box = _cube(0.0, 2.0)
    empty = Box.empty()

    assert not empty.contains(box)
    assert not box.contains(empty)
    assert not empty.contains(empty)
    assert not empty.overlaps(box)
    assert not box.overlaps(empty)
    assert empty.clear_of(box)


@pytest.mark.parametrize(
    "minimum, maximum",
    [
        ([0.0, float("nan"), 0.0], [1.0, 1.0, 1.0]),
        ([0.0, 0.0, 0.0], [1.0, float("inf"), 1.0]),
        ([-float("inf"), 0.0, 0.0], [1.0, 1.0, 1.0]),
    ],
)
def test_non_finite_corners_are_rejected(minimum, maximum):
    with pytest.raises(ValueError, match="finite"):
        Box(minimum, maximum)


def test_mismatched_corner_shapes_are_rejected():
    with pytest.raises(ValueError, match="equal length"):
        Box([0.0, 0.0], [1.0, 1.0, 1.0])
    with pytest.raises(ValueError, match="equal length"):
        Box([[0.0, 0.0]], [[1.0, 1.0]])


def test_volume_is_product_of_extents():
    box = Box([0.0, 0.0, 0.0], [2.0, 3.0, 4.0])

    assert box.volume == pytest.approx(24.0)
    np.testing.assert_allclose(np.asarray(box.size), [2.0, 3.0, 4.0])
    np.testing.assert_allclose(np.asarray(box.center), [1.0, 1.5, 2.0])


def test_degenerate_box_has_zero_volume_but_is_not_empty():
    flat = Box([0.0, 0.0, 1.0], [2.0, 2.0, 1.0])

    assert not flat.is_empty
    assert flat.volume == 0.0
    assert flat.contains([1.0, 1.0, 1.0])


def test_containment_includes_the_boundary():
    box = _cube(0.0, 1.0)

    assert box.contains([0.0, 1.0, 0.5])
    assert not box.contains([0.0, 1.0001, 0.5])
    assert box.contains(box)
    assert box.contains(_cube(0.25, 0.75))
    assert not _cube(0.25, 0.75).contains(box)


def test_contains_point_rejects_wrong_dimension():
    with pytest.raises(ValueError, match="point must have shape"):
        _cube(0.0, 1.0).contains_point([0.5, 0.5])


def test_touching_boxes_overlap():
    left = _cube(0.0, 1.0)
    right = Box([1.0, 0.0, 0.0], [2.0, 1.0, 1.0])
    apart = Box([1.5, 0.0, 0.0], [2.0, 1.0, 1.0])

    assert left.overlaps(right)
    assert right.overlaps(left)
    assert not left.overlaps(apart)
    assert left.clear_of(apart)


def test_union_spans_both_boxes():
    merged = Box([0.0, 5.0, 0.0], [1.0, 6.0, 1.0]).union(
        Box([-2.0, 0.0, 0.5], [0.5, 1.0, 3.0])
    )

    assert merged == Box([-2.0, 0.0, 0.0], [1.0, 6.0, 3.0])


def test_union_rejects_mismatched_dimensions():
    with pytest.raises(ValueError, match="dimensions must match"):
        _cube(0.0, 1.0).union(Box([0.0, 0.0], [1.0, 1.0]))


def test_union_all_matches_pairwise_union():
    boxes = [_cube(0.0, 1.0), Box.empty(), Box([3.0, -1.0, 0.0], [4.0, 0.0, 0.5])]

    assert union_all(boxes) == boxes[0].union(boxes[2])
    assert union_all([]).is_empty
    assert union_all([Box.empty(), Box.empty()]).is_empty


def test_point_box_helpers():
    point_box = Box.from_point([1.0, 2.0, 3.0])

    assert point_box.volume == 0.0
    assert point_box.contains([1.0, 2.0, 3.0])
    grown = point_box.encapsulating([0.0, 4.0, 3.0])
    assert grown == Box([0.0, 2.0, 3.0], [1.0, 4.0, 3.0])


def test_expanded_by_moves_every_face():
    box = _cube(0.0, 1.0)

    assert box.expanded_by(0.5) == _cube(-0.5, 1.5)
    assert box.expanded_by(-0.75).is_empty
    assert Box.empty().expanded_by(1.0).is_empty


def test_corners_enumerates_every_combination():
    corners = Box([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]).corners()

    assert len(corners) == 8
    assert jnp.array_equal(corners[0], jnp.array([0.0, 0.0, 0.0]))
    assert jnp.array_equal(corners[-1], jnp.array([1.0, 2.0, 3.0]))
    assert len({tuple(c.tolist()) for c in corners}) == 8
    assert Box.empty().corners() == ()


def test_equal_boxes_hash_alike():
    assert _cube(0.0, 1.0) == Box(jnp.zeros(3), jnp.ones(3))
    assert len({_cube(0.0, 1.0), Box(jnp.zeros(3), jnp.ones(3))}) == 1
    assert _cube(0.0, 1.0) != _cube(0.0, 2.0)


def test_infer_bounds_adds_positive_padding_for_non_degenerate_cloud():
    positions = jnp.array(
        [
            [-1.0, 2.0, 0.5],
            [3.0, -2.0, 1.5],
            [0.5, 1.0, -4.0],
        ]
    )
    box = infer_bounds(positions, relative_padding=0.05)
    assert jnp.all(box.minimum < jnp.min(positions, axis=0))
    assert jnp.all(box.maximum > jnp.max(positions, axis=0))


def test_infer_bounds_without_padding_is_tight():
    positions = jnp.array([[2.0, 2.0, 2.0], [2.0, 3.0, 2.0]])
    box = infer_bounds(positions)

    assert box == Box([2.0, 2.0, 2.0], [2.0, 3.0, 2.0])
    padded = infer_bounds(positions, min_padding=1e-3)
    # float64 rounding around 2.0 can shave the last bit off 2e-3.
    assert jnp.all(padded.size >= 1.9e-3)
