# tests/test_shape.py
"""Tests for the geometric shape veto."""

import pytest

from keyscan_core.models import ShapeDescriptor
from keyscan_core.shape import (
    MOMENT_WEIGHT_FLOOR,
    ShapeVetoConfig,
    apply_veto,
    contour_distance,
    evaluate,
    has_geometry,
    moment_similarity,
    moment_weight,
)

OUTLINE = ((0.0, 0.0), (10.0, 0.0), (10.0, 5.0), (0.0, 5.0))
FAR_OUTLINE = tuple((x + 1000.0, y) for x, y in OUTLINE)

KEY_SHAPE = ShapeDescriptor(moments=(1.0, 0.5, 0.25), contour=OUTLINE)
SAME_SHAPE = ShapeDescriptor(moments=(1.0, 0.5, 0.25), contour=OUTLINE)
DISPLACED_SHAPE = ShapeDescriptor(moments=(1.0, 0.5, 0.25), contour=FAR_OUTLINE)
DIFFERENT_MOMENTS = ShapeDescriptor(moments=(0.01, 5.0, 9.0), contour=OUTLINE)


def test_moment_weights_decrease_then_floor() -> None:
    """Lower-order moments carry more weight; later ones share a floor."""
    weights = [moment_weight(i) for i in range(9)]
    assert weights == [1.0, 0.8, 0.6, 0.4, 0.3, 0.2, 0.1, MOMENT_WEIGHT_FLOOR, MOMENT_WEIGHT_FLOOR]


def test_identical_moments_are_fully_similar() -> None:
    """Equal sequences score 1.0."""
    assert moment_similarity((1.0, 0.5, 0.25, 0.1), (1.0, 0.5, 0.25, 0.1)) == pytest.approx(1.0)


def test_moment_similarity_is_weighted() -> None:
    """A discrepancy in a lower-order moment weighs more than one in a higher-order moment."""
    assert moment_similarity((1.0, 1.0, 1.0), (1.0, 0.5, 1.0)) == pytest.approx(2.0 / 2.4)
    assert moment_similarity((1.0, 1.0, 1.0), (0.5, 1.0, 1.0)) < moment_similarity((1.0, 1.0, 1.0), (1.0, 1.0, 0.5))


def test_moment_sign_is_ignored() -> None:
    """Reflection flips the sign of some invariants; magnitudes are compared."""
    assert moment_similarity((-1.0, 2.0, 3.0), (1.0, 2.0, 3.0)) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "a, b",
    [
        ((1.0, 0.5), (1.0, 0.5, 0.25)),
        ((), ()),
        ((0.0, 0.0, 0.0), (0.0, 0.0, 0.0)),
    ],
    ids=["too_few_moments", "empty", "all_zero"],
)
def test_unassessable_moments_score_zero(a, b) -> None:
    """Sequences that cannot be assessed give 0.0."""
    assert moment_similarity(a, b) == 0.0


def test_positions_zero_on_both_sides_are_skipped() -> None:
    """A moment that is zero on both sides does not dilute the similarity."""
    assert moment_similarity((1.0, 0.0, 0.5), (1.0, 0.0, 0.5)) == pytest.approx(1.0)


def test_contour_distance_identical_outlines() -> None:
    """Identical outlines are at distance 0."""
    assert contour_distance(OUTLINE, OUTLINE) == pytest.approx(0.0)


def test_directed_and_symmetric_distance() -> None:
    """The directed metric depends on argument order; the symmetric one does not."""
    segment = ((0.0, 0.0), (10.0, 0.0))
    point = ((0.0, 0.0),)

    assert contour_distance(segment, point, metric="directed") == pytest.approx(5.0)
    assert contour_distance(point, segment, metric="directed") == pytest.approx(0.0)
    assert contour_distance(segment, point) == pytest.approx(2.5)
    assert contour_distance(point, segment) == pytest.approx(2.5)


def test_missing_contour_has_no_distance() -> None:
    """An absent outline cannot contribute a discrepancy."""
    assert contour_distance(None, OUTLINE) == 0.0
    assert contour_distance(OUTLINE, ()) == 0.0


def test_long_contours_use_every_point() -> None:
    """Outlines longer than 200 points are measured in full by default."""
    dense = tuple((float(i), 0.0) for i in range(300))
    even = tuple((float(i), 0.0) for i in range(0, 300, 2))

    # Odd points sit 1 away from the nearest even point, even points 0 away.
    assert contour_distance(dense, even, metric="directed") == pytest.approx(0.5)
    assert contour_distance(dense, even, metric="directed", max_points=None) == pytest.approx(0.5)


def test_thinning_is_opt_in() -> None:
    """A caller-supplied point limit thins the outline before measuring."""
    dense = tuple((float(i), 0.0) for i in range(300))
    even = tuple((float(i), 0.0) for i in range(0, 300, 2))

    assert contour_distance(dense, even, metric="directed", max_points=150) == pytest.approx(0.0)
    assert ShapeVetoConfig().max_contour_points is None


def test_evaluate_reports_both_signals() -> None:
    """A displaced outline fails on distance even though the moments agree."""
    assessment = evaluate(KEY_SHAPE, DISPLACED_SHAPE, ShapeVetoConfig())
    assert assessment.similarity == pytest.approx(1.0)
    assert assessment.distance > 150.0
    assert not assessment.passed


def test_plausible_shapes_keep_the_score() -> None:
    """Passing the check leaves the score untouched."""
    score, result = apply_veto(0.9, KEY_SHAPE, SAME_SHAPE, ShapeVetoConfig(mode="strict"))
    assert score == 0.9
    assert result.status == "passed"
    assert result.passed
    assert result.factor == 1.0


def test_missing_descriptor_skips_the_veto() -> None:
    """Geometry is a veto, not a requirement."""
    score, result = apply_veto(0.9, KEY_SHAPE, None, ShapeVetoConfig(mode="strict"))
    assert score == 0.9
    assert result.status == "skipped"
    assert result.similarity is None


@pytest.mark.parametrize(
    "shape_a, shape_b",
    [
        (ShapeDescriptor(), ShapeDescriptor()),
        (KEY_SHAPE, ShapeDescriptor(moments=())),
        (ShapeDescriptor(contour=()), KEY_SHAPE),
    ],
    ids=["both_empty", "empty_candidate", "empty_query"],
)
def test_empty_descriptor_skips_the_veto(shape_a: ShapeDescriptor, shape_b: ShapeDescriptor) -> None:
    """A descriptor with neither moments nor outline is treated as no geometry."""
    score, result = apply_veto(1.0, shape_a, shape_b, ShapeVetoConfig(mode="strict"))
    assert score == 1.0
    assert result.status == "skipped"
    assert result.passed


def test_has_geometry() -> None:
    """Moments alone or an outline alone count as geometry."""
    assert not has_geometry(None)
    assert not has_geometry(ShapeDescriptor())
    assert has_geometry(ShapeDescriptor(moments=(1.0,)))
    assert has_geometry(ShapeDescriptor(contour=OUTLINE))


@pytest.mark.parametrize(
    "failing_shape",
    [DISPLACED_SHAPE, DIFFERENT_MOMENTS],
    ids=["distance_over_ceiling", "moments_under_floor"],
)
def test_strict_veto_zeroes_the_score(failing_shape: ShapeDescriptor) -> None:
    """Strict mode turns any implausible pair into a score of 0."""
    score, result = apply_veto(1.0, KEY_SHAPE, failing_shape, ShapeVetoConfig(mode="strict"))
    assert score == 0.0
    assert result.status == "vetoed"
    assert not result.passed


def test_soft_veto_applies_the_penalty() -> None:
    """Soft mode multiplies the score by the penalty factor."""
    score, result = apply_veto(1.0, KEY_SHAPE, DIFFERENT_MOMENTS, ShapeVetoConfig(mode="soft"))
    assert score == pytest.approx(0.88)
    assert result.status == "penalized"
    assert result.factor == pytest.approx(0.88)

    score, _ = apply_veto(0.5, KEY_SHAPE, DIFFERENT_MOMENTS, ShapeVetoConfig(mode="soft", penalty_factor=0.6))
    assert score == pytest.approx(0.3)


def test_off_mode_only_reports() -> None:
    """With the veto off an implausible pair is reported but not punished."""
    score, result = apply_veto(0.9, KEY_SHAPE, DISPLACED_SHAPE, ShapeVetoConfig(mode="off"))
    assert score == 0.9
    assert result.status == "skipped"
    assert not result.passed
    assert result.distance > 150.0


def test_contour_points_accept_mappings() -> None:
    """Describers may emit points as {x, y} objects."""
    shape = ShapeDescriptor(moments=(1.0, 0.5, 0.25), contour=[{"x": 0, "y": 0}, {"x": 10, "y": 0}])
    assert shape.contour == ((0.0, 0.0), (10.0, 0.0))
