"""
Geometric plausibility check between two key outlines.

Two signals are combined:

1. A weighted similarity over the ordered invariant moments. Lower-order
   moments are more stable, so they carry more weight.
2. An outline discrepancy: the mean distance from each contour point to the
   nearest point of the other contour.

A pair of shapes is plausible when the moment similarity reaches the floor and
the distance stays under the ceiling. What happens to an implausible pair
depends on the veto mode (strict zeroes the score, soft multiplies it by a
penalty, off only reports).
"""

from typing import Literal, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from keyscan_core.models import Point, ShapeDescriptor, ShapeVetoResult

VetoMode = Literal["strict", "soft", "off"]
DistanceMetric = Literal["symmetric", "directed"]

MOMENT_WEIGHTS: Tuple[float, ...] = (1.0, 0.8, 0.6, 0.4, 0.3, 0.2, 0.1)
MOMENT_WEIGHT_FLOOR = 0.05


class ShapeVetoConfig(BaseModel):
    """Thresholds and behaviour of the shape veto for one strategy."""
    model_config = ConfigDict(frozen=True)

    mode: VetoMode = "soft"
    similarity_floor: float = Field(default=0.30, ge=0.0, le=1.0)
    distance_ceiling: float = Field(default=150.0, ge=0.0)
    penalty_factor: float = Field(default=0.88, gt=0.0, lt=1.0)
    distance_metric: DistanceMetric = "symmetric"
    min_moments: int = Field(default=3, ge=1)
    max_contour_points: Optional[int] = Field(default=None, ge=2)


class ShapeAssessment(NamedTuple):
    similarity: float
    distance: float
    passed: bool


def moment_weight(index: int) -> float:
    """Weight of the moment at a given position."""
    if index < len(MOMENT_WEIGHTS):
        return MOMENT_WEIGHTS[index]
    return MOMENT_WEIGHT_FLOOR


def moment_similarity(moments_a: Sequence[float], moments_b: Sequence[float], min_moments: int = 3) -> float:
    """
    Weighted normalized similarity of two moment sequences.

    Only the common prefix is compared. Positions where both moments are zero
    carry no information and are skipped.

    Args:
        moments_a: Moments of the first shape.
        moments_b: Moments of the second shape.
        min_moments: Minimum number of moments each side needs.

    Returns:
        Similarity in [0, 1]; 0 when either side cannot be assessed.
    """
    if len(moments_a) < min_moments or len(moments_b) < min_moments:
        return 0.0

    count = min(len(moments_a), len(moments_b))
    a = np.abs(np.asarray(moments_a[:count], dtype=float))
    b = np.abs(np.asarray(moments_b[:count], dtype=float))
    weights = np.array([moment_weight(i) for i in range(count)])

    usable = (a > 0) | (b > 0)
    if not usable.any():
        return 0.0

    largest = np.maximum(a, b)[usable]
    per_moment = np.clip(1.0 - np.abs(a - b)[usable] / largest, 0.0, 1.0)
    used_weights = weights[usable]
    similarity = float(np.dot(per_moment, used_weights) / used_weights.sum())
    return max(0.0, min(1.0, similarity))


def _subsample(points: np.ndarray, max_points: Optional[int]) -> np.ndarray:
    if max_points is None or len(points) <= max_points:
        return points
    step = int(np.ceil(len(points) / max_points))
    return points[::step]


def _directed_mean_distance(source: np.ndarray, target: np.ndarray) -> float:
    deltas = source[:, None, :] - target[None, :, :]
    nearest = np.sqrt((deltas ** 2).sum(axis=-1)).min(axis=1)
    return float(nearest.mean())


def contour_distance(
    contour_a: Optional[Sequence[Point]],
    contour_b: Optional[Sequence[Point]],
    metric: DistanceMetric = "symmetric",
    max_points: Optional[int] = None,
) -> float:
    """
    Mean nearest-neighbour distance between two outlines.

    The directed metric averages, over every point of contour_a, the distance
    to the closest point of contour_b. The symmetric metric averages both
    directions so that swapping the contours yields the same value.

    Every point is used unless max_points is given, in which case longer
    outlines are uniformly thinned to at most that many points first.

    Returns 0.0 when either contour is missing or empty.
    """
    if not contour_a or not contour_b:
        return 0.0

    a = _subsample(np.asarray(contour_a, dtype=float), max_points)
    b = _subsample(np.asarray(contour_b, dtype=float), max_points)

    forward = _directed_mean_distance(a, b)
    if metric == "directed":
        return forward
    return (forward + _directed_mean_distance(b, a)) / 2.0


def has_geometry(shape: Optional[ShapeDescriptor]) -> bool:
    """True when a descriptor carries moments or an outline."""
    return shape is not None and bool(shape.moments or shape.contour)


def evaluate(shape_a: ShapeDescriptor, shape_b: ShapeDescriptor, config: ShapeVetoConfig) -> ShapeAssessment:
    """Measure two shape descriptors against the plausibility thresholds."""
    similarity = moment_similarity(shape_a.moments, shape_b.moments, config.min_moments)
    distance = contour_distance(shape_a.contour, shape_b.contour, config.distance_metric, config.max_contour_points)
    passed = similarity >= config.similarity_floor and distance <= config.distance_ceiling
    return ShapeAssessment(similarity=similarity, distance=distance, passed=passed)


def apply_veto(
    score: float,
    shape_a: Optional[ShapeDescriptor],
    shape_b: Optional[ShapeDescriptor],
    config: ShapeVetoConfig,
) -> Tuple[float, ShapeVetoResult]:
    """
    Adjust an attribute-derived score with the shape veto.

    Geometry is a veto, not a requirement: when either signature carries no
    shape descriptor, or one with neither moments nor contour, the score is
    returned unchanged.

    Returns:
        The adjusted score and the veto outcome.
    """
    if not has_geometry(shape_a) or not has_geometry(shape_b):
        return score, ShapeVetoResult(status="skipped")

    assessment = evaluate(shape_a, shape_b, config)
    if assessment.passed or config.mode == "off":
        status = "passed" if assessment.passed else "skipped"
        return score, ShapeVetoResult(
            status=status,
            similarity=assessment.similarity,
            distance=assessment.distance,
            passed=assessment.passed,
        )

    if config.mode == "strict":
        factor, status = 0.0, "vetoed"
    else:
        factor, status = config.penalty_factor, "penalized"

    return score * factor, ShapeVetoResult(
        status=status,
        similarity=assessment.similarity,
        distance=assessment.distance,
        passed=False,
        factor=factor,
    )
