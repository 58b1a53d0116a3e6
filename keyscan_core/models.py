"""
Single source of truth (SSoT) for all data models in the KeyScan matching core.

This module defines the Pydantic models shared by the comparison logic, the
engine, the service boundary and the API layer. Inputs the core must never
mutate (signatures, shape descriptors, inventory candidates) are frozen and use
tuples for their sequences.
"""

from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Unit = Annotated[float, Field(ge=0.0, le=1.0)]

# Booleans are compared as categorical labels, tuples of numbers as sequences
# (cut depths) and tuples of strings as free text.
AttributeValue = Union[bool, int, float, str, Tuple[float, ...], Tuple[str, ...], None]

Point = Tuple[float, float]

Decision = Literal["MATCH", "POSSIBLE", "NO_MATCH"]

AttributeReason = Literal["exact", "partial", "mismatch", "missing", "out-of-range", "absent"]

VetoStatus = Literal["skipped", "passed", "penalized", "vetoed"]

MatchTypeHint = Literal[
    "insufficient-data",
    "geometry-mismatch",
    "exact-match",
    "strong-categorical-match",
    "partial-match",
    "weak-match",
]


def is_populated(value: AttributeValue) -> bool:
    """Return True when an attribute value carries usable data."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (tuple, list)):
        return len(value) > 0
    return True


class ShapeDescriptor(BaseModel):
    """Invariant geometric moments plus an optional outline of a key."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    moments: Tuple[float, ...] = Field(default=(), description="Ordered invariant moments, lowest order first")
    contour: Optional[Tuple[Point, ...]] = Field(default=None, description="Outline points as (x, y)")

    @field_validator("contour", mode="before")
    @classmethod
    def _coerce_points(cls, value):
        # Describers emit points either as {"x": .., "y": ..} or as pairs.
        if value is None:
            return None
        points = []
        for point in value:
            if isinstance(point, dict):
                points.append((point["x"], point["y"]))
            else:
                points.append(tuple(point))
        return tuple(points)


class Signature(BaseModel):
    """Structured description of one physical key."""
    model_config = ConfigDict(frozen=True)

    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)
    shape: Optional[ShapeDescriptor] = None
    confidence: Unit = Field(default=0.5, description="Describer confidence, carried through untouched")

    @property
    def populated(self) -> Dict[str, AttributeValue]:
        """Attributes that carry a usable value."""
        return {name: value for name, value in self.attributes.items() if is_populated(value)}

    @property
    def is_valid(self) -> bool:
        return bool(self.populated)


class InventoryCandidate(BaseModel):
    """A stored key and the signature recorded for it."""
    model_config = ConfigDict(frozen=True)

    key_id: str = Field(..., description="Stable identifier of the stored key")
    signature: Optional[Signature] = None


class AttributeScore(BaseModel):
    """Similarity of one attribute between two signatures."""
    model_config = ConfigDict(frozen=True)

    similarity: Unit
    weight: float = 0.0
    reason: AttributeReason


class ShapeVetoResult(BaseModel):
    """Outcome of the geometric plausibility check."""
    model_config = ConfigDict(frozen=True)

    status: VetoStatus
    similarity: Optional[float] = None
    distance: Optional[float] = None
    passed: bool = True
    factor: float = 1.0


class ComparisonResult(BaseModel):
    """Result of comparing a query signature with one candidate signature."""
    model_config = ConfigDict(frozen=True)

    overall_similarity: Unit
    attribute_similarity: Unit
    per_attribute: Dict[str, AttributeScore]
    shape_veto: ShapeVetoResult
    match_type_hint: MatchTypeHint


class CandidateScore(BaseModel):
    """One row of the diagnostic ranking returned with every outcome."""
    model_config = ConfigDict(frozen=True)

    index: int
    key_id: str
    score: Unit
    match_type_hint: MatchTypeHint


class SkippedCandidate(BaseModel):
    """Diagnostic note for an inventory item that could not be compared."""
    model_config = ConfigDict(frozen=True)

    index: int
    key_id: str
    reason: str


class MatchOutcome(BaseModel):
    """Final answer of the engine for one query."""
    model_config = ConfigDict(frozen=True)

    decision: Decision
    best_candidate_id: Optional[str] = None
    best_score: Optional[float] = None
    second_best_score: Optional[float] = None
    margin: float = 0.0
    breakdown: Optional[ComparisonResult] = None
    strategy: str
    query_confidence: Optional[float] = None
    ranking: List[CandidateScore] = Field(default_factory=list)
    skipped: List[SkippedCandidate] = Field(default_factory=list)
