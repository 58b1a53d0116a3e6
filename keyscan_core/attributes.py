"""
Per-attribute similarity functions for key signatures.

Each attribute of a signature is compared according to its declared kind:

- categorical labels: exact match, or partial credit from a near-match table
- numeric scalars: linear fall-off over an attribute-specific range
- numeric sequences (cut depths): position-wise numeric similarity
- free text: case-insensitive token overlap
- codes (stamped codes): Levenshtein ratio over the alphanumeric characters

All functions are pure and symmetric in their two value arguments.
"""

import math
import re
from typing import Dict, FrozenSet, Iterable, Literal, Mapping, Optional, Sequence, Tuple

import Levenshtein
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from keyscan_core.models import AttributeReason, AttributeScore, AttributeValue, is_populated

AttributeKind = Literal["categorical", "numeric", "numeric-sequence", "text", "code"]

NUMERIC_KINDS = ("numeric", "numeric-sequence")

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")
_LABEL_SEPARATORS = re.compile(r"[\s_]+")


class NearMatchGroup(BaseModel):
    """Labels that are visually confusable and earn partial credit when swapped."""
    model_config = ConfigDict(frozen=True)

    labels: FrozenSet[str]
    credit: float = Field(..., ge=0.0, le=1.0)

    @field_validator("labels", mode="before")
    @classmethod
    def _normalize_labels(cls, value):
        return frozenset(normalize_label(label) for label in value)


class AttributeSpec(BaseModel):
    """How one named attribute is compared and how much it weighs."""
    model_config = ConfigDict(frozen=True)

    name: str
    kind: AttributeKind = "categorical"
    weight: float = Field(default=1.0, ge=0.0)
    normalization_range: float = Field(default=1.0, gt=0.0)
    tolerance: float = Field(default=0.0, ge=0.0)
    sanity_range: Optional[Tuple[float, float]] = None
    aliases: Dict[str, str] = Field(default_factory=dict)
    near_matches: Tuple[NearMatchGroup, ...] = ()

    @field_validator("aliases", mode="before")
    @classmethod
    def _normalize_aliases(cls, value):
        return {normalize_label(alias): normalize_label(target) for alias, target in (value or {}).items()}

    @model_validator(mode="after")
    def _check_sanity_range(self) -> "AttributeSpec":
        if self.sanity_range is not None and self.sanity_range[0] > self.sanity_range[1]:
            raise ValueError(f"sanity_range for '{self.name}' has low > high")
        return self


def normalize_label(value: object) -> str:
    """Lower-case a categorical label and fold whitespace/underscores to '-'."""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip().lower()
    return _LABEL_SEPARATORS.sub("-", text)


def tokenize(value: object) -> FrozenSet[str]:
    """Split free text into a set of lower-case alphanumeric tokens."""
    if isinstance(value, (tuple, list)):
        value = " ".join(str(part) for part in value)
    return frozenset(_TOKEN_PATTERN.findall(str(value).lower()))


def to_number(value: object) -> Optional[float]:
    """Parse a numeric attribute value, returning None when it is not a finite number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def categorical_similarity(spec: AttributeSpec, a: object, b: object) -> Tuple[float, AttributeReason]:
    label_a = spec.aliases.get(normalize_label(a), normalize_label(a))
    label_b = spec.aliases.get(normalize_label(b), normalize_label(b))
    if label_a == label_b:
        return 1.0, "exact"
    credit = max(
        (group.credit for group in spec.near_matches if label_a in group.labels and label_b in group.labels),
        default=0.0,
    )
    if credit > 0.0:
        return credit, "partial"
    return 0.0, "mismatch"


def _in_sanity_range(spec: AttributeSpec, number: float) -> bool:
    if spec.sanity_range is None:
        return True
    low, high = spec.sanity_range
    return low <= number <= high


def _linear_similarity(spec: AttributeSpec, a: float, b: float) -> float:
    excess = max(0.0, abs(a - b) - spec.tolerance)
    return max(0.0, 1.0 - excess / spec.normalization_range)


def _graded(similarity: float) -> AttributeReason:
    if similarity >= 1.0:
        return "exact"
    return "partial" if similarity > 0.0 else "mismatch"


def numeric_similarity(
    spec: AttributeSpec, a: object, b: object, neutral: float
) -> Tuple[float, AttributeReason]:
    number_a, number_b = to_number(a), to_number(b)
    if number_a is None or number_b is None:
        return neutral, "out-of-range"
    if not (_in_sanity_range(spec, number_a) and _in_sanity_range(spec, number_b)):
        return neutral, "out-of-range"
    similarity = _linear_similarity(spec, number_a, number_b)
    return similarity, _graded(similarity)


def sequence_similarity(
    spec: AttributeSpec, a: object, b: object, neutral: float
) -> Tuple[float, AttributeReason]:
    if not isinstance(a, (tuple, list)) or not isinstance(b, (tuple, list)):
        return neutral, "out-of-range"
    numbers_a = [to_number(item) for item in a]
    numbers_b = [to_number(item) for item in b]
    for number in numbers_a + numbers_b:
        if number is None or not _in_sanity_range(spec, number):
            return neutral, "out-of-range"
    # Positions present on only one side score 0.
    length = max(len(numbers_a), len(numbers_b))
    total = sum(_linear_similarity(spec, x, y) for x, y in zip(numbers_a, numbers_b))
    similarity = total / length
    return similarity, _graded(similarity)


def text_similarity(a: object, b: object) -> Tuple[float, AttributeReason]:
    tokens_a, tokens_b = tokenize(a), tokenize(b)
    similarity = len(tokens_a & tokens_b) / len(tokens_a | tokens_b)
    return similarity, _graded(similarity)


def code_similarity(a: object, b: object) -> Tuple[float, AttributeReason]:
    code_a = "".join(_TOKEN_PATTERN.findall(str(a).lower())).upper()
    code_b = "".join(_TOKEN_PATTERN.findall(str(b).lower())).upper()
    similarity = Levenshtein.ratio(code_a, code_b)
    return similarity, _graded(similarity)


def _is_comparable(spec: AttributeSpec, value: AttributeValue) -> bool:
    if not is_populated(value):
        return False
    if spec.kind in ("text", "code"):
        return bool(tokenize(value))
    return True


class AttributeComparator:
    """
    Compares single named attributes between two signatures.

    Attributes without a registered spec are compared as plain categorical
    labels. Missing data on one side scores the neutral similarity so that
    absent data neither rewards nor punishes a candidate.
    """

    def __init__(self, specs: Iterable[AttributeSpec] = (), neutral_similarity: float = 0.5):
        if not 0.0 <= neutral_similarity <= 1.0:
            raise ValueError("neutral_similarity must be within [0, 1]")
        self.specs: Mapping[str, AttributeSpec] = {spec.name: spec for spec in specs}
        self.neutral_similarity = neutral_similarity

    def spec_for(self, name: str) -> AttributeSpec:
        return self.specs.get(name) or AttributeSpec(name=name)

    def assess(self, name: str, value_a: AttributeValue, value_b: AttributeValue) -> AttributeScore:
        """
        Compare one attribute and explain the result.

        Args:
            name: Attribute name, used to look up its spec.
            value_a: Value on the first signature.
            value_b: Value on the second signature.

        Returns:
            AttributeScore with the similarity in [0, 1] and a reason label.
            The weight is left at 0; the signature comparator fills it in.
        """
        spec = self.spec_for(name)
        present_a = _is_comparable(spec, value_a)
        present_b = _is_comparable(spec, value_b)

        if not present_a and not present_b:
            return AttributeScore(similarity=self.neutral_similarity, reason="absent")
        if not present_a or not present_b:
            return AttributeScore(similarity=self.neutral_similarity, reason="missing")

        if spec.kind == "numeric":
            similarity, reason = numeric_similarity(spec, value_a, value_b, self.neutral_similarity)
        elif spec.kind == "numeric-sequence":
            similarity, reason = sequence_similarity(spec, value_a, value_b, self.neutral_similarity)
        elif spec.kind == "text":
            similarity, reason = text_similarity(value_a, value_b)
        elif spec.kind == "code":
            similarity, reason = code_similarity(value_a, value_b)
        else:
            similarity, reason = categorical_similarity(spec, value_a, value_b)

        return AttributeScore(similarity=max(0.0, min(1.0, similarity)), reason=reason)

    def compare(self, name: str, value_a: AttributeValue, value_b: AttributeValue) -> float:
        """Return the similarity in [0, 1] of one attribute."""
        return self.assess(name, value_a, value_b).similarity


def compare_attribute(
    name: str,
    value_a: AttributeValue,
    value_b: AttributeValue,
    specs: Sequence[AttributeSpec] = (),
    neutral_similarity: float = 0.5,
) -> float:
    """Convenience wrapper comparing a single attribute without keeping a comparator around."""
    return AttributeComparator(specs, neutral_similarity).compare(name, value_a, value_b)
