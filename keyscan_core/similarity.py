"""
Signature-level similarity for key matching.

Aggregates per-attribute similarities into a weighted average using the
strategy's weight table, then applies the strategy's shape veto. Operates
entirely in memory and is deterministic for identical inputs.
"""

from typing import Dict, Optional

from keyscan_core.attributes import AttributeComparator
from keyscan_core.errors import InvalidSignature
from keyscan_core.models import (
    AttributeScore,
    ComparisonResult,
    MatchTypeHint,
    ShapeVetoResult,
    Signature,
)
from keyscan_core.shape import apply_veto
from keyscan_core.strategies import MatchingStrategy

STRONG_CATEGORICAL_FLOOR = 0.75
PARTIAL_MATCH_FLOOR = 0.5


def ensure_valid_signature(signature: Optional[Signature], key_id: Optional[str] = None) -> Signature:
    """
    Check the signature invariant before comparison.

    Raises:
        InvalidSignature: The signature is missing or has no populated attribute.
    """
    if signature is None:
        raise InvalidSignature("Signature is missing", key_id=key_id)
    if not signature.is_valid:
        raise InvalidSignature(key_id=key_id)
    return signature


def _match_type_hint(
    strategy: MatchingStrategy,
    attribute_similarity: float,
    per_attribute: Dict[str, AttributeScore],
    veto: ShapeVetoResult,
) -> MatchTypeHint:
    if veto.status in ("penalized", "vetoed"):
        return "geometry-mismatch"
    if attribute_similarity >= 1.0:
        return "exact-match"

    categorical = [
        per_attribute[spec.name]
        for spec in strategy.attributes
        if spec.kind == "categorical" and spec.name in per_attribute and per_attribute[spec.name].weight > 0
    ]
    if (
        categorical
        and all(score.reason == "exact" for score in categorical)
        and attribute_similarity >= STRONG_CATEGORICAL_FLOOR
    ):
        return "strong-categorical-match"
    if attribute_similarity >= PARTIAL_MATCH_FLOOR:
        return "partial-match"
    return "weak-match"


class SignatureComparator:
    """Weighted multi-attribute comparison of two signatures under a strategy."""

    def compare(self, query: Signature, candidate: Signature, strategy: MatchingStrategy) -> ComparisonResult:
        """
        Compare a query signature with one candidate signature.

        Attributes absent from both signatures contribute no weight; an
        attribute missing on only one side contributes the neutral similarity.

        Args:
            query: Signature of the scanned key.
            candidate: Signature of an inventory key.
            strategy: Strategy providing weights, veto mode and neutral default.

        Returns:
            ComparisonResult with the overall similarity and its breakdown.

        Raises:
            InvalidSignature: Either signature has no populated attributes.
        """
        ensure_valid_signature(query)
        ensure_valid_signature(candidate)

        comparator = AttributeComparator(strategy.attributes, strategy.neutral_similarity)
        per_attribute: Dict[str, AttributeScore] = {}
        weighted_sum = 0.0
        total_weight = 0.0

        for spec in strategy.attributes:
            if spec.weight <= 0:
                continue
            score = comparator.assess(spec.name, query.attributes.get(spec.name), candidate.attributes.get(spec.name))
            applied = 0.0 if score.reason == "absent" else spec.weight
            per_attribute[spec.name] = score.model_copy(update={"weight": applied})
            weighted_sum += applied * score.similarity
            total_weight += applied

        if total_weight <= 0:
            return ComparisonResult(
                overall_similarity=0.0,
                attribute_similarity=0.0,
                per_attribute=per_attribute,
                shape_veto=ShapeVetoResult(status="skipped"),
                match_type_hint="insufficient-data",
            )

        attribute_similarity = min(1.0, weighted_sum / total_weight)
        overall, veto = apply_veto(attribute_similarity, query.shape, candidate.shape, strategy.shape_veto)

        return ComparisonResult(
            overall_similarity=max(0.0, min(1.0, overall)),
            attribute_similarity=attribute_similarity,
            per_attribute=per_attribute,
            shape_veto=veto,
            match_type_hint=_match_type_hint(strategy, attribute_similarity, per_attribute, veto),
        )


def compare_signatures(query: Signature, candidate: Signature, strategy: MatchingStrategy) -> ComparisonResult:
    """Compare two signatures with a throwaway comparator."""
    return SignatureComparator().compare(query, candidate, strategy)
