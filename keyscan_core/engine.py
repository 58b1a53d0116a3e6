"""
Inventory matching: compare a query against every stored key and decide.

The per-candidate comparisons are independent and may run concurrently. The
best/second-best selection is a fold over (score, original index) pairs whose
ordering key is total, so the result is the same whatever order partial
results are merged in, and ties always go to the earliest inventory item.
"""

from concurrent.futures import ThreadPoolExecutor
from functools import reduce
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union

from keyscan_core.errors import InvalidSignature
from keyscan_core.models import (
    CandidateScore,
    ComparisonResult,
    Decision,
    InventoryCandidate,
    MatchOutcome,
    Signature,
    SkippedCandidate,
)
from keyscan_core.similarity import SignatureComparator, ensure_valid_signature
from keyscan_core.strategies import DecisionThresholds, MatchingStrategy


class ScoredCandidate(NamedTuple):
    index: int
    key_id: str
    result: ComparisonResult

    @property
    def score(self) -> float:
        return self.result.overall_similarity


BestTwo = Tuple[ScoredCandidate, ...]

THRESHOLD_TOLERANCE = 1e-9


def _rank_key(item: ScoredCandidate) -> Tuple[float, int]:
    return (-item.score, item.index)


def merge_best_two(left: BestTwo, right: BestTwo) -> BestTwo:
    """Merge two partial reductions, keeping the two best entries."""
    return tuple(sorted(left + right, key=_rank_key)[:2])


def keep_best_two(acc: BestTwo, item: ScoredCandidate) -> BestTwo:
    """Fold step: add one scored candidate to a best-two accumulator."""
    return merge_best_two(acc, (item,))


def _reaches(value: float, threshold: float) -> bool:
    # Scores and margins come out of float arithmetic: 0.9 - 0.8 < 0.1.
    return value >= threshold - THRESHOLD_TOLERANCE


def decide(
    best_score: float,
    margin: float,
    thresholds: DecisionThresholds,
    single_candidate: bool = False,
) -> Decision:
    """
    Classify the best score.

    Thresholds are inclusive up to THRESHOLD_TOLERANCE. A lone candidate has
    no competitor, so the margin rule does not apply to it.
    """
    margin_ok = single_candidate or _reaches(margin, thresholds.margin)
    if _reaches(best_score, thresholds.match) and margin_ok:
        return "MATCH"
    if _reaches(best_score, thresholds.possible):
        return "POSSIBLE"
    return "NO_MATCH"


class MatchingEngine:
    """
    Runs a query signature against an inventory under a given strategy.

    Args:
        comparator: Signature comparator to use; a default one is created when omitted.
        max_workers: Number of worker threads for the comparison sweep. None or 1
            runs sequentially.
    """

    def __init__(self, comparator: Optional[SignatureComparator] = None, max_workers: Optional[int] = None):
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.comparator = comparator or SignatureComparator()
        self.max_workers = max_workers

    def _score(
        self, query: Signature, strategy: MatchingStrategy, index: int, candidate: InventoryCandidate
    ) -> Union[ScoredCandidate, SkippedCandidate]:
        try:
            signature = ensure_valid_signature(candidate.signature, key_id=candidate.key_id)
        except InvalidSignature as exc:
            return SkippedCandidate(index=index, key_id=candidate.key_id, reason=str(exc))
        return ScoredCandidate(index, candidate.key_id, self.comparator.compare(query, signature, strategy))

    def _sweep(
        self, query: Signature, inventory: Sequence[InventoryCandidate], strategy: MatchingStrategy
    ) -> List[Union[ScoredCandidate, SkippedCandidate]]:
        jobs = list(enumerate(inventory))
        if self.max_workers and self.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(lambda job: self._score(query, strategy, *job), jobs))
        return [self._score(query, strategy, index, candidate) for index, candidate in jobs]

    def match(
        self, query: Signature, inventory: Sequence[InventoryCandidate], strategy: MatchingStrategy
    ) -> MatchOutcome:
        """
        Decide which inventory key, if any, the query signature represents.

        Malformed candidates are skipped and reported; they never abort the
        sweep. When nothing can be compared the outcome is NO_MATCH with no
        best candidate.

        Raises:
            InvalidSignature: The query signature has no populated attributes.
        """
        ensure_valid_signature(query)

        results = self._sweep(query, inventory, strategy)
        scored = [item for item in results if isinstance(item, ScoredCandidate)]
        skipped = [item for item in results if isinstance(item, SkippedCandidate)]

        if not scored:
            return MatchOutcome(
                decision="NO_MATCH",
                strategy=strategy.name,
                query_confidence=query.confidence,
                skipped=skipped,
            )

        best_two = reduce(keep_best_two, scored, ())
        best = best_two[0]
        second = best_two[1] if len(best_two) > 1 else None
        margin = best.score - second.score if second is not None else 0.0

        ranking = [
            CandidateScore(
                index=item.index,
                key_id=item.key_id,
                score=item.score,
                match_type_hint=item.result.match_type_hint,
            )
            for item in sorted(scored, key=_rank_key)
        ]

        return MatchOutcome(
            decision=decide(best.score, margin, strategy.thresholds, single_candidate=second is None),
            best_candidate_id=best.key_id,
            best_score=best.score,
            second_best_score=second.score if second is not None else None,
            margin=margin,
            breakdown=best.result,
            strategy=strategy.name,
            query_confidence=query.confidence,
            ranking=ranking,
            skipped=skipped,
        )


def match_signature(
    query: Signature,
    inventory: Sequence[InventoryCandidate],
    strategy: MatchingStrategy,
    max_workers: Optional[int] = None,
) -> MatchOutcome:
    """Run one matching call with a throwaway engine."""
    return MatchingEngine(max_workers=max_workers).match(query, inventory, strategy)
