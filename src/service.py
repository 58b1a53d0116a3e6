# src/service.py
"""
Boundary between callers (API, scripts) and the matching core.

Resolves the active strategy from configuration, runs the engine, and logs
what happened. Persistence of match records is left to callers.
"""

from typing import Optional, Sequence

from pydantic import BaseModel

from keyscan_core.describer import KeyDescriber
from keyscan_core.engine import MatchingEngine
from keyscan_core.errors import InvalidSignature
from keyscan_core.models import InventoryCandidate, MatchOutcome, Signature
from keyscan_core.strategies import MatchingStrategy, StrategyRegistry, build_default_registry
from src.config import Settings, load_settings, resolve_strategy
from src.logger import info, warning, exception


class IdentificationResult(BaseModel):
    """Result of describing a scanned key and matching it against an inventory."""
    success: bool
    error: Optional[str] = None
    signature: Optional[Signature] = None
    outcome: Optional[MatchOutcome] = None


class KeyMatchingService:
    """
    Matches scanned keys against a user's inventory.

    Args:
        registry: Strategies available to callers; defaults to the built-in versions.
        settings: Service settings; defaults to the environment.
        engine: Matching engine; defaults to one sized by settings.max_workers.
    """

    def __init__(
        self,
        registry: Optional[StrategyRegistry] = None,
        settings: Optional[Settings] = None,
        engine: Optional[MatchingEngine] = None,
    ):
        self.registry = registry or build_default_registry()
        self.settings = settings or load_settings()
        self.engine = engine or MatchingEngine(max_workers=self.settings.max_workers)

    def strategy_for(self, name: Optional[str] = None) -> MatchingStrategy:
        """Resolve the strategy for one call (per-call name, else configured, else default)."""
        requested = name or self.settings.strategy
        if requested is not None and requested not in self.registry and self.settings.fallback_to_default:
            warning("Unknown strategy requested, falling back to default",
                    requested=requested, default=self.registry.default_name)
        strategy = resolve_strategy(self.settings, self.registry, name)
        if self.settings.has_overrides:
            info("Applied configured strategy overrides",
                 strategy=strategy.name,
                 thresholds=strategy.thresholds.model_dump(),
                 veto_mode=strategy.shape_veto.mode)
        return strategy

    def match(
        self,
        query: Signature,
        inventory: Sequence[InventoryCandidate],
        strategy_name: Optional[str] = None,
    ) -> MatchOutcome:
        """
        Match a query signature against an inventory.

        Raises:
            StrategyNotFound: The strategy name cannot be resolved.
            InvalidSignature: The query signature has no populated attributes.
        """
        strategy = self.strategy_for(strategy_name)
        outcome = self.engine.match(query, inventory, strategy)

        for skipped in outcome.skipped:
            warning("Skipped malformed inventory candidate",
                    key_id=skipped.key_id, index=skipped.index, reason=skipped.reason)

        info("Matched key signature against inventory",
             strategy=outcome.strategy,
             decision=outcome.decision,
             best_candidate_id=outcome.best_candidate_id,
             best_score=outcome.best_score,
             margin=outcome.margin,
             inventory_size=len(inventory),
             compared=len(outcome.ranking))
        return outcome

    async def identify(
        self,
        describer: KeyDescriber,
        image: bytes,
        inventory: Sequence[InventoryCandidate],
        mime_type: str = "image/jpeg",
        strategy_name: Optional[str] = None,
    ) -> IdentificationResult:
        """
        Describe a key image with the external describer, then match it.

        The describer is called exactly once. Its failure, or a description
        without usable attributes, is reported in the result rather than
        raised. Strategy misconfiguration still raises StrategyNotFound.
        """
        try:
            description = await describer.describe(image, mime_type)
        except Exception as e:
            exception("Key describer call failed", exc=e)
            return IdentificationResult(success=False, error=str(e))

        if not description.success or description.signature is None:
            warning("Key describer returned no signature", error=description.error)
            return IdentificationResult(success=False, error=description.error or "No signature returned")

        try:
            outcome = self.match(description.signature, inventory, strategy_name)
        except InvalidSignature as e:
            warning("Described key has no usable attributes", error=str(e))
            return IdentificationResult(success=False, error=str(e), signature=description.signature)
        return IdentificationResult(success=True, signature=description.signature, outcome=outcome)
