"""
Named, versioned matching strategies and the registry that holds them.

A strategy bundles the attribute weight table, the shape veto configuration
and the decision thresholds. Strategies are immutable; deriving a variant
(e.g. with thresholds overridden from the environment) always produces a new
object and leaves the registered one untouched.
"""

from typing import Dict, Iterable, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from keyscan_core.attributes import AttributeSpec, NearMatchGroup
from keyscan_core.errors import StrategyNotFound
from keyscan_core.shape import ShapeVetoConfig, VetoMode

DEFAULT_STRATEGY = "v6"


class DecisionThresholds(BaseModel):
    """Score and margin thresholds that classify the best candidate."""
    model_config = ConfigDict(frozen=True)

    match: float = Field(..., ge=0.0, le=1.0)
    possible: float = Field(..., ge=0.0, le=1.0)
    margin: float = Field(..., ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_order(self) -> "DecisionThresholds":
        if self.possible > self.match:
            raise ValueError("possible threshold cannot exceed the match threshold")
        return self


class MatchingStrategy(BaseModel):
    """A named scoring policy: weights, shape veto mode and thresholds."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    attributes: Tuple[AttributeSpec, ...]
    shape_veto: ShapeVetoConfig = ShapeVetoConfig()
    thresholds: DecisionThresholds
    neutral_similarity: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_attributes(self) -> "MatchingStrategy":
        names = [spec.name for spec in self.attributes]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Strategy '{self.name}' declares attributes twice: {', '.join(duplicates)}")
        return self

    @property
    def weights(self) -> Dict[str, float]:
        return {spec.name: spec.weight for spec in self.attributes}

    def with_overrides(
        self,
        match: Optional[float] = None,
        possible: Optional[float] = None,
        margin: Optional[float] = None,
        veto_mode: Optional[VetoMode] = None,
    ) -> "MatchingStrategy":
        """Return a copy with some thresholds or the veto mode replaced."""
        thresholds = DecisionThresholds(
            match=self.thresholds.match if match is None else match,
            possible=self.thresholds.possible if possible is None else possible,
            margin=self.thresholds.margin if margin is None else margin,
        )
        shape_veto = self.shape_veto
        if veto_mode is not None:
            shape_veto = ShapeVetoConfig(**{**self.shape_veto.model_dump(), "mode": veto_mode})
        return MatchingStrategy(
            name=self.name,
            description=self.description,
            attributes=self.attributes,
            shape_veto=shape_veto,
            thresholds=thresholds,
            neutral_similarity=self.neutral_similarity,
        )


class StrategyRegistry:
    """
    Lookup table of strategies by name.

    Names are registered once; a second registration under the same name is
    refused so that a running caller never sees a definition change.
    """

    def __init__(self, strategies: Iterable[MatchingStrategy] = (), default_name: str = DEFAULT_STRATEGY):
        self._strategies: Dict[str, MatchingStrategy] = {}
        self.default_name = default_name
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: MatchingStrategy) -> MatchingStrategy:
        if strategy.name in self._strategies:
            raise ValueError(f"Strategy '{strategy.name}' is already registered")
        self._strategies[strategy.name] = strategy
        return strategy

    def get(self, name: str) -> MatchingStrategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise StrategyNotFound(name, self.names()) from None

    def resolve(self, name: Optional[str] = None, fallback_to_default: bool = False) -> MatchingStrategy:
        """
        Resolve a strategy by name.

        Args:
            name: Requested strategy; None selects the registry default.
            fallback_to_default: Use the default when the name is unknown.
                Only honoured when the caller opts in explicitly.

        Raises:
            StrategyNotFound: Unknown name without fallback, or a missing default.
        """
        if name is None:
            return self.get(self.default_name)
        if name not in self._strategies and fallback_to_default:
            return self.get(self.default_name)
        return self.get(name)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def __iter__(self) -> Iterator[MatchingStrategy]:
        return iter(self._strategies.values())

    def __len__(self) -> int:
        return len(self._strategies)


# --- Built-in strategy versions ---

_CUT_COUNT_SANITY = (0.0, 20.0)
_GROOVE_SANITY = (0.0, 10.0)

_ROUND_OVAL = NearMatchGroup(labels={"round", "oval", "circular"}, credit=0.8)
_SQUARE_RECTANGULAR = NearMatchGroup(labels={"square", "rectangular", "rectangle"}, credit=0.8)

_SIZE_VARIANTS = (
    NearMatchGroup(labels={"rectangular", "rectangular-wide", "rectangular-narrow"}, credit=0.7),
    NearMatchGroup(labels={"round", "round-small", "round-large"}, credit=0.7),
    NearMatchGroup(labels={"square", "square-small", "square-large"}, credit=0.7),
)

_OPTIMIZED_ATTRIBUTES = (
    AttributeSpec(name="unique_mark", weight=0.45),
    AttributeSpec(name="key_color", weight=0.30),
    AttributeSpec(name="bow_shape", weight=0.15, near_matches=(_ROUND_OVAL, _SQUARE_RECTANGULAR)),
    AttributeSpec(
        name="number_of_cuts", kind="numeric", weight=0.05,
        normalization_range=1.0, tolerance=1.0, sanity_range=_CUT_COUNT_SANITY,
    ),
    AttributeSpec(name="blade_profile", weight=0.03),
    AttributeSpec(
        name="groove_count", kind="numeric", weight=0.02,
        normalization_range=1.0, sanity_range=_GROOVE_SANITY,
    ),
)

V3 = MatchingStrategy(
    name="v3",
    description="Optimized discrimination weights with a strict geometric veto",
    attributes=_OPTIMIZED_ATTRIBUTES,
    shape_veto=ShapeVetoConfig(mode="strict", similarity_floor=0.30, distance_ceiling=150.0),
    thresholds=DecisionThresholds(match=0.82, possible=0.70, margin=0.15),
)

V4 = MatchingStrategy(
    name="v4",
    description="V3 weights with a soft geometric penalty and tight thresholds",
    attributes=_OPTIMIZED_ATTRIBUTES,
    shape_veto=ShapeVetoConfig(mode="soft", similarity_floor=0.25, distance_ceiling=140.0, penalty_factor=0.88),
    thresholds=DecisionThresholds(match=0.98, possible=0.95, margin=0.02),
)

V5 = MatchingStrategy(
    name="v5",
    description="Marking-centric weights; only a perfect, unambiguous score is a match",
    attributes=(
        AttributeSpec(name="bowmark", weight=0.35),
        AttributeSpec(name="bowcode", weight=0.30),
        AttributeSpec(name="surface_finish", weight=0.20),
        AttributeSpec(name="key_color", weight=0.10),
        AttributeSpec(name="bow_shape", weight=0.03),
        AttributeSpec(name="bow_size", weight=0.02),
        AttributeSpec(
            name="peak_count", kind="numeric", weight=0.0,
            normalization_range=5.0, sanity_range=_CUT_COUNT_SANITY,
        ),
        AttributeSpec(
            name="groove_count", kind="numeric", weight=0.0,
            normalization_range=1.0, sanity_range=_GROOVE_SANITY,
        ),
        AttributeSpec(name="blade_profile", weight=0.0),
    ),
    shape_veto=ShapeVetoConfig(mode="off"),
    thresholds=DecisionThresholds(match=1.0, possible=0.85, margin=0.01),
)

V6 = MatchingStrategy(
    name="v6",
    description="Hybrid balanced weights with tolerance for same-key consistency",
    attributes=(
        AttributeSpec(name="unique_mark", weight=0.30),
        AttributeSpec(name="key_color", weight=0.25),
        AttributeSpec(
            name="bow_shape", weight=0.20,
            aliases={"hexagonal": "rectangular"}, near_matches=_SIZE_VARIANTS,
        ),
        AttributeSpec(
            name="number_of_cuts", kind="numeric", weight=0.15,
            normalization_range=5.0, sanity_range=_CUT_COUNT_SANITY,
        ),
        AttributeSpec(name="has_bow_text", weight=0.05),
        AttributeSpec(name="blade_profile", weight=0.03),
        AttributeSpec(
            name="groove_count", kind="numeric", weight=0.02,
            normalization_range=1.0, sanity_range=_GROOVE_SANITY,
        ),
    ),
    shape_veto=ShapeVetoConfig(mode="soft", penalty_factor=0.88),
    thresholds=DecisionThresholds(match=0.92, possible=0.80, margin=0.05),
)

MULTIMODAL = MatchingStrategy(
    name="multimodal",
    description="Full multimodal description: codes, cuts, bow and blade structure, marks",
    attributes=(
        AttributeSpec(name="stamped_code", kind="code", weight=0.20),
        AttributeSpec(
            name="number_of_cuts", kind="numeric", weight=0.15,
            normalization_range=5.0, sanity_range=_CUT_COUNT_SANITY,
        ),
        AttributeSpec(
            name="cut_depths", kind="numeric-sequence", weight=0.10,
            normalization_range=2.0, sanity_range=(0.0, 10.0),
        ),
        AttributeSpec(
            name="bow_shape", weight=0.12,
            aliases={"hexagonal": "rectangular"}, near_matches=(_ROUND_OVAL, _SQUARE_RECTANGULAR) + _SIZE_VARIANTS,
        ),
        AttributeSpec(name="distinguishing_mark", kind="text", weight=0.10),
        AttributeSpec(name="bow_text", kind="text", weight=0.10),
        AttributeSpec(name="material", weight=0.08, near_matches=(NearMatchGroup(labels={"brass", "bronze", "gold"}, credit=0.5),)),
        AttributeSpec(name="blade_profile", weight=0.05),
        AttributeSpec(
            name="groove_count", kind="numeric", weight=0.05,
            normalization_range=3.0, sanity_range=_GROOVE_SANITY,
        ),
        AttributeSpec(name="shoulder_stop", weight=0.05),
    ),
    shape_veto=ShapeVetoConfig(mode="soft", penalty_factor=0.88),
    thresholds=DecisionThresholds(match=0.90, possible=0.70, margin=0.10),
)

BUILTIN_STRATEGIES: Tuple[MatchingStrategy, ...] = (V3, V4, V5, V6, MULTIMODAL)


def build_default_registry() -> StrategyRegistry:
    """Return a fresh registry holding every built-in strategy version."""
    return StrategyRegistry(BUILTIN_STRATEGIES, default_name=DEFAULT_STRATEGY)
