"""
Environment configuration for the KeyScan service.

Settings are read once at the boundary and turned into an explicit strategy
object; the matching core itself never reads the environment.

Environment Variables:
    KEYSCAN_STRATEGY: Name of the active strategy (default: registry default).
    KEYSCAN_FALLBACK_TO_DEFAULT: "true" to fall back to the default strategy
        when KEYSCAN_STRATEGY names an unknown one (default: false).
    KEYSCAN_THRESHOLD_MATCH: Override of the match threshold.
    KEYSCAN_THRESHOLD_POSSIBLE: Override of the possible threshold.
    KEYSCAN_THRESHOLD_DELTA: Override of the margin threshold.
    KEYSCAN_SHAPE_VETO_MODE: Override of the veto mode (strict, soft, off).
    KEYSCAN_MAX_WORKERS: Threads used for the comparison sweep.
"""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from keyscan_core.shape import VetoMode
from keyscan_core.strategies import MatchingStrategy, StrategyRegistry

ENV_PREFIX = "KEYSCAN_"

_ENV_FIELDS = {
    "STRATEGY": "strategy",
    "FALLBACK_TO_DEFAULT": "fallback_to_default",
    "THRESHOLD_MATCH": "threshold_match",
    "THRESHOLD_POSSIBLE": "threshold_possible",
    "THRESHOLD_DELTA": "threshold_margin",
    "SHAPE_VETO_MODE": "shape_veto_mode",
    "MAX_WORKERS": "max_workers",
}


class Settings(BaseModel):
    """Resolved service configuration."""

    strategy: Optional[str] = Field(default=None, description="Active strategy name")
    fallback_to_default: bool = False
    threshold_match: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    threshold_possible: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    threshold_margin: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    shape_veto_mode: Optional[VetoMode] = None
    max_workers: Optional[int] = Field(default=None, ge=1)

    @property
    def has_overrides(self) -> bool:
        return any(
            value is not None
            for value in (self.threshold_match, self.threshold_possible, self.threshold_margin, self.shape_veto_mode)
        )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        environ: Mapping to read from. When omitted, a local .env file is
            loaded (without overriding real variables) and os.environ is used.

    Returns:
        Settings instance. Blank variables count as unset.

    Raises:
        pydantic.ValidationError: A variable holds an invalid value.
    """
    if environ is None:
        load_dotenv(override=False)
        environ = os.environ

    values = {}
    for suffix, field in _ENV_FIELDS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw is not None and raw.strip():
            values[field] = raw.strip()
    if "shape_veto_mode" in values:
        values["shape_veto_mode"] = values["shape_veto_mode"].lower()
    return Settings.model_validate(values)


def resolve_strategy(
    settings: Settings, registry: StrategyRegistry, name: Optional[str] = None
) -> MatchingStrategy:
    """
    Pick the strategy for one call and apply configured overrides.

    Args:
        settings: Service settings.
        registry: Registry holding the available strategies.
        name: Per-call strategy name; takes precedence over the configured one.

    Raises:
        StrategyNotFound: The name is unknown and fallback was not enabled.
    """
    strategy = registry.resolve(name or settings.strategy, fallback_to_default=settings.fallback_to_default)
    if not settings.has_overrides:
        return strategy
    return strategy.with_overrides(
        match=settings.threshold_match,
        possible=settings.threshold_possible,
        margin=settings.threshold_margin,
        veto_mode=settings.shape_veto_mode,
    )
