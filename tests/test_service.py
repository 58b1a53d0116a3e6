# tests/test_service.py
"""Tests for the matching service boundary."""

import logging

import pytest

from keyscan_core.describer import DescriptionResult
from keyscan_core.errors import StrategyNotFound
from keyscan_core.models import InventoryCandidate, Signature
from src.config import Settings
from src.service import KeyMatchingService

FRONT_DOOR = {
    "unique_mark": True,
    "key_color": "brass",
    "bow_shape": "rectangular",
    "number_of_cuts": 5,
    "has_bow_text": True,
    "blade_profile": "single-sided",
    "groove_count": 2,
}

MAILBOX = {
    "unique_mark": False,
    "key_color": "silver",
    "bow_shape": "round",
    "number_of_cuts": 4,
    "has_bow_text": False,
    "blade_profile": "single-sided",
    "groove_count": 1,
}

INVENTORY = [
    InventoryCandidate(key_id="front-door", signature=Signature(attributes=FRONT_DOOR)),
    InventoryCandidate(key_id="mailbox", signature=Signature(attributes=MAILBOX)),
]


class StubDescriber:
    """Describer returning a fixed result and counting calls."""

    def __init__(self, result: DescriptionResult = None, error: Exception = None):
        self.result = result
        self.error = error
        self.calls = 0

    async def describe(self, image: bytes, mime_type: str = "image/jpeg") -> DescriptionResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def service() -> KeyMatchingService:
    return KeyMatchingService(settings=Settings())


def test_match_uses_default_strategy(service: KeyMatchingService) -> None:
    """Without configuration the default strategy decides."""
    outcome = service.match(Signature(attributes=FRONT_DOOR), INVENTORY)

    assert outcome.strategy == "v6"
    assert outcome.decision == "MATCH"
    assert outcome.best_candidate_id == "front-door"


def test_match_with_named_strategy(service: KeyMatchingService) -> None:
    """A per-call strategy name is honoured."""
    outcome = service.match(Signature(attributes=FRONT_DOOR), INVENTORY, strategy_name="v3")
    assert outcome.strategy == "v3"


def test_unknown_strategy_raises(service: KeyMatchingService) -> None:
    """Misconfiguration is surfaced, never silently replaced."""
    with pytest.raises(StrategyNotFound):
        service.match(Signature(attributes=FRONT_DOOR), INVENTORY, strategy_name="v42")


def test_configured_fallback_logs_a_warning(caplog: pytest.LogCaptureFixture) -> None:
    """Opted-in fallback uses the default strategy and says so."""
    service = KeyMatchingService(settings=Settings(strategy="v42", fallback_to_default=True))

    with caplog.at_level(logging.WARNING, logger="keyscan"):
        outcome = service.match(Signature(attributes=FRONT_DOOR), INVENTORY)

    assert outcome.strategy == "v6"
    assert any("falling back" in record.getMessage() for record in caplog.records)


def test_configured_overrides_are_applied() -> None:
    """Threshold overrides from settings change the decision, not the registry."""
    service = KeyMatchingService(settings=Settings(threshold_match=1.0, threshold_possible=1.0))
    query = Signature(attributes={**FRONT_DOOR, "number_of_cuts": 6})

    outcome = service.match(query, INVENTORY)

    assert outcome.decision == "NO_MATCH"
    assert service.registry.get("v6").thresholds.match == 0.92


def test_match_logs_summary_and_skips(service: KeyMatchingService, caplog: pytest.LogCaptureFixture) -> None:
    """Skipped candidates and the final decision are logged with context."""
    inventory = INVENTORY + [InventoryCandidate(key_id="garage")]

    with caplog.at_level(logging.INFO, logger="keyscan"):
        service.match(Signature(attributes=FRONT_DOOR), inventory)

    summary = [record for record in caplog.records if record.getMessage() == "Matched key signature against inventory"]
    skipped = [record for record in caplog.records if record.getMessage() == "Skipped malformed inventory candidate"]

    assert len(summary) == 1
    assert summary[0].context["decision"] == "MATCH"
    assert summary[0].context["inventory_size"] == 3
    assert summary[0].context["compared"] == 2
    assert skipped[0].context["key_id"] == "garage"


@pytest.mark.asyncio
async def test_identify_describes_then_matches(service: KeyMatchingService) -> None:
    """A successful description is matched against the inventory."""
    describer = StubDescriber(DescriptionResult(success=True, signature=Signature(attributes=FRONT_DOOR, confidence=0.9)))

    result = await service.identify(describer, b"jpeg-bytes", INVENTORY)

    assert result.success
    assert describer.calls == 1
    assert result.outcome.best_candidate_id == "front-door"
    assert result.outcome.query_confidence == 0.9


@pytest.mark.asyncio
async def test_identify_reports_describer_failure(service: KeyMatchingService) -> None:
    """A failed description is reported, not raised, and not retried."""
    describer = StubDescriber(DescriptionResult(success=False, error="image too blurry"))

    result = await service.identify(describer, b"jpeg-bytes", INVENTORY)

    assert not result.success
    assert result.error == "image too blurry"
    assert result.outcome is None
    assert describer.calls == 1


@pytest.mark.asyncio
async def test_identify_reports_describer_exception(service: KeyMatchingService) -> None:
    """An exception inside the describer becomes a failed result."""
    describer = StubDescriber(error=TimeoutError("describer timed out"))

    result = await service.identify(describer, b"jpeg-bytes", INVENTORY)

    assert not result.success
    assert "timed out" in result.error
    assert describer.calls == 1


@pytest.mark.asyncio
async def test_identify_rejects_empty_description(service: KeyMatchingService) -> None:
    """A description without usable attributes cannot be matched."""
    describer = StubDescriber(DescriptionResult(success=True, signature=Signature(attributes={"key_color": None})))

    result = await service.identify(describer, b"jpeg-bytes", INVENTORY)

    assert not result.success
    assert result.signature is not None
    assert result.outcome is None


@pytest.mark.asyncio
async def test_identify_propagates_unknown_strategy(service: KeyMatchingService) -> None:
    """Strategy misconfiguration is a caller error even during identification."""
    describer = StubDescriber(DescriptionResult(success=True, signature=Signature(attributes=FRONT_DOOR)))

    with pytest.raises(StrategyNotFound):
        await service.identify(describer, b"jpeg-bytes", INVENTORY, strategy_name="v42")
