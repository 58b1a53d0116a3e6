"""
Contract with the external key describer.

The describer turns an image into a structured description of a key. It is an
opaque, fallible oracle: the core only defines the protocol a describer
implements and how its JSON payload becomes a Signature.
"""

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from keyscan_core.errors import InvalidSignature
from keyscan_core.models import ShapeDescriptor, Signature

DEFAULT_CONFIDENCE = 0.5

_NESTED_SECTIONS = ("quantitative_properties", "qualitative_properties", "structural_features")
_INTEGER_FIELDS = ("number_of_cuts", "groove_count", "peak_count", "layers")
_RESERVED_FIELDS = ("confidence_score", "confidence", "shape")


class DescriptionResult(BaseModel):
    """Outcome of a single describer call."""
    success: bool
    signature: Optional[Signature] = None
    error: Optional[str] = None


@runtime_checkable
class KeyDescriber(Protocol):
    """Anything that can describe a key image. Called once per scan, never retried here."""

    async def describe(self, image: bytes, mime_type: str = "image/jpeg") -> DescriptionResult:
        ...


def parse_confidence(value: Any) -> float:
    """Clamp a describer confidence to [0, 1]; unparseable values give the default."""
    if isinstance(value, bool) or value is None:
        return DEFAULT_CONFIDENCE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if number != number:  # NaN
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, number))


def _parse_int(value: Any) -> Optional[int]:
    # Infinite or non-numeric counts are treated as missing.
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return None


def _joined(values: Any) -> Optional[str]:
    if values is None:
        return None
    if not isinstance(values, (list, tuple)):
        return str(values)
    parts = [str(value).strip() for value in values if str(value).strip()]
    return " ".join(parts) or None


def _section(parent: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = parent.get(name)
    return value if isinstance(value, Mapping) else {}


def _flatten_nested(payload: Mapping[str, Any]) -> Dict[str, Any]:
    quantitative = _section(payload, "quantitative_properties")
    qualitative = _section(payload, "qualitative_properties")
    structural = _section(payload, "structural_features")
    bow = _section(structural, "bow")
    blade = _section(structural, "blade")

    depths = quantitative.get("cut_depths")
    grooves = quantitative.get("groove_count")
    return {
        "stamped_code": quantitative.get("stamped_code"),
        "number_of_cuts": quantitative.get("number_of_cuts"),
        "cut_depths": tuple(depths) if isinstance(depths, (list, tuple)) and depths else None,
        "groove_count": grooves if grooves is not None else blade.get("grooves"),
        "material": qualitative.get("material"),
        "key_color": qualitative.get("color"),
        "finish": qualitative.get("finish"),
        "purpose": qualitative.get("purpose"),
        "bow_shape": bow.get("shape"),
        "bow_text": _joined(bow.get("text")),
        "key_ring_hole": bow.get("key_ring_hole"),
        "shoulder_stop": structural.get("shoulder_stop"),
        "blade_profile": blade.get("profile"),
        "tip": structural.get("tip"),
        "distinguishing_mark": _joined(payload.get("unique_features")),
    }


def signature_from_payload(payload: Any) -> Signature:
    """
    Build a Signature from a describer JSON object.

    Flat payloads are taken as attribute maps. Nested payloads with
    quantitative/qualitative/structural sections are flattened onto the
    multimodal attribute names.

    Args:
        payload: Parsed JSON object returned by the describer.

    Returns:
        Signature. It may still have no populated attributes; that is checked
        when the signature enters comparison.

    Raises:
        InvalidSignature: The payload is not an object or cannot be validated.
    """
    if not isinstance(payload, Mapping):
        raise InvalidSignature(f"Describer payload must be an object, got {type(payload).__name__}")

    if any(section in payload for section in _NESTED_SECTIONS):
        attributes = _flatten_nested(payload)
    else:
        attributes = {name: value for name, value in payload.items() if name not in _RESERVED_FIELDS}

    for name in _INTEGER_FIELDS:
        if name in attributes:
            attributes[name] = _parse_int(attributes[name])
    for name, value in list(attributes.items()):
        if isinstance(value, list):
            attributes[name] = tuple(value)

    confidence = parse_confidence(payload.get("confidence_score", payload.get("confidence")))
    try:
        shape = ShapeDescriptor.model_validate(payload["shape"]) if payload.get("shape") else None
        return Signature(attributes=attributes, shape=shape, confidence=confidence)
    except (ValidationError, KeyError, TypeError) as exc:
        raise InvalidSignature(f"Describer payload could not be validated: {exc}") from exc
