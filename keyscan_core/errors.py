"""
Exception types raised by the KeyScan matching core.

Attribute- and candidate-level anomalies are recovered inside the core; only
these two errors ever reach a caller.
"""

from typing import Iterable, Optional


class KeyscanError(Exception):
    """Base class for all KeyScan core errors."""


class InvalidSignature(KeyscanError, ValueError):
    """A signature has no populated attributes and cannot be compared."""

    def __init__(self, message: str = "Signature has no populated attributes", key_id: Optional[str] = None):
        self.key_id = key_id
        if key_id is not None:
            message = f"{message} (key_id={key_id})"
        super().__init__(message)


class StrategyNotFound(KeyscanError, LookupError):
    """The caller asked for a strategy name that was never registered."""

    def __init__(self, name: str, available: Iterable[str] = ()):
        self.name = name
        self.available = tuple(available)
        known = ", ".join(self.available) or "none"
        super().__init__(f"Unknown matching strategy '{name}' (registered: {known})")
