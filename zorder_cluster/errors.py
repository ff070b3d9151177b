"""Failure taxonomy shared by the sampling, flattening and partitioning code."""
from __future__ import annotations

from typing import Any, Optional


class ZOrderError(Exception):
    """Base class for every error raised by :mod:`zorder_cluster`."""


class ConfigurationError(ZOrderError, ValueError):
    """Unsupported element type, mismatched widths or non-finite coordinates."""


class CorruptionError(ZOrderError, ValueError):
    """A flattened reservoir whose bytes disagree with its own header."""


class CapacityError(ZOrderError, ValueError):
    """Requested sample or partition sizes that cannot be addressed."""


class StateError(ZOrderError, RuntimeError):
    """An operation was invoked in the wrong phase of a clustering epoch."""


def check_size(name: str, value: Any, upper: Optional[int] = None) -> int:
    """Validate a positive integer size, optionally bounded by ``upper``."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise CapacityError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 1:
        raise CapacityError(f"{name} must be >= 1, got {value}")
    if upper is not None and value > upper:
        raise CapacityError(f"{name} {value} exceeds the maximum of {upper}")
    return value


__all__ = [
    "ZOrderError",
    "ConfigurationError",
    "CorruptionError",
    "CapacityError",
    "StateError",
    "check_size",
]
