"""Exception taxonomy for the matching engine.

Provider errors never cross a client boundary: the clients in ``ai`` turn
them into ``UNAVAILABLE`` and log. ``DimensionMismatch`` is the only error
allowed to escape a single comparison.
"""
from __future__ import annotations


class RiskMatchError(Exception):
    """Base class for engine errors."""
    pass


class ProviderUnavailable(RiskMatchError):
    """Raised when a provider call fails at the transport or HTTP level."""
    pass


class MalformedResponse(RiskMatchError):
    """Raised when a provider responds with an unusable body."""
    pass


class DimensionMismatch(RiskMatchError, ValueError):
    """Raised when two vectors of different length are compared."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vectors must have the same length (got {left} and {right})")
        self.left = left
        self.right = right


class InsufficientInputData(RiskMatchError):
    """Raised when normalized input text is too sparse to match on."""
    pass


class JudgeParseFailure(RiskMatchError):
    """Raised when a judge reply carries neither JSON nor a usable number."""
    pass


class RecordNotFound(RiskMatchError):
    """Raised when a requested record does not exist."""
    pass
