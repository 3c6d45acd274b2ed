"""
Error taxonomy for the analysis core.
"""
from __future__ import annotations

from typing import Optional


class SolguardError(Exception):
    """Base class for all analysis errors."""


class MalformedInputError(SolguardError):
    """Parser output violates graph-construction preconditions."""

    def __init__(self, message: str, identifier: Optional[str] = None,
                 function_name: Optional[str] = None):
        self.identifier = identifier
        self.function_name = function_name
        if function_name:
            message = f"{message} (in function '{function_name}')"
        super().__init__(message)


class AggregationError(SolguardError):
    """Rules disagree about the analyzed graph. Always an internal bug."""


class ResourceLimitError(SolguardError):
    """Contract exceeds a configured size cap."""

    def __init__(self, limit_name: str, limit: int, actual: int):
        self.limit_name = limit_name
        self.limit = limit
        self.actual = actual
        super().__init__(f"{limit_name} exceeded: {actual} > {limit}")
