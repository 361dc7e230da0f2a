"""Error types for jaxcls.

Every failure carries an ErrorKind plus a human-readable context string.
Errors propagate as exceptions; a raised error means no value was produced,
and any partially built object is discarded with the stack frame that
owned it.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    ALLOCATION = "allocation failure"
    INTERPOLANT = "interpolant construction failure"
    GRID_SPACING = "grid spacing failure"
    INTEGRATION = "integration failure"
    INCONSISTENT_INPUT = "inconsistent input"


class ClError(Exception):
    """Base class for all jaxcls errors."""

    kind: ErrorKind

    def __init__(self, message: str, context: str = ""):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            return f"{self.context}: {self.message}"
        return self.message


class AllocationError(ClError):
    kind = ErrorKind.ALLOCATION


class InterpolantError(ClError):
    kind = ErrorKind.INTERPOLANT


class GridSpacingError(ClError):
    kind = ErrorKind.GRID_SPACING


class IntegrationError(ClError):
    kind = ErrorKind.INTEGRATION


class InconsistentInputError(ClError, ValueError):
    kind = ErrorKind.INCONSISTENT_INPUT
