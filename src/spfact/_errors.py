"""
Error handling for spfact.

Every precondition violation is reported synchronously, before any
computation starts, with an exception that carries an integer error code.
Numerical non-convergence is never an error: it is reported through the
``tol`` / ``iter`` results of a fit.
"""

from __future__ import annotations

from typing import Optional


# =============================================================================
# Error Codes
# =============================================================================

# Success
SPFACT_OK = 0

# General errors (1-9)
SPFACT_ERROR_UNKNOWN = 1

# Argument errors (10-19)
SPFACT_ERROR_INVALID_ARGUMENT = 10
SPFACT_ERROR_DIMENSION_MISMATCH = 11
SPFACT_ERROR_INDEX_OUT_OF_BOUNDS = 14

# Type errors (20-29)
SPFACT_ERROR_TYPE_MISMATCH = 21


# Error code to message mapping
_ERROR_MESSAGES = {
    SPFACT_OK: "Success",
    SPFACT_ERROR_UNKNOWN: "Unknown error",
    SPFACT_ERROR_INVALID_ARGUMENT: "Invalid argument",
    SPFACT_ERROR_DIMENSION_MISMATCH: "Dimension mismatch",
    SPFACT_ERROR_INDEX_OUT_OF_BOUNDS: "Index out of bounds",
    SPFACT_ERROR_TYPE_MISMATCH: "Type mismatch",
}


# =============================================================================
# Exception Classes
# =============================================================================

class SpfactError(Exception):
    """
    Base exception for all spfact errors.

    Attributes:
        code: Integer error code (one of the ``SPFACT_ERROR_*`` constants).
        message: Human-readable description.
    """

    OK = SPFACT_OK
    ERROR_UNKNOWN = SPFACT_ERROR_UNKNOWN
    ERROR_INVALID_ARGUMENT = SPFACT_ERROR_INVALID_ARGUMENT
    ERROR_DIMENSION_MISMATCH = SPFACT_ERROR_DIMENSION_MISMATCH
    ERROR_INDEX_OUT_OF_BOUNDS = SPFACT_ERROR_INDEX_OUT_OF_BOUNDS
    ERROR_TYPE_MISMATCH = SPFACT_ERROR_TYPE_MISMATCH

    default_code = SPFACT_ERROR_UNKNOWN

    def __init__(self, message: Optional[str] = None, code: Optional[int] = None):
        """
        Create spfact exception.

        Args:
            message: Optional detailed message (looked up from the code if omitted)
            code: Error code; defaults to the class's ``default_code``
        """
        if code is None:
            code = self.default_code
        self.code = code
        if message is None:
            message = _ERROR_MESSAGES.get(code, f"Unknown error (code={code})")
        self.message = message
        super().__init__(message)

    @classmethod
    def from_code(cls, code: int, context: str = "") -> "SpfactError":
        """Create exception from error code with optional context."""
        base_msg = _ERROR_MESSAGES.get(code, "Unknown error")
        msg = f"{context}: {base_msg}" if context else base_msg
        return cls(msg, code)


class InvalidArgumentError(SpfactError, ValueError):
    """An argument value is outside its documented domain."""
    default_code = SPFACT_ERROR_INVALID_ARGUMENT


class DimensionMismatchError(SpfactError, ValueError):
    """Shapes of matrices or vectors passed together are incompatible."""
    default_code = SPFACT_ERROR_DIMENSION_MISMATCH


class IndexOutOfBoundsError(SpfactError, IndexError):
    """An index refers past the end of its dimension."""
    default_code = SPFACT_ERROR_INDEX_OUT_OF_BOUNDS


class TypeMismatchError(SpfactError, TypeError):
    """An input has an unsupported type or format."""
    default_code = SPFACT_ERROR_TYPE_MISMATCH

