"""
Engine exceptions.

Categorized error types raised by the referral, promotion and commission
services. Validation and requirement errors always reach the caller.
"""


class AffiliateError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AffiliateError):
    """Raised on self-referral, conflicting parent or cyclic edge."""


class NotFoundError(AffiliateError):
    """Raised when a user or level does not exist."""


class InsufficientRequirementsError(AffiliateError):
    """Raised when promotion is requested without a qualifying structure."""

    def __init__(self, missing_requirements: list[str]) -> None:
        self.missing_requirements = list(missing_requirements)
        super().__init__(
            "Promotion requirements not met: "
            + ", ".join(self.missing_requirements)
        )


class NoNextLevelError(AffiliateError):
    """Raised when the user is already at the highest level."""


class GraphIntegrityError(AffiliateError):
    """Raised when a cycle or an over-long ancestor chain is detected."""


class TransactionError(AffiliateError):
    """Raised when the storage layer fails during an atomic step."""


# Errors that are the caller's fault and are safe to report back verbatim
CALLER_ERRORS = (
    ValidationError,
    NotFoundError,
    InsufficientRequirementsError,
    NoNextLevelError,
)

# Errors that point at storage or data corruption
SYSTEM_ERRORS = (
    GraphIntegrityError,
    TransactionError,
)


def is_caller_error(exc: Exception) -> bool:
    """
    Check if exception was caused by caller input.

    Args:
        exc: Exception to check

    Returns:
        True if exception is a caller error
    """
    return isinstance(exc, CALLER_ERRORS)


def is_system_error(exc: Exception) -> bool:
    """
    Check if exception points at storage or data corruption.

    Args:
        exc: Exception to check

    Returns:
        True if exception is a system error
    """
    return isinstance(exc, SYSTEM_ERRORS)
