"""Exception types for the farm ledger.

Every mutating farm operation runs inside a host transaction, so raising any
of these aborts the whole operation with state rolled back.
"""

from __future__ import annotations


class FarmError(Exception):
    """Base class for all farm failures."""


class FarmGuardError(FarmError):
    """Raised when an operation's precondition is not satisfied."""


class InvalidAddressError(FarmGuardError):
    """Raised for a malformed or zero address."""


class FarmNotStartedError(FarmGuardError):
    """Raised for user operations before the farm is active."""


class InsufficientStakeError(FarmGuardError):
    """Raised when withdrawing more than the position holds."""


class DuplicatePoolAssetError(FarmGuardError):
    """Raised when creating a second pool for an asset."""


class RewardStreamError(FarmGuardError):
    """Raised for invalid reward-stream arguments (duplicate or unknown token, bad rate)."""


class StartTimeError(FarmGuardError):
    """Raised when the start time is already set or out of bounds."""


class UnknownPoolError(FarmGuardError):
    """Raised for a pool id outside the pool list."""


class AccessDeniedError(FarmError):
    """Raised when a non-owner calls an admin operation."""


class ReentrancyError(FarmError):
    """Raised when a mutating operation is entered while another is in flight."""


class ExternalCallError(FarmError):
    """Raised when a token transfer or vault call fails."""


class TokenTransferError(ExternalCallError):
    """Raised when the token ledger rejects a transfer."""


class FarmInvariantError(FarmError):
    """Raised when a post-state violates one or more invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
