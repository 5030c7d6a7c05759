"""
Caller context and the owner capability check.

Admin operations take an explicit `CallerContext` instead of reading an
ambient "current sender".
"""

from __future__ import annotations

from dataclasses import dataclass

from ..state.balances import Address, canonical_address, is_valid_address
from .errors import AccessDeniedError, InvalidAddressError


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller of one farm operation."""

    sender: Address

    @classmethod
    def of(cls, sender: str) -> "CallerContext":
        return cls(sender=require_address(sender, name="sender"))


def require_address(value: object, *, name: str = "address") -> Address:
    if not is_valid_address(value):
        raise InvalidAddressError(f"invalid {name}: {value!r}")
    return canonical_address(value)  # type: ignore[arg-type]


def require_owner(ctx: CallerContext, owner: Address) -> None:
    """
    Raises:
        AccessDeniedError: If `ctx.sender` is not `owner`
    """
    if not isinstance(ctx, CallerContext):
        raise AccessDeniedError("missing caller context")
    if ctx.sender.lower() != owner.lower():
        raise AccessDeniedError(f"caller {ctx.sender} is not the owner")
