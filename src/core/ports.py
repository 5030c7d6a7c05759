"""
Structural interfaces the farm calls through.

The farm owns reward accounting only. Custody (vault + strategy), token
balances, the clock and transaction boundaries belong to the host and are
reached through these protocols.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, Protocol

from ..state.balances import Address, Amount, TokenId


class VaultPort(Protocol):
    """Custody unit for one pool asset."""

    address: Address
    asset: TokenId

    def deposit(self, user: Address, amount: Amount) -> Amount:
        """Pull `amount` from the farm; return the vault's own balance delta."""
        ...

    def withdraw(self, user: Address, amount: Amount) -> Amount:
        """Release `amount` to `user`; return what left the vault."""
        ...

    def balance(self) -> Amount:
        """Total held, including funds forwarded to a strategy."""
        ...


class StrategyPort(Protocol):
    """Yield strategy attached to a vault. Only the vault talks to it."""

    address: Address

    def deposit(self, amount: Amount) -> Amount:
        ...

    def withdraw(self, amount: Amount) -> Amount:
        ...

    def balance(self) -> Amount:
        ...


class TokenLedgerPort(Protocol):
    def balance_of(self, holder: Address, token: TokenId) -> Amount:
        ...

    def transfer(self, sender: Address, to: Address, token: TokenId, amount: Amount) -> Amount:
        """Move tokens; return the amount the recipient received."""
        ...

    def transfer_from(
        self, spender: Address, owner: Address, to: Address, token: TokenId, amount: Amount
    ) -> Amount:
        ...

    def approve(self, owner: Address, spender: Address, token: TokenId, amount: Amount) -> None:
        ...


class Snapshottable(Protocol):
    """Component whose state the host can capture and roll back."""

    def snapshot(self) -> Any:
        ...

    def restore(self, snap: Any) -> None:
        ...


class HostPort(Protocol):
    tokens: TokenLedgerPort

    def now(self) -> int:
        ...

    def transaction(self) -> AbstractContextManager[None]:
        ...

    def register(self, component: Snapshottable) -> None:
        ...
