"""
Deposit/withdraw routing per asset kind.

A pool's asset kind is resolved once, at pool creation, into an `AssetPath`.
The ledger never re-checks "is this native?" ad hoc; it calls the path.

- Native pools are funded by value attached to the call.
- Token pools pull from the caller's allowance and credit the observed
  balance delta, so transfer-taxed tokens are credited what actually arrived.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..state.balances import Address, Amount, TokenId
from ..state.pools import AssetKind
from .errors import FarmGuardError
from .ports import TokenLedgerPort, VaultPort


@dataclass(frozen=True)
class AssetPath:
    is_native: bool

    def check(self, amount: Amount, attached_native: Amount) -> None:
        raise NotImplementedError

    def collect(
        self,
        tokens: TokenLedgerPort,
        farm: Address,
        user: Address,
        asset: TokenId,
        amount: Amount,
        attached_native: Amount,
    ) -> Amount:
        """Move the caller's funds into the farm; return what the farm received."""
        raise NotImplementedError

    def deposit(self, vault: VaultPort, user: Address, received: Amount) -> Amount:
        """Forward collected funds to the vault; return the vault-credited amount."""
        if received == 0:
            return 0
        return vault.deposit(user, received)

    def withdraw(self, vault: VaultPort, user: Address, amount: Amount) -> Amount:
        if amount == 0:
            return 0
        return vault.withdraw(user, amount)


@dataclass(frozen=True)
class NativeAssetPath(AssetPath):
    is_native: bool = True

    def check(self, amount: Amount, attached_native: Amount) -> None:
        if amount != attached_native:
            raise FarmGuardError(
                f"native deposit amount {amount} must equal attached value {attached_native}"
            )

    def collect(self, tokens, farm, user, asset, amount, attached_native):
        if attached_native == 0:
            return 0
        return tokens.transfer(user, farm, asset, attached_native)


@dataclass(frozen=True)
class TokenAssetPath(AssetPath):
    is_native: bool = False

    def check(self, amount: Amount, attached_native: Amount) -> None:
        if attached_native != 0:
            raise FarmGuardError("token pool deposit must not attach native value")

    def collect(self, tokens, farm, user, asset, amount, attached_native):
        if amount == 0:
            return 0
        before = tokens.balance_of(farm, asset)
        tokens.transfer_from(farm, user, farm, asset, amount)
        return tokens.balance_of(farm, asset) - before


NATIVE_PATH = NativeAssetPath()
TOKEN_PATH = TokenAssetPath()


def path_for(kind: AssetKind) -> AssetPath:
    return NATIVE_PATH if kind is AssetKind.NATIVE else TOKEN_PATH


@dataclass(frozen=True)
class PoolRoute:
    """Custody route for one pool: its vault and its resolved asset path."""

    vault: VaultPort
    path: AssetPath
