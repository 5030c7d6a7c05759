"""
Reference custody vault and strategy.

`CustodyVault` holds one asset on behalf of the farm. Deposits are pulled
from the farm with the allowance the farm grants at pool creation; the vault
credits its own observed balance delta so transfer-taxed assets are credited
what actually arrived. With a strategy attached, idle funds are forwarded to
it and `balance()` reports the combined amount.

The farm never talks to the strategy.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ..core.errors import ExternalCallError
from ..core.ports import StrategyPort
from ..state.balances import Address, Amount, TokenId, canonical_address
from .host import LedgerHost

logger = logging.getLogger(__name__)

APPROVE_MAX = 2**256 - 1


class IdleStrategy:
    """
    Strategy that parks funds at its own address.

    Yield can be simulated by minting the asset straight to `address`; it shows
    up in `balance()` and therefore in the vault's reported total.
    """

    def __init__(self, host: LedgerHost, *, address: Address, asset: TokenId, vault: Address) -> None:
        self._host = host
        self.address = canonical_address(address)
        self.asset = canonical_address(asset)
        self.vault = canonical_address(vault)

    def deposit(self, amount: Amount) -> Amount:
        before = self.balance()
        self._host.tokens.transfer_from(self.address, self.vault, self.address, self.asset, amount)
        return self.balance() - before

    def withdraw(self, amount: Amount) -> Amount:
        amount = min(amount, self.balance())
        if amount == 0:
            return 0
        return self._host.tokens.transfer(self.address, self.vault, self.asset, amount)

    def balance(self) -> Amount:
        return self._host.tokens.balance_of(self.address, self.asset)

    def __repr__(self) -> str:
        return f"IdleStrategy(address={self.address[:10]}..., balance={self.balance()})"


class CustodyVault:
    """Custody for one asset; accepts deposits only from `farm`."""

    def __init__(
        self,
        host: LedgerHost,
        *,
        address: Address,
        asset: TokenId,
        farm: Address,
        strategy: Optional[StrategyPort] = None,
    ) -> None:
        self._host = host
        self.address = canonical_address(address)
        self.asset = canonical_address(asset)
        self.farm = canonical_address(farm)
        self._strategy: Optional[StrategyPort] = None
        self._deposits: Dict[Address, Amount] = {}
        host.register(self)
        if strategy is not None:
            self.set_strategy(strategy)

    # -- VaultPort ------------------------------------------------------

    def deposit(self, user: Address, amount: Amount) -> Amount:
        tokens = self._host.tokens
        before = tokens.balance_of(self.address, self.asset)
        tokens.transfer_from(self.address, self.farm, self.address, self.asset, amount)
        credited = tokens.balance_of(self.address, self.asset) - before
        user = user.lower()
        self._deposits[user] = self._deposits.get(user, 0) + credited
        self._earn()
        return credited

    def withdraw(self, user: Address, amount: Amount) -> Amount:
        user = user.lower()
        held = self._deposits.get(user, 0)
        if amount > held:
            raise ExternalCallError(f"vault holds {held} for {user}, cannot release {amount}")
        tokens = self._host.tokens
        idle = tokens.balance_of(self.address, self.asset)
        if idle < amount and self._strategy is not None:
            self._strategy.withdraw(amount - idle)
            idle = tokens.balance_of(self.address, self.asset)
        if idle < amount:
            raise ExternalCallError(f"vault liquidity {idle} < {amount}")
        self._deposits[user] = held - amount
        if self._deposits[user] == 0:
            del self._deposits[user]
        return tokens.transfer(self.address, user, self.asset, amount)

    def balance(self) -> Amount:
        idle = self._host.tokens.balance_of(self.address, self.asset)
        if self._strategy is None:
            return idle
        return idle + self._strategy.balance()

    # -- strategy routing -------------------------------------------------

    @property
    def strategy(self) -> Optional[StrategyPort]:
        return self._strategy

    def set_strategy(self, strategy: Optional[StrategyPort]) -> None:
        """Swap strategies, recalling everything from the old one first."""
        tokens = self._host.tokens
        with self._host.transaction():
            old = self._strategy
            if old is not None:
                old.withdraw(old.balance())
                tokens.approve(self.address, old.address, self.asset, 0)
            self._strategy = strategy
            if strategy is not None:
                tokens.approve(self.address, strategy.address, self.asset, APPROVE_MAX)
                self._earn()
        logger.info(
            "Vault strategy set",
            extra={
                "event": "vault.strategy_set",
                "vault": self.address,
                "strategy": strategy.address if strategy is not None else None,
            },
        )

    def _earn(self) -> None:
        if self._strategy is None:
            return
        idle = self._host.tokens.balance_of(self.address, self.asset)
        if idle > 0:
            self._strategy.deposit(idle)

    def deposited_by(self, user: Address) -> Amount:
        return self._deposits.get(user.lower(), 0)

    # -- host snapshot protocol -------------------------------------------

    def snapshot(self) -> Any:
        return dict(self._deposits), self._strategy

    def restore(self, snap: Any) -> None:
        deposits, strategy = snap
        self._deposits = dict(deposits)
        self._strategy = strategy

    def __repr__(self) -> str:
        return f"CustodyVault(address={self.address[:10]}..., asset={self.asset[:10]}..., balance={self.balance()})"
