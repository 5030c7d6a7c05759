"""
In-memory token ledger for the farm host.

Tracks balances (including the native asset under NATIVE_TOKEN), allowances,
an optional per-token transfer tax, and optional per-token transfer hooks.

- Transfer tax models fee-on-transfer tokens: the recipient receives
  `amount - amount * tax_bps // 10_000`; the tax is burned.
- Hooks run after balances move and model tokens that call back into the
  recipient (the re-entrancy surface of the farm).
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional, Tuple

from ..core.errors import TokenTransferError
from ..state.balances import NATIVE_TOKEN, Address, Amount, BalanceTable, TokenId, canonical_address

BPS_SCALE = 10_000

TransferHook = Callable[[Address, Address, Amount], None]


def _require_amount(value: object, *, name: str = "amount") -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise TokenTransferError(f"{name} must be a non-negative int: {value!r}")
    return int(value)


class TokenLedger:
    """Balances + allowances for every token the host knows about."""

    def __init__(self) -> None:
        self._balances = BalanceTable()
        self._allowances: Dict[Tuple[Address, Address, TokenId], Amount] = {}
        self._transfer_tax_bps: Dict[TokenId, int] = {}
        self._hooks: Dict[TokenId, TransferHook] = {}

    # -- configuration --------------------------------------------------

    def set_transfer_tax(self, token: TokenId, tax_bps: int) -> None:
        if not isinstance(tax_bps, int) or isinstance(tax_bps, bool) or not 0 <= tax_bps <= BPS_SCALE:
            raise ValueError(f"tax_bps must be in [0, {BPS_SCALE}]: {tax_bps!r}")
        token = canonical_address(token)
        if token == NATIVE_TOKEN:
            raise ValueError("the native asset cannot carry a transfer tax")
        self._transfer_tax_bps[token] = tax_bps

    def set_transfer_hook(self, token: TokenId, hook: Optional[TransferHook]) -> None:
        token = canonical_address(token)
        if hook is None:
            self._hooks.pop(token, None)
        else:
            self._hooks[token] = hook

    # -- reads ----------------------------------------------------------

    def balance_of(self, holder: Address, token: TokenId) -> Amount:
        return self._balances.get(holder.lower(), token.lower())

    def allowance(self, owner: Address, spender: Address, token: TokenId) -> Amount:
        return self._allowances.get((owner.lower(), spender.lower(), token.lower()), 0)

    def total_supply(self, token: TokenId) -> Amount:
        return self._balances.total_for_token(token.lower())

    # -- writes ---------------------------------------------------------

    def mint(self, to: Address, token: TokenId, amount: Amount) -> None:
        amount = _require_amount(amount)
        to = canonical_address(to)
        token = canonical_address(token)
        self._balances.add(to, token, amount)

    def approve(self, owner: Address, spender: Address, token: TokenId, amount: Amount) -> None:
        amount = _require_amount(amount)
        key = (canonical_address(owner), canonical_address(spender), canonical_address(token))
        if amount == 0:
            self._allowances.pop(key, None)
        else:
            self._allowances[key] = amount

    def transfer(self, sender: Address, to: Address, token: TokenId, amount: Amount) -> Amount:
        """
        Move `amount` from `sender` to `to`. Returns what `to` received.

        Raises:
            TokenTransferError: On a bad amount or insufficient balance
        """
        amount = _require_amount(amount)
        sender = canonical_address(sender)
        to = canonical_address(to)
        token = canonical_address(token)
        try:
            self._balances.subtract(sender, token, amount)
        except ValueError as exc:
            raise TokenTransferError(f"transfer of {amount} {token} from {sender} failed: {exc}") from exc

        tax = (amount * self._transfer_tax_bps.get(token, 0)) // BPS_SCALE
        received = amount - tax
        self._balances.add(to, token, received)

        hook = self._hooks.get(token)
        if hook is not None:
            hook(sender, to, received)
        return received

    def transfer_from(
        self, spender: Address, owner: Address, to: Address, token: TokenId, amount: Amount
    ) -> Amount:
        """Spend `owner`'s allowance to `spender`. Returns what `to` received."""
        amount = _require_amount(amount)
        if spender.lower() != owner.lower():
            key = (owner.lower(), spender.lower(), token.lower())
            allowed = self._allowances.get(key, 0)
            if amount > allowed:
                raise TokenTransferError(f"allowance {allowed} < {amount} for {spender} on {token}")
            self._allowances[key] = allowed - amount
        return self.transfer(owner, to, token, amount)

    # -- host snapshot protocol -------------------------------------------

    def snapshot(self) -> Any:
        return copy.deepcopy((self._balances, self._allowances))

    def restore(self, snap: Any) -> None:
        self._balances, self._allowances = snap

    def __repr__(self) -> str:
        return f"TokenLedger({self._balances!r}, {len(self._allowances)} allowances)"
