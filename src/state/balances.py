"""
Multi-token balance tracking with deterministic ordering.

Implements BalanceTable[Address, TokenId] -> Amount
"""

import re
from typing import Dict, Tuple


# Type aliases
Address = str  # 20-byte hex string (0x...)
TokenId = str  # token contract address, or NATIVE_TOKEN
Amount = int  # Non-negative integer (arbitrary precision)

ZERO_ADDRESS = "0x" + "00" * 20

# Native asset identifier (the conventional 0xeeee... sentinel)
NATIVE_TOKEN = "0x" + "ee" * 20

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(value: object) -> bool:
    """True for a 0x-prefixed 20-byte hex string other than the zero address."""
    if not isinstance(value, str) or not _ADDRESS_RE.fullmatch(value):
        return False
    return value.lower() != ZERO_ADDRESS


def canonical_address(value: str) -> Address:
    """Lower-case an address after validating it. Raises ValueError on junk."""
    if not is_valid_address(value):
        raise ValueError(f"invalid address: {value!r}")
    return value.lower()


class BalanceTable:
    """
    Deterministic balance table mapping (holder, token) -> amount.

    Note: this class stores balances in a plain dict. Do not rely on dict
    iteration order; callers should sort keys explicitly at serialization /
    hashing boundaries (see `src/integration/farm_snapshot.py`).
    """

    def __init__(self):
        """Initialize empty balance table."""
        self._balances: Dict[Tuple[Address, TokenId], Amount] = {}

    def get(self, holder: Address, token: TokenId) -> Amount:
        """Get balance for (holder, token). Returns 0 if not found."""
        return self._balances.get((holder, token), 0)

    def set(self, holder: Address, token: TokenId, amount: Amount) -> None:
        """
        Set balance for (holder, token).

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        if amount == 0:
            # Remove zero balances to keep table sparse
            self._balances.pop((holder, token), None)
        else:
            self._balances[(holder, token)] = amount

    def add(self, holder: Address, token: TokenId, delta: Amount) -> None:
        """
        Add delta to balance (delta may be negative).

        Raises:
            ValueError: If resulting balance would be negative
        """
        current = self.get(holder, token)
        new_balance = current + delta
        if new_balance < 0:
            raise ValueError(
                f"Insufficient balance: {current} + {delta} = {new_balance} < 0"
            )
        self.set(holder, token, new_balance)

    def subtract(self, holder: Address, token: TokenId, delta: Amount) -> None:
        """
        Subtract a non-negative delta from a balance.

        Raises:
            ValueError: If delta is negative or insufficient balance
        """
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(holder, token, -delta)

    def get_balances_for_token(self, token: TokenId) -> Dict[Address, Amount]:
        """Return holder -> amount for one token."""
        result = {}
        for (holder, t), amount in self._balances.items():
            if t == token:
                result[holder] = amount
        return result

    def total_for_token(self, token: TokenId) -> Amount:
        return sum(self.get_balances_for_token(token).values())

    def verify_non_negative(self) -> bool:
        """True if all balances >= 0."""
        return all(amount >= 0 for amount in self._balances.values())

    def __repr__(self) -> str:
        return f"BalanceTable({len(self._balances)} entries)"
