"""
Per-(pool, user) staking positions and pool membership.

Positions are created lazily on first deposit and never removed; the staked
amount may return to zero. Membership records every address that ever
deposited into a pool and is what reward-stream removal settles against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Set, Tuple

from .balances import Address, Amount, TokenId

# Type alias
PoolId = int


@dataclass
class UserPosition:
    """Staked amount plus per-token reward debt (in reward units, already unscaled)."""

    amount: Amount = 0
    debt: Dict[TokenId, int] = field(default_factory=dict)

    def debt_for(self, token: TokenId) -> int:
        return self.debt.get(token, 0)


class PositionTable:
    """
    Position table mapping (pool_id, user) -> UserPosition.

    Notes:
    - Amounts are always non-negative.
    - Entries are never deleted once created.
    - Stored per pool, so pool-wide scans only touch that pool's positions.
    """

    def __init__(self) -> None:
        self._by_pool: Dict[PoolId, Dict[Address, UserPosition]] = {}

    def get(self, pool_id: PoolId, user: Address) -> UserPosition:
        """Return the position, or an empty detached one if none exists."""
        pos = self._by_pool.get(pool_id, {}).get(user)
        return pos if pos is not None else UserPosition()

    def get_or_create(self, pool_id: PoolId, user: Address) -> UserPosition:
        pool = self._by_pool.setdefault(pool_id, {})
        pos = pool.get(user)
        if pos is None:
            pos = UserPosition()
            pool[user] = pos
        return pos

    def exists(self, pool_id: PoolId, user: Address) -> bool:
        return user in self._by_pool.get(pool_id, {})

    def add(self, pool_id: PoolId, user: Address, delta: int) -> None:
        """Add delta to a staked amount (delta may be negative)."""
        pos = self.get_or_create(pool_id, user)
        new_amount = pos.amount + delta
        if new_amount < 0:
            raise ValueError(
                f"Insufficient staked amount: {pos.amount} + {delta} = {new_amount} < 0"
            )
        pos.amount = new_amount

    def items_for_pool(self, pool_id: PoolId) -> Iterator[Tuple[Address, UserPosition]]:
        yield from self._by_pool.get(pool_id, {}).items()

    def total_for_pool(self, pool_id: PoolId) -> Amount:
        return sum(pos.amount for pos in self._by_pool.get(pool_id, {}).values())

    def verify_non_negative(self) -> bool:
        return all(pos.amount >= 0 for pool in self._by_pool.values() for pos in pool.values())

    def __repr__(self) -> str:
        entries = sum(len(pool) for pool in self._by_pool.values())
        return f"PositionTable({entries} entries)"


class MembershipIndex:
    """Explicit pool_id -> set-of-users index (no implicit iteration over positions)."""

    def __init__(self) -> None:
        self._members: Dict[PoolId, Set[Address]] = {}

    def add(self, pool_id: PoolId, user: Address) -> None:
        self._members.setdefault(pool_id, set()).add(user)

    def contains(self, pool_id: PoolId, user: Address) -> bool:
        return user in self._members.get(pool_id, ())

    def members(self, pool_id: PoolId) -> Tuple[Address, ...]:
        """Members in sorted order so settlement is deterministic."""
        return tuple(sorted(self._members.get(pool_id, ())))

    def __repr__(self) -> str:
        return f"MembershipIndex({len(self._members)} pools)"
