"""Mutable ledger state owned by `FarmLedger`.

Kept separate from the ledger so the host can snapshot it with one deepcopy
and so the invariant checkers can read it without importing the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..state.balances import Address, TokenId
from ..state.pools import PoolState
from ..state.positions import MembershipIndex, PositionTable


@dataclass
class FarmState:
    pools: List[PoolState] = field(default_factory=list)
    positions: PositionTable = field(default_factory=PositionTable)
    membership: MembershipIndex = field(default_factory=MembershipIndex)
    start_time: Optional[int] = None
    total_allocation_weight: int = 0
    reward_tokens: Set[TokenId] = field(default_factory=set)
    total_distributed: Dict[TokenId, int] = field(default_factory=dict)
    users: Set[Address] = field(default_factory=set)
    next_stream_id: int = 1

    def tokens_in_use(self) -> Set[TokenId]:
        return {s.token for pool in self.pools for s in pool.reward_streams}
