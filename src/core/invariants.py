"""Invariant checkers for the farm ledger.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant IDs (empty = all pass). The ledger runs
`check_all()` before committing every mutating transaction.
"""

from __future__ import annotations

from typing import Callable

from .accumulator import ACC_SCALE, accrued_value
from .farm_state import FarmState


def inv_total_staked_conserved(s: FarmState, scale: int) -> bool:
    return all(pool.total_staked == s.positions.total_for_pool(pool.pool_id) for pool in s.pools)


def inv_weight_sum(s: FarmState, scale: int) -> bool:
    return s.total_allocation_weight == sum(pool.allocation_weight for pool in s.pools)


def inv_pool_ids_are_indices(s: FarmState, scale: int) -> bool:
    return all(pool.pool_id == i for i, pool in enumerate(s.pools))


def inv_unique_pool_assets(s: FarmState, scale: int) -> bool:
    assets = [pool.asset for pool in s.pools]
    return len(assets) == len(set(assets))


def inv_positions_non_negative(s: FarmState, scale: int) -> bool:
    return s.positions.verify_non_negative()


def inv_debt_bounded(s: FarmState, scale: int) -> bool:
    for pool in s.pools:
        for _, pos in s.positions.items_for_pool(pool.pool_id):
            for stream in pool.reward_streams:
                if pos.debt_for(stream.token) > accrued_value(pos.amount, stream.accumulator, scale):
                    return False
    return True


def inv_no_stale_debt(s: FarmState, scale: int) -> bool:
    for pool in s.pools:
        tokens = {stream.token for stream in pool.reward_streams}
        for _, pos in s.positions.items_for_pool(pool.pool_id):
            if not set(pos.debt).issubset(tokens):
                return False
    return True


def inv_registry_matches_streams(s: FarmState, scale: int) -> bool:
    return s.reward_tokens == s.tokens_in_use()


def inv_stream_ids_unique(s: FarmState, scale: int) -> bool:
    ids = [stream.stream_id for pool in s.pools for stream in pool.reward_streams]
    return len(ids) == len(set(ids)) and all(0 < i < s.next_stream_id for i in ids)


def inv_members_registered(s: FarmState, scale: int) -> bool:
    for pool in s.pools:
        for user, _ in s.positions.items_for_pool(pool.pool_id):
            if not s.membership.contains(pool.pool_id, user) or user not in s.users:
                return False
    return True


def inv_distributed_non_negative(s: FarmState, scale: int) -> bool:
    return all(v >= 0 for v in s.total_distributed.values())


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[FarmState, int], bool]] = {
    "inv_total_staked_conserved": inv_total_staked_conserved,
    "inv_weight_sum": inv_weight_sum,
    "inv_pool_ids_are_indices": inv_pool_ids_are_indices,
    "inv_unique_pool_assets": inv_unique_pool_assets,
    "inv_positions_non_negative": inv_positions_non_negative,
    "inv_debt_bounded": inv_debt_bounded,
    "inv_no_stale_debt": inv_no_stale_debt,
    "inv_registry_matches_streams": inv_registry_matches_streams,
    "inv_stream_ids_unique": inv_stream_ids_unique,
    "inv_members_registered": inv_members_registered,
    "inv_distributed_non_negative": inv_distributed_non_negative,
}


def check_all(state: FarmState, scale: int = ACC_SCALE) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state, scale)
    ]
