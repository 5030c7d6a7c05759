"""
Pool state for the farm.

A pool is one staking bucket: the staked asset, its allocation weight, the
amount staked across all users, and an ordered list of reward streams.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .balances import NATIVE_TOKEN, Address, Amount, TokenId, is_valid_address


class AssetKind(Enum):
    """How a pool's asset reaches the farm."""
    NATIVE = "NATIVE"
    TOKEN = "TOKEN"


def asset_kind_for(asset: TokenId) -> AssetKind:
    return AssetKind.NATIVE if asset == NATIVE_TOKEN else AssetKind.TOKEN


@dataclass
class RewardStream:
    """
    One reward token's emission configuration within a pool.

    Attributes:
        token: Reward token identifier
        emission_rate: Reward units per second at full farm allocation
        accumulator: Cumulative reward per staked unit, scaled by ACC_SCALE
        stream_id: Farm-wide instance number (never reused)
    """
    token: TokenId
    emission_rate: Amount
    accumulator: int = 0
    stream_id: int = 0

    def __post_init__(self):
        if not is_valid_address(self.token):
            raise ValueError(f"invalid reward token: {self.token!r}")
        if self.emission_rate < 0:
            raise ValueError(f"emission_rate must be non-negative: {self.emission_rate}")
        if self.accumulator < 0:
            raise ValueError(f"accumulator must be non-negative: {self.accumulator}")


@dataclass
class PoolState:
    """
    State of a farm pool.

    Attributes:
        pool_id: Index of the pool in the farm's append-only pool list
        asset: Staked asset identifier
        asset_kind: NATIVE or TOKEN, resolved once at creation
        allocation_weight: Share of farm-wide emission relative to the weight sum
        total_staked: Sum of all user positions in this pool
        last_accrual_time: Timestamp the accumulators were last brought up to
        vault_address: Address of the custody vault holding the staked asset
        reward_streams: Ordered reward streams (order not significant after removal)
    """
    pool_id: int
    asset: TokenId
    asset_kind: AssetKind
    allocation_weight: int
    vault_address: Address
    total_staked: Amount = 0
    last_accrual_time: int = 0
    reward_streams: List[RewardStream] = field(default_factory=list)

    def __post_init__(self):
        """Validate pool state invariants."""
        if self.pool_id < 0:
            raise ValueError(f"pool_id must be non-negative: {self.pool_id}")
        if not is_valid_address(self.asset):
            raise ValueError(f"invalid pool asset: {self.asset!r}")
        if self.asset_kind != asset_kind_for(self.asset):
            raise ValueError(f"asset_kind {self.asset_kind.value} does not match asset {self.asset}")
        if self.allocation_weight < 0:
            raise ValueError(f"allocation_weight must be non-negative: {self.allocation_weight}")
        if self.total_staked < 0:
            raise ValueError(f"total_staked must be non-negative: {self.total_staked}")
        tokens = [s.token for s in self.reward_streams]
        if len(tokens) != len(set(tokens)):
            raise ValueError(f"duplicate reward tokens in pool {self.pool_id}")

    def find_stream(self, token: TokenId) -> Optional[RewardStream]:
        for stream in self.reward_streams:
            if stream.token == token:
                return stream
        return None

    def stream_index(self, token: TokenId) -> int:
        """
        Index of the stream for `token`.

        Raises:
            KeyError: If the token has no stream in this pool
        """
        for i, stream in enumerate(self.reward_streams):
            if stream.token == token:
                return i
        raise KeyError(token)

    def remove_stream(self, token: TokenId) -> RewardStream:
        """Swap-with-last-and-pop removal. Returns the removed stream."""
        i = self.stream_index(token)
        last = len(self.reward_streams) - 1
        if i != last:
            self.reward_streams[i], self.reward_streams[last] = (
                self.reward_streams[last],
                self.reward_streams[i],
            )
        return self.reward_streams.pop()

    @property
    def is_native(self) -> bool:
        return self.asset_kind is AssetKind.NATIVE

    def __repr__(self) -> str:
        return (
            f"PoolState(pool_id={self.pool_id}, asset={self.asset[:10]}..., "
            f"weight={self.allocation_weight}, staked={self.total_staked}, "
            f"streams={len(self.reward_streams)})"
        )
