"""
Reward accumulator math for farm pools.

Every pool carries, per reward token, a running "reward per staked unit"
accumulator scaled by ACC_SCALE. A user's entitlement is

    amount * accumulator // ACC_SCALE - debt

where debt is the same product snapshotted at the user's last interaction.

All arithmetic is integer-only and rounds down (Python `//`). Truncation is
the only source of reward leakage: each accrual pass loses less than one
scaled unit per stream in `accumulator_delta`, plus the remainder of the
weight split in `stream_reward`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..state.pools import PoolState


ACC_SCALE = 10**18


def stream_reward(
    elapsed: int,
    emission_rate: int,
    allocation_weight: int,
    total_allocation_weight: int,
) -> int:
    """Reward emitted to one pool for one stream over `elapsed` seconds."""
    if elapsed <= 0 or total_allocation_weight <= 0:
        return 0
    return (elapsed * emission_rate * allocation_weight) // total_allocation_weight


def accumulator_delta(reward: int, total_staked: int, scale: int = ACC_SCALE) -> int:
    """Increase of reward-per-staked-unit when `reward` is spread over `total_staked`."""
    if total_staked <= 0:
        return 0
    return (reward * scale) // total_staked


def accrued_value(amount: int, accumulator: int, scale: int = ACC_SCALE) -> int:
    """Rewards owed to `amount` staked units since accumulator zero."""
    return (amount * accumulator) // scale


def pending_reward(amount: int, accumulator: int, debt: int, scale: int = ACC_SCALE) -> int:
    """Unclaimed reward; never negative."""
    owed = accrued_value(amount, accumulator, scale) - debt
    return owed if owed > 0 else 0


@dataclass(frozen=True)
class Accrual:
    """Result of bringing a pool's accumulators up to `now`."""

    now: int
    elapsed: int
    accumulators: Tuple[int, ...]
    rewards: Tuple[int, ...]

    @property
    def changed(self) -> bool:
        return any(r > 0 for r in self.rewards)


def project(
    pool: PoolState,
    now: int,
    total_allocation_weight: int,
    scale: int = ACC_SCALE,
) -> Accrual:
    """
    Compute what the pool's accumulators would be at `now` without mutating it.

    Streams are reported in the pool's current stream order.
    """
    current = tuple(s.accumulator for s in pool.reward_streams)
    zeros = tuple(0 for _ in pool.reward_streams)

    if now <= pool.last_accrual_time:
        return Accrual(now=pool.last_accrual_time, elapsed=0, accumulators=current, rewards=zeros)

    elapsed = now - pool.last_accrual_time
    if pool.total_staked == 0:
        # Idle pools bank nothing: the elapsed window is simply skipped.
        return Accrual(now=now, elapsed=elapsed, accumulators=current, rewards=zeros)

    accs = []
    rewards = []
    for stream in pool.reward_streams:
        reward = stream_reward(elapsed, stream.emission_rate, pool.allocation_weight, total_allocation_weight)
        accs.append(stream.accumulator + accumulator_delta(reward, pool.total_staked, scale))
        rewards.append(reward)
    return Accrual(now=now, elapsed=elapsed, accumulators=tuple(accs), rewards=tuple(rewards))


def accrue(
    pool: PoolState,
    now: int,
    total_allocation_weight: int,
    scale: int = ACC_SCALE,
) -> Accrual:
    """Apply `project()` to the pool. Calling twice with the same `now` is a no-op."""
    result = project(pool, now, total_allocation_weight, scale)
    for stream, acc in zip(pool.reward_streams, result.accumulators):
        if acc < stream.accumulator:
            raise ValueError(f"accumulator for {stream.token} would decrease")
        stream.accumulator = acc
    if result.now > pool.last_accrual_time:
        pool.last_accrual_time = result.now
    return result


def projected_accumulator(
    pool: PoolState,
    token: str,
    now: int,
    total_allocation_weight: int,
    scale: int = ACC_SCALE,
) -> int:
    """
    Projected accumulator for one token.

    Raises:
        KeyError: If the pool has no stream for `token`
    """
    idx = pool.stream_index(token)
    return project(pool, now, total_allocation_weight, scale).accumulators[idx]
