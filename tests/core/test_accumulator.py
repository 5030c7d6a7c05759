from __future__ import annotations

import pytest

from src.core.accumulator import (
    ACC_SCALE,
    accrue,
    accrued_value,
    accumulator_delta,
    pending_reward,
    project,
    projected_accumulator,
    stream_reward,
)
from src.state.pools import AssetKind, PoolState, RewardStream

LP = "0x" + "11" * 20
R1 = "0x" + "21" * 20
R2 = "0x" + "22" * 20
VAULT = "0x" + "33" * 20


def _pool(*, staked: int = 1000, last: int = 0, weight: int = 100) -> PoolState:
    return PoolState(
        pool_id=0,
        asset=LP,
        asset_kind=AssetKind.TOKEN,
        allocation_weight=weight,
        vault_address=VAULT,
        total_staked=staked,
        last_accrual_time=last,
        reward_streams=[RewardStream(token=R1, emission_rate=10), RewardStream(token=R2, emission_rate=3)],
    )


class TestScalarMath:
    def test_stream_reward_full_allocation(self):
        assert stream_reward(10, 10, 100, 100) == 100

    def test_stream_reward_weight_split_rounds_down(self):
        assert stream_reward(10, 10, 1, 3) == 33

    @pytest.mark.parametrize("elapsed,total_weight", [(0, 100), (-5, 100), (10, 0)])
    def test_stream_reward_degenerate(self, elapsed, total_weight):
        assert stream_reward(elapsed, 10, 100, total_weight) == 0

    def test_accumulator_delta(self):
        assert accumulator_delta(100, 1000) == ACC_SCALE // 10
        assert accumulator_delta(100, 0) == 0

    def test_accumulator_delta_custom_scale(self):
        assert accumulator_delta(1, 3, scale=1000) == 333

    def test_accrued_value(self):
        assert accrued_value(1000, ACC_SCALE // 10) == 100

    def test_pending_never_negative(self):
        assert pending_reward(1000, ACC_SCALE // 10, 0) == 100
        assert pending_reward(1000, ACC_SCALE // 10, 100) == 0
        assert pending_reward(1000, ACC_SCALE // 10, 250) == 0


# ---------------------------------------------------------------------------
# Projection / accrual
# ---------------------------------------------------------------------------


class TestProject:
    def test_project_does_not_mutate(self):
        pool = _pool()
        result = project(pool, 10, 100)
        assert result.elapsed == 10
        assert result.rewards == (100, 30)
        assert result.accumulators == (ACC_SCALE // 10, 30 * ACC_SCALE // 1000)
        assert [s.accumulator for s in pool.reward_streams] == [0, 0]
        assert pool.last_accrual_time == 0

    def test_project_at_or_before_last_accrual(self):
        pool = _pool(last=20)
        result = project(pool, 15, 100)
        assert result.elapsed == 0
        assert result.now == 20
        assert not result.changed

    def test_idle_pool_accrues_nothing(self):
        pool = _pool(staked=0)
        result = accrue(pool, 500, 100)
        assert result.rewards == (0, 0)
        assert [s.accumulator for s in pool.reward_streams] == [0, 0]
        assert pool.last_accrual_time == 500

    def test_accrue_is_idempotent_at_same_timestamp(self):
        pool = _pool()
        first = accrue(pool, 10, 100)
        second = accrue(pool, 10, 100)
        assert first.changed
        assert not second.changed
        assert [s.accumulator for s in pool.reward_streams] == list(first.accumulators)

    def test_accrue_in_two_steps_matches_one_step_without_truncation(self):
        a = _pool()
        b = _pool()
        accrue(a, 5, 100)
        accrue(a, 10, 100)
        accrue(b, 10, 100)
        assert [s.accumulator for s in a.reward_streams] == [s.accumulator for s in b.reward_streams]

    def test_projected_accumulator_unknown_token(self):
        with pytest.raises(KeyError):
            projected_accumulator(_pool(), "0x" + "99" * 20, 10, 100)

    def test_projected_accumulator_matches_accrue(self):
        pool = _pool()
        projected = projected_accumulator(pool, R2, 40, 400)
        accrue(pool, 40, 400)
        assert pool.find_stream(R2).accumulator == projected
