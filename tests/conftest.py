from __future__ import annotations

import pytest

from tests.farm_world import ALICE, BOB, World, make_world


@pytest.fixture
def world() -> World:
    """Fresh host + farm at t=0, not started, no pools."""
    return make_world()


@pytest.fixture
def live() -> World:
    """Started farm with one LP pool (weight 100, REWARD at 10/s), funded rewards and users."""
    w = make_world()
    w.farm.start_now(w.owner)
    w.add_pool()
    w.fund_rewards()
    w.fund_user(ALICE)
    w.fund_user(BOB)
    return w
