from __future__ import annotations

import json

import pytest

from src.integration.farm_snapshot import FARM_SNAPSHOT_VERSION, snapshot_from_farm
from tests.farm_world import ALICE, BOB, REWARD, REWARD2, make_world


def _world(*, bob_first: bool):
    w = make_world()
    w.farm.start_now(w.owner)
    w.add_pool(streams=[(REWARD, 10), (REWARD2, 4)])
    w.fund_rewards(REWARD)
    w.fund_rewards(REWARD2)
    w.fund_user(ALICE)
    w.fund_user(BOB)
    order = [BOB, ALICE] if bob_first else [ALICE, BOB]
    for user in order:
        w.deposit(user, 0, 500)
    w.at(30)
    w.harvest(ALICE, 0)
    return w


def test_snapshot_is_deterministic() -> None:
    s1 = snapshot_from_farm(_world(bob_first=False).farm)
    s2 = snapshot_from_farm(_world(bob_first=True).farm)
    assert s1.canonical_bytes() == s2.canonical_bytes()
    assert s1.commitment_hex() == s2.commitment_hex()
    assert s1.commitment_bytes().hex() == s1.commitment_hex()[2:]


def test_snapshot_contents() -> None:
    snap = snapshot_from_farm(_world(bob_first=False).farm)
    data = snap.data
    assert data["version"] == FARM_SNAPSHOT_VERSION
    assert data["start_time"] == 0
    assert [p["user"] for p in data["positions"]] == sorted([ALICE, BOB])
    assert data["pools"][0]["members"] == sorted([ALICE, BOB])
    assert {e["token"]: e["amount"] for e in data["total_distributed"]} == {REWARD: 150, REWARD2: 60}
    json.dumps(data)


def test_snapshot_changes_with_state() -> None:
    w = _world(bob_first=False)
    before = snapshot_from_farm(w.farm).commitment_hex()
    w.harvest(BOB, 0)
    assert snapshot_from_farm(w.farm).commitment_hex() != before


def test_removed_stream_payouts_stay_visible() -> None:
    w = _world(bob_first=False)
    w.farm.remove_reward_stream(w.owner, 0, REWARD2)
    data = snapshot_from_farm(w.farm).data
    assert REWARD2 not in data["reward_tokens"]
    assert {e["token"] for e in data["total_distributed"]} == {REWARD, REWARD2}


def test_bad_version() -> None:
    with pytest.raises(ValueError):
        snapshot_from_farm(_world(bob_first=False).farm, version=0)
