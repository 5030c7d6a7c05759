from __future__ import annotations

import logging

import pytest

from src.core.access import CallerContext
from src.core.errors import ExternalCallError, FarmInvariantError, InsufficientStakeError, ReentrancyError
from tests.farm_world import ALICE, LP, LP2, REWARD, addr, make_world


class _BrokenVault:
    """Vault stub that rejects every deposit."""

    def __init__(self, asset: str) -> None:
        self.address = addr(0x3BAD)
        self.asset = asset

    def deposit(self, user, amount):
        raise ExternalCallError("vault is paused")

    def withdraw(self, user, amount):
        raise ExternalCallError("vault is paused")

    def balance(self):
        return 0


class _GreedyVault(_BrokenVault):
    """Vault stub that claims to have credited more than it was sent."""

    def deposit(self, user, amount):
        return amount + 1


# ---------------------------------------------------------------------------
# Re-entrancy
# ---------------------------------------------------------------------------


class TestReentrancy:
    def test_callback_into_farm_is_rejected_and_rolled_back(self, live):
        live.deposit(ALICE, 0, 1000)
        live.at(10)

        def hook(sender, to, amount):
            live.farm.withdraw(CallerContext.of(ALICE), 0, 1000)

        live.tokens.set_transfer_hook(REWARD, hook)
        with pytest.raises(ReentrancyError):
            live.harvest(ALICE, 0)

        assert live.tokens.balance_of(ALICE, REWARD) == 0
        assert live.farm.position(0, ALICE).amount == 1000
        assert live.farm.pending(0, ALICE, REWARD) == 100
        assert live.farm.total_distributed(REWARD) == 0

        live.tokens.set_transfer_hook(REWARD, None)
        assert live.harvest(ALICE, 0) == {REWARD: 100}

    def test_reads_are_allowed_from_callbacks(self, live):
        live.deposit(ALICE, 0, 1000)
        live.at(10)
        seen = []
        live.tokens.set_transfer_hook(REWARD, lambda s, t, a: seen.append(live.farm.position(0, ALICE).amount))
        live.harvest(ALICE, 0)
        assert seen == [1000]


# ---------------------------------------------------------------------------
# All-or-nothing execution
# ---------------------------------------------------------------------------


class TestRollback:
    def test_vault_failure_reverts_deposit(self, live, caplog):
        live.farm.add_pool(live.owner, LP2, 100, _BrokenVault(LP2), [(REWARD, 1)])
        live.fund_user(ALICE, LP2, 500)
        with caplog.at_level(logging.WARNING, logger="src.integration.host"):
            with pytest.raises(ExternalCallError):
                live.deposit(ALICE, 1, 500)
        assert live.tokens.balance_of(ALICE, LP2) == 500
        assert live.tokens.allowance(ALICE, live.farm.address, LP2) == 500
        assert live.farm.pool_info(1).total_staked == 0
        assert any(getattr(r, "event", None) == "host.rollback" for r in caplog.records)

    def test_over_crediting_vault_is_rejected(self, live):
        live.farm.add_pool(live.owner, LP2, 100, _GreedyVault(LP2))
        live.fund_user(ALICE, LP2, 500)
        with pytest.raises(ExternalCallError):
            live.deposit(ALICE, 1, 500)
        assert live.farm.position(1, ALICE).amount == 0

    def test_invariant_violation_aborts(self, live, monkeypatch):
        monkeypatch.setattr("src.core.farm.check_all", lambda state, scale: ["inv_forced"])
        with pytest.raises(FarmInvariantError) as excinfo:
            live.deposit(ALICE, 0, 1000)
        assert excinfo.value.violations == ["inv_forced"]
        assert live.tokens.balance_of(ALICE, LP) == 1_000_000
        assert live.farm.position(0, ALICE).amount == 0

    def test_invariant_checks_can_be_disabled(self, monkeypatch):
        w = make_world(check_invariants=False)
        monkeypatch.setattr("src.core.farm.check_all", lambda state, scale: ["inv_forced"])
        w.farm.start_now(w.owner)
        assert w.farm.is_active()

    def test_guard_is_released_after_failure(self, live):
        with pytest.raises(InsufficientStakeError):
            live.withdraw(ALICE, 0, 1)
        assert live.deposit(ALICE, 0, 10) == 10
