from __future__ import annotations

import pytest

from src.core.errors import ExternalCallError, TokenTransferError
from src.integration.host import LedgerHost
from src.integration.vault import APPROVE_MAX, CustodyVault, IdleStrategy
from tests.farm_world import ALICE, BOB, FARM, LP, addr

VAULT = addr(0x3001)
STRATEGY = addr(0x4001)


def _vault(*, funded: int = 1000, strategy: bool = False):
    host = LedgerHost()
    host.tokens.mint(FARM, LP, funded)
    vault = CustodyVault(host, address=VAULT, asset=LP, farm=FARM)
    host.tokens.approve(FARM, VAULT, LP, APPROVE_MAX)
    if strategy:
        vault.set_strategy(IdleStrategy(host, address=STRATEGY, asset=LP, vault=VAULT))
    return host, vault


class TestCustodyVault:
    def test_deposit_pulls_from_farm(self):
        host, vault = _vault()
        assert vault.deposit(ALICE, 600) == 600
        assert host.tokens.balance_of(FARM, LP) == 400
        assert vault.balance() == 600
        assert vault.deposited_by(ALICE) == 600

    def test_deposit_needs_farm_allowance(self):
        host, vault = _vault()
        host.tokens.approve(FARM, VAULT, LP, 0)
        with pytest.raises(TokenTransferError):
            vault.deposit(ALICE, 1)

    def test_withdraw_is_per_user(self):
        host, vault = _vault()
        vault.deposit(ALICE, 500)
        vault.deposit(BOB, 100)
        with pytest.raises(ExternalCallError):
            vault.withdraw(BOB, 101)
        assert vault.withdraw(ALICE, 500) == 500
        assert host.tokens.balance_of(ALICE, LP) == 500
        assert vault.deposited_by(ALICE) == 0

    def test_withdraw_recalls_from_strategy(self):
        host, vault = _vault(strategy=True)
        vault.deposit(ALICE, 800)
        assert host.tokens.balance_of(VAULT, LP) == 0
        assert host.tokens.balance_of(STRATEGY, LP) == 800
        assert vault.withdraw(ALICE, 300) == 300
        assert host.tokens.balance_of(STRATEGY, LP) == 500

    def test_strategy_shortfall_fails(self):
        host, vault = _vault(strategy=True)
        vault.deposit(ALICE, 800)
        host.tokens.transfer(STRATEGY, BOB, LP, 100)
        with pytest.raises(ExternalCallError):
            vault.withdraw(ALICE, 800)

    def test_swapping_strategies_moves_funds(self):
        host, vault = _vault(strategy=True)
        vault.deposit(ALICE, 800)
        other = addr(0x4002)
        vault.set_strategy(IdleStrategy(host, address=other, asset=LP, vault=VAULT))
        assert host.tokens.balance_of(STRATEGY, LP) == 0
        assert host.tokens.balance_of(other, LP) == 800
        assert vault.balance() == 800

    def test_rollback_restores_deposits(self):
        host, vault = _vault()
        with pytest.raises(RuntimeError):
            with host.transaction():
                vault.deposit(ALICE, 100)
                raise RuntimeError("abort")
        assert vault.deposited_by(ALICE) == 0
        assert vault.balance() == 0
