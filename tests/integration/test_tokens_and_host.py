from __future__ import annotations

import logging

import pytest

from src.core.errors import TokenTransferError
from src.integration.host import LedgerHost
from src.integration.tokens import TokenLedger
from src.state.balances import NATIVE_TOKEN
from tests.farm_world import ALICE, BOB, CAROL, LP


# ---------------------------------------------------------------------------
# TokenLedger
# ---------------------------------------------------------------------------


class TestTokenLedger:
    def test_mint_and_transfer(self):
        t = TokenLedger()
        t.mint(ALICE, LP, 100)
        assert t.transfer(ALICE, BOB, LP, 40) == 40
        assert t.balance_of(ALICE, LP) == 60
        assert t.balance_of(BOB, LP) == 40
        assert t.total_supply(LP) == 100

    def test_insufficient_balance(self):
        t = TokenLedger()
        t.mint(ALICE, LP, 10)
        with pytest.raises(TokenTransferError):
            t.transfer(ALICE, BOB, LP, 11)
        assert t.balance_of(ALICE, LP) == 10

    def test_bad_amount(self):
        t = TokenLedger()
        with pytest.raises(TokenTransferError):
            t.mint(ALICE, LP, -1)
        with pytest.raises(TokenTransferError):
            t.transfer(ALICE, BOB, LP, True)

    def test_transfer_from_spends_allowance(self):
        t = TokenLedger()
        t.mint(ALICE, LP, 100)
        t.approve(ALICE, BOB, LP, 60)
        t.transfer_from(BOB, ALICE, CAROL, LP, 50)
        assert t.allowance(ALICE, BOB, LP) == 10
        with pytest.raises(TokenTransferError):
            t.transfer_from(BOB, ALICE, CAROL, LP, 11)
        assert t.balance_of(CAROL, LP) == 50

    def test_owner_spends_without_allowance(self):
        t = TokenLedger()
        t.mint(ALICE, LP, 5)
        assert t.transfer_from(ALICE, ALICE, BOB, LP, 5) == 5

    def test_approve_zero_clears(self):
        t = TokenLedger()
        t.approve(ALICE, BOB, LP, 5)
        t.approve(ALICE, BOB, LP, 0)
        assert t.allowance(ALICE, BOB, LP) == 0

    def test_transfer_tax_is_burned(self):
        t = TokenLedger()
        t.mint(ALICE, LP, 10_000)
        t.set_transfer_tax(LP, 250)
        assert t.transfer(ALICE, BOB, LP, 1000) == 975
        assert t.total_supply(LP) == 10_000 - 25

    def test_native_cannot_be_taxed(self):
        t = TokenLedger()
        with pytest.raises(ValueError):
            t.set_transfer_tax(NATIVE_TOKEN, 1)
        with pytest.raises(ValueError):
            t.set_transfer_tax(LP, 10_001)

    def test_hook_sees_received_amount(self):
        t = TokenLedger()
        t.mint(ALICE, LP, 1000)
        t.set_transfer_tax(LP, 100)
        calls = []
        t.set_transfer_hook(LP, lambda s, to, amount: calls.append((s, to, amount)))
        t.transfer(ALICE, BOB, LP, 1000)
        assert calls == [(ALICE, BOB, 990)]


# ---------------------------------------------------------------------------
# LedgerHost
# ---------------------------------------------------------------------------


class TestClock:
    def test_monotonic(self):
        h = LedgerHost(start_time=10)
        assert h.advance(5) == 15
        with pytest.raises(ValueError):
            h.set_time(14)

    def test_frozen_inside_transaction(self):
        h = LedgerHost()
        with h.transaction():
            with pytest.raises(RuntimeError):
                h.advance(1)
        assert h.now() == 0

    def test_rejects_bad_start(self):
        with pytest.raises(ValueError):
            LedgerHost(start_time=-1)


class TestTransactions:
    def test_exception_restores_components(self, caplog):
        h = LedgerHost()
        h.tokens.mint(ALICE, LP, 100)
        with caplog.at_level(logging.WARNING, logger="src.integration.host"):
            with pytest.raises(TokenTransferError):
                with h.transaction():
                    h.tokens.transfer(ALICE, BOB, LP, 60)
                    h.tokens.transfer(ALICE, BOB, LP, 60)
        assert h.tokens.balance_of(ALICE, LP) == 100
        assert h.tokens.balance_of(BOB, LP) == 0
        assert not h.in_transaction
        assert any(getattr(r, "event", None) == "host.rollback" for r in caplog.records)

    def test_nested_transaction_joins_outer(self):
        h = LedgerHost()
        with h.transaction():
            h.tokens.mint(ALICE, LP, 1)
            with pytest.raises(TokenTransferError):
                with h.transaction():
                    h.tokens.mint(ALICE, LP, 1)
                    h.tokens.transfer(ALICE, BOB, LP, 5)
            assert h.in_transaction
        assert h.tokens.balance_of(ALICE, LP) == 2

    def test_outer_failure_discards_inner_work(self):
        h = LedgerHost()
        with pytest.raises(ValueError):
            with h.transaction():
                with h.transaction():
                    h.tokens.mint(ALICE, LP, 7)
                raise ValueError("abort")
        assert h.tokens.balance_of(ALICE, LP) == 0
