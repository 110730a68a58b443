"""
test_refunds.py - Unit tests for the pull-payment refund ledger

Tests:
- Claim unit creation
- Crediting accumulates, never overwrites
- Claiming pays the full balance, burns the claim first, zeroes the balance
- Zero balance claims are empty
- A claim the escrow cannot cover changes nothing
- Bookkeeping totals
"""

import pytest
from decimal import Decimal

from revlend import (
    Move, ExecuteResult, SYSTEM_WALLET, UNIT_TYPE_REFUND_CLAIM,
    build_transaction,
    refund_symbol,
    create_refund_unit,
    refund_balance,
    compute_refund_credit,
    compute_funds_claim,
    outstanding_refunds,
    InvalidAmount,
)


ESCROW = "escrow"


@pytest.fixture
def refund_ledger(ledger):
    """Ledger with REFUND_ETH and an escrow holding 3000 ETH."""
    ledger.register_unit(create_refund_unit("ETH", 18))
    ledger.register_wallet(ESCROW)
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("3000"), "ETH", SYSTEM_WALLET, ESCROW, "fund_escrow")
    ]))
    return ledger


def credit(ledger, address, amount, reason="test_credit"):
    result = ledger.execute(compute_refund_credit(ledger, "ETH", address, Decimal(amount), reason))
    assert result == ExecuteResult.APPLIED


class TestRefundUnit:

    def test_symbol(self):
        assert refund_symbol("ETH") == "REFUND_ETH"

    def test_create_refund_unit(self):
        unit = create_refund_unit("ETH", 18)
        assert unit.symbol == "REFUND_ETH"
        assert unit.unit_type == UNIT_TYPE_REFUND_CLAIM
        assert unit.decimal_places == 18
        assert unit.min_balance == Decimal("0")
        assert unit.state == {
            'currency': "ETH",
            'total_credited': Decimal("0"),
            'total_paid': Decimal("0"),
        }


class TestCredit:

    def test_unknown_address_owes_nothing(self, refund_ledger):
        assert refund_balance(refund_ledger, "ETH", "nobody") == Decimal("0")

    def test_credit_sets_balance(self, refund_ledger):
        credit(refund_ledger, "bob", "1000")
        assert refund_balance(refund_ledger, "ETH", "bob") == Decimal("1000")

    def test_credits_accumulate(self, refund_ledger):
        credit(refund_ledger, "bob", "1000", "outbid_1")
        credit(refund_ledger, "bob", "250", "outbid_2")
        assert refund_balance(refund_ledger, "ETH", "bob") == Decimal("1250")

    def test_identical_credits_both_apply(self, refund_ledger):
        credit(refund_ledger, "bob", "100", "same_reason")
        credit(refund_ledger, "bob", "100", "same_reason")
        assert refund_balance(refund_ledger, "ETH", "bob") == Decimal("200")

    def test_credit_moves_no_cash(self, refund_ledger):
        credit(refund_ledger, "bob", "1000")
        assert refund_ledger.get_balance("bob", "ETH") == Decimal("20000")
        assert refund_ledger.get_balance(ESCROW, "ETH") == Decimal("3000")

    def test_non_positive_credit_rejected(self, refund_ledger):
        with pytest.raises(InvalidAmount):
            compute_refund_credit(refund_ledger, "ETH", "bob", Decimal("0"), "zero")
        with pytest.raises(InvalidAmount):
            compute_refund_credit(refund_ledger, "ETH", "bob", Decimal("-5"), "negative")


class TestClaim:

    def test_claim_pays_full_balance(self, refund_ledger):
        credit(refund_ledger, "bob", "1000")
        pending = compute_funds_claim(refund_ledger, "ETH", "bob", ESCROW)
        assert refund_ledger.execute(pending) == ExecuteResult.APPLIED

        assert refund_balance(refund_ledger, "ETH", "bob") == Decimal("0")
        assert refund_ledger.get_balance("bob", "ETH") == Decimal("21000")
        assert refund_ledger.get_balance(ESCROW, "ETH") == Decimal("2000")

    def test_claim_burns_before_paying(self, refund_ledger):
        credit(refund_ledger, "bob", "1000")
        pending = compute_funds_claim(refund_ledger, "ETH", "bob", ESCROW)
        assert [m.unit_symbol for m in pending.moves] == ["REFUND_ETH", "ETH"]
        assert pending.moves[0].dest == SYSTEM_WALLET
        assert pending.moves[1].source == ESCROW

    def test_zero_balance_claim_is_empty(self, refund_ledger):
        pending = compute_funds_claim(refund_ledger, "ETH", "bob", ESCROW)
        assert pending.is_empty()

    def test_second_claim_pays_nothing(self, refund_ledger):
        credit(refund_ledger, "bob", "1000")
        refund_ledger.execute(compute_funds_claim(refund_ledger, "ETH", "bob", ESCROW))
        assert compute_funds_claim(refund_ledger, "ETH", "bob", ESCROW).is_empty()

    def test_uncovered_claim_changes_nothing(self, refund_ledger):
        credit(refund_ledger, "bob", "5000")
        pending = compute_funds_claim(refund_ledger, "ETH", "bob", ESCROW)
        assert refund_ledger.execute(pending) == ExecuteResult.REJECTED

        assert refund_balance(refund_ledger, "ETH", "bob") == Decimal("5000")
        assert refund_ledger.get_balance(ESCROW, "ETH") == Decimal("3000")
        assert refund_ledger.get_unit_state("REFUND_ETH")['total_paid'] == Decimal("0")


class TestBookkeeping:

    def test_outstanding_plus_paid_equals_credited(self, refund_ledger):
        credit(refund_ledger, "bob", "1000")
        credit(refund_ledger, "carol", "700")
        credit(refund_ledger, "bob", "300", "again")
        refund_ledger.execute(compute_funds_claim(refund_ledger, "ETH", "carol", ESCROW))

        state = refund_ledger.get_unit_state("REFUND_ETH")
        assert state['total_credited'] == Decimal("2000")
        assert state['total_paid'] == Decimal("700")
        assert outstanding_refunds(refund_ledger, "ETH") == Decimal("1300")
        assert outstanding_refunds(refund_ledger, "ETH") + state['total_paid'] == state['total_credited']
