"""
test_scenarios.py - Reference scenarios end to end

A: Lowest rate wins, outbid principal moves to the refund ledger
B: Late bid extends the deadline
C: One year at 10% accrues to 1000 * e^0.1 (rounded up)
D: Exact repayment clears the debt with no refund
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from revlend import EventKind, RateNotImproved
from tests.conftest import T0, PRINCIPAL, MAX_RATE, escrow_cash


ONE_YEAR = timedelta(days=365.25)
DEADLINE = T0 + timedelta(hours=24)
DEBT_AFTER_ONE_YEAR = Decimal("1105.170918075647625")


@pytest.fixture
def ten_percent_loan(protocol, auction_id):
    """Loan of 1000 at rate 100 (10% a year), opened at DEADLINE."""
    protocol.bid("bob", auction_id, 100, PRINCIPAL)
    protocol.ledger.advance_time(DEADLINE)
    protocol.finalize_auction("keeper", auction_id)
    protocol.get_funds("alice")
    return auction_id


class TestScenarioA:

    def test_lowest_rate_wins(self, protocol, auction_id):
        protocol.bid("bob", auction_id, 300, PRINCIPAL)
        assert protocol.auction(auction_id).current_bid_rate == 300

        with pytest.raises(RateNotImproved):
            protocol.bid("carol", auction_id, 400, PRINCIPAL)
        assert protocol.auction(auction_id).highest_bidder == "bob"

        protocol.bid("carol", auction_id, 200, PRINCIPAL)
        record = protocol.auction(auction_id)
        assert record.current_bid_rate == 200
        assert record.highest_bidder == "carol"
        assert protocol.refund_balance("bob") == PRINCIPAL
        assert protocol.ledger.get_balance("bob", "ETH") == Decimal("19000")
        assert escrow_cash(protocol) == Decimal("2000")

        assert protocol.get_funds("bob") == PRINCIPAL
        assert protocol.ledger.get_balance("bob", "ETH") == Decimal("20000")


class TestScenarioB:

    def test_late_bid_extends(self, protocol, auction_id):
        bid_time = DEADLINE - timedelta(minutes=10)
        protocol.ledger.advance_time(bid_time)

        outcome = protocol.bid("bob", auction_id, 300, PRINCIPAL)

        assert outcome.extended
        assert outcome.new_end == bid_time + timedelta(minutes=15)
        assert protocol.auction(auction_id).auction_end == bid_time + timedelta(minutes=15)
        extension = protocol.events[-1]
        assert extension.kind == EventKind.AUCTION_EXTENDED
        assert extension.data['new_end'] == bid_time + timedelta(minutes=15)

    def test_bid_past_original_deadline_after_extension(self, protocol, auction_id):
        protocol.ledger.advance_time(DEADLINE - timedelta(minutes=10))
        protocol.bid("bob", auction_id, 300, PRINCIPAL)
        protocol.ledger.advance_time(DEADLINE)

        protocol.bid("carol", auction_id, 250, PRINCIPAL)
        assert protocol.auction(auction_id).auction_end == DEADLINE + timedelta(minutes=15)


class TestScenarioC:

    def test_one_year_at_ten_percent(self, protocol, ten_percent_loan):
        protocol.ledger.advance_time(DEADLINE + ONE_YEAR)
        assert protocol.outstanding_debt(ten_percent_loan) == DEBT_AFTER_ONE_YEAR
        assert protocol.accrue(ten_percent_loan) == DEBT_AFTER_ONE_YEAR
        loan = protocol.loan(ten_percent_loan)
        assert loan.accrued_debt == DEBT_AFTER_ONE_YEAR
        assert loan.last_accrued == DEADLINE + ONE_YEAR

    def test_accrual_path_independent_at_year_end(self, protocol, ten_percent_loan):
        """Accruing monthly ends within rounding of a single accrual over the year."""
        for month in range(1, 12):
            protocol.ledger.advance_time(DEADLINE + ONE_YEAR * month / 12)
            protocol.accrue(ten_percent_loan)
        protocol.ledger.advance_time(DEADLINE + ONE_YEAR)
        debt = protocol.accrue(ten_percent_loan)
        assert abs(debt - DEBT_AFTER_ONE_YEAR) < Decimal("1e-12")


class TestScenarioD:

    def test_exact_repayment(self, protocol, ten_percent_loan):
        protocol.ledger.advance_time(DEADLINE + ONE_YEAR)
        alice_before = protocol.ledger.get_balance("alice", "ETH")

        outcome = protocol.repay_with_external_payment("alice", ten_percent_loan, DEBT_AFTER_ONE_YEAR)

        assert outcome.applied == DEBT_AFTER_ONE_YEAR
        assert outcome.refunded == Decimal("0")
        assert outcome.remaining_debt == Decimal("0")
        loan = protocol.loan(ten_percent_loan)
        assert loan.accrued_debt == Decimal("0")
        assert loan.withdrawable == DEBT_AFTER_ONE_YEAR
        assert protocol.ledger.get_balance("alice", "ETH") == alice_before - DEBT_AFTER_ONE_YEAR

    def test_lender_collects_interest(self, protocol, ten_percent_loan):
        protocol.ledger.advance_time(DEADLINE + ONE_YEAR)
        protocol.repay_with_external_payment("alice", ten_percent_loan, DEBT_AFTER_ONE_YEAR)

        assert protocol.withdraw("bob", ten_percent_loan) == DEBT_AFTER_ONE_YEAR
        assert protocol.ledger.get_balance("bob", "ETH") == Decimal("19000") + DEBT_AFTER_ONE_YEAR
        protocol.reclaim_collateral("alice", ten_percent_loan)
        assert protocol.ledger.get_balance("alice", "SONG_42") == Decimal("1")
        assert escrow_cash(protocol) == Decimal("0")
