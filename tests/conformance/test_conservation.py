"""
Conservation Conformance Tests

INVARIANT: Cash and collateral are never created or destroyed by the
protocol.

    ∀ committed state S:
        Σ_w balance(w, ETH) = 0                      (system wallet included)
        escrow cash = refunds owed + standing bids + lender withdrawables
        exactly one wallet holds each revenue NFT

Refund accounting (pull payments):

    credits(a) - claims(a) = refund_balance(a)
    Σ_a refund_balance(a) = -REFUND_ETH held by the system wallet
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import timedelta
from decimal import Decimal

from revlend import (
    ProtocolError, TransferFailed, SYSTEM_WALLET, refund_symbol, outstanding_refunds,
)
from tests.conftest import (
    T0, PRINCIPAL, MAX_RATE, FUNDING, build_market, deposit_revenue, escrow_cash,
)


def check_conservation(protocol):
    ledger = protocol.ledger
    report = ledger.verify_double_entry()
    assert report['valid']
    assert protocol.escrow_liabilities() == escrow_cash(protocol)

    for symbol in ("SONG_42",):
        holders = [w for w, q in ledger.get_positions(symbol).items() if w != SYSTEM_WALLET and q != 0]
        assert len(holders) == 1
        assert ledger.get_balance(holders[0], symbol) == Decimal("1")

    refund_unit = refund_symbol(protocol.currency)
    owed = sum(
        (q for w, q in ledger.get_positions(refund_unit).items() if w != SYSTEM_WALLET),
        Decimal("0"),
    )
    assert owed == -ledger.get_balance(SYSTEM_WALLET, refund_unit)
    assert owed == outstanding_refunds(ledger, protocol.currency)


market_ops = st.lists(
    st.one_of(
        st.tuples(st.just("bid"), st.sampled_from(["bob", "carol", "dave"]), st.integers(0, 500)),
        st.tuples(st.just("advance"), st.integers(1, 60 * 30)),
        st.tuples(st.just("finalize"),),
        st.tuples(st.just("get_funds"), st.sampled_from(["alice", "bob", "carol", "dave"])),
        st.tuples(st.just("repay"), st.integers(1, 2000)),
        st.tuples(st.just("revenue"), st.integers(1, 500)),
        st.tuples(st.just("repay_yield"),),
        st.tuples(st.just("withdraw"), st.integers(0, 500)),
        st.tuples(st.just("reclaim"),),
    ),
    min_size=1,
    max_size=25,
)


def apply_op(protocol, auction_id, op):
    kind = op[0]
    lender = protocol.lender_of(auction_id) or "bob"
    try:
        if kind == "bid":
            protocol.bid(op[1], auction_id, op[2], PRINCIPAL)
        elif kind == "advance":
            protocol.ledger.advance_time(protocol.ledger.current_time + timedelta(minutes=op[1]))
        elif kind == "finalize":
            protocol.finalize_auction("keeper", auction_id)
        elif kind == "get_funds":
            protocol.get_funds(op[1])
        elif kind == "repay":
            protocol.repay_with_external_payment("alice", auction_id, Decimal(op[1]))
        elif kind == "revenue":
            deposit_revenue(protocol.ledger, "SONG_42", Decimal(op[1]))
        elif kind == "repay_yield":
            protocol.repay_with_claimable_yield("alice", auction_id)
        elif kind == "withdraw":
            protocol.withdraw(lender, auction_id, Decimal(op[1]))
        elif kind == "reclaim":
            protocol.reclaim_collateral("alice", auction_id)
    except (ProtocolError, TransferFailed):
        pass


class TestConservationProperties:
    """Property-based conservation tests over random market histories."""

    @given(market_ops)
    @settings(max_examples=80, deadline=None)
    def test_random_history_conserves(self, ops):
        """
        PROPERTY: After every operation, successful or not, cash sums to
        zero, the escrow holds exactly what it owes, and the NFT has one holder.
        """
        protocol, factory = build_market()
        auction_id = factory.create_auction("alice", "SONG_42", PRINCIPAL, MAX_RATE)
        check_conservation(protocol)

        for op in ops:
            apply_op(protocol, auction_id, op)
            check_conservation(protocol)

    @given(st.lists(st.integers(min_value=0, max_value=499), min_size=1, max_size=15))
    @settings(max_examples=50, deadline=None)
    def test_bidders_made_whole(self, rates):
        """
        PROPERTY: Every outbid bidder can claim back exactly what they paid;
        only the winner's principal stays with the protocol.
        """
        protocol, factory = build_market()
        auction_id = factory.create_auction("alice", "SONG_42", PRINCIPAL, MAX_RATE)
        bidders = ["bob", "carol", "dave"]

        for i, rate in enumerate(rates):
            try:
                protocol.bid(bidders[i % 3], auction_id, rate, PRINCIPAL)
            except ProtocolError:
                pass

        winner = protocol.auction(auction_id).highest_bidder
        for bidder in bidders:
            protocol.get_funds(bidder)
            expected = FUNDING[bidder] - (PRINCIPAL if bidder == winner else Decimal("0"))
            assert protocol.ledger.get_balance(bidder, "ETH") == expected


class TestConservationExamples:

    def test_full_cycle_returns_everything(self, protocol, loan_id):
        """After repayment, withdrawal and reclaim the escrow is empty."""
        debt = protocol.outstanding_debt(loan_id)
        protocol.repay_with_external_payment("alice", loan_id, debt)
        protocol.get_funds("alice")
        protocol.withdraw("bob", loan_id)
        protocol.reclaim_collateral("alice", loan_id)

        assert escrow_cash(protocol) == Decimal("0")
        assert protocol.escrow_liabilities() == Decimal("0")
        assert protocol.ledger.get_balance("alice", "SONG_42") == Decimal("1")
        assert protocol.ledger.get_balance("bob", "ETH") == FUNDING["bob"]
        check_conservation(protocol)

    def test_unsold_auction_returns_collateral(self, protocol, auction_id):
        protocol.ledger.advance_time(T0 + timedelta(hours=24))
        assert protocol.finalize_auction("keeper", auction_id) is None
        assert protocol.ledger.get_balance("alice", "SONG_42") == Decimal("1")
        assert escrow_cash(protocol) == Decimal("0")
        check_conservation(protocol)
