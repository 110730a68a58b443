"""
Temporal Conformance Tests

INVARIANT: Auction deadlines only move forward, and an auction is
finalized at most once, after its deadline.

    ∀ accepted bid at time t on auction A:
        end'(A) >= end(A)
        end(A) - t <= window ⟹ end'(A) = t + period
        end(A) - t >  window ⟹ end'(A) = end(A)

    bid at t >= end(A) ⟹ AuctionClosed
    finalize at t < end(A) ⟹ NotYetOver
    finalize after finalize ⟹ AlreadyFinalized
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from datetime import timedelta
from decimal import Decimal

from revlend import (
    AUCTION_FOREVER, AuctionStatus, ProtocolConfig, LendingFactory, LendingProtocol,
    AuctionClosed, NotYetOver, AlreadyFinalized, ProtocolError,
)
from tests.conftest import T0, PRINCIPAL, MAX_RATE, build_market, funded_ledger, mint_nft


class TestDeadlineProperties:

    @given(st.lists(st.integers(min_value=1, max_value=120), min_size=1, max_size=30))
    @settings(max_examples=60, deadline=None)
    def test_deadline_never_decreases(self, gaps_minutes):
        """
        PROPERTY: Each accepted bid leaves the deadline at its old value or
        at bid time + period, whichever rule applies, never earlier.
        """
        protocol, factory = build_market()
        auction_id = factory.create_auction("alice", "SONG_42", PRINCIPAL, MAX_RATE)
        config = protocol.config
        rate = MAX_RATE

        # Jump close to the end so extensions happen
        now = T0 + timedelta(hours=23)
        bidders = ["bob", "carol", "dave"]
        for i, gap in enumerate(gaps_minutes):
            now = now + timedelta(minutes=gap)
            protocol.ledger.advance_time(now)
            old_end = protocol.auction(auction_id).auction_end
            rate -= 1
            try:
                outcome = protocol.bid(bidders[i % 3], auction_id, rate, PRINCIPAL)
            except AuctionClosed:
                assert now >= old_end
                break

            new_end = protocol.auction(auction_id).auction_end
            assert new_end >= old_end
            if old_end - now <= config.extension_window:
                assert outcome.extended
                assert new_end == now + config.extension_period
            else:
                assert not outcome.extended
                assert new_end == old_end

    @given(st.integers(min_value=0, max_value=48 * 60))
    @settings(max_examples=50, deadline=None)
    def test_finalize_only_after_deadline(self, minutes):
        """
        PROPERTY: Finalization succeeds iff now >= deadline.
        """
        protocol, factory = build_market()
        auction_id = factory.create_auction("alice", "SONG_42", PRINCIPAL, MAX_RATE)
        now = T0 + timedelta(minutes=minutes)
        protocol.ledger.advance_time(now)

        if now < T0 + timedelta(hours=24):
            with pytest.raises(NotYetOver):
                protocol.finalize_auction("keeper", auction_id)
            assert protocol.auction_status(auction_id) == AuctionStatus.OPEN
        else:
            protocol.finalize_auction("keeper", auction_id)
            assert protocol.auction_status(auction_id) == AuctionStatus.FINALIZED_UNSOLD


class TestFinalizeOnce:

    def test_finalized_auction_never_reopens(self, protocol, loan_id):
        record = protocol.auction(loan_id)
        assert record.finalized
        assert record.auction_end == AUCTION_FOREVER

        with pytest.raises(AuctionClosed):
            protocol.bid("carol", loan_id, 100, PRINCIPAL)
        with pytest.raises(AlreadyFinalized):
            protocol.finalize_auction("someone_else", loan_id)

    def test_unsold_finalize_once(self, protocol, auction_id):
        protocol.ledger.advance_time(T0 + timedelta(days=3))
        assert protocol.finalize_auction("keeper", auction_id) is None
        with pytest.raises(AlreadyFinalized):
            protocol.finalize_auction("keeper", auction_id)
        with pytest.raises(AuctionClosed):
            protocol.bid("bob", auction_id, 100, PRINCIPAL)

    def test_bid_at_exact_deadline_closed(self, protocol, auction_id):
        protocol.ledger.advance_time(T0 + timedelta(hours=24))
        with pytest.raises(AuctionClosed):
            protocol.bid("bob", auction_id, 100, PRINCIPAL)
        assert protocol.auction_status(auction_id) == AuctionStatus.ENDED

    def test_bid_at_window_boundary_extends(self, protocol, auction_id):
        at = T0 + timedelta(hours=24) - timedelta(minutes=15)
        protocol.ledger.advance_time(at)
        outcome = protocol.bid("bob", auction_id, 100, PRINCIPAL)
        assert outcome.extended
        assert outcome.new_end == at + timedelta(minutes=15)

    def test_custom_timing(self):
        config = ProtocolConfig(
            auction_duration=timedelta(hours=1),
            extension_window=timedelta(minutes=5),
            extension_period=timedelta(minutes=10),
        )
        ledger = funded_ledger()
        factory = LendingFactory(config=config)
        protocol = LendingProtocol(ledger, "ETH", factory, config)
        mint_nft(ledger, "SONG_42", "alice")
        auction_id = factory.create_auction("alice", "SONG_42", PRINCIPAL, MAX_RATE)
        assert protocol.auction(auction_id).auction_end == T0 + timedelta(hours=1)

        at = T0 + timedelta(minutes=56)
        ledger.advance_time(at)
        protocol.bid("bob", auction_id, 100, PRINCIPAL)
        assert protocol.auction(auction_id).auction_end == at + timedelta(minutes=10)
