"""
test_revenue_nft.py - Unit tests for revenue NFT collateral

Tests:
- Factory validation and unit shape
- Whole-unit transfers only
- Revenue deposits and holder-only claims
"""

import pytest
from decimal import Decimal

from revlend import (
    Move, ExecuteResult, UNIT_TYPE_REVENUE_NFT,
    build_transaction,
    create_revenue_nft, revenue_wallet, collateral_holder, claimable_yield,
    compute_revenue_deposit, compute_yield_claim,
    InvalidAmount, NotCollateralHolder,
)
from tests.conftest import deposit_revenue
from tests.fake_view import FakeView


class TestCreateRevenueNft:

    def test_unit_shape(self):
        unit = create_revenue_nft("SONG_42", "Royalties", "ETH", "label")
        assert unit.unit_type == UNIT_TYPE_REVENUE_NFT
        assert unit.max_balance == Decimal("1")
        assert unit.decimal_places == 0
        assert unit.state['revenue_wallet'] == "SONG_42_revenue"
        assert unit.state['claimable'] == Decimal("0")

    def test_revenue_wallet_name(self):
        assert revenue_wallet("X") == "X_revenue"

    @pytest.mark.parametrize("symbol,currency,issuer", [
        ("", "ETH", "label"),
        ("SONG", " ", "label"),
        ("SONG", "ETH", ""),
    ])
    def test_validation(self, symbol, currency, issuer):
        with pytest.raises(ValueError):
            create_revenue_nft(symbol, "name", currency, issuer)


class TestTransfers:

    def test_holder(self, ledger, nft):
        assert collateral_holder(ledger, nft) == "alice"

    def test_fractional_move_rejected(self, ledger, nft):
        tx = build_transaction(ledger, [Move(Decimal("0.5"), nft, "alice", "bob", "split")])
        assert ledger.execute(tx) == ExecuteResult.REJECTED
        assert collateral_holder(ledger, nft) == "alice"

    def test_whole_move(self, ledger, nft):
        tx = build_transaction(ledger, [Move(Decimal("1"), nft, "alice", "bob", "sell")])
        assert ledger.execute(tx) == ExecuteResult.APPLIED
        assert collateral_holder(ledger, nft) == "bob"

    def test_holder_on_fake_view(self):
        view = FakeView(balances={"carol": {"SONG": Decimal("1")}, "system": {"SONG": Decimal("-1")}})
        assert collateral_holder(view, "SONG") == "carol"


class TestRevenue:

    def test_deposit(self, ledger, nft):
        deposit_revenue(ledger, nft, Decimal("250"))
        deposit_revenue(ledger, nft, Decimal("250"))
        assert claimable_yield(ledger, nft) == Decimal("500")
        assert ledger.get_balance(revenue_wallet(nft), "ETH") == Decimal("500")
        assert ledger.get_unit_state(nft)['total_revenue'] == Decimal("500")

    def test_deposit_must_be_positive(self, ledger, nft):
        with pytest.raises(InvalidAmount):
            compute_revenue_deposit(ledger, nft, "payer", Decimal("0"))

    def test_claim_capped_at_claimable(self, ledger, nft):
        deposit_revenue(ledger, nft, Decimal("100"))
        pending, claimed = compute_yield_claim(ledger, nft, "alice", Decimal("400"))
        assert claimed == Decimal("100")
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_balance("alice", "ETH") == Decimal("5100")
        assert claimable_yield(ledger, nft) == Decimal("0")
        assert ledger.get_unit_state(nft)['total_claimed'] == Decimal("100")

    def test_claim_to_other_recipient(self, ledger, nft):
        deposit_revenue(ledger, nft, Decimal("100"))
        pending, claimed = compute_yield_claim(ledger, nft, "alice", Decimal("60"), recipient="carol")
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_balance("carol", "ETH") == Decimal("30060")
        assert claimable_yield(ledger, nft) == Decimal("40")

    def test_nothing_to_claim(self, ledger, nft):
        pending, claimed = compute_yield_claim(ledger, nft, "alice", Decimal("10"))
        assert pending.is_empty()
        assert claimed == Decimal("0")

    def test_only_holder_claims(self, ledger, nft):
        deposit_revenue(ledger, nft, Decimal("100"))
        with pytest.raises(NotCollateralHolder):
            compute_yield_claim(ledger, nft, "bob", Decimal("10"))

    def test_negative_claim(self, ledger, nft):
        with pytest.raises(InvalidAmount):
            compute_yield_claim(ledger, nft, "alice", Decimal("-1"))
