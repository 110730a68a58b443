"""
test_rights.py - Unit tests for lender and borrower rights tokens
"""

import pytest
from decimal import Decimal

from revlend import (
    ExecuteResult, UNIT_TYPE_LENDER_RIGHT, UNIT_TYPE_BORROWER_RIGHT,
    LENDER, BORROWER,
    rights_symbol, create_rights_token, compute_rights_mint,
    resolve_holder, compute_rights_transfer,
    AuthorizationError,
)


@pytest.fixture
def minted(ledger):
    ledger.execute(compute_rights_mint(ledger, 0, "bob", "alice"))
    return ledger


class TestRightsTokens:

    def test_symbols(self):
        assert rights_symbol(3, LENDER) == "LENDER_3"
        assert rights_symbol(3, BORROWER) == "BORROWER_3"
        with pytest.raises(ValueError):
            rights_symbol(3, "OWNER")

    def test_token_shape(self):
        lender = create_rights_token(1, LENDER)
        borrower = create_rights_token(1, BORROWER)
        assert lender.unit_type == UNIT_TYPE_LENDER_RIGHT
        assert borrower.unit_type == UNIT_TYPE_BORROWER_RIGHT
        assert lender.max_balance == Decimal("1")
        assert lender.state == {'loan_id': 1, 'kind': LENDER, 'transfers': 0}

    def test_unminted_has_no_holder(self, ledger):
        assert resolve_holder(ledger, "LENDER_0") is None

    def test_mint(self, minted):
        assert resolve_holder(minted, "LENDER_0") == "bob"
        assert resolve_holder(minted, "BORROWER_0") == "alice"

    def test_mint_twice_rejected(self, minted):
        assert minted.execute(compute_rights_mint(minted, 0, "carol", "dave")) == ExecuteResult.REJECTED
        assert resolve_holder(minted, "LENDER_0") == "bob"


class TestRightsTransfer:

    def test_transfer_moves_holder(self, minted):
        pending = compute_rights_transfer(minted, "LENDER_0", "bob", "carol")
        assert minted.execute(pending) == ExecuteResult.APPLIED
        assert resolve_holder(minted, "LENDER_0") == "carol"
        assert minted.get_unit_state("LENDER_0")['transfers'] == 1

    def test_transfer_back_and_forth(self, minted):
        for holder, new_holder in [("bob", "carol"), ("carol", "bob"), ("bob", "carol")]:
            pending = compute_rights_transfer(minted, "LENDER_0", holder, new_holder)
            assert minted.execute(pending) == ExecuteResult.APPLIED
        assert resolve_holder(minted, "LENDER_0") == "carol"
        assert minted.get_unit_state("LENDER_0")['transfers'] == 3

    def test_non_holder_cannot_transfer(self, minted):
        with pytest.raises(AuthorizationError):
            compute_rights_transfer(minted, "LENDER_0", "alice", "carol")
