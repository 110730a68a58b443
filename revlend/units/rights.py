"""
rights.py - Lender and borrower rights tokens

Each loan has two whole, transferable tokens:

    LENDER_<id>    holder may withdraw repaid funds
    BORROWER_<id>  holder may repay and, once debt is zero, reclaim the collateral

Privileges follow the token, not an address recorded at loan creation:
every privileged loan operation calls resolve_holder() afresh, so a transfer
moves the privilege immediately.
"""

from __future__ import annotations
from decimal import Decimal
from typing import List, Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_LENDER_RIGHT, UNIT_TYPE_BORROWER_RIGHT,
    build_transaction, whole_unit_only, _freeze_state,
    AuthorizationError,
)


LENDER = "LENDER"
BORROWER = "BORROWER"

_UNIT_TYPES = {
    LENDER: UNIT_TYPE_LENDER_RIGHT,
    BORROWER: UNIT_TYPE_BORROWER_RIGHT,
}


def rights_symbol(loan_id: int, kind: str) -> str:
    """Symbol of a loan's lender or borrower token."""
    if kind not in _UNIT_TYPES:
        raise ValueError(f"Unknown rights kind '{kind}'")
    return f"{kind}_{loan_id}"


def create_rights_token(loan_id: int, kind: str) -> Unit:
    """Create the LENDER or BORROWER token unit for a loan."""
    return Unit(
        symbol=rights_symbol(loan_id, kind),
        name=f"{kind.title()} rights for loan #{loan_id}",
        unit_type=_UNIT_TYPES[kind],
        min_balance=Decimal("0"),
        max_balance=Decimal("1"),
        decimal_places=0,
        transfer_rule=whole_unit_only,
        _frozen_state=_freeze_state({
            'loan_id': loan_id,
            'kind': kind,
            'transfers': 0,
        }),
    )


def compute_rights_mint(
    view: LedgerView,
    loan_id: int,
    lender: str,
    borrower: str,
) -> PendingTransaction:
    """Create both tokens of a loan and issue them to lender and borrower."""
    lender_token = create_rights_token(loan_id, LENDER)
    borrower_token = create_rights_token(loan_id, BORROWER)
    moves: List[Move] = [
        Move(Decimal("1"), lender_token.symbol, SYSTEM_WALLET, lender, f"mint_{lender_token.symbol}"),
        Move(Decimal("1"), borrower_token.symbol, SYSTEM_WALLET, borrower, f"mint_{borrower_token.symbol}"),
    ]
    return build_transaction(view, moves, units_to_create=(lender_token, borrower_token))


def resolve_holder(view: LedgerView, symbol: str) -> Optional[str]:
    """Current holder of a rights token, or None before it is minted."""
    if not view.has_unit(symbol):
        return None
    for wallet, qty in view.get_positions(symbol).items():
        if wallet != SYSTEM_WALLET and qty > 0:
            return wallet
    return None


def compute_rights_transfer(
    view: LedgerView,
    symbol: str,
    holder: str,
    new_holder: str,
) -> PendingTransaction:
    """
    Transfer a rights token (and with it the privilege).

    Raises:
        AuthorizationError: if holder does not currently hold the token
    """
    if resolve_holder(view, symbol) != holder:
        raise AuthorizationError(f"{holder} does not hold {symbol}")
    state = view.get_unit_state(symbol)
    new_state = {**state, 'transfers': state['transfers'] + 1}
    moves = [Move(Decimal("1"), symbol, holder, new_holder, f"transfer_{symbol}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, holder, symbol, "TRANSFER_RIGHTS")
    return build_transaction(view, moves, [UnitStateChange(symbol, state, new_state)], origin)
