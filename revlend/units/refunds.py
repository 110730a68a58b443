"""
refunds.py - Pull-payment refund ledger

=== MODEL ===

Money the protocol owes an address (an outbid bidder's principal, a seller's
sale proceeds) is never pushed. It is recorded as a balance of a claim unit,
one per settlement currency:

    REFUND_ETH balance of alice == ETH the protocol owes alice

Crediting issues claim units from SYSTEM_WALLET. Claiming burns the claim
back to SYSTEM_WALLET first, then moves the cash out of escrow, in a single
atomic transaction:

    Move(owed, "REFUND_ETH", alice, system)     # zeroed first
    Move(owed, "ETH", escrow, alice)            # then paid

A recipient that cannot accept funds therefore never blocks an auction, and
a claim that fails leaves the balance exactly as it was.

=== BOOKKEEPING ===

The claim unit's state carries cumulative totals, so that for every
reachable state:

    outstanding claims + total_paid == total_credited
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_REFUND_CLAIM,
    build_transaction, empty_pending_transaction, _freeze_state,
    InvalidAmount,
)


def refund_symbol(currency: str) -> str:
    """Symbol of the refund claim unit for a settlement currency."""
    return f"REFUND_{currency}"


def create_refund_unit(currency: str, decimal_places: Optional[int]) -> Unit:
    """
    Create the refund claim unit for a currency.

    Claims use the currency's precision so a claim always converts to an
    exact cash amount.
    """
    return Unit(
        symbol=refund_symbol(currency),
        name=f"Refund claims payable in {currency}",
        unit_type=UNIT_TYPE_REFUND_CLAIM,
        min_balance=Decimal("0"),
        decimal_places=decimal_places,
        _frozen_state=_freeze_state({
            'currency': currency,
            'total_credited': Decimal("0"),
            'total_paid': Decimal("0"),
        }),
    )


def refund_balance(view: LedgerView, currency: str, address: str) -> Decimal:
    """Amount the protocol currently owes address in currency."""
    if address not in view.list_wallets():
        return Decimal("0")
    return view.get_balance(address, refund_symbol(currency))


def compute_refund_credit(
    view: LedgerView,
    currency: str,
    address: str,
    amount: Decimal,
    reason: str,
) -> PendingTransaction:
    """
    Credit address with amount owed. Accumulates onto any existing balance.

    The cash backing the credit must already sit in escrow (a bid principal
    or a winning bid); this transaction only records the liability.

    Raises:
        InvalidAmount: if amount is not positive
    """
    if amount <= 0:
        raise InvalidAmount(f"refund credit must be positive, got {amount}")
    symbol = refund_symbol(currency)
    state = view.get_unit_state(symbol)
    new_state = {
        **state,
        'total_credited': state['total_credited'] + amount,
    }
    moves = [Move(amount, symbol, SYSTEM_WALLET, address, reason)]
    return build_transaction(
        view, moves, [UnitStateChange(symbol, state, new_state)]
    )


def compute_funds_claim(
    view: LedgerView,
    currency: str,
    address: str,
    escrow_wallet: str,
) -> PendingTransaction:
    """
    Pay address its full refund balance.

    The claim is burned before the cash move. If the ledger rejects the
    transaction (escrow short of cash), neither happens and the balance is
    still owed.

    Returns:
        Empty transaction if nothing is owed.
    """
    owed = refund_balance(view, currency, address)
    if owed <= 0:
        return empty_pending_transaction(view)

    symbol = refund_symbol(currency)
    state = view.get_unit_state(symbol)
    new_state = {
        **state,
        'total_paid': state['total_paid'] + owed,
    }
    moves = [
        Move(owed, symbol, address, SYSTEM_WALLET, f"refund_burn_{address}"),
        Move(owed, currency, escrow_wallet, address, f"refund_payout_{address}"),
    ]
    origin = TransactionOrigin(OriginType.USER_ACTION, address, symbol, "GET_FUNDS")
    return build_transaction(
        view, moves, [UnitStateChange(symbol, state, new_state)], origin
    )


def outstanding_refunds(view: LedgerView, currency: str) -> Decimal:
    """Total owed across all addresses (the claim unit's circulating supply)."""
    positions = view.get_positions(refund_symbol(currency))
    return sum(
        (qty for wallet, qty in positions.items() if wallet != SYSTEM_WALLET),
        Decimal("0"),
    )
