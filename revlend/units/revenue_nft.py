"""
revenue_nft.py - Yield-bearing collateral (revenue NFT)

A revenue NFT is a whole, transferable unit (quantity 1) whose holder is
entitled to the revenue accumulated for it. Revenue sits in the NFT's own
vault wallet until claimed:

    Revenue arrives:
        Move(amount, "ETH", payer, "<NFT>_revenue")       claimable += amount

    Holder claims up to `amount`:
        Move(claimed, "ETH", "<NFT>_revenue", recipient)  claimable -= claimed

While an NFT backs an auction or loan, the protocol's escrow wallet holds
it, so only the protocol can claim its revenue (and uses it to repay debt).

This module is the ledger-backed implementation of the collateral
interfaces the lending protocol consumes:
    collateral_holder(view, nft)      -> custodian wallet
    claimable_yield(view, nft)        -> claimable balance
    compute_yield_claim(view, ...)    -> (PendingTransaction, claimed)
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_REVENUE_NFT,
    build_transaction, empty_pending_transaction, whole_unit_only, _freeze_state,
    InvalidAmount, NotCollateralHolder,
)


def revenue_wallet(symbol: str) -> str:
    """Vault wallet that holds an NFT's unclaimed revenue."""
    return f"{symbol}_revenue"


def create_revenue_nft(
    symbol: str,
    name: str,
    currency: str,
    issuer: str,
) -> Unit:
    """
    Create a revenue NFT unit.

    Register the unit and the vault wallet (revenue_wallet(symbol)) with the
    ledger, then issue the single token to its first owner from SYSTEM_WALLET.

    Raises:
        ValueError: on empty symbol, currency or issuer

    Example:
        nft = create_revenue_nft("SONG_42", "Royalties: Song #42", "ETH", "label")
        ledger.register_unit(nft)
        ledger.register_wallet(revenue_wallet("SONG_42"))
        ledger.execute(build_transaction(ledger, [
            Move(Decimal("1"), "SONG_42", SYSTEM_WALLET, "alice", "mint_SONG_42")
        ]))
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not currency or not currency.strip():
        raise ValueError("currency cannot be empty")
    if not issuer or not issuer.strip():
        raise ValueError("issuer cannot be empty")

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_REVENUE_NFT,
        min_balance=Decimal("0"),
        max_balance=Decimal("1"),
        decimal_places=0,
        transfer_rule=whole_unit_only,
        _frozen_state=_freeze_state({
            'issuer': issuer,
            'currency': currency,
            'revenue_wallet': revenue_wallet(symbol),
            'claimable': Decimal("0"),
            'total_revenue': Decimal("0"),
            'total_claimed': Decimal("0"),
        }),
    )


def collateral_holder(view: LedgerView, symbol: str) -> Optional[str]:
    """Wallet currently holding the NFT, or None if it is not in circulation."""
    for wallet, qty in view.get_positions(symbol).items():
        if qty > 0:
            return wallet
    return None


def claimable_yield(view: LedgerView, symbol: str) -> Decimal:
    """Revenue accumulated for the NFT and not yet claimed."""
    return view.get_unit_state(symbol)['claimable']


def compute_revenue_deposit(
    view: LedgerView,
    symbol: str,
    payer: str,
    amount: Decimal,
) -> PendingTransaction:
    """
    Record revenue earned by the NFT: cash moves payer -> vault.

    Raises:
        InvalidAmount: if amount is not positive
    """
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidAmount(f"revenue amount must be positive, got {amount}")

    state = view.get_unit_state(symbol)
    new_state = {
        **state,
        'claimable': state['claimable'] + amount,
        'total_revenue': state['total_revenue'] + amount,
    }
    moves = [Move(amount, state['currency'], payer, state['revenue_wallet'], f"revenue_{symbol}")]
    origin = TransactionOrigin(OriginType.EXTERNAL, payer, symbol, "REVENUE")
    return build_transaction(view, moves, [UnitStateChange(symbol, state, new_state)], origin)


def compute_yield_claim(
    view: LedgerView,
    symbol: str,
    claimant: str,
    amount: Decimal,
    recipient: Optional[str] = None,
) -> Tuple[PendingTransaction, Decimal]:
    """
    Claim up to `amount` of the NFT's revenue for its current holder.

    Never claims more than is claimable; the amount actually transferred is
    returned alongside the transaction.

    Args:
        view: Read-only ledger access
        symbol: NFT symbol
        claimant: Wallet making the claim; must hold the NFT
        amount: Upper bound of the claim
        recipient: Wallet receiving the cash (defaults to claimant)

    Raises:
        NotCollateralHolder: if claimant does not hold the NFT
        InvalidAmount: if amount is negative
    """
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    if amount < 0:
        raise InvalidAmount(f"claim amount cannot be negative, got {amount}")
    if collateral_holder(view, symbol) != claimant:
        raise NotCollateralHolder(f"{claimant} does not hold {symbol}")

    state = view.get_unit_state(symbol)
    claimed = min(state['claimable'], amount)
    if claimed <= 0:
        return empty_pending_transaction(view), Decimal("0")

    new_state = {
        **state,
        'claimable': state['claimable'] - claimed,
        'total_claimed': state['total_claimed'] + claimed,
    }
    moves = [Move(claimed, state['currency'], state['revenue_wallet'], recipient or claimant,
                  f"yield_claim_{symbol}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, claimant, symbol, "CLAIM_YIELD")
    pending = build_transaction(view, moves, [UnitStateChange(symbol, state, new_state)], origin)
    return pending, claimed
