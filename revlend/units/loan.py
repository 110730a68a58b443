"""
loan.py - Fixed-principal loans secured by a revenue NFT

This module provides loan unit creation and lifecycle processing using the
same pure function architecture as the auction book.

ARCHITECTURE:
=============

1. FROZEN DATACLASS (explicit inputs):
   - LoanRecord: immutable snapshot of a loan

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - No LedgerView, every input is a parameter
   - calculate_accrual(record, now, quantum, config) -> LoanRecord

3. ADAPTER FUNCTIONS (load_loan / to_state_dict):
   - The only place that touches LedgerView for loan state

4. CONVENIENCE FUNCTIONS (compute_*):
   - Load, authorize against the rights tokens, calculate, build the
     PendingTransaction

Money flows (escrow is the protocol's custody wallet):

    repay (external):  Move(applied, ccy, payer, escrow)
    repay (yield):     Move(claimed, ccy, "<NFT>_revenue", escrow)
    withdraw:          Move(amount, ccy, escrow, lender)
    reclaim:           Move(1, NFT, escrow, borrower)

Key Invariants:
    accrued_debt >= 0
    withdrawable == total_repaid - total_withdrawn >= 0
    withdrawable grows only by amounts that reduce accrued_debt
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from ..config import ProtocolConfig, DEFAULT_CONFIG
from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_REVENUE_LOAN,
    build_transaction, empty_pending_transaction, merge_transactions, _freeze_state,
    InvalidAmount, OverWithdrawal, DebtRemaining, CollateralAlreadyReleased,
    LoanExists, LoanNotFound, LoanTermsMismatch, AuctionNotSold, NotBorrower, NotLender,
)
from ..interest import accrue_debt
from .auction import AuctionStatus, auction_symbol, auction_status, load_auction, validate_rate
from .revenue_nft import claimable_yield, compute_yield_claim
from .rights import LENDER, BORROWER, rights_symbol, resolve_holder


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanRecord:
    """
    Immutable snapshot of a loan.

    principal, rate, collateral and the token symbols are fixed at creation;
    the remaining fields change over the loan's life.
    """
    loan_id: int
    collateral: str
    principal: Decimal
    accrued_debt: Decimal
    withdrawable: Decimal
    rate: int
    last_accrued: datetime
    currency: str
    escrow: str
    lender_token: str
    borrower_token: str
    created_at: datetime
    total_repaid: Decimal = Decimal("0")
    total_withdrawn: Decimal = Decimal("0")
    collateral_released: bool = False

    @property
    def is_repaid(self) -> bool:
        return self.accrued_debt == 0


@dataclass(frozen=True, slots=True)
class RepaymentOutcome:
    """Result of a repayment: how much reduced the debt and how much went back."""
    pending: PendingTransaction
    applied: Decimal
    refunded: Decimal
    remaining_debt: Decimal


@dataclass(frozen=True, slots=True)
class WithdrawalOutcome:
    pending: PendingTransaction
    amount: Decimal


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def loan_symbol(loan_id: int) -> str:
    return f"LOAN_{loan_id}"


def load_loan(view: LedgerView, symbol: str) -> LoanRecord:
    """
    Load a loan record from ledger state.

    Raises:
        LoanNotFound: if no loan unit has this symbol
    """
    if not view.has_unit(symbol):
        raise LoanNotFound(f"Loan {symbol} does not exist")
    raw = view.get_unit_state(symbol)
    return LoanRecord(
        loan_id=raw['loan_id'],
        collateral=raw['collateral'],
        principal=raw['principal'],
        accrued_debt=raw['accrued_debt'],
        withdrawable=raw['withdrawable'],
        rate=raw['rate'],
        last_accrued=raw['last_accrued'],
        currency=raw['currency'],
        escrow=raw['escrow'],
        lender_token=raw['lender_token'],
        borrower_token=raw['borrower_token'],
        created_at=raw['created_at'],
        total_repaid=raw['total_repaid'],
        total_withdrawn=raw['total_withdrawn'],
        collateral_released=raw['collateral_released'],
    )


def to_state_dict(record: LoanRecord) -> Dict[str, Any]:
    """Inverse of load_loan()."""
    return {
        'loan_id': record.loan_id,
        'collateral': record.collateral,
        'principal': record.principal,
        'accrued_debt': record.accrued_debt,
        'withdrawable': record.withdrawable,
        'rate': record.rate,
        'last_accrued': record.last_accrued,
        'currency': record.currency,
        'escrow': record.escrow,
        'lender_token': record.lender_token,
        'borrower_token': record.borrower_token,
        'created_at': record.created_at,
        'total_repaid': record.total_repaid,
        'total_withdrawn': record.total_withdrawn,
        'collateral_released': record.collateral_released,
    }


def _state_change(old: LoanRecord, new: LoanRecord) -> UnitStateChange:
    return UnitStateChange(loan_symbol(old.loan_id), to_state_dict(old), to_state_dict(new))


def _require_borrower(view: LedgerView, record: LoanRecord, caller: str) -> None:
    if resolve_holder(view, record.borrower_token) != caller:
        raise NotBorrower(f"{caller} does not hold {record.borrower_token}")


def _require_lender(view: LedgerView, record: LoanRecord, caller: str) -> None:
    if resolve_holder(view, record.lender_token) != caller:
        raise NotLender(f"{caller} does not hold {record.lender_token}")


def _as_amount(value: Any, what: str) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite() or value < 0:
        raise InvalidAmount(f"{what} must be a non-negative amount, got {value}")
    return value


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_accrual(
    record: LoanRecord,
    now: datetime,
    quantum: Decimal,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> LoanRecord:
    """
    Bring accrued_debt forward to now by continuous compounding.

    Returns the record unchanged if no time has passed or nothing is owed.
    """
    if now == record.last_accrued:
        return record
    debt = accrue_debt(
        record.accrued_debt, record.rate, record.last_accrued, now, quantum,
        rate_scale=config.rate_scale,
        days_per_year=config.days_per_year,
        places=config.wad_places,
    )
    return replace(record, accrued_debt=debt, last_accrued=now)


def calculate_repayment(record: LoanRecord, payment: Decimal) -> LoanRecord:
    """
    Apply a payment to an already accrued record.

    Only the part that reduces the debt is credited to the lender; any
    excess is not part of the returned record.
    """
    applied = min(payment, record.accrued_debt)
    return replace(
        record,
        accrued_debt=record.accrued_debt - applied,
        withdrawable=record.withdrawable + applied,
        total_repaid=record.total_repaid + applied,
    )


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def create_loan_unit(
    loan_id: int,
    collateral: str,
    principal: Decimal,
    rate: int,
    currency: str,
    created_at: datetime,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Unit:
    """Create a LOAN_<id> unit with accrued_debt = principal."""
    record = LoanRecord(
        loan_id=loan_id,
        collateral=collateral,
        principal=principal,
        accrued_debt=principal,
        withdrawable=Decimal("0"),
        rate=rate,
        last_accrued=created_at,
        currency=currency,
        escrow=config.escrow_wallet,
        lender_token=rights_symbol(loan_id, LENDER),
        borrower_token=rights_symbol(loan_id, BORROWER),
        created_at=created_at,
    )
    return Unit(
        symbol=loan_symbol(loan_id),
        name=f"Revenue loan #{loan_id} against {collateral}",
        unit_type=UNIT_TYPE_REVENUE_LOAN,
        _frozen_state=_freeze_state(to_state_dict(record)),
    )


def compute_loan_creation(
    view: LedgerView,
    loan_id: int,
    collateral: str,
    rate: int,
    config: ProtocolConfig = DEFAULT_CONFIG,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Open the loan for a sold auction. The principal is the auction's.

    The collateral stays where it is (escrow); only the record is created.
    The auction must be past its deadline with a winning bid, and the
    collateral and rate must be the winning ones.

    Raises:
        LoanExists: if LOAN_<loan_id> already exists
        AuctionNotFound: if there is no auction with this id
        AuctionNotSold: if the auction is still running or has no bid
        InvalidRate: if rate is not a non-negative integer
        LoanTermsMismatch: if collateral or rate differ from the auction's
    """
    rate = validate_rate(rate)
    if view.has_unit(loan_symbol(loan_id)):
        raise LoanExists(f"{loan_symbol(loan_id)} already exists")
    auction = load_auction(view, auction_symbol(loan_id))
    if not auction.has_bid:
        raise AuctionNotSold(f"{auction_symbol(loan_id)} has no winning bid")
    if auction_status(auction, view.current_time) == AuctionStatus.OPEN:
        raise AuctionNotSold(f"{auction_symbol(loan_id)} runs until {auction.auction_end}")
    if collateral != auction.collateral:
        raise LoanTermsMismatch(f"collateral is {auction.collateral}, not {collateral}")
    if rate != auction.current_bid_rate:
        raise LoanTermsMismatch(f"winning rate is {auction.current_bid_rate}, not {rate}")
    unit = create_loan_unit(
        loan_id, collateral, auction.principal, rate, auction.currency,
        view.current_time, config,
    )
    return build_transaction(view, [], origin=origin, units_to_create=(unit,))


def compute_accrual(
    view: LedgerView,
    symbol: str,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """Persist accrued interest up to now. Empty if nothing changes."""
    record = load_loan(view, symbol)
    accrued = calculate_accrual(record, view.current_time, view.get_unit(record.currency).quantum, config)
    if accrued == record:
        return empty_pending_transaction(view)
    origin = TransactionOrigin(OriginType.LIFECYCLE, "accrual", symbol, "ACCRUE")
    return build_transaction(view, [], [_state_change(record, accrued)], origin)


def outstanding_debt(
    view: LedgerView,
    symbol: str,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Decimal:
    """Debt as of now, including interest not yet persisted."""
    record = load_loan(view, symbol)
    quantum = view.get_unit(record.currency).quantum
    return calculate_accrual(record, view.current_time, quantum, config).accrued_debt


def compute_external_repayment(
    view: LedgerView,
    symbol: str,
    payer: str,
    payment: Decimal,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> RepaymentOutcome:
    """
    Repay from the borrower's own funds.

    Interest is accrued first. A payment above the debt clears it; only the
    debt amount reaches the lender and the excess goes straight back to the
    payer in the same transaction.

    Raises:
        InvalidAmount: if payment is negative
        NotBorrower: if payer does not hold the borrower token
    """
    payment = _as_amount(payment, "payment")
    record = load_loan(view, symbol)
    _require_borrower(view, record, payer)

    quantum = view.get_unit(record.currency).quantum
    accrued = calculate_accrual(record, view.current_time, quantum, config)
    repaid = calculate_repayment(accrued, payment)
    applied = repaid.total_repaid - accrued.total_repaid
    refunded = payment - applied

    moves = []
    if applied > 0:
        moves.append(Move(payment, record.currency, payer, record.escrow, f"repay_{symbol}"))
        if refunded > 0:
            moves.append(Move(refunded, record.currency, record.escrow, payer, f"repay_excess_{symbol}"))

    if repaid == record:
        pending = empty_pending_transaction(view)
    else:
        origin = TransactionOrigin(OriginType.USER_ACTION, payer, symbol, "REPAY_EXTERNAL")
        pending = build_transaction(view, moves, [_state_change(record, repaid)], origin)
    return RepaymentOutcome(pending, applied, refunded, repaid.accrued_debt)


def compute_yield_repayment(
    view: LedgerView,
    symbol: str,
    caller: str,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> RepaymentOutcome:
    """
    Repay from the collateral's own accumulated revenue.

    The protocol holds the NFT, so it claims on the loan's behalf, never
    more than the accrued debt, straight into escrow.

    Raises:
        NotBorrower: if caller does not hold the borrower token
    """
    record = load_loan(view, symbol)
    _require_borrower(view, record, caller)

    quantum = view.get_unit(record.currency).quantum
    accrued = calculate_accrual(record, view.current_time, quantum, config)
    wanted = min(claimable_yield(view, record.collateral), accrued.accrued_debt)

    parts = []
    claimed = Decimal("0")
    if wanted > 0:
        claim, claimed = compute_yield_claim(
            view, record.collateral, record.escrow, wanted, recipient=record.escrow
        )
        parts.append(claim)
    repaid = calculate_repayment(accrued, claimed)

    if repaid == record and not parts:
        return RepaymentOutcome(empty_pending_transaction(view), claimed, Decimal("0"), repaid.accrued_debt)

    parts.append(build_transaction(view, [], [_state_change(record, repaid)]))
    origin = TransactionOrigin(OriginType.USER_ACTION, caller, symbol, "REPAY_YIELD")
    pending = merge_transactions(view, parts, origin)
    return RepaymentOutcome(pending, claimed, Decimal("0"), repaid.accrued_debt)


def compute_withdrawal(
    view: LedgerView,
    symbol: str,
    recipient: str,
    amount: Decimal,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> WithdrawalOutcome:
    """
    Pay repaid funds out to the lender.

    Interest is accrued first. amount == 0 withdraws everything available.
    The payout is exactly the amount withdrawn.

    Raises:
        InvalidAmount: if amount is negative
        NotLender: if recipient does not hold the lender token
        OverWithdrawal: if amount exceeds withdrawable
    """
    amount = _as_amount(amount, "withdrawal")
    record = load_loan(view, symbol)
    _require_lender(view, record, recipient)

    if amount > record.withdrawable:
        raise OverWithdrawal(f"requested {amount}, withdrawable {record.withdrawable}")
    if amount == 0:
        amount = record.withdrawable

    quantum = view.get_unit(record.currency).quantum
    accrued = calculate_accrual(record, view.current_time, quantum, config)
    new_record = replace(
        accrued,
        withdrawable=accrued.withdrawable - amount,
        total_withdrawn=accrued.total_withdrawn + amount,
    )
    if new_record == record:
        return WithdrawalOutcome(empty_pending_transaction(view), Decimal("0"))

    moves = []
    if amount > 0:
        moves.append(Move(amount, record.currency, record.escrow, recipient, f"withdraw_{symbol}"))
    origin = TransactionOrigin(OriginType.USER_ACTION, recipient, symbol, "WITHDRAW")
    pending = build_transaction(view, moves, [_state_change(record, new_record)], origin)
    return WithdrawalOutcome(pending, amount)


def compute_collateral_reclaim(
    view: LedgerView,
    symbol: str,
    recipient: str,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> PendingTransaction:
    """
    Release the collateral to the borrower once the debt is zero.

    Raises:
        NotBorrower: if recipient does not hold the borrower token
        CollateralAlreadyReleased: if the NFT was already returned
        DebtRemaining: if any debt is outstanding after accrual
    """
    record = load_loan(view, symbol)
    _require_borrower(view, record, recipient)
    if record.collateral_released:
        raise CollateralAlreadyReleased(f"{record.collateral} was already released from {symbol}")

    quantum = view.get_unit(record.currency).quantum
    accrued = calculate_accrual(record, view.current_time, quantum, config)
    if accrued.accrued_debt != 0:
        raise DebtRemaining(f"{symbol} still owes {accrued.accrued_debt}")

    released = replace(accrued, collateral_released=True)
    moves = [Move(Decimal("1"), record.collateral, record.escrow, recipient, f"release_{symbol}")]
    origin = TransactionOrigin(OriginType.USER_ACTION, recipient, symbol, "RECLAIM")
    return build_transaction(view, moves, [_state_change(record, released)], origin)
