"""
auction.py - Reverse (lowest-rate-wins) English auction for the lender role

=== MODEL ===

A seller escrows a revenue NFT and asks to borrow a fixed principal. Lenders
compete by offering ever lower interest rates; every bid pays exactly the
principal into escrow. The lowest rate standing at the deadline wins.

    create:    NFT seller -> escrow, auction_end = now + 24h
    bid:       principal bidder -> escrow, previous bidder credited in the
               refund ledger, auction_end pushed to now + 15m if the bid
               lands within the last 15 minutes
    finalize:  unsold -> NFT escrow -> seller
               sold   -> seller credited the principal; settlement handed to
                         the factory, which opens the loan

=== STATES ===

    OPEN              now < auction_end, bids accepted
    ENDED             now >= auction_end, awaiting finalization (derived, not stored)
    FINALIZED_UNSOLD  terminal, collateral returned
    FINALIZED_SOLD    terminal, loan opened

Finalization sets auction_end to AUCTION_FOREVER and marks the record
finalized; both are written in the same transaction as the payouts.

=== INVARIANTS ===

    current_bid_rate strictly decreases across accepted bids, always < max_rate
    auction_end never decreases before finalization
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
import math
from typing import Any, Dict, Optional, Union

from ..config import ProtocolConfig, DEFAULT_CONFIG
from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    UNIT_TYPE_RATE_AUCTION,
    build_transaction, merge_transactions, _freeze_state,
    AuctionClosed, RateTooHigh, RateNotImproved, WrongPayment, InvalidRate,
    NotYetOver, AlreadyFinalized, AuctionNotFound,
)
from .refunds import compute_refund_credit


# Rate of an auction nobody has bid on: every valid rate improves on it.
NO_BID_RATE = math.inf

# auction_end of a finalized auction.
AUCTION_FOREVER = datetime.max


class AuctionStatus(str, Enum):
    """Lifecycle status of an auction."""
    OPEN = "open"
    ENDED = "ended"
    FINALIZED_UNSOLD = "finalized_unsold"
    FINALIZED_SOLD = "finalized_sold"


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AuctionRecord:
    """Immutable snapshot of an auction."""
    auction_id: int
    creator: str
    collateral: str
    principal: Decimal
    max_rate: int
    current_bid_rate: Union[int, float]
    highest_bidder: Optional[str]
    auction_end: datetime
    created_at: datetime
    currency: str
    escrow_wallet: str
    finalized: bool = False
    sold: bool = False
    bid_count: int = 0

    @property
    def has_bid(self) -> bool:
        return self.highest_bidder is not None


@dataclass(frozen=True, slots=True)
class AuctionSettlement:
    """
    What the factory receives when an auction sells.

    The fields the loan is opened with: the auction id doubles as the
    loan id, the creator becomes the borrower and the winning bidder the
    lender at the winning rate.
    """
    auction_id: int
    creator: str
    highest_bidder: str
    principal: Decimal
    rate: int
    collateral: str
    currency: str


@dataclass(frozen=True, slots=True)
class BidOutcome:
    """Result of compute_bid: the transaction plus what the bid did to the deadline."""
    pending: PendingTransaction
    extended: bool
    new_end: datetime
    refunded_bidder: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FinalizationOutcome:
    """Result of compute_finalization; settlement is None when unsold."""
    pending: PendingTransaction
    settlement: Optional[AuctionSettlement]


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def auction_symbol(auction_id: int) -> str:
    return f"AUCTION_{auction_id}"


def load_auction(view: LedgerView, symbol: str) -> AuctionRecord:
    """
    Load an auction record from ledger state.

    Raises:
        AuctionNotFound: if no auction unit has this symbol
    """
    if not view.has_unit(symbol):
        raise AuctionNotFound(f"Auction {symbol} does not exist")
    raw = view.get_unit_state(symbol)
    return AuctionRecord(
        auction_id=raw['auction_id'],
        creator=raw['creator'],
        collateral=raw['collateral'],
        principal=raw['principal'],
        max_rate=raw['max_rate'],
        current_bid_rate=raw['current_bid_rate'],
        highest_bidder=raw['highest_bidder'],
        auction_end=raw['auction_end'],
        created_at=raw['created_at'],
        currency=raw['currency'],
        escrow_wallet=raw['escrow_wallet'],
        finalized=raw['finalized'],
        sold=raw['sold'],
        bid_count=raw['bid_count'],
    )


def to_state_dict(record: AuctionRecord) -> Dict[str, Any]:
    """Inverse of load_auction()."""
    return {
        'auction_id': record.auction_id,
        'creator': record.creator,
        'collateral': record.collateral,
        'principal': record.principal,
        'max_rate': record.max_rate,
        'current_bid_rate': record.current_bid_rate,
        'highest_bidder': record.highest_bidder,
        'auction_end': record.auction_end,
        'created_at': record.created_at,
        'currency': record.currency,
        'escrow_wallet': record.escrow_wallet,
        'finalized': record.finalized,
        'sold': record.sold,
        'bid_count': record.bid_count,
    }


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def auction_status(record: AuctionRecord, now: datetime) -> AuctionStatus:
    """Derive the lifecycle status; ENDED is a function of time alone."""
    if record.finalized:
        return AuctionStatus.FINALIZED_SOLD if record.sold else AuctionStatus.FINALIZED_UNSOLD
    if now >= record.auction_end:
        return AuctionStatus.ENDED
    return AuctionStatus.OPEN


def active_bid_principal(record: AuctionRecord) -> Decimal:
    """Principal held in escrow for the standing bid of an unfinalized auction."""
    if record.finalized or not record.has_bid:
        return Decimal("0")
    return record.principal


def validate_rate(rate: Any) -> int:
    """
    Rates are non-negative integers on the rate scale.

    Raises:
        InvalidRate: for bools, non-integers and negative values
    """
    if isinstance(rate, bool) or not isinstance(rate, int):
        raise InvalidRate(f"rate must be an integer, got {rate!r}")
    if rate < 0:
        raise InvalidRate(f"rate cannot be negative, got {rate}")
    return rate


def create_auction_unit(
    auction_id: int,
    creator: str,
    collateral: str,
    principal: Decimal,
    max_rate: int,
    currency: str,
    created_at: datetime,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> Unit:
    """
    Create the auction record unit. No argument validation beyond types:
    that is the factory's job before it calls in.
    """
    record = AuctionRecord(
        auction_id=auction_id,
        creator=creator,
        collateral=collateral,
        principal=principal,
        max_rate=max_rate,
        current_bid_rate=NO_BID_RATE,
        highest_bidder=None,
        auction_end=created_at + config.auction_duration,
        created_at=created_at,
        currency=currency,
        escrow_wallet=config.escrow_wallet,
    )
    return Unit(
        symbol=auction_symbol(auction_id),
        name=f"Rate auction #{auction_id} for {collateral}",
        unit_type=UNIT_TYPE_RATE_AUCTION,
        _frozen_state=_freeze_state(to_state_dict(record)),
    )


def compute_auction_creation(
    view: LedgerView,
    auction_id: int,
    creator: str,
    collateral: str,
    principal: Decimal,
    max_rate: int,
    currency: str,
    config: ProtocolConfig = DEFAULT_CONFIG,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Open an auction and take custody of the collateral in one transaction.

    Returns:
        PendingTransaction creating AUCTION_<id> and moving the NFT
        creator -> escrow. The ledger rejects it if creator does not hold
        the NFT.
    """
    unit = create_auction_unit(
        auction_id, creator, collateral, principal, max_rate, currency,
        view.current_time, config,
    )
    moves = [Move(Decimal("1"), collateral, creator, config.escrow_wallet, f"escrow_{unit.symbol}")]
    return build_transaction(view, moves, origin=origin, units_to_create=(unit,))


def compute_bid(
    view: LedgerView,
    symbol: str,
    bidder: str,
    rate: int,
    payment: Decimal,
    config: ProtocolConfig = DEFAULT_CONFIG,
) -> BidOutcome:
    """
    Place a bid offering to lend the principal at `rate`.

    Checks, in order:
        AuctionClosed    now >= auction_end (or already finalized)
        RateTooHigh      rate >= max_rate
        RateNotImproved  rate >= current_bid_rate
        WrongPayment     payment != principal

    On success the payment moves into escrow, the displaced bidder (if any)
    is credited the principal in the refund ledger, and a bid landing within
    extension_window of the deadline moves the deadline to now +
    extension_period.

    Raises:
        InvalidRate: if rate is not a non-negative integer
        AuctionNotFound: if the auction does not exist
    """
    rate = validate_rate(rate)
    record = load_auction(view, symbol)
    now = view.current_time

    if record.finalized or now >= record.auction_end:
        raise AuctionClosed(f"{symbol} closed at {record.auction_end}")
    if rate >= record.max_rate:
        raise RateTooHigh(f"rate {rate} must be below max rate {record.max_rate}")
    if rate >= record.current_bid_rate:
        raise RateNotImproved(f"rate {rate} must be below current rate {record.current_bid_rate}")
    if not isinstance(payment, Decimal):
        payment = Decimal(str(payment))
    if payment != record.principal:
        raise WrongPayment(f"payment {payment} must equal principal {record.principal}")

    auction_end = record.auction_end
    extended = False
    if auction_end - now <= config.extension_window:
        auction_end = now + config.extension_period
        extended = True

    new_record = AuctionRecord(**{
        **to_state_dict(record),
        'current_bid_rate': rate,
        'highest_bidder': bidder,
        'auction_end': auction_end,
        'bid_count': record.bid_count + 1,
    })
    old_state = to_state_dict(record)
    parts = [build_transaction(
        view,
        [Move(payment, record.currency, bidder, record.escrow_wallet, f"bid_{symbol}")],
        [UnitStateChange(symbol, old_state, to_state_dict(new_record))],
    )]
    if record.has_bid:
        parts.append(compute_refund_credit(
            view, record.currency, record.highest_bidder, record.principal, f"outbid_{symbol}"
        ))

    origin = TransactionOrigin(OriginType.USER_ACTION, bidder, symbol, "BID")
    return BidOutcome(
        pending=merge_transactions(view, parts, origin),
        extended=extended,
        new_end=auction_end,
        refunded_bidder=record.highest_bidder,
    )


def compute_finalization(
    view: LedgerView,
    symbol: str,
    caller: str = "keeper",
) -> FinalizationOutcome:
    """
    Close an auction whose deadline has passed. Anyone may call.

    Unsold: the collateral goes back to the creator.
    Sold:   the creator is credited the principal (pull model, like bidders)
            and the settlement is returned for loan creation.

    Raises:
        AlreadyFinalized: if the auction was finalized before
        NotYetOver: if now < auction_end
    """
    record = load_auction(view, symbol)
    now = view.current_time

    if record.finalized:
        raise AlreadyFinalized(f"{symbol} is already finalized")
    if now < record.auction_end:
        raise NotYetOver(f"{symbol} runs until {record.auction_end}")

    old_state = to_state_dict(record)
    new_state = {
        **old_state,
        'auction_end': AUCTION_FOREVER,
        'finalized': True,
        'sold': record.has_bid,
    }
    parts = []
    settlement = None
    if record.has_bid:
        parts.append(build_transaction(view, [], [UnitStateChange(symbol, old_state, new_state)]))
        parts.append(compute_refund_credit(
            view, record.currency, record.creator, record.principal, f"proceeds_{symbol}"
        ))
        settlement = AuctionSettlement(
            auction_id=record.auction_id,
            creator=record.creator,
            highest_bidder=record.highest_bidder,
            principal=record.principal,
            rate=record.current_bid_rate,
            collateral=record.collateral,
            currency=record.currency,
        )
    else:
        parts.append(build_transaction(
            view,
            [Move(Decimal("1"), record.collateral, record.escrow_wallet, record.creator,
                  f"return_{symbol}")],
            [UnitStateChange(symbol, old_state, new_state)],
        ))

    origin = TransactionOrigin(OriginType.LIFECYCLE, caller, symbol, "FINALIZE")
    return FinalizationOutcome(
        pending=merge_transactions(view, parts, origin),
        settlement=settlement,
    )
