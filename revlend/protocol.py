"""
protocol.py - LendingProtocol service

The single coordinating owner of auctions, loans and refunds. Every call:

    1. validates (typed ProtocolError, nothing changed)
    2. builds one PendingTransaction from the pure compute_* functions
    3. executes it on the ledger (REJECTED -> TransferFailed, nothing changed)
    4. records events and dispatches them to subscribers

Subscribers run only after the ledger has committed, so a subscriber that
calls back into the protocol sees the finished state.

The caller of every operation is an explicit argument; there is no ambient
sender.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
import logging
from typing import Any, Callable, Dict, List, Optional

from .config import ProtocolConfig, DEFAULT_CONFIG
from .core import (
    PendingTransaction, TransactionOrigin, OriginType, ExecuteResult,
    UNIT_TYPE_RATE_AUCTION, UNIT_TYPE_REVENUE_LOAN,
    merge_transactions,
    TransferFailed, UnitNotRegistered, NotFactory, InvalidAmount, AuctionNotSold,
)
from .factory import LoanFactory
from .ledger import Ledger
from .units.auction import (
    AuctionRecord, AuctionSettlement, AuctionStatus, BidOutcome,
    auction_symbol, load_auction, auction_status, active_bid_principal,
    validate_rate, compute_auction_creation, compute_bid, compute_finalization,
)
from .units.loan import (
    LoanRecord, RepaymentOutcome,
    loan_symbol, load_loan,
    compute_loan_creation, compute_accrual, outstanding_debt,
    compute_external_repayment, compute_yield_repayment,
    compute_withdrawal, compute_collateral_reclaim,
)
from .units.refunds import (
    create_refund_unit, refund_balance, compute_funds_claim, outstanding_refunds,
)
from .units.rights import LENDER, BORROWER, rights_symbol, resolve_holder, compute_rights_transfer


logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    AUCTION_CREATED = "auction_created"
    BID_ACCEPTED = "bid_accepted"
    AUCTION_EXTENDED = "auction_extended"
    AUCTION_FINALIZED = "auction_finalized"
    LOAN_CREATED = "loan_created"
    LOAN_REPAID = "loan_repaid"
    LENDER_WITHDREW = "lender_withdrew"
    COLLATERAL_RECLAIMED = "collateral_reclaimed"
    FUNDS_CLAIMED = "funds_claimed"


@dataclass(frozen=True)
class ProtocolEvent:
    """Notification of a committed operation."""
    kind: EventKind
    subject: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[ProtocolEvent], None]


class LendingProtocol:
    """
    Rate auctions and the loans they open, on one ledger.

    Example:
        ledger = Ledger("main", datetime(2024, 1, 1), verbose=False)
        ledger.register_unit(cash("ETH", "Ether"))
        factory = LendingFactory()
        protocol = LendingProtocol(ledger, "ETH", factory)

        auction_id = factory.create_auction("alice", "SONG_42", Decimal("1000"), 500)
        protocol.bid("bob", auction_id, 300, Decimal("1000"))
        ledger.advance_time(datetime(2024, 1, 2))
        protocol.finalize_auction("keeper", auction_id)
    """

    def __init__(
        self,
        ledger: Ledger,
        currency: str,
        factory: LoanFactory,
        config: ProtocolConfig = DEFAULT_CONFIG,
    ):
        if not ledger.has_unit(currency):
            raise UnitNotRegistered(f"Currency {currency} not registered")
        self.ledger = ledger
        self.currency = currency
        self.factory = factory
        self.config = config
        self.events: List[ProtocolEvent] = []
        self._subscribers: List[EventHandler] = []

        if not ledger.is_registered(config.escrow_wallet):
            ledger.register_wallet(config.escrow_wallet)
        refund_unit = create_refund_unit(currency, ledger.get_unit(currency).decimal_places)
        if not ledger.has_unit(refund_unit.symbol):
            ledger.register_unit(refund_unit)

        # Auction ids are dense; resume after any auctions already on the ledger
        self._next_auction_id = sum(
            1 for sym in ledger.list_units()
            if ledger.get_unit(sym).unit_type == UNIT_TYPE_RATE_AUCTION
        )

        bind = getattr(factory, 'bind', None)
        if bind is not None:
            bind(self)

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler called with every event after it is committed."""
        self._subscribers.append(handler)

    def _publish(self, events: List[ProtocolEvent]) -> None:
        self.events.extend(events)
        for event in events:
            for handler in list(self._subscribers):
                handler(event)

    def _event(self, kind: EventKind, subject: str, **data: Any) -> ProtocolEvent:
        return ProtocolEvent(kind, subject, self.ledger.current_time, data)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _execute(self, pending: PendingTransaction, action: str) -> None:
        """Commit a pending transaction or raise TransferFailed with nothing changed."""
        if pending.is_empty():
            return
        result = self.ledger.execute(pending)
        if result == ExecuteResult.APPLIED:
            return
        if result == ExecuteResult.ALREADY_APPLIED:
            reason = f"duplicate transaction {pending.intent_id}"
        else:
            reason = self.ledger.last_rejection or "rejected"
        logger.warning("%s rejected by ledger: %s", action, reason)
        raise TransferFailed(f"{action} failed: {reason}")

    def _require_factory(self, caller: str) -> None:
        if caller != self.factory.address:
            raise NotFactory(f"{caller} is not the factory ({self.factory.address})")

    # ========================================================================
    # AUCTIONS
    # ========================================================================

    def create_auction(
        self,
        caller: str,
        creator: str,
        collateral: str,
        principal: Decimal,
        max_rate: int,
    ) -> int:
        """
        Open an auction and escrow the collateral. Factory only.

        Returns:
            The new auction id
        """
        self._require_factory(caller)
        max_rate = validate_rate(max_rate)
        if not isinstance(principal, Decimal):
            principal = Decimal(str(principal))
        if principal <= 0:
            raise InvalidAmount(f"principal must be positive, got {principal}")

        auction_id = self._next_auction_id
        symbol = auction_symbol(auction_id)
        origin = TransactionOrigin(OriginType.FACTORY, caller, symbol, "CREATE_AUCTION")
        pending = compute_auction_creation(
            self.ledger, auction_id, creator, collateral, principal, max_rate,
            self.currency, self.config, origin,
        )
        self._execute(pending, f"create {symbol}")
        self._next_auction_id += 1

        record = load_auction(self.ledger, symbol)
        logger.info("%s opened by %s: %s for %s at max rate %s, ends %s",
                    symbol, creator, collateral, principal, max_rate, record.auction_end)
        self._publish([self._event(
            EventKind.AUCTION_CREATED, symbol,
            creator=creator, collateral=collateral, principal=principal,
            max_rate=max_rate, auction_end=record.auction_end,
        )])
        return auction_id

    def bid(self, bidder: str, auction_id: int, rate: int, payment: Decimal) -> BidOutcome:
        """Offer to lend the principal at rate; payment must equal the principal."""
        symbol = auction_symbol(auction_id)
        outcome = compute_bid(self.ledger, symbol, bidder, rate, payment, self.config)
        self._execute(outcome.pending, f"bid on {symbol}")

        logger.info("%s: %s bid rate %s", symbol, bidder, rate)
        events = [self._event(EventKind.BID_ACCEPTED, symbol, bidder=bidder, rate=rate)]
        if outcome.extended:
            logger.info("%s extended to %s", symbol, outcome.new_end)
            events.append(self._event(EventKind.AUCTION_EXTENDED, symbol, new_end=outcome.new_end))
        self._publish(events)
        return outcome

    def finalize_auction(self, caller: str, auction_id: int) -> Optional[AuctionSettlement]:
        """
        Close an auction past its deadline. Anyone may call.

        A sold auction's loan and rights tokens are created in the same
        transaction as the finalization.

        Returns:
            The settlement if sold, None if unsold
        """
        symbol = auction_symbol(auction_id)
        outcome = compute_finalization(self.ledger, symbol, caller)
        settlement = outcome.settlement
        pending = outcome.pending
        if settlement is not None:
            opened = self.factory.on_auction_sold(self.ledger, settlement)
            origin = TransactionOrigin(OriginType.LIFECYCLE, caller, symbol, "FINALIZE")
            pending = merge_transactions(self.ledger, [pending, opened], origin)
        self._execute(pending, f"finalize {symbol}")

        sold = settlement is not None
        logger.info("%s finalized by %s (sold=%s)", symbol, caller, sold)
        events = [self._event(EventKind.AUCTION_FINALIZED, symbol, sold=sold)]
        if sold:
            events.append(self._event(
                EventKind.LOAN_CREATED, loan_symbol(auction_id),
                lender=settlement.highest_bidder, borrower=settlement.creator,
                principal=settlement.principal, rate=settlement.rate,
            ))
        self._publish(events)
        return settlement

    def get_funds(self, address: str) -> Decimal:
        """Pay address everything it is owed. Returns the amount paid (0 if none)."""
        owed = refund_balance(self.ledger, self.currency, address)
        pending = compute_funds_claim(self.ledger, self.currency, address, self.config.escrow_wallet)
        self._execute(pending, f"get_funds for {address}")
        if owed > 0:
            logger.info("paid %s %s to %s", owed, self.currency, address)
            self._publish([self._event(EventKind.FUNDS_CLAIMED, address, amount=owed)])
        return owed

    # ========================================================================
    # LOANS
    # ========================================================================

    def create_loan(self, caller: str, loan_id: int, collateral: str, rate: int) -> int:
        """
        Create the loan record for a sold auction outside finalization.
        Factory only; the factory mints the rights tokens. The auction must
        already be finalized as sold.

        Raises:
            NotFactory: if caller is not the factory
            AuctionNotSold: if the auction is not finalized with a winning bid
        """
        self._require_factory(caller)
        symbol = loan_symbol(loan_id)
        status = self.auction_status(loan_id)
        if status != AuctionStatus.FINALIZED_SOLD:
            raise AuctionNotSold(f"{auction_symbol(loan_id)} is {status.value}, not finalized_sold")
        origin = TransactionOrigin(OriginType.FACTORY, caller, symbol, "CREATE_LOAN")
        pending = compute_loan_creation(self.ledger, loan_id, collateral, rate, self.config, origin)
        self._execute(pending, f"create {symbol}")

        record = load_loan(self.ledger, symbol)
        logger.info("%s created: principal %s at rate %s", symbol, record.principal, record.rate)
        self._publish([self._event(
            EventKind.LOAN_CREATED, symbol, principal=record.principal, rate=record.rate,
        )])
        return loan_id

    def accrue(self, loan_id: int) -> Decimal:
        """Persist accrued interest; returns the debt."""
        symbol = loan_symbol(loan_id)
        self._execute(compute_accrual(self.ledger, symbol, self.config), f"accrue {symbol}")
        return load_loan(self.ledger, symbol).accrued_debt

    def repay_with_external_payment(self, caller: str, loan_id: int, payment: Decimal) -> RepaymentOutcome:
        """Borrower repays from their own funds; any excess is returned at once."""
        symbol = loan_symbol(loan_id)
        outcome = compute_external_repayment(self.ledger, symbol, caller, payment, self.config)
        self._execute(outcome.pending, f"repay {symbol}")
        self._repaid(symbol, caller, outcome, "external")
        return outcome

    def repay_with_claimable_yield(self, caller: str, loan_id: int) -> RepaymentOutcome:
        """Borrower repays from the collateral's accumulated revenue."""
        symbol = loan_symbol(loan_id)
        outcome = compute_yield_repayment(self.ledger, symbol, caller, self.config)
        self._execute(outcome.pending, f"repay {symbol} from yield")
        self._repaid(symbol, caller, outcome, "yield")
        return outcome

    def _repaid(self, symbol: str, payer: str, outcome: RepaymentOutcome, channel: str) -> None:
        if outcome.applied <= 0:
            return
        logger.info("%s repaid %s via %s, remaining debt %s",
                    symbol, outcome.applied, channel, outcome.remaining_debt)
        self._publish([self._event(
            EventKind.LOAN_REPAID, symbol,
            payer=payer, amount=outcome.applied, refunded=outcome.refunded,
            remaining_debt=outcome.remaining_debt, channel=channel,
        )])

    def withdraw(self, caller: str, loan_id: int, amount: Decimal = Decimal("0")) -> Decimal:
        """Lender withdraws repaid funds; amount 0 withdraws everything available."""
        symbol = loan_symbol(loan_id)
        outcome = compute_withdrawal(self.ledger, symbol, caller, amount, self.config)
        self._execute(outcome.pending, f"withdraw from {symbol}")
        if outcome.amount > 0:
            logger.info("%s: %s withdrew %s", symbol, caller, outcome.amount)
            self._publish([self._event(
                EventKind.LENDER_WITHDREW, symbol, lender=caller, amount=outcome.amount,
            )])
        return outcome.amount

    def reclaim_collateral(self, caller: str, loan_id: int) -> None:
        """Borrower takes the collateral back once the debt is zero."""
        symbol = loan_symbol(loan_id)
        pending = compute_collateral_reclaim(self.ledger, symbol, caller, self.config)
        self._execute(pending, f"reclaim collateral of {symbol}")

        record = load_loan(self.ledger, symbol)
        logger.info("%s: %s reclaimed %s", symbol, caller, record.collateral)
        self._publish([self._event(
            EventKind.COLLATERAL_RECLAIMED, symbol, borrower=caller, collateral=record.collateral,
        )])

    def transfer_rights(self, holder: str, loan_id: int, kind: str, new_holder: str) -> None:
        """Hand the lender or borrower role of a loan to another address."""
        symbol = rights_symbol(loan_id, kind)
        pending = compute_rights_transfer(self.ledger, symbol, holder, new_holder)
        self._execute(pending, f"transfer {symbol}")
        logger.info("%s transferred from %s to %s", symbol, holder, new_holder)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def auction(self, auction_id: int) -> AuctionRecord:
        return load_auction(self.ledger, auction_symbol(auction_id))

    def loan(self, loan_id: int) -> LoanRecord:
        return load_loan(self.ledger, loan_symbol(loan_id))

    def auction_status(self, auction_id: int) -> AuctionStatus:
        return auction_status(self.auction(auction_id), self.ledger.current_time)

    def auction_count(self) -> int:
        return self._next_auction_id

    def refund_balance(self, address: str) -> Decimal:
        return refund_balance(self.ledger, self.currency, address)

    def outstanding_debt(self, loan_id: int) -> Decimal:
        return outstanding_debt(self.ledger, loan_symbol(loan_id), self.config)

    def lender_of(self, loan_id: int) -> Optional[str]:
        return resolve_holder(self.ledger, rights_symbol(loan_id, LENDER))

    def borrower_of(self, loan_id: int) -> Optional[str]:
        return resolve_holder(self.ledger, rights_symbol(loan_id, BORROWER))

    def escrow_liabilities(self) -> Decimal:
        """
        Cash the escrow owes: refund claims, standing bids of open auctions
        and repaid funds awaiting withdrawal. Equals the escrow's cash
        balance in every committed state.
        """
        total = outstanding_refunds(self.ledger, self.currency)
        for symbol in self.ledger.list_units():
            unit_type = self.ledger.get_unit(symbol).unit_type
            if unit_type == UNIT_TYPE_RATE_AUCTION:
                total += active_bid_principal(load_auction(self.ledger, symbol))
            elif unit_type == UNIT_TYPE_REVENUE_LOAN:
                total += load_loan(self.ledger, symbol).withdrawable
        return total
