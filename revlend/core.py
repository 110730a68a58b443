"""
Core types and pure functions for the rate-auction lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the protocol's typed failures
4. Type aliases: Positions, BalanceMap, UnitState
5. Unit factories: the settlement currency

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Interest math runs at 18-decimal fixed point, with intermediate results
# (exponentials, products of debt and growth factor) carried well beyond that.
#
# PRECONDITION: No other code should modify the global Decimal context.
# Use decimal.localcontext() for scoped changes.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants (strings, not enum).
UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_REVENUE_NFT = "REVENUE_NFT"
UNIT_TYPE_REFUND_CLAIM = "REFUND_CLAIM"
UNIT_TYPE_RATE_AUCTION = "RATE_AUCTION"
UNIT_TYPE_REVENUE_LOAN = "REVENUE_LOAN"
UNIT_TYPE_LENDER_RIGHT = "LENDER_RIGHT"
UNIT_TYPE_BORROWER_RIGHT = "BORROWER_RIGHT"

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-18")

# Native settlement currency precision (wei-style fixed point).
WAD_DECIMAL_PLACES = 18

DECIMAL_ROUNDING = {
    UNIT_TYPE_CASH: ROUND_HALF_EVEN,
    UNIT_TYPE_REFUND_CLAIM: ROUND_HALF_EVEN,
    UNIT_TYPE_REVENUE_NFT: ROUND_DOWN,
    UNIT_TYPE_LENDER_RIGHT: ROUND_DOWN,
    UNIT_TYPE_BORROWER_RIGHT: ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# Internal state for a unit (auction record, loan record, vault bookkeeping).
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Auction, loan and collateral functions accept a LedgerView to declare
    that they only read. The Ledger class implements this protocol but also
    provides mutation methods. For testing, FakeView provides a truly
    immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Return the balance of a specific unit in a wallet."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...

    def has_unit(self, symbol: str) -> bool:
        """Return True if a unit with this symbol is registered."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation due to insufficient funds, balance
              constraints, or transfer rule violations.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Bidder, borrower or lender call
    FACTORY = "factory"                   # Orchestrating factory call
    CONTRACT = "contract"                 # Auction/loan contract logic
    LIFECYCLE = "lifecycle"               # Keeper-driven finalization
    SYSTEM = "system"                     # Issuance, initial funding
    EXTERNAL = "external"                 # Revenue arriving from outside


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class TransferFailed(LedgerError):
    """Raised when the ledger rejects a protocol transaction; nothing was committed."""
    pass


class ProtocolError(LedgerError):
    """Base for every typed failure of an auction or loan operation."""
    pass


class ValidationError(ProtocolError):
    """Caller-correctable input error. No state changed."""
    pass


class AuthorizationError(ProtocolError):
    """Caller lacks the capability the operation requires."""
    pass


class TimingError(ProtocolError):
    """The record has not reached (or has moved past) the required state."""
    pass


class AuctionClosed(ValidationError):
    """Bid arrived at or after the auction deadline."""
    pass


class RateTooHigh(ValidationError):
    """Bid rate is not strictly below the auction's max rate."""
    pass


class RateNotImproved(ValidationError):
    """Bid rate is not strictly below the current winning rate."""
    pass


class WrongPayment(ValidationError):
    """Attached payment differs from the auction principal."""
    pass


class InvalidRate(ValidationError):
    """Rate is not a non-negative integer on the rate scale."""
    pass


class InvalidAmount(ValidationError):
    """Amount is negative or not representable in the settlement currency."""
    pass


class OverWithdrawal(ValidationError):
    """Requested withdrawal exceeds the lender's withdrawable balance."""
    pass


class DebtRemaining(ValidationError):
    """Collateral reclaim attempted while debt is outstanding."""
    pass


class CollateralAlreadyReleased(ValidationError):
    """Collateral of a closed loan was already returned."""
    pass


class LoanExists(ValidationError):
    """A loan with this id was already created."""
    pass


class LoanTermsMismatch(ValidationError):
    """Loan collateral or rate differs from the auction's winning terms."""
    pass


class NotFactory(AuthorizationError):
    """Only the orchestrating factory may call this operation."""
    pass


class NotBorrower(AuthorizationError):
    """Caller does not hold the loan's borrower-rights token."""
    pass


class NotLender(AuthorizationError):
    """Caller does not hold the loan's lender-rights token."""
    pass


class NotCollateralHolder(AuthorizationError):
    """Caller does not hold the revenue NFT."""
    pass


class NotYetOver(TimingError):
    """Finalization attempted before the auction deadline."""
    pass


class AlreadyFinalized(TimingError):
    """Finalization attempted on an auction that is already closed."""
    pass


class AuctionNotSold(TimingError):
    """Loan requested for an auction that is still running or ended without a bid."""
    pass


class AuctionNotFound(ProtocolError, LookupError):
    """No auction record with this id."""
    pass


class LoanNotFound(ProtocolError, LookupError):
    """No loan record with this id."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the caller (wallet id, factory address, keeper)
        unit_symbol: Symbol of the auction/loan the transaction acts on
        event_type: Operation name (e.g., "BID", "FINALIZE", "WITHDRAW")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change with complete before/after snapshots.

    Enables forward replay (apply new_state), backward unwinding (restore
    old_state) and audit queries via changed_fields().
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old_value, new_value)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The symbol of the unit being transferred (e.g., "ETH", "AUCTION_0").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}->{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a finite Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order or Decimal exponent.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        if not value.is_finite():
            return f"D:{value}"
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on the semantic content of the transaction, not on
    execution metadata. Same inputs always produce the same intent_id.
    Used for idempotency checking.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}|{_canonicalize(unit.state)}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        old_canonical = _canonicalize(sc.old_state)
        new_canonical = _canonicalize(sc.new_state)
        content_parts.append(f"state_change:{sc.unit}|{old_canonical}|{new_canonical}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Built by the pure compute_* functions and submitted to Ledger.execute().

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        units_to_create: Tuple of Unit objects to register before executing moves
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.units_to_create
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves, no state deltas, and no units to create."""
        return not self.moves and not self.state_changes and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state deltas.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        state_changes: Optional list of UnitStateChange objects
        origin: Transaction origin (defaults to CONTRACT origin)
        units_to_create: Optional tuple of Unit objects to register before executing moves

    Returns:
        A PendingTransaction ready for execution
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction (no moves, no state changes)."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


def merge_transactions(
    view: LedgerView,
    pendings: List[PendingTransaction],
    origin: TransactionOrigin,
) -> PendingTransaction:
    """
    Combine several pending transactions into one atomic transaction.

    Moves keep their order; state changes for the same unit are chained so
    the first old_state and the last new_state survive.

    Raises:
        ValueError: if two parts create the same unit
    """
    moves: List[Move] = []
    changes: Dict[str, UnitStateChange] = {}
    units: Dict[str, Unit] = {}
    for pending in pendings:
        moves.extend(pending.moves)
        for sc in pending.state_changes:
            if sc.unit in changes:
                first = changes[sc.unit]
                changes[sc.unit] = UnitStateChange(sc.unit, first.old_state, sc.new_state)
            else:
                changes[sc.unit] = sc
        for unit in pending.units_to_create:
            if unit.symbol in units:
                raise ValueError(f"Unit {unit.symbol} created twice in one transaction")
            units[unit.symbol] = unit
    return build_transaction(
        view, moves, list(changes.values()), origin, tuple(units.values())
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        state_changes: Tuple of unit state changes
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes and not self.units_to_create:
            raise ValueError("Transaction must have moves, state_changes, or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "-" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"+{bar}+",
            f"|{pad(' Transaction: ' + self.exec_id)}|",
            f"+{bar}+",
            f"|{pad('   intent_id      : ' + self.intent_id)}|",
            f"|{pad('   timestamp      : ' + str(self.timestamp))}|",
            f"|{pad('   sequence       : ' + str(self.sequence_number))}|",
            f"|{pad('   origin         : ' + str(self.origin))}|",
        ]
        if self.units_to_create:
            lines.append(f"|{pad(' Units Created (' + str(len(self.units_to_create)) + '):')}|")
            for unit in self.units_to_create:
                lines.append(f"|{pad('   ' + unit.symbol + ' (' + unit.name + ')')}|")
        lines.append(f"|{pad(' Moves (' + str(len(self.moves)) + '):')}|")
        for i, move in enumerate(self.moves):
            lines.append(f"|{pad(f'   [{i}] {move.quantity} {move.unit_symbol}: {move.source} -> {move.dest}')}|")
        for sc in self.state_changes:
            lines.append(f"|{pad('   [' + sc.unit + ']')}|")
            for field_name, (old_val, new_val) in sc.changed_fields().items():
                lines.append(f"|{pad(f'      {field_name}: {old_val!r} -> {new_val!r}')}|")
        lines.append(f"+{bar}+")
        return "\n".join(lines)


# Type alias for transfer rule functions.
# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit in the ledger: a currency, an NFT, a rights token,
    or a stateful record (auction, loan).

    Attributes:
        symbol: Short identifier for the unit (e.g., "ETH", "LOAN_3").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CASH, REVENUE_NFT, RATE_AUCTION, ...).
        min_balance: Minimum allowed balance in any wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Return the unit's state as a new dict."""
        return _thaw_state(self._frozen_state)

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount of this unit."""
        if self.decimal_places is None:
            return QUANTITY_EPSILON
        return Decimal(10) ** -self.decimal_places

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(self.quantum, rounding=rounding_mode)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str, name: str, decimal_places: int = WAD_DECIMAL_PLACES) -> Unit:
    """
    Create a settlement currency unit.

    Wallets cannot overdraw: every bid, repayment and payout must be covered
    by an actual balance. Only SYSTEM_WALLET may go negative (issuance).

    Args:
        symbol: Currency code (e.g., "ETH", "USDC").
        name: Full name of the currency.
        decimal_places: Number of decimal places for amounts (default: 18).
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        decimal_places=decimal_places,
        min_balance=Decimal("0"),
        _frozen_state=_freeze_state({'issuer': 'system'})
    )


def whole_unit_only(view: LedgerView, move: Move) -> None:
    """
    Transfer rule for NFTs and rights tokens: exactly one unit per move.

    Raises:
        TransferRuleViolation: if a move carries anything other than quantity 1
    """
    if move.quantity != Decimal("1"):
        raise TransferRuleViolation(
            f"{move.unit_symbol} moves whole: quantity must be 1, got {move.quantity}"
        )
