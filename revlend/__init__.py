"""
revlend - Rate-auction lending against revenue NFTs

A seller escrows a revenue-bearing NFT and auctions the lender role: lenders
bid ever lower interest rates, the lowest standing rate wins, and the winner's
principal becomes a loan that compounds continuously until the borrower
repays it (from their own funds or from the NFT's revenue).

Usage:
    from revlend import (
        Ledger, LendingProtocol, LendingFactory, cash, create_revenue_nft,
        revenue_wallet, build_transaction, Move, SYSTEM_WALLET,
    )

    ledger = Ledger("main", datetime(2024, 1, 1), verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    for wallet in ("alice", "bob"):
        ledger.register_wallet(wallet)

    ledger.register_unit(create_revenue_nft("SONG_42", "Royalties", "ETH", "label"))
    ledger.register_wallet(revenue_wallet("SONG_42"))
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("1"), "SONG_42", SYSTEM_WALLET, "alice", "mint_SONG_42"),
        Move(Decimal("5000"), "ETH", SYSTEM_WALLET, "bob", "fund_bob"),
    ]))

    factory = LendingFactory()
    protocol = LendingProtocol(ledger, "ETH", factory)
    auction_id = factory.create_auction("alice", "SONG_42", Decimal("1000"), 500)
    protocol.bid("bob", auction_id, 300, Decimal("1000"))
"""

__version__ = "0.1.0"

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    merge_transactions,
    Unit,
    UnitStateChange,
    ExecuteResult,
    cash,
    whole_unit_only,
    SYSTEM_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_REVENUE_NFT,
    UNIT_TYPE_REFUND_CLAIM,
    UNIT_TYPE_RATE_AUCTION,
    UNIT_TYPE_REVENUE_LOAN,
    UNIT_TYPE_LENDER_RIGHT,
    UNIT_TYPE_BORROWER_RIGHT,
)

# Errors
from .core import (
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    TransferFailed,
    ProtocolError,
    ValidationError,
    AuthorizationError,
    TimingError,
    AuctionClosed,
    RateTooHigh,
    RateNotImproved,
    WrongPayment,
    InvalidRate,
    InvalidAmount,
    OverWithdrawal,
    DebtRemaining,
    CollateralAlreadyReleased,
    LoanExists,
    LoanTermsMismatch,
    NotFactory,
    NotBorrower,
    NotLender,
    NotCollateralHolder,
    NotYetOver,
    AlreadyFinalized,
    AuctionNotSold,
    AuctionNotFound,
    LoanNotFound,
)

# Ledger
from .ledger import Ledger

# Configuration
from .config import ProtocolConfig, DEFAULT_CONFIG

# Interest
from .interest import (
    round_up,
    annual_rate,
    year_fraction,
    fixed_exp,
    growth_factor,
    accrue_debt,
)

# Units
from .units import (
    refund_symbol,
    create_refund_unit,
    refund_balance,
    compute_refund_credit,
    compute_funds_claim,
    outstanding_refunds,
    NO_BID_RATE,
    AUCTION_FOREVER,
    AuctionStatus,
    AuctionRecord,
    AuctionSettlement,
    BidOutcome,
    FinalizationOutcome,
    auction_symbol,
    load_auction,
    auction_status,
    create_auction_unit,
    compute_auction_creation,
    compute_bid,
    compute_finalization,
    LoanRecord,
    RepaymentOutcome,
    WithdrawalOutcome,
    loan_symbol,
    load_loan,
    calculate_accrual,
    calculate_repayment,
    create_loan_unit,
    compute_loan_creation,
    compute_accrual,
    outstanding_debt,
    compute_external_repayment,
    compute_yield_repayment,
    compute_withdrawal,
    compute_collateral_reclaim,
    revenue_wallet,
    create_revenue_nft,
    collateral_holder,
    claimable_yield,
    compute_revenue_deposit,
    compute_yield_claim,
    LENDER,
    BORROWER,
    rights_symbol,
    create_rights_token,
    compute_rights_mint,
    resolve_holder,
    compute_rights_transfer,
)

# Orchestration
from .factory import LendingFactory, LoanFactory, DEFAULT_FACTORY_ADDRESS
from .protocol import LendingProtocol, ProtocolEvent, EventKind
from .lifecycle_engine import LifecycleEngine


__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction',
    'empty_pending_transaction', 'merge_transactions', 'Unit', 'UnitStateChange',
    'ExecuteResult', 'cash', 'whole_unit_only', 'SYSTEM_WALLET',
    'UNIT_TYPE_CASH', 'UNIT_TYPE_REVENUE_NFT', 'UNIT_TYPE_REFUND_CLAIM',
    'UNIT_TYPE_RATE_AUCTION', 'UNIT_TYPE_REVENUE_LOAN',
    'UNIT_TYPE_LENDER_RIGHT', 'UNIT_TYPE_BORROWER_RIGHT',
    # Errors
    'LedgerError', 'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'TransferFailed', 'ProtocolError', 'ValidationError', 'AuthorizationError',
    'TimingError', 'AuctionClosed', 'RateTooHigh', 'RateNotImproved',
    'WrongPayment', 'InvalidRate', 'InvalidAmount', 'OverWithdrawal',
    'DebtRemaining', 'CollateralAlreadyReleased', 'LoanExists', 'LoanTermsMismatch',
    'NotFactory', 'NotBorrower', 'NotLender', 'NotCollateralHolder', 'NotYetOver',
    'AlreadyFinalized', 'AuctionNotSold', 'AuctionNotFound', 'LoanNotFound',
    # Ledger and config
    'Ledger', 'ProtocolConfig', 'DEFAULT_CONFIG',
    # Interest
    'round_up', 'annual_rate', 'year_fraction', 'fixed_exp', 'growth_factor',
    'accrue_debt',
    # Refunds
    'refund_symbol', 'create_refund_unit', 'refund_balance',
    'compute_refund_credit', 'compute_funds_claim', 'outstanding_refunds',
    # Auctions
    'NO_BID_RATE', 'AUCTION_FOREVER', 'AuctionStatus', 'AuctionRecord',
    'AuctionSettlement', 'BidOutcome', 'FinalizationOutcome', 'auction_symbol',
    'load_auction', 'auction_status', 'create_auction_unit',
    'compute_auction_creation', 'compute_bid', 'compute_finalization',
    # Loans
    'LoanRecord', 'RepaymentOutcome', 'WithdrawalOutcome', 'loan_symbol',
    'load_loan', 'calculate_accrual', 'calculate_repayment', 'create_loan_unit',
    'compute_loan_creation', 'compute_accrual', 'outstanding_debt',
    'compute_external_repayment', 'compute_yield_repayment',
    'compute_withdrawal', 'compute_collateral_reclaim',
    # Collateral and rights
    'revenue_wallet', 'create_revenue_nft', 'collateral_holder',
    'claimable_yield', 'compute_revenue_deposit', 'compute_yield_claim',
    'LENDER', 'BORROWER', 'rights_symbol', 'create_rights_token',
    'compute_rights_mint', 'resolve_holder', 'compute_rights_transfer',
    # Orchestration
    'LendingFactory', 'LoanFactory', 'DEFAULT_FACTORY_ADDRESS',
    'LendingProtocol', 'ProtocolEvent', 'EventKind', 'LifecycleEngine',
]
