"""
Units module - Records and tokens of the lending protocol.

- Refund claims (pull payments owed to outbid bidders and sellers)
- Rate auctions for the lender role
- Revenue loans and their accrual, repayment and release
- Revenue NFTs used as collateral
- Lender and borrower rights tokens

All unit factories and related functions are re-exported here for convenience.
"""

# Refund ledger
from .refunds import (
    refund_symbol,
    create_refund_unit,
    refund_balance,
    compute_refund_credit,
    compute_funds_claim,
    outstanding_refunds,
)

# Auctions
from .auction import (
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
    active_bid_principal,
    validate_rate,
    create_auction_unit,
    compute_auction_creation,
    compute_bid,
    compute_finalization,
)

# Loans
from .loan import (
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
)

# Collateral
from .revenue_nft import (
    revenue_wallet,
    create_revenue_nft,
    collateral_holder,
    claimable_yield,
    compute_revenue_deposit,
    compute_yield_claim,
)

# Rights tokens
from .rights import (
    LENDER,
    BORROWER,
    rights_symbol,
    create_rights_token,
    compute_rights_mint,
    resolve_holder,
    compute_rights_transfer,
)
