"""
lifecycle_engine.py - Keeper

Advances ledger time and finalizes every auction whose deadline has passed.
Finalization is permissionless; the engine calls it under its own keeper
address.

Execution order each step():
1. Advance ledger time
2. Finalize auctions in ENDED status (ascending id)
3. Optionally persist interest on open loans
4. Repeat until no more auctions end (subscribers may open new ones)
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, Optional

from .core import UNIT_TYPE_REVENUE_LOAN
from .protocol import LendingProtocol
from .units.auction import AuctionSettlement, AuctionStatus
from .units.loan import load_loan


class LifecycleEngine:
    """
    Keeper for a LendingProtocol.

    Example:
        engine = LifecycleEngine(protocol)
        settled = engine.step(datetime(2024, 1, 2))
        # {0: AuctionSettlement(...), 1: None}   None = unsold
    """

    def __init__(self, protocol: LendingProtocol, keeper: str = "keeper", accrue_loans: bool = False):
        self.protocol = protocol
        self.keeper = keeper
        self.accrue_loans = accrue_loans
        self.max_passes = 10
        self.verbose = protocol.ledger.verbose

    def step(self, timestamp: datetime) -> Dict[int, Optional[AuctionSettlement]]:
        """
        Advance time to timestamp and finalize every ended auction.

        Returns:
            auction id -> settlement for each auction finalized in this step
            (None for unsold auctions)
        """
        ledger = self.protocol.ledger
        if timestamp > ledger.current_time:
            ledger.advance_time(timestamp)
        finalized: Dict[int, Optional[AuctionSettlement]] = {}

        for _ in range(self.max_passes):
            due = [
                auction_id for auction_id in range(self.protocol.auction_count())
                if self.protocol.auction_status(auction_id) == AuctionStatus.ENDED
            ]
            if not due:
                break
            for auction_id in due:
                if self.verbose:
                    print(f"[KEEPER] Finalizing AUCTION_{auction_id}")
                finalized[auction_id] = self.protocol.finalize_auction(self.keeper, auction_id)

        if self.accrue_loans:
            for symbol in sorted(ledger.list_units()):
                if ledger.get_unit(symbol).unit_type == UNIT_TYPE_REVENUE_LOAN:
                    self.protocol.accrue(load_loan(ledger, symbol).loan_id)

        return finalized

    def run(self, timestamps: Iterable[datetime]) -> Dict[int, Optional[AuctionSettlement]]:
        """Step through timestamps in order; returns everything finalized."""
        finalized: Dict[int, Optional[AuctionSettlement]] = {}
        for timestamp in timestamps:
            finalized.update(self.step(timestamp))
        return finalized
