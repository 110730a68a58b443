"""
factory.py - Orchestrating factory

The factory is the only address the protocol accepts auction and loan
creation from. It validates creation requests, and when an auction sells it
builds the loan record and the two rights tokens. The protocol merges that
transaction into the finalization so a sold auction either ends with a loan
or does not end at all.
"""

from __future__ import annotations
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from .config import ProtocolConfig, DEFAULT_CONFIG
from .core import (
    LedgerView, PendingTransaction, TransactionOrigin, OriginType,
    merge_transactions,
    NotCollateralHolder,
)
from .units.auction import AuctionSettlement
from .units.loan import compute_loan_creation, loan_symbol
from .units.revenue_nft import collateral_holder
from .units.rights import compute_rights_mint

if TYPE_CHECKING:
    from .protocol import LendingProtocol


DEFAULT_FACTORY_ADDRESS = "revlend_factory"


@runtime_checkable
class LoanFactory(Protocol):
    """What the protocol needs from whoever orchestrates it."""

    @property
    def address(self) -> str:
        ...

    def on_auction_sold(self, view: LedgerView, settlement: AuctionSettlement) -> PendingTransaction:
        """Build the loan opened by a sold auction."""
        ...


class LendingFactory:
    """
    Reference factory: validates auction requests and opens loans for sold
    auctions (loan record plus lender and borrower tokens).

    Example:
        factory = LendingFactory()
        protocol = LendingProtocol(ledger, "ETH", factory)
        auction_id = factory.create_auction("alice", "SONG_42", Decimal("1000"), 500)
    """

    def __init__(self, address: str = DEFAULT_FACTORY_ADDRESS, config: ProtocolConfig = DEFAULT_CONFIG):
        if not address or not address.strip():
            raise ValueError("factory address cannot be empty")
        self._address = address
        self.config = config
        self.protocol: Optional[LendingProtocol] = None

    @property
    def address(self) -> str:
        return self._address

    def bind(self, protocol: LendingProtocol) -> None:
        """Called by LendingProtocol when it is constructed with this factory."""
        if self.protocol is not None and self.protocol is not protocol:
            raise ValueError(f"factory {self.address} is already bound to a protocol")
        self.protocol = protocol

    def create_auction(
        self,
        creator: str,
        collateral: str,
        principal: Decimal,
        max_rate: int,
    ) -> int:
        """
        Validate and open an auction for creator's NFT.

        Returns:
            The new auction id

        Raises:
            ValueError: if principal is not positive, max_rate is outside
                (0, rate_scale], or the factory is not bound
            NotCollateralHolder: if creator does not hold the NFT
        """
        if self.protocol is None:
            raise ValueError(f"factory {self.address} is not bound to a protocol")
        if not isinstance(principal, Decimal):
            principal = Decimal(str(principal))
        if principal <= 0:
            raise ValueError(f"principal must be positive, got {principal}")
        if isinstance(max_rate, bool) or not isinstance(max_rate, int):
            raise ValueError(f"max_rate must be an integer, got {max_rate!r}")
        if not 0 < max_rate <= self.config.rate_scale:
            raise ValueError(f"max_rate must be in (0, {self.config.rate_scale}], got {max_rate}")

        ledger = self.protocol.ledger
        if not ledger.has_unit(collateral) or collateral_holder(ledger, collateral) != creator:
            raise NotCollateralHolder(f"{creator} does not hold {collateral}")

        return self.protocol.create_auction(self.address, creator, collateral, principal, max_rate)

    def on_auction_sold(self, view: LedgerView, settlement: AuctionSettlement) -> PendingTransaction:
        """Loan record for the settlement plus its rights tokens, seller as borrower."""
        loan = compute_loan_creation(
            view, settlement.auction_id, settlement.collateral, settlement.rate, self.config
        )
        rights = compute_rights_mint(
            view, settlement.auction_id, settlement.highest_bidder, settlement.creator
        )
        origin = TransactionOrigin(
            OriginType.FACTORY, self.address, loan_symbol(settlement.auction_id), "OPEN_LOAN"
        )
        return merge_transactions(view, [loan, rights], origin)
