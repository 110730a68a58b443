"""
conftest.py - Shared pytest fixtures for revlend tests

Provides common fixtures used across unit, conformance and functional tests:
- A funded ledger with the settlement currency
- Revenue NFT minting and revenue deposits
- Protocol + factory wiring
- An open auction and a loan opened by a sold auction
- Comparison utilities
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from revlend import (
    Ledger, Move, ExecuteResult, SYSTEM_WALLET,
    LendingFactory, LendingProtocol,
    build_transaction, cash,
    create_revenue_nft, revenue_wallet, compute_revenue_deposit,
)


T0 = datetime(2024, 1, 1)
PRINCIPAL = Decimal("1000")
MAX_RATE = 500

FUNDING = {
    "alice": Decimal("5000"),
    "bob": Decimal("20000"),
    "carol": Decimal("30000"),
    "dave": Decimal("40000"),
    "payer": Decimal("100000"),
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def mint_nft(ledger: Ledger, symbol: str, owner: str, currency: str = "ETH", issuer: str = "label") -> str:
    """Register a revenue NFT with its vault wallet and issue it to owner."""
    ledger.register_unit(create_revenue_nft(symbol, f"Royalties: {symbol}", currency, issuer))
    ledger.register_wallet(revenue_wallet(symbol))
    result = ledger.execute(build_transaction(ledger, [
        Move(Decimal("1"), symbol, SYSTEM_WALLET, owner, f"mint_{symbol}")
    ]))
    assert result == ExecuteResult.APPLIED
    return symbol


def deposit_revenue(ledger: Ledger, symbol: str, amount: Decimal, payer: str = "payer") -> None:
    """Pay revenue into an NFT's vault."""
    result = ledger.execute(compute_revenue_deposit(ledger, symbol, payer, amount))
    assert result == ExecuteResult.APPLIED


def ledger_state_equals(ledger1: Ledger, ledger2: Ledger) -> bool:
    """Check if two ledgers have identical balances and unit states."""
    all_wallets = ledger1.registered_wallets | ledger2.registered_wallets
    all_units = set(ledger1.units.keys()) | set(ledger2.units.keys())
    for wallet in all_wallets:
        for unit in all_units:
            bal1 = ledger1.balances.get(wallet, {}).get(unit, Decimal("0"))
            bal2 = ledger2.balances.get(wallet, {}).get(unit, Decimal("0"))
            if bal1 != bal2:
                return False
    for unit in all_units:
        if unit not in ledger1.units or unit not in ledger2.units:
            return False
        if ledger1.get_unit_state(unit) != ledger2.get_unit_state(unit):
            return False
    return True


def escrow_cash(protocol: LendingProtocol) -> Decimal:
    return protocol.ledger.get_balance(protocol.config.escrow_wallet, protocol.currency)


# =============================================================================
# BASIC FIXTURES
# =============================================================================

def funded_ledger(name: str = "test") -> Ledger:
    """Ledger with ETH and funded wallets alice, bob, carol, dave, payer."""
    ledger = Ledger(name, T0, verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    for wallet in FUNDING:
        ledger.register_wallet(wallet)
    result = ledger.execute(build_transaction(ledger, [
        Move(amount, "ETH", SYSTEM_WALLET, wallet, f"fund_{wallet}")
        for wallet, amount in FUNDING.items()
    ]))
    assert result == ExecuteResult.APPLIED
    return ledger


def build_market(name: str = "test"):
    """Funded ledger, bound protocol and factory, SONG_42 held by alice."""
    ledger = funded_ledger(name)
    factory = LendingFactory()
    protocol = LendingProtocol(ledger, "ETH", factory)
    mint_nft(ledger, "SONG_42", "alice")
    return protocol, factory


@pytest.fixture
def ledger():
    return funded_ledger()


@pytest.fixture
def nft(ledger):
    """SONG_42 revenue NFT held by alice."""
    return mint_nft(ledger, "SONG_42", "alice")


@pytest.fixture
def factory():
    return LendingFactory()


@pytest.fixture
def protocol(ledger, factory):
    return LendingProtocol(ledger, "ETH", factory)


# =============================================================================
# LIFECYCLE FIXTURES
# =============================================================================

@pytest.fixture
def auction_id(protocol, factory, nft):
    """Open auction: alice borrows 1000 against SONG_42, max rate 500."""
    return factory.create_auction("alice", nft, PRINCIPAL, MAX_RATE)


@pytest.fixture
def loan_id(protocol, auction_id):
    """
    Loan opened by a sold auction: bob lends 1000 at rate 300.
    Ledger time is the finalization time (T0 + 24h).
    """
    protocol.bid("bob", auction_id, 300, PRINCIPAL)
    protocol.ledger.advance_time(T0 + timedelta(hours=24))
    settlement = protocol.finalize_auction("keeper", auction_id)
    assert settlement is not None
    return settlement.auction_id
