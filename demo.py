#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Borrowing Against a Revenue NFT

A walk through one loan from listing to reclaimed collateral. Each step
builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Setup        - Ledger, currency, the revenue NFT, protocol + factory
  4-6:   Rate Auction - Listing, lowest-rate bidding, anti-sniping extension
  7-8:   Settlement   - Keeper finalization, pull-payment refunds
  9-11:  The Loan     - Interest accrual, repayment from revenue and cash
  12:    Close Out    - Lender withdrawal, collateral reclaim, conservation

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from revlend import (
    Ledger, Move, SYSTEM_WALLET, ExecuteResult,
    build_transaction, cash,
    create_revenue_nft, revenue_wallet, compute_revenue_deposit, claimable_yield,
    LendingFactory, LendingProtocol, LifecycleEngine, EventKind,
    RateNotImproved,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Funding
    artist_eth: Decimal = Decimal("500")
    lender_eth: Decimal = Decimal("10000")

    # Auction
    principal: Decimal = Decimal("1000")
    max_rate: int = 500          # 50.0% a year on the 0-1000 scale

    # Revenue paid into the NFT during the loan
    royalties: Decimal = Decimal("400")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def print_event(event):
    print(f"  [{event.timestamp}] {event.kind.value:22s} {event.subject:12s} {event.data}")


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_ledger() -> Ledger:
    step_header(1, "The Ledger",
        "Create a ledger with a settlement currency and funded wallets.")

    ledger = Ledger("demo", CONFIG.start_time, verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    for wallet in ("artist", "lender_a", "lender_b", "fans"):
        ledger.register_wallet(wallet)

    funding = {
        "artist": CONFIG.artist_eth,
        "lender_a": CONFIG.lender_eth,
        "lender_b": CONFIG.lender_eth,
        "fans": CONFIG.lender_eth,
    }
    result = ledger.execute(build_transaction(ledger, [
        Move(amount, "ETH", SYSTEM_WALLET, wallet, f"fund_{wallet}")
        for wallet, amount in funding.items()
    ]))
    print(f">>> funding: {result.value}")
    for wallet in sorted(funding):
        print(f"  {wallet:10s} {ledger.get_balance(wallet, 'ETH')} ETH")
    return ledger


def step_02_revenue_nft(ledger: Ledger) -> str:
    step_header(2, "The Revenue NFT",
        "Mint a whole-unit NFT whose royalties accumulate in its own vault.")

    nft = create_revenue_nft("ALBUM_1", "Royalties: Debut Album", "ETH", "label")
    ledger.register_unit(nft)
    ledger.register_wallet(revenue_wallet(nft.symbol))
    ledger.execute(build_transaction(ledger, [
        Move(Decimal("1"), nft.symbol, SYSTEM_WALLET, "artist", "mint_album")
    ]))

    print(f"Unit:          {nft.symbol} ({nft.unit_type})")
    print(f"Revenue vault: {revenue_wallet(nft.symbol)}")
    print(f"Holder:        artist ({ledger.get_balance('artist', nft.symbol)})")
    return nft.symbol


def step_03_protocol(ledger: Ledger):
    step_header(3, "Protocol and Factory",
        "Wire the lending protocol to the factory that alone may open auctions.")

    factory = LendingFactory()
    protocol = LendingProtocol(ledger, "ETH", factory)
    protocol.subscribe(print_event)

    print(f"Factory address: {factory.address}")
    print(f"Escrow wallet:   {protocol.config.escrow_wallet}")
    print(f"Auction length:  {protocol.config.auction_duration}")
    print(f"Anti-sniping:    bids within {protocol.config.extension_window} "
          f"push the end to bid time + {protocol.config.extension_period}")
    return protocol, factory


# ============================================================================
# PHASE 2: RATE AUCTION (Steps 4-6)
# ============================================================================

def step_04_list(protocol: LendingProtocol, factory: LendingFactory, nft: str) -> int:
    step_header(4, "Listing",
        "The artist escrows the NFT and asks for a loan at no more than the max rate.")

    auction_id = factory.create_auction("artist", nft, CONFIG.principal, CONFIG.max_rate)
    record = protocol.auction(auction_id)
    print(f"\nAUCTION_{auction_id}: {record.principal} ETH, max rate {record.max_rate}, "
          f"ends {record.auction_end}")
    print(f"NFT now held by escrow: {protocol.ledger.get_balance(record.escrow_wallet, nft)}")
    return auction_id


def step_05_bidding(protocol: LendingProtocol, auction_id: int):
    step_header(5, "Lowest Rate Wins",
        "Each bid pays the principal in; an outbid lender is owed it back.")

    protocol.bid("lender_a", auction_id, 300, CONFIG.principal)

    section_header("A worse rate is refused")
    try:
        protocol.bid("lender_b", auction_id, 350, CONFIG.principal)
    except RateNotImproved as e:
        print(f"  RateNotImproved: {e}")

    protocol.bid("lender_b", auction_id, 250, CONFIG.principal)
    print(f"\nlender_a is owed: {protocol.refund_balance('lender_a')} ETH")


def step_06_sniping(protocol: LendingProtocol, auction_id: int):
    step_header(6, "Anti-Sniping",
        "A bid in the final minutes extends the auction.")

    end = protocol.auction(auction_id).auction_end
    protocol.ledger.advance_time(end - timedelta(minutes=3))
    outcome = protocol.bid("lender_a", auction_id, 200, CONFIG.principal)
    print(f"\nExtended: {outcome.extended}, new end {outcome.new_end}")


# ============================================================================
# PHASE 3: SETTLEMENT (Steps 7-8)
# ============================================================================

def step_07_keeper(protocol: LendingProtocol, auction_id: int):
    step_header(7, "Keeper Finalization",
        "Anyone may finalize after the deadline; the loan opens atomically.")

    engine = LifecycleEngine(protocol)
    end = protocol.auction(auction_id).auction_end
    settled = engine.step(end)
    settlement = settled[auction_id]
    print(f"\nLender:   {protocol.lender_of(auction_id)}")
    print(f"Borrower: {protocol.borrower_of(auction_id)}")
    print(f"Rate:     {settlement.rate}")
    return engine


def step_08_pull_payments(protocol: LendingProtocol):
    step_header(8, "Pull Payments",
        "Nobody is paid automatically; each address claims what it is owed.")

    for address in ("artist", "lender_a", "lender_b"):
        paid = protocol.get_funds(address)
        print(f"  {address:10s} claimed {paid} ETH")


# ============================================================================
# PHASE 4: THE LOAN (Steps 9-11)
# ============================================================================

def step_09_interest(protocol: LendingProtocol, loan_id: int):
    step_header(9, "Continuous Compounding",
        "Debt grows as principal * e^(rate * years); a year is 365.25 days.")

    start = protocol.loan(loan_id).last_accrued
    for days in (30, 182, 365.25):
        protocol.ledger.advance_time(start + timedelta(days=days))
        print(f"  after {days:>6} days: {protocol.outstanding_debt(loan_id)} ETH")


def step_10_revenue_repayment(protocol: LendingProtocol, nft: str, loan_id: int):
    step_header(10, "Repaying From Royalties",
        "Revenue paid into the NFT's vault can pay down the loan directly.")

    ledger = protocol.ledger
    result = ledger.execute(compute_revenue_deposit(ledger, nft, "fans", CONFIG.royalties))
    assert result == ExecuteResult.APPLIED
    print(f"Claimable royalties: {claimable_yield(ledger, nft)}")

    outcome = protocol.repay_with_claimable_yield("artist", loan_id)
    print(f"Applied {outcome.applied}, remaining debt {outcome.remaining_debt}")


def step_11_cash_repayment(protocol: LendingProtocol, loan_id: int):
    step_header(11, "Repaying in Cash",
        "Overpaying is safe: the excess comes straight back.")

    debt = protocol.outstanding_debt(loan_id)
    outcome = protocol.repay_with_external_payment("artist", loan_id, debt + Decimal("50"))
    print(f"Applied {outcome.applied}, refunded {outcome.refunded}, remaining {outcome.remaining_debt}")


# ============================================================================
# PHASE 5: CLOSE OUT (Step 12)
# ============================================================================

def step_12_close(protocol: LendingProtocol, nft: str, loan_id: int):
    step_header(12, "Close Out",
        "The lender withdraws, the artist takes the NFT back, the escrow is empty.")

    lender = protocol.lender_of(loan_id)
    amount = protocol.withdraw(lender, loan_id)
    print(f"{lender} withdrew {amount} ETH")
    protocol.reclaim_collateral("artist", loan_id)

    ledger = protocol.ledger
    section_header("Final State")
    print(f"NFT holder:        artist ({ledger.get_balance('artist', nft)})")
    print(f"Escrow cash:       {ledger.get_balance(protocol.config.escrow_wallet, 'ETH')}")
    print(f"Escrow owes:       {protocol.escrow_liabilities()}")
    report = ledger.verify_double_entry()
    print(f"Double entry:      {'valid' if report['valid'] else 'BROKEN'}")
    replayed = ledger.replay()
    print(f"Replay matches:    {replayed.get_balance(lender, 'ETH') == ledger.get_balance(lender, 'ETH')}")

    section_header("Loan Events")
    for event in protocol.events:
        if event.kind in (EventKind.LOAN_CREATED, EventKind.LOAN_REPAID,
                          EventKind.LENDER_WITHDREW, EventKind.COLLATERAL_RECLAIMED):
            print(f"  {event.kind.value:22s} {event.data}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       REVLEND - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger = step_01_ledger()
    wait_for_enter()

    nft = step_02_revenue_nft(ledger)
    wait_for_enter()

    protocol, factory = step_03_protocol(ledger)
    wait_for_enter()

    auction_id = step_04_list(protocol, factory, nft)
    wait_for_enter()

    step_05_bidding(protocol, auction_id)
    wait_for_enter()

    step_06_sniping(protocol, auction_id)
    wait_for_enter()

    step_07_keeper(protocol, auction_id)
    wait_for_enter()

    step_08_pull_payments(protocol)
    wait_for_enter()

    step_09_interest(protocol, auction_id)
    wait_for_enter()

    step_10_revenue_repayment(protocol, nft, auction_id)
    wait_for_enter()

    step_11_cash_repayment(protocol, auction_id)
    wait_for_enter()

    step_12_close(protocol, nft, auction_id)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See revlend/units/*.py for the auction, loan and refund logic
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
