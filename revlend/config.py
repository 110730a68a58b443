"""
config.py - Protocol parameters

One frozen ProtocolConfig carries every timing and numeric convention the
auction and loan rules depend on. The defaults are the canonical protocol:
24 hour auctions, a 15 minute anti-sniping window, rates quoted on a 0-1000
scale (37 means 3.7% a year) and a 365.25 day year.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from .core import SYSTEM_WALLET, WAD_DECIMAL_PLACES


DEFAULT_ESCROW_WALLET = "revlend_escrow"
SECONDS_PER_DAY = Decimal("86400")


@dataclass(frozen=True)
class ProtocolConfig:
    auction_duration: timedelta = timedelta(hours=24)
    extension_window: timedelta = timedelta(minutes=15)
    extension_period: timedelta = timedelta(minutes=15)
    rate_scale: int = 1000
    days_per_year: Decimal = Decimal("365.25")
    escrow_wallet: str = DEFAULT_ESCROW_WALLET
    wad_places: int = WAD_DECIMAL_PLACES

    def __post_init__(self):
        if not isinstance(self.days_per_year, Decimal):
            object.__setattr__(self, 'days_per_year', Decimal(str(self.days_per_year)))
        if self.auction_duration <= timedelta(0):
            raise ValueError(f"auction_duration must be positive, got {self.auction_duration}")
        if self.extension_window < timedelta(0):
            raise ValueError(f"extension_window cannot be negative, got {self.extension_window}")
        if self.extension_period <= timedelta(0):
            raise ValueError(f"extension_period must be positive, got {self.extension_period}")
        # An extension must never pull the deadline earlier
        if self.extension_period < self.extension_window:
            raise ValueError(
                f"extension_period ({self.extension_period}) must be at least "
                f"extension_window ({self.extension_window})"
            )
        if self.rate_scale <= 0:
            raise ValueError(f"rate_scale must be positive, got {self.rate_scale}")
        if self.days_per_year <= 0:
            raise ValueError(f"days_per_year must be positive, got {self.days_per_year}")
        if not self.escrow_wallet or not self.escrow_wallet.strip():
            raise ValueError("escrow_wallet cannot be empty")
        if self.escrow_wallet == SYSTEM_WALLET:
            raise ValueError("escrow_wallet cannot be the system wallet")

    @property
    def seconds_per_year(self) -> Decimal:
        return self.days_per_year * SECONDS_PER_DAY


DEFAULT_CONFIG = ProtocolConfig()
