# copytrade/core/domain/entities/signal_entity.py

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from ..enums.signal_enums import SignalStatus, TRADABLE_SIGNAL_TYPES


class SignalEntity(BaseModel):
    """
    Canonical in-memory representation of a document in the 'signals'
    collection.

    Upstream producers (Telegram / Twitter parsers, market analyzers, range
    scanner) create it; inside this service only `status`, `reject_reason`
    and `current_price` ever change.

    The id prefix identifies the producer:
      - "TGSIG-"  Telegram group
      - "TWSIG-"  Twitter KOL
      - "RANGE-"  range-trading scanner
      - anything else: alpha / exchange listing signals
    """

    signal_id: str
    token_symbol: str
    chain: str = "BSC"
    contract_address: Optional[str] = None

    # kept as plain str so SHORT / NEUTRAL rows still load and can be rejected
    signal_type: str = "LONG"

    entry_min: float
    entry_max: float
    stop_loss: Optional[float] = None
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None
    take_profit_3: Optional[float] = None

    confidence: float = 0.0
    signal_source: Optional[str] = None
    strategy_id: Optional[str] = None  # pins the signal to one strategy

    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    status: SignalStatus = SignalStatus.ACTIVE
    reject_reason: Optional[str] = None
    current_price: Optional[float] = None

    # bonding-curve tokens (four.meme) that may not be on a DEX yet
    is_four_meme: bool = False
    four_meme_liquidity_added: bool = False

    @field_validator("created_at", "expires_at")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Mongo hands back naive UTC datetimes
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("token_symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def is_tradable_type(self) -> bool:
        return (self.signal_type or "").upper() in TRADABLE_SIGNAL_TYPES

    def age_minutes(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.created_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.created_at).total_seconds() / 60.0

    def in_entry_band(self, price: float) -> bool:
        return self.entry_min <= price <= self.entry_max
