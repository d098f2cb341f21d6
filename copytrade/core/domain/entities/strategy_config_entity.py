from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Set

from pydantic import BaseModel, Field, field_validator

from ..enums.strategy_enums import FollowStrategy, StopLossType
from ...services.utils import parse_symbol_set


class StrategyConfigEntity(BaseModel):
    """
    Risk and trading parameters of one strategy. A strategy belongs to
    exactly one user; a user may own several strategies.

    Whitelist / blacklist are stored as arrays, JSON strings or comma
    strings depending on who wrote the row. They are normalized into a
    Set[str] here and nowhere else.
    """

    strategy_id: str
    user_id: str
    strategy_name: Optional[str] = None

    enabled: bool = True
    wallet_address: Optional[str] = None
    chains: List[str] = Field(default_factory=lambda: ["BSC"])

    trade_amount: Decimal = Decimal("100")
    max_trade_amount: Decimal = Decimal("100")
    max_slippage_bps: int = Field(200, ge=0, le=10_000)
    max_positions: int = 3

    # percent, negative: -10 means "pause when today's PnL <= -10%"
    daily_loss_limit_pct: float = -10.0
    single_token_max_percent: float = 30.0
    min_liquidity_required: Decimal = Decimal("200000")

    whitelist: Set[str] = Field(default_factory=set)
    blacklist: Set[str] = Field(default_factory=set)

    follow_strategy: FollowStrategy = FollowStrategy.TOP_SIGNALS
    min_confidence: Optional[float] = None

    stop_loss_type: StopLossType = StopLossType.FIXED
    stop_loss_pct: float = 10.0
    take_profit_pct: float = 20.0

    paused_until: Optional[datetime] = None
    pause_reason: Optional[str] = None

    @field_validator("whitelist", "blacklist", mode="before")
    @classmethod
    def _parse_symbols(cls, v):
        return parse_symbol_set(v)

    @field_validator("paused_until")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_paused(self, now: Optional[datetime] = None) -> bool:
        if self.paused_until is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.paused_until > now
