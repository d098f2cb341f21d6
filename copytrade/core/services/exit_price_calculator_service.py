from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..domain.entities.execution_entity import PositionEntity
from ..domain.enums.strategy_enums import StopLossType


@dataclass
class ExitLevels:
    stop_loss_price: float
    take_profit_price: float
    stop_loss_type: str
    stop_loss_pct: float
    take_profit_pct: float
    atr_value: Optional[float] = None
    trailing_activated: bool = False


@dataclass
class TrailingUpdate:
    should_update: bool
    highest_price: float
    stop_loss_price: float
    trailing_activated: bool
    stop_loss_type: str


class ExitPriceCalculatorService:
    """
    Stateless helper for initial stop-loss / take-profit levels and the
    trailing-stop ratchet.

    Klines are accepted in two shapes:
      - exchange rows: [open_time, open, high, low, close, volume, ...]
      - dicts:         {"high": .., "low": .., "close": ..}
    """

    def __init__(
        self,
        atr_period: int = 14,
        atr_multiplier_sl: float = 2.0,
        atr_multiplier_tp: float = 3.0,
        min_stop_loss_pct: float = 3.0,
        max_stop_loss_pct: float = 20.0,
        min_take_profit_pct: float = 5.0,
        max_take_profit_pct: float = 60.0,
        trailing_activation_pct: float = 0.0,
        trailing_stop_pct: float = 3.0,
        trailing_eligible_types: Iterable[str] = (StopLossType.TRAILING.value,),
        default_stop_loss_pct: float = 10.0,
        default_take_profit_pct: float = 20.0,
    ):
        self.atr_period = atr_period
        self.atr_multiplier_sl = atr_multiplier_sl
        self.atr_multiplier_tp = atr_multiplier_tp
        self.min_stop_loss_pct = min_stop_loss_pct
        self.max_stop_loss_pct = max_stop_loss_pct
        self.min_take_profit_pct = min_take_profit_pct
        self.max_take_profit_pct = max_take_profit_pct
        self.trailing_activation_pct = trailing_activation_pct
        self.trailing_stop_pct = trailing_stop_pct
        self.trailing_eligible_types = {t.upper() for t in trailing_eligible_types}
        self.default_stop_loss_pct = default_stop_loss_pct
        self.default_take_profit_pct = default_take_profit_pct

    @staticmethod
    def _klines_frame(klines: Sequence[Any]) -> pd.DataFrame:
        if isinstance(klines[0], dict):
            df = pd.DataFrame(klines)[["high", "low", "close"]]
        else:
            df = pd.DataFrame([[k[2], k[3], k[4]] for k in klines], columns=["high", "low", "close"])
        return df.apply(pd.to_numeric, errors="coerce")

    def calculate_atr(self, klines: Optional[Sequence[Any]], period: Optional[int] = None) -> Optional[float]:
        """
        Simple mean of the last `period` true ranges.
        Needs period + 1 bars (the first bar only provides a previous close).
        """
        period = period or self.atr_period
        if not klines or len(klines) < period + 1:
            return None

        df = self._klines_frame(klines)
        h, l, c = df["high"], df["low"], df["close"]
        prev_c = c.shift(1)
        tr = pd.concat([(h - l), (h - prev_c).abs(), (l - prev_c).abs()], axis=1).max(axis=1)
        atr = tr.iloc[1:].tail(period).mean()
        if pd.isna(atr):
            return None
        return float(atr)

    def _fixed(self, entry_price: float, sl_pct: float, tp_pct: float, sl_type: str) -> ExitLevels:
        return ExitLevels(
            stop_loss_price=entry_price * (1 - sl_pct / 100),
            take_profit_price=entry_price * (1 + tp_pct / 100),
            stop_loss_type=sl_type,
            stop_loss_pct=sl_pct,
            take_profit_pct=tp_pct,
            trailing_activated=sl_type == StopLossType.TRAILING.value,
        )

    def calculate_initial_levels(
        self,
        entry_price: float,
        klines: Optional[Sequence[Any]] = None,
        mode: str = StopLossType.FIXED.value,
        stop_loss_pct: Optional[float] = None,
        take_profit_pct: Optional[float] = None,
    ) -> ExitLevels:
        if entry_price <= 0:
            raise ValueError("entry_price must be > 0")

        mode = (mode or StopLossType.FIXED.value).upper()
        sl_pct = stop_loss_pct or self.default_stop_loss_pct
        tp_pct = take_profit_pct or self.default_take_profit_pct

        if mode == StopLossType.ATR.value:
            atr = self.calculate_atr(klines)
            if atr and atr > 0:
                raw_sl = (self.atr_multiplier_sl * atr) / entry_price * 100
                raw_tp = (self.atr_multiplier_tp * atr) / entry_price * 100
                sl_clamped = max(self.min_stop_loss_pct, min(self.max_stop_loss_pct, raw_sl))
                tp_clamped = max(self.min_take_profit_pct, min(self.max_take_profit_pct, raw_tp))
                levels = self._fixed(entry_price, sl_clamped, tp_clamped, StopLossType.ATR.value)
                levels.atr_value = atr
                return levels
            # not enough bars: degrade to fixed offsets
            return self._fixed(entry_price, sl_pct, tp_pct, StopLossType.FIXED.value)

        if mode == StopLossType.TRAILING.value:
            return self._fixed(entry_price, sl_pct, tp_pct, StopLossType.TRAILING.value)

        return self._fixed(entry_price, sl_pct, tp_pct, StopLossType.FIXED.value)

    def update_trailing_stop(self, position: PositionEntity, current_price: float) -> TrailingUpdate:
        entry = float(position.entry_price)
        highest = float(position.highest_price or entry)
        stop = float(position.stop_loss_price)
        activated = bool(position.trailing_stop_activated)
        sl_type = position.stop_loss_type or StopLossType.FIXED.value

        out = TrailingUpdate(
            should_update=False,
            highest_price=highest,
            stop_loss_price=stop,
            trailing_activated=activated,
            stop_loss_type=sl_type,
        )

        if current_price > highest:
            out.highest_price = current_price
            out.should_update = True

        profit_pct = (current_price - entry) / entry * 100
        if (
            not activated
            and sl_type.upper() in self.trailing_eligible_types
            and profit_pct >= self.trailing_activation_pct
        ):
            out.trailing_activated = True
            out.stop_loss_type = StopLossType.TRAILING.value
            out.should_update = True

        if out.trailing_activated:
            candidate = out.highest_price * (1 - self.trailing_stop_pct / 100)
            # ratchet only upwards
            if candidate > out.stop_loss_price:
                out.stop_loss_price = candidate
                out.should_update = True

        return out

    def check_and_update_stop_loss(self, position: PositionEntity, current_price: float) -> Dict[str, Any]:
        """
        Field updates for the position store; empty dict when nothing moved.
        """
        res = self.update_trailing_stop(position, current_price)
        if not res.should_update:
            return {}

        fields: Dict[str, Any] = {
            "highest_price": res.highest_price,
            "trailing_stop_activated": res.trailing_activated,
        }
        if res.stop_loss_price > float(position.stop_loss_price):
            fields["stop_loss_price"] = res.stop_loss_price
            fields["stop_loss_type"] = res.stop_loss_type
        fields["last_stop_update_at"] = datetime.now(timezone.utc)
        return fields

    def replay(self, position: PositionEntity, prices: List[float]) -> PositionEntity:
        """
        Apply a price path to a position and return the resulting state.
        """
        pos = position.model_copy()
        for p in prices:
            fields = self.check_and_update_stop_loss(pos, p)
            if fields:
                fields.pop("last_stop_update_at", None)
                pos = pos.model_copy(update=fields)
        return pos
