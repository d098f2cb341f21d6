# copytrade/core/domain/enums/signal_enums.py

from enum import Enum


class SignalStatus(str, Enum):
    """
    Lifecycle of a trading signal once it reaches the execution core.
    """
    ACTIVE = "ACTIVE"         # created upstream, may be watched
    TRIGGERED = "TRIGGERED"   # price entered the band / token already bought
    EXPIRED = "EXPIRED"       # expires_at passed before the band was hit
    SKIPPED = "SKIPPED"       # abandoned (price ran too far from the band)


class SignalType(str, Enum):
    """
    Direction carried by the signal. Only LONG/BUY are tradable here.
    """
    LONG = "LONG"
    BUY = "BUY"
    SHORT = "SHORT"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"


TRADABLE_SIGNAL_TYPES = {SignalType.LONG.value, SignalType.BUY.value}


class MonitorState(str, Enum):
    """
    State of one entry-price monitor.
    """
    WATCHING = "WATCHING"
    TRIGGERED = "TRIGGERED"
    SKIPPED = "SKIPPED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
