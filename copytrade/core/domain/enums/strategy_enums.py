from enum import Enum


class FollowStrategy(str, Enum):
    """
    Which upstream channels a strategy copies.
    """
    ALL = "ALL"
    WHITELIST = "WHITELIST"
    TOP_SIGNALS = "TOP_SIGNALS"
    TWITTER_KOL = "TWITTER_KOL"
    TELEGRAM = "TELEGRAM"
    MEME = "MEME"
    FUSION = "FUSION"
    RANGE = "RANGE"


class StopLossType(str, Enum):
    FIXED = "FIXED"
    ATR = "ATR"
    TRAILING = "TRAILING"


class RiskLevel(str, Enum):
    """
    CRITICAL blocks the trade; the others are advisory.
    """
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    INFO = "INFO"
