from typing import List, Optional


class UnsupportedChainError(Exception):
    def __init__(self, chain: str):
        super().__init__(f"Unsupported chain: {chain}")
        self.chain = chain


class RouteRejectedError(Exception):
    """
    Raised by a single venue when it has no usable quote or one of the
    safety gates (liquidity floor, price reasonability, price impact) fails.
    The aggregator catches it and moves to the next venue.
    """
    def __init__(self, venue: str, reason: str):
        super().__init__(f"{venue}: {reason}")
        self.venue = venue
        self.reason = reason


class NoLiquidityRouteError(Exception):
    """
    Raised when every venue of the chain waterfall failed.
    `attempts` keeps "<venue>: <reason>" lines for operator diagnosis.
    """
    def __init__(self, chain: str, venues: List[str], attempts: List[str]):
        msg = f"{'/'.join(venues)} no liquidity on {chain}"
        if attempts:
            msg = f"{msg} ({'; '.join(attempts)})"
        super().__init__(msg)
        self.chain = chain
        self.venues = venues
        self.attempts = attempts


class LowLiquidityError(Exception):
    """
    Raised BEFORE any execution row is written when the token TVL is below
    the batch floor. Nothing was sent on-chain.
    """
    def __init__(self, token_symbol: str, tvl: Optional[float], floor: float):
        shown = "unknown" if tvl is None else f"${tvl:,.0f}"
        super().__init__(f"Liquidity too low for {token_symbol}: {shown} < ${floor:,.0f}")
        self.token_symbol = token_symbol
        self.tvl = tvl
        self.floor = floor


class SignerSubmissionError(Exception):
    """
    Raised when the signer rejected or failed the approval or the swap tx.
    `stage` is "approval" or "swap".
    """
    def __init__(self, trader_id: str, stage: str, msg: str):
        super().__init__(f"signer {stage} failed for {trader_id}: {msg}")
        self.trader_id = trader_id
        self.stage = stage
        self.msg = msg
