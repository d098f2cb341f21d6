"""
Safety gates applied to every venue quote before it can become a TxPlan.

All amount math runs on raw integer base units. Prices coming from outside
(USD reference prices) are turned into exact fractions first, so nothing
here rounds through binary floating point.
"""

from decimal import Decimal
from fractions import Fraction
from typing import Optional, Tuple, Union

from .exceptions import RouteRejectedError

BPS = 10_000
MIN_V3_LIQUIDITY = 10 ** 18
Q192 = 2 ** 192

Number = Union[int, float, str, Decimal, Fraction]


def as_fraction(x: Number) -> Fraction:
    """
    Exact rational from a human number. Floats go through their shortest
    repr so 0.1 becomes 1/10, not the binary expansion.
    """
    if isinstance(x, Fraction):
        return x
    if isinstance(x, float):
        return Fraction(Decimal(repr(x)))
    return Fraction(Decimal(str(x)))


def apply_slippage(amount_out: int, slippage_bps: int) -> int:
    """
    floor(amount_out * (1 - bps / 10000)).
    """
    if not 0 <= slippage_bps <= BPS:
        raise ValueError("slippage_bps must be within [0, 10000]")
    return int(amount_out) * (BPS - int(slippage_bps)) // BPS


def price_impact_bps(amount_in: int, amount_out: int, mid_num: int, mid_den: int) -> int:
    """
    Impact of a trade against the pre-trade mid price.

    mid = mid_num / mid_den expressed as raw token_out per raw token_in.
    impact = 1 - (amount_out / amount_in) / mid, floored at 0 (a quote
    better than mid is not penalized). Result in bps, rounded up.
    """
    if amount_in <= 0 or mid_num <= 0 or mid_den <= 0:
        raise ValueError("invalid impact inputs")
    ideal = amount_in * mid_num
    actual = amount_out * mid_den
    if actual >= ideal:
        return 0
    return -(-(ideal - actual) * BPS // ideal)


def v2_mid(reserve_in: int, reserve_out: int) -> Tuple[int, int]:
    return int(reserve_out), int(reserve_in)


def v3_mid(sqrt_price_x96: int, token_in_is_token0: bool) -> Tuple[int, int]:
    """
    slot0 price is token1/token0 = sqrtP^2 / 2^192 (raw units).
    """
    sq = int(sqrt_price_x96) ** 2
    if token_in_is_token0:
        return sq, Q192
    return Q192, sq


def chain_mids(*mids: Tuple[int, int]) -> Tuple[int, int]:
    """
    Mid price of a multi-hop path = product of the hop mids.
    """
    num, den = 1, 1
    for n, d in mids:
        num *= n
        den *= d
    return num, den


class RouteSafetyService:
    """
    Thresholds are bps; USD floors are whole dollars.
    """

    def __init__(
        self,
        max_price_deviation_bps: int = 1000,
        max_price_impact_bps: int = 1000,
        v2_min_reserve_usd: int = 10_000,
        aerodrome_min_reserve_usd: int = 1_000,
        min_v3_liquidity: int = MIN_V3_LIQUIDITY,
    ):
        self.max_price_deviation_bps = max_price_deviation_bps
        self.max_price_impact_bps = max_price_impact_bps
        self.v2_min_reserve_usd = v2_min_reserve_usd
        self.aerodrome_min_reserve_usd = aerodrome_min_reserve_usd
        self.min_v3_liquidity = min_v3_liquidity

    # ---------- (a) liquidity floor ----------
    def check_v3_liquidity(self, venue: str, liquidity: int) -> None:
        if int(liquidity) < self.min_v3_liquidity:
            raise RouteRejectedError(venue, f"pool liquidity {liquidity} below {self.min_v3_liquidity}")

    def check_reserve_usd(
        self,
        venue: str,
        reserve_in: int,
        decimals_in: int,
        min_usd: int,
        input_price_usd: Number = 1,
    ) -> None:
        """
        reserve_in (raw) * price >= min_usd, i.e.
        reserve_in * p_num >= min_usd * 10^dec * p_den
        """
        p = as_fraction(input_price_usd)
        lhs = int(reserve_in) * p.numerator
        rhs = int(min_usd) * (10 ** int(decimals_in)) * p.denominator
        if lhs < rhs:
            have = Fraction(lhs, (10 ** int(decimals_in)) * p.denominator)
            raise RouteRejectedError(venue, f"reserve ${float(have):,.0f} below ${min_usd:,}")

    # ---------- (b) price reasonability ----------
    def price_deviation_bps(
        self,
        amount_in: int,
        decimals_in: int,
        amount_out: int,
        decimals_out: int,
        reference_price: Number,
        input_price_usd: Number = 1,
    ) -> int:
        """
        implied = (amount_in / 10^di) * input_price / (amount_out / 10^do)
        deviation = |implied - reference| / reference
        """
        if amount_out <= 0:
            return BPS
        ref = as_fraction(reference_price)
        pin = as_fraction(input_price_usd)
        implied = Fraction(int(amount_in) * 10 ** int(decimals_out), int(amount_out) * 10 ** int(decimals_in)) * pin
        dev = abs(implied - ref) / ref
        return int(dev * BPS)

    def check_price_reasonability(
        self,
        venue: str,
        amount_in: int,
        decimals_in: int,
        amount_out: int,
        decimals_out: int,
        reference_price: Optional[Number],
        input_price_usd: Number = 1,
    ) -> None:
        if reference_price is None or as_fraction(reference_price) <= 0:
            return
        dev = self.price_deviation_bps(
            amount_in, decimals_in, amount_out, decimals_out, reference_price, input_price_usd
        )
        if dev > self.max_price_deviation_bps:
            raise RouteRejectedError(
                venue,
                f"price deviation {dev / 100:.2f}% > {self.max_price_deviation_bps / 100:.2f}%",
            )

    # ---------- (c) price impact ----------
    def check_price_impact(
        self,
        venue: str,
        amount_in: int,
        amount_out: int,
        mid: Tuple[int, int],
        max_bps: Optional[int] = None,
    ) -> int:
        limit = self.max_price_impact_bps if max_bps is None else max_bps
        impact = price_impact_bps(amount_in, amount_out, mid[0], mid[1])
        if impact > limit:
            raise RouteRejectedError(venue, f"price impact {impact / 100:.2f}% > {limit / 100:.2f}%")
        return impact
