from fractions import Fraction

import pytest

from copytrade.core.services.exceptions import RouteRejectedError
from copytrade.core.services.route_safety_service import (
    Q192,
    RouteSafetyService,
    apply_slippage,
    as_fraction,
    chain_mids,
    price_impact_bps,
    v2_mid,
    v3_mid,
)

E18 = 10 ** 18


def test_slippage_is_exact_floor():
    assert apply_slippage(1_000_000, 50) == 995_000
    assert apply_slippage(999, 1) == 998          # 998.9001 floored
    assert apply_slippage(10 ** 30 + 7, 0) == 10 ** 30 + 7
    assert apply_slippage(123, 10_000) == 0


def test_slippage_bounds():
    with pytest.raises(ValueError):
        apply_slippage(100, 10_001)
    with pytest.raises(ValueError):
        apply_slippage(100, -1)


def test_as_fraction_avoids_binary_floats():
    assert as_fraction(0.1) == Fraction(1, 10)
    assert as_fraction("2.5") == Fraction(5, 2)


def test_price_impact_against_mid():
    # mid 2 out per 1 in; got 1.9 per 1 -> 5%
    assert price_impact_bps(100, 190, 2, 1) == 500
    assert price_impact_bps(100, 210, 2, 1) == 0
    # rounds up
    assert price_impact_bps(10_000, 19_999, 2, 1) == 1


def test_mids():
    assert v2_mid(1_000, 4_000) == (4_000, 1_000)
    assert v3_mid(2 ** 96, True) == (2 ** 192, Q192)
    assert v3_mid(2 ** 96, False) == (Q192, 2 ** 192)
    assert chain_mids((2, 1), (3, 4)) == (6, 4)


class TestSafetyGates:
    def setup_method(self):
        self.safety = RouteSafetyService(
            max_price_deviation_bps=1000,
            max_price_impact_bps=300,
            v2_min_reserve_usd=10_000,
        )

    def test_reserve_floor(self):
        self.safety.check_reserve_usd("V2", 10_000 * E18, 18, 10_000)
        with pytest.raises(RouteRejectedError, match="below \\$10,000"):
            self.safety.check_reserve_usd("V2", 9_999 * E18, 18, 10_000)

    def test_reserve_priced_in_usd(self):
        # 20 WBNB at $600 is above a $10K floor
        self.safety.check_reserve_usd("V2", 20 * E18, 18, 10_000, input_price_usd=600)
        with pytest.raises(RouteRejectedError):
            self.safety.check_reserve_usd("V2", 10 * E18, 18, 10_000, input_price_usd=600)

    def test_v3_liquidity_floor(self):
        self.safety.check_v3_liquidity("V3", E18)
        with pytest.raises(RouteRejectedError):
            self.safety.check_v3_liquidity("V3", E18 - 1)

    def test_price_reasonability(self):
        # 100 USDT (18 dec) -> 95 tokens (9 dec): implied $1.0526
        self.safety.check_price_reasonability("V3", 100 * E18, 18, 95 * 10 ** 9, 9, 1.0)
        with pytest.raises(RouteRejectedError, match="price deviation"):
            self.safety.check_price_reasonability("V3", 100 * E18, 18, 50 * 10 ** 9, 9, 1.0)

    def test_reasonability_skipped_without_reference(self):
        self.safety.check_price_reasonability("V3", 100 * E18, 18, 1, 18, None)

    def test_price_impact_limit(self):
        assert self.safety.check_price_impact("V2", 100, 198, (2, 1)) == 100
        with pytest.raises(RouteRejectedError, match="price impact"):
            self.safety.check_price_impact("V2", 100, 190, (2, 1))
        # per-venue override
        assert self.safety.check_price_impact("Aerodrome", 100, 190, (2, 1), max_bps=600) == 500
