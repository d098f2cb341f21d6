# copytrade/adapters/external/dex/base.py

import logging
import time
from typing import Optional

from ....core.domain.entities.swap_entity import SwapRequest
from ....core.gateways.chain_gateway import ChainGateway
from ....core.gateways.route_venue_gateway import QuoteContext, RouteVenueGateway
from ....core.services.abi_codec import checksum, encode_call
from ....core.services.exceptions import RouteRejectedError
from ....core.services.route_safety_service import RouteSafetyService

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEFAULT_DEADLINE_SEC = 20 * 60

ABI_V2_PAIR = [
    {"name":"getReserves","outputs":[
        {"type":"uint112","name":"reserve0"},
        {"type":"uint112","name":"reserve1"},
        {"type":"uint32","name":"blockTimestampLast"}],
     "inputs":[],"stateMutability":"view","type":"function"},
    {"name":"token0","outputs":[{"type":"address"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"token1","outputs":[{"type":"address"}],"inputs":[],"stateMutability":"view","type":"function"},
]


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def is_zero_address(addr: Optional[str]) -> bool:
    return not addr or int(addr, 16) == 0


def deadline_ts(seconds: int = DEFAULT_DEADLINE_SEC) -> int:
    return int(time.time()) + seconds


class RouteVenue(RouteVenueGateway):
    """
    On-chain venue base: shared chain access, safety gates and pair reads.
    """

    def __init__(self, chain: ChainGateway, safety: RouteSafetyService, logger: logging.Logger | None = None):
        self._chain = chain
        self._safety = safety
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def _pair_reserves(self, chain: str, pair: str, token_in: str):
        """
        (reserve_in, reserve_out) of a constant-product pair, oriented to token_in.
        """
        r0, r1, _ = await self._chain.call(chain, pair, ABI_V2_PAIR, "getReserves")
        token0 = await self._chain.call(chain, pair, ABI_V2_PAIR, "token0")
        if same_address(token0, token_in):
            return int(r0), int(r1)
        return int(r1), int(r0)

    def _check_quote(self, venue: str, req: SwapRequest, ctx: QuoteContext, amount_out: int) -> None:
        if amount_out <= 0:
            raise RouteRejectedError(venue, "zero output quote")
        self._safety.check_price_reasonability(
            venue,
            req.amount_in,
            ctx.decimals_in,
            amount_out,
            ctx.decimals_out,
            ctx.reference_price,
            ctx.input_price_usd,
        )
