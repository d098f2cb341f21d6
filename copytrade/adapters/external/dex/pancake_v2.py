# copytrade/adapters/external/dex/pancake_v2.py

import logging
from fractions import Fraction
from typing import List

from ....core.domain.entities.swap_entity import RouteQuote, SwapRequest
from ....core.gateways.chain_gateway import ChainGateway
from ....core.services.exceptions import RouteRejectedError
from ....core.services.route_safety_service import (
    RouteSafetyService,
    apply_slippage,
    as_fraction,
    chain_mids,
    v2_mid,
)
from .base import QuoteContext, RouteVenue, checksum, deadline_ts, encode_call, is_zero_address, same_address

V2_SWAP_GAS = 300_000
WBNB_DECIMALS = 18

ABI_V2_FACTORY = [
    {"name":"getPair","outputs":[{"type":"address"}],"inputs":[
        {"type":"address","name":"tokenA"},
        {"type":"address","name":"tokenB"}],
     "stateMutability":"view","type":"function"},
]

ABI_V2_ROUTER = [
    {"name":"getAmountsOut","outputs":[{"type":"uint256[]","name":"amounts"}],"inputs":[
        {"type":"uint256","name":"amountIn"},
        {"type":"address[]","name":"path"}],
     "stateMutability":"view","type":"function"},
    {"name":"swapExactTokensForTokens","outputs":[{"type":"uint256[]","name":"amounts"}],"inputs":[
        {"type":"uint256","name":"amountIn"},
        {"type":"uint256","name":"amountOutMin"},
        {"type":"address[]","name":"path"},
        {"type":"address","name":"to"},
        {"type":"uint256","name":"deadline"}],
     "stateMutability":"nonpayable","type":"function"},
]


class PancakeV2Venue(RouteVenue):
    """
    Constant-product venue. `via_wbnb=False` trades the direct pair,
    `via_wbnb=True` hops token_in -> WBNB -> token_out.
    """

    def __init__(
        self,
        chain: ChainGateway,
        safety: RouteSafetyService,
        factory: str,
        router: str,
        wbnb: str,
        via_wbnb: bool = False,
        logger: logging.Logger | None = None,
    ):
        super().__init__(chain, safety, logger)
        self.factory = factory
        self.router = router
        self.wbnb = wbnb
        self.via_wbnb = via_wbnb
        self.name = "PancakeSwap V2 (via WBNB)" if via_wbnb else "PancakeSwap V2"

    def applies_to(self, req: SwapRequest) -> bool:
        if req.chain.upper() != "BSC":
            return False
        if self.via_wbnb:
            return not same_address(req.token_in, self.wbnb) and not same_address(req.token_out, self.wbnb)
        return True

    async def _pair(self, chain: str, a: str, b: str) -> str:
        pair = await self._chain.call(chain, self.factory, ABI_V2_FACTORY, "getPair", checksum(a), checksum(b))
        if is_zero_address(pair):
            raise RouteRejectedError(self.name, "pair does not exist")
        return pair

    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        min_usd = self._safety.v2_min_reserve_usd

        if self.via_wbnb:
            pair_a = await self._pair(req.chain, req.token_in, self.wbnb)
            pair_b = await self._pair(req.chain, self.wbnb, req.token_out)
            r_in, r_wbnb_a = await self._pair_reserves(req.chain, pair_a, req.token_in)
            r_wbnb_b, r_out = await self._pair_reserves(req.chain, pair_b, self.wbnb)

            self._safety.check_reserve_usd(self.name, r_in, ctx.decimals_in, min_usd, ctx.input_price_usd)
            if r_wbnb_a <= 0:
                raise RouteRejectedError(self.name, "empty WBNB reserve")
            # WBNB priced off the first hop
            wbnb_usd = as_fraction(ctx.input_price_usd) * Fraction(
                r_in * 10 ** WBNB_DECIMALS, r_wbnb_a * 10 ** ctx.decimals_in
            )
            self._safety.check_reserve_usd(self.name, r_wbnb_b, WBNB_DECIMALS, min_usd, wbnb_usd)

            path: List[str] = [req.token_in, self.wbnb, req.token_out]
            mid = chain_mids(v2_mid(r_in, r_wbnb_a), v2_mid(r_wbnb_b, r_out))
            pool = pair_a
        else:
            pair = await self._pair(req.chain, req.token_in, req.token_out)
            r_in, r_out = await self._pair_reserves(req.chain, pair, req.token_in)
            self._safety.check_reserve_usd(self.name, r_in, ctx.decimals_in, min_usd, ctx.input_price_usd)
            path = [req.token_in, req.token_out]
            mid = v2_mid(r_in, r_out)
            pool = pair

        if r_out <= 0:
            raise RouteRejectedError(self.name, "empty output reserve")

        amounts = await self._chain.call(
            req.chain, self.router, ABI_V2_ROUTER, "getAmountsOut",
            int(req.amount_in), [checksum(p) for p in path],
        )
        amount_out = int(amounts[-1])
        self._check_quote(self.name, req, ctx, amount_out)
        impact = self._safety.check_price_impact(self.name, req.amount_in, amount_out, mid)

        amount_out_min = apply_slippage(amount_out, req.slippage_bps)
        calldata = encode_call(ABI_V2_ROUTER, "swapExactTokensForTokens", [
            int(req.amount_in),
            amount_out_min,
            [checksum(p) for p in path],
            checksum(req.trader),
            deadline_ts(),
        ])
        self._logger.info(
            "%s quote %s out=%s impact=%sbps",
            self.name, req.token_symbol or req.token_out, amount_out, impact,
        )
        return RouteQuote(
            dex=self.name,
            router=self.router,
            spender=self.router,
            calldata=calldata,
            gas=V2_SWAP_GAS,
            amount_in=req.amount_in,
            amount_out=amount_out,
            amount_out_min=amount_out_min,
            path=path,
            pool=pool,
            extra={"price_impact_bps": impact},
        )
