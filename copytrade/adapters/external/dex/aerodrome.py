# copytrade/adapters/external/dex/aerodrome.py

import logging
from fractions import Fraction
from itertools import product
from typing import List, Optional, Tuple

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

AERO_SWAP_GAS = 300_000
WETH_DECIMALS = 18

Route = Tuple[str, str, bool, str]

_ROUTE_COMPONENTS = [
    {"name":"from","type":"address"},
    {"name":"to","type":"address"},
    {"name":"stable","type":"bool"},
    {"name":"factory","type":"address"},
]

ABI_AERO_POOL_FACTORY = [
    {"name":"getPool","outputs":[{"type":"address"}],"inputs":[
        {"type":"address","name":"tokenA"},
        {"type":"address","name":"tokenB"},
        {"type":"bool","name":"stable"}],
     "stateMutability":"view","type":"function"},
]

ABI_AERO_ROUTER_AMM = [
    {"name":"getAmountsOut","outputs":[{"type":"uint256[]","name":"amounts"}],"inputs":[
        {"type":"uint256","name":"amountIn"},
        {"components":_ROUTE_COMPONENTS,"name":"routes","type":"tuple[]"}],
     "stateMutability":"view","type":"function"},
    {"name":"swapExactTokensForTokens","outputs":[{"type":"uint256[]","name":"amounts"}],"inputs":[
        {"type":"uint256","name":"amountIn"},
        {"type":"uint256","name":"amountOutMin"},
        {"components":_ROUTE_COMPONENTS,"name":"routes","type":"tuple[]"},
        {"type":"address","name":"to"},
        {"type":"uint256","name":"deadline"}],
     "stateMutability":"nonpayable","type":"function"},
]


class AerodromeVenue(RouteVenue):
    """
    Aerodrome AMM (volatile and stable pools) on Base. Direct pool, or a hop
    through WETH when `via_weth=True`.
    """

    def __init__(
        self,
        chain: ChainGateway,
        safety: RouteSafetyService,
        factory: str,
        router: str,
        weth: str,
        via_weth: bool = False,
        max_price_impact_bps: int = 500,
        logger: logging.Logger | None = None,
    ):
        super().__init__(chain, safety, logger)
        self.factory = factory
        self.router = router
        self.weth = weth
        self.via_weth = via_weth
        self.max_price_impact_bps = max_price_impact_bps
        self.name = "Aerodrome (via WETH)" if via_weth else "Aerodrome"

    def applies_to(self, req: SwapRequest) -> bool:
        if req.chain.upper() != "BASE":
            return False
        if self.via_weth:
            return not same_address(req.token_in, self.weth) and not same_address(req.token_out, self.weth)
        return True

    def build_amm_routes(self, hops: List[Tuple[str, str]], stables: Tuple[bool, ...]) -> List[Route]:
        return [
            (checksum(a), checksum(b), bool(s), checksum(self.factory))
            for (a, b), s in zip(hops, stables)
        ]

    async def _best_routes(self, req: SwapRequest, hops: List[Tuple[str, str]]) -> Optional[Tuple[List[Route], int]]:
        best: Optional[Tuple[List[Route], int]] = None
        for stables in product((False, True), repeat=len(hops)):
            routes = self.build_amm_routes(hops, stables)
            try:
                amounts = await self._chain.call(
                    req.chain, self.router, ABI_AERO_ROUTER_AMM, "getAmountsOut", int(req.amount_in), routes,
                )
                out_raw = int(amounts[-1])
            except Exception as exc:
                self._logger.debug("%s getAmountsOut %s failed: %s", self.name, stables, exc)
                continue
            if out_raw > 0 and (best is None or out_raw > best[1]):
                best = (routes, out_raw)
        return best

    async def _pool_for(self, chain: str, route: Route) -> str:
        pool = await self._chain.call(chain, self.factory, ABI_AERO_POOL_FACTORY, "getPool", route[0], route[1], route[2])
        if is_zero_address(pool):
            raise RouteRejectedError(self.name, "pool does not exist")
        return pool

    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        if self.via_weth:
            hops = [(req.token_in, self.weth), (self.weth, req.token_out)]
        else:
            hops = [(req.token_in, req.token_out)]

        best = await self._best_routes(req, hops)
        if best is None:
            raise RouteRejectedError(self.name, "no viable route (getAmountsOut)")
        routes, amount_out = best

        min_usd = self._safety.aerodrome_min_reserve_usd
        pools = [await self._pool_for(req.chain, r) for r in routes]
        r_in, r_mid_out = await self._pair_reserves(req.chain, pools[0], req.token_in)
        self._safety.check_reserve_usd(self.name, r_in, ctx.decimals_in, min_usd, ctx.input_price_usd)
        mids = [v2_mid(r_in, r_mid_out)]

        if self.via_weth:
            r_weth, r_out = await self._pair_reserves(req.chain, pools[1], self.weth)
            if r_mid_out <= 0:
                raise RouteRejectedError(self.name, "empty WETH reserve")
            weth_usd = as_fraction(ctx.input_price_usd) * Fraction(
                r_in * 10 ** WETH_DECIMALS, r_mid_out * 10 ** ctx.decimals_in
            )
            self._safety.check_reserve_usd(self.name, r_weth, WETH_DECIMALS, min_usd, weth_usd)
            mids.append(v2_mid(r_weth, r_out))

        self._check_quote(self.name, req, ctx, amount_out)
        impact = self._safety.check_price_impact(
            self.name, req.amount_in, amount_out, chain_mids(*mids), self.max_price_impact_bps,
        )

        amount_out_min = apply_slippage(amount_out, req.slippage_bps)
        calldata = encode_call(ABI_AERO_ROUTER_AMM, "swapExactTokensForTokens", [
            int(req.amount_in),
            amount_out_min,
            routes,
            checksum(req.trader),
            deadline_ts(),
        ])
        self._logger.info(
            "%s quote %s stable=%s out=%s impact=%sbps",
            self.name, req.token_symbol or req.token_out, [r[2] for r in routes], amount_out, impact,
        )
        return RouteQuote(
            dex=self.name,
            router=self.router,
            spender=self.router,
            calldata=calldata,
            gas=AERO_SWAP_GAS,
            amount_in=req.amount_in,
            amount_out=amount_out,
            amount_out_min=amount_out_min,
            path=[h[0] for h in hops] + [req.token_out],
            pool=pools[0],
            extra={"stable": [r[2] for r in routes], "price_impact_bps": impact},
        )
