# copytrade/adapters/external/dex/pancake_v3.py

import logging
from typing import Optional, Tuple

from ....core.domain.entities.swap_entity import RouteQuote, SwapRequest
from ....core.gateways.chain_gateway import ChainGateway
from ....core.services.exceptions import RouteRejectedError
from ....core.services.route_safety_service import RouteSafetyService, apply_slippage, v3_mid
from .base import QuoteContext, RouteVenue, checksum, encode_call, is_zero_address, same_address

FEE_TIERS = (100, 500, 2500, 10000, 70)
V3_SWAP_GAS = 350_000

ABI_V3_FACTORY = [
    {"name":"getPool","outputs":[{"type":"address"}],"inputs":[
        {"type":"address","name":"tokenA"},
        {"type":"address","name":"tokenB"},
        {"type":"uint24","name":"fee"}],
     "stateMutability":"view","type":"function"},
]

ABI_V3_POOL = [
    {"name":"slot0","outputs":[
        {"type":"uint160","name":"sqrtPriceX96"},
        {"type":"int24","name":"tick"},
        {"type":"uint16"},{"type":"uint16"},{"type":"uint16"},{"type":"uint32"},{"type":"bool"}],
     "inputs":[],"stateMutability":"view","type":"function"},
    {"name":"liquidity","outputs":[{"type":"uint128"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"token0","outputs":[{"type":"address"}],"inputs":[],"stateMutability":"view","type":"function"},
]

ABI_V3_QUOTER = [
    {"inputs":[{"components":[
        {"name":"tokenIn","type":"address"},
        {"name":"tokenOut","type":"address"},
        {"name":"amountIn","type":"uint256"},
        {"name":"fee","type":"uint24"},
        {"name":"sqrtPriceLimitX96","type":"uint160"}],
      "name":"params","type":"tuple"}],
     "name":"quoteExactInputSingle",
     "outputs":[
        {"name":"amountOut","type":"uint256"},
        {"name":"sqrtPriceX96After","type":"uint160"},
        {"name":"initializedTicksCrossed","type":"uint32"},
        {"name":"gasEstimate","type":"uint256"}],
     "stateMutability":"nonpayable","type":"function"},
]

ABI_V3_ROUTER = [
    {"inputs":[{"components":[
        {"name":"tokenIn","type":"address"},
        {"name":"tokenOut","type":"address"},
        {"name":"fee","type":"uint24"},
        {"name":"recipient","type":"address"},
        {"name":"amountIn","type":"uint256"},
        {"name":"amountOutMinimum","type":"uint256"},
        {"name":"sqrtPriceLimitX96","type":"uint160"}],
      "name":"params","type":"tuple"}],
     "name":"exactInputSingle","outputs":[{"name":"amountOut","type":"uint256"}],
     "stateMutability":"payable","type":"function"},
]


class PancakeV3Venue(RouteVenue):
    """
    Concentrated-liquidity venue. Scans every fee tier and quotes against the
    pool holding the most in-range liquidity.
    """

    name = "PancakeSwap V3"

    def __init__(
        self,
        chain: ChainGateway,
        safety: RouteSafetyService,
        factory: str,
        quoter: str,
        router: str,
        logger: logging.Logger | None = None,
    ):
        super().__init__(chain, safety, logger)
        self.factory = factory
        self.quoter = quoter
        self.router = router

    def applies_to(self, req: SwapRequest) -> bool:
        return req.chain.upper() == "BSC"

    async def _best_pool(self, req: SwapRequest) -> Optional[Tuple[str, int, int]]:
        best: Optional[Tuple[str, int, int]] = None
        for fee in FEE_TIERS:
            try:
                pool = await self._chain.call(
                    req.chain, self.factory, ABI_V3_FACTORY, "getPool",
                    checksum(req.token_in), checksum(req.token_out), fee,
                )
                if is_zero_address(pool):
                    continue
                liq = int(await self._chain.call(req.chain, pool, ABI_V3_POOL, "liquidity"))
            except Exception as exc:
                self._logger.debug("fee tier %s lookup failed: %s", fee, exc)
                continue
            if best is None or liq > best[2]:
                best = (pool, fee, liq)
        return best

    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        best = await self._best_pool(req)
        if best is None:
            raise RouteRejectedError(self.name, "no pool on any fee tier")
        pool, fee, liquidity = best
        self._safety.check_v3_liquidity(self.name, liquidity)

        slot0 = await self._chain.call(req.chain, pool, ABI_V3_POOL, "slot0")
        token0 = await self._chain.call(req.chain, pool, ABI_V3_POOL, "token0")
        mid = v3_mid(int(slot0[0]), same_address(token0, req.token_in))

        res = await self._chain.call(
            req.chain, self.quoter, ABI_V3_QUOTER, "quoteExactInputSingle",
            (checksum(req.token_in), checksum(req.token_out), int(req.amount_in), fee, 0),
        )
        amount_out = int(res[0])
        self._check_quote(self.name, req, ctx, amount_out)
        impact = self._safety.check_price_impact(self.name, req.amount_in, amount_out, mid)

        amount_out_min = apply_slippage(amount_out, req.slippage_bps)
        calldata = encode_call(ABI_V3_ROUTER, "exactInputSingle", [(
            checksum(req.token_in),
            checksum(req.token_out),
            fee,
            checksum(req.trader),
            int(req.amount_in),
            amount_out_min,
            0,
        )])

        self._logger.info(
            "V3 quote %s fee=%s liq=%s out=%s impact=%sbps",
            req.token_symbol or req.token_out, fee, liquidity, amount_out, impact,
        )
        return RouteQuote(
            dex=self.name,
            router=self.router,
            spender=self.router,
            calldata=calldata,
            gas=V3_SWAP_GAS,
            amount_in=req.amount_in,
            amount_out=amount_out,
            amount_out_min=amount_out_min,
            path=[req.token_in, req.token_out],
            pool=pool,
            extra={"fee": fee, "liquidity": str(liquidity), "price_impact_bps": impact},
        )
