import logging
from fractions import Fraction
from typing import Dict, List, Optional, Sequence

from ..domain.chains import get_chain_profile
from ..domain.entities.swap_entity import ApprovalTx, RouteQuote, SwapRequest, TxPlan
from ..gateways.chain_gateway import ChainGateway
from ..gateways.market_data_gateway import MarketDataGateway
from ..gateways.route_venue_gateway import QuoteContext, RouteVenueGateway
from ..repositories.token_whitelist_repository import TokenWhitelistRepository
from .abi_codec import MAX_UINT256, build_approve_calldata
from .exceptions import NoLiquidityRouteError, RouteRejectedError
from .route_safety_service import as_fraction
from .utils import now_ms_iso


class RouteAggregatorService:
    """
    Builds an unsigned swap transaction from the first venue of the chain
    waterfall that yields a quote passing every safety gate.

    Venue order is the order of `venues`; venues that do not apply to the
    request (wrong chain, four.meme token already migrated, ...) are skipped
    without counting as an attempt.
    """

    def __init__(
        self,
        chain: ChainGateway,
        market_data: MarketDataGateway,
        venues: Sequence[RouteVenueGateway],
        whitelist_repo: Optional[TokenWhitelistRepository] = None,
        approval_gas_limit: int = 90_000,
        logger: logging.Logger | None = None,
    ):
        self._chain = chain
        self._market = market_data
        self._venues = list(venues)
        self._whitelist = whitelist_repo
        self._approval_gas = approval_gas_limit
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def venues_for(self, req: SwapRequest) -> List[RouteVenueGateway]:
        return [v for v in self._venues if v.applies_to(req)]

    async def _quote_context(self, req: SwapRequest) -> QuoteContext:
        profile = get_chain_profile(req.chain)
        stable = next((s for s in profile.stables if s.address.lower() == req.token_in.lower()), None)

        decimals_in = stable.decimals if stable else await self._chain.get_decimals(req.chain, req.token_in)
        decimals_out = await self._chain.get_decimals(req.chain, req.token_out)

        reference_price: Optional[float] = None
        try:
            reference_price = await self._market.get_reference_price(req.token_out, req.chain)
        except Exception as exc:
            self._logger.warning("reference price lookup failed for %s: %s", req.token_out, exc)

        input_price = Fraction(1)
        if stable is None:
            px = None
            try:
                px = await self._market.get_reference_price(req.token_in, req.chain)
            except Exception as exc:
                self._logger.warning("input price lookup failed for %s: %s", req.token_in, exc)
            if px:
                input_price = as_fraction(px)
            else:
                self._logger.warning("no USD price for input %s, reserves valued at 1:1", req.token_in)

        return QuoteContext(
            decimals_in=int(decimals_in),
            decimals_out=int(decimals_out),
            reference_price=reference_price,
            input_price_usd=input_price,
        )

    async def _approval_for(self, req: SwapRequest, quote: RouteQuote) -> Optional[ApprovalTx]:
        if not quote.spender:
            return None
        try:
            allowance = await self._chain.get_allowance(req.chain, req.token_in, req.trader, quote.spender)
        except Exception as exc:
            self._logger.warning("allowance read failed (%s), approving anyway", exc)
            allowance = 0
        if int(allowance) >= int(quote.amount_in):
            return None
        return ApprovalTx(
            to=req.token_in,
            data=build_approve_calldata(quote.spender, MAX_UINT256),
            value=0,
            spender=quote.spender,
            gas=self._approval_gas,
        )

    async def _gas_price(self, req: SwapRequest, quote: RouteQuote) -> Optional[int]:
        hinted = quote.extra.get("gas_price")
        if hinted:
            return int(hinted)
        try:
            return int(await self._chain.get_gas_price(req.chain))
        except Exception as exc:
            self._logger.warning("gas price read failed on %s: %s", req.chain, exc)
            return None

    async def _save_pool_info(self, req: SwapRequest, quote: RouteQuote) -> None:
        if self._whitelist is None or not req.token_symbol:
            return
        _, iso = now_ms_iso()
        info: Dict = {
            "dex_name": quote.dex,
            "pool_address": quote.pool,
            "fee": quote.extra.get("fee"),
            "path": quote.path,
            "last_checked_at": iso,
        }
        try:
            await self._whitelist.save_pool_info(req.token_symbol, req.chain, info)
        except Exception as exc:
            self._logger.warning("save_pool_info failed for %s: %s", req.token_symbol, exc)

    async def build_swap_tx(self, req: SwapRequest) -> TxPlan:
        profile = get_chain_profile(req.chain)
        venues = self.venues_for(req)
        ctx = await self._quote_context(req)

        attempts: List[str] = []
        quote: Optional[RouteQuote] = None
        for venue in venues:
            try:
                quote = await venue.quote(req, ctx)
                break
            except RouteRejectedError as exc:
                attempts.append(str(exc))
            except Exception as exc:
                attempts.append(f"{venue.name}: {exc}")
            self._logger.info("route attempt failed: %s", attempts[-1])

        if quote is None:
            raise NoLiquidityRouteError(profile.name, [v.name for v in venues], attempts)

        approval = await self._approval_for(req, quote)
        gas_price = await self._gas_price(req, quote)
        await self._save_pool_info(req, quote)

        self._logger.info(
            "route %s -> %s on %s via %s amount_in=%s min_out=%s approval=%s",
            req.token_in, req.token_out, profile.name, quote.dex,
            quote.amount_in, quote.amount_out_min, approval is not None,
        )
        return TxPlan(
            chain=profile.name,
            chain_id=profile.chain_id,
            dex=quote.dex,
            router=quote.router,
            calldata=quote.calldata,
            value=quote.value,
            gas=quote.gas,
            gas_price=gas_price,
            amount_in=quote.amount_in,
            amount_out=quote.amount_out,
            amount_out_min=quote.amount_out_min,
            token_out=req.token_out,
            needs_approval=approval is not None,
            approval_tx=approval,
            path=quote.path,
            pool=quote.pool,
        )
