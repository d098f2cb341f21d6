# copytrade/adapters/external/dex/paraswap_client.py

import logging
from typing import Any, Dict, Optional

import httpx

from ....core.domain.entities.swap_entity import RouteQuote, SwapRequest
from ....core.gateways.chain_gateway import ChainGateway
from ....core.services.exceptions import RouteRejectedError
from ....core.services.route_safety_service import BPS, RouteSafetyService, apply_slippage, as_fraction
from .base import QuoteContext, RouteVenue

PARASWAP_PARTNER = "anon"
PARASWAP_DEFAULT_GAS = 500_000


class ParaSwapClient:
    """
    Thin async HTTP wrapper around the ParaSwap v5 REST API.

      GET  {base_url}/prices
      POST {base_url}/transactions/{network}

    Only raw HTTP here; routing decisions live in ParaSwapVenue.
    """

    def __init__(self, base_url: str, timeout_sec: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self._transport = transport
        self._logger = logging.getLogger(self.__class__.__name__)

    async def get_price_route(
        self,
        network: int,
        src_token: str,
        dest_token: str,
        amount: int,
        src_decimals: int,
        dest_decimals: int,
    ) -> Optional[Dict[str, Any]]:
        url = f"{self._base_url}/prices"
        params = {
            "srcToken": src_token,
            "destToken": dest_token,
            "amount": str(int(amount)),
            "srcDecimals": src_decimals,
            "destDecimals": dest_decimals,
            "side": "SELL",
            "network": network,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.get(url, params=params)
                if r.status_code == 200:
                    return (r.json() or {}).get("priceRoute")
                self._logger.warning("prices non-200 %s: %s %s", url, r.status_code, r.text)
        except Exception as exc:
            self._logger.warning("get_price_route error for %s: %s", url, exc)
        return None

    async def build_tx(
        self,
        network: int,
        price_route: Dict[str, Any],
        src_token: str,
        dest_token: str,
        src_amount: int,
        dest_amount_min: int,
        user_address: str,
        src_decimals: int,
        dest_decimals: int,
    ) -> Optional[Dict[str, Any]]:
        """
        POST /transactions/{network}?ignoreChecks=true
        Returns {to, data, value, gas?, gasPrice?}.
        """
        url = f"{self._base_url}/transactions/{network}"
        payload = {
            "srcToken": src_token,
            "destToken": dest_token,
            "srcAmount": str(int(src_amount)),
            "destAmount": str(int(dest_amount_min)),
            "priceRoute": price_route,
            "userAddress": user_address,
            "partner": PARASWAP_PARTNER,
            "srcDecimals": src_decimals,
            "destDecimals": dest_decimals,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(url, params={"ignoreChecks": "true"}, json=payload)
                if r.status_code == 200:
                    return r.json()
                self._logger.warning("transactions non-200 %s: %s %s", url, r.status_code, r.text)
        except Exception as exc:
            self._logger.warning("build_tx error for %s: %s", url, exc)
        return None


class ParaSwapVenue(RouteVenue):
    """
    Off-chain aggregator. Slippage is capped at `max_slippage_bps` whatever
    the strategy allows.
    """

    name = "ParaSwap"

    def __init__(
        self,
        chain: ChainGateway,
        safety: RouteSafetyService,
        client: ParaSwapClient,
        network: int = 56,
        max_slippage_bps: int = 50,
        logger: logging.Logger | None = None,
    ):
        super().__init__(chain, safety, logger)
        self.client = client
        self.network = network
        self.max_slippage_bps = max_slippage_bps

    def applies_to(self, req: SwapRequest) -> bool:
        return req.chain.upper() == "BSC"

    def _usd_impact_bps(self, price_route: Dict[str, Any]) -> Optional[int]:
        src_raw, dest_raw = price_route.get("srcUSD"), price_route.get("destUSD")
        if src_raw is None or dest_raw is None:
            return None
        src_usd, dest_usd = as_fraction(str(src_raw)), as_fraction(str(dest_raw))
        if src_usd <= 0:
            return None
        if dest_usd >= src_usd:
            return 0
        return int((src_usd - dest_usd) * BPS / src_usd)

    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        price_route = await self.client.get_price_route(
            self.network, req.token_in, req.token_out, req.amount_in, ctx.decimals_in, ctx.decimals_out,
        )
        if not price_route:
            raise RouteRejectedError(self.name, "no price route")

        amount_out = int(price_route.get("destAmount") or 0)
        self._check_quote(self.name, req, ctx, amount_out)

        impact = self._usd_impact_bps(price_route)
        if impact is not None and impact > self._safety.max_price_impact_bps:
            raise RouteRejectedError(
                self.name,
                f"price impact {impact / 100:.2f}% > {self._safety.max_price_impact_bps / 100:.2f}%",
            )

        slippage = min(req.slippage_bps, self.max_slippage_bps)
        amount_out_min = apply_slippage(amount_out, slippage)
        tx = await self.client.build_tx(
            self.network,
            price_route,
            req.token_in,
            req.token_out,
            req.amount_in,
            amount_out_min,
            req.trader,
            ctx.decimals_in,
            ctx.decimals_out,
        )
        if not tx or not tx.get("to") or not tx.get("data"):
            raise RouteRejectedError(self.name, "transaction build failed")

        spender = price_route.get("tokenTransferProxy") or tx["to"]
        self._logger.info(
            "ParaSwap quote %s out=%s slippage=%sbps spender=%s",
            req.token_symbol or req.token_out, amount_out, slippage, spender,
        )
        return RouteQuote(
            dex=self.name,
            router=tx["to"],
            spender=spender,
            calldata=tx["data"],
            value=int(tx.get("value") or 0),
            gas=int(tx.get("gas") or PARASWAP_DEFAULT_GAS),
            amount_in=req.amount_in,
            amount_out=amount_out,
            amount_out_min=amount_out_min,
            path=[req.token_in, req.token_out],
            extra={
                "slippage_bps": slippage,
                "gas_price": tx.get("gasPrice"),
                "best_route": price_route.get("bestRoute"),
            },
        )
