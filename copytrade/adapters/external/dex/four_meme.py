# copytrade/adapters/external/dex/four_meme.py

import logging
from fractions import Fraction

from ....core.domain.entities.swap_entity import RouteQuote, SwapRequest
from ....core.gateways.chain_gateway import ChainGateway
from ....core.services.exceptions import RouteRejectedError
from ....core.services.route_safety_service import RouteSafetyService, apply_slippage, as_fraction
from .base import QuoteContext, RouteVenue, checksum, encode_call, is_zero_address
from .pancake_v2 import ABI_V2_ROUTER

FOUR_MEME_GAS = 300_000
ONE_BNB = 10 ** 18

ABI_FOUR_MEME_HELPER = [
    {"name":"getTokenInfo","inputs":[{"type":"address","name":"token"}],"outputs":[
        {"type":"uint256","name":"version"},
        {"type":"address","name":"tokenManager"},
        {"type":"address","name":"quote"},
        {"type":"uint256","name":"lastPrice"},
        {"type":"uint256","name":"tradingFeeRate"},
        {"type":"uint256","name":"minTradingFee"},
        {"type":"uint256","name":"launchTime"},
        {"type":"uint256","name":"offers"},
        {"type":"uint256","name":"maxOffers"},
        {"type":"uint256","name":"funds"},
        {"type":"uint256","name":"maxFunds"},
        {"type":"bool","name":"liquidityAdded"}],
     "stateMutability":"view","type":"function"},
    {"name":"tryBuy","inputs":[
        {"type":"address","name":"token"},
        {"type":"uint256","name":"amount"},
        {"type":"uint256","name":"funds"}],"outputs":[
        {"type":"address","name":"tokenManager"},
        {"type":"address","name":"quote"},
        {"type":"uint256","name":"estimatedAmount"},
        {"type":"uint256","name":"estimatedCost"},
        {"type":"uint256","name":"estimatedFee"},
        {"type":"uint256","name":"amountMsgValue"},
        {"type":"uint256","name":"amountApproval"},
        {"type":"uint256","name":"amountFunds"}],
     "stateMutability":"view","type":"function"},
]

ABI_FOUR_MEME_TOKEN_MANAGER = [
    {"name":"buyTokenAMAP","outputs":[],"inputs":[
        {"type":"address","name":"token"},
        {"type":"uint256","name":"funds"},
        {"type":"uint256","name":"minAmount"}],
     "stateMutability":"payable","type":"function"},
]


class FourMemeVenue(RouteVenue):
    """
    four.meme bonding curve for tokens that have not migrated to a DEX pool
    yet. The USD notional is converted to BNB at the on-chain WBNB/BUSD price
    and paid as msg.value, so no ERC-20 approval is involved.
    """

    name = "four.meme"

    def __init__(
        self,
        chain: ChainGateway,
        safety: RouteSafetyService,
        helper: str,
        token_manager: str,
        v2_router: str,
        wbnb: str,
        busd: str,
        logger: logging.Logger | None = None,
    ):
        super().__init__(chain, safety, logger)
        self.helper = helper
        self.token_manager = token_manager
        self.v2_router = v2_router
        self.wbnb = wbnb
        self.busd = busd

    def applies_to(self, req: SwapRequest) -> bool:
        return req.chain.upper() == "BSC" and req.is_four_meme and not req.four_meme_liquidity_added

    async def get_bnb_price(self, chain: str) -> Fraction:
        """
        USD per BNB from PancakeSwap V2 getAmountsOut(1 BNB, [WBNB, BUSD]).
        """
        amounts = await self._chain.call(
            chain, self.v2_router, ABI_V2_ROUTER, "getAmountsOut",
            ONE_BNB, [checksum(self.wbnb), checksum(self.busd)],
        )
        out = int(amounts[-1])
        if out <= 0:
            raise RouteRejectedError(self.name, "BNB price unavailable")
        return Fraction(out, ONE_BNB)

    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        token = checksum(req.token_out)
        info = await self._chain.call(req.chain, self.helper, ABI_FOUR_MEME_HELPER, "getTokenInfo", token)
        if bool(info[11]):
            raise RouteRejectedError(self.name, "token already migrated to DEX")
        manager = info[1] if not is_zero_address(info[1]) else self.token_manager

        if req.amount_in_usd is not None:
            usd = as_fraction(req.amount_in_usd)
        else:
            usd = Fraction(int(req.amount_in), 10 ** ctx.decimals_in) * as_fraction(ctx.input_price_usd)
        bnb_price = await self.get_bnb_price(req.chain)
        funds = int(usd / bnb_price * ONE_BNB)
        if funds <= 0:
            raise RouteRejectedError(self.name, "trade amount converts to zero BNB")

        res = await self._chain.call(req.chain, self.helper, ABI_FOUR_MEME_HELPER, "tryBuy", token, 0, funds)
        amount_out = int(res[2])
        msg_value = int(res[5]) or funds
        if amount_out <= 0:
            raise RouteRejectedError(self.name, "zero output quote")
        self._safety.check_price_reasonability(
            self.name, funds, 18, amount_out, ctx.decimals_out, ctx.reference_price, bnb_price,
        )

        amount_out_min = apply_slippage(amount_out, req.slippage_bps)
        calldata = encode_call(ABI_FOUR_MEME_TOKEN_MANAGER, "buyTokenAMAP", [token, funds, amount_out_min])
        self._logger.info(
            "four.meme quote %s usd=%.2f bnb_price=%.2f funds=%s out=%s",
            req.token_symbol or token, float(usd), float(bnb_price), funds, amount_out,
        )
        return RouteQuote(
            dex=self.name,
            router=manager,
            spender=None,
            calldata=calldata,
            value=msg_value,
            gas=FOUR_MEME_GAS,
            amount_in=funds,
            amount_out=amount_out,
            amount_out_min=amount_out_min,
            path=[self.wbnb, req.token_out],
            extra={"version": int(info[0]), "bnb_price_usd": float(bnb_price), "funds_wei": funds},
        )
