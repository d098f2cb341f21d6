from abc import ABC, abstractmethod
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional

from ..domain.entities.swap_entity import RouteQuote, SwapRequest


@dataclass
class QuoteContext:
    """
    Facts the aggregator resolves once per request and shares with every
    venue of the waterfall.
    """
    decimals_in: int
    decimals_out: int
    reference_price: Optional[float] = None   # USD per token_out
    input_price_usd: Fraction = Fraction(1)   # USD per token_in


class RouteVenueGateway(ABC):
    """
    One swap venue. `quote` either returns a RouteQuote that already passed
    the safety gates, or raises RouteRejectedError.
    """

    name: str = "venue"

    def applies_to(self, req: SwapRequest) -> bool:
        return True

    @abstractmethod
    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        raise NotImplementedError
