from abc import ABC, abstractmethod
from typing import Dict, Optional


class MarketDataGateway(ABC):

    @abstractmethod
    async def get_price(self, token_symbol: str, chain: str, contract_address: Optional[str] = None) -> Optional[float]:
        raise NotImplementedError

    @abstractmethod
    async def get_liquidity(self, token_symbol: str, chain: str, contract_address: Optional[str] = None) -> Optional[Dict]:
        """
        Returns None when unknown, otherwise at least:
            {"tvl": float, "is_eligible": bool}
        """
        raise NotImplementedError

    @abstractmethod
    async def get_reference_price(self, token_address: str, chain: str) -> Optional[float]:
        """
        USD price of the token from an off-chain source, used to sanity
        check on-chain quotes.
        """
        raise NotImplementedError
