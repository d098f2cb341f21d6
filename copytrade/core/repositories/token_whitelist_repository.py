from abc import ABC, abstractmethod
from typing import Dict, Optional


class TokenWhitelistRepository(ABC):
    """
    Per (token, chain) cache of market data and the last chosen pool.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, token_symbol: str, chain: str) -> Optional[Dict]:
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, token_symbol: str, chain: str, fields: Dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def save_pool_info(self, token_symbol: str, chain: str, pool_info: Dict) -> None:
        raise NotImplementedError
