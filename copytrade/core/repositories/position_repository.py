from abc import ABC, abstractmethod
from typing import Dict, Optional


class PositionRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[Dict]:
        raise NotImplementedError

    @abstractmethod
    async def count_holding_for_user(self, user_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_holding_for_token(self, token_symbol: str, chain: str) -> int:
        """
        HOLDING positions of the token across ALL users.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_fields(self, execution_id: str, fields: Dict) -> None:
        raise NotImplementedError
