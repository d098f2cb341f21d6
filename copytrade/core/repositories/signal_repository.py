from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class SignalRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, signal_id: str) -> Optional[Dict]:
        raise NotImplementedError

    @abstractmethod
    async def list_active(self, limit: int = 500) -> List[Dict]:
        """
        ACTIVE signals, oldest first.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_status(self, signal_id: str, status: str, reject_reason: Optional[str] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def set_reject_reason(self, signal_id: str, reason: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def mark_token_triggered(self, token_symbol: str, chain: str) -> int:
        """
        Flip every ACTIVE signal of the token to TRIGGERED.
        Returns how many rows changed.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_latest_price(self, token_symbol: str, chain: str) -> Optional[float]:
        """
        Most recent `current_price` written on any signal of the token.
        """
        raise NotImplementedError
