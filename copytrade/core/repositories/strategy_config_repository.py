from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional


class StrategyConfigRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, strategy_id: str) -> Optional[Dict]:
        raise NotImplementedError

    @abstractmethod
    async def list_enabled(self, follow_strategies: Optional[List[str]], now: datetime) -> List[Dict]:
        """
        Enabled strategies that are not paused at `now`.
        `follow_strategies=None` means any variant.
        """
        raise NotImplementedError

    @abstractmethod
    async def set_pause(self, strategy_id: str, paused_until: datetime, reason: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear_pause(self, strategy_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def release_expired_pauses(self, now: datetime) -> int:
        """
        Clear paused_until / pause_reason where paused_until <= now.
        """
        raise NotImplementedError
