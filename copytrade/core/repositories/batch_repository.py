from abc import ABC, abstractmethod
from typing import Dict, Optional


class BatchRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def create(self, doc: Dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def update(self, batch_id: str, set_fields: Optional[Dict] = None, inc: Optional[Dict] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, batch_id: str) -> Optional[Dict]:
        raise NotImplementedError
