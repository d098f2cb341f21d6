from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple


class ExecutionRepository(ABC):

    @abstractmethod
    async def ensure_indexes(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[Dict]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, doc: Dict) -> bool:
        """
        Insert a new execution row. Returns False when a row with the same
        execution_id already exists (unique key), never raises for that case.
        """
        raise NotImplementedError

    @abstractmethod
    async def update_fields(self, execution_id: str, fields: Dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_failed(self, execution_id: str) -> int:
        """
        Delete the row only when it is FAILED. Returns the deleted count.
        """
        raise NotImplementedError

    @abstractmethod
    async def count_active_for_token(self, token_symbol: str, chain: str) -> int:
        """
        Executions of the token whose status is not terminal
        (EXITED / FAILED / CANCELLED / INSUFFICIENT_BALANCE).
        """
        raise NotImplementedError

    @abstractmethod
    async def count_sent_for_token_since(self, token_symbol: str, chain: str, since: datetime) -> int:
        """
        Executions of the token created after `since` that reached SUBMITTED
        or a later state.
        """
        raise NotImplementedError

    @abstractmethod
    async def daily_pnl(self, user_id: str, since: datetime) -> Tuple[Decimal, Decimal]:
        """
        (sum profit_loss_usd, sum entry_amount_usd) of EXITED executions
        with exit_executed_at >= since.
        """
        raise NotImplementedError

    @abstractmethod
    async def open_notional_for_token(self, user_id: str, token_symbol: str) -> Decimal:
        """
        Sum of entry_amount_usd of CONFIRMED / HOLDING executions.
        """
        raise NotImplementedError

    @abstractmethod
    async def recent_exit_types(self, user_id: str, limit: int = 10) -> List[Optional[str]]:
        """
        exit_type of the user's latest EXITED executions, newest first.
        """
        raise NotImplementedError
