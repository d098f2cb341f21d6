from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ..enums.execution_enums import BatchStatus, ExecutionStatus


def make_execution_id(user_id: str, signal_id: str) -> str:
    """
    Idempotency key of a (user, signal) attempt.
    """
    return f"exec_{user_id}_{signal_id}"


class ExecutionEntity(BaseModel):
    execution_id: str
    user_id: str
    strategy_id: Optional[str] = None
    signal_id: str
    token_symbol: str
    chain: str
    contract_address: Optional[str] = None
    follow_strategy: Optional[str] = None
    signal_source: Optional[str] = None

    status: ExecutionStatus = ExecutionStatus.PENDING
    dex_name: Optional[str] = None

    entry_amount_usd: Decimal = Decimal("0")
    amount_in: Optional[int] = None          # base units of the stable
    amount_out_min: Optional[int] = None     # base units of the token
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    profit_loss_usd: Optional[Decimal] = None
    exit_type: Optional[str] = None

    approval_tx_hash: Optional[str] = None
    entry_tx_hash: Optional[str] = None
    exit_tx_hash: Optional[str] = None

    batch_id: Optional[str] = None
    batch_position: Optional[int] = None

    error_message: Optional[str] = None

    created_at: Optional[datetime] = None
    exit_executed_at: Optional[datetime] = None


class PositionEntity(BaseModel):
    """
    Live state of a HOLDING execution. Written by the external confirmation
    step and mutated by the exit monitor through ExitPriceCalculatorService.
    """
    execution_id: str
    user_id: str
    strategy_id: Optional[str] = None
    token_symbol: str
    chain: str
    status: str = "HOLDING"

    entry_price: float
    highest_price: Optional[float] = None
    stop_loss_price: float
    take_profit_price: Optional[float] = None
    stop_loss_type: str = "FIXED"
    trailing_stop_activated: bool = False


class BatchEntity(BaseModel):
    batch_id: str
    signal_id: str
    token_symbol: str
    chain: str

    total_users: int
    total_amount_usd: Decimal
    batch_count: int
    users_per_batch: int
    batch_amount_usd: Decimal

    current_batch: int = 0
    completed_batches: int = 0
    failed_batches: int = 0
    executed: int = 0
    skipped: int = 0
    failed: int = 0

    status: BatchStatus = BatchStatus.EXECUTING
    error_message: Optional[str] = None
