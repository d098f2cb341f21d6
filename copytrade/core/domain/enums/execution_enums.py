from enum import Enum


class ExecutionStatus(str, Enum):
    """
    Per (user, signal) execution state machine:

        PENDING -> SUBMITTING -> SUBMITTED -> CONFIRMED -> HOLDING -> EXITED

    FAILED is retryable (the record is deleted on the next attempt).
    INSUFFICIENT_BALANCE is terminal and not an error.
    """
    PENDING = "PENDING"
    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    HOLDING = "HOLDING"
    EXITED = "EXITED"
    FAILED = "FAILED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    CANCELLED = "CANCELLED"


# statuses that no longer reserve the token
TERMINAL_EXECUTION_STATUSES = {
    ExecutionStatus.EXITED.value,
    ExecutionStatus.FAILED.value,
    ExecutionStatus.CANCELLED.value,
    ExecutionStatus.INSUFFICIENT_BALANCE.value,
}

# statuses that mean a buy actually went out (used by the token cooldown)
SENT_EXECUTION_STATUSES = {
    ExecutionStatus.SUBMITTED.value,
    ExecutionStatus.CONFIRMED.value,
    ExecutionStatus.HOLDING.value,
    ExecutionStatus.EXITED.value,
}


class PositionStatus(str, Enum):
    HOLDING = "HOLDING"
    EXITED = "EXITED"


class ExitType(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    TRAILING_STOP = "TRAILING_STOP"
    MANUAL = "MANUAL"


class BatchStatus(str, Enum):
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
