import math
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence, TypeVar

T = TypeVar("T")


@dataclass
class BatchPlan:
    batch_count: int
    batch_amount: Decimal         # average notional per batch
    users_per_batch: int
    max_batch_amount: Decimal


class BatchPlannerService:
    """
    Splits a group of accounts into liquidity-safe batches.

    max_batch_amount = tvl * max_liquidity_pct / 100
    total < min_batch_amount        -> one batch with everybody
    otherwise batch_count = ceil(total / max_batch_amount) and accounts are
    spread evenly, capped at max_users_per_batch.
    """

    def __init__(
        self,
        max_liquidity_pct: Decimal = Decimal("2.0"),
        min_batch_amount: Decimal = Decimal("1000"),
        max_users_per_batch: int = 50,
    ):
        self.max_liquidity_pct = Decimal(max_liquidity_pct)
        self.min_batch_amount = Decimal(min_batch_amount)
        self.max_users_per_batch = int(max_users_per_batch)

    def plan(self, total_amount: Decimal, tvl: Decimal, user_count: int) -> BatchPlan:
        if user_count <= 0:
            raise ValueError("user_count must be > 0")
        total_amount = Decimal(total_amount)
        tvl = Decimal(tvl)
        max_batch_amount = tvl * self.max_liquidity_pct / Decimal(100)

        if total_amount < self.min_batch_amount or max_batch_amount <= 0:
            return BatchPlan(
                batch_count=1,
                batch_amount=total_amount,
                users_per_batch=user_count,
                max_batch_amount=max_batch_amount,
            )

        batch_count = max(1, math.ceil(total_amount / max_batch_amount))
        users_per_batch = min(math.ceil(user_count / batch_count), self.max_users_per_batch)
        return BatchPlan(
            batch_count=batch_count,
            batch_amount=total_amount / batch_count,
            users_per_batch=max(1, users_per_batch),
            max_batch_amount=max_batch_amount,
        )

    @staticmethod
    def split(items: Sequence[T], per_batch: int) -> List[List[T]]:
        per_batch = max(1, int(per_batch))
        return [list(items[i:i + per_batch]) for i in range(0, len(items), per_batch)]
