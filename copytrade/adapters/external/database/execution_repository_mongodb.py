# copytrade/adapters/external/database/execution_repository_mongodb.py

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from ....core.domain.enums.execution_enums import (
    SENT_EXECUTION_STATUSES,
    TERMINAL_EXECUTION_STATUSES,
    ExecutionStatus,
)
from ....core.repositories.execution_repository import ExecutionRepository
from ....core.services.utils import now_ms, now_ms_iso
from .mongo_codec import from_mongo, to_mongo


def _as_decimal(v) -> Decimal:
    if v is None:
        return Decimal(0)
    if hasattr(v, "to_decimal"):
        return v.to_decimal()
    return Decimal(str(v))


class ExecutionRepositoryMongoDB(ExecutionRepository):
    """
    One row per (user, signal) attempt, keyed by execution_id (unique).
    """

    COLLECTION = "executions"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("execution_id", 1)], unique=True, name="ux_execution_id")
        await self._col.create_index(
            [("token_symbol", 1), ("chain", 1), ("status", 1)],
            name="ix_token_chain_status",
        )
        await self._col.create_index(
            [("user_id", 1), ("status", 1), ("exit_executed_at", -1)],
            name="ix_user_status_exit",
        )
        await self._col.create_index([("batch_id", 1)], name="ix_batch")

    async def get(self, execution_id: str) -> Optional[Dict]:
        return from_mongo(await self._col.find_one({"execution_id": execution_id}))

    async def insert(self, doc: Dict) -> bool:
        ms, iso = now_ms_iso()
        row = {**to_mongo(doc), "created_at_ms": ms, "created_at_iso": iso, "updated_at": ms}
        try:
            res = await self._col.update_one(
                {"execution_id": doc["execution_id"]},
                {"$setOnInsert": row},
                upsert=True,
            )
        except DuplicateKeyError:
            return False
        return res.upserted_id is not None

    async def update_fields(self, execution_id: str, fields: Dict) -> None:
        await self._col.update_one(
            {"execution_id": execution_id},
            {"$set": {**to_mongo(fields), "updated_at": now_ms()}},
        )

    async def delete_failed(self, execution_id: str) -> int:
        res = await self._col.delete_one(
            {"execution_id": execution_id, "status": ExecutionStatus.FAILED.value}
        )
        return int(res.deleted_count)

    async def count_active_for_token(self, token_symbol: str, chain: str) -> int:
        return await self._col.count_documents({
            "token_symbol": token_symbol,
            "chain": chain,
            "status": {"$nin": sorted(TERMINAL_EXECUTION_STATUSES)},
        })

    async def count_sent_for_token_since(self, token_symbol: str, chain: str, since: datetime) -> int:
        return await self._col.count_documents({
            "token_symbol": token_symbol,
            "chain": chain,
            "status": {"$in": sorted(SENT_EXECUTION_STATUSES)},
            "created_at": {"$gte": since},
        })

    async def daily_pnl(self, user_id: str, since: datetime) -> Tuple[Decimal, Decimal]:
        pipeline = [
            {"$match": {
                "user_id": user_id,
                "status": ExecutionStatus.EXITED.value,
                "exit_executed_at": {"$gte": since},
            }},
            {"$group": {
                "_id": None,
                "pnl": {"$sum": "$profit_loss_usd"},
                "entry": {"$sum": "$entry_amount_usd"},
            }},
        ]
        rows = await self._col.aggregate(pipeline).to_list(length=1)
        if not rows:
            return Decimal(0), Decimal(0)
        return _as_decimal(rows[0].get("pnl")), _as_decimal(rows[0].get("entry"))

    async def open_notional_for_token(self, user_id: str, token_symbol: str) -> Decimal:
        pipeline = [
            {"$match": {
                "user_id": user_id,
                "token_symbol": token_symbol,
                "status": {"$in": [ExecutionStatus.CONFIRMED.value, ExecutionStatus.HOLDING.value]},
            }},
            {"$group": {"_id": None, "total": {"$sum": "$entry_amount_usd"}}},
        ]
        rows = await self._col.aggregate(pipeline).to_list(length=1)
        return _as_decimal(rows[0].get("total")) if rows else Decimal(0)

    async def recent_exit_types(self, user_id: str, limit: int = 10) -> List[Optional[str]]:
        cursor = self._col.find(
            {"user_id": user_id, "status": ExecutionStatus.EXITED.value},
            sort=[("exit_executed_at", -1)],
            limit=limit,
            projection={"exit_type": 1},
        )
        docs = await cursor.to_list(length=limit)
        return [d.get("exit_type") for d in docs]
