# copytrade/adapters/external/database/signal_repository_mongodb.py

from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.domain.enums.signal_enums import SignalStatus
from ....core.repositories.signal_repository import SignalRepository
from ....core.services.utils import now_ms
from .mongo_codec import from_mongo


class SignalRepositoryMongoDB(SignalRepository):
    """
    Signals written by the upstream producers. This service only touches
    status / reject_reason / current_price.
    """

    COLLECTION = "signals"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("signal_id", 1)], unique=True, name="ux_signal_id")
        await self._col.create_index(
            [("status", 1), ("created_at", 1)],
            name="ix_status_created_at",
        )
        await self._col.create_index(
            [("token_symbol", 1), ("chain", 1), ("status", 1)],
            name="ix_token_chain_status",
        )

    async def get(self, signal_id: str) -> Optional[Dict]:
        return from_mongo(await self._col.find_one({"signal_id": signal_id}))

    async def list_active(self, limit: int = 500) -> List[Dict]:
        cursor = self._col.find(
            {"status": SignalStatus.ACTIVE.value},
            sort=[("created_at", 1)],
            limit=limit,
        )
        docs = await cursor.to_list(length=limit)
        return [from_mongo(d) for d in docs]

    async def update_status(self, signal_id: str, status: str, reject_reason: Optional[str] = None) -> None:
        fields = {"status": status, "updated_at": now_ms()}
        if reject_reason is not None:
            fields["reject_reason"] = reject_reason
        await self._col.update_one({"signal_id": signal_id}, {"$set": fields})

    async def set_reject_reason(self, signal_id: str, reason: str) -> None:
        await self._col.update_one(
            {"signal_id": signal_id},
            {"$set": {"reject_reason": reason, "updated_at": now_ms()}},
        )

    async def mark_token_triggered(self, token_symbol: str, chain: str) -> int:
        res = await self._col.update_many(
            {"token_symbol": token_symbol, "chain": chain, "status": SignalStatus.ACTIVE.value},
            {"$set": {"status": SignalStatus.TRIGGERED.value, "updated_at": now_ms()}},
        )
        return int(res.modified_count)

    async def get_latest_price(self, token_symbol: str, chain: str) -> Optional[float]:
        doc = await self._col.find_one(
            {"token_symbol": token_symbol, "chain": chain, "current_price": {"$ne": None}},
            sort=[("updated_at", -1), ("created_at", -1)],
            projection={"current_price": 1},
        )
        if not doc or doc.get("current_price") is None:
            return None
        return float(doc["current_price"])
