# copytrade/adapters/external/database/batch_repository_mongodb.py

from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.repositories.batch_repository import BatchRepository
from ....core.services.utils import now_ms, now_ms_iso
from .mongo_codec import from_mongo, to_mongo


class BatchRepositoryMongoDB(BatchRepository):

    COLLECTION = "batches"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("batch_id", 1)], unique=True, name="ux_batch_id")
        await self._col.create_index([("signal_id", 1), ("created_at", -1)], name="ix_signal_created_at")

    async def create(self, doc: Dict) -> None:
        ms, iso = now_ms_iso()
        await self._col.update_one(
            {"batch_id": doc["batch_id"]},
            {
                "$set": {**to_mongo(doc), "updated_at": ms},
                "$setOnInsert": {"created_at": ms, "created_at_iso": iso},
            },
            upsert=True,
        )

    async def update(self, batch_id: str, set_fields: Optional[Dict] = None, inc: Optional[Dict] = None) -> None:
        update: Dict = {"$set": {**to_mongo(set_fields or {}), "updated_at": now_ms()}}
        if inc:
            update["$inc"] = inc
        await self._col.update_one({"batch_id": batch_id}, update)

    async def get(self, batch_id: str) -> Optional[Dict]:
        return from_mongo(await self._col.find_one({"batch_id": batch_id}))
