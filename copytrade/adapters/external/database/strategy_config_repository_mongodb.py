# copytrade/adapters/external/database/strategy_config_repository_mongodb.py

from datetime import datetime
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.repositories.strategy_config_repository import StrategyConfigRepository
from ....core.services.utils import now_ms
from .mongo_codec import from_mongo


class StrategyConfigRepositoryMongoDB(StrategyConfigRepository):
    """
    One document per strategy. whitelist / blacklist are returned raw; the
    entity normalizes them.
    """

    COLLECTION = "strategy_configs"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("strategy_id", 1)], unique=True, name="ux_strategy_id")
        await self._col.create_index(
            [("enabled", 1), ("follow_strategy", 1)],
            name="ix_enabled_follow",
        )
        await self._col.create_index([("user_id", 1)], name="ix_user")

    async def get(self, strategy_id: str) -> Optional[Dict]:
        return from_mongo(await self._col.find_one({"strategy_id": strategy_id}))

    async def list_enabled(self, follow_strategies: Optional[List[str]], now: datetime) -> List[Dict]:
        query: Dict = {
            "enabled": True,
            "$or": [{"paused_until": None}, {"paused_until": {"$lte": now}}],
        }
        if follow_strategies is not None:
            query["follow_strategy"] = {"$in": list(follow_strategies)}
        docs = await self._col.find(query).to_list(length=None)
        return [from_mongo(d) for d in docs]

    async def set_pause(self, strategy_id: str, paused_until: datetime, reason: str) -> None:
        await self._col.update_one(
            {"strategy_id": strategy_id},
            {"$set": {"paused_until": paused_until, "pause_reason": reason, "updated_at": now_ms()}},
        )

    async def clear_pause(self, strategy_id: str) -> bool:
        res = await self._col.update_one(
            {"strategy_id": strategy_id},
            {"$set": {"paused_until": None, "pause_reason": None, "updated_at": now_ms()}},
        )
        return res.matched_count > 0

    async def release_expired_pauses(self, now: datetime) -> int:
        res = await self._col.update_many(
            {"paused_until": {"$ne": None, "$lte": now}},
            {"$set": {"paused_until": None, "pause_reason": None, "updated_at": now_ms()}},
        )
        return int(res.modified_count)
