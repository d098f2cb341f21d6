# copytrade/adapters/external/database/position_repository_mongodb.py

from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.domain.enums.execution_enums import PositionStatus
from ....core.repositories.position_repository import PositionRepository
from ....core.services.utils import now_ms
from .mongo_codec import from_mongo, to_mongo


class PositionRepositoryMongoDB(PositionRepository):

    COLLECTION = "positions"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("execution_id", 1)], unique=True, name="ux_execution_id")
        await self._col.create_index([("user_id", 1), ("status", 1)], name="ix_user_status")
        await self._col.create_index(
            [("token_symbol", 1), ("chain", 1), ("status", 1)],
            name="ix_token_chain_status",
        )

    async def get(self, execution_id: str) -> Optional[Dict]:
        return from_mongo(await self._col.find_one({"execution_id": execution_id}))

    async def count_holding_for_user(self, user_id: str) -> int:
        return await self._col.count_documents({"user_id": user_id, "status": PositionStatus.HOLDING.value})

    async def count_holding_for_token(self, token_symbol: str, chain: str) -> int:
        return await self._col.count_documents({
            "token_symbol": token_symbol,
            "chain": chain,
            "status": PositionStatus.HOLDING.value,
        })

    async def update_fields(self, execution_id: str, fields: Dict) -> None:
        await self._col.update_one(
            {"execution_id": execution_id},
            {"$set": {**to_mongo(fields), "updated_at": now_ms()}},
        )
