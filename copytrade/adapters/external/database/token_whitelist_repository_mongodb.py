# copytrade/adapters/external/database/token_whitelist_repository_mongodb.py

from typing import Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ....core.repositories.token_whitelist_repository import TokenWhitelistRepository
from ....core.services.utils import now_ms_iso, to_json_safe
from .mongo_codec import from_mongo, to_mongo


class TokenWhitelistRepositoryMongoDB(TokenWhitelistRepository):
    """
    Per (token_symbol, chain) cache: last price / TVL / grade from the market
    data provider plus the pool the router used last.
    """

    COLLECTION = "token_whitelist"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._col = db[self.COLLECTION]

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("token_symbol", 1), ("chain", 1)],
            unique=True,
            name="ux_token_chain",
        )
        await self._col.create_index([("contract_address", 1)], name="ix_contract")

    async def get(self, token_symbol: str, chain: str) -> Optional[Dict]:
        return from_mongo(await self._col.find_one({"token_symbol": token_symbol, "chain": chain}))

    async def upsert(self, token_symbol: str, chain: str, fields: Dict) -> None:
        ms, iso = now_ms_iso()
        await self._col.update_one(
            {"token_symbol": token_symbol, "chain": chain},
            {
                "$set": {**to_mongo(fields), "updated_at": ms, "updated_at_iso": iso},
                "$setOnInsert": {"created_at": ms, "created_at_iso": iso},
            },
            upsert=True,
        )

    async def save_pool_info(self, token_symbol: str, chain: str, pool_info: Dict) -> None:
        fields = {f"pool_info.{k}": v for k, v in to_json_safe(pool_info).items()}
        await self.upsert(token_symbol, chain, fields)
