# copytrade/adapters/external/market/dexscreener_client.py

import logging
from typing import Any, Dict, List, Optional

import httpx

from ....core.domain.chains import get_chain_profile
from ....core.gateways.market_data_gateway import MarketDataGateway
from ....core.repositories.token_whitelist_repository import TokenWhitelistRepository
from ....core.services.utils import now_ms

DEXSCREENER_CHAIN_IDS = {"BSC": "bsc", "BASE": "base"}

# (grade, min tvl, min 24h volume), best first
LIQUIDITY_GRADES = [
    ("EXCELLENT", 500_000, 1_000_000),
    ("GOOD", 200_000, 100_000),
    ("USABLE", 50_000, 20_000),
]


def grade_liquidity(tvl: float, volume_24h: float) -> str:
    for grade, min_tvl, min_vol in LIQUIDITY_GRADES:
        if tvl >= min_tvl and volume_24h >= min_vol:
            return grade
    return "INSUFFICIENT"


class DexScreenerClient(MarketDataGateway):
    """
    Market data from the public DexScreener API.

      GET {base_url}/tokens/{address}
      GET {base_url}/search?q={symbol}

    The deepest pair (highest USD liquidity) on the requested chain wins.
    Results are cached per (token, chain) in the token whitelist collection.
    """

    def __init__(
        self,
        base_url: str,
        whitelist_repo: Optional[TokenWhitelistRepository] = None,
        timeout_sec: float = 10.0,
        cache_ttl_sec: int = 3600,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self._whitelist = whitelist_repo
        self._ttl_ms = int(cache_ttl_sec * 1000)
        self._logger = logging.getLogger(self.__class__.__name__)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                r = await client.get(url, params=params)
                if r.status_code == 200:
                    return r.json()
                self._logger.warning("dexscreener non-200 %s: %s %s", url, r.status_code, r.text)
        except Exception as exc:
            self._logger.warning("dexscreener error for %s: %s", url, exc)
        return None

    async def _best_pair(self, token_symbol: str, chain: str, contract_address: Optional[str]) -> Optional[Dict]:
        chain_id = DEXSCREENER_CHAIN_IDS.get(get_chain_profile(chain).name.upper())
        if contract_address:
            data = await self._get(f"/tokens/{contract_address}")
        else:
            data = await self._get("/search", params={"q": token_symbol})
        pairs: List[Dict] = (data or {}).get("pairs") or []

        candidates = [p for p in pairs if p.get("chainId") == chain_id]
        if not contract_address:
            candidates = [
                p for p in candidates
                if ((p.get("baseToken") or {}).get("symbol") or "").upper() == token_symbol.upper()
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: float((p.get("liquidity") or {}).get("usd") or 0))

    async def _snapshot(self, token_symbol: str, chain: str, contract_address: Optional[str]) -> Optional[Dict]:
        if self._whitelist is not None:
            cached = await self._whitelist.get(token_symbol, chain)
            if cached and cached.get("tvl") is not None and now_ms() - int(cached.get("market_updated_at") or 0) < self._ttl_ms:
                return cached

        pair = await self._best_pair(token_symbol, chain, contract_address)
        if pair is None:
            return None

        tvl = float((pair.get("liquidity") or {}).get("usd") or 0)
        volume = float((pair.get("volume") or {}).get("h24") or 0)
        grade = grade_liquidity(tvl, volume)
        snap = {
            "contract_address": contract_address or (pair.get("baseToken") or {}).get("address"),
            "price": float(pair.get("priceUsd") or 0) or None,
            "tvl": tvl,
            "volume_24h": volume,
            "grade": grade,
            "is_eligible": grade != "INSUFFICIENT",
            "pair_address": pair.get("pairAddress"),
            "dex_id": pair.get("dexId"),
            "market_updated_at": now_ms(),
        }
        if self._whitelist is not None:
            try:
                await self._whitelist.upsert(token_symbol, chain, snap)
            except Exception as exc:
                self._logger.warning("whitelist cache write failed for %s: %s", token_symbol, exc)
        return snap

    async def get_price(self, token_symbol: str, chain: str, contract_address: Optional[str] = None) -> Optional[float]:
        snap = await self._snapshot(token_symbol, chain, contract_address)
        return snap.get("price") if snap else None

    async def get_liquidity(self, token_symbol: str, chain: str, contract_address: Optional[str] = None) -> Optional[Dict]:
        snap = await self._snapshot(token_symbol, chain, contract_address)
        if not snap:
            return None
        return {
            "tvl": snap.get("tvl"),
            "volume_24h": snap.get("volume_24h"),
            "grade": snap.get("grade"),
            "is_eligible": bool(snap.get("is_eligible")),
        }

    async def get_reference_price(self, token_address: str, chain: str) -> Optional[float]:
        pair = await self._best_pair("", chain, token_address)
        if not pair:
            return None
        base = (pair.get("baseToken") or {}).get("address") or ""
        price = float(pair.get("priceUsd") or 0)
        if price <= 0:
            return None
        if base.lower() != token_address.lower():
            # token is the quote side of the pair: priceUsd is for the base token
            native = float(pair.get("priceNative") or 0)
            return price / native if native > 0 else None
        return price
