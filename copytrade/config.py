import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_json(name: str) -> Dict[str, str]:
    raw = os.getenv(name, "")
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class Settings:
    # storage
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "copytrade_db"

    # chain access
    RPC_URL_BSC: str = "https://bsc-dataseed.bnbchain.org"
    RPC_URL_BASE: str = "https://mainnet.base.org"
    RPC_TIMEOUT_SEC: float = 10.0

    # BSC venues
    PANCAKE_V3_FACTORY: str = "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865"
    PANCAKE_V3_QUOTER: str = "0xB048Bbc1Ee6b733FFfCFb9e9CeF7375518e25997"
    PANCAKE_V3_ROUTER: str = "0x13f4EA83D0bd40E75C8222255bc855a974568Dd4"
    PANCAKE_V2_FACTORY: str = "0xcA143Ce32Fe78f1f7019d7d551a6402fC5350c73"
    PANCAKE_V2_ROUTER: str = "0x10ED43C718714eb63d5aA57B78B54704E256024E"
    BSC_WBNB: str = "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"
    BSC_BUSD: str = "0xe9e7CEA3DedcA5984780Bafc599bD69ADd087D56"
    FOUR_MEME_HELPER: str = "0xF251F83e40a78868FcfA3FA4599Dad6494E46034"
    FOUR_MEME_TOKEN_MANAGER_V2: str = "0x5c952063c7fc8610FFDB798152D69F0B9550762b"

    # Base venues
    AERO_POOL_FACTORY_AMM: str = "0x420DD381b31aEf6683db6B902084cB0FFECe40Da"
    AERO_ROUTER_AMM: str = "0xcF77a3Ba9A5CA399B7c97c74d54e5b1Beb874E43"
    BASE_WETH: str = "0x4200000000000000000000000000000000000006"

    # external HTTP
    PARASWAP_BASE_URL: str = "https://apiv5.paraswap.io"
    PARASWAP_MAX_SLIPPAGE_BPS: int = 50
    DEXSCREENER_BASE_URL: str = "https://api.dexscreener.com/latest/dex"
    HTTP_TIMEOUT_SEC: float = 10.0
    MARKET_CACHE_TTL_SEC: int = 3600

    # entry scheduler
    ENTRY_POLL_INTERVAL_SEC: float = 10.0
    PRICE_DEVIATION_ABORT_ENABLED: bool = False
    PRICE_DEVIATION_ABOVE_PCT: float = 10.0
    PRICE_DEVIATION_BELOW_PCT: float = 10.0

    # batch pipeline
    BATCH_MAX_LIQUIDITY_PCT: str = "2.0"
    BATCH_INTERVAL_SEC: float = 30.0
    BATCH_MAX_USERS: int = 50
    BATCH_MIN_AMOUNT_USD: str = "1000"
    BATCH_MIN_TVL_USD: str = "50000"
    BATCH_LIQUIDITY_FLOOR_ENABLED: bool = True
    TOKEN_COOLDOWN_HOURS: int = 24
    APPROVAL_WAIT_SEC: float = 5.0
    APPROVAL_GAS_LIMIT: int = 90_000

    # risk gate
    RISK_LIQUIDITY_CHECK_ENABLED: bool = True
    CIRCUIT_BREAKER_MINUTES: int = 60
    CIRCUIT_BREAKER_STOP_LOSS_STREAK: int = 3
    CIRCUIT_BREAKER_POLL_SEC: float = 600.0

    # route safety
    ROUTE_MAX_PRICE_DEVIATION_BPS: int = 1000
    ROUTE_MAX_PRICE_IMPACT_BPS: int = 1000
    AERO_MAX_PRICE_IMPACT_BPS: int = 500

    # signing: {"trader_id": "0xprivatekey"}
    SIGNER_KEYS: Dict[str, str] = field(default_factory=dict)

    # generic
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        MONGODB_URI=os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
        MONGODB_DB_NAME=os.getenv("MONGODB_DB_NAME", "copytrade_db"),

        RPC_URL_BSC=os.getenv("RPC_URL_BSC", "https://bsc-dataseed.bnbchain.org"),
        RPC_URL_BASE=os.getenv("RPC_URL_BASE", "https://mainnet.base.org"),
        RPC_TIMEOUT_SEC=float(os.getenv("RPC_TIMEOUT_SEC", 10.0)),

        PANCAKE_V3_FACTORY=os.getenv("PANCAKE_V3_FACTORY", "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865"),
        PANCAKE_V3_QUOTER=os.getenv("PANCAKE_V3_QUOTER", "0xB048Bbc1Ee6b733FFfCFb9e9CeF7375518e25997"),
        PANCAKE_V3_ROUTER=os.getenv("PANCAKE_V3_ROUTER", "0x13f4EA83D0bd40E75C8222255bc855a974568Dd4"),
        PANCAKE_V2_FACTORY=os.getenv("PANCAKE_V2_FACTORY", "0xcA143Ce32Fe78f1f7019d7d551a6402fC5350c73"),
        PANCAKE_V2_ROUTER=os.getenv("PANCAKE_V2_ROUTER", "0x10ED43C718714eb63d5aA57B78B54704E256024E"),
        BSC_WBNB=os.getenv("BSC_WBNB", "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"),
        BSC_BUSD=os.getenv("BSC_BUSD", "0xe9e7CEA3DedcA5984780Bafc599bD69ADd087D56"),
        FOUR_MEME_HELPER=os.getenv("FOUR_MEME_HELPER", "0xF251F83e40a78868FcfA3FA4599Dad6494E46034"),
        FOUR_MEME_TOKEN_MANAGER_V2=os.getenv("FOUR_MEME_TOKEN_MANAGER_V2", "0x5c952063c7fc8610FFDB798152D69F0B9550762b"),

        AERO_POOL_FACTORY_AMM=os.getenv("AERO_POOL_FACTORY_AMM", "0x420DD381b31aEf6683db6B902084cB0FFECe40Da"),
        AERO_ROUTER_AMM=os.getenv("AERO_ROUTER_AMM", "0xcF77a3Ba9A5CA399B7c97c74d54e5b1Beb874E43"),
        BASE_WETH=os.getenv("BASE_WETH", "0x4200000000000000000000000000000000000006"),

        PARASWAP_BASE_URL=os.getenv("PARASWAP_BASE_URL", "https://apiv5.paraswap.io"),
        PARASWAP_MAX_SLIPPAGE_BPS=int(os.getenv("PARASWAP_MAX_SLIPPAGE_BPS", 50)),
        DEXSCREENER_BASE_URL=os.getenv("DEXSCREENER_BASE_URL", "https://api.dexscreener.com/latest/dex"),
        HTTP_TIMEOUT_SEC=float(os.getenv("HTTP_TIMEOUT_SEC", 10.0)),
        MARKET_CACHE_TTL_SEC=int(os.getenv("MARKET_CACHE_TTL_SEC", 3600)),

        ENTRY_POLL_INTERVAL_SEC=float(os.getenv("ENTRY_POLL_INTERVAL_SEC", 10.0)),
        PRICE_DEVIATION_ABORT_ENABLED=_env_bool("PRICE_DEVIATION_ABORT_ENABLED", False),
        PRICE_DEVIATION_ABOVE_PCT=float(os.getenv("PRICE_DEVIATION_ABOVE_PCT", 10.0)),
        PRICE_DEVIATION_BELOW_PCT=float(os.getenv("PRICE_DEVIATION_BELOW_PCT", 10.0)),

        BATCH_MAX_LIQUIDITY_PCT=os.getenv("BATCH_MAX_LIQUIDITY_PCT", "2.0"),
        BATCH_INTERVAL_SEC=float(os.getenv("BATCH_INTERVAL_SEC", 30.0)),
        BATCH_MAX_USERS=int(os.getenv("BATCH_MAX_USERS", 50)),
        BATCH_MIN_AMOUNT_USD=os.getenv("BATCH_MIN_AMOUNT_USD", "1000"),
        BATCH_MIN_TVL_USD=os.getenv("BATCH_MIN_TVL_USD", "50000"),
        BATCH_LIQUIDITY_FLOOR_ENABLED=_env_bool("BATCH_LIQUIDITY_FLOOR_ENABLED", True),
        TOKEN_COOLDOWN_HOURS=int(os.getenv("TOKEN_COOLDOWN_HOURS", 24)),
        APPROVAL_WAIT_SEC=float(os.getenv("APPROVAL_WAIT_SEC", 5.0)),
        APPROVAL_GAS_LIMIT=int(os.getenv("APPROVAL_GAS_LIMIT", 90_000)),

        RISK_LIQUIDITY_CHECK_ENABLED=_env_bool("RISK_LIQUIDITY_CHECK_ENABLED", True),
        CIRCUIT_BREAKER_MINUTES=int(os.getenv("CIRCUIT_BREAKER_MINUTES", 60)),
        CIRCUIT_BREAKER_STOP_LOSS_STREAK=int(os.getenv("CIRCUIT_BREAKER_STOP_LOSS_STREAK", 3)),
        CIRCUIT_BREAKER_POLL_SEC=float(os.getenv("CIRCUIT_BREAKER_POLL_SEC", 600.0)),

        ROUTE_MAX_PRICE_DEVIATION_BPS=int(os.getenv("ROUTE_MAX_PRICE_DEVIATION_BPS", 1000)),
        ROUTE_MAX_PRICE_IMPACT_BPS=int(os.getenv("ROUTE_MAX_PRICE_IMPACT_BPS", 1000)),
        AERO_MAX_PRICE_IMPACT_BPS=int(os.getenv("AERO_MAX_PRICE_IMPACT_BPS", 500)),

        SIGNER_KEYS=_env_json("SIGNER_KEYS_JSON"),

        ENV=os.getenv("ENV", "dev"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
    )
