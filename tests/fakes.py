"""
In-memory stand-ins for the Mongo repositories and the chain / market /
signer gateways, plus small builders for signals and strategies.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from copytrade.config import Settings
from copytrade.core.domain.entities.signal_entity import SignalEntity
from copytrade.core.domain.entities.strategy_config_entity import StrategyConfigEntity
from copytrade.core.domain.entities.swap_entity import RouteQuote, SwapRequest
from copytrade.core.domain.enums.execution_enums import (
    SENT_EXECUTION_STATUSES,
    TERMINAL_EXECUTION_STATUSES,
)
from copytrade.core.gateways.chain_gateway import ChainGateway
from copytrade.core.gateways.market_data_gateway import MarketDataGateway
from copytrade.core.gateways.route_venue_gateway import QuoteContext, RouteVenueGateway
from copytrade.core.gateways.signer_gateway import SignerGateway
from copytrade.core.repositories.batch_repository import BatchRepository
from copytrade.core.repositories.execution_repository import ExecutionRepository
from copytrade.core.repositories.position_repository import PositionRepository
from copytrade.core.repositories.signal_repository import SignalRepository
from copytrade.core.repositories.strategy_config_repository import StrategyConfigRepository
from copytrade.core.repositories.token_whitelist_repository import TokenWhitelistRepository

BSC_USDT = "0x55d398326f99059fF775485246999027B3197955"
TOKEN_ADDR = "0x1111111111111111111111111111111111111111"
ROUTER_ADDR = "0x2222222222222222222222222222222222222222"
WALLET_1 = "0x3333333333333333333333333333333333333333"
WALLET_2 = "0x4444444444444444444444444444444444444444"

E18 = 10 ** 18


def make_settings(**overrides) -> Settings:
    base = dict(
        BATCH_INTERVAL_SEC=0.0,
        APPROVAL_WAIT_SEC=0.0,
        ENTRY_POLL_INTERVAL_SEC=0.0,
        RISK_LIQUIDITY_CHECK_ENABLED=False,
    )
    base.update(overrides)
    return Settings(**base)


def make_signal(**kw) -> SignalEntity:
    data = dict(
        signal_id="S1",
        token_symbol="LAB",
        chain="BSC",
        contract_address=TOKEN_ADDR,
        signal_type="LONG",
        entry_min=1.00,
        entry_max=1.10,
        confidence=90.0,
        created_at=datetime.now(timezone.utc),
    )
    data.update(kw)
    return SignalEntity(**data)


def make_strategy(**kw) -> StrategyConfigEntity:
    data = dict(
        strategy_id="ST-U1",
        user_id="U1",
        wallet_address=WALLET_1,
        follow_strategy="ALL",
        trade_amount=Decimal("100"),
        max_trade_amount=Decimal("500"),
        max_positions=3,
        min_liquidity_required=Decimal("0"),
        single_token_max_percent=100.0,
    )
    data.update(kw)
    return StrategyConfigEntity(**data)


# ---------- repositories ----------

class FakeSignalRepo(SignalRepository):
    def __init__(self, rows: Optional[List[Dict]] = None, prices: Optional[List[Optional[float]]] = None):
        self.rows: Dict[str, Dict] = {r["signal_id"]: dict(r) for r in (rows or [])}
        self.prices = list(prices or [])
        self.status_updates: List[Tuple[str, str, Optional[str]]] = []
        self.reject_reasons: Dict[str, str] = {}
        self.triggered_tokens: List[Tuple[str, str]] = []

    async def ensure_indexes(self) -> None:
        return None

    async def get(self, signal_id):
        row = self.rows.get(signal_id)
        return dict(row) if row else None

    async def list_active(self, limit=500):
        return [dict(r) for r in self.rows.values() if r.get("status", "ACTIVE") == "ACTIVE"][:limit]

    async def update_status(self, signal_id, status, reject_reason=None):
        self.status_updates.append((signal_id, status, reject_reason))
        if signal_id in self.rows:
            self.rows[signal_id]["status"] = status

    async def set_reject_reason(self, signal_id, reason):
        self.reject_reasons[signal_id] = reason

    async def mark_token_triggered(self, token_symbol, chain):
        self.triggered_tokens.append((token_symbol, chain))
        n = 0
        for r in self.rows.values():
            if r.get("token_symbol") == token_symbol and r.get("status", "ACTIVE") == "ACTIVE":
                r["status"] = "TRIGGERED"
                n += 1
        return n

    async def get_latest_price(self, token_symbol, chain):
        if not self.prices:
            return None
        if len(self.prices) == 1:
            return self.prices[0]
        return self.prices.pop(0)


class FakeStrategyRepo(StrategyConfigRepository):
    def __init__(self, rows: Optional[List[Dict]] = None):
        self.rows: Dict[str, Dict] = {r["strategy_id"]: dict(r) for r in (rows or [])}
        self.pauses: List[Tuple[str, datetime, str]] = []

    async def ensure_indexes(self) -> None:
        return None

    async def get(self, strategy_id):
        row = self.rows.get(strategy_id)
        return dict(row) if row else None

    async def list_enabled(self, follow_strategies, now):
        out = []
        for r in self.rows.values():
            if not r.get("enabled", True):
                continue
            if follow_strategies is not None and r.get("follow_strategy", "TOP_SIGNALS") not in follow_strategies:
                continue
            out.append(dict(r))
        return out

    async def set_pause(self, strategy_id, paused_until, reason):
        self.pauses.append((strategy_id, paused_until, reason))
        if strategy_id in self.rows:
            self.rows[strategy_id].update(paused_until=paused_until, pause_reason=reason)

    async def clear_pause(self, strategy_id):
        row = self.rows.get(strategy_id)
        if not row or row.get("paused_until") is None:
            return False
        row.update(paused_until=None, pause_reason=None)
        return True

    async def release_expired_pauses(self, now):
        n = 0
        for r in self.rows.values():
            until = r.get("paused_until")
            if until is not None and until <= now:
                r.update(paused_until=None, pause_reason=None)
                n += 1
        return n


class FakeExecutionRepo(ExecutionRepository):
    def __init__(self):
        self.rows: Dict[str, Dict] = {}
        self.daily: Tuple[Decimal, Decimal] = (Decimal(0), Decimal(0))
        self.exit_types: List[Optional[str]] = []
        self.open_notional: Decimal = Decimal(0)

    async def ensure_indexes(self) -> None:
        return None

    async def get(self, execution_id):
        row = self.rows.get(execution_id)
        return dict(row) if row else None

    async def insert(self, doc):
        if doc["execution_id"] in self.rows:
            return False
        self.rows[doc["execution_id"]] = dict(doc)
        return True

    async def update_fields(self, execution_id, fields):
        self.rows.setdefault(execution_id, {"execution_id": execution_id}).update(fields)

    async def delete_failed(self, execution_id):
        row = self.rows.get(execution_id)
        if row and row.get("status") == "FAILED":
            del self.rows[execution_id]
            return 1
        return 0

    async def count_active_for_token(self, token_symbol, chain):
        return sum(
            1 for r in self.rows.values()
            if r.get("token_symbol") == token_symbol and r.get("status") not in TERMINAL_EXECUTION_STATUSES
        )

    async def count_sent_for_token_since(self, token_symbol, chain, since):
        return sum(
            1 for r in self.rows.values()
            if r.get("token_symbol") == token_symbol
            and r.get("status") in SENT_EXECUTION_STATUSES
            and r.get("created_at") is not None and r["created_at"] >= since
        )

    async def daily_pnl(self, user_id, since):
        return self.daily

    async def open_notional_for_token(self, user_id, token_symbol):
        return self.open_notional

    async def recent_exit_types(self, user_id, limit=10):
        return self.exit_types[:limit]


class FakePositionRepo(PositionRepository):
    def __init__(self, holding_by_user: Optional[Dict[str, int]] = None, holding_by_token: Optional[Dict[str, int]] = None):
        self.holding_by_user = holding_by_user or {}
        self.holding_by_token = holding_by_token or {}
        self.rows: Dict[str, Dict] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def get(self, execution_id):
        return self.rows.get(execution_id)

    async def count_holding_for_user(self, user_id):
        return self.holding_by_user.get(user_id, 0)

    async def count_holding_for_token(self, token_symbol, chain):
        return self.holding_by_token.get(token_symbol, 0)

    async def update_fields(self, execution_id, fields):
        self.rows.setdefault(execution_id, {}).update(fields)


class FakeBatchRepo(BatchRepository):
    def __init__(self):
        self.rows: Dict[str, Dict] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def create(self, doc):
        self.rows[doc["batch_id"]] = dict(doc)

    async def update(self, batch_id, set_fields=None, inc=None):
        row = self.rows[batch_id]
        row.update(set_fields or {})
        for k, v in (inc or {}).items():
            row[k] = row.get(k, 0) + v

    async def get(self, batch_id):
        row = self.rows.get(batch_id)
        return dict(row) if row else None


class FakeWhitelistRepo(TokenWhitelistRepository):
    def __init__(self, rows: Optional[Dict[Tuple[str, str], Dict]] = None):
        self.rows: Dict[Tuple[str, str], Dict] = dict(rows or {})
        self.pool_info: Dict[Tuple[str, str], Dict] = {}

    async def ensure_indexes(self) -> None:
        return None

    async def get(self, token_symbol, chain):
        row = self.rows.get((token_symbol, chain))
        return dict(row) if row else None

    async def upsert(self, token_symbol, chain, fields):
        self.rows.setdefault((token_symbol, chain), {}).update(fields)

    async def save_pool_info(self, token_symbol, chain, pool_info):
        self.pool_info[(token_symbol, chain)] = dict(pool_info)


# ---------- gateways ----------

class FakeChain(ChainGateway):
    """
    Balances are raw base units keyed by lower-cased addresses.
    `calls` maps (contract.lower(), fn_name) to a value or a callable(*args).
    """

    def __init__(self):
        self.erc20: Dict[Tuple[str, str], int] = {}
        self.native: Dict[str, int] = {}
        self.decimals: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str, str], int] = {}
        self.gas_price = 3 * 10 ** 9
        self.calls: Dict[Tuple[str, str], Any] = {}

    def fund(self, wallet: str, token: str = BSC_USDT, amount_usd: int = 1_000, gas_wei: int = E18, decimals: int = 18):
        self.erc20[(token.lower(), wallet.lower())] = amount_usd * 10 ** decimals
        self.native[wallet.lower()] = gas_wei

    def web3(self, chain):
        raise NotImplementedError

    async def call(self, chain, address, abi, fn_name, *args):
        handler = self.calls[(address.lower(), fn_name)]
        return handler(*args) if callable(handler) else handler

    async def get_native_balance(self, chain, owner):
        return self.native.get(owner.lower(), 0)

    async def get_erc20_balance(self, chain, token, owner):
        return self.erc20.get((token.lower(), owner.lower()), 0)

    async def get_decimals(self, chain, token):
        return self.decimals.get(token.lower(), 18)

    async def get_allowance(self, chain, token, owner, spender):
        return self.allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    async def get_gas_price(self, chain):
        return self.gas_price


class FakeMarket(MarketDataGateway):
    def __init__(self, tvl: Optional[float] = 1_000_000, price: Optional[float] = 1.05,
                 reference: Optional[float] = None, eligible: bool = True):
        self.tvl = tvl
        self.price = price
        self.reference = reference
        self.eligible = eligible

    async def get_price(self, token_symbol, chain, contract_address=None):
        return self.price

    async def get_liquidity(self, token_symbol, chain, contract_address=None):
        if self.tvl is None:
            return None
        return {"tvl": self.tvl, "is_eligible": self.eligible, "grade": "GOOD"}

    async def get_reference_price(self, token_address, chain):
        return self.reference


class FakeSigner(SignerGateway):
    def __init__(self, fail_on: Optional[str] = None):
        self.sent: List[Tuple[str, Dict]] = []
        self.fail_on = fail_on

    async def sign_and_submit(self, trader_id, tx):
        if self.fail_on and self.fail_on in tx.get("data", ""):
            raise RuntimeError("custody rejected tx")
        self.sent.append((trader_id, dict(tx)))
        return "0x" + f"{len(self.sent):064x}"


class FakeVenue(RouteVenueGateway):
    """
    Returns a canned quote, or raises `error` when set.
    """

    def __init__(self, name: str, amount_out: int = 95 * E18, error: Optional[Exception] = None,
                 spender: Optional[str] = ROUTER_ADDR, chains=("BSC",),
                 on_quote: Optional[Callable[[SwapRequest], None]] = None):
        self.name = name
        self.amount_out = amount_out
        self.error = error
        self.spender = spender
        self.chains = {c.upper() for c in chains}
        self.on_quote = on_quote
        self.quoted = 0

    def applies_to(self, req):
        return req.chain.upper() in self.chains

    async def quote(self, req: SwapRequest, ctx: QuoteContext) -> RouteQuote:
        self.quoted += 1
        if self.on_quote:
            self.on_quote(req)
        if self.error is not None:
            raise self.error
        min_out = self.amount_out * (10_000 - req.slippage_bps) // 10_000
        return RouteQuote(
            dex=self.name,
            router=ROUTER_ADDR,
            spender=self.spender,
            calldata="0xdeadbeef",
            amount_in=req.amount_in,
            amount_out=self.amount_out,
            amount_out_min=min_out,
            path=[req.token_in, req.token_out],
        )


def minutes_ago(n: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=n)
