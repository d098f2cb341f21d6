import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from ...config import Settings, get_settings
from ..domain.chains import get_chain_profile
from ..domain.entities.execution_entity import BatchEntity, ExecutionEntity, make_execution_id
from ..domain.entities.signal_entity import SignalEntity
from ..domain.entities.strategy_config_entity import StrategyConfigEntity
from ..domain.entities.swap_entity import SwapRequest, TxPlan
from ..domain.enums.execution_enums import BatchStatus, ExecutionStatus
from ..gateways.market_data_gateway import MarketDataGateway
from ..gateways.signer_gateway import SignerGateway
from ..repositories.batch_repository import BatchRepository
from ..repositories.execution_repository import ExecutionRepository
from ..repositories.position_repository import PositionRepository
from ..repositories.signal_repository import SignalRepository
from ..repositories.strategy_config_repository import StrategyConfigRepository
from ..services.batch_planner_service import BatchPlannerService
from ..services.exceptions import LowLiquidityError, SignerSubmissionError
from ..services.risk_gate_service import RiskGateService
from ..services.route_aggregator_service import RouteAggregatorService
from ..services.utils import now_ms

EXECUTED = "executed"
SKIPPED = "skipped"
FAILED = "failed"
INSUFFICIENT_BALANCE = "insufficient_balance"


@dataclass
class TradeOutcome:
    execution_id: str
    status: str
    reason: Optional[str] = None
    tx_hash: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.status}: {self.reason}" if self.reason else self.status


@dataclass
class BatchRunResult:
    signal_id: str
    batch_id: Optional[str]
    total_users: int
    batch_count: int = 0
    executed: int = 0
    skipped: int = 0
    failed: int = 0
    reason: Optional[str] = None
    outcomes: List[TradeOutcome] = field(default_factory=list)


class ExecuteBatchTradesUseCase:
    """
    Runs a triggered signal for every approved strategy.

    Accounts are split into liquidity-safe batches; batches run one after
    another with `BATCH_INTERVAL_SEC` between them, accounts inside a batch
    run concurrently. Each account goes through `execute_user_trade`, which
    is idempotent on exec_{user_id}_{signal_id}.
    """

    def __init__(
        self,
        execution_repo: ExecutionRepository,
        position_repo: PositionRepository,
        signal_repo: SignalRepository,
        batch_repo: BatchRepository,
        strategy_repo: StrategyConfigRepository,
        risk_gate: RiskGateService,
        route_aggregator: RouteAggregatorService,
        signer: SignerGateway,
        market_data: MarketDataGateway,
        planner: Optional[BatchPlannerService] = None,
        settings: Optional[Settings] = None,
        logger: logging.Logger | None = None,
    ):
        self._executions = execution_repo
        self._positions = position_repo
        self._signals = signal_repo
        self._batches = batch_repo
        self._strategies = strategy_repo
        self._risk = risk_gate
        self._router = route_aggregator
        self._signer = signer
        self._market = market_data
        self._settings = settings or get_settings()
        self._planner = planner or BatchPlannerService(
            max_liquidity_pct=Decimal(self._settings.BATCH_MAX_LIQUIDITY_PCT),
            min_batch_amount=Decimal(self._settings.BATCH_MIN_AMOUNT_USD),
            max_users_per_batch=self._settings.BATCH_MAX_USERS,
        )
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        # entries vanish once no trade holds or awaits the lock
        self._token_locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, token_symbol: str, chain: str) -> asyncio.Lock:
        key = (token_symbol.upper(), chain.upper())
        lock = self._token_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._token_locks[key] = lock
        return lock

    # ---------- batch level ----------

    async def _check_liquidity_floor(self, signal: SignalEntity) -> Decimal:
        liq = await self._market.get_liquidity(signal.token_symbol, signal.chain, signal.contract_address)
        tvl = None if not liq or liq.get("tvl") is None else Decimal(str(liq["tvl"]))

        if self._settings.BATCH_LIQUIDITY_FLOOR_ENABLED:
            floor = Decimal(self._settings.BATCH_MIN_TVL_USD)
            if tvl is None or tvl < floor:
                raise LowLiquidityError(signal.token_symbol, None if tvl is None else float(tvl), float(floor))
        return tvl or Decimal(0)

    async def _in_cooldown(self, signal: SignalEntity) -> bool:
        hours = self._settings.TOKEN_COOLDOWN_HOURS
        if hours <= 0:
            return False
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        sent = await self._executions.count_sent_for_token_since(signal.token_symbol, signal.chain, since)
        return sent > 0

    async def execute_batch_trades(
        self,
        signal: SignalEntity,
        approved_strategies: Sequence[StrategyConfigEntity],
        trigger_price: float,
    ) -> BatchRunResult:
        strategies = list(approved_strategies)
        result = BatchRunResult(signal_id=signal.signal_id, batch_id=None, total_users=len(strategies))
        if not strategies:
            result.reason = "no approved strategies"
            return result

        total = sum((Decimal(s.trade_amount) for s in strategies), Decimal(0))
        tvl = await self._check_liquidity_floor(signal)

        if await self._in_cooldown(signal):
            result.skipped = len(strategies)
            result.reason = f"{signal.token_symbol} traded in the last {self._settings.TOKEN_COOLDOWN_HOURS}h"
            self._logger.info("Signal %s skipped: %s", signal.signal_id, result.reason)
            return result

        plan = self._planner.plan(total, tvl, len(strategies))
        groups = self._planner.split(strategies, plan.users_per_batch)
        batch_id = f"batch_{signal.signal_id}_{now_ms()}"
        result.batch_id = batch_id
        result.batch_count = len(groups)

        batch = BatchEntity(
            batch_id=batch_id,
            signal_id=signal.signal_id,
            token_symbol=signal.token_symbol,
            chain=signal.chain,
            total_users=len(strategies),
            total_amount_usd=total,
            batch_count=len(groups),
            users_per_batch=plan.users_per_batch,
            batch_amount_usd=plan.batch_amount,
        )
        batch_doc = batch.model_dump()
        batch_doc["status"] = batch.status.value
        await self._batches.create(batch_doc)
        self._logger.info(
            "Batch %s: %d users, $%s total, tvl=$%s -> %d batch(es) of <=%d (max $%s each)",
            batch_id, len(strategies), total, tvl, len(groups), plan.users_per_batch, plan.max_batch_amount,
        )

        position = 0
        try:
            for idx, group in enumerate(groups, start=1):
                await self._batches.update(batch_id, set_fields={"current_batch": idx})
                tasks = []
                for strategy in group:
                    position += 1
                    tasks.append(self.execute_user_trade(signal, strategy, trigger_price, batch_id, position))
                outcomes = await asyncio.gather(*tasks, return_exceptions=True)

                executed = skipped = failed = 0
                for strategy, out in zip(group, outcomes):
                    if isinstance(out, BaseException):
                        self._logger.error("Trade for user %s raised: %s", strategy.user_id, out)
                        out = TradeOutcome(
                            make_execution_id(strategy.user_id, signal.signal_id), FAILED, str(out)
                        )
                    result.outcomes.append(out)
                    if out.status == EXECUTED:
                        executed += 1
                    elif out.status == FAILED:
                        failed += 1
                    else:
                        skipped += 1

                result.executed += executed
                result.skipped += skipped
                result.failed += failed
                batch_failed = failed == len(group)
                await self._batches.update(
                    batch_id,
                    inc={
                        "executed": executed,
                        "skipped": skipped,
                        "failed": failed,
                        "completed_batches": 0 if batch_failed else 1,
                        "failed_batches": 1 if batch_failed else 0,
                    },
                )
                self._logger.info(
                    "Batch %s %d/%d done: executed=%d skipped=%d failed=%d",
                    batch_id, idx, len(groups), executed, skipped, failed,
                )

                if idx < len(groups) and self._settings.BATCH_INTERVAL_SEC > 0:
                    await asyncio.sleep(self._settings.BATCH_INTERVAL_SEC)
        except Exception as exc:
            self._logger.exception("Batch %s aborted", batch_id)
            await self._batches.update(
                batch_id, set_fields={"status": BatchStatus.FAILED.value, "error_message": str(exc)}
            )
            raise

        await self._batches.update(batch_id, set_fields={"status": BatchStatus.COMPLETED.value})
        return result

    async def get_batch_status(self, batch_id: str) -> Optional[Dict]:
        doc = await self._batches.get(batch_id)
        if not doc:
            return None
        count = int(doc.get("batch_count") or 0)
        done = int(doc.get("completed_batches") or 0) + int(doc.get("failed_batches") or 0)
        doc["progress_pct"] = round(done / count * 100, 2) if count else 0.0
        return doc

    # ---------- account level ----------

    @staticmethod
    def _tx_from_plan(plan: TxPlan) -> Dict:
        return {
            "to": plan.router,
            "data": plan.calldata,
            "value": plan.value,
            "chain_id": plan.chain_id,
            "gas": plan.gas,
            "gas_price": plan.gas_price,
        }

    async def _submit(self, trader_id: str, plan: TxPlan, execution_id: str) -> str:
        if plan.needs_approval and plan.approval_tx is not None:
            approval = {
                "to": plan.approval_tx.to,
                "data": plan.approval_tx.data,
                "value": plan.approval_tx.value,
                "chain_id": plan.chain_id,
                "gas": plan.approval_tx.gas,
                "gas_price": plan.gas_price,
            }
            try:
                approval_hash = await self._signer.sign_and_submit(trader_id, approval)
            except Exception as exc:
                raise SignerSubmissionError(trader_id, "approval", str(exc)) from exc
            await self._executions.update_fields(execution_id, {"approval_tx_hash": approval_hash})
            self._logger.info("Approval sent %s for %s, waiting %ss", approval_hash, execution_id, self._settings.APPROVAL_WAIT_SEC)
            if self._settings.APPROVAL_WAIT_SEC > 0:
                await asyncio.sleep(self._settings.APPROVAL_WAIT_SEC)

        try:
            return await self._signer.sign_and_submit(trader_id, self._tx_from_plan(plan))
        except Exception as exc:
            raise SignerSubmissionError(trader_id, "swap", str(exc)) from exc

    def _new_execution(
        self,
        execution_id: str,
        signal: SignalEntity,
        strategy: StrategyConfigEntity,
        status: ExecutionStatus,
        batch_id: Optional[str],
        batch_position: Optional[int],
        error_message: Optional[str] = None,
    ) -> Dict:
        doc = ExecutionEntity(
            execution_id=execution_id,
            user_id=strategy.user_id,
            strategy_id=strategy.strategy_id,
            signal_id=signal.signal_id,
            token_symbol=signal.token_symbol,
            chain=signal.chain,
            contract_address=signal.contract_address,
            follow_strategy=strategy.follow_strategy.value,
            signal_source=signal.signal_source,
            status=status,
            entry_amount_usd=Decimal(strategy.trade_amount),
            batch_id=batch_id,
            batch_position=batch_position,
            error_message=error_message,
            created_at=datetime.now(timezone.utc),
        ).model_dump()
        doc["status"] = status.value
        return doc

    async def _reload_strategy(
        self, strategy: StrategyConfigEntity
    ) -> Tuple[Optional[StrategyConfigEntity], Optional[str]]:
        """
        Stored row of `strategy`, or the reason it may no longer trade
        (missing, disabled, or paused since intake).
        """
        row = await self._strategies.get(strategy.strategy_id)
        if not row:
            return None, f"strategy {strategy.strategy_id} not found"
        fresh = StrategyConfigEntity(**row)
        if not fresh.enabled:
            return None, f"strategy {fresh.strategy_id} disabled"
        now = datetime.now(timezone.utc)
        if fresh.is_paused(now):
            reason = f"strategy {fresh.strategy_id} paused until {fresh.paused_until.isoformat()}"
            if fresh.pause_reason:
                reason = f"{reason}: {fresh.pause_reason}"
            return None, reason
        return fresh, None

    async def execute_user_trade(
        self,
        signal: SignalEntity,
        strategy: StrategyConfigEntity,
        trigger_price: float,
        batch_id: Optional[str] = None,
        batch_position: Optional[int] = None,
    ) -> TradeOutcome:
        execution_id = make_execution_id(strategy.user_id, signal.signal_id)

        lock = self._lock_for(signal.token_symbol, signal.chain)
        async with lock:
            existing = await self._executions.get(execution_id)
            if existing and existing.get("status") != ExecutionStatus.FAILED.value:
                return TradeOutcome(execution_id, SKIPPED, f"already exists ({existing.get('status')})")

            if await self._positions.count_holding_for_token(signal.token_symbol, signal.chain) > 0:
                return TradeOutcome(execution_id, SKIPPED, f"already holding {signal.token_symbol}")

            if await self._executions.count_active_for_token(signal.token_symbol, signal.chain) > 0:
                return TradeOutcome(execution_id, SKIPPED, f"{signal.token_symbol} has an execution in progress")

            fresh, stale_reason = await self._reload_strategy(strategy)
            if stale_reason:
                self._logger.info("Execution %s skipped: %s", execution_id, stale_reason)
                return TradeOutcome(execution_id, SKIPPED, stale_reason)
            strategy = fresh
            amount = Decimal(strategy.trade_amount)

            if existing:
                await self._executions.delete_failed(execution_id)

            balance = await self._risk.check_balance(strategy, signal.chain, amount)
            if not balance.passed:
                doc = self._new_execution(
                    execution_id, signal, strategy, ExecutionStatus.INSUFFICIENT_BALANCE,
                    batch_id, batch_position, balance.reason,
                )
                if not await self._executions.insert(doc):
                    return TradeOutcome(execution_id, SKIPPED, "already exists")
                self._logger.info("User %s insufficient balance: %s", strategy.user_id, balance.reason)
                return TradeOutcome(execution_id, INSUFFICIENT_BALANCE, balance.reason)

            doc = self._new_execution(execution_id, signal, strategy, ExecutionStatus.PENDING, batch_id, batch_position)
            if not await self._executions.insert(doc):
                return TradeOutcome(execution_id, SKIPPED, "already exists")

        try:
            profile = get_chain_profile(signal.chain)
            quote = profile.quote_token
            req = SwapRequest(
                chain=profile.name,
                token_in=quote.address,
                token_out=signal.contract_address,
                amount_in=int(amount * (Decimal(10) ** quote.decimals)),
                slippage_bps=strategy.max_slippage_bps,
                trader=strategy.wallet_address,
                token_symbol=signal.token_symbol,
                amount_in_usd=float(amount),
                is_four_meme=signal.is_four_meme,
                four_meme_liquidity_added=signal.four_meme_liquidity_added,
            )
            plan = await self._router.build_swap_tx(req)

            await self._executions.update_fields(execution_id, {
                "status": ExecutionStatus.SUBMITTING.value,
                "dex_name": plan.dex,
                "amount_in": str(plan.amount_in),
                "amount_out_min": str(plan.amount_out_min),
            })
            tx_hash = await self._submit(strategy.user_id, plan, execution_id)

            await self._executions.update_fields(execution_id, {
                "status": ExecutionStatus.SUBMITTED.value,
                "entry_tx_hash": tx_hash,
                "entry_price": trigger_price,
            })
            flipped = await self._signals.mark_token_triggered(signal.token_symbol, signal.chain)
            self._logger.info(
                "Executed %s via %s tx=%s (%d sibling signal(s) -> TRIGGERED)",
                execution_id, plan.dex, tx_hash, flipped,
            )
            return TradeOutcome(execution_id, EXECUTED, tx_hash=tx_hash)

        except Exception as exc:
            self._logger.error("Execution %s failed: %s", execution_id, exc)
            await self._executions.update_fields(execution_id, {
                "status": ExecutionStatus.FAILED.value,
                "error_message": str(exc)[:1000],
            })
            return TradeOutcome(execution_id, FAILED, str(exc))
