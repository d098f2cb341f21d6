import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import Settings, get_settings
from ..core.domain.entities.signal_entity import SignalEntity
from ..core.domain.entities.strategy_config_entity import StrategyConfigEntity
from ..core.domain.enums.signal_enums import MonitorState, SignalStatus
from ..core.repositories.signal_repository import SignalRepository
from ..core.repositories.token_whitelist_repository import TokenWhitelistRepository
from ..core.usecases.execute_batch_trades_use_case import ExecuteBatchTradesUseCase


def calculate_distance(price: float, signal: SignalEntity) -> str:
    """
    Human readable position of `price` relative to the entry band.
    """
    if signal.entry_min <= price <= signal.entry_max:
        return "in range"
    if price > signal.entry_max:
        return f"+{(price - signal.entry_max) / signal.entry_max * 100:.2f}% above"
    return f"-{(signal.entry_min - price) / signal.entry_min * 100:.2f}% below"


@dataclass
class PriceDeviationPolicy:
    """
    Abandon a watched signal when price runs too far away from the band.
    Off by default; each side has its own threshold in percent.
    """
    enabled: bool = False
    above_pct: float = 10.0
    below_pct: float = 10.0

    def evaluate(self, price: float, entry_min: float, entry_max: float) -> Optional[str]:
        if not self.enabled:
            return None
        upper = entry_max * (1 + self.above_pct / 100)
        lower = entry_min * (1 - self.below_pct / 100)
        if price > upper:
            return f"Price {price:g} ran {self.above_pct:g}% above entry band (> {upper:g})"
        if price < lower:
            return f"Price {price:g} fell {self.below_pct:g}% below entry band (< {lower:g})"
        return None


@dataclass
class EntryMonitor:
    signal: SignalEntity
    strategies: List[StrategyConfigEntity]
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: MonitorState = MonitorState.WATCHING
    last_price: Optional[float] = None
    last_distance: Optional[str] = None
    ticks: int = 0
    task: Optional[asyncio.Task] = None

    @property
    def token_key(self) -> Tuple[str, str]:
        return self.signal.token_symbol.upper(), self.signal.chain.upper()


class SchedulerRegistry:
    """
    Live monitors, indexed by signal id and by (token, chain). Every
    mutation goes through one asyncio.Lock.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._by_signal: Dict[str, EntryMonitor] = {}
        self._by_token: Dict[Tuple[str, str], str] = {}

    async def register(self, monitor: EntryMonitor) -> Optional[str]:
        """
        None on success, otherwise why the monitor was refused.
        """
        async with self._lock:
            sid = monitor.signal.signal_id
            if sid in self._by_signal:
                return f"signal {sid} already monitored"
            holder = self._by_token.get(monitor.token_key)
            if holder is not None:
                return f"{monitor.token_key[0]} on {monitor.token_key[1]} already monitored by {holder}"
            self._by_signal[sid] = monitor
            self._by_token[monitor.token_key] = sid
            return None

    async def deregister(self, signal_id: str) -> Optional[EntryMonitor]:
        async with self._lock:
            monitor = self._by_signal.pop(signal_id, None)
            if monitor is not None and self._by_token.get(monitor.token_key) == signal_id:
                self._by_token.pop(monitor.token_key, None)
            return monitor

    async def get(self, signal_id: str) -> Optional[EntryMonitor]:
        async with self._lock:
            return self._by_signal.get(signal_id)

    async def all(self) -> List[EntryMonitor]:
        async with self._lock:
            return list(self._by_signal.values())

    def __len__(self) -> int:
        return len(self._by_signal)


class EntryPriceScheduler:
    """
    One asyncio task per watched signal. Each tick reads the latest price,
    logs its distance to the entry band and either hands the signal to the
    batch pipeline (price inside the band), abandons it (deviation policy)
    or keeps waiting until expires_at.
    """

    def __init__(
        self,
        signal_repo: SignalRepository,
        whitelist_repo: TokenWhitelistRepository,
        batch_executor: ExecuteBatchTradesUseCase,
        registry: Optional[SchedulerRegistry] = None,
        deviation_policy: Optional[PriceDeviationPolicy] = None,
        poll_interval_sec: Optional[float] = None,
        settings: Optional[Settings] = None,
        logger: logging.Logger | None = None,
    ):
        s = settings or get_settings()
        self._signals = signal_repo
        self._whitelist = whitelist_repo
        self._executor = batch_executor
        self.registry = registry or SchedulerRegistry()
        self.policy = deviation_policy or PriceDeviationPolicy(
            enabled=s.PRICE_DEVIATION_ABORT_ENABLED,
            above_pct=s.PRICE_DEVIATION_ABOVE_PCT,
            below_pct=s.PRICE_DEVIATION_BELOW_PCT,
        )
        self._interval = s.ENTRY_POLL_INTERVAL_SEC if poll_interval_sec is None else poll_interval_sec
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def start_monitoring(
        self,
        signal: SignalEntity,
        approved_strategies: Sequence[StrategyConfigEntity],
    ) -> bool:
        monitor = EntryMonitor(signal=signal, strategies=list(approved_strategies))
        refused = await self.registry.register(monitor)
        if refused:
            self._logger.info("Not monitoring %s: %s", signal.signal_id, refused)
            return False

        monitor.task = asyncio.create_task(self._run(monitor), name=f"entry-{signal.signal_id}")
        self._logger.info(
            "Watching %s %s band=[%g, %g] strategies=%d expires=%s",
            signal.signal_id, signal.token_symbol, signal.entry_min, signal.entry_max,
            len(monitor.strategies), signal.expires_at.isoformat() if signal.expires_at else "never",
        )
        return True

    async def stop_monitoring(self, signal_id: str) -> bool:
        monitor = await self.registry.get(signal_id)
        if monitor is None:
            return False
        if monitor.task is not None and not monitor.task.done():
            monitor.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor.task
        await self.registry.deregister(signal_id)
        monitor.state = MonitorState.CANCELLED
        self._logger.info("Stopped monitoring %s", signal_id)
        return True

    async def stop_all(self) -> int:
        monitors = await self.registry.all()
        for m in monitors:
            if m.task is not None and not m.task.done():
                m.task.cancel()
        await asyncio.gather(*(m.task for m in monitors if m.task is not None), return_exceptions=True)
        for m in monitors:
            await self.registry.deregister(m.signal.signal_id)
            m.state = MonitorState.CANCELLED
        if monitors:
            self._logger.info("Stopped %d monitor(s)", len(monitors))
        return len(monitors)

    async def get_monitor_status(self) -> Dict:
        now = datetime.now(timezone.utc)
        monitors = await self.registry.all()
        return {
            "active_count": len(monitors),
            "monitors": [
                {
                    "signal_id": m.signal.signal_id,
                    "token_symbol": m.signal.token_symbol,
                    "chain": m.signal.chain,
                    "entry_min": m.signal.entry_min,
                    "entry_max": m.signal.entry_max,
                    "strategy_count": len(m.strategies),
                    "state": m.state.value,
                    "started_at": m.started_at.isoformat(),
                    "running_sec": int((now - m.started_at).total_seconds()),
                    "last_price": m.last_price,
                    "distance": m.last_distance,
                    "ticks": m.ticks,
                }
                for m in monitors
            ],
        }

    async def _current_price(self, signal: SignalEntity) -> Optional[float]:
        price = await self._signals.get_latest_price(signal.token_symbol, signal.chain)
        if price:
            return float(price)
        cached = await self._whitelist.get(signal.token_symbol, signal.chain)
        if cached and cached.get("price"):
            return float(cached["price"])
        return None

    async def _finish(self, monitor: EntryMonitor, state: MonitorState) -> None:
        monitor.state = state
        await self.registry.deregister(monitor.signal.signal_id)

    async def _run(self, monitor: EntryMonitor) -> None:
        signal = monitor.signal
        deadline = signal.expires_at

        while True:
            now = datetime.now(timezone.utc)
            if deadline is not None and now >= deadline:
                await self._finish(monitor, MonitorState.EXPIRED)
                await self._signals.update_status(signal.signal_id, SignalStatus.EXPIRED.value)
                self._logger.info("Signal %s expired before entering the band", signal.signal_id)
                return

            price: Optional[float] = None
            try:
                price = await self._current_price(signal)
            except Exception as exc:
                self._logger.warning("Price read failed for %s: %s", signal.token_symbol, exc)

            if price is not None:
                monitor.ticks += 1
                monitor.last_price = price
                monitor.last_distance = calculate_distance(price, signal)
                self._logger.info(
                    "%s %s price=%g band=[%g, %g] %s",
                    signal.signal_id, signal.token_symbol, price,
                    signal.entry_min, signal.entry_max, monitor.last_distance,
                )

                if signal.in_entry_band(price):
                    await self._finish(monitor, MonitorState.TRIGGERED)
                    await self._signals.update_status(signal.signal_id, SignalStatus.TRIGGERED.value)
                    self._logger.info("Signal %s triggered at %g", signal.signal_id, price)
                    try:
                        await self._executor.execute_batch_trades(signal, monitor.strategies, price)
                    except Exception as exc:
                        self._logger.exception("Batch execution for %s failed: %s", signal.signal_id, exc)
                        await self._signals.set_reject_reason(signal.signal_id, str(exc)[:255])
                    return

                abort = self.policy.evaluate(price, signal.entry_min, signal.entry_max)
                if abort:
                    await self._finish(monitor, MonitorState.SKIPPED)
                    await self._signals.update_status(signal.signal_id, SignalStatus.SKIPPED.value, abort)
                    self._logger.info("Signal %s skipped: %s", signal.signal_id, abort)
                    return

            wait = self._interval
            if deadline is not None:
                wait = max(0.0, min(wait, (deadline - datetime.now(timezone.utc)).total_seconds()))
            await asyncio.sleep(wait)
