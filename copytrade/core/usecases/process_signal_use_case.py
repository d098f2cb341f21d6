import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..domain.entities.signal_entity import SignalEntity
from ..domain.entities.strategy_config_entity import StrategyConfigEntity
from ..domain.enums.signal_enums import SignalStatus
from ..repositories.signal_repository import SignalRepository
from ..services.risk_gate_service import RiskGateService

MAX_REJECT_REASON_LEN = 255


@dataclass
class IntakeResult:
    signal_id: str
    accepted: bool
    monitoring: bool = False
    approved: List[str] = field(default_factory=list)
    reason: Optional[str] = None


class ProcessSignalUseCase:
    """
    Signal intake: coarse risk pass per candidate strategy, then hand the
    approved set to the entry-price scheduler.
    """

    def __init__(
        self,
        signal_repo: SignalRepository,
        risk_gate: RiskGateService,
        scheduler,
        logger: logging.Logger | None = None,
    ):
        """
        :param scheduler: EntryPriceScheduler (anything exposing start_monitoring).
        """
        self._signals = signal_repo
        self._risk = risk_gate
        self._scheduler = scheduler
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def _reject(self, signal: SignalEntity, reason: str) -> IntakeResult:
        reason = reason[:MAX_REJECT_REASON_LEN]
        await self._signals.set_reject_reason(signal.signal_id, reason)
        self._logger.info("Signal %s rejected: %s", signal.signal_id, reason)
        return IntakeResult(signal_id=signal.signal_id, accepted=False, reason=reason)

    async def execute(self, signal: SignalEntity, now: Optional[datetime] = None) -> IntakeResult:
        now = now or datetime.now(timezone.utc)

        type_reason = self._risk.check_signal_type(signal)
        if type_reason:
            return await self._reject(signal, type_reason)
        if not signal.contract_address:
            return await self._reject(signal, "No contract address")

        candidates = await self._risk.get_enabled_strategies(signal, now)
        if not candidates:
            return await self._reject(signal, "No enabled strategy follows this signal")

        approved: List[StrategyConfigEntity] = []
        reasons: List[str] = []
        for strategy in candidates:
            res = await self._risk.check_trade_risk(strategy, signal, strategy.trade_amount, now)
            if res.passed:
                approved.append(strategy)
            else:
                reasons.append(f"{strategy.strategy_id}: {res.blocking_reason}")

        if not approved:
            return await self._reject(signal, "; ".join(reasons))

        started = await self._scheduler.start_monitoring(signal, approved)
        self._logger.info(
            "Signal %s approved for %d/%d strategies, monitoring=%s",
            signal.signal_id, len(approved), len(candidates), started,
        )
        return IntakeResult(
            signal_id=signal.signal_id,
            accepted=True,
            monitoring=started,
            approved=[s.strategy_id for s in approved],
        )

    async def restore_active_signals(self, now: Optional[datetime] = None) -> int:
        """
        Re-run intake for ACTIVE, unexpired LONG/BUY signals (process restart).
        Returns how many monitors were started.
        """
        now = now or datetime.now(timezone.utc)
        started = 0
        for row in await self._signals.list_active():
            try:
                signal = SignalEntity(**row)
            except Exception as exc:
                self._logger.warning("Skipping malformed signal %s: %s", row.get("signal_id"), exc)
                continue
            if signal.status != SignalStatus.ACTIVE or not signal.is_tradable_type:
                continue
            if signal.expires_at is not None and signal.expires_at <= now:
                continue
            try:
                res = await self.execute(signal, now)
            except Exception:
                self._logger.exception("Restore failed for %s", signal.signal_id)
                continue
            if res.monitoring:
                started += 1
        self._logger.info("Restored %d signal monitor(s)", started)
        return started
