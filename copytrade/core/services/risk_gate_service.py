import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from ...config import Settings, get_settings
from ..domain.chains import get_chain_profile
from ..domain.entities.risk_entity import RiskFinding, RiskResult
from ..domain.entities.signal_entity import SignalEntity
from ..domain.entities.strategy_config_entity import StrategyConfigEntity
from ..domain.enums.execution_enums import ExitType
from ..domain.enums.strategy_enums import FollowStrategy, RiskLevel
from ..gateways.chain_gateway import ChainGateway
from ..gateways.market_data_gateway import MarketDataGateway
from ..repositories.execution_repository import ExecutionRepository
from ..repositories.position_repository import PositionRepository
from ..repositories.strategy_config_repository import StrategyConfigRepository
from .utils import normalize_token_symbol

TWITTER_PREFIX = "TWSIG-"
TELEGRAM_PREFIX = "TGSIG-"
RANGE_ID_PREFIX = "RANGE-"
RANGE_SOURCE_PREFIX = "RANGE_"

SOCIAL_MAX_AGE_MIN = 20.0
RANGE_MAX_AGE_MIN = 240.0

DEFAULT_MIN_CONFIDENCE = {
    FollowStrategy.TOP_SIGNALS: 80.0,
    FollowStrategy.FUSION: 70.0,
}

NATIVE_DECIMALS = 18


@dataclass
class BalanceCheck:
    passed: bool
    reason: Optional[str]
    stable_balance: Decimal
    gas_balance: Decimal


def strategies_for_signal_id(signal_id: str) -> List[str]:
    """
    Follow-strategy variants that can ever accept a signal with this id.
    """
    if signal_id.startswith(TELEGRAM_PREFIX):
        variants = [FollowStrategy.TELEGRAM, FollowStrategy.FUSION, FollowStrategy.MEME]
    elif signal_id.startswith(TWITTER_PREFIX):
        variants = [FollowStrategy.TWITTER_KOL, FollowStrategy.FUSION, FollowStrategy.MEME]
    elif signal_id.startswith(RANGE_ID_PREFIX):
        variants = [FollowStrategy.RANGE]
    else:
        variants = [FollowStrategy.TOP_SIGNALS, FollowStrategy.WHITELIST, FollowStrategy.FUSION, FollowStrategy.ALL]
    return [v.value for v in variants]


class RiskGateService:
    """
    Validates one prospective trade of one strategy.

    Checks run in a fixed order and stop at the first blocking failure
    (CRITICAL, or an INFO follow-strategy mismatch). HIGH / MEDIUM findings
    are advisory and only accumulate.

    The same call serves the coarse pass at signal intake and the fresh
    re-check right before execution.
    """

    def __init__(
        self,
        strategy_repo: StrategyConfigRepository,
        execution_repo: ExecutionRepository,
        position_repo: PositionRepository,
        chain: ChainGateway,
        market_data: MarketDataGateway,
        settings: Optional[Settings] = None,
        logger: logging.Logger | None = None,
    ):
        self._strategies = strategy_repo
        self._executions = execution_repo
        self._positions = position_repo
        self._chain = chain
        self._market = market_data
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    # ---------- signal / strategy matching ----------

    @staticmethod
    def check_signal_type(signal: SignalEntity) -> Optional[str]:
        if not signal.signal_type:
            return "Signal type not set"
        if not signal.is_tradable_type:
            return f"Unsupported signal type: {signal.signal_type} (Only LONG/BUY supported)"
        return None

    @staticmethod
    def _confidence_threshold(strategy: StrategyConfigEntity) -> float:
        # an explicit 0 means "accept any confidence"
        if strategy.min_confidence is not None:
            return strategy.min_confidence
        return DEFAULT_MIN_CONFIDENCE[strategy.follow_strategy]

    @staticmethod
    def _too_old(signal: SignalEntity, now: datetime, limit_min: float, label: str) -> Optional[str]:
        age = signal.age_minutes(now)
        if age is not None and age > limit_min:
            return f"{label} signal too old: {age:.1f} min (limit {limit_min:.0f} min)"
        return None

    def check_follow_strategy(
        self,
        strategy: StrategyConfigEntity,
        signal: SignalEntity,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        None when the strategy variant accepts the signal, otherwise the reason.
        """
        now = now or datetime.now(timezone.utc)
        fs = strategy.follow_strategy
        sid = signal.signal_id
        source = signal.signal_source or ""

        if fs == FollowStrategy.ALL:
            return None

        if fs == FollowStrategy.WHITELIST:
            if not strategy.whitelist:
                return None
            if normalize_token_symbol(signal.token_symbol) in strategy.whitelist:
                return None
            return f"{signal.token_symbol} not in whitelist (only: {', '.join(sorted(strategy.whitelist))})"

        if fs == FollowStrategy.TOP_SIGNALS:
            threshold = self._confidence_threshold(strategy)
            if signal.confidence < threshold:
                return f"Confidence {signal.confidence:g}% below threshold {threshold:g}%"
            return None

        if fs == FollowStrategy.TWITTER_KOL:
            if not sid.startswith(TWITTER_PREFIX):
                return "TWITTER_KOL strategy only follows Twitter signals"
            return self._too_old(signal, now, SOCIAL_MAX_AGE_MIN, "Twitter")

        if fs == FollowStrategy.TELEGRAM:
            if not sid.startswith(TELEGRAM_PREFIX):
                return "TELEGRAM strategy only follows Telegram group signals"
            return self._too_old(signal, now, SOCIAL_MAX_AGE_MIN, "Telegram")

        if fs == FollowStrategy.MEME:
            if sid.startswith(TWITTER_PREFIX):
                return self._too_old(signal, now, SOCIAL_MAX_AGE_MIN, "Twitter")
            if sid.startswith(TELEGRAM_PREFIX):
                return self._too_old(signal, now, SOCIAL_MAX_AGE_MIN, "Telegram")
            return "MEME strategy only follows Twitter/Telegram contract signals"

        if fs == FollowStrategy.FUSION:
            if sid.startswith(TWITTER_PREFIX):
                return self._too_old(signal, now, SOCIAL_MAX_AGE_MIN, "Twitter")
            threshold = self._confidence_threshold(strategy)
            if signal.confidence < threshold:
                return f"FUSION confidence {signal.confidence:g}% below threshold {threshold:g}%"
            return None

        if fs == FollowStrategy.RANGE:
            if not (sid.startswith(RANGE_ID_PREFIX) or source.startswith(RANGE_SOURCE_PREFIX)):
                return "RANGE strategy only follows range trading signals"
            return self._too_old(signal, now, RANGE_MAX_AGE_MIN, "Range")

        return f"Unknown strategy: {fs}"

    # ---------- balances ----------

    async def check_balance(
        self,
        strategy: StrategyConfigEntity,
        chain: str,
        trade_amount: Decimal,
    ) -> BalanceCheck:
        """
        Stable balance summed over every recognized stable of the chain,
        each scaled by its own decimals, plus the native gas balance.
        """
        zero = Decimal(0)
        if not strategy.wallet_address:
            return BalanceCheck(False, "Wallet address not configured", zero, zero)

        profile = get_chain_profile(chain)
        wallet = strategy.wallet_address

        stable_total = zero
        for st in profile.stables:
            try:
                raw = await self._chain.get_erc20_balance(profile.name, st.address, wallet)
            except Exception as exc:
                self._logger.warning("balanceOf %s failed for %s: %s", st.symbol, wallet, exc)
                continue
            stable_total += Decimal(int(raw)) / (Decimal(10) ** st.decimals)

        gas_raw = await self._chain.get_native_balance(profile.name, wallet)
        gas = Decimal(int(gas_raw)) / (Decimal(10) ** NATIVE_DECIMALS)

        trade_amount = Decimal(trade_amount)
        if stable_total < trade_amount:
            return BalanceCheck(
                False,
                f"Insufficient stable balance: available ${stable_total:.2f}, need ${trade_amount:.2f}",
                stable_total,
                gas,
            )
        if gas < profile.min_gas_balance:
            return BalanceCheck(
                False,
                f"Insufficient gas balance: {gas:.6f} {profile.native_symbol}, need at least {profile.min_gas_balance}",
                stable_total,
                gas,
            )
        return BalanceCheck(True, None, stable_total, gas)

    # ---------- circuit breaker ----------

    async def trigger_circuit_breaker(
        self,
        strategy: StrategyConfigEntity,
        reason: str,
        now: Optional[datetime] = None,
    ) -> datetime:
        now = now or datetime.now(timezone.utc)
        paused_until = now + timedelta(minutes=self._settings.CIRCUIT_BREAKER_MINUTES)
        await self._strategies.set_pause(strategy.strategy_id, paused_until, reason)
        self._logger.warning(
            "Circuit breaker tripped for strategy=%s user=%s until %s: %s",
            strategy.strategy_id, strategy.user_id, paused_until.isoformat(), reason,
        )
        return paused_until

    async def check_consecutive_stop_losses(
        self,
        strategy: StrategyConfigEntity,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Pause the strategy when the user's latest N exits were all stop losses.
        Returns True when the breaker was tripped by this call.
        """
        now = now or datetime.now(timezone.utc)
        streak_limit = self._settings.CIRCUIT_BREAKER_STOP_LOSS_STREAK
        exits = await self._executions.recent_exit_types(strategy.user_id, limit=10)

        streak = 0
        for exit_type in exits:
            if exit_type != ExitType.STOP_LOSS.value:
                break
            streak += 1

        if streak < streak_limit or strategy.is_paused(now):
            return False
        await self.trigger_circuit_breaker(strategy, f"{streak} consecutive stop losses", now)
        return True

    async def unpause(self, strategy_id: str) -> bool:
        cleared = await self._strategies.clear_pause(strategy_id)
        if cleared:
            self._logger.info("Strategy %s unpaused", strategy_id)
        return cleared

    async def release_expired_pauses(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        n = await self._strategies.release_expired_pauses(now)
        if n:
            self._logger.info("Released %d expired circuit-breaker pauses", n)
        return n

    # ---------- candidates ----------

    async def get_enabled_strategies(
        self,
        signal: SignalEntity,
        now: Optional[datetime] = None,
    ) -> List[StrategyConfigEntity]:
        now = now or datetime.now(timezone.utc)

        if signal.strategy_id:
            row = await self._strategies.get(signal.strategy_id)
            if not row:
                self._logger.info("Pinned strategy %s not found", signal.strategy_id)
                return []
            strategy = StrategyConfigEntity(**row)
            if not strategy.enabled or strategy.is_paused(now):
                return []
            return [strategy]

        rows = await self._strategies.list_enabled(strategies_for_signal_id(signal.signal_id), now)
        out: List[StrategyConfigEntity] = []
        for row in rows:
            strategy = StrategyConfigEntity(**row)
            if strategy.is_paused(now):
                continue
            if signal.chain.upper() not in {c.upper() for c in strategy.chains}:
                continue
            out.append(strategy)
        return out

    # ---------- main entry ----------

    async def check_trade_risk(
        self,
        strategy: StrategyConfigEntity,
        signal: SignalEntity,
        trade_amount: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> RiskResult:
        now = now or datetime.now(timezone.utc)
        amount = Decimal(trade_amount if trade_amount is not None else strategy.trade_amount)
        risks: List[RiskFinding] = []

        def reject(level: RiskLevel, reason: str) -> RiskResult:
            risks.append(RiskFinding(level=level, reason=reason))
            self._logger.info(
                "Risk reject strategy=%s signal=%s [%s] %s",
                strategy.strategy_id, signal.signal_id, level.value, reason,
            )
            return RiskResult(passed=False, risks=risks)

        try:
            # 1. enabled + signal type
            if not strategy.enabled:
                return reject(RiskLevel.CRITICAL, "Auto trading not enabled")
            type_reason = self.check_signal_type(signal)
            if type_reason:
                return reject(RiskLevel.CRITICAL, type_reason)

            # 2. follow strategy
            follow_reason = self.check_follow_strategy(strategy, signal, now)
            if follow_reason:
                return reject(RiskLevel.INFO, follow_reason)

            # 3. circuit breaker
            if strategy.is_paused(now):
                reason = f"Account paused until {strategy.paused_until.isoformat()}"
                if strategy.pause_reason:
                    reason = f"{reason}: {strategy.pause_reason}"
                return reject(RiskLevel.CRITICAL, reason)

            # 4. live balance
            balance = await self.check_balance(strategy, signal.chain, amount)
            if not balance.passed:
                return reject(RiskLevel.CRITICAL, balance.reason or "Balance check failed")

            # 5. open positions
            holding = await self._positions.count_holding_for_user(strategy.user_id)
            if holding >= strategy.max_positions:
                return reject(RiskLevel.CRITICAL, f"Max positions reached: {holding}/{strategy.max_positions}")

            # 6. per-trade ceiling
            if amount > strategy.max_trade_amount:
                return reject(
                    RiskLevel.CRITICAL,
                    f"Trade amount ${amount} exceeds limit ${strategy.max_trade_amount}",
                )

            # 7. daily loss
            loss_reason = await self._check_daily_loss(strategy, now)
            if loss_reason:
                return reject(RiskLevel.CRITICAL, loss_reason)

            # 8. blacklist / whitelist
            list_reason = self._check_symbol_lists(strategy, signal.token_symbol)
            if list_reason:
                return reject(RiskLevel.CRITICAL, list_reason)

            # 9. liquidity (advisory)
            if self._settings.RISK_LIQUIDITY_CHECK_ENABLED:
                liq_reason = await self._check_liquidity(strategy, signal)
                if liq_reason:
                    risks.append(RiskFinding(level=RiskLevel.HIGH, reason=liq_reason))

            # 10. concentration (advisory)
            conc_reason = await self._check_concentration(strategy, signal, amount, balance.stable_balance)
            if conc_reason:
                risks.append(RiskFinding(level=RiskLevel.MEDIUM, reason=conc_reason))

        except Exception as exc:
            self._logger.exception("Risk check error strategy=%s signal=%s", strategy.strategy_id, signal.signal_id)
            return RiskResult(
                passed=False,
                risks=[RiskFinding(level=RiskLevel.CRITICAL, reason=f"Risk check failed: {exc}")],
            )

        if risks:
            self._logger.info(
                "Risk passed with warnings strategy=%s signal=%s: %s",
                strategy.strategy_id, signal.signal_id, "; ".join(r.reason for r in risks),
            )
        return RiskResult(passed=True, risks=risks)

    # ---------- individual checks ----------

    async def _check_daily_loss(self, strategy: StrategyConfigEntity, now: datetime) -> Optional[str]:
        day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        pnl, notional = await self._executions.daily_pnl(strategy.user_id, day_start)
        if notional <= 0:
            return None

        pct = float(Decimal(pnl) / Decimal(notional) * 100)
        limit = strategy.daily_loss_limit_pct
        if pct > limit:
            return None

        reason = f"Daily loss limit reached: {pct:.2f}% <= {limit:g}%"
        if not strategy.is_paused(now):
            await self.trigger_circuit_breaker(strategy, reason, now)
        return reason

    @staticmethod
    def _check_symbol_lists(strategy: StrategyConfigEntity, token_symbol: str) -> Optional[str]:
        normalized = normalize_token_symbol(token_symbol)
        if normalized in strategy.blacklist:
            return f"Token blacklisted: {token_symbol} ({normalized})"
        if strategy.whitelist and normalized not in strategy.whitelist:
            return f"{token_symbol} not in whitelist (only: {', '.join(sorted(strategy.whitelist))})"
        return None

    async def _check_liquidity(self, strategy: StrategyConfigEntity, signal: SignalEntity) -> Optional[str]:
        try:
            liq: Optional[Dict] = await self._market.get_liquidity(
                signal.token_symbol, signal.chain, signal.contract_address
            )
        except Exception as exc:
            return f"Liquidity check failed: {exc}"

        if not liq or not liq.get("is_eligible"):
            return f"Insufficient liquidity: {signal.token_symbol}"
        tvl = Decimal(str(liq.get("tvl") or 0))
        if tvl < strategy.min_liquidity_required:
            return f"Liquidity ${tvl:,.0f} < required ${strategy.min_liquidity_required:,.0f}"
        return None

    async def _check_concentration(
        self,
        strategy: StrategyConfigEntity,
        signal: SignalEntity,
        amount: Decimal,
        balance: Decimal,
    ) -> Optional[str]:
        if balance <= 0:
            return None
        existing = await self._executions.open_notional_for_token(strategy.user_id, signal.token_symbol)
        pct = (Decimal(existing) + amount) / balance * 100
        if pct > Decimal(str(strategy.single_token_max_percent)):
            return f"Single token position too large: {pct:.2f}% > {strategy.single_token_max_percent:g}%"
        return None
