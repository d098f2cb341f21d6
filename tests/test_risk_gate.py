import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from copytrade.core.domain.enums.strategy_enums import RiskLevel
from copytrade.core.services.risk_gate_service import RiskGateService

from fakes import (
    WALLET_1,
    FakeChain,
    FakeExecutionRepo,
    FakeMarket,
    FakePositionRepo,
    FakeStrategyRepo,
    make_settings,
    make_signal,
    make_strategy,
)


def _gate(chain=None, market=None, executions=None, positions=None, strategies=None, **settings):
    chain = chain or FakeChain()
    return RiskGateService(
        strategy_repo=strategies or FakeStrategyRepo(),
        execution_repo=executions or FakeExecutionRepo(),
        position_repo=positions or FakePositionRepo(),
        chain=chain,
        market_data=market or FakeMarket(),
        settings=make_settings(**settings),
    )


def _funded_chain(usd=1_000):
    chain = FakeChain()
    chain.fund(WALLET_1, amount_usd=usd)
    return chain


class TestSignalType:
    def test_short_signal_rejected(self):
        gate = _gate(chain=_funded_chain())
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal(signal_type="SHORT")))
        assert res.passed is False
        assert "Only LONG/BUY supported" in res.blocking_reason
        assert res.risks[0].level == RiskLevel.CRITICAL

    def test_buy_signal_passes(self):
        gate = _gate(chain=_funded_chain())
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal(signal_type="buy")))
        assert res.passed is True


class TestOrderedChecks:
    def test_whitelist_strategy_with_empty_whitelist_passes(self):
        gate = _gate(chain=_funded_chain())
        strategy = make_strategy(follow_strategy="WHITELIST", whitelist=[])
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal(token_symbol="ANYTHING")))
        assert res.passed is True

    def test_disabled_strategy(self):
        gate = _gate(chain=_funded_chain())
        res = asyncio.run(gate.check_trade_risk(make_strategy(enabled=False), make_signal()))
        assert res.passed is False
        assert res.blocking_reason == "Auto trading not enabled"

    def test_follow_mismatch_is_info(self):
        gate = _gate(chain=_funded_chain())
        strategy = make_strategy(follow_strategy="TOP_SIGNALS")
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal(confidence=50)))
        assert res.passed is False
        assert res.risks[-1].level == RiskLevel.INFO
        assert "below threshold 80%" in res.blocking_reason

    def test_paused_strategy(self):
        gate = _gate(chain=_funded_chain())
        until = datetime.now(timezone.utc) + timedelta(minutes=30)
        strategy = make_strategy(paused_until=until, pause_reason="3 consecutive stop losses")
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal()))
        assert res.passed is False
        assert res.blocking_reason.startswith("Account paused until")
        assert res.blocking_reason.endswith("3 consecutive stop losses")

    def test_missing_wallet(self):
        gate = _gate(chain=_funded_chain())
        res = asyncio.run(gate.check_trade_risk(make_strategy(wallet_address=None), make_signal()))
        assert res.blocking_reason == "Wallet address not configured"

    def test_insufficient_stable_balance(self):
        gate = _gate(chain=_funded_chain(usd=50))
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))
        assert res.passed is False
        assert res.blocking_reason.startswith("Insufficient stable balance")

    def test_insufficient_gas(self):
        chain = FakeChain()
        chain.fund(WALLET_1, amount_usd=1_000, gas_wei=10 ** 15)
        gate = _gate(chain=chain)
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))
        assert res.blocking_reason.startswith("Insufficient gas balance")

    def test_max_positions(self):
        positions = FakePositionRepo(holding_by_user={"U1": 3})
        gate = _gate(chain=_funded_chain(), positions=positions)
        res = asyncio.run(gate.check_trade_risk(make_strategy(max_positions=3), make_signal()))
        assert res.blocking_reason == "Max positions reached: 3/3"

    def test_trade_amount_over_limit(self):
        gate = _gate(chain=_funded_chain())
        strategy = make_strategy(max_trade_amount=Decimal("50"))
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal(), Decimal("100")))
        assert res.blocking_reason == "Trade amount $100 exceeds limit $50"

    def test_daily_loss_trips_breaker(self):
        executions = FakeExecutionRepo()
        executions.daily = (Decimal("-20"), Decimal("100"))
        strategies = FakeStrategyRepo()
        gate = _gate(chain=_funded_chain(), executions=executions, strategies=strategies)

        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))

        assert res.passed is False
        assert res.blocking_reason.startswith("Daily loss limit reached: -20.00%")
        assert len(strategies.pauses) == 1
        assert strategies.pauses[0][0] == "ST-U1"

    def test_daily_loss_without_exits_passes(self):
        gate = _gate(chain=_funded_chain())
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))
        assert res.passed is True

    def test_blacklist_matches_pair_symbol(self):
        gate = _gate(chain=_funded_chain())
        strategy = make_strategy(blacklist='["LAB"]')
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal(token_symbol="LABUSDT")))
        assert res.blocking_reason == "Token blacklisted: LABUSDT (LAB)"

    def test_whitelist_excludes_other_tokens(self):
        gate = _gate(chain=_funded_chain())
        strategy = make_strategy(whitelist="PEPE, DOGE")
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal()))
        assert res.blocking_reason == "LAB not in whitelist (only: DOGE, PEPE)"


class TestAdvisoryChecks:
    def test_low_liquidity_is_high_and_passes(self):
        gate = _gate(
            chain=_funded_chain(),
            market=FakeMarket(tvl=10_000, eligible=False),
            RISK_LIQUIDITY_CHECK_ENABLED=True,
        )
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))
        assert res.passed is True
        assert [r.level for r in res.risks] == [RiskLevel.HIGH]

    def test_liquidity_check_can_be_disabled(self):
        gate = _gate(chain=_funded_chain(), market=FakeMarket(tvl=10_000, eligible=False))
        res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))
        assert res.risks == []

    def test_concentration_is_medium(self):
        executions = FakeExecutionRepo()
        executions.open_notional = Decimal("300")
        gate = _gate(chain=_funded_chain(usd=1_000), executions=executions)
        strategy = make_strategy(single_token_max_percent=30.0)
        res = asyncio.run(gate.check_trade_risk(strategy, make_signal()))
        assert res.passed is True
        assert res.risks[0].level == RiskLevel.MEDIUM
        assert "40.00% > 30%" in res.risks[0].reason


def test_unexpected_error_becomes_critical():
    chain = _funded_chain()

    async def boom(*args):
        raise RuntimeError("rpc down")

    chain.get_native_balance = boom
    gate = _gate(chain=chain)
    res = asyncio.run(gate.check_trade_risk(make_strategy(), make_signal()))
    assert res.passed is False
    assert res.risks[0].level == RiskLevel.CRITICAL
    assert res.blocking_reason == "Risk check failed: rpc down"


class TestCircuitBreaker:
    def test_stop_loss_streak_pauses_strategy(self):
        executions = FakeExecutionRepo()
        executions.exit_types = ["STOP_LOSS", "STOP_LOSS", "STOP_LOSS", "TAKE_PROFIT"]
        strategies = FakeStrategyRepo()
        gate = _gate(executions=executions, strategies=strategies)
        assert asyncio.run(gate.check_consecutive_stop_losses(make_strategy())) is True
        assert strategies.pauses[0][2] == "3 consecutive stop losses"

    def test_streak_broken_by_take_profit(self):
        executions = FakeExecutionRepo()
        executions.exit_types = ["STOP_LOSS", "TAKE_PROFIT", "STOP_LOSS", "STOP_LOSS"]
        strategies = FakeStrategyRepo()
        gate = _gate(executions=executions, strategies=strategies)
        assert asyncio.run(gate.check_consecutive_stop_losses(make_strategy())) is False
        assert strategies.pauses == []

    def test_pause_duration_follows_settings(self):
        strategies = FakeStrategyRepo()
        gate = _gate(strategies=strategies, CIRCUIT_BREAKER_MINUTES=15)
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        until = asyncio.run(gate.trigger_circuit_breaker(make_strategy(), "manual", now))
        assert until == now + timedelta(minutes=15)

    def test_release_and_unpause(self):
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        strategies = FakeStrategyRepo([
            {"strategy_id": "A", "user_id": "U1", "paused_until": past},
            {"strategy_id": "B", "user_id": "U2", "paused_until": future},
        ])
        gate = _gate(strategies=strategies)
        assert asyncio.run(gate.release_expired_pauses()) == 1
        assert strategies.rows["B"]["paused_until"] == future
        assert asyncio.run(gate.unpause("B")) is True
        assert asyncio.run(gate.unpause("B")) is False


class TestEnabledStrategies:
    def test_pinned_strategy_wins(self):
        strategies = FakeStrategyRepo([
            {"strategy_id": "PIN", "user_id": "U9", "follow_strategy": "RANGE"},
            {"strategy_id": "OTHER", "user_id": "U1", "follow_strategy": "ALL"},
        ])
        gate = _gate(strategies=strategies)
        out = asyncio.run(gate.get_enabled_strategies(make_signal(strategy_id="PIN")))
        assert [s.strategy_id for s in out] == ["PIN"]

    def test_filters_variant_pause_and_chain(self):
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        strategies = FakeStrategyRepo([
            {"strategy_id": "ok", "user_id": "U1", "follow_strategy": "ALL"},
            {"strategy_id": "tw", "user_id": "U2", "follow_strategy": "TWITTER_KOL"},
            {"strategy_id": "paused", "user_id": "U3", "follow_strategy": "ALL", "paused_until": future},
            {"strategy_id": "base", "user_id": "U4", "follow_strategy": "ALL", "chains": ["Base"]},
        ])
        gate = _gate(strategies=strategies)
        out = asyncio.run(gate.get_enabled_strategies(make_signal(signal_id="SIG-1")))
        assert [s.strategy_id for s in out] == ["ok"]
