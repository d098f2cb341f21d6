import asyncio
from datetime import datetime, timedelta, timezone

from copytrade.core.domain.enums.signal_enums import MonitorState
from copytrade.workers.entry_price_scheduler import (
    EntryPriceScheduler,
    PriceDeviationPolicy,
    calculate_distance,
)

from fakes import FakeSignalRepo, FakeWhitelistRepo, make_settings, make_signal, make_strategy


class RecordingExecutor:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def execute_batch_trades(self, signal, strategies, trigger_price):
        self.calls.append((signal.signal_id, [s.strategy_id for s in strategies], trigger_price))
        if self.error:
            raise self.error


def _scheduler(prices, executor=None, whitelist=None, policy=None, interval=0.0):
    signals = FakeSignalRepo(prices=prices)
    sched = EntryPriceScheduler(
        signal_repo=signals,
        whitelist_repo=whitelist or FakeWhitelistRepo(),
        batch_executor=executor or RecordingExecutor(),
        deviation_policy=policy,
        poll_interval_sec=interval,
        settings=make_settings(),
    )
    return sched, signals


async def _watch(sched, signal, strategies=None):
    started = await sched.start_monitoring(signal, strategies or [make_strategy()])
    monitor = await sched.registry.get(signal.signal_id)
    await asyncio.wait_for(monitor.task, timeout=5)
    return started, monitor


def test_triggers_on_second_tick_with_band_price():
    executor = RecordingExecutor()
    sched, signals = _scheduler([0.95, 1.05], executor=executor)

    started, monitor = asyncio.run(_watch(sched, make_signal()))

    assert started is True
    assert monitor.ticks == 2
    assert monitor.state == MonitorState.TRIGGERED
    assert executor.calls == [("S1", ["ST-U1"], 1.05)]
    assert ("S1", "TRIGGERED", None) in signals.status_updates
    assert len(sched.registry) == 0


def test_falls_back_to_whitelist_price():
    whitelist = FakeWhitelistRepo({("LAB", "BSC"): {"price": 1.02}})
    executor = RecordingExecutor()
    sched, _ = _scheduler([], executor=executor, whitelist=whitelist)
    asyncio.run(_watch(sched, make_signal()))
    assert executor.calls[0][2] == 1.02


def test_expired_signal_never_trades():
    executor = RecordingExecutor()
    sched, signals = _scheduler([1.05], executor=executor)
    past = datetime.now(timezone.utc) - timedelta(seconds=1)

    _, monitor = asyncio.run(_watch(sched, make_signal(expires_at=past)))

    assert monitor.state == MonitorState.EXPIRED
    assert executor.calls == []
    assert signals.status_updates == [("S1", "EXPIRED", None)]


def test_deviation_policy_skips_signal():
    policy = PriceDeviationPolicy(enabled=True, above_pct=10, below_pct=10)
    executor = RecordingExecutor()
    sched, signals = _scheduler([1.5], executor=executor, policy=policy)

    _, monitor = asyncio.run(_watch(sched, make_signal()))

    assert monitor.state == MonitorState.SKIPPED
    assert executor.calls == []
    sid, status, reason = signals.status_updates[-1]
    assert status == "SKIPPED"
    assert "above entry band" in reason


def test_executor_error_is_recorded_on_signal():
    sched, signals = _scheduler([1.05], executor=RecordingExecutor(error=RuntimeError("Liquidity too low")))
    asyncio.run(_watch(sched, make_signal()))
    assert signals.reject_reasons["S1"] == "Liquidity too low"


def test_one_monitor_per_signal_and_token():
    sched, _ = _scheduler([], interval=0.01)

    async def run():
        first = await sched.start_monitoring(make_signal(), [make_strategy()])
        same_signal = await sched.start_monitoring(make_signal(), [make_strategy()])
        same_token = await sched.start_monitoring(make_signal(signal_id="S2"), [make_strategy()])
        other_token = await sched.start_monitoring(make_signal(signal_id="S3", token_symbol="PEPE"), [make_strategy()])
        status = await sched.get_monitor_status()
        stopped = await sched.stop_monitoring("S1")
        remaining = await sched.stop_all()
        return first, same_signal, same_token, other_token, status, stopped, remaining

    first, same_signal, same_token, other_token, status, stopped, remaining = asyncio.run(run())
    assert (first, same_signal, same_token, other_token) == (True, False, False, True)
    assert status["active_count"] == 2
    assert stopped is True
    assert remaining == 1
    assert len(sched.registry) == 0


def test_distance_labels():
    signal = make_signal(entry_min=1.0, entry_max=1.1)
    assert calculate_distance(1.05, signal) == "in range"
    assert calculate_distance(1.21, signal) == "+10.00% above"
    assert calculate_distance(0.9, signal) == "-10.00% below"


def test_policy_disabled_by_default():
    assert PriceDeviationPolicy().evaluate(100.0, 1.0, 1.1) is None
    policy = PriceDeviationPolicy(enabled=True, above_pct=5, below_pct=20)
    assert policy.evaluate(1.16, 1.0, 1.1) is not None
    assert policy.evaluate(0.81, 1.0, 1.1) is None
    assert "below entry band" in policy.evaluate(0.79, 1.0, 1.1)
