import pytest

from copytrade.core.services.risk_gate_service import RiskGateService, strategies_for_signal_id

from fakes import FakeChain, FakeExecutionRepo, FakeMarket, FakePositionRepo, FakeStrategyRepo, make_settings, make_signal, make_strategy, minutes_ago


@pytest.fixture
def gate():
    return RiskGateService(
        FakeStrategyRepo(), FakeExecutionRepo(), FakePositionRepo(), FakeChain(), FakeMarket(),
        settings=make_settings(),
    )


def test_all_accepts_everything(gate):
    assert gate.check_follow_strategy(make_strategy(follow_strategy="ALL"), make_signal(confidence=0)) is None


def test_whitelist_normalizes_pair_symbols(gate):
    strategy = make_strategy(follow_strategy="WHITELIST", whitelist=["lab"])
    assert gate.check_follow_strategy(strategy, make_signal(token_symbol="LABUSDT")) is None
    reason = gate.check_follow_strategy(strategy, make_signal(token_symbol="PEPE"))
    assert reason == "PEPE not in whitelist (only: LAB)"


def test_top_signals_threshold(gate):
    strategy = make_strategy(follow_strategy="TOP_SIGNALS")
    assert gate.check_follow_strategy(strategy, make_signal(confidence=80)) is None
    assert "below threshold" in gate.check_follow_strategy(strategy, make_signal(confidence=79.5))

    custom = make_strategy(follow_strategy="TOP_SIGNALS", min_confidence=60)
    assert gate.check_follow_strategy(custom, make_signal(confidence=65)) is None


@pytest.mark.parametrize("variant", ["TOP_SIGNALS", "FUSION"])
def test_zero_min_confidence_accepts_everything(gate, variant):
    strategy = make_strategy(follow_strategy=variant, min_confidence=0)
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="ALPHA-1", confidence=0)) is None


def test_twitter_kol_requires_fresh_twitter_signal(gate):
    strategy = make_strategy(follow_strategy="TWITTER_KOL")
    fresh = make_signal(signal_id="TWSIG-1", created_at=minutes_ago(5))
    stale = make_signal(signal_id="TWSIG-2", created_at=minutes_ago(30))
    other = make_signal(signal_id="TGSIG-3")

    assert gate.check_follow_strategy(strategy, fresh) is None
    assert gate.check_follow_strategy(strategy, stale).startswith("Twitter signal too old")
    assert gate.check_follow_strategy(strategy, other) == "TWITTER_KOL strategy only follows Twitter signals"


def test_telegram_only_follows_groups(gate):
    strategy = make_strategy(follow_strategy="TELEGRAM")
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="TGSIG-1")) is None
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="TWSIG-1")) is not None


def test_meme_follows_social_contract_signals(gate):
    strategy = make_strategy(follow_strategy="MEME")
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="TWSIG-1")) is None
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="TGSIG-1")) is None
    assert "only follows" in gate.check_follow_strategy(strategy, make_signal(signal_id="ALPHA-1"))


def test_fusion_skips_confidence_for_twitter(gate):
    strategy = make_strategy(follow_strategy="FUSION")
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="TWSIG-1", confidence=10)) is None
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="ALPHA-1", confidence=70)) is None
    assert "FUSION confidence" in gate.check_follow_strategy(strategy, make_signal(signal_id="ALPHA-1", confidence=69))


def test_range_accepts_id_or_source(gate):
    strategy = make_strategy(follow_strategy="RANGE")
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="RANGE-1")) is None
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="X-1", signal_source="RANGE_SCANNER")) is None
    old = make_signal(signal_id="RANGE-2", created_at=minutes_ago(300))
    assert gate.check_follow_strategy(strategy, old).startswith("Range signal too old")
    assert gate.check_follow_strategy(strategy, make_signal(signal_id="X-2")) is not None


def test_candidate_variants_by_prefix():
    assert strategies_for_signal_id("TGSIG-1") == ["TELEGRAM", "FUSION", "MEME"]
    assert strategies_for_signal_id("TWSIG-1") == ["TWITTER_KOL", "FUSION", "MEME"]
    assert strategies_for_signal_id("RANGE-1") == ["RANGE"]
    assert "ALL" in strategies_for_signal_id("LISTING-1")
