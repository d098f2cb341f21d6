import pytest

from copytrade.config import _env_bool, _env_json, get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch):
    for name in ("BATCH_MIN_TVL_USD", "TOKEN_COOLDOWN_HOURS", "SIGNER_KEYS_JSON", "BATCH_LIQUIDITY_FLOOR_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    s = get_settings()
    assert s.BATCH_MIN_TVL_USD == "50000"
    assert s.TOKEN_COOLDOWN_HOURS == 24
    assert s.BATCH_LIQUIDITY_FLOOR_ENABLED is True
    assert s.SIGNER_KEYS == {}


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("BATCH_INTERVAL_SEC", "2.5")
    monkeypatch.setenv("RISK_LIQUIDITY_CHECK_ENABLED", "false")
    monkeypatch.setenv("SIGNER_KEYS_JSON", '{"U1": "0xabc"}')
    s = get_settings()
    assert s.BATCH_INTERVAL_SEC == 2.5
    assert s.RISK_LIQUIDITY_CHECK_ENABLED is False
    assert s.SIGNER_KEYS == {"U1": "0xabc"}


def test_settings_are_cached():
    assert get_settings() is get_settings()


@pytest.mark.parametrize("raw,expected", [("1", True), ("Yes", True), ("on", True), ("0", False), ("nope", False), ("", True)])
def test_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("SOME_FLAG", raw)
    assert _env_bool("SOME_FLAG", True) is expected


@pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
def test_env_json_ignores_garbage(monkeypatch, raw):
    monkeypatch.setenv("SOME_JSON", raw)
    assert _env_json("SOME_JSON") == {}
