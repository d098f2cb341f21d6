from datetime import datetime

import pytest

from copytrade.core.services.utils import normalize_token_symbol, now_ms_iso, parse_symbol_set, to_json_safe

from fakes import make_strategy


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, set()),
        ("", set()),
        (["lab", "PEPE"], {"LAB", "PEPE"}),
        ('["LAB", "pepe"]', {"LAB", "PEPE"}),
        ("LAB, pepe ,", {"LAB", "PEPE"}),
        ("[LAB,PEPE]", {"LAB", "PEPE"}),
        (["LABUSDT"], {"LAB"}),
    ],
)
def test_parse_symbol_set(raw, expected):
    assert parse_symbol_set(raw) == expected


def test_parse_symbol_set_rejects_other_types():
    with pytest.raises(TypeError):
        parse_symbol_set(42)


def test_normalize_strips_one_quote_suffix():
    assert normalize_token_symbol("labusdt") == "LAB"
    assert normalize_token_symbol("ETH") == "ETH"
    assert normalize_token_symbol("PEPEBNB") == "PEPE"


def test_strategy_entity_normalizes_lists():
    strategy = make_strategy(whitelist='["lab"]', blacklist="PEPE,DOGE")
    assert strategy.whitelist == {"LAB"}
    assert strategy.blacklist == {"PEPE", "DOGE"}


def test_to_json_safe_keeps_big_ints_as_text():
    out = to_json_safe({"a": b"\x01\x02", "b": [2 ** 70, 5], "c": None})
    assert out == {"a": "0x0102", "b": [str(2 ** 70), 5], "c": None}


def test_timestamp_pair_is_utc_and_consistent():
    ms, iso = now_ms_iso()
    assert iso.endswith("Z")
    parsed = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    assert parsed.utcoffset().total_seconds() == 0
    assert abs(parsed.timestamp() * 1000 - ms) < 1
