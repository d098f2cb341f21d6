import json
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Set, Tuple

from hexbytes import HexBytes
from web3 import Web3

# quote suffixes stripped from pair-style symbols (LABUSDT -> LAB)
SYMBOL_QUOTE_SUFFIXES = ("USDT", "BUSD", "BTC", "ETH", "BNB")


def now_ms() -> int:
    return int(time.time() * 1000)


def now_ms_iso() -> Tuple[int, str]:
    ms = now_ms()
    iso = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    return ms, iso


def normalize_token_symbol(symbol: str) -> str:
    """
    Upper-cases and strips one quote suffix from a pair-style symbol.
    A symbol that IS a suffix (e.g. "ETH") is returned untouched.
    """
    if not symbol:
        return symbol
    s = symbol.strip().upper()
    for suffix in SYMBOL_QUOTE_SUFFIXES:
        if s.endswith(suffix) and len(s) > len(suffix):
            return s[: -len(suffix)]
    return s


def parse_symbol_set(raw: Any) -> Set[str]:
    """
    Single parser for whitelist / blacklist values as they come out of the
    store. Accepts:

    - None / ""            -> empty set
    - list / tuple / set   -> each item
    - JSON array string    -> '["LAB", "PEPE"]'
    - comma string         -> "LAB, pepe ,"

    Every entry is normalized with normalize_token_symbol.
    """
    if raw is None:
        return set()

    items: Iterable[Any]
    if isinstance(raw, (list, tuple, set, frozenset)):
        items = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return set()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except ValueError:
                decoded = None
            items = decoded if isinstance(decoded, list) else text.strip("[]").split(",")
        else:
            items = text.split(",")
    else:
        raise TypeError(f"Unsupported symbol list type: {type(raw).__name__}")

    out: Set[str] = set()
    for it in items:
        if it is None:
            continue
        sym = str(it).strip().strip('"').strip("'")
        if sym:
            out.add(normalize_token_symbol(sym))
    return out


def to_json_safe(obj: Any) -> Any:
    """
    Recursively convert web3 / HexBytes-heavy structures into plain
    JSON-serializable primitives.

    - HexBytes -> "0x..." str
    - bytes    -> "0x..." str
    - dict     -> {k: to_json_safe(v)}
    - list/tuple -> [to_json_safe(v), ...]
    - big ints are kept as str so Mongo (int64) does not reject them
    """
    if isinstance(obj, HexBytes):
        return Web3.to_hex(obj)

    if isinstance(obj, (bytes, bytearray)):
        return "0x" + obj.hex()

    if isinstance(obj, bool) or obj is None:
        return obj

    if isinstance(obj, int):
        return obj if -(2 ** 63) <= obj < 2 ** 63 else str(obj)

    if isinstance(obj, (str, float)):
        return obj

    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for (k, v) in obj.items()}

    if isinstance(obj, (list, tuple, set)):
        return [to_json_safe(v) for v in obj]

    return str(obj)
