# copytrade/adapters/external/database/mongo_codec.py

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from bson.decimal128 import Decimal128


def to_mongo(obj: Any) -> Any:
    """
    Decimal -> Decimal128, Enum -> value, recursively.
    """
    if isinstance(obj, Decimal):
        return Decimal128(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: to_mongo(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_mongo(v) for v in obj]
    if isinstance(obj, set):
        return sorted(to_mongo(v) for v in obj)
    return obj


def from_mongo(doc: Optional[Dict]) -> Optional[Dict]:
    """
    Strip _id and turn Decimal128 back into Decimal.
    """
    if doc is None:
        return None
    doc.pop("_id", None)
    return _decode(doc)


def _decode(obj: Any) -> Any:
    if isinstance(obj, Decimal128):
        return obj.to_decimal()
    if isinstance(obj, dict):
        return {k: _decode(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_decode(v) for v in obj]
    return obj
