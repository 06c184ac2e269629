"""
PhaseGate Canonical JSON Encoding

Semantically identical review inputs (corpora, profiles, evidence, outcomes)
must produce identical byte representations so their hashes can be replayed.
"""

import json
import math
from decimal import Decimal
from enum import Enum
from typing import Any


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON.

    Rules:
    - Object keys sorted lexicographically (Unicode code point order)
    - Compact separators, UTF-8 without escaping
    - Decimals rendered as strings; enums as their values
    - Sets and frozensets rendered as sorted arrays, other sequences keep order
    - NaN and infinities are rejected

    Raises:
        ValueError: the object holds a value with no canonical form
    """
    text = json.dumps(_prepare(obj), separators=(',', ':'), ensure_ascii=False, allow_nan=False)
    return text.encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    return canonicalize(obj).decode('utf-8')


def _prepare(value: Any) -> Any:
    if isinstance(value, Enum):
        return _prepare(value.value)
    if value is None or isinstance(value, (bool, str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Cannot canonicalize non-finite number: {value}")
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise ValueError(f"Object keys must be strings, got {type(key).__name__}")
        return {key: _prepare(value[key]) for key in sorted(value)}
    if isinstance(value, (set, frozenset)):
        return sorted(_prepare(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_prepare(item) for item in value]
    raise ValueError(f"Cannot canonicalize type: {type(value)}")
