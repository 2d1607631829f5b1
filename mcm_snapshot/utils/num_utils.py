"""
MCM Snapshot - Numeric Coercion
Upstream values arrive as strings, numbers or junk; downstream only ever sees finite floats or None.
"""

import math
from typing import Any, Optional


def to_num(v: Any) -> Optional[float]:
    """Coerce to a finite float; anything else (None, "", NaN, inf, junk) is None"""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str) and not v.strip():
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def first_num(*values: Any) -> Optional[float]:
    """First value that coerces to a finite float"""
    for v in values:
        n = to_num(v)
        if n is not None:
            return n
    return None
