"""Numeric payload parsing for sensor topics.

Payloads are read like a lenient sensor feed: the leading number is taken and
trailing text (units, noise) is ignored, so `"72 bpm"` reads as 72.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass


_FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)
_INT_PREFIX = re.compile(r"[+-]?\d+", re.ASCII)


@dataclass(frozen=True)
class NumericParse:
    ok: bool
    value: float | None = None
    raw: str = ""


def parse_finite(raw: str) -> NumericParse:
    """Parse the leading float of the payload; only finite values succeed."""
    text = (raw or "").strip()
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        return NumericParse(ok=False, raw=text)
    value = float(match.group(0))
    if not math.isfinite(value):
        return NumericParse(ok=False, raw=text)
    return NumericParse(ok=True, value=value, raw=text)


def parse_leading_int(raw: str | None) -> int | None:
    """Leading integer of `raw` (`"3.7"` -> 3, `"3abc"` -> 3), or None."""
    match = _INT_PREFIX.match((raw or "").strip())
    return int(match.group(0)) if match else None
