"""Lightweight parsing helpers for permissive type coercion."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def coerce_int(value: object) -> int:
    """Best-effort integer conversion; 0 on failure."""
    try:
        if value is None:
            return 0
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError, OverflowError):
        return 0


def coerce_count(value: object) -> int:
    """Token counters are never negative."""
    return max(0, coerce_int(value))


def coerce_float(value: object) -> float:
    """Best-effort float conversion; 0.0 on failure or non-finite input."""
    try:
        if value is None:
            return 0.0
        if isinstance(value, bool):
            return float(int(value))
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def parse_optional_float(value: object) -> Optional[float]:
    """Best-effort float parsing; returns None on failure."""
    try:
        if value is None or isinstance(value, bool):
            return None
        result = float(str(value).strip())
    except (ValueError, TypeError):
        return None
    return result if math.isfinite(result) else None


def parse_iso_datetime(raw: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) as an aware datetime."""
    if not isinstance(raw, str) or not raw:
        return None
    try:
        dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
