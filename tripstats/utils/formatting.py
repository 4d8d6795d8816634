"""Compact number, duration and text formatting shared by analytics and renderers."""

from __future__ import annotations

import math


def format_tokens(count: float) -> str:
    """Render token counts as ``1.2M``, ``15.0K`` or ``750``."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return f"{round(count)}"


def format_percent(value: float) -> str:
    """Whole percentages without a trailing ``.0``."""
    if float(value).is_integer():
        return f"{int(value)}"
    return f"{value:.1f}"


def format_cost(value: float) -> str:
    if value >= 100:
        return f"${value:,.0f}"
    return f"${value:.2f}"


def format_duration(seconds: float) -> str:
    """Session length as ``<1m``, ``45m``, ``2h`` or ``1h 30m``."""
    if seconds < 60:
        return "<1m"
    total_minutes = int(seconds // 60)
    if total_minutes < 60:
        return f"{total_minutes}m"
    hours, minutes = divmod(total_minutes, 60)
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def format_elapsed(seconds: float) -> str:
    """Task run time as ``<1s``, ``5s``, ``2m`` or ``1m 30s``."""
    if seconds < 1:
        return "<1s"
    total_seconds = math.floor(seconds + 0.5)
    if total_seconds < 60:
        return f"{total_seconds}s"
    minutes, rest = divmod(total_seconds, 60)
    if rest == 0:
        return f"{minutes}m"
    return f"{minutes}m {rest}s"


def truncate_path(path: str, levels: int = 1) -> str:
    """Keep the last ``levels`` components of a slash-separated path."""
    parts = [part for part in path.split("/") if part]
    return "/".join(parts[-levels:]) if parts else ""


def truncate_content(content: str, max_len: int = 50) -> str:
    if len(content) <= max_len:
        return content
    return content[: max_len - 3] + "..."
