"""Status-line payload piped in by the assistant on stdin."""

from __future__ import annotations

import json
from typing import IO, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from tripstats.core.models import ContextHealth, ContextWindow
from tripstats.utils.coerce import coerce_count
from tripstats.utils.log import get_logger

logger = get_logger()

# The assistant reserves this share of the window for autocompaction; its
# own /context display includes it, so percentages here do too.
AUTOCOMPACT_BUFFER_PERCENT = 0.225

UNKNOWN_MODEL = "Unknown"


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CurrentUsage(_Lenient):
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_counts(cls, value: object) -> int:
        return coerce_count(value)


class ContextWindowInput(_Lenient):
    context_window_size: Optional[int] = None
    total_input_tokens: Optional[int] = None
    total_output_tokens: Optional[int] = None
    current_usage: Optional[CurrentUsage] = None

    @field_validator(
        "context_window_size", "total_input_tokens", "total_output_tokens", mode="before"
    )
    @classmethod
    def _coerce_counts(cls, value: object) -> Optional[int]:
        return None if value is None else coerce_count(value)

    @field_validator("current_usage", mode="before")
    @classmethod
    def _usage_object(cls, value: object) -> object:
        return value if isinstance(value, dict) else None


class ModelInput(_Lenient):
    id: Optional[str] = None
    display_name: Optional[str] = None


class StatusLineInput(_Lenient):
    session_id: Optional[str] = None
    transcript_path: Optional[str] = None
    cwd: Optional[str] = None
    model: Optional[ModelInput] = None
    context_window: Optional[ContextWindowInput] = None

    @field_validator("model", "context_window", mode="before")
    @classmethod
    def _nested_object(cls, value: object) -> object:
        return value if isinstance(value, dict) else None

    @property
    def window_size(self) -> int:
        if self.context_window is None or not self.context_window.context_window_size:
            return 0
        return max(0, self.context_window.context_window_size)

    @property
    def context_usage_tokens(self) -> int:
        """Tokens currently occupying the window (fresh input + cache)."""
        usage = self.context_window.current_usage if self.context_window else None
        if usage is None:
            return 0
        return (
            usage.input_tokens
            + usage.cache_creation_input_tokens
            + usage.cache_read_input_tokens
        )

    @property
    def context_percent(self) -> int:
        size = self.window_size
        if size <= 0:
            return 0
        return min(100, round(self.context_usage_tokens / size * 100))

    @property
    def buffered_percent(self) -> int:
        """Usage plus the autocompact reserve, as the assistant displays it."""
        size = self.window_size
        if size <= 0:
            return 0
        buffer = size * AUTOCOMPACT_BUFFER_PERCENT
        return min(100, round((self.context_usage_tokens + buffer) / size * 100))

    def context_window_snapshot(self) -> Optional[ContextWindow]:
        size = self.window_size
        if size <= 0:
            return None
        percent = self.buffered_percent
        return ContextWindow(
            size=size,
            usage=self.context_usage_tokens,
            usage_percent=percent,
            health_status=ContextHealth.for_percent(percent),
        )

    @property
    def model_name(self) -> str:
        if self.model is not None:
            if self.model.display_name:
                return self.model.display_name
            if self.model.id:
                return self.model.id
        return UNKNOWN_MODEL


def parse_status_input(raw: str) -> Optional[StatusLineInput]:
    """Parse a status-line payload; None for empty or invalid input."""
    if not raw or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError, RecursionError) as exc:
        logger.debug(
            "[status_input] Invalid JSON on stdin: %s: %s",
            type(exc).__name__,
            exc,
            extra={"length": len(raw)},
        )
        return None
    if not isinstance(data, dict):
        return None
    try:
        return StatusLineInput.model_validate(data)
    except ValidationError as exc:
        logger.debug(
            "[status_input] Status payload failed validation",
            extra={"errors": exc.error_count()},
        )
        return None


def read_status_input(stream: IO[str]) -> Optional[StatusLineInput]:
    """Read the payload from ``stream``; None when it is an interactive terminal."""
    try:
        if stream.isatty():
            return None
        return parse_status_input(stream.read())
    except (OSError, ValueError, UnicodeDecodeError) as exc:
        logger.debug(
            "[status_input] Could not read stdin: %s: %s",
            type(exc).__name__,
            exc,
        )
        return None


__all__ = [
    "AUTOCOMPACT_BUFFER_PERCENT",
    "StatusLineInput",
    "UNKNOWN_MODEL",
    "parse_status_input",
    "read_status_input",
]
