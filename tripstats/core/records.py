"""Normalized views of individual transcript events.

Transcript lines are heterogeneous JSON objects written by the assistant. Each
line is parsed field-by-field into one of three variants; any missing or
mistyped field falls back to an empty value rather than failing the line.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional, Union

from tripstats.core.models import TokenUsage
from tripstats.utils.coerce import coerce_count, parse_iso_datetime

# Slash-command wrapper tags the assistant injects as synthetic user turns.
COMMAND_MARKER_RE = re.compile(
    r"<command-name>|<command-args>|<local-command-stdout>|<command-message>"
)


@dataclass(frozen=True)
class UsageReport:
    """A usage payload attached to one event."""

    request_id: str
    model_id: str
    tokens: TokenUsage

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.request_id, self.model_id)


@dataclass(frozen=True)
class UserRecord:
    is_meta: bool
    content: Union[str, List[Any], None]
    usage: Optional[UsageReport] = None
    timestamp: Optional[datetime] = None

    @property
    def is_tool_feedback(self) -> bool:
        """True when the content is exclusively tool_result blocks."""
        if not isinstance(self.content, list):
            return False
        return all(_block_type(block) == "tool_result" for block in self.content)

    @property
    def is_command(self) -> bool:
        return isinstance(self.content, str) and bool(COMMAND_MARKER_RE.search(self.content))

    @property
    def is_countable(self) -> bool:
        """Whether this turn was typed by the human."""
        return not self.is_meta and not self.is_tool_feedback and not self.is_command


@dataclass(frozen=True)
class AssistantRecord:
    content: Union[str, List[Any], None]
    usage: Optional[UsageReport] = None
    timestamp: Optional[datetime] = None

    @property
    def tool_use_count(self) -> int:
        if not isinstance(self.content, list):
            return 0
        return sum(1 for block in self.content if _block_type(block) == "tool_use")


@dataclass(frozen=True)
class OtherRecord:
    usage: Optional[UsageReport] = None
    timestamp: Optional[datetime] = None


TranscriptRecord = Union[UserRecord, AssistantRecord, OtherRecord]


def _block_type(block: object) -> Optional[str]:
    if isinstance(block, Mapping):
        value = block.get("type")
        return value if isinstance(value, str) else None
    return None


def _content(message: Mapping[str, Any]) -> Union[str, List[Any], None]:
    content = message.get("content")
    if isinstance(content, (str, list)):
        return content
    return None


def _timestamp(payload: Mapping[str, Any], message: Mapping[str, Any]) -> Optional[datetime]:
    """First timestamp found on the entry, its snapshot or its message."""
    snapshot = payload.get("snapshot")
    for raw in (
        payload.get("timestamp"),
        snapshot.get("timestamp") if isinstance(snapshot, Mapping) else None,
        message.get("timestamp"),
    ):
        if raw:
            return parse_iso_datetime(raw)
    return None


def _usage_report(payload: Mapping[str, Any], message: Mapping[str, Any]) -> Optional[UsageReport]:
    usage = message.get("usage")
    model_id = message.get("model")
    if not isinstance(usage, Mapping) or not isinstance(model_id, str) or not model_id:
        return None
    request_id = payload.get("requestId")
    return UsageReport(
        request_id=request_id if isinstance(request_id, str) else "",
        model_id=model_id,
        tokens=TokenUsage(
            input_tokens=coerce_count(usage.get("input_tokens")),
            output_tokens=coerce_count(usage.get("output_tokens")),
            cache_creation_tokens=coerce_count(usage.get("cache_creation_input_tokens")),
            cache_read_tokens=coerce_count(usage.get("cache_read_input_tokens")),
        ),
    )


def parse_record(payload: object) -> Optional[TranscriptRecord]:
    """Classify one decoded JSON value; None when it is not an object."""
    if not isinstance(payload, Mapping):
        return None
    message = payload.get("message")
    if not isinstance(message, Mapping):
        message = {}
    usage = _usage_report(payload, message)
    timestamp = _timestamp(payload, message)

    record_type = payload.get("type")
    if record_type == "user":
        return UserRecord(
            is_meta=payload.get("isMeta") is True,
            content=_content(message),
            usage=usage,
            timestamp=timestamp,
        )
    if record_type == "assistant":
        return AssistantRecord(content=_content(message), usage=usage, timestamp=timestamp)
    return OtherRecord(usage=usage, timestamp=timestamp)


def parse_line(line: str) -> Optional[TranscriptRecord]:
    """Decode and classify one transcript line; None for blank or malformed lines."""
    if not line.strip():
        return None
    try:
        payload = json.loads(line)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return None
    return parse_record(payload)


__all__ = [
    "AssistantRecord",
    "COMMAND_MARKER_RE",
    "OtherRecord",
    "TranscriptRecord",
    "UsageReport",
    "UserRecord",
    "parse_line",
    "parse_record",
]
