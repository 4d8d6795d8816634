"""Value types shared by the aggregator, scorer, cache and renderers.

All result types are frozen dataclasses. Each has a ``to_dict``/``from_dict``
pair used for the JSON cache envelope; ``from_dict`` tolerates missing or
mistyped keys because cache files may have been written by older versions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from tripstats.utils.coerce import coerce_count, coerce_float, coerce_int, parse_iso_datetime

CACHE_FORMAT_VERSION = "0.13.0"

MAX_SCORE_WITH_CONTEXT = 100
MAX_SCORE_WITHOUT_CONTEXT = 70

CONTEXT_CRITICAL_PERCENT = 85
CONTEXT_WARNING_PERCENT = 70


def _as_dict(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: object, default: str = "") -> str:
    return value if isinstance(value, str) else default


@dataclass(frozen=True)
class TokenUsage:
    """Tokens billed under each category for one request, model or session."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_creation_tokens=self.cache_creation_tokens + other.cache_creation_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
        )

    def max_with(self, other: "TokenUsage") -> "TokenUsage":
        """Category-wise maximum, used to collapse duplicate usage reports."""
        return TokenUsage(
            input_tokens=max(self.input_tokens, other.input_tokens),
            output_tokens=max(self.output_tokens, other.output_tokens),
            cache_creation_tokens=max(self.cache_creation_tokens, other.cache_creation_tokens),
            cache_read_tokens=max(self.cache_read_tokens, other.cache_read_tokens),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
            "cache_read_tokens": self.cache_read_tokens,
        }

    @classmethod
    def from_dict(cls, data: object) -> "TokenUsage":
        raw = _as_dict(data)
        return cls(
            input_tokens=coerce_count(raw.get("input_tokens")),
            output_tokens=coerce_count(raw.get("output_tokens")),
            cache_creation_tokens=coerce_count(raw.get("cache_creation_tokens")),
            cache_read_tokens=coerce_count(raw.get("cache_read_tokens")),
        )


@dataclass(frozen=True)
class ModelUsage:
    """Deduplicated usage and cost for one model seen in a session."""

    model_id: str
    display_name: str
    requests: int = 0
    tokens: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "display_name": self.display_name,
            "requests": self.requests,
            "tokens": self.tokens.to_dict(),
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, data: object) -> "ModelUsage":
        raw = _as_dict(data)
        model_id = _as_str(raw.get("model_id"))
        return cls(
            model_id=model_id,
            display_name=_as_str(raw.get("display_name"), model_id),
            requests=coerce_count(raw.get("requests")),
            tokens=TokenUsage.from_dict(raw.get("tokens")),
            cost=coerce_float(raw.get("cost")),
        )


@dataclass(frozen=True)
class SessionMetrics:
    """Aggregation result for one session.

    ``total_tokens`` equals the sum of every ``models`` entry's tokens and
    ``total_cost`` the sum of their costs.
    """

    session_id: str
    message_count: int = 0
    tool_count: int = 0
    total_tokens: TokenUsage = field(default_factory=TokenUsage)
    models: Mapping[str, ModelUsage] = field(default_factory=dict)
    cache_efficiency: float = 0.0
    tokens_per_message: float = 0.0
    tools_per_message: float = 0.0
    total_cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "message_count": self.message_count,
            "tool_count": self.tool_count,
            "total_tokens": self.total_tokens.to_dict(),
            "models": {model_id: usage.to_dict() for model_id, usage in self.models.items()},
            "cache_efficiency": self.cache_efficiency,
            "tokens_per_message": self.tokens_per_message,
            "tools_per_message": self.tools_per_message,
            "total_cost": self.total_cost,
        }

    @classmethod
    def from_dict(cls, data: object) -> "SessionMetrics":
        raw = _as_dict(data)
        models: Dict[str, ModelUsage] = {}
        for model_id, entry in _as_dict(raw.get("models")).items():
            if isinstance(model_id, str) and isinstance(entry, dict):
                models[model_id] = ModelUsage.from_dict(entry)
        return cls(
            session_id=_as_str(raw.get("session_id")),
            message_count=coerce_count(raw.get("message_count")),
            tool_count=coerce_count(raw.get("tool_count")),
            total_tokens=TokenUsage.from_dict(raw.get("total_tokens")),
            models=models,
            cache_efficiency=coerce_float(raw.get("cache_efficiency")),
            tokens_per_message=coerce_float(raw.get("tokens_per_message")),
            tools_per_message=coerce_float(raw.get("tools_per_message")),
            total_cost=coerce_float(raw.get("total_cost")),
        )


class ContextHealth(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def for_percent(cls, percent: float) -> "ContextHealth":
        if percent >= CONTEXT_CRITICAL_PERCENT:
            return cls.CRITICAL
        if percent >= CONTEXT_WARNING_PERCENT:
            return cls.WARNING
        return cls.HEALTHY


@dataclass(frozen=True)
class ContextWindow:
    """Context window snapshot reported by the assistant for the current turn."""

    size: int
    usage: int
    usage_percent: float
    health_status: ContextHealth = ContextHealth.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "usage": self.usage,
            "usage_percent": self.usage_percent,
            "health_status": self.health_status.value,
        }

    @classmethod
    def from_dict(cls, data: object) -> Optional["ContextWindow"]:
        raw = _as_dict(data)
        size = coerce_count(raw.get("size"))
        if size <= 0:
            return None
        percent = coerce_float(raw.get("usage_percent"))
        try:
            health = ContextHealth(raw.get("health_status"))
        except ValueError:
            health = ContextHealth.for_percent(percent)
        return cls(
            size=size,
            usage=coerce_count(raw.get("usage")),
            usage_percent=percent,
            health_status=health,
        )


@dataclass(frozen=True)
class OptimizationAction:
    action: str
    impact: str
    priority: int

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "impact": self.impact, "priority": self.priority}

    @classmethod
    def from_dict(cls, data: object) -> "OptimizationAction":
        raw = _as_dict(data)
        return cls(
            action=_as_str(raw.get("action")),
            impact=_as_str(raw.get("impact")),
            priority=coerce_int(raw.get("priority")),
        )


@dataclass(frozen=True)
class SessionAnalytics:
    """Heuristic health analysis derived from a SessionMetrics."""

    health_score: int
    health_label: str
    cache_score: int
    context_score: int
    efficiency_score: int
    tool_intensity_label: str
    verbosity_label: str
    context_growth_label: str
    cache_guidance: str
    optimization_actions: Tuple[OptimizationAction, ...] = ()
    behavioral_analysis: Tuple[str, ...] = ()
    context_available: bool = True

    @property
    def max_score(self) -> int:
        """Maximum attainable health score for this analysis."""
        return MAX_SCORE_WITH_CONTEXT if self.context_available else MAX_SCORE_WITHOUT_CONTEXT

    @property
    def display_score(self) -> int:
        """Score to show against :attr:`max_score`.

        Without a context snapshot the neutral context score is left out, so
        the result is out of ``MAX_SCORE_WITHOUT_CONTEXT``.
        """
        if self.context_available:
            return self.health_score
        return self.cache_score + self.efficiency_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "health_score": self.health_score,
            "health_label": self.health_label,
            "cache_score": self.cache_score,
            "context_score": self.context_score,
            "efficiency_score": self.efficiency_score,
            "tool_intensity_label": self.tool_intensity_label,
            "verbosity_label": self.verbosity_label,
            "context_growth_label": self.context_growth_label,
            "cache_guidance": self.cache_guidance,
            "optimization_actions": [action.to_dict() for action in self.optimization_actions],
            "behavioral_analysis": list(self.behavioral_analysis),
            "context_available": self.context_available,
        }

    @classmethod
    def from_dict(cls, data: object) -> "SessionAnalytics":
        raw = _as_dict(data)
        actions_raw = raw.get("optimization_actions")
        analysis_raw = raw.get("behavioral_analysis")
        context_available = raw.get("context_available")
        return cls(
            health_score=coerce_int(raw.get("health_score")),
            health_label=_as_str(raw.get("health_label")),
            cache_score=coerce_int(raw.get("cache_score")),
            context_score=coerce_int(raw.get("context_score")),
            efficiency_score=coerce_int(raw.get("efficiency_score")),
            tool_intensity_label=_as_str(raw.get("tool_intensity_label")),
            verbosity_label=_as_str(raw.get("verbosity_label")),
            context_growth_label=_as_str(raw.get("context_growth_label")),
            cache_guidance=_as_str(raw.get("cache_guidance")),
            optimization_actions=tuple(
                OptimizationAction.from_dict(item)
                for item in (actions_raw if isinstance(actions_raw, list) else [])
                if isinstance(item, dict)
            ),
            behavioral_analysis=tuple(
                item
                for item in (analysis_raw if isinstance(analysis_raw, list) else [])
                if isinstance(item, str)
            ),
            context_available=context_available if isinstance(context_available, bool) else True,
        )


def _to_utc_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _optional_float(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return coerce_float(value)
    return None


@dataclass(frozen=True)
class RateLimits:
    """Subscription rate-limit snapshot supplied by the usage lookup."""

    plan_name: Optional[str] = None
    five_hour_percent: Optional[float] = None
    seven_day_percent: Optional[float] = None
    five_hour_reset_at: Optional[datetime] = None
    seven_day_reset_at: Optional[datetime] = None
    api_unavailable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_name": self.plan_name,
            "five_hour_percent": self.five_hour_percent,
            "seven_day_percent": self.seven_day_percent,
            "five_hour_reset_at": _to_utc_iso(self.five_hour_reset_at),
            "seven_day_reset_at": _to_utc_iso(self.seven_day_reset_at),
            "api_unavailable": self.api_unavailable,
        }

    @classmethod
    def from_dict(cls, data: object) -> "RateLimits":
        raw = _as_dict(data)
        plan_name = raw.get("plan_name")
        return cls(
            plan_name=plan_name if isinstance(plan_name, str) else None,
            five_hour_percent=_optional_float(raw.get("five_hour_percent")),
            seven_day_percent=_optional_float(raw.get("seven_day_percent")),
            five_hour_reset_at=parse_iso_datetime(raw.get("five_hour_reset_at")),
            seven_day_reset_at=parse_iso_datetime(raw.get("seven_day_reset_at")),
            api_unavailable=bool(raw.get("api_unavailable", False)),
        )


@dataclass(frozen=True)
class SessionCache:
    """Persisted envelope for one session's computed result."""

    session_id: str
    last_updated: int
    transcript_mtime: int
    transcript_path: str
    metrics: SessionMetrics
    analytics: SessionAnalytics
    context_window: Optional[ContextWindow] = None
    model_name: Optional[str] = None
    rate_limits: Optional[RateLimits] = None
    version: str = CACHE_FORMAT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "version": self.version,
            "session_id": self.session_id,
            "last_updated": self.last_updated,
            "transcript_mtime": self.transcript_mtime,
            "transcript_path": self.transcript_path,
            "metrics": self.metrics.to_dict(),
            "analytics": self.analytics.to_dict(),
        }
        if self.context_window is not None:
            payload["context_window"] = self.context_window.to_dict()
        if self.model_name:
            payload["model_name"] = self.model_name
        if self.rate_limits is not None:
            payload["rate_limits"] = self.rate_limits.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: object) -> Optional["SessionCache"]:
        """Rebuild an envelope; None when required sections are missing."""
        raw = _as_dict(data)
        session_id = raw.get("session_id")
        if not isinstance(session_id, str) or not session_id:
            return None
        if not isinstance(raw.get("metrics"), dict) or not isinstance(raw.get("analytics"), dict):
            return None
        model_name = raw.get("model_name")
        return cls(
            version=_as_str(raw.get("version")),
            session_id=session_id,
            last_updated=coerce_int(raw.get("last_updated")),
            transcript_mtime=coerce_int(raw.get("transcript_mtime")),
            transcript_path=_as_str(raw.get("transcript_path")),
            metrics=SessionMetrics.from_dict(raw.get("metrics")),
            analytics=SessionAnalytics.from_dict(raw.get("analytics")),
            context_window=ContextWindow.from_dict(raw.get("context_window")),
            model_name=model_name if isinstance(model_name, str) and model_name else None,
            rate_limits=(
                RateLimits.from_dict(raw["rate_limits"])
                if isinstance(raw.get("rate_limits"), dict)
                else None
            ),
        )


__all__ = [
    "CACHE_FORMAT_VERSION",
    "MAX_SCORE_WITHOUT_CONTEXT",
    "MAX_SCORE_WITH_CONTEXT",
    "ContextHealth",
    "ContextWindow",
    "ModelUsage",
    "OptimizationAction",
    "RateLimits",
    "SessionAnalytics",
    "SessionCache",
    "SessionMetrics",
    "TokenUsage",
]
