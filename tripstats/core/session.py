"""Cached end-to-end session snapshot.

The fast path returns a still-valid cache entry. Otherwise the transcript is
aggregated, scored and the combined result written back to the cache.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from tripstats.core.analytics import AnalyticsScorer
from tripstats.core.cache import SessionCacheStore, transcript_mtime_seconds
from tripstats.core.config import BillingConfig
from tripstats.core.models import (
    CACHE_FORMAT_VERSION,
    ContextWindow,
    RateLimits,
    SessionAnalytics,
    SessionCache,
    SessionMetrics,
)
from tripstats.core.status_input import UNKNOWN_MODEL
from tripstats.core.transcript import (
    TRANSCRIPT_SUFFIX,
    TranscriptAggregator,
    default_projects_root,
    primary_model_name,
    session_id_from_path,
)
from tripstats.utils.log import get_logger

logger = get_logger()

_GIT_BASH_DRIVE_RE = re.compile(r"^/([a-zA-Z])/")


@dataclass(frozen=True)
class SessionSnapshot:
    metrics: SessionMetrics
    analytics: SessionAnalytics
    context: Optional[ContextWindow]
    model_name: str
    rate_limits: Optional[RateLimits] = None
    from_cache: bool = False
    transcript_path: Optional[Path] = None


def encode_project_dir(cwd: str) -> str:
    """Map a working directory to the assistant's per-project directory name."""
    normalized = cwd
    match = _GIT_BASH_DRIVE_RE.match(normalized)
    if match:
        normalized = f"{match.group(1).upper()}:{normalized[2:]}"
    normalized = normalized.replace("\\", "/")
    return normalized.replace(":", "-").replace("/", "-").replace("_", "-")


def find_current_session(
    cwd: Path, projects_root: Optional[Path] = None
) -> Optional[Tuple[str, Path]]:
    """Most recently modified primary transcript for ``cwd``.

    Ties on modification time are broken by file name, descending.
    """
    root = projects_root if projects_root is not None else default_projects_root()
    transcript_dir = root / encode_project_dir(str(cwd))
    if not transcript_dir.is_dir():
        return None

    candidates = []
    try:
        for path in transcript_dir.iterdir():
            if path.suffix != TRANSCRIPT_SUFFIX or path.name.startswith("agent-"):
                continue
            try:
                candidates.append((path.stat().st_mtime, path.name, path))
            except OSError:
                continue
    except OSError as exc:
        logger.debug(
            "[session] Could not list transcript dir: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": str(transcript_dir)},
        )
        return None

    if not candidates:
        return None
    _, _, latest = max(candidates, key=lambda item: (item[0], item[1]))
    return session_id_from_path(latest), latest


def load_session_snapshot(
    transcript_path: Path,
    *,
    session_id: Optional[str] = None,
    context: Optional[ContextWindow] = None,
    model_name: str = UNKNOWN_MODEL,
    rate_limits: Optional[RateLimits] = None,
    billing: Optional[BillingConfig] = None,
    store: Optional[SessionCacheStore] = None,
    aggregator: Optional[TranscriptAggregator] = None,
) -> SessionSnapshot:
    """Return metrics and analytics for a session, reusing the cache when valid."""
    transcript_path = Path(transcript_path)
    store = store if store is not None else SessionCacheStore()

    if session_id:
        cached = store.read(session_id)
        if cached is not None and store.is_valid(cached, transcript_path):
            logger.debug("[session] Cache hit", extra={"session_id": session_id})
            if model_name == UNKNOWN_MODEL and cached.model_name:
                model_name = cached.model_name
            return SessionSnapshot(
                metrics=cached.metrics,
                analytics=cached.analytics,
                context=context if context is not None else cached.context_window,
                model_name=model_name,
                rate_limits=rate_limits if rate_limits is not None else cached.rate_limits,
                from_cache=True,
                transcript_path=transcript_path,
            )

    aggregator = aggregator if aggregator is not None else TranscriptAggregator()
    metrics = aggregator.aggregate(transcript_path)
    if model_name == UNKNOWN_MODEL:
        model_name = primary_model_name(metrics) or UNKNOWN_MODEL
    analytics = AnalyticsScorer(billing).compute(metrics, context)

    if session_id:
        mtime = transcript_mtime_seconds(transcript_path)
        if mtime is not None:
            store.write(
                SessionCache(
                    version=CACHE_FORMAT_VERSION,
                    session_id=session_id,
                    last_updated=int(time.time()),
                    transcript_mtime=mtime,
                    transcript_path=str(transcript_path),
                    metrics=metrics,
                    analytics=analytics,
                    context_window=context,
                    model_name=model_name if model_name != UNKNOWN_MODEL else None,
                    rate_limits=rate_limits,
                )
            )

    return SessionSnapshot(
        metrics=metrics,
        analytics=analytics,
        context=context,
        model_name=model_name,
        rate_limits=rate_limits,
        from_cache=False,
        transcript_path=transcript_path,
    )


__all__ = [
    "SessionSnapshot",
    "encode_project_dir",
    "find_current_session",
    "load_session_snapshot",
]
