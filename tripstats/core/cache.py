"""Per-session result cache.

A status line is refreshed several times a second while the assistant is
streaming, so the computed result is persisted to
``~/.claude/session-stats/<session_id>.json`` and reused while the transcript
is unchanged and the entry is at most ``CACHE_TTL_SECONDS`` old.

Writes go to a unique temporary file in the same directory which is then
renamed over the target, so readers see either the old or the new content.
There is no lock; concurrent writers for the same session simply race.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Tuple

from tripstats.core.models import SessionCache
from tripstats.utils.log import get_logger

logger = get_logger()

CACHE_TTL_SECONDS = 5
CACHE_SUFFIX = ".json"

_SAFE_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def default_cache_dir() -> Path:
    return Path.home() / ".claude" / "session-stats"


def _now() -> float:
    return time.time()


def transcript_mtime_seconds(transcript_path: Path) -> Optional[int]:
    """Modification time truncated to whole seconds; None if unreadable."""
    try:
        return int(transcript_path.stat().st_mtime)
    except OSError:
        return None


class SessionCacheStore:
    """Reads, writes, validates and prunes cached session results."""

    def __init__(
        self, cache_dir: Optional[Path] = None, ttl_seconds: int = CACHE_TTL_SECONDS
    ) -> None:
        self.cache_dir = cache_dir if cache_dir is not None else default_cache_dir()
        self.ttl_seconds = ttl_seconds

    def cache_path(self, session_id: str) -> Optional[Path]:
        """Cache file for ``session_id``; None for ids unsafe as file names."""
        if not session_id or not _SAFE_SESSION_ID_RE.match(session_id):
            return None
        return self.cache_dir / f"{session_id}{CACHE_SUFFIX}"

    def read(self, session_id: str) -> Optional[SessionCache]:
        cache_file = self.cache_path(session_id)
        if cache_file is None:
            return None
        try:
            with cache_file.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except FileNotFoundError:
            return None
        except (
            OSError,
            json.JSONDecodeError,
            UnicodeDecodeError,
            ValueError,
            RecursionError,
        ) as exc:
            logger.debug(
                "[cache] Failed to read cache file: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(cache_file)},
            )
            return None
        try:
            return SessionCache.from_dict(raw)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.debug(
                "[cache] Ignoring malformed cache entry: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(cache_file)},
            )
            return None

    def write(self, cache: SessionCache) -> bool:
        """Persist ``cache`` atomically; returns False if nothing was written."""
        cache_file = self.cache_path(cache.session_id)
        if cache_file is None:
            logger.debug(
                "[cache] Refusing to cache unsafe session id",
                extra={"session_id": cache.session_id},
            )
            return False

        tmp_name: Optional[str] = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f".{cache.session_id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(cache.to_dict(), fh, ensure_ascii=False, indent=2)
                fh.write("\n")
            os.replace(tmp_name, cache_file)
            tmp_name = None
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning(
                "[cache] Failed to write cache: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(cache_file)},
            )
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def is_valid(self, cache: SessionCache, transcript_path: Path) -> bool:
        """Whether ``cache`` still describes ``transcript_path``."""
        current_mtime = transcript_mtime_seconds(Path(transcript_path))
        if current_mtime is None:
            return False
        if current_mtime != cache.transcript_mtime:
            logger.debug(
                "[cache] Transcript changed since cache was written",
                extra={"cached": cache.transcript_mtime, "current": current_mtime},
            )
            return False
        age = int(_now()) - cache.last_updated
        if age > self.ttl_seconds:
            logger.debug("[cache] Cache entry expired", extra={"age_seconds": age})
            return False
        return True

    def _entries(self) -> List[Tuple[Path, float]]:
        entries: List[Tuple[Path, float]] = []
        for path in self.cache_dir.iterdir():
            if path.name.startswith(".") or path.suffix != CACHE_SUFFIX:
                continue
            try:
                entries.append((path, path.stat().st_mtime))
            except OSError:
                continue
        entries.sort(key=lambda item: item[1], reverse=True)
        return entries

    def cleanup(self, max_age_hours: float = 24, max_count: int = 50) -> int:
        """Delete entries older than ``max_age_hours`` or beyond the newest ``max_count``.

        Returns the number of files removed. Never raises.
        """
        if not self.cache_dir.is_dir():
            return 0
        try:
            entries = self._entries()
        except OSError as exc:
            logger.debug(
                "[cache] Cleanup could not list cache dir: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": str(self.cache_dir)},
            )
            return 0

        now = _now()
        max_age_seconds = max_age_hours * 3600
        removed = 0
        for position, (path, mtime) in enumerate(entries):
            if now - mtime <= max_age_seconds and position < max_count:
                continue
            try:
                path.unlink()
                removed += 1
            except OSError:
                continue
        if removed:
            logger.debug(
                "[cache] Removed stale cache entries",
                extra={"removed": removed, "kept": len(entries) - removed},
            )
        return removed


__all__ = [
    "CACHE_TTL_SECONDS",
    "SessionCacheStore",
    "default_cache_dir",
    "transcript_mtime_seconds",
]
