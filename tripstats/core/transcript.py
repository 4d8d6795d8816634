"""Transcript aggregation.

Reads a session's primary transcript plus any satellite (sub-agent)
transcripts it references and produces a :class:`SessionMetrics`.

The assistant may log the same API request several times (streaming updates,
retries), so token usage is deduplicated per ``(request id, model id)`` by
taking the category-wise maximum before it is folded into totals.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from tripstats.core.models import ModelUsage, SessionMetrics, TokenUsage
from tripstats.core.pricing import calculate_cost, format_model_name
from tripstats.core.records import AssistantRecord, UserRecord, parse_line
from tripstats.utils.log import get_logger

logger = get_logger()

AGENT_ID_RE = re.compile(r"agent-[a-z0-9]+")
TRANSCRIPT_SUFFIX = ".jsonl"

DedupKey = Tuple[str, str]


def default_projects_root() -> Path:
    """Directory the assistant stores per-project transcripts under."""
    return Path.home() / ".claude" / "projects"


def session_id_from_path(transcript_path: Path) -> str:
    name = transcript_path.name
    if name.endswith(TRANSCRIPT_SUFFIX):
        return name[: -len(TRANSCRIPT_SUFFIX)]
    return name


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning(
            "[transcript] Failed to read transcript: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": str(path)},
        )
        return None


@dataclass
class _FileScan:
    """Counts collected from a single transcript file."""

    message_count: int = 0
    tool_count: int = 0
    requests: Dict[DedupKey, TokenUsage] = field(default_factory=dict)
    skipped_lines: int = 0


def _scan_lines(lines: Iterable[str], *, count_turns: bool) -> _FileScan:
    scan = _FileScan()
    for line in lines:
        if not line.strip():
            continue
        record = parse_line(line)
        if record is None:
            scan.skipped_lines += 1
            continue

        if count_turns:
            if isinstance(record, UserRecord) and record.is_countable:
                scan.message_count += 1
            elif isinstance(record, AssistantRecord):
                scan.tool_count += record.tool_use_count

        usage = record.usage
        if usage is None:
            continue
        previous = scan.requests.get(usage.dedup_key)
        scan.requests[usage.dedup_key] = (
            usage.tokens if previous is None else previous.max_with(usage.tokens)
        )
    return scan


class _UsageAccumulator:
    """Running per-model totals across every scanned file."""

    def __init__(self) -> None:
        self.tokens: Dict[str, TokenUsage] = {}
        self.requests: Dict[str, int] = defaultdict(int)

    def fold(self, requests: Dict[DedupKey, TokenUsage]) -> None:
        # Each deduplicated bucket is folded exactly once.
        for (_, model_id), usage in requests.items():
            self.tokens[model_id] = self.tokens.get(model_id, TokenUsage()) + usage
            self.requests[model_id] += 1

    def build_models(self) -> Dict[str, ModelUsage]:
        models: Dict[str, ModelUsage] = {}
        for model_id, tokens in self.tokens.items():
            models[model_id] = ModelUsage(
                model_id=model_id,
                display_name=format_model_name(model_id),
                requests=self.requests[model_id],
                tokens=tokens,
                cost=calculate_cost(
                    model_id,
                    input_tokens=tokens.input_tokens,
                    output_tokens=tokens.output_tokens,
                    cache_write_tokens=tokens.cache_creation_tokens,
                    cache_read_tokens=tokens.cache_read_tokens,
                ),
            )
        return models


def find_agent_ids(text: str) -> List[str]:
    """Distinct satellite identifiers referenced in ``text``, sorted."""
    return sorted(set(AGENT_ID_RE.findall(text)))


def _index_agent_files(projects_root: Path) -> Dict[str, List[Path]]:
    index: Dict[str, List[Path]] = defaultdict(list)
    if not projects_root.is_dir():
        return index
    try:
        for path in projects_root.rglob(f"agent-*{TRANSCRIPT_SUFFIX}"):
            if path.is_file():
                index[session_id_from_path(path)].append(path)
    except OSError as exc:
        logger.debug(
            "[transcript] Satellite search interrupted: %s: %s",
            type(exc).__name__,
            exc,
            extra={"root": str(projects_root)},
        )
    return index


def find_agent_transcripts(
    transcript_text: str,
    projects_root: Path,
    *,
    exclude: Optional[Path] = None,
) -> List[Path]:
    """Resolve satellite transcripts referenced in the primary transcript.

    An id found under several project directories resolves to the
    lexicographically first path. The result is sorted so folding order never
    depends on filesystem enumeration order.
    """
    agent_ids = find_agent_ids(transcript_text)
    if not agent_ids:
        return []

    index = _index_agent_files(projects_root)
    excluded = exclude.resolve() if exclude is not None else None
    resolved: List[Path] = []
    for agent_id in agent_ids:
        candidates = sorted(index.get(agent_id, ()), key=str)
        if not candidates:
            continue
        path = candidates[0].resolve()
        if path == excluded or path in resolved:
            continue
        resolved.append(path)
    return sorted(resolved, key=str)


def derive_ratios(
    total_tokens: TokenUsage, message_count: int, tool_count: int
) -> Tuple[float, float, float]:
    """Return ``(cache_efficiency, tokens_per_message, tools_per_message)``.

    Every divisor is guarded so the result is always finite.
    """
    cache_total = total_tokens.cache_creation_tokens + total_tokens.cache_read_tokens
    cache_efficiency = (
        total_tokens.cache_read_tokens / cache_total * 100 if cache_total > 0 else 0.0
    )
    if message_count > 0:
        tokens_per_message = total_tokens.output_tokens / message_count
        tools_per_message = tool_count / message_count
    else:
        tokens_per_message = 0.0
        tools_per_message = 0.0
    return cache_efficiency, tokens_per_message, tools_per_message


class TranscriptAggregator:
    """Builds a :class:`SessionMetrics` from transcript files."""

    def __init__(self, projects_root: Optional[Path] = None) -> None:
        self.projects_root = projects_root if projects_root is not None else default_projects_root()

    def aggregate(
        self,
        transcript_path: Path,
        agent_paths: Optional[Sequence[Path]] = None,
    ) -> SessionMetrics:
        """Aggregate the primary transcript and its satellites.

        When ``agent_paths`` is None, satellites are discovered from the
        identifiers embedded in the primary transcript. A missing primary file
        yields all-zero metrics.
        """
        transcript_path = Path(transcript_path)
        session_id = session_id_from_path(transcript_path)
        text = _read_text(transcript_path)
        if text is None:
            logger.debug(
                "[transcript] Transcript not found; returning empty metrics",
                extra={"path": str(transcript_path)},
            )
            return SessionMetrics(session_id=session_id)

        # Records are newline-delimited; U+2028 and friends may appear inside strings.
        primary = _scan_lines(text.split("\n"), count_turns=True)
        accumulator = _UsageAccumulator()
        accumulator.fold(primary.requests)

        if agent_paths is None:
            satellites = find_agent_transcripts(text, self.projects_root, exclude=transcript_path)
        else:
            satellites = sorted((Path(p) for p in agent_paths), key=str)

        skipped = primary.skipped_lines
        for satellite in satellites:
            satellite_text = _read_text(satellite)
            if satellite_text is None:
                continue
            scan = _scan_lines(satellite_text.split("\n"), count_turns=False)
            accumulator.fold(scan.requests)
            skipped += scan.skipped_lines

        models = accumulator.build_models()
        total_tokens = sum((model.tokens for model in models.values()), TokenUsage())
        cache_efficiency, tokens_per_message, tools_per_message = derive_ratios(
            total_tokens, primary.message_count, primary.tool_count
        )
        metrics = SessionMetrics(
            session_id=session_id,
            message_count=primary.message_count,
            tool_count=primary.tool_count,
            total_tokens=total_tokens,
            models=models,
            cache_efficiency=cache_efficiency,
            tokens_per_message=tokens_per_message,
            tools_per_message=tools_per_message,
            total_cost=sum(model.cost for model in models.values()),
        )
        logger.debug(
            "[transcript] Aggregated session",
            extra={
                "session_id": session_id,
                "messages": metrics.message_count,
                "tools": metrics.tool_count,
                "models": len(models),
                "satellites": len(satellites),
                "skipped_lines": skipped,
            },
        )
        return metrics


def iter_model_usage(metrics: SessionMetrics) -> Iterator[ModelUsage]:
    """Model entries ordered by model id."""
    for model_id in sorted(metrics.models):
        yield metrics.models[model_id]


def primary_model_name(metrics: SessionMetrics) -> Optional[str]:
    """Display name of the lexicographically first model id, if any."""
    for usage in iter_model_usage(metrics):
        return usage.display_name
    return None


def parse_transcript(
    transcript_path: Path, projects_root: Optional[Path] = None
) -> SessionMetrics:
    """Convenience wrapper around :class:`TranscriptAggregator`."""
    return TranscriptAggregator(projects_root).aggregate(transcript_path)


__all__ = [
    "AGENT_ID_RE",
    "TranscriptAggregator",
    "default_projects_root",
    "derive_ratios",
    "find_agent_ids",
    "find_agent_transcripts",
    "iter_model_usage",
    "parse_transcript",
    "primary_model_name",
    "session_id_from_path",
]
