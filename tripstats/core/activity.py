"""Live activity extracted from the primary transcript.

Tracks which tools are still running, how often each finished tool was used,
sub-agents spawned through ``Task`` blocks, the latest ``TodoWrite`` list and
the first timestamp of the session. Unlike the aggregator this view is never
cached; it is rebuilt each time the status line is drawn.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from tripstats.core.records import AssistantRecord, UserRecord, parse_line
from tripstats.utils.log import get_logger

logger = get_logger()

RUNNING = "running"
COMPLETED = "completed"
ERROR = "error"

AGENT_TOOL = "Task"
TODO_TOOL = "TodoWrite"

MAX_RUNNING_TOOLS = 2
MAX_AGENTS = 10

_BASH_TARGET_LIMIT = 30


@dataclass
class ToolActivity:
    tool_id: str
    name: str
    target: Optional[str]
    started_at: datetime
    status: str = RUNNING
    ended_at: Optional[datetime] = None


@dataclass
class AgentActivity:
    tool_id: str
    agent_type: str
    description: Optional[str]
    started_at: datetime
    status: str = RUNNING
    ended_at: Optional[datetime] = None


@dataclass(frozen=True)
class TodoItem:
    content: str
    status: str = "pending"


@dataclass
class SessionActivity:
    running_tools: List[ToolActivity] = field(default_factory=list)
    tool_counts: Dict[str, int] = field(default_factory=dict)
    agents: List[AgentActivity] = field(default_factory=list)
    todos: List[TodoItem] = field(default_factory=list)
    session_start: Optional[datetime] = None


def _str_or_none(value: object) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def tool_target(name: str, tool_input: Mapping[str, Any]) -> Optional[str]:
    """Short description of what a tool call operates on."""
    if name in ("Read", "Write", "Edit", "NotebookEdit"):
        for key in ("file_path", "path", "notebook_path"):
            target = _str_or_none(tool_input.get(key))
            if target:
                return target
        return None
    if name in ("Glob", "Grep"):
        return _str_or_none(tool_input.get("pattern"))
    if name == "Bash":
        command = _str_or_none(tool_input.get("command"))
        if command and len(command) > _BASH_TARGET_LIMIT:
            return command[:_BASH_TARGET_LIMIT] + "..."
        return command
    if name in ("WebFetch", "WebSearch"):
        return _str_or_none(tool_input.get("url")) or _str_or_none(tool_input.get("query"))
    if name == "LSP":
        return _str_or_none(tool_input.get("operation"))
    return None


def _parse_todos(raw: object) -> List[TodoItem]:
    items: List[TodoItem] = []
    for entry in raw if isinstance(raw, list) else []:
        if not isinstance(entry, Mapping):
            continue
        content = entry.get("content")
        status = entry.get("status")
        items.append(
            TodoItem(
                content=content if isinstance(content, str) else "",
                status=status if isinstance(status, str) and status else "pending",
            )
        )
    return items


class _ActivityTracker:
    def __init__(self) -> None:
        self.tools: Dict[str, ToolActivity] = {}
        self.agents: Dict[str, AgentActivity] = {}
        self.todos: List[TodoItem] = []
        self.session_start: Optional[datetime] = None

    def observe_tool_use(self, block: Mapping[str, Any], at: datetime) -> None:
        tool_id = block.get("id") if isinstance(block.get("id"), str) else ""
        name = block.get("name") if isinstance(block.get("name"), str) else ""
        tool_input = block.get("input")
        if not isinstance(tool_input, Mapping):
            tool_input = {}

        if name == AGENT_TOOL:
            self.agents[tool_id] = AgentActivity(
                tool_id=tool_id,
                agent_type=_str_or_none(tool_input.get("subagent_type")) or "unknown",
                description=_str_or_none(tool_input.get("description")),
                started_at=at,
            )
        elif name == TODO_TOOL:
            if isinstance(tool_input.get("todos"), list):
                # Each TodoWrite replaces the whole list.
                self.todos = _parse_todos(tool_input.get("todos"))
        else:
            self.tools[tool_id] = ToolActivity(
                tool_id=tool_id, name=name, target=tool_target(name, tool_input), started_at=at
            )

    def observe_tool_result(self, block: Mapping[str, Any], at: datetime) -> None:
        tool_id = block.get("tool_use_id")
        agent = self.agents.get(tool_id) if isinstance(tool_id, str) else None
        if agent is not None:
            agent.status = COMPLETED
            agent.ended_at = at
        tool = self.tools.get(tool_id) if isinstance(tool_id, str) else None
        if tool is not None:
            tool.status = ERROR if block.get("is_error") is True else COMPLETED
            tool.ended_at = at

    def build(self) -> SessionActivity:
        activity = SessionActivity(session_start=self.session_start, todos=list(self.todos))
        running: List[ToolActivity] = []
        for tool in self.tools.values():
            if tool.status == RUNNING:
                running.append(tool)
            else:
                activity.tool_counts[tool.name] = activity.tool_counts.get(tool.name, 0) + 1
        activity.running_tools = running[-MAX_RUNNING_TOOLS:]
        activity.agents = list(self.agents.values())[-MAX_AGENTS:]
        return activity


def parse_activity(transcript_path: Path, now: Optional[datetime] = None) -> SessionActivity:
    """Scan ``transcript_path`` for tool, agent and todo activity.

    Entries without a timestamp are stamped with ``now``. A missing or
    unreadable transcript yields an empty activity.
    """
    now = now if now is not None else datetime.now(timezone.utc)
    try:
        text = Path(transcript_path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug(
            "[activity] Transcript unavailable: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": str(transcript_path)},
        )
        return SessionActivity()

    tracker = _ActivityTracker()
    for line in text.split("\n"):
        record = parse_line(line)
        if record is None:
            continue
        if record.timestamp is not None and tracker.session_start is None:
            tracker.session_start = record.timestamp
        at = record.timestamp if record.timestamp is not None else now

        if not isinstance(record, (AssistantRecord, UserRecord)):
            continue
        if not isinstance(record.content, list):
            continue
        for block in record.content:
            if not isinstance(block, Mapping):
                continue
            block_type = block.get("type")
            if block_type == "tool_use" and isinstance(record, AssistantRecord):
                tracker.observe_tool_use(block, at)
            elif block_type == "tool_result":
                tracker.observe_tool_result(block, at)

    return tracker.build()


__all__ = [
    "AgentActivity",
    "SessionActivity",
    "TodoItem",
    "ToolActivity",
    "parse_activity",
    "tool_target",
]
