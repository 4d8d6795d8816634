"""Tests for live activity extraction and the status-line activity lines."""

from datetime import datetime, timedelta, timezone

import pytest

from factories import simple_session_entries, write_jsonl
from tripstats.cli.render import (
    render_agents_lines,
    render_status_line,
    render_todos_line,
    render_tools_line,
)
from tripstats.core.activity import (
    COMPLETED,
    RUNNING,
    AgentActivity,
    SessionActivity,
    TodoItem,
    ToolActivity,
    parse_activity,
    tool_target,
)
from tripstats.core.cache import SessionCacheStore
from tripstats.core.config import BillingConfig
from tripstats.core.session import load_session_snapshot
from tripstats.core.transcript import TranscriptAggregator

START = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


def _ts(seconds: int) -> str:
    return (START + timedelta(seconds=seconds)).isoformat().replace("+00:00", "Z")


def _tool_use(tool_id, name, tool_input=None, *, at=None):
    entry = {
        "type": "assistant",
        "message": {
            "role": "assistant",
            "content": [
                {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input or {}}
            ],
        },
    }
    if at is not None:
        entry["timestamp"] = _ts(at)
    return entry


def _tool_result(tool_id, *, is_error=False, at=None):
    block = {"type": "tool_result", "tool_use_id": tool_id, "content": "ok"}
    if is_error:
        block["is_error"] = True
    entry = {"type": "user", "message": {"role": "user", "content": [block]}}
    if at is not None:
        entry["timestamp"] = _ts(at)
    return entry


def _write(tmp_path, entries):
    return write_jsonl(tmp_path / "activity.jsonl", entries)


def test_session_start_is_first_timestamp(tmp_path):
    path = _write(
        tmp_path,
        [
            {"type": "summary", "summary": "no time here"},
            {"type": "file-history-snapshot", "snapshot": {"timestamp": _ts(5)}},
            {"type": "user", "timestamp": _ts(10), "message": {"content": "hi"}},
        ],
    )
    assert parse_activity(path).session_start == START + timedelta(seconds=5)


def test_finished_tools_are_counted_by_name(tmp_path):
    path = _write(
        tmp_path,
        [
            _tool_use("t1", "Read", {"file_path": "/src/app/main.py"}),
            _tool_result("t1"),
            _tool_use("t2", "Read", {"file_path": "/src/app/util.py"}),
            _tool_result("t2"),
            _tool_use("t3", "Bash", {"command": "false"}),
            _tool_result("t3", is_error=True),
        ],
    )
    activity = parse_activity(path)
    assert activity.tool_counts == {"Read": 2, "Bash": 1}
    assert activity.running_tools == []
    assert activity.session_start is None


def test_only_last_two_running_tools_are_kept(tmp_path):
    path = _write(
        tmp_path,
        [
            _tool_use("t1", "Grep", {"pattern": "TODO"}),
            _tool_use("t2", "Glob", {"pattern": "**/*.py"}),
            _tool_use("t3", "Edit", {"file_path": "/src/app/main.py"}),
        ],
    )
    running = parse_activity(path).running_tools
    assert [tool.tool_id for tool in running] == ["t2", "t3"]
    assert all(tool.status == RUNNING for tool in running)
    assert running[1].target == "/src/app/main.py"


def test_errored_tool_is_counted_and_no_longer_running(tmp_path):
    path = _write(
        tmp_path, [_tool_use("t1", "Bash", {"command": "ls"}), _tool_result("t1", is_error=True)]
    )
    activity = parse_activity(path)
    assert activity.tool_counts == {"Bash": 1}
    assert activity.running_tools == []


@pytest.mark.parametrize(
    "name, tool_input, expected",
    [
        ("Read", {"file_path": "/a/b.py"}, "/a/b.py"),
        ("NotebookEdit", {"notebook_path": "/n.ipynb"}, "/n.ipynb"),
        ("Grep", {"pattern": "def main"}, "def main"),
        ("Bash", {"command": "pytest -q"}, "pytest -q"),
        ("Bash", {"command": "x" * 40}, "x" * 30 + "..."),
        ("WebSearch", {"query": "pydantic validators"}, "pydantic validators"),
        ("WebFetch", {"url": "https://example.com"}, "https://example.com"),
        ("LSP", {"operation": "hover"}, "hover"),
        ("Mystery", {"file_path": "/a"}, None),
        ("Read", {"file_path": 3}, None),
    ],
)
def test_tool_target(name, tool_input, expected):
    assert tool_target(name, tool_input) == expected


def test_task_blocks_become_agents(tmp_path):
    path = _write(
        tmp_path,
        [
            _tool_use(
                "a1",
                "Task",
                {"subagent_type": "Explore", "description": "Find config loaders"},
                at=0,
            ),
            _tool_use("a2", "Task", {"description": "Review diff"}, at=10),
            _tool_result("a1", at=95),
        ],
    )
    agents = parse_activity(path).agents
    assert [(a.tool_id, a.agent_type, a.status) for a in agents] == [
        ("a1", "Explore", COMPLETED),
        ("a2", "unknown", RUNNING),
    ]
    assert agents[0].ended_at == START + timedelta(seconds=95)
    assert agents[1].description == "Review diff"


def test_agents_are_capped_at_ten(tmp_path):
    path = _write(tmp_path, [_tool_use(f"a{idx}", "Task") for idx in range(12)])
    agents = parse_activity(path).agents
    assert len(agents) == 10
    assert agents[0].tool_id == "a2"


def test_todo_write_replaces_the_list(tmp_path):
    path = _write(
        tmp_path,
        [
            _tool_use("w1", "TodoWrite", {"todos": [{"content": "old", "status": "pending"}]}),
            _tool_use(
                "w2",
                "TodoWrite",
                {
                    "todos": [
                        {"content": "Write tests", "status": "completed"},
                        {"content": "Ship it", "status": "in_progress"},
                        {"status": "pending"},
                        "junk",
                    ]
                },
            ),
        ],
    )
    activity = parse_activity(path)
    assert activity.todos == [
        TodoItem("Write tests", "completed"),
        TodoItem("Ship it", "in_progress"),
        TodoItem("", "pending"),
    ]
    assert activity.tool_counts == {}
    assert activity.running_tools == []


def test_missing_transcript_gives_empty_activity(tmp_path):
    activity = parse_activity(tmp_path / "absent.jsonl")
    assert activity == SessionActivity()


def test_tools_line_shows_running_then_most_used():
    activity = SessionActivity(
        running_tools=[
            ToolActivity("t1", "Edit", "/src/app/main.py", START),
            ToolActivity("t2", "TaskOutput", None, START),
        ],
        tool_counts={"Read": 1, "Bash": 4, "Grep": 2, "Glob": 1, "Edit": 3, "Write": 1},
    )
    line = render_tools_line(activity)
    assert line.startswith("◐ Edit: main.py | ◐ TaskOutput | ✓ Bash ×4 | ✓ Edit ×3 | ✓ Grep ×2")
    assert line.count("✓") == 5
    assert render_tools_line(SessionActivity()) is None


def test_agents_lines_show_running_and_recent_completed():
    now = START + timedelta(seconds=200)
    done = [
        AgentActivity(f"d{idx}", "Explore", None, START, COMPLETED, START + timedelta(seconds=90))
        for idx in range(3)
    ]
    running = AgentActivity(
        "r1", "general-purpose", "Investigate the flaky cache expiry test suite", START
    )
    lines = render_agents_lines(SessionActivity(agents=done + [running]), now)
    assert lines == [
        "◐ general-purpose: Investigate the flaky cache expiry te... (3m 20s)",
        "✓ Explore (1m 30s)",
        "✓ Explore (1m 30s)",
    ]


def test_todos_line():
    in_progress = SessionActivity(
        todos=[TodoItem("Write tests", COMPLETED), TodoItem("Ship it", "in_progress")]
    )
    assert render_todos_line(in_progress) == "▸ Ship it (1/2)"
    done = SessionActivity(todos=[TodoItem("a", COMPLETED), TodoItem("b", COMPLETED)])
    assert render_todos_line(done) == "✓ All todos complete (2/2)"
    pending = SessionActivity(todos=[TodoItem("a", "pending")])
    assert render_todos_line(pending) is None
    assert render_todos_line(SessionActivity()) is None


def test_status_line_includes_duration_and_activity(projects_root, tmp_path):
    entries = simple_session_entries()
    entries[0]["timestamp"] = _ts(0)
    entries.append(
        _tool_use("a1", "Task", {"subagent_type": "Plan", "description": "Outline"}, at=30)
    )
    entries.append(
        _tool_use("w1", "TodoWrite", {"todos": [{"content": "Plan", "status": "in_progress"}]})
    )
    path = write_jsonl(projects_root / "-work-app" / "timed.jsonl", entries)

    config = BillingConfig()
    snapshot = load_session_snapshot(
        path,
        billing=config,
        store=SessionCacheStore(tmp_path / "stats"),
        aggregator=TranscriptAggregator(projects_root),
    )
    now = START + timedelta(minutes=95)
    lines = render_status_line(snapshot, config, parse_activity(path, now=now), now=now).split("\n")

    assert "| 📝 750/msg | ⏱️ 1h 35m | 📈 /trip" in lines[0]
    assert lines[1:] == ["✓ Read ×1", "◐ Plan: Outline (94m 30s)", "▸ Plan (0/1)"]
