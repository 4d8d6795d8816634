"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from factories import simple_session_entries, write_jsonl


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep every test away from the real ~/.claude directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.delenv("TRIPSTATS_BILLING_MODE", raising=False)
    monkeypatch.delenv("TRIPSTATS_SAFETY_MARGIN", raising=False)
    monkeypatch.delenv("TRIPSTATS_LOG_DIR", raising=False)
    return home


@pytest.fixture
def projects_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def simple_transcript(projects_root: Path) -> Path:
    return write_jsonl(
        projects_root / "-work-app" / "simple-session.jsonl", simple_session_entries()
    )
