"""Shared fixtures for memory tests."""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from memvault.memory.types import MemoryRecord

NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def days_ago(days: float, now: datetime = NOW) -> str:
    return (now - timedelta(days=days)).isoformat()


def make_record(**overrides) -> MemoryRecord:
    """A fully populated record; override any field by its Python name."""
    fields = {
        "session_id": "session-123",
        "node_id": "music",
        "node_name": "Music Vault",
        "timestamp": NOW.isoformat(),
        "command": "album-review",
        "ai_provider": "claude",
        "token_count": 1200,
        "duration_minutes": 12.5,
        "tags": ["music", "review"],
        "summary": "Reviewed the album production and mixing choices",
        "title": "Album review",
        "current_state": "Review drafted",
        "task_spec": "Review the new album",
        "workflow": "Listened, took notes, wrote review",
        "errors": "Initial draft missed the bonus tracks",
        "learnings": "Completed successfully after adding bonus tracks",
        "key_results": "Final review saved",
    }
    fields.update(overrides)
    return MemoryRecord(**fields)


def write_memory(
    sessions_root: Path,
    node_id: str,
    session_id: str,
    content: str,
    age_days: float = 0,
    filename: str = "memory.md",
) -> Path:
    """Write a memory file into the dated hierarchy with an mtime ``age_days`` old."""
    stamp = datetime.now(timezone.utc) - timedelta(days=age_days)
    session_dir = sessions_root / node_id / f"{stamp:%Y}" / f"{stamp:%m}" / f"{stamp:%d}" / session_id
    session_dir.mkdir(parents=True, exist_ok=True)
    path = session_dir / filename
    path.write_text(content, encoding="utf-8")
    os.utime(path, (stamp.timestamp(), stamp.timestamp()))
    return path


@pytest.fixture
def sessions_root(tmp_path):
    root = tmp_path / "sessions"
    root.mkdir()
    return root


@pytest.fixture
def record():
    return make_record()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def memory_writer(sessions_root):
    def _write(node_id: str, session_id: str, content: str, age_days: float = 0, filename: str = "memory.md") -> Path:
        return write_memory(sessions_root, node_id, session_id, content, age_days, filename)
    return _write


@pytest.fixture
def ago():
    return days_ago
