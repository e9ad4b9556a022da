# ABOUTME: Pytest configuration and shared fixtures.
# ABOUTME: Builds temporary projects directories filled with transcript files.

import json
from pathlib import Path
from typing import Callable

import pytest

from claude_code_history.cache import SessionCache
from claude_code_history.loaders import NullGitProvider
from claude_code_history.refresh import RefreshPipeline

TranscriptWriter = Callable[..., Path]


def make_records(
    summary: str | None = "Build authentication feature",
    cwd: str | None = "/Users/test/project",
    messages: list[tuple[str, str, str | None]] | None = None,
) -> list[dict]:
    """Build transcript records: an optional summary plus (role, content, timestamp) messages."""
    records: list[dict] = []
    if summary is not None:
        records.append({"type": "summary", "summary": summary, "leafUuid": "leaf-1"})
    if messages is None:
        messages = [
            ("user", "Let's build auth", "2024-01-15T10:30:45.123Z"),
            ("assistant", "I'll help with the login flow", "2024-01-15T10:30:46.456Z"),
            ("user", "Thanks", "2024-01-15T10:31:00.789Z"),
        ]
    for role, content, timestamp in messages:
        record: dict = {"type": role, "message": {"role": role, "content": content}}
        if timestamp is not None:
            record["timestamp"] = timestamp
        if cwd is not None:
            record["cwd"] = cwd
        records.append(record)
    return records


@pytest.fixture
def projects_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def write_transcript(projects_root: Path) -> TranscriptWriter:
    """Write records (dicts or raw strings) to ``<root>/<project>/<name>.jsonl``."""

    def _write(records: list, project: str = "-Users-test-project", name: str = "session-1") -> Path:
        project_dir = projects_root / project
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / f"{name}.jsonl"
        with path.open("w") as f:
            for record in records:
                line = record if isinstance(record, str) else json.dumps(record)
                f.write(line + "\n")
        return path

    return _write


@pytest.fixture
def cache() -> SessionCache:
    return SessionCache()


@pytest.fixture
def pipeline(cache: SessionCache, projects_root: Path) -> RefreshPipeline:
    return RefreshPipeline(cache, root_dir=projects_root, git_provider=NullGitProvider())


@pytest.fixture
def records() -> Callable[..., list[dict]]:
    return make_records
