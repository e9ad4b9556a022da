from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from claude_code_history.formatters import format_age, format_results, message_rows, session_rows
from claude_code_history.loaders import Session, TimeFilter
from claude_code_history.parsers import Message

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _session(**kwargs) -> Session:
    defaults = dict(
        id="abc123",
        session_id="log-1",
        display_name="Ship it",
        timestamp=NOW - timedelta(hours=2),
        project_path="/work/rocket/",
        message_count=4,
    )
    defaults.update(kwargs)
    return Session(**defaults)


def test_session_rows_use_wire_keys() -> None:
    rows = session_rows([_session(git_branch="main")])

    assert rows == [
        {
            "id": "abc123",
            "sessionId": "log-1",
            "displayName": "Ship it",
            "timestamp": (NOW - timedelta(hours=2)).timestamp(),
            "projectPath": "/work/rocket/",
            "messageCount": 4,
            "gitBranch": "main",
            "gitRepoName": None,
        }
    ]


def test_message_rows_without_timestamp() -> None:
    rows = message_rows([Message(role="assistant", content="[Thinking: hmm]")])

    assert rows == [{"role": "assistant", "content": "[Thinking: hmm]", "timestamp": None}]


def test_format_results() -> None:
    rows = [{"a": 1, "b": "x"}]

    assert json.loads(format_results(rows, "json")) == rows
    assert format_results(rows, "csv").splitlines() == ["a,b", "1,x"]
    assert format_results([], "csv") == ""
    assert format_results(rows, "rich") is None


def test_format_age() -> None:
    assert format_age(NOW - timedelta(seconds=10), now=NOW) == "just now"
    assert format_age(NOW - timedelta(minutes=5), now=NOW) == "5m ago"
    assert format_age(NOW - timedelta(hours=3), now=NOW) == "3h ago"
    assert format_age(NOW - timedelta(days=2), now=NOW) == "2d ago"
    assert format_age(datetime(2024, 1, 2, tzinfo=timezone.utc), now=NOW) == "2024-01-02"


def test_repo_name_falls_back_to_directory() -> None:
    assert _session().repo_name == "rocket"
    assert _session(git_repo_name="launcher").repo_name == "launcher"


def test_cleaned_display_name() -> None:
    assert _session(display_name="  ").cleaned_display_name == "Unnamed Session"
    assert _session(display_name="/clear").cleaned_display_name == "Unnamed Session"
    assert _session(display_name="[Request interrupted]").cleaned_display_name == "Unnamed Session"
    assert _session(display_name="x" * 60).cleaned_display_name == "x" * 47 + "..."


def test_time_filter() -> None:
    session = _session()

    assert session.matches_time_filter(TimeFilter.LAST_DAY, now=NOW)
    assert not session.matches_time_filter(TimeFilter.LAST_HOUR, now=NOW)
    assert session.matches_time_filter(TimeFilter.ALL_TIME, now=NOW)
