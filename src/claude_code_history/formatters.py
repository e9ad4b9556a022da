from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .loaders.base import Session
from .parsers import Message
from .server.models import MessageResponse, SessionResponse


def session_rows(sessions: list[Session]) -> list[dict[str, Any]]:
    return [SessionResponse.from_session(session).model_dump(by_alias=True) for session in sessions]


def message_rows(messages: list[Message]) -> list[dict[str, Any]]:
    return [MessageResponse.from_message(message).model_dump(by_alias=True) for message in messages]


def format_results(results: list[dict[str, Any]], output_format: str) -> str | None:
    if output_format == "json":
        return json.dumps(results, ensure_ascii=True, default=str)
    if output_format == "csv":
        return _results_to_csv(results)
    return None


def format_age(timestamp: datetime, now: datetime | None = None) -> str:
    now = now or datetime.now(tz=timezone.utc)
    delta = max((now - timestamp).total_seconds(), 0)
    if delta < 60:
        return "just now"
    if delta < 3600:
        return f"{int(delta // 60)}m ago"
    if delta < 86400:
        return f"{int(delta // 3600)}h ago"
    if delta < 604800:
        return f"{int(delta // 86400)}d ago"
    return timestamp.strftime("%Y-%m-%d")


def render_sessions(sessions: list[Session]) -> None:
    console = Console()
    for session in sessions:
        header = f"{session.repo_name} | {format_age(session.timestamp)}"
        if session.git_branch:
            header += f" | {session.git_branch}"
        body = f"{escape(session.cleaned_display_name)}\n[dim]{escape(session.project_path)}[/dim]"
        console.print(Panel(body, title=header, subtitle=session.id[:8], border_style="cyan"))


def render_sessions_table(sessions: list[Session]) -> None:
    console = Console()
    table = Table(title="Sessions")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Repo", style="magenta")
    table.add_column("Branch", style="magenta")
    table.add_column("Msgs", style="green", justify="right")
    table.add_column("When", style="green")

    for session in sessions:
        table.add_row(
            session.id[:8],
            session.cleaned_display_name,
            session.repo_name,
            session.git_branch or "",
            str(session.message_count),
            format_age(session.timestamp),
        )
    console.print(table)


def render_messages(messages: list[Message]) -> None:
    console = Console()
    for message in messages:
        header = message.role
        if message.timestamp is not None:
            header += f" | {message.timestamp:%Y-%m-%d %H:%M:%S}"
        content = message.content
        if len(content) > 500:
            content = f"{content[:500]}..."
        style = "cyan" if message.role == "user" else "magenta"
        console.print(Panel(Text(content), title=header, border_style=style))


def _results_to_csv(results: list[dict[str, Any]]) -> str:
    if not results:
        return ""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=results[0].keys())
    writer.writeheader()
    writer.writerows(results)
    return output.getvalue()
