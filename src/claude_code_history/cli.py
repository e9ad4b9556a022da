from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
import httpx
import questionary
from click_default_group import DefaultGroup

from .cache import SessionCache
from .config import Settings
from .formatters import (
    format_results,
    message_rows,
    render_messages,
    render_sessions,
    render_sessions_table,
    session_rows,
)
from .loaders import Session, SortOption, TimeFilter
from .server.app import filter_sessions, run_gateway
from .service import HistoryService

TIME_FILTERS = {
    "1h": TimeFilter.LAST_HOUR,
    "24h": TimeFilter.LAST_DAY,
    "7d": TimeFilter.LAST_WEEK,
    "all": TimeFilter.ALL_TIME,
}

projects_dir_option = click.option(
    "--projects-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Claude Code projects directory override",
)
format_option = click.option(
    "--format",
    "output_format",
    type=click.Choice(["rich", "table", "json", "csv"], case_sensitive=False),
    default="rich",
    show_default=True,
)


@click.group(cls=DefaultGroup, default="serve", default_if_no_args=True)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Browse Claude Code session history via CLI or local web API."""
    level = "DEBUG" if verbose else Settings.from_env().log_level
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@projects_dir_option
@click.option("--host", default=None, help="Host to bind to [default: 0.0.0.0]")
@click.option("--port", default=None, type=int, help="Port to serve on [default: 8000]")
@click.option("--no-watch", is_flag=True, help="Don't watch the projects directory for changes")
def serve(projects_dir: Path | None, host: str | None, port: int | None, no_watch: bool) -> None:
    """Serve sessions over the local network, refreshing on change."""
    settings = _settings(projects_dir)
    if not settings.server_enabled:
        click.echo("Server disabled (CCHISTORY_SERVER_ENABLED is off).")
        return
    host = host or settings.host
    port = port or settings.port
    service = HistoryService(settings, cache=SessionCache())

    click.echo(f"Starting server at http://{host}:{port}")
    try:
        gateway = asyncio.run(run_gateway(service, host, port, watch=not no_watch))
    except KeyboardInterrupt:
        return
    if gateway.last_start_error is not None:
        click.echo(gateway.status_description, err=True)
        sys.exit(1)


@cli.command(name="list")
@projects_dir_option
@click.option(
    "--sort",
    type=click.Choice([option.value for option in SortOption], case_sensitive=False),
    default=SortOption.MOST_RECENT.value,
    show_default=True,
)
@click.option("--since", type=click.Choice(list(TIME_FILTERS)), default="all", show_default=True)
@click.option("--limit", default=10, show_default=True, help="Max sessions")
@format_option
def list_sessions(
    projects_dir: Path | None, sort: str, since: str, limit: int, output_format: str
) -> None:
    """List sessions, most recent first."""
    service = _load(projects_dir, SortOption(sort))
    time_filter = TIME_FILTERS[since]
    sessions = [s for s in service.get_all_sessions() if s.matches_time_filter(time_filter)]
    _output_sessions(sessions[:limit], output_format, service.status)


@cli.command()
@click.argument("query")
@projects_dir_option
@click.option("--project", default="", help="Filter by project path substring")
@click.option("--limit", default=10, show_default=True, help="Max sessions")
@format_option
def search(
    query: str, projects_dir: Path | None, project: str, limit: int, output_format: str
) -> None:
    """Search session names, paths, branches and early messages."""
    service = _load(projects_dir)
    sessions = filter_sessions(service, query=query.strip(), project=project.strip())
    _output_sessions(sessions[:limit], output_format, service.status)


@cli.command()
@click.argument("session_id")
@projects_dir_option
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["rich", "json"], case_sensitive=False),
    default="rich",
    show_default=True,
)
def messages(session_id: str, projects_dir: Path | None, output_format: str) -> None:
    """Show the message history of a session."""
    service = _load(projects_dir)
    session = _find_session(service, session_id)
    if session is None:
        click.echo(f"Session not found: {session_id}", err=True)
        sys.exit(1)
    history = service.get_messages(session.id)
    if output_format == "json":
        click.echo(format_results(message_rows(history), "json"))
        return
    render_messages(history)


@cli.command()
@click.argument("query", required=False, default="")
@projects_dir_option
def pick(query: str, projects_dir: Path | None) -> None:
    """Interactively pick a session and print how to resume it."""
    service = _load(projects_dir)
    sessions = service.search(query) if query else service.get_all_sessions()
    if not sessions:
        click.echo(f"No sessions found. {service.status}")
        return

    choices = [
        questionary.Choice(title=_format_session_choice(session), value=session)
        for session in sessions[:50]
    ]
    selected = questionary.select("Select a session:", choices=choices).ask()
    if selected is None:
        return
    render_messages(service.get_messages(selected.id))
    click.echo(f"\ncd {selected.project_path} && claude --resume {selected.session_id}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=None, type=int, help="Port of the running server")
def info(host: str, port: int | None) -> None:
    """Show details of a running server."""
    port = port or Settings.from_env().port
    try:
        response = httpx.get(f"http://{host}:{port}/api/info", timeout=5.0)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        click.echo(f"Server not reachable at {host}:{port}: {exc}", err=True)
        sys.exit(1)
    data = response.json()
    click.echo(f"Version: {data['version']}")
    click.echo(f"Host: {data['hostname']}")
    click.echo(f"Port: {data['port']}")


def _settings(projects_dir: Path | None) -> Settings:
    settings = Settings.from_env()
    if projects_dir is not None:
        settings = replace(settings, projects_dir=projects_dir)
    return settings


def _load(projects_dir: Path | None, sort: SortOption = SortOption.MOST_RECENT) -> HistoryService:
    service = HistoryService(_settings(projects_dir), cache=SessionCache(), sort=sort)
    asyncio.run(service.refresh())
    return service


def _find_session(service: HistoryService, session_id: str) -> Session | None:
    session = service.get_session(session_id)
    if session is not None:
        return session
    for candidate in service.get_all_sessions():
        if candidate.session_id == session_id or candidate.id.startswith(session_id):
            return candidate
    return None


def _output_sessions(sessions: list[Session], output_format: str, status: str) -> None:
    formatted = format_results(session_rows(sessions), output_format)
    if formatted is not None:
        click.echo(formatted)
        return
    if not sessions:
        click.echo(f"No sessions found. {status}")
        return
    if output_format == "table":
        render_sessions_table(sessions)
    else:
        render_sessions(sessions)


def _format_session_choice(session: Session) -> str:
    name = session.cleaned_display_name
    branch = f" ({session.git_branch})" if session.git_branch else ""
    return f"{session.id[:8]}  {session.repo_name}{branch}  \"{name}\"  {session.message_count} msgs"
