from __future__ import annotations

import base64
import hashlib
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from ..parsers import Message, parse_line, parse_message
from .base import ParsedSession, Session, SessionLoader
from .git import has_shell_metacharacters

logger = logging.getLogger(__name__)

PROJECTS_DIR = Path.home() / ".claude" / "projects"
ENV_PROJECTS_DIR = "CLAUDE_CODE_PROJECTS_DIR"
SESSION_SUFFIX = ".jsonl"
SESSION_ID_LENGTH = 32


def resolve_projects_dir(root_dir: Path | str | None = None) -> Path:
    """Resolve the projects root, falling back to ``~/.claude/projects``.

    Custom roots containing shell metacharacters are refused.
    """
    candidate = root_dir if root_dir is not None else os.environ.get(ENV_PROJECTS_DIR)
    if not candidate:
        return PROJECTS_DIR
    candidate = str(candidate)
    if has_shell_metacharacters(candidate):
        logger.warning(f"Ignoring projects dir with unsafe characters: {candidate!r}")
        return PROJECTS_DIR
    return Path(os.path.normpath(os.path.expanduser(candidate)))


def stable_session_id(path: Path | str) -> str:
    """Derive a fixed-length, URL-safe id from the transcript's absolute path.

    The id depends on the path only, so a renamed or moved transcript is a new
    session.
    """
    absolute = os.path.abspath(str(path))
    digest = hashlib.sha256(absolute.encode("utf-8")).digest()
    encoded = base64.b64encode(digest).decode("ascii")
    return encoded.replace("/", "-").replace("+", "_")[:SESSION_ID_LENGTH]


def decode_project_dir(name: str) -> str:
    """Best-effort reversal of Claude Code's project directory naming.

    Claude Code replaces every path separator with ``-`` when it creates the
    directory, so a project path that itself contains ``-`` cannot be
    recovered exactly. The embedded ``cwd`` field is preferred for that reason.
    """
    return name.replace("-", "/")


def iter_records(path: Path) -> Iterator[dict[str, Any]]:
    """Yield decoded records one line at a time, skipping malformed lines."""
    with path.open(encoding="utf-8", errors="replace") as handle:
        for line in handle:
            raw = parse_line(line)
            if raw is not None:
                yield raw


def parse_session_file(path: Path, session_id: str, project_path: str) -> ParsedSession | None:
    """Parse one transcript into a session.

    A session is produced only when the file has a ``summary`` record and at
    least one message with a parseable timestamp. Either one missing means the
    file yields nothing.
    """
    summary: str | None = None
    cwd: str | None = None
    latest: datetime | None = None
    message_count = 0
    messages: list[str] = []
    details: list[Message] = []

    try:
        for raw in iter_records(path):
            if cwd is None:
                value = raw.get("cwd")
                if isinstance(value, str) and value:
                    cwd = value

            record_type = raw.get("type")
            if record_type == "summary":
                if summary is None and isinstance(raw.get("summary"), str):
                    summary = raw["summary"]
                continue

            if record_type == "user":
                message_count += 1

            message, timestamp = parse_message(raw)
            if timestamp is not None and (latest is None or timestamp > latest):
                latest = timestamp
            if message is not None:
                messages.append(message.content)
                details.append(message)
    except OSError as exc:
        logger.debug(f"Skipping unreadable transcript {path}: {exc}")
        return None

    if summary is None:
        logger.debug(f"No summary record in {path}, skipping")
        return None
    if latest is None:
        logger.debug(f"No valid message timestamp in {path}, skipping")
        return None

    session = Session(
        id=stable_session_id(path),
        session_id=session_id,
        display_name=summary,
        timestamp=latest,
        project_path=cwd or project_path,
        message_count=message_count,
    )
    return ParsedSession(session=session, messages=messages, message_details=details)


class LocalSessionLoader(SessionLoader):
    """Loads sessions from ``<root>/<project>/<session>.jsonl``."""

    def __init__(self, root_dir: Path | str | None = None) -> None:
        self.root_dir = resolve_projects_dir(root_dir)

    def is_available(self) -> bool:
        return self.root_dir.is_dir()

    def discover_sessions(self) -> list[ParsedSession]:
        """Parse every transcript under the root.

        A missing root yields nothing. A root that exists but cannot be listed
        raises ``OSError`` so callers can report it.
        """
        if not self.is_available():
            return []
        project_dirs = sorted(self.root_dir.iterdir())

        parsed: list[ParsedSession] = []
        for project_dir in project_dirs:
            if project_dir.name.startswith(".") or not project_dir.is_dir():
                continue
            parsed.extend(self._discover_project(project_dir))
        return parsed

    def _discover_project(self, project_dir: Path) -> list[ParsedSession]:
        try:
            session_files = sorted(project_dir.glob(f"*{SESSION_SUFFIX}"))
        except OSError as exc:
            logger.debug(f"Cannot list project directory {project_dir}: {exc}")
            return []

        fallback_path = decode_project_dir(project_dir.name)
        parsed: list[ParsedSession] = []
        for session_file in session_files:
            if not session_file.is_file():
                continue
            result = parse_session_file(session_file, session_file.stem, fallback_path)
            if result is not None:
                parsed.append(result)
        return parsed
