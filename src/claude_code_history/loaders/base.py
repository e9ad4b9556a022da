# ABOUTME: Base classes and types for session loaders.
# ABOUTME: Defines the Session dataclass, ordering options and the SessionLoader interface.

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from ..parsers import Message


class SortOption(str, Enum):
    """Orderings for the session list."""

    MOST_RECENT = "recent"
    MOST_ACTIVE = "active"


class TimeFilter(Enum):
    """Look-back windows for the session list."""

    LAST_HOUR = timedelta(hours=1)
    LAST_DAY = timedelta(days=1)
    LAST_WEEK = timedelta(days=7)
    ALL_TIME = timedelta(0)


_PLACEHOLDER_NAMES = {"", "Untitled Session"}


@dataclass
class Session:
    """A Claude Code session derived from one transcript file."""

    id: str  # stable hash of the transcript path
    session_id: str  # transcript file stem, used with `claude --resume`
    display_name: str
    timestamp: datetime
    project_path: str
    message_count: int = 0
    git_branch: str | None = None
    git_repo_name: str | None = None

    @property
    def repo_name(self) -> str:
        if self.git_repo_name:
            return self.git_repo_name
        return os.path.basename(self.project_path.rstrip("/"))

    @property
    def cleaned_display_name(self) -> str:
        name = self.display_name.strip()
        if name in _PLACEHOLDER_NAMES or name.startswith(("/", "[")):
            return "Unnamed Session"
        if len(name) > 50:
            return name[:47] + "..."
        return name

    def matches_time_filter(self, time_filter: TimeFilter, now: datetime | None = None) -> bool:
        if time_filter is TimeFilter.ALL_TIME:
            return True
        now = now or datetime.now(tz=timezone.utc)
        return self.timestamp >= now - time_filter.value


@dataclass
class ParsedSession:
    """A session together with the messages read from its transcript."""

    session: Session
    messages: list[str] = field(default_factory=list)
    message_details: list[Message] = field(default_factory=list)


class SessionLoader(ABC):
    """Abstract base class for session loaders."""

    @abstractmethod
    def discover_sessions(self) -> list[ParsedSession]:
        """Discover and parse available sessions."""
        ...
