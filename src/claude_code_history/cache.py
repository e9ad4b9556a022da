# ABOUTME: Process-wide session cache shared by the CLI and the HTTP gateway.
# ABOUTME: Holds one immutable snapshot that the refresh pipeline replaces as a whole.

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping

from .index import SearchIndex
from .loaders.base import Session
from .parsers import Message


@dataclass(frozen=True)
class Snapshot:
    """Sessions, index and message details from a single refresh."""

    sessions: tuple[Session, ...] = ()
    search_index: SearchIndex = field(default_factory=SearchIndex)
    message_details: Mapping[str, tuple[Message, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    refreshed_at: datetime | None = None


class SessionCache:
    """Single-writer store; readers always see a complete snapshot.

    ``update`` is reserved for the refresh pipeline. Read methods never lock:
    each one loads the current snapshot reference once and answers from it.
    """

    def __init__(self) -> None:
        self._snapshot = Snapshot()
        self._swap_lock = threading.Lock()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def update(
        self,
        sessions: Iterable[Session],
        search_index: SearchIndex,
        message_details: Mapping[str, Iterable[Message]],
    ) -> Snapshot:
        snapshot = Snapshot(
            sessions=tuple(sessions),
            search_index=search_index,
            message_details=MappingProxyType(
                {key: tuple(value) for key, value in message_details.items()}
            ),
            refreshed_at=datetime.now(tz=timezone.utc),
        )
        with self._swap_lock:
            self._snapshot = snapshot
        return snapshot

    def clear(self) -> None:
        with self._swap_lock:
            self._snapshot = Snapshot()

    def get_all_sessions(self) -> list[Session]:
        return list(self._snapshot.sessions)

    def get_session(self, session_id: str) -> Session | None:
        for session in self._snapshot.sessions:
            if session.id == session_id:
                return session
        return None

    def search_sessions(self, query: str) -> list[Session]:
        snapshot = self._snapshot
        matching = snapshot.search_index.search(query)
        return [session for session in snapshot.sessions if session.id in matching]

    def get_messages(self, session_id: str) -> list[Message]:
        return list(self._snapshot.message_details.get(session_id, ()))


session_cache = SessionCache()
