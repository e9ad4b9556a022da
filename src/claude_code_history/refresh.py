# ABOUTME: Refresh pipeline that rebuilds the session snapshot.
# ABOUTME: Runs Idle -> Scanning -> Building -> Swapping -> Idle with one instance at a time.

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Union

from .cache import SessionCache
from .index import DEFAULT_MAX_MESSAGES_TO_INDEX, SearchIndex
from .loaders import (
    GitMetadataProvider,
    LocalSessionLoader,
    ParsedSession,
    SortOption,
    SubprocessGitProvider,
    enrich_sessions,
    resolve_projects_dir,
    sort_sessions,
)

logger = logging.getLogger(__name__)

DEFAULT_SESSION_LIMIT = 200

CompletionListener = Callable[[], Union[None, Awaitable[Any]]]


class RefreshState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    BUILDING = "building"
    SWAPPING = "swapping"


class RefreshPipeline:
    """Owns the only write path into a :class:`SessionCache`.

    A trigger that arrives while a refresh is in flight is dropped; the next
    trigger (timer, file change or explicit request) picks up what it missed.
    A started refresh always runs to completion.
    """

    def __init__(
        self,
        cache: SessionCache,
        root_dir: Path | str | None = None,
        git_provider: GitMetadataProvider | None = None,
        max_messages_to_index: int = DEFAULT_MAX_MESSAGES_TO_INDEX,
        sort: SortOption = SortOption.MOST_RECENT,
        session_limit: int | None = DEFAULT_SESSION_LIMIT,
    ) -> None:
        self.cache = cache
        self.root_dir = resolve_projects_dir(root_dir)
        self.git_provider = git_provider or SubprocessGitProvider()
        self.max_messages_to_index = max_messages_to_index
        self.sort = sort
        self.session_limit = session_limit
        self.state = RefreshState.IDLE
        self.status = "Not loaded"
        self.last_error: Exception | None = None
        self._listeners: list[CompletionListener] = []

    @property
    def is_idle(self) -> bool:
        return self.state is RefreshState.IDLE

    def add_listener(self, listener: CompletionListener) -> None:
        """Register a callback invoked after every completed swap."""
        self._listeners.append(listener)

    def remove_listener(self, listener: CompletionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_root(self, root_dir: Path | str | None) -> None:
        self.root_dir = resolve_projects_dir(root_dir)

    async def run(self) -> bool:
        """Run one refresh; returns False if another one was already running."""
        if self.state is not RefreshState.IDLE:
            logger.debug(f"Refresh already {self.state.value}, trigger coalesced")
            return False

        self.state = RefreshState.SCANNING
        try:
            parsed = await asyncio.to_thread(self._scan)

            self.state = RefreshState.BUILDING
            search_index = SearchIndex.build(parsed, self.max_messages_to_index)
            sessions = [item.session for item in parsed]
            message_details = {item.session.id: item.message_details for item in parsed}

            self.state = RefreshState.SWAPPING
            self.cache.update(sessions, search_index, message_details)
            self.last_error = None
        except Exception as e:
            self.last_error = e
            self.status = f"Refresh failed: {e}"
            logger.exception("Refresh pipeline failed")
            return False
        finally:
            self.state = RefreshState.IDLE

        logger.info(f"Refresh complete: {self.status}")
        await self._notify_listeners()
        return True

    def _scan(self) -> list[ParsedSession]:
        loader = LocalSessionLoader(self.root_dir)
        if not loader.is_available():
            self.status = f"No sessions directory at {self.root_dir}"
            return []

        try:
            parsed = loader.discover_sessions()
        except OSError as e:
            logger.warning(f"Cannot list projects directory {self.root_dir}: {e}")
            self.status = f"Cannot read sessions directory {self.root_dir}: {e}"
            return []
        enrich_sessions(parsed, self.git_provider)
        parsed = sort_sessions(parsed, self.sort)
        if self.session_limit is not None:
            parsed = parsed[: self.session_limit]
        self.status = f"{len(parsed)} sessions"
        return parsed

    async def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Refresh listener failed: {e}")
