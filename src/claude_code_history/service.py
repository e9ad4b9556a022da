# ABOUTME: Facade used by UI layers (CLI, HTTP gateway) to read and refresh sessions.
# ABOUTME: Wires the cache, refresh pipeline, change monitor and periodic refresh timer.

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .cache import SessionCache, session_cache
from .config import Settings
from .loaders import NullGitProvider, Session, SortOption, SubprocessGitProvider
from .monitor import ChangeMonitor
from .parsers import Message
from .refresh import CompletionListener, RefreshPipeline

logger = logging.getLogger(__name__)


class HistoryService:
    def __init__(
        self,
        settings: Settings | None = None,
        cache: SessionCache | None = None,
        pipeline: RefreshPipeline | None = None,
        sort: SortOption = SortOption.MOST_RECENT,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.cache = cache or session_cache
        if pipeline is None:
            git_provider = (
                SubprocessGitProvider(timeout=self.settings.git_timeout)
                if self.settings.git_enabled
                else NullGitProvider()
            )
            pipeline = RefreshPipeline(
                self.cache,
                root_dir=self.settings.projects_dir,
                git_provider=git_provider,
                max_messages_to_index=self.settings.max_messages_to_index,
                sort=sort,
                session_limit=self.settings.session_limit,
            )
        self.pipeline = pipeline
        self.monitor: Optional[ChangeMonitor] = None
        self._timer_task: Optional[asyncio.Task] = None

    @property
    def root_dir(self) -> Path:
        return self.pipeline.root_dir

    @property
    def status(self) -> str:
        return self.pipeline.status

    async def start(self, watch: bool = True, periodic: bool = True) -> None:
        """Load the first snapshot, then keep it fresh in the background."""
        await self.refresh()
        if watch:
            await self._start_monitor()
        if periodic and self.settings.refresh_interval > 0:
            self._timer_task = asyncio.create_task(self._periodic_refresh())

    async def stop(self) -> None:
        if self._timer_task is not None:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None
        if self.monitor is not None:
            await self.monitor.stop()

    async def refresh(self) -> bool:
        return await self.pipeline.run()

    async def set_root(self, root_dir: Path | str) -> None:
        """Point the service at a new projects root and reload."""
        self.pipeline.set_root(root_dir)
        if self.monitor is not None:
            if not await self.monitor.restart(self.pipeline.root_dir):
                self.monitor = None
        else:
            await self._start_monitor()
        await self.refresh()

    def subscribe(self, listener: CompletionListener) -> None:
        self.pipeline.add_listener(listener)

    def unsubscribe(self, listener: CompletionListener) -> None:
        self.pipeline.remove_listener(listener)

    def get_all_sessions(self) -> list[Session]:
        return self.cache.get_all_sessions()

    def get_session(self, session_id: str) -> Session | None:
        return self.cache.get_session(session_id)

    def search(self, query: str) -> list[Session]:
        return self.cache.search_sessions(query)

    def get_messages(self, session_id: str) -> list[Message]:
        return self.cache.get_messages(session_id)

    async def _start_monitor(self) -> None:
        self.monitor = ChangeMonitor.create(
            self.pipeline.root_dir, self.refresh, debounce=self.settings.debounce_seconds
        )
        if self.monitor is None:
            return
        await self.monitor.start()

    async def _periodic_refresh(self) -> None:
        while True:
            await asyncio.sleep(self.settings.refresh_interval)
            await self.refresh()
