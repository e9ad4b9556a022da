"""Directory change monitor using watchfiles.

Watches the projects root for transcript writes and fires a single debounced
callback once a burst of changes has gone quiet.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from watchfiles import Change, DefaultFilter, awatch

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5
# watchfiles' own batching window; kept well under the debounce window.
_WATCH_BATCH_MS = 50

ChangeCallback = Callable[[], Union[None, Awaitable[Any]]]


class TranscriptFilter(DefaultFilter):
    """Only passes ``.jsonl`` files outside hidden directories of ``root``.

    The root itself usually lives under ``~/.claude``, so only the parts of a
    path below the root are checked. Watchers may report symlink-resolved
    paths, so both spellings of the root are accepted.
    """

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)
        self._roots = (self.root, self.root.resolve())

    def __call__(self, change: Change, path: str) -> bool:
        if not path.endswith(".jsonl"):
            return False
        if any(part.startswith(".") for part in self._relative_parts(Path(path))):
            return False
        return super().__call__(change, path)

    def _relative_parts(self, path: Path) -> tuple[str, ...]:
        for root in self._roots:
            try:
                return path.relative_to(root).parts
            except ValueError:
                continue
        # outside both spellings of the root: judge the file name alone
        return (path.name,)


def is_watchable(root: Path) -> bool:
    if not root.is_dir():
        return False
    try:
        with os.scandir(root):
            pass
    except OSError:
        return False
    return True


class ChangeMonitor:
    """Background watcher with a cancel-and-reschedule debounce.

    Every observed change cancels the pending callback and schedules a new one
    ``debounce`` seconds later, so a burst of changes produces one callback.
    """

    def __init__(
        self,
        root: Path,
        on_change: ChangeCallback,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.root = Path(root)
        self.on_change = on_change
        self.debounce = debounce
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._pending: Optional[asyncio.TimerHandle] = None
        self._callbacks: set[asyncio.Task] = set()

    @classmethod
    def create(
        cls,
        root: Path | str,
        on_change: ChangeCallback,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> Optional["ChangeMonitor"]:
        """Build a monitor, or return None when the root cannot be watched."""
        root = Path(root)
        if not is_watchable(root):
            logger.warning(f"Change monitor unavailable, cannot open {root}")
            return None
        return cls(root, on_change, debounce)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start watching the root in a background task."""
        if self.is_running:
            logger.warning("Change monitor already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(self.root, self._stop_event))
        logger.info(f"Change monitor started for {self.root}")

    async def stop(self) -> None:
        """Stop watching and release the watch handle."""
        self._cancel_pending()
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=2.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None
        self._stop_event = None
        logger.info(f"Change monitor stopped for {self.root}")

    async def restart(self, new_root: Path | str) -> bool:
        """Release the current watch, then watch ``new_root``.

        Returns False, leaving the monitor stopped, if ``new_root`` is unavailable.
        """
        await self.stop()
        new_root = Path(new_root)
        if not is_watchable(new_root):
            logger.warning(f"Change monitor unavailable, cannot open {new_root}")
            return False
        self.root = new_root
        await self.start()
        return True

    def notify(self) -> None:
        """Record one change event and (re)arm the debounce timer."""
        loop = asyncio.get_running_loop()
        self._cancel_pending()
        self._pending = loop.call_later(self.debounce, self._fire)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire(self) -> None:
        self._pending = None
        try:
            result = self.on_change()
        except Exception as e:
            logger.error(f"Change callback failed: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callbacks.add(task)
            task.add_done_callback(self._callbacks.discard)

    async def _watch_loop(self, root: Path, stop_event: asyncio.Event) -> None:
        try:
            async for changes in awatch(
                root,
                watch_filter=TranscriptFilter(root),
                stop_event=stop_event,
                debounce=_WATCH_BATCH_MS,
                step=_WATCH_BATCH_MS,
            ):
                logger.debug(f"Detected {len(changes)} transcript changes under {root}")
                self.notify()
        except asyncio.CancelledError:
            logger.info("Change monitor task cancelled")
            raise
        except Exception as e:
            logger.error(f"Change monitor error: {e}")
