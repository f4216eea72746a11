"""Watch mode: feed file system events into sequential incremental rebuilds.

watchdog delivers events on its observer thread; the handler only hands them
to the event loop. One consumer coroutine applies them in arrival order, so
at most one rebuild runs at a time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from pagewright.paths import is_under

if TYPE_CHECKING:
    from pagewright.builder import SiteBuilder, WatchEvent
    from pagewright.state import BuildState

log = structlog.get_logger()

_EVENT_TYPES: dict[str, WatchEvent] = {
    "created": "created",
    "modified": "modified",
    "deleted": "deleted",
    "moved": "moved",
}


@dataclass(frozen=True)
class Change:
    path: Path
    event: WatchEvent
    is_directory: bool = False
    src_path: Path | None = None  # moves only: the old location


class ChangeHandler(FileSystemEventHandler):
    """Forwards relevant watchdog events to an asyncio queue."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue: asyncio.Queue[Change],
        source_root: Path,
        output_dir: Path,
    ) -> None:
        self._loop = loop
        self._queue = queue
        self._source_root = source_root
        self._output_dir = output_dir

    def _ignored(self, path: Path) -> bool:
        if is_under(path, self._output_dir):
            return True
        try:
            parts = path.relative_to(self._source_root).parts
        except ValueError:
            parts = (path.name,)
        return any(part.startswith(".") for part in parts)

    def on_any_event(self, event: FileSystemEvent) -> None:
        event_type = _EVENT_TYPES.get(event.event_type)
        if event_type is None:
            return
        # Directory modifications only echo changes to their children.
        if event.is_directory and event_type == "modified":
            return

        src_path = _as_path(event.src_path)
        moved_from: Path | None = None
        path = src_path
        if event_type == "moved" and event.dest_path:
            path = _as_path(event.dest_path)
            moved_from = src_path
        if self._ignored(path):
            if moved_from is None or self._ignored(moved_from):
                return
            # Moved out of sight: same as deleting the old location.
            path, event_type, moved_from = moved_from, "deleted", None

        change = Change(
            path=path,
            event=event_type,
            is_directory=event.is_directory,
            src_path=moved_from,
        )
        self._loop.call_soon_threadsafe(self._queue.put_nowait, change)


def _as_path(raw: str | bytes) -> Path:
    return Path(raw if isinstance(raw, str) else raw.decode())


async def _apply(builder: SiteBuilder, change: Change) -> None:
    await builder.rebuild(
        change.path,
        change.event,
        is_directory=change.is_directory,
        src_path=change.src_path,
    )


async def consume_changes(builder: SiteBuilder, queue: asyncio.Queue[Change]) -> None:
    """Apply queued changes one at a time, folding repeats of the same change."""
    while True:
        change = await queue.get()
        # Editors often emit several identical events per save.
        while not queue.empty():
            following = queue.get_nowait()
            if following != change:
                await _apply(builder, change)
            change = following
        await _apply(builder, change)


async def watch(state: BuildState, builder: SiteBuilder) -> None:
    """Observe the site source tree until cancelled."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[Change] = asyncio.Queue()
    handler = ChangeHandler(loop, queue, state.source_root, state.output_dir)

    observer = Observer()
    observer.schedule(handler, str(state.source_root), recursive=True)
    observer.start()
    log.info("watch_started", source=str(state.source_root), output=str(state.output_dir))
    try:
        await consume_changes(builder, queue)
    finally:
        observer.stop()
        await asyncio.to_thread(observer.join)
        log.info("watch_stopped")
