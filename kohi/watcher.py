"""Watch the handler directory and trigger command reloads.

watchdog delivers file events on its own thread; the handler hops back
onto the event loop with ``call_soon_threadsafe`` and debounces there,
so a burst of saves produces one reload after things go quiet.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Optional

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .tasks import log_task_exception

logger = structlog.get_logger("kohi.commands")

DEFAULT_DEBOUNCE_SECONDS = 1.0


class CommandFileHandler(FileSystemEventHandler):
    """Schedules *on_change* after handler files stop changing."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_change: Callable[[], Awaitable[None]],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self._loop = loop
        self._on_change = on_change
        self._debounce_seconds = debounce_seconds
        self._pending: Optional[asyncio.TimerHandle] = None
        self._changed: set = set()

    def _should_ignore(self, path: str) -> bool:
        name = Path(path).name
        return not name.endswith(".py") or name.startswith((".", "_"))

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in (
            "created", "modified", "deleted", "moved",
        ):
            return
        paths = [event.src_path, getattr(event, "dest_path", "") or ""]
        relevant = [str(p) for p in paths if p and not self._should_ignore(str(p))]
        if relevant:
            self._loop.call_soon_threadsafe(self._schedule, relevant)

    # --- event loop side ---

    def _schedule(self, paths) -> None:
        self._changed.update(Path(p).name for p in paths)
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._loop.call_later(self._debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._pending = None
        changed, self._changed = sorted(self._changed), set()
        logger.info("command_files_changed", files=changed)
        task = self._loop.create_task(self._on_change())
        task.add_done_callback(log_task_exception)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class CommandWatcher:
    """Owns the watchdog observer for one directory."""

    def __init__(
        self,
        directory: Path,
        on_change: Callable[[], Awaitable[None]],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.directory = directory
        self._on_change = on_change
        self._debounce_seconds = debounce_seconds
        self._observer: Optional[Observer] = None
        self._handler: Optional[CommandFileHandler] = None

    def start(self) -> None:
        if self._observer is not None:
            return
        if not self.directory.is_dir():
            logger.warning("watch_dir_missing", path=str(self.directory))
            return
        self._handler = CommandFileHandler(
            asyncio.get_running_loop(), self._on_change, self._debounce_seconds
        )
        observer = Observer()
        observer.schedule(self._handler, str(self.directory), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("command_watcher_started", path=str(self.directory))

    def stop(self) -> None:
        if self._observer is None:
            return
        self._handler.cancel()
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("command_watcher_stopped")
