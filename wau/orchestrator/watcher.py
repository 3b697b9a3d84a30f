"""
File Watch Coordinator - turns filesystem events into analysis triggers.

watchdog delivers events on its observer thread; they are handed to the
event loop and coalesced there:
- events under ignored directories, backup files and paths the executor
  just wrote are dropped without touching the debounce window
- every other matching event (re)starts the debounce window
- when the window closes quietly, exactly one trigger fires, carrying no
  per-file detail (the analyzer rescans the whole tree)

Stopping cancels a pending window; its trigger never fires.
"""

import asyncio
import fnmatch
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from wau.config import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_WATCH_PATTERNS, with_default_ignores
from wau.exceptions import WatchError
from wau.orchestrator.backup import is_backup_file

logger = logging.getLogger(__name__)

# How long events for paths the executor wrote are ignored
OWN_WRITE_GRACE_SECONDS = 2.0


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """
    Glob match for a project-relative posix path.

    "**/" at the start also matches files in the root, so "**/*" matches
    everything.
    """
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    if pattern.startswith("**/"):
        return fnmatch.fnmatch(rel_path, pattern[3:])
    return False


class _ChangeHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the loop."""

    def __init__(self, coordinator: "FileWatchCoordinator", loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.coordinator = coordinator
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write"):
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for path in paths:
            if isinstance(path, bytes):
                path = os.fsdecode(path)
            try:
                self.loop.call_soon_threadsafe(self.coordinator.notify_change, path)
            except RuntimeError:
                # Loop already closed during shutdown
                return


class FileWatchCoordinator:
    """
    Debounced filesystem watcher for one project root.

    notify_change() must be called on the event loop thread; the watchdog
    handler takes care of that for real events.
    """

    def __init__(
        self,
        root: str | Path,
        on_trigger: Callable[[], Any],
        watch_patterns: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer_factory: Callable[[], Any] = Observer,
    ):
        """
        Initialize coordinator.

        Args:
            root: Project root to watch recursively
            on_trigger: Called on the loop once per closed debounce window
            watch_patterns: Globs (relative to root) that count as changes
            ignore_patterns: Extra directory names or globs that never count
            debounce_seconds: Quiet period before a trigger fires
            observer_factory: Creates the watchdog observer
        """
        self.root = Path(root).resolve()
        self.on_trigger = on_trigger
        self.watch_patterns = watch_patterns or list(DEFAULT_WATCH_PATTERNS)
        self.ignore_patterns = with_default_ignores(ignore_patterns)
        self.debounce_seconds = debounce_seconds
        self._observer_factory = observer_factory

        self._observer: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: asyncio.TimerHandle | None = None
        self._own_writes: dict[str, float] = {}
        self._running = False

        self.trigger_count = 0
        self.watched_files = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_pending_trigger(self) -> bool:
        return self._pending is not None

    @property
    def is_alive(self) -> bool:
        """False once the observer thread has died unexpectedly."""
        if not self._running:
            return False
        is_alive = getattr(self._observer, "is_alive", None)
        return bool(is_alive()) if callable(is_alive) else True

    def start(self) -> None:
        """
        Start watching. Must be called from within the running event loop.

        Raises:
            WatchError: If the root is missing or the observer cannot start
        """
        if self._running:
            return
        if not self.root.is_dir():
            raise WatchError(f"Cannot watch missing directory: {self.root}")

        self._loop = asyncio.get_running_loop()
        try:
            self._observer = self._observer_factory()
            self._observer.schedule(_ChangeHandler(self, self._loop), str(self.root), recursive=True)
            self._observer.start()
        except Exception as e:
            self._observer = None
            raise WatchError(f"Failed to start file watcher: {e}", {"root": str(self.root)}) from e

        self._running = True
        self.watched_files = self.count_watched_files()
        logger.info(f"Watching {self.root} ({self.watched_files} files)")

    async def stop(self) -> None:
        """Cancel any pending trigger and release the observer."""
        self._running = False
        self._cancel_pending()

        observer, self._observer = self._observer, None
        if observer is not None:
            try:
                observer.stop()
                await asyncio.to_thread(observer.join, 5.0)
            except Exception as e:
                logger.warning(f"Error stopping file watcher: {e}")
        logger.info(f"Stopped watching {self.root}")

    def notify_change(self, path: str | Path) -> bool:
        """
        Feed one changed path into the debounce window.

        Returns:
            True if the event (re)started the window, False if it was dropped
        """
        if not self._running:
            return False

        rel_path = self._relative(path)
        if rel_path is None or self._is_ignored(rel_path) or self._is_own_write(rel_path):
            return False
        if not any(matches_pattern(rel_path, p) for p in self.watch_patterns):
            return False

        self._cancel_pending()
        loop = self._loop or asyncio.get_running_loop()
        self._pending = loop.call_later(self.debounce_seconds, self._fire)
        return True

    def ignore_own_writes(self, paths: list[Path], grace_seconds: float = OWN_WRITE_GRACE_SECONDS) -> None:
        """Drop events for these paths for a short while (executor writes)."""
        now = time.monotonic()
        self._own_writes = {p: d for p, d in self._own_writes.items() if d >= now}
        deadline = now + grace_seconds
        for path in paths:
            rel_path = self._relative(path)
            if rel_path is None:
                continue
            self._own_writes[rel_path] = deadline
            # Directories the write creates or modifies (".husky" for ".husky/pre-commit")
            parent = Path(rel_path).parent
            while parent.as_posix() != ".":
                self._own_writes[parent.as_posix()] = deadline
                parent = parent.parent

    def count_watched_files(self) -> int:
        """Count files under the root that match the watch patterns."""
        count = 0
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = [d for d in dirnames if not self._is_ignored_name(d)]
            for filename in filenames:
                rel_path = (Path(dirpath) / filename).relative_to(self.root).as_posix()
                if self._is_ignored(rel_path):
                    continue
                if any(matches_pattern(rel_path, p) for p in self.watch_patterns):
                    count += 1
        return count

    def refresh_watched_files(self) -> int:
        self.watched_files = self.count_watched_files()
        return self.watched_files

    def _fire(self) -> None:
        self._pending = None
        if not self._running:
            return
        self.trigger_count += 1
        logger.debug(f"Change window closed, trigger #{self.trigger_count}")
        try:
            self.on_trigger()
        except Exception:
            logger.exception("Analysis trigger callback failed")

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _relative(self, path: str | Path) -> str | None:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        try:
            return candidate.relative_to(self.root).as_posix()
        except ValueError:
            try:
                return candidate.resolve().relative_to(self.root).as_posix()
            except (OSError, ValueError):
                return None

    def _is_ignored_name(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, p) for p in self.ignore_patterns)

    def _is_ignored(self, rel_path: str) -> bool:
        if rel_path in ("", "."):
            return True
        if is_backup_file(rel_path):
            return True
        if any(self._is_ignored_name(part) for part in rel_path.split("/")):
            return True
        return any(matches_pattern(rel_path, p) for p in self.ignore_patterns if "/" in p)

    def _is_own_write(self, rel_path: str) -> bool:
        deadline = self._own_writes.get(rel_path)
        if deadline is None:
            return False
        if time.monotonic() > deadline:
            del self._own_writes[rel_path]
            return False
        return True
