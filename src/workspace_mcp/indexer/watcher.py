"""Filesystem watcher producing a normalized stream of document events.

Two native backends share one interface:

- Linux: inotify via inotify_simple, one watch per directory
- other platforms: watchdog's native observer (FSEvents, ReadDirectoryChangesW)

Events under hidden entries or excluded directories are never emitted.
Notifications that are ambiguous (a rename, or a removal racing a rapid
re-creation) are resolved by checking whether the path exists when the
notification is processed.

When the native facility may have dropped events (queue overflow, the root
being moved or deleted, whole directories moving), a ``scan_required`` event
tells the consumer to rebuild from scratch.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import queue
import sys
import threading
import weakref
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from workspace_mcp.indexer.walker import should_skip, should_skip_path

logger = logging.getLogger(__name__)

_READ_TIMEOUT_MS = 200  # inotify read timeout; bounds how long stop() waits
_JOIN_TIMEOUT = 5.0
_ASYNC_POLL_INTERVAL = 0.1


class FileWatchEventType(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    SCAN_REQUIRED = "scan_required"


@dataclass(frozen=True)
class FileWatchEvent:
    """A change under the watched root, with a workspace-relative path."""

    type: FileWatchEventType
    path: str | None = None

    @classmethod
    def created(cls, path: str) -> FileWatchEvent:
        return cls(FileWatchEventType.CREATED, path)

    @classmethod
    def modified(cls, path: str) -> FileWatchEvent:
        return cls(FileWatchEventType.MODIFIED, path)

    @classmethod
    def deleted(cls, path: str) -> FileWatchEvent:
        return cls(FileWatchEventType.DELETED, path)

    @classmethod
    def scan_required(cls) -> FileWatchEvent:
        return cls(FileWatchEventType.SCAN_REQUIRED)


_END_OF_STREAM = object()


class EventStream:
    """Consumer side of a watcher's event queue.

    ``get()`` returns the next event, or None once the watcher stopped.
    Iterate with ``for`` or ``async for``. Closing the stream, or dropping
    every reference to it, stops the watcher that produced it.
    """

    def __init__(self, events: queue.Queue, on_close: Callable[[], None]):
        self._events = events
        self._ended = False
        self._finalizer = weakref.finalize(self, on_close)

    @property
    def ended(self) -> bool:
        return self._ended

    def get(self, timeout: float | None = None) -> FileWatchEvent | None:
        """
        Return the next event.

        Raises:
            queue.Empty: If no event arrived within the timeout.
        """
        if self._ended:
            return None
        item = self._events.get(timeout=timeout)
        if item is _END_OF_STREAM:
            self._ended = True
            return None
        return item

    def close(self) -> None:
        """Stop the watcher feeding this stream."""
        self._finalizer()

    def __enter__(self) -> EventStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[FileWatchEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    async def __aiter__(self) -> AsyncIterator[FileWatchEvent]:
        while True:
            try:
                event = await asyncio.to_thread(self.get, _ASYNC_POLL_INTERVAL)
            except queue.Empty:
                continue
            if event is None:
                return
            yield event


def resolve_root(root: Path) -> str:
    """Canonical real path of the root, so OS-reported paths share its prefix."""
    return os.path.realpath(root)


class FileWatcher:
    """Watches a directory tree; at most one active stream per instance.

    Subclasses implement ``_start_native`` and ``_stop_native``. Native
    callbacks identify their stream by the generation number they were
    started with; events from a stopped generation are dropped.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.real_root = resolve_root(self.root)
        self._lock = threading.Lock()
        self._generation = 0
        self._events: queue.Queue | None = None
        self._handle: Any = None

    @property
    def is_watching(self) -> bool:
        with self._lock:
            return self._events is not None

    def start(self) -> EventStream:
        """Start watching and return the event stream.

        Any stream previously returned by this watcher is ended first. If the
        native facility cannot be set up, the returned stream ends immediately.
        """
        self.stop()

        self.real_root = resolve_root(self.root)
        events: queue.Queue = queue.Queue()
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._events = events

        try:
            handle = self._start_native(generation)
        except Exception as e:
            logger.error("Cannot watch %s: %s", self.real_root, e)
            self._teardown(generation)
        else:
            with self._lock:
                if generation == self._generation and self._events is events:
                    self._handle = handle
                    handle = None
            if handle is not None:
                # Stopped while starting up
                self._stop_native(handle)
            else:
                logger.info("Watching %s", self.real_root)

        return EventStream(events, on_close=lambda: self._teardown(generation))

    def stop(self) -> None:
        """Stop watching and end the current stream. Safe to call repeatedly."""
        self._teardown(None)

    def _teardown(self, generation: int | None) -> None:
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            events, handle = self._events, self._handle
            self._events = None
            self._handle = None

        if handle is not None:
            self._stop_native(handle)
        if events is not None:
            events.put(_END_OF_STREAM)
            logger.info("Stopped watching %s", self.real_root)

    def _start_native(self, generation: int) -> Any:
        raise NotImplementedError

    def _stop_native(self, handle: Any) -> None:
        raise NotImplementedError

    # Helpers shared by the backends

    def _emit(self, generation: int, event: FileWatchEvent) -> None:
        with self._lock:
            if generation == self._generation and self._events is not None:
                self._events.put(event)

    def relative_path(self, absolute_path: str) -> str | None:
        """Convert an absolute path under the root to a "/"-separated relative path."""
        if absolute_path == self.real_root:
            return ""
        prefix = self.real_root.rstrip(os.sep) + os.sep
        if not absolute_path.startswith(prefix):
            return None
        return absolute_path[len(prefix) :].replace(os.sep, "/")

    def _emit_path(self, generation: int, event_type: FileWatchEventType, absolute_path: str) -> None:
        relative = self.relative_path(absolute_path)
        if not relative or should_skip_path(relative):
            return
        self._emit(generation, FileWatchEvent(event_type, relative))

    def _emit_resolved(self, generation: int, absolute_path: str) -> None:
        """Emit created or deleted depending on whether the path exists now."""
        if os.path.exists(absolute_path):
            self._emit_path(generation, FileWatchEventType.CREATED, absolute_path)
        else:
            self._emit_path(generation, FileWatchEventType.DELETED, absolute_path)

    def _is_ignored_directory(self, absolute_path: str) -> bool:
        relative = self.relative_path(absolute_path)
        return relative is None or (relative != "" and should_skip_path(relative))


# ---------------------------------------------------------------------------
# inotify (Linux)
# ---------------------------------------------------------------------------


@dataclass
class _InotifyHandle:
    inotify: Any
    flags: Any
    stop_event: threading.Event = field(default_factory=threading.Event)
    watches: dict[int, str] = field(default_factory=dict)  # wd -> directory
    thread: threading.Thread | None = None


class InotifyWatcher(FileWatcher):
    """inotify backend: one watch per directory, read on a background thread."""

    def _start_native(self, generation: int) -> _InotifyHandle:
        import inotify_simple  # type: ignore[import]

        handle = _InotifyHandle(inotify=inotify_simple.INotify(), flags=inotify_simple.flags)
        try:
            wd = handle.inotify.add_watch(self.real_root, self._watch_mask(handle))
        except OSError:
            handle.inotify.close()
            raise
        handle.watches[wd] = self.real_root
        self._add_watches(handle, generation, self.real_root, report_existing=False, include_self=False)

        handle.thread = threading.Thread(
            target=self._read_loop,
            args=(handle, generation),
            name="workspace-inotify",
            daemon=True,
        )
        handle.thread.start()
        return handle

    def _stop_native(self, handle: _InotifyHandle) -> None:
        handle.stop_event.set()
        if handle.thread is not None and handle.thread is not threading.current_thread():
            handle.thread.join(timeout=_JOIN_TIMEOUT)
            if handle.thread.is_alive():
                logger.warning("inotify reader did not stop cleanly")
                return
        handle.inotify.close()

    @staticmethod
    def _watch_mask(handle: _InotifyHandle) -> int:
        f = handle.flags
        return (
            f.CREATE
            | f.MODIFY
            | f.ATTRIB
            | f.DELETE
            | f.MOVED_FROM
            | f.MOVED_TO
            | f.DELETE_SELF
            | f.MOVE_SELF
        )

    def _add_watches(
        self,
        handle: _InotifyHandle,
        generation: int,
        directory: str,
        report_existing: bool,
        include_self: bool = True,
    ) -> None:
        """Watch a directory tree; optionally report files already inside it."""
        mask = self._watch_mask(handle)
        pending = [directory]
        while pending:
            current = pending.pop()
            if include_self or current != directory:
                try:
                    wd = handle.inotify.add_watch(current, mask)
                except OSError as e:
                    logger.debug("Cannot watch %s: %s", current, e)
                    continue
                handle.watches[wd] = current

            try:
                entries = list(os.scandir(current))
            except OSError:
                continue
            for entry in entries:
                if should_skip(entry.name):
                    continue
                if entry.is_dir(follow_symlinks=False):
                    pending.append(entry.path)
                elif report_existing and entry.is_file():
                    self._emit_path(generation, FileWatchEventType.CREATED, entry.path)

    def _remove_watches(self, handle: _InotifyHandle, directory: str) -> None:
        prefix = directory + os.sep
        for wd, path in list(handle.watches.items()):
            if path == directory or path.startswith(prefix):
                try:
                    handle.inotify.rm_watch(wd)
                except OSError:
                    pass  # already gone
                handle.watches.pop(wd, None)

    def _read_loop(self, handle: _InotifyHandle, generation: int) -> None:
        try:
            while not handle.stop_event.is_set():
                for event in handle.inotify.read(timeout=_READ_TIMEOUT_MS):
                    if handle.stop_event.is_set():
                        break
                    self._handle_event(handle, generation, event)
        except Exception:
            if handle.stop_event.is_set():
                return
            logger.exception("inotify reader failed for %s", self.real_root)
            self._teardown(generation)

    def _handle_event(self, handle: _InotifyHandle, generation: int, event: Any) -> None:
        f = handle.flags
        mask = event.mask

        if mask & f.Q_OVERFLOW:
            logger.warning("inotify queue overflow, rescan required")
            self._emit(generation, FileWatchEvent.scan_required())
            return

        if mask & f.IGNORED:
            handle.watches.pop(event.wd, None)
            return

        directory = handle.watches.get(event.wd)
        if directory is None:
            return

        if mask & (f.DELETE_SELF | f.MOVE_SELF):
            if directory == self.real_root:
                logger.warning("Watched root %s was moved or deleted", self.real_root)
                self._emit(generation, FileWatchEvent.scan_required())
            return

        if not event.name:
            return

        full_path = os.path.join(directory, event.name)
        if mask & f.ISDIR:
            if self._is_ignored_directory(full_path):
                return
            if mask & (f.CREATE | f.MOVED_TO):
                self._add_watches(handle, generation, full_path, report_existing=True)
            elif mask & f.MOVED_FROM:
                # Files inside a moved-away directory get no events of their own
                self._remove_watches(handle, full_path)
                self._emit(generation, FileWatchEvent.scan_required())
            return

        if mask & (f.CREATE | f.MOVED_TO | f.DELETE | f.MOVED_FROM):
            self._emit_resolved(generation, full_path)
        elif mask & (f.MODIFY | f.ATTRIB):
            self._emit_path(generation, FileWatchEventType.MODIFIED, full_path)


# ---------------------------------------------------------------------------
# watchdog (macOS, Windows, BSD)
# ---------------------------------------------------------------------------


class _WatchdogHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into FileWatchEvents for one generation."""

    def __init__(self, watcher: WatchdogWatcher, generation: int):
        super().__init__()
        self._watcher = watcher
        self._generation = generation

    def _directory_changed(self, path: str) -> None:
        if not self._watcher._is_ignored_directory(path):
            self._watcher._emit(self._generation, FileWatchEvent.scan_required())

    def _is_root(self, path: str) -> bool:
        return self._watcher.relative_path(path) == ""

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._emit_resolved(self._generation, os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher._emit_path(
                self._generation, FileWatchEventType.MODIFIED, os.fsdecode(event.src_path)
            )

    def on_deleted(self, event: FileSystemEvent) -> None:
        # The root may be reported as a file once it is gone
        if event.is_directory or self._is_root(os.fsdecode(event.src_path)):
            self._directory_changed(os.fsdecode(event.src_path))
        else:
            self._watcher._emit_resolved(self._generation, os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory or self._is_root(os.fsdecode(event.src_path)):
            self._directory_changed(os.fsdecode(event.src_path))
            return
        self._watcher._emit_resolved(self._generation, os.fsdecode(event.src_path))
        self._watcher._emit_resolved(self._generation, os.fsdecode(event.dest_path))


class WatchdogWatcher(FileWatcher):
    """watchdog backend using the platform's native observer."""

    def _start_native(self, generation: int) -> Any:
        if not os.path.isdir(self.real_root):
            raise FileNotFoundError(f"Not a directory: {self.real_root}")
        observer = Observer()
        observer.schedule(_WatchdogHandler(self, generation), self.real_root, recursive=True)
        observer.daemon = True
        observer.start()
        return observer

    def _stop_native(self, observer: Any) -> None:
        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout=_JOIN_TIMEOUT)


def create_file_watcher(root: Path) -> FileWatcher:
    """Return the watcher implementation for the current platform."""
    if sys.platform.startswith("linux"):
        return InotifyWatcher(root)
    return WatchdogWatcher(root)
