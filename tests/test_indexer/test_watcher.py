"""Tests for the filesystem watchers."""

import gc
import queue
import sys
import time
from pathlib import Path

import pytest
from watchdog.events import DirDeletedEvent, DirMovedEvent, FileDeletedEvent

from workspace_mcp.indexer.watcher import (
    EventStream,
    FileWatchEvent,
    FileWatchEventType,
    InotifyWatcher,
    WatchdogWatcher,
    _WatchdogHandler,
    create_file_watcher,
)

BACKENDS = [
    pytest.param(
        InotifyWatcher,
        id="inotify",
        marks=pytest.mark.skipif(not sys.platform.startswith("linux"), reason="inotify is Linux-only"),
    ),
    pytest.param(WatchdogWatcher, id="watchdog"),
]

# Native observers may need a moment before they report changes
_SETTLE_DELAY = 0.3


def collect_until(stream: EventStream, predicate, timeout: float = 5.0) -> list[FileWatchEvent]:
    """Read events until predicate(events) holds or the timeout expires."""
    events: list[FileWatchEvent] = []
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            event = stream.get(timeout=0.1)
        except queue.Empty:
            continue
        if event is None:
            break
        events.append(event)
        if predicate(events):
            break
    return events


def has_event(event_type: FileWatchEventType, path: str):
    return lambda events: any(e.type is event_type and e.path == path for e in events)


@pytest.fixture(params=BACKENDS)
def watcher_cls(request):
    return request.param


class TestWatcherEvents:
    def test_reports_created_file(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            (tmp_path / "new.md").write_text("# New")
            events = collect_until(stream, has_event(FileWatchEventType.CREATED, "new.md"))

        assert FileWatchEvent.created("new.md") in events

    def test_reports_modified_file(self, tmp_path: Path, watcher_cls):
        target = tmp_path / "doc.md"
        target.write_text("# Before")
        watcher = watcher_cls(tmp_path)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            with target.open("a") as f:
                f.write("\nafter\n")
            events = collect_until(stream, has_event(FileWatchEventType.MODIFIED, "doc.md"))

        assert FileWatchEvent.modified("doc.md") in events

    def test_reports_deleted_file(self, tmp_path: Path, watcher_cls):
        target = tmp_path / "gone.md"
        target.write_text("# Gone")
        watcher = watcher_cls(tmp_path)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            target.unlink()
            events = collect_until(stream, has_event(FileWatchEventType.DELETED, "gone.md"))

        assert FileWatchEvent.deleted("gone.md") in events

    def test_reports_nested_paths_with_forward_slashes(self, tmp_path: Path, watcher_cls):
        (tmp_path / "issues" / "2024").mkdir(parents=True)
        watcher = watcher_cls(tmp_path)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            (tmp_path / "issues" / "2024" / "001.md").write_text("# Issue")
            events = collect_until(stream, has_event(FileWatchEventType.CREATED, "issues/2024/001.md"))

        assert FileWatchEvent.created("issues/2024/001.md") in events

    def test_rename_reports_delete_and_create(self, tmp_path: Path, watcher_cls):
        source = tmp_path / "old.md"
        source.write_text("# Old")
        watcher = watcher_cls(tmp_path)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            source.rename(tmp_path / "renamed.md")
            events = collect_until(
                stream,
                lambda evs: has_event(FileWatchEventType.DELETED, "old.md")(evs)
                and has_event(FileWatchEventType.CREATED, "renamed.md")(evs),
            )

        assert FileWatchEvent.deleted("old.md") in events
        assert FileWatchEvent.created("renamed.md") in events

    def test_hidden_and_excluded_paths_filtered(self, tmp_path: Path, watcher_cls):
        (tmp_path / ".git").mkdir()
        (tmp_path / "node_modules").mkdir()
        watcher = watcher_cls(tmp_path)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            (tmp_path / ".git" / "HEAD.md").write_text("x")
            (tmp_path / "node_modules" / "pkg.md").write_text("x")
            (tmp_path / ".hidden.md").write_text("x")
            (tmp_path / "visible.md").write_text("x")
            events = collect_until(stream, has_event(FileWatchEventType.CREATED, "visible.md"))

        paths = {e.path for e in events}
        assert "visible.md" in paths
        assert not any(p and (p.startswith(".") or p.startswith("node_modules")) for p in paths)


class TestWatcherRescanSignals:
    @pytest.fixture
    def layout(self, tmp_path: Path) -> tuple[Path, Path]:
        root = tmp_path / "workspace"
        outside = tmp_path / "outside"
        root.mkdir()
        outside.mkdir()
        return root, outside

    def test_directory_moved_out_requires_scan(self, layout, watcher_cls):
        root, outside = layout
        (root / "sub").mkdir()
        (root / "sub" / "a.md").write_text("# A")
        watcher = watcher_cls(root)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            (root / "sub").rename(outside / "sub")
            events = collect_until(
                stream, lambda evs: any(e.type is FileWatchEventType.SCAN_REQUIRED for e in evs)
            )

        assert FileWatchEvent.scan_required() in events

    def test_directory_moved_in_reports_its_files(self, layout, watcher_cls):
        root, outside = layout
        (outside / "sub").mkdir()
        (outside / "sub" / "a.md").write_text("# A")
        watcher = watcher_cls(root)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            (outside / "sub").rename(root / "sub")
            events = collect_until(stream, has_event(FileWatchEventType.CREATED, "sub/a.md"))

        assert FileWatchEvent.created("sub/a.md") in events

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="inotify is Linux-only")
    def test_root_deleted_requires_scan(self, layout):
        root, _ = layout
        (root / "a.md").write_text("# A")
        watcher = InotifyWatcher(root)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            (root / "a.md").unlink()
            root.rmdir()
            events = collect_until(
                stream, lambda evs: any(e.type is FileWatchEventType.SCAN_REQUIRED for e in evs)
            )

        assert FileWatchEvent.scan_required() in events

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="inotify is Linux-only")
    def test_root_moved_requires_scan(self, layout, tmp_path: Path):
        root, _ = layout
        watcher = InotifyWatcher(root)
        with watcher.start() as stream:
            time.sleep(_SETTLE_DELAY)
            root.rename(tmp_path / "renamed")
            events = collect_until(
                stream, lambda evs: any(e.type is FileWatchEventType.SCAN_REQUIRED for e in evs)
            )

        assert FileWatchEvent.scan_required() in events

    @pytest.mark.parametrize(
        "make_event",
        [
            lambda root: DirDeletedEvent(root),
            lambda root: FileDeletedEvent(root),
            lambda root: DirMovedEvent(root, root + "-moved"),
        ],
        ids=["dir-deleted", "file-deleted", "dir-moved"],
    )
    def test_watchdog_root_removal_requires_scan(self, layout, make_event):
        root, _ = layout
        watcher = WatchdogWatcher(root)
        with watcher.start() as stream:
            handler = _WatchdogHandler(watcher, watcher._generation)
            handler.dispatch(make_event(watcher.real_root))
            events = collect_until(
                stream, lambda evs: any(e.type is FileWatchEventType.SCAN_REQUIRED for e in evs)
            )

        assert FileWatchEvent.scan_required() in events


class TestWatcherLifecycle:
    def test_stop_ends_stream(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        stream = watcher.start()
        assert watcher.is_watching

        watcher.stop()
        assert not watcher.is_watching
        assert stream.get(timeout=1) is None
        assert stream.ended

    def test_stop_is_idempotent(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        watcher.stop()
        watcher.start()
        watcher.stop()
        watcher.stop()
        assert not watcher.is_watching

    def test_restart_ends_previous_stream(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        first = watcher.start()
        second = watcher.start()
        try:
            assert first.get(timeout=1) is None
            assert watcher.is_watching

            time.sleep(_SETTLE_DELAY)
            (tmp_path / "after.md").write_text("x")
            events = collect_until(second, has_event(FileWatchEventType.CREATED, "after.md"))
            assert FileWatchEvent.created("after.md") in events
        finally:
            second.close()

    def test_closing_stale_stream_keeps_current(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        first = watcher.start()
        second = watcher.start()
        first.close()
        assert watcher.is_watching
        second.close()
        assert not watcher.is_watching

    def test_missing_root_ends_stream(self, tmp_path: Path, watcher_cls, caplog):
        watcher = watcher_cls(tmp_path / "missing")
        stream = watcher.start()
        assert stream.get(timeout=1) is None
        assert not watcher.is_watching
        assert any("Cannot watch" in record.getMessage() for record in caplog.records)

    def test_abandoned_stream_stops_watcher(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        watcher.start()
        gc.collect()
        assert not watcher.is_watching

    def test_iteration_ends_after_stop(self, tmp_path: Path, watcher_cls):
        watcher = watcher_cls(tmp_path)
        stream = watcher.start()
        watcher.stop()
        assert list(stream) == []


class TestCreateFileWatcher:
    def test_platform_backend(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        assert isinstance(create_file_watcher(tmp_path), InotifyWatcher)

        monkeypatch.setattr(sys, "platform", "darwin")
        assert isinstance(create_file_watcher(tmp_path), WatchdogWatcher)

    def test_relative_path(self, tmp_path: Path):
        watcher = WatchdogWatcher(tmp_path)
        root = watcher.real_root
        assert watcher.relative_path(root) == ""
        assert watcher.relative_path(str(Path(root) / "a" / "b.md")) == "a/b.md"
        assert watcher.relative_path("/elsewhere/b.md") is None
