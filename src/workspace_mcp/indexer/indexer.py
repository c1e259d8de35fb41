"""Main indexer that keeps a workspace index in sync with the filesystem."""

import logging
import queue
import threading
from collections.abc import Sequence
from pathlib import Path

from workspace_mcp.indexer.database import Database
from workspace_mcp.indexer.kinds import KIND_FIELD, resolve_kind
from workspace_mcp.indexer.models import DocumentRecord, Rule, WorkspaceConfiguration
from workspace_mcp.indexer.parser import extract_heading_title, parse_frontmatter
from workspace_mcp.indexer.walker import FileInfo, is_markdown, walk_workspace
from workspace_mcp.indexer.watcher import (
    FileWatcher,
    FileWatchEvent,
    FileWatchEventType,
    create_file_watcher,
)
from workspace_mcp.indexer.workspace_config import ConfigurationError, load_configuration

logger = logging.getLogger(__name__)

TITLE_FIELD = "title"

# How often the watch loop checks for cancellation while idle
_EVENT_POLL_INTERVAL = 0.2


class Indexer:
    """
    Indexer that populates a Database from a workspace directory.

    The filesystem is always the source of truth. The database is a derived
    index that can be regenerated at any time with ``scan``; ``watch`` keeps
    it converged incrementally between scans.
    """

    def __init__(self, root: Path):
        """
        Initialize the indexer.

        Args:
            root: Path to the workspace directory
        """
        self.root = root
        self.configuration = WorkspaceConfiguration()
        self._configuration_loaded = False

    def load_configuration(self) -> WorkspaceConfiguration:
        """Load workspace.yml from the workspace root."""
        self.configuration = load_configuration(self.root)
        self._configuration_loaded = True
        return self.configuration

    def _reload_configuration(self) -> None:
        """Reload workspace.yml, keeping the last valid configuration on errors.

        Raises:
            ConfigurationError: If no valid configuration was ever loaded.
        """
        try:
            self.load_configuration()
        except ConfigurationError as e:
            if not self._configuration_loaded:
                raise
            logger.warning("Keeping previous workspace configuration: %s", e)

    def discover_files(self) -> list[FileInfo]:
        """List the workspace's markdown files, sorted by relative path."""
        return walk_workspace(self.root)

    @staticmethod
    def parse_content(
        content: str,
        path: str,
        rules: Sequence[Rule] = (),
    ) -> tuple[DocumentRecord, dict[str, str]]:
        """
        Build a document record and its properties from markdown content.

        ``kind`` and ``title`` are taken out of the frontmatter fields; every
        other field becomes a property.

        Args:
            content: The raw markdown content
            path: Workspace-relative path of the document
            rules: Ordered path rules used when the frontmatter has no kind

        Returns:
            Tuple of (DocumentRecord, properties).
        """
        parsed = parse_frontmatter(content, path)
        fields = parsed.fields

        kind = resolve_kind(fields, path, rules)
        # An explicit title wins even when empty; the heading is only a fallback
        if TITLE_FIELD in fields:
            title = fields[TITLE_FIELD]
        else:
            title = extract_heading_title(parsed.body)

        properties = {
            key: value for key, value in fields.items() if key not in (KIND_FIELD, TITLE_FIELD)
        }
        return DocumentRecord(path=path, kind=kind, title=title), properties

    def parse_file(self, relative_path: str) -> tuple[DocumentRecord, dict[str, str]]:
        """
        Read and parse one workspace file.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not valid UTF-8.
        """
        content = (self.root / relative_path).read_text(encoding="utf-8")
        return self.parse_content(content, relative_path, self.configuration.rules)

    def _index_file(self, db: Database, relative_path: str) -> bool:
        """Parse and upsert one file. Returns False if the file was skipped."""
        try:
            record, properties = self.parse_file(relative_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable file %s: %s", relative_path, e)
            return False

        db.upsert_document(record, properties)
        return True

    def scan(self, db: Database) -> int:
        """
        Rebuild the index from the current state of the workspace.

        Clears every document and re-indexes all markdown files. This is the
        only operation that guarantees the index mirrors the disk exactly.

        Returns:
            Number of documents indexed.
        """
        logger.info("Starting full scan of %s", self.root)
        self._reload_configuration()
        files = self.discover_files()

        db.remove_all_documents()

        count = 0
        for file_info in files:
            if self._index_file(db, file_info.relative_path):
                count += 1

        logger.info("Scan complete: %d documents indexed", count)
        return count

    def watch(
        self,
        db: Database,
        stop_event: threading.Event | None = None,
        watcher: FileWatcher | None = None,
        initial_scan: bool = True,
    ) -> None:
        """
        Scan once, then apply filesystem changes until cancelled.

        Runs until ``stop_event`` is set or the watcher's stream ends. The
        watcher is always stopped on return. Setting ``stop_event`` during a
        rescan may leave a partially rebuilt index; the next scan rebuilds it
        fully.

        Args:
            db: The database to keep in sync
            stop_event: Cancellation token
            watcher: Watcher to use (defaults to the platform watcher)
            initial_scan: Skip the first scan when False, for callers that
                have just scanned
        """
        stop_event = stop_event or threading.Event()
        watcher = watcher or create_file_watcher(self.root)

        if initial_scan:
            self.scan(db)
        if stop_event.is_set():
            return

        with watcher.start() as events:
            while not stop_event.is_set():
                try:
                    event = events.get(timeout=_EVENT_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if event is None:
                    logger.info("Watcher stream ended for %s", self.root)
                    break
                self.apply_event(db, event)

    def apply_event(self, db: Database, event: FileWatchEvent) -> None:
        """Apply one watcher event to the database."""
        if event.type is FileWatchEventType.SCAN_REQUIRED:
            logger.info("Rescan requested by watcher")
            self.scan(db)
            return

        path = event.path
        if path is None or not is_markdown(path):
            return

        if event.type is FileWatchEventType.DELETED:
            db.remove_document(path)
            logger.debug("Removed %s", path)
            return

        # created or modified; the file may already be gone again
        if not (self.root / path).is_file():
            return
        if self._index_file(db, path):
            logger.debug("Indexed %s", path)
