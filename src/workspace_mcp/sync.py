"""Background watch manager for live index updates.

Runs a daemon thread that calls indexer.watch() so the SQLite index follows
filesystem changes made while the server is running.
"""

import logging
import threading

from workspace_mcp.indexer import Database, Indexer

logger = logging.getLogger(__name__)

# Upper bound on how long stop() waits for the watch loop to exit
_STOP_TIMEOUT = 10.0

# Delay before restarting the watch after it failed or its stream ended
_RESTART_DELAY = 5.0


class SyncManager:
    """Manages the background watch loop of the index.

    The watch thread is a daemon, so it automatically terminates when the
    main process exits.
    """

    def __init__(self, indexer: Indexer, db: Database, initial_scan: bool = True):
        """Initialize the sync manager.

        Args:
            indexer: The indexer that scans and applies changes.
            db: The database to keep in sync.
            initial_scan: Whether the first watch starts with a scan. Restarts
                always scan, since changes may have been missed in between.
        """
        self._indexer = indexer
        self._db = db
        self._initial_scan = initial_scan
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background watch thread."""
        if self.is_running:
            logger.warning("Watch thread already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="workspace-watch",
            daemon=True,
        )
        self._thread.start()
        logger.info("Sync manager started for %s", self._indexer.root)

    def stop(self) -> None:
        """Stop the background watch thread and its filesystem watcher."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=_STOP_TIMEOUT)
        if self._thread.is_alive():
            logger.warning("Watch thread did not stop cleanly")
        else:
            logger.info("Sync manager stopped")
        self._thread = None

    def _watch_loop(self) -> None:
        """Main watch loop - runs in background thread."""
        logger.debug("Watch loop started")

        scan = self._initial_scan
        while not self._stop_event.is_set():
            try:
                self._indexer.watch(self._db, stop_event=self._stop_event, initial_scan=scan)
            except Exception:
                logger.exception("Error during live sync")
            scan = True

            # Returning without a stop request means the watcher gave up
            if self._stop_event.wait(timeout=_RESTART_DELAY):
                break
            logger.info("Restarting live sync")

        logger.debug("Watch loop stopped")
