"""Observation of query results that re-emit after every committed write."""

from __future__ import annotations

import asyncio
import queue
from collections.abc import AsyncIterator, Callable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from workspace_mcp.indexer.database import Database
    from workspace_mcp.indexer.models import WorkspaceDocument

# How often async consumers re-check for a change or closure
_ASYNC_POLL_INTERVAL = 0.1


class DocumentObservation:
    """A live view of a document query.

    The first ``get()`` returns the current result set immediately. Each later
    ``get()`` blocks until at least one write has committed since the previous
    emission, then returns the fresh result set. Several writes committed in
    quick succession may be coalesced into one emission, but the latest state
    is always delivered.

    Usable with ``for``, ``async for``, or as a context manager.
    """

    def __init__(self, db: Database, fetch: Callable[[], list[WorkspaceDocument]]):
        self._db = db
        self._fetch = fetch
        self._seen_version: int | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: float | None = None) -> list[WorkspaceDocument] | None:
        """
        Return the next result set.

        Returns:
            The documents, or None once the observation is closed.

        Raises:
            queue.Empty: If no write committed within the timeout.
        """
        if self._closed:
            return None

        if self._seen_version is not None:
            version = self._db.wait_for_change(
                self._seen_version,
                timeout=timeout,
                cancelled=lambda: self._closed,
            )
            if self._closed:
                return None
            if version is None:
                raise queue.Empty

        # Read the version first so the emitted state is at least this new
        self._seen_version = self._db.version
        return self._fetch()

    def close(self) -> None:
        """Stop observing and wake any blocked consumer."""
        self._closed = True
        self._db.wake_observers()

    def __enter__(self) -> DocumentObservation:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[list[WorkspaceDocument]]:
        while True:
            documents = self.get()
            if documents is None:
                return
            yield documents

    async def __aiter__(self) -> AsyncIterator[list[WorkspaceDocument]]:
        while True:
            try:
                documents = await asyncio.to_thread(self.get, _ASYNC_POLL_INTERVAL)
            except queue.Empty:
                continue
            if documents is None:
                return
            yield documents
