"""SQLite database management for the workspace index.

The schema is generated at runtime from the resolved kind definitions:

- ``docs``: one row per document (path, kind, title)
- ``properties``: every frontmatter key/value of every document
- one extension table per kind with declared properties (e.g. ``issues``),
  holding a denormalized copy of those properties as columns

All tables reference ``docs(path)`` with ``ON DELETE CASCADE``.
"""

import sqlite3
import threading
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from pathlib import Path

from workspace_mcp.indexer.models import (
    BUILTIN_KIND_DEFINITIONS,
    DocumentRecord,
    Kind,
    KindDefinition,
    PropertyRecord,
    WorkspaceConfiguration,
    WorkspaceDocument,
)
from workspace_mcp.indexer.observation import DocumentObservation

DOCS_TABLE = "docs"
PROPERTIES_TABLE = "properties"
RESERVED_TABLE_NAMES = frozenset({DOCS_TABLE, PROPERTIES_TABLE})
PATH_COLUMN = "path"

SCHEMA_SQL = (
    """CREATE TABLE IF NOT EXISTS docs (
        path  TEXT PRIMARY KEY,
        kind  TEXT NOT NULL DEFAULT 'document',
        title TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS properties (
        path  TEXT NOT NULL REFERENCES docs(path) ON DELETE CASCADE,
        key   TEXT NOT NULL,
        value TEXT NOT NULL,
        PRIMARY KEY (path, key)
    )""",
    "CREATE INDEX IF NOT EXISTS idx_docs_kind ON docs(kind)",
)


class StorageError(Exception):
    """Raised when the database cannot be opened, initialized or written."""


class QueryError(Exception):
    """Raised when a raw SQL statement is malformed or fails."""


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier (table or column name)."""
    return '"' + name.replace('"', '""') + '"'


def table_name_for(kind: Kind) -> str:
    """Return the extension table name for a kind (simple pluralization)."""
    name = f"{kind.value}s"
    if name.lower() in RESERVED_TABLE_NAMES or name.lower().startswith("sqlite_"):
        name = f"kind_{name}"
    return name


@dataclass(frozen=True)
class ExtensionTable:
    """Descriptor of a kind-specific extension table."""

    kind: Kind
    name: str
    columns: tuple[str, ...]

    def create_sql(self) -> str:
        column_defs = ",\n".join(f"        {quote_identifier(c)} TEXT" for c in self.columns)
        return (
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.name)} (\n"
            "        path TEXT PRIMARY KEY REFERENCES docs(path) ON DELETE CASCADE,\n"
            f"{column_defs}\n"
            "    )"
        )

    def upsert_sql(self) -> str:
        columns = (PATH_COLUMN, *self.columns)
        column_list = ", ".join(quote_identifier(c) for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(
            f"{quote_identifier(c)} = excluded.{quote_identifier(c)}" for c in self.columns
        )
        return (
            f"INSERT INTO {quote_identifier(self.name)} ({column_list}) "
            f"VALUES ({placeholders}) "
            f"ON CONFLICT(path) DO UPDATE SET {updates}"
        )


def resolve_kind_definitions(configuration: WorkspaceConfiguration) -> list[KindDefinition]:
    """Overlay configured kind definitions onto the built-ins, by kind."""
    definitions: dict[Kind, KindDefinition] = {}
    for definition in (*BUILTIN_KIND_DEFINITIONS, *configuration.kinds):
        definitions[definition.kind] = definition
    return list(definitions.values())


def build_extension_tables(definitions: Iterable[KindDefinition]) -> dict[Kind, ExtensionTable]:
    """Build extension table descriptors for kinds that declare properties."""
    tables: dict[Kind, ExtensionTable] = {}
    used_names: set[str] = set()
    for definition in definitions:
        seen = {PATH_COLUMN}
        columns = []
        # SQLite column names are case-insensitive
        for prop in definition.properties:
            if prop.lower() in seen:
                continue
            seen.add(prop.lower())
            columns.append(prop)
        if not columns:
            continue

        # Kinds differing only in case would map to the same table
        name = table_name_for(definition.kind)
        base, suffix = name, 2
        while name.lower() in used_names:
            name = f"{base}_{suffix}"
            suffix += 1
        used_names.add(name.lower())

        tables[definition.kind] = ExtensionTable(
            kind=definition.kind,
            name=name,
            columns=tuple(columns),
        )
    return tables


def _text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    return str(value)


class Database:
    """SQLite database for the workspace index.

    Writes are serialized by a single lock and run in ``BEGIN IMMEDIATE``
    transactions. File-backed databases use one connection per thread in WAL
    mode; every read runs inside a transaction so it sees one committed
    snapshot. In-memory databases share one connection guarded by the lock.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        configuration: WorkspaceConfiguration | None = None,
    ):
        """
        Initialize the database.

        Args:
            db_path: Path to the SQLite file, or None for an in-memory database
            configuration: Workspace configuration providing custom kinds
        """
        self.db_path = db_path
        self.kind_definitions = resolve_kind_definitions(configuration or WorkspaceConfiguration())
        self._extension_tables = build_extension_tables(self.kind_definitions)
        self._local = threading.local()
        self._write_lock = threading.RLock()
        self._shared_conn: sqlite3.Connection | None = None
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._changed = threading.Condition()
        self._version = 0

    @property
    def in_memory(self) -> bool:
        return self.db_path is None

    @property
    def extension_tables(self) -> list[ExtensionTable]:
        return list(self._extension_tables.values())

    def extension_table_for(self, kind: Kind) -> str | None:
        """Return the extension table name for a kind, or None if it has none."""
        table = self._extension_tables.get(kind)
        return table.name if table else None

    def _connect(self) -> sqlite3.Connection:
        if self.db_path is None:
            conn = sqlite3.connect(":memory:", isolation_level=None, check_same_thread=False)
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), isolation_level=None, timeout=30.0)
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        with self._connections_lock:
            self._connections.append(conn)
        return conn

    def _get_connection(self) -> sqlite3.Connection:
        """Get the connection for the current thread."""
        try:
            if self.in_memory:
                if self._shared_conn is None:
                    self._shared_conn = self._connect()
                return self._shared_conn
            if getattr(self._local, "conn", None) is None:
                self._local.conn = self._connect()
            return self._local.conn
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Cannot open database {self.db_path or ':memory:'}: {e}") from e

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor inside a read transaction (always rolled back)."""
        with self._write_lock if self.in_memory else nullcontext():
            conn = self._get_connection()
            cursor = conn.cursor()
            cursor.execute("BEGIN")
            try:
                yield cursor
            finally:
                if conn.in_transaction:
                    conn.rollback()
                cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for write operations with locking."""
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                yield cursor
                conn.commit()
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise
            finally:
                cursor.close()
        self._notify_change()

    @contextmanager
    def _storage_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    def initialize(self) -> None:
        """Create the core tables and one extension table per kind with properties."""
        with self._storage_errors("initialize database schema"), self._write_cursor() as cursor:
            for statement in SCHEMA_SQL:
                cursor.execute(statement)
            for table in self._extension_tables.values():
                self._create_extension_table(cursor, table)

    def _create_extension_table(self, cursor: sqlite3.Cursor, table: ExtensionTable) -> None:
        cursor.execute(f"PRAGMA table_info({quote_identifier(table.name)})")
        existing = [row["name"] for row in cursor.fetchall()]
        if existing and existing != [PATH_COLUMN, *table.columns]:
            # Schema changed since this file was last used: the index is disposable
            cursor.execute(f"DROP TABLE {quote_identifier(table.name)}")
        cursor.execute(table.create_sql())

    def close(self) -> None:
        """Close all database connections."""
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.ProgrammingError:
                # Connections owned by other threads are closed by those threads
                pass
        self._local.conn = None
        self._shared_conn = None

    # Change notification

    def _notify_change(self) -> None:
        with self._changed:
            self._version += 1
            self._changed.notify_all()

    @property
    def version(self) -> int:
        """Number of committed write transactions since the store was created."""
        with self._changed:
            return self._version

    def wait_for_change(
        self,
        seen_version: int,
        timeout: float | None = None,
        cancelled: Callable[[], bool] = lambda: False,
    ) -> int | None:
        """Block until a write newer than seen_version commits.

        Returns the new version, or None if the timeout elapsed or
        ``cancelled()`` became true first.
        """
        with self._changed:
            self._changed.wait_for(
                lambda: self._version > seen_version or cancelled(),
                timeout=timeout,
            )
            if self._version > seen_version:
                return self._version
            return None

    def wake_observers(self) -> None:
        """Wake every blocked observer without recording a change."""
        with self._changed:
            self._changed.notify_all()

    # Document operations

    def upsert_document(
        self,
        record: DocumentRecord,
        properties: Mapping[str, str] | None = None,
    ) -> None:
        """Insert or replace a document and all of its properties."""
        properties = dict(properties or {})

        with self._storage_errors(f"upsert {record.path}"), self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO docs (path, kind, title)
                VALUES (?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    kind = excluded.kind,
                    title = excluded.title
                """,
                (record.path, record.kind.value, record.title),
            )

            cursor.execute("DELETE FROM properties WHERE path = ?", (record.path,))
            rows = [PropertyRecord(record.path, key, value) for key, value in properties.items()]
            cursor.executemany(
                "INSERT INTO properties (path, key, value) VALUES (?, ?, ?)",
                [(row.path, row.key, row.value) for row in rows],
            )

            # Drop rows left behind in other kinds' tables by a kind change
            for table in self._extension_tables.values():
                if table.kind != record.kind:
                    cursor.execute(
                        f"DELETE FROM {quote_identifier(table.name)} WHERE path = ?",
                        (record.path,),
                    )

            table = self._extension_tables.get(record.kind)
            if table is not None:
                cursor.execute(
                    table.upsert_sql(),
                    (record.path, *(properties.get(column) for column in table.columns)),
                )

    def remove_document(self, path: str) -> None:
        """Delete a document; its properties and extension rows cascade."""
        with self._storage_errors(f"remove {path}"), self._write_cursor() as cursor:
            cursor.execute("DELETE FROM docs WHERE path = ?", (path,))

    def remove_all_documents(self) -> None:
        """Clear all data from the database (for reindexing)."""
        with self._storage_errors("remove all documents"), self._write_cursor() as cursor:
            for table in self._extension_tables.values():
                cursor.execute(f"DELETE FROM {quote_identifier(table.name)}")
            cursor.execute("DELETE FROM properties")
            cursor.execute("DELETE FROM docs")

    # Queries

    def all_documents(self) -> list[WorkspaceDocument]:
        """Return all documents sorted by path."""
        with self._storage_errors("read documents"), self._read_cursor() as cursor:
            return self._fetch_documents(cursor, "SELECT * FROM docs ORDER BY path")

    def documents_of_kind(self, kind: Kind) -> list[WorkspaceDocument]:
        """Return all documents of a kind sorted by path."""
        with self._storage_errors("read documents"), self._read_cursor() as cursor:
            return self._fetch_documents(
                cursor,
                "SELECT * FROM docs WHERE kind = ? ORDER BY path",
                (kind.value,),
            )

    def document_at(self, path: str) -> WorkspaceDocument | None:
        """Get a document by its relative path."""
        with self._storage_errors("read document"), self._read_cursor() as cursor:
            docs = self._fetch_documents(cursor, "SELECT * FROM docs WHERE path = ?", (path,))
            return docs[0] if docs else None

    def _fetch_documents(
        self,
        cursor: sqlite3.Cursor,
        query: str,
        params: tuple = (),
    ) -> list[WorkspaceDocument]:
        """Run a docs query and hydrate each row with its properties."""
        cursor.execute(query, params)
        rows = cursor.fetchall()

        documents = []
        for row in rows:
            cursor.execute("SELECT key, value FROM properties WHERE path = ?", (row["path"],))
            properties = {prop["key"]: prop["value"] for prop in cursor.fetchall()}
            documents.append(
                WorkspaceDocument(
                    record=DocumentRecord(
                        path=row["path"],
                        kind=Kind(row["kind"]),
                        title=row["title"],
                    ),
                    properties=properties,
                )
            )
        return documents

    # Raw SQL

    def raw_query(self, sql: str) -> list[dict[str, str]]:
        """
        Run an arbitrary read statement.

        Each row is returned as a column -> text mapping. NULL columns are
        omitted. The statement runs in a transaction that is always rolled
        back, so it cannot persist writes; use raw_execute for those.

        Raises:
            QueryError: If the SQL is malformed or fails.
        """
        try:
            with self._read_cursor() as cursor:
                cursor.execute(sql)
                rows = cursor.fetchall()
        except (sqlite3.Error, sqlite3.Warning) as e:
            raise QueryError(str(e)) from e

        results = []
        for row in rows:
            values = {}
            for column in row.keys():
                text = _text(row[column])
                if text is not None:
                    values[column] = text
            results.append(values)
        return results

    def raw_execute(self, sql: str) -> None:
        """
        Run one or more arbitrary statements that modify the database.

        The whole script runs in one transaction: if any statement fails,
        none of them take effect.

        Raises:
            QueryError: If the SQL is malformed or fails.
        """
        with self._write_lock:
            conn = self._get_connection()
            try:
                # The stray ";" closes a final statement written without one
                conn.executescript(f"BEGIN IMMEDIATE;\n{sql}\n;\nCOMMIT;")
            except (sqlite3.Error, sqlite3.Warning) as e:
                if conn.in_transaction:
                    conn.rollback()
                raise QueryError(str(e)) from e
        self._notify_change()

    # Observation

    def observe_all_documents(self) -> DocumentObservation:
        """Observe all documents; emits the full list after every write."""
        return DocumentObservation(self, self.all_documents)

    def observe_documents_of_kind(self, kind: Kind) -> DocumentObservation:
        """Observe documents of a kind; emits the full list after every write."""
        return DocumentObservation(self, lambda: self.documents_of_kind(kind))
