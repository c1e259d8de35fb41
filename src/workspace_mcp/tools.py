"""MCP tools for workspace-mcp server.

This module defines the read-only tools exposed by the MCP server:
- list_kinds: Kind definitions and their extension tables
- list_documents: Documents of the index, optionally filtered by kind
- get_document: A single document with all of its properties
- query: Arbitrary read-only SQL against the index
"""

from fastmcp import FastMCP

from workspace_mcp.indexer import Database, Kind, QueryError, WorkspaceDocument


def document_to_dict(document: WorkspaceDocument) -> dict:
    """Serialize a document for a tool response."""
    return {
        "path": document.path,
        "kind": str(document.kind),
        "title": document.title,
        "properties": dict(document.properties),
    }


def list_kinds(db: Database) -> list[dict]:
    """Describe every kind known to the store."""
    return [
        {
            "kind": str(definition.kind),
            "properties": list(definition.properties),
            "table": db.extension_table_for(definition.kind),
        }
        for definition in db.kind_definitions
    ]


def list_documents(db: Database, kind: str | None = None) -> list[dict]:
    """List indexed documents sorted by path."""
    if kind:
        documents = db.documents_of_kind(Kind(kind))
    else:
        documents = db.all_documents()
    return [document_to_dict(document) for document in documents]


def get_document(db: Database, path: str) -> dict:
    """Look up one document by its workspace-relative path."""
    document = db.document_at(path)
    if document is None:
        return {
            "path": path,
            "exists": False,
            "error": f"No document indexed at {path}",
        }
    return {**document_to_dict(document), "exists": True}


def run_query(db: Database, sql: str) -> dict:
    """Run read-only SQL; failures are reported in the ``error`` field."""
    try:
        rows = db.raw_query(sql)
    except QueryError as e:
        return {"rows": [], "count": 0, "error": str(e)}
    return {"rows": rows, "count": len(rows), "error": None}


def register_tools(mcp: FastMCP, db: Database) -> None:
    """Register all read tools with the FastMCP server.

    Args:
        mcp: FastMCP server instance
        db: Database instance for queries
    """

    @mcp.tool(name="list_kinds")
    def list_kinds_tool() -> list[dict]:
        """List the document kinds of the workspace.

        Returns:
            List of kinds with:
            - kind: Kind identifier (e.g. "document", "issue")
            - properties: Declared property names, in column order
            - table: Name of the kind's SQL extension table, or null if the
              kind declares no properties
        """
        return list_kinds(db)

    @mcp.tool(name="list_documents")
    def list_documents_tool(kind: str | None = None) -> list[dict]:
        """List indexed markdown documents, sorted by path.

        Args:
            kind: Optional kind to filter by (e.g. "issue")

        Returns:
            List of documents with:
            - path: Workspace-relative path
            - kind: Resolved kind
            - title: Frontmatter title or first heading (may be null)
            - properties: All other frontmatter fields as text
        """
        return list_documents(db, kind)

    @mcp.tool(name="get_document")
    def get_document_tool(path: str) -> dict:
        """Read the index entry of a single document.

        Args:
            path: Workspace-relative path (e.g. "issues/001-login.md")

        Returns:
            Document with path, kind, title, properties and exists; when no
            document is indexed at the path, exists is false and error is set.
        """
        return get_document(db, path)

    @mcp.tool(name="query")
    def query_tool(sql: str) -> dict:
        """Run a read-only SQL query against the workspace index.

        Tables:
        - docs(path, kind, title)
        - properties(path, key, value)
        - one table per kind with declared properties, e.g.
          issues(path, status, priority); see list_kinds for names

        Writes are always rolled back.

        Args:
            sql: A single SQL statement

        Returns:
            Result with:
            - rows: List of column -> text mappings (NULL columns omitted)
            - count: Number of rows
            - error: Error message if the statement failed, else null
        """
        return run_query(db, sql)
