"""
Indexer module for workspace-mcp.

This module keeps a SQLite index of a workspace's markdown documents in sync
with the filesystem: a full scan rebuilds it, and a native filesystem watcher
applies incremental changes in between.
"""

from workspace_mcp.indexer.database import Database, QueryError, StorageError
from workspace_mcp.indexer.glob_matcher import matches
from workspace_mcp.indexer.indexer import Indexer
from workspace_mcp.indexer.kinds import resolve_kind
from workspace_mcp.indexer.models import (
    DocumentRecord,
    Kind,
    KindDefinition,
    PropertyRecord,
    Rule,
    WorkspaceConfiguration,
    WorkspaceDocument,
)
from workspace_mcp.indexer.observation import DocumentObservation
from workspace_mcp.indexer.parser import extract_heading_title, parse_frontmatter
from workspace_mcp.indexer.walker import FileInfo, walk_workspace
from workspace_mcp.indexer.watcher import (
    EventStream,
    FileWatcher,
    FileWatchEvent,
    FileWatchEventType,
    create_file_watcher,
)
from workspace_mcp.indexer.workspace_config import (
    ConfigurationError,
    load_configuration,
    parse_configuration,
)

__all__ = [
    "ConfigurationError",
    "Database",
    "DocumentObservation",
    "DocumentRecord",
    "EventStream",
    "FileInfo",
    "FileWatchEvent",
    "FileWatchEventType",
    "FileWatcher",
    "Indexer",
    "Kind",
    "KindDefinition",
    "PropertyRecord",
    "QueryError",
    "Rule",
    "StorageError",
    "WorkspaceConfiguration",
    "WorkspaceDocument",
    "create_file_watcher",
    "extract_heading_title",
    "load_configuration",
    "matches",
    "parse_configuration",
    "parse_frontmatter",
    "resolve_kind",
    "walk_workspace",
]
