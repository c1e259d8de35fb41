"""Main entry point for workspace-mcp MCP server."""

import argparse
import logging
import sys

from fastmcp import FastMCP

from workspace_mcp.config import Config
from workspace_mcp.indexer import Database, Indexer
from workspace_mcp.sync import SyncManager
from workspace_mcp.tools import register_tools

logger = logging.getLogger(__name__)


def create_server(config: Config) -> tuple[FastMCP, SyncManager | None]:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.

    Returns:
        The server and, when live watching is enabled, its started sync
        manager (the caller stops it on shutdown).
    """
    mcp = FastMCP(
        name="workspaceMCP",
        instructions=(
            "workspaceMCP indexes the markdown documents of a workspace by kind and "
            "frontmatter properties. Use list_kinds to discover kinds and their SQL "
            "tables, list_documents or get_document to browse, and query for ad-hoc "
            "read-only SQL."
        ),
    )

    indexer = Indexer(config.workspace_root)
    configuration = indexer.load_configuration()

    logger.info("Initializing database at %s", config.workspace_db)
    db = Database(config.workspace_db, configuration)
    db.initialize()

    # The index is derived state: always rebuild it from disk on startup
    doc_count = indexer.scan(db)
    logger.info("Initial index complete: %d documents indexed", doc_count)

    logger.info("Registering read tools...")
    register_tools(mcp, db)

    sync_manager: SyncManager | None = None
    if config.watch:
        # The index was just built, so the watcher starts without rescanning
        sync_manager = SyncManager(indexer, db, initial_scan=False)
        sync_manager.start()
    else:
        logger.info("Live watching disabled")

    logger.info("Server configured successfully")
    return mcp, sync_manager


def main() -> None:
    """Main function - starts the MCP server."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(
        description="workspaceMCP - MCP server for markdown workspaces"
    )
    parser.add_argument(
        "--no-watch",
        action="store_true",
        help="Index once at startup and do not watch for changes",
    )
    parser.add_argument(
        "--transport",
        choices=["sse", "stdio"],
        default="sse",
        help="MCP transport (default: sse)",
    )
    args = parser.parse_args()

    # CLI flag overrides env var
    config = Config.from_env(watch_override=False if args.no_watch else None)

    logger.info("=" * 50)
    logger.info("workspaceMCP starting...")
    logger.info("  WORKSPACE_ROOT:  %s", config.workspace_root)
    logger.info("  WORKSPACE_PORT:  %s", config.workspace_port)
    logger.info("  WORKSPACE_DB:    %s", config.workspace_db)
    logger.info("  WORKSPACE_WATCH: %s", config.watch)
    logger.info("  TRANSPORT:       %s", args.transport)
    logger.info("=" * 50)

    sync_manager: SyncManager | None = None
    try:
        mcp, sync_manager = create_server(config)
        if args.transport == "stdio":
            mcp.run(transport="stdio")
        else:
            logger.info("Starting MCP server on port %s...", config.workspace_port)
            mcp.run(transport="sse", host="0.0.0.0", port=config.workspace_port)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Server error")
        sys.exit(1)
    finally:
        if sync_manager is not None:
            sync_manager.stop()


if __name__ == "__main__":
    main()
