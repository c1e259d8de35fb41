"""Tests for main module."""

import logging
import sys
import time
from unittest.mock import MagicMock

import pytest

from workspace_mcp import main as main_module
from workspace_mcp.config import Config
from workspace_mcp.indexer import Database, Indexer
from workspace_mcp.main import create_server


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "issues").mkdir()
    (root / "issues" / "001-test.md").write_text("---\nstatus: open\n---\n# Test Issue\n")
    (root / "README.md").write_text("# Readme\n")
    (root / "workspace.yml").write_text("rules:\n  - path: 'issues/**'\n    kind: issue\n")
    return root


@pytest.fixture
def config(workspace_root, tmp_path, monkeypatch):
    monkeypatch.setenv("WORKSPACE_ROOT", str(workspace_root))
    monkeypatch.setenv("WORKSPACE_DB", str(tmp_path / "test.db"))
    monkeypatch.delenv("WORKSPACE_PORT", raising=False)
    return Config.from_env(watch_override=False)


def test_create_server(config, caplog):
    """Test create_server initializes all components."""
    with caplog.at_level(logging.INFO):
        mcp, sync_manager = create_server(config)

    assert mcp is not None
    assert mcp.name == "workspaceMCP"
    assert sync_manager is None

    log_messages = [record.message for record in caplog.records]
    assert any("Registering read tools" in msg for msg in log_messages)
    assert any("Live watching disabled" in msg for msg in log_messages)
    assert any("Server configured successfully" in msg for msg in log_messages)


def test_create_server_indexes_workspace(config, caplog):
    """Test that create_server rebuilds the index from disk."""
    with caplog.at_level(logging.INFO):
        create_server(config)

    log_messages = [record.message for record in caplog.records]
    assert any("Initial index complete: 2 documents indexed" in msg for msg in log_messages)

    db = Database(config.workspace_db)
    try:
        rows = db.raw_query("SELECT path, kind FROM docs ORDER BY path")
        assert rows == [
            {"path": "README.md", "kind": "document"},
            {"path": "issues/001-test.md", "kind": "issue"},
        ]
    finally:
        db.close()


def test_default_database_is_not_indexed(workspace_root, monkeypatch):
    """Test the default database location inside the root is never indexed."""
    monkeypatch.setenv("WORKSPACE_ROOT", str(workspace_root))
    monkeypatch.delenv("WORKSPACE_DB", raising=False)
    config = Config.from_env(watch_override=False)

    create_server(config)
    create_server(config)

    assert config.workspace_db.exists()
    db = Database(config.workspace_db)
    try:
        paths = [row["path"] for row in db.raw_query("SELECT path FROM docs")]
        assert not any(p.startswith(".workspace") for p in paths)
    finally:
        db.close()


def test_create_server_starts_sync_when_watching(config):
    config.watch = True
    mcp, sync_manager = create_server(config)
    try:
        assert sync_manager is not None
        assert sync_manager.is_running
    finally:
        sync_manager.stop()


def test_create_server_scans_once_when_watching(config, monkeypatch):
    """Test the watcher reuses the startup index instead of rebuilding it."""
    original_scan = Indexer.scan
    scan = MagicMock(side_effect=lambda self, db: original_scan(self, db))
    monkeypatch.setattr(Indexer, "scan", lambda self, db: scan(self, db))
    config.watch = True

    mcp, sync_manager = create_server(config)
    try:
        time.sleep(0.5)
        assert scan.call_count == 1
    finally:
        sync_manager.stop()


def test_main_parses_cli_flags(config, monkeypatch):
    """Test main() honours --no-watch and --transport."""
    server = MagicMock()
    create = MagicMock(return_value=(server, None))
    monkeypatch.setattr(main_module, "create_server", create)
    monkeypatch.setenv("WORKSPACE_WATCH", "true")
    monkeypatch.setattr(sys, "argv", ["workspace-mcp", "--no-watch", "--transport", "stdio"])

    main_module.main()

    passed_config = create.call_args.args[0]
    assert passed_config.watch is False
    server.run.assert_called_once_with(transport="stdio")


def test_main_defaults_to_sse(config, monkeypatch):
    server = MagicMock()
    sync_manager = MagicMock()
    monkeypatch.setattr(main_module, "create_server", MagicMock(return_value=(server, sync_manager)))
    monkeypatch.setenv("WORKSPACE_PORT", "9123")
    monkeypatch.setattr(sys, "argv", ["workspace-mcp"])

    main_module.main()

    server.run.assert_called_once_with(transport="sse", host="0.0.0.0", port=9123)
    sync_manager.stop.assert_called_once()


def test_main_exits_on_server_error(config, monkeypatch):
    monkeypatch.setattr(main_module, "create_server", MagicMock(side_effect=RuntimeError("boom")))
    monkeypatch.setattr(sys, "argv", ["workspace-mcp"])

    with pytest.raises(SystemExit) as exc_info:
        main_module.main()
    assert exc_info.value.code == 1
