"""Configuration module for workspace-mcp.

Loads configuration from environment variables with sensible defaults.
Kinds and path rules live in the workspace's own workspace.yml instead.
"""

import os
from dataclasses import dataclass
from pathlib import Path

_FALSE_VALUES = ("0", "false", "no")


@dataclass
class Config:
    """Application configuration."""

    workspace_root: Path
    workspace_port: int
    workspace_db: Path
    watch: bool

    @classmethod
    def from_env(cls, watch_override: bool | None = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            watch_override: If provided, overrides the WORKSPACE_WATCH env var.
        """
        workspace_root = Path(os.getenv("WORKSPACE_ROOT", os.getcwd())).expanduser().resolve()

        port_str = os.getenv("WORKSPACE_PORT", "8080")
        try:
            workspace_port = int(port_str)
            if not 1 <= workspace_port <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {workspace_port}")
        except ValueError as e:
            raise ValueError(f"Invalid WORKSPACE_PORT value '{port_str}': {e}") from e

        # Default lives in a hidden directory, which the indexer never scans
        default_db = str(workspace_root / ".workspace" / "index.db")
        workspace_db = Path(os.getenv("WORKSPACE_DB", default_db)).expanduser()

        # Live watching enabled by default; CLI flag takes precedence
        if watch_override is not None:
            watch = watch_override
        else:
            watch = os.getenv("WORKSPACE_WATCH", "true").lower() not in _FALSE_VALUES

        return cls(
            workspace_root=workspace_root,
            workspace_port=workspace_port,
            workspace_db=workspace_db,
            watch=watch,
        )


# Global config instance (lazy loaded)
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
