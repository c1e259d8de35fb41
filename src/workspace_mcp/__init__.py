"""
workspace-mcp - MCP server indexing a markdown workspace by kind.

Every markdown file of the workspace becomes a typed record in a SQLite index:
its kind comes from frontmatter or from path rules in workspace.yml, and its
frontmatter fields become queryable properties. The files stay the source of
truth; the index is rebuilt on startup and kept current by a native
filesystem watcher.

Stack:
- Python + FastMCP
- SQLite (derived index, one extension table per kind)
- inotify / watchdog (live sync)
- Markdown + YAML frontmatter (source of truth)
"""

__version__ = "0.1.0"
