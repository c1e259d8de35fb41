"""File walker for discovering markdown files in a workspace."""

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

MARKDOWN_SUFFIX = ".md"

# Well-known directories that never hold workspace documents
SKIPPED_DIRECTORIES = frozenset({"node_modules", ".build", ".git"})


@dataclass
class FileInfo:
    """Information about a discovered file."""

    path: Path  # Absolute path
    relative_path: str  # Relative to the workspace root, "/"-separated


def should_skip(name: str) -> bool:
    """Return True for hidden entries and well-known excluded directories."""
    return name.startswith(".") or name in SKIPPED_DIRECTORIES


def should_skip_path(relative_path: str) -> bool:
    """Return True if any segment of a relative path should be skipped."""
    return any(should_skip(part) for part in PurePosixPath(relative_path).parts)


def is_markdown(path: str) -> bool:
    return path.lower().endswith(MARKDOWN_SUFFIX)


def walk_workspace(root: Path) -> list[FileInfo]:
    """
    Find every markdown file under the workspace root.

    Hidden files and directories (names starting with ".") and
    well-known directories such as node_modules are skipped.

    Returns:
        FileInfo entries sorted by relative path.
    """
    if not root.is_dir():
        return []

    results: list[FileInfo] = []
    for file_path in root.rglob("*"):
        relative_path = file_path.relative_to(root).as_posix()
        if should_skip_path(relative_path):
            continue
        if not is_markdown(file_path.name) or not file_path.is_file():
            continue
        results.append(FileInfo(path=file_path, relative_path=relative_path))

    results.sort(key=lambda info: info.relative_path)
    return results
