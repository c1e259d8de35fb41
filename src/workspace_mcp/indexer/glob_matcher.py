"""Glob matching of workspace-relative paths for path-based kind rules.

Supported syntax:
- ``*`` matches any run of characters within a single path segment.
- ``**`` matches zero or more whole path segments.

Other ``fnmatch`` syntax (``?``, ``[abc]``) is honoured within a segment.
"""

from fnmatch import fnmatchcase

DOUBLESTAR = "**"


def _segments(value: str) -> list[str]:
    return [part for part in value.split("/") if part]


def _match_segments(pattern: list[str], path: list[str]) -> bool:
    """Match a ``**``-free pattern segment by segment."""
    if len(pattern) != len(path):
        return False
    return all(fnmatchcase(name, pat) for pat, name in zip(pattern, path))


def _match_doublestar(pattern: str, path: list[str]) -> bool:
    prefix, _, suffix = pattern.partition(DOUBLESTAR)
    prefix_segments = _segments(prefix)
    suffix = suffix.lstrip("/")

    for split_at in range(len(path) + 1):
        if not _match_segments(prefix_segments, path[:split_at]):
            continue
        for end_at in range(split_at, len(path) + 1):
            rest = path[end_at:]
            if DOUBLESTAR in suffix:
                if _match_doublestar(suffix, rest):
                    return True
            elif _match_segments(_segments(suffix), rest):
                return True
    return False


def matches(pattern: str, path: str) -> bool:
    """Return True if the relative path matches the glob pattern.

    ``"a/**"`` also matches ``"a"`` itself because ``**`` may expand to zero
    segments.
    """
    segments = _segments(path)
    if DOUBLESTAR in pattern:
        return _match_doublestar(pattern, segments)
    return _match_segments(_segments(pattern), segments)
