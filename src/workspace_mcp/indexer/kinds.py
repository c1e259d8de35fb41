"""Kind resolution for parsed documents."""

from collections.abc import Mapping, Sequence

from workspace_mcp.indexer.glob_matcher import matches
from workspace_mcp.indexer.models import Kind, Rule

KIND_FIELD = "kind"


def resolve_kind(
    fields: Mapping[str, str],
    path: str,
    rules: Sequence[Rule] = (),
) -> Kind:
    """
    Decide the kind of a document.

    Precedence:
    1. An explicit ``kind`` in the frontmatter fields.
    2. The first rule, in order, whose glob pattern matches the path.
    3. The default ``document`` kind.

    Args:
        fields: Frontmatter fields of the document
        path: Workspace-relative path (e.g., "issues/0001.md")
        rules: Ordered path rules from the workspace configuration

    Returns:
        The resolved Kind.
    """
    explicit = fields.get(KIND_FIELD)
    if explicit:
        return Kind(explicit)

    for rule in rules:
        if matches(rule.path, path):
            return rule.kind

    return Kind.DOCUMENT
