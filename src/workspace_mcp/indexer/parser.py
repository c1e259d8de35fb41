"""Parser for YAML frontmatter and heading titles."""

import logging
from dataclasses import dataclass, field
from datetime import date

import yaml

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
HEADING_PREFIX = "# "


@dataclass
class ParsedFrontmatter:
    """Top-level scalar frontmatter fields plus the remaining body."""

    fields: dict[str, str] = field(default_factory=dict)
    body: str = ""


def _scalar_to_text(value: object) -> str | None:
    """Render a YAML scalar as text, or None for values that are skipped."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    # null, lists and mappings are dropped
    return None


def _parse_fields(yaml_text: str, file_path: str | None) -> dict[str, str]:
    if not yaml_text.strip():
        return {}

    try:
        raw = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        logger.debug("Invalid YAML frontmatter in %s: %s", file_path or "<content>", e)
        return {}

    if not isinstance(raw, dict):
        return {}

    fields: dict[str, str] = {}
    for key, value in raw.items():
        text = _scalar_to_text(value)
        if text is not None:
            fields[str(key)] = text
    return fields


def parse_frontmatter(content: str, file_path: str | None = None) -> ParsedFrontmatter:
    """
    Parse YAML frontmatter from markdown content.

    Frontmatter must start on the first line with ``---`` and end with another
    ``---`` line. Without a closing delimiter the whole content is the body.

    Args:
        content: The full markdown content
        file_path: Optional relative path, used for log messages only

    Returns:
        ParsedFrontmatter with the scalar fields and the body after the block.
    """
    lines = content.split("\n")
    if lines[0].strip() != FRONTMATTER_DELIMITER:
        return ParsedFrontmatter(body=content)

    closing_index = None
    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            closing_index = index
            break

    if closing_index is None:
        return ParsedFrontmatter(body=content)

    yaml_text = "\n".join(lines[1:closing_index])
    body = "\n".join(lines[closing_index + 1 :])
    return ParsedFrontmatter(fields=_parse_fields(yaml_text, file_path), body=body)


def extract_heading_title(body: str) -> str | None:
    """Return the text of the first level-1 heading (``# Title``), if any."""
    for line in body.split("\n"):
        trimmed = line.strip()
        if trimmed.startswith(HEADING_PREFIX):
            title = trimmed[len(HEADING_PREFIX) :].strip()
            return title or None
    return None
