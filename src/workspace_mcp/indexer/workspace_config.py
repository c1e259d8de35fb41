"""Loading of workspace.yml: custom kinds and path rules.

Example:

    kinds:
      - kind: recipe
        properties: [cuisine, difficulty]
    rules:
      - path: "issues/**"
        kind: issue
      - path: "recipes/*.md"
        kind: recipe
"""

import logging
from pathlib import Path

import yaml

from workspace_mcp.indexer.models import Kind, KindDefinition, Rule, WorkspaceConfiguration

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "workspace.yml"


class ConfigurationError(Exception):
    """Raised when workspace.yml cannot be parsed."""


def _parse_kinds(entries: object) -> list[KindDefinition]:
    if not isinstance(entries, list):
        return []

    definitions = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("kind")
        if not isinstance(name, str) or not name:
            continue
        properties = entry.get("properties")
        if not isinstance(properties, list):
            properties = []
        definitions.append(
            KindDefinition(
                kind=Kind(name),
                properties=tuple(p for p in properties if isinstance(p, str)),
            )
        )
    return definitions


def _parse_rules(entries: object) -> list[Rule]:
    if not isinstance(entries, list):
        return []

    rules = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        pattern = entry.get("path")
        kind = entry.get("kind")
        if not isinstance(pattern, str) or not isinstance(kind, str) or not kind:
            logger.debug("Skipping incomplete rule: %r", entry)
            continue
        rules.append(Rule(path=pattern, kind=Kind(kind)))
    return rules


def parse_configuration(text: str) -> WorkspaceConfiguration:
    """Parse the YAML text of a workspace configuration file."""
    if not text.strip():
        return WorkspaceConfiguration()

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid workspace configuration: {e}") from e

    if not isinstance(raw, dict):
        return WorkspaceConfiguration()

    return WorkspaceConfiguration(
        kinds=_parse_kinds(raw.get("kinds")),
        rules=_parse_rules(raw.get("rules")),
    )


def load_configuration(root: Path) -> WorkspaceConfiguration:
    """Load workspace.yml from the workspace root, or an empty configuration."""
    config_path = root / CONFIG_FILENAME
    if not config_path.is_file():
        return WorkspaceConfiguration()

    configuration = parse_configuration(config_path.read_text(encoding="utf-8"))
    logger.debug(
        "Loaded %s: %d kinds, %d rules",
        config_path,
        len(configuration.kinds),
        len(configuration.rules),
    )
    return configuration
