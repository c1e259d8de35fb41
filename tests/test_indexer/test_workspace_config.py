"""Tests for workspace.yml loading."""

from pathlib import Path

import pytest

from workspace_mcp.indexer.models import Kind, KindDefinition, Rule
from workspace_mcp.indexer.workspace_config import (
    CONFIG_FILENAME,
    ConfigurationError,
    load_configuration,
    parse_configuration,
)


class TestParseConfiguration:
    def test_parses_kinds_and_rules(self):
        configuration = parse_configuration(
            """
kinds:
  - kind: recipe
    properties: [cuisine, difficulty]
  - kind: note
rules:
  - path: "recipes/*.md"
    kind: recipe
  - path: "issues/**"
    kind: issue
"""
        )

        assert configuration.kinds == [
            KindDefinition(kind=Kind("recipe"), properties=("cuisine", "difficulty")),
            KindDefinition(kind=Kind("note"), properties=()),
        ]
        assert configuration.rules == [
            Rule(path="recipes/*.md", kind=Kind("recipe")),
            Rule(path="issues/**", kind=Kind.ISSUE),
        ]

    def test_empty_text(self):
        configuration = parse_configuration("")
        assert configuration.kinds == []
        assert configuration.rules == []

    def test_missing_sections(self):
        configuration = parse_configuration("rules:\n  - path: a/**\n    kind: issue\n")
        assert configuration.kinds == []
        assert len(configuration.rules) == 1

    def test_incomplete_rules_skipped(self):
        configuration = parse_configuration(
            """
rules:
  - path: "a/**"
  - kind: issue
  - path: "b/**"
    kind: issue
"""
        )
        assert configuration.rules == [Rule(path="b/**", kind=Kind.ISSUE)]

    def test_kind_entry_without_name_skipped(self):
        configuration = parse_configuration("kinds:\n  - properties: [a]\n  - kind: ok\n")
        assert [d.kind for d in configuration.kinds] == [Kind("ok")]

    def test_non_string_properties_skipped(self):
        configuration = parse_configuration("kinds:\n  - kind: k\n    properties: [a, 1, [b], c]\n")
        assert configuration.kinds[0].properties == ("a", "c")

    def test_malformed_yaml_raises(self):
        with pytest.raises(ConfigurationError, match="Invalid workspace configuration"):
            parse_configuration("kinds: [unclosed\n")

    def test_non_mapping_document(self):
        configuration = parse_configuration("- just\n- a list\n")
        assert configuration.kinds == []
        assert configuration.rules == []


class TestLoadConfiguration:
    def test_missing_file(self, tmp_path: Path):
        configuration = load_configuration(tmp_path)
        assert configuration.kinds == []
        assert configuration.rules == []

    def test_loads_file(self, tmp_path: Path):
        (tmp_path / CONFIG_FILENAME).write_text("rules:\n  - path: 'x/**'\n    kind: issue\n")
        configuration = load_configuration(tmp_path)
        assert configuration.rules == [Rule(path="x/**", kind=Kind.ISSUE)]
