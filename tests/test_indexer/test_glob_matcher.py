"""Tests for glob matching of workspace paths."""

import pytest

from workspace_mcp.indexer.glob_matcher import matches


class TestSingleStar:
    def test_matches_within_segment(self):
        assert matches("issues/*.md", "issues/001.md")

    def test_does_not_cross_separator(self):
        assert not matches("issues/*.md", "issues/sub/001.md")
        assert not matches("*.md", "issues/001.md")

    def test_exact_pattern(self):
        assert matches("README.md", "README.md")
        assert not matches("README.md", "docs/README.md")

    def test_question_mark_and_brackets(self):
        assert matches("notes/day?.md", "notes/day1.md")
        assert matches("notes/[ab].md", "notes/b.md")
        assert not matches("notes/[ab].md", "notes/c.md")

    def test_case_sensitive(self):
        assert not matches("Issues/*.md", "issues/001.md")


class TestDoubleStar:
    @pytest.mark.parametrize(
        "path",
        ["issues/001.md", "issues/2024/001.md", "issues/a/b/c/001.md"],
    )
    def test_matches_any_depth(self, path: str):
        assert matches("issues/**", path)

    def test_zero_segments(self):
        assert matches("a/**", "a")
        assert matches("**/*.md", "top.md")
        assert matches("a/**/b.md", "a/b.md")

    def test_suffix_must_match(self):
        assert matches("**/*.md", "deep/nested/file.md")
        assert not matches("**/*.md", "deep/nested/file.txt")

    def test_prefix_must_match(self):
        assert not matches("issues/**", "docs/001.md")

    def test_middle_doublestar(self):
        assert matches("docs/**/index.md", "docs/a/b/index.md")
        assert not matches("docs/**/index.md", "docs/a/b/other.md")

    def test_multiple_doublestars(self):
        assert matches("a/**/b/**/c.md", "a/x/b/y/z/c.md")
        assert matches("a/**/b/**/c.md", "a/b/c.md")
        assert not matches("a/**/b/**/c.md", "a/x/y/c.md")

    def test_bare_doublestar_matches_everything(self):
        assert matches("**", "anything/at/all.md")


class TestPathNormalization:
    def test_empty_segments_ignored(self):
        assert matches("issues//*.md", "issues/001.md")
        assert matches("issues/*.md", "/issues/001.md")
        assert matches("issues/*.md", "issues//001.md")
