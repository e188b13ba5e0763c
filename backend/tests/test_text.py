"""
Tests for text normalization and regex escaping.
"""

import re

import pytest

from job_recommender.services.text import build_skill_pattern, escape_pattern, normalize_text


class TestNormalizeText:
    """Test canonical form used for titles and skills."""

    def test_lowercases_and_trims(self):
        assert normalize_text("  Senior Engineer  ") == "senior engineer"

    def test_punctuation_becomes_space(self):
        assert normalize_text("Node.js/React") == "node js react"

    def test_keeps_plus_and_hash(self):
        assert normalize_text("C++, C#") == "c++ c#"

    def test_collapses_whitespace_runs(self):
        assert normalize_text("data \t\n  engineer") == "data engineer"

    def test_keeps_underscores_and_digits(self):
        assert normalize_text("snake_case 3D") == "snake_case 3d"

    def test_empty_input(self):
        assert normalize_text("") == ""
        assert normalize_text("!!!") == ""

    @pytest.mark.parametrize(
        "text",
        ["Senior Software Engineer", "Node.js", "  C++ / C#  ", "Full-Stack (Remote)", "Ünïcode Dév"],
    )
    def test_idempotent(self, text):
        """Normalizing twice equals normalizing once."""
        once = normalize_text(text)
        assert normalize_text(once) == once


class TestEscapePattern:
    """Test regex escaping of skills."""

    def test_escapes_metacharacters(self):
        assert escape_pattern("c++") == "c\\+\\+"
        assert escape_pattern("node.js") == "node\\.js"

    def test_escaped_pattern_matches_literally(self):
        pattern = escape_pattern("c++ (17)")
        assert re.search(pattern, "we use c++ (17) daily")
        assert not re.search(pattern, "we use cc (17) daily")

    def test_plain_text_unchanged(self):
        assert escape_pattern("python") == "python"


class TestBuildSkillPattern:
    def test_alternation_of_escaped_skills(self):
        assert build_skill_pattern(["python", "c++"]) == "python|c\\+\\+"

    def test_empty_when_no_skills(self):
        assert build_skill_pattern([]) == ""
        assert build_skill_pattern([""]) == ""
