"""
Text normalization for search-term and pattern construction.

Titles and skills are normalized the same way before they reach SQL:
lowercase, anything other than word characters, whitespace, "+" and "#"
becomes a space, whitespace runs collapse to one space. Keeping "+" and "#"
preserves skills such as "C++" and "C#".
"""

import re

_DISALLOWED_CHARS = re.compile(r"[^\w\s+#]")
_WHITESPACE = re.compile(r"\s+")
_REGEX_METACHARS = re.compile(r"[.*+?^${}()|\[\]\\]")


def normalize_text(text: str) -> str:
    """
    Canonicalize free text for matching.

    >>> normalize_text("  Senior  Node.js/React Dev! ")
    'senior node js react dev'
    >>> normalize_text("C++ & C#")
    'c++ c#'
    """
    if not text:
        return ""
    lowered = text.lower()
    stripped = _DISALLOWED_CHARS.sub(" ", lowered)
    return _WHITESPACE.sub(" ", stripped).strip()


def escape_pattern(text: str) -> str:
    """Escape regex metacharacters so text matches literally in a Postgres regex."""
    return _REGEX_METACHARS.sub(lambda m: "\\" + m.group(0), text)


def build_skill_pattern(normalized_skills: list[str]) -> str:
    """Alternation of escaped skills, or "" when there is nothing to match."""
    return "|".join(escape_pattern(skill) for skill in normalized_skills if skill)
