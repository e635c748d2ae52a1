"""
Template placeholder extraction.

A placeholder is `{{ name }}`: the text between a double-open and a
double-close brace pair, with no `}` inside, whitespace trimmed.
"""

from __future__ import annotations

import re

VARIABLE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


def parse_variables(body: str | None) -> list[str]:
    """
    Return placeholder names in order of first occurrence, deduplicated.

    >>> parse_variables("Hello {{name}}, your {{name}} is {{ status }}")
    ['name', 'status']
    """
    seen: dict[str, None] = {}
    for match in VARIABLE_PATTERN.finditer(body or ""):
        name = match.group(1).strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)
