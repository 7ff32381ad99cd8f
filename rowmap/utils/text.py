"""
rowmap/utils/text.py
--------------------
Identifier helpers used when deriving table names.
"""

import re

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """Convert ``UserRole`` / ``HTTPRequest`` style names to ``user_role`` / ``http_request``."""
    snake = _FIRST_CAP.sub(r"\1_\2", name)
    snake = _ALL_CAP.sub(r"\1_\2", snake)
    return snake.lower()
