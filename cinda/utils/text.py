"""
Text normalisation helpers shared by extraction and de-duplication.
"""

import re
from typing import Any


_APOSTROPHES = re.compile(r"['’‘`]")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalise(text: str) -> str:
    """
    Lowercase, drop apostrophes, replace punctuation with spaces and
    collapse whitespace.

    Examples:
        >>> normalise("I don't like the Nike   Pegasus!")
        'i dont like the nike pegasus'
    """
    if not text:
        return ""
    lowered = _APOSTROPHES.sub("", str(text).lower())
    spaced = _NON_ALNUM.sub(" ", lowered)
    return _WHITESPACE.sub(" ", spaced).strip()


def dedup_key(value: Any) -> str:
    """
    Key used to de-duplicate append-only chat context entries.

    Dict entries (past shoes) are keyed on brand + model.
    """
    if isinstance(value, dict):
        return normalise(f"{value.get('brand') or ''} {value.get('model') or ''}")
    return normalise(str(value))


def is_blank(text: Any) -> bool:
    """True for None, empty or whitespace-only strings."""
    return text is None or not str(text).strip()
