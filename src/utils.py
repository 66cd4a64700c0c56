"""
Lyrics Studio - Shared Utilities

Common helpers used across multiple modules to avoid duplication.
"""

import re
from typing import Optional

_CODE_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """
    Remove a surrounding Markdown code fence from model output.

    Language models often wrap JSON in ```json ... ``` even when asked not
    to.  Text without a fence is returned stripped but otherwise unchanged.
    """
    if not isinstance(text, str):
        return text
    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def normalize_search(search: Optional[str]) -> Optional[str]:
    """Return a stripped search string, or None if it is blank."""
    if search is None:
        return None
    cleaned = search.strip()
    return cleaned or None



def like_pattern(search: str) -> str:
    """
    Wrap *search* as a substring pattern for ``LIKE ... ESCAPE '\\'``.

    ``%`` and ``_`` in the search text match themselves, not any run of
    characters or any single character.
    """
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
