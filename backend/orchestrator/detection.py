"""
Assistant reply inspection.

Pure text matching used by the reducer:
- save intent: the reply announces a stored memory
- completion: the reply declares the conversation complete
"""

from __future__ import annotations

import re

from constants import (
    CONVERSATION_COMPLETE_MARKERS,
    MEMORY_EVENT_ID_PATTERN,
    MEMORY_SAVED_PATTERNS,
)

_SAVED_RE = tuple(re.compile(p, re.IGNORECASE) for p in MEMORY_SAVED_PATTERNS)
_EVENT_ID_RE = re.compile(MEMORY_EVENT_ID_PATTERN, re.IGNORECASE)


def detect_memory_saved(text: str) -> str | None:
    """
    Returns the saved event id ("" when the reply names none), or None
    when the reply does not announce a save.
    """
    if not any(pattern.search(text) for pattern in _SAVED_RE):
        return None

    match = _EVENT_ID_RE.search(text)
    return match.group(1) if match else ""


def detect_conversation_complete(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in CONVERSATION_COMPLETE_MARKERS)


def strip_control_markers(text: str) -> str:
    """Remove bracketed control markers so they are never spoken."""
    return re.sub(r"\[[A-Z_]+\]", "", text).strip()
