"""
Authoritative orchestrator state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.enums.state import SessionState


@dataclass(frozen=True)
class OrchestratorState:
    """Immutable snapshot of all orchestrator-owned state."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: SessionState = SessionState.IDLE

    # ------------------------------------------------------------------
    # User switches
    # ------------------------------------------------------------------
    # True between a successful preflight and the end of the session.
    active: bool = False

    # Suppresses speech output only; capture is unaffected.
    muted: bool = False

    # ------------------------------------------------------------------
    # Outstanding work
    # ------------------------------------------------------------------
    # A RunPreflight is outstanding.
    starting: bool = False

    # A StartCapture is outstanding (re-entrancy guard for begin-listening).
    capture_requested: bool = False

    # ------------------------------------------------------------------
    # Reply bookkeeping
    # ------------------------------------------------------------------
    # Last assistant message handed to playback (or skipped while muted).
    last_dispatched_message_id: str | None = None

    # Conversation-complete notification already sent this session.
    completion_handled: bool = False

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
