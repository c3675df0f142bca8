# pylint: disable=missing-module-docstring,missing-function-docstring

from orchestrator.detection import (
    detect_conversation_complete,
    detect_memory_saved,
    strip_control_markers,
)


def test_save_marker_without_event_id() -> None:
    assert detect_memory_saved("[SAVE_MEMORY] Wonderful story!") == ""


def test_save_phrase_with_event_id() -> None:
    text = "Memory saved to your timeline. event_id: 3f2a-99"
    assert detect_memory_saved(text) == "3f2a-99"


def test_plain_reply_is_not_a_save() -> None:
    assert detect_memory_saved("What happened next?") is None


def test_completion_markers_are_case_insensitive() -> None:
    assert detect_conversation_complete("Danke! Deine Basisdaten sind erfasst.")
    assert detect_conversation_complete("[ONBOARDING_COMPLETE]")
    assert not detect_conversation_complete("Tell me about your school days.")


def test_control_markers_are_never_spoken() -> None:
    assert strip_control_markers("[SAVE_MEMORY] Lovely. [ONBOARDING_COMPLETE]") == "Lovely."
    assert strip_control_markers("[SAVE_MEMORY]") == ""
    assert strip_control_markers("Keep [brackets] in prose") == "Keep [brackets] in prose"
