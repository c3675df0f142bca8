# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from capture.controller import SpeechCaptureController
from config import CaptureOptions
from errors import CapturePermissionError
from adapters.asr.base import RecognitionErrorCode
from orchestrator.enums.state import CaptureState, SessionState
from orchestrator.runtime import Runtime
from playback.queue import SynthesisPlaybackQueue
from session.voice_session import SessionComponents, VoiceSession

from fakes import (
    FakeDialogueEngine,
    FakeMicrophone,
    FakeOutput,
    FakeProviderFactory,
    FakeSynthesizer,
)


# ---------------------------------------------------------------------
# Rig
# ---------------------------------------------------------------------

@dataclass
class Rig:
    factory: FakeProviderFactory
    mic: FakeMicrophone
    synth: FakeSynthesizer
    output: FakeOutput
    dialogue: FakeDialogueEngine
    session: VoiceSession = field(init=False)
    errors: list[tuple[str, bool]] = field(default_factory=list)
    saved: list[str] = field(default_factory=list)
    completed: list[bool] = field(default_factory=list)
    agent_states: list[str] = field(default_factory=list)

    @property
    def capture(self) -> SpeechCaptureController:
        return self.session.components.capture

    @property
    def state(self) -> SessionState:
        return self.session.agent_state


def make_rig(
    *,
    welcome: str | None = "Welcome! What do you remember?",
    replies: list[str] | None = None,
    mic: FakeMicrophone | None = None,
) -> Rig:
    rig = Rig(
        factory=FakeProviderFactory(),
        mic=mic or FakeMicrophone(),
        synth=FakeSynthesizer(),
        output=FakeOutput(),
        dialogue=FakeDialogueEngine(welcome=welcome, replies=replies),
    )

    def build(runtime: Runtime) -> SessionComponents:
        capture = SpeechCaptureController(
            provider_factory=rig.factory,
            microphone=rig.mic,
            options=CaptureOptions(silence_timeout_ms=20),
            on_transcript=runtime.on_transcript,
            on_utterance_end=runtime.on_utterance_end,
            on_error=runtime.on_capture_error,
            on_state_change=runtime.on_component_state_change,
        )
        playback = SynthesisPlaybackQueue(
            synthesizer=rig.synth,
            output=rig.output,
            voice="sarah",
            on_play_start=runtime.on_play_start,
            on_play_end=runtime.on_play_end,
            on_error=runtime.on_playback_error,
            on_state_change=runtime.on_component_state_change,
        )
        return SessionComponents(capture=capture, playback=playback, dialogue=rig.dialogue)

    async def on_complete() -> None:
        rig.completed.append(True)

    rig.session = VoiceSession(
        build_components=build,
        session_id="test-session",
        on_error=lambda reason, fatal: rig.errors.append((reason, fatal)),
        on_memory_saved=rig.saved.append,
        on_complete=on_complete,
    )

    def record(snapshot: dict[str, Any]) -> None:
        if not rig.agent_states or rig.agent_states[-1] != snapshot["agent_state"]:
            rig.agent_states.append(snapshot["agent_state"])

    rig.session.subscribe(record)
    return rig


async def wait_until(predicate: Callable[[], bool], timeout_s: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.002)


async def listening(rig: Rig) -> None:
    await wait_until(lambda: rig.state is SessionState.LISTENING and rig.capture.is_listening)


async def say(rig: Rig, text: str) -> None:
    await listening(rig)
    rig.factory.current.say(final=text)


# ---------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------

def test_full_conversation_turn() -> None:
    async def scenario() -> None:
        rig = make_rig(replies=["How lovely. Tell me more about Hamburg."])

        await rig.session.start_session()
        await wait_until(lambda: len(rig.output.played) == 1)

        await say(rig, "I was born in Hamburg")
        await wait_until(lambda: len(rig.output.played) == 2)
        await listening(rig)

        assert rig.dialogue.user_messages == ["I was born in Hamburg"]
        assert rig.synth.requests == [
            "Welcome! What do you remember?",
            "How lovely. Tell me more about Hamburg.",
        ]
        assert rig.agent_states == [
            "idle",
            "listening",
            "speaking",
            "listening",
            "thinking",
            "speaking",
            "listening",
        ]

        snapshot = rig.session.snapshot()
        assert snapshot["is_active"] is True
        assert [m["role"] for m in snapshot["conversation_history"]] == [
            "assistant",
            "user",
            "assistant",
        ]
        assert rig.errors == []

        await rig.session.close()

    asyncio.run(scenario())


def test_capture_and_playback_never_overlap() -> None:
    async def scenario() -> None:
        rig = make_rig(replies=["One.", "Two."])
        capture_at_play: list[CaptureState] = []
        playing_at_capture: list[bool] = []
        rig.output.on_play = lambda: capture_at_play.append(rig.capture.state)
        rig.factory.on_create = lambda _: playing_at_capture.append(rig.output.playing)

        await rig.session.start_session()
        await say(rig, "first answer")
        await wait_until(lambda: len(rig.output.played) == 2)
        await say(rig, "second answer")
        await wait_until(lambda: len(rig.output.played) == 3)
        await listening(rig)

        assert capture_at_play == [CaptureState.IDLE] * 3
        assert playing_at_capture and not any(playing_at_capture)

        await rig.session.close()

    asyncio.run(scenario())


def test_mute_while_speaking_cuts_audio_and_listens() -> None:
    async def scenario() -> None:
        rig = make_rig()
        rig.output.hold = asyncio.Event()

        await rig.session.start_session()
        await wait_until(lambda: rig.output.playing)

        await rig.session.toggle_mute()
        await listening(rig)

        assert rig.session.state.muted is True
        assert rig.output.stops >= 1
        assert not rig.session.components.playback.is_busy

        await rig.session.close()

    asyncio.run(scenario())


def test_muted_session_never_speaks() -> None:
    async def scenario() -> None:
        rig = make_rig(replies=["A silent reply."])

        await rig.session.toggle_mute()
        await rig.session.start_session()
        await say(rig, "hello there")
        await wait_until(lambda: len(rig.dialogue.messages) == 3)
        await listening(rig)

        assert rig.synth.requests == []
        assert rig.output.played == []

        await rig.session.close()

    asyncio.run(scenario())


def test_failed_preflight_skips_welcome_and_can_restart() -> None:
    async def scenario() -> None:
        rig = make_rig(mic=FakeMicrophone([CapturePermissionError("microphone permission denied")]))

        await rig.session.start_session()

        snapshot = rig.session.snapshot()
        assert snapshot["agent_state"] == "error"
        assert snapshot["is_active"] is False
        assert snapshot["error"] == "microphone permission denied"
        assert rig.errors == [("microphone permission denied", True)]
        assert rig.synth.requests == []

        await rig.session.start_session()
        await wait_until(lambda: len(rig.output.played) == 1)
        await listening(rig)

        assert rig.session.snapshot()["error"] is None

        await rig.session.close()

    asyncio.run(scenario())


def test_duplicate_reply_notifications_are_spoken_once() -> None:
    async def scenario() -> None:
        rig = make_rig(replies=["Only once."])

        await rig.session.start_session()
        await say(rig, "tell me")
        await wait_until(lambda: len(rig.output.played) == 2)

        rig.dialogue.renotify()
        rig.dialogue.renotify()
        await listening(rig)
        await rig.session.runtime.settle()

        assert rig.synth.requests.count("Only once.") == 1

        await rig.session.close()

    asyncio.run(scenario())


def test_memory_save_and_completion_are_reported() -> None:
    async def scenario() -> None:
        rig = make_rig(
            replies=["[SAVE_MEMORY] I've saved that, event_id: ev-42. Deine Basisdaten sind erfasst."]
        )

        await rig.session.start_session()
        await say(rig, "I married in 1970")
        await wait_until(lambda: bool(rig.completed))

        assert rig.saved == ["ev-42"]
        assert rig.completed == [True]
        assert rig.state is SessionState.IDLE
        assert rig.session.snapshot()["is_active"] is False

        await rig.session.close()

    asyncio.run(scenario())


def test_dialogue_failure_returns_to_listening() -> None:
    async def scenario() -> None:
        rig = make_rig()

        await rig.session.start_session()
        rig.dialogue.fail_next = True
        await say(rig, "are you there")
        await wait_until(lambda: bool(rig.errors))
        await listening(rig)

        assert rig.errors == [("llm unavailable", False)]
        assert rig.session.snapshot()["is_active"] is True

        await rig.session.close()

    asyncio.run(scenario())


def test_capture_failure_while_listening_enters_error() -> None:
    async def scenario() -> None:
        rig = make_rig(welcome=None)

        await rig.session.start_session()
        await listening(rig)

        rig.factory.current.fail(RecognitionErrorCode.AUDIO_CAPTURE)
        await wait_until(lambda: rig.state is SessionState.ERROR)

        assert rig.errors and rig.errors[0][1] is True
        assert rig.session.snapshot()["is_active"] is False

        await rig.session.close()

    asyncio.run(scenario())


def test_reply_after_end_is_not_spoken() -> None:
    async def scenario() -> None:
        rig = make_rig(welcome=None, replies=["Too late."])
        rig.dialogue.gate = asyncio.Event()

        await rig.session.start_session()
        await say(rig, "goodbye")
        await wait_until(lambda: rig.state is SessionState.THINKING)

        await rig.session.end_session()
        rig.dialogue.gate.set()
        await rig.session.runtime.settle()

        # the outstanding request was abandoned, so no reply was recorded
        assert [m.role for m in rig.dialogue.messages] == ["user"]
        assert rig.synth.requests == []
        assert rig.state is SessionState.IDLE
        assert not rig.capture.is_listening

        await rig.session.close()

    asyncio.run(scenario())


def test_reply_from_ended_session_is_not_spoken_after_restart() -> None:
    async def scenario() -> None:
        rig = make_rig(welcome=None, replies=["Stale reply from the old session."])
        rig.dialogue.gate = asyncio.Event()

        await rig.session.start_session()
        await say(rig, "goodbye")
        await wait_until(lambda: rig.state is SessionState.THINKING)

        await rig.session.end_session()
        await rig.session.start_session()
        await listening(rig)

        rig.dialogue.gate.set()
        await rig.session.runtime.settle()

        assert rig.synth.requests == []
        assert rig.state is SessionState.LISTENING
        assert rig.capture.is_listening
        assert rig.errors == []

        await rig.session.close()

    asyncio.run(scenario())


def test_marker_only_reply_completes_instead_of_hanging() -> None:
    async def scenario() -> None:
        rig = make_rig(replies=["[ONBOARDING_COMPLETE]"])

        await rig.session.start_session()
        await wait_until(lambda: len(rig.output.played) == 1)
        await say(rig, "that's everything")
        await wait_until(lambda: bool(rig.completed))

        assert rig.completed == [True]
        assert rig.state is SessionState.IDLE
        assert rig.synth.requests == ["Welcome! What do you remember?"]

        await rig.session.close()

    asyncio.run(scenario())


def test_marker_only_save_reply_returns_to_listening() -> None:
    async def scenario() -> None:
        rig = make_rig(welcome=None, replies=["[SAVE_MEMORY]"])

        await rig.session.start_session()
        await say(rig, "I was born in Hamburg")
        await wait_until(lambda: bool(rig.saved))
        await listening(rig)

        assert rig.saved == [""]
        assert rig.synth.requests == []

        # the next turn is answered normally
        await say(rig, "in 1948")
        await wait_until(lambda: len(rig.output.played) == 1)
        assert rig.synth.requests == ["Tell me more."]

        await rig.session.close()

    asyncio.run(scenario())
