# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

from errors import AudioOutputError, SynthesisError
from orchestrator.enums.state import PlaybackState
from playback.queue import SynthesisPlaybackQueue

from fakes import FakeOutput, FakeSynthesizer


def make_queue(
    synthesizer: FakeSynthesizer | None = None,
    output: FakeOutput | None = None,
) -> tuple[SynthesisPlaybackQueue, dict[str, list[Any]]]:
    seen: dict[str, list[Any]] = {"starts": [], "ends": [], "errors": [], "states": []}

    async def on_play_start() -> None:
        seen["starts"].append(queue.state)

    queue = SynthesisPlaybackQueue(
        synthesizer=synthesizer or FakeSynthesizer(),
        output=output or FakeOutput(),
        voice="sarah",
        on_play_start=on_play_start,
        on_play_end=lambda: seen["ends"].append(True),
        on_error=seen["errors"].append,
        on_state_change=seen["states"].append,
    )
    return queue, seen


async def drain(queue: SynthesisPlaybackQueue) -> None:
    for _ in range(200):
        if not queue.is_busy:
            return
        await asyncio.sleep(0.001)
    raise AssertionError("playback queue never drained")


def test_entries_play_in_order_one_fetch_at_a_time() -> None:
    async def scenario() -> None:
        synth = FakeSynthesizer()
        output = FakeOutput()
        queue, seen = make_queue(synth, output)

        for text in ("first", "second", "third"):
            queue.enqueue(text)
        await drain(queue)

        assert synth.requests == ["first", "second", "third"]
        assert synth.max_in_flight == 1
        assert len(output.played) == 3
        assert seen["ends"] == [True]
        assert queue.state is PlaybackState.IDLE

    asyncio.run(scenario())


def test_loading_and_playing_alternate() -> None:
    async def scenario() -> None:
        queue, seen = make_queue()

        queue.enqueue("one")
        queue.enqueue("two")
        await drain(queue)

        assert seen["states"] == [
            PlaybackState.LOADING,
            PlaybackState.PLAYING,
            PlaybackState.LOADING,
            PlaybackState.PLAYING,
            PlaybackState.IDLE,
        ]
        # play-start hook runs before the entry is marked playing
        assert seen["starts"] == [PlaybackState.LOADING, PlaybackState.LOADING]

    asyncio.run(scenario())


def test_blank_text_is_ignored() -> None:
    async def scenario() -> None:
        synth = FakeSynthesizer()
        queue, seen = make_queue(synth)

        queue.enqueue("   ")
        queue.enqueue("")

        assert not queue.is_busy
        assert queue.queue_length == 0
        await asyncio.sleep(0.01)
        assert synth.requests == []
        assert seen["ends"] == []

    asyncio.run(scenario())


def test_enqueue_while_playing_appends() -> None:
    async def scenario() -> None:
        output = FakeOutput()
        output.hold = asyncio.Event()
        queue, seen = make_queue(output=output)

        queue.enqueue("a")
        while not queue.is_playing:
            await asyncio.sleep(0.001)

        queue.enqueue("b")
        assert queue.queue_length == 1

        output.hold.set()
        await drain(queue)

        assert len(output.played) == 2
        assert seen["ends"] == [True]

    asyncio.run(scenario())


def test_clear_queue_keeps_current_entry_playing() -> None:
    async def scenario() -> None:
        synth = FakeSynthesizer()
        output = FakeOutput()
        output.hold = asyncio.Event()
        queue, seen = make_queue(synth, output)

        queue.enqueue("current")
        queue.enqueue("pending 1")
        queue.enqueue("pending 2")
        while not queue.is_playing:
            await asyncio.sleep(0.001)

        queue.clear_queue()
        assert queue.queue_length == 0
        assert queue.is_playing
        assert output.stops == 0

        output.hold.set()
        await drain(queue)

        assert synth.requests == ["current"]
        assert seen["ends"] == [True]

    asyncio.run(scenario())


def test_resume_activates_output_device() -> None:
    async def scenario() -> None:
        output = FakeOutput()
        queue, _ = make_queue(output=output)

        await queue.resume()

        assert output.resumes == 1
        assert output.state.value == "running"

    asyncio.run(scenario())


def test_stop_cancels_fetch_and_drops_queue() -> None:
    async def scenario() -> None:
        synth = FakeSynthesizer()
        synth.gate = asyncio.Event()
        output = FakeOutput()
        queue, seen = make_queue(synth, output)

        queue.enqueue("a")
        queue.enqueue("b")
        await asyncio.sleep(0.01)
        assert queue.is_loading

        queue.stop()
        queue.stop()

        assert queue.state is PlaybackState.IDLE
        assert queue.queue_length == 0
        assert not queue.is_busy

        synth.gate.set()
        await asyncio.sleep(0.01)

        assert synth.in_flight == 0
        assert synth.requests == ["a"]
        assert output.played == []
        assert output.stops == 2
        assert seen["ends"] == []

    asyncio.run(scenario())


def test_stop_on_idle_queue_is_harmless() -> None:
    async def scenario() -> None:
        queue, seen = make_queue()

        queue.stop()

        assert queue.state is PlaybackState.IDLE
        assert seen["states"] == []

    asyncio.run(scenario())


def test_failed_entry_is_reported_and_queue_continues() -> None:
    async def scenario() -> None:
        synth = FakeSynthesizer(fail_on={"broken"})
        output = FakeOutput()
        queue, seen = make_queue(synth, output)

        queue.enqueue("fine")
        queue.enqueue("broken")
        queue.enqueue("also fine")
        await drain(queue)

        assert len(seen["errors"]) == 1
        error = seen["errors"][0]
        assert isinstance(error, SynthesisError)
        assert error.status == 500
        assert len(output.played) == 2
        assert seen["ends"] == [True]
        assert queue.state is PlaybackState.IDLE
        assert queue.error is None

    asyncio.run(scenario())


def test_failure_of_last_entry_leaves_error_state() -> None:
    async def scenario() -> None:
        queue, seen = make_queue(FakeSynthesizer(fail_on={"broken"}))

        queue.enqueue("broken")
        await drain(queue)

        assert queue.state is PlaybackState.ERROR
        assert isinstance(queue.error, SynthesisError)
        # drained after processing an entry, so the end hook still fires
        assert seen["ends"] == [True]

    asyncio.run(scenario())


def test_unavailable_output_is_reported_as_output_error() -> None:
    async def scenario() -> None:
        synth = FakeSynthesizer()
        queue, seen = make_queue(synth, FakeOutput(unavailable=True))

        queue.enqueue("hello")
        await drain(queue)

        assert len(seen["errors"]) == 1
        assert isinstance(seen["errors"][0], AudioOutputError)
        assert seen["starts"] == []

    asyncio.run(scenario())
