# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from adapters.llm.streaming import OpenAIDialogueEngine
from constants import WELCOME_MESSAGE_ID
from errors import DialogueError


# ---------------------------------------------------------------------
# Fake OpenAI client (chat.completions.create with stream=True)
# ---------------------------------------------------------------------

def chunk(text: str | None) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


class FakeStream:
    def __init__(self, deltas: list[str | None], fail_after: int | None = None) -> None:
        self._deltas = deltas
        self._fail_after = fail_after
        self._i = 0

    def __aiter__(self) -> "FakeStream":
        self._i = 0
        return self

    async def __anext__(self) -> Any:
        if self._fail_after is not None and self._i >= self._fail_after:
            raise ConnectionError("stream reset")
        if self._i >= len(self._deltas):
            raise StopAsyncIteration
        delta = self._deltas[self._i]
        self._i += 1
        await asyncio.sleep(0)
        return chunk(delta)


class FakeCompletions:
    def __init__(self, stream: FakeStream) -> None:
        self.stream = stream
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> FakeStream:
        self.calls.append(kwargs)
        return self.stream


def fake_client(stream: FakeStream) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(stream)))


# ---------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------

def test_welcome_message_is_seeded() -> None:
    engine = OpenAIDialogueEngine(
        client=fake_client(FakeStream([])), model="m", welcome_message="Hallo!"
    )

    assert [(m.id, m.role, m.content) for m in engine.messages] == [
        (WELCOME_MESSAGE_ID, "assistant", "Hallo!"),
    ]
    assert engine.is_loading is False


def test_blank_welcome_is_omitted() -> None:
    engine = OpenAIDialogueEngine(client=fake_client(FakeStream([])), model="m", welcome_message="  ")
    assert engine.messages == ()


def test_reply_streams_into_one_message() -> None:
    async def scenario() -> None:
        client = fake_client(FakeStream(["Wie ", None, "schön", "!"]))
        engine = OpenAIDialogueEngine(client=client, model="gpt-test", welcome_message="Hallo!")
        seen: list[tuple[bool, str, str]] = []
        engine.subscribe(
            lambda: seen.append(
                (engine.is_loading, engine.messages[-1].role, engine.messages[-1].content)
            )
        )

        await engine.append("user", "Ich bin in Kiel geboren.")

        messages = engine.messages
        assert [m.role for m in messages] == ["assistant", "user", "assistant"]
        assert messages[-1].content == "Wie schön!"

        # every update while the reply grows is observed as loading
        assert seen[0] == (True, "user", "Ich bin in Kiel geboren.")
        assert all(loading for loading, _, _ in seen[:-1])
        assert seen[-1] == (False, "assistant", "Wie schön!")

        call = client.chat.completions.calls[0]
        assert call["stream"] is True
        assert call["service_tier"] == "priority"
        assert call["messages"][0]["role"] == "system"
        assert call["messages"][-1] == {"role": "user", "content": "Ich bin in Kiel geboren."}

    asyncio.run(scenario())


def test_reply_id_is_stable_across_deltas() -> None:
    async def scenario() -> None:
        engine = OpenAIDialogueEngine(client=fake_client(FakeStream(["a", "b", "c"])), model="m")
        ids: set[str] = set()
        engine.subscribe(
            lambda: ids.add(engine.messages[-1].id) if engine.messages[-1].role == "assistant" else None
        )

        await engine.append("user", "hi")

        assert len(ids) == 1

    asyncio.run(scenario())


def test_groq_requests_omit_service_tier() -> None:
    async def scenario() -> None:
        client = fake_client(FakeStream(["ok"]))
        engine = OpenAIDialogueEngine(client=client, model="llama", provider="groq")

        await engine.append("user", "hi")

        assert "service_tier" not in client.chat.completions.calls[0]

    asyncio.run(scenario())


def test_stream_failure_drops_partial_reply() -> None:
    async def scenario() -> None:
        engine = OpenAIDialogueEngine(
            client=fake_client(FakeStream(["par", "tial"], fail_after=1)), model="m"
        )

        with pytest.raises(DialogueError):
            await engine.append("user", "hi")

        assert [m.role for m in engine.messages] == ["user"]
        assert engine.is_loading is False

    asyncio.run(scenario())


def test_empty_reply_is_an_error() -> None:
    async def scenario() -> None:
        engine = OpenAIDialogueEngine(client=fake_client(FakeStream([None, ""])), model="m")

        with pytest.raises(DialogueError):
            await engine.append("user", "hi")

        assert [m.role for m in engine.messages] == ["user"]

    asyncio.run(scenario())


def test_assistant_append_does_not_call_the_model() -> None:
    async def scenario() -> None:
        client = fake_client(FakeStream(["never"]))
        engine = OpenAIDialogueEngine(client=client, model="m")

        await engine.append("assistant", "Noted.")

        assert engine.messages[-1].content == "Noted."
        assert client.chat.completions.calls == []

    asyncio.run(scenario())
