"""OpenAI-compatible streaming dialogue engine."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from typing import Any

from adapters.llm.base import DialogueEngine, Message, Role
from adapters.llm.prompts import SYSTEM_PROMPT_V1, SYSTEM_PROMPT_VERSION
from constants import WELCOME_MESSAGE_ID
from errors import DialogueError
from observability.logger import log_component
from observability.metrics import timed


def _new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:12]}"


class OpenAIDialogueEngine(DialogueEngine):
    """
    Dialogue engine backed by chat.completions streaming.

    Design notes:
    - History is seeded with the welcome message (id WELCOME_MESSAGE_ID).
    - One reply at a time; a user message appended while a reply is
      streaming waits for it.
    - The assistant message is created on the first delta and updated in
      place on every following delta; listeners see each update.
    - A failed or empty reply leaves no assistant message behind.
    """

    def __init__(
        self,
        *,
        client: Any,
        model: str,
        provider: str = "openai",
        system_prompt: str = SYSTEM_PROMPT_V1,
        welcome_message: str | None = None,
    ) -> None:
        """
        Args:
            client:
                Vendor client (openai.AsyncOpenAI, or the same class pointed
                at an OpenAI-compatible base URL).
            model:
                Model identifier string.
            provider:
                "openai" or "groq"; selects provider-only request options.
            welcome_message:
                Seeded assistant greeting, omitted when None or blank.
        """
        super().__init__()
        self._client = client
        self._model = model
        self._provider = provider
        self._system_prompt = system_prompt

        self._messages: list[Message] = []
        if welcome_message and welcome_message.strip():
            self._messages.append(
                Message(id=WELCOME_MESSAGE_ID, role="assistant", content=welcome_message)
            )

        self._loading = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # DialogueEngine
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_loading(self) -> bool:
        return self._loading

    async def append(self, role: Role, content: str) -> None:
        if role == "assistant":
            self._messages.append(Message(id=_new_message_id(), role=role, content=content))
            self._notify()
            return

        async with self._lock:
            # is_loading is True whenever the last message is from the user
            self._loading = True
            self._messages.append(Message(id=_new_message_id(), role="user", content=content))
            self._notify()

            try:
                await self._stream_reply()
            finally:
                self._loading = False
                self._notify()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _request_messages(self) -> list[dict[str, str]]:
        return [{"role": "system", "content": self._system_prompt}] + [
            {"role": m.role, "content": m.content} for m in self._messages
        ]

    async def _stream_reply(self) -> None:
        reply_index: int | None = None

        try:
            kwargs: dict[str, Any] = dict(
                model=self._model,
                messages=self._request_messages(),
                stream=True,
            )
            if self._provider == "openai":
                kwargs["service_tier"] = "priority"

            with timed(
                "llm_reply",
                details={"model": self._model, "prompt_version": SYSTEM_PROMPT_VERSION},
            ):
                stream = await self._client.chat.completions.create(**kwargs)

                async for chunk in stream:
                    delta = self._extract_delta(chunk)
                    if not delta:
                        continue

                    if reply_index is None:
                        self._messages.append(
                            Message(id=_new_message_id(), role="assistant", content=delta)
                        )
                        reply_index = len(self._messages) - 1
                    else:
                        current = self._messages[reply_index]
                        self._messages[reply_index] = replace(
                            current, content=current.content + delta
                        )
                    self._notify()

        except asyncio.CancelledError:
            self._drop_reply(reply_index)
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._drop_reply(reply_index)
            log_component(
                "dialogue",
                "LLM_ERROR",
                model=self._model,
                exception=type(exc).__name__,
                message=str(exc),
            )
            raise DialogueError(f"{type(exc).__name__}: {exc}") from exc

        if reply_index is None or not self._messages[reply_index].content.strip():
            self._drop_reply(reply_index)
            raise DialogueError("empty reply")

        log_component(
            "dialogue",
            "LLM_REPLY_COMPLETE",
            message_id=self._messages[reply_index].id,
            chars=len(self._messages[reply_index].content),
        )

    def _drop_reply(self, reply_index: int | None) -> None:
        if reply_index is not None and reply_index < len(self._messages):
            del self._messages[reply_index]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """
        Extract token delta from vendor response (OpenAI format).
        """
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""
