"""
Deepgram live transcription provider.

Core model:
- One provider instance = one websocket = one recognition run.
- Microphone frames are pushed onto an asyncio.Queue by the device
  callback and drained by a sender task.
- The receive loop turns "Results" messages into result batches.
- Every run ends with exactly one on_end, however it ends.

Error mapping (native failure -> RecognitionErrorCode):
- handshake rejected with 401/403        -> service-not-allowed
- handshake/connection failure otherwise -> network
- microphone permission denied           -> not-allowed
- microphone missing/busy                -> audio-capture
- abort()                                -> aborted
- Deepgram "Error" message               -> other
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any

from websockets.exceptions import ConnectionClosedError, InvalidStatusCode
from websockets.legacy.client import (
    connect as ws_connect,
    WebSocketClientProtocol,
)

from adapters.asr.base import (
    RecognitionAlternative,
    RecognitionErrorCode,
    RecognitionProvider,
    RecognitionResultBatch,
)
from audio.devices import Microphone, MicrophoneStream
from constants import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, DEFAULT_DEEPGRAM_MODEL
from errors import CaptureDeviceError, CapturePermissionError
from observability.logger import log_component

DEEPGRAM_LISTEN_URL = "wss://api.deepgram.com/v1/listen"

_AUTH_REJECTED_STATUS = frozenset({401, 403})


class DeepgramRecognitionProvider(RecognitionProvider):
    """
    Continuous recognition over Deepgram's /v1/listen websocket.

    Fire-and-forget: start() schedules the run task and returns.
    """

    def __init__(
        self,
        *,
        api_key: str,
        microphone: Microphone,
        model: str = DEFAULT_DEEPGRAM_MODEL,
        punctuate: bool = True,
    ) -> None:
        super().__init__()
        self._api_key = api_key
        self._microphone = microphone
        self._model = model
        self._punctuate = punctuate

        self._task: asyncio.Task[None] | None = None
        self._frames: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._mic_stream: MicrophoneStream | None = None

        self._aborted = False
        self._ended = False

    # ------------------------------------------------------------------
    # RecognitionProvider
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None or self._ended:
            return

        self._task = asyncio.create_task(self._run())
        self._task.add_done_callback(self._on_run_done)

    def stop(self) -> None:
        """Ask Deepgram to flush and close; on_end follows the close."""
        if self._ended:
            return
        if self._task is None:
            self.abort()
            return

        self._close_microphone()
        self._frames.put_nowait(None)

    def abort(self) -> None:
        if self._ended:
            return

        self._aborted = True
        self._close_microphone()

        if self._task is None:
            self._finish()
            return

        if not self._task.done():
            self._task.cancel()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _build_url(self) -> str:
        params: dict[str, str] = {
            "model": self._model,
            "language": self.language,
            "encoding": "linear16",
            "sample_rate": str(AUDIO_SAMPLE_RATE_HZ),
            "channels": str(AUDIO_CHANNELS),
            "interim_results": "true" if self.interim_results else "false",
            "punctuate": "true" if self._punctuate else "false",
        }
        qs = urllib.parse.urlencode(params)
        return f"{DEEPGRAM_LISTEN_URL}?{qs}"

    async def _run(self) -> None:
        headers = {"Authorization": f"Token {self._api_key}"}

        try:
            ws = await ws_connect(
                self._build_url(),
                extra_headers=headers,
                max_size=2**22,
                ping_interval=None,
            )
        except InvalidStatusCode as exc:
            code = (
                RecognitionErrorCode.SERVICE_NOT_ALLOWED
                if exc.status_code in _AUTH_REJECTED_STATUS
                else RecognitionErrorCode.NETWORK
            )
            self._fire_error(code, f"deepgram_handshake_rejected: {exc.status_code}")
            return
        except (OSError, asyncio.TimeoutError) as exc:
            self._fire_error(RecognitionErrorCode.NETWORK, f"deepgram_connect_failed: {exc!r}")
            return

        sender: asyncio.Task[None] | None = None
        try:
            try:
                self._mic_stream = self._microphone.open_stream(self._frames.put_nowait)
            except CapturePermissionError as exc:
                self._fire_error(RecognitionErrorCode.NOT_ALLOWED, str(exc))
                return
            except CaptureDeviceError as exc:
                self._fire_error(RecognitionErrorCode.AUDIO_CAPTURE, str(exc))
                return

            self._fire_start()
            sender = asyncio.create_task(self._send_loop(ws))

            try:
                async for raw in ws:
                    self._handle_message(raw)
            except ConnectionClosedError as exc:
                self._fire_error(RecognitionErrorCode.NETWORK, f"deepgram_connection_lost: {exc!r}")
        finally:
            self._close_microphone()
            if sender is not None and not sender.done():
                sender.cancel()
            await ws.close()

    async def _send_loop(self, ws: WebSocketClientProtocol) -> None:
        while True:
            frame = await self._frames.get()
            if frame is None:
                await ws.send(json.dumps({"type": "CloseStream"}))
                return
            await ws.send(frame)

    def _handle_message(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            log_component("deepgram", "DG_MESSAGE_UNPARSEABLE", size=len(raw))
            return

        msg_type = data.get("type")

        if msg_type == "Error":
            self._fire_error(
                RecognitionErrorCode.OTHER,
                f"deepgram_error: {data.get('err_code')} {data.get('err_msg')}",
            )
            return

        if msg_type != "Results":
            return

        try:
            transcript = data["channel"]["alternatives"][0]["transcript"]
        except (KeyError, IndexError, TypeError):
            return

        if not isinstance(transcript, str) or not transcript.strip():
            return

        self._fire_result(
            RecognitionResultBatch(
                results=(
                    RecognitionAlternative(
                        transcript=transcript,
                        is_final=bool(data.get("is_final")),
                    ),
                ),
            )
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _close_microphone(self) -> None:
        stream = self._mic_stream
        self._mic_stream = None
        if stream is not None:
            stream.close()

    def _on_run_done(self, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            log_component("deepgram", "DG_RUN_FAILED", error=repr(exc))
            if not self._aborted:
                self._fire_error(RecognitionErrorCode.NETWORK, f"deepgram_run_failed: {exc!r}")
        self._finish()

    def _finish(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._close_microphone()

        if self._aborted:
            self._fire_error(RecognitionErrorCode.ABORTED)
        self._fire_end()
