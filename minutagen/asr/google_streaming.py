"""
GoogleStreamingRecognizer: live transcription via Cloud Speech-to-Text StreamingRecognize.

- First request carries the streaming config; every later request carries one audio chunk.
- Audio is queued by write() and pulled by the request generator, so chunk order is preserved.
- A reader task drains the response stream into a results queue; results() consumes it.
- Only results[0] / alternatives[0] of each response is used (the recognizer's top guess).
- close() ends input, waits a bounded time for the upstream to finish, then cancels the call.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech

from minutagen.asr.base import RecognitionConfig, RecognitionResult, StreamingRecognizer
from minutagen.config import get_settings
from minutagen.errors import TranscriptionFailed, UpstreamUnavailable

logger = logging.getLogger(__name__)

# Sentinels: end of audio (request side), end of results (response side)
_END_OF_AUDIO = None
_END_OF_RESULTS = object()


def build_streaming_config(config: RecognitionConfig) -> speech.StreamingRecognitionConfig:
    """Map RecognitionConfig to the Speech-to-Text v1 streaming config."""
    recognition = speech.RecognitionConfig(
        encoding=speech.RecognitionConfig.AudioEncoding[config.encoding],
        sample_rate_hertz=config.sample_rate_hertz,
        language_code=config.language_code,
        model=config.model,
        enable_automatic_punctuation=config.enable_automatic_punctuation,
    )
    return speech.StreamingRecognitionConfig(
        config=recognition,
        interim_results=config.interim_results,
    )


def decode_response(response: Any) -> RecognitionResult | None:
    """Top alternative of the first result, or None when the response carries no transcript."""
    results = getattr(response, "results", None)
    if not results:
        return None
    first = results[0]
    if not first.alternatives:
        return None
    return RecognitionResult(text=first.alternatives[0].transcript, is_final=bool(first.is_final))


class GoogleStreamingRecognizer(StreamingRecognizer):
    """
    One StreamingRecognize call per instance. Pass the process-wide client (SpeechAsyncClient
    is safe for concurrent calls); without one, a private client is created on open() and
    its channel is closed with the stream.
    """

    def __init__(
        self,
        client: speech.SpeechAsyncClient | None = None,
        close_timeout: float | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        if close_timeout is None:
            close_timeout = get_settings().STREAM_CLOSE_TIMEOUT_SECONDS
        self._close_timeout = close_timeout
        self._audio: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._results: asyncio.Queue[Any] = asyncio.Queue()
        self._reader: asyncio.Task[None] | None = None
        self._input_ended = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _requests(
        self, streaming_config: speech.StreamingRecognitionConfig
    ) -> AsyncIterator[speech.StreamingRecognizeRequest]:
        yield speech.StreamingRecognizeRequest(streaming_config=streaming_config)
        while True:
            chunk = await self._audio.get()
            if chunk is _END_OF_AUDIO:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    async def open(self, config: RecognitionConfig) -> None:
        if self._reader is not None or self._closed:
            raise UpstreamUnavailable("Recognizer stream already used")
        try:
            if self._client is None:
                self._client = speech.SpeechAsyncClient()
            streaming_config = build_streaming_config(config)
            call = await self._client.streaming_recognize(requests=self._requests(streaming_config))
        except (gapi_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, KeyError) as e:
            self._closed = True
            await self._close_own_client()
            raise UpstreamUnavailable(f"Speech-to-Text stream could not be opened: {e}") from e
        self._reader = asyncio.create_task(self._read_responses(call))

    async def _read_responses(self, call: Any) -> None:
        try:
            async for response in call:
                result = decode_response(response)
                if result is not None:
                    self._results.put_nowait(result)
        except asyncio.CancelledError:
            raise
        except gapi_exceptions.GoogleAPIError as e:
            logger.warning("Speech-to-Text stream error: %s", e)
            self._results.put_nowait(TranscriptionFailed(str(e)))
        except Exception as e:
            logger.exception("Unexpected Speech-to-Text stream failure: %s", e)
            self._results.put_nowait(TranscriptionFailed(str(e)))
        finally:
            self._results.put_nowait(_END_OF_RESULTS)

    def write(self, chunk: bytes) -> None:
        if self._input_ended or self._closed or not chunk:
            return
        self._audio.put_nowait(chunk)

    def end_input(self) -> None:
        if self._input_ended:
            return
        self._input_ended = True
        self._audio.put_nowait(_END_OF_AUDIO)

    async def results(self) -> AsyncIterator[RecognitionResult]:
        if self._reader is None:
            return
        while True:
            item = await self._results.get()
            if item is _END_OF_RESULTS:
                return
            if isinstance(item, TranscriptionFailed):
                raise item
            yield item

    async def close(self, timeout: float | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        self.end_input()
        try:
            await self._stop_reader(self._close_timeout if timeout is None else timeout)
        finally:
            await self._close_own_client()

    async def _stop_reader(self, wait: float) -> None:
        reader = self._reader
        if reader is None or reader.done():
            return
        if wait > 0:
            try:
                await asyncio.wait_for(asyncio.shield(reader), timeout=wait)
                return
            except asyncio.TimeoutError:
                logger.debug("Speech-to-Text stream did not finish within %.1fs; cancelling", wait)
        reader.cancel()
        try:
            await reader
        except asyncio.CancelledError:
            pass

    async def _close_own_client(self) -> None:
        # a shared client belongs to the app and is closed at shutdown
        if not self._owns_client or self._client is None:
            return
        client, self._client = self._client, None
        await client.transport.close()
