"""
GoogleBatchRecognizer: one-shot recognition for the batch ingestion paths.

Audio must already be PCM 16-bit mono WAV at BATCH_SAMPLE_RATE (see minutagen.audio).

- recognize_content(): single blocking Recognize call with inline audio (YouTube path).
  Google caps inline audio at ~1 minute; longer videos fail upstream.
- recognize_uri(): LongRunningRecognize on a gs:// URI, polled until done (file upload path).

Both join the top alternative of every result with newlines.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from google.api_core import exceptions as gapi_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech

from minutagen.config import Settings, get_settings
from minutagen.errors import TranscriptionFailed, UpstreamUnavailable

logger = logging.getLogger(__name__)


def join_transcripts(response: Any) -> str:
    """Top alternative of each result, one per line."""
    return "\n".join(
        r.alternatives[0].transcript for r in (response.results or []) if r.alternatives
    )


class GoogleBatchRecognizer:
    def __init__(
        self,
        client: speech.SpeechAsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()

    def _get_client(self) -> speech.SpeechAsyncClient:
        if self._client is None:
            try:
                self._client = speech.SpeechAsyncClient()
            except auth_exceptions.GoogleAuthError as e:
                raise UpstreamUnavailable(f"Speech-to-Text client unavailable: {e}") from e
        return self._client

    def _config(self) -> speech.RecognitionConfig:
        s = self._settings
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=s.BATCH_SAMPLE_RATE,
            language_code=s.SPEECH_LANGUAGE,
            model=s.SPEECH_MODEL,
            enable_automatic_punctuation=s.SPEECH_PUNCTUATION,
        )

    async def recognize_content(self, wav_bytes: bytes) -> str:
        """Synchronous Recognize with inline audio."""
        client = self._get_client()
        audio = speech.RecognitionAudio(content=wav_bytes)
        try:
            response = await client.recognize(config=self._config(), audio=audio)
        except gapi_exceptions.GoogleAPIError as e:
            raise TranscriptionFailed(f"Speech-to-Text recognize failed: {e}") from e
        return join_transcripts(response)

    async def recognize_uri(self, gcs_uri: str) -> str:
        """LongRunningRecognize on a gs:// URI; waits (polling) until the operation completes."""
        client = self._get_client()
        audio = speech.RecognitionAudio(uri=gcs_uri)
        try:
            operation = await client.long_running_recognize(config=self._config(), audio=audio)
            logger.info("Long-running recognition started for %s; waiting for result", gcs_uri)
            response = await operation.result(timeout=self._settings.BATCH_RECOGNIZE_TIMEOUT_SECONDS)
        except (gapi_exceptions.GoogleAPIError, asyncio.TimeoutError) as e:
            raise TranscriptionFailed(f"Speech-to-Text long-running recognize failed: {e}") from e
        return join_transcripts(response)
