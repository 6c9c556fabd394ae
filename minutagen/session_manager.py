"""
SessionManager: live transcription sessions, one per realtime connection.

Lifecycle per connection_id (state machine ACTIVE -> FINALIZING -> DONE):

- on_start: discard any previous session (close its stream, drop its text), open a new
  recognizer stream, register a fresh ACTIVE session and start its result consumer.
- on_audio_chunk: forward bytes to the ACTIVE session's stream, in arrival order.
  No session, or a session past ACTIVE: the chunk is dropped silently.
- on_stop / request_stop: ACTIVE -> FINALIZING, end input upstream, let in-flight finals
  arrive (bounded by STOP_DRAIN_TIMEOUT_SECONDS), then summarize and relay final_minutes.
  Empty transcript: fixed "no transcript" minutes, summarizer not called.
- on_disconnect: hard cancel from any state. Nothing is relayed. Idempotent.

Interim results are relayed as-is (the client overwrites its previous interim); finals
are appended to the session accumulator and relayed. A recognizer error ends the
session at once (DONE) with transcription_error and no final_minutes.

Sessions share no mutable state. The registry and every Session field are mutated only
from the owning connection's events and tasks on one asyncio loop; a port to real
threads needs a lock around the registry and around each session's stream/accumulator.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from minutagen.asr.base import RecognitionConfig, StreamingRecognizer
from minutagen.config import Settings, get_settings
from minutagen.errors import MinutesError, TranscriptionFailed, UpstreamUnavailable
from minutagen.services.summarizer import NO_TRANSCRIPT_MINUTES, MinutesResult, Summarizer
from minutagen.session_store import Session, SessionRegistry, SessionState
from minutagen.transcript.accumulator import TranscriptAccumulator
from minutagen.transcript.messages import (
    FINAL_MINUTES,
    FINAL_TRANSCRIPT_CHUNK,
    INTERIM_TRANSCRIPT,
    TRANSCRIPTION_ERROR,
    ServerMessage,
)

logger = logging.getLogger(__name__)

SendFn = Callable[[ServerMessage], Awaitable[None]]
RecognizerFactory = Callable[[], StreamingRecognizer]


def recognition_config_from_settings(settings: Settings) -> RecognitionConfig:
    return RecognitionConfig(
        encoding=settings.STREAM_ENCODING,
        sample_rate_hertz=settings.STREAM_SAMPLE_RATE,
        language_code=settings.SPEECH_LANGUAGE,
        model=settings.SPEECH_MODEL,
        enable_automatic_punctuation=settings.SPEECH_PUNCTUATION,
        interim_results=settings.STREAM_INTERIM_RESULTS,
    )


def _cancel(task: asyncio.Task | None) -> None:
    """Cancel a session task unless it is the one running this code."""
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()


class SessionManager:
    def __init__(
        self,
        registry: SessionRegistry,
        recognizer_factory: RecognizerFactory,
        summarizer: Summarizer,
        settings: Settings | None = None,
        config: RecognitionConfig | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._registry = registry
        self._recognizer_factory = recognizer_factory
        self._summarizer = summarizer
        self._config = config or recognition_config_from_settings(settings)
        self._drain_timeout = settings.STOP_DRAIN_TIMEOUT_SECONDS
        self._max_session_seconds = settings.MAX_SESSION_SECONDS
        self._max_transcript_chars = settings.MAX_TRANSCRIPT_CHARS
        self._senders: dict[str, SendFn] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def attach(self, connection_id: str, send: SendFn) -> None:
        """Register the outbound channel for a connection."""
        self._senders[connection_id] = send

    def detach(self, connection_id: str) -> None:
        self._senders.pop(connection_id, None)

    async def _emit(self, connection_id: str, event: str, **payload: Any) -> None:
        send = self._senders.get(connection_id)
        if send is None:
            logger.debug("[%s] No channel; dropping %s", connection_id, event)
            return
        await send(ServerMessage(event=event, payload=payload))

    # --- lifecycle events ---

    async def on_start(self, connection_id: str) -> Session | None:
        """Start a fresh session. Returns it, or None if the recognizer could not be opened."""
        previous = self._registry.get(connection_id)
        if previous is not None:
            logger.info("[%s] Restart: discarding %s session", connection_id, previous.state.value)
            await self._terminate(previous)

        stream = self._recognizer_factory()
        try:
            await stream.open(self._config)
        except UpstreamUnavailable as e:
            logger.error("[%s] Could not start transcription: %s", connection_id, e)
            await self._emit(connection_id, TRANSCRIPTION_ERROR, error=str(e))
            return None

        session = Session(
            connection_id=connection_id,
            stream=stream,
            accumulator=TranscriptAccumulator(max_chars=self._max_transcript_chars),
        )
        self._registry.put(session)
        session.consumer = asyncio.create_task(self._consume(session))
        if self._max_session_seconds > 0:
            session.watchdog = asyncio.create_task(self._expire(session))
        logger.info("[%s] Transcription started", connection_id)
        return session

    def on_audio_chunk(self, connection_id: str, chunk: bytes) -> None:
        session = self._registry.get(connection_id)
        if session is None or not session.accepts_audio:
            logger.debug("[%s] Dropping %d-byte chunk: no active session", connection_id, len(chunk))
            return
        session.stream.write(chunk)

    def request_stop(self, connection_id: str) -> asyncio.Task | None:
        """
        Move the ACTIVE session to FINALIZING right away (later chunks are dropped) and
        schedule drain -> summarize -> relay. Returns the finalizer task, or None if there
        was no ACTIVE session.
        """
        session = self._registry.get(connection_id)
        if session is None or session.state is not SessionState.ACTIVE:
            logger.debug("[%s] Stop ignored: no active session", connection_id)
            return None
        logger.info("[%s] Stopping transcription after %.1fs", connection_id, session.elapsed())
        session.state = SessionState.FINALIZING
        session.stream.end_input()
        _cancel(session.watchdog)
        session.finalizer = asyncio.create_task(self._finalize(session))
        return session.finalizer

    async def on_stop(self, connection_id: str) -> None:
        """request_stop() and wait until the outcome has been relayed (or abandoned)."""
        task = self.request_stop(connection_id)
        if task is not None:
            await asyncio.wait({task})

    async def on_disconnect(self, connection_id: str) -> None:
        """Hard cancel without relaying anything. Safe to call repeatedly or for unknown ids."""
        self.detach(connection_id)
        session = self._registry.get(connection_id)
        if session is None:
            return
        logger.info("[%s] Client disconnected; dropping %s session", connection_id, session.state.value)
        await self._terminate(session)

    async def close_all(self) -> None:
        """Terminate every session (app shutdown)."""
        for session in self._registry:
            self.detach(session.connection_id)
            await self._terminate(session)

    # --- internals ---

    def _discard(self, session: Session) -> bool:
        """Move session to DONE and unregister it. False if it was already DONE."""
        if session.state is SessionState.DONE:
            return False
        session.state = SessionState.DONE
        self._registry.remove(session.connection_id, session)
        return True

    async def _terminate(self, session: Session) -> None:
        if not self._discard(session):
            return
        _cancel(session.watchdog)
        _cancel(session.finalizer)
        _cancel(session.consumer)
        await session.stream.close(timeout=0)

    async def _consume(self, session: Session) -> None:
        """Relay interim results; append and relay finals. Runs until the stream ends."""
        cid = session.connection_id
        try:
            async for result in session.stream.results():
                if session.state is SessionState.DONE:
                    break
                if result.is_final:
                    if await session.accumulator.append(result.text):
                        await self._emit(cid, FINAL_TRANSCRIPT_CHUNK, transcript=result.text)
                else:
                    await self._emit(cid, INTERIM_TRANSCRIPT, transcript=result.text)
        except TranscriptionFailed as e:
            logger.error("[%s] Transcription failed: %s", cid, e)
            if self._discard(session):
                _cancel(session.watchdog)
                await session.stream.close(timeout=0)
                await self._emit(cid, TRANSCRIPTION_ERROR, error=str(e))

    async def _finalize(self, session: Session) -> None:
        cid = session.connection_id
        consumer = session.consumer
        if consumer is not None and not consumer.done():
            _, pending = await asyncio.wait({consumer}, timeout=self._drain_timeout)
            if pending:
                logger.warning("[%s] Trailing results not drained within %.1fs", cid, self._drain_timeout)
        if session.state is SessionState.DONE:
            # stream failed while draining; error already relayed
            return
        await session.stream.close()
        _cancel(consumer)

        transcript = await session.accumulator.snapshot()
        if session.accumulator.is_empty():
            logger.info("[%s] No transcript produced; summarizer not called", cid)
            result = MinutesResult(minutes=NO_TRANSCRIPT_MINUTES, raw_transcript="")
        else:
            logger.info("[%s] Summarizing transcript (%d chars)", cid, session.accumulator.char_count)
            try:
                minutes = await self._summarizer.summarize(transcript)
            except MinutesError as e:
                logger.error("[%s] Summarization failed: %s", cid, e)
                if self._discard(session):
                    await self._emit(cid, TRANSCRIPTION_ERROR, error=str(e))
                return
            except Exception as e:
                logger.exception("[%s] Unexpected summarizer failure: %s", cid, e)
                if self._discard(session):
                    await self._emit(cid, TRANSCRIPTION_ERROR, error=f"Error con {self._summarizer.display_name}: {e}")
                return
            result = MinutesResult(minutes=minutes, raw_transcript=transcript)

        if self._discard(session):
            await self._emit(cid, FINAL_MINUTES, **result.to_payload())
            logger.info("[%s] Minutes relayed; session closed", cid)

    async def _expire(self, session: Session) -> None:
        await asyncio.sleep(max(0.0, self._max_session_seconds - session.elapsed()))
        if self._registry.get(session.connection_id) is session and session.state is SessionState.ACTIVE:
            logger.warning(
                "[%s] Session reached %.0fs limit after %.1fs; stopping",
                session.connection_id,
                self._max_session_seconds,
                session.elapsed(),
            )
            self.request_stop(session.connection_id)
