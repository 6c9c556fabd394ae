"""
FastAPI app: meeting minutes from audio.

- WebSocket /ws/transcribe: live microphone capture (webm/opus binary frames + JSON control
  events); server relays interim/final transcript and, on stop, the generated minutes.
- POST /api/transcribe-file: multipart upload (field audioFile) -> { minutes, rawTranscript }.
- POST /api/transcribe-youtube: { url } -> { minutes, rawTranscript }.

Errors from the batch routes are { error } with 400 (bad input), 502 (speech or
summarizer upstream) or 500 (anything else).
"""
from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from google.auth import exceptions as auth_exceptions
from google.cloud import speech

from minutagen.asr.google_batch import GoogleBatchRecognizer
from minutagen.asr.google_streaming import GoogleStreamingRecognizer
from minutagen.config import Settings, get_settings
from minutagen.errors import (
    InvalidInput,
    MinutesError,
    SummarizationFailed,
    TranscriptionFailed,
    UpstreamUnavailable,
)
from minutagen.schemas.minutes import ErrorResponse, MinutesResponse, YoutubeRequest
from minutagen.services.batch import BatchPipeline
from minutagen.services.summarizer import MinutesResult, create_summarizer
from minutagen.session_manager import SessionManager
from minutagen.session_store import SessionRegistry
from minutagen.storage import GcsAudioStore
from minutagen.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    """Root logger from LOG_LEVEL; also write to LOG_FILE when set."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=_LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def create_speech_client() -> speech.SpeechAsyncClient | None:
    """One Speech-to-Text client (one gRPC channel) for the whole process."""
    try:
        return speech.SpeechAsyncClient()
    except auth_exceptions.GoogleAuthError as e:
        logger.error("Speech-to-Text client unavailable: %s", e)
        return None


def build_session_manager(
    settings: Settings, speech_client: speech.SpeechAsyncClient | None = None
) -> SessionManager:
    """Default wiring: one Google stream per session over the shared client, summarizer from config."""
    return SessionManager(
        registry=SessionRegistry(),
        recognizer_factory=functools.partial(
            GoogleStreamingRecognizer,
            client=speech_client,
            close_timeout=settings.STREAM_CLOSE_TIMEOUT_SECONDS,
        ),
        summarizer=create_summarizer(settings),
        settings=settings,
    )


def build_batch_pipeline(
    settings: Settings, speech_client: speech.SpeechAsyncClient | None = None
) -> BatchPipeline:
    return BatchPipeline(
        recognizer=GoogleBatchRecognizer(client=speech_client, settings=settings),
        summarizer=create_summarizer(settings),
        store=GcsAudioStore(settings=settings),
        settings=settings,
    )


def _to_response(result: MinutesResult) -> MinutesResponse:
    return MinutesResponse(minutes=result.minutes, rawTranscript=result.raw_transcript)


def create_app(
    session_manager: SessionManager | None = None,
    batch_pipeline: BatchPipeline | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the app. Components not injected are created from settings at startup."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        speech_client = None
        if session_manager is None or batch_pipeline is None:
            speech_client = create_speech_client()
        app.state.session_manager = session_manager or build_session_manager(settings, speech_client)
        app.state.batch_pipeline = batch_pipeline or build_batch_pipeline(settings, speech_client)
        logger.info("Minutes service ready (summarizer=%s)", settings.SUMMARIZER_BACKEND)
        yield
        await app.state.session_manager.close_all()
        if speech_client is not None:
            await speech_client.transport.close()

    app = FastAPI(
        title="Minutes generator",
        description="Meeting minutes from live, uploaded and YouTube audio",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(MinutesError)
    async def minutes_error_handler(request: Request, exc: MinutesError) -> JSONResponse:
        if isinstance(exc, InvalidInput):
            status = 400
        elif isinstance(exc, (UpstreamUnavailable, TranscriptionFailed, SummarizationFailed)):
            status = 502
        else:
            status = 500
        if status >= 500:
            logger.error("Request %s failed: %s", request.url.path, exc)
        return JSONResponse(status_code=status, content=ErrorResponse(error=str(exc)).model_dump())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Solicitud inválida."})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": f"Error en el servidor: {exc}"})

    @app.websocket("/ws/transcribe")
    async def websocket_transcribe(websocket: WebSocket) -> None:
        """
        WebSocket: client sends binary webm/opus chunks and JSON {"event": ...} control frames.
        Server sends JSON {"event": ..., ...payload}.
        """
        await websocket.accept()
        manager = WebSocketManager(websocket, websocket.app.state.session_manager)
        try:
            await manager.run()
        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("[%s] WebSocket handler failed", manager.connection_id)
            try:
                await websocket.close()
            except Exception:
                pass

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/transcribe-file", response_model=MinutesResponse, responses={400: {"model": ErrorResponse}})
    async def transcribe_file(request: Request, audioFile: UploadFile | None = File(None)) -> MinutesResponse:
        """Long audio file -> minutes (GCS staging + long-running recognition)."""
        logger.info("Received file transcription request")
        if audioFile is None:
            raise InvalidInput("No se encontró el archivo de audio.")
        data = await audioFile.read()
        result = await request.app.state.batch_pipeline.transcribe_file(audioFile.filename, data)
        return _to_response(result)

    @app.post("/api/transcribe-youtube", response_model=MinutesResponse, responses={400: {"model": ErrorResponse}})
    async def transcribe_youtube(request: Request, body: YoutubeRequest) -> MinutesResponse:
        """YouTube URL -> minutes (inline recognition; short videos)."""
        logger.info("Received YouTube transcription request")
        result = await request.app.state.batch_pipeline.transcribe_youtube(body.url)
        return _to_response(result)

    return app


app = create_app()
