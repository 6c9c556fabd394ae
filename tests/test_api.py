"""
HTTP and WebSocket surface tests with FastAPI's TestClient. Speech, storage and
summarizer are replaced by in-process fakes; nothing leaves the process.
"""
import time
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from minutagen.asr.base import RecognitionResult
from minutagen.errors import InvalidInput, SummarizationFailed, TranscriptionFailed
from minutagen.main import build_session_manager, create_app
from minutagen.services.summarizer import NO_TRANSCRIPT_MINUTES, MinutesResult
from minutagen.session_manager import SessionManager
from minutagen.session_store import SessionRegistry
from tests.fakes import FakeSpeechClient, FakeSummarizer, RecognizerFactory, make_settings


def _wait_until(predicate, timeout=2.0):
    """Poll a condition set by the app running in TestClient's portal thread."""
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


def _client(factory=None, summarizer=None, pipeline=None):
    settings = make_settings()
    sessions = SessionManager(
        registry=SessionRegistry(),
        recognizer_factory=factory or RecognizerFactory(),
        summarizer=summarizer or FakeSummarizer(),
        settings=settings,
    )
    if pipeline is None:
        pipeline = MagicMock()
        pipeline.transcribe_file = AsyncMock()
        pipeline.transcribe_youtube = AsyncMock()
    app = create_app(session_manager=sessions, batch_pipeline=pipeline, settings=settings)
    return TestClient(app), sessions, pipeline


class TestRealtimeSocket(unittest.TestCase):
    def test_live_session_produces_minutes(self):
        factory = RecognizerFactory(
            script=[RecognitionResult("hola", False), RecognitionResult("hola mundo", True)]
        )
        summarizer = FakeSummarizer(minutes="# Minuta de la Reunión\n...")
        client, sessions, _ = _client(factory=factory, summarizer=summarizer)

        with client, client.websocket_connect("/ws/transcribe") as ws:
            hello = ws.receive_json()
            self.assertEqual(hello["event"], "connected")
            self.assertTrue(hello["connection_id"])

            ws.send_text("not json")  # ignored, connection stays usable
            ws.send_json({"event": "start_transcription"})
            self.assertEqual(ws.receive_json(), {"event": "interim_transcript", "transcript": "hola"})
            self.assertEqual(
                ws.receive_json(), {"event": "final_transcript_chunk", "transcript": "hola mundo"}
            )
            ws.send_bytes(b"\x1a\x45\xdf\xa3webm")
            ws.send_json({"event": "stop_transcription"})
            self.assertEqual(
                ws.receive_json(),
                {
                    "event": "final_minutes",
                    "minutes": "# Minuta de la Reunión\n...",
                    "rawTranscript": "hola mundo ",
                },
            )

        self.assertEqual(summarizer.calls, ["hola mundo "])
        self.assertEqual(factory.created[0].chunks, [b"\x1a\x45\xdf\xa3webm"])
        self.assertEqual(len(sessions.registry), 0)

    def test_empty_session_gets_fixed_message(self):
        summarizer = FakeSummarizer()
        client, _, _ = _client(summarizer=summarizer)
        with client, client.websocket_connect("/ws/transcribe") as ws:
            ws.receive_json()
            ws.send_json({"event": "start_transcription"})
            ws.send_json({"event": "stop_transcription"})
            msg = ws.receive_json()
        self.assertEqual(msg, {"event": "final_minutes", "minutes": NO_TRANSCRIPT_MINUTES, "rawTranscript": ""})
        self.assertEqual(summarizer.calls, [])

    def test_open_failure_is_reported(self):
        client, sessions, _ = _client(factory=RecognizerFactory(fail_open=True))
        with client, client.websocket_connect("/ws/transcribe") as ws:
            ws.receive_json()
            ws.send_json({"event": "start_transcription"})
            msg = ws.receive_json()
        self.assertEqual(msg["event"], "transcription_error")
        self.assertIn("Speech-to-Text", msg["error"])
        self.assertEqual(len(sessions.registry), 0)

    def test_disconnect_drops_session(self):
        factory = RecognizerFactory(script=[RecognitionResult("hola", True)])
        summarizer = FakeSummarizer()
        client, sessions, _ = _client(factory=factory, summarizer=summarizer)
        with client:
            with client.websocket_connect("/ws/transcribe") as ws:
                ws.receive_json()
                ws.send_json({"event": "start_transcription"})
                ws.receive_json()
            # checked before lifespan shutdown, whose close_all would hide a missed disconnect
            self.assertTrue(_wait_until(lambda: len(sessions.registry) == 0))
            self.assertTrue(factory.created[0].closed)
            self.assertEqual(factory.created[0].close_calls, 1)
        self.assertEqual(summarizer.calls, [])


class TestBatchRoutes(unittest.TestCase):
    def test_health(self):
        client, _, _ = _client()
        with client:
            self.assertEqual(client.get("/health").json(), {"status": "ok"})

    def test_file_upload(self):
        client, _, pipeline = _client()
        pipeline.transcribe_file.return_value = MinutesResult(minutes="# Minuta", raw_transcript="texto")
        with client:
            resp = client.post(
                "/api/transcribe-file", files={"audioFile": ("reunion.webm", b"audio", "audio/webm")}
            )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"minutes": "# Minuta", "rawTranscript": "texto"})
        pipeline.transcribe_file.assert_awaited_once_with("reunion.webm", b"audio")

    def test_file_missing_is_400(self):
        client, _, pipeline = _client()
        with client:
            resp = client.post("/api/transcribe-file", files={"otherField": ("x.txt", b"1", "text/plain")})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "No se encontró el archivo de audio."})
        pipeline.transcribe_file.assert_not_called()

    def test_upstream_failures_are_502(self):
        client, _, pipeline = _client()
        with client:
            for error in (SummarizationFailed("Error con Gemini: 503"), TranscriptionFailed("quota")):
                with self.subTest(error=error):
                    pipeline.transcribe_file.side_effect = error
                    resp = client.post(
                        "/api/transcribe-file", files={"audioFile": ("a.mp3", b"audio", "audio/mpeg")}
                    )
                    self.assertEqual(resp.status_code, 502)
                    self.assertEqual(resp.json(), {"error": str(error)})

    def test_youtube(self):
        client, _, pipeline = _client()
        pipeline.transcribe_youtube.return_value = MinutesResult(minutes="# M", raw_transcript="t")
        with client:
            resp = client.post("/api/transcribe-youtube", json={"url": "https://youtu.be/dQw4w9WgXcQ"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"minutes": "# M", "rawTranscript": "t"})
        pipeline.transcribe_youtube.assert_awaited_once_with("https://youtu.be/dQw4w9WgXcQ")

    def test_youtube_invalid_url_is_400(self):
        client, _, pipeline = _client()
        pipeline.transcribe_youtube.side_effect = InvalidInput("URL de YouTube no válida.")
        with client:
            resp = client.post("/api/transcribe-youtube", json={"url": "https://vimeo.com/1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "URL de YouTube no válida."})

    def test_youtube_malformed_body_is_400(self):
        client, _, pipeline = _client()
        with client:
            resp = client.post(
                "/api/transcribe-youtube", content=b"{not json", headers={"content-type": "application/json"}
            )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("error", resp.json())
        pipeline.transcribe_youtube.assert_not_called()


class TestSpeechClientWiring(unittest.IsolatedAsyncioTestCase):
    async def test_sessions_share_one_speech_client(self):
        client = FakeSpeechClient()
        with patch("minutagen.main.speech.SpeechAsyncClient") as ctor:
            manager = build_session_manager(make_settings(), speech_client=client)
            for cid in ("a", "b", "c"):
                self.assertIsNotNone(await manager.on_start(cid))
                await manager.on_disconnect(cid)
        ctor.assert_not_called()
        self.assertEqual(client.streams_opened, 3)
        self.assertEqual(client.transport.close_calls, 0)


class TestSpeechClientLifespan(unittest.TestCase):
    def test_lifespan_creates_and_closes_one_client(self):
        client = FakeSpeechClient()
        with patch("minutagen.main.speech.SpeechAsyncClient", return_value=client) as ctor:
            app = create_app(settings=make_settings())
            with TestClient(app) as http:
                for _ in range(2):
                    with http.websocket_connect("/ws/transcribe") as ws:
                        ws.receive_json()
                        ws.send_json({"event": "start_transcription"})
                        ws.send_json({"event": "stop_transcription"})
                        self.assertEqual(ws.receive_json()["event"], "final_minutes")
                self.assertEqual(client.transport.close_calls, 0)
        ctor.assert_called_once_with()
        self.assertEqual(client.streams_opened, 2)
        self.assertEqual(client.transport.close_calls, 1)


if __name__ == "__main__":
    unittest.main()
