"""Tests for the minutes summarizer backends using httpx.MockTransport (no network)."""
import json
import unittest

import httpx

from minutagen.errors import SummarizationFailed
from minutagen.services.summarizer import (
    CloudflareSummarizer,
    GeminiSummarizer,
    MinutesResult,
    build_minutes_prompt,
    create_summarizer,
)
from tests.fakes import make_settings

MARKDOWN = "# Minuta de la Reunión\n\n## 1. Resumen Ejecutivo\nTexto *sin validar*"


def _gemini_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": MARKDOWN}]}}]})


class TestPrompt(unittest.TestCase):
    def test_prompt_embeds_transcript_and_required_sections(self):
        prompt = build_minutes_prompt("hola mundo ")
        self.assertIn("TRANSCRIPCIÓN PARA ANALIZAR:\nhola mundo \n---", prompt)
        for section in [
            "# Minuta de la Reunión",
            "## 1. Resumen Ejecutivo",
            "## 2. Puntos Clave Discutidos",
            "## 3. Decisiones Tomadas",
            "## 4. Tareas y Acciones a Realizar (Action Items)",
            "'Tarea', 'Responsable(s)' y 'Fecha Límite'",
            "'No especificado'",
        ]:
            with self.subTest(section=section):
                self.assertIn(section, prompt)
        self.assertNotIn("{transcript}", prompt)

    def test_minutes_result_payload(self):
        self.assertEqual(
            MinutesResult(minutes="m", raw_transcript="t ").to_payload(),
            {"minutes": "m", "rawTranscript": "t "},
        )


class TestGeminiSummarizer(unittest.IsolatedAsyncioTestCase):
    async def test_returns_model_text_verbatim(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return _gemini_ok(request)

        summarizer = GeminiSummarizer(make_settings(GEMINI_API_KEY="k-123"), transport=httpx.MockTransport(handler))
        minutes = await summarizer.summarize("acordamos lanzar el viernes ")

        self.assertEqual(minutes, MARKDOWN)
        self.assertTrue(seen["url"].endswith("/models/gemini-1.5-flash:generateContent"))
        self.assertEqual(seen["key"], "k-123")
        prompt = seen["body"]["contents"][0]["parts"][0]["text"]
        self.assertIn("acordamos lanzar el viernes", prompt)

    async def test_output_cap_only_sent_when_configured(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return _gemini_ok(request)

        transport = httpx.MockTransport(handler)
        await GeminiSummarizer(make_settings(GEMINI_API_KEY="k"), transport=transport).summarize("x")
        await GeminiSummarizer(
            make_settings(GEMINI_API_KEY="k", SUMMARY_MAX_TOKENS=4096), transport=transport
        ).summarize("x")

        self.assertNotIn("generationConfig", bodies[0])
        self.assertEqual(bodies[1]["generationConfig"], {"maxOutputTokens": 4096})

    async def test_joins_multiple_parts(self):
        def handler(request):
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "# Minuta"}, {"text": "\nresto"}]}}]}
            )

        summarizer = GeminiSummarizer(make_settings(GEMINI_API_KEY="k"), transport=httpx.MockTransport(handler))
        self.assertEqual(await summarizer.summarize("x"), "# Minuta\nresto")

    async def test_http_error_raises_summarization_failed(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, json={"error": "overloaded"}))
        summarizer = GeminiSummarizer(make_settings(GEMINI_API_KEY="k"), transport=transport)
        with self.assertRaises(SummarizationFailed) as ctx:
            await summarizer.summarize("hola")
        self.assertTrue(str(ctx.exception).startswith("Error con Gemini:"))
        self.assertIn("503", str(ctx.exception))

    async def test_transport_error_raises_summarization_failed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        summarizer = GeminiSummarizer(make_settings(GEMINI_API_KEY="k"), transport=httpx.MockTransport(handler))
        with self.assertRaises(SummarizationFailed):
            await summarizer.summarize("hola")

    async def test_blocked_or_empty_response_raises(self):
        for body in [{"promptFeedback": {"blockReason": "SAFETY"}}, {"candidates": []},
                     {"candidates": [{"content": {"parts": [{"text": ""}]}}]}]:
            with self.subTest(body=body):
                transport = httpx.MockTransport(lambda request, body=body: httpx.Response(200, json=body))
                summarizer = GeminiSummarizer(make_settings(GEMINI_API_KEY="k"), transport=transport)
                with self.assertRaises(SummarizationFailed):
                    await summarizer.summarize("hola")

    async def test_missing_api_key(self):
        calls = []
        transport = httpx.MockTransport(lambda request: calls.append(request) or _gemini_ok(request))
        summarizer = GeminiSummarizer(make_settings(GEMINI_API_KEY=""), transport=transport)
        with self.assertRaises(SummarizationFailed):
            await summarizer.summarize("hola")
        self.assertEqual(calls, [])


class TestCloudflareSummarizer(unittest.IsolatedAsyncioTestCase):
    def _settings(self, **kw):
        base = {"CLOUDFLARE_ACCOUNT_ID": "acc", "CLOUDFLARE_API_TOKEN": "tok"}
        base.update(kw)
        return make_settings(**base)

    async def test_reads_result_response(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": {"response": MARKDOWN}, "success": True})

        summarizer = CloudflareSummarizer(self._settings(), transport=httpx.MockTransport(handler))
        self.assertEqual(await summarizer.summarize("hola"), MARKDOWN)
        self.assertEqual(seen["auth"], "Bearer tok")
        self.assertTrue(seen["path"].startswith("/client/v4/accounts/acc/ai/run/"))
        self.assertTrue(seen["path"].endswith("llama-3.1-8b-instruct"))
        self.assertEqual(seen["body"]["max_tokens"], 2048)

    async def test_empty_response_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"result": {"response": ""}}))
        summarizer = CloudflareSummarizer(self._settings(), transport=transport)
        with self.assertRaises(SummarizationFailed) as ctx:
            await summarizer.summarize("hola")
        self.assertIn("Cloudflare Workers AI", str(ctx.exception))

    async def test_missing_credentials(self):
        summarizer = CloudflareSummarizer(self._settings(CLOUDFLARE_API_TOKEN=""))
        with self.assertRaises(SummarizationFailed):
            await summarizer.summarize("hola")


class TestCreateSummarizer(unittest.TestCase):
    def test_backend_selection(self):
        self.assertIsInstance(create_summarizer(make_settings()), GeminiSummarizer)
        self.assertIsInstance(
            create_summarizer(make_settings(SUMMARIZER_BACKEND="cloudflare")), CloudflareSummarizer
        )


if __name__ == "__main__":
    unittest.main()
