"""
Minutes summarizer: transcript in, markdown minutes out.

The transcript is embedded in a fixed Spanish prompt that asks for five fixed parts
(title, executive summary, key points, decisions, action-item table). The model's
text is returned verbatim: no parsing or validation of the markdown.

Backends (SUMMARIZER_BACKEND):
- gemini: Gemini generateContent REST API.
- cloudflare: Cloudflare Workers AI chat model.

Any upstream failure raises SummarizationFailed. No retries.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from minutagen.config import Settings, get_settings
from minutagen.errors import SummarizationFailed

logger = logging.getLogger(__name__)

MINUTES_PROMPT_TEMPLATE = """
Actúa como un asistente ejecutivo altamente competente, encargado de documentar una reunión de trabajo.
Analiza la siguiente transcripción y genera una minuta profesional y concisa en español, utilizando el formato Markdown.

La minuta debe contener obligatoriamente las siguientes secciones:

# Minuta de la Reunión

## 1. Resumen Ejecutivo
Un párrafo conciso que resuma el propósito y los resultados clave de la reunión.

## 2. Puntos Clave Discutidos
Una lista de viñetas con los temas más importantes que se trataron.

## 3. Decisiones Tomadas
Una lista numerada que enumere claramente cada decisión final que se acordó.

## 4. Tareas y Acciones a Realizar (Action Items)
Una tabla con tres columnas: 'Tarea', 'Responsable(s)' y 'Fecha Límite'. Infiere los responsables a partir del texto. Si no se menciona un responsable o fecha, indica 'No especificado'.

---
TRANSCRIPCIÓN PARA ANALIZAR:
{transcript}
---
"""

# Realtime outcome when no final text was transcribed (summarizer is not called)
NO_TRANSCRIPT_MINUTES = "No se generó minuta porque no se transcribió texto."

# Workers AI stops at 256 output tokens when max_tokens is omitted
CLOUDFLARE_DEFAULT_MAX_TOKENS = 2048


@dataclass(frozen=True)
class MinutesResult:
    """Outcome of one completed session or batch request."""

    minutes: str
    raw_transcript: str

    def to_payload(self) -> dict[str, str]:
        return {"minutes": self.minutes, "rawTranscript": self.raw_transcript}


def build_minutes_prompt(transcript: str) -> str:
    return MINUTES_PROMPT_TEMPLATE.replace("{transcript}", transcript)


class Summarizer(ABC):
    """Abstract minutes generator. summarize() returns the model text as-is."""

    display_name: str = "summarizer"

    @abstractmethod
    async def summarize(self, transcript: str) -> str:
        ...


class _HttpSummarizer(Summarizer):
    """Shared POST + error mapping. transport is injectable (httpx.MockTransport in tests)."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    def _fail(self, detail: str) -> SummarizationFailed:
        return SummarizationFailed(f"Error con {self.display_name}: {detail}")

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.SUMMARY_TIMEOUT_SECONDS,
                transport=self._transport,
            ) as client:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("%s returned HTTP %s: %s", self.display_name, e.response.status_code, e.response.text[:500])
            raise self._fail(f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("%s request failed: %s", self.display_name, e)
            raise self._fail(str(e) or type(e).__name__) from e
        except ValueError as e:
            raise self._fail("respuesta no es JSON") from e


class GeminiSummarizer(_HttpSummarizer):
    display_name = "Gemini"

    async def summarize(self, transcript: str) -> str:
        s = self._settings
        if not s.GEMINI_API_KEY:
            raise self._fail("GEMINI_API_KEY no configurada")
        url = f"{s.GEMINI_API_BASE.rstrip('/')}/models/{s.GEMINI_MODEL}:generateContent"
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": build_minutes_prompt(transcript)}]}],
        }
        if s.SUMMARY_MAX_TOKENS > 0:
            payload["generationConfig"] = {"maxOutputTokens": s.SUMMARY_MAX_TOKENS}
        logger.info("Sending transcript (%d chars) to Gemini model=%s", len(transcript), s.GEMINI_MODEL)
        data = await self._post(
            url,
            payload,
            headers={"x-goog-api-key": s.GEMINI_API_KEY, "Content-Type": "application/json"},
        )
        # { "candidates": [ { "content": { "parts": [ { "text": "..." } ] } } ] }
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(p.get("text", "") for p in parts)
        except (KeyError, IndexError, TypeError) as e:
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            raise self._fail(f"respuesta sin contenido ({feedback or e})") from e
        if not text:
            raise self._fail("respuesta vacía")
        return text


class CloudflareSummarizer(_HttpSummarizer):
    display_name = "Cloudflare Workers AI"

    async def summarize(self, transcript: str) -> str:
        s = self._settings
        account_id = (s.CLOUDFLARE_ACCOUNT_ID or "").strip()
        token = (s.CLOUDFLARE_API_TOKEN or "").strip()
        if not account_id or not token:
            raise self._fail("CLOUDFLARE_ACCOUNT_ID y CLOUDFLARE_API_TOKEN son requeridos")
        url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{s.CLOUDFLARE_MODEL}"
        payload = {
            "messages": [{"role": "user", "content": build_minutes_prompt(transcript)}],
            "max_tokens": s.SUMMARY_MAX_TOKENS or CLOUDFLARE_DEFAULT_MAX_TOKENS,
            "temperature": 0.2,
        }
        logger.info("Sending transcript (%d chars) to Workers AI model=%s", len(transcript), s.CLOUDFLARE_MODEL)
        data = await self._post(
            url,
            payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
        )
        # Workers AI returns { "result": { "response": "..." } } or direct { "response": "..." }
        result = data.get("result", data) if isinstance(data, dict) else data
        if isinstance(result, dict):
            content = result.get("response", "") or ""
        elif isinstance(result, str):
            content = result
        else:
            content = ""
        if not content.strip():
            raise self._fail("respuesta vacía")
        return content


def create_summarizer(settings: Settings | None = None) -> Summarizer:
    """Return summarizer for SUMMARIZER_BACKEND."""
    settings = settings or get_settings()
    if settings.SUMMARIZER_BACKEND == "cloudflare":
        return CloudflareSummarizer(settings)
    return GeminiSummarizer(settings)
