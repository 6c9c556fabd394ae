"""
Batch pipelines: one request in, one MinutesResult out. Same {minutes, rawTranscript}
shape as the realtime final_minutes event.

- File upload: save -> WAV 16kHz mono -> stage in GCS -> LongRunningRecognize -> summarize.
- YouTube URL: download audio -> WAV 16kHz mono -> Recognize (inline, blocking) -> summarize.

The two recognition modes differ on purpose: inline Recognize only accepts short audio,
so the URL path suits short videos while uploads may be long.
Temp files and the staged GCS object are removed whatever the outcome.
"""
from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import time

from minutagen.asr.google_batch import GoogleBatchRecognizer
from minutagen.audio.transcode import transcode_to_wav
from minutagen.audio.youtube import download_audio, is_youtube_url
from minutagen.config import Settings, get_settings
from minutagen.errors import InvalidInput
from minutagen.services.summarizer import MinutesResult, Summarizer
from minutagen.storage import GcsAudioStore

logger = logging.getLogger(__name__)


class BatchPipeline:
    def __init__(
        self,
        recognizer: GoogleBatchRecognizer,
        summarizer: Summarizer,
        store: GcsAudioStore,
        settings: Settings | None = None,
    ) -> None:
        self._recognizer = recognizer
        self._summarizer = summarizer
        self._store = store
        self._settings = settings or get_settings()

    def _make_workdir(self) -> str:
        base = self._settings.UPLOAD_TMP_DIR or None
        if base:
            os.makedirs(base, exist_ok=True)
        return tempfile.mkdtemp(prefix="minutagen-", dir=base)

    @staticmethod
    async def _in_executor(func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _summarize(self, raw_transcript: str) -> MinutesResult:
        logger.info("Transcription complete (%d chars); generating minutes", len(raw_transcript))
        minutes = await self._summarizer.summarize(raw_transcript)
        return MinutesResult(minutes=minutes, raw_transcript=raw_transcript)

    async def transcribe_file(self, filename: str | None, data: bytes | None) -> MinutesResult:
        if not data:
            raise InvalidInput("No se encontró el archivo de audio.")
        workdir = self._make_workdir()
        staged: str | None = None
        try:
            src = os.path.join(workdir, os.path.basename(filename or "upload.bin") or "upload.bin")
            with open(src, "wb") as f:
                f.write(data)
            wav = os.path.join(workdir, f"converted-{int(time.time() * 1000)}.wav")
            await self._in_executor(transcode_to_wav, src, wav, self._settings.BATCH_SAMPLE_RATE)

            staged = await self._in_executor(self._store.upload, wav)
            raw_transcript = await self._recognizer.recognize_uri(self._store.uri(staged))
            if not raw_transcript:
                raise InvalidInput("No se pudo extraer texto del audio.")
            return await self._summarize(raw_transcript)
        finally:
            if staged:
                await self._in_executor(self._store.delete, staged)
            shutil.rmtree(workdir, ignore_errors=True)

    async def transcribe_youtube(self, url: str | None) -> MinutesResult:
        if not is_youtube_url(url):
            raise InvalidInput("URL de YouTube no válida.")
        workdir = self._make_workdir()
        try:
            downloaded = await self._in_executor(download_audio, url.strip(), workdir)
            wav = os.path.join(workdir, f"yt-converted-{int(time.time() * 1000)}.wav")
            await self._in_executor(transcode_to_wav, downloaded, wav, self._settings.BATCH_SAMPLE_RATE)
            with open(wav, "rb") as f:
                wav_bytes = f.read()
            raw_transcript = await self._recognizer.recognize_content(wav_bytes)
            if not raw_transcript:
                raise InvalidInput("No se pudo extraer texto del audio de YouTube.")
            return await self._summarize(raw_transcript)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)
