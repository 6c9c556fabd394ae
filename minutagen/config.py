"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Speech-to-Text: live stream comes from the browser MediaRecorder (webm/opus @ 48kHz)
    STREAM_ENCODING: str = "WEBM_OPUS"
    STREAM_SAMPLE_RATE: int = 48000
    STREAM_INTERIM_RESULTS: bool = True
    # Batch paths transcode everything to PCM 16-bit mono 16kHz before recognition
    BATCH_SAMPLE_RATE: int = 16000
    SPEECH_LANGUAGE: str = "es-PE"
    SPEECH_MODEL: str = "telephony"
    SPEECH_PUNCTUATION: bool = True
    BATCH_RECOGNIZE_TIMEOUT_SECONDS: float = 3600.0  # long-running recognize (file upload)

    # Staging bucket for long audio files (long_running_recognize needs a gs:// URI)
    GCS_BUCKET_NAME: str = ""
    GCS_UPLOAD_PREFIX: str = "audio-uploads"

    # Summarizer backend: "gemini" | "cloudflare"
    SUMMARIZER_BACKEND: Literal["gemini", "cloudflare"] = "gemini"
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    # Cloudflare Workers AI (when SUMMARIZER_BACKEND=cloudflare)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    SUMMARY_MAX_TOKENS: int = 0  # 0 = no output cap sent (model default)
    SUMMARY_TIMEOUT_SECONDS: float = 120.0

    # Live session lifecycle
    STOP_DRAIN_TIMEOUT_SECONDS: float = 5.0  # wait for trailing finals after stop_transcription
    STREAM_CLOSE_TIMEOUT_SECONDS: float = 2.0  # upstream close is best-effort after this
    MAX_SESSION_SECONDS: float = 3600.0  # 0 = no limit; session is stopped (and summarized) when reached
    MAX_TRANSCRIPT_CHARS: int = 200_000  # 0 = no limit; later final fragments are dropped

    # Batch uploads: temp dir for upload + converted WAV ("" = system temp)
    UPLOAD_TMP_DIR: str = ""

    # Browser origin(s) allowed to call the API (comma-separated)
    CORS_ORIGINS: str = "http://localhost:3000"

    # Logging: level (DEBUG, INFO, WARNING, ERROR); LOG_FILE empty = console only
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
