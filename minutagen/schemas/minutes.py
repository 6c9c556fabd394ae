"""
Schemas for the batch minutes API (file upload and YouTube URL).

Response shape matches the realtime final_minutes event: { minutes, rawTranscript }.
Errors are always { error } with a non-2xx status.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class YoutubeRequest(BaseModel):
    """Request body for POST /api/transcribe-youtube."""

    url: str | None = Field(None, description="YouTube video URL (watch, youtu.be, shorts, embed)")


class MinutesResponse(BaseModel):
    """Minutes markdown plus the transcript it was generated from."""

    model_config = ConfigDict(populate_by_name=True)

    minutes: str = Field(..., description="Markdown minutes, as returned by the summarizer")
    raw_transcript: str = Field(..., alias="rawTranscript", description="Full transcript text")


class ErrorResponse(BaseModel):
    error: str
