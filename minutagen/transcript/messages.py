"""
Realtime wire messages: one JSON text frame per event, {"event": <name>, ...payload}.

Server -> client:
- connected              {connection_id}             once, right after accept
- interim_transcript     {transcript}                live guess; client overwrites the previous one
- final_transcript_chunk {transcript}                committed text; client appends
- final_minutes          {minutes, rawTranscript}    once per completed session
- transcription_error    {error}                     session ended with an error

Client -> server: {"event": "start_transcription"} / {"event": "stop_transcription"} as
text frames; audio chunks are raw binary frames.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

# Client -> server
START_TRANSCRIPTION = "start_transcription"
AUDIO_CHUNK = "audio_chunk"
STOP_TRANSCRIPTION = "stop_transcription"

# Server -> client
CONNECTED = "connected"
INTERIM_TRANSCRIPT = "interim_transcript"
FINAL_TRANSCRIPT_CHUNK = "final_transcript_chunk"
FINAL_MINUTES = "final_minutes"
TRANSCRIPTION_ERROR = "transcription_error"


@dataclass
class ServerMessage:
    """Message sent to client over WebSocket."""

    event: str
    payload: dict[str, Any] = field(default_factory=dict)


def message_to_json(msg: ServerMessage) -> str:
    return json.dumps({"event": msg.event, **msg.payload}, ensure_ascii=False)


def parse_client_event(raw: str) -> str | None:
    """Event name of a client text frame, or None if it is not a JSON object with a string "event"."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None
    event = data.get("event")
    return event if isinstance(event, str) else None
