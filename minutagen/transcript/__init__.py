"""Transcript handling: final-only accumulation per session; realtime wire messages."""
from .accumulator import TranscriptAccumulator
from .messages import ServerMessage, message_to_json, parse_client_event

__all__ = ["TranscriptAccumulator", "ServerMessage", "message_to_json", "parse_client_event"]
