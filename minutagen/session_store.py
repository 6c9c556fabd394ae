"""
In-memory session registry: connection_id -> live transcription Session.

Owned by one SessionManager and injected into it (tests build as many as they need).
Only the event handlers of the owning connection touch its entry, so under one asyncio
loop no lock is needed; a threaded server would have to guard put/pop.
Nothing is persisted: an entry lives from start_transcription to session end.
"""
from __future__ import annotations

import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Iterator

from minutagen.asr.base import StreamingRecognizer
from minutagen.transcript.accumulator import TranscriptAccumulator


def generate_connection_id() -> str:
    """New opaque connection identity (UUID hex, 12 chars)."""
    return uuid.uuid4().hex[:12]


class SessionState(enum.Enum):
    ACTIVE = "active"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass
class Session:
    """One live transcription attempt. Owns its stream and accumulator exclusively."""

    connection_id: str
    stream: StreamingRecognizer
    accumulator: TranscriptAccumulator
    state: SessionState = SessionState.ACTIVE
    started_at: float = field(default_factory=time.monotonic)
    consumer: asyncio.Task | None = None  # drains stream.results()
    finalizer: asyncio.Task | None = None  # stop -> drain -> summarize -> relay
    watchdog: asyncio.Task | None = None  # stops the session at MAX_SESSION_SECONDS

    @property
    def accepts_audio(self) -> bool:
        return self.state is SessionState.ACTIVE

    def elapsed(self) -> float:
        """Seconds since start_transcription."""
        return time.monotonic() - self.started_at


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get(self, connection_id: str) -> Session | None:
        """Return session or None if not found."""
        return self._sessions.get(connection_id)

    def put(self, session: Session) -> None:
        """Store session, replacing any entry for the same connection."""
        self._sessions[session.connection_id] = session

    def remove(self, connection_id: str, session: Session | None = None) -> bool:
        """
        Remove entry. With `session`, only if it is still the registered one (a newer
        session for the same connection is left alone). Return True if removed.
        """
        current = self._sessions.get(connection_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[connection_id]
        return True

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))
