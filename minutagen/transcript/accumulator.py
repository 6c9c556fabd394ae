"""
TranscriptAccumulator: append-only store of FINAL transcript fragments for one session.

- Interim results never reach this class; only finals are appended.
- No reordering, no deduplication: fragments keep the order the recognizer emitted them.
- full_text() renders each fragment followed by one space ("hola mundo" -> "hola mundo ").

append() and snapshot() share a lock so the read taken at session finalization sees
every final appended before it and none twice. Under one asyncio loop the lock is
never contended; it must stay if sessions are ever served from several threads.
"""
from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class TranscriptAccumulator:
    def __init__(self, max_chars: int = 0) -> None:
        """max_chars: 0 = unbounded; otherwise fragments that would exceed it are dropped."""
        self._fragments: list[str] = []
        self._chars = 0
        self._max_chars = max_chars
        self._lock = asyncio.Lock()

    async def append(self, fragment: str) -> bool:
        """Append one final fragment. Returns False if dropped by the size limit."""
        async with self._lock:
            added = len(fragment) + 1
            if self._max_chars and self._chars + added > self._max_chars:
                logger.warning(
                    "Transcript limit reached (%d chars); dropping final fragment of %d chars",
                    self._max_chars,
                    len(fragment),
                )
                return False
            self._fragments.append(fragment)
            self._chars += added
            return True

    async def snapshot(self) -> str:
        """full_text() taken under the append lock."""
        async with self._lock:
            return self.full_text()

    def full_text(self) -> str:
        return "".join(f"{fragment} " for fragment in self._fragments)

    def is_empty(self) -> bool:
        """True when no fragment carries non-whitespace text."""
        return not self.full_text().strip()

    @property
    def char_count(self) -> int:
        return self._chars
