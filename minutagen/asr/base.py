"""
StreamingRecognizer: abstract interface for a live, bidirectional speech stream.

One recognizer = one upstream stream = one session. Audio goes in through
write(); decoded units come out of results() as RecognitionResult, in the order
the recognizer emits them.

- Interim (is_final=False): the recognizer's current best guess for the utterance.
  Each interim replaces the previous one; never appended.
- Final (is_final=True): stable text for one utterance boundary; appended.

Implementation: GoogleStreamingRecognizer (Cloud Speech-to-Text StreamingRecognize).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator


@dataclass(frozen=True)
class RecognitionConfig:
    """Fixed decode configuration for one stream."""

    encoding: str = "WEBM_OPUS"
    sample_rate_hertz: int = 48000
    language_code: str = "es-PE"
    model: str = "telephony"
    enable_automatic_punctuation: bool = True
    interim_results: bool = True


@dataclass(frozen=True)
class RecognitionResult:
    """One decoded unit from the recognizer."""

    text: str
    is_final: bool


class StreamingRecognizer(ABC):
    """
    Abstract live recognizer. Lifecycle: open() once, write() any number of times,
    end_input() / close() to finish. results() may be iterated once.
    """

    @abstractmethod
    async def open(self, config: RecognitionConfig) -> None:
        """
        Establish the upstream stream. Raises UpstreamUnavailable if it cannot be
        opened; callers do not retry (the client re-initiates).
        """
        ...

    @abstractmethod
    def write(self, chunk: bytes) -> None:
        """Forward raw audio bytes in call order. No-op once closing or closed; never raises."""
        ...

    @abstractmethod
    def end_input(self) -> None:
        """Signal end-of-audio upstream. Results already in flight keep arriving."""
        ...

    @abstractmethod
    def results(self) -> AsyncIterator[RecognitionResult]:
        """
        Yield decoded results until the upstream stream ends.
        Raises TranscriptionFailed if the stream errors mid-session.
        """
        ...

    @abstractmethod
    async def close(self, timeout: float | None = None) -> None:
        """
        End input and release the stream. Waits at most `timeout` seconds for the
        upstream to finish, then tears down locally regardless. Idempotent.
        """
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...
