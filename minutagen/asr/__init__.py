"""ASR: live streaming recognizer interface and Google Speech-to-Text implementations."""
from .base import RecognitionConfig, RecognitionResult, StreamingRecognizer
from .google_batch import GoogleBatchRecognizer
from .google_streaming import GoogleStreamingRecognizer

__all__ = [
    "RecognitionConfig",
    "RecognitionResult",
    "StreamingRecognizer",
    "GoogleBatchRecognizer",
    "GoogleStreamingRecognizer",
]
