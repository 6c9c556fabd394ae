from __future__ import annotations


class MinutesError(Exception):
    pass


class InvalidInput(MinutesError):
    pass


class UpstreamUnavailable(MinutesError):
    pass


class TranscriptionFailed(MinutesError):
    pass


class SummarizationFailed(MinutesError):
    pass


class AudioProcessingError(MinutesError):
    pass
