"""Application services: minutes summarizer and batch (file / YouTube) pipelines."""
from minutagen.services.summarizer import MinutesResult, Summarizer, create_summarizer

__all__ = ["MinutesResult", "Summarizer", "create_summarizer"]
