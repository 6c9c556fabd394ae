"""Batch audio preparation: transcode to 16kHz mono WAV; YouTube audio download."""
from .transcode import transcode_to_wav
from .youtube import download_audio, is_youtube_url

__all__ = ["transcode_to_wav", "download_audio", "is_youtube_url"]
