"""
YouTube audio download via yt-dlp: the lowest-quality audio-only stream is enough for
speech recognition and keeps the download short. Blocking; run in an executor.
"""
from __future__ import annotations

import logging
import os
import re

import yt_dlp
from yt_dlp.utils import DownloadError

from minutagen.errors import AudioProcessingError

logger = logging.getLogger(__name__)

# watch?v=, youtu.be/, shorts/, embed/, live/ on youtube.com / m. / music. / youtube-nocookie
_YOUTUBE_URL_RE = re.compile(
    r"^(?:https?://)?(?:www\.|m\.|music\.)?"
    r"(?:youtube\.com/(?:watch\?(?:.*&)?v=|shorts/|embed/|live/|v/)|youtu\.be/|youtube-nocookie\.com/embed/)"
    r"[A-Za-z0-9_-]{11}"
)


def is_youtube_url(url: str | None) -> bool:
    return bool(url) and _YOUTUBE_URL_RE.match(url.strip()) is not None


def download_audio(url: str, dst_dir: str) -> str:
    """Download the audio stream of `url` into dst_dir. Returns the downloaded file path."""
    os.makedirs(dst_dir, exist_ok=True)
    options = {
        "format": "worstaudio/worst",
        "outtmpl": os.path.join(dst_dir, "yt-audio-%(id)s.%(ext)s"),
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
    }
    logger.info("Downloading audio from %s", url)
    try:
        with yt_dlp.YoutubeDL(options) as ydl:
            info = ydl.extract_info(url, download=True)
            path = ydl.prepare_filename(info)
    except DownloadError as e:
        raise AudioProcessingError(f"Error descargando de YouTube: {e}") from e
    if not os.path.isfile(path):
        raise AudioProcessingError("Error descargando de YouTube: archivo no encontrado tras la descarga")
    return path
