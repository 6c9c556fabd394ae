"""
Transcode any ffmpeg-readable audio/video file to the canonical batch format:
WAV, PCM 16-bit little-endian, mono, 16kHz (sample rate from BATCH_SAMPLE_RATE).

pydub shells out to ffmpeg; both calls are blocking, run them in an executor.
"""
from __future__ import annotations

import logging
import os

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError

from minutagen.errors import AudioProcessingError

logger = logging.getLogger(__name__)

SAMPLE_WIDTH = 2  # 16-bit
NCHANNELS = 1


def transcode_to_wav(src_path: str, dst_path: str, sample_rate: int = 16000) -> str:
    """Decode src_path, downmix/resample, write dst_path. Returns dst_path."""
    logger.info("Converting %s to %d Hz mono WAV", os.path.basename(src_path), sample_rate)
    try:
        segment = AudioSegment.from_file(src_path)
        segment = segment.set_channels(NCHANNELS).set_frame_rate(sample_rate).set_sample_width(SAMPLE_WIDTH)
        os.makedirs(os.path.dirname(dst_path) or ".", exist_ok=True)
        segment.export(dst_path, format="wav")
    except (CouldntDecodeError, OSError) as e:
        raise AudioProcessingError(f"Error de FFmpeg: {e}") from e
    return dst_path
