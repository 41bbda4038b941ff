"""Audio decoding: turns a file on disk into a mono sample buffer.

Any failure here is a DecodeError and is raised before the engine runs.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import librosa
import numpy as np

from cuesense.services.audio.types import DecodedAudio
from cuesense.services.shared.errors import DecodeError

logger = logging.getLogger("cuesense.audio.decoder")


def load_audio(
    path: Union[str, Path],
    sample_rate: Optional[int] = None,
) -> DecodedAudio:
    """Decode ``path`` to mono float samples.

    Args:
        path: Any librosa/soundfile-compatible audio file.
        sample_rate: Resample to this rate; ``None`` keeps the native rate.

    Raises:
        DecodeError: If the file is missing, unreadable or contains no samples.
    """
    audio_path = Path(path)
    if not audio_path.exists():
        raise DecodeError(f"Audio file not found: {audio_path}")

    try:
        y, sr = librosa.load(str(audio_path), sr=sample_rate, mono=True)
    except Exception as exc:
        raise DecodeError(f"Could not decode {audio_path.name}: {exc}") from exc

    samples = np.asarray(y, dtype=np.float64)
    if samples.size == 0:
        raise DecodeError(f"No audio samples in {audio_path.name}")

    duration = float(samples.size) / float(sr)
    logger.debug("Decoded %s: %.1fs @ %d Hz", audio_path.name, duration, sr)
    return DecodedAudio(samples=samples, sample_rate=int(sr), duration_sec=duration)
