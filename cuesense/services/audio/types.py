"""Data types for the CueSense audio layer."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

_RATIO_FIELDS = (
    "low_freq_energy",
    "mid_freq_energy",
    "high_freq_energy",
    "rhythm_strength",
    "zero_crossing_rate",
    "harmonic_ratio",
)


@dataclass(frozen=True)
class FeatureVector:
    """Track-level acoustic features. Produced once, read by every matcher."""
    spectral_centroid: float   # Brightness in Hz
    spectral_rolloff: float    # 85% cumulative-energy point in Hz
    spectral_flux: float       # Frame-to-frame spectral change
    rms_energy: float          # Loudness 0.0-1.0 for normalised audio
    low_freq_energy: float     # Band ratios, sum ≈ 1
    mid_freq_energy: float
    high_freq_energy: float
    tempo: float               # Estimated BPM, always > 0
    rhythm_strength: float     # 0.0-1.0
    zero_crossing_rate: float  # Sign changes per sample
    harmonic_ratio: float      # 0.0-1.0

    def __post_init__(self) -> None:
        for name in _RATIO_FIELDS:
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must lie in [0, 1], got {value}")
        if self.tempo <= 0:
            raise ValueError(f"tempo must be > 0, got {self.tempo}")


@dataclass(frozen=True)
class DecodedAudio:
    """Mono sample buffer handed over by the decoder."""
    samples: np.ndarray
    sample_rate: int
    duration_sec: float


@dataclass(frozen=True)
class AudioAnalysis:
    """Features plus the basic facts about the decoded file."""
    features: FeatureVector
    duration_sec: float
    sample_rate: int
