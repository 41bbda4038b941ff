"""Data types for multi-segment structural analysis."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from cuesense.services.audio.types import FeatureVector


class SegmentName(str, Enum):
    INTRO = "intro"
    DEVELOPMENT = "development"
    CLIMAX = "climax"
    OUTRO = "outro"


class DynamicLevel(str, Enum):
    PP = "pp"
    P = "p"
    MP = "mp"
    MF = "mf"
    F = "f"
    FF = "ff"

    @property
    def intensity(self) -> int:
        """Segment mood intensity on the 1-7 scale."""
        return _DYNAMIC_INTENSITY[self]


_DYNAMIC_INTENSITY = {
    DynamicLevel.PP: 2,
    DynamicLevel.P: 3,
    DynamicLevel.MP: 4,
    DynamicLevel.MF: 5,
    DynamicLevel.F: 6,
    DynamicLevel.FF: 7,
}


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class Smoothness(str, Enum):
    SMOOTH = "smooth"
    GRADUAL = "gradual"
    ABRUPT = "abrupt"


@dataclass(frozen=True)
class StructuralFeatures:
    """Track-level description on the scales the structural heuristics use.

    Dynamics are dB-like (quiet ≈ 40, loud ≈ 100); texture, rhythm,
    frequency profile and harmonic fields are 0-10.
    """
    bpm: float
    duration_sec: float
    energy: float                 # 0-1
    dynamics_average: float
    dynamics_range: float
    texture_density: float
    texture_layering: float
    rhythm_consistency: float
    rhythm_complexity: float
    freq_low: float
    freq_mid: float
    freq_high: float
    brightness: float
    warmth: float

    @classmethod
    def from_vector(cls, fv: FeatureVector, duration_sec: float = 0.0) -> "StructuralFeatures":
        """Fixed mapping from extractor output onto the structural scales."""
        average_db = 100.0 + 20.0 * math.log10(max(fv.rms_energy, 1e-5))
        spread = 1.0 - max(fv.low_freq_energy, fv.mid_freq_energy, fv.high_freq_energy)
        return cls(
            bpm=fv.tempo,
            duration_sec=duration_sec,
            energy=fv.rms_energy,
            dynamics_average=average_db,
            dynamics_range=fv.rhythm_strength * 60.0,
            texture_density=min(fv.spectral_flux / 2000.0, 1.0) * 10.0,
            texture_layering=min(spread * 15.0, 10.0),
            rhythm_consistency=(1.0 - fv.rhythm_strength) * 10.0,
            rhythm_complexity=fv.rhythm_strength * min(fv.tempo / 120.0, 1.0) * 10.0,
            freq_low=fv.low_freq_energy * 10.0,
            freq_mid=fv.mid_freq_energy * 10.0,
            freq_high=fv.high_freq_energy * 10.0,
            brightness=min(fv.spectral_centroid / 4000.0, 1.0) * 10.0,
            warmth=fv.harmonic_ratio * (fv.low_freq_energy + fv.mid_freq_energy) * 10.0,
        )


@dataclass(frozen=True)
class TimeRange:
    start: float   # percent of track, 0-100
    end: float


@dataclass
class SegmentMood:
    primary: str = ""
    secondary: List[str] = field(default_factory=list)
    intensity: int = 0    # 1-7 once filled


@dataclass(frozen=True)
class SegmentFeatures:
    bpm: float
    dynamics: DynamicLevel
    energy: float
    complexity: float


@dataclass
class SegmentAnalysis:
    segment: SegmentName
    time_range: TimeRange
    mood: SegmentMood
    features: SegmentFeatures


@dataclass(frozen=True)
class TrajectoryPoint:
    phase: SegmentName
    emotion: str
    intensity: int
    trend: Trend


@dataclass(frozen=True)
class EmotionalTransition:
    from_emotion: str
    to_emotion: str
    position: float       # percent where the later segment starts
    smoothness: Smoothness


@dataclass
class EmotionalTrajectory:
    primary: str
    trajectory: List[TrajectoryPoint]
    transitions: List[EmotionalTransition]


@dataclass
class Orchestration:
    primary: List[str]
    secondary: List[str]
    complexity: str       # "simple" | "moderate" | "complex"


@dataclass
class DynamicRangeSummary:
    min: DynamicLevel
    max: DynamicLevel
    range: str            # "small" | "medium" | "large"


@dataclass
class StructuralAnalysis:
    segments: List[SegmentAnalysis]
    trajectory: EmotionalTrajectory
    dominant_emotion: str
    orchestration: Orchestration
    dynamic_range: DynamicRangeSummary
