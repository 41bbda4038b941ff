"""Data types for emotion recognition."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

#: Primary emotion reported when nothing clears the score floor
UNRECOGNIZED_EMOTION = "未识别"

DIMENSION_NAMES = ("happiness", "sadness", "tension", "romance", "epic")

#: Upper bound on EmotionResult.secondary
MAX_SECONDARY = 6


class EmotionMethod(str, Enum):
    """Which sources produced an EmotionResult."""
    RULE_ONLY = "rule-only"
    LLM_ONLY = "llm-only"
    HYBRID = "hybrid"


class SignalSource(str, Enum):
    """An independent emotion classifier feeding fusion."""
    RULE = "rule"
    LLM = "llm"


def empty_dimensions() -> Dict[str, int]:
    return {name: 0 for name in DIMENSION_NAMES}


@dataclass(frozen=True)
class EmotionProfile:
    """Target acoustic features for one named emotion.

    ``None`` means the profile does not constrain that feature.
    """
    name: str
    description: str = ""
    energy: Optional[float] = None
    low_freq: Optional[float] = None
    mid_freq: Optional[float] = None
    high_freq: Optional[float] = None
    tempo: Optional[float] = None
    rhythm_strength: Optional[float] = None
    spectral_centroid: Optional[float] = None
    spectral_flux: Optional[float] = None
    harmonic_ratio: Optional[float] = None
    weight: float = 1.0


@dataclass(frozen=True)
class ScoredEmotion:
    emotion: str
    score: float


@dataclass
class EmotionResult:
    """Emotion classification for one track."""
    primary: str
    secondary: List[str]              # At most MAX_SECONDARY, strongest first
    intensity: int                    # 1-10
    dimensions: Dict[str, int]        # DIMENSION_NAMES → 0-10
    confidence: float                 # 0-1 (rule scores may exceed 1.0)
    method: EmotionMethod


@dataclass(frozen=True)
class EmotionSignal:
    """Outcome of one source: exactly one of ``result`` / ``error`` is set."""
    source: SignalSource
    result: Optional[EmotionResult] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.result is not None
