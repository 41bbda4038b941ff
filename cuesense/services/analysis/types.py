"""Data types for the hybrid analysis result."""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cuesense.services.emotion.types import EmotionMethod, EmotionResult
from cuesense.services.scene.types import SceneMatch, SceneSource
from cuesense.services.structure.types import StructuralAnalysis

#: Film genre reported when neither emotion nor metadata suggests one
UNCLASSIFIED_GENRE = "未分类"


@dataclass(frozen=True)
class TrackMetadata:
    """Tag metadata supplied by the caller (all optional)."""
    title: str = ""
    artist: str = ""
    album: str = ""
    year: Optional[int] = None
    track: Optional[int] = None
    genre: str = ""


@dataclass(frozen=True)
class AnalysisMethod:
    emotion: EmotionMethod
    scene: SceneSource
    complex_analysis: bool


@dataclass
class HybridAnalysisResult:
    """Everything the engine says about one track. Built per call, never cached."""
    file_name: str
    emotion: EmotionResult
    scene: SceneMatch
    film_genre: str
    style: str
    instruments: List[str]
    overall_confidence: float
    method: AnalysisMethod
    structure: Optional[StructuralAnalysis] = None
    metadata: TrackMetadata = field(default_factory=TrackMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict; enum members serialise as their string values."""
        return dataclasses.asdict(self)
