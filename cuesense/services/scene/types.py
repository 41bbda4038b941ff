"""Data types for scene recognition."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

#: Scene reported when no candidate survives thresholding
UNRECOGNIZED_SCENE = "未识别"


class SceneSource(str, Enum):
    """Which matcher produced a SceneMatch. Lower ``priority`` wins."""
    TARGET = "target"
    LINKAGE = "linkage"
    AUDIO = "audio"
    LLM = "llm"
    HYBRID = "hybrid"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]


_PRIORITY = {
    SceneSource.TARGET: 0,
    SceneSource.LINKAGE: 1,
    SceneSource.AUDIO: 2,
    SceneSource.LLM: 3,
    SceneSource.HYBRID: 4,
}


@dataclass(frozen=True)
class SceneMatch:
    scene: str
    confidence: int          # 0-100
    source: SceneSource
    description: str = ""
    reasoning: str = ""

    @property
    def recognized(self) -> bool:
        return self.scene != UNRECOGNIZED_SCENE and self.confidence > 0
