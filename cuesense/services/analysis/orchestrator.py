"""HybridOrchestrator: sequences emotion, genre, scene and structure into one result.

Emotion and scene are required steps: their failures propagate. Structural
analysis is optional: a failure there is logged and the structure field is
left empty.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

from cuesense.services.analysis.types import (
    UNCLASSIFIED_GENRE,
    AnalysisMethod,
    HybridAnalysisResult,
    TrackMetadata,
)
from cuesense.services.audio.features import FeatureExtractor
from cuesense.services.audio.types import FeatureVector
from cuesense.services.emotion.fusion import EmotionFusionEngine
from cuesense.services.emotion.tagging import identify_style, recommend_instruments
from cuesense.services.emotion.types import EmotionResult
from cuesense.services.scene.fusion import SceneFusionEngine
from cuesense.services.structure.analyzer import StructuralAnalyzer
from cuesense.services.structure.types import StructuralAnalysis, StructuralFeatures

logger = logging.getLogger("cuesense.analysis.orchestrator")

EMOTION_FILM_GENRES: Mapping[str, str] = {
    "惊悚": "恐怖片",
    "压抑": "恐怖片",
    "悲壮": "古装剧",
    "热血": "职场剧",
    "浪漫": "爱情片",
    "悬疑": "推理剧",
    "史诗": "魔幻片",
}


def infer_film_genre(emotion: str, genre: str = "") -> str:
    """Film genre from the primary emotion, falling back to the tag genre."""
    if emotion in EMOTION_FILM_GENRES:
        return EMOTION_FILM_GENRES[emotion]
    tag = (genre or "").lower()
    if "classical" in tag or "orchestral" in tag:
        return "古装剧"
    if "jazz" in tag or "blues" in tag:
        return "爱情片"
    return UNCLASSIFIED_GENRE


def overall_confidence(emotion_confidence: float, scene_confidence: int) -> float:
    """Mean of emotion confidence (0-1) and scene confidence rescaled from 0-100."""
    value = (emotion_confidence + scene_confidence / 100.0) / 2.0
    return round(value * 100) / 100


class HybridOrchestrator:
    """Runs the full hybrid pipeline for one track.

    Usage::

        orch = build_orchestrator()          # see cuesense.main
        result = await orch.analyze(features, "cue.wav", TrackMetadata(genre="orchestral"))
        emotion = await orch.quick_analyze(features, "cue.wav")
        result = await orch.analyze_file("cue.wav")
    """

    def __init__(
        self,
        emotion_engine: EmotionFusionEngine,
        scene_engine: SceneFusionEngine,
        structural_analyzer: Optional[StructuralAnalyzer] = None,
        extractor: Optional[FeatureExtractor] = None,
        structure_enabled: bool = True,
    ):
        self.emotion_engine = emotion_engine
        self.scene_engine = scene_engine
        self.structural_analyzer = structural_analyzer
        self.extractor = extractor or FeatureExtractor()
        self.structure_enabled = structure_enabled and structural_analyzer is not None

    # ── public ────────────────────────────────────────────────────────────────

    async def analyze(
        self,
        features: FeatureVector,
        file_name: str,
        metadata: Optional[TrackMetadata] = None,
        structural: Optional[StructuralFeatures] = None,
        duration_sec: float = 0.0,
    ) -> HybridAnalysisResult:
        """Emotion → film genre → scene → (structure) → overall confidence.

        Raises:
            AggregateFailure: If no emotion source produced a result.
        """
        metadata = metadata or TrackMetadata()
        logger.info("Analysis started: %s", file_name)

        emotion = await self.emotion_engine.recognize(features, file_name)
        logger.info("Emotion for %s: %s (%s)", file_name, emotion.primary, emotion.method.value)

        film_genre = infer_film_genre(emotion.primary, metadata.genre)

        scene = await self.scene_engine.recognize(features, film_genre, emotion.primary, file_name)

        structure = self._structure(features, emotion.primary, structural, duration_sec, file_name)

        result = HybridAnalysisResult(
            file_name=file_name,
            emotion=emotion,
            scene=scene,
            film_genre=film_genre,
            style=identify_style(features),
            instruments=recommend_instruments(features),
            overall_confidence=overall_confidence(emotion.confidence, scene.confidence),
            method=AnalysisMethod(
                emotion=emotion.method,
                scene=scene.source,
                complex_analysis=structure is not None,
            ),
            structure=structure,
            metadata=metadata,
        )
        logger.info(
            "Analysis complete: %s → %s / %s (%.2f)",
            file_name, emotion.primary, scene.scene, result.overall_confidence,
        )
        return result

    async def quick_analyze(self, features: FeatureVector, file_name: str) -> EmotionResult:
        """Emotion only."""
        return await self.emotion_engine.recognize(features, file_name)

    async def analyze_file(
        self,
        path: Union[str, Path],
        metadata: Optional[TrackMetadata] = None,
    ) -> HybridAnalysisResult:
        """Decode, extract and analyze a file on disk.

        Raises:
            DecodeError: If the audio cannot be read; the engine does not run.
        """
        audio = self.extractor.extract_file(path)
        return await self.analyze(
            audio.features,
            Path(path).name,
            metadata,
            duration_sec=audio.duration_sec,
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _structure(
        self,
        features: FeatureVector,
        primary: str,
        structural: Optional[StructuralFeatures],
        duration_sec: float,
        file_name: str,
    ) -> Optional[StructuralAnalysis]:
        if not self.structure_enabled:
            return None
        analyzer = self.structural_analyzer
        try:
            sf = structural or StructuralFeatures.from_vector(features, duration_sec)
            if not analyzer.is_complex(sf):
                logger.debug("%s is not complex, skipping structural analysis", file_name)
                return None
            return analyzer.analyze(features, primary, structural=sf)
        except Exception as exc:
            logger.warning("Structural analysis failed for %s, omitted: %s", file_name, exc)
            return None
