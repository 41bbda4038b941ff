"""SceneFusionEngine: reconciles four scene-matching dimensions into one pick."""
from __future__ import annotations

import logging
from typing import List, Optional

from cuesense.services.audio.types import FeatureVector
from cuesense.services.llm.judges import LLMSceneJudge
from cuesense.services.scene.rules import match_audio, match_linkage, match_target, rank_candidates
from cuesense.services.scene.types import UNRECOGNIZED_SCENE, SceneMatch, SceneSource
from cuesense.services.shared.errors import JudgeFailure
from cuesense.services.shared.settings import SceneFusionSettings

logger = logging.getLogger("cuesense.scene.fusion")


def unrecognized_scene() -> SceneMatch:
    return SceneMatch(
        scene=UNRECOGNIZED_SCENE,
        confidence=0,
        source=SceneSource.HYBRID,
        description="所有维度均未匹配到合适场景",
        reasoning="音频特征、类型情绪联动、目标场景等维度均未达到匹配阈值",
    )


class SceneFusionEngine:
    """Runs the linkage, audio-rule, target-scene and LLM matchers and picks one.

    Each rule matcher's candidate must clear its own threshold (a fraction of
    100). Every surviving candidate must then clear ``min_confidence``. The
    winner is chosen by source priority, confidence breaking ties. An LLM
    failure just removes that candidate.

    Usage::

        engine = SceneFusionEngine(scene_judge, settings.scene)
        match = await engine.recognize(features, "警匪片", "紧张", "cue.wav")
    """

    def __init__(
        self,
        llm_judge: Optional[LLMSceneJudge] = None,
        settings: Optional[SceneFusionSettings] = None,
    ):
        self.llm_judge = llm_judge
        self.settings = settings or SceneFusionSettings()

    async def recognize(
        self,
        features: FeatureVector,
        film_genre: str,
        emotion: str,
        file_name: str,
    ) -> SceneMatch:
        candidates = await self.candidates(features, film_genre, emotion, file_name)
        valid = [c for c in candidates if c.confidence >= self.settings.min_confidence]
        if not valid:
            logger.info("No scene candidate survived for %s", file_name)
            return unrecognized_scene()

        best = rank_candidates(valid)[0]
        logger.info(
            "Scene for %s: %s (%s, %d) from %d candidate(s)",
            file_name, best.scene, best.source.value, best.confidence, len(valid),
        )
        return best

    async def candidates(
        self,
        features: FeatureVector,
        film_genre: str,
        emotion: str,
        file_name: str,
    ) -> List[SceneMatch]:
        """Candidates that cleared their per-dimension threshold, unranked."""
        s = self.settings
        found: List[SceneMatch] = []

        def admit(match: Optional[SceneMatch], threshold: float) -> None:
            if match is not None and match.confidence >= threshold * 100:
                found.append(match)
                logger.debug("Scene candidate (%s): %s", match.source.value, match.scene)

        admit(match_linkage(film_genre, emotion), s.linkage_threshold)
        admit(match_audio(features), s.audio_threshold)
        if s.enable_target_priority:
            admit(match_target(features), s.target_threshold)

        if s.enable_llm and self.llm_judge is not None:
            try:
                found.append(await self.llm_judge.judge(features, film_genre, emotion, file_name))
            except JudgeFailure as exc:
                logger.warning("LLM scene candidate dropped for %s: %s", file_name, exc)

        return found
