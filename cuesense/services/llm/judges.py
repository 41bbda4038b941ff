"""LLM judges: contextual emotion and scene classification.

Each judge renders a prompt constrained by the approved vocabulary, sends it
through the shared LLMCallLayer and validates the JSON reply. Response
parsing happens inside the request function, so a malformed reply is
retried and never cached. Any failure surfaces as JudgeFailure.
"""
from __future__ import annotations

import logging
from typing import Optional

from cuesense.services.audio.types import FeatureVector
from cuesense.services.emotion.types import EmotionMethod, EmotionResult
from cuesense.services.llm.call_layer import LLMCallLayer, RequestKey
from cuesense.services.llm.payloads import EmotionPayload, ScenePayload, extract_json
from cuesense.services.llm.providers import LLMClient
from cuesense.services.scene.types import SceneMatch, SceneSource
from cuesense.services.shared.errors import JudgeFailure
from cuesense.services.vocabulary.service import StaticVocabularyProvider, VocabularyProvider

logger = logging.getLogger("cuesense.llm.judges")


class _Judge:
    """Shared plumbing: vocabulary lookup, cache key, guarded call."""

    SOURCE = "llm"

    def __init__(
        self,
        client: LLMClient,
        call_layer: LLMCallLayer,
        vocabulary: Optional[VocabularyProvider] = None,
    ):
        self.client = client
        self.call_layer = call_layer
        self.vocabulary = vocabulary or StaticVocabularyProvider()

    def _key(self, system: str, prompt: str) -> RequestKey:
        return RequestKey.build(
            self.client.model,
            f"{system}\n{prompt}",
            self.client.temperature,
            self.client.max_tokens,
        )

    async def _ask(self, system: str, prompt: str, payload_type, file_name: str):
        async def request():
            text = await self.client.complete(system, prompt)
            return payload_type.model_validate(extract_json(text))

        try:
            return await self.call_layer.call(self._key(system, prompt), request)
        except Exception as exc:
            logger.warning("%s judge failed for %s: %s", self.SOURCE, file_name, exc)
            raise JudgeFailure(self.SOURCE, str(exc)) from exc


class LLMEmotionJudge(_Judge):
    """Asks the LLM for ``{primary, secondary, intensity, dimensions, confidence}``.

    Usage::

        judge = LLMEmotionJudge(client, call_layer, vocabulary_provider)
        result = await judge.judge(features, "cue_07.wav")   # method=llm-only
    """

    SOURCE = "llm-emotion"

    async def judge(self, features: FeatureVector, file_name: str) -> EmotionResult:
        try:
            vocab = await self.vocabulary.get_vocabulary()
        except Exception as exc:
            raise JudgeFailure(self.SOURCE, f"vocabulary unavailable: {exc}") from exc

        system = self._system_prompt(vocab.emotions)
        prompt = self._user_prompt(features, file_name)
        payload: EmotionPayload = await self._ask(system, prompt, EmotionPayload, file_name)

        logger.debug("LLM emotion for %s: %s (%.2f)", file_name, payload.primary, payload.confidence)
        return EmotionResult(
            primary=payload.primary,
            secondary=list(payload.secondary),
            intensity=payload.intensity,
            dimensions=dict(payload.dimensions),
            confidence=payload.confidence,
            method=EmotionMethod.LLM_ONLY,
        )

    # ── prompts ───────────────────────────────────────────────────────────────

    @staticmethod
    def _system_prompt(emotions) -> str:
        return f"""你是一位专业的音乐情绪分析专家。请根据提供的音频特征，精准识别音乐的情绪特征。

【标准情绪词库】
{'、'.join(emotions)}

【分析要求】
1. 优先使用标准词库中的词汇
2. 识别主情绪（最突出的情绪）和辅助情绪（次要情绪）
3. 评估情绪强度（1-10，10为最强烈）
4. 给出情绪维度评分（0-10）
5. 判断置信度（0-1）

【输出格式】（JSON）
{{
  "primary": "主情绪",
  "secondary": ["辅助情绪1", "辅助情绪2"],
  "intensity": 7,
  "dimensions": {{"happiness": 6, "sadness": 2, "tension": 4, "romance": 3, "epic": 5}},
  "confidence": 0.85
}}"""

    @staticmethod
    def _user_prompt(features: FeatureVector, file_name: str) -> str:
        return f"""请分析以下音频特征：

文件名：{file_name}

【节奏特征】
BPM（估算）：{features.tempo:.1f}
节奏强度：{features.rhythm_strength:.2f}

【频谱特征】
低频比例：{features.low_freq_energy:.2f}
中频比例：{features.mid_freq_energy:.2f}
高频比例：{features.high_freq_energy:.2f}

【能量特征】
均方根能量：{features.rms_energy:.2f}

【音色特征】
频谱重心：{features.spectral_centroid:.2f}
频谱波动：{features.spectral_flux:.2f}
谐波比：{features.harmonic_ratio:.2f}
过零率：{features.zero_crossing_rate:.2f}

请返回JSON格式的情绪分析结果。"""


class LLMSceneJudge(_Judge):
    """Asks the LLM for ``{scene, confidence, description, reasoning}`` (confidence 0-100)."""

    SOURCE = "llm-scene"

    async def judge(
        self,
        features: FeatureVector,
        film_genre: str,
        emotion: str,
        file_name: str,
    ) -> SceneMatch:
        try:
            vocab = await self.vocabulary.get_vocabulary()
        except Exception as exc:
            raise JudgeFailure(self.SOURCE, f"vocabulary unavailable: {exc}") from exc

        system = self._system_prompt(vocab.scenes)
        prompt = self._user_prompt(features, film_genre, emotion, file_name)
        payload: ScenePayload = await self._ask(system, prompt, ScenePayload, file_name)

        return SceneMatch(
            scene=payload.scene,
            confidence=payload.confidence,
            source=SceneSource.LLM,
            description=payload.description,
            reasoning=payload.reasoning,
        )

    @staticmethod
    def _system_prompt(scenes) -> str:
        return f"""你是一位专业的影视音乐场景分析专家。请根据提供的音频特征和情绪分析，精准识别音乐适合的影视场景。

【标准场景词库】
{'、'.join(scenes)}

【分析要求】
1. 优先使用标准词库中的场景词
2. 结合音频特征、影视类型、情绪进行综合判断
3. 给出置信度（0-100）
4. 说明推理过程

【输出格式】（JSON）
{{
  "scene": "场景名称",
  "confidence": 85,
  "description": "场景描述",
  "reasoning": "推理过程"
}}"""

    @staticmethod
    def _user_prompt(features: FeatureVector, film_genre: str, emotion: str, file_name: str) -> str:
        return f"""请分析以下音乐适合的影视场景：

文件名：{file_name}
影视类型：{film_genre}
主情绪：{emotion}

【音频特征】
BPM（估算）：{features.tempo:.1f}
能量值（均方根）：{features.rms_energy:.2f}
频谱重心：{features.spectral_centroid:.2f}
频谱波动：{features.spectral_flux:.2f}
低频比例：{features.low_freq_energy:.2f}
中频比例：{features.mid_freq_energy:.2f}
高频比例：{features.high_freq_energy:.2f}

请返回JSON格式的场景识别结果。"""
