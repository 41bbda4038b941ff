"""EmotionFusionEngine: reconciles the rule scorer and the LLM judge.

Each source reports an :class:`EmotionSignal` (a result or an error). The
strategy in :func:`fuse_signals` decides the outcome from whichever signals
succeeded:

- both → weighted hybrid
- one → that result unchanged
- none → AggregateFailure
"""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable, List, Optional, Sequence

from cuesense.services.audio.types import FeatureVector
from cuesense.services.emotion.rule_scorer import RuleEmotionScorer
from cuesense.services.emotion.types import (
    DIMENSION_NAMES,
    EmotionMethod,
    EmotionResult,
    EmotionSignal,
    SignalSource,
)
from cuesense.services.llm.judges import LLMEmotionJudge
from cuesense.services.shared.errors import AggregateFailure, JudgeFailure
from cuesense.services.shared.settings import EmotionFusionSettings
from cuesense.services.structure.analyzer import StructuralAnalyzer

logger = logging.getLogger("cuesense.emotion.fusion")

MAX_FUSED_SECONDARY = 5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fuse_results(
    rule: EmotionResult,
    llm: EmotionResult,
    settings: EmotionFusionSettings,
) -> EmotionResult:
    """Weighted merge of two successful results. Ties in confidence go to the LLM."""
    rw, lw = settings.rule_weight, settings.llm_weight

    secondary: List[str] = []
    for name in list(llm.secondary) + list(rule.secondary):
        if name not in secondary:
            secondary.append(name)

    return EmotionResult(
        primary=llm.primary if llm.confidence >= rule.confidence else rule.primary,
        secondary=secondary[:MAX_FUSED_SECONDARY],
        intensity=_round_half_up(llm.intensity * lw + rule.intensity * rw),
        dimensions={
            name: _round_half_up(llm.dimensions.get(name, 0) * lw + rule.dimensions.get(name, 0) * rw)
            for name in DIMENSION_NAMES
        },
        confidence=_round_half_up((llm.confidence * lw + rule.confidence * rw) * 100) / 100,
        method=EmotionMethod.HYBRID,
    )


def fuse_signals(
    signals: Sequence[EmotionSignal],
    settings: EmotionFusionSettings,
) -> EmotionResult:
    """Pick the fusion branch from the set of successful signals.

    Raises:
        AggregateFailure: If no signal succeeded.
    """
    results = {s.source: s.result for s in signals if s.ok}
    rule = results.get(SignalSource.RULE)
    llm = results.get(SignalSource.LLM)

    if rule is not None and llm is not None:
        fused = fuse_results(rule, llm, settings)
        logger.info(
            "Fused emotion: rule=%s llm=%s → %s (%.2f)",
            rule.primary, llm.primary, fused.primary, fused.confidence,
        )
        return fused
    if rule is not None:
        logger.info("Emotion from rule engine only: %s", rule.primary)
        return rule
    if llm is not None:
        logger.info("Emotion from LLM only: %s", llm.primary)
        return llm

    errors = [s.error for s in signals if s.error is not None]
    raise AggregateFailure("emotion", errors)


class EmotionFusionEngine:
    """Runs the rule scorer and LLM judge and fuses what comes back.

    In parallel mode both sources always run. In serial mode a confident
    rule result on a non-complex track is returned without calling the LLM.

    Usage::

        engine = EmotionFusionEngine(scorer, judge, settings.emotion)
        result = await engine.recognize(features, "cue.wav")
    """

    def __init__(
        self,
        rule_scorer: RuleEmotionScorer,
        llm_judge: Optional[LLMEmotionJudge] = None,
        settings: Optional[EmotionFusionSettings] = None,
        complexity: Optional[Callable[[FeatureVector], bool]] = None,
    ):
        self.rule_scorer = rule_scorer
        self.llm_judge = llm_judge
        self.settings = settings or EmotionFusionSettings()
        self.complexity = complexity or StructuralAnalyzer(rule_scorer).is_complex

    async def recognize(self, features: FeatureVector, file_name: str) -> EmotionResult:
        """Raises AggregateFailure when neither source produced a result."""
        if self.settings.parallel:
            return await self._parallel(features, file_name)
        return await self._serial(features, file_name)

    # ── strategies ────────────────────────────────────────────────────────────

    async def _parallel(self, features: FeatureVector, file_name: str) -> EmotionResult:
        rule, llm = await asyncio.gather(
            self._rule_signal(features),
            self._llm_signal(features, file_name),
        )
        return fuse_signals([rule, llm], self.settings)

    async def _serial(self, features: FeatureVector, file_name: str) -> EmotionResult:
        rule = await self._rule_signal(features)
        complex_track = self.settings.enable_complex_detection and self.complexity(features)

        if (
            rule.ok
            and rule.result.confidence >= self.settings.rule_confidence_threshold
            and not complex_track
        ):
            logger.info(
                "Rule confidence %.2f ≥ %.2f for %s, skipping LLM",
                rule.result.confidence, self.settings.rule_confidence_threshold, file_name,
            )
            return rule.result

        logger.debug("Calling LLM for %s (complex=%s)", file_name, complex_track)
        llm = await self._llm_signal(features, file_name)
        return fuse_signals([rule, llm], self.settings)

    # ── sources ───────────────────────────────────────────────────────────────

    async def _rule_signal(self, features: FeatureVector) -> EmotionSignal:
        try:
            return EmotionSignal(SignalSource.RULE, result=self.rule_scorer.recognize(features))
        except Exception as exc:
            logger.warning("Rule engine failed: %s", exc)
            return EmotionSignal(SignalSource.RULE, error=JudgeFailure("rule", str(exc)))

    async def _llm_signal(self, features: FeatureVector, file_name: str) -> EmotionSignal:
        if self.llm_judge is None:
            return EmotionSignal(
                SignalSource.LLM,
                error=JudgeFailure("llm-emotion", "no LLM judge configured"),
            )
        try:
            result = await self.llm_judge.judge(features, file_name)
        except JudgeFailure as exc:
            return EmotionSignal(SignalSource.LLM, error=exc)
        return EmotionSignal(SignalSource.LLM, result=result)
