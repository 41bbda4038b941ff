"""StructuralAnalyzer: complexity gate, segmentation and emotional trajectory.

Heuristic, not a beat-accurate section detector: boundaries are fixed
percentages and per-segment values are the track values scaled by fixed
multipliers. Segment moods come from the rule scorer run on the scaled
features.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple, Union

from cuesense.services.audio.types import FeatureVector
from cuesense.services.emotion.rule_scorer import RuleEmotionScorer
from cuesense.services.structure.types import (
    DynamicLevel,
    DynamicRangeSummary,
    EmotionalTrajectory,
    EmotionalTransition,
    Orchestration,
    SegmentAnalysis,
    SegmentFeatures,
    SegmentMood,
    SegmentName,
    Smoothness,
    StructuralAnalysis,
    StructuralFeatures,
    TimeRange,
    TrajectoryPoint,
    Trend,
)

logger = logging.getLogger("cuesense.structure.analyzer")

TrackFeatures = Union[FeatureVector, StructuralFeatures]

# (segment, start %, end %, bpm ×, energy ×, complexity ×, dB offset × range)
_SegmentPlan = Tuple[SegmentName, float, float, float, float, float, float]

_FOUR_PART: Tuple[_SegmentPlan, ...] = (
    (SegmentName.INTRO, 0, 15, 0.9, 0.6, 0.7, -0.3),
    (SegmentName.DEVELOPMENT, 15, 50, 1.0, 0.8, 1.0, 0.0),
    (SegmentName.CLIMAX, 50, 85, 1.1, 1.0, 1.2, 0.3),
    (SegmentName.OUTRO, 85, 100, 0.8, 0.5, 0.6, -0.2),
)

_TWO_PART: Tuple[_SegmentPlan, ...] = (
    (SegmentName.INTRO, 0, 40, 0.95, 0.8, 1.0, 0.0),
    (SegmentName.DEVELOPMENT, 40, 100, 1.0, 1.0, 1.0, 0.0),
)

# Upper dB bound (exclusive) per level; anything louder is ff
_DYNAMIC_THRESHOLDS: Tuple[Tuple[float, DynamicLevel], ...] = (
    (50, DynamicLevel.PP),
    (65, DynamicLevel.P),
    (75, DynamicLevel.MP),
    (85, DynamicLevel.MF),
    (95, DynamicLevel.F),
)


def dynamic_level(db: float) -> DynamicLevel:
    for bound, level in _DYNAMIC_THRESHOLDS:
        if db < bound:
            return level
    return DynamicLevel.FF


def _structural(features: TrackFeatures) -> StructuralFeatures:
    if isinstance(features, StructuralFeatures):
        return features
    return StructuralFeatures.from_vector(features)


class StructuralAnalyzer:
    """Segments complex tracks and derives their emotional trajectory.

    Usage::

        sa = StructuralAnalyzer(rule_scorer)
        if sa.is_complex(features):
            analysis = sa.analyze(features, track_primary="史诗")
    """

    #: Predicate thresholds
    COMPLEX_DYNAMIC_RANGE = 30.0
    COMPLEX_TEXTURE = 6.0
    COMPLEX_RHYTHM = 6.0
    COMPLEX_HIGH_FREQ = 6.0

    #: Dynamic range above which a climax is assumed (4 segments)
    CLIMAX_DYNAMIC_RANGE = 40.0

    CLIMAX_WEIGHT = 1.5
    PRIMARY_WEIGHT = 2.0
    DEFAULT_SEGMENT_INTENSITY = 4
    SEGMENT_SECONDARY_COUNT = 2

    def __init__(self, rule_scorer: Optional[RuleEmotionScorer] = None):
        self.rule_scorer = rule_scorer or RuleEmotionScorer()

    # ── public ────────────────────────────────────────────────────────────────

    def is_complex(self, features: TrackFeatures) -> bool:
        sf = _structural(features)
        return (
            sf.dynamics_range > self.COMPLEX_DYNAMIC_RANGE
            or sf.texture_density > self.COMPLEX_TEXTURE
            or sf.texture_layering > self.COMPLEX_TEXTURE
            or sf.rhythm_complexity > self.COMPLEX_RHYTHM
            or sf.freq_high > self.COMPLEX_HIGH_FREQ
        )

    def segment(self, features: TrackFeatures) -> List[SegmentAnalysis]:
        """Split into 4 segments when a climax is likely, else 2. Moods are left empty."""
        sf = _structural(features)
        plan = _FOUR_PART if sf.dynamics_range > self.CLIMAX_DYNAMIC_RANGE else _TWO_PART
        segments: List[SegmentAnalysis] = []
        for name, start, end, bpm_x, energy_x, complexity_x, db_x in plan:
            segments.append(SegmentAnalysis(
                segment=name,
                time_range=TimeRange(start=start, end=end),
                mood=SegmentMood(),
                features=SegmentFeatures(
                    bpm=sf.bpm * bpm_x,
                    dynamics=dynamic_level(sf.dynamics_average + sf.dynamics_range * db_x),
                    energy=sf.energy * energy_x,
                    complexity=sf.rhythm_complexity * complexity_x,
                ),
            ))
        return segments

    def analyze(
        self,
        features: FeatureVector,
        track_primary: str = "",
        structural: Optional[StructuralFeatures] = None,
        duration_sec: float = 0.0,
    ) -> StructuralAnalysis:
        """Full multi-segment analysis. Callers gate on :meth:`is_complex` first."""
        sf = structural or StructuralFeatures.from_vector(features, duration_sec)
        segments = self.segment(sf)
        for seg in segments:
            seg.mood = self._segment_mood(features, seg, track_primary)

        trajectory = self.trajectory(segments)
        logger.debug(
            "Structure: %d segments, dominant=%s",
            len(segments), trajectory.primary,
        )
        return StructuralAnalysis(
            segments=segments,
            trajectory=trajectory,
            dominant_emotion=trajectory.primary,
            orchestration=self.orchestration(sf),
            dynamic_range=self.dynamic_range(sf),
        )

    def dominant_emotion(self, segments: Sequence[SegmentAnalysis]) -> str:
        """Accumulate intensity × weight per emotion; primaries count double."""
        scores: Dict[str, float] = {}
        for seg in segments:
            weight = self.CLIMAX_WEIGHT if seg.segment == SegmentName.CLIMAX else 1.0
            intensity = seg.mood.intensity or self.DEFAULT_SEGMENT_INTENSITY
            if seg.mood.primary:
                scores[seg.mood.primary] = (
                    scores.get(seg.mood.primary, 0.0) + intensity * weight * self.PRIMARY_WEIGHT
                )
            for emotion in seg.mood.secondary:
                scores[emotion] = scores.get(emotion, 0.0) + intensity * weight
        if not scores:
            return ""
        # max() keeps the first of equal scores, i.e. the earliest seen
        return max(scores, key=lambda name: scores[name])

    def trajectory(self, segments: Sequence[SegmentAnalysis]) -> EmotionalTrajectory:
        points: List[TrajectoryPoint] = []
        transitions: List[EmotionalTransition] = []
        for index, seg in enumerate(segments):
            trend = Trend.STABLE
            if index > 0:
                prev = segments[index - 1]
                if seg.mood.intensity > prev.mood.intensity:
                    trend = Trend.UP
                elif seg.mood.intensity < prev.mood.intensity:
                    trend = Trend.DOWN
                transitions.append(EmotionalTransition(
                    from_emotion=prev.mood.primary,
                    to_emotion=seg.mood.primary,
                    position=seg.time_range.start,
                    smoothness=_smoothness(abs(seg.mood.intensity - prev.mood.intensity)),
                ))
            points.append(TrajectoryPoint(
                phase=seg.segment,
                emotion=seg.mood.primary,
                intensity=seg.mood.intensity,
                trend=trend,
            ))
        return EmotionalTrajectory(
            primary=self.dominant_emotion(segments),
            trajectory=points,
            transitions=transitions,
        )

    @staticmethod
    def orchestration(sf: StructuralFeatures) -> Orchestration:
        if sf.texture_layering < 5:
            complexity = "simple"
        elif sf.texture_layering < 8:
            complexity = "moderate"
        else:
            complexity = "complex"

        primary: List[str] = []
        if sf.freq_high > 7:
            primary.append("铜管")
        elif sf.freq_mid > 7:
            primary.append("弦乐")
        elif sf.freq_low > 7:
            primary.append("低音提琴")

        secondary: List[str] = []
        if sf.warmth > 6:
            secondary.append("木管")
        if sf.rhythm_complexity > 6:
            secondary.append("打击乐")
        return Orchestration(primary=primary, secondary=secondary, complexity=complexity)

    @staticmethod
    def dynamic_range(sf: StructuralFeatures) -> DynamicRangeSummary:
        if sf.dynamics_range < 20:
            size = "small"
        elif sf.dynamics_range < 40:
            size = "medium"
        else:
            size = "large"
        return DynamicRangeSummary(
            min=dynamic_level(sf.dynamics_average - sf.dynamics_range / 2),
            max=dynamic_level(sf.dynamics_average + sf.dynamics_range / 2),
            range=size,
        )

    # ── internal ──────────────────────────────────────────────────────────────

    def _segment_mood(
        self,
        features: FeatureVector,
        seg: SegmentAnalysis,
        track_primary: str,
    ) -> SegmentMood:
        tempo = seg.features.bpm if seg.features.bpm > 0 else features.tempo
        scaled = replace(features, tempo=tempo, rms_energy=seg.features.energy)
        ranking = self.rule_scorer.score(scaled)
        intensity = seg.features.dynamics.intensity
        if not ranking:
            return SegmentMood(primary=track_primary, secondary=[], intensity=intensity)
        return SegmentMood(
            primary=ranking[0].emotion,
            secondary=[s.emotion for s in ranking[1:1 + self.SEGMENT_SECONDARY_COUNT]],
            intensity=intensity,
        )


def _smoothness(delta: int) -> Smoothness:
    if delta <= 1:
        return Smoothness.SMOOTH
    if delta <= 2:
        return Smoothness.GRADUAL
    return Smoothness.ABRUPT
