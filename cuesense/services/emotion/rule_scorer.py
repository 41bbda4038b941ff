"""RuleEmotionScorer: weighted distance matching of features against profiles.

Every profile constrains a subset of features. Each constrained feature gets
``max(0, 1 - |actual - target| / norm * tolerance)``; the per-profile score is
the mean of those similarities times the profile weight and a fixed
amplification. Scores can therefore exceed 1.0 and are reported unclamped.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Tuple

from cuesense.services.audio.types import FeatureVector
from cuesense.services.emotion.profiles import ProfileCatalogue, default_catalogue
from cuesense.services.emotion.types import (
    UNRECOGNIZED_EMOTION,
    EmotionMethod,
    EmotionProfile,
    EmotionResult,
    ScoredEmotion,
    empty_dimensions,
)
from cuesense.services.shared.settings import ScorerSettings

logger = logging.getLogger("cuesense.emotion.rule_scorer")

# (profile field, feature field, normaliser). A normaliser of None divides by 1;
# tempo is normalised by the track's own tempo.
_Normaliser = Optional[Callable[[FeatureVector, ScorerSettings], float]]

_DIMENSIONS: Tuple[Tuple[str, str, _Normaliser], ...] = (
    ("energy", "rms_energy", None),
    ("low_freq", "low_freq_energy", None),
    ("mid_freq", "mid_freq_energy", None),
    ("high_freq", "high_freq_energy", None),
    ("tempo", "tempo", lambda fv, s: fv.tempo),
    ("rhythm_strength", "rhythm_strength", None),
    ("spectral_centroid", "spectral_centroid", lambda fv, s: s.centroid_norm_hz),
    ("spectral_flux", "spectral_flux", lambda fv, s: s.flux_norm),
    ("harmonic_ratio", "harmonic_ratio", None),
)


def rule_intensity(features: FeatureVector, flux_norm: float = 2000.0) -> int:
    """Map loudness, rhythm and spectral movement to a 1-10 intensity."""
    energy = min(features.rms_energy * 2.0, 1.0)
    flux = min(features.spectral_flux / flux_norm, 1.0)
    raw = energy * 0.5 + features.rhythm_strength * 0.3 + flux * 0.2
    return max(1, min(10, int(round(raw * 10))))


class RuleEmotionScorer:
    """Scores every catalogue profile against one feature vector.

    Deterministic and free of I/O. Pass a synthetic catalogue to test the
    matching algorithm independently of the shipped data.

    Usage::

        scorer = RuleEmotionScorer()
        ranking = scorer.score(features)       # [ScoredEmotion, ...]
        result = scorer.recognize(features)    # EmotionResult, method=rule-only
    """

    def __init__(
        self,
        catalogue: Optional[ProfileCatalogue] = None,
        settings: Optional[ScorerSettings] = None,
    ):
        self.catalogue = catalogue if catalogue is not None else default_catalogue()
        self.settings = settings or ScorerSettings()

    # ── public ────────────────────────────────────────────────────────────────

    def profile_score(self, features: FeatureVector, profile: EmotionProfile) -> float:
        """Amplified match score of one profile; 0.0 if it constrains nothing."""
        total = 0.0
        active = 0
        for profile_field, feature_field, normaliser in _DIMENSIONS:
            target = getattr(profile, profile_field)
            if target is None:
                continue
            norm = normaliser(features, self.settings) if normaliser else 1.0
            diff = abs(getattr(features, feature_field) - target) / norm
            total += max(0.0, 1.0 - diff * self.settings.tolerance_factor)
            active += 1

        if active == 0:
            return 0.0
        return (total / active) * profile.weight * self.settings.amplification

    def score(
        self,
        features: FeatureVector,
        profiles: Optional[Iterable[EmotionProfile]] = None,
    ) -> List[ScoredEmotion]:
        """Rank profiles above the score floor, best first.

        Ties keep catalogue order.
        """
        source = self.catalogue if profiles is None else profiles
        scored: List[ScoredEmotion] = []
        for profile in source:
            value = self.profile_score(features, profile)
            if value > self.settings.min_score:
                scored.append(ScoredEmotion(emotion=profile.name, score=value))
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored

    def recognize(self, features: FeatureVector) -> EmotionResult:
        """Rule-only EmotionResult: top profile plus the next few as secondaries."""
        ranking = self.score(features)
        intensity = rule_intensity(features, self.settings.flux_norm)

        if not ranking:
            logger.debug("No profile cleared the score floor of %.2f", self.settings.min_score)
            return EmotionResult(
                primary=UNRECOGNIZED_EMOTION,
                secondary=[],
                intensity=intensity,
                dimensions=empty_dimensions(),
                confidence=0.0,
                method=EmotionMethod.RULE_ONLY,
            )

        secondary = [s.emotion for s in ranking[1:1 + self.settings.secondary_count]]
        logger.debug(
            "Rule match: %s (%.3f) over %d candidates",
            ranking[0].emotion, ranking[0].score, len(ranking),
        )
        return EmotionResult(
            primary=ranking[0].emotion,
            secondary=secondary,
            intensity=intensity,
            dimensions=empty_dimensions(),
            confidence=ranking[0].score,
            method=EmotionMethod.RULE_ONLY,
        )
