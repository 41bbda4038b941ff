"""Deterministic scene matchers: genre/emotion linkage, audio rules, target scenes."""
from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from cuesense.services.audio.types import FeatureVector
from cuesense.services.scene.types import SceneMatch, SceneSource

LINKAGE_CONFIDENCE = 85
AUDIO_CONFIDENCE = 80
TARGET_CONFIDENCE = 90

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}

# Rule keys → FeatureVector attributes
_FEATURE_ALIASES = {
    "energy": "rms_energy",
    "bpm": "tempo",
}


@dataclass(frozen=True)
class Condition:
    key: str
    op: str
    value: float

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported operator {self.op!r}")

    def holds(self, features: FeatureVector) -> bool:
        actual = getattr(features, _FEATURE_ALIASES.get(self.key, self.key))
        return _OPERATORS[self.op](actual, self.value)


@dataclass(frozen=True)
class SceneRule:
    """A named conjunction of feature comparisons."""
    scene: str
    conditions: Tuple[Condition, ...]
    description: str
    category: str = ""

    def matches(self, features: FeatureVector) -> bool:
        return all(c.holds(features) for c in self.conditions)


def _rule(scene: str, description: str, *conds: Tuple[str, str, float], category: str = "") -> SceneRule:
    return SceneRule(
        scene=scene,
        conditions=tuple(Condition(k, op, v) for k, op, v in conds),
        description=description,
        category=category,
    )


# ── tables ────────────────────────────────────────────────────────────────────

LINKAGE_TABLE: Mapping[str, Mapping[str, Sequence[str]]] = {
    "警匪片": {
        "紧张": ("追逐", "对峙", "潜入"),
        "冷静": ("调查", "潜入"),
        "悲壮": ("埋伏",),
    },
    "推理剧": {
        "冷静": ("调查",),
        "悬疑": ("调查", "对峙"),
    },
    "校园剧": {
        "浪漫": ("回忆闪回",),
        "悲伤": ("回忆闪回",),
    },
    "动作片": {
        "紧张": ("追逐",),
        "激昂": ("追逐",),
    },
}

AUDIO_RULES: Tuple[SceneRule, ...] = (
    _rule("追逐", "高能量+快节奏", ("energy", ">", 0.6), ("bpm", ">", 120)),
    _rule("调查", "低能量+慢节奏", ("energy", "<", 0.5), ("bpm", "<", 110)),
    _rule("对峙", "中等能量+慢节奏", ("energy", ">", 0.5), ("bpm", "<", 100)),
    _rule("回忆闪回", "低能量+中等节奏", ("energy", "<", 0.5), ("bpm", ">", 70)),
)

TARGET_RULES: Tuple[SceneRule, ...] = (
    _rule("法庭场景", "沉稳节奏", ("energy", "<", 0.5), ("bpm", "<", 100), category="courtroom"),
    _rule("审讯场景", "紧张但节奏较慢", ("energy", ">", 0.4), ("bpm", "<", 110), category="interrogation"),
    _rule("办公室场景", "中等节奏", ("energy", "<", 0.5), ("bpm", ">", 80), category="office"),
)


# ── matchers ──────────────────────────────────────────────────────────────────

def match_linkage(
    film_genre: str,
    emotion: str,
    table: Mapping[str, Mapping[str, Sequence[str]]] = LINKAGE_TABLE,
) -> Optional[SceneMatch]:
    """First scene listed for (film genre, primary emotion), if any."""
    scenes = table.get(film_genre, {}).get(emotion)
    if not scenes:
        return None
    scene = scenes[0]
    return SceneMatch(
        scene=scene,
        confidence=LINKAGE_CONFIDENCE,
        source=SceneSource.LINKAGE,
        description=f"基于{film_genre}+{emotion}情绪的联动映射",
        reasoning=f"影视类型\"{film_genre}\"和情绪\"{emotion}\"的组合通常对应场景\"{scene}\"",
    )


def _first_rule(features: FeatureVector, rules: Sequence[SceneRule]) -> Optional[SceneRule]:
    for rule in rules:
        if rule.matches(features):
            return rule
    return None


def match_audio(
    features: FeatureVector,
    rules: Sequence[SceneRule] = AUDIO_RULES,
) -> Optional[SceneMatch]:
    rule = _first_rule(features, rules)
    if rule is None:
        return None
    return SceneMatch(
        scene=rule.scene,
        confidence=AUDIO_CONFIDENCE,
        source=SceneSource.AUDIO,
        description=rule.description,
        reasoning=f"音频特征（{rule.description}）匹配场景\"{rule.scene}\"",
    )


def match_target(
    features: FeatureVector,
    rules: Sequence[SceneRule] = TARGET_RULES,
) -> Optional[SceneMatch]:
    rule = _first_rule(features, rules)
    if rule is None:
        return None
    return SceneMatch(
        scene=rule.scene,
        confidence=TARGET_CONFIDENCE,
        source=SceneSource.TARGET,
        description=rule.description,
        reasoning=f"目标场景\"{rule.scene}\"特征匹配（{rule.description}）",
    )


def rank_candidates(candidates: List[SceneMatch]) -> List[SceneMatch]:
    """Source priority first (target > linkage > audio > llm), then confidence."""
    return sorted(candidates, key=lambda m: (m.source.priority, -m.confidence))
