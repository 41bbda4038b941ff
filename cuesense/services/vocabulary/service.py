"""Vocabulary collaborator: approved terms that constrain LLM answers.

The review workflow that curates these lists lives elsewhere; the engine
only reads them.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from cuesense.services.shared.config import Config

logger = logging.getLogger("cuesense.vocabulary.service")

FALLBACK_EMOTIONS = ["开心", "悲伤", "平静", "激动", "焦虑", "愤怒", "感动", "忧郁"]
FALLBACK_STYLES = ["流行", "古典", "摇滚", "爵士", "电子", "民谣", "说唱", "R&B"]
FALLBACK_INSTRUMENTS = ["钢琴", "吉他", "小提琴", "鼓", "贝斯", "萨克斯", "笛子", "二胡"]
FALLBACK_FILM_GENRES = ["电影", "电视剧", "纪录片", "动画片", "短视频", "广告", "游戏", "MV"]
FALLBACK_SCENES = ["城市", "自然", "室内", "户外", "运动", "浪漫", "悬疑", "搞笑"]


@dataclass(frozen=True)
class Vocabulary:
    """Ordered approved terms per category."""
    emotions: List[str] = field(default_factory=lambda: list(FALLBACK_EMOTIONS))
    scenes: List[str] = field(default_factory=lambda: list(FALLBACK_SCENES))
    styles: List[str] = field(default_factory=lambda: list(FALLBACK_STYLES))
    instruments: List[str] = field(default_factory=lambda: list(FALLBACK_INSTRUMENTS))
    film_genres: List[str] = field(default_factory=lambda: list(FALLBACK_FILM_GENRES))


class VocabularyProvider(ABC):
    """Read-only source of the approved vocabulary."""

    @abstractmethod
    async def get_vocabulary(self) -> Vocabulary:
        """Return the current approved terms."""


class StaticVocabularyProvider(VocabularyProvider):
    """Serves a fixed Vocabulary (configured lists or the built-in fallback).

    Usage::

        provider = StaticVocabularyProvider.from_config(load_config())
        vocab = await provider.get_vocabulary()
    """

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self._vocabulary = vocabulary or Vocabulary()

    @classmethod
    def from_config(cls, config: Config) -> "StaticVocabularyProvider":
        """Empty or missing lists fall back to the built-in terms."""
        def terms(key: str, fallback: List[str]) -> List[str]:
            configured = config.get(f"vocabulary.{key}") or []
            return [str(t) for t in configured] or list(fallback)

        vocabulary = Vocabulary(
            emotions=terms("emotions", FALLBACK_EMOTIONS),
            scenes=terms("scenes", FALLBACK_SCENES),
            styles=terms("styles", FALLBACK_STYLES),
            instruments=terms("instruments", FALLBACK_INSTRUMENTS),
            film_genres=terms("film_genres", FALLBACK_FILM_GENRES),
        )
        logger.debug(
            "Vocabulary: %d emotions, %d scenes",
            len(vocabulary.emotions), len(vocabulary.scenes),
        )
        return cls(vocabulary)

    async def get_vocabulary(self) -> Vocabulary:
        return self._vocabulary
