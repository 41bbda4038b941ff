"""Deterministic style and instrument tags derived from acoustic features."""
from __future__ import annotations

from typing import Callable, List, Tuple

from cuesense.services.audio.types import FeatureVector

DEFAULT_STYLE = "流行"
MAX_INSTRUMENTS = 5

# First match wins.
_STYLE_RULES: Tuple[Tuple[str, Callable[[FeatureVector], bool]], ...] = (
    ("古典", lambda f: f.harmonic_ratio > 0.7 and f.spectral_centroid < 2000),
    ("流行", lambda f: f.mid_freq_energy > 0.4 and f.harmonic_ratio > 0.6 and f.tempo < 120),
    ("电子", lambda f: f.high_freq_energy > 0.45 and f.spectral_flux > 800 and f.tempo > 120),
    ("摇滚", lambda f: f.rms_energy > 0.5 and f.spectral_flux > 600 and f.low_freq_energy > 0.35),
    ("爵士", lambda f: f.mid_freq_energy > 0.35 and f.harmonic_ratio > 0.5 and f.spectral_centroid < 1500),
    ("民谣", lambda f: f.harmonic_ratio > 0.6 and f.rms_energy < 0.35 and f.tempo < 100),
    ("嘻哈", lambda f: f.rhythm_strength > 0.6 and f.mid_freq_energy > 0.35),
)

_INSTRUMENT_RULES: Tuple[Tuple[Callable[[FeatureVector], bool], Tuple[str, ...]], ...] = (
    (lambda f: f.low_freq_energy > 0.4, ("钢琴", "大提琴", "贝斯")),
    (lambda f: f.mid_freq_energy > 0.4, ("吉他", "小提琴", "萨克斯")),
    (lambda f: f.high_freq_energy > 0.4, ("长笛", "小号", "人声")),
    (lambda f: f.rhythm_strength > 0.6, ("鼓", "贝斯")),
)


def identify_style(features: FeatureVector) -> str:
    for style, predicate in _STYLE_RULES:
        if predicate(features):
            return style
    return DEFAULT_STYLE


def recommend_instruments(features: FeatureVector) -> List[str]:
    """Up to five instruments suggested by band energy and rhythm, deduplicated."""
    instruments: List[str] = []
    for predicate, names in _INSTRUMENT_RULES:
        if predicate(features):
            instruments.extend(n for n in names if n not in instruments)
    return instruments[:MAX_INSTRUMENTS]
