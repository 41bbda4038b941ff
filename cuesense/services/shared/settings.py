"""Typed engine settings materialised from the YAML config.

Every hand-tuned constant the engine uses lives here so it can be changed
from settings.yaml (or in a test) without touching algorithm code.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from cuesense.services.shared.config import Config

_DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o-mini",
}


@dataclass(frozen=True)
class LLMSettings:
    provider: str = "anthropic"          # "anthropic" | "openai"
    model: str = _DEFAULT_MODELS["anthropic"]
    base_url: Optional[str] = None       # OpenAI-compatible local server
    temperature: float = 0.3
    max_tokens: int = 1024
    streaming: bool = True
    timeout: float = 60.0
    max_concurrent: int = 5
    max_retries: int = 3
    retry_delay_sec: float = 1.0
    cache_ttl_sec: float = 300.0
    cache_max_entries: int = 1000

    @classmethod
    def from_config(cls, config: Config) -> "LLMSettings":
        provider = config.get_env("LLM_PROVIDER") or config.get("llm.provider", cls.provider)
        provider = str(provider).lower()
        model = config.get(f"llm.{provider}_model") or _DEFAULT_MODELS.get(provider, cls.model)
        return cls(
            provider=provider,
            model=model,
            base_url=config.get("llm.base_url"),
            temperature=float(config.get("llm.temperature", cls.temperature)),
            max_tokens=int(config.get("llm.max_tokens", cls.max_tokens)),
            streaming=bool(config.get("llm.streaming", cls.streaming)),
            timeout=float(config.get("llm.timeout", cls.timeout)),
            max_concurrent=int(config.get("llm.max_concurrent", cls.max_concurrent)),
            max_retries=int(config.get("llm.max_retries", cls.max_retries)),
            retry_delay_sec=float(config.get("llm.retry_delay_sec", cls.retry_delay_sec)),
            cache_ttl_sec=float(config.get("llm.cache_ttl_sec", cls.cache_ttl_sec)),
            cache_max_entries=int(config.get("llm.cache_max_entries", cls.cache_max_entries)),
        )


@dataclass(frozen=True)
class ScorerSettings:
    """Rule scorer constants. ``amplification`` can push scores above 1.0."""
    tolerance_factor: float = 1.5
    amplification: float = 1.1
    min_score: float = 0.25
    secondary_count: int = 5
    centroid_norm_hz: float = 4000.0
    flux_norm: float = 2000.0

    @classmethod
    def from_config(cls, config: Config) -> "ScorerSettings":
        return cls(
            tolerance_factor=float(config.get("emotion.tolerance_factor", cls.tolerance_factor)),
            amplification=float(config.get("emotion.amplification", cls.amplification)),
            min_score=float(config.get("emotion.min_score", cls.min_score)),
            secondary_count=int(config.get("emotion.secondary_count", cls.secondary_count)),
        )


@dataclass(frozen=True)
class EmotionFusionSettings:
    rule_weight: float = 0.3
    llm_weight: float = 0.7
    rule_confidence_threshold: float = 0.7
    parallel: bool = True
    enable_complex_detection: bool = True

    @classmethod
    def from_config(cls, config: Config) -> "EmotionFusionSettings":
        return cls(
            rule_weight=float(config.get("emotion.rule_weight", cls.rule_weight)),
            llm_weight=float(config.get("emotion.llm_weight", cls.llm_weight)),
            rule_confidence_threshold=float(
                config.get("emotion.rule_confidence_threshold", cls.rule_confidence_threshold)
            ),
            parallel=bool(config.get("emotion.parallel", cls.parallel)),
            enable_complex_detection=bool(
                config.get("emotion.enable_complex_detection", cls.enable_complex_detection)
            ),
        )


@dataclass(frozen=True)
class SceneFusionSettings:
    """Thresholds are fractions (0-1) compared against 0-100 confidences."""
    linkage_threshold: float = 0.8
    audio_threshold: float = 0.75
    target_threshold: float = 0.8
    min_confidence: int = 60
    enable_llm: bool = True
    enable_target_priority: bool = True

    @classmethod
    def from_config(cls, config: Config) -> "SceneFusionSettings":
        return cls(
            linkage_threshold=float(config.get("scene.linkage_threshold", cls.linkage_threshold)),
            audio_threshold=float(config.get("scene.audio_threshold", cls.audio_threshold)),
            target_threshold=float(config.get("scene.target_threshold", cls.target_threshold)),
            min_confidence=int(config.get("scene.min_confidence", cls.min_confidence)),
            enable_llm=bool(config.get("scene.enable_llm", cls.enable_llm)),
            enable_target_priority=bool(
                config.get("scene.enable_target_priority", cls.enable_target_priority)
            ),
        )


@dataclass(frozen=True)
class EngineSettings:
    llm: LLMSettings = field(default_factory=LLMSettings)
    scorer: ScorerSettings = field(default_factory=ScorerSettings)
    emotion: EmotionFusionSettings = field(default_factory=EmotionFusionSettings)
    scene: SceneFusionSettings = field(default_factory=SceneFusionSettings)
    structure_enabled: bool = True

    @classmethod
    def from_config(cls, config: Config) -> "EngineSettings":
        return cls(
            llm=LLMSettings.from_config(config),
            scorer=ScorerSettings.from_config(config),
            emotion=EmotionFusionSettings.from_config(config),
            scene=SceneFusionSettings.from_config(config),
            structure_enabled=bool(config.get("structure.enabled", True)),
        )
