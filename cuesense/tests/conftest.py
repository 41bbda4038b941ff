"""Shared test fixtures for CueSense."""
import asyncio
import json
import shutil
import tempfile
from pathlib import Path
from typing import Generator, List, Optional, Union

import pytest
import yaml

from cuesense.services.audio.types import FeatureVector
from cuesense.services.emotion.profiles import ProfileCatalogue
from cuesense.services.emotion.types import EmotionProfile
from cuesense.services.llm.providers import LLMClient


@pytest.fixture(scope="session")
def project_root() -> Path:
    return Path(__file__).parent.parent.parent


@pytest.fixture
def tmp_dir() -> Generator[Path, None, None]:
    d = Path(tempfile.mkdtemp())
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def sample_settings(tmp_dir: Path) -> Path:
    """Write a minimal settings.yaml to a temp dir and return its path."""
    settings = {
        "llm": {
            "provider": "openai",
            "anthropic_model": "claude-test",
            "openai_model": "gpt-test",
            "base_url": "http://localhost:8000/v1",
            "temperature": 0.2,
            "max_tokens": 512,
            "streaming": False,
            "max_concurrent": 2,
            "max_retries": 2,
            "retry_delay_sec": 0.0,
            "cache_ttl_sec": 60,
            "cache_max_entries": 10,
        },
        "emotion": {
            "rule_weight": 0.4,
            "llm_weight": 0.6,
            "rule_confidence_threshold": 0.8,
            "parallel": False,
            "amplification": 1.0,
        },
        "scene": {"min_confidence": 70, "enable_llm": False},
        "structure": {"enabled": False},
        "vocabulary": {"emotions": ["紧张", "浪漫"], "scenes": []},
        "logging": {"level": "DEBUG", "file": str(tmp_dir / "test.log")},
    }
    cfg_path = tmp_dir / "settings.yaml"
    cfg_path.write_text(yaml.dump(settings, allow_unicode=True), encoding="utf-8")
    return cfg_path


# ─────────────────────────────────────────────────────────────────────────────
# Feature fixtures
# ─────────────────────────────────────────────────────────────────────────────


def make_features(**overrides) -> FeatureVector:
    """A mid-everything feature vector with selected fields overridden."""
    values = dict(
        spectral_centroid=2000.0,
        spectral_rolloff=4000.0,
        spectral_flux=800.0,
        rms_energy=0.6,
        low_freq_energy=0.3,
        mid_freq_energy=0.4,
        high_freq_energy=0.4,
        tempo=130.0,
        rhythm_strength=0.7,
        zero_crossing_rate=0.05,
        harmonic_ratio=0.65,
    )
    values.update(overrides)
    return FeatureVector(**values)


@pytest.fixture
def energetic_features() -> FeatureVector:
    """Fast, loud, bright: the cheerful/energetic reference track."""
    return make_features()


@pytest.fixture
def calm_features() -> FeatureVector:
    """Quiet, slow, steady: no climax, not complex."""
    return make_features(
        spectral_centroid=1200.0,
        spectral_flux=300.0,
        rms_energy=0.3,
        low_freq_energy=0.2,
        mid_freq_energy=0.65,
        high_freq_energy=0.15,
        tempo=90.0,
        rhythm_strength=0.3,
        harmonic_ratio=0.75,
    )


@pytest.fixture
def tiny_catalogue() -> ProfileCatalogue:
    """Three synthetic profiles with easy-to-reason-about targets."""
    return ProfileCatalogue.from_profiles(
        [
            EmotionProfile(name="loud", energy=0.8),
            EmotionProfile(name="quiet", energy=0.2),
            EmotionProfile(name="fast", tempo=140.0, rhythm_strength=0.8),
        ],
        version="test",
    )


# ─────────────────────────────────────────────────────────────────────────────
# LLM client fake
# ─────────────────────────────────────────────────────────────────────────────


class FakeLLMClient(LLMClient):
    """Scripted LLMClient that records every call.

    ``replies`` is consumed in order; the last reply repeats. A reply that is
    an exception instance is raised instead of returned. ``emotion_reply`` and
    ``scene_reply`` answer by prompt type and take precedence over ``replies``.
    """

    def __init__(
        self,
        replies: Optional[List[Union[str, dict, Exception]]] = None,
        emotion_reply: Optional[dict] = None,
        scene_reply: Optional[dict] = None,
        delay: float = 0.0,
    ):
        super().__init__("fake-model", temperature=0.3, max_tokens=1024, streaming=False)
        self.replies = list(replies or [])
        self.emotion_reply = emotion_reply
        self.scene_reply = scene_reply
        self.delay = delay
        self.calls: List[str] = []

    def name(self) -> str:
        return "fake"

    async def complete(self, system: str, prompt: str) -> str:
        self.calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.emotion_reply is not None and "情绪分析结果" in prompt:
            return json.dumps(self.emotion_reply, ensure_ascii=False)
        if self.scene_reply is not None and "场景识别结果" in prompt:
            return json.dumps(self.scene_reply, ensure_ascii=False)
        if not self.replies:
            raise RuntimeError("FakeLLMClient has no scripted reply")
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply, ensure_ascii=False)
        return reply


@pytest.fixture
def emotion_reply() -> dict:
    return {
        "primary": "紧张",
        "secondary": ["激昂", "悬疑"],
        "intensity": 8,
        "dimensions": {"happiness": 2, "sadness": 1, "tension": 9, "romance": 0, "epic": 6},
        "confidence": 0.9,
    }


@pytest.fixture
def scene_reply() -> dict:
    return {
        "scene": "追逐",
        "confidence": 88,
        "description": "高速追逐",
        "reasoning": "快节奏与高能量",
    }


@pytest.fixture
def fake_client(emotion_reply, scene_reply) -> FakeLLMClient:
    return FakeLLMClient(emotion_reply=emotion_reply, scene_reply=scene_reply)


@pytest.fixture
def feature_factory():
    """``make_features`` as a fixture, for tests that need custom vectors."""
    return make_features


@pytest.fixture
def client_factory():
    """The FakeLLMClient class, for tests that script their own replies."""
    return FakeLLMClient
