"""Tests for LLM payload parsing, provider adapters and the emotion/scene judges."""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from cuesense.services.emotion.types import DIMENSION_NAMES, MAX_SECONDARY, EmotionMethod
from cuesense.services.llm.call_layer import LLMCallLayer
from cuesense.services.llm.judges import LLMEmotionJudge, LLMSceneJudge
from cuesense.services.llm.payloads import EmotionPayload, ScenePayload, extract_json
from cuesense.services.llm.providers import AnthropicClient, OpenAIClient, create_client
from cuesense.services.scene.types import SceneSource
from cuesense.services.shared.errors import JudgeFailure, ProviderError
from cuesense.services.shared.settings import LLMSettings
from cuesense.services.vocabulary.service import (
    FALLBACK_SCENES,
    StaticVocabularyProvider,
    Vocabulary,
    VocabularyProvider,
)


async def _no_sleep(_delay):
    return None


def _layer(**kwargs):
    kwargs.setdefault("sleep", _no_sleep)
    return LLMCallLayer(**kwargs)


# ─────────────────────────────────────────────────────────────────────────────
# JSON extraction and payload validation
# ─────────────────────────────────────────────────────────────────────────────


class TestExtractJson:
    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"primary": "紧张"}\n```\nDone.'
        assert extract_json(text) == {"primary": "紧张"}

    def test_plain_fence(self):
        assert extract_json('```\n{"a": 1}\n```') == {"a": 1}

    def test_bare_object_with_prose(self):
        assert extract_json('结果如下 {"scene": "追逐", "confidence": 80} 谢谢') == {
            "scene": "追逐",
            "confidence": 80,
        }

    def test_no_object_raises(self):
        with pytest.raises(ValueError):
            extract_json("no json here")

    def test_malformed_object_raises(self):
        with pytest.raises(ValueError):
            extract_json('{"primary": }')

    def test_empty_reply_raises(self):
        with pytest.raises(ValueError):
            extract_json("")


class TestEmotionPayload:
    def test_defaults_for_missing_fields(self):
        payload = EmotionPayload.model_validate({})
        assert payload.primary == "中性"
        assert payload.intensity == 5
        assert payload.confidence == 0.5
        assert payload.secondary == []

    def test_values_are_clamped(self):
        payload = EmotionPayload.model_validate(
            {"primary": "紧张", "intensity": 14, "dimensions": {"tension": 12, "sadness": -3}}
        )
        assert payload.intensity == 10
        assert payload.dimensions["tension"] == 10
        assert payload.dimensions["sadness"] == 0

    def test_all_dimensions_present(self):
        payload = EmotionPayload.model_validate({"dimensions": {"epic": 7}})
        assert payload.dimensions == {"happiness": 0, "sadness": 0, "tension": 0, "romance": 0, "epic": 7}

    def test_percent_confidence_rescaled(self):
        assert EmotionPayload.model_validate({"confidence": 85}).confidence == pytest.approx(0.85)

    def test_string_secondary_wrapped(self):
        assert EmotionPayload.model_validate({"secondary": "悬疑"}).secondary == ["悬疑"]

    def test_empty_primary_becomes_neutral(self):
        assert EmotionPayload.model_validate({"primary": ""}).primary == "中性"

    def test_extra_keys_ignored(self):
        payload = EmotionPayload.model_validate({"primary": "浪漫", "mood_board": "x"})
        assert payload.primary == "浪漫"

    def test_missing_dimensions_filled_with_zero(self):
        payload = EmotionPayload.model_validate({"primary": "紧张"})
        assert payload.dimensions == {name: 0 for name in DIMENSION_NAMES}

    def test_null_dimensions_filled_with_zero(self):
        assert EmotionPayload.model_validate({"dimensions": None}).dimensions == {
            name: 0 for name in DIMENSION_NAMES
        }

    def test_secondary_capped(self):
        names = [f"情绪{i}" for i in range(9)]
        payload = EmotionPayload.model_validate({"secondary": names})
        assert payload.secondary == names[:MAX_SECONDARY]


class TestScenePayload:
    def test_defaults(self):
        payload = ScenePayload.model_validate({})
        assert payload.scene == "未识别"
        assert payload.confidence == 50

    def test_fraction_confidence_rescaled(self):
        assert ScenePayload.model_validate({"scene": "追逐", "confidence": 0.82}).confidence == 82

    def test_confidence_clamped(self):
        assert ScenePayload.model_validate({"scene": "追逐", "confidence": 180}).confidence == 100

    def test_whole_number_confidence_is_percent(self):
        assert ScenePayload.model_validate({"scene": "追逐", "confidence": 1}).confidence == 1
        assert ScenePayload.model_validate({"scene": "追逐", "confidence": 1.0}).confidence == 1

    def test_null_text_fields_become_empty(self):
        payload = ScenePayload.model_validate({"scene": "追逐", "description": None})
        assert payload.description == ""


# ─────────────────────────────────────────────────────────────────────────────
# Judges
# ─────────────────────────────────────────────────────────────────────────────


class TestLLMEmotionJudge:
    def test_returns_llm_only_result(self, fake_client, energetic_features):
        judge = LLMEmotionJudge(fake_client, _layer())
        result = asyncio.run(judge.judge(energetic_features, "cue.wav"))
        assert result.method == EmotionMethod.LLM_ONLY
        assert result.primary == "紧张"
        assert result.secondary == ["激昂", "悬疑"]
        assert result.intensity == 8
        assert result.dimensions["tension"] == 9
        assert result.confidence == pytest.approx(0.9)

    def test_prompt_carries_vocabulary_and_features(self, fake_client, energetic_features):
        vocab = StaticVocabularyProvider(Vocabulary(emotions=["紧张", "浪漫"]))
        judge = LLMEmotionJudge(fake_client, _layer(), vocab)
        asyncio.run(judge.judge(energetic_features, "cue.wav"))
        assert "130.0" in fake_client.calls[0]
        assert "cue.wav" in fake_client.calls[0]
        system = judge._system_prompt(["紧张", "浪漫"])
        assert "紧张、浪漫" in system

    def test_sparse_reply_still_well_formed(self, client_factory, energetic_features):
        reply = {"primary": "紧张", "secondary": [f"情绪{i}" for i in range(9)], "confidence": 0.8}
        client = client_factory(replies=[reply])
        result = asyncio.run(LLMEmotionJudge(client, _layer()).judge(energetic_features, "cue.wav"))
        assert len(result.secondary) == MAX_SECONDARY
        assert set(result.dimensions) == set(DIMENSION_NAMES)
        assert all(v == 0 for v in result.dimensions.values())

    def test_fenced_reply_is_accepted(self, client_factory, energetic_features):
        client = client_factory(replies=['```json\n{"primary": "浪漫", "confidence": 0.7}\n```'])
        result = asyncio.run(LLMEmotionJudge(client, _layer()).judge(energetic_features, "a.wav"))
        assert result.primary == "浪漫"
        assert result.confidence == pytest.approx(0.7)

    def test_repeat_judgement_served_from_cache(self, fake_client, energetic_features):
        judge = LLMEmotionJudge(fake_client, _layer())

        async def scenario():
            await judge.judge(energetic_features, "cue.wav")
            await judge.judge(energetic_features, "cue.wav")

        asyncio.run(scenario())
        assert len(fake_client.calls) == 1

    def test_malformed_reply_raises_judge_failure(self, client_factory, energetic_features):
        client = client_factory(replies=["I cannot answer that."])
        judge = LLMEmotionJudge(client, _layer(max_retries=2))
        with pytest.raises(JudgeFailure) as exc_info:
            asyncio.run(judge.judge(energetic_features, "cue.wav"))
        assert exc_info.value.source == "llm-emotion"
        assert len(client.calls) == 2

    def test_malformed_reply_is_not_cached(self, client_factory, energetic_features):
        client = client_factory(replies=["garbage", '{"primary": "平静"}'])
        judge = LLMEmotionJudge(client, _layer(max_retries=1))

        async def scenario():
            with pytest.raises(JudgeFailure):
                await judge.judge(energetic_features, "cue.wav")
            return await judge.judge(energetic_features, "cue.wav")

        assert asyncio.run(scenario()).primary == "平静"

    def test_retry_recovers_from_bad_reply(self, client_factory, energetic_features):
        client = client_factory(replies=["garbage", '{"primary": "平静"}'])
        judge = LLMEmotionJudge(client, _layer(max_retries=2))
        result = asyncio.run(judge.judge(energetic_features, "cue.wav"))
        assert result.primary == "平静"
        assert len(client.calls) == 2

    def test_provider_error_wrapped(self, client_factory, energetic_features):
        client = client_factory(replies=[ProviderError("timeout")])
        judge = LLMEmotionJudge(client, _layer(max_retries=1))
        with pytest.raises(JudgeFailure, match="timeout"):
            asyncio.run(judge.judge(energetic_features, "cue.wav"))

    def test_vocabulary_failure_wrapped(self, fake_client, energetic_features):
        class BrokenVocabulary(VocabularyProvider):
            async def get_vocabulary(self):
                raise ConnectionError("store offline")

        judge = LLMEmotionJudge(fake_client, _layer(), BrokenVocabulary())
        with pytest.raises(JudgeFailure, match="vocabulary"):
            asyncio.run(judge.judge(energetic_features, "cue.wav"))
        assert fake_client.calls == []


class TestLLMSceneJudge:
    def test_returns_llm_scene(self, fake_client, energetic_features):
        judge = LLMSceneJudge(fake_client, _layer())
        match = asyncio.run(judge.judge(energetic_features, "动作片", "紧张", "cue.wav"))
        assert match.scene == "追逐"
        assert match.confidence == 88
        assert match.source == SceneSource.LLM
        assert match.reasoning == "快节奏与高能量"

    def test_prompt_mentions_genre_and_emotion(self, fake_client, energetic_features):
        judge = LLMSceneJudge(fake_client, _layer())
        asyncio.run(judge.judge(energetic_features, "动作片", "紧张", "cue.wav"))
        assert "动作片" in fake_client.calls[0]
        assert "紧张" in fake_client.calls[0]

    def test_default_vocabulary_in_system_prompt(self):
        assert "、".join(FALLBACK_SCENES) in LLMSceneJudge._system_prompt(FALLBACK_SCENES)

    def test_failure_source(self, client_factory, energetic_features):
        client = client_factory(replies=["nope"])
        judge = LLMSceneJudge(client, _layer(max_retries=1))
        with pytest.raises(JudgeFailure) as exc_info:
            asyncio.run(judge.judge(energetic_features, "动作片", "紧张", "cue.wav"))
        assert exc_info.value.source == "llm-scene"


# ─────────────────────────────────────────────────────────────────────────────
# Provider adapters
# ─────────────────────────────────────────────────────────────────────────────


class _FakeAnthropicStream:
    def __init__(self, parts):
        self._parts = parts

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    @property
    def text_stream(self):
        async def gen():
            for part in self._parts:
                yield part
        return gen()


async def _chunks(parts):
    for part in parts:
        yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=part))])


class TestAnthropicClient:
    def test_streaming_joins_text(self):
        client = AnthropicClient("claude-test", streaming=True)
        sdk = MagicMock()
        sdk.messages.stream.return_value = _FakeAnthropicStream(['{"a"', ": 1}"])
        client._client = sdk

        assert asyncio.run(client.complete("sys", "hi")) == '{"a": 1}'
        kwargs = sdk.messages.stream.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["model"] == "claude-test"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    def test_non_streaming_reads_text_blocks(self):
        client = AnthropicClient("claude-test", streaming=False)
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="hello"), SimpleNamespace(type="tool_use")]
        ))
        client._client = sdk
        assert asyncio.run(client.complete("sys", "hi")) == "hello"

    def test_api_error_becomes_provider_error(self):
        import anthropic

        client = AnthropicClient("claude-test", streaming=False)
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        ))
        client._client = sdk
        with pytest.raises(ProviderError):
            asyncio.run(client.complete("sys", "hi"))

    def test_name(self):
        assert AnthropicClient("m").name() == "anthropic"


class TestOpenAIClient:
    def test_streaming_joins_chunks(self):
        client = OpenAIClient("gpt-test", streaming=True)
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(return_value=_chunks(["{", '"a": 1', "}", None]))
        client._client = sdk

        assert asyncio.run(client.complete("sys", "hi")) == '{"a": 1}'
        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    def test_non_streaming(self):
        client = OpenAIClient("gpt-test", streaming=False)
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="plain"))]
        ))
        client._client = sdk
        assert asyncio.run(client.complete("sys", "hi")) == "plain"

    def test_api_error_becomes_provider_error(self):
        import openai

        client = OpenAIClient("gpt-test", streaming=False)
        sdk = MagicMock()
        sdk.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        ))
        client._client = sdk
        with pytest.raises(ProviderError):
            asyncio.run(client.complete("sys", "hi"))

    def test_local_server_gets_placeholder_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        client = OpenAIClient("local-model", base_url="http://localhost:8000/v1")
        with patch("openai.AsyncOpenAI") as sdk_cls:
            client._get_client()
        kwargs = sdk_cls.call_args.kwargs
        assert kwargs["api_key"] == "local"
        assert kwargs["base_url"] == "http://localhost:8000/v1"


class TestCreateClient:
    def test_anthropic(self):
        client = create_client(LLMSettings(provider="anthropic", model="claude-x", streaming=False))
        assert isinstance(client, AnthropicClient)
        assert client.model == "claude-x"
        assert client.streaming is False

    def test_openai_with_base_url(self):
        client = create_client(LLMSettings(provider="openai", model="gpt-x", base_url="http://h/v1"))
        assert isinstance(client, OpenAIClient)
        assert client.base_url == "http://h/v1"

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_client(LLMSettings(provider="bard"))
