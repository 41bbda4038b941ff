"""Tests for LLMCallLayer: caching, in-flight joining, the slot pool and retries."""
import asyncio

import pytest

from cuesense.services.llm.call_layer import LLMCallLayer, RequestKey


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class Counter:
    """Async request function that counts invocations and returns a fixed value."""

    def __init__(self, value="ok", failures=0, error=RuntimeError):
        self.value = value
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return self.value


def _key(prompt="analyse this"):
    return RequestKey.build("m", prompt, 0.3, 1024)


async def _no_sleep(_delay):
    return None


class TestRequestKey:
    def test_whitespace_collapsed(self):
        assert RequestKey.build("m", "a  b\n\t c ", 0.3, 10).prompt == "a b c"

    def test_cosmetic_differences_share_identity(self):
        assert RequestKey.build("m", "x  y", 0.3, 10) == RequestKey.build("m", "x\ny", 0.3, 10)

    def test_parameters_are_part_of_identity(self):
        assert RequestKey.build("m", "p", 0.3, 10) != RequestKey.build("m", "p", 0.5, 10)
        assert RequestKey.build("m", "p", 0.3, 10) != RequestKey.build("other", "p", 0.3, 10)


class TestConstruction:
    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            LLMCallLayer(max_concurrent=0)

    def test_rejects_zero_retries(self):
        with pytest.raises(ValueError):
            LLMCallLayer(max_retries=0)


class TestCache:
    def test_second_call_is_a_hit(self):
        layer = LLMCallLayer()
        request = Counter("v")

        async def scenario():
            first = await layer.call(_key(), request)
            second = await layer.call(_key(), request)
            return first, second

        assert asyncio.run(scenario()) == ("v", "v")
        assert request.calls == 1
        stats = layer.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["cache_size"] == 1

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        layer = LLMCallLayer(cache_ttl_sec=300, clock=clock)
        request = Counter()

        async def scenario():
            await layer.call(_key(), request)
            clock.now = 299.0
            await layer.call(_key(), request)
            assert request.calls == 1
            clock.now = 300.0
            await layer.call(_key(), request)

        asyncio.run(scenario())
        assert request.calls == 2

    def test_non_cacheable_always_calls(self):
        layer = LLMCallLayer()
        request = Counter()

        async def scenario():
            await layer.call(_key(), request, cacheable=False)
            await layer.call(_key(), request, cacheable=False)

        asyncio.run(scenario())
        assert request.calls == 2
        assert layer.stats()["cache_size"] == 0

    def test_evicts_oldest_over_capacity(self):
        layer = LLMCallLayer(cache_max_entries=2)
        request = Counter()

        async def scenario():
            for prompt in ("a", "b", "c"):
                await layer.call(_key(prompt), request)
            assert layer.stats()["cache_size"] == 2
            await layer.call(_key("c"), request)
            assert request.calls == 3
            await layer.call(_key("a"), request)

        asyncio.run(scenario())
        assert request.calls == 4

    def test_cleanup_removes_expired(self):
        clock = FakeClock()
        layer = LLMCallLayer(cache_ttl_sec=10, clock=clock)

        async def scenario():
            await layer.call(_key("a"), Counter())
            await layer.call(_key("b"), Counter())

        asyncio.run(scenario())
        assert layer.cleanup() == 0
        clock.now = 11.0
        assert layer.cleanup() == 2
        assert layer.stats()["cache_size"] == 0

    def test_clear_cache(self):
        layer = LLMCallLayer()
        request = Counter()

        async def scenario():
            await layer.call(_key(), request)
            layer.clear_cache()
            await layer.call(_key(), request)

        asyncio.run(scenario())
        assert request.calls == 2


class TestInFlightJoining:
    def test_concurrent_identical_requests_share_one_call(self):
        layer = LLMCallLayer()
        request = Counter("shared")

        async def scenario():
            return await asyncio.gather(*(layer.call(_key(), request) for _ in range(3)))

        assert asyncio.run(scenario()) == ["shared", "shared", "shared"]
        assert request.calls == 1
        assert layer.stats()["joined"] == 2
        assert layer.stats()["in_flight"] == 0

    def test_joiners_see_the_same_failure(self):
        layer = LLMCallLayer(max_retries=1)
        request = Counter(failures=10, error=ValueError)

        async def scenario():
            return await asyncio.gather(
                layer.call(_key(), request),
                layer.call(_key(), request),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        assert all(isinstance(r, ValueError) for r in results)
        assert request.calls == 1
        assert layer.stats()["in_flight"] == 0

    def test_non_cacheable_requests_still_join(self):
        layer = LLMCallLayer()
        request = Counter()

        async def scenario():
            await asyncio.gather(
                layer.call(_key(), request, cacheable=False),
                layer.call(_key(), request, cacheable=False),
            )

        asyncio.run(scenario())
        assert request.calls == 1

    def test_distinct_keys_do_not_join(self):
        layer = LLMCallLayer()
        request = Counter()

        async def scenario():
            await asyncio.gather(layer.call(_key("a"), request), layer.call(_key("b"), request))

        asyncio.run(scenario())
        assert request.calls == 2


class TestConcurrencyBound:
    def test_active_requests_never_exceed_limit(self):
        layer = LLMCallLayer(max_concurrent=2)
        state = {"active": 0, "peak": 0}

        async def request():
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.01)
            state["active"] -= 1
            return "done"

        async def scenario():
            await asyncio.gather(*(layer.call(_key(str(i)), request) for i in range(6)))

        asyncio.run(scenario())
        assert state["peak"] == 2
        assert layer.stats()["active"] == 0

    def test_layer_survives_successive_event_loops(self):
        layer = LLMCallLayer(max_concurrent=1)

        async def request():
            await asyncio.sleep(0.01)
            return "done"

        async def burst(prefix):
            return await asyncio.gather(*(layer.call(_key(f"{prefix}{i}"), request) for i in range(3)))

        assert asyncio.run(burst("first")) == ["done"] * 3
        assert asyncio.run(burst("second")) == ["done"] * 3
        assert layer.stats()["requests"] == 6


class TestRetry:
    def test_retries_with_linear_backoff(self):
        delays = []

        async def record(delay):
            delays.append(delay)

        layer = LLMCallLayer(max_retries=3, retry_delay_sec=1.0, sleep=record)
        request = Counter("finally", failures=2)

        assert asyncio.run(layer.call(_key(), request)) == "finally"
        assert request.calls == 3
        assert delays == [1.0, 2.0]
        assert layer.stats()["retries"] == 2

    def test_exhausted_retries_reraise_last_error(self):
        layer = LLMCallLayer(max_retries=3, sleep=_no_sleep)
        request = Counter(failures=99, error=ValueError)

        with pytest.raises(ValueError, match="failure 3"):
            asyncio.run(layer.call(_key(), request))
        assert request.calls == 3

    def test_failures_are_not_cached(self):
        layer = LLMCallLayer(max_retries=1)
        request = Counter(failures=1)

        async def scenario():
            with pytest.raises(RuntimeError):
                await layer.call(_key(), request)
            return await layer.call(_key(), request)

        assert asyncio.run(scenario()) == "ok"
        assert request.calls == 2

    def test_non_retryable_makes_one_attempt(self):
        layer = LLMCallLayer(max_retries=3, sleep=_no_sleep)
        request = Counter(failures=99)

        with pytest.raises(RuntimeError):
            asyncio.run(layer.call(_key(), request, retryable=False))
        assert request.calls == 1


class TestFromSettings:
    def test_uses_llm_settings(self):
        from cuesense.services.shared.settings import LLMSettings

        layer = LLMCallLayer.from_settings(LLMSettings(max_concurrent=7, max_retries=4))
        assert layer.max_concurrent == 7
        assert layer.max_retries == 4
        assert layer.stats()["max_concurrent"] == 7
