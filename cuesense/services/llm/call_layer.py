"""LLMCallLayer: cached, de-duplicated, bounded and retried LLM calls.

One instance is built by the composition root and injected into every
judge, so tests and tenants get isolated caches.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from cuesense.services.shared.settings import LLMSettings

logger = logging.getLogger("cuesense.llm.call_layer")

RequestFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class RequestKey:
    """Identity of an LLM request for caching and de-duplication."""
    model: str
    prompt: str
    temperature: float
    max_tokens: int

    @classmethod
    def build(cls, model: str, prompt: str, temperature: float, max_tokens: int) -> "RequestKey":
        """Collapse whitespace so cosmetic prompt differences share an entry."""
        return cls(
            model=model,
            prompt=" ".join(prompt.split()),
            temperature=float(temperature),
            max_tokens=int(max_tokens),
        )

    def short(self) -> str:
        return f"{self.model}:{self.prompt[:40]}"


class LLMCallLayer:
    """Wraps any async request function with caching, joining, a slot pool and retries.

    Only exceptions are retried. A result that parses but carries a low
    confidence is a success and is cached like any other.

    Usage::

        layer = LLMCallLayer.from_settings(settings.llm)
        key = RequestKey.build(model, prompt, 0.3, 1024)
        payload = await layer.call(key, lambda: judge_request(prompt))
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        max_retries: int = 3,
        retry_delay_sec: float = 1.0,
        cache_ttl_sec: float = 300.0,
        cache_max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.max_concurrent = max_concurrent
        self.max_retries = max_retries
        self.retry_delay_sec = retry_delay_sec
        self.cache_ttl_sec = cache_ttl_sec
        self.cache_max_entries = cache_max_entries
        self._clock = clock
        self._sleep = sleep

        # Bound to the loop that created it; rebuilt when a new loop calls in
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop: Optional[asyncio.AbstractEventLoop] = None
        self._cache: Dict[RequestKey, Tuple[float, Any]] = {}   # key → (expires_at, value)
        self._in_flight: Dict[RequestKey, "asyncio.Future[Any]"] = {}
        self._active = 0
        self._counters = {"hits": 0, "misses": 0, "joined": 0, "requests": 0, "retries": 0}

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "LLMCallLayer":
        return cls(
            max_concurrent=settings.max_concurrent,
            max_retries=settings.max_retries,
            retry_delay_sec=settings.retry_delay_sec,
            cache_ttl_sec=settings.cache_ttl_sec,
            cache_max_entries=settings.cache_max_entries,
        )

    # ── public ────────────────────────────────────────────────────────────────

    async def call(
        self,
        key: RequestKey,
        request_fn: RequestFn,
        cacheable: bool = True,
        retryable: bool = True,
    ) -> Any:
        """Resolve ``request_fn`` through the cache, the in-flight map and the pool.

        Raises:
            Exception: Whatever the last attempt of ``request_fn`` raised.
        """
        if cacheable:
            found, value = self._cache_lookup(key)
            if found:
                self._counters["hits"] += 1
                logger.debug("Cache hit: %s", key.short())
                return value
            self._counters["misses"] += 1

        pending = self._in_flight.get(key)
        if pending is not None:
            self._counters["joined"] += 1
            logger.debug("Joining in-flight request: %s", key.short())
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._execute(key, request_fn, cacheable, retryable))
        self._in_flight[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def stats(self) -> Dict[str, int]:
        return {
            "cache_size": len(self._cache),
            "in_flight": len(self._in_flight),
            "active": self._active,
            "max_concurrent": self.max_concurrent,
            **self._counters,
        }

    def cleanup(self) -> int:
        """Drop expired cache entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._cache.items() if now >= expires_at]
        for k in expired:
            del self._cache[k]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("LLM response cache cleared")

    # ── internal ──────────────────────────────────────────────────────────────

    def _cache_lookup(self, key: RequestKey) -> Tuple[bool, Any]:
        entry = self._cache.get(key)
        if entry is None:
            return False, None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            return False, None
        return True, value

    def _cache_store(self, key: RequestKey, value: Any) -> None:
        self._cache[key] = (self._clock() + self.cache_ttl_sec, value)
        if len(self._cache) <= self.cache_max_entries:
            return
        self.cleanup()
        # Still over the cap: evict oldest insertions
        while len(self._cache) > self.cache_max_entries:
            oldest = next(iter(self._cache))
            del self._cache[oldest]

    def _slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._semaphore_loop = loop
        return self._semaphore

    def _forget(self, key: RequestKey, done: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(key) is done:
            del self._in_flight[key]

    async def _execute(
        self,
        key: RequestKey,
        request_fn: RequestFn,
        cacheable: bool,
        retryable: bool,
    ) -> Any:
        attempts = self.max_retries if retryable else 1
        async with self._slots():
            self._active += 1
            try:
                value = await self._with_retry(key, request_fn, attempts)
            finally:
                self._active -= 1
        if cacheable:
            self._cache_store(key, value)
        return value

    async def _with_retry(self, key: RequestKey, request_fn: RequestFn, attempts: int) -> Any:
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                self._counters["retries"] += 1
                await self._sleep(self.retry_delay_sec * (attempt - 1))
            self._counters["requests"] += 1
            try:
                return await request_fn()
            except Exception as exc:
                last_error = exc
                if attempt < attempts:
                    logger.warning(
                        "LLM request failed (attempt %d/%d, %s): %s",
                        attempt, attempts, key.short(), exc,
                    )

        logger.error("LLM request failed after %d attempt(s) (%s): %s", attempts, key.short(), last_error)
        assert last_error is not None
        raise last_error
