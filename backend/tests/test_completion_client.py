"""
Writegy Backend - Completion Client Tests (Mocked Transport)
==============================================================

What:  Tests for CompletionClient and CircuitBreaker with httpx.MockTransport
       standing in for the OpenAI-compatible endpoint.

What we test:
    ✅ Request shape and reply extraction
    ✅ Transient failures (5xx, 429, transport errors) are retried
    ✅ Client errors (4xx) are not retried
    ✅ Malformed bodies raise LLMServiceError
    ✅ Circuit breaker opens, rejects, half-opens and closes
    ❌ Real API calls
"""

import json

import httpx
import pytest

from app.exceptions import CircuitBreakerOpenError, LLMServiceError
from app.services.completion_client import CircuitBreaker, CompletionClient


def reply(content="Fixed text."):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def make_client(handler, **kwargs):
    options = dict(
        api_key="test-key",
        base_url="https://llm.test/v1",
        model="test-model",
        max_attempts=3,
        min_wait=0,
        max_wait=0,
        transport=httpx.MockTransport(handler),
    )
    options.update(kwargs)
    return CompletionClient(**options)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        cb.can_execute()

    def test_open_circuit_rejects_calls(self):
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=2, recovery_timeout=60, clock=clock)
        cb.record_failure()
        cb.record_failure()
        assert cb.state == "open"

        clock.now += 15
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert exc_info.value.recovery_time == 45

    def test_half_open_after_recovery_timeout(self):
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=clock)
        cb.record_failure()

        clock.now += 61
        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=clock)
        cb.record_failure()
        clock.now += 61
        cb.can_execute()

        cb.record_failure()

        assert cb.state == "open"
        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

    def test_success_after_half_open_closes(self):
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=clock)
        cb.record_failure()
        clock.now += 61
        cb.can_execute()

        cb.record_success()

        assert cb.state == "closed"
        assert cb.failure_count == 0


class TestCompletionClient:

    @pytest.mark.asyncio
    async def test_success_returns_first_choice(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return reply("Corrected.")

        client = make_client(handler, temperature=0.3, max_tokens=800)

        result = await client.complete("Check this")

        assert result == "Corrected."
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"] == {
            "model": "test-model",
            "messages": [{"role": "user", "content": "Check this"}],
            "temperature": 0.3,
            "max_tokens": 800,
        }
        assert client.circuit_breaker.failure_count == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"error": "overloaded"})
            return reply()

        client = make_client(handler)

        assert await client.complete("text") == "Fixed text."
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_rate_limited_then_success(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429)
            return reply()

        client = make_client(handler)

        assert await client.complete("text") == "Fixed text."
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_transport_error_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(LLMServiceError) as exc_info:
            await client.complete("text")
        assert len(calls) == 3
        assert exc_info.value.retry_after == client.circuit_breaker.recovery_timeout
        assert client.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "bad request"})

        client = make_client(handler)

        with pytest.raises(LLMServiceError) as exc_info:
            await client.complete("text")
        assert len(calls) == 1
        assert exc_info.value.context["status_code"] == 400
        assert exc_info.value.retry_after is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"choices": []}),
            httpx.Response(200, json={"id": "x"}),
            httpx.Response(200, json={"choices": [{"message": {"content": None}}]}),
            httpx.Response(200, content=b"not json"),
        ],
    )
    async def test_malformed_body(self, response):
        client = make_client(lambda request: response)

        with pytest.raises(LLMServiceError) as exc_info:
            await client.complete("text")
        assert "malformed" in exc_info.value.message
        assert client.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_never_calls_endpoint(self):
        calls = []

        def handler(request):
            calls.append(request)
            return reply()

        client = make_client(handler, api_key="")

        with pytest.raises(LLMServiceError):
            await client.complete("text")
        assert calls == []
        assert client.circuit_breaker.failure_count == 0
        assert await client.health_check() is False

    @pytest.mark.asyncio
    async def test_open_circuit_short_circuits(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        client = make_client(handler, max_attempts=1, circuit_breaker=breaker)

        for _ in range(2):
            with pytest.raises(LLMServiceError):
                await client.complete("text")
        assert breaker.state == "open"
        assert await client.health_check() is False

        with pytest.raises(CircuitBreakerOpenError):
            await client.complete("text")
        assert len(calls) == 2
