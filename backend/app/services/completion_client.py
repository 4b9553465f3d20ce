"""
Writegy Backend - Chat Completion Client
==========================================

What:  LLMService implementation for OpenAI-compatible `/chat/completions`
       endpoints (OpenRouter by default).
How:   httpx.AsyncClient with bearer auth, tenacity retry with exponential
       backoff and jitter, and a circuit breaker in front of every call.
Who:   Instantiated once; called by GrammarService for each uncached check.

Resilience Strategy:
    1. Tenacity retries transport errors, 429 and 5xx responses
    2. Other 4xx responses fail at once (retrying cannot fix them)
    3. The circuit breaker opens after consecutive failed calls and rejects
       further calls instantly until the recovery timeout passes

Request:
    POST {base_url}/chat/completions
    Authorization: Bearer <key>
    {"model": ..., "messages": [{"role": "user", "content": prompt}],
     "temperature": 0.3, "max_tokens": 800}

Response:
    choices[0].message.content is returned verbatim.
"""

import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import settings
from app.exceptions import CircuitBreakerOpenError, LLMServiceError
from app.services.llm_base import LLMService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the completion endpoint.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    State is only touched from the event loop thread, between awaits.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._clock = clock

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if the circuit is OPEN and the recovery
            timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = max(1, int(self.recovery_timeout - elapsed))
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            if self.state != self.OPEN:
                logger.warning(
                    "Circuit breaker OPENING after %d consecutive failures",
                    self.failure_count,
                )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Completion Client
# ══════════════════════════════════════════════════════════════════════════

def _is_transient(exc: BaseException) -> bool:
    """Transport errors, 429 and 5xx are worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class CompletionClient(LLMService):
    """
    OpenAI-compatible chat completion client.

    Error Handling Chain:
        API call fails → tenacity retries transient errors
        → retries exhausted or non-transient error → circuit breaker failure
        → LLMServiceError raised to the caller
        → threshold reached → future calls rejected instantly (OPEN)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        request_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        min_wait: Optional[float] = None,
        max_wait: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.llm_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.llm_base_url).rstrip("/") + "/"
        self.model = model or settings.llm_model
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.request_timeout = request_timeout or settings.llm_request_timeout
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.min_wait = settings.retry_min_wait if min_wait is None else min_wait
        self.max_wait = settings.retry_max_wait if max_wait is None else max_wait
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            "CompletionClient initialized with model=%s, base_url=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.model,
            self.base_url,
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.request_timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a single-message completion request and return the reply text.

        Flow:
            1. Refuse without credentials (no circuit breaker bookkeeping)
            2. Check circuit breaker → may raise CircuitBreakerOpenError
            3. POST with retry logic
            4. Extract choices[0].message.content
            5. Record success/failure in circuit breaker
        """
        if not self.is_configured:
            raise LLMServiceError(
                message="AI completion endpoint is not configured",
                context={"reason": "missing_api_key"},
            )

        call_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        payload = {
            "model": model or self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }

        start_time = time.perf_counter()
        try:
            body = await self._post_with_retry(payload, call_id)
            content = self._extract_content(body)
        except httpx.HTTPStatusError as e:
            self.circuit_breaker.record_failure()
            status = e.response.status_code
            logger.error("[%s] Completion endpoint returned HTTP %d", call_id, status)
            raise LLMServiceError(
                message="AI completion endpoint rejected the request",
                retry_after=self.circuit_breaker.recovery_timeout if status >= 500 else None,
                context={"call_id": call_id, "status_code": status},
            ) from e
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Completion endpoint unreachable after %d attempts: %s",
                call_id,
                self.max_attempts,
                str(e),
            )
            raise LLMServiceError(
                message="AI completion failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"call_id": call_id, "error_type": type(e).__name__},
            ) from e
        except LLMServiceError:
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
        logger.info(
            "[%s] Completion finished in %.0fms, %d chars",
            call_id,
            (time.perf_counter() - start_time) * 1000,
            len(content),
        )
        return content

    async def _post_with_retry(self, payload: Dict[str, Any], call_id: str) -> Any:
        """
        POST the payload, retrying transient failures.

        Retry settings come from the instance so tests can disable backoff.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.min_wait,
                max=self.max_wait,
                jitter=1 if self.max_wait else 0,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        client = self._get_client()
        async for attempt in retrying:
            with attempt:
                response = await client.post("chat/completions", json=payload)
                if response.is_error:
                    logger.warning(
                        "[%s] Completion attempt %d got HTTP %d",
                        call_id,
                        attempt.retry_state.attempt_number,
                        response.status_code,
                    )
                response.raise_for_status()

        try:
            return response.json()
        except ValueError as e:
            raise LLMServiceError(
                message="AI completion endpoint returned a malformed response",
                context={"call_id": call_id, "reason": "invalid_json"},
            ) from e

    @staticmethod
    def _extract_content(body: Any) -> str:
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMServiceError(
                message="AI completion endpoint returned a malformed response",
                context={"reason": "missing_choice"},
            ) from e
        if not isinstance(content, str):
            raise LLMServiceError(
                message="AI completion endpoint returned a malformed response",
                context={"reason": "non_text_content"},
            )
        return content

    async def health_check(self) -> bool:
        """Usable when credentials are present and the circuit is not open."""
        return self.is_configured and self.circuit_breaker.state != CircuitBreaker.OPEN

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


completion_client = CompletionClient()
