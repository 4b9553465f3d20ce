"""
Writegy Backend - Grammar Check Orchestrator
==============================================

What:  Runs a grammar check through the AI completion endpoint and falls back
       to the basic rule checker on any failure.
Who:   Called by POST /api/grammar/check.

Flow:
    ┌──────────┐    ┌──────────────┐    ┌────────────────┐
    │  Cache   │───▶│  Completion  │───▶│  Cache result  │
    │  lookup  │    │  (timeout)   │    └────────────────┘
    └──────────┘    └──────┬───────┘
                           │ any failure
                           ▼
                    ┌──────────────┐
                    │  Heuristic   │  (never cached)
                    └──────────────┘

Blank text and text over GRAMMAR_MAX_TEXT_LENGTH go straight to the
heuristic checker.

Caching:
    Keyed by the exact input text, bounded LRU. Only completed AI replies
    are stored, so a request that fell back retries the AI path next time.
    Two concurrent identical requests may both reach the endpoint; the
    cache is written only after a call finishes.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from app.config import settings
from app.services.completion_client import completion_client
from app.services.grammar_heuristics import basic_grammar_check
from app.services.llm_base import LLMService

logger = logging.getLogger(__name__)

SOURCE_AI = "ai"
SOURCE_HEURISTIC = "heuristic"

PROMPT_TEMPLATE = """You are a meticulous copy editor. Check the text below for grammar, spelling, punctuation and style problems.

Respond with ONLY a raw JSON object, no markdown fences and no commentary, using exactly this shape:
{{"corrected": "<the full corrected text>", "suggestions": [{{"original": "<problem fragment>", "replacement": "<fixed fragment>", "explanation": "<short reason>"}}]}}

If the text has no problems, return it unchanged in "corrected" and an empty "suggestions" array.

Text:
{text}"""


@dataclass(frozen=True)
class GrammarCheckResult:
    result: str
    source: str
    cached: bool = False


class GrammarService:
    """
    Grammar check orchestrator.

    Holds the only mutable state of the check path: the LRU cache. All
    access happens on the event loop thread, between awaits.
    """

    def __init__(
        self,
        llm: LLMService,
        cache_size: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        max_text_length: Optional[int] = None,
    ):
        self.llm = llm
        self.cache_size = settings.grammar_cache_size if cache_size is None else cache_size
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds
        self.max_text_length = max_text_length or settings.grammar_max_text_length
        self._cache: "OrderedDict[str, str]" = OrderedDict()

    @staticmethod
    def build_prompt(text: str) -> str:
        return PROMPT_TEMPLATE.format(text=text)

    async def check(self, text: str) -> GrammarCheckResult:
        """
        Check `text`, preferring a cached or fresh AI reply.

        Never raises: AI failures, blank text and text longer than
        max_text_length all produce a heuristic result.
        """
        if not text.strip() or len(text) > self.max_text_length:
            logger.info("Grammar check of %d chars skips the AI endpoint", len(text))
            return self._fallback(text)

        cached = self._cache_get(text)
        if cached is not None:
            logger.debug("Grammar cache hit (%d chars)", len(text))
            return GrammarCheckResult(result=cached, source=SOURCE_AI, cached=True)

        try:
            reply = await asyncio.wait_for(
                self.llm.complete(self.build_prompt(text)),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Grammar AI call timed out after %.1fs, using basic checker",
                self.timeout_seconds,
            )
            return self._fallback(text)
        except Exception as e:
            logger.warning(
                "Grammar AI call failed (%s: %s), using basic checker",
                type(e).__name__,
                getattr(e, "message", str(e)),
            )
            return self._fallback(text)

        self._cache_put(text, reply)
        return GrammarCheckResult(result=reply, source=SOURCE_AI)

    @staticmethod
    def _fallback(text: str) -> GrammarCheckResult:
        return GrammarCheckResult(result=basic_grammar_check(text), source=SOURCE_HEURISTIC)

    # ── LRU Cache ─────────────────────────────────────────────────────────

    def _cache_get(self, key: str) -> Optional[str]:
        value = self._cache.get(key)
        if value is not None:
            self._cache.move_to_end(key)
        return value

    def _cache_put(self, key: str, value: str) -> None:
        if self.cache_size <= 0:
            return
        self._cache[key] = value
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_len(self) -> int:
        return len(self._cache)


grammar_service = GrammarService(llm=completion_client)
