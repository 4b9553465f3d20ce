"""
Writegy Backend - Abstract Completion Service Interface
=========================================================

What:  Abstract base class for AI text-completion providers.
How:   Concrete implementations inherit from LLMService and implement
       complete() and health_check().
Who:   GrammarService depends on this interface, never on a concrete client,
       so tests can hand it a stub and deployments can swap providers.
"""

from abc import ABC, abstractmethod
from typing import Optional


class LLMService(ABC):
    """
    Abstract interface for single-turn text completion.

    Contract:
        - complete() sends one user message and returns the first choice's
          text verbatim (no parsing or validation of its content)
        - Implementations handle their own retry logic and error translation
        - Provider-specific errors are wrapped in LLMServiceError;
          an open circuit raises CircuitBreakerOpenError
    """

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Run a completion for a single-message prompt.

        Args:
            prompt: The full user message.
            model: Model identifier; implementation default when None.
            temperature: Sampling temperature; implementation default when None.
            max_tokens: Completion length cap; implementation default when None.

        Returns:
            The text of the first choice.

        Raises:
            LLMServiceError: Transport failure after retries, non-2xx status,
                malformed body or missing credentials.
            CircuitBreakerOpenError: Too many recent consecutive failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Report whether the provider is usable right now.

        Must not consume completion quota. Called by GET /health.
        """
        ...
