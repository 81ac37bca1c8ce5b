"""
Base LLM Provider

Abstract interface for the external text-generation collaborator: a prompt
and a token budget go in, a single text completion comes out. No structure
is enforced here; callers impose it when they parse the completion.
"""

import logging
from abc import ABC, abstractmethod

from finquery.llm.models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        provider_name: Unique identifier for this provider
        temperature: Default sampling temperature
        max_tokens: Default maximum tokens to generate
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 60,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            f"Initialized {provider_name} provider",
            extra={
                "provider": provider_name,
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Generate a completion.

        Raises:
            Exception: Provider SDK errors (API errors, timeouts, etc.)
        """
        pass  # pragma: no cover - abstract method

    async def complete(self, prompt: str, max_tokens: int | None = None) -> str:
        """Send a single prompt and return the completion text."""
        response = await self.generate(LLMRequest.from_prompt(prompt, max_tokens=max_tokens))
        return response.content

    async def close(self) -> None:
        """Release client resources. Providers without any keep the default."""
        return None

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        """Return a copy of the request with provider defaults filled in."""
        updates = {}
        if request.temperature is None:
            updates["temperature"] = self.temperature
        if request.max_tokens is None:
            updates["max_tokens"] = self.max_tokens
        return request.model_copy(update=updates) if updates else request

    def _log_request(self, request: LLMRequest) -> None:
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "message_count": len(request.messages),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "total_tokens": response.usage.total_tokens,
                "finish_reason": response.finish_reason,
            },
        )
