"""
Base Agent

Shared plumbing for the LLM-backed agents (interpreter, insights,
suggestions): prompt rendering, timing, logging, and conversion of provider
failures into typed LLMError with bounded retry.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm):
            super().__init__(name="MyAgent", llm=llm)

        async def run(self, text: str) -> str:
            prompt = self.render_prompt("agents/my_prompt.md", text=text)
            return await self.call_llm(prompt, max_tokens=500)
"""

import asyncio
import logging
import time
from typing import Any

from finquery.llm.base import BaseLLMProvider
from finquery.models.agent import LLMError
from finquery.prompts.loader import PromptLoader, get_prompt_loader

logger = logging.getLogger(__name__)


class BaseAgent:
    """
    Base class for agents that talk to the text-generation collaborator.

    Attributes:
        name: Identifier used in logs and errors
        llm: Provider used for completions
        max_retries: Extra attempts after a failed LLM call
    """

    def __init__(
        self,
        name: str,
        llm: BaseLLMProvider,
        prompts: PromptLoader | None = None,
        max_retries: int = 1,
    ):
        self.name = name
        self.llm = llm
        self.prompts = prompts or get_prompt_loader()
        self.max_retries = max_retries
        self.llm_calls = 0

        logger.info(
            f"Initialized {self.name}",
            extra={"agent": self.name, "max_retries": max_retries},
        )

    def render_prompt(self, prompt_path: str, **variables: Any) -> str:
        return self.prompts.render(prompt_path, **variables)

    async def call_llm(self, prompt: str, max_tokens: int | None = None) -> str:
        """
        Send a prompt and return the completion text.

        Provider exceptions are retried with exponential backoff and then
        raised as LLMError. No timeout is imposed beyond the provider's own.

        Raises:
            LLMError: When every attempt failed
        """
        attempt = 0
        start_time = time.perf_counter()
        while True:
            attempt += 1
            self.llm_calls += 1
            try:
                content = await self.llm.complete(prompt, max_tokens=max_tokens)
            except Exception as e:
                logger.warning(
                    f"LLM call failed in {self.name}",
                    extra={
                        "agent": self.name,
                        "attempt": attempt,
                        "max_retries": self.max_retries,
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                if attempt > self.max_retries:
                    raise LLMError(
                        agent=self.name,
                        message=f"Text generation failed: {e}",
                        context={"error_type": type(e).__name__, "attempts": attempt},
                    ) from e
                await asyncio.sleep(2 ** (attempt - 1))
                continue

            logger.info(
                f"Completed LLM call in {self.name}",
                extra={
                    "agent": self.name,
                    "attempt": attempt,
                    "duration_ms": (time.perf_counter() - start_time) * 1000,
                    "response_chars": len(content),
                },
            )
            return content
