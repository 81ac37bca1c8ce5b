"""
Feedback Learning Worker

Forwards substantive feedback to the text-generation collaborator in the
background. Producers hand tasks over through an asyncio.Queue and never
wait on the forward; a task that keeps failing is dropped after a bounded
number of attempts.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass

from finquery.llm.base import BaseLLMProvider
from finquery.models.history import FeedbackType
from finquery.models.query import QuerySpec
from finquery.prompts.loader import PromptLoader, get_prompt_loader

logger = logging.getLogger(__name__)

PROMPT_PATH = "agents/feedback_learning.md"


@dataclass(frozen=True)
class FeedbackLearningTask:
    """Everything needed to forward one piece of feedback."""

    feedback_id: int
    query_history_id: int
    query_text: str
    query_spec: QuerySpec | None
    feedback_type: FeedbackType
    feedback_text: str | None = None

    @property
    def is_substantive(self) -> bool:
        """Only corrections and written comments are worth forwarding."""
        return self.feedback_type == "incorrect" or bool(
            self.feedback_text and self.feedback_text.strip()
        )


class FeedbackLearningWorker:
    """Single consumer draining a bounded queue of learning tasks."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        queue_size: int = 100,
        max_attempts: int = 2,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 1000,
        prompts: PromptLoader | None = None,
    ) -> None:
        self._llm = llm
        self._queue: asyncio.Queue[FeedbackLearningTask] = asyncio.Queue(maxsize=queue_size)
        self._max_attempts = max(1, max_attempts)
        self._retry_delay_seconds = retry_delay_seconds
        self._max_tokens = max_tokens
        self._prompts = prompts or get_prompt_loader()
        self._task: asyncio.Task | None = None
        self.forwarded = 0
        self.discarded = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="feedback-learning-worker")
        logger.info("Feedback learning worker started")

    async def stop(self, drain: bool = False) -> None:
        """Stop the consumer. With `drain`, wait for queued tasks first."""
        if self._task is None:
            return
        if drain and not self._task.done():
            await self._queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(
            "Feedback learning worker stopped",
            extra={"forwarded": self.forwarded, "discarded": self.discarded},
        )

    def submit(self, task: FeedbackLearningTask) -> bool:
        """
        Hand a task to the worker without waiting.

        Returns False when the task was not queued (not substantive, worker
        stopped, or queue full). Never raises.
        """
        if not task.is_substantive:
            return False
        if not self.is_running:
            self._discard(task, "worker not running")
            return False
        try:
            self._queue.put_nowait(task)
        except asyncio.QueueFull:
            self._discard(task, "queue full")
            return False
        return True

    async def process(self, task: FeedbackLearningTask) -> bool:
        """Forward one task with bounded retries. Returns True when forwarded."""
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._forward(task)
            except Exception as e:
                logger.warning(
                    "Feedback forward failed",
                    extra={
                        "feedback_id": task.feedback_id,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                        "error": str(e),
                    },
                )
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay_seconds)
                continue
            self.forwarded += 1
            return True

        self._discard(task, "retries exhausted")
        return False

    async def _run(self) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self.process(task)
            except Exception:
                logger.exception(
                    "Unexpected error in feedback learning worker",
                    extra={"feedback_id": task.feedback_id},
                )
            finally:
                self._queue.task_done()

    async def _forward(self, task: FeedbackLearningTask) -> None:
        spec_text = (
            json.dumps(task.query_spec.to_payload(), indent=2)
            if task.query_spec is not None
            else "null"
        )
        prompt = self._prompts.render(
            PROMPT_PATH,
            query_text=task.query_text,
            query_spec=spec_text,
            feedback_type=task.feedback_type,
            feedback_text=task.feedback_text,
        )
        # Response is not used
        await self._llm.complete(prompt, max_tokens=self._max_tokens)
        logger.debug(
            "Forwarded feedback for learning",
            extra={"feedback_id": task.feedback_id, "query_history_id": task.query_history_id},
        )

    def _discard(self, task: FeedbackLearningTask, reason: str) -> None:
        self.discarded += 1
        logger.warning(
            f"Discarded feedback learning task: {reason}",
            extra={"feedback_id": task.feedback_id, "reason": reason},
        )
