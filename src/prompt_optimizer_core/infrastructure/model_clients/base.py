"""
Model client base class and retry mixin

Every provider client implements ``_complete()`` and declares which SDK
errors are transient. ``ModelClient.generate()`` wraps the call with
timing and retries, and converts the final failure into UpstreamCallError
so the optimizer can capture it at the unit-of-work boundary.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, NamedTuple, TypeVar

from prompt_optimizer_core.domain.value_objects import ModelResponse
from prompt_optimizer_core.errors import UpstreamCallError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Completion(NamedTuple):
    """Raw provider answer before it becomes a ModelResponse"""
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class RetryMixin:
    """Exponential backoff retry. Subclasses set self.max_retries and self.retry_delay_seconds."""

    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    def _with_retry(
        self,
        fn: Callable[[], T],
        retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
        label: str = "Model call",
    ) -> T:
        """
        Execute with exponential backoff retry.

        Args:
            fn: The function to retry (a callable with no arguments)
            retryable_exceptions: Tuple of exception types eligible for retry
            label: Prefix for log and error messages

        Returns:
            The return value of fn()

        Raises:
            ValueError: If max_retries is less than 1
            UpstreamCallError: If every attempt failed with a retryable error
        """
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1.")

        for attempt in range(1, self.max_retries + 1):
            try:
                return fn()
            except retryable_exceptions as e:
                if attempt == self.max_retries:
                    raise UpstreamCallError(
                        f"{label} failed after {attempt} attempt(s): {e}"
                    ) from e
                delay = self.retry_delay_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    label, attempt, self.max_retries, delay, e,
                )
                time.sleep(delay)
        raise AssertionError("unreachable")


class ModelClient(RetryMixin, ABC):
    """Abstract base class for model clients"""

    model_name: str
    retryable_errors: tuple[type[BaseException], ...] = ()

    @abstractmethod
    def _complete(self, prompt: str) -> Completion:
        """Issue a single provider request"""

    def generate(self, prompt: str) -> ModelResponse:
        """Send a prompt and retrieve the response"""
        def _call() -> ModelResponse:
            start_time = time.time()
            completion = self._complete(prompt)
            return ModelResponse(
                output=completion.text.strip(),
                latency_ms=int((time.time() - start_time) * 1000),
                model_name=self.model_name,
                input_tokens=completion.input_tokens,
                output_tokens=completion.output_tokens,
            )

        return self._with_retry(
            _call,
            retryable_exceptions=self.retryable_errors,
            label=f"{self.model_name} call",
        )
