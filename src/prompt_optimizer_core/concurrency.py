"""
Bounded Concurrency

Runs a worker over a list of items on a thread pool with a fixed number of
in-flight calls. Worker failures are captured as values so one item never
aborts its siblings.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from prompt_optimizer_core.errors import CallTimeoutError, InputValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class TaskOutcome(Generic[R]):
    """Result slot for one item: either a value or the exception raised"""
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> R:
        """Return the value, re-raising the captured exception if there is one"""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def run_with_concurrency(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T], R],
) -> list[TaskOutcome[R]]:
    """
    Run worker over items with at most `limit` calls in flight.

    Args:
        items: Inputs to process
        limit: Maximum number of simultaneous worker calls
        worker: Function applied to each item

    Returns:
        list[TaskOutcome]: results[i] corresponds to items[i]

    Raises:
        InputValidationError: If limit is less than 1
    """
    if limit < 1:
        raise InputValidationError(f"Concurrency limit must be at least 1 (got {limit}).")
    if not items:
        return []

    results: list[TaskOutcome[R] | None] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=min(limit, len(items))) as executor:
        futures = {executor.submit(worker, item): index for index, item in enumerate(items)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = TaskOutcome(value=future.result())
            except Exception as e:
                logger.debug("Worker failed for item %d: %s", index, e)
                results[index] = TaskOutcome(error=e)

    return results  # type: ignore[return-value]


def call_with_timeout(fn: Callable[[], R], timeout_seconds: float | None) -> R:
    """
    Call fn with an independent timeout.

    The call keeps running in the background after a timeout; its result is
    discarded.

    Raises:
        CallTimeoutError: If fn does not finish within timeout_seconds
    """
    if timeout_seconds is None:
        return fn()

    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        raise CallTimeoutError(f"Call timed out after {timeout_seconds}s")
    finally:
        executor.shutdown(wait=False)
