"""
Batch Extraction

Runs many extraction jobs through the bounded executor. Every job gets its
own result slot; one job's failure never touches another's.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Sequence

from prompt_optimizer_core.concurrency import call_with_timeout, run_with_concurrency
from prompt_optimizer_core.domain.entities import ExtractionJob, ExtractionOutcome
from prompt_optimizer_core.errors import UpstreamCallError
from prompt_optimizer_core.infrastructure.services import ExtractionService

logger = logging.getLogger(__name__)

DEFAULT_BATCH_CONCURRENCY = 10

ProgressCallback = Callable[[ExtractionOutcome, int, int], None]


def extract_batch(
    jobs: Sequence[ExtractionJob],
    service: ExtractionService,
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
    timeout_seconds: float | None = None,
) -> list[ExtractionOutcome]:
    """
    Execute extraction jobs with bounded concurrency.

    Args:
        jobs: Jobs to run
        service: Extraction service
        concurrency_limit: Maximum simultaneous jobs (default: DEFAULT_BATCH_CONCURRENCY)
        on_progress: Called once per finished job with (outcome, completed, total).
            Calls are serialized; their order across jobs is not guaranteed.
        timeout_seconds: Per-job timeout

    Returns:
        list[ExtractionOutcome]: Index-aligned with jobs
    """
    limit = concurrency_limit or DEFAULT_BATCH_CONCURRENCY
    total = len(jobs)
    progress = {"completed": 0}
    lock = threading.Lock()

    logger.info("Starting batch extraction: %d jobs (concurrency %d)", total, limit)

    def _run(job: ExtractionJob) -> ExtractionOutcome:
        start_time = time.time()
        try:
            data = call_with_timeout(
                lambda: service.extract(job.document_id, job.fields, job.model, job.template_key),
                timeout_seconds,
            )
            outcome = ExtractionOutcome(
                job_id=job.job_id,
                success=True,
                data=dict(data or {}),
                duration_seconds=time.time() - start_time,
            )
        except Exception as e:
            logger.error("Extraction failed for %s (%s): %s", job.document_id, job.model, e)
            outcome = ExtractionOutcome(
                job_id=job.job_id,
                success=False,
                error=str(e) or type(e).__name__,
                duration_seconds=time.time() - start_time,
            )

        with lock:
            progress["completed"] += 1
            completed = progress["completed"]
            if on_progress is not None:
                try:
                    on_progress(outcome, completed, total)
                except Exception as e:
                    logger.warning("Progress callback raised: %s", e)
        return outcome

    results = run_with_concurrency(jobs, limit, _run)
    outcomes = [r.unwrap() for r in results]

    succeeded = sum(1 for o in outcomes if o.success)
    logger.info("Batch extraction finished: %d succeeded, %d failed", succeeded, total - succeeded)
    return outcomes


def extract_single(
    job: ExtractionJob,
    service: ExtractionService,
    timeout_seconds: float | None = None,
) -> dict:
    """
    Execute one extraction through the batch path (concurrency 1).

    Raises:
        UpstreamCallError: If the extraction failed
    """
    outcome = extract_batch([job], service, concurrency_limit=1, timeout_seconds=timeout_seconds)[0]
    if not outcome.success:
        raise UpstreamCallError(outcome.error or "Extraction failed")
    return outcome.data or {}
