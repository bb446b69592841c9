"""Tests for batch extraction"""

import threading
import time

import pytest

from prompt_optimizer_core.domain.entities import ExtractionJob, FieldSpec
from prompt_optimizer_core.errors import UpstreamCallError
from prompt_optimizer_core.use_cases.batch_extraction import extract_batch, extract_single

FIELDS = (FieldSpec(key="vendor", type="string", display_name="Vendor"),)


class FakeExtractionService:
    """Returns {"vendor": "<document id> value"}; fails for documents listed in fail_ids"""

    def __init__(self, fail_ids=(), delay=0.0):
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def extract(self, document_id, fields, model, template_key=None):
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if document_id in self.fail_ids:
                raise RuntimeError(f"upstream failure for {document_id}")
            return {"vendor": f"{document_id} value"}
        finally:
            with self._lock:
                self.active -= 1


def _jobs(n):
    return [
        ExtractionJob(job_id=f"job-{i}", document_id=f"d{i}", model="test-model", fields=FIELDS)
        for i in range(n)
    ]


class TestExtractBatch:
    def test_results_aligned_with_jobs(self):
        outcomes = extract_batch(_jobs(5), FakeExtractionService(), concurrency_limit=3)

        assert [o.job_id for o in outcomes] == [f"job-{i}" for i in range(5)]
        assert all(o.success for o in outcomes)
        assert outcomes[2].data == {"vendor": "d2 value"}

    @pytest.mark.parametrize("limit", [1, 2, 4])
    @pytest.mark.parametrize("failing", [0, 1, 3])
    @pytest.mark.parametrize("reverse", [False, True])
    def test_failure_does_not_affect_other_jobs(self, failing, limit, reverse):
        jobs = _jobs(4)
        if reverse:
            jobs = jobs[::-1]

        outcomes = extract_batch(jobs, FakeExtractionService(fail_ids={f"d{failing}"}), concurrency_limit=limit)

        assert [o.job_id for o in outcomes] == [j.job_id for j in jobs]
        for job, outcome in zip(jobs, outcomes):
            if job.document_id == f"d{failing}":
                assert outcome.success is False
                assert f"upstream failure for d{failing}" in outcome.error
                assert outcome.data is None
            else:
                assert outcome.success is True
                assert outcome.data == {"vendor": f"{job.document_id} value"}

    def test_concurrency_limit(self):
        service = FakeExtractionService(delay=0.02)

        extract_batch(_jobs(8), service, concurrency_limit=2)

        assert service.peak <= 2

    def test_progress_called_once_per_job(self):
        calls = []

        extract_batch(
            _jobs(4),
            FakeExtractionService(fail_ids={"d0"}),
            concurrency_limit=2,
            on_progress=lambda outcome, completed, total: calls.append((outcome.job_id, completed, total)),
        )

        assert sorted(c[0] for c in calls) == [f"job-{i}" for i in range(4)]
        assert sorted(c[1] for c in calls) == [1, 2, 3, 4]
        assert all(c[2] == 4 for c in calls)

    def test_progress_callback_errors_are_ignored(self):
        def broken_callback(outcome, completed, total):
            raise ValueError("display crashed")

        outcomes = extract_batch(_jobs(3), FakeExtractionService(), on_progress=broken_callback)

        assert all(o.success for o in outcomes)

    def test_timeout_becomes_failed_outcome(self):
        outcomes = extract_batch(_jobs(1), FakeExtractionService(delay=0.5), timeout_seconds=0.05)

        assert outcomes[0].success is False
        assert "timed out" in outcomes[0].error

    def test_empty_jobs(self):
        assert extract_batch([], FakeExtractionService()) == []


class TestExtractSingle:
    def test_returns_data(self):
        assert extract_single(_jobs(1)[0], FakeExtractionService()) == {"vendor": "d0 value"}

    def test_failure_raises(self):
        with pytest.raises(UpstreamCallError, match="upstream failure"):
            extract_single(_jobs(1)[0], FakeExtractionService(fail_ids={"d0"}))
