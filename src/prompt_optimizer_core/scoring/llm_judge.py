"""
LLM Judge comparison

Asks a separate model whether an extracted value matches its ground truth.
The generation service requires a bound context item even for pure text
comparison, so a placeholder item is created lazily and shared by all
judge calls.
"""

from __future__ import annotations

import logging
import threading

from prompt_optimizer_core.concurrency import call_with_timeout
from prompt_optimizer_core.domain.value_objects import (
    CompareType,
    ComparisonOutcome,
    Confidence,
    JudgeVerdict,
)
from prompt_optimizer_core.errors import ContextNotFoundError
from prompt_optimizer_core.infrastructure.services import GenerationService, PlaceholderProvider

logger = logging.getLogger(__name__)

DEFAULT_CRITERIA = (
    "Determine if these two values are semantically equivalent. "
    "Focus on meaning rather than exact phrasing."
)

_REASON_PREFIX = "reason:"


def build_judge_prompt(ground_truth: str, extracted: str, criteria: str | None = None) -> str:
    """Fixed-format prompt asking for a MATCH / NO_MATCH verdict and a one-line reason"""
    parts: list[str] = [
        "You are a metadata validation assistant. Compare the following two values "
        "and determine if they match according to the criteria.",
        "",
        f'Ground Truth: "{ground_truth}"',
        f'Extracted Value: "{extracted}"',
        "",
        f"Criteria: {criteria or DEFAULT_CRITERIA}",
        "",
        "Respond with EXACTLY one of:",
        "- MATCH: if the values satisfy the criteria",
        "- NO_MATCH: if the values do not satisfy the criteria",
        "",
        "Then on a new line, provide a brief reason (1 sentence).",
        "",
        "Format:",
        "MATCH or NO_MATCH",
        "Reason: [your reason]",
    ]
    return "\n".join(parts)


def parse_judge_response(raw: str | None) -> JudgeVerdict:
    """
    Parse the judge's answer into a verdict. Never raises.

    The first non-empty line carries the verdict: NO_MATCH / NO MATCH is
    false, MATCH is true, anything else is an ambiguous false. The reason
    comes from a "Reason:" line, else the second line.
    """
    if not isinstance(raw, str) or not raw.strip():
        return JudgeVerdict(is_match=False, reason="Empty response")

    lines = [line.strip() for line in raw.splitlines() if line.strip()]
    first_line = lines[0].upper()

    if "NO_MATCH" in first_line or "NO MATCH" in first_line:
        is_match = False
    elif "MATCH" in first_line:
        is_match = True
    else:
        logger.warning("Ambiguous judge response, treating as NO_MATCH: %r", raw[:100])
        return JudgeVerdict(is_match=False, reason="Ambiguous response: " + raw[:100])

    reason = "No reason provided"
    reason_line = next((line for line in lines if line.lower().startswith(_REASON_PREFIX)), None)
    if reason_line is not None:
        reason = reason_line[len(_REASON_PREFIX):].strip() or reason
    elif len(lines) > 1:
        reason = lines[1]
    return JudgeVerdict(is_match=is_match, reason=reason)


def is_context_not_found(error: Exception) -> bool:
    """True when an error says a context item no longer exists upstream"""
    if isinstance(error, ContextNotFoundError):
        return True
    message = str(error).lower()
    return "not found" in message or "404" in message


class PlaceholderContextCache:
    """
    Lazily created placeholder context item shared across judge calls

    Reads are lock-free once the item exists. Creation and recreation happen
    under a lock, so at most one is in flight and concurrent callers reuse
    its result.
    """

    def __init__(self, provider: PlaceholderProvider) -> None:
        self._provider = provider
        self._lock = threading.Lock()
        self._item_id: str | None = None

    def get(self) -> str:
        item_id = self._item_id
        if item_id is not None:
            return item_id
        with self._lock:
            if self._item_id is None:
                self._item_id = self._provider.create_placeholder()
            return self._item_id

    def invalidate(self, stale_id: str) -> None:
        """Drop the cached item, unless another caller already replaced it"""
        with self._lock:
            if self._item_id == stale_id:
                self._item_id = None


class LLMJudge:
    """Judge comparator backed by a generation service"""

    def __init__(
        self,
        generation_service: GenerationService,
        placeholder_cache: PlaceholderContextCache,
        model: str,
        timeout_seconds: float | None = None,
    ) -> None:
        self._service = generation_service
        self._placeholders = placeholder_cache
        self.model = model
        self.timeout_seconds = timeout_seconds

    def _call(self, prompt: str, item_id: str) -> str:
        return call_with_timeout(
            lambda: self._service.generate(prompt, [item_id], self.model),
            self.timeout_seconds,
        )

    def judge(self, ground_truth: str, extracted: str, criteria: str | None = None) -> JudgeVerdict:
        """
        Ask the judge model for a verdict

        Retries exactly once with a fresh placeholder when the cached one is
        gone upstream.

        Raises:
            Exception: Any failure from the generation service after the retry
        """
        prompt = build_judge_prompt(ground_truth, extracted, criteria)
        item_id = self._placeholders.get()
        try:
            raw = self._call(prompt, item_id)
        except Exception as e:
            if not is_context_not_found(e):
                raise
            logger.warning("Placeholder context %s not found, re-acquiring: %s", item_id, e)
            self._placeholders.invalidate(item_id)
            raw = self._call(prompt, self._placeholders.get())
        return parse_judge_response(raw)

    def compare(self, ground_truth: str, extracted: str, criteria: str | None = None) -> ComparisonOutcome:
        """Judge one pair; failures become a non-matching outcome with error set"""
        try:
            verdict = self.judge(ground_truth, extracted, criteria)
        except Exception as e:
            logger.error("Judge call failed: %s", e)
            return ComparisonOutcome(
                is_match=False,
                match_type=CompareType.LLM_JUDGE,
                confidence=Confidence.LOW,
                details="LLM comparison failed",
                error=str(e),
            )
        logger.debug("Judge verdict %s: %s", verdict.is_match, verdict.reason)
        return ComparisonOutcome(
            is_match=verdict.is_match,
            match_type=CompareType.LLM_JUDGE,
            confidence=Confidence.MEDIUM,
            details=verdict.reason,
        )
