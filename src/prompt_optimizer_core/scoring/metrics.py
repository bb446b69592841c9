"""
Field metrics

Classifies each (prediction, ground truth) pair as TP / FP / FN / TN and
derives accuracy, precision, recall, and F1 for a field.

    ground truth   prediction            classification
    absent         absent                TN
    absent         present               FP
    present        absent                FN
    present        present, match        TP
    present        present, no match     FP and FN

Absent means the not-present marker; None and blank values are normalized
to it first.
"""

from __future__ import annotations

import logging
from typing import Sequence

from prompt_optimizer_core.concurrency import run_with_concurrency
from prompt_optimizer_core.domain.constants import NOT_PRESENT_VALUE
from prompt_optimizer_core.domain.value_objects import (
    CompareConfig,
    CompareType,
    ComparisonOutcome,
    Confidence,
    MetricsResult,
)
from prompt_optimizer_core.errors import InputValidationError
from prompt_optimizer_core.scoring.compare_engine import compare_values
from prompt_optimizer_core.scoring.llm_judge import LLMJudge

logger = logging.getLogger(__name__)


def normalize_value(value: str | None, not_present_value: str = NOT_PRESENT_VALUE) -> str:
    """None and blank strings become the not-present marker"""
    if value is None:
        return not_present_value
    text = str(value)
    if not text.strip():
        return not_present_value
    return text


def _safe_divide(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def calculate_field_metrics(
    predictions: Sequence[str | None],
    ground_truths: Sequence[str | None],
    compare_config: CompareConfig | None = None,
    document_ids: Sequence[str] | None = None,
    *,
    judge: LLMJudge | None = None,
    concurrency_limit: int = 5,
    not_present_value: str = NOT_PRESENT_VALUE,
) -> MetricsResult:
    """
    Compute metrics for one field across documents

    Args:
        predictions: Extracted values, one per document
        ground_truths: Ground truth values, aligned with predictions
        compare_config: Comparison strategy (near-exact-string by default)
        document_ids: Document ids for the audit trail
        judge: Judge for the llm-judge strategy
        concurrency_limit: Maximum concurrent judge calls
        not_present_value: Marker for an absent value

    Returns:
        MetricsResult with the per-document outcomes

    Raises:
        InputValidationError: If predictions and ground truths differ in length
    """
    if len(predictions) != len(ground_truths):
        raise InputValidationError(
            f"Predictions and ground truths must have the same length "
            f"({len(predictions)} != {len(ground_truths)})"
        )
    if document_ids is not None and len(document_ids) != len(predictions):
        raise InputValidationError("document_ids must align with predictions")

    total = len(predictions)
    if total == 0:
        return MetricsResult(accuracy=0.0, precision=0.0, recall=0.0, f1=0.0)

    config = compare_config or CompareConfig()
    is_boolean = config.compare_type == CompareType.BOOLEAN

    pairs = [
        (normalize_value(predicted, not_present_value), normalize_value(truth, not_present_value))
        for predicted, truth in zip(predictions, ground_truths)
    ]

    outcomes: list[ComparisonOutcome | None] = [None] * total
    to_compare: list[int] = []
    for i, (p, t) in enumerate(pairs):
        p_absent = p == not_present_value
        t_absent = t == not_present_value
        if p_absent and t_absent:
            outcomes[i] = ComparisonOutcome(True, config.compare_type, details="Both values not present")
        elif t_absent:
            outcomes[i] = ComparisonOutcome(False, config.compare_type,
                                            details="Value extracted but ground truth is not present")
        # An absent boolean prediction is compared, and reads as "No"
        elif p_absent and not is_boolean:
            outcomes[i] = ComparisonOutcome(False, config.compare_type, details="Value not extracted")
        else:
            to_compare.append(i)

    def _compare(index: int) -> ComparisonOutcome:
        p, t = pairs[index]
        return compare_values(p, t, config, judge=judge, not_present_value=not_present_value)

    if config.compare_type == CompareType.LLM_JUDGE:
        compared = run_with_concurrency(to_compare, concurrency_limit, _compare)
        for index, result in zip(to_compare, compared):
            if result.ok:
                outcomes[index] = result.value
            else:
                outcomes[index] = ComparisonOutcome(False, CompareType.LLM_JUDGE, Confidence.LOW,
                                                    error=str(result.error))
    else:
        for index in to_compare:
            outcomes[index] = _compare(index)

    tp = fp = fn = tn = 0
    for (p, t), outcome in zip(pairs, outcomes):
        p_absent = p == not_present_value
        t_absent = t == not_present_value
        if p_absent and t_absent:
            tn += 1
        elif t_absent:
            fp += 1
        elif p_absent and not is_boolean:
            fn += 1
        elif outcome.is_match:
            tp += 1
        else:
            fp += 1
            fn += 1

    precision = _safe_divide(tp, tp + fp)
    recall = _safe_divide(tp, tp + fn)
    f1 = _safe_divide(2 * precision * recall, precision + recall)
    accuracy = (tp + tn) / total

    logger.debug("Metrics: accuracy=%.3f TP=%d FP=%d FN=%d TN=%d", accuracy, tp, fp, fn, tn)
    return MetricsResult(
        accuracy=accuracy,
        precision=precision,
        recall=recall,
        f1=f1,
        true_positives=tp,
        false_positives=fp,
        false_negatives=fn,
        true_negatives=tn,
        outcomes=tuple(outcomes),
        document_ids=tuple(document_ids) if document_ids is not None else (),
    )
