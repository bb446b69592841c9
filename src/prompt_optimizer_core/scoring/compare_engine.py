"""
Comparison strategies

Routes a (predicted, ground truth) pair to the strategy configured for the
field and returns a ComparisonOutcome. Comparison never raises: unknown
strategies and parser failures resolve to a non-matching outcome with an
error message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from prompt_optimizer_core.domain.constants import EXTRACTION_ERROR_PREFIX, NOT_PRESENT_VALUE
from prompt_optimizer_core.domain.value_objects import (
    CompareConfig,
    CompareType,
    ComparisonOutcome,
    Confidence,
)
from prompt_optimizer_core.scoring.normalization import (
    detect_separator,
    extract_core_name,
    normalize_text,
    parse_boolean,
    parse_date,
    parse_list,
    parse_number,
)

if TYPE_CHECKING:
    from prompt_optimizer_core.scoring.llm_judge import LLMJudge

logger = logging.getLogger(__name__)

# Containment shorter than this is too weak to count as a partial match
_MIN_PARTIAL_LENGTH = 3

_SKIPPED_PREFIXES = (EXTRACTION_ERROR_PREFIX, "Pending")


def _outcome(is_match: bool, match_type: CompareType, confidence: Confidence = Confidence.HIGH,
             details: str | None = None, error: str | None = None) -> ComparisonOutcome:
    return ComparisonOutcome(is_match=is_match, match_type=match_type, confidence=confidence,
                             details=details, error=error)


def compare_exact_string(predicted: str, ground_truth: str) -> ComparisonOutcome:
    """Case-sensitive equality"""
    return _outcome(predicted == ground_truth, CompareType.EXACT_STRING)


def _items_overlap(a: str, b: str) -> bool:
    if a == b or a in b or b in a:
        return True
    core = extract_core_name(a)
    return bool(core) and core == extract_core_name(b)


def compare_near_exact_string(predicted: str, ground_truth: str) -> ComparisonOutcome:
    """
    Normalized comparison with multi-value and containment partial matches

    Exact normalized equality is a high-confidence match. A multi-value side
    (pipe or comma separated) matches when one of its items equals the other
    side; looser overlap and plain containment are medium-confidence matches.
    """
    kind = CompareType.NEAR_EXACT_STRING
    norm_predicted = normalize_text(predicted)
    norm_truth = normalize_text(ground_truth)

    if norm_predicted == norm_truth:
        return _outcome(True, kind)

    for multi, single, norm_single, label in (
        (predicted, ground_truth, norm_truth, "extracted"),
        (ground_truth, predicted, norm_predicted, "ground truth"),
    ):
        separator = detect_separator(multi)
        if separator not in multi:
            continue
        items = parse_list(multi, separator)
        if norm_single in items:
            return _outcome(True, kind, details=f"Value found in multi-value {label}")
        if norm_single and any(_items_overlap(item, norm_single) for item in items):
            return _outcome(True, kind, Confidence.MEDIUM,
                            details=f"Partial match found in multi-value {label}")

    if len(norm_predicted) >= _MIN_PARTIAL_LENGTH and len(norm_truth) >= _MIN_PARTIAL_LENGTH:
        if norm_truth in norm_predicted:
            return _outcome(True, kind, Confidence.MEDIUM,
                            details="Ground truth is contained in extracted value")
        if norm_predicted in norm_truth:
            return _outcome(True, kind, Confidence.MEDIUM,
                            details="Extracted value is contained in ground truth")

    return _outcome(False, kind)


def compare_numeric(predicted: str, ground_truth: str, tolerance: float = 0.0) -> ComparisonOutcome:
    """Numeric equality within an absolute tolerance"""
    kind = CompareType.NUMERIC_TOLERANCE
    a = parse_number(predicted)
    b = parse_number(ground_truth)
    if a is None or b is None:
        return _outcome(False, kind, details="Failed to parse as number")
    is_match = abs(a - b) <= tolerance
    details = "Same value, different format" if is_match and predicted.strip() != ground_truth.strip() else None
    return _outcome(is_match, kind, details=details)


def compare_date(predicted: str, ground_truth: str) -> ComparisonOutcome:
    """Calendar date equality across formats"""
    kind = CompareType.DATE_EXACT
    a = parse_date(predicted)
    b = parse_date(ground_truth)
    if a is None or b is None:
        return _outcome(False, kind, details="Failed to parse as date")
    is_match = a == b
    details = "Same date, different format" if is_match and predicted.strip().lower() != ground_truth.strip().lower() else None
    return _outcome(is_match, kind, details=details)


def compare_boolean(predicted: str, ground_truth: str) -> ComparisonOutcome:
    kind = CompareType.BOOLEAN
    a = parse_boolean(predicted)
    b = parse_boolean(ground_truth)
    if a is None or b is None:
        return _outcome(False, kind, details="Failed to parse as boolean")
    return _outcome(a == b, kind)


def compare_list_unordered(predicted: str, ground_truth: str, separator: str | None = None) -> ComparisonOutcome:
    """
    Order-insensitive list comparison

    Identical item sets match with high confidence. Otherwise the lists match
    when at least half of either side's items overlap the other side.
    """
    kind = CompareType.LIST_UNORDERED
    sep = separator or detect_separator(predicted, ground_truth)
    predicted_items = parse_list(predicted, sep)
    truth_items = parse_list(ground_truth, sep)

    if sorted(predicted_items) == sorted(truth_items):
        details = "Same items in different order" if predicted_items != truth_items else None
        return _outcome(True, kind, details=details)

    truth_hits = sum(1 for t in truth_items if any(_items_overlap(p, t) for p in predicted_items))
    predicted_hits = sum(1 for p in predicted_items if any(_items_overlap(t, p) for t in truth_items))
    truth_ratio = truth_hits / len(truth_items) if truth_items else 0.0
    predicted_ratio = predicted_hits / len(predicted_items) if predicted_items else 0.0

    if truth_ratio >= 0.5 or predicted_ratio >= 0.5:
        if truth_ratio == 1.0 and predicted_ratio == 1.0:
            return _outcome(True, kind, details="All items match with possible variations")
        return _outcome(True, kind, Confidence.MEDIUM,
                        details=f"{truth_hits}/{len(truth_items)} ground truth items found")

    return _outcome(False, kind)


def compare_list_ordered(predicted: str, ground_truth: str, separator: str | None = None) -> ComparisonOutcome:
    kind = CompareType.LIST_ORDERED
    sep = separator or detect_separator(predicted, ground_truth)
    predicted_items = parse_list(predicted, sep)
    truth_items = parse_list(ground_truth, sep)

    if predicted_items == truth_items:
        return _outcome(True, kind)
    if sorted(predicted_items) == sorted(truth_items):
        return _outcome(False, kind, details="Same items but in different order")
    return _outcome(False, kind)


def compare_values(
    predicted: str,
    ground_truth: str,
    config: CompareConfig | None = None,
    *,
    judge: LLMJudge | None = None,
    not_present_value: str = NOT_PRESENT_VALUE,
) -> ComparisonOutcome:
    """
    Compare an extracted value against its ground truth

    Args:
        predicted: Extracted value
        ground_truth: Accepted-correct value
        config: Comparison configuration (near-exact-string by default)
        judge: Judge used by the llm-judge strategy
        not_present_value: Marker for an absent value

    Returns:
        ComparisonOutcome
    """
    config = config or CompareConfig()
    kind = config.compare_type

    if kind == CompareType.BOOLEAN:
        # An absent yes/no clause reads as "No"
        predicted = "No" if predicted == not_present_value else predicted
        ground_truth = "No" if ground_truth == not_present_value else ground_truth
        return compare_boolean(predicted, ground_truth)

    if predicted == not_present_value or ground_truth == not_present_value:
        return _outcome(predicted == ground_truth, kind)

    if predicted.startswith(_SKIPPED_PREFIXES):
        return _outcome(False, kind, details="Skipped pending/error state")

    try:
        if kind == CompareType.EXACT_STRING:
            return compare_exact_string(predicted, ground_truth)
        if kind == CompareType.NEAR_EXACT_STRING:
            return compare_near_exact_string(predicted, ground_truth)
        if kind == CompareType.NUMERIC_TOLERANCE:
            return compare_numeric(predicted, ground_truth, config.tolerance)
        if kind == CompareType.DATE_EXACT:
            return compare_date(predicted, ground_truth)
        if kind == CompareType.LIST_UNORDERED:
            return compare_list_unordered(predicted, ground_truth, config.separator)
        if kind == CompareType.LIST_ORDERED:
            return compare_list_ordered(predicted, ground_truth, config.separator)
        if kind == CompareType.LLM_JUDGE:
            if predicted.strip() == ground_truth.strip():
                return _outcome(True, CompareType.EXACT_STRING)
            if judge is None:
                return _outcome(False, kind, Confidence.LOW, error="No judge configured for llm-judge comparison")
            return judge.compare(ground_truth, predicted, config.criteria)
    except Exception as e:
        logger.error("Comparison failed (%s): %s", kind, e)
        return _outcome(False, kind, Confidence.LOW, error=str(e))

    logger.error("Unknown compare type: %s", kind)
    return _outcome(False, kind, Confidence.LOW, error=f"Unknown compare type: {kind}")
