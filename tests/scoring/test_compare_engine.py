"""Tests for the comparison strategies and dispatcher"""

from unittest.mock import MagicMock

import pytest

from prompt_optimizer_core.domain.value_objects import (
    CompareConfig,
    CompareType,
    ComparisonOutcome,
    Confidence,
)
from prompt_optimizer_core.scoring.compare_engine import (
    compare_boolean,
    compare_date,
    compare_exact_string,
    compare_list_ordered,
    compare_list_unordered,
    compare_near_exact_string,
    compare_numeric,
    compare_values,
)


class TestExactString:
    def test_case_sensitive(self):
        assert compare_exact_string("Acme", "Acme").is_match
        assert not compare_exact_string("acme", "Acme").is_match


class TestNearExactString:
    def test_normalized_equality(self):
        outcome = compare_near_exact_string("ACME Corp.", "acme corp")
        assert outcome.is_match
        assert outcome.confidence == Confidence.HIGH

    def test_value_in_multi_value_extraction(self):
        outcome = compare_near_exact_string("Acme | Beta", "beta")
        assert outcome.is_match
        assert outcome.details == "Value found in multi-value extracted"

    def test_value_in_multi_value_ground_truth(self):
        outcome = compare_near_exact_string("beta", "Acme, Beta")
        assert outcome.is_match
        assert outcome.details == "Value found in multi-value ground truth"

    def test_containment_is_medium_confidence(self):
        outcome = compare_near_exact_string("Acme Corporation Inc", "Acme Corporation")
        assert outcome.is_match
        assert outcome.confidence == Confidence.MEDIUM

    def test_short_containment_does_not_match(self):
        assert not compare_near_exact_string("a", "abc").is_match

    def test_different_values(self):
        assert not compare_near_exact_string("Delaware", "California").is_match


class TestNumeric:
    def test_same_value_different_format(self):
        outcome = compare_numeric("$1,000.00", "1000")
        assert outcome.is_match
        assert outcome.details == "Same value, different format"

    def test_tolerance(self):
        assert compare_numeric("100.4", "100", tolerance=0.5).is_match
        assert not compare_numeric("100.6", "100", tolerance=0.5).is_match

    def test_unparseable(self):
        outcome = compare_numeric("lots", "100")
        assert not outcome.is_match
        assert outcome.details == "Failed to parse as number"


class TestDate:
    def test_same_date_different_format(self):
        outcome = compare_date("2024-01-15", "January 15, 2024")
        assert outcome.is_match
        assert outcome.details == "Same date, different format"

    def test_different_dates(self):
        assert not compare_date("2024-01-15", "2024-01-16").is_match

    def test_unparseable(self):
        assert compare_date("soon", "2024-01-15").details == "Failed to parse as date"


class TestBoolean:
    def test_equivalent_forms(self):
        assert compare_boolean("Yes", "true").is_match
        assert not compare_boolean("No", "yes").is_match


class TestLists:
    def test_unordered_same_items(self):
        outcome = compare_list_unordered("a, b, c", "c, b, a")
        assert outcome.is_match
        assert outcome.details == "Same items in different order"

    def test_unordered_partial_overlap(self):
        outcome = compare_list_unordered("widget, gadget", "widget, gadget, sprocket, bolt")
        assert outcome.is_match
        assert outcome.confidence == Confidence.MEDIUM

    def test_unordered_no_overlap(self):
        assert not compare_list_unordered("x, y", "a, b, c").is_match

    def test_ordered(self):
        assert compare_list_ordered("a | b", "a | b").is_match
        outcome = compare_list_ordered("b, a", "a, b")
        assert not outcome.is_match
        assert outcome.details == "Same items but in different order"


class TestCompareValues:
    def test_defaults_to_near_exact(self):
        outcome = compare_values("ACME", "acme")
        assert outcome.is_match
        assert outcome.match_type == CompareType.NEAR_EXACT_STRING

    def test_not_present_handling(self):
        assert compare_values("Not Present", "Not Present").is_match
        assert not compare_values("Not Present", "Acme").is_match
        assert not compare_values("Acme", "Not Present").is_match

    def test_boolean_treats_not_present_as_no(self):
        config = CompareConfig(compare_type=CompareType.BOOLEAN)
        assert compare_values("Not Present", "No", config).is_match

    def test_error_values_are_skipped(self):
        outcome = compare_values("Error: timeout", "Acme")
        assert not outcome.is_match
        assert outcome.details == "Skipped pending/error state"

    def test_numeric_dispatch(self):
        config = CompareConfig(compare_type=CompareType.NUMERIC_TOLERANCE, tolerance=1.0)
        assert compare_values("10.5", "10", config).is_match

    def test_llm_judge_short_circuits_identical_values(self):
        judge = MagicMock()
        config = CompareConfig(compare_type=CompareType.LLM_JUDGE)

        outcome = compare_values("Net 30", " Net 30 ", config, judge=judge)

        assert outcome.is_match
        judge.compare.assert_not_called()

    def test_llm_judge_delegates(self):
        judge = MagicMock()
        judge.compare.return_value = ComparisonOutcome(True, CompareType.LLM_JUDGE, Confidence.MEDIUM)
        config = CompareConfig(compare_type=CompareType.LLM_JUDGE, criteria="Same payment term")

        outcome = compare_values("30 days net", "Net 30", config, judge=judge)

        assert outcome.is_match
        judge.compare.assert_called_once_with("Net 30", "30 days net", "Same payment term")

    def test_llm_judge_without_judge(self):
        config = CompareConfig(compare_type=CompareType.LLM_JUDGE)
        outcome = compare_values("a", "b", config)
        assert not outcome.is_match
        assert outcome.error is not None

    def test_strategy_errors_become_outcomes(self):
        judge = MagicMock()
        judge.compare.side_effect = RuntimeError("exploded")
        config = CompareConfig(compare_type=CompareType.LLM_JUDGE)

        outcome = compare_values("a", "b", config, judge=judge)

        assert not outcome.is_match
        assert outcome.error == "exploded"

    @pytest.mark.parametrize("predicted,truth", [("Acme", "Acme"), ("x", "y"), ("Not Present", "Not Present")])
    def test_idempotent(self, predicted, truth):
        assert compare_values(predicted, truth) == compare_values(predicted, truth)
