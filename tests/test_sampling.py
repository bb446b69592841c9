"""Tests for failure-map construction and greedy document sampling"""

import logging

import pytest

from prompt_optimizer_core.domain.entities import (
    AccuracySnapshot,
    DocumentResult,
    FailureRecord,
    FieldDefinition,
)
from prompt_optimizer_core.domain.value_objects import CompareType, ComparisonOutcome
from prompt_optimizer_core.errors import InputValidationError
from prompt_optimizer_core.sampling import (
    build_field_failure_map,
    select_documents,
    split_train_holdout,
)


def _failure(doc_id: str) -> FailureRecord:
    return FailureRecord(
        document_id=doc_id,
        document_name=f"{doc_id}.pdf",
        ground_truth_value="expected",
        extracted_value="wrong",
    )


def _failure_map(spec: dict[str, list[str]]) -> dict[str, list[FailureRecord]]:
    return {field_key: [_failure(d) for d in docs] for field_key, docs in spec.items()}


def _outcome(is_match: bool, details: str | None = None) -> ComparisonOutcome:
    return ComparisonOutcome(is_match=is_match, match_type=CompareType.EXACT_STRING, details=details)


class TestBuildFieldFailureMap:
    def _snapshot(self) -> AccuracySnapshot:
        return AccuracySnapshot(
            template_key="contracts",
            fields=(FieldDefinition(key="a", name="A"), FieldDefinition(key="b", name="B")),
            documents=(
                DocumentResult(
                    id="d1",
                    name="one.pdf",
                    values={"a": {"Ground Truth": "x", "m": "y"}, "b": {"Ground Truth": "1", "m": "1"}},
                    comparisons={
                        "a": {"m": _outcome(False, "values differ")},
                        "b": {"m": _outcome(True)},
                    },
                ),
                DocumentResult(
                    id="d2",
                    name="two.pdf",
                    values={"a": {"Ground Truth": "x", "m": "x"}},
                    comparisons={"a": {"m": _outcome(True)}},
                ),
                DocumentResult(id="d3", name="three.pdf"),
            ),
        )

    def test_collects_mismatches_only(self):
        failure_map = build_field_failure_map(self._snapshot(), ["a", "b"], "m")

        assert list(failure_map) == ["a", "b"]
        assert [f.document_id for f in failure_map["a"]] == ["d1"]
        assert failure_map["b"] == []

    def test_failure_record_carries_values(self):
        record = build_field_failure_map(self._snapshot(), ["a"], "m")["a"][0]

        assert record.document_name == "one.pdf"
        assert record.ground_truth_value == "x"
        assert record.extracted_value == "y"
        assert record.comparison_reason == "values differ"

    def test_other_model_has_no_failures(self):
        failure_map = build_field_failure_map(self._snapshot(), ["a"], "other")
        assert failure_map == {"a": []}


class TestSelectDocuments:
    def test_greedy_cover_example(self):
        """Budget 2 picks the two documents that together cover every field"""
        failure_map = _failure_map({"A": ["d1", "d2"], "B": ["d2", "d3"], "C": ["d1"]})

        result = select_documents(failure_map, max_docs=2)

        assert set(result.document_ids) == {"d1", "d2"}
        assert result.uncovered_field_keys == ()
        assert result.field_to_document_ids["A"] == frozenset({"d1", "d2"})
        assert result.field_to_document_ids["B"] == frozenset({"d2"})
        assert result.field_to_document_ids["C"] == frozenset({"d1"})

    def test_single_document_covers_all(self):
        failure_map = _failure_map({"A": ["d1"], "B": ["d1"], "C": ["d1"]})

        result = select_documents(failure_map, max_docs=5)

        assert result.document_ids == ["d1"]
        assert result.documents[0].covered_field_keys == frozenset({"A", "B", "C"})

    @pytest.mark.parametrize("max_docs", [0, 1, 2, 3])
    def test_never_exceeds_budget(self, max_docs):
        failure_map = _failure_map({"A": ["d1"], "B": ["d2"], "C": ["d3"], "D": ["d4"]})

        result = select_documents(failure_map, max_docs=max_docs)

        assert len(result.documents) <= max_docs
        assert len(set(result.document_ids)) == len(result.document_ids)

    def test_uncovered_fields_are_reported(self, caplog):
        failure_map = _failure_map({"A": ["d1"], "B": ["d2"], "C": ["d3"]})

        with caplog.at_level(logging.WARNING, logger="prompt_optimizer_core.sampling"):
            result = select_documents(failure_map, max_docs=1)

        assert result.document_ids == ["d1"]
        assert result.uncovered_field_keys == ("B", "C")
        assert "without a sampled document" in caplog.text

    def test_empty_failure_map(self):
        result = select_documents({}, max_docs=5)

        assert result.documents == ()
        assert result.field_to_document_ids == {}
        assert result.uncovered_field_keys == ()

    def test_fields_without_failures_are_ignored(self):
        result = select_documents({"A": [], "B": []}, max_docs=3)
        assert result.documents == ()
        assert result.uncovered_field_keys == ()

    def test_fill_prefers_documents_with_more_failures(self):
        failure_map = _failure_map({"A": ["d1", "d2", "d3"], "B": ["d3"]})

        result = select_documents(failure_map, max_docs=2)

        # d3 covers both fields; d1 fills next as the first-seen remaining doc
        assert result.document_ids == ["d3", "d1"]

    def test_padding_from_all_document_ids(self):
        failure_map = _failure_map({"A": ["d2"]})

        result = select_documents(
            failure_map,
            max_docs=3,
            all_document_ids=["d1", "d2", "d3", "d4"],
            document_names={"d1": "passing.pdf"},
        )

        assert result.document_ids == ["d2", "d1", "d3"]
        assert result.documents[1].document_name == "passing.pdf"
        assert result.documents[1].covered_field_keys == frozenset()
        assert result.documents[2].document_name == "d3"

    def test_negative_budget_raises(self):
        with pytest.raises(InputValidationError):
            select_documents({}, max_docs=-1)

    def test_holdout_split_applied(self):
        failure_map = _failure_map({"A": ["d1", "d2", "d3", "d4"]})

        result = select_documents(failure_map, max_docs=4, holdout_ratio=0.25)

        assert result.train_document_ids == ("d1", "d2", "d3")
        assert result.holdout_document_ids == ("d4",)


class TestSplitTrainHoldout:
    def test_no_split_for_small_sets(self):
        assert split_train_holdout(["a", "b"], 0.5) == (("a", "b"), ())

    def test_no_split_for_zero_ratio(self):
        assert split_train_holdout(["a", "b", "c"], 0.0) == (("a", "b", "c"), ())

    def test_at_least_one_held_out(self):
        train, holdout = split_train_holdout(["a", "b", "c", "d", "e"], 0.01)
        assert holdout == ("e",)
        assert train == ("a", "b", "c", "d")

    def test_at_most_half_held_out(self):
        train, holdout = split_train_holdout(["a", "b", "c", "d"], 0.9)
        assert holdout == ("c", "d")
        assert train == ("a", "b")
