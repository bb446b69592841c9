"""
Document Sampling

Chooses a small set of documents that together exhibit every failing field
(greedy set cover), bounded by a document budget.

Selection runs in three phases:
  1. cover: repeatedly take the document failing the most still-uncovered
     fields; ties go to the document seen first in the failure map
  2. fill: while budget remains, add other failing documents, most
     failures first
  3. pad: while budget remains, add passing documents from all_document_ids
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

from prompt_optimizer_core.domain.entities import (
    AccuracySnapshot,
    FailureRecord,
    FieldFailureMap,
    SampledDocument,
    SamplingResult,
)
from prompt_optimizer_core.errors import InputValidationError

logger = logging.getLogger(__name__)


def build_field_failure_map(
    snapshot: AccuracySnapshot,
    field_keys: Sequence[str],
    model: str,
) -> FieldFailureMap:
    """
    Collect, per field, the documents where the model's comparison did not match

    Documents without a comparison for the field and model are skipped.
    Fields keep the order of field_keys; failures keep document order.
    """
    failure_map: FieldFailureMap = {}
    for field_key in field_keys:
        failures: list[FailureRecord] = []
        for doc in snapshot.documents:
            outcome = doc.comparison(field_key, model)
            if outcome is None or outcome.is_match:
                continue
            failures.append(FailureRecord(
                document_id=doc.id,
                document_name=doc.name,
                ground_truth_value=doc.ground_truth(field_key) or "",
                extracted_value=doc.extracted(field_key, model) or "",
                comparison_reason=outcome.details or outcome.error,
            ))
        failure_map[field_key] = failures
    return failure_map


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def split_train_holdout(
    document_ids: Sequence[str],
    holdout_ratio: float,
) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """
    Split ids into (train, holdout), holding out documents from the end

    No split below three documents or with a non-positive ratio. Otherwise at
    least one and at most half the documents are held out.
    """
    ids = tuple(document_ids)
    if len(ids) < 3 or holdout_ratio <= 0:
        return ids, ()
    holdout_count = _round_half_up(len(ids) * holdout_ratio)
    holdout_count = max(1, min(holdout_count, len(ids) // 2))
    return ids[:-holdout_count], ids[-holdout_count:]


def select_documents(
    failure_map: FieldFailureMap,
    max_docs: int = 5,
    all_document_ids: Sequence[str] | None = None,
    holdout_ratio: float = 0.0,
    document_names: Mapping[str, str] | None = None,
) -> SamplingResult:
    """
    Select up to max_docs documents covering the failing fields

    Args:
        failure_map: Field key -> failures for that field
        max_docs: Document budget
        all_document_ids: Optional pool of passing documents for padding
        holdout_ratio: Share of selected documents held out for validation
        document_names: Names for padding documents (defaults to the id)

    Returns:
        SamplingResult

    Raises:
        InputValidationError: If max_docs is negative
    """
    if max_docs < 0:
        raise InputValidationError(f"max_docs must be non-negative (got {max_docs})")

    # Document -> failing fields, in first-seen order
    doc_fields: dict[str, set[str]] = {}
    names: dict[str, str] = dict(document_names or {})
    for field_key, failures in failure_map.items():
        for failure in failures:
            doc_fields.setdefault(failure.document_id, set()).add(field_key)
            names.setdefault(failure.document_id, failure.document_name)

    failing_fields = [f for f, failures in failure_map.items() if failures]
    uncovered = set(failing_fields)
    selected: list[str] = []

    # Phase 1: greedy cover
    while uncovered and len(selected) < max_docs:
        best_doc: str | None = None
        best_score = 0
        for doc_id, fields in doc_fields.items():
            if doc_id in selected:
                continue
            score = len(fields & uncovered)
            if score > best_score:
                best_doc, best_score = doc_id, score
        if best_doc is None:
            break
        selected.append(best_doc)
        uncovered -= doc_fields[best_doc]

    # Phase 2: remaining failing documents, most failures first
    remaining = sorted(
        (d for d in doc_fields if d not in selected),
        key=lambda d: -len(doc_fields[d]),
    )
    for doc_id in remaining:
        if len(selected) >= max_docs:
            break
        selected.append(doc_id)

    # Phase 3: passing documents
    for doc_id in all_document_ids or ():
        if len(selected) >= max_docs:
            break
        if doc_id not in selected:
            selected.append(doc_id)

    field_to_document_ids: dict[str, frozenset[str]] = {}
    for field_key in failing_fields:
        covering = frozenset(d for d in selected if field_key in doc_fields.get(d, ()))
        if covering:
            field_to_document_ids[field_key] = covering
    uncovered_fields = tuple(f for f in failing_fields if f not in field_to_document_ids)
    if uncovered_fields:
        logger.warning(
            "Document budget %d leaves %d failing field(s) without a sampled document: %s",
            max_docs, len(uncovered_fields), ", ".join(uncovered_fields),
        )

    documents = tuple(
        SampledDocument(
            document_id=doc_id,
            document_name=names.get(doc_id, doc_id),
            covered_field_keys=frozenset(doc_fields.get(doc_id, ())),
        )
        for doc_id in selected
    )
    train_ids, holdout_ids = split_train_holdout(selected, holdout_ratio)

    logger.info(
        "Sampled %d document(s) covering %d/%d failing field(s)",
        len(documents), len(field_to_document_ids), len(failing_fields),
    )
    return SamplingResult(
        documents=documents,
        field_to_document_ids=field_to_document_ids,
        train_document_ids=train_ids,
        holdout_document_ids=holdout_ids,
        uncovered_field_keys=uncovered_fields,
    )
