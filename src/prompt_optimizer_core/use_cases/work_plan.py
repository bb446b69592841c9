"""
Work Plan Builder

Turns an accuracy snapshot into a WorkPlan: the fields below target, a
sampled document subset exhibiting their failures, and the ground truth
for those documents. No external calls are made here.
"""

from __future__ import annotations

import logging
import uuid

from prompt_optimizer_core.domain.entities import AccuracySnapshot, FieldPlan, WorkPlan
from prompt_optimizer_core.errors import InputValidationError
from prompt_optimizer_core.infrastructure.adapters import SnapshotGroundTruthStore
from prompt_optimizer_core.infrastructure.services import GroundTruthStore
from prompt_optimizer_core.optimizer_config import OptimizerConfig
from prompt_optimizer_core.sampling import build_field_failure_map, select_documents

logger = logging.getLogger(__name__)


def compared_models(snapshot: AccuracySnapshot) -> list[str]:
    """Models that have at least one comparison outcome, in first-seen order"""
    models: list[str] = []
    for doc in snapshot.documents:
        for per_model in doc.comparisons.values():
            for model in per_model:
                if model not in models:
                    models.append(model)
    return models


def field_accuracy(snapshot: AccuracySnapshot, field_key: str, model: str) -> float | None:
    """
    Accuracy of a field for a model

    Uses the snapshot averages when present, otherwise the share of
    matching comparison outcomes. None when the field was never compared.
    """
    average = snapshot.averages.get(field_key, {}).get(model)
    if average is not None:
        return average

    outcomes = [doc.comparison(field_key, model) for doc in snapshot.documents]
    outcomes = [o for o in outcomes if o is not None]
    if not outcomes:
        return None
    return sum(1 for o in outcomes if o.is_match) / len(outcomes)


def _empty_plan(snapshot: AccuracySnapshot, test_model: str) -> WorkPlan:
    return WorkPlan(run_id=str(uuid.uuid4()), template_key=snapshot.template_key, test_model=test_model)


def prepare_work_plan(
    snapshot: AccuracySnapshot,
    test_model: str,
    max_docs: int | None = None,
    config: OptimizerConfig | None = None,
    ground_truth_store: GroundTruthStore | None = None,
) -> WorkPlan:
    """
    Build the work plan for one optimization run

    Args:
        snapshot: Current accuracy state of the template
        test_model: Model whose extractions are being improved
        max_docs: Document budget (default: config.sampling.max_docs)
        config: Optimizer configuration
        ground_truth_store: Ground truth source (default: the snapshot itself)

    Returns:
        WorkPlan (empty when every field already meets the target)

    Raises:
        InputValidationError: If max_docs is below 1, or the snapshot holds no
            comparison results
    """
    config = config or OptimizerConfig()
    budget = config.sampling.max_docs if max_docs is None else max_docs
    target = config.iteration.target_accuracy
    if budget < 1:
        raise InputValidationError(f"max_docs must be at least 1 (got {budget})")

    models = compared_models(snapshot)
    if not models:
        raise InputValidationError("No comparison results found. Run comparison first.")

    reference_model = test_model if test_model in models else models[0]
    if reference_model != test_model:
        logger.warning("No comparisons for %s; using %s as reference", test_model, reference_model)

    initial_accuracy: dict[str, float] = {}
    for field_def in snapshot.fields:
        accuracy = field_accuracy(snapshot, field_def.key, reference_model)
        if accuracy is not None and accuracy < target:
            initial_accuracy[field_def.key] = accuracy

    if not initial_accuracy:
        logger.info("All fields meet target accuracy %.2f; nothing to optimize", target)
        return _empty_plan(snapshot, test_model)

    failure_map = build_field_failure_map(snapshot, list(initial_accuracy), reference_model)
    stale = [key for key, failures in failure_map.items() if not failures]
    for key in stale:
        logger.warning("Field %s is below target but has no failing documents; skipping", key)
        del failure_map[key]

    if not failure_map:
        return _empty_plan(snapshot, test_model)

    sampling = select_documents(
        failure_map,
        max_docs=budget,
        all_document_ids=[doc.id for doc in snapshot.documents],
        holdout_ratio=config.sampling.holdout_ratio,
        document_names={doc.id: doc.name for doc in snapshot.documents},
    )
    sampled_ids = tuple(sampling.document_ids)

    store = ground_truth_store or SnapshotGroundTruthStore(snapshot)
    field_plans = []
    for field_key in failure_map:
        field_def = snapshot.field_by_key(field_key)
        ground_truth = {}
        for doc_id in sampled_ids:
            value = store.get(doc_id, field_key)
            if value is not None:
                ground_truth[doc_id] = value
        field_plans.append(FieldPlan(
            field_key=field_key,
            field_definition=field_def,
            initial_accuracy=initial_accuracy[field_key],
            ground_truth=ground_truth,
        ))

    plan = WorkPlan(
        run_id=str(uuid.uuid4()),
        template_key=snapshot.template_key,
        test_model=test_model,
        sampled_document_ids=sampled_ids,
        fields=tuple(field_plans),
        sampled_document_names={d.document_id: d.document_name for d in sampling.documents},
        uncovered_field_keys=sampling.uncovered_field_keys,
        holdout_document_ids=sampling.holdout_document_ids,
    )
    logger.info(
        "Work plan %s: %d field(s), %d document(s) (%d holdout)",
        plan.run_id, len(plan.fields), len(sampled_ids), len(plan.holdout_document_ids),
    )
    return plan
