"""
Optimization Run

Ties the pipeline together: plan, optimize each field, summarize, and
optionally save the improved prompts back to the prompt history.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime

import pandas as pd

from prompt_optimizer_core.domain.entities import AccuracySnapshot, RunSummary, WorkPlan
from prompt_optimizer_core.infrastructure.services import (
    ExtractionService,
    GenerationService,
    GroundTruthStore,
    PlaceholderProvider,
    PromptHistoryStore,
)
from prompt_optimizer_core.optimizer_config import OptimizerConfig
from prompt_optimizer_core.scoring.llm_judge import PlaceholderContextCache
from prompt_optimizer_core.use_cases.iteration import FieldCallback, IterationServices, process_fields
from prompt_optimizer_core.use_cases.work_plan import prepare_work_plan

logger = logging.getLogger(__name__)


@dataclass
class OptimizerServices:
    """External collaborators of an optimization run"""
    extraction_service: ExtractionService
    generation_service: GenerationService
    placeholder_provider: PlaceholderProvider
    ground_truth_store: GroundTruthStore | None = None
    prompt_history_store: PromptHistoryStore | None = None


def estimate_seconds(field_count: int, config: OptimizerConfig) -> float:
    """Rough run duration: field batches x average iterations x seconds per iteration"""
    if field_count <= 0:
        return 0.0
    batches = math.ceil(field_count / max(1, config.concurrency.field_limit))
    return batches * config.estimate.avg_iterations_per_field * config.estimate.seconds_per_iteration


def _initial_prompts(plan: WorkPlan, services: OptimizerServices) -> dict[str, str]:
    prompts = {}
    for field_plan in plan.fields:
        prompt = None
        if services.prompt_history_store is not None:
            prompt = services.prompt_history_store.get_active_prompt(field_plan.field_key, plan.template_key)
        prompt = prompt or field_plan.field_definition.prompt
        if prompt:
            prompts[field_plan.field_key] = prompt
    return prompts


def run_optimization(
    snapshot: AccuracySnapshot,
    services: OptimizerServices,
    config: OptimizerConfig | None = None,
    test_model: str | None = None,
    on_field_complete: FieldCallback | None = None,
) -> RunSummary:
    """
    Run the optimizer over every field of a snapshot that misses the target

    Args:
        snapshot: Current accuracy state
        services: External collaborators
        config: Optimizer configuration
        test_model: Model being improved (default: config.models.default_test_model)
        on_field_complete: Called once per finished field

    Returns:
        RunSummary with one FieldResult per planned field

    Raises:
        InputValidationError: If the snapshot holds no comparison results
    """
    config = config or OptimizerConfig()
    test_model = test_model or config.models.default_test_model
    started_at = datetime.now()
    start_time = time.time()

    plan = prepare_work_plan(
        snapshot,
        test_model,
        config=config,
        ground_truth_store=services.ground_truth_store,
    )
    estimated = estimate_seconds(len(plan.fields), config)

    results = []
    if not plan.is_empty:
        logger.info(
            "Optimizing %d field(s) on %d document(s), estimated %.0fs",
            len(plan.fields), len(plan.sampled_document_ids), estimated,
        )
        iteration_services = IterationServices(
            extraction_service=services.extraction_service,
            generation_service=services.generation_service,
            placeholder_cache=PlaceholderContextCache(services.placeholder_provider),
            config=config,
        )
        results = process_fields(
            plan,
            iteration_services,
            initial_prompts=_initial_prompts(plan, services),
            on_field_complete=on_field_complete,
        )

    summary = RunSummary(
        run_id=plan.run_id,
        template_key=plan.template_key,
        test_model=test_model,
        results=tuple(results),
        sampled_document_ids=plan.sampled_document_ids,
        sampled_document_names=dict(plan.sampled_document_names),
        started_at=started_at.isoformat(),
        ended_at=datetime.now().isoformat(),
        estimated_seconds=estimated,
        actual_seconds=time.time() - start_time,
        uncovered_field_keys=plan.uncovered_field_keys,
    )
    improved = sum(1 for r in summary.results if r.improved)
    logger.info(
        "Run %s finished: %d/%d field(s) improved in %.1fs",
        summary.run_id, improved, len(summary.results), summary.actual_seconds,
    )
    return summary


def apply_results(summary: RunSummary, store: PromptHistoryStore) -> list[str]:
    """
    Save the final prompt of every improved field as a new version

    Fields whose final prompt equals the initial prompt are skipped.

    Returns:
        list[str]: Keys of the fields that were saved
    """
    saved = []
    for result in summary.results:
        if not result.improved or result.final_prompt == result.initial_prompt:
            continue
        store.save_version(result.field_key, result.final_prompt, result.history, summary.template_key)
        saved.append(result.field_key)
    logger.info("Applied %d improved prompt(s) for %s", len(saved), summary.template_key)
    return saved


def summary_to_dataframe(summary: RunSummary) -> pd.DataFrame:
    """One row per field result"""
    rows = []
    for r in summary.results:
        rows.append({
            "run_id": summary.run_id,
            "template_key": summary.template_key,
            "test_model": summary.test_model,
            "field_key": r.field_key,
            "field_name": r.field_name,
            "status": r.status.value,
            "initial_accuracy": r.initial_accuracy,
            "final_accuracy": r.final_accuracy,
            "holdout_accuracy": r.holdout_accuracy,
            "improved": r.improved,
            "converged": r.converged,
            "iteration_count": r.iteration_count,
            "final_prompt": r.final_prompt,
            "error": r.error,
        })
    columns = [
        "run_id", "template_key", "test_model", "field_key", "field_name", "status",
        "initial_accuracy", "final_accuracy", "holdout_accuracy", "improved", "converged",
        "iteration_count", "final_prompt", "error",
    ]
    return pd.DataFrame(rows, columns=columns)
