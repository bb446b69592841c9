"""
Iteration Controller

Per-field refinement loop:

    pending -> testing -> converged
                       -> improved-retry -> testing ...
                       -> exhausted
                       -> errored

Each test extracts the field on the training documents with the active
prompt and scores it against ground truth. A field that misses the target
gets a synthesized prompt for the next iteration until the iteration
budget runs out. The initial prompt and accuracy are captured once, so
`improved` is always final_accuracy > initial_accuracy.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Sequence

from prompt_optimizer_core.concurrency import call_with_timeout, run_with_concurrency
from prompt_optimizer_core.domain.constants import EXTRACTION_ERROR_PREFIX
from prompt_optimizer_core.domain.entities import (
    ExtractionJob,
    FieldPlan,
    FieldResult,
    FieldState,
    IterationRecord,
    IterationResult,
    WorkPlan,
)
from prompt_optimizer_core.domain.value_objects import (
    CompareConfig,
    CompareType,
    FailureExample,
    MetricsResult,
    SuccessExample,
)
from prompt_optimizer_core.errors import (
    InputValidationError,
    SynthesisError,
    UpstreamCallError,
    UpstreamOutageError,
)
from prompt_optimizer_core.infrastructure.services import ExtractionService, GenerationService
from prompt_optimizer_core.optimizer_config import OptimizerConfig
from prompt_optimizer_core.prompt_synthesis import (
    SynthesisRequest,
    build_synthesis_prompt,
    parse_synthesis_response,
)
from prompt_optimizer_core.scoring.llm_judge import LLMJudge, PlaceholderContextCache, is_context_not_found
from prompt_optimizer_core.scoring.metrics import calculate_field_metrics
from prompt_optimizer_core.use_cases.batch_extraction import extract_batch

logger = logging.getLogger(__name__)

FieldCallback = Callable[[FieldResult], None]


@dataclass
class IterationServices:
    """Collaborators and configuration shared by every field in a run"""
    extraction_service: ExtractionService
    generation_service: GenerationService
    placeholder_cache: PlaceholderContextCache
    config: OptimizerConfig
    judge: LLMJudge | None = None

    def __post_init__(self):
        if self.judge is None:
            self.judge = LLMJudge(
                self.generation_service,
                self.placeholder_cache,
                model=self.config.models.judge_model,
                timeout_seconds=self.config.timeouts.api_timeout_seconds,
            )


@dataclass(frozen=True)
class FieldContext:
    """What a single test of one field needs to know"""
    plan: FieldPlan
    document_ids: tuple[str, ...]
    test_model: str
    template_key: str

    @property
    def field_name(self) -> str:
        return self.plan.field_definition.name


@dataclass(frozen=True)
class PromptEvaluation:
    """Extraction and scoring of one prompt on a set of documents"""
    metrics: MetricsResult
    predictions: tuple[str, ...]
    ground_truths: tuple[str, ...]


def resolve_compare_config(context: FieldContext, config: OptimizerConfig) -> CompareConfig:
    """The field's own comparison config, else the catalog default for its type"""
    field_def = context.plan.field_definition
    if field_def.compare_config is not None:
        return field_def.compare_config
    return CompareConfig(compare_type=CompareType(config.catalog.default_compare_type(field_def.type)))


def evaluate_prompt(context: FieldContext, prompt: str, services: IterationServices) -> PromptEvaluation:
    """
    Extract the field with `prompt` on the context's documents and score it

    Raises:
        UpstreamOutageError: If every extraction failed
    """
    config = services.config
    not_present = config.catalog.not_present_value
    field_def = context.plan.field_definition
    spec = field_def.to_field_spec(prompt)

    jobs = [
        ExtractionJob(
            job_id=f"{context.plan.field_key}:{doc_id}",
            document_id=doc_id,
            model=context.test_model,
            fields=(spec,),
        )
        for doc_id in context.document_ids
    ]
    outcomes = extract_batch(
        jobs,
        services.extraction_service,
        concurrency_limit=config.concurrency.extraction_limit,
        timeout_seconds=config.timeouts.api_timeout_seconds,
    )
    if outcomes and not any(o.success for o in outcomes):
        raise UpstreamOutageError(
            f"All {len(outcomes)} extractions failed for {field_def.key}: {outcomes[0].error}"
        )

    predictions = []
    for outcome in outcomes:
        if outcome.success:
            value = (outcome.data or {}).get(field_def.key)
            predictions.append(not_present if value is None else str(value))
        else:
            predictions.append(f"{EXTRACTION_ERROR_PREFIX} {outcome.error}")
    ground_truths = [context.plan.ground_truth.get(doc_id) or not_present for doc_id in context.document_ids]

    metrics = calculate_field_metrics(
        predictions,
        ground_truths,
        resolve_compare_config(context, config),
        document_ids=context.document_ids,
        judge=services.judge,
        concurrency_limit=config.concurrency.comparison_limit,
        not_present_value=not_present,
    )
    return PromptEvaluation(metrics=metrics, predictions=tuple(predictions), ground_truths=tuple(ground_truths))


def _generate_with_retries(prompt: str, services: IterationServices) -> str:
    """Call the prompt-generation model, retrying up to synthesis_attempts times"""
    config = services.config
    attempts = max(1, config.iteration.synthesis_attempts)
    model = config.models.prompt_generation_model
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        item_id = services.placeholder_cache.get()
        try:
            return call_with_timeout(
                lambda: services.generation_service.generate(prompt, [item_id], model),
                config.timeouts.api_timeout_seconds,
            )
        except Exception as e:
            last_error = e
            if is_context_not_found(e):
                services.placeholder_cache.invalidate(item_id)
            logger.warning("Prompt synthesis attempt %d/%d failed: %s", attempt, attempts, e)

    raise SynthesisError(f"Prompt synthesis failed after {attempts} attempt(s): {last_error}") from last_error


def run_field_iteration(
    context: FieldContext,
    current_prompt: str,
    previous_prompts: Sequence[str],
    iteration: int,
    services: IterationServices,
) -> IterationResult:
    """
    Test the current prompt and, when needed, synthesize the next one

    Args:
        context: Field and documents under test
        current_prompt: Prompt being tested
        previous_prompts: Earlier prompts, oldest first
        iteration: 1-based iteration number
        services: Shared collaborators

    Returns:
        IterationResult. new_prompt is the current prompt when the field
        converged or the iteration budget is spent.

    Raises:
        UpstreamOutageError: If every extraction failed
        SynthesisError: If prompt generation failed on every attempt
    """
    config = services.config
    not_present = config.catalog.not_present_value
    tested = evaluate_prompt(context, current_prompt, services)
    metrics = tested.metrics
    converged = metrics.accuracy >= config.iteration.target_accuracy

    failures: list[FailureExample] = []
    successes: list[SuccessExample] = []
    for doc_id, predicted, expected, outcome in zip(
        context.document_ids, tested.predictions, tested.ground_truths, metrics.outcomes
    ):
        if not outcome.is_match:
            failures.append(FailureExample(document_id=doc_id, predicted=predicted, expected=expected))
        elif predicted != not_present:
            successes.append(SuccessExample(document_id=doc_id, value=predicted))

    logger.info(
        "%s iteration %d/%d: accuracy %.2f (%d failure(s))",
        context.field_name, iteration, config.iteration.max_iterations, metrics.accuracy, len(failures),
    )

    if converged or iteration >= config.iteration.max_iterations:
        return IterationResult(
            new_prompt=current_prompt,
            accuracy=metrics.accuracy,
            converged=converged,
            failure_examples=tuple(failures),
        )

    field_def = context.plan.field_definition
    request = SynthesisRequest(
        field_name=field_def.name,
        field_type=field_def.type,
        current_prompt=current_prompt,
        iteration=iteration,
        max_iterations=config.iteration.max_iterations,
        failure_examples=failures,
        success_examples=successes,
        previous_prompts=list(previous_prompts)[-config.iteration.max_previous_prompts:],
        options=field_def.options,
        document_type=config.catalog.infer_document_type(context.template_key),
        template_key=context.template_key,
        custom_instructions=config.prompts.custom_instructions,
        system_prompt_override=config.prompts.system_prompt_override,
    )
    raw = _generate_with_retries(build_synthesis_prompt(request), services)
    synthesis = parse_synthesis_response(
        raw,
        field_def.name,
        field_def.type,
        min_length=config.iteration.min_prompt_length,
    )
    return IterationResult(
        new_prompt=synthesis.new_prompt,
        accuracy=metrics.accuracy,
        converged=False,
        failure_examples=tuple(failures),
        reasoning=synthesis.reasoning,
    )


def default_initial_prompt(plan: FieldPlan) -> str:
    return plan.field_definition.prompt or f"Extract the {plan.field_definition.name} from this document."


def errored_result(
    plan: FieldPlan,
    initial_prompt: str,
    error: BaseException,
    sampled_document_ids: Sequence[str] = (),
    iteration_count: int = 0,
    history: Sequence[IterationRecord] = (),
) -> FieldResult:
    """Terminal result for a field that hit an unrecoverable error"""
    return FieldResult(
        field_key=plan.field_key,
        field_name=plan.field_definition.name,
        initial_accuracy=plan.initial_accuracy,
        final_accuracy=plan.initial_accuracy,
        iteration_count=iteration_count,
        final_prompt=initial_prompt,
        initial_prompt=initial_prompt,
        converged=False,
        sampled_document_ids=tuple(sampled_document_ids),
        improved=False,
        status=FieldState.ERRORED,
        error=str(error) or type(error).__name__,
        history=tuple(history),
    )


class FieldOptimizer:
    """Runs the refinement state machine for the fields of one work plan"""

    def __init__(self, services: IterationServices, work_plan: WorkPlan):
        self.services = services
        self.work_plan = work_plan

    def _context(self, plan: FieldPlan, document_ids: Sequence[str]) -> FieldContext:
        return FieldContext(
            plan=plan,
            document_ids=tuple(document_ids),
            test_model=self.work_plan.test_model,
            template_key=self.work_plan.template_key,
        )

    def _holdout_accuracy(self, plan: FieldPlan, prompt: str) -> float | None:
        holdout_ids = self.work_plan.holdout_document_ids
        if not holdout_ids:
            return None
        try:
            tested = evaluate_prompt(self._context(plan, holdout_ids), prompt, self.services)
        except UpstreamCallError as e:
            logger.error("Holdout evaluation failed for %s: %s", plan.field_key, e)
            return None
        logger.info("%s holdout accuracy: %.2f", plan.field_definition.name, tested.metrics.accuracy)
        return tested.metrics.accuracy

    def process(self, plan: FieldPlan, initial_prompt: str | None = None) -> FieldResult:
        """
        Drive one field to a terminal state

        Args:
            plan: Field to optimize
            initial_prompt: Active prompt before the run (default: the
                field definition's prompt, else a generic one)

        Returns:
            FieldResult in exactly one of converged, exhausted, errored
        """
        config = self.services.config.iteration
        initial_prompt = initial_prompt or default_initial_prompt(plan)
        initial_accuracy = plan.initial_accuracy
        train_ids = self.work_plan.train_document_ids
        context = self._context(plan, train_ids)
        if not train_ids:
            logger.error("Field %s has no training documents; skipping", plan.field_key)
            return errored_result(plan, initial_prompt, InputValidationError("No training documents sampled"))

        state = FieldState.PENDING
        active_prompt = initial_prompt
        previous_prompts: list[str] = []
        history: list[IterationRecord] = []
        best_prompt = initial_prompt
        best_accuracy: float | None = None

        try:
            for iteration in range(1, config.max_iterations + 1):
                state = FieldState.TESTING
                result = run_field_iteration(context, active_prompt, previous_prompts, iteration, self.services)
                history.append(IterationRecord(iteration=iteration, prompt=active_prompt, accuracy=result.accuracy))
                if best_accuracy is None or result.accuracy > best_accuracy:
                    best_prompt, best_accuracy = active_prompt, result.accuracy

                if result.converged:
                    state = FieldState.CONVERGED
                    break
                if iteration == config.max_iterations:
                    state = FieldState.EXHAUSTED
                    break

                state = FieldState.IMPROVED_RETRY
                previous_prompts = (previous_prompts + [active_prompt])[-config.max_previous_prompts:]
                active_prompt = result.new_prompt
            else:
                state = FieldState.EXHAUSTED
        except (UpstreamCallError, InputValidationError) as e:
            logger.error("Field %s errored after %d iteration(s): %s", plan.field_key, len(history), e)
            return errored_result(plan, initial_prompt, e, train_ids, len(history), history)

        final_accuracy = best_accuracy if best_accuracy is not None else initial_accuracy
        improved = final_accuracy > initial_accuracy
        final_prompt = best_prompt if improved else initial_prompt
        holdout_accuracy = self._holdout_accuracy(plan, final_prompt)

        logger.info(
            "%s %s after %d iteration(s): %.2f -> %.2f",
            plan.field_definition.name, state.value, len(history), initial_accuracy, final_accuracy,
        )
        return FieldResult(
            field_key=plan.field_key,
            field_name=plan.field_definition.name,
            initial_accuracy=initial_accuracy,
            final_accuracy=final_accuracy,
            iteration_count=len(history),
            final_prompt=final_prompt,
            initial_prompt=initial_prompt,
            converged=state == FieldState.CONVERGED,
            sampled_document_ids=train_ids,
            improved=improved,
            status=state,
            history=tuple(history),
            holdout_accuracy=holdout_accuracy,
        )


def process_fields(
    work_plan: WorkPlan,
    services: IterationServices,
    initial_prompts: dict[str, str] | None = None,
    on_field_complete: FieldCallback | None = None,
) -> list[FieldResult]:
    """
    Process every field of a work plan with bounded concurrency

    Returns:
        list[FieldResult]: Index-aligned with work_plan.fields
    """
    optimizer = FieldOptimizer(services, work_plan)
    prompts = initial_prompts or {}
    lock = threading.Lock()

    def _process(plan: FieldPlan) -> FieldResult:
        result = optimizer.process(plan, prompts.get(plan.field_key))
        if on_field_complete is not None:
            with lock:
                try:
                    on_field_complete(result)
                except Exception as e:
                    logger.warning("Field callback raised: %s", e)
        return result

    plans = list(work_plan.fields)
    outcomes = run_with_concurrency(plans, services.config.concurrency.field_limit, _process)

    results = []
    for plan, outcome in zip(plans, outcomes):
        if outcome.ok:
            results.append(outcome.value)
        else:
            logger.error("Field %s crashed: %s", plan.field_key, outcome.error)
            initial_prompt = prompts.get(plan.field_key) or default_initial_prompt(plan)
            results.append(errored_result(plan, initial_prompt, outcome.error, work_plan.train_document_ids))
    return results
