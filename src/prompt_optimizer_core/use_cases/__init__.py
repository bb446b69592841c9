"""
Use Cases Layer

Aggregates business logic and provides use cases called from the runner.
"""

from prompt_optimizer_core.use_cases.batch_extraction import (
    DEFAULT_BATCH_CONCURRENCY,
    extract_batch,
    extract_single,
)
from prompt_optimizer_core.use_cases.health_check import (
    HEALTH_CHECK_PROMPT,
    health_check_model,
    required_models,
    run_health_check,
)
from prompt_optimizer_core.use_cases.iteration import (
    FieldContext,
    FieldOptimizer,
    IterationServices,
    evaluate_prompt,
    process_fields,
    run_field_iteration,
)
from prompt_optimizer_core.use_cases.optimization import (
    OptimizerServices,
    apply_results,
    estimate_seconds,
    run_optimization,
    summary_to_dataframe,
)
from prompt_optimizer_core.use_cases.work_plan import (
    compared_models,
    field_accuracy,
    prepare_work_plan,
)

__all__ = [
    # batch_extraction
    "DEFAULT_BATCH_CONCURRENCY",
    "extract_batch",
    "extract_single",
    # health_check
    "HEALTH_CHECK_PROMPT",
    "health_check_model",
    "required_models",
    "run_health_check",
    # iteration
    "FieldContext",
    "FieldOptimizer",
    "IterationServices",
    "evaluate_prompt",
    "process_fields",
    "run_field_iteration",
    # optimization
    "OptimizerServices",
    "apply_results",
    "estimate_seconds",
    "run_optimization",
    "summary_to_dataframe",
    # work_plan
    "compared_models",
    "field_accuracy",
    "prepare_work_plan",
]
