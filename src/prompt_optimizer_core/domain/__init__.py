"""
Domain Layer

Defines constants, entities, and value objects that form the core of the optimizer.
Has no dependencies on external libraries.
"""

from prompt_optimizer_core.domain.constants import (
    DEFAULT_COMPARE_TYPES,
    DEFAULT_TEST_MODELS,
    DOCUMENT_TYPE_HINTS,
    GROUND_TRUTH_KEY,
    NOT_PRESENT_VALUE,
    PROMPT_GENERATION_MODELS,
)
from prompt_optimizer_core.domain.entities import (
    AccuracySnapshot,
    DocumentResult,
    ExtractionJob,
    ExtractionOutcome,
    FailureRecord,
    FieldDefinition,
    FieldFailureMap,
    FieldPlan,
    FieldResult,
    FieldSpec,
    FieldState,
    HealthCheckResult,
    IterationRecord,
    IterationResult,
    RunSummary,
    SampledDocument,
    SamplingResult,
    WorkPlan,
)
from prompt_optimizer_core.domain.value_objects import (
    CompareConfig,
    CompareType,
    ComparisonOutcome,
    Confidence,
    FailureExample,
    JudgeVerdict,
    MetricsResult,
    ModelResponse,
    SuccessExample,
)

__all__ = [
    # constants
    "DEFAULT_COMPARE_TYPES",
    "DEFAULT_TEST_MODELS",
    "DOCUMENT_TYPE_HINTS",
    "GROUND_TRUTH_KEY",
    "NOT_PRESENT_VALUE",
    "PROMPT_GENERATION_MODELS",
    # entities
    "AccuracySnapshot",
    "DocumentResult",
    "ExtractionJob",
    "ExtractionOutcome",
    "FailureRecord",
    "FieldDefinition",
    "FieldFailureMap",
    "FieldPlan",
    "FieldResult",
    "FieldSpec",
    "FieldState",
    "HealthCheckResult",
    "IterationRecord",
    "IterationResult",
    "RunSummary",
    "SampledDocument",
    "SamplingResult",
    "WorkPlan",
    # value objects
    "CompareConfig",
    "CompareType",
    "ComparisonOutcome",
    "Confidence",
    "FailureExample",
    "JudgeVerdict",
    "MetricsResult",
    "ModelResponse",
    "SuccessExample",
]
