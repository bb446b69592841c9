"""
Domain Entities

Defines the primary data structures used during an optimization run.

Records are built once and never mutated; updates create a new record
with dataclasses.replace.
"""

from dataclasses import dataclass, field
from enum import Enum

from prompt_optimizer_core.domain.constants import GROUND_TRUTH_KEY
from prompt_optimizer_core.domain.value_objects import (
    CompareConfig,
    ComparisonOutcome,
    CompareType,
    Confidence,
    FailureExample,
)


class FieldState(str, Enum):
    """Lifecycle state of a field inside the iteration controller"""
    PENDING = "pending"
    TESTING = "testing"
    IMPROVED_RETRY = "improved-retry"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (FieldState.CONVERGED, FieldState.EXHAUSTED, FieldState.ERRORED)


@dataclass(frozen=True)
class FieldSpec:
    """Field description sent to the extraction service"""
    key: str
    type: str
    display_name: str
    prompt: str | None = None
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class FieldDefinition:
    """Template field under optimization"""
    key: str
    name: str
    type: str = "string"
    prompt: str | None = None
    options: tuple[str, ...] = ()
    compare_config: CompareConfig | None = None

    def to_field_spec(self, prompt: str | None = None) -> FieldSpec:
        """Build the extraction spec for this field, optionally with a replacement prompt"""
        return FieldSpec(
            key=self.key,
            type=self.type,
            display_name=self.name,
            prompt=prompt if prompt is not None else self.prompt,
            options=self.options,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "FieldDefinition":
        compare = data.get("compare") or data.get("compare_config")
        options = data.get("options") or []
        return cls(
            key=data["key"],
            name=data.get("name") or data.get("display_name") or data["key"],
            type=data.get("type", "string"),
            prompt=data.get("prompt"),
            options=tuple(o["key"] if isinstance(o, dict) else str(o) for o in options),
            compare_config=CompareConfig.from_dict(compare) if compare else None,
        )


@dataclass(frozen=True)
class FailureRecord:
    """One (field, document, model) comparison that did not match"""
    document_id: str
    document_name: str
    ground_truth_value: str
    extracted_value: str
    comparison_reason: str | None = None


# field key -> failures in document order
FieldFailureMap = dict[str, list[FailureRecord]]


@dataclass(frozen=True)
class SampledDocument:
    """A document picked by the sampler with the failing fields it covers"""
    document_id: str
    document_name: str
    covered_field_keys: frozenset[str] = frozenset()


@dataclass(frozen=True)
class SamplingResult:
    """Sampler output"""
    documents: tuple[SampledDocument, ...] = ()
    field_to_document_ids: dict[str, frozenset[str]] = field(default_factory=dict)
    train_document_ids: tuple[str, ...] = ()
    holdout_document_ids: tuple[str, ...] = ()
    uncovered_field_keys: tuple[str, ...] = ()

    @property
    def document_ids(self) -> list[str]:
        return [d.document_id for d in self.documents]


@dataclass(frozen=True)
class DocumentResult:
    """Extraction values and comparison outcomes for one document"""
    id: str
    name: str
    # field key -> {"Ground Truth" | model name -> value}
    values: dict[str, dict[str, str]] = field(default_factory=dict)
    # field key -> {model name -> outcome}
    comparisons: dict[str, dict[str, ComparisonOutcome]] = field(default_factory=dict)

    def ground_truth(self, field_key: str) -> str | None:
        return self.values.get(field_key, {}).get(GROUND_TRUTH_KEY)

    def extracted(self, field_key: str, model: str) -> str | None:
        return self.values.get(field_key, {}).get(model)

    def comparison(self, field_key: str, model: str) -> ComparisonOutcome | None:
        return self.comparisons.get(field_key, {}).get(model)

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentResult":
        comparisons: dict[str, dict[str, ComparisonOutcome]] = {}
        for field_key, per_model in (data.get("comparisons") or {}).items():
            comparisons[field_key] = {}
            for model, raw in per_model.items():
                comparisons[field_key][model] = ComparisonOutcome(
                    is_match=bool(raw.get("is_match", raw.get("isMatch", False))),
                    match_type=CompareType(raw.get("match_type", raw.get("matchType", CompareType.EXACT_STRING.value))),
                    confidence=Confidence(raw.get("confidence", Confidence.HIGH.value)),
                    details=raw.get("details"),
                    error=raw.get("error"),
                )
        return cls(
            id=str(data["id"]),
            name=data.get("name") or str(data["id"]),
            values={k: dict(v) for k, v in (data.get("values") or {}).items()},
            comparisons=comparisons,
        )


@dataclass(frozen=True)
class AccuracySnapshot:
    """Current accuracy state of a template across documents and models"""
    template_key: str
    fields: tuple[FieldDefinition, ...] = ()
    documents: tuple[DocumentResult, ...] = ()
    # field key -> {model name -> accuracy}
    averages: dict[str, dict[str, float]] = field(default_factory=dict)

    def field_by_key(self, field_key: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.key == field_key:
                return f
        return None

    def document_by_id(self, document_id: str) -> DocumentResult | None:
        for d in self.documents:
            if d.id == document_id:
                return d
        return None

    @classmethod
    def from_dict(cls, data: dict) -> "AccuracySnapshot":
        """Create from the JSON form produced by a comparison run"""
        return cls(
            template_key=data.get("template_key") or data.get("templateKey") or "",
            fields=tuple(FieldDefinition.from_dict(f) for f in data.get("fields", [])),
            documents=tuple(DocumentResult.from_dict(d) for d in data.get("documents", [])),
            averages={
                k: {m: float(v) for m, v in per_model.items()}
                for k, per_model in (data.get("averages") or {}).items()
            },
        )


@dataclass(frozen=True)
class FieldPlan:
    """One field that needs optimization"""
    field_key: str
    field_definition: FieldDefinition
    initial_accuracy: float
    # document id -> ground truth value, for exactly the sampled documents
    ground_truth: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkPlan:
    """Unit of work handed to the iteration controller"""
    run_id: str
    template_key: str
    test_model: str
    sampled_document_ids: tuple[str, ...] = ()
    fields: tuple[FieldPlan, ...] = ()
    sampled_document_names: dict[str, str] = field(default_factory=dict)
    uncovered_field_keys: tuple[str, ...] = ()
    holdout_document_ids: tuple[str, ...] = ()

    @property
    def train_document_ids(self) -> tuple[str, ...]:
        return tuple(d for d in self.sampled_document_ids if d not in self.holdout_document_ids)

    @property
    def is_empty(self) -> bool:
        return not self.fields


@dataclass(frozen=True)
class IterationResult:
    """Outcome of testing one prompt"""
    new_prompt: str
    accuracy: float
    converged: bool
    failure_examples: tuple[FailureExample, ...] | None = None
    reasoning: str | None = None


@dataclass(frozen=True)
class IterationRecord:
    """History entry: a prompt and the accuracy it scored"""
    iteration: int
    prompt: str
    accuracy: float


@dataclass(frozen=True)
class FieldResult:
    """Terminal result for one field"""
    field_key: str
    field_name: str
    initial_accuracy: float
    final_accuracy: float
    iteration_count: int
    final_prompt: str
    initial_prompt: str
    converged: bool
    sampled_document_ids: tuple[str, ...] = ()
    improved: bool = False
    status: FieldState = FieldState.PENDING
    error: str | None = None
    history: tuple[IterationRecord, ...] = ()
    holdout_accuracy: float | None = None


@dataclass(frozen=True)
class RunSummary:
    """Run-level artifact handed to the presentation layer"""
    run_id: str
    template_key: str
    test_model: str
    results: tuple[FieldResult, ...]
    sampled_document_ids: tuple[str, ...]
    sampled_document_names: dict[str, str]
    started_at: str
    ended_at: str
    estimated_seconds: float
    actual_seconds: float
    uncovered_field_keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class ExtractionJob:
    """One extraction request: a document, a model, and the fields to extract"""
    job_id: str
    document_id: str
    model: str
    fields: tuple[FieldSpec, ...]
    template_key: str | None = None


@dataclass(frozen=True)
class ExtractionOutcome:
    """Result slot for one extraction job"""
    job_id: str
    success: bool
    data: dict | None = None
    error: str | None = None
    duration_seconds: float = 0.0


@dataclass
class HealthCheckResult:
    """Health check result"""
    model_name: str
    success: bool
    latency_ms: int | None
    error: str | None
