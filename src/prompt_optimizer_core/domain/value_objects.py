"""
Domain Value Objects

Defines immutable data structures representing comparison outcomes,
metric results, model responses, and example records.
"""

from dataclasses import dataclass, field
from enum import Enum


class CompareType(str, Enum):
    """Comparison strategy for a field"""
    EXACT_STRING = "exact-string"
    NEAR_EXACT_STRING = "near-exact-string"
    NUMERIC_TOLERANCE = "numeric-tolerance"
    DATE_EXACT = "date-exact"
    BOOLEAN = "boolean"
    LIST_UNORDERED = "list-unordered"
    LIST_ORDERED = "list-ordered"
    LLM_JUDGE = "llm-judge"


class Confidence(str, Enum):
    """Confidence attached to a comparison outcome"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class CompareConfig:
    """Per-field comparison configuration"""
    compare_type: CompareType = CompareType.NEAR_EXACT_STRING
    tolerance: float = 0.0
    separator: str | None = None
    criteria: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "CompareConfig":
        """Create from a dictionary such as {"compare_type": "llm-judge", "criteria": "..."}"""
        if not data:
            return cls()
        compare_type = data.get("compare_type") or data.get("compareType") or CompareType.NEAR_EXACT_STRING.value
        return cls(
            compare_type=CompareType(compare_type),
            tolerance=float(data.get("tolerance", 0.0)),
            separator=data.get("separator"),
            criteria=data.get("criteria"),
        )


@dataclass(frozen=True)
class ComparisonOutcome:
    """Result of comparing one prediction against its ground truth"""
    is_match: bool
    match_type: CompareType
    confidence: Confidence = Confidence.HIGH
    details: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class MetricsResult:
    """Field-level metrics plus the per-document outcomes used to compute them"""
    accuracy: float
    precision: float
    recall: float
    f1: float
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    true_negatives: int = 0
    outcomes: tuple[ComparisonOutcome, ...] = field(default_factory=tuple)
    document_ids: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class JudgeVerdict:
    """Parsed verdict from the judge model"""
    is_match: bool
    reason: str


@dataclass(frozen=True)
class FailureExample:
    """A document where the tested prompt produced the wrong value"""
    document_id: str
    predicted: str
    expected: str


@dataclass(frozen=True)
class SuccessExample:
    """A document where the tested prompt produced the right value"""
    document_id: str
    value: str


@dataclass
class ModelResponse:
    """Model response"""
    output: str
    latency_ms: int
    model_name: str
    input_tokens: int = 0
    output_tokens: int = 0
