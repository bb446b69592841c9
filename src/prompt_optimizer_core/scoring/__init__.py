"""
Scoring sub-package

Provides comparison strategies, the LLM judge, and field metrics.
"""

from prompt_optimizer_core.domain.value_objects import ComparisonOutcome, MetricsResult
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
from prompt_optimizer_core.scoring.llm_judge import (
    DEFAULT_CRITERIA,
    LLMJudge,
    PlaceholderContextCache,
    build_judge_prompt,
    parse_judge_response,
)
from prompt_optimizer_core.scoring.metrics import calculate_field_metrics, normalize_value
from prompt_optimizer_core.scoring.normalization import normalize_text

__all__ = [
    # value objects (re-exported from domain)
    "ComparisonOutcome",
    "MetricsResult",
    # compare engine
    "compare_boolean",
    "compare_date",
    "compare_exact_string",
    "compare_list_ordered",
    "compare_list_unordered",
    "compare_near_exact_string",
    "compare_numeric",
    "compare_values",
    # llm judge
    "DEFAULT_CRITERIA",
    "LLMJudge",
    "PlaceholderContextCache",
    "build_judge_prompt",
    "parse_judge_response",
    # metrics
    "calculate_field_metrics",
    "normalize_value",
    # normalization
    "normalize_text",
]
