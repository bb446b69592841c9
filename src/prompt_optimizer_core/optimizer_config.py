"""
Optimizer Configuration

Manages loading from environment variables and default values.
"""

import os
from dataclasses import dataclass, field, asdict

from prompt_optimizer_core.domain import constants


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_str(key: str, default: str | None) -> str | None:
    """Get an environment variable as a string (empty counts as unset)"""
    val = os.environ.get(key)
    if val is None or val == "":
        return default
    return val


@dataclass
class Catalog:
    """Versioned lookup tables (models, field-type heuristics, markers)"""
    version: str = constants.CATALOG_VERSION
    not_present_value: str = constants.NOT_PRESENT_VALUE
    test_models: list[str] = field(default_factory=lambda: list(constants.DEFAULT_TEST_MODELS))
    prompt_generation_models: list[str] = field(default_factory=lambda: list(constants.PROMPT_GENERATION_MODELS))
    compare_types: dict[str, str] = field(default_factory=lambda: dict(constants.DEFAULT_COMPARE_TYPES))
    field_type_aliases: dict[str, str] = field(default_factory=lambda: dict(constants.FIELD_TYPE_ALIASES))
    document_type_hints: list[tuple[tuple[str, ...], str]] = field(
        default_factory=lambda: list(constants.DOCUMENT_TYPE_HINTS)
    )

    def normalize_field_type(self, field_type: str) -> str:
        return self.field_type_aliases.get(field_type, field_type)

    def default_compare_type(self, field_type: str) -> str:
        return self.compare_types.get(self.normalize_field_type(field_type), "near-exact-string")

    def infer_document_type(self, template_key: str | None) -> str | None:
        """Map a template key to a document type hint (first keyword match wins)"""
        if not template_key:
            return None
        lower_key = template_key.lower()
        for keywords, label in self.document_type_hints:
            if any(k in lower_key for k in keywords):
                return label
        return None


@dataclass
class SamplingConfig:
    """Document sampling configuration"""
    max_docs: int = 5
    holdout_ratio: float = 0.0


@dataclass
class IterationConfig:
    """Per-field refinement loop configuration"""
    max_iterations: int = 5
    target_accuracy: float = 1.0
    synthesis_attempts: int = 2
    max_previous_prompts: int = 3
    min_prompt_length: int = 150


@dataclass
class ConcurrencyConfig:
    """Concurrency limits for external calls"""
    extraction_limit: int = 5
    comparison_limit: int = 5
    field_limit: int = 2
    batch_default_limit: int = 10


@dataclass
class TimeoutConfig:
    """External call timeouts"""
    api_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0


@dataclass
class ModelsConfig:
    """Model selection"""
    prompt_generation_model: str = "claude-sonnet-4-5-20250929"
    default_test_model: str = "gemini-2.5-flash"
    judge_model: str = "gemini-2.5-flash"
    max_output_tokens: int = 2048


@dataclass
class PromptsConfig:
    """User-supplied prompt customization"""
    system_prompt_override: str | None = None
    custom_instructions: str | None = None


@dataclass
class EstimateConfig:
    """Inputs to the run duration estimate"""
    avg_iterations_per_field: int = 3
    seconds_per_iteration: float = 12.0


@dataclass
class LMStudioConfig:
    """LMStudio (OpenAI-compatible local LLM) configuration"""
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"


@dataclass
class OptimizerConfig:
    """Overall optimizer configuration"""
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    iteration: IterationConfig = field(default_factory=IterationConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    estimate: EstimateConfig = field(default_factory=EstimateConfig)
    lmstudio: LMStudioConfig = field(default_factory=LMStudioConfig)
    catalog: Catalog = field(default_factory=Catalog)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"optimizer_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "OptimizerConfig":
        """Create from dictionary (handles presence/absence of optimizer_config key)"""
        config_data = data.get("optimizer_config", data)
        catalog_data = dict(config_data.get("catalog", {}))
        if "document_type_hints" in catalog_data:
            catalog_data["document_type_hints"] = [
                (tuple(keywords), label) for keywords, label in catalog_data["document_type_hints"]
            ]
        return cls(
            sampling=SamplingConfig(**config_data.get("sampling", {})),
            iteration=IterationConfig(**config_data.get("iteration", {})),
            concurrency=ConcurrencyConfig(**config_data.get("concurrency", {})),
            timeouts=TimeoutConfig(**config_data.get("timeouts", {})),
            models=ModelsConfig(**config_data.get("models", {})),
            prompts=PromptsConfig(**config_data.get("prompts", {})),
            estimate=EstimateConfig(**config_data.get("estimate", {})),
            lmstudio=LMStudioConfig(**config_data.get("lmstudio", {})),
            catalog=Catalog(**catalog_data),
        )


def load_config() -> OptimizerConfig:
    """
    Load configuration from environment variables

    Uses default values when environment variables are not set.

    Returns:
        OptimizerConfig
    """
    sampling = SamplingConfig(
        max_docs=_env_int("OPTIMIZER_MAX_DOCS", 5),
        holdout_ratio=_env_float("OPTIMIZER_HOLDOUT_RATIO", 0.0),
    )
    iteration = IterationConfig(
        max_iterations=_env_int("OPTIMIZER_MAX_ITERATIONS", 5),
        target_accuracy=_env_float("OPTIMIZER_TARGET_ACCURACY", 1.0),
        synthesis_attempts=_env_int("OPTIMIZER_SYNTHESIS_ATTEMPTS", 2),
        max_previous_prompts=_env_int("OPTIMIZER_MAX_PREVIOUS_PROMPTS", 3),
        min_prompt_length=_env_int("OPTIMIZER_MIN_PROMPT_LENGTH", 150),
    )
    concurrency = ConcurrencyConfig(
        extraction_limit=_env_int("OPTIMIZER_EXTRACTION_CONCURRENCY", 5),
        comparison_limit=_env_int("OPTIMIZER_COMPARISON_CONCURRENCY", 5),
        field_limit=_env_int("OPTIMIZER_FIELD_CONCURRENCY", 2),
        batch_default_limit=_env_int("OPTIMIZER_BATCH_CONCURRENCY", 10),
    )
    timeouts = TimeoutConfig(
        api_timeout_seconds=_env_float("OPTIMIZER_API_TIMEOUT_SECONDS", 30.0),
        max_retries=_env_int("OPTIMIZER_MAX_RETRIES", 3),
        retry_delay_seconds=_env_float("OPTIMIZER_RETRY_DELAY_SECONDS", 1.0),
    )
    models = ModelsConfig(
        prompt_generation_model=_env_str("OPTIMIZER_PROMPT_GEN_MODEL", "claude-sonnet-4-5-20250929"),
        default_test_model=_env_str("OPTIMIZER_TEST_MODEL", "gemini-2.5-flash"),
        judge_model=_env_str("OPTIMIZER_JUDGE_MODEL", "gemini-2.5-flash"),
        max_output_tokens=_env_int("OPTIMIZER_MAX_OUTPUT_TOKENS", 2048),
    )
    prompts = PromptsConfig(
        system_prompt_override=_env_str("OPTIMIZER_SYSTEM_PROMPT_OVERRIDE", None),
        custom_instructions=_env_str("OPTIMIZER_CUSTOM_INSTRUCTIONS", None),
    )
    estimate = EstimateConfig(
        avg_iterations_per_field=_env_int("OPTIMIZER_ESTIMATE_ITERATIONS", 3),
        seconds_per_iteration=_env_float("OPTIMIZER_ESTIMATE_SECONDS_PER_ITERATION", 12.0),
    )
    lmstudio = LMStudioConfig(
        base_url=_env_str("LMSTUDIO_BASE_URL", "http://localhost:1234/v1"),
        api_key=_env_str("LMSTUDIO_API_KEY", "lm-studio"),
    )
    return OptimizerConfig(
        sampling=sampling,
        iteration=iteration,
        concurrency=concurrency,
        timeouts=timeouts,
        models=models,
        prompts=prompts,
        estimate=estimate,
        lmstudio=lmstudio,
    )
