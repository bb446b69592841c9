"""
Health Check

Pings every model a run depends on (test, prompt generation, judge) before
any optimization work starts, so missing credentials fail fast.
"""

import logging
from typing import Callable

from prompt_optimizer_core.concurrency import run_with_concurrency
from prompt_optimizer_core.domain.entities import HealthCheckResult
from prompt_optimizer_core.infrastructure.model_clients.base import ModelClient
from prompt_optimizer_core.infrastructure.model_clients.factory import provider_for
from prompt_optimizer_core.optimizer_config import OptimizerConfig

logger = logging.getLogger(__name__)

HEALTH_CHECK_PROMPT = "Reply with only 'OK' if you can read this message."

PROVIDER_HINTS = {
    "vertex_ai": "run `gcloud auth application-default login` and set GCP_PROJECT_ID",
    "anthropic": "set ANTHROPIC_API_KEY",
    "lmstudio": "check that LMStudio is running at LMSTUDIO_BASE_URL",
}


def health_check_model(
    model_name: str,
    create_client_fn: Callable[[str], ModelClient],
) -> HealthCheckResult:
    """
    Send one short prompt to model_name. Never raises.

    Client construction errors (missing credentials) count as failures.
    """
    try:
        response = create_client_fn(model_name).generate(HEALTH_CHECK_PROMPT)
    except Exception as e:
        logger.warning("Health check failed for %s: %s", model_name, e)
        return HealthCheckResult(model_name=model_name, success=False, latency_ms=None, error=str(e))

    if not response.output:
        return HealthCheckResult(
            model_name=model_name,
            success=False,
            latency_ms=response.latency_ms,
            error=f"{model_name} returned an empty response",
        )
    return HealthCheckResult(model_name=model_name, success=True, latency_ms=response.latency_ms, error=None)


def required_models(config: OptimizerConfig, test_model: str | None = None) -> list[str]:
    """Distinct models a run will call: test, prompt generation, judge"""
    models = []
    for name in (
        test_model or config.models.default_test_model,
        config.models.prompt_generation_model,
        config.models.judge_model,
    ):
        if name not in models:
            models.append(name)
    return models


def run_health_check(
    models: list[str],
    create_client_fn: Callable[[str], ModelClient],
    limit: int = 4,
) -> tuple[list[str], list[HealthCheckResult]]:
    """
    Check all models in parallel and print a report in input order.

    Returns:
        tuple: (list of available models, list of all check results)
    """
    outcomes = run_with_concurrency(models, limit, lambda m: health_check_model(m, create_client_fn))
    results = [o.unwrap() for o in outcomes]

    print("=== Model Health Check ===\n")
    for result in results:
        if result.success:
            print(f"  {result.model_name}... OK ({result.latency_ms}ms)")
            continue
        error_short = result.error[:100] if result.error else "Unknown error"
        print(f"  {result.model_name}... FAILED")
        print(f"    Error: {error_short}")
        print(f"    Hint: {PROVIDER_HINTS[provider_for(result.model_name)]}")
    print()

    available_models = [r.model_name for r in results if r.success]
    return available_models, results
