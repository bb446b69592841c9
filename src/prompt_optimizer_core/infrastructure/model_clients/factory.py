"""
Model client factory

Routes a model name to its provider client and applies the timeout,
retry and output-token settings from OptimizerConfig.
"""

from __future__ import annotations

from prompt_optimizer_core.infrastructure.model_clients.base import ModelClient
from prompt_optimizer_core.infrastructure.model_clients.claude import ClaudeClient
from prompt_optimizer_core.infrastructure.model_clients.lmstudio import ROUTING_PREFIX, LMStudioClient
from prompt_optimizer_core.infrastructure.model_clients.vertex_ai import VertexAIClient
from prompt_optimizer_core.optimizer_config import OptimizerConfig, load_config


def provider_for(model_name: str) -> str:
    """Provider key for a model name: "lmstudio", "anthropic", or "vertex_ai"."""
    if model_name.startswith(ROUTING_PREFIX):
        return "lmstudio"
    if model_name.startswith("claude"):
        return "anthropic"
    return "vertex_ai"


def create_client(model_name: str, config: OptimizerConfig | None = None) -> ModelClient:
    """
    Create the client that serves model_name

    Args:
        model_name: Model name ("lmstudio/..." and "claude..." prefixes route to
            those providers, everything else goes to Vertex AI)
        config: OptimizerConfig (loads from env if not provided)
    """
    if config is None:
        config = load_config()

    common = dict(
        timeout_seconds=config.timeouts.api_timeout_seconds,
        max_retries=config.timeouts.max_retries,
        retry_delay_seconds=config.timeouts.retry_delay_seconds,
        max_tokens=config.models.max_output_tokens,
    )
    provider = provider_for(model_name)
    if provider == "lmstudio":
        return LMStudioClient(
            model_name,
            base_url=config.lmstudio.base_url,
            api_key=config.lmstudio.api_key,
            **common,
        )
    if provider == "anthropic":
        return ClaudeClient(model_name, **common)
    return VertexAIClient(model_name, **common)
