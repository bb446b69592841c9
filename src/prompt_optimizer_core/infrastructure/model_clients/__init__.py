"""
Model client package

One client per LLM provider behind a shared generate() interface.
"""

from prompt_optimizer_core.domain.value_objects import ModelResponse
from prompt_optimizer_core.infrastructure.model_clients.base import Completion, ModelClient
from prompt_optimizer_core.infrastructure.model_clients.factory import create_client, provider_for

__all__ = ["Completion", "ModelClient", "ModelResponse", "create_client", "provider_for"]
