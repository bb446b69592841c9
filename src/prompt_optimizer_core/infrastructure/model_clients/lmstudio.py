"""
LMStudio (OpenAI-compatible API) model client

Model names carry an "lmstudio/" routing prefix that the local server
does not know about; it is stripped before the request.
"""

import openai
from openai import OpenAI

from prompt_optimizer_core.infrastructure.model_clients.base import Completion, ModelClient

ROUTING_PREFIX = "lmstudio/"


class LMStudioClient(ModelClient):
    """Local models behind LMStudio's OpenAI-compatible endpoint"""

    retryable_errors = (openai.APIConnectionError, openai.RateLimitError, openai.APIStatusError)

    def __init__(
        self,
        model_name: str,
        base_url: str = "http://localhost:1234/v1",
        api_key: str = "lm-studio",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 2048,
    ):
        self.model_name = model_name
        self.api_model_name = model_name.removeprefix(ROUTING_PREFIX)
        self.base_url = base_url
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_tokens = max_tokens
        self.client = OpenAI(base_url=base_url, api_key=api_key, timeout=timeout_seconds)

    def _complete(self, prompt: str) -> Completion:
        response = self.client.chat.completions.create(
            model=self.api_model_name,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.0,
            max_tokens=self.max_tokens,
        )
        usage = response.usage
        return Completion(
            text=response.choices[0].message.content or "",
            input_tokens=(usage.prompt_tokens or 0) if usage else 0,
            output_tokens=(usage.completion_tokens or 0) if usage else 0,
        )
