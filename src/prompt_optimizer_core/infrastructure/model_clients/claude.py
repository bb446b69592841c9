"""
Anthropic Claude model client
"""

import os

from anthropic import Anthropic, APIConnectionError, APIStatusError, RateLimitError

from prompt_optimizer_core.infrastructure.model_clients.base import Completion, ModelClient


class ClaudeClient(ModelClient):
    """Claude client using the Anthropic Messages API"""

    retryable_errors = (APIConnectionError, RateLimitError, APIStatusError)

    def __init__(
        self,
        model_name: str,
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 2048,
    ):
        """
        Args:
            model_name: Model name (e.g. claude-sonnet-4-5-20250929)
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY)
            timeout_seconds: Per-request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay_seconds: Base delay for exponential backoff
            max_tokens: Output token ceiling; synthesized prompts run several hundred tokens
        """
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY is not set")

        self.model_name = model_name
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.max_tokens = max_tokens
        self.client = Anthropic(api_key=api_key, timeout=timeout_seconds)

    def _complete(self, prompt: str) -> Completion:
        response = self.client.messages.create(
            model=self.model_name,
            max_tokens=self.max_tokens,
            temperature=0.0,
            messages=[{"role": "user", "content": prompt}],
        )
        # Replies can carry several blocks; only text blocks matter here
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        usage = response.usage
        return Completion(
            text=text,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )
