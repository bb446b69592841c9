"""
Vertex AI (Google GenAI SDK) model client
"""

import os

from google import genai
from google.api_core import exceptions as google_exceptions
from google.genai.types import GenerateContentConfig, HttpOptions

from prompt_optimizer_core.infrastructure.model_clients.base import Completion, ModelClient


class VertexAIClient(ModelClient):
    """Gemini models served through Vertex AI"""

    retryable_errors = (
        google_exceptions.DeadlineExceeded,
        google_exceptions.ServiceUnavailable,
        google_exceptions.ResourceExhausted,
    )

    def __init__(
        self,
        model_name: str,
        project_id: str | None = None,
        location: str | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        max_tokens: int = 2048,
    ):
        """
        Args:
            model_name: Model name (e.g. gemini-2.5-pro, gemini-2.5-flash)
            project_id: GCP project ID (falls back to GCP_PROJECT_ID)
            location: Region (falls back to GCP_LOCATION, then "global")
            timeout_seconds: Per-request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay_seconds: Base delay for exponential backoff
            max_tokens: Output token ceiling
        """
        project_id = project_id or os.environ.get("GCP_PROJECT_ID")
        if not project_id:
            raise ValueError("GCP_PROJECT_ID is not set")

        self.model_name = model_name
        self.project_id = project_id
        self.location = location or os.environ.get("GCP_LOCATION", "global")
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

        self.client = genai.Client(
            vertexai=True,
            project=self.project_id,
            location=self.location,
            # milliseconds
            http_options=HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        self.generation_config = GenerateContentConfig(temperature=0.0, max_output_tokens=max_tokens)

    def _complete(self, prompt: str) -> Completion:
        response = self.client.models.generate_content(
            model=self.model_name,
            contents=prompt,
            config=self.generation_config,
        )
        usage = getattr(response, "usage_metadata", None)
        return Completion(
            text=response.text or "",
            input_tokens=(getattr(usage, "prompt_token_count", 0) or 0) if usage else 0,
            output_tokens=(getattr(usage, "candidates_token_count", 0) or 0) if usage else 0,
        )
