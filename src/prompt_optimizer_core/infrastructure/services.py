"""
External service interfaces

Abstract collaborators the optimizer depends on. The core knows nothing about
their transport; adapters in infrastructure.adapters provide concrete versions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

from prompt_optimizer_core.domain.entities import FieldSpec, IterationRecord


class ExtractionService(ABC):
    """Extracts field values from one document"""

    @abstractmethod
    def extract(
        self,
        document_id: str,
        fields: Sequence[FieldSpec],
        model: str,
        template_key: str | None = None,
    ) -> dict[str, Any]:
        """Return a field key -> value mapping, or raise with a message"""
        pass


class GenerationService(ABC):
    """Free-text generation bound to one or more context items"""

    @abstractmethod
    def generate(self, prompt: str, items: Sequence[str], model: str) -> str:
        """Return the model's text answer"""
        pass


class PlaceholderProvider(ABC):
    """Creates the context item required by generation calls that have no document"""

    @abstractmethod
    def create_placeholder(self) -> str:
        """Create a placeholder context item and return its id"""
        pass


class GroundTruthStore(ABC):
    """Read-only access to accepted-correct field values"""

    @abstractmethod
    def get(self, document_id: str, field_key: str) -> str | None:
        pass


class PromptHistoryStore(ABC):
    """Active prompt and version history per field"""

    @abstractmethod
    def get_active_prompt(self, field_key: str, template_key: str) -> str | None:
        pass

    @abstractmethod
    def save_version(
        self,
        field_key: str,
        prompt: str,
        history: Sequence[IterationRecord],
        template_key: str,
    ) -> None:
        pass


class DocumentStore(ABC):
    """Document text retrieval"""

    @abstractmethod
    def get_text(self, document_id: str) -> str:
        pass
