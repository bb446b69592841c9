"""
Service adapters

Concrete implementations of the interfaces in infrastructure.services, backed
by the provider model clients, local files, and in-memory data.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Sequence

from prompt_optimizer_core.domain.entities import AccuracySnapshot, FieldSpec, IterationRecord
from prompt_optimizer_core.errors import ContextNotFoundError, UpstreamCallError
from prompt_optimizer_core.extraction_prompt import build_extraction_prompt, parse_extraction_response
from prompt_optimizer_core.infrastructure.model_clients.base import ModelClient
from prompt_optimizer_core.infrastructure.services import (
    DocumentStore,
    ExtractionService,
    GenerationService,
    GroundTruthStore,
    PlaceholderProvider,
    PromptHistoryStore,
)

logger = logging.getLogger(__name__)


class _ClientCache:
    """One model client per model name, created on first use"""

    def __init__(self, create_client_fn: Callable[[str], ModelClient]) -> None:
        self._create_client_fn = create_client_fn
        self._clients: dict[str, ModelClient] = {}
        self._lock = threading.Lock()

    def get(self, model: str) -> ModelClient:
        with self._lock:
            if model not in self._clients:
                self._clients[model] = self._create_client_fn(model)
            return self._clients[model]


class InMemoryDocumentStore(DocumentStore):
    """Document texts held in a dictionary"""

    def __init__(self, texts: dict[str, str] | None = None) -> None:
        self._texts = dict(texts or {})
        self._lock = threading.Lock()

    def add(self, document_id: str, text: str) -> None:
        with self._lock:
            self._texts[document_id] = text

    def remove(self, document_id: str) -> None:
        with self._lock:
            self._texts.pop(document_id, None)

    def get_text(self, document_id: str) -> str:
        with self._lock:
            if document_id not in self._texts:
                raise ContextNotFoundError(f"Item {document_id} not found")
            return self._texts[document_id]


class DirectoryDocumentStore(InMemoryDocumentStore):
    """Reads <document_id>.txt from a directory; items added in memory take precedence"""

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)

    def get_text(self, document_id: str) -> str:
        with self._lock:
            if document_id in self._texts:
                return self._texts[document_id]
        path = self.directory / f"{document_id}.txt"
        if not path.exists():
            raise ContextNotFoundError(f"Item {document_id} not found in {self.directory}")
        return path.read_text(encoding="utf-8")


class InMemoryPlaceholderProvider(PlaceholderProvider):
    """Registers an empty placeholder document in an InMemoryDocumentStore"""

    def __init__(self, document_store: InMemoryDocumentStore) -> None:
        self._document_store = document_store
        self.created_count = 0

    def create_placeholder(self) -> str:
        placeholder_id = f"placeholder-{uuid.uuid4().hex[:12]}"
        self._document_store.add(placeholder_id, "")
        self.created_count += 1
        logger.info("Created placeholder context item %s", placeholder_id)
        return placeholder_id


class ModelClientGenerationService(GenerationService):
    """Text generation through the provider model clients"""

    def __init__(
        self,
        create_client_fn: Callable[[str], ModelClient],
        document_store: DocumentStore,
    ) -> None:
        self._clients = _ClientCache(create_client_fn)
        self._document_store = document_store

    def generate(self, prompt: str, items: Sequence[str], model: str) -> str:
        """
        Generate text with the given context items prepended to the prompt.

        Raises:
            UpstreamCallError: If no context item is given
            ContextNotFoundError: If a context item does not exist
        """
        if not items:
            raise UpstreamCallError("At least one context item is required for generation")

        parts: list[str] = []
        for item_id in items:
            text = self._document_store.get_text(item_id)
            if text:
                parts.extend([f"CONTEXT ({item_id}):", text, ""])
        parts.append(prompt)

        response = self._clients.get(model).generate("\n".join(parts))
        return response.output


class ModelClientExtractionService(ExtractionService):
    """Field extraction by prompting a provider model with the document text"""

    def __init__(
        self,
        create_client_fn: Callable[[str], ModelClient],
        document_store: DocumentStore,
        system_prompt: str | None = None,
    ) -> None:
        self._clients = _ClientCache(create_client_fn)
        self._document_store = document_store
        self._system_prompt = system_prompt

    def extract(
        self,
        document_id: str,
        fields: Sequence[FieldSpec],
        model: str,
        template_key: str | None = None,
    ) -> dict[str, Any]:
        text = self._document_store.get_text(document_id)
        prompt = build_extraction_prompt(text, fields, system_prompt=self._system_prompt)
        response = self._clients.get(model).generate(prompt)
        logger.debug("Extracted %s with %s in %dms", document_id, model, response.latency_ms)
        return parse_extraction_response(response.output, fields)


class SnapshotGroundTruthStore(GroundTruthStore):
    """Ground truth read from an accuracy snapshot"""

    def __init__(self, snapshot: AccuracySnapshot) -> None:
        self._values = {
            doc.id: {field_key: doc.ground_truth(field_key) for field_key in doc.values}
            for doc in snapshot.documents
        }

    def get(self, document_id: str, field_key: str) -> str | None:
        return self._values.get(document_id, {}).get(field_key)


class JsonPromptHistoryStore(PromptHistoryStore):
    """
    Prompt versions in a JSON file

    Layout: {template_key: {field_key: {"active": str, "versions": [...]}}}
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def get_active_prompt(self, field_key: str, template_key: str) -> str | None:
        with self._lock:
            data = self._load()
        return data.get(template_key, {}).get(field_key, {}).get("active")

    def get_versions(self, field_key: str, template_key: str) -> list[dict]:
        with self._lock:
            data = self._load()
        return data.get(template_key, {}).get(field_key, {}).get("versions", [])

    def save_version(
        self,
        field_key: str,
        prompt: str,
        history: Sequence[IterationRecord],
        template_key: str,
    ) -> None:
        with self._lock:
            data = self._load()
            entry = data.setdefault(template_key, {}).setdefault(field_key, {"active": None, "versions": []})
            entry["versions"].append({
                "prompt": prompt,
                "saved_at": datetime.now().isoformat(),
                "history": [asdict(h) for h in history],
            })
            entry["active"] = prompt
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        logger.info("Saved prompt version for %s/%s", template_key, field_key)
