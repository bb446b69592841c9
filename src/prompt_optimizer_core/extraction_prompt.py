"""
Extraction Prompt

Builds the prompt that asks a model to pull field values out of document text,
and parses the model's JSON answer back into a field key -> value mapping.

Answer keys are resolved per field in this order:
  1. the field key exactly
  2. the display name exactly
  3. the field key, case-insensitive
  4. the display name in snake_case, case-insensitive
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Sequence

from prompt_optimizer_core.domain.constants import NOT_PRESENT_VALUE
from prompt_optimizer_core.domain.entities import FieldSpec

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_NON_WORD_RE = re.compile(r"[^0-9a-zA-Z]+")


def build_extraction_prompt(
    document_text: str,
    fields: Sequence[FieldSpec],
    system_prompt: str | None = None,
) -> str:
    """
    Build an extraction prompt for a set of fields

    Args:
        document_text: Full text of the document
        fields: Fields to extract, each with its own instruction
        system_prompt: Optional instruction placed before the task description

    Returns:
        Constructed prompt string
    """
    prompt_parts: list[str] = []
    if system_prompt:
        prompt_parts.extend([system_prompt, ""])

    prompt_parts.extend([
        "Extract the following fields from the document below.",
        "",
        "FIELDS:",
    ])
    for f in fields:
        instruction = f.prompt or f"Extract the {f.display_name} from this document."
        line = f"- {f.key} ({f.type}, \"{f.display_name}\"): {instruction}"
        if f.options:
            line += f" Allowed values: {', '.join(f.options)}."
        prompt_parts.append(line)

    prompt_parts.extend([
        "",
        f'If a value does not appear in the document, use "{NOT_PRESENT_VALUE}".',
        "",
        "DOCUMENT:",
        document_text,
        "",
        "Return JSON only, with one key per field key listed above, e.g. "
        + json.dumps({f.key: "..." for f in fields}),
    ])
    return "\n".join(prompt_parts)


def _snake_case(name: str) -> str:
    return _NON_WORD_RE.sub("_", name).strip("_").lower()


# Each rule returns the matching answer key for a field, or None
_KEY_RULES: list[Callable[[FieldSpec, dict[str, Any]], str | None]] = [
    lambda f, data: f.key if f.key in data else None,
    lambda f, data: f.display_name if f.display_name in data else None,
    lambda f, data: next((k for k in data if k.lower() == f.key.lower()), None),
    lambda f, data: next((k for k in data if k.lower() == _snake_case(f.display_name)), None),
]


def resolve_field_value(answer: dict[str, Any], field: FieldSpec) -> Any | None:
    """Look a field up in a model answer using the ordered key rules"""
    for rule in _KEY_RULES:
        key = rule(field, answer)
        if key is not None:
            return answer[key]
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, list):
        return " | ".join(str(v) for v in value)
    return str(value)


def parse_extraction_response(raw: str, fields: Sequence[FieldSpec]) -> dict[str, str]:
    """
    Parse the model's JSON answer into field key -> value.

    Fields missing from the answer are left out of the result.

    Raises:
        ValueError: When the answer is not a JSON object
    """
    text = raw.strip()
    match = _CODE_FENCE_RE.search(text)
    json_text = match.group(1) if match else text
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Extraction response is not valid JSON: {text[:200]}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Extraction response is not a JSON object: {text[:200]}")

    result: dict[str, str] = {}
    for f in fields:
        value = resolve_field_value(data, f)
        if value is not None:
            result[f.key] = _stringify(value)
    return result
