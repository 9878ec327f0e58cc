"""Recover a single structured question record from free-form model output."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import fields
from functools import lru_cache
from typing import Any, Dict, List, Pattern

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from ..errors import ParseError, SchemaError
from ..structured import CHOICE_TYPES, QUESTION_TYPES, QuestionResponse
from ..utils.slug import derive_question_key

__all__ = [
    "REQUIRED_FIELDS",
    "extract_json",
    "extract_markdown",
    "normalize",
    "transform_response",
    "validate_response",
]

REQUIRED_FIELDS: tuple[str, ...] = ("key", "question", "type", "satisfied")

_JSON_FENCE: Pattern[str] = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_MARKDOWN_FENCE: Pattern[str] = re.compile(r"```(?:markdown|md)[ \t]*\r?\n([\s\S]*?)```", re.IGNORECASE)
_WRAPPING_FENCE: Pattern[str] = re.compile(r"\A```[\w-]*[ \t]*\r?\n([\s\S]*?)\r?\n?```\Z")
_BLANK_RUNS: Pattern[str] = re.compile(r"\n{3,}")


def extract_json(raw_text: str) -> Any:
    """Parse the JSON value embedded in ``raw_text``.

    Precedence: the first fenced block (optionally tagged ``json``), then the
    slice between the first ``{`` and the last ``}``, then the whole trimmed
    text. Whichever strategy is selected is final; a decode failure raises
    :class:`ParseError` carrying the raw text.
    """
    text = raw_text.strip()
    fenced = _JSON_FENCE.search(text)
    if fenced:
        candidate = fenced.group(1).strip()
        strategy = "code block"
    else:
        start = text.find("{")
        end = text.rfind("}") + 1
        if start >= 0 and end > start:
            candidate = text[start:end]
            strategy = "braced slice"
        else:
            candidate = text
            strategy = "full text"

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as error:
        raise ParseError(
            f"Invalid JSON in response ({strategy}): {error.msg} at line {error.lineno} column {error.colno}.",
            raw_text=raw_text,
        ) from error


def transform_response(parsed: Any) -> Dict[str, Any]:
    """Backfill and coerce optional fields so validation sees a well-typed shape.

    The transform never fails and is idempotent. Required fields that cannot
    be derived are left absent so validation can report them.
    """
    source: Mapping[str, Any] = parsed if isinstance(parsed, Mapping) else {}
    transformed: Dict[str, Any] = dict(source)

    key = transformed.get("key")
    if not isinstance(key, str) or not key.strip():
        transformed.pop("key", None)
        question = transformed.get("question")
        if isinstance(question, str):
            derived = derive_question_key(question)
            if derived:
                transformed["key"] = derived

    options = transformed.get("options")
    transformed["options"] = list(options) if isinstance(options, list) else []

    if "satisfied" in transformed:
        transformed["satisfied"] = _coerce_bool(transformed["satisfied"])

    documents = transformed.get("documents")
    transformed["documents"] = list(documents) if isinstance(documents, list) else []

    dependencies = transformed.get("dependencies")
    if isinstance(dependencies, Mapping):
        transformed["dependencies"] = {
            str(name): _coerce_key_list(prerequisites) for name, prerequisites in dependencies.items()
        }
    else:
        transformed["dependencies"] = {}

    return transformed


def validate_response(payload: Mapping[str, Any]) -> None:
    """Raise :class:`SchemaError` when ``payload`` violates the question schema."""
    missing = [name for name in REQUIRED_FIELDS if name not in payload or payload[name] is None]
    if missing:
        raise SchemaError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    question_type = payload["type"]
    if question_type not in QUESTION_TYPES:
        raise SchemaError(
            f"Invalid question type: {question_type!r} (expected one of {', '.join(QUESTION_TYPES)})",
            fields=["type"],
            value=question_type,
        )

    if question_type in CHOICE_TYPES:
        options = payload.get("options")
        if not isinstance(options, list):
            raise SchemaError(
                "Options must be an array for list/multiple types",
                fields=["options"],
                value=options,
            )
        if not options:
            raise SchemaError(
                "Options array cannot be empty for list/multiple types",
                fields=["options"],
                value=options,
            )

    if "dependencies" in payload and not isinstance(payload["dependencies"], Mapping):
        raise SchemaError(
            "Dependencies must be an object",
            fields=["dependencies"],
            value=payload["dependencies"],
        )

    if not isinstance(payload.get("documents"), list):
        raise SchemaError(
            "Documents must be an array",
            fields=["documents"],
            value=payload.get("documents"),
        )


def normalize(raw_text: str) -> QuestionResponse:
    """Turn completion text into a validated :class:`QuestionResponse`."""
    parsed = extract_json(raw_text)
    transformed = transform_response(parsed)
    validate_response(transformed)

    known = {item.name for item in fields(QuestionResponse)}
    payload = {name: value for name, value in transformed.items() if name in known}
    try:
        return _question_adapter().validate_python(payload)
    except ValidationError as error:
        locations = sorted({str(entry["loc"][0]) for entry in error.errors() if entry.get("loc")})
        raise SchemaError(
            f"Response does not match the question schema: {error.error_count()} error(s) in "
            f"{', '.join(locations) or 'payload'}",
            fields=locations,
            value=payload,
        ) from error


def extract_markdown(response: str) -> str:
    """Return the markdown body of a free-form completion.

    A block tagged ``markdown``/``md`` wins; a reply wrapped entirely in one
    fence is unwrapped; anything else passes through trimmed, with runs of
    blank lines collapsed.

    Untagged fences inside prose are left alone. Section bodies routinely
    embed ``mermaid`` diagrams and config samples, and those fences are part
    of the document rather than packaging around it, so only a fence that
    encloses the whole reply (and nothing fenced within it) is stripped.
    """
    tagged = _MARKDOWN_FENCE.search(response)
    if tagged:
        return tagged.group(1).strip()
    text = response.strip()
    wrapped = _WRAPPING_FENCE.match(text)
    if wrapped and "```" not in wrapped.group(1):
        text = wrapped.group(1).strip()
    return _BLANK_RUNS.sub("\n\n", text)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off", ""}:
            return False
    return bool(value)


def _coerce_key_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set)):
        return [item for item in value if isinstance(item, str)]
    return []


@lru_cache(maxsize=None)
def _question_adapter() -> TypeAdapter:
    return TypeAdapter(QuestionResponse)
