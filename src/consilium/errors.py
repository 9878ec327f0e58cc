"""Error taxonomy shared by the consilium core."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Sequence

__all__ = [
    "ConfigurationError",
    "ConsiliumError",
    "EmptyCompletionError",
    "ParseError",
    "PersistenceError",
    "RequestError",
    "SchemaError",
]


class ConsiliumError(RuntimeError):
    """Base error raised for every failure surfaced by the core."""


class ConfigurationError(ConsiliumError):
    """Raised when provider settings or credentials are missing or invalid."""


class RequestError(ConsiliumError):
    """Raised when the provider cannot be reached or answers with a non-2xx status."""

    def __init__(self, message: str, *, status: Optional[int] = None, url: Optional[str] = None) -> None:
        self.status = status
        self.url = url
        detail = message
        if status is not None:
            detail = f"HTTP {status}: {message}"
        super().__init__(detail)


class EmptyCompletionError(RequestError):
    """Raised when the provider reply does not contain any completion text."""


class ParseError(ConsiliumError):
    """Raised when completion text cannot be recovered as JSON."""

    def __init__(self, message: str, *, raw_text: str) -> None:
        self.raw_text = raw_text
        snippet = raw_text.strip()
        if len(snippet) > 200:
            snippet = f"{snippet[:197]}..."
        super().__init__(f"{message} Raw content: {snippet}")


class SchemaError(ConsiliumError):
    """Raised when a parsed payload fails structural validation."""

    def __init__(self, message: str, *, fields: Sequence[str] = (), value: Any = None) -> None:
        self.fields = list(fields)
        self.value = value
        super().__init__(message)


class PersistenceError(ConsiliumError):
    """Raised when the config store or an output file cannot be written."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        self.path = path
        super().__init__(message)
