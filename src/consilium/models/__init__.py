"""Convenience exports for consilium provider integrations."""

from .llm_client import CompletionClient, HTTPRequest, Transport, fetch_models, urllib_transport
from .normalizer import extract_json, extract_markdown, normalize
from .providers import ProviderAdapter, available_providers, register_provider, resolve_adapter

__all__ = [
    "CompletionClient",
    "HTTPRequest",
    "ProviderAdapter",
    "Transport",
    "available_providers",
    "extract_json",
    "extract_markdown",
    "fetch_models",
    "normalize",
    "register_provider",
    "resolve_adapter",
    "urllib_transport",
]
