"""Provider adapters mapping the canonical transcript onto each vendor's wire format."""

from __future__ import annotations

import os
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Type, TypeVar
from urllib.parse import quote

from ..config import AppConfig, GenerationParameters, HostedProviderSettings, Mode
from ..errors import ConfigurationError
from ..structured import Message

__all__ = [
    "AdapterFactory",
    "AnthropicAdapter",
    "AzureOpenAIAdapter",
    "CohereAdapter",
    "GoogleAIAdapter",
    "LocalAdapter",
    "MistralAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "available_providers",
    "dig",
    "register_provider",
    "resolve_adapter",
]

A = TypeVar("A", bound="ProviderAdapter")
AdapterFactory = Callable[[AppConfig], "ProviderAdapter"]

_REGISTRY: Dict[str, Type["ProviderAdapter"]] = {}


def register_provider(cls: Type[A]) -> Type[A]:
    """Class decorator adding a hosted adapter to the registry under ``cls.name``."""
    _REGISTRY[cls.name.casefold()] = cls
    return cls


def available_providers() -> List[str]:
    """Return the display names of every registered hosted provider."""
    return [cls.name for cls in _REGISTRY.values()]


def resolve_adapter(config: AppConfig) -> "ProviderAdapter":
    """Build the adapter serving ``config``'s mode and provider."""
    if config.mode is Mode.LOCAL:
        return LocalAdapter(config)
    name = config.hosted_provider.name
    if not name:
        raise ConfigurationError(
            'No hosted provider configured. Please run "consilium configure" first.'
        )
    adapter_cls = _REGISTRY.get(name.casefold())
    if adapter_cls is None:
        raise ConfigurationError(
            f"Unsupported provider: {name} (supported: {', '.join(available_providers())})"
        )
    return adapter_cls(config)


def dig(payload: Any, *path: str | int) -> Optional[str]:
    """Walk ``path`` through nested dicts/lists, returning the string found or ``None``."""
    current = payload
    for segment in path:
        if isinstance(segment, int):
            if not isinstance(current, list) or len(current) <= segment:
                return None
            current = current[segment]
        else:
            if not isinstance(current, dict) or segment not in current:
                return None
            current = current[segment]
    return current if isinstance(current, str) else None


class ProviderAdapter:
    """Endpoint, headers, request body and reply extraction for one provider."""

    name: ClassVar[str] = ""
    supports_stream_flag: ClassVar[bool] = True

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self.parameters: GenerationParameters = config.active_parameters()
        self.model: Optional[str] = config.active_model()

    def endpoint(self) -> str:
        raise NotImplementedError("Subclasses must implement endpoint().")

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", **self.auth_headers()}

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        raise NotImplementedError("Subclasses must implement build_body().")

    def extract_content(self, payload: Any) -> Optional[str]:
        raise NotImplementedError("Subclasses must implement extract_content().")

    def models_url(self) -> Optional[str]:
        """Return the model listing endpoint, or ``None`` when listing is unsupported."""
        return None

    def parse_models(self, payload: Any) -> List[str]:
        return []


class ChatCompletionsAdapter(ProviderAdapter):
    """Shared behaviour for OpenAI-compatible ``/chat/completions`` endpoints."""

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        return {
            "messages": [message.to_dict() for message in messages],
            "temperature": self.parameters.temperature,
            "max_tokens": self.parameters.max_tokens,
        }

    def extract_content(self, payload: Any) -> Optional[str]:
        return dig(payload, "choices", 0, "message", "content")


class HostedAdapter(ProviderAdapter):
    """Adapter whose credential comes from the config or an environment variable."""

    api_key_env: ClassVar[Optional[str]] = None

    def __init__(self, config: AppConfig) -> None:
        super().__init__(config)
        self.settings: HostedProviderSettings = config.hosted_provider
        self.api_key = self._require_api_key()

    def _require_api_key(self) -> str:
        configured = (self.settings.api_key or "").strip()
        if configured:
            return configured
        if self.api_key_env:
            from_env = os.getenv(self.api_key_env, "").strip()
            if from_env:
                return from_env
            raise ConfigurationError(
                f"{self.name} API key is not set. Provide it via 'consilium configure' "
                f"or the {self.api_key_env} environment variable."
            )
        raise ConfigurationError(f"{self.name} API key is not set. Provide it via 'consilium configure'.")

    def _require_option(self, option: str, env_name: str) -> str:
        value = (self.settings.options.get(option) or os.getenv(env_name, "")).strip()
        if not value:
            raise ConfigurationError(
                f"{self.name} requires '{option}'. Set it via 'consilium configure' "
                f"or the {env_name} environment variable."
            )
        return value


class LocalAdapter(ChatCompletionsAdapter):
    """LM Studio or any OpenAI-compatible server on a user-configured host:port."""

    name = "Local"

    def __init__(self, config: AppConfig) -> None:
        super().__init__(config)
        domain = config.lm_studio.domain.strip().rstrip("/")
        if not domain:
            raise ConfigurationError(
                'No local model server domain configured. Please run "consilium configure" first.'
            )
        if "://" not in domain:
            domain = f"http://{domain}"
        self.base_url = domain

    def endpoint(self) -> str:
        return f"{self.base_url}/v1/chat/completions"

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        body = super().build_body(messages)
        body["top_k"] = self.parameters.top_k
        if self.model:
            body["model"] = self.model
        return body

    def models_url(self) -> Optional[str]:
        return f"{self.base_url}/v1/models"

    def parse_models(self, payload: Any) -> List[str]:
        entries = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            return []
        return [entry["id"] for entry in entries if isinstance(entry, dict) and isinstance(entry.get("id"), str)]


@register_provider
class OpenAIAdapter(HostedAdapter, ChatCompletionsAdapter):
    name = "OpenAI"
    api_key_env = "OPENAI_API_KEY"
    default_model = "gpt-4-turbo-preview"

    def endpoint(self) -> str:
        return "https://api.openai.com/v1/chat/completions"

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        body = super().build_body(messages)
        body["model"] = self.model or self.default_model
        return body

    def models_url(self) -> Optional[str]:
        return "https://api.openai.com/v1/models"

    def parse_models(self, payload: Any) -> List[str]:
        entries = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            return []
        chat_models = [
            entry
            for entry in entries
            if isinstance(entry, dict) and isinstance(entry.get("id"), str) and "gpt" in entry["id"]
        ]
        chat_models.sort(key=lambda entry: entry.get("created") or 0, reverse=True)
        return [entry["id"] for entry in chat_models]


@register_provider
class MistralAdapter(OpenAIAdapter):
    name = "Mistral AI"
    api_key_env = "MISTRAL_API_KEY"
    default_model = "mistral-small-latest"

    def endpoint(self) -> str:
        return "https://api.mistral.ai/v1/chat/completions"

    def models_url(self) -> Optional[str]:
        return None


@register_provider
class AzureOpenAIAdapter(HostedAdapter, ChatCompletionsAdapter):
    """Azure deployments; resource and deployment names are URL path parameters."""

    name = "Azure OpenAI"
    api_key_env = "AZURE_OPENAI_API_KEY"
    default_api_version = "2024-02-01"
    url_template = (
        "https://{resource}.openai.azure.com/openai/deployments/{deployment}"
        "/chat/completions?api-version={api_version}"
    )

    def __init__(self, config: AppConfig) -> None:
        super().__init__(config)
        self.resource = self._require_option("resource", "AZURE_OPENAI_RESOURCE")
        deployment = (self.model or self.settings.options.get("deployment") or "").strip()
        if not deployment:
            deployment = self._require_option("deployment", "AZURE_OPENAI_DEPLOYMENT")
        self.deployment = deployment
        self.api_version = self.settings.options.get("api_version") or self.default_api_version

    def endpoint(self) -> str:
        return self.url_template.format(
            resource=quote(self.resource, safe=""),
            deployment=quote(self.deployment, safe=""),
            api_version=quote(self.api_version, safe=""),
        )

    def auth_headers(self) -> Dict[str, str]:
        return {"api-key": self.api_key}


@register_provider
class GoogleAIAdapter(HostedAdapter):
    """Gemini ``generateContent``; it has no system role and rejects ``stream``."""

    name = "Google AI"
    api_key_env = "GOOGLE_API_KEY"
    supports_stream_flag = False
    default_model = "gemini-pro"
    url_template = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    role_map: ClassVar[Dict[str, str]] = {"system": "user", "user": "user"}

    def __init__(self, config: AppConfig) -> None:
        super().__init__(config)
        model = self.model or self.default_model
        if model.startswith("models/"):
            model = model[len("models/") :]
        self.model = model

    def _require_api_key(self) -> str:
        from_env = os.getenv(self.api_key_env or "", "").strip()
        if from_env:
            return from_env
        configured = (self.settings.api_key or "").strip()
        if configured:
            return configured
        raise ConfigurationError(f"{self.api_key_env} environment variable not set!")

    def endpoint(self) -> str:
        return self.url_template.format(model=quote(self.model or self.default_model, safe=""))

    def auth_headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        return {
            "contents": [
                {"role": self.role_map.get(message.role, "user"), "parts": [{"text": message.content}]}
                for message in messages
            ],
            "generationConfig": {
                "temperature": self.parameters.temperature,
                "maxOutputTokens": self.parameters.max_tokens,
                "topK": self.parameters.top_k,
            },
        }

    def extract_content(self, payload: Any) -> Optional[str]:
        return dig(payload, "candidates", 0, "content", "parts", 0, "text")


@register_provider
class AnthropicAdapter(HostedAdapter):
    """Messages API; leading system turns become ``system``, later ones fold into user turns."""

    name = "Anthropic"
    api_key_env = "ANTHROPIC_API_KEY"
    api_version = "2023-06-01"
    default_model = "claude-3-5-sonnet-latest"

    def endpoint(self) -> str:
        return "https://api.anthropic.com/v1/messages"

    def auth_headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": self.api_version}

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        system_parts: List[str] = []
        index = 0
        while index < len(messages) and messages[index].role == "system":
            system_parts.append(messages[index].content)
            index += 1

        remainder = [message.content for message in messages[index:]]
        if not remainder:
            # A system-only transcript still needs one user turn.
            remainder, system_parts = system_parts, []
        turns = [{"role": "user", "content": "\n\n".join(remainder)}] if remainder else []

        body: Dict[str, Any] = {
            "model": self.model or self.default_model,
            "messages": turns,
            "max_tokens": self.parameters.max_tokens,
            "temperature": self.parameters.temperature,
            "top_k": self.parameters.top_k,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        return body

    def extract_content(self, payload: Any) -> Optional[str]:
        return dig(payload, "content", 0, "text")


@register_provider
class CohereAdapter(HostedAdapter):
    name = "Cohere"
    api_key_env = "CO_API_KEY"
    default_model = "command-r-plus"

    def endpoint(self) -> str:
        return "https://api.cohere.com/v2/chat"

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def build_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        return {
            "model": self.model or self.default_model,
            "messages": [message.to_dict() for message in messages],
            "temperature": self.parameters.temperature,
            "max_tokens": self.parameters.max_tokens,
            "k": self.parameters.top_k,
        }

    def extract_content(self, payload: Any) -> Optional[str]:
        return dig(payload, "message", "content", 0, "text")
