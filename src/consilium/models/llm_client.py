"""Completion client issuing provider requests for the elicitation and docs phases."""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import AppConfig
from ..errors import ConsiliumError, EmptyCompletionError, RequestError
from ..structured import Message, QuestionResponse
from .normalizer import normalize
from .providers import AdapterFactory, ProviderAdapter, resolve_adapter

__all__ = [
    "CompletionClient",
    "HTTPRequest",
    "Transport",
    "fetch_models",
    "urllib_transport",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class HTTPRequest:
    """Transport-ready request produced from a provider adapter."""

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    method: str = "POST"
    timeout: float = 60.0


Transport = Callable[[HTTPRequest], str]


def urllib_transport(request: HTTPRequest) -> str:
    """Default HTTP transport returning the raw response body."""
    data = json.dumps(request.body).encode("utf-8") if request.body is not None else None
    http_request = urllib.request.Request(
        request.url,
        data=data,
        headers=request.headers,
        method=request.method,
    )

    try:
        with urllib.request.urlopen(http_request, timeout=request.timeout) as response:
            raw = response.read()
            status = getattr(response, "status", 200)
    except TimeoutError as error:  # pragma: no cover - network-dependent
        raise RequestError(f"Request timed out after {request.timeout:g}s.", url=request.url) from error
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        detail = error.read().decode("utf-8", errors="ignore").strip()
        raise RequestError(detail or str(error.reason), status=error.code, url=request.url) from error
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise RequestError(f"Failed to reach {request.url}: {error.reason}", url=request.url) from error
    except (OSError, http.client.HTTPException) as error:
        raise RequestError(f"Connection to {request.url} failed: {error!r}", url=request.url) from error

    if status >= 400:
        raise RequestError("Unexpected HTTP status", status=status, url=request.url)

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as error:
        raise RequestError(f"Response body is not valid UTF-8: {error}", url=request.url) from error


def _send(transport: Transport, request: HTTPRequest) -> str:
    """Run ``transport`` so that every failure surfaces as a :class:`ConsiliumError`."""
    try:
        return transport(request)
    except ConsiliumError:
        raise
    except Exception as error:
        raise RequestError(f"Transport rejected the request: {error!r}", url=request.url) from error


class CompletionClient:
    """Send a transcript to the configured provider and return its completion.

    The adapter is resolved from the explicit ``config`` on every request, so
    configuration errors surface before any network traffic. Requests are not
    retried.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        transport: Optional[Transport] = None,
        adapter_factory: AdapterFactory = resolve_adapter,
    ) -> None:
        self._config = config
        self._transport = transport or urllib_transport
        self._adapter_factory = adapter_factory

    @property
    def config(self) -> AppConfig:
        return self._config

    def complete(self, messages: Sequence[Message]) -> QuestionResponse:
        """Request a structured question and normalize it."""
        content = self._request(messages)
        return normalize(content)

    def complete_raw(self, messages: Sequence[Message]) -> str:
        """Request free-form completion text, returned verbatim."""
        return self._request(messages)

    def _request(self, messages: Sequence[Message]) -> str:
        adapter = self._adapter_factory(self._config)
        body = adapter.build_body(messages)
        if adapter.supports_stream_flag:
            body["stream"] = False

        request = HTTPRequest(
            url=adapter.endpoint(),
            headers=adapter.headers(),
            body=body,
            timeout=self._config.request_timeout,
        )
        LOGGER.debug("POST %s (%s, %d message(s))", request.url, adapter.name, len(messages))
        raw = _send(self._transport, request)
        payload = _decode_payload(raw, request.url)

        content = adapter.extract_content(payload)
        if not content or not content.strip():
            LOGGER.debug("Provider payload without completion text: %s", raw[:500])
            raise EmptyCompletionError("Empty response from LLM", url=request.url)
        return content


def fetch_models(config: AppConfig, *, transport: Optional[Transport] = None) -> List[str]:
    """List the models the configured provider offers, or ``[]`` if it cannot."""
    adapter: ProviderAdapter = resolve_adapter(config)
    url = adapter.models_url()
    if url is None:
        return []
    request = HTTPRequest(
        url=url,
        headers=adapter.headers(),
        method="GET",
        timeout=config.request_timeout,
    )
    raw = _send(transport or urllib_transport, request)
    return adapter.parse_models(_decode_payload(raw, url))


def _decode_payload(raw: str, url: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as error:
        raise RequestError(f"Provider returned a non-JSON body: {raw[:200]}", url=url) from error
