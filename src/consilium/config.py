"""Persisted application settings and the JSON store that holds them."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import PersistenceError

__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "CONFIG_VERSION",
    "ConfigStore",
    "DEFAULT_LOCAL_DOMAIN",
    "GenerationParameters",
    "HostedProviderSettings",
    "LMStudioSettings",
    "Mode",
    "ProjectContext",
    "migrate_config",
]

LOGGER = logging.getLogger(__name__)

CONFIG_FILE = "ai-consillium-config.json"
CONFIG_VERSION = 2
DEFAULT_LOCAL_DOMAIN = "localhost:1234"
DEFAULT_REQUEST_TIMEOUT = 60.0

_LEGACY_TOP_LEVEL_KEYS = ("infrastructure", "selectedModel", "selectedType")


class SettingsModel(BaseModel):
    """Base model for persisted settings using camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Mode(str, Enum):
    """Which adapter family serves completions."""

    LOCAL = "Local"
    HOSTED = "Hosted"


class GenerationParameters(SettingsModel):
    """Sampling parameters forwarded to the provider."""

    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, gt=0)
    top_k: int = Field(default=40, gt=0)


class LMStudioSettings(SettingsModel):
    """Loopback model server settings used in Local mode."""

    domain: str = DEFAULT_LOCAL_DOMAIN
    selected_model: Optional[str] = None
    parameters: GenerationParameters = Field(default_factory=GenerationParameters)


class HostedProviderSettings(SettingsModel):
    """Remote vendor settings used in Hosted mode."""

    name: Optional[str] = None
    api_key: Optional[str] = None
    selected_model: Optional[str] = None
    parameters: GenerationParameters = Field(default_factory=GenerationParameters)
    options: Dict[str, str] = Field(default_factory=dict)


class ProjectContext(SettingsModel):
    """Answers gathered for one project session."""

    infrastructure: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)
    answered_questions: List[str] = Field(default_factory=list)
    dependencies: Dict[str, List[str]] = Field(default_factory=dict)


class AppConfig(SettingsModel):
    """Top-level configuration document."""

    version: int = CONFIG_VERSION
    mode: Mode = Mode.LOCAL
    lm_studio: LMStudioSettings = Field(default_factory=LMStudioSettings)
    hosted_provider: HostedProviderSettings = Field(default_factory=HostedProviderSettings)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    context: ProjectContext = Field(default_factory=ProjectContext)

    def active_parameters(self) -> GenerationParameters:
        if self.mode is Mode.LOCAL:
            return self.lm_studio.parameters
        return self.hosted_provider.parameters

    def active_model(self) -> Optional[str]:
        if self.mode is Mode.LOCAL:
            return self.lm_studio.selected_model
        return self.hosted_provider.selected_model

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def migrate_config(raw: Any) -> Dict[str, Any]:
    """Upgrade a raw JSON document to the current schema version.

    Unversioned documents written by earlier releases may carry ``null``
    provider blocks, an answered-question object instead of a list, and
    top-level keys that are no longer used.
    """
    if not isinstance(raw, Mapping):
        return {"version": CONFIG_VERSION}

    document: Dict[str, Any] = dict(raw)
    version = document.get("version")
    if version is None:
        version = 1
    if not isinstance(version, int) or version < 1:
        raise PersistenceError(f"Unrecognised config version: {version!r}")
    if version > CONFIG_VERSION:
        raise PersistenceError(
            f"Config version {version} is newer than supported version {CONFIG_VERSION}"
        )

    if version == 1:
        for legacy_key in _LEGACY_TOP_LEVEL_KEYS:
            document.pop(legacy_key, None)
        for block in ("lmStudio", "hostedProvider"):
            settings = document.get(block)
            if not isinstance(settings, Mapping):
                document.pop(block, None)
                continue
            cleaned = {name: value for name, value in settings.items() if value is not None}
            if not isinstance(cleaned.get("parameters"), Mapping):
                cleaned.pop("parameters", None)
            document[block] = cleaned
        if document.get("mode") is None:
            document.pop("mode", None)

    document["context"] = _reconcile_context(document.get("context"))
    document["version"] = CONFIG_VERSION
    return document


def _reconcile_context(raw: Any) -> Dict[str, Any]:
    """Coerce a stored context so answered keys and infrastructure entries agree."""
    context = raw if isinstance(raw, Mapping) else {}

    infrastructure_raw = context.get("infrastructure")
    infrastructure: Dict[str, Any] = {}
    if isinstance(infrastructure_raw, Mapping):
        for key, value in infrastructure_raw.items():
            if isinstance(value, str):
                infrastructure[str(key)] = value
            elif isinstance(value, list):
                infrastructure[str(key)] = [str(item) for item in value]

    answered_raw = context.get("answeredQuestions", context.get("answered_questions"))
    if isinstance(answered_raw, Mapping):
        answered_raw = list(answered_raw.values())
    if not isinstance(answered_raw, list):
        answered_raw = []
    answered: List[str] = []
    for key in answered_raw:
        if isinstance(key, str) and key in infrastructure and key not in answered:
            answered.append(key)
    for key in infrastructure:
        if key not in answered:
            answered.append(key)

    dependencies_raw = context.get("dependencies")
    dependencies: Dict[str, List[str]] = {}
    if isinstance(dependencies_raw, Mapping):
        for key, prerequisites in dependencies_raw.items():
            if isinstance(prerequisites, str):
                dependencies[str(key)] = [prerequisites]
            elif isinstance(prerequisites, list):
                dependencies[str(key)] = [item for item in prerequisites if isinstance(item, str)]

    return {
        "infrastructure": infrastructure,
        "answeredQuestions": answered,
        "dependencies": dependencies,
    }


class ConfigStore:
    """JSON document store for :class:`AppConfig` rooted at a fixed path."""

    def __init__(self, path: Path | str = CONFIG_FILE) -> None:
        self.path = Path(path)

    @classmethod
    def in_directory(cls, root: Path | None = None) -> "ConfigStore":
        """Return the store located in ``root`` (defaults to the working directory)."""
        return cls((root or Path.cwd()) / CONFIG_FILE)

    def read(self) -> AppConfig:
        """Load the config strictly, raising :class:`PersistenceError` on corruption."""
        if not self.path.exists():
            return AppConfig()
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as error:
            raise PersistenceError(f"Unable to read {self.path}: {error}", path=self.path) from error
        if not text.strip():
            return AppConfig()
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as error:
            raise PersistenceError(f"Config file {self.path} is not valid JSON: {error}", path=self.path) from error

        document = migrate_config(raw)
        try:
            return AppConfig.model_validate(document)
        except ValidationError as error:
            raise PersistenceError(f"Config file {self.path} is invalid: {error}", path=self.path) from error

    def load(self) -> AppConfig:
        """Load the config, degrading to defaults when the store is unreadable."""
        try:
            return self.read()
        except PersistenceError as error:
            LOGGER.warning("Falling back to default configuration: %s", error)
            return AppConfig()

    def save(self, config: AppConfig) -> None:
        """Atomically replace the stored document with ``config``."""
        self._write_document(config.to_document())
        LOGGER.debug("Saved configuration to %s", self.path)

    def update_context(self, context: ProjectContext) -> None:
        """Rewrite only the ``context`` block, keeping every other stored key verbatim.

        Provider settings that fail validation are left untouched rather than
        reset to defaults. A document that is not a JSON object holds nothing
        to keep and is replaced by a default one.
        """
        document: Dict[str, Any] = {}
        text = ""
        if self.path.exists():
            try:
                text = self.path.read_text(encoding="utf-8")
            except OSError as error:
                raise PersistenceError(f"Unable to read {self.path}: {error}", path=self.path) from error
        if text.strip():
            try:
                raw = json.loads(text)
            except json.JSONDecodeError:
                raw = None
            if isinstance(raw, Mapping):
                document = dict(raw)
            else:
                LOGGER.warning("Replacing unreadable config document %s", self.path)
        if not document:
            document = AppConfig().to_document()

        document["context"] = context.model_dump(mode="json", by_alias=True)
        self._write_document(document)
        LOGGER.debug("Saved project context to %s", self.path)

    def _write_document(self, document: Dict[str, Any]) -> None:
        payload = json.dumps(document, indent=2, ensure_ascii=False) + "\n"
        directory = self.path.parent if str(self.path.parent) else Path(".")
        temp_path: Optional[Path] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                handle.write(payload)
                handle.flush()
                temp_path = Path(handle.name)
            os.replace(temp_path, self.path)
        except OSError as error:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Unable to write {self.path}: {error}", path=self.path) from error
