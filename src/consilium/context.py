"""Durable answer set and dependency metadata for one project session."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Set, Union

from .config import ConfigStore, ProjectContext
from .errors import PersistenceError, SchemaError
from .structured import Answer, QuestionResponse

__all__ = ["ContextManager"]

LOGGER = logging.getLogger(__name__)


class ContextManager:
    """Own the :class:`ProjectContext` and persist it after every mutation.

    The manager is the only writer of the config document's ``context``
    field. Every write is a read-modify-write of the durable store.
    """

    def __init__(self, store: ConfigStore) -> None:
        self._store = store
        try:
            context = store.read().context
        except PersistenceError as error:
            LOGGER.warning("Error initializing context, starting empty: %s", error)
            context = ProjectContext()

        self._infrastructure: Dict[str, Answer] = {
            key: list(value) if isinstance(value, list) else value
            for key, value in context.infrastructure.items()
        }
        # dict preserves the order questions were answered in
        self._answered: Dict[str, None] = dict.fromkeys(context.answered_questions)
        self._dependencies: Dict[str, List[str]] = {
            key: list(prerequisites) for key, prerequisites in context.dependencies.items()
        }

    def has_answered(self, key: str) -> bool:
        return key in self._answered

    def dependencies_of(self, key: str) -> Set[str]:
        return set(self._dependencies.get(key, ()))

    def dependencies_satisfied(self, key: str) -> bool:
        """Return True when every prerequisite of ``key`` has been answered."""
        return all(self.has_answered(dependency) for dependency in self.dependencies_of(key))

    def record_answer(self, response: QuestionResponse, answer: Union[Answer, Sequence[str]]) -> None:
        """Store ``answer`` for ``response.key``, merge its dependencies and persist."""
        if not isinstance(response, QuestionResponse):
            raise SchemaError(
                "Cannot update context with non-question response",
                value=type(response).__name__,
            )

        value: Answer = answer if isinstance(answer, str) else [str(item) for item in answer]
        self._infrastructure[response.key] = value
        self._answered[response.key] = None
        for key, prerequisites in response.dependencies.items():
            self._dependencies[key] = list(dict.fromkeys(prerequisites))

        self.persist()

    def reset(self) -> None:
        """Forget every recorded answer and persist the empty context."""
        self._infrastructure.clear()
        self._answered.clear()
        self._dependencies.clear()
        self.persist()

    def infrastructure(self) -> Dict[str, Answer]:
        return {key: list(value) if isinstance(value, list) else value for key, value in self._infrastructure.items()}

    def answered_questions(self) -> List[str]:
        return list(self._answered)

    def snapshot(self) -> ProjectContext:
        """Return a detached copy of the current context."""
        return ProjectContext(
            infrastructure=self.infrastructure(),
            answered_questions=self.answered_questions(),
            dependencies={key: list(value) for key, value in self._dependencies.items()},
        )

    def summary_payload(self) -> Dict[str, Any]:
        """Machine-readable context snapshot appended to the transcript."""
        return {
            "type": "context",
            "infrastructure": self.infrastructure(),
            "answeredQuestions": self.answered_questions(),
        }

    def persist(self) -> None:
        """Write the in-memory context into the stored config, leaving other settings as stored."""
        self._store.update_context(self.snapshot())
