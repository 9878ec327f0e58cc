"""Turn-bounded question/answer loop that builds the project context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .config import ProjectContext
from .context import ContextManager
from .models.llm_client import CompletionClient
from .prompter import Prompter
from .prompts import (
    CONTINUE_INSTRUCTION,
    PROJECT_NAME_QUESTION,
    render_context_summary,
    render_project_name_notice,
    render_repeat_notice,
    render_system_prompt,
)
from .structured import Message, QuestionResponse, render_answer

__all__ = ["ElicitationLoop", "ElicitationResult", "MAX_QUESTIONS", "PROJECT_NAME_KEY"]

LOGGER = logging.getLogger(__name__)

MAX_QUESTIONS = 10
PROJECT_NAME_KEY = "project_name"


@dataclass(slots=True)
class ElicitationResult:
    """Final state of an elicitation session."""

    messages: List[Message]
    context: ProjectContext
    question_count: int
    satisfied: bool
    forced: bool = False
    repeated_keys: List[str] = field(default_factory=list)


class ElicitationLoop:
    """Drive provider turns until it reports ``satisfied`` or the turn cap is hit.

    Every turn is exactly one provider request, so a session never issues more
    than ``max_questions`` requests. Errors from the client, the normalizer or
    the context store abort the session; answers recorded before the failure
    stay persisted.
    """

    def __init__(
        self,
        client: CompletionClient,
        context: ContextManager,
        prompter: Prompter,
        *,
        max_questions: int = MAX_QUESTIONS,
    ) -> None:
        self._client = client
        self._context = context
        self._prompter = prompter
        self._max_questions = max_questions
        self.messages: List[Message] = []
        self.question_count = 0
        self.satisfied = False

    def seed(self, project_name: str) -> None:
        """Record the project name and open the transcript."""
        project_name_response = QuestionResponse(
            key=PROJECT_NAME_KEY,
            question=PROJECT_NAME_QUESTION,
            type="text",
            satisfied=False,
        )
        self._context.record_answer(project_name_response, project_name)
        self.messages = [
            Message("system", render_system_prompt()),
            Message("system", project_name_response.to_json()),
            Message("user", project_name),
            Message("user", render_project_name_notice()),
        ]
        self.question_count = 0
        self.satisfied = False

    def run(self, project_name: str) -> ElicitationResult:
        self.seed(project_name)
        repeated: List[str] = []

        while not self.satisfied and self.question_count < self._max_questions:
            self.question_count += 1
            response = self._client.complete(self.messages)

            if self._context.has_answered(response.key):
                LOGGER.info("Provider repeated answered question %s", response.key)
                repeated.append(response.key)
                self.messages.append(Message("system", response.to_json()))
                self.messages.append(Message("user", render_repeat_notice(response.key)))
                continue

            self.satisfied = response.satisfied
            if self.satisfied or self.question_count >= self._max_questions:
                continue

            if not self._context.dependencies_satisfied(response.key):
                LOGGER.debug(
                    "Question %s asked before prerequisites %s",
                    response.key,
                    sorted(self._context.dependencies_of(response.key)),
                )
            answer = self._prompter.ask(response)
            self._context.record_answer(response, answer)
            self.messages.extend(
                [
                    Message("system", response.to_json()),
                    Message("user", render_answer(answer)),
                    Message("system", render_context_summary(self._context.summary_payload())),
                    Message("user", CONTINUE_INSTRUCTION),
                ]
            )

        forced = False
        if not self.satisfied:
            LOGGER.info("Reached maximum of %d questions; proceeding to documentation.", self._max_questions)
            self.satisfied = True
            forced = True

        return ElicitationResult(
            messages=list(self.messages),
            context=self._context.snapshot(),
            question_count=self.question_count,
            satisfied=self.satisfied,
            forced=forced,
            repeated_keys=repeated,
        )
