from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from consilium.config import CONFIG_FILE, ConfigStore  # noqa: E402
from consilium.models.llm_client import HTTPRequest  # noqa: E402
from consilium.structured import Answer, QuestionResponse  # noqa: E402

Reply = Union[str, Exception]


def chat_payload(content: Optional[str]) -> str:
    """Wrap ``content`` the way a chat-completions endpoint returns it."""
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


def question_json(
    key: str,
    *,
    question: Optional[str] = None,
    type: str = "text",
    satisfied: bool = False,
    options: Sequence[str] = (),
    dependencies: Optional[Dict[str, List[str]]] = None,
) -> str:
    return json.dumps(
        {
            "key": key,
            "question": question or f"What about {key.replace('_', ' ')}?",
            "type": type,
            "satisfied": satisfied,
            "options": list(options),
            "documents": [],
            "dependencies": dependencies or {},
        }
    )


@dataclass(slots=True)
class FakeTransport:
    """Scripted transport returning queued replies and recording every request."""

    replies: List[Reply]
    requests: List[HTTPRequest] = field(default_factory=list)
    fallback: Optional[Reply] = None

    def __call__(self, request: HTTPRequest) -> str:
        self.requests.append(request)
        if self.replies:
            reply = self.replies.pop(0)
        elif self.fallback is not None:
            reply = self.fallback
        else:
            raise AssertionError(f"Unexpected request to {request.url}")
        if isinstance(reply, Exception):
            raise reply
        return reply


@dataclass(slots=True)
class ScriptedPrompter:
    """Prompter answering from a queue and recording the questions it saw."""

    answers: List[Answer]
    asked: List[QuestionResponse] = field(default_factory=list)

    def ask(self, question: QuestionResponse) -> Answer:
        self.asked.append(question)
        if not self.answers:
            raise AssertionError(f"No scripted answer for {question.key}")
        return self.answers.pop(0)


@pytest.fixture()
def make_transport() -> Callable[..., FakeTransport]:
    def factory(*replies: Reply, fallback: Optional[Reply] = None) -> FakeTransport:
        return FakeTransport(list(replies), fallback=fallback)

    return factory


@pytest.fixture()
def make_prompter() -> Callable[..., ScriptedPrompter]:
    def factory(*answers: Answer) -> ScriptedPrompter:
        return ScriptedPrompter(list(answers))

    return factory


@pytest.fixture()
def reply() -> Callable[..., str]:
    """Build a chat-completions reply carrying one structured question."""

    def factory(key: str, **kwargs: Any) -> str:
        return chat_payload(question_json(key, **kwargs))

    return factory


@pytest.fixture()
def markdown_reply() -> Callable[[str], str]:
    return chat_payload


@pytest.fixture()
def store(tmp_path: Path) -> ConfigStore:
    return ConfigStore(tmp_path / CONFIG_FILE)
