"""Typed payloads exchanged between the elicitation loop and the providers."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Union

QuestionType = Literal["list", "multiple", "text"]
QUESTION_TYPES: tuple[str, ...] = ("list", "multiple", "text")
CHOICE_TYPES: tuple[str, ...] = ("list", "multiple")

Answer = Union[str, List[str]]


@dataclass(slots=True)
class Message:
    """Single transcript entry sent to a provider."""

    role: Literal["system", "user"]
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class QuestionResponse:
    """Structured question emitted by the provider during elicitation."""

    key: str
    question: str
    type: QuestionType
    satisfied: bool
    options: List[str] = field(default_factory=list)
    documents: List[Any] = field(default_factory=list)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def render_answer(answer: Answer) -> str:
    """Flatten an answer into the text sent back to the provider."""
    if isinstance(answer, str):
        return answer
    return ", ".join(answer)


__all__ = [
    "Answer",
    "CHOICE_TYPES",
    "Message",
    "QUESTION_TYPES",
    "QuestionResponse",
    "QuestionType",
    "render_answer",
]
