from __future__ import annotations

import json

import pytest

from consilium.config import AppConfig, ConfigStore
from consilium.context import ContextManager
from consilium.elicitation import MAX_QUESTIONS, ElicitationLoop
from consilium.errors import ParseError
from consilium.models.llm_client import CompletionClient
from consilium.prompts import CONTINUE_INSTRUCTION


def _loop(store: ConfigStore, transport, prompter, **kwargs) -> ElicitationLoop:
    client = CompletionClient(AppConfig(), transport=transport)
    return ElicitationLoop(client, ContextManager(store), prompter, **kwargs)


def test_run_collects_answers_until_satisfied(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(
        reply("cloud_provider", type="list", options=["AWS", "GCP"]),
        reply("database", type="multiple", options=["Postgres", "Redis", "Mongo"]),
        reply("done", satisfied=True),
    )
    prompter = make_prompter("AWS", ["Postgres", "Redis"])

    result = _loop(store, transport, prompter).run("shop")

    assert result.satisfied is True
    assert result.forced is False
    assert result.question_count == 3
    assert len(transport.requests) == 3
    assert [question.key for question in prompter.asked] == ["cloud_provider", "database"]
    assert result.context.infrastructure == {
        "project_name": "shop",
        "cloud_provider": "AWS",
        "database": ["Postgres", "Redis"],
    }
    assert result.context.answered_questions == ["project_name", "cloud_provider", "database"]
    assert store.read().context.infrastructure == result.context.infrastructure
    assert len(result.messages) == 12
    assert result.messages[9].content == "Postgres, Redis"
    assert result.messages[-1].content == CONTINUE_INSTRUCTION


def test_transcript_is_seeded_with_project_name(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(reply("done", satisfied=True))

    result = _loop(store, transport, make_prompter()).run("shop")

    roles = [message.role for message in result.messages[:4]]
    assert roles == ["system", "system", "user", "user"]
    seeded = json.loads(result.messages[1].content)
    assert seeded["key"] == "project_name"
    assert seeded["type"] == "text"
    assert result.messages[2].content == "shop"
    assert "project_name is already answered" in result.messages[3].content
    sent = transport.requests[0].body["messages"]
    assert sent[2] == {"role": "user", "content": "shop"}


def test_summary_turn_carries_context_snapshot(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(reply("region"), reply("done", satisfied=True))

    result = _loop(store, transport, make_prompter("eu-west-1")).run("shop")

    summary = json.loads(result.messages[6].content)
    assert summary == {
        "type": "context",
        "infrastructure": {"project_name": "shop", "region": "eu-west-1"},
        "answeredQuestions": ["project_name", "region"],
    }


def test_repeated_key_gets_corrective_turn(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(reply("project_name"), reply("done", satisfied=True))
    prompter = make_prompter()

    result = _loop(store, transport, prompter).run("shop")

    assert prompter.asked == []
    assert result.question_count == 2
    assert result.repeated_keys == ["project_name"]
    assert result.messages[-1].content == "project_name was already answered. Please ask a different question."
    assert result.messages[-2].role == "system"


def test_asked_twice_in_a_row_keeps_first_answer(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(
        reply("project_type", type="list", options=["Web service", "Batch job"]),
        reply("project_type", question="What kind of project is this?"),
        reply("done", satisfied=True),
    )
    prompter = make_prompter("Web service")

    result = _loop(store, transport, prompter).run("shop")

    assert [question.key for question in prompter.asked] == ["project_type"]
    assert result.question_count == 3
    assert result.repeated_keys == ["project_type"]
    assert result.context.infrastructure["project_type"] == "Web service"
    assert result.context.answered_questions == ["project_name", "project_type"]
    assert store.read().context.infrastructure["project_type"] == "Web service"
    assert result.messages[-1].content == "project_type was already answered. Please ask a different question."
    assert len(transport.requests[2].body["messages"]) == len(result.messages)


def test_never_satisfied_provider_stops_at_cap(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(*(reply(f"question_{index}") for index in range(MAX_QUESTIONS)))
    prompter = make_prompter(*(f"answer {index}" for index in range(MAX_QUESTIONS - 1)))

    result = _loop(store, transport, prompter).run("shop")

    assert len(transport.requests) == MAX_QUESTIONS
    assert result.question_count == MAX_QUESTIONS
    assert result.forced is True
    assert result.satisfied is True
    assert len(prompter.asked) == MAX_QUESTIONS - 1
    assert "question_9" not in result.context.infrastructure


def test_repeating_provider_stops_at_cap(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(fallback=reply("project_name"))
    prompter = make_prompter()

    result = _loop(store, transport, prompter).run("shop")

    assert len(transport.requests) == MAX_QUESTIONS
    assert result.forced is True
    assert prompter.asked == []
    assert len(result.repeated_keys) == MAX_QUESTIONS


def test_custom_question_cap(store, make_transport, make_prompter, reply) -> None:
    transport = make_transport(fallback=reply("project_name"))

    result = _loop(store, transport, make_prompter(), max_questions=3).run("shop")

    assert len(transport.requests) == 3
    assert result.forced is True


def test_errors_abort_but_keep_recorded_answers(
    store, make_transport, make_prompter, reply, markdown_reply
) -> None:
    transport = make_transport(reply("region"), markdown_reply("I am not sure what to ask."))

    with pytest.raises(ParseError):
        _loop(store, transport, make_prompter("eu-west-1")).run("shop")

    assert store.read().context.infrastructure == {"project_name": "shop", "region": "eu-west-1"}
