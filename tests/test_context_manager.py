from __future__ import annotations

import json

import pytest

from consilium.config import AppConfig, ConfigStore, LMStudioSettings
from consilium.context import ContextManager
from consilium.errors import PersistenceError, SchemaError
from consilium.structured import QuestionResponse


def _question(key: str, **kwargs) -> QuestionResponse:
    return QuestionResponse(key=key, question=f"{key}?", type="text", satisfied=False, **kwargs)


def test_record_answer_persists_immediately(store: ConfigStore) -> None:
    context = ContextManager(store)

    context.record_answer(_question("database"), ["Postgres", "Redis"])

    stored = store.read().context
    assert stored.infrastructure == {"database": ["Postgres", "Redis"]}
    assert stored.answered_questions == ["database"]
    assert context.has_answered("database")


def test_answered_keys_match_infrastructure_keys(store: ConfigStore) -> None:
    context = ContextManager(store)
    context.record_answer(_question("project_name"), "shop")
    context.record_answer(_question("region"), "eu-west-1")
    context.record_answer(_question("project_name"), "shop-v2")

    assert context.answered_questions() == ["project_name", "region"]
    assert set(context.infrastructure()) == set(context.answered_questions())
    assert context.infrastructure()["project_name"] == "shop-v2"


def test_persist_keeps_provider_settings(store: ConfigStore) -> None:
    store.save(AppConfig(lm_studio=LMStudioSettings(domain="10.1.1.1:1234")))
    context = ContextManager(store)

    context.record_answer(_question("region"), "us-east-1")

    config = store.read()
    assert config.lm_studio.domain == "10.1.1.1:1234"
    assert config.context.infrastructure == {"region": "us-east-1"}


def test_restores_context_from_store(store: ConfigStore) -> None:
    ContextManager(store).record_answer(_question("region"), "eu-west-1")

    restored = ContextManager(store)

    assert restored.has_answered("region")
    assert restored.infrastructure() == {"region": "eu-west-1"}


def test_corrupt_store_starts_empty(store: ConfigStore) -> None:
    store.path.write_text("[oops", encoding="utf-8")

    context = ContextManager(store)

    assert context.answered_questions() == []
    assert context.infrastructure() == {}


def test_dependencies_are_overlaid_per_key(store: ConfigStore) -> None:
    context = ContextManager(store)
    context.record_answer(
        _question("cloud_provider", dependencies={"database": ["cloud_provider"], "cache": ["database"]}),
        "AWS",
    )
    context.record_answer(_question("database", dependencies={"database": ["region", "region"]}), "Postgres")

    assert context.dependencies_of("database") == {"region"}
    assert context.dependencies_of("cache") == {"database"}
    assert context.dependencies_of("unknown") == set()
    assert context.dependencies_satisfied("cache") is True
    assert context.dependencies_satisfied("database") is False


def test_record_answer_rejects_non_question(store: ConfigStore) -> None:
    context = ContextManager(store)

    with pytest.raises(SchemaError):
        context.record_answer({"key": "region"}, "eu")  # type: ignore[arg-type]

    assert context.answered_questions() == []


def test_reset_clears_and_persists(store: ConfigStore) -> None:
    context = ContextManager(store)
    context.record_answer(_question("region"), "eu-west-1")

    context.reset()

    assert context.answered_questions() == []
    assert store.read().context.infrastructure == {}


def test_snapshot_is_detached(store: ConfigStore) -> None:
    context = ContextManager(store)
    context.record_answer(_question("database"), ["Postgres"])

    snapshot = context.snapshot()
    snapshot.infrastructure["database"].append("Redis")

    assert context.infrastructure()["database"] == ["Postgres"]


def test_summary_payload_shape(store: ConfigStore) -> None:
    context = ContextManager(store)
    context.record_answer(_question("region"), "eu-west-1")

    assert context.summary_payload() == {
        "type": "context",
        "infrastructure": {"region": "eu-west-1"},
        "answeredQuestions": ["region"],
    }


def test_persist_keeps_settings_that_fail_validation(store: ConfigStore) -> None:
    store.path.write_text(
        json.dumps(
            {
                "version": 2,
                "mode": "Hosted",
                "hostedProvider": {"name": "OpenAI", "apiKey": "sk-user", "parameters": {"temperature": 1.5}},
            }
        ),
        encoding="utf-8",
    )
    context = ContextManager(store)

    context.record_answer(_question("region"), "eu-west-1")

    document = json.loads(store.path.read_text(encoding="utf-8"))
    assert document["mode"] == "Hosted"
    assert document["hostedProvider"] == {"name": "OpenAI", "apiKey": "sk-user", "parameters": {"temperature": 1.5}}
    assert document["context"]["infrastructure"] == {"region": "eu-west-1"}
    assert document["context"]["answeredQuestions"] == ["region"]


def test_persist_replaces_non_object_document(store: ConfigStore) -> None:
    store.path.write_text("[oops", encoding="utf-8")
    context = ContextManager(store)

    context.record_answer(_question("region"), "eu-west-1")

    config = store.read()
    assert config.context.infrastructure == {"region": "eu-west-1"}
    assert config.lm_studio == AppConfig().lm_studio


def test_record_answer_raises_when_store_is_unwritable(store: ConfigStore) -> None:
    context = ContextManager(store)
    store.path.mkdir()

    with pytest.raises(PersistenceError) as excinfo:
        context.record_answer(_question("region"), "eu-west-1")

    assert excinfo.value.path == store.path
