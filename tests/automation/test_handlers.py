"""Tests for template message handlers and automation definitions."""

import json

import pytest

from vcsbridge.automation.dispatcher import Dispatcher
from vcsbridge.automation.handlers import TemplateMessageHandler, load_automation_catalog, log_sink
from vcsbridge.automation.models import Automation, AutomationBinding, AutomationCatalog
from vcsbridge.automation.templating import TemplateEngine
from vcsbridge.errors import ConfigurationError


@pytest.fixture
def engine():
    return TemplateEngine(line_breaks=False)


def test_unscoped_message(engine, sample_push_payload):
    """Test rendering one message per activation."""
    messages = []
    handler = TemplateMessageHandler("[[event]] by [[sender->login]]", messages.append, engine=engine)

    handler.handle_event("push", sample_push_payload, None, {})

    assert messages == ["push by octocat"]


def test_scoped_messages_without_summary(engine, sample_push_payload, repository_binding):
    """Test scoped activations without a summary template."""
    messages = []
    handler = TemplateMessageHandler(
        "[[id]] in [[context->repository->name]]", messages.append, engine=engine
    )
    catalog = AutomationCatalog.from_automations(
        [Automation(id="push-log", name="Commits", events=["push"], handler=handler, scope="commits")]
    )

    Dispatcher(catalog).dispatch("push", repository_binding, sample_push_payload)

    assert messages == ["abc123 in Hello-World", "def456 in Hello-World"]


def test_scoped_messages_with_summary(engine, sample_push_payload, repository_binding):
    """Test scoped activations emitting a summary on scope end."""
    messages = []
    handler = TemplateMessageHandler(
        "- [[message]]",
        messages.append,
        summary_template="[[context->count]] commit(s) to [[repository->full_name]]:\n[[context->entries]]",
        engine=engine,
    )
    catalog = AutomationCatalog.from_automations(
        [Automation(id="push-log", name="Commits", events=["push"], handler=handler, scope="commits")]
    )

    Dispatcher(catalog).dispatch("push", repository_binding, sample_push_payload)

    assert messages == ["2 commit(s) to octocat/Hello-World:\n- Fix bug\n- Add feature"]


def test_summary_skipped_for_empty_scope(engine):
    """Test that no summary is emitted for an empty scope."""
    messages = []
    handler = TemplateMessageHandler("x", messages.append, summary_template="summary", engine=engine)

    handler.handle_scope_end("push", {}, {})

    assert messages == []


def test_log_sink_writes_to_logger(caplog):
    """Test the log sink writing messages to the logger."""
    sink = log_sink("vcsbridge.test.messages")

    with caplog.at_level("INFO", logger="vcsbridge.test.messages"):
        sink("hello")

    assert "hello" in caplog.text


def test_load_catalog_from_file(tmp_path):
    """Test loading the automation catalog from a JSON file."""
    path = tmp_path / "automations.json"
    path.write_text(
        json.dumps(
            [
                {"id": "push-log", "name": "Push", "events": ["Push"], "template": "[[ref]]"},
                {"id": "commits", "name": "Commits", "events": ["push"], "scope": "commits", "template": "[[id]]"},
            ]
        )
    )

    catalog = load_automation_catalog(path, lambda message: None)

    assert len(catalog) == 2
    assert catalog.get("push-log").events == ("push",)
    assert catalog.get("commits").scope == "commits"
    assert isinstance(catalog.get("commits").handler, TemplateMessageHandler)


def test_load_catalog_missing_file(tmp_path):
    """Test loading the catalog when the file does not exist."""
    assert len(load_automation_catalog(tmp_path / "none.json", lambda message: None)) == 0


def test_load_catalog_invalid(tmp_path):
    """Test loading an invalid catalog file."""
    path = tmp_path / "automations.json"
    path.write_text(json.dumps([{"id": "x", "name": "X", "events": [], "template": ""}]))

    with pytest.raises(ConfigurationError):
        load_automation_catalog(path, lambda message: None)


def test_automation_requires_events(recording_handler):
    """Test that an automation must declare events."""
    with pytest.raises(ValueError):
        Automation(id="x", name="X", events=[" "], handler=recording_handler)


def test_binding_links_round_trip(repository_binding):
    """Test automation links surviving a binding round trip."""
    repository_binding.automations = [AutomationBinding(automation_id="a", conditions=["ref=main"])]
    data = repository_binding.model_dump(mode="json")

    assert data["automations"] == [{"automation_id": "a", "status": "active", "conditions": ["ref=main"]}]
