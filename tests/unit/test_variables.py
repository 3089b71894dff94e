"""Unit tests for layered variable substitution."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from agent_workflow_orchestrator.core.errors import VariableResolutionError
from agent_workflow_orchestrator.workflow.variables import (
    VariableContext,
    VariableLayer,
    VariableResolver,
    lookup_variable,
    path_variables,
    render_value,
    system_variables,
)


def test_later_layers_override_earlier_ones() -> None:
    context = VariableContext(
        system={"who": "system"},
        config={"who": "config", "team": "platform"},
        workflow={"who": "workflow"},
        runtime={"who": "runtime"},
    )

    assert context.merged()["who"] == "runtime"
    assert context.merged()["team"] == "platform"
    assert context.layer(VariableLayer.WORKFLOW) == {"who": "workflow"}


def test_runtime_updates_do_not_touch_other_layers() -> None:
    context = VariableContext(workflow={"topic": "a"})
    context.set_runtime("answer", 42)
    context.update_runtime({"topic": "b"})

    assert context.runtime() == {"answer": 42, "topic": "b"}
    assert context.layer(VariableLayer.WORKFLOW) == {"topic": "a"}
    assert context.known_keys() == ["answer", "topic"]


def test_resolve_plain_dotted_and_default_tokens() -> None:
    context = VariableContext(
        workflow={"name": "Ada", "user": {"roles": ["admin", "dev"]}, "ok": True}
    )
    resolver = VariableResolver()

    text = "Hi {{name}}, role {{user.roles.1}}, ok={{ok}}, lang={{lang|en}}"

    assert resolver.resolve(text, context) == "Hi Ada, role dev, ok=true, lang=en"


def test_resolve_renders_structures_as_json() -> None:
    context = VariableContext(runtime={"items": [1, 2], "meta": {"k": "v"}})

    assert VariableResolver().resolve("{{items}} {{meta}}", context) == '[1, 2] {"k": "v"}'


def test_resolution_is_single_pass() -> None:
    context = VariableContext(runtime={"a": "{{b}}", "b": "never"})

    assert VariableResolver().resolve("{{a}}", context) == "{{b}}"


def test_undefined_variable_lists_known_keys() -> None:
    context = VariableContext(config={"team": "platform"}, runtime={"step": 1})

    with pytest.raises(VariableResolutionError) as excinfo:
        VariableResolver().resolve("Hello {{missing}}", context)

    assert excinfo.value.variable == "missing"
    assert excinfo.value.known_keys == ["step", "team"]
    assert "known variables: step, team" in str(excinfo.value)


def test_none_value_counts_as_undefined() -> None:
    context = VariableContext(runtime={"maybe": None})

    assert VariableResolver().resolve("{{maybe|fallback}}", context) == "fallback"
    with pytest.raises(VariableResolutionError):
        VariableResolver().resolve("{{maybe}}", context)


def test_text_without_tokens_is_unchanged() -> None:
    assert VariableResolver().resolve("no tokens here", VariableContext()) == "no tokens here"
    assert VariableResolver.has_tokens("a {{b}} c")
    assert not VariableResolver.has_tokens("a { b } c")


def test_lookup_prefers_flat_keys_over_dotted_walk() -> None:
    variables = {"a.b": "flat", "a": {"b": "nested"}}

    assert lookup_variable(variables, "a.b") == (True, "flat")
    assert lookup_variable({"a": {"b": "nested"}}, "a.b") == (True, "nested")
    assert lookup_variable({"a": [1]}, "a.5") == (False, None)


def test_render_value() -> None:
    assert render_value(False) == "false"
    assert render_value(3) == "3"
    assert render_value("text") == "text"


def test_system_and_path_variables(tmp_path: Path) -> None:
    now = datetime(2024, 5, 17, 12, 30, tzinfo=UTC)

    assert system_variables(now) == {"date": "2024-05-17", "timestamp": now.isoformat()}

    paths = path_variables(tmp_path, None)
    assert paths["project-root"] == str(tmp_path.resolve())
    assert paths["installed-path"] == str(tmp_path.resolve())
    assert path_variables(tmp_path, tmp_path / "pkg")["installed-path"] == str(
        (tmp_path / "pkg").resolve()
    )


def test_hyphenated_names_resolve() -> None:
    context = VariableContext(path={"project-root": "/srv/app"})

    assert VariableResolver().resolve("{{project-root}}/docs", context) == "/srv/app/docs"
