"""Unit tests for the instruction document parser."""

from __future__ import annotations

import pytest

from agent_workflow_orchestrator.core.errors import ParseError
from agent_workflow_orchestrator.workflow.models import Action, ActionKind, Check
from agent_workflow_orchestrator.workflow.parser import InstructionParser

DOCUMENT = """# Release checklist

Some intro text with <br> markup.

<step n="1" goal="Collect inputs">
  Gather what we need.
  <ask var="version">Which version?</ask>
  <action agent="analyst" var="notes">Draft notes for {{version}}</action>
</step>

<step n="2" goal="Review" optional="true">
  <check if="notes is not empty">
    <output>Notes ready</output>
    <check if="version == '1.0'"><output>First release</output></check>
  </check>
  <goto step="1" if="notes is empty"/>
</step>

<step n="3" goal="Publish" if="version is defined" critical="true">
  <template-output file="release.md">{{notes}}</template-output>
  <invoke-workflow path="sub/announce.md"/>
  <invoke-task path='tasks/tag.md'/>
  <elicit-required>Confirm publication</elicit-required>
</step>
"""


def test_parse_returns_steps_in_order_with_attributes() -> None:
    steps = InstructionParser().parse(DOCUMENT)

    assert [s.number for s in steps] == [1, 2, 3]
    assert [s.goal for s in steps] == ["Collect inputs", "Review", "Publish"]
    assert steps[0].line == 5
    assert steps[1].optional is True
    assert steps[1].critical is False
    assert steps[2].condition == "version is defined"
    assert steps[2].critical is True
    assert steps[0].content.startswith("Gather what we need.")


def test_actions_keep_kind_content_and_attributes() -> None:
    step = InstructionParser().parse(DOCUMENT)[0]

    kinds = [a.kind for a in step.actions]
    assert kinds == [ActionKind.ASK, ActionKind.ACTION]
    ask, action = step.actions
    assert ask.content == "Which version?"
    assert ask.attributes["var"] == "version"
    assert action.attributes["agent"] == "analyst"
    assert action.content == "Draft notes for {{version}}"


def test_checks_nest_and_keep_document_order() -> None:
    step = InstructionParser().parse(DOCUMENT)[1]

    items = step.items()
    assert isinstance(items[0], Check)
    assert items[0].condition == "notes is not empty"
    assert isinstance(items[1], Action)
    assert items[1].kind is ActionKind.GOTO
    assert items[1].condition == "notes is empty"
    assert items[1].attributes["step"] == "1"

    inner = items[0].actions
    assert isinstance(inner[0], Action) and inner[0].content == "Notes ready"
    assert isinstance(inner[1], Check)
    assert inner[1].condition == "version == '1.0'"


def test_self_closing_and_single_quoted_tags() -> None:
    step = InstructionParser().parse(DOCUMENT)[2]

    kinds = [a.kind for a in step.actions]
    assert kinds == [
        ActionKind.TEMPLATE_OUTPUT,
        ActionKind.INVOKE_WORKFLOW,
        ActionKind.INVOKE_TASK,
        ActionKind.ELICIT_REQUIRED,
    ]
    assert step.actions[0].attributes["file"] == "release.md"
    assert step.actions[2].attributes["path"] == "tasks/tag.md"
    assert step.actions[2].content == ""


def test_unknown_tags_are_kept_as_unsupported_actions() -> None:
    steps = InstructionParser().parse(
        '<step n="1" goal="g"><deploy target="prod">now</deploy><br/></step>'
    )

    (action,) = steps[0].actions
    assert action.kind is ActionKind.ACTION
    assert action.unknown_tag == "deploy"
    assert action.content == '<deploy target="prod">now</deploy>'


def test_document_without_steps_parses_to_empty_list() -> None:
    assert InstructionParser().parse("# Nothing to do here\n") == []


@pytest.mark.parametrize(
    ("document", "message"),
    [
        ('<step n="1" goal="a">x</step>\n<step n="3" goal="c">y</step>', "expected 2"),
        ('<step n="2" goal="a">x</step>', "expected 1"),
        ('<step n="1" goal="a">never closed', "Unclosed <step>"),
        ('<step n="1" goal="a"><step n="2">x</step></step>', "Unclosed <step>"),
        ('<step goal="a">x</step>', "missing the n attribute"),
        ('<step n="one" goal="a">x</step>', "not a number"),
        ('<step n="1"><check>x</check></step>', "requires an if attribute"),
        ('<step n="1"><goto/></step>', "numeric step attribute"),
        ('<step n="1"><invoke-task/></step>', "requires a path attribute"),
        ('<step n="1"><output>dangling</step>', "Unclosed <output>"),
    ],
)
def test_malformed_documents_raise_parse_error(document: str, message: str) -> None:
    with pytest.raises(ParseError, match=message):
        InstructionParser().parse(document)


def test_parse_error_reports_line_number() -> None:
    with pytest.raises(ParseError) as excinfo:
        InstructionParser().parse('<step n="1" goal="a">x</step>\n\n<step n="5" goal="b">y</step>')

    assert excinfo.value.line == 3
