"""Instruction document parser.

Instruction documents are markdown with embedded tags such as
``<step n="1" goal="...">``, ``<action>``, ``<check if="...">`` and
``<goto step="3"/>``. They are not well-formed XML, so the parser scans tags
with a regex and pairs them up itself rather than using an XML parser.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from agent_workflow_orchestrator.core.errors import ParseError
from agent_workflow_orchestrator.workflow.models import Action, ActionKind, Check, Step

logger = logging.getLogger(__name__)

_TAG = re.compile(
    r"<(?P<close>/?)(?P<name>[A-Za-z][\w-]*)"
    r"(?P<attrs>(?:\s+[\w-]+\s*=\s*(?:\"[^\"]*\"|'[^']*'))*)"
    r"\s*(?P<self>/?)>"
)
_ATTR = re.compile(r"([\w-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")

_ACTION_TAGS = {kind.value: kind for kind in ActionKind}
_KNOWN_TAGS = {"step", "check", *_ACTION_TAGS}
_TRUE = {"true", "yes", "1"}


@dataclass(frozen=True, slots=True)
class _Tag:
    name: str
    closing: bool
    self_closing: bool
    attrs: dict[str, str]
    start: int
    end: int


def _parse_attrs(raw: str) -> dict[str, str]:
    return {
        m.group(1): m.group(2) if m.group(2) is not None else m.group(3)
        for m in _ATTR.finditer(raw)
    }


def _flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE


class InstructionParser:
    """Turns an instruction document into an ordered list of steps."""

    def parse(self, document: str) -> list[Step]:
        return _DocumentScanner(document).steps()


class _DocumentScanner:
    def __init__(self, document: str) -> None:
        self._document = document

    def steps(self) -> list[Step]:
        document = self._document
        tags = [
            _Tag(
                name=m.group("name").lower(),
                closing=bool(m.group("close")),
                self_closing=bool(m.group("self")),
                attrs=_parse_attrs(m.group("attrs") or ""),
                start=m.start(),
                end=m.end(),
            )
            for m in _TAG.finditer(document)
        ]

        steps: list[Step] = []
        i = 0
        while i < len(tags):
            tag = tags[i]
            if tag.name != "step" or tag.closing:
                i += 1
                continue
            close_index = self._find_step_close(tags, i)
            step = self._build_step(tag, tags[close_index], tags[i + 1 : close_index])
            expected = steps[-1].number + 1 if steps else 1
            if step.number != expected:
                raise ParseError(
                    step.line,
                    f"Step numbers must be sequential starting at 1: expected {expected}, "
                    f"found {step.number}",
                )
            steps.append(step)
            i = close_index + 1

        logger.debug(f"Parsed {len(steps)} steps")
        return steps

    def _line(self, offset: int) -> int:
        return self._document.count("\n", 0, offset) + 1

    def _find_step_close(self, tags: list[_Tag], open_index: int) -> int:
        opener = tags[open_index]
        if opener.self_closing:
            raise ParseError(self._line(opener.start), "<step> cannot be self-closing")
        for j in range(open_index + 1, len(tags)):
            tag = tags[j]
            if tag.name != "step":
                continue
            if tag.closing:
                return j
            break
        raise ParseError(self._line(opener.start), "Unclosed <step> tag")

    def _build_step(self, opener: _Tag, closer: _Tag, inner: list[_Tag]) -> Step:
        line = self._line(opener.start)
        raw_number = opener.attrs.get("n")
        if raw_number is None:
            raise ParseError(line, "<step> is missing the n attribute")
        try:
            number = int(raw_number.strip())
        except ValueError:
            raise ParseError(line, f"<step> n attribute is not a number: {raw_number!r}") from None

        optional = _flag(opener.attrs.get("optional"))
        critical_raw = opener.attrs.get("critical")
        critical = _flag(critical_raw) if critical_raw is not None else not optional

        items = self._parse_elements(inner, 0, len(inner))
        return Step(
            number=number,
            goal=opener.attrs.get("goal", ""),
            content=self._document[opener.end : closer.start].strip(),
            optional=optional,
            critical=critical,
            condition=opener.attrs.get("if"),
            actions=tuple(item for item in items if isinstance(item, Action)),
            checks=tuple(item for item in items if isinstance(item, Check)),
            line=line,
        )

    def _find_close(self, tags: list[_Tag], open_index: int, stop: int) -> int | None:
        name = tags[open_index].name
        depth = 0
        for j in range(open_index + 1, stop):
            tag = tags[j]
            if tag.name != name or tag.self_closing:
                continue
            if not tag.closing:
                depth += 1
            elif depth == 0:
                return j
            else:
                depth -= 1
        return None

    def _parse_elements(self, tags: list[_Tag], start: int, stop: int) -> list[Action | Check]:
        items: list[Action | Check] = []
        i = start
        while i < stop:
            tag = tags[i]
            if tag.closing:
                i += 1
                continue

            if tag.self_closing:
                if tag.name not in _KNOWN_TAGS:
                    i += 1
                    continue
                close_index = None
                content = ""
                element_end = tag.end
            else:
                close_index = self._find_close(tags, i, stop)
                if close_index is None:
                    if tag.name in _KNOWN_TAGS:
                        raise ParseError(self._line(tag.start), f"Unclosed <{tag.name}> tag")
                    # Stray markup such as <br>; leave it as text.
                    i += 1
                    continue
                content = self._document[tag.end : tags[close_index].start].strip()
                element_end = tags[close_index].end

            if tag.name == "check":
                items.append(self._build_check(tag, tags, i, close_index))
            elif tag.name in _ACTION_TAGS:
                items.append(self._build_action(tag, content))
            else:
                items.append(
                    Action(
                        kind=ActionKind.ACTION,
                        content=self._document[tag.start : element_end],
                        condition=tag.attrs.get("if"),
                        attributes=tag.attrs,
                        position=tag.start,
                        unknown_tag=tag.name,
                    )
                )
            i = close_index + 1 if close_index is not None else i + 1
        return items

    def _build_check(
        self, tag: _Tag, tags: list[_Tag], open_index: int, close_index: int | None
    ) -> Check:
        condition = tag.attrs.get("if")
        if not condition or not condition.strip():
            raise ParseError(self._line(tag.start), "<check> requires an if attribute")
        nested = (
            self._parse_elements(tags, open_index + 1, close_index)
            if close_index is not None
            else []
        )
        return Check(condition=condition.strip(), actions=tuple(nested), position=tag.start)

    def _build_action(self, tag: _Tag, content: str) -> Action:
        kind = _ACTION_TAGS[tag.name]
        line = self._line(tag.start)
        if kind is ActionKind.GOTO:
            target = tag.attrs.get("step")
            if target is None or not target.strip().isdigit():
                raise ParseError(line, "<goto> requires a numeric step attribute")
        elif kind in (ActionKind.INVOKE_WORKFLOW, ActionKind.INVOKE_TASK):
            if not tag.attrs.get("path", "").strip():
                raise ParseError(line, f"<{tag.name}> requires a path attribute")
        return Action(
            kind=kind,
            content=content,
            condition=tag.attrs.get("if"),
            attributes=tag.attrs,
            position=tag.start,
        )
