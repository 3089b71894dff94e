"""Boolean expressions used by ``if`` attributes and ``<check>`` blocks.

Grammar, loosely::

    expression := unary (("AND" | "OR") unary)*
    unary      := "NOT" unary | "(" expression ")" | predicate

``AND`` and ``OR`` share one precedence level and are applied left to right;
``NOT`` binds tighter than both. Both sides of a connective are always
evaluated so a malformed right-hand side is reported even when the left side
already decides the result.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from agent_workflow_orchestrator.core.errors import ConditionEvaluationError
from agent_workflow_orchestrator.workflow.variables import (
    VariableContext,
    VariableResolver,
    lookup_variable,
    render_value,
)

logger = logging.getLogger(__name__)

_FILE = re.compile(r"^file\s+(?P<path>.+?)\s+(?P<neg>not\s+)?exists$", re.IGNORECASE)
_DEFINED = re.compile(r"^(?P<subject>.+?)\s+is\s+(?P<neg>not\s+)?defined$", re.IGNORECASE)
_UNDEFINED = re.compile(r"^(?P<subject>.+?)\s+is\s+undefined$", re.IGNORECASE)
_EMPTY = re.compile(r"^(?P<subject>.+?)\s+is\s+(?P<neg>not\s+)?empty$", re.IGNORECASE)
_BOOL = re.compile(
    r"^(?P<subject>.+?)\s+is\s+(?P<neg>not\s+)?(?P<value>true|false)$", re.IGNORECASE
)
_TEMPLATE = re.compile(r"^\{\{\s*(?P<name>[^|}]+?)\s*(?:\|(?P<default>[^}]*))?\}\}$")
_OPERATORS = ("==", "!=", "<=", ">=", "<", ">")
_CONNECTIVES = {"AND", "OR"}


def _tokenize(expression: str) -> list[str]:
    tokens: list[str] = []
    buf: list[str] = []

    def flush() -> None:
        if buf:
            tokens.append("".join(buf))
            buf.clear()

    i = 0
    while i < len(expression):
        ch = expression[i]
        if ch in "\"'":
            end = expression.find(ch, i + 1)
            if end == -1:
                raise ConditionEvaluationError(expression, "unterminated quoted string")
            buf.append(expression[i : end + 1])
            i = end + 1
        elif expression.startswith("{{", i):
            end = expression.find("}}", i + 2)
            if end == -1:
                raise ConditionEvaluationError(expression, "unterminated {{ template")
            buf.append(expression[i : end + 2])
            i = end + 2
        elif ch in "()":
            flush()
            tokens.append(ch)
            i += 1
        elif ch.isspace():
            flush()
            i += 1
        else:
            buf.append(ch)
            i += 1
    flush()
    return tokens


def _split_comparison(text: str) -> tuple[str, str, str] | None:
    """Split ``left OP right`` on the first operator outside quotes/templates."""
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'":
            end = text.find(ch, i + 1)
            i = len(text) if end == -1 else end + 1
            continue
        if text.startswith("{{", i):
            end = text.find("}}", i + 2)
            i = len(text) if end == -1 else end + 2
            continue
        for op in _OPERATORS:
            if text.startswith(op, i):
                return text[:i].strip(), op, text[i + len(op) :].strip()
        i += 1
    return None


def _unquote(text: str) -> str | None:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1]
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class ConditionEvaluator:
    """Evaluates condition expressions against the current variables.

    Relative paths in ``file ... exists`` predicates are taken from
    ``base_path``.
    """

    def __init__(self, base_path: Path | None = None, resolver: VariableResolver | None = None):
        self.base_path = base_path or Path(".")
        self.resolver = resolver or VariableResolver()

    def evaluate(self, expression: str, context: VariableContext | Mapping[str, Any]) -> bool:
        if isinstance(context, VariableContext):
            variables = context.merged()
        else:
            variables = dict(context)

        tokens = _tokenize(expression)
        if not tokens:
            raise ConditionEvaluationError(expression, "empty expression")
        result = _ExpressionParser(self, expression, tokens, variables).parse()
        logger.debug(f"Condition {expression!r} evaluated to {result}")
        return result

    # predicates ---------------------------------------------------------

    def _predicate(self, text: str, expression: str, variables: dict[str, Any]) -> bool:
        if match := _FILE.match(text):
            path = self._resolve_path(match.group("path"), variables)
            exists = path.exists()
            return not exists if match.group("neg") else exists

        if match := _UNDEFINED.match(text):
            return not self._is_defined(match.group("subject"), variables)

        if match := _DEFINED.match(text):
            defined = self._is_defined(match.group("subject"), variables)
            return not defined if match.group("neg") else defined

        if match := _EMPTY.match(text):
            found, value = self._lookup_subject(match.group("subject"), variables)
            empty = not found or value is None or value == "" or value == [] or value == {}
            if isinstance(value, str):
                empty = value.strip() == ""
            return not empty if match.group("neg") else empty

        if match := _BOOL.match(text):
            found, value = self._lookup_subject(match.group("subject"), variables)
            expected = match.group("value").lower() == "true"
            if isinstance(value, str) and value.strip().lower() in ("true", "false"):
                value = value.strip().lower() == "true"
            result = found and isinstance(value, bool) and value is expected
            return not result if match.group("neg") else result

        split = _split_comparison(text)
        if split is not None:
            left, op, right = split
            if not left or not right:
                raise ConditionEvaluationError(expression, f"incomplete comparison {text!r}")
            return self._compare(
                self._operand(left, variables), op, self._operand(right, variables), expression
            )

        lowered = text.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"

        raise ConditionEvaluationError(expression, f"unrecognised predicate {text!r}")

    def _resolve_path(self, raw: str, variables: dict[str, Any]) -> Path:
        raw = raw.strip()
        unquoted = _unquote(raw)
        text = unquoted if unquoted is not None else raw
        text = self.resolver.resolve(text, VariableContext(runtime=variables))
        path = Path(text)
        return path if path.is_absolute() else self.base_path / path

    def _subject_name(self, subject: str) -> str:
        subject = subject.strip()
        if match := _TEMPLATE.match(subject):
            return match.group("name").strip()
        unquoted = _unquote(subject)
        return unquoted if unquoted is not None else subject

    def _lookup_subject(self, subject: str, variables: dict[str, Any]) -> tuple[bool, Any]:
        return lookup_variable(variables, self._subject_name(subject))

    def _is_defined(self, subject: str, variables: dict[str, Any]) -> bool:
        found, value = self._lookup_subject(subject, variables)
        return found and value is not None

    def _operand(self, raw: str, variables: dict[str, Any]) -> Any:
        unquoted = _unquote(raw)
        if unquoted is not None:
            return unquoted

        if match := _TEMPLATE.match(raw):
            found, value = lookup_variable(variables, match.group("name").strip())
            if found and value is not None:
                return value
            default = match.group("default")
            return default.strip() if default is not None else None

        if _as_number(raw) is not None:
            return raw
        if raw.lower() in ("true", "false"):
            return raw.lower() == "true"

        found, value = lookup_variable(variables, raw)
        return value if found else raw

    def _compare(self, left: Any, op: str, right: Any, expression: str) -> bool:
        if left is None or right is None:
            if op == "==":
                return left is None and right is None
            if op == "!=":
                return not (left is None and right is None)
            raise ConditionEvaluationError(expression, f"cannot order an undefined value with {op}")

        left_num, right_num = _as_number(left), _as_number(right)
        if left_num is not None and right_num is not None:
            a: Any = left_num
            b: Any = right_num
        else:
            a, b = render_value(left), render_value(right)

        match op:
            case "==":
                return a == b
            case "!=":
                return a != b
            case "<":
                return a < b
            case ">":
                return a > b
            case "<=":
                return a <= b
            case ">=":
                return a >= b
        raise ConditionEvaluationError(expression, f"unknown operator {op!r}")


class _ExpressionParser:
    def __init__(
        self,
        evaluator: ConditionEvaluator,
        expression: str,
        tokens: list[str],
        variables: dict[str, Any],
    ) -> None:
        self._evaluator = evaluator
        self._expression = expression
        self._tokens = tokens
        self._variables = variables
        self._pos = 0

    def parse(self) -> bool:
        value = self._parse_expression()
        if self._pos != len(self._tokens):
            raise ConditionEvaluationError(
                self._expression, f"unexpected token {self._tokens[self._pos]!r}"
            )
        return value

    def _peek(self) -> str | None:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else None

    def _parse_expression(self) -> bool:
        value = self._parse_unary()
        while self._peek() in _CONNECTIVES:
            op = self._tokens[self._pos]
            self._pos += 1
            right = self._parse_unary()
            value = (value and right) if op == "AND" else (value or right)
        return value

    def _parse_unary(self) -> bool:
        token = self._peek()
        if token is None:
            raise ConditionEvaluationError(self._expression, "expected an operand")
        if token == "NOT":
            self._pos += 1
            return not self._parse_unary()
        if token == "(":
            self._pos += 1
            value = self._parse_expression()
            if self._peek() != ")":
                raise ConditionEvaluationError(self._expression, "missing closing parenthesis")
            self._pos += 1
            return value
        if token == ")" or token in _CONNECTIVES:
            raise ConditionEvaluationError(self._expression, f"unexpected token {token!r}")

        words: list[str] = []
        while (token := self._peek()) is not None and token not in (*_CONNECTIVES, "(", ")"):
            words.append(token)
            self._pos += 1
        return self._evaluator._predicate(" ".join(words), self._expression, self._variables)
