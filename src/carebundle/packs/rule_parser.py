"""
CareBundle Rule-Condition Parser

Compiles the condition strings used by substitution rules and CAP
packages into RuleCondition trees.

Grammar:
    expr     := and_expr ("OR" and_expr)*
    and_expr := atom ("AND" atom)*
    atom     := "(" expr ")"
              | "cap_triggered:" NAME
              | "cap_level" "IN" "[" LEVEL ("," LEVEL)* "]"
              | FIELD OP VALUE

OR, AND and IN are whole-word keywords, so a CAP named "OR_risk" is an
ordinary name. Levels and values may be quoted.

Examples:
    "cap_triggered:falls"
    "cap_triggered:falls OR cap_triggered:adl"
    "cap_level IN ['IMPROVE', 'FACILITATE'] AND tech_readiness >= 2"
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Optional

from ..exceptions import ConditionSyntaxError
from ..models.rules import (
    AllOf,
    AnyOf,
    CapLevelIn,
    CapTriggered,
    ProfileComparison,
    RuleCondition,
)


CAP_TRIGGERED_PREFIX = "cap_triggered:"

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<punct>[()\[\],])
      | (?P<op>==|!=|>=|<=|>|<)
      | (?P<quoted>'[^']*'|"[^"]*")
      | (?P<word>[^\s()\[\],=!<>'"]+)
    )""",
    re.VERBOSE,
)

_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ConditionSyntaxError(
                message=f"Unexpected character at position {pos}",
                details={"condition": text, "position": pos},
            )
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _literal(kind: str, raw: str) -> Any:
    if kind == "quoted":
        return raw[1:-1]
    if raw == "true":
        return True
    if raw == "false":
        return False
    if _NUMBER_RE.match(raw):
        return float(raw) if "." in raw else int(raw)
    return raw


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def error(self, message: str) -> ConditionSyntaxError:
        return ConditionSyntaxError(
            message=message,
            details={"condition": self.text, "token_index": self.pos},
        )

    def peek(self) -> Optional[tuple[str, str]]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def take(self) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of condition")
        self.pos += 1
        return token

    def expect(self, value: str) -> None:
        kind, raw = self.take()
        if raw != value or kind == "quoted":
            raise self.error(f"Expected '{value}', found '{raw}'")

    def at_keyword(self, keyword: str) -> bool:
        token = self.peek()
        return token is not None and token == ("word", keyword)

    def parse(self) -> RuleCondition:
        node = self.parse_or()
        if self.peek() is not None:
            raise self.error(f"Unexpected token '{self.peek()[1]}'")
        return node

    def parse_or(self) -> RuleCondition:
        children = [self.parse_and()]
        while self.at_keyword("OR"):
            self.pos += 1
            children.append(self.parse_and())
        return children[0] if len(children) == 1 else AnyOf(tuple(children))

    def parse_and(self) -> RuleCondition:
        children = [self.parse_atom()]
        while self.at_keyword("AND"):
            self.pos += 1
            children.append(self.parse_atom())
        return children[0] if len(children) == 1 else AllOf(tuple(children))

    def parse_atom(self) -> RuleCondition:
        kind, raw = self.take()

        if kind == "punct" and raw == "(":
            node = self.parse_or()
            self.expect(")")
            return node

        if kind != "word":
            raise self.error(f"Unexpected token '{raw}'")

        if raw.startswith(CAP_TRIGGERED_PREFIX):
            name = raw[len(CAP_TRIGGERED_PREFIX):]
            if not name:
                name_kind, name = self.take()
                if name_kind not in ("word", "quoted"):
                    raise self.error("cap_triggered: requires a CAP name")
                name = _literal(name_kind, name) if name_kind == "quoted" else name
            return CapTriggered(str(name))

        if raw == "cap_level" and self.at_keyword("IN"):
            self.pos += 1
            return CapLevelIn(self.parse_level_list())

        op_kind, op = self.take()
        if op_kind != "op":
            raise self.error(f"Expected comparison operator after '{raw}'")
        value_kind, value_raw = self.take()
        if value_kind not in ("word", "quoted"):
            raise self.error(f"Expected value after '{raw} {op}'")
        return ProfileComparison(raw, op, _literal(value_kind, value_raw))

    def parse_level_list(self) -> tuple[str, ...]:
        self.expect("[")
        levels: list[str] = []
        while True:
            kind, raw = self.take()
            if kind not in ("word", "quoted"):
                raise self.error("Expected a CAP level")
            levels.append(raw[1:-1] if kind == "quoted" else raw)
            kind, raw = self.take()
            if raw == "]":
                break
            if raw != ",":
                raise self.error(f"Expected ',' or ']', found '{raw}'")
        return tuple(level.strip() for level in levels)


@lru_cache(maxsize=512)
def parse_rule_condition(text: str) -> RuleCondition:
    """
    Parse a rule-condition string.

    Args:
        text: Condition source, e.g. "cap_triggered:falls OR falls_risk_level >= 2"

    Returns:
        The condition tree

    Raises:
        ConditionSyntaxError: If the string is empty or malformed
    """
    if not text or not text.strip():
        raise ConditionSyntaxError(message="Empty rule condition")
    return _Parser(text.strip()).parse()
