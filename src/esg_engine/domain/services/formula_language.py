# src/esg_engine/domain/services/formula_language.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Formula language: lexer, parser and abstract syntax tree.

Purpose:
    Parse the small, closed formula language used by calculated metrics into
    an immutable abstract syntax tree. Formula text is untrusted, user-authored
    catalog data; nothing here executes code. The tree is interpreted by
    :mod:`esg_engine.domain.services.formula_evaluator`.

Grammar (version ``FORMULA_GRAMMAR_VERSION``):

    expr       := comparison
    comparison := additive (("<" | "<=" | ">" | ">=" | "==" | "!=") additive)?
    additive   := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("-" | "+") unary | primary
    primary    := NUMBER | METRIC_CODE | FUNC "(" expr ("," expr)* ")" | "(" expr ")"
    FUNC       := SUM | AVG | MIN | MAX | DIVIDE | MULTIPLY | IF

Lexing rules:
    - Metric codes may contain hyphens and may start with digits ("305-1",
      "ENERGY-TOTAL", "GRI-302-1"). At every position the lexer first tries
      the longest known code that ends on a word boundary, then numbers, then
      names. ``A - B`` is therefore a subtraction, and ``A-B`` is one too
      unless ``A-B`` is itself a known code.
    - A function name followed by "(" is a function call even if a metric
      happens to use the same code.
    - Function names are case-insensitive; metric codes are case-sensitive.
    - Any other name or character is rejected with InvalidFormulaSyntax.

Layer:
    domain/services
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Final, TypeAlias

from esg_engine.domain.exceptions.calculation import InvalidFormulaSyntax

__all__ = [
    "FORMULA_GRAMMAR_VERSION",
    "FUNCTION_ARITY",
    "TokenKind",
    "Token",
    "NumberLiteral",
    "MetricReference",
    "UnaryOperation",
    "BinaryOperation",
    "FunctionCall",
    "FormulaNode",
    "FormulaExpression",
    "tokenize",
    "parse_formula",
]

FORMULA_GRAMMAR_VERSION: Final[str] = "1"

# Minimum and maximum argument count per function (None = unbounded).
FUNCTION_ARITY: Final[dict[str, tuple[int, int | None]]] = {
    "SUM": (1, None),
    "AVG": (1, None),
    "MIN": (1, None),
    "MAX": (1, None),
    "MULTIPLY": (1, None),
    "DIVIDE": (2, 2),
    "IF": (3, 3),
}

ARITHMETIC_OPERATORS: Final[frozenset[str]] = frozenset({"+", "-", "*", "/"})
COMPARISON_OPERATORS: Final[frozenset[str]] = frozenset({"<", "<=", ">", ">=", "==", "!="})

MAX_FORMULA_LENGTH: Final[int] = 4096
MAX_NESTING_DEPTH: Final[int] = 64

_NUMBER_RE: Final[re.Pattern[str]] = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_NAME_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_TWO_CHAR_OPERATORS: Final[frozenset[str]] = frozenset({"<=", ">=", "==", "!="})
_ONE_CHAR_OPERATORS: Final[frozenset[str]] = frozenset({"+", "-", "*", "/", "<", ">"})


class TokenKind(str, Enum):
    """Lexical token kinds."""

    NUMBER = "NUMBER"
    CODE = "CODE"
    FUNC = "FUNC"
    OPERATOR = "OPERATOR"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    COMMA = "COMMA"
    END = "END"


@dataclass(frozen=True)
class Token:
    """A lexical token and its character offset in the formula text."""

    kind: TokenKind
    text: str
    position: int


# --------------------------------------------------------------------------- #
# Abstract syntax tree                                                        #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class NumberLiteral:
    """Numeric literal."""

    value: float


@dataclass(frozen=True)
class MetricReference:
    """Reference to another metric's value by code."""

    code: str


@dataclass(frozen=True)
class UnaryOperation:
    """Unary plus/minus."""

    operator: str
    operand: FormulaNode


@dataclass(frozen=True)
class BinaryOperation:
    """Arithmetic or comparison operator applied to two operands."""

    operator: str
    left: FormulaNode
    right: FormulaNode


@dataclass(frozen=True)
class FunctionCall:
    """Call of a whitelisted function."""

    name: str
    arguments: tuple[FormulaNode, ...]


FormulaNode: TypeAlias = NumberLiteral | MetricReference | UnaryOperation | BinaryOperation | FunctionCall


@dataclass(frozen=True)
class FormulaExpression:
    """A parsed formula.

    Attributes:
        text: Original formula text.
        root: Root node of the syntax tree.
        references: Metric codes the formula reads, in first-appearance order.
    """

    text: str
    root: FormulaNode
    references: tuple[str, ...]


# --------------------------------------------------------------------------- #
# Lexer                                                                       #
# --------------------------------------------------------------------------- #


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch == "_"


class _Lexer:
    """Closed-vocabulary lexer over known metric codes."""

    def __init__(self, text: str, known_codes: Iterable[str]) -> None:
        self._text = text
        by_first: dict[str, list[str]] = {}
        for code in set(known_codes):
            if code:
                by_first.setdefault(code[0], []).append(code)
        # Longest first so "A-B" wins over "A".
        self._codes_by_first = {k: sorted(v, key=lambda c: (-len(c), c)) for k, v in by_first.items()}

    def tokens(self) -> list[Token]:
        text = self._text
        pos = 0
        out: list[Token] = []
        while pos < len(text):
            ch = text[pos]
            if ch.isspace():
                pos += 1
                continue

            func = self._match_function(pos)
            if func is not None:
                out.append(Token(TokenKind.FUNC, func[0], pos))
                pos = func[1]
                continue

            code = self._match_code(pos)
            if code is not None:
                out.append(Token(TokenKind.CODE, code, pos))
                pos += len(code)
                continue

            number = _NUMBER_RE.match(text, pos)
            if number is not None:
                end = number.end()
                if end < len(text) and _is_word_char(text[end]):
                    bad = _NAME_RE.match(text, end)
                    tail = bad.group(0) if bad else text[end]
                    raise InvalidFormulaSyntax(
                        f"unknown token {number.group(0) + tail!r}",
                        position=pos,
                    )
                out.append(Token(TokenKind.NUMBER, number.group(0), pos))
                pos = end
                continue

            name = _NAME_RE.match(text, pos)
            if name is not None:
                error = InvalidFormulaSyntax(f"unknown identifier {name.group(0)!r}", position=pos)
                error.details["identifier"] = name.group(0)
                raise error

            two = text[pos : pos + 2]
            if two in _TWO_CHAR_OPERATORS:
                out.append(Token(TokenKind.OPERATOR, two, pos))
                pos += 2
                continue
            if ch in _ONE_CHAR_OPERATORS:
                out.append(Token(TokenKind.OPERATOR, ch, pos))
                pos += 1
                continue
            if ch == "(":
                out.append(Token(TokenKind.LPAREN, ch, pos))
            elif ch == ")":
                out.append(Token(TokenKind.RPAREN, ch, pos))
            elif ch == ",":
                out.append(Token(TokenKind.COMMA, ch, pos))
            else:
                raise InvalidFormulaSyntax(f"unexpected character {ch!r}", position=pos)
            pos += 1

        out.append(Token(TokenKind.END, "", len(text)))
        return out

    def _match_function(self, pos: int) -> tuple[str, int] | None:
        """Match a function name followed (after optional spaces) by "("."""
        name = _NAME_RE.match(self._text, pos)
        if name is None or name.group(0).upper() not in FUNCTION_ARITY:
            return None
        after = name.end()
        while after < len(self._text) and self._text[after].isspace():
            after += 1
        if after < len(self._text) and self._text[after] == "(":
            return name.group(0).upper(), name.end()
        return None

    def _match_code(self, pos: int) -> str | None:
        """Match the longest known code at ``pos`` that ends on a word boundary."""
        text = self._text
        for code in self._codes_by_first.get(text[pos], ()):
            end = pos + len(code)
            if text.startswith(code, pos) and (end == len(text) or not _is_word_char(text[end])):
                return code
        return None


def tokenize(text: str, known_codes: Iterable[str]) -> list[Token]:
    """Tokenize formula text against a set of known metric codes.

    Raises:
        InvalidFormulaSyntax: On any token outside the closed vocabulary.
    """
    return _Lexer(text, known_codes).tokens()


# --------------------------------------------------------------------------- #
# Parser                                                                      #
# --------------------------------------------------------------------------- #


class _Parser:
    """Recursive-descent parser producing FormulaNode trees."""

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0
        self._depth = 0
        self._references: dict[str, None] = {}

    @property
    def references(self) -> tuple[str, ...]:
        return tuple(self._references)

    def parse(self) -> FormulaNode:
        node = self._expression()
        token = self._peek()
        if token.kind is not TokenKind.END:
            raise InvalidFormulaSyntax(f"unexpected token {token.text!r}", position=token.position)
        return node

    # -- token helpers ------------------------------------------------------ #

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.END:
            self._pos += 1
        return token

    def _expect(self, kind: TokenKind, what: str) -> Token:
        token = self._peek()
        if token.kind is not kind:
            found = token.text or "end of formula"
            raise InvalidFormulaSyntax(f"expected {what}, found {found!r}", position=token.position)
        return self._advance()

    # -- grammar ------------------------------------------------------------ #

    def _expression(self) -> FormulaNode:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise InvalidFormulaSyntax("formula is nested too deeply", position=self._peek().position)
        try:
            return self._comparison()
        finally:
            self._depth -= 1

    def _comparison(self) -> FormulaNode:
        left = self._additive()
        token = self._peek()
        if token.kind is TokenKind.OPERATOR and token.text in COMPARISON_OPERATORS:
            self._advance()
            right = self._additive()
            nxt = self._peek()
            if nxt.kind is TokenKind.OPERATOR and nxt.text in COMPARISON_OPERATORS:
                raise InvalidFormulaSyntax("comparisons cannot be chained", position=nxt.position)
            return BinaryOperation(token.text, left, right)
        return left

    def _additive(self) -> FormulaNode:
        node = self._term()
        while self._peek().kind is TokenKind.OPERATOR and self._peek().text in {"+", "-"}:
            op = self._advance().text
            node = BinaryOperation(op, node, self._term())
        return node

    def _term(self) -> FormulaNode:
        node = self._unary()
        while self._peek().kind is TokenKind.OPERATOR and self._peek().text in {"*", "/"}:
            op = self._advance().text
            node = BinaryOperation(op, node, self._unary())
        return node

    def _unary(self) -> FormulaNode:
        token = self._peek()
        if token.kind is TokenKind.OPERATOR and token.text in {"+", "-"}:
            self._advance()
            self._depth += 1
            if self._depth > MAX_NESTING_DEPTH:
                raise InvalidFormulaSyntax("formula is nested too deeply", position=token.position)
            try:
                return UnaryOperation(token.text, self._unary())
            finally:
                self._depth -= 1
        return self._primary()

    def _primary(self) -> FormulaNode:
        token = self._advance()
        if token.kind is TokenKind.NUMBER:
            return NumberLiteral(float(token.text))
        if token.kind is TokenKind.CODE:
            self._references.setdefault(token.text, None)
            return MetricReference(token.text)
        if token.kind is TokenKind.FUNC:
            return self._call(token)
        if token.kind is TokenKind.LPAREN:
            node = self._expression()
            self._expect(TokenKind.RPAREN, "')'")
            return node
        found = token.text or "end of formula"
        raise InvalidFormulaSyntax(f"unexpected token {found!r}", position=token.position)

    def _call(self, name_token: Token) -> FunctionCall:
        self._expect(TokenKind.LPAREN, "'('")
        arguments: list[FormulaNode] = []
        if self._peek().kind is not TokenKind.RPAREN:
            arguments.append(self._expression())
            while self._peek().kind is TokenKind.COMMA:
                self._advance()
                arguments.append(self._expression())
        self._expect(TokenKind.RPAREN, "')' or ','")

        minimum, maximum = FUNCTION_ARITY[name_token.text]
        count = len(arguments)
        if count < minimum or (maximum is not None and count > maximum):
            expected = str(minimum) if minimum == maximum else f"at least {minimum}"
            raise InvalidFormulaSyntax(
                f"{name_token.text} expects {expected} argument(s), got {count}",
                position=name_token.position,
            )
        return FunctionCall(name_token.text, tuple(arguments))


def parse_formula(
    text: str,
    known_codes: Iterable[str],
    *,
    metric_code: str | None = None,
) -> FormulaExpression:
    """Parse formula text into a FormulaExpression.

    Args:
        text:
            Formula text.
        known_codes:
            Metric codes of the framework; the only variables the formula may
            reference.
        metric_code:
            Owning calculated metric, attached to raised errors.

    Returns:
        The parsed FormulaExpression.

    Raises:
        InvalidFormulaSyntax: If the text is empty, too long, or not in the grammar.
    """
    try:
        if text is None or not text.strip():
            raise InvalidFormulaSyntax("formula is empty")
        if len(text) > MAX_FORMULA_LENGTH:
            raise InvalidFormulaSyntax(f"formula exceeds {MAX_FORMULA_LENGTH} characters")
        parser = _Parser(tokenize(text, known_codes))
        root = parser.parse()
        return FormulaExpression(text=text, root=root, references=parser.references)
    except InvalidFormulaSyntax as exc:
        if metric_code is not None:
            exc.bind(metric_code)
        raise
