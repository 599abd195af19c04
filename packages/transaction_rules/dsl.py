"""Compiler for the rule condition language.

A condition is one boolean expression over ``transaction``::

    transaction.merchant === "Walmart" && transaction.amount < 80
    isWeekend(transaction.date) || transaction.merchant.includes("Bar")
    /coffee|espresso/i.test(transaction.merchant)

Grammar (``&&`` binds tighter than ``||``; comparisons tighter than both)::

    condition   := or_expr EOF
    or_expr     := and_expr ("||" and_expr)*
    and_expr    := comparison ("&&" comparison)*
    comparison  := operand (("===" | "!==" | ">" | "<" | ">=" | "<=") operand)?
    operand     := primary ("." METHOD "(" args ")")*
    primary     := "(" or_expr ")" | STRING | NUMBER | "-" NUMBER
                 | "transaction" "." FIELD
                 | HELPER "(" operand ")"
                 | REGEX ".test" "(" operand ")"
                 | "new" "RegExp" "(" STRING ["," STRING] ")" ".test" "(" operand ")"

The language is closed: anything else (unknown names, other methods, loose
``==``, assignment, calls on arbitrary values) is a :class:`RuleCompileError`.
The result is an expression tree from :mod:`transaction_rules.expressions`,
wrapped in a :class:`CompiledPredicate`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import regex

from .expressions import (
    COMPARISON_OPS,
    FIELD_TYPES,
    ORDERING_OPS,
    Budget,
    CaseFold,
    Comparison,
    Expr,
    FieldAccess,
    HelperCall,
    IncludesCheck,
    LogicalAnd,
    LogicalOr,
    NumberLiteral,
    RegexMatch,
    StringLiteral,
    ValueType,
    truthy,
)
from .helpers import HELPERS


class RuleCompileError(ValueError):
    """A condition that does not belong to the rule language."""

    def __init__(self, message: str, *, source: str = "", position: int | None = None) -> None:
        self.message = message
        self.source = source
        self.position = position
        where = f" at position {position}" if position is not None else ""
        super().__init__(f"{message}{where}")


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Token:
    kind: str  # string | number | regex | ident | op | eof
    text: str
    pos: int
    value: Any = None


_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_IDENT_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_FLAGS_RE = re.compile(r"[A-Za-z]*")
_OPERATORS = ("===", "!==", ">=", "<=", "&&", "||", ">", "<", "(", ")", ".", ",", "-")
_ESCAPES = {'"': '"', "'": "'", "\\": "\\", "/": "/", "n": "\n", "t": "\t", "r": "\r"}
_REGEX_FLAGS = {"i": regex.IGNORECASE, "m": regex.MULTILINE, "s": regex.DOTALL}

# Parentheses, helper calls and method arguments each add a level.
MAX_NESTING = 64


def _read_string(source: str, start: int) -> tuple[str, int]:
    out: list[str] = []
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == '"':
            return "".join(out), i + 1
        if ch == "\\":
            if i + 1 >= len(source):
                break
            esc = source[i + 1]
            if esc not in _ESCAPES:
                raise RuleCompileError(
                    f"unsupported escape sequence '\\{esc}'", source=source, position=i
                )
            out.append(_ESCAPES[esc])
            i += 2
            continue
        out.append(ch)
        i += 1
    raise RuleCompileError("unterminated string literal", source=source, position=start)


def _read_regex(source: str, start: int) -> tuple[str, str, int]:
    i = start + 1
    in_class = False
    while i < len(source):
        ch = source[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            break
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            pattern = source[start + 1 : i]
            if not pattern:
                raise RuleCompileError("empty regular expression", source=source, position=start)
            m = _FLAGS_RE.match(source, i + 1)
            assert m is not None  # matches the empty string
            return pattern, m.group(0), m.end()
        i += 1
    raise RuleCompileError("unterminated regular expression", source=source, position=start)


def tokenize(source: str) -> list[Token]:
    """Split ``source`` into tokens, ending with an ``eof`` token."""

    tokens: list[Token] = []
    i = 0
    while i < len(source):
        ch = source[i]
        if ch.isspace():
            i += 1
            continue
        if ch == '"':
            value, end = _read_string(source, i)
            tokens.append(Token("string", source[i:end], i, value))
            i = end
            continue
        if ch.isdigit():
            m = _NUMBER_RE.match(source, i)
            assert m is not None
            tokens.append(Token("number", m.group(0), i, Decimal(m.group(0))))
            i = m.end()
            continue
        if ch == "/":
            pattern, flags, end = _read_regex(source, i)
            tokens.append(Token("regex", source[i:end], i, (pattern, flags)))
            i = end
            continue
        m = _IDENT_RE.match(source, i)
        if m is not None:
            tokens.append(Token("ident", m.group(0), i))
            i = m.end()
            continue
        if source.startswith(("==", "!="), i) and not source.startswith(("===", "!=="), i):
            loose = source[i : i + 2]
            raise RuleCompileError(
                f"loose operator '{loose}' is not supported; use '{loose}='",
                source=source,
                position=i,
            )
        for op in _OPERATORS:
            if source.startswith(op, i):
                tokens.append(Token("op", op, i))
                i += len(op)
                break
        else:
            raise RuleCompileError(f"unexpected character {ch!r}", source=source, position=i)
    tokens.append(Token("eof", "", len(source)))
    return tokens


def compile_regex(
    pattern: str, flags: str, *, source: str = "", position: int | None = None
) -> regex.Pattern[str]:
    """Compile a JavaScript-style pattern/flags pair into a Python pattern."""

    value = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            raise RuleCompileError(
                f"unsupported regular expression flag {flag!r}", source=source, position=position
            )
        if flags.count(flag) > 1:
            raise RuleCompileError(
                f"duplicate regular expression flag {flag!r}", source=source, position=position
            )
        value |= _REGEX_FLAGS[flag]
    try:
        return regex.compile(pattern, value)
    except regex.error as e:
        raise RuleCompileError(
            f"invalid regular expression /{pattern}/: {e}", source=source, position=position
        ) from e


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = tokenize(source)
        self._i = 0
        self._depth = 0

    # -- token helpers --------------------------------------------------------

    def _peek(self) -> Token:
        return self._tokens[self._i]

    def _advance(self) -> Token:
        tok = self._tokens[self._i]
        if tok.kind != "eof":
            self._i += 1
        return tok

    def _error(self, message: str, tok: Token | None = None) -> RuleCompileError:
        tok = tok or self._peek()
        return RuleCompileError(message, source=self._source, position=tok.pos)

    def _at_op(self, op: str) -> bool:
        tok = self._peek()
        return tok.kind == "op" and tok.text == op

    def _expect_op(self, op: str) -> Token:
        if not self._at_op(op):
            tok = self._peek()
            found = "end of condition" if tok.kind == "eof" else repr(tok.text)
            raise self._error(f"expected '{op}', found {found}")
        return self._advance()

    def _expect(self, kind: str, what: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            found = "end of condition" if tok.kind == "eof" else repr(tok.text)
            raise self._error(f"expected {what}, found {found}")
        return self._advance()

    def _enter(self, tok: Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING:
            raise self._error(f"condition nested too deeply (limit {MAX_NESTING})", tok)

    def _leave(self) -> None:
        self._depth -= 1

    def _expect_end(self) -> None:
        tok = self._peek()
        if tok.kind != "eof":
            raise self._error(f"unexpected {tok.text!r}")

    # -- grammar --------------------------------------------------------------

    def parse_condition(self) -> Expr:
        if self._peek().kind == "eof":
            raise self._error("empty condition")
        expr = self._or()
        self._expect_end()
        return expr

    def parse_operand(self) -> Expr:
        expr = self._operand()
        self._expect_end()
        return expr

    def _or(self) -> Expr:
        left = self._and()
        while self._at_op("||"):
            self._advance()
            left = LogicalOr(left, self._and())
        return left

    def _and(self) -> Expr:
        left = self._comparison()
        while self._at_op("&&"):
            self._advance()
            left = LogicalAnd(left, self._comparison())
        return left

    def _comparison(self) -> Expr:
        left = self._operand()
        tok = self._peek()
        if tok.kind != "op" or tok.text not in COMPARISON_OPS:
            return left
        self._advance()
        right = self._operand()
        return make_comparison(tok.text, left, right, source=self._source, position=tok.pos)

    def _operand(self) -> Expr:
        expr = self._primary()
        while self._at_op("."):
            self._advance()
            name = self._expect("ident", "a method name")
            expr = self._method(expr, name)
        return expr

    def _method(self, target: Expr, name: Token) -> Expr:
        self._expect_op("(")
        args = self._arguments()
        if target.value_type is not ValueType.STRING:
            raise self._error(
                f"method {name.text!r} is not available on {target.value_type.value} values",
                name,
            )
        if name.text == "includes":
            (needle,) = self._check_args(name, args, ValueType.STRING)
            return IncludesCheck(target, needle)
        if name.text in ("toLowerCase", "toUpperCase"):
            self._check_args(name, args)
            return CaseFold(target, upper=name.text == "toUpperCase")
        raise self._error(f"unsupported method {name.text!r}", name)

    def _arguments(self) -> list[Expr]:
        args: list[Expr] = []
        if self._at_op(")"):
            self._advance()
            return args
        self._enter(self._peek())
        while True:
            args.append(self._operand())
            if self._at_op(","):
                self._advance()
                continue
            self._expect_op(")")
            self._leave()
            return args

    def _check_args(self, name: Token, args: list[Expr], *types: ValueType) -> list[Expr]:
        if len(args) != len(types):
            raise self._error(
                f"{name.text}() takes {len(types)} argument(s), got {len(args)}", name
            )
        for arg, expected in zip(args, types, strict=True):
            if arg.value_type is not expected:
                raise self._error(
                    f"{name.text}() expects a {expected.value} argument, "
                    f"got {arg.value_type.value}",
                    name,
                )
        return args

    def _primary(self) -> Expr:
        tok = self._peek()
        if tok.kind == "op" and tok.text == "(":
            self._enter(tok)
            self._advance()
            expr = self._or()
            self._expect_op(")")
            self._leave()
            return expr
        if tok.kind == "string":
            self._advance()
            return StringLiteral(tok.value)
        if tok.kind == "number":
            self._advance()
            return NumberLiteral(tok.value)
        if tok.kind == "op" and tok.text == "-":
            self._advance()
            num = self._expect("number", "a number after '-'")
            return NumberLiteral(-num.value)
        if tok.kind == "regex":
            self._advance()
            pattern, flags = tok.value
            compiled = compile_regex(pattern, flags, source=self._source, position=tok.pos)
            return self._regex_test(compiled)
        if tok.kind == "ident":
            return self._identifier()
        if tok.kind == "eof":
            raise self._error("unexpected end of condition")
        raise self._error(f"unexpected {tok.text!r}")

    def _identifier(self) -> Expr:
        tok = self._advance()
        if tok.text == "transaction":
            self._expect_op(".")
            field = self._expect("ident", "a transaction field")
            if field.text not in FIELD_TYPES:
                raise self._error(f"unknown transaction field {field.text!r}", field)
            return FieldAccess(field.text)
        if tok.text == "new":
            return self._new_regexp()
        if tok.text in HELPERS:
            self._expect_op("(")
            self._enter(tok)
            arg = self._operand()
            self._expect_op(")")
            self._leave()
            if arg.value_type is not ValueType.DATE:
                raise self._error(f"{tok.text}() expects a date such as transaction.date", tok)
            return HelperCall(tok.text, arg)
        if self._at_op("("):
            raise self._error(f"unknown function {tok.text!r}", tok)
        raise self._error(f"unknown identifier {tok.text!r}", tok)

    def _new_regexp(self) -> Expr:
        ctor = self._expect("ident", "'RegExp'")
        if ctor.text != "RegExp":
            raise self._error(f"only 'new RegExp' is supported, not {ctor.text!r}", ctor)
        self._expect_op("(")
        pattern = self._expect("string", "a pattern string")
        flags = ""
        if self._at_op(","):
            self._advance()
            flags = self._expect("string", "a flags string").value
        self._expect_op(")")
        compiled = compile_regex(pattern.value, flags, source=self._source, position=pattern.pos)
        return self._regex_test(compiled)

    def _regex_test(self, pattern: regex.Pattern[str]) -> Expr:
        self._expect_op(".")
        method = self._expect("ident", "'test'")
        if method.text != "test":
            raise self._error(f"unsupported regular expression method {method.text!r}", method)
        self._expect_op("(")
        args = self._arguments()
        (target,) = self._check_args(method, args, ValueType.STRING)
        return RegexMatch(pattern, target)


def make_comparison(
    op: str, left: Expr, right: Expr, *, source: str = "", position: int | None = None
) -> Comparison:
    """Build a comparison, rejecting ordering of non-numeric operands."""

    if op in ORDERING_OPS and (
        left.value_type is not ValueType.NUMBER or right.value_type is not ValueType.NUMBER
    ):
        raise RuleCompileError(
            f"operator '{op}' needs numeric operands, got "
            f"{left.value_type.value} and {right.value_type.value}",
            source=source,
            position=position,
        )
    return Comparison(op, left, right)


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CompiledPredicate:
    """An executable condition.

    Calling it with a transaction evaluates the tree against that transaction
    and returns a ``bool``. Evaluation faults propagate as
    :class:`~transaction_rules.expressions.RuleEvaluationError`; the rule
    evaluator is responsible for absorbing them.
    """

    source: str
    root: Expr

    def __call__(self, transaction: Any, *, budget_seconds: float | None = None) -> bool:
        return truthy(self.root.evaluate(transaction, Budget.start(budget_seconds)))


def _parse(source: str, *, operand: bool = False) -> Expr:
    parser = _Parser(source)
    try:
        return parser.parse_operand() if operand else parser.parse_condition()
    except RecursionError:
        raise RuleCompileError("condition nested too deeply", source=source) from None


def parse_condition(source: str) -> Expr:
    return _parse(source.strip())


def parse_operand(source: str) -> Expr:
    """Parse a single operand such as ``dayOfWeek(transaction.date)``."""
    return _parse(source.strip(), operand=True)


def compile_condition(source: str) -> CompiledPredicate:
    """Compile condition text into a :class:`CompiledPredicate`.

    Raises :class:`RuleCompileError` when the text is not a valid condition.
    """

    text = source.strip()
    return CompiledPredicate(text, _parse(text))


__all__ = [
    "CompiledPredicate",
    "MAX_NESTING",
    "RuleCompileError",
    "Token",
    "compile_condition",
    "compile_regex",
    "make_comparison",
    "parse_condition",
    "parse_operand",
    "tokenize",
]
