"""PromQL expression parsing.

Parses the subset of PromQL used by rule expressions into a small node tree.
Every node renders back to canonical text with ``str()``, which the legacy
rule adapter relies on to move expressions between grammars.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import NamedTuple, Optional, Union

from core.errors import ExpressionParseError

# Value types, named as they appear in error messages.
SCALAR = "scalar"
STRING = "string"
VECTOR = "instant vector"
MATRIX = "range vector"

_DURATION_UNITS = (
    ("y", timedelta(days=365)),
    ("w", timedelta(days=7)),
    ("d", timedelta(days=1)),
    ("h", timedelta(hours=1)),
    ("m", timedelta(minutes=1)),
    ("s", timedelta(seconds=1)),
    ("ms", timedelta(milliseconds=1)),
)
_DURATION_RE = re.compile(
    r"^(?:(\d+)y)?(?:(\d+)w)?(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?(?:(\d+)ms)?$"
)
_DURATION_TOKEN_RE = re.compile(r"(?:\d+(?:ms|[smhdwy]))+")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")

_PUNCTUATION = (
    "==", "!=", ">=", "<=", "=~", "!~",
    "=", ">", "<", "+", "-", "*", "/", "%", "^",
    "(", ")", "{", "}", "[", "]", ",", ":",
)

_PRECEDENCE = {
    "or": 1,
    "and": 2,
    "unless": 2,
    "==": 3,
    "!=": 3,
    ">": 3,
    "<": 3,
    ">=": 3,
    "<=": 3,
    "+": 4,
    "-": 4,
    "*": 5,
    "/": 5,
    "%": 5,
    "^": 6,
}
COMPARISON_OPERATORS = frozenset({"==", "!=", ">", "<", ">=", "<="})
SET_OPERATORS = frozenset({"and", "or", "unless"})
MATCH_OPERATORS = frozenset({"=", "!=", "=~", "!~"})

AGGREGATORS = frozenset(
    {
        "sum",
        "min",
        "max",
        "avg",
        "group",
        "stddev",
        "stdvar",
        "count",
        "count_values",
        "bottomk",
        "topk",
        "quantile",
    }
)
_PARAMETERIZED_AGGREGATORS = {
    "count_values": STRING,
    "bottomk": SCALAR,
    "topk": SCALAR,
    "quantile": SCALAR,
}

# Bounds both parser recursion and the depth of the resulting tree.
MAX_NESTING_DEPTH = 128


def is_valid_label_name(name: str) -> bool:
    return bool(_LABEL_NAME_RE.match(name))


def is_valid_metric_name(name: str) -> bool:
    return bool(_METRIC_NAME_RE.match(name))


def parse_duration(text: str) -> timedelta:
    """Parse a Prometheus duration such as ``5m`` or ``1h30m``."""

    if text == "0":
        return timedelta(0)
    match = _DURATION_RE.match(text)
    if not text or not match:
        raise ValueError(f"not a valid duration string: {text!r}")
    total = timedelta(0)
    for (_, unit), amount in zip(_DURATION_UNITS, match.groups()):
        if amount:
            total += unit * int(amount)
    return total


def format_duration(value: timedelta) -> str:
    """Render a duration the way Prometheus prints it (``90m`` -> ``1h30m``)."""

    remaining = int(round(value.total_seconds() * 1000))
    if remaining == 0:
        return "0s"
    parts: list[str] = []
    for suffix, unit in _DURATION_UNITS:
        unit_ms = int(unit.total_seconds() * 1000)
        amount, remaining = divmod(remaining, unit_ms)
        if amount:
            parts.append(f"{amount}{suffix}")
    return "".join(parts)


def quote(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def _format_number(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(float(value))


# --- Nodes -----------------------------------------------------------------


@dataclass(frozen=True)
class NumberLiteral:
    value: float

    @property
    def value_type(self) -> str:
        return SCALAR

    def __str__(self) -> str:
        return _format_number(self.value)


@dataclass(frozen=True)
class StringLiteral:
    value: str

    @property
    def value_type(self) -> str:
        return STRING

    def __str__(self) -> str:
        return quote(self.value)


@dataclass(frozen=True)
class LabelMatcher:
    name: str
    op: str
    value: str

    def matches(self, candidate: str) -> bool:
        if self.op == "=":
            return candidate == self.value
        if self.op == "!=":
            return candidate != self.value
        hit = re.fullmatch(self.value, candidate) is not None
        return hit if self.op == "=~" else not hit

    def __str__(self) -> str:
        return f"{self.name}{self.op}{quote(self.value)}"


def _selector_text(name: Optional[str], matchers: tuple[LabelMatcher, ...]) -> str:
    rendered = ", ".join(str(matcher) for matcher in matchers)
    if name and not matchers:
        return name
    return f"{name or ''}{{{rendered}}}"


def _offset_text(offset: Optional[timedelta]) -> str:
    if not offset:
        return ""
    return f" offset {format_duration(offset)}"


@dataclass(frozen=True)
class VectorSelector:
    name: Optional[str]
    matchers: tuple[LabelMatcher, ...] = ()
    offset: Optional[timedelta] = None

    @property
    def value_type(self) -> str:
        return VECTOR

    def __str__(self) -> str:
        return _selector_text(self.name, self.matchers) + _offset_text(self.offset)


@dataclass(frozen=True)
class MatrixSelector:
    name: Optional[str]
    matchers: tuple[LabelMatcher, ...]
    range: timedelta
    offset: Optional[timedelta] = None

    @property
    def value_type(self) -> str:
        return MATRIX

    def __str__(self) -> str:
        selector = _selector_text(self.name, self.matchers)
        return f"{selector}[{format_duration(self.range)}]{_offset_text(self.offset)}"


@dataclass(frozen=True)
class Call:
    func: str
    args: tuple["Expr", ...]
    return_type: str = VECTOR

    @property
    def value_type(self) -> str:
        return self.return_type

    def __str__(self) -> str:
        return f"{self.func}({', '.join(str(arg) for arg in self.args)})"


@dataclass(frozen=True)
class AggregateExpr:
    op: str
    expr: "Expr"
    param: Optional["Expr"] = None
    grouping: tuple[str, ...] = ()
    without: bool = False

    @property
    def value_type(self) -> str:
        return VECTOR

    def __str__(self) -> str:
        text = self.op
        if self.without:
            text += f" without ({', '.join(self.grouping)})"
        elif self.grouping:
            text += f" by ({', '.join(self.grouping)})"
        inner = str(self.expr) if self.param is None else f"{self.param}, {self.expr}"
        if text == self.op:
            return f"{text}({inner})"
        return f"{text} ({inner})"


@dataclass(frozen=True)
class VectorMatching:
    on: bool = False
    labels: tuple[str, ...] = ()
    group_side: Optional[str] = None
    include: tuple[str, ...] = ()

    def __str__(self) -> str:
        keyword = "on" if self.on else "ignoring"
        text = f" {keyword}({', '.join(self.labels)})"
        if self.group_side:
            text += f" group_{self.group_side}({', '.join(self.include)})"
        return text


@dataclass(frozen=True)
class BinaryExpr:
    op: str
    lhs: "Expr"
    rhs: "Expr"
    return_bool: bool = False
    matching: Optional[VectorMatching] = None

    @property
    def value_type(self) -> str:
        if self.lhs.value_type == SCALAR and self.rhs.value_type == SCALAR:
            return SCALAR
        return VECTOR

    def __str__(self) -> str:
        modifier = " bool" if self.return_bool else ""
        matching = str(self.matching) if self.matching else ""
        return f"{self.lhs} {self.op}{modifier}{matching} {self.rhs}"


@dataclass(frozen=True)
class UnaryExpr:
    op: str
    expr: "Expr"

    @property
    def value_type(self) -> str:
        return self.expr.value_type

    def __str__(self) -> str:
        return f"{self.op}{self.expr}"


@dataclass(frozen=True)
class ParenExpr:
    expr: "Expr"

    @property
    def value_type(self) -> str:
        return self.expr.value_type

    def __str__(self) -> str:
        return f"({self.expr})"


Expr = Union[
    NumberLiteral,
    StringLiteral,
    VectorSelector,
    MatrixSelector,
    Call,
    AggregateExpr,
    BinaryExpr,
    UnaryExpr,
    ParenExpr,
]


# --- Functions ---------------------------------------------------------------


@dataclass(frozen=True)
class Function:
    """Signature of a built-in function. Extra variadic args reuse the last type."""

    name: str
    arg_types: tuple[str, ...]
    return_type: str = VECTOR
    optional: int = 0
    variadic: bool = False

    def check_arity(self, count: int) -> bool:
        minimum = len(self.arg_types) - self.optional
        if count < minimum:
            return False
        return self.variadic or count <= len(self.arg_types)

    def arg_type(self, index: int) -> str:
        return self.arg_types[min(index, len(self.arg_types) - 1)]


def _functions() -> dict:
    table = [
        Function("abs", (VECTOR,)),
        Function("absent", (VECTOR,)),
        Function("absent_over_time", (MATRIX,)),
        Function("ceil", (VECTOR,)),
        Function("changes", (MATRIX,)),
        Function("clamp_max", (VECTOR, SCALAR)),
        Function("clamp_min", (VECTOR, SCALAR)),
        Function("day_of_month", (VECTOR,), optional=1),
        Function("day_of_week", (VECTOR,), optional=1),
        Function("days_in_month", (VECTOR,), optional=1),
        Function("delta", (MATRIX,)),
        Function("deriv", (MATRIX,)),
        Function("exp", (VECTOR,)),
        Function("floor", (VECTOR,)),
        Function("histogram_quantile", (SCALAR, VECTOR)),
        Function("holt_winters", (MATRIX, SCALAR, SCALAR)),
        Function("hour", (VECTOR,), optional=1),
        Function("idelta", (MATRIX,)),
        Function("increase", (MATRIX,)),
        Function("irate", (MATRIX,)),
        Function("label_join", (VECTOR, STRING, STRING, STRING), variadic=True),
        Function("label_replace", (VECTOR, STRING, STRING, STRING, STRING)),
        Function("ln", (VECTOR,)),
        Function("log10", (VECTOR,)),
        Function("log2", (VECTOR,)),
        Function("minute", (VECTOR,), optional=1),
        Function("month", (VECTOR,), optional=1),
        Function("predict_linear", (MATRIX, SCALAR)),
        Function("rate", (MATRIX,)),
        Function("resets", (MATRIX,)),
        Function("round", (VECTOR, SCALAR), optional=1),
        Function("scalar", (VECTOR,), return_type=SCALAR),
        Function("sort", (VECTOR,)),
        Function("sort_desc", (VECTOR,)),
        Function("sqrt", (VECTOR,)),
        Function("time", (), return_type=SCALAR),
        Function("timestamp", (VECTOR,)),
        Function("vector", (SCALAR,)),
        Function("year", (VECTOR,), optional=1),
        Function("avg_over_time", (MATRIX,)),
        Function("min_over_time", (MATRIX,)),
        Function("max_over_time", (MATRIX,)),
        Function("sum_over_time", (MATRIX,)),
        Function("count_over_time", (MATRIX,)),
        Function("quantile_over_time", (SCALAR, MATRIX)),
        Function("stddev_over_time", (MATRIX,)),
        Function("stdvar_over_time", (MATRIX,)),
    ]
    return {function.name: function for function in table}


FUNCTIONS = _functions()


# --- Lexer -------------------------------------------------------------------


class Token(NamedTuple):
    kind: str
    value: str
    pos: int


EOF = "EOF"
NUMBER = "NUMBER"
DURATION = "DURATION"
STRING_TOKEN = "STRING"
IDENT = "IDENT"

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'", "a": "\a", "b": "\b", "f": "\f", "v": "\v"}


def _scan_string(text: str, start: int) -> tuple[str, int]:
    delimiter = text[start]
    pos = start + 1
    chars: list[str] = []
    while pos < len(text):
        char = text[pos]
        if char == delimiter:
            return "".join(chars), pos + 1
        if delimiter != "`" and char == "\\":
            pos += 1
            if pos >= len(text):
                break
            escaped = text[pos]
            if escaped == "u" and pos + 4 < len(text):
                try:
                    chars.append(chr(int(text[pos + 1 : pos + 5], 16)))
                except ValueError:
                    raise ExpressionParseError("invalid unicode escape in string", pos) from None
                pos += 5
                continue
            if escaped not in _ESCAPES:
                raise ExpressionParseError(f"unknown escape sequence {escaped!r}", pos)
            chars.append(_ESCAPES[escaped])
            pos += 1
            continue
        if char == "\n" and delimiter != "`":
            break
        chars.append(char)
        pos += 1
    raise ExpressionParseError("unterminated quoted string", start)


def tokenize(text: str) -> list[Token]:
    """Split expression text into tokens, ending with an EOF token."""

    tokens: list[Token] = []
    pos = 0
    length = len(text)
    while pos < length:
        char = text[pos]
        if char.isspace():
            pos += 1
            continue
        if char == "#":
            newline = text.find("\n", pos)
            pos = length if newline == -1 else newline + 1
            continue
        if char in "\"'`":
            value, end = _scan_string(text, pos)
            tokens.append(Token(STRING_TOKEN, value, pos))
            pos = end
            continue
        if char.isdigit() or (char == "." and pos + 1 < length and text[pos + 1].isdigit()):
            duration = _DURATION_TOKEN_RE.match(text, pos)
            if duration and not _is_ident_char(text, duration.end()):
                tokens.append(Token(DURATION, duration.group(0), pos))
                pos = duration.end()
                continue
            number = _NUMBER_RE.match(text, pos)
            tokens.append(Token(NUMBER, number.group(0), pos))
            pos = number.end()
            continue
        ident = _IDENT_RE.match(text, pos)
        if ident:
            tokens.append(Token(IDENT, ident.group(0), pos))
            pos = ident.end()
            continue
        for punct in _PUNCTUATION:
            if text.startswith(punct, pos):
                tokens.append(Token(punct, punct, pos))
                pos += len(punct)
                break
        else:
            raise ExpressionParseError(f"unexpected character {char!r}", pos)
    tokens.append(Token(EOF, "", length))
    return tokens


def _is_ident_char(text: str, pos: int) -> bool:
    return pos < len(text) and (text[pos].isalnum() or text[pos] in "_:")


def _describe(token: Token) -> str:
    if token.kind == EOF:
        return "end of input"
    if token.kind == STRING_TOKEN:
        return f"string {quote(token.value)}"
    if token.kind in (NUMBER, DURATION, IDENT):
        return f"{token.kind.lower()} {token.value!r}"
    return repr(token.value)


# --- Parser ------------------------------------------------------------------


class ExprParser:
    """Recursive-descent parser over a token list.

    ``parse_expression`` stops at the first token that cannot continue an
    expression, so grammars that embed expressions can keep reading after it.
    """

    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    # Token helpers shared with embedding grammars.

    def peek(self, offset: int = 0) -> Token:
        index = min(self._index + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def advance(self) -> Token:
        token = self.peek()
        if token.kind != EOF:
            self._index += 1
        return token

    def at_keyword(self, *words: str) -> bool:
        token = self.peek()
        return token.kind == IDENT and token.value.lower() in words

    def expect(self, kind: str, context: str) -> Token:
        token = self.peek()
        if token.kind != kind:
            self.fail(f"unexpected {_describe(token)} in {context}, expected {kind.lower()}", token)
        return self.advance()

    def expect_end(self) -> None:
        token = self.peek()
        if token.kind != EOF:
            self.fail(f"unexpected {_describe(token)}", token)

    def fail(self, message: str, token: Optional[Token] = None) -> None:
        token = token or self.peek()
        raise ExpressionParseError(message, token.pos)

    def parse_duration_token(self, context: str) -> timedelta:
        token = self.peek()
        if token.kind not in (DURATION, NUMBER):
            self.fail(f"unexpected {_describe(token)} in {context}, expected duration", token)
        self.advance()
        try:
            return parse_duration(token.value)
        except ValueError as exc:
            raise ExpressionParseError(str(exc), token.pos) from exc

    def parse_label_list(self, context: str) -> tuple[str, ...]:
        self.expect("(", context)
        labels: list[str] = []
        while self.peek().kind != ")":
            token = self.expect(IDENT, context)
            if not is_valid_label_name(token.value):
                self.fail(f"invalid label name {token.value!r}", token)
            labels.append(token.value)
            if self.peek().kind == ",":
                self.advance()
            elif self.peek().kind != ")":
                self.fail(f"unexpected {_describe(self.peek())} in {context}")
        self.advance()
        return tuple(labels)

    # Expressions.

    def parse_expression(self) -> Expr:
        if self.peek().kind == EOF:
            self.fail("no expression found in input")
        return self._parse_binary(0)

    def _binary_op(self) -> Optional[str]:
        token = self.peek()
        if token.kind in _PRECEDENCE:
            return token.kind
        if token.kind == IDENT and token.value.lower() in SET_OPERATORS:
            return token.value.lower()
        return None

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            self.fail(f"expression nested deeper than {MAX_NESTING_DEPTH} levels")

    def _parse_binary(self, min_precedence: int) -> Expr:
        # Each call and each operator chained on its left-hand side deepens the tree.
        start_depth = self._depth
        self._enter()
        try:
            lhs = self._parse_unary()
            while True:
                op = self._binary_op()
                if op is None or _PRECEDENCE[op] < min_precedence:
                    return lhs
                op_token = self.advance()
                return_bool = False
                if self.at_keyword("bool"):
                    if op not in COMPARISON_OPERATORS:
                        self.fail("bool modifier can only be used on comparison operators")
                    self.advance()
                    return_bool = True
                matching = self._parse_vector_matching(op)
                next_precedence = _PRECEDENCE[op] if op == "^" else _PRECEDENCE[op] + 1
                rhs = self._parse_binary(next_precedence)
                lhs = self._check_binary(BinaryExpr(op, lhs, rhs, return_bool, matching), op_token)
                self._enter()
        finally:
            self._depth = start_depth

    def _parse_vector_matching(self, op: str) -> Optional[VectorMatching]:
        on = False
        labels: tuple[str, ...] = ()
        has_matching = False
        if self.at_keyword("on", "ignoring") and self.peek(1).kind == "(":
            on = self.advance().value.lower() == "on"
            labels = self.parse_label_list("vector matching")
            has_matching = True
        group_side = None
        include: tuple[str, ...] = ()
        if self.at_keyword("group_left", "group_right"):
            if not has_matching:
                self.fail("grouping modifier requires on or ignoring")
            if op in SET_OPERATORS:
                self.fail(f"no grouping allowed for {op!r} operation")
            group_side = self.advance().value.lower()[len("group_"):]
            if self.peek().kind == "(":
                include = self.parse_label_list("grouping labels")
        if not has_matching:
            return None
        return VectorMatching(on=on, labels=labels, group_side=group_side, include=include)

    def _check_binary(self, expr: BinaryExpr, token: Token) -> BinaryExpr:
        for operand in (expr.lhs, expr.rhs):
            if operand.value_type not in (SCALAR, VECTOR):
                self.fail("binary expression must contain only scalar and instant vector types", token)
        both_scalar = expr.lhs.value_type == SCALAR and expr.rhs.value_type == SCALAR
        if expr.op in SET_OPERATORS:
            if expr.lhs.value_type == SCALAR or expr.rhs.value_type == SCALAR:
                self.fail(f"set operator {expr.op!r} not allowed in binary scalar expression", token)
        if expr.op in COMPARISON_OPERATORS and both_scalar and not expr.return_bool:
            self.fail("comparisons between scalars must use bool modifier", token)
        if expr.matching is not None and (expr.lhs.value_type != VECTOR or expr.rhs.value_type != VECTOR):
            self.fail("vector matching only allowed between instant vectors", token)
        return expr

    def _parse_unary(self) -> Expr:
        token = self.peek()
        if token.kind in ("+", "-"):
            self.advance()
            operand = self._parse_binary(_PRECEDENCE["^"])
            if operand.value_type not in (SCALAR, VECTOR):
                self.fail("unary expression only allowed on expressions of type scalar or instant vector", token)
            if token.kind == "+":
                return operand
            if isinstance(operand, NumberLiteral):
                return NumberLiteral(-operand.value)
            return UnaryExpr("-", operand)
        return self._parse_postfix(self._parse_primary())

    def _parse_postfix(self, expr: Expr) -> Expr:
        if self.peek().kind == "[":
            if not isinstance(expr, VectorSelector) or expr.offset:
                self.fail("range specification must be preceded by a metric selector")
            self.advance()
            window = self.parse_duration_token("range selector")
            self.expect("]", "range selector")
            expr = MatrixSelector(expr.name, expr.matchers, window)
        if self.at_keyword("offset"):
            if not isinstance(expr, (VectorSelector, MatrixSelector)):
                self.fail("offset modifier must be preceded by an instant or range selector")
            self.advance()
            offset = self.parse_duration_token("offset")
            if isinstance(expr, VectorSelector):
                expr = VectorSelector(expr.name, expr.matchers, offset)
            else:
                expr = MatrixSelector(expr.name, expr.matchers, expr.range, offset)
        return expr

    def _parse_primary(self) -> Expr:
        token = self.peek()
        if token.kind == NUMBER:
            self.advance()
            return NumberLiteral(_parse_number(token))
        if token.kind == DURATION:
            self.fail(f"unexpected {_describe(token)}", token)
        if token.kind == STRING_TOKEN:
            self.advance()
            return StringLiteral(token.value)
        if token.kind == "(":
            self.advance()
            inner = self._parse_binary(0)
            self.expect(")", "parenthesized expression")
            return ParenExpr(inner)
        if token.kind == "{":
            return self._parse_selector(None)
        if token.kind == IDENT:
            lowered = token.value.lower()
            if lowered in ("inf", "nan"):
                self.advance()
                return NumberLiteral(float(lowered))
            following = self.peek(1)
            if lowered in AGGREGATORS and (
                following.kind == "("
                or (following.kind == IDENT and following.value.lower() in ("by", "without"))
            ):
                return self._parse_aggregate()
            if following.kind == "(":
                return self._parse_call()
            self.advance()
            return self._parse_selector(token.value)
        self.fail(f"unexpected {_describe(token)}", token)
        raise AssertionError("unreachable")

    def _parse_selector(self, name: Optional[str]) -> VectorSelector:
        matchers: list[LabelMatcher] = []
        if self.peek().kind == "{":
            brace = self.advance()
            while self.peek().kind != "}":
                matchers.append(self._parse_matcher())
                if self.peek().kind == ",":
                    self.advance()
                elif self.peek().kind != "}":
                    self.fail(f"unexpected {_describe(self.peek())} in label matching, expected \",\" or \"}}\"")
            self.advance()
        else:
            brace = None
        selector_name = name
        label_matchers: list[LabelMatcher] = []
        for matcher in matchers:
            if matcher.name == "__name__" and matcher.op == "=" and selector_name is None:
                selector_name = matcher.value
                continue
            label_matchers.append(matcher)
        if name is not None and any(m.name == "__name__" for m in label_matchers):
            self.fail("metric name must not be set twice", brace)
        if selector_name is None and all(matcher.matches("") for matcher in label_matchers):
            self.fail("vector selector must contain at least one non-empty matcher", brace)
        return VectorSelector(selector_name, tuple(label_matchers))

    def _parse_matcher(self) -> LabelMatcher:
        name = self.expect(IDENT, "label matching")
        if not is_valid_label_name(name.value):
            self.fail(f"invalid label name {name.value!r}", name)
        op = self.peek()
        if op.kind not in MATCH_OPERATORS:
            self.fail(f"unexpected {_describe(op)} in label matching, expected label matching operator", op)
        self.advance()
        value = self.expect(STRING_TOKEN, "label matching")
        if op.kind in ("=~", "!~"):
            try:
                re.compile(value.value)
            except re.error as exc:
                raise ExpressionParseError(f"invalid regular expression {value.value!r}: {exc}", value.pos) from exc
        return LabelMatcher(name.value, op.kind, value.value)

    def _parse_call(self) -> Call:
        name = self.advance()
        function = FUNCTIONS.get(name.value)
        if function is None:
            self.fail(f"unknown function with name {name.value!r}", name)
        self.expect("(", "function call")
        args: list[Expr] = []
        while self.peek().kind != ")":
            args.append(self._parse_binary(0))
            if self.peek().kind == ",":
                self.advance()
            elif self.peek().kind != ")":
                self.fail(f"unexpected {_describe(self.peek())} in function call, expected \",\" or \")\"")
        self.advance()
        if not function.check_arity(len(args)):
            self.fail(
                f"wrong number of arguments for function {function.name!r}: got {len(args)}",
                name,
            )
        for index, arg in enumerate(args):
            expected = function.arg_type(index)
            if arg.value_type != expected:
                self.fail(
                    f"expected type {expected} in call to function {function.name!r}, got {arg.value_type}",
                    name,
                )
        return Call(function.name, tuple(args), function.return_type)

    def _parse_aggregate(self) -> AggregateExpr:
        op_token = self.advance()
        op = op_token.value.lower()
        grouping: tuple[str, ...] = ()
        without = False
        modifier_seen = False
        if self.at_keyword("by", "without"):
            without = self.advance().value.lower() == "without"
            grouping = self.parse_label_list("grouping")
            modifier_seen = True
        self.expect("(", "aggregation")
        param: Optional[Expr] = None
        if op in _PARAMETERIZED_AGGREGATORS:
            param = self._parse_binary(0)
            expected = _PARAMETERIZED_AGGREGATORS[op]
            if param.value_type != expected:
                self.fail(f"expected type {expected} in aggregation parameter, got {param.value_type}", op_token)
            self.expect(",", "aggregation")
        inner = self._parse_binary(0)
        self.expect(")", "aggregation")
        if inner.value_type != VECTOR:
            self.fail(f"expected type {VECTOR} in aggregation expression, got {inner.value_type}", op_token)
        if not modifier_seen and self.at_keyword("by", "without"):
            without = self.advance().value.lower() == "without"
            grouping = self.parse_label_list("grouping")
        return AggregateExpr(op, inner, param, grouping, without)


def _parse_number(token: Token) -> float:
    if token.value[:2].lower() == "0x":
        try:
            return float(int(token.value, 16))
        except OverflowError:
            raise ExpressionParseError(f"number {token.value} is out of range", token.pos) from None
    return float(token.value)


def parse_expr(text: str) -> Expr:
    """Parse a complete expression; trailing tokens are an error."""

    parser = ExprParser(tokenize(text))
    expr = parser.parse_expression()
    parser.expect_end()
    return expr


class PromQLParser:
    """Expression parser used by the rule adapters."""

    def parse(self, text: str) -> Expr:
        return parse_expr(text)
