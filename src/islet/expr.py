"""Restricted expression evaluator for template placeholders.

Expressions are a small JavaScript subset. Source text is tokenized,
parsed by recursive descent into an immutable expression tree, and that
tree is evaluated against an explicit name → value mapping. Nothing is
ever looked up on Python objects: member access only reads mapping keys,
sequence items, and the whitelisted methods below.

Grammar (lowest precedence first)::

    expression  → arrow | conditional
    arrow       → (IDENT | "(" params? ")") "=>" expression
    conditional → nullish ("?" expression ":" expression)?
    nullish     → or ("??" or)*
    or          → and ("||" and)*
    and         → equality ("&&" equality)*
    equality    → relational (("===" | "!==" | "==" | "!=") relational)*
    relational  → additive (("<" | "<=" | ">" | ">=") additive)*
    additive    → term (("+" | "-") term)*
    term        → unary (("*" | "/" | "%") unary)*
    unary       → ("!" | "-" | "+" | "typeof") unary | postfix
    postfix     → primary ("." IDENT | "?." IDENT | "[" expression "]" | "(" args ")")*
    primary     → literal | IDENT | "(" expression ")" | array | object | template
"""

from __future__ import annotations

import json
import math
import re
from collections import ChainMap
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, assert_never

from islet.errors import EvaluationError


class _Undefined:
    """The JavaScript ``undefined`` value (distinct from ``None``/null)."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED: Any = _Undefined()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class _Tok:
    kind: str  # number, string, template, name, op, eof
    value: Any
    pos: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<hex>0[xX][0-9a-fA-F]+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<op>\.\.\.|===|!==|\?\?|\?\.(?!\d)|=>|==|!=|<=|>=|&&|\|\||[-+*/%<>!?:.,()\[\]{}])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_ESCAPE_RE = re.compile(r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)", re.DOTALL)


def _unescape(body: str) -> str:
    def repl(match: re.Match[str]) -> str:
        seq = match.group(1)
        if seq.startswith("u{"):
            return chr(int(seq[2:-1], 16))
        if len(seq) > 1 and seq[0] in "ux":
            return chr(int(seq[1:], 16))
        if seq == "\n":
            return ""
        return _ESCAPES.get(seq, seq)

    return _ESCAPE_RE.sub(repl, body)


def _scan_template(source: str, pos: int) -> tuple[tuple[str, ...], int]:
    """Scan a backtick literal starting at pos.

    Returns alternating parts (literal, expression source, literal, ...)
    and the offset just past the closing backtick.
    """
    parts: list[str] = []
    buf: list[str] = []
    i = pos + 1
    while i < len(source):
        ch = source[i]
        if ch == "\\" and i + 1 < len(source):
            buf.append(source[i : i + 2])
            i += 2
            continue
        if ch == "`":
            parts.append(_unescape("".join(buf)))
            return tuple(parts), i + 1
        if ch == "$" and source.startswith("{", i + 1):
            parts.append(_unescape("".join(buf)))
            buf = []
            depth = 1
            j = i + 2
            while j < len(source) and depth:
                if source[j] == "{":
                    depth += 1
                elif source[j] == "}":
                    depth -= 1
                j += 1
            if depth:
                break
            parts.append(source[i + 2 : j - 1])
            i = j
            continue
        buf.append(ch)
        i += 1
    raise EvaluationError("unterminated template literal", source)


def _tokenize(source: str) -> list[_Tok]:
    tokens: list[_Tok] = []
    pos = 0
    while pos < len(source):
        if source[pos] == "`":
            parts, pos_after = _scan_template(source, pos)
            tokens.append(_Tok("template", parts, pos))
            pos = pos_after
            continue
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise EvaluationError(f"unexpected character {source[pos]!r}", source)
        kind = match.lastgroup
        text = match.group(0)
        if kind == "hex":
            tokens.append(_Tok("number", int(text, 16), pos))
        elif kind == "number":
            num = float(text)
            tokens.append(_Tok("number", _norm(num), pos))
        elif kind == "string":
            tokens.append(_Tok("string", _unescape(text[1:-1]), pos))
        elif kind in ("name", "op"):
            tokens.append(_Tok(kind, text, pos))
        pos = match.end()
    tokens.append(_Tok("eof", None, len(source)))
    return tokens


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Identifier:
    name: str


@dataclass(frozen=True, slots=True)
class TemplateLiteral:
    quasis: tuple[str, ...]
    expressions: tuple[ExprNode, ...]


@dataclass(frozen=True, slots=True)
class Spread:
    argument: ExprNode


@dataclass(frozen=True, slots=True)
class ArrayLiteral:
    items: tuple[ExprNode | Spread, ...]


@dataclass(frozen=True, slots=True)
class ObjectLiteral:
    # (key, value) pairs; a Spread entry has key None
    entries: tuple[tuple[ExprNode | None, ExprNode | Spread], ...]


@dataclass(frozen=True, slots=True)
class Member:
    obj: ExprNode
    prop: ExprNode
    optional: bool = False


@dataclass(frozen=True, slots=True)
class Call:
    callee: ExprNode
    args: tuple[ExprNode | Spread, ...]


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: ExprNode


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: ExprNode
    right: ExprNode


@dataclass(frozen=True, slots=True)
class Logical:
    op: str  # && || ??
    left: ExprNode
    right: ExprNode


@dataclass(frozen=True, slots=True)
class Conditional:
    test: ExprNode
    consequent: ExprNode
    alternate: ExprNode


@dataclass(frozen=True, slots=True)
class Arrow:
    params: tuple[str, ...]
    body: ExprNode


ExprNode = (
    Literal
    | Identifier
    | TemplateLiteral
    | ArrayLiteral
    | ObjectLiteral
    | Member
    | Call
    | Unary
    | Binary
    | Logical
    | Conditional
    | Arrow
)

_KEYWORD_LITERALS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": UNDEFINED,
    "NaN": math.nan,
    "Infinity": math.inf,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class ExpressionParser:
    """Recursive descent parser for a single expression."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = _tokenize(source)
        self._pos = 0

    def parse(self) -> ExprNode:
        if self._peek().kind == "eof":
            raise EvaluationError("empty expression", self._source)
        node = self._expression()
        tok = self._peek()
        if tok.kind != "eof":
            raise EvaluationError(f"unexpected {tok.value!r} at offset {tok.pos}", self._source)
        return node

    # -- navigation ---------------------------------------------------------

    def _peek(self, offset: int = 0) -> _Tok:
        idx = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[idx]

    def _advance(self) -> _Tok:
        tok = self._tokens[self._pos]
        if tok.kind != "eof":
            self._pos += 1
        return tok

    def _at_op(self, *ops: str) -> bool:
        tok = self._peek()
        return tok.kind == "op" and tok.value in ops

    def _match(self, *ops: str) -> str | None:
        if self._at_op(*ops):
            return self._advance().value
        return None

    def _expect(self, op: str) -> None:
        if self._match(op) is None:
            tok = self._peek()
            found = "end of expression" if tok.kind == "eof" else repr(tok.value)
            raise EvaluationError(f"expected {op!r} but found {found}", self._source)

    # -- grammar ------------------------------------------------------------

    def _expression(self) -> ExprNode:
        params = self._arrow_params()
        if params is not None:
            return Arrow(params, self._expression())
        return self._conditional()

    def _arrow_params(self) -> tuple[str, ...] | None:
        """Consume an arrow function head if one starts here."""
        tok = self._peek()
        if tok.kind == "name" and tok.value not in _KEYWORD_LITERALS:
            nxt = self._peek(1)
            if nxt.kind == "op" and nxt.value == "=>":
                self._pos += 2
                return (tok.value,)
            return None
        if not self._at_op("("):
            return None
        names: list[str] = []
        i = 1
        while True:
            t = self._peek(i)
            if t.kind == "op" and t.value == ")" and not names and i == 1:
                break
            if t.kind != "name":
                return None
            names.append(t.value)
            sep = self._peek(i + 1)
            if sep.kind == "op" and sep.value == ",":
                i += 2
                continue
            if sep.kind == "op" and sep.value == ")":
                i += 1
                break
            return None
        arrow = self._peek(i + 1)
        if arrow.kind == "op" and arrow.value == "=>":
            self._pos += i + 2
            return tuple(names)
        return None

    def _conditional(self) -> ExprNode:
        test = self._nullish()
        if self._match("?"):
            consequent = self._expression()
            self._expect(":")
            alternate = self._expression()
            return Conditional(test, consequent, alternate)
        return test

    def _nullish(self) -> ExprNode:
        left = self._or()
        while self._match("??"):
            left = Logical("??", left, self._or())
        return left

    def _or(self) -> ExprNode:
        left = self._and()
        while self._match("||"):
            left = Logical("||", left, self._and())
        return left

    def _and(self) -> ExprNode:
        left = self._equality()
        while self._match("&&"):
            left = Logical("&&", left, self._equality())
        return left

    def _equality(self) -> ExprNode:
        left = self._relational()
        while (op := self._match("===", "!==", "==", "!=")) is not None:
            left = Binary(op, left, self._relational())
        return left

    def _relational(self) -> ExprNode:
        left = self._additive()
        while (op := self._match("<=", ">=", "<", ">")) is not None:
            left = Binary(op, left, self._additive())
        return left

    def _additive(self) -> ExprNode:
        left = self._term()
        while (op := self._match("+", "-")) is not None:
            left = Binary(op, left, self._term())
        return left

    def _term(self) -> ExprNode:
        left = self._unary()
        while (op := self._match("*", "/", "%")) is not None:
            left = Binary(op, left, self._unary())
        return left

    def _unary(self) -> ExprNode:
        if (op := self._match("!", "-", "+")) is not None:
            return Unary(op, self._unary())
        tok = self._peek()
        if tok.kind == "name" and tok.value == "typeof":
            self._advance()
            return Unary("typeof", self._unary())
        return self._postfix()

    def _postfix(self) -> ExprNode:
        node = self._primary()
        while True:
            if self._match("."):
                node = Member(node, Literal(self._property_name()))
            elif self._match("?."):
                if self._match("["):
                    prop = self._expression()
                    self._expect("]")
                    node = Member(node, prop, optional=True)
                elif self._at_op("("):
                    # f?.() behaves like f() once f is known to exist
                    node = Call(node, self._arguments())
                else:
                    node = Member(node, Literal(self._property_name()), optional=True)
            elif self._match("["):
                prop = self._expression()
                self._expect("]")
                node = Member(node, prop)
            elif self._at_op("("):
                node = Call(node, self._arguments())
            else:
                return node

    def _property_name(self) -> str:
        tok = self._advance()
        if tok.kind != "name":
            raise EvaluationError("expected a property name", self._source)
        return tok.value

    def _arguments(self) -> tuple[ExprNode | Spread, ...]:
        self._expect("(")
        args: list[ExprNode | Spread] = []
        while not self._at_op(")"):
            args.append(self._element())
            if not self._match(","):
                break
        self._expect(")")
        return tuple(args)

    def _element(self) -> ExprNode | Spread:
        if self._match("..."):
            return Spread(self._expression())
        return self._expression()

    def _primary(self) -> ExprNode:
        tok = self._advance()
        if tok.kind in ("number", "string"):
            return Literal(tok.value)
        if tok.kind == "template":
            quasis = tok.value[0::2]
            exprs = tuple(ExpressionParser(src).parse() for src in tok.value[1::2])
            return TemplateLiteral(quasis, exprs)
        if tok.kind == "name":
            if tok.value in _KEYWORD_LITERALS:
                return Literal(_KEYWORD_LITERALS[tok.value])
            return Identifier(tok.value)
        if tok.kind == "op":
            if tok.value == "(":
                node = self._expression()
                self._expect(")")
                return node
            if tok.value == "[":
                return self._array()
            if tok.value == "{":
                return self._object()
        found = "end of expression" if tok.kind == "eof" else repr(tok.value)
        raise EvaluationError(f"unexpected {found}", self._source)

    def _array(self) -> ArrayLiteral:
        items: list[ExprNode | Spread] = []
        while not self._at_op("]"):
            items.append(self._element())
            if not self._match(","):
                break
        self._expect("]")
        return ArrayLiteral(tuple(items))

    def _object(self) -> ObjectLiteral:
        entries: list[tuple[ExprNode | None, ExprNode | Spread]] = []
        while not self._at_op("}"):
            if self._match("..."):
                entries.append((None, Spread(self._expression())))
            elif self._match("["):
                key = self._expression()
                self._expect("]")
                self._expect(":")
                entries.append((key, self._expression()))
            else:
                tok = self._advance()
                if tok.kind not in ("name", "string", "number"):
                    raise EvaluationError("expected a property key", self._source)
                key_name = to_string(tok.value)
                if tok.kind == "name" and not self._at_op(":"):
                    # Shorthand {name}
                    entries.append((Literal(key_name), Identifier(key_name)))
                else:
                    self._expect(":")
                    entries.append((Literal(key_name), self._expression()))
            if not self._match(","):
                break
        self._expect("}")
        return ObjectLiteral(tuple(entries))


@lru_cache(maxsize=512)
def parse_expression(source: str) -> ExprNode:
    """Parse expression source into a tree (cached; trees are immutable)."""
    return ExpressionParser(source).parse()


# ---------------------------------------------------------------------------
# Value semantics
# ---------------------------------------------------------------------------


def _norm(value: float) -> int | float:
    """Collapse integral floats to int so indexing and display stay exact."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: int | float) -> bool:
    """True unless value is NaN, infinite, or an int beyond the float range."""
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def type_of(value: Any) -> str:
    """The ``typeof`` name of a value."""
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if _is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (Function, _Closure)):
        return "function"
    return "object"


def truthy(value: Any) -> bool:
    """JavaScript truthiness: empty arrays and objects are truthy."""
    if value is None or value is UNDEFINED or value is False:
        return False
    if _is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _format_number(value: int | float) -> str:
    if isinstance(value, int):
        try:
            return str(value)
        except ValueError as exc:
            raise EvaluationError(f"number too large to display: {exc}") from exc
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    return re.sub(r"e([+-])0*(\d)", r"e\1\2", text)


def to_string(value: Any) -> str:
    """Convert a value the way ``String(value)`` does."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return _format_number(value)
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None or v is UNDEFINED else to_string(v) for v in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    if isinstance(value, (Function, _Closure)):
        return "function"
    raise EvaluationError(f"cannot convert {type(value).__name__} to a string")


def to_number(value: Any) -> int | float:
    """Convert a value the way ``Number(value)`` does."""
    if isinstance(value, bool):
        return int(value)
    if _is_number(value):
        return value
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            if text[:2].lower() == "0x":
                return int(text, 16)
            return _norm(float(text))
        except ValueError:
            return math.nan
    if isinstance(value, (list, tuple)):
        return to_number(to_string(value))
    return math.nan


def render_value(value: Any) -> str:
    """Text to substitute for a placeholder's value.

    null, undefined and booleans render as nothing; arrays concatenate
    their rendered items without separators.
    """
    if value is None or value is UNDEFINED or isinstance(value, bool):
        return ""
    if isinstance(value, (list, tuple)):
        return "".join(render_value(v) for v in value)
    return to_string(value)


def to_json(value: Any) -> Any:
    """Plain JSON-compatible data for a value (undefined members dropped)."""
    if value is UNDEFINED or isinstance(value, (Function, _Closure)):
        return None
    if _is_number(value) and not _is_finite(value):
        return None
    if isinstance(value, Mapping):
        return {
            str(k): to_json(v)
            for k, v in value.items()
            if v is not UNDEFINED and not isinstance(v, (Function, _Closure))
        }
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if value is None or isinstance(value, (str, int, float)):
        return value
    return None


def _category(value: Any) -> str:
    if value is None:
        return "null"
    return type_of(value)


def strict_equals(left: Any, right: Any) -> bool:
    cat = _category(left)
    if cat != _category(right):
        return False
    if cat in ("undefined", "null"):
        return True
    if cat in ("number", "string", "boolean"):
        return left == right
    return left is right


def loose_equals(left: Any, right: Any) -> bool:
    lcat, rcat = _category(left), _category(right)
    if lcat == rcat:
        return strict_equals(left, right)
    if {lcat, rcat} <= {"null", "undefined"}:
        return True
    if "null" in (lcat, rcat) or "undefined" in (lcat, rcat):
        return False
    if lcat in ("number", "string", "boolean") and rcat in ("number", "string", "boolean"):
        return to_number(left) == to_number(right)
    if lcat == "object" and rcat != "object":
        return loose_equals(to_string(left), right)
    if rcat == "object" and lcat != "object":
        return loose_equals(left, to_string(right))
    return False


def _compare(op: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a: Any = left
        b: Any = right
    else:
        a, b = to_number(left), to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def _divide(a: int | float, b: int | float) -> int | float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1, b)
    return _norm(a / b)


def _remainder(a: int | float, b: int | float) -> int | float:
    if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
        return math.nan
    if math.isinf(b):
        return a
    return _norm(math.fmod(a, b))


def _arith(op: str, left: Any, right: Any) -> Any:
    if op == "+":
        lp = to_string(left) if isinstance(left, (list, tuple, Mapping)) else left
        rp = to_string(right) if isinstance(right, (list, tuple, Mapping)) else right
        if isinstance(lp, str) or isinstance(rp, str):
            return to_string(lp) + to_string(rp)
        return _norm(to_number(lp) + to_number(rp))
    a, b = to_number(left), to_number(right)
    if op == "-":
        return _norm(a - b)
    if op == "*":
        return _norm(a * b)
    if op == "/":
        return _divide(a, b)
    return _remainder(a, b)


# ---------------------------------------------------------------------------
# Callables
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Function:
    """A host-provided function callable from expressions."""

    name: str
    fn: Callable[..., Any]


@dataclass(frozen=True, slots=True)
class _Closure:
    arrow: Arrow
    names: Mapping[str, Any]


def call_function(func: Any, args: Sequence[Any]) -> Any:
    """Invoke a callable expression value with positional arguments."""
    if isinstance(func, Function):
        return func.fn(*args)
    if isinstance(func, _Closure):
        bound = {
            name: args[i] if i < len(args) else UNDEFINED
            for i, name in enumerate(func.arrow.params)
        }
        return Evaluator(ChainMap(bound, func.names)).evaluate(func.arrow.body)
    raise EvaluationError(f"{type_of(func)} is not a function")


def _index(value: Any) -> int | None:
    if _is_number(value) and float(value).is_integer() and value >= 0:
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _slice_bounds(length: int, start: Any = UNDEFINED, end: Any = UNDEFINED) -> tuple[int, int]:
    def clamp(v: Any, default: int) -> int:
        if v is UNDEFINED:
            return default
        n = int(to_number(v)) if not math.isnan(to_number(v)) else 0
        if n < 0:
            n = max(length + n, 0)
        return min(n, length)

    return clamp(start, 0), clamp(end, length)


def _index_of(seq: Sequence[Any], target: Any, start: Any = 0) -> int:
    begin, _ = _slice_bounds(len(seq), start)
    for i in range(begin, len(seq)):
        if strict_equals(seq[i], target):
            return i
    return -1


def _js_round(x: Any) -> int | float:
    n = to_number(x)
    if math.isnan(n) or math.isinf(n):
        return n
    return math.floor(n + 0.5)


def _to_fixed(n: Any, digits: Any = 0) -> str:
    return f"{to_number(n):.{int(to_number(digits))}f}"


def _substring(s: str, start: Any = 0, end: Any = UNDEFINED) -> str:
    bounds = [0 if v is UNDEFINED else max(to_number(v), 0) for v in (start, end)]
    lo, hi = _slice_bounds(len(s), bounds[0], UNDEFINED if end is UNDEFINED else bounds[1])
    return s[min(lo, hi) : max(lo, hi)]


def _split(s: str, sep: Any = UNDEFINED, limit: Any = UNDEFINED) -> list[str]:
    if sep is UNDEFINED:
        parts = [s]
    elif sep == "":
        parts = list(s)
    else:
        parts = s.split(to_string(sep))
    if limit is not UNDEFINED:
        parts = parts[: int(to_number(limit))]
    return parts


def _pad(s: str, width: Any, fill: Any, *, start: bool) -> str:
    target = int(to_number(width))
    filler = " " if fill is UNDEFINED else to_string(fill)
    if target <= len(s) or not filler:
        return s
    needed = target - len(s)
    pad = (filler * (needed // len(filler) + 1))[:needed]
    return pad + s if start else s + pad


def _flat(seq: Sequence[Any]) -> list[Any]:
    result: list[Any] = []
    for item in seq:
        if isinstance(item, (list, tuple)):
            result.extend(item)
        else:
            result.append(item)
    return result


def _find(seq: Sequence[Any], fn: Any) -> tuple[int, Any]:
    for i, item in enumerate(seq):
        if truthy(call_function(fn, [item, i])):
            return i, item
    return -1, UNDEFINED


def _reduce(seq: Sequence[Any], fn: Any, *initial: Any) -> Any:
    items = list(seq)
    if initial:
        acc = initial[0]
    elif items:
        acc = items.pop(0)
    else:
        raise EvaluationError("reduce of empty array with no initial value")
    offset = len(seq) - len(items)
    for i, item in enumerate(items):
        acc = call_function(fn, [acc, item, i + offset])
    return acc


_STRING_METHODS: dict[str, Callable[..., Any]] = {
    "toUpperCase": lambda s: s.upper(),
    "toLowerCase": lambda s: s.lower(),
    "trim": lambda s: s.strip(),
    "trimStart": lambda s: s.lstrip(),
    "trimEnd": lambda s: s.rstrip(),
    "includes": lambda s, sub, *_: to_string(sub) in s,
    "startsWith": lambda s, sub, *_: s.startswith(to_string(sub)),
    "endsWith": lambda s, sub, *_: s.endswith(to_string(sub)),
    "indexOf": lambda s, sub, *_: s.find(to_string(sub)),
    "lastIndexOf": lambda s, sub, *_: s.rfind(to_string(sub)),
    "slice": lambda s, *a: s[slice(*_slice_bounds(len(s), *a))],
    "substring": _substring,
    "split": _split,
    "replace": lambda s, old, new: s.replace(to_string(old), to_string(new), 1),
    "replaceAll": lambda s, old, new: s.replace(to_string(old), to_string(new)),
    "repeat": lambda s, n: s * int(to_number(n)),
    "padStart": lambda s, width, fill=UNDEFINED: _pad(s, width, fill, start=True),
    "padEnd": lambda s, width, fill=UNDEFINED: _pad(s, width, fill, start=False),
    "charAt": lambda s, i=0: s[int(to_number(i))] if 0 <= int(to_number(i)) < len(s) else "",
    "at": lambda s, i: s[int(to_number(i))] if -len(s) <= int(to_number(i)) < len(s) else UNDEFINED,
    "concat": lambda s, *a: s + "".join(to_string(x) for x in a),
    "toString": lambda s: s,
}

_ARRAY_METHODS: dict[str, Callable[..., Any]] = {
    "join": lambda a, sep=",": ("," if sep is UNDEFINED else to_string(sep)).join(
        "" if v is None or v is UNDEFINED else to_string(v) for v in a
    ),
    "includes": lambda a, x, *_: any(strict_equals(v, x) or (v != v and x != x) for v in a),
    "indexOf": _index_of,
    "slice": lambda a, *b: list(a[slice(*_slice_bounds(len(a), *b))]),
    "concat": lambda a, *rest: list(a) + _flat(rest),
    "at": lambda a, i: a[int(to_number(i))] if -len(a) <= int(to_number(i)) < len(a) else UNDEFINED,
    "flat": lambda a: _flat(a),
    "map": lambda a, fn: [call_function(fn, [v, i]) for i, v in enumerate(a)],
    "filter": lambda a, fn: [v for i, v in enumerate(a) if truthy(call_function(fn, [v, i]))],
    "find": lambda a, fn: _find(a, fn)[1],
    "findIndex": lambda a, fn: _find(a, fn)[0],
    "some": lambda a, fn: any(truthy(call_function(fn, [v, i])) for i, v in enumerate(a)),
    "every": lambda a, fn: all(truthy(call_function(fn, [v, i])) for i, v in enumerate(a)),
    "reduce": _reduce,
    "toReversed": lambda a: list(reversed(a)),
    "toString": lambda a: to_string(a),
}

_NUMBER_METHODS: dict[str, Callable[..., Any]] = {
    "toFixed": _to_fixed,
    "toString": lambda n: to_string(n),
}


@dataclass(frozen=True, slots=True)
class Namespace:
    """A read-only global object such as ``Math`` or ``JSON``."""

    name: str
    members: Mapping[str, Any]


def _fn(name: str, fn: Callable[..., Any]) -> Function:
    return Function(name, fn)


def _json_stringify(value: Any, _replacer: Any = None, indent: Any = UNDEFINED) -> Any:
    if value is UNDEFINED:
        return UNDEFINED
    if indent is UNDEFINED or indent is None:
        return json.dumps(to_json(value), separators=(",", ":"), ensure_ascii=False)
    return json.dumps(to_json(value), indent=int(to_number(indent)), ensure_ascii=False)


def _json_parse(text: Any) -> Any:
    try:
        return json.loads(to_string(text))
    except json.JSONDecodeError as exc:
        raise EvaluationError(f"invalid JSON: {exc.msg}") from exc


def _sqrt(x: Any) -> int | float:
    n = to_number(x)
    if n < 0 or math.isnan(n):
        return math.nan
    return _norm(math.sqrt(n))


def _math_extreme(pick: Callable[..., Any], empty: float) -> Callable[..., Any]:
    def inner(*args: Any) -> Any:
        nums = [to_number(a) for a in args]
        if not nums:
            return empty
        if any(math.isnan(n) for n in nums):
            return math.nan
        return pick(nums)

    return inner


GLOBALS: dict[str, Any] = {
    "Math": Namespace(
        "Math",
        {
            "PI": math.pi,
            "E": math.e,
            "floor": _fn("floor", lambda x: _norm(math.floor(to_number(x)))),
            "ceil": _fn("ceil", lambda x: _norm(math.ceil(to_number(x)))),
            "round": _fn("round", _js_round),
            "trunc": _fn("trunc", lambda x: _norm(math.trunc(to_number(x)))),
            "abs": _fn("abs", lambda x: abs(to_number(x))),
            "sign": _fn("sign", lambda x: (to_number(x) > 0) - (to_number(x) < 0)),
            "sqrt": _fn("sqrt", _sqrt),
            "pow": _fn("pow", lambda x, y: _norm(math.pow(to_number(x), to_number(y)))),
            "min": _fn("min", _math_extreme(min, math.inf)),
            "max": _fn("max", _math_extreme(max, -math.inf)),
        },
    ),
    "JSON": Namespace(
        "JSON",
        {
            "stringify": _fn("stringify", _json_stringify),
            "parse": _fn("parse", _json_parse),
        },
    ),
    "String": _fn("String", lambda v="": to_string(v)),
    "Number": _fn("Number", lambda v=0: to_number(v)),
    "Boolean": _fn("Boolean", lambda v=UNDEFINED: truthy(v)),
    "Array": Namespace(
        "Array",
        {"isArray": _fn("isArray", lambda v: isinstance(v, (list, tuple)))},
    ),
    "Object": Namespace(
        "Object",
        {
            "keys": _fn("keys", lambda o: list(o.keys()) if isinstance(o, Mapping) else []),
            "values": _fn("values", lambda o: list(o.values()) if isinstance(o, Mapping) else []),
            "entries": _fn(
                "entries",
                lambda o: [[k, v] for k, v in o.items()] if isinstance(o, Mapping) else [],
            ),
        },
    ),
}


def get_member(obj: Any, key: Any) -> Any:
    """Read ``obj[key]`` without touching Python attributes."""
    if obj is None or obj is UNDEFINED:
        raise EvaluationError(f"cannot read property {to_string(key)!r} of {to_string(obj)}")

    if isinstance(obj, Namespace):
        return obj.members.get(to_string(key), UNDEFINED)

    if isinstance(obj, Mapping):
        return obj.get(to_string(key), UNDEFINED)

    if isinstance(obj, (str, list, tuple)):
        idx = _index(key)
        if idx is not None:
            return obj[idx] if idx < len(obj) else UNDEFINED
        name = to_string(key)
        if name == "length":
            return len(obj)
        table = _STRING_METHODS if isinstance(obj, str) else _ARRAY_METHODS
        method = table.get(name)
        if method is not None:
            return Function(name, lambda *args, _m=method, _o=obj: _m(_o, *args))
        return UNDEFINED

    if _is_number(obj) or isinstance(obj, bool):
        method = _NUMBER_METHODS.get(to_string(key))
        if method is not None:
            return Function(to_string(key), lambda *args, _m=method, _o=obj: _m(_o, *args))
        return UNDEFINED

    return UNDEFINED


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class Evaluator:
    """Evaluate expression trees against an explicit name → value mapping."""

    def __init__(self, names: Mapping[str, Any] | None = None) -> None:
        self._names: Mapping[str, Any] = names if names is not None else {}

    def evaluate(self, node: ExprNode) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Identifier):
            return self._lookup(node.name)
        if isinstance(node, TemplateLiteral):
            out = [node.quasis[0]]
            for expr, quasi in zip(node.expressions, node.quasis[1:]):
                out.append(to_string(self.evaluate(expr)))
                out.append(quasi)
            return "".join(out)
        if isinstance(node, ArrayLiteral):
            return self._spread_items(node.items)
        if isinstance(node, ObjectLiteral):
            return self._object(node)
        if isinstance(node, Member):
            obj = self.evaluate(node.obj)
            if node.optional and (obj is None or obj is UNDEFINED):
                return UNDEFINED
            return get_member(obj, self.evaluate(node.prop))
        if isinstance(node, Call):
            return self._call(node)
        if isinstance(node, Unary):
            return self._unary(node)
        if isinstance(node, Binary):
            return self._binary(node)
        if isinstance(node, Logical):
            left = self.evaluate(node.left)
            if node.op == "&&":
                return self.evaluate(node.right) if truthy(left) else left
            if node.op == "||":
                return left if truthy(left) else self.evaluate(node.right)
            return self.evaluate(node.right) if left is None or left is UNDEFINED else left
        if isinstance(node, Conditional):
            branch = node.consequent if truthy(self.evaluate(node.test)) else node.alternate
            return self.evaluate(branch)
        if isinstance(node, Arrow):
            return _Closure(node, self._names)
        assert_never(node)

    def _lookup(self, name: str) -> Any:
        if name in self._names:
            return self._names[name]
        if name in GLOBALS:
            return GLOBALS[name]
        raise EvaluationError(f"{name} is not defined")

    def _spread_items(self, items: tuple[ExprNode | Spread, ...]) -> list[Any]:
        result: list[Any] = []
        for item in items:
            if isinstance(item, Spread):
                value = self.evaluate(item.argument)
                if isinstance(value, str):
                    result.extend(value)
                elif isinstance(value, (list, tuple)):
                    result.extend(value)
                else:
                    raise EvaluationError(f"{type_of(value)} is not iterable")
            else:
                result.append(self.evaluate(item))
        return result

    def _object(self, node: ObjectLiteral) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in node.entries:
            if isinstance(value, Spread):
                source = self.evaluate(value.argument)
                if isinstance(source, Mapping):
                    result.update(source)
                elif isinstance(source, (list, tuple)):
                    result.update({str(i): v for i, v in enumerate(source)})
                continue
            assert key is not None
            result[to_string(self.evaluate(key))] = self.evaluate(value)
        return result

    def _call(self, node: Call) -> Any:
        callee = node.callee
        if isinstance(callee, Member):
            obj = self.evaluate(callee.obj)
            if callee.optional and (obj is None or obj is UNDEFINED):
                return UNDEFINED
            func = get_member(obj, self.evaluate(callee.prop))
        else:
            func = self.evaluate(callee)
        args = self._spread_items(node.args)
        try:
            return call_function(func, args)
        except EvaluationError:
            raise
        except (TypeError, ValueError, IndexError, KeyError, OverflowError, RecursionError) as exc:
            raise EvaluationError(f"call failed: {exc}") from exc

    def _unary(self, node: Unary) -> Any:
        if node.op == "typeof":
            operand = node.operand
            if isinstance(operand, Identifier) and operand.name not in self._names:
                if operand.name not in GLOBALS:
                    return "undefined"
            return type_of(self.evaluate(node.operand))
        value = self.evaluate(node.operand)
        if node.op == "!":
            return not truthy(value)
        if node.op == "-":
            return _norm(-to_number(value))
        return to_number(value)

    def _binary(self, node: Binary) -> Any:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)
        op = node.op
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op in ("<", "<=", ">", ">="):
            return _compare(op, left, right)
        return _arith(op, left, right)


def evaluate(source: str, names: Mapping[str, Any] | None = None) -> Any:
    """Parse and evaluate expression source against names.

    Raises EvaluationError on any syntax or runtime failure.
    """
    try:
        node = parse_expression(source)
    except RecursionError as exc:
        raise EvaluationError("expression nested too deeply", source) from exc
    try:
        return Evaluator(names).evaluate(node)
    except EvaluationError as exc:
        if not exc.expression:
            raise EvaluationError(exc.message, source) from exc
        raise
    except RecursionError as exc:
        raise EvaluationError("expression nested too deeply", source) from exc
    except (ArithmeticError, ValueError) as exc:
        raise EvaluationError(f"arithmetic failed: {exc}", source) from exc
