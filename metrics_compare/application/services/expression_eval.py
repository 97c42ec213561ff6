"""Restricted arithmetic expression evaluator for ratio metrics.

Expressions such as ``"checkouts / visitors"`` are parsed into a small tagged
AST (``Constant``, ``Variable``, ``UnaryOp``, ``BinaryOp``) and evaluated
against a scope of constituent values. Arithmetic follows IEEE-754 float
semantics, so ``x / 0`` yields ``inf`` and ``0 / 0`` yields ``nan`` instead of
raising. A ``None`` operand makes the whole result ``None``.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

import numpy as np

from metrics_compare.domain.errors import EvaluationError, InvalidExpressionError
from metrics_compare.domain.ports import ExpressionEvaluatorPort
from metrics_compare.domain.types import Scope


@dataclass(frozen=True)
class Constant:
    """Numeric literal."""

    value: float


@dataclass(frozen=True)
class Variable:
    """Reference to a scope name."""

    name: str


@dataclass(frozen=True)
class UnaryOp:
    """Unary plus/minus."""

    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    """Binary arithmetic operation."""

    op: str
    left: "Node"
    right: "Node"


Node = Constant | Variable | UnaryOp | BinaryOp


# ============================================================================
# Tokenizer
# ============================================================================

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/%^()])"
    r")"
)


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(expression: str) -> list[_Token]:
    """Split expression into number, name and operator tokens."""
    tokens: list[_Token] = []
    pos = 0
    stripped_end = len(expression.rstrip())
    while pos < stripped_end:
        match = _TOKEN_RE.match(expression, pos)
        if not match or match.end() == pos:
            raise InvalidExpressionError(
                f"Unexpected character {expression[pos:].strip()[:1]!r} at position {pos} in {expression!r}"
            )
        kind = match.lastgroup
        tokens.append(_Token(kind, match.group(kind), match.start(kind)))
        pos = match.end()
    return tokens


# ============================================================================
# Parser (recursive descent)
# ============================================================================


class _Parser:
    """Recursive descent parser.

    Grammar::

        expr    := term (("+" | "-") term)*
        term    := unary (("*" | "/" | "%") unary)*
        unary   := ("+" | "-") unary | power
        power   := primary ("^" unary)?
        primary := NUMBER | NAME | "(" expr ")"
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.index = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise InvalidExpressionError("Empty expression")
        node = self._expr()
        if self.index < len(self.tokens):
            token = self.tokens[self.index]
            raise InvalidExpressionError(
                f"Unexpected token {token.text!r} at position {token.pos} in {self.expression!r}"
            )
        return node

    def _peek(self) -> _Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _accept(self, *ops: str) -> str | None:
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in ops:
            self.index += 1
            return token.text
        return None

    def _expr(self) -> Node:
        node = self._term()
        op = self._accept("+", "-")
        while op is not None:
            node = BinaryOp(op, node, self._term())
            op = self._accept("+", "-")
        return node

    def _term(self) -> Node:
        node = self._unary()
        op = self._accept("*", "/", "%")
        while op is not None:
            node = BinaryOp(op, node, self._unary())
            op = self._accept("*", "/", "%")
        return node

    def _unary(self) -> Node:
        op = self._accept("+", "-")
        if op is not None:
            return UnaryOp(op, self._unary())
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        if self._accept("^") is not None:
            # Right associative: a ^ b ^ c == a ^ (b ^ c)
            return BinaryOp("^", base, self._unary())
        return base

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise InvalidExpressionError(f"Unexpected end of expression in {self.expression!r}")
        self.index += 1
        if token.kind == "number":
            return Constant(float(token.text))
        if token.kind == "name":
            return Variable(token.text)
        if token.text == "(":
            node = self._expr()
            if self._accept(")") is None:
                raise InvalidExpressionError(f"Missing closing parenthesis in {self.expression!r}")
            return node
        raise InvalidExpressionError(
            f"Unexpected token {token.text!r} at position {token.pos} in {self.expression!r}"
        )


@lru_cache(maxsize=256)
def parse_expression(expression: str) -> Node:
    """Parse expression string into an AST."""
    if not isinstance(expression, str):
        raise InvalidExpressionError(f"Expression must be a string, got {type(expression).__name__}")
    return _Parser(expression).parse()


# ============================================================================
# Evaluation
# ============================================================================

# Operations on float64 keep IEEE-754 results (inf/nan) instead of raising
_BINARY_OPS: dict[str, Callable[[np.float64, np.float64], np.float64]] = {
    "+": np.add,
    "-": np.subtract,
    "*": np.multiply,
    "/": np.divide,
    "%": np.mod,
    "^": np.power,
}

_UNARY_OPS: dict[str, Callable[[np.float64], np.float64]] = {
    "+": np.positive,
    "-": np.negative,
}


def _to_float(name: str, value: object) -> np.float64 | None:
    if value is None:
        return None
    if isinstance(value, (int, float, np.number)):
        return np.float64(value)
    raise EvaluationError(f"Non-numeric value for {name!r}: {value!r}")


def _eval_node(node: Node, scope: Scope) -> np.float64 | None:
    if isinstance(node, Constant):
        return np.float64(node.value)

    if isinstance(node, Variable):
        if node.name not in scope:
            raise EvaluationError(f"Undefined symbol {node.name!r}")
        return _to_float(node.name, scope[node.name])

    if isinstance(node, UnaryOp):
        operand = _eval_node(node.operand, scope)
        if operand is None:
            return None
        return _UNARY_OPS[node.op](operand)

    if isinstance(node, BinaryOp):
        left = _eval_node(node.left, scope)
        right = _eval_node(node.right, scope)
        if left is None or right is None:
            return None
        return _BINARY_OPS[node.op](left, right)

    raise InvalidExpressionError(f"Cannot evaluate node: {node!r}")


def evaluate_expression(expression: str, scope: Scope) -> float | None:
    """Evaluate arithmetic expression with the given name bindings."""
    tree = parse_expression(expression)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        result = _eval_node(tree, scope)
    return None if result is None else float(result)


class ExpressionEvaluator(ExpressionEvaluatorPort):
    """Default evaluator backed by the restricted interpreter."""

    def evaluate(self, expression: str, scope: Scope) -> float | None:
        """Evaluate expression with the given name bindings."""
        return evaluate_expression(expression, scope)
