from __future__ import annotations

import re

from .errors import FormulaError
from .models import Number


_TOKEN_RE = re.compile(r"\s*(?:(\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)|(.))", re.DOTALL)

_UNSUPPORTED = "[UNSUPPORTED_OPERATION] Only numbers, + - * / and parentheses are allowed in constant arithmetic."


def normalize_number(value: Number) -> Number:
    """Collapse integral floats (``4.0``) to ints so totals render cleanly."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class _Group:
    """Running sum of one parenthesized level.

    ``term`` holds the current product so ``*`` and ``/`` bind tighter than
    ``+`` and ``-`` without building a tree.
    """

    def __init__(self, expression: str):
        self.expression = expression
        self.total: Number = 0
        self.term: Number | None = None
        self.pending = "+"
        self.sign = 1
        self.expecting_value = True

    def push_operator(self, op: str) -> None:
        if self.expecting_value:
            # Unary signs
            if op == "-":
                self.sign = -self.sign
            elif op != "+":
                raise FormulaError(_UNSUPPORTED, self.expression)
            return
        self.pending = op
        self.expecting_value = True

    def push_value(self, value: Number) -> None:
        if not self.expecting_value:
            raise FormulaError("[UNPARSEABLE_INPUT] Could not evaluate constant expression.", self.expression)
        value = self.sign * value
        self.sign = 1
        self.expecting_value = False

        if self.pending in ("+", "-"):
            if self.term is not None:
                self.total += self.term
            self.term = value if self.pending == "+" else -value
        elif self.pending == "*":
            self.term = self.term * value
        else:
            if value == 0:
                raise FormulaError("[DIVISION_BY_ZERO] Division by zero in formula.", self.expression)
            self.term = self.term / value

    def result(self) -> Number:
        if self.expecting_value or self.term is None:
            raise FormulaError("[UNPARSEABLE_INPUT] Could not evaluate constant expression.", self.expression)
        return self.total + self.term


def safe_eval(expression: str) -> Number:
    """Evaluate constant arithmetic: numbers, ``+ - * /`` and parentheses only.

    Works left to right with an explicit stack, so long sums and deep
    nesting never hit the interpreter's recursion limit.
    """
    stack = [_Group(expression)]

    for match in _TOKEN_RE.finditer(expression.strip()):
        number, symbol = match.groups()
        if number is not None:
            value = float(number) if any(c in number for c in ".eE") else int(number)
            stack[-1].push_value(value)
        elif symbol in ("+", "-", "*", "/"):
            stack[-1].push_operator(symbol)
        elif symbol == "(":
            if not stack[-1].expecting_value:
                raise FormulaError("[UNPARSEABLE_INPUT] Could not evaluate constant expression.", expression)
            stack.append(_Group(expression))
        elif symbol == ")":
            if len(stack) == 1:
                raise FormulaError("[UNPARSEABLE_INPUT] Could not evaluate constant expression.", expression)
            value = stack.pop().result()
            stack[-1].push_value(value)
        else:
            raise FormulaError(_UNSUPPORTED, expression)

    if len(stack) != 1:
        raise FormulaError("[UNPARSEABLE_INPUT] Could not evaluate constant expression.", expression)
    return normalize_number(stack[0].result())
