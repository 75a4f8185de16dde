from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from .config import get_settings
from .errors import FormulaError
from .models import (
    CLAMP_COMMANDS,
    MATH_FUNCTIONS,
    DieTerm,
    MathTerm,
    Modifier,
    Number,
    NumericTerm,
    OperatorTerm,
    ParentheticalTerm,
    PoolTerm,
    StringTerm,
    Term,
)


logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"@([A-Za-z_]\w*(?:\.\w+)*)")
_NUMERIC_STRING_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d+)?|\.\d+)$")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")
_DIE_RE = re.compile(r"(?P<count>\d*)[dD](?P<faces>\d+)")
_MODIFIER_RE = re.compile(r"(min|max|kh|kl|k|dh|dl|d)(\d+)?")
_WORD_RE = re.compile(r"[A-Za-z_]\w*")
FLAVOR_RE = re.compile(r"\[[^\]]*\]")

_OPERATORS = "+-*/"
_CLOSERS = {"(": ")", "{": "}", "[": "]"}


def format_number(value: Number) -> str:
    """Render a number the parser can read back, never in exponent form."""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    return str(value)


# ---------------------------------------------------------------------------
# Placeholders
# ---------------------------------------------------------------------------


def _lookup(context: Mapping[str, Any], name: str) -> Any:
    if name in context:
        return context[name]
    current: Any = context
    for part in name.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _format_value(name: str, value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        s = value.strip()
        if _NUMERIC_STRING_RE.match(s):
            return s
        # Sub-formulas keep their own grouping once inlined.
        return f"({s})"
    raise FormulaError(
        f"[UNRESOLVED_PLACEHOLDER] Value for '@{name}' must be a number or formula string, "
        f"got {type(value).__name__}."
    )


def substitute_placeholders(
    formula: str, context: Mapping[str, Any] | None = None, *, missing: str | Number | None = None
) -> str:
    """Replace ``@name`` / ``@a.b.c`` references with values from ``context``."""

    data = context or {}

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        value = _lookup(data, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            if missing is None:
                raise FormulaError(
                    f"[UNRESOLVED_PLACEHOLDER] No value for '@{name}'. Example: context {{'{name}': 3}}.",
                    formula,
                )
            value = missing
        return _format_value(name, value)

    return _PLACEHOLDER_RE.sub(replace, formula)


# ---------------------------------------------------------------------------
# Bracket scanning
# ---------------------------------------------------------------------------


def _find_closing(text: str, start: int) -> int:
    stack: list[str] = []
    for i in range(start, len(text)):
        ch = text[i]
        if stack and stack[-1] == "]":
            # Flavor text is opaque.
            if ch == "]":
                stack.pop()
                if not stack:
                    return i
            continue
        if ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ")}]":
            if not stack or stack[-1] != ch:
                break
            stack.pop()
            if not stack:
                return i
    raise FormulaError(
        "[UNBALANCED_GROUP] Unbalanced parentheses, braces or brackets. Example: '(1d6 + 2) * 2'.",
        text[start:],
    )


def _split_top_level(text: str, sep: str = ",") -> list[str]:
    parts: list[str] = []
    stack: list[str] = []
    current: list[str] = []
    for ch in text:
        if stack and stack[-1] == "]":
            if ch == "]":
                stack.pop()
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ")}" and stack and stack[-1] == ch:
            stack.pop()
        elif ch == sep and not stack:
            parts.append("".join(current))
            current = []
            continue
        current.append(ch)
    parts.append("".join(current))

    if any(not p.strip() for p in parts):
        raise FormulaError("[UNPARSEABLE_INPUT] Empty entry in a group. Example: '{1d20, 10}kh'.", text)
    return parts


# ---------------------------------------------------------------------------
# Term parsing
# ---------------------------------------------------------------------------


def _read_modifiers(text: str, i: int, *, pool: bool = False) -> tuple[tuple[Modifier, ...], int]:
    end = i
    while end < len(text) and text[end].isascii() and text[end].isalnum():
        end += 1
    raw = text[i:end]
    if not raw:
        return (), end

    lowered = raw.lower()
    modifiers: list[Modifier] = []
    pos = 0
    while pos < len(lowered):
        m = _MODIFIER_RE.match(lowered, pos)
        if m is None:
            raise FormulaError(
                f"[INVALID_MODIFIER] Could not understand modifier '{raw[pos:]}'. "
                "Supported: k, kh, kl, d, dh, dl, min, max. Example: '2d20kh1'.",
                text,
            )
        amount = int(m.group(2)) if m.group(2) else None
        modifiers.append(Modifier(command=m.group(1), amount=amount))
        pos = m.end()

    if pool and any(mod.command in CLAMP_COMMANDS for mod in modifiers):
        raise FormulaError(
            "[INVALID_MODIFIER] Pools only support keep/drop modifiers. Example: '{1d20, 1d20}kh'.",
            text,
        )
    return tuple(modifiers), end


def _make_die(count_str: str, faces_str: str, text: str) -> DieTerm:
    count = int(count_str) if count_str else 1
    faces = int(faces_str)
    if count <= 0:
        raise FormulaError("[INVALID_DIE] Dice count must be a positive integer. Example: '2d6 + 3'.", text)
    if faces <= 0:
        raise FormulaError("[INVALID_DIE] Die faces must be a positive integer. Example: '1d8'.", text)
    return DieTerm(count=count, faces=faces)


def _attach_flavor(terms: list[Term], flavor: str) -> None:
    last = terms[-1] if terms else None
    if last is not None and not isinstance(last, (OperatorTerm, StringTerm)) and last.flavor is None:
        terms[-1] = dataclasses.replace(last, flavor=flavor)
        return
    terms.append(StringTerm(raw=f"[{flavor}]"))


def _parse_terms(text: str, depth: int, max_depth: int) -> tuple[Term, ...]:
    if depth > max_depth:
        raise FormulaError(
            f"[RECURSION_LIMIT] Formula nests deeper than {max_depth} levels.", text
        )

    terms: list[Term] = []
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch.isspace():
            i += 1
            continue

        if ch in _OPERATORS:
            terms.append(OperatorTerm(op=ch))  # type: ignore[arg-type]
            i += 1
            continue

        if ch in ")}]":
            raise FormulaError(
                "[UNBALANCED_GROUP] Unbalanced parentheses, braces or brackets. Example: '(1d6 + 2) * 2'.",
                text,
            )

        if ch == "[":
            end = _find_closing(text, i)
            _attach_flavor(terms, text[i + 1 : end].strip())
            i = end + 1
            continue

        if ch == "(":
            end = _find_closing(text, i)
            sub = _parse_terms(text[i + 1 : end], depth + 1, max_depth)
            terms.append(ParentheticalTerm(inner=format_formula(sub), terms=sub))
            i = end + 1
            continue

        if ch == "{":
            end = _find_closing(text, i)
            rolls = tuple(
                _parse_terms(part, depth + 1, max_depth) for part in _split_top_level(text[i + 1 : end])
            )
            modifiers, i = _read_modifiers(text, end + 1, pool=True)
            terms.append(
                PoolTerm(
                    sub_formulas=tuple(format_formula(r) for r in rolls),
                    rolls=rolls,
                    modifiers=modifiers,
                )
            )
            continue

        m = _DIE_RE.match(text, i)
        if m:
            die = _make_die(m.group("count"), m.group("faces"), text)
            modifiers, i = _read_modifiers(text, m.end())
            terms.append(dataclasses.replace(die, modifiers=modifiers))
            continue

        m = _NUMBER_RE.match(text, i)
        if m:
            literal = m.group(0)
            i = m.end()
            if i < n and text[i] in "dD":
                raise FormulaError(
                    f"[INVALID_DIE] Die '{literal}{text[i]}' needs an integer count and face number. Example: '2d6'.",
                    text,
                )
            value: Number = float(literal) if "." in literal else int(literal)
            terms.append(NumericTerm(value=value))
            continue

        m = _WORD_RE.match(text, i)
        if m:
            word = m.group(0)
            i = m.end()
            if i < n and text[i] == "(":
                fn = word.lower()
                if fn not in MATH_FUNCTIONS:
                    raise FormulaError(
                        f"[UNPARSEABLE_INPUT] Unknown function '{word}'. "
                        f"Supported: {', '.join(sorted(MATH_FUNCTIONS))}.",
                        text,
                    )
                end = _find_closing(text, i)
                arg_terms = tuple(
                    _parse_terms(part, depth + 1, max_depth) for part in _split_top_level(text[i + 1 : end])
                )
                terms.append(
                    MathTerm(fn=fn, args=tuple(format_formula(a) for a in arg_terms), arg_terms=arg_terms)
                )
                i = end + 1
                continue
            terms.append(StringTerm(raw=word))
            continue

        raise FormulaError(
            f"[UNPARSEABLE_INPUT] Could not understand '{ch}'. Example: '2d6 + 3' or '2d20kh + @mod'.",
            text,
        )

    _validate_sequence(terms, text)
    return tuple(terms)


def _validate_sequence(terms: list[Term], text: str) -> None:
    if not terms:
        raise FormulaError("[UNPARSEABLE_INPUT] Empty formula. Example: '1d20 + 5'.", text)

    previous_is_value = False
    for term in terms:
        if isinstance(term, OperatorTerm):
            if not previous_is_value and term.op in "*/":
                raise FormulaError(
                    f"[UNPARSEABLE_INPUT] Operator '{term.op}' is missing a left-hand value.", text
                )
            previous_is_value = False
        else:
            if previous_is_value:
                raise FormulaError(
                    "[UNPARSEABLE_INPUT] Two values without an operator between them. Example: '1d6 + 2'.",
                    text,
                )
            previous_is_value = True

    if not previous_is_value:
        raise FormulaError("[UNPARSEABLE_INPUT] Formula ends with an operator. Example: '1d6 + 2'.", text)


def parse(
    formula: str,
    context: Mapping[str, Any] | None = None,
    *,
    missing: str | Number | None = None,
    max_depth: int | None = None,
) -> tuple[Term, ...]:
    """Parse a formula into its term sequence.

    Placeholders are substituted from ``context`` first; an unbound one
    falls back to ``missing`` or raises FormulaError.
    """
    if formula is None or not str(formula).strip():
        raise FormulaError("[UNPARSEABLE_INPUT] Empty formula. Example: '1d20 + 5'.")

    limit = get_settings().max_depth if max_depth is None else max_depth
    text = substitute_placeholders(str(formula), context, missing=missing)
    terms = _parse_terms(text, 0, limit)
    logger.debug("Parsed %r into %d terms", formula, len(terms))
    return terms


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _with_flavor(base: str, flavor: str | None) -> str:
    return f"{base}[{flavor}]" if flavor else base


def format_term(term: Term) -> str:
    if isinstance(term, NumericTerm):
        return _with_flavor(format_number(term.value), term.flavor)
    if isinstance(term, DieTerm):
        mods = "".join(m.formula for m in term.modifiers)
        return _with_flavor(f"{term.count}d{term.faces}{mods}", term.flavor)
    if isinstance(term, OperatorTerm):
        return term.op
    if isinstance(term, ParentheticalTerm):
        return _with_flavor(f"({term.inner})", term.flavor)
    if isinstance(term, PoolTerm):
        mods = "".join(m.formula for m in term.modifiers)
        return _with_flavor("{" + ",".join(term.sub_formulas) + "}" + mods, term.flavor)
    if isinstance(term, MathTerm):
        return _with_flavor(f"{term.fn}({', '.join(term.args)})", term.flavor)
    return term.raw


def format_formula(terms: tuple[Term, ...] | list[Term]) -> str:
    """Render terms canonically: binary operators padded, unary signs attached."""

    chunks: list[str] = []
    previous_is_value = False
    for term in terms:
        if isinstance(term, OperatorTerm):
            chunks.append(f" {term.op} " if previous_is_value else term.op)
            previous_is_value = False
        else:
            chunks.append(format_term(term))
            previous_is_value = True
    return "".join(chunks).strip()


def strip_flavor(formula: str) -> str:
    return FLAVOR_RE.sub("", formula)
