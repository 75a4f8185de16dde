"""Algebraic simplification of roll formulas.

Dice and pools stay literal so the simplified formula rolls the same
distribution; every constant collapses into at most one trailing number.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .config import get_settings
from .errors import FormulaError
from .evaluator import ensure_resolved, resolve_constant
from .models import Number, NumericTerm, OperatorTerm, ParentheticalTerm, Term
from .parser import format_formula, format_number, parse, strip_flavor
from .safe_eval import safe_eval
from .terms import TermPair, flatten_groups, group_by_type, is_deterministic, is_formula_deterministic


logger = logging.getLogger(__name__)

_FLIP = {"+": "-", "-": "+"}


def collapse_operators(terms: tuple[Term, ...] | list[Term]) -> tuple[Term, ...]:
    """Merge runs of operators: ``+ -`` -> ``-``, ``- -`` -> ``+``, ``* - -`` -> ``*``."""

    out: list[Term] = []
    run: list[str] = []
    for term in terms:
        if isinstance(term, OperatorTerm):
            run.append(term.op)
            continue
        out.extend(_collapse_run(run))
        run = []
        out.append(term)
    out.extend(_collapse_run(run))
    return tuple(out)


def _collapse_run(ops: list[str]) -> list[OperatorTerm]:
    if not ops:
        return []
    negative = ops.count("-") % 2 == 1
    if ops[0] in "*/":
        # The sign run after "*" or "/" becomes a unary minus or disappears.
        return [OperatorTerm(op=ops[0])] + ([OperatorTerm(op="-")] if negative else [])  # type: ignore[arg-type]
    return [OperatorTerm(op="-" if negative else "+")]


def _is_additive(terms: tuple[Term, ...]) -> bool:
    return not any(isinstance(t, OperatorTerm) and t.op in "*/" for t in terms)


def expand_parentheticals(terms: tuple[Term, ...] | list[Term]) -> tuple[Term, ...]:
    """Replace deterministic groups by their value and inline additive dice groups."""

    out: list[Term] = []
    for term in terms:
        if not isinstance(term, ParentheticalTerm):
            out.append(term)
            continue

        if is_deterministic(term):
            out.append(NumericTerm(value=resolve_constant(term.terms), flavor=term.flavor))
            continue

        if term.flavor or not _is_additive(term.terms):
            out.append(term)
            continue

        inner = list(collapse_operators(expand_parentheticals(collapse_operators(term.terms))))
        if not isinstance(inner[0], OperatorTerm):
            inner.insert(0, OperatorTerm(op="+"))

        prior = out[-1] if out else None
        if isinstance(prior, OperatorTerm):
            out.pop()
            if prior.op == "-":
                inner = [OperatorTerm(op=_FLIP[t.op]) if isinstance(t, OperatorTerm) else t for t in inner]
        out.extend(inner)
    return tuple(out)


def fold_numeric(pairs: list[TermPair]) -> list[TermPair]:
    """Fold unflavored constants into one signed number; a zero fold disappears."""

    kept: list[TermPair] = []
    chunks: list[str] = []
    for op, term in pairs:
        if getattr(term, "flavor", None):
            if isinstance(term, NumericTerm) and term.value < 0:
                op, term = OperatorTerm(op=_FLIP[op.op]), NumericTerm(value=-term.value, flavor=term.flavor)
            kept.append((op, term))
            continue
        value: Number = term.value if isinstance(term, NumericTerm) else resolve_constant((term,))
        chunks.append(f"{op.op} ({format_number(value)})")

    if not chunks:
        return kept

    result = safe_eval(" ".join(chunks))
    if result == 0:
        return kept
    operator = OperatorTerm(op="+" if result > 0 else "-")
    return kept + [(operator, NumericTerm(value=abs(result)))]


def simplify(
    formula: str,
    context: Mapping[str, Any] | None = None,
    *,
    preserve_flavor: bool | None = None,
    missing: str | Number | None = None,
) -> str:
    """Return the shortest equivalent formula.

    Raises FormulaError when the formula does not parse.
    """
    if preserve_flavor is None:
        preserve_flavor = get_settings().preserve_flavor

    try:
        terms = parse(formula, context, missing=missing)
        ensure_resolved(terms, formula)
    except FormulaError as e:
        logger.warning("Unable to simplify formula %r: %s", formula, e)
        raise

    terms = collapse_operators(terms)

    if not preserve_flavor:
        terms = parse(strip_flavor(format_formula(terms)))

    if not _is_additive(terms):
        if is_formula_deterministic(terms) and not preserve_flavor:
            return format_number(resolve_constant(terms))
        return format_formula(terms)

    terms = collapse_operators(expand_parentheticals(terms))

    groups = group_by_type(terms)
    groups["numeric"] = fold_numeric(groups["numeric"])

    simplified = flatten_groups(groups)
    if simplified and simplified[0] == OperatorTerm(op="+"):
        simplified = simplified[1:]

    result = format_formula(simplified) or "0"
    logger.debug("Simplified %r to %r", formula, result)
    return result
