from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .errors import FormulaError
from .models import (
    CLAMP_COMMANDS,
    DROP_COMMANDS,
    KEEP_COMMANDS,
    DieResult,
    DieTerm,
    EvaluationMode,
    MathTerm,
    Modifier,
    Number,
    NumericTerm,
    Operator,
    OperatorTerm,
    ParentheticalTerm,
    PoolTerm,
    RollResult,
    SubResult,
    Term,
    TermResult,
)
from .parser import format_formula, format_number, format_term, parse
from .rng import RandomSource, SystemRandomSource
from .safe_eval import normalize_number, safe_eval
from .terms import has_string_terms, is_formula_deterministic


logger = logging.getLogger(__name__)


class _ConstantSource:
    name = "none"

    def next_int(self, low: int, high: int) -> int:
        raise FormulaError("[UNRESOLVED_TERM] Constant arithmetic cannot contain dice.")


def ensure_resolved(terms: tuple[Term, ...], formula: str) -> None:
    if has_string_terms(terms):
        raise FormulaError(
            "[UNRESOLVED_TERM] Formula contains text that is not a number, die or function. "
            "Example: '1d20 + @prof' with prof in the context.",
            formula,
        )


# ---------------------------------------------------------------------------
# Keep / drop / clamp
# ---------------------------------------------------------------------------


def _apply_keep_drop(values: Sequence[Number], active: list[bool], modifier: Modifier) -> list[bool]:
    """Narrow the active set by rank; on ties the earlier value stays kept."""

    indices = [i for i, is_active in enumerate(active) if is_active]
    amount = modifier.resolved_amount()
    command = modifier.command

    if command in ("k", "kh"):
        keep = set(sorted(indices, key=lambda i: (-values[i], i))[:amount])
    elif command == "kl":
        keep = set(sorted(indices, key=lambda i: (values[i], i))[:amount])
    elif command == "dh":
        keep = set(indices) - set(sorted(indices, key=lambda i: (-values[i], -i))[:amount])
    else:
        keep = set(indices) - set(sorted(indices, key=lambda i: (values[i], -i))[:amount])

    return [i in keep for i in range(len(values))]


def _select(values: Sequence[Number], modifiers: Sequence[Modifier]) -> list[bool]:
    active = [True] * len(values)
    for modifier in modifiers:
        if modifier.command in KEEP_COMMANDS or modifier.command in DROP_COMMANDS:
            active = _apply_keep_drop(values, active, modifier)
    return active


def precalculate_term(die: DieTerm, *, minimize: bool = False) -> int | None:
    """Best or worst achievable total for a modified die, or None if it has no modifiers.

    Keep/drop shrink the number of counted dice and ``min``/``max`` bound
    the face, so ``2d20kh`` maximizes to 20 rather than 40.
    """
    if not die.modifiers:
        return None
    return _extreme_total(die, minimize=minimize)


def _extreme_total(die: DieTerm, *, minimize: bool) -> int:
    face = 1 if minimize else die.faces
    number = die.count
    for modifier in die.modifiers:
        command = modifier.command
        amount = modifier.resolved_amount(die.faces)
        if (command == "max" and minimize) or (command == "min" and not minimize):
            continue
        if command in CLAMP_COMMANDS:
            face = min(die.faces, amount)
        elif command in KEEP_COMMANDS:
            number = min(number, amount)
        elif command in DROP_COMMANDS:
            number = max(1, number - amount)

    return face * number


def _roll_die(die: DieTerm, mode: EvaluationMode, rng: RandomSource) -> tuple[Number, tuple[DieResult, ...]]:
    if mode is EvaluationMode.RANDOM:
        values = [rng.next_int(1, die.faces) for _ in range(die.count)]
    else:
        values = [die.faces if mode is EvaluationMode.MAXIMIZE else 1] * die.count

    active = _select(values, die.modifiers)

    # Clamps apply to the surviving dice after keep/drop.
    for modifier in die.modifiers:
        if modifier.command not in CLAMP_COMMANDS:
            continue
        threshold = modifier.resolved_amount(die.faces)
        clamp = max if modifier.command == "min" else min
        values = [clamp(v, threshold) if active[i] else v for i, v in enumerate(values)]

    dice = tuple(DieResult(result=v, active=a) for v, a in zip(values, active))
    return sum(d.result for d in dice if d.active), dice


# ---------------------------------------------------------------------------
# Math wrappers
# ---------------------------------------------------------------------------


def _js_round(x: Number) -> Number:
    return math.floor(x + 0.5)


def _sign(x: Number) -> int:
    return (x > 0) - (x < 0)


def _sqrt(x: Number) -> float:
    if x < 0:
        raise FormulaError("[UNSUPPORTED_OPERATION] sqrt() of a negative number.")
    return math.sqrt(x)


_UNARY_FUNCTIONS: dict[str, Callable[[Number], Number]] = {
    "abs": abs,
    "ceil": math.ceil,
    "floor": math.floor,
    "round": _js_round,
    "trunc": math.trunc,
    "sign": _sign,
    "sqrt": _sqrt,
}


def _apply_function(term: MathTerm, values: list[Number]) -> Number:
    if term.fn in ("min", "max"):
        return min(values) if term.fn == "min" else max(values)
    if len(values) != 1:
        raise FormulaError(
            f"[UNPARSEABLE_INPUT] {term.fn}() takes exactly one argument, got {len(values)}.",
            format_term(term),
        )
    return _UNARY_FUNCTIONS[term.fn](values[0])


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _evaluate_value(
    term: Term, operator: Operator | None, mode: EvaluationMode, rng: RandomSource
) -> TermResult:
    formula = format_term(term)

    if isinstance(term, NumericTerm):
        return TermResult(term=term, formula=formula, value=term.value, operator=operator)

    if isinstance(term, DieTerm):
        if mode is not EvaluationMode.RANDOM and term.modifiers:
            value = _extreme_total(term, minimize=mode is EvaluationMode.MINIMIZE)
            return TermResult(term=term, formula=formula, value=value, operator=operator)
        value, dice = _roll_die(term, mode, rng)
        return TermResult(term=term, formula=formula, value=value, operator=operator, dice=dice)

    if isinstance(term, ParentheticalTerm):
        inner = evaluate_terms(term.terms, mode, rng)
        return TermResult(
            term=term, formula=formula, value=inner.total, operator=operator, children=(SubResult(inner),)
        )

    if isinstance(term, PoolTerm):
        members = [evaluate_terms(roll, mode, rng) for roll in term.rolls]
        active = _select([m.total for m in members], term.modifiers)
        value = normalize_number(sum(m.total for m, a in zip(members, active) if a))
        children = tuple(SubResult(roll=m, active=a) for m, a in zip(members, active))
        return TermResult(term=term, formula=formula, value=value, operator=operator, children=children)

    if isinstance(term, MathTerm):
        args = [evaluate_terms(arg, mode, rng) for arg in term.arg_terms]
        value = normalize_number(_apply_function(term, [a.total for a in args]))
        children = tuple(SubResult(a) for a in args)
        return TermResult(term=term, formula=formula, value=value, operator=operator, children=children)

    raise FormulaError(f"[UNRESOLVED_TERM] Cannot evaluate '{formula}'.", formula)


def evaluate_terms(
    terms: tuple[Term, ...], mode: EvaluationMode = EvaluationMode.RANDOM, rng: RandomSource | None = None
) -> RollResult:
    """Resolve every value term and fold the total with normal operator precedence."""

    source = rng or SystemRandomSource()
    breakdown: list[TermResult] = []
    chunks: list[str] = []
    pending: Operator | None = None

    for term in terms:
        if isinstance(term, OperatorTerm):
            chunks.append(term.op)
            # The operator recorded on a term is the one nearest to it.
            pending = term.op
            continue
        result = _evaluate_value(term, pending, mode, source)
        breakdown.append(result)
        value = result.value
        chunks.append(f"({format_number(value)})" if value < 0 else format_number(value))
        pending = None

    return RollResult(
        formula=format_formula(terms),
        total=safe_eval(" ".join(chunks)),
        is_deterministic=is_formula_deterministic(terms),
        mode=mode,
        breakdown=tuple(breakdown),
    )


def resolve_constant(terms: tuple[Term, ...]) -> Number:
    """Total of a dice-free term sequence."""
    return evaluate_terms(terms, EvaluationMode.RANDOM, _ConstantSource()).total


def evaluate(
    formula: str,
    context: Mapping[str, Any] | None = None,
    mode: EvaluationMode | str = EvaluationMode.RANDOM,
    *,
    rng: RandomSource | None = None,
    missing: str | Number | None = None,
) -> RollResult:
    """Parse and evaluate a formula.

    RANDOM rolls every die; MAXIMIZE/MINIMIZE resolve dice to their best or
    worst achievable value. Raises FormulaError for invalid formulas.
    """
    try:
        mode = EvaluationMode(mode)
    except ValueError:
        raise FormulaError(
            f"[UNPARSEABLE_INPUT] Unknown evaluation mode '{mode}'. Use random, maximize or minimize."
        ) from None

    terms = parse(formula, context, missing=missing)
    ensure_resolved(terms, formula)
    result = evaluate_terms(terms, mode, rng)
    logger.debug("Evaluated %r (%s) => %s", result.formula, mode.value, result.total)
    return result
