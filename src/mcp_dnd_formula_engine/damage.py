"""Critical-hit handling for damage formulas.

Critical rules rewrite the formula before it is rolled; the grammar itself
knows nothing about criticals.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .errors import FormulaError
from .evaluator import evaluate
from .models import DieTerm, EvaluationMode, Number, NumericTerm, OperatorTerm, RollResult, Term
from .parser import format_formula, format_term, parse
from .rng import RandomSource


@dataclass(frozen=True)
class DamageResult:
    roll: RollResult
    is_critical: bool

    def to_dict(self) -> dict[str, Any]:
        return {**self.roll.to_dict(), "is_critical": self.is_critical}


def build_critical_formula(
    formula: str,
    context: Mapping[str, Any] | None = None,
    *,
    multiplier: int = 2,
    bonus_dice: int = 0,
    multiply_numeric: bool = False,
    powerful_critical: bool = False,
    bonus_damage: str | None = None,
) -> str:
    """Rewrite a damage formula for a critical hit.

    - dice counts are multiplied; ``bonus_dice`` extra dice go to the first die
    - ``powerful_critical`` adds the base dice's maximum as a flat bonus (per
      flavor) and lowers the multiplier by one
    - ``multiply_numeric`` multiplies additive constants as well
    - ``bonus_damage`` is appended as-is
    """
    if multiplier < 1:
        raise FormulaError("[UNSUPPORTED_OPERATION] Critical multiplier must be at least 1.", formula)
    if bonus_dice < 0:
        raise FormulaError("[UNSUPPORTED_OPERATION] Critical bonus dice cannot be negative.", formula)

    terms = parse(formula, context)
    out: list[Term] = []
    flat_bonus: dict[str | None, int] = {}
    first_die = True

    for term in terms:
        previous = out[-1] if out else None
        if isinstance(term, DieTerm):
            dice_multiplier = multiplier
            if powerful_critical:
                flat_bonus[term.flavor] = flat_bonus.get(term.flavor, 0) + term.count * term.faces
                dice_multiplier = max(1, dice_multiplier - 1)
            extra = bonus_dice if first_die else 0
            first_die = False
            term = dataclasses.replace(term, count=term.count * dice_multiplier + extra)
        elif (
            multiply_numeric
            and isinstance(term, NumericTerm)
            and not (isinstance(previous, OperatorTerm) and previous.op in "*/")
        ):
            term = dataclasses.replace(term, value=term.value * multiplier)
        out.append(term)

    chunks = [format_formula(out)]
    for flavor, amount in flat_bonus.items():
        chunks.append(format_term(NumericTerm(value=amount, flavor=flavor)))
    if bonus_damage and bonus_damage.strip():
        chunks.append(format_formula(parse(bonus_damage, context)))
    return " + ".join(chunks)


def damage_roll(
    parts: Iterable[str | Number],
    data: Mapping[str, Any] | None = None,
    *,
    critical: bool = False,
    multiplier: int = 2,
    bonus_dice: int = 0,
    multiply_numeric: bool = False,
    powerful_critical: bool = False,
    bonus_damage: str | None = None,
    mode: EvaluationMode | str = EvaluationMode.RANDOM,
    rng: RandomSource | None = None,
) -> DamageResult:
    formula = " + ".join(str(p) for p in parts if p is not None and str(p).strip())
    if critical:
        formula = build_critical_formula(
            formula,
            data,
            multiplier=multiplier,
            bonus_dice=bonus_dice,
            multiply_numeric=multiply_numeric,
            powerful_critical=powerful_critical,
            bonus_damage=bonus_damage,
        )
    return DamageResult(roll=evaluate(formula, data, mode, rng=rng), is_critical=critical)
