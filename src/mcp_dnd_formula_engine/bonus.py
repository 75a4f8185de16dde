from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .errors import FormulaError
from .evaluator import ensure_resolved, evaluate_terms
from .models import EvaluationMode, Number
from .parser import parse
from .safe_eval import normalize_number
from .terms import is_formula_deterministic


logger = logging.getLogger(__name__)


def simplify_bonus(bonus: str | Number | None, data: Mapping[str, Any] | None = None) -> Number:
    """Convert a bonus value to a plain number for display.

    Formulas with dice, and formulas that fail to evaluate, count as 0.
    """
    if bonus is None or bonus == "":
        return 0
    if isinstance(bonus, bool):
        return int(bonus)
    if isinstance(bonus, (int, float)):
        return normalize_number(bonus)

    try:
        terms = parse(bonus, data)
        ensure_resolved(terms, bonus)
        if not is_formula_deterministic(terms):
            return 0
        return evaluate_terms(terms, EvaluationMode.RANDOM).total
    except FormulaError as e:
        logger.error("Could not simplify bonus %r: %s", bonus, e)
        return 0


def validate_formula(formula: str, *, deterministic: bool = False) -> str:
    """Raise FormulaError unless ``formula`` can be rolled.

    With ``deterministic`` the formula must also be free of dice.
    Returns the formula unchanged so it can be used as a validator.
    """
    terms = parse(formula)
    ensure_resolved(terms, formula)
    if deterministic and not is_formula_deterministic(terms):
        raise FormulaError("[INVALID_DIE] Formula must not contain dice terms. Example: '5 + 2'.", formula)
    # Minimizing avoids randomness while still exercising every operation.
    evaluate_terms(terms, EvaluationMode.MINIMIZE)
    return formula
