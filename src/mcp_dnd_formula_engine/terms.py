from __future__ import annotations

from typing import Literal, TypeAlias

from .models import (
    DieTerm,
    MathTerm,
    NumericTerm,
    OperatorTerm,
    ParentheticalTerm,
    PoolTerm,
    StringTerm,
    Term,
)


GroupName: TypeAlias = Literal["dice", "pools", "math", "numeric"]
TermPair: TypeAlias = tuple[OperatorTerm, Term]


def is_deterministic(term: Term) -> bool:
    """True when the term's value does not depend on any dice."""

    if isinstance(term, DieTerm):
        return False
    if isinstance(term, ParentheticalTerm):
        return all(is_deterministic(t) for t in term.terms)
    if isinstance(term, PoolTerm):
        return all(is_deterministic(t) for roll in term.rolls for t in roll)
    if isinstance(term, MathTerm):
        return all(is_deterministic(t) for arg in term.arg_terms for t in arg)
    # Numbers, operators and unresolved string terms carry no randomness.
    return True


def is_formula_deterministic(terms: tuple[Term, ...] | list[Term]) -> bool:
    return all(is_deterministic(t) for t in terms)


def classify(term: Term) -> GroupName:
    if isinstance(term, DieTerm):
        return "dice"
    if isinstance(term, PoolTerm):
        return "pools"
    if isinstance(term, NumericTerm):
        return "numeric"
    if isinstance(term, MathTerm) and is_deterministic(term):
        return "numeric"
    # Non-deterministic math, kept parentheticals and string terms stay literal.
    return "math"


def group_by_type(terms: tuple[Term, ...] | list[Term]) -> dict[GroupName, list[TermPair]]:
    """Split a +/- sequence into (operator, term) pairs per group.

    Each term travels with the operator in front of it, so groups can be
    reordered and concatenated back into a valid sequence.
    """

    groups: dict[GroupName, list[TermPair]] = {"dice": [], "pools": [], "math": [], "numeric": []}
    # A leading term has an implicit "+".
    pending = OperatorTerm(op="+")
    for term in terms:
        if isinstance(term, OperatorTerm):
            pending = term
            continue
        groups[classify(term)].append((pending, term))
        pending = OperatorTerm(op="+")
    return groups


def _ungroup(pairs: list[TermPair]) -> list[Term]:
    out: list[Term] = []
    for op, term in pairs:
        out.extend((op, term))
    return out


def flatten_groups(groups: dict[GroupName, list[TermPair]]) -> list[Term]:
    return (
        _ungroup(groups["dice"])
        + _ungroup(groups["pools"])
        + _ungroup(groups["math"])
        + _ungroup(groups["numeric"])
    )


def has_string_terms(terms: tuple[Term, ...] | list[Term]) -> bool:
    for term in terms:
        if isinstance(term, StringTerm):
            return True
        if isinstance(term, ParentheticalTerm) and has_string_terms(term.terms):
            return True
        if isinstance(term, PoolTerm) and any(has_string_terms(r) for r in term.rolls):
            return True
        if isinstance(term, MathTerm) and any(has_string_terms(a) for a in term.arg_terms):
            return True
    return False
