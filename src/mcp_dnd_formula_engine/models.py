from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, TypeAlias


Number: TypeAlias = int | float
Operator: TypeAlias = Literal["+", "-", "*", "/"]
ModifierCommand: TypeAlias = Literal["k", "kh", "kl", "d", "dh", "dl", "min", "max"]

KEEP_COMMANDS: frozenset[str] = frozenset({"k", "kh", "kl"})
DROP_COMMANDS: frozenset[str] = frozenset({"d", "dh", "dl"})
CLAMP_COMMANDS: frozenset[str] = frozenset({"min", "max"})

MATH_FUNCTIONS: frozenset[str] = frozenset(
    {"abs", "ceil", "floor", "round", "trunc", "sign", "sqrt", "min", "max"}
)


class EvaluationMode(str, Enum):
    """How dice are resolved during evaluation."""

    RANDOM = "random"
    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"


@dataclass(frozen=True)
class Modifier:
    command: ModifierCommand
    amount: int | None = None

    @property
    def formula(self) -> str:
        return self.command if self.amount is None else f"{self.command}{self.amount}"

    def resolved_amount(self, faces: int | None = None) -> int:
        """Amount with the contextual default applied when none (or zero) was written."""
        if self.amount:
            return self.amount
        if self.command == "max" and faces is not None:
            return faces
        return 1


@dataclass(frozen=True)
class NumericTerm:
    value: Number
    flavor: str | None = None
    kind: Literal["numeric"] = field(default="numeric", init=False)


@dataclass(frozen=True)
class DieTerm:
    count: int
    faces: int
    modifiers: tuple[Modifier, ...] = ()
    flavor: str | None = None
    kind: Literal["die"] = field(default="die", init=False)


@dataclass(frozen=True)
class OperatorTerm:
    op: Operator
    kind: Literal["operator"] = field(default="operator", init=False)


@dataclass(frozen=True)
class ParentheticalTerm:
    inner: str
    terms: tuple[Term, ...] = ()
    flavor: str | None = None
    kind: Literal["parenthetical"] = field(default="parenthetical", init=False)


@dataclass(frozen=True)
class PoolTerm:
    sub_formulas: tuple[str, ...]
    rolls: tuple[tuple[Term, ...], ...] = ()
    modifiers: tuple[Modifier, ...] = ()
    flavor: str | None = None
    kind: Literal["pool"] = field(default="pool", init=False)


@dataclass(frozen=True)
class MathTerm:
    fn: str
    args: tuple[str, ...]
    arg_terms: tuple[tuple[Term, ...], ...] = ()
    flavor: str | None = None
    kind: Literal["math"] = field(default="math", init=False)


@dataclass(frozen=True)
class StringTerm:
    raw: str
    kind: Literal["string"] = field(default="string", init=False)


Term: TypeAlias = NumericTerm | DieTerm | OperatorTerm | ParentheticalTerm | PoolTerm | MathTerm | StringTerm
ValueTerm: TypeAlias = NumericTerm | DieTerm | ParentheticalTerm | PoolTerm | MathTerm | StringTerm


@dataclass(frozen=True)
class DieResult:
    result: int
    active: bool = True


@dataclass(frozen=True)
class SubResult:
    """A nested roll (pool member, parenthetical body, math argument)."""

    roll: RollResult
    active: bool = True


@dataclass(frozen=True)
class TermResult:
    term: ValueTerm
    formula: str
    value: Number
    operator: Operator | None = None
    dice: tuple[DieResult, ...] = ()
    children: tuple[SubResult, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.term.kind,
            "term": self.formula,
            "operator": self.operator,
            "value": self.value,
        }
        if self.dice:
            data["dice"] = [{"result": d.result, "active": d.active} for d in self.dice]
        if self.children:
            data["children"] = [{"active": c.active, **c.roll.to_dict()} for c in self.children]
        return data


@dataclass(frozen=True)
class RollResult:
    formula: str
    total: Number
    is_deterministic: bool
    mode: EvaluationMode = EvaluationMode.RANDOM
    breakdown: tuple[TermResult, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "formula": self.formula,
            "total": self.total,
            "is_deterministic": self.is_deterministic,
            "mode": self.mode.value,
            "breakdown": [t.to_dict() for t in self.breakdown],
        }
