"""d20 tests: advantage modes, critical and fumble detection."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from .evaluator import evaluate
from .models import Number, RollResult
from .rng import RandomSource


class AdvantageMode(IntEnum):
    DISADVANTAGE = -1
    NORMAL = 0
    ADVANTAGE = 1


@dataclass(frozen=True)
class D20Result:
    roll: RollResult
    advantage_mode: AdvantageMode
    d20: int
    is_critical: bool
    is_fumble: bool
    is_success: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.roll.to_dict(),
            "advantage_mode": self.advantage_mode.name.lower(),
            "d20": self.d20,
            "is_critical": self.is_critical,
            "is_fumble": self.is_fumble,
            "is_success": self.is_success,
        }


def determine_advantage_mode(advantage: bool = False, disadvantage: bool = False) -> AdvantageMode:
    # Advantage is checked first, so it wins when both are requested.
    if advantage:
        return AdvantageMode.ADVANTAGE
    if disadvantage:
        return AdvantageMode.DISADVANTAGE
    return AdvantageMode.NORMAL


def critical_threshold(*thresholds: int | None) -> int:
    """Smallest of the given critical thresholds (item, ammunition, type), else 20."""
    values = [t for t in thresholds if t is not None]
    return min(values) if values else 20


def build_d20_formula(
    parts: Iterable[str | Number] = (),
    advantage_mode: AdvantageMode = AdvantageMode.NORMAL,
    *,
    elven_accuracy: bool = False,
    reliable_talent: bool = False,
) -> str:
    """Build ``1d20``/``2d20kh``/``3d20kh``/``2d20kl`` followed by the extra parts."""

    number, modifiers = 1, ""
    if advantage_mode is AdvantageMode.ADVANTAGE:
        number = 3 if elven_accuracy else 2
        modifiers = "kh"
    elif advantage_mode is AdvantageMode.DISADVANTAGE:
        number = 2
        modifiers = "kl"
    if reliable_talent:
        modifiers += "min10"

    chunks = [f"{number}d20{modifiers}"]
    chunks.extend(str(p) for p in parts if p is not None and str(p).strip())
    return " + ".join(chunks)


def d20_roll(
    parts: Iterable[str | Number] = (),
    data: Mapping[str, Any] | None = None,
    *,
    advantage: bool = False,
    disadvantage: bool = False,
    critical: int = 20,
    fumble: int = 1,
    target_value: Number | None = None,
    elven_accuracy: bool = False,
    reliable_talent: bool = False,
    rng: RandomSource | None = None,
) -> D20Result:
    """Roll a d20 test and judge it on the kept d20 face."""

    advantage_mode = determine_advantage_mode(advantage, disadvantage)
    formula = build_d20_formula(
        parts, advantage_mode, elven_accuracy=elven_accuracy, reliable_talent=reliable_talent
    )
    roll = evaluate(formula, data, rng=rng)

    kept = [d.result for d in roll.breakdown[0].dice if d.active]
    face = kept[0]

    return D20Result(
        roll=roll,
        advantage_mode=advantage_mode,
        d20=face,
        is_critical=face >= critical,
        is_fumble=face <= fumble,
        is_success=None if target_value is None else roll.total >= target_value,
    )
