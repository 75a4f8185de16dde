from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import get_settings
from .d20 import d20_roll
from .damage import damage_roll
from .errors import FormulaError
from .evaluator import evaluate
from .rng import RandomSource, SeededRandomSource, SystemRandomSource
from .simplify import simplify


logger = logging.getLogger(__name__)

mcp = FastMCP("mcp-dnd-formula-engine")

_rng: RandomSource | None = None


def _now_utc_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _get_rng() -> RandomSource:
    global _rng
    if _rng is None:
        seed = get_settings().rng_seed
        _rng = SystemRandomSource() if seed is None else SeededRandomSource(seed)
    return _rng


def _envelope(payload: dict[str, Any]) -> dict[str, Any]:
    rng = _get_rng()
    return {
        "request_id": uuid.uuid4().hex,
        "timestamp": _now_utc_iso(),
        "rng": {"source": rng.name},
        **payload,
    }


@mcp.tool()
def simplify_formula(formula: str, data: dict[str, Any] | None = None, preserve_flavor: bool = True):
    """Simplify a dice formula, folding constant arithmetic into one number.

    Raises a hard error (exception) on invalid input.
    """

    try:
        return {"input": formula, "formula": simplify(formula, data, preserve_flavor=preserve_flavor)}
    except FormulaError as e:
        raise ValueError(str(e)) from None


@mcp.tool()
def evaluate_formula(formula: str, data: dict[str, Any] | None = None, mode: str = "random"):
    """Evaluate a dice formula.

    mode: random | maximize | minimize
    Output: total, determinism flag and per-term breakdown.
    """

    try:
        result = evaluate(formula, data, mode, rng=_get_rng())
    except FormulaError as e:
        raise ValueError(str(e)) from None
    return _envelope({"input": formula, **result.to_dict()})


@mcp.tool()
def roll_d20(
    parts: list[str] | None = None,
    data: dict[str, Any] | None = None,
    advantage: bool = False,
    disadvantage: bool = False,
    critical: int = 20,
    fumble: int = 1,
    target_value: float | None = None,
    elven_accuracy: bool = False,
    reliable_talent: bool = False,
):
    """Roll a d20 test (attack, check or save) with optional advantage."""

    try:
        result = d20_roll(
            parts or [],
            data,
            advantage=advantage,
            disadvantage=disadvantage,
            critical=critical,
            fumble=fumble,
            target_value=target_value,
            elven_accuracy=elven_accuracy,
            reliable_talent=reliable_talent,
            rng=_get_rng(),
        )
    except FormulaError as e:
        raise ValueError(str(e)) from None
    return _envelope(result.to_dict())


@mcp.tool()
def roll_damage(
    parts: list[str],
    data: dict[str, Any] | None = None,
    critical: bool = False,
    multiplier: int = 2,
    bonus_dice: int = 0,
    multiply_numeric: bool = False,
    powerful_critical: bool = False,
    bonus_damage: str | None = None,
):
    """Roll damage; on a critical hit the dice are multiplied first."""

    try:
        result = damage_roll(
            parts,
            data,
            critical=critical,
            multiplier=multiplier,
            bonus_dice=bonus_dice,
            multiply_numeric=multiply_numeric,
            powerful_critical=powerful_critical,
            bonus_damage=bonus_damage,
            rng=_get_rng(),
        )
    except FormulaError as e:
        raise ValueError(str(e)) from None
    return _envelope(result.to_dict())


def run() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting formula engine MCP server (max_depth=%d)", settings.max_depth)
    # Default transport is stdio.
    mcp.run()


if __name__ == "__main__":
    run()
