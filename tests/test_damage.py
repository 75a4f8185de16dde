import pytest

from mcp_dnd_formula_engine.damage import build_critical_formula, damage_roll
from mcp_dnd_formula_engine.errors import FormulaError


@pytest.mark.parametrize(
    ("formula", "kwargs", "expected"),
    [
        ("1d8 + 3", {}, "2d8 + 3"),
        ("1d8 + 3", {"multiply_numeric": True}, "2d8 + 6"),
        ("1d8 + 3", {"bonus_dice": 1}, "3d8 + 3"),
        ("1d8 + 3", {"multiplier": 3}, "3d8 + 3"),
        ("1d8 + 3", {"bonus_damage": "1d6[radiant]"}, "2d8 + 3 + 1d6[radiant]"),
        ("1d8 * 2", {"multiply_numeric": True}, "2d8 * 2"),
        (
            "2d6[slashing] + 1d4[fire] + 2",
            {"powerful_critical": True},
            "2d6[slashing] + 1d4[fire] + 2 + 12[slashing] + 4[fire]",
        ),
        ("2 + 1d6", {"bonus_dice": 2}, "2 + 4d6"),
        ("-1d4 + 1d6", {"bonus_dice": 1}, "-3d4 + 2d6"),
        ("1d8 + 1d6", {"bonus_dice": 1}, "3d8 + 2d6"),
    ],
)
def test_build_critical_formula(formula, kwargs, expected):
    assert build_critical_formula(formula, **kwargs) == expected


def test_critical_formula_substitutes_context():
    assert build_critical_formula("1d8 + @mod", {"mod": 3}) == "2d8 + 3"


@pytest.mark.parametrize("kwargs", [{"multiplier": 0}, {"bonus_dice": -1}])
def test_critical_formula_rejects_bad_options(kwargs):
    with pytest.raises(FormulaError, match=r"\[UNSUPPORTED_OPERATION\]"):
        build_critical_formula("1d8", **kwargs)


def test_critical_damage_roll_maximized():
    result = damage_roll(["1d8", "@mod"], {"mod": 3}, critical=True, mode="maximize")
    assert result.is_critical
    assert result.roll.formula == "2d8 + 3"
    assert result.roll.total == 19


def test_normal_damage_roll(scripted):
    result = damage_roll(["1d8", "3"], rng=scripted(5))
    assert not result.is_critical
    assert result.roll.total == 8
    assert result.to_dict()["is_critical"] is False
