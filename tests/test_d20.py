import pytest

from mcp_dnd_formula_engine.d20 import (
    AdvantageMode,
    build_d20_formula,
    critical_threshold,
    d20_roll,
    determine_advantage_mode,
)


@pytest.mark.parametrize(
    ("mode", "kwargs", "expected"),
    [
        (AdvantageMode.NORMAL, {}, "1d20 + @mod"),
        (AdvantageMode.ADVANTAGE, {}, "2d20kh + @mod"),
        (AdvantageMode.ADVANTAGE, {"elven_accuracy": True}, "3d20kh + @mod"),
        (AdvantageMode.DISADVANTAGE, {"elven_accuracy": True}, "2d20kl + @mod"),
        (AdvantageMode.NORMAL, {"reliable_talent": True}, "1d20min10 + @mod"),
        (AdvantageMode.ADVANTAGE, {"reliable_talent": True}, "2d20khmin10 + @mod"),
    ],
)
def test_build_d20_formula(mode, kwargs, expected):
    assert build_d20_formula(["@mod"], mode, **kwargs) == expected


def test_build_d20_formula_skips_empty_parts():
    assert build_d20_formula(["", None, 2]) == "1d20 + 2"


@pytest.mark.parametrize(
    ("advantage", "disadvantage", "expected"),
    [
        (False, False, AdvantageMode.NORMAL),
        (True, False, AdvantageMode.ADVANTAGE),
        (False, True, AdvantageMode.DISADVANTAGE),
        (True, True, AdvantageMode.ADVANTAGE),
    ],
)
def test_determine_advantage_mode(advantage, disadvantage, expected):
    assert determine_advantage_mode(advantage, disadvantage) is expected


def test_critical_threshold():
    assert critical_threshold(None, 19, 18) == 18
    assert critical_threshold() == 20
    assert critical_threshold(None) == 20


def test_advantage_keeps_higher_and_detects_critical(scripted):
    result = d20_roll(["@mod"], {"mod": 5}, advantage=True, rng=scripted(3, 20))

    assert result.d20 == 20
    assert result.roll.total == 25
    assert result.is_critical
    assert not result.is_fumble


def test_disadvantage_keeps_lower_and_detects_fumble(scripted):
    result = d20_roll(["@mod"], {"mod": 5}, disadvantage=True, rng=scripted(1, 15))

    assert result.d20 == 1
    assert result.roll.total == 6
    assert result.is_fumble
    assert not result.is_critical


@pytest.mark.parametrize(("target", "expected"), [(13, True), (14, False), (None, None)])
def test_target_value(scripted, target, expected):
    result = d20_roll(["3"], target_value=target, rng=scripted(10))
    assert result.is_success is expected


def test_expanded_critical_range(scripted):
    assert d20_roll(critical=19, rng=scripted(19)).is_critical


def test_reliable_talent_raises_low_rolls(scripted):
    result = d20_roll(reliable_talent=True, rng=scripted(2))
    assert result.d20 == 10
    assert not result.is_fumble


def test_to_dict(scripted):
    data = d20_roll(["2"], advantage=True, rng=scripted(4, 9)).to_dict()
    assert data["advantage_mode"] == "advantage"
    assert data["d20"] == 9
    assert data["total"] == 11
    assert data["formula"] == "2d20kh + 2"
