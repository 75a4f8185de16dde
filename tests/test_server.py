import pytest

from mcp_dnd_formula_engine import server


def test_simplify_formula_tool():
    assert server.simplify_formula("1d6 + -2") == {"input": "1d6 + -2", "formula": "1d6 - 2"}


def test_evaluate_formula_tool():
    result = server.evaluate_formula("2d20kh1 + @mod", {"mod": 2}, mode="maximize")

    assert result["total"] == 22
    assert result["mode"] == "maximize"
    assert result["input"] == "2d20kh1 + @mod"
    assert len(result["request_id"]) == 32
    assert result["timestamp"].endswith("Z")


@pytest.mark.parametrize(
    ("call", "prefix"),
    [
        (lambda: server.evaluate_formula("@missing + 1"), "[UNRESOLVED_PLACEHOLDER]"),
        (lambda: server.simplify_formula("(1d6"), "[UNBALANCED_GROUP]"),
        (lambda: server.roll_damage([]), "[UNPARSEABLE_INPUT]"),
    ],
)
def test_tools_surface_value_errors(call, prefix):
    with pytest.raises(ValueError) as exc:
        call()
    assert str(exc.value).startswith(prefix)


def test_roll_d20_tool():
    result = server.roll_d20(["5"], advantage=True)

    assert 1 <= result["d20"] <= 20
    assert result["total"] == result["d20"] + 5
    assert result["formula"] == "2d20kh + 5"


def test_roll_damage_tool():
    result = server.roll_damage(["1d8", "2"], critical=True)

    assert result["is_critical"] is True
    assert result["formula"] == "2d8 + 2"
    assert 4 <= result["total"] <= 18
