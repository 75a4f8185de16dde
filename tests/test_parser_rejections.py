import pytest

from mcp_dnd_formula_engine.errors import FormulaError
from mcp_dnd_formula_engine.parser import parse


@pytest.mark.parametrize(
    ("text", "prefix"),
    [
        ("(1d6 + 2", "[UNBALANCED_GROUP]"),
        ("1d6 + 2)", "[UNBALANCED_GROUP]"),
        ("{1d6, 1d6", "[UNBALANCED_GROUP]"),
        ("1d4[fire", "[UNBALANCED_GROUP]"),
        ("1d0", "[INVALID_DIE]"),
        ("0d6", "[INVALID_DIE]"),
        ("2d + 1", "[INVALID_DIE]"),
        ("2d6kx", "[INVALID_MODIFIER]"),
        ("1d20q", "[INVALID_MODIFIER]"),
        ("{1d6, 1d6}min2", "[INVALID_MODIFIER]"),
        ("", "[UNPARSEABLE_INPUT]"),
        ("1d6 +", "[UNPARSEABLE_INPUT]"),
        ("* 2", "[UNPARSEABLE_INPUT]"),
        ("1d6 2", "[UNPARSEABLE_INPUT]"),
        ("1d6 # 2", "[UNPARSEABLE_INPUT]"),
        ("{1d6,}", "[UNPARSEABLE_INPUT]"),
        ("foo(2)", "[UNPARSEABLE_INPUT]"),
        ("@missing + 1", "[UNRESOLVED_PLACEHOLDER]"),
        ("(" * 12 + "1" + ")" * 12, "[RECURSION_LIMIT]"),
    ],
)
def test_parse_rejections(text, prefix):
    with pytest.raises(FormulaError) as exc:
        parse(text)
    assert str(exc.value).startswith(prefix)


def test_error_carries_offending_formula():
    with pytest.raises(FormulaError) as exc:
        parse("1d20 + (1d6")
    assert exc.value.formula == "(1d6"


def test_explicit_depth_limit():
    with pytest.raises(FormulaError, match=r"\[RECURSION_LIMIT\]"):
        parse("((1))", max_depth=1)
