import pytest

from mcp_dnd_formula_engine.models import DieTerm, NumericTerm, OperatorTerm, StringTerm
from mcp_dnd_formula_engine.parser import format_term, parse
from mcp_dnd_formula_engine.terms import group_by_type, is_deterministic


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("(2 + 3)", True),
        ("(1d4 + 3)", False),
        ("((2 * (1d4)))", False),
        ("{1, 2}kh", True),
        ("{1d4, 2}kh", False),
        ("floor(5 / 2)", True),
        ("max(1d4, 2)", False),
        ("min(3, (2 + 2))", True),
    ],
)
def test_is_deterministic_recurses_into_groups(text, expected):
    (term,) = parse(text)
    assert is_deterministic(term) is expected


def test_leaf_terms_determinism():
    assert is_deterministic(NumericTerm(value=3))
    assert is_deterministic(OperatorTerm(op="+"))
    assert is_deterministic(StringTerm(raw="[fire]"))
    assert not is_deterministic(DieTerm(count=1, faces=1))


def _pairs(group):
    return [(op.op, format_term(term)) for op, term in group]


def test_group_by_type_keeps_preceding_operator():
    groups = group_by_type(parse("1d6 + 2 - 1d4 + {1d8, 1d10}kh - floor(5 / 2) + max(1d4, 1)"))

    assert _pairs(groups["dice"]) == [("+", "1d6"), ("-", "1d4")]
    assert _pairs(groups["pools"]) == [("+", "{1d8,1d10}kh")]
    assert _pairs(groups["math"]) == [("+", "max(1d4, 1)")]
    assert _pairs(groups["numeric"]) == [("+", "2"), ("-", "floor(5 / 2)")]


def test_group_by_type_leading_sign():
    groups = group_by_type(parse("-1d6 + 3"))
    assert _pairs(groups["dice"]) == [("-", "1d6")]
    assert _pairs(groups["numeric"]) == [("+", "3")]
