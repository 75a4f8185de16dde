from mcp_dnd_formula_engine.parser import format_formula, parse


def test_parse_is_deterministic():
    text = "2d20kh + @mod + {1d6, 1d8}kh + floor(@level / 2)"
    context = {"mod": 3, "level": 7}
    a = parse(text, context)
    b = parse(text, context)

    assert a == b
    assert format_formula(a) == format_formula(b)


def test_rendered_formula_reparses_to_same_terms():
    terms = parse("1d4[fire] + (2d6kh1 - 1) * 2 + {1d20, 10}kl")
    assert parse(format_formula(terms)) == terms
