import pytest

from mcp_dnd_formula_engine.config import Settings, get_settings
from mcp_dnd_formula_engine.errors import FormulaError
from mcp_dnd_formula_engine.parser import parse
from mcp_dnd_formula_engine.simplify import simplify


def test_defaults():
    settings = Settings()
    assert settings.max_depth == 10
    assert settings.preserve_flavor is True
    assert settings.rng_seed is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("FORMULA_ENGINE_MAX_DEPTH", "3")
    monkeypatch.setenv("FORMULA_ENGINE_RNG_SEED", "42")
    settings = Settings()
    assert settings.max_depth == 3
    assert settings.rng_seed == 42


@pytest.fixture
def shallow_settings(monkeypatch):
    monkeypatch.setenv("FORMULA_ENGINE_MAX_DEPTH", "1")
    monkeypatch.setenv("FORMULA_ENGINE_PRESERVE_FLAVOR", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_engine_reads_cached_settings(shallow_settings):
    with pytest.raises(FormulaError, match=r"\[RECURSION_LIMIT\]"):
        parse("((1))")
    assert simplify("1d4[fire] + 2 * 0 + 1") == "1d4 + 2 * 0 + 1"
    assert simplify("1d4[fire] + 1") == "1d4 + 1"
