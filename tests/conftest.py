import pytest


class ScriptedSource:
    """Random source that hands out pre-chosen die results in order."""

    name = "scripted"

    def __init__(self, values):
        self.values = list(values)

    def next_int(self, low, high):
        value = self.values.pop(0)
        assert low <= value <= high
        return value


@pytest.fixture
def scripted():
    def make(*values):
        return ScriptedSource(values)

    return make
