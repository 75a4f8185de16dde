from __future__ import annotations


class FormulaError(ValueError):
    """User-facing formula errors (fail-fast, nothing is rolled).

    Messages start with a stable bracketed code, e.g. ``[INVALID_DIE]``.
    ``formula`` holds the offending formula or substring when known.
    """

    def __init__(self, message: str, formula: str | None = None) -> None:
        super().__init__(message)
        self.formula = formula

    def __str__(self) -> str:
        message = super().__str__()
        if self.formula is None:
            return message
        return f"{message} Formula: '{self.formula}'."
