"""Step-local answer validation run before a step may be completed."""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping

FieldRule = Callable[[Any], None]


class FieldValidationError(ValueError):
    """Raised when an answer does not satisfy its step's input rules."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


def iso_date_not_in_future(value: Any) -> None:
    if not isinstance(value, str):
        raise ValueError("Enter a date in YYYY-MM-DD format.")
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValueError("Enter a date in YYYY-MM-DD format.") from None
    if parsed > date.today():
        raise ValueError("Date of birth cannot be in the future.")


def positive_number(value: Any) -> None:
    if isinstance(value, bool):
        raise ValueError("Enter a number.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError("Enter a number.") from None
    if not math.isfinite(number):
        raise ValueError("Enter a number.")
    if number <= 0:
        raise ValueError("Enter a value greater than zero.")


def one_of(options: Iterable[str]) -> FieldRule:
    allowed = frozenset(options)

    def _check(value: Any) -> None:
        if value not in allowed:
            raise ValueError(f"Choose one of: {', '.join(sorted(allowed))}.")

    return _check


def validate_fields(rules: Mapping[str, FieldRule], values: Mapping[str, Any]) -> None:
    """Apply *rules* to every provided answer that has one."""

    for name, value in values.items():
        rule = rules.get(name)
        if rule is None:
            continue
        try:
            rule(value)
        except ValueError as exc:
            raise FieldValidationError(name, str(exc)) from exc
