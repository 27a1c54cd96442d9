"""SignalForge error taxonomy.

Indicator-level errors propagate to the caller; rule incompleteness is
reported as a not-met result by the evaluator instead.
"""

from typing import Any


class SignalForgeError(Exception):
    """Base class for all SignalForge errors."""


class MissingSeriesError(SignalForgeError):
    """A required OHLCV column is absent for the requested indicator."""

    def __init__(self, indicator: str, field: str) -> None:
        self.indicator = indicator
        self.field = field
        super().__init__(
            f"{indicator} requires the '{field}' series, which was not supplied"
        )


class UnsupportedIndicatorError(SignalForgeError):
    """The indicator name does not map to any supported indicator."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unsupported indicator: {name!r}")


class InsufficientHistoryError(SignalForgeError):
    """Fewer bars are available than the computation needs."""

    def __init__(self, subject: str, required: int, available: int) -> None:
        self.subject = subject
        self.required = required
        self.available = available
        super().__init__(
            f"Need at least {required} bars for {subject}, got {available}"
        )


class InvalidParameterError(SignalForgeError, ValueError):
    """An indicator parameter is present but not usable."""

    def __init__(self, indicator: str, parameter: str, value: Any) -> None:
        self.indicator = indicator
        self.parameter = parameter
        self.value = value
        super().__init__(
            f"Invalid value {value!r} for {indicator} parameter '{parameter}'"
        )
