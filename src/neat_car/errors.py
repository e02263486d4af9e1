from __future__ import annotations


class NeatCarError(Exception):
    """Base class for every error raised by this package."""


class StructuralError(NeatCarError):
    """A genome operator referenced a node or connection the genome does not own.

    Raised before any change is made, so the genome is left as it was.
    """


class MalformedDataError(NeatCarError, ValueError):
    """A persisted genome or track line could not be parsed."""

    def __init__(self, message: str, line: str | None = None, lineno: int | None = None):
        if lineno is not None:
            message = f"line {lineno}: {message}"
        super().__init__(message)
        self.line = line
        self.lineno = lineno


class WaitInterrupted(NeatCarError):
    """A tick sleep or pause wait was cut short by a stop request."""


class DegenerateFitnessError(NeatCarError, ArithmeticError):
    """A simulation ended without a single tick, so it cannot be scored."""


class ControllerContractError(NeatCarError, ValueError):
    """A genome does not have the input/output layout a car controller needs."""


class SimulationError(NeatCarError):
    """More than one simulation task failed during a run."""

    def __init__(self, message: str, failures: list[BaseException]):
        super().__init__(message)
        self.failures = failures
