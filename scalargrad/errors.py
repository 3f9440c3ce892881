"""Exceptions raised by the engine and the network layer."""

from typing import Optional


class ScalarGradError(Exception):
    """Base class for all scalargrad errors."""


class DimensionMismatchError(ScalarGradError, ValueError):
    """An input sequence does not match a neuron's, layer's or network's arity."""

    def __init__(self, message: str, expected: Optional[int] = None, actual: Optional[int] = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class DomainError(ScalarGradError, ValueError):
    """A function was evaluated outside its domain (log of a non-positive value)."""


class InvalidTopologyError(ScalarGradError, ValueError):
    """A network was described with too few layers or incompatible layer widths."""


class StateError(ScalarGradError, RuntimeError):
    """Introspection was requested before the state it reports on exists."""
