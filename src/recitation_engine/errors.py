"""Exceptions raised by the recitation engine.

Dimension mismatches, empty sequences and numeric degeneracies are not
exceptions: they come back as sentinel results (+inf distance, -inf
log-likelihood, 0 Hz pitch) for the caller to interpret.
"""


class ConfigurationError(ValueError):
    """Invalid parameters, rejected before any computation starts."""


class OperationCancelled(RuntimeError):
    """A caller-supplied cancellation event was set during a long computation."""
