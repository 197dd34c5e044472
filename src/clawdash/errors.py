"""
Error types shared across the dashboard.

Everything else is reported as data (result objects, step logs) rather
than raised.
"""


class InvalidInputError(ValueError):
    """User-supplied input was rejected before any side effects ran."""


class ReconcileError(RuntimeError):
    """No candidate config location could be brought to the desired state."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
