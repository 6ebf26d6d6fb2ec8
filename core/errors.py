"""
Flow Engine Errors
==================
Exceptions raised inside a turn. ValidationError and ClassificationMiss are
always recovered locally; PersistenceError is reported back to the caller.
"""

from typing import Optional


class FlowEngineError(Exception):
    """Base class for errors raised while processing a turn."""


class ValidationError(FlowEngineError):
    """Malformed reply for the current step; the step is re-prompted."""

    def __init__(self, message: str, step: Optional[int] = None):
        super().__init__(message)
        self.step = step


class ClassificationMiss(FlowEngineError):
    """No intent rule matched the message."""


class PersistenceError(FlowEngineError):
    """Session store or external collaborator failure."""

    def __init__(self, operation: str, message: str = ""):
        super().__init__(f"{operation} failed: {message}" if message else f"{operation} failed")
        self.operation = operation
