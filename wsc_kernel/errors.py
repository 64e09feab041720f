"""
Error taxonomy for the kernel.

SchemaError and AppendError are raised before anything is written.
EffectError and EvaluationError are normally recorded (in EffectResult.errors
or an evaluation trace) rather than raised. FatalError aborts the operation.
"""

from typing import List, Optional


class WscError(Exception):
    """Base class for all kernel errors."""
    pass


class SchemaError(WscError):
    """An entity failed structural or semantic validation."""

    def __init__(self, message: str, issues: Optional[List[str]] = None):
        super().__init__(message)
        self.issues = issues or []


class AppendError(WscError):
    """A chronicle append was rejected. The log is left untouched."""
    pass


class EffectError(WscError):
    """An effect handler could not resolve or patch a named entity."""
    pass


class EvaluationError(WscError):
    """A condition term could not be parsed or compared."""
    pass


class FatalError(WscError):
    """World or scenario files are missing. Nothing is mutated."""
    pass
