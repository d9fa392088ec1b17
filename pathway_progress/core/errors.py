"""Exception taxonomy for the progression engine.

Configuration and state-conflict problems are recoverable: the engine
logs them and falls back to a locked / unchanged result so that the
learner-facing path never throws.  NotFoundError is a caller bug and is
always propagated.
"""

from __future__ import annotations

from uuid import UUID


class ProgressEngineError(Exception):
    pass


class ConfigurationError(ProgressEngineError, ValueError):
    """Invalid prerequisite, drip, activity or override definition."""

    def __init__(self, message: str, *, cycle: list[UUID] | None = None) -> None:
        super().__init__(message)
        self.cycle = cycle


class NotFoundError(ProgressEngineError, LookupError):
    def __init__(self, kind: str, ident: UUID) -> None:
        super().__init__(f"{kind} not found: {ident}")
        self.kind = kind
        self.ident = ident


class StateConflictError(ProgressEngineError):
    """Rejected state update; the stored state is left untouched.

    reason: complete_is_terminal | not_in_pathway | already_assigned
    """

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class SignalValidationError(ProgressEngineError, ValueError):
    pass
