"""
Error taxonomy for the intelligence engines.

Callers see human-readable messages. The underlying storage error is
chained onto CalculationError as __cause__ and logged, never put into
the message itself.
"""

from finpulse.services.storage.interface import NotFoundError


class FinPulseError(Exception):
    """Base exception for domain failures."""
    pass


class ValidationError(FinPulseError):
    """Malformed input, e.g. a missing insight id or an unknown action."""
    pass


class CalculationError(FinPulseError):
    """An underlying data read or write failed during a calculation."""
    pass


class UnauthorizedError(FinPulseError):
    """No resolved user for the calling session."""
    pass


class PipelineError(FinPulseError):
    """
    One or more steps of a per-user analysis pipeline failed.

    The remaining steps still ran; `failures` maps step name to message.
    """

    def __init__(self, user_id: str, failures: dict[str, str]):
        self.user_id = user_id
        self.failures = failures
        steps = ", ".join(failures)
        super().__init__(f"Analysis pipeline failed for user {user_id} in: {steps}")

    @property
    def failed_steps(self) -> list[str]:
        return list(self.failures)


__all__ = [
    "CalculationError",
    "FinPulseError",
    "NotFoundError",
    "PipelineError",
    "UnauthorizedError",
    "ValidationError",
]
