"""Provisioning errors raised to callers"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from kubeharness.domain.models.outcome import ErrorClass, OperationOutcome


class ProvisioningError(RuntimeError):
    """Base error for a resource that could not be provisioned.

    Carries the terminal outcome of the retry run and the original cause.
    """

    def __init__(
        self,
        message: str,
        outcome: Optional["OperationOutcome"] = None,
        cause: Optional[BaseException] = None,
        error_class: Optional["ErrorClass"] = None,
    ):
        super().__init__(message)
        self.outcome = outcome
        self.cause = cause if cause is not None else (outcome.cause if outcome else None)
        self.error_class = error_class

    @property
    def attempts(self) -> int:
        return self.outcome.attempts if self.outcome else 0


class RequestValidationError(ProvisioningError, ValueError):
    """Malformed resource request; never retried"""

    pass


class FatalProvisioningError(ProvisioningError):
    """Non-transient failure surfaced on first sight"""

    pass


class ExhaustionError(ProvisioningError):
    """Retry bounds reached while only retryable failures were observed"""

    pass


class ProvisioningCancelledError(ProvisioningError):
    """Caller aborted an in-progress backoff wait"""

    pass
