"""
Settlement pipeline errors

Every failure the pipeline can surface is a PipelineError. The orchestrator
annotates errors with the step that failed and the pickup request id (once
one exists) so callers can retry only that step.

Rejected verdicts are NOT errors - they are terminal outcomes.
"""
from typing import List, Optional


class PipelineError(Exception):
    """Base class for settlement pipeline failures."""

    retryable: bool = True

    def __init__(self, message: str, step: Optional[str] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.request_id = request_id

    def with_context(self, step: Optional[str] = None, request_id: Optional[str] = None) -> 'PipelineError':
        """Attach step / request id without overwriting what is already set."""
        if step and not self.step:
            self.step = step
        if request_id and not self.request_id:
            self.request_id = request_id
        return self

    def to_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "step": self.step,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.step:
            parts.append(f"step={self.step}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " | ".join(parts)


class ValidationError(PipelineError):
    """Missing or malformed input, detected before any I/O."""
    retryable = False


class UploadError(PipelineError):
    """Image storage failure."""


class StoreError(PipelineError):
    """Persistence failure on create/update/credit."""


class PickupNotFoundError(StoreError):
    """No pickup request with the given id."""
    retryable = False


class VerificationConflictError(StoreError):
    """Attempt to flip a terminal verification status to the other terminal status."""
    retryable = False


class ClassifierError(PipelineError):
    """Base for every classifier failure. Always retryable against the same request id."""


class ClassifierConfigError(ClassifierError):
    """Missing API key or empty model list."""


class ClassifierTransportError(ClassifierError):
    """Network / API failure talking to the classification service."""


class ClassifierResponseError(ClassifierError):
    """Model output had no parseable verdict or a field of the wrong type."""


class ClassifierExhaustedError(ClassifierError):
    """Every configured fallback model failed."""

    def __init__(self, message: str, attempts: Optional[List[tuple]] = None, **kwargs):
        super().__init__(message, **kwargs)
        # [(model, error), ...] in the order tried
        self.attempts = attempts or []

    @property
    def last_error(self) -> Optional[ClassifierError]:
        return self.attempts[-1][1] if self.attempts else None


class InconsistencyError(PipelineError):
    """
    Request persisted as verified but the ledger credit failed.

    Repaired by SettlementService.retry_credit() or the reconciliation pass;
    both are idempotent per request.
    """
