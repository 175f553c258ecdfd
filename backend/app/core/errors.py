"""
Typed failures raised by the lifecycle services.

Each failure carries a FailureKind tag and an optional structured detail.
Raised inside ``async with session.begin()`` they roll the transaction back;
the API layer renders them through a single exception handler.
"""
from enum import Enum
from typing import Any, Optional


class FailureKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    PRECONDITION_FAILED = "precondition_failed"
    VALIDATION_FAILED = "validation_failed"
    INCOMPLETE_DEPENDENTS = "incomplete_dependents"
    DUPLICATE_PROMOTION = "duplicate_promotion"
    INTERNAL = "internal"


class LifecycleError(Exception):
    """Base class for every failure an operation can report to its caller."""

    kind: FailureKind = FailureKind.INTERNAL
    status_code: int = 500

    def __init__(self, message: str, detail: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error": self.kind.value, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body

    def __repr__(self):
        return f"<{type(self).__name__} {self.kind.value}: {self.message}>"


class Unauthorized(LifecycleError):
    kind = FailureKind.UNAUTHORIZED
    status_code = 401


class Forbidden(LifecycleError):
    kind = FailureKind.FORBIDDEN
    status_code = 403


class NotFound(LifecycleError):
    kind = FailureKind.NOT_FOUND
    status_code = 404


class PreconditionFailed(LifecycleError):
    """The record is not in the status the requested transition needs."""
    kind = FailureKind.PRECONDITION_FAILED
    status_code = 409


class ValidationFailed(LifecycleError):
    kind = FailureKind.VALIDATION_FAILED
    status_code = 400


class IncompleteDependents(LifecycleError):
    """Semantic failure found under lock; ``detail`` lists every offending item."""
    kind = FailureKind.INCOMPLETE_DEPENDENTS
    status_code = 422


class DuplicatePromotion(LifecycleError):
    kind = FailureKind.DUPLICATE_PROMOTION
    status_code = 409


class InternalFailure(LifecycleError):
    kind = FailureKind.INTERNAL
    status_code = 500


class AnalysisUnavailable(InternalFailure):
    """The analysis collaborator failed, timed out or returned unusable output."""
    status_code = 502
