from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from pydantic import ValidationError

from ..store.base import DuplicateKeyError, TransactionAborted
from .logging import get_logger
from . import metrics

logger = get_logger(name=__name__)

_ENTITY_LABELS = {"users": "User", "tasks": "Task"}


class ServiceError(RuntimeError):
    """Base class for failures surfaced to API callers."""

    status_code = 500
    category = "unclassified"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, data: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.data = dict(data or {})
        super().__init__(self.message)


class InvalidQueryParameter(ServiceError):
    status_code = 400
    category = "invalid_query_parameter"

    def __init__(self, parameter: str, detail: str | None = None) -> None:
        self.parameter = parameter
        message = f'Invalid JSON in "{parameter}"' if detail is None else f'Invalid "{parameter}": {detail}'
        super().__init__(message, data={"parameter": parameter})


class MissingRequiredField(ServiceError):
    status_code = 400
    category = "missing_required_field"

    def __init__(self, fields: Iterable[str], *, context: str | None = None) -> None:
        self.fields = tuple(fields)
        joined = " and ".join(self.fields)
        verb = "is" if len(self.fields) == 1 else "are"
        message = f"{joined} {verb} required"
        if context:
            message = f"{message} for {context}"
        super().__init__(message, data={"fields": list(self.fields)})


class ValidationFailed(ServiceError):
    status_code = 400
    category = "validation_failed"
    default_message = "Validation error"


class InvalidReference(ServiceError):
    status_code = 400
    category = "invalid_reference"

    def __init__(self, field_name: str, value: Any) -> None:
        self.field_name = field_name
        self.value = value
        super().__init__(
            f'Invalid identifier in "{field_name}": {value!r}',
            data={"field": field_name, "value": value},
        )


class ReferenceNotFound(ServiceError):
    status_code = 400
    category = "reference_not_found"

    def __init__(self, field_name: str, value: Any, *, entity: str) -> None:
        self.field_name = field_name
        self.value = value
        super().__init__(
            f'{entity} referenced by "{field_name}" does not exist: {value}',
            data={"field": field_name, "value": value},
        )


class NotFound(ServiceError):
    status_code = 404
    category = "not_found"
    default_message = "Not found"

    @classmethod
    def for_collection(cls, collection: str) -> "NotFound":
        return cls(f"{_ENTITY_LABELS.get(collection, 'Item')} not found")


class UniquenessConflict(ServiceError):
    status_code = 409
    category = "uniqueness_conflict"


class TransactionFailure(ServiceError):
    status_code = 500
    category = "transaction_failure"
    default_message = "Transaction failed"


@dataclass(slots=True, frozen=True)
class ErrorOutcome:
    status_code: int
    category: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)


def classify_failure(exc: BaseException, *, fallback: str) -> ErrorOutcome:
    """Map any failure raised while serving a request onto the closed error taxonomy."""

    error = _to_service_error(exc, fallback=fallback)
    metrics.increment_request_error(category=error.category)
    if error.status_code >= 500:
        logger.error("request_failed", category=error.category, error=str(exc), exc_info=exc)
    else:
        logger.info("request_rejected", category=error.category, status=error.status_code, message=error.message)
    return ErrorOutcome(
        status_code=error.status_code,
        category=error.category,
        message=error.message,
        data=error.data,
    )


def _to_service_error(exc: BaseException, *, fallback: str) -> ServiceError:
    if isinstance(exc, ServiceError):
        return exc
    if isinstance(exc, ValidationError):
        return ValidationFailed(data={"errors": exc.errors(include_url=False, include_context=False)})
    if isinstance(exc, DuplicateKeyError):
        entity = _ENTITY_LABELS.get(exc.collection, "Item")
        return UniquenessConflict(
            f"{entity} with this {exc.field} already exists",
            data={"field": exc.field, "value": exc.value},
        )
    if isinstance(exc, TransactionAborted):
        return TransactionFailure(fallback)
    return ServiceError(fallback)


__all__ = [
    "ErrorOutcome",
    "InvalidQueryParameter",
    "InvalidReference",
    "MissingRequiredField",
    "NotFound",
    "ReferenceNotFound",
    "ServiceError",
    "TransactionFailure",
    "UniquenessConflict",
    "ValidationFailed",
    "classify_failure",
]
