"""
Exception types shared by the taproom consumers.

A consumer decides between retry, defer and dead-letter by looking at
``retryable`` and ``retry_after`` on the error it caught, never at the
message text. Anything raised past a client or store boundary is therefore
a :class:`TaproomError`.

Transient (retryable by default)::

    TransientError
      ├── UpstreamError ── UpstreamTimeoutError, RateLimitError
      ├── MalformedResponseError
      └── StoreWriteError

Permanent::

    ValidationError, ConfigError, ExhaustedRetriesError

Quota denial is not an error. :class:`~taproom.execution.quota.Admission`
reports it and the consumers turn it into a deferred redelivery.

Example::

    if response.status_code == 429:
        raise RateLimitError("Perplexity returned 429").with_context(http_status=429)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    NETWORK = "NETWORK"
    UPSTREAM = "UPSTREAM"
    PARSE = "PARSE"
    STORAGE = "STORAGE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    PIPELINE = "PIPELINE"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Where an error happened. Unknown keys go to ``metadata``."""

    pipeline: str | None = None
    message_id: str | None = None
    beer_id: str | None = None
    service: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def update(self, **fields: Any) -> None:
        for key, value in fields.items():
            if key != "metadata" and key in self.__dataclass_fields__:
                setattr(self, key, value)
            else:
                self.metadata[key] = value

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if k != "metadata" and v is not None}
        data.update(self.metadata)
        return data


class TaproomError(Exception):
    """Base class. Subclasses pick the default category and retryability."""

    category_default = ErrorCategory.INTERNAL
    retryable_default = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category if category is not None else self.category_default
        self.retryable = self.retryable_default if retryable is None else retryable
        self.retry_after = retry_after
        self.context = context if context is not None else ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **fields: Any) -> TaproomError:
        """Attach context fields and return ``self`` so it can be raised inline."""
        self.context.update(**fields)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Log-ready fields. Empty parts are left out."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            data["retry_after"] = self.retry_after
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# ── Transient ────────────────────────────────────────────────────────


class TransientError(TaproomError):
    category_default = ErrorCategory.NETWORK
    retryable_default = True


class UpstreamError(TransientError):
    """Non-2xx answer or a failed request to an external service."""

    category_default = ErrorCategory.UPSTREAM


class UpstreamTimeoutError(UpstreamError):
    category_default = ErrorCategory.NETWORK


class RateLimitError(UpstreamError):
    """HTTP 429. ``retry_after`` defaults to two minutes."""

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after: int = 120, **kwargs: Any):
        super().__init__(message, retry_after=retry_after, **kwargs)


class MalformedResponseError(TransientError):
    """2xx answer whose body cannot be used."""

    category_default = ErrorCategory.PARSE


class StoreWriteError(TransientError):
    category_default = ErrorCategory.STORAGE


# ── Permanent ────────────────────────────────────────────────────────


class ValidationError(TaproomError):
    category_default = ErrorCategory.VALIDATION


class ConfigError(TaproomError):
    category_default = ErrorCategory.CONFIG


class ExhaustedRetriesError(TaproomError):
    """A message ran out of delivery attempts."""

    category_default = ErrorCategory.PIPELINE

    def __init__(self, message_id: str, attempts: int, reason: str | None = None):
        text = f"Message {message_id} exhausted {attempts} delivery attempts"
        super().__init__(
            f"{text}: {reason}" if reason else text,
            context=ErrorContext(message_id=message_id),
        )
        self.attempts = attempts
        self.reason = reason


# ── Helpers ──────────────────────────────────────────────────────────


def is_retryable(error: Exception) -> bool:
    if isinstance(error, TaproomError):
        return error.retryable
    return isinstance(error, OSError)


def get_retry_after(error: Exception) -> int | None:
    return error.retry_after if isinstance(error, TaproomError) else None


def categorize_error(error: Exception) -> ErrorCategory:
    if isinstance(error, TaproomError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "ExhaustedRetriesError",
    "MalformedResponseError",
    "RateLimitError",
    "StoreWriteError",
    "TaproomError",
    "TransientError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "ValidationError",
    "categorize_error",
    "get_retry_after",
    "is_retryable",
]
