"""Tagged outcomes of a single generation attempt."""
from dataclasses import dataclass
from typing import Any, Union

from .errors import RateLimitError, SchemaValidationError


@dataclass(frozen=True)
class Success:
    value: Any
    tag: str = "success"


@dataclass(frozen=True)
class RateLimited:
    wait_ms: int
    error: RateLimitError
    tag: str = "rate_limited"


@dataclass(frozen=True)
class ValidationFailed:
    raw_text: str
    cause: Exception
    error: SchemaValidationError
    tag: str = "validation_failed"


@dataclass(frozen=True)
class FatalError:
    error: BaseException
    tag: str = "fatal"


GenerationOutcome = Union[Success, RateLimited, ValidationFailed, FatalError]


def classify_outcome(error: BaseException) -> GenerationOutcome:
    """Map an exception raised by a generation call onto its outcome tag.

    A rate limit without a usable wait duration is fatal, as is every
    transport or unexpected error.
    """
    if isinstance(error, RateLimitError) and error.retry_after_ms is not None:
        return RateLimited(wait_ms=error.retry_after_ms, error=error)
    if isinstance(error, SchemaValidationError):
        return ValidationFailed(raw_text=error.raw_text, cause=error.cause, error=error)
    return FatalError(error=error)
