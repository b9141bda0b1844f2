"""Errors raised by generation calls."""
import json
from typing import Optional


class GenerationError(Exception):
    """Base class for failures of a generation call."""


class RateLimitError(GenerationError):
    """The provider asked us to slow down.

    ``retry_after_ms`` is set only when the provider sent a usable wait
    duration; without it the error is treated as fatal.
    """

    def __init__(self, message: str, retry_after_ms: Optional[int] = None, status: int = 429):
        super().__init__(message)
        self.retry_after_ms = retry_after_ms
        self.status = status


class TransportError(GenerationError):
    """Connection failure or non-success HTTP status other than a rate limit."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class SchemaValidationError(GenerationError):
    """The model produced output that does not parse or does not fit the schema.

    Carries the raw produced text and the underlying cause, which is either a
    ``json.JSONDecodeError`` or a ``pydantic.ValidationError``.
    """

    def __init__(self, raw_text: str, cause: Exception, message: Optional[str] = None):
        super().__init__(message or f"Generated output failed validation: {cause}")
        self.raw_text = raw_text
        self.cause = cause
        self.__cause__ = cause

    @property
    def is_parse_error(self) -> bool:
        """True when the text was not valid JSON at all."""
        return isinstance(self.cause, json.JSONDecodeError)


class RepairExhaustedError(SchemaValidationError):
    """A validation error that survived a repair attempt.

    ``raw_text`` and ``cause`` are those of the original failure; the
    repair's own failure is kept on ``repair_error`` for diagnostics.
    """

    def __init__(self, original: SchemaValidationError, repair_error: Exception):
        super().__init__(original.raw_text, original.cause, message=str(original))
        self.original = original
        self.repair_error = repair_error


class StreamNotDrainedError(GenerationError):
    """The final object of a stream was requested before the stream ended."""
