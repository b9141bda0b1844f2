from .openrouter import OpenRouterClient
from .invoker import ResilientInvoker, RepairFunction
from .errors import (
    GenerationError, RateLimitError, TransportError,
    SchemaValidationError, RepairExhaustedError, StreamNotDrainedError
)
from .outcomes import GenerationOutcome, Success, RateLimited, ValidationFailed, FatalError, classify_outcome
from .progress import ProgressSummarizer, create_progress_summarizer
from .repair import create_repair_function, create_logging_repair_function

__all__ = [
    'OpenRouterClient', 'ResilientInvoker', 'RepairFunction',
    'GenerationError', 'RateLimitError', 'TransportError',
    'SchemaValidationError', 'RepairExhaustedError', 'StreamNotDrainedError',
    'GenerationOutcome', 'Success', 'RateLimited', 'ValidationFailed', 'FatalError', 'classify_outcome',
    'ProgressSummarizer', 'create_progress_summarizer',
    'create_repair_function', 'create_logging_repair_function'
]
