"""
Resilient structured generation.

One invocation runs a short, strictly sequential state machine:

    Idle -> Calling -> Success
                    -> RateLimited      wait exactly the signalled time, call once more
                    -> ValidationFailed repair if possible, else raise the original error
                    -> FatalError       raise

Nothing is shared between invocations except the read-only configuration
handed to the constructor, so concurrent invocations need no locking.
Cancelling the surrounding task aborts the call, the rate-limit wait and the
repair call alike.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Type

from pydantic import BaseModel, ValidationError

from ..config import get_settings
from .errors import GenerationError, RepairExhaustedError, SchemaValidationError
from .outcomes import RateLimited, classify_outcome
from .progress import ProgressSummarizer
from .streaming import ObjectStream, extract_json_from_markdown
from ..utils.logging import get_logger, log_api_error, log_api_success, log_rate_limit

# (raw_text, cause) -> replacement text, or None to give up
RepairFunction = Callable[[str, Exception], Awaitable[Optional[str]]]


class ResilientInvoker:
    """Wraps structured generation calls with rate-limit recovery and output repair."""

    def __init__(
        self,
        client,
        model: Optional[str] = None,
        repair: Optional[RepairFunction] = None,
        logger: Optional[logging.Logger] = None,
        component: str = "generate_object"
    ):
        """
        Args:
            client: Generation capability with ``generate_object`` and
                ``stream_object`` coroutines (normally OpenRouterClient)
            model: Model ID (settings default when None)
            repair: Optional repair strategy for invalid output
            logger: Logger for structured events
            component: Name reported in log events
        """
        self.client = client
        self.model = model or get_settings().default_model
        self.repair = repair
        self.logger = logger or get_logger("invoker")
        self.component = component

    async def generate_object(
        self,
        schema: Type[BaseModel],
        system_prompt: Optional[str],
        prompt: str,
        *,
        validate_schema: Optional[Type[BaseModel]] = None,
        **kwargs: Any
    ) -> BaseModel:
        """
        Generate one object for ``schema``.

        Args:
            schema: Schema sent to the model (often an extractable variant)
            system_prompt: Optional system prompt
            prompt: User prompt
            validate_schema: Schema a repaired answer must satisfy; the
                original, non-partial schema when ``schema`` is a partial one
            **kwargs: Passed to the client (temperature, max_tokens, ...)
        """
        async def call(max_retries: Optional[int]) -> BaseModel:
            return await self.client.generate_object(
                model=self.model,
                schema=schema,
                system_prompt=system_prompt,
                prompt=prompt,
                max_retries=max_retries,
                **kwargs
            )

        return await self._invoke(call, validate_schema or schema)

    async def stream_object(
        self,
        schema: Type[BaseModel],
        system_prompt: Optional[str],
        prompt: str,
        *,
        on_partial: Optional[Callable[[Any], None]] = None,
        progress: Optional[ProgressSummarizer] = None,
        validate_schema: Optional[Type[BaseModel]] = None,
        **kwargs: Any
    ) -> BaseModel:
        """
        Stream one object for ``schema``.

        The partial stream is always drained before the final object is
        requested. ``on_partial`` sees every partial value; ``progress``
        samples them at its own pace.
        """
        async def call(max_retries: Optional[int]) -> BaseModel:
            stream = await self.client.stream_object(
                model=self.model,
                schema=schema,
                system_prompt=system_prompt,
                prompt=prompt,
                max_retries=max_retries,
                **kwargs
            )
            return await self._drain(stream, on_partial, progress)

        return await self._invoke(call, validate_schema or schema)

    async def _drain(
        self,
        stream: ObjectStream,
        on_partial: Optional[Callable[[Any], None]],
        progress: Optional[ProgressSummarizer]
    ) -> BaseModel:
        if progress:
            progress.start()
        try:
            async for partial in stream.partials:
                if on_partial:
                    on_partial(partial)
                if progress:
                    progress.observe(partial)
        finally:
            if progress:
                await progress.stop()

        return await stream.result()

    async def _invoke(
        self,
        call: Callable[[Optional[int]], Awaitable[BaseModel]],
        validate_schema: Type[BaseModel]
    ) -> BaseModel:
        try:
            value = await self._call_with_rate_limit(call)
        except SchemaValidationError as error:
            value = await self._repair_or_raise(error, validate_schema)
        except GenerationError as error:
            log_api_error(self.logger, self.component, str(error), outcome=classify_outcome(error).tag)
            raise

        log_api_success(self.logger, self.component, model=self.model)
        return value

    async def _call_with_rate_limit(self, call: Callable[[Optional[int]], Awaitable[BaseModel]]) -> BaseModel:
        try:
            return await call(None)
        except GenerationError as error:
            outcome = classify_outcome(error)
            if not isinstance(outcome, RateLimited):
                raise

            # The provider told us how long to wait: wait exactly that and
            # retry once with the client's own retries disabled.
            log_rate_limit(self.logger, self.component, outcome.wait_ms)
            await asyncio.sleep(outcome.wait_ms / 1000)
            return await call(0)

    async def _repair_or_raise(self, error: SchemaValidationError, validate_schema: Type[BaseModel]) -> BaseModel:
        """
        Try the repair strategy on invalid output.

        The original error is what the caller sees whenever repair is not
        possible or does not produce a valid object.
        """
        if self.repair is None:
            log_api_error(self.logger, self.component, str(error), outcome="validation_failed")
            raise error

        try:
            repaired_text = await self.repair(error.raw_text, error.cause)
        except Exception as repair_failure:
            self.logger.warning(f"Repair attempt failed: {repair_failure}")
            log_api_error(self.logger, self.component, str(error), outcome="validation_failed")
            raise error

        if not repaired_text:
            log_api_error(self.logger, self.component, str(error), outcome="validation_failed")
            raise error

        try:
            data = json.loads(extract_json_from_markdown(repaired_text))
            value = validate_schema.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as repair_error:
            self.logger.error(f"Repair produced invalid output: {repair_error}")
            log_api_error(self.logger, self.component, str(error), outcome="repair_exhausted")
            raise RepairExhaustedError(error, repair_error) from error

        self.logger.info(f"Repaired invalid output for {validate_schema.__name__}")
        return value
