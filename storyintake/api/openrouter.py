"""OpenRouter API client implementation."""
import asyncio
import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Type

import aiohttp
from pydantic import BaseModel
from rich.console import Console
from rich.text import Text

from ..config import get_settings
from ..config.constants import RETRY_INITIAL_DELAY_MS, RETRY_MAX_DELAY_MS
from .errors import GenerationError, RateLimitError, TransportError
from .streaming import ObjectStream, TokenCounter, iter_sse_events, parse_object
from ..utils.logging import get_logger
from ..utils.session_logger import get_session_logger


def parse_retry_after(headers: Mapping[str, str]) -> Optional[int]:
    """
    Read the wait duration a rate-limited response asks for.

    Understands ``retry-after-ms``, ``retry-after`` in seconds and
    ``retry-after`` as an HTTP date.

    Returns:
        Milliseconds to wait, or None when no usable duration was sent
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    value = lowered.get('retry-after-ms')
    if value:
        try:
            return max(0, int(float(value)))
        except ValueError:
            pass

    value = lowered.get('retry-after')
    if not value:
        return None

    try:
        return max(0, int(float(value) * 1000))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0, int(delta * 1000))


class OpenRouterClient:
    """Handles OpenRouter API interactions: free text, structured objects and streams."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        console: Optional[Console] = None,
        base_url: Optional[str] = None
    ):
        """
        Initialize OpenRouter client.

        Args:
            api_key: Optional API key (uses environment if not provided)
            console: Optional Rich console for output
            base_url: Optional API base URL (uses settings if not provided)
        """
        self.settings = get_settings()
        self.api_key = api_key or self.settings.openrouter_api_key
        if not self.api_key.startswith('sk-or-'):
            raise ValueError(f"Invalid OpenRouter API key format: {self.api_key[:10]}...")
        self.base_url = base_url or self.settings.openrouter_base_url
        self.console = console or Console()
        self.token_counter = TokenCounter()
        self.logger = get_logger("openrouter")
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def ensure_session(self):
        """Ensure aiohttp session is created with timeouts suited to long generations."""
        if not self._session:
            self._session = aiohttp.ClientSession(
                headers=self._get_headers(),
                timeout=aiohttp.ClientTimeout(
                    total=None,          # Long structured generations are fine
                    connect=30,
                    sock_read=120        # Between chunks
                )
            )

    async def close(self):
        """Close the client session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> Dict[str, str]:
        """Get request headers."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": "https://github.com/storyintake",
            "X-Title": "StoryIntake"
        }

    @staticmethod
    def _build_messages(prompt: str, system_prompt: Optional[str] = None) -> List[Dict[str, str]]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _response_format(schema: Type[BaseModel]) -> Dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": schema.__name__,
                "strict": False,
                "schema": schema.model_json_schema()
            }
        }

    async def _post(self, request_data: Dict[str, Any], max_retries: Optional[int] = None) -> aiohttp.ClientResponse:
        """
        POST a chat completion request and return the open response.

        Server errors and dropped connections are retried with exponential
        backoff up to ``max_retries`` times. Rate limits are never retried
        here; they surface as RateLimitError so the caller owns that retry.

        Raises:
            RateLimitError: on HTTP 429
            TransportError: on any other failure
        """
        await self.ensure_session()
        retries = self.settings.max_retries if max_retries is None else max_retries
        attempt = 0

        while True:
            try:
                response = await self._session.post(
                    f"{self.base_url}/chat/completions",
                    json=request_data
                )
            except aiohttp.ClientError as e:
                if attempt < retries:
                    attempt += 1
                    await self._backoff(attempt, f"Connection error: {e}")
                    continue
                raise TransportError(f"Connection to OpenRouter failed: {e}") from e

            if response.status < 400:
                return response

            body = await response.text()
            response.release()

            if response.status == 429:
                raise RateLimitError(
                    f"Rate limited by OpenRouter: {body[:200]}",
                    retry_after_ms=parse_retry_after(response.headers)
                )

            if response.status >= 500 and attempt < retries:
                attempt += 1
                await self._backoff(attempt, f"Server error {response.status}")
                continue

            raise TransportError(
                f"OpenRouter returned HTTP {response.status}: {body[:200]}",
                status=response.status,
                body=body
            )

    async def _backoff(self, attempt: int, reason: str):
        delay_ms = min(RETRY_INITIAL_DELAY_MS * 2 ** (attempt - 1), RETRY_MAX_DELAY_MS)
        self.logger.warning(f"{reason}; retrying in {delay_ms}ms (attempt {attempt})")
        await asyncio.sleep(delay_ms / 1000)

    async def _request_json(
        self,
        request_data: Dict[str, Any],
        messages: List[Dict[str, str]],
        max_retries: Optional[int]
    ) -> Dict[str, Any]:
        """Non-streaming request returning the content, usage and finish reason."""
        try:
            response = await self._post(request_data, max_retries)
            try:
                data = await response.json(content_type=None)
            except (aiohttp.ClientError, ValueError) as e:
                raise TransportError(f"Unreadable response from OpenRouter: {e}") from e
            finally:
                response.release()
        except Exception as e:
            session_logger = get_session_logger()
            if session_logger:
                session_logger.log_api_error(
                    model=request_data["model"],
                    error=e,
                    messages=messages,
                    request_params={k: v for k, v in request_data.items() if k != "messages"}
                )
            raise

        try:
            choice = data['choices'][0]
            result = {
                'content': choice['message']['content'] or '',
                'usage': data.get('usage', {}),
                'finish_reason': choice.get('finish_reason'),
                'model': data.get('model')
            }
        except (KeyError, IndexError, TypeError) as e:
            raise TransportError(f"Unexpected response shape from OpenRouter: {data}") from e

        session_logger = get_session_logger()
        if session_logger:
            session_logger.log_api_call(
                model=request_data["model"],
                messages=messages,
                response=result['content'],
                tokens=result['usage'],
                request_params={k: v for k, v in request_data.items() if k not in ("messages", "response_format")},
                finish_reason=result['finish_reason']
            )

        self._record_usage(result['usage'])
        return result

    def _record_usage(self, usage: Optional[Dict[str, int]]):
        if usage:
            self.token_counter.update(usage)
            if self.settings.show_token_usage:
                self._display_usage(usage)

    async def completion(
        self,
        model: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> str:
        """
        Simple free-text completion.

        Args:
            model: Model ID to use
            prompt: User prompt
            system_prompt: Optional system prompt
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            max_retries: Transport retries (settings default when None)
            **kwargs: Additional API parameters

        Returns:
            Generated text content
        """
        messages = self._build_messages(prompt, system_prompt)
        request_data = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
            **kwargs
        }
        if max_tokens:
            request_data["max_tokens"] = max_tokens

        self.logger.debug(f"Completion request: model={model}, temp={temperature}, max_tokens={max_tokens}")
        result = await self._request_json(request_data, messages, max_retries)
        return result['content']

    async def generate_object(
        self,
        model: str,
        schema: Type[BaseModel],
        system_prompt: Optional[str],
        prompt: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> BaseModel:
        """
        Generate a single object validated against ``schema``.

        Raises:
            RateLimitError: provider rate limit, with retry_after_ms when known
            TransportError: any other transport or server failure
            SchemaValidationError: output did not parse or validate
        """
        messages = self._build_messages(prompt, system_prompt)
        request_data = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
            "response_format": self._response_format(schema),
            **kwargs
        }
        if max_tokens:
            request_data["max_tokens"] = max_tokens

        self.logger.debug(f"Object request: model={model}, schema={schema.__name__}, max_retries={max_retries}")
        result = await self._request_json(request_data, messages, max_retries)
        return parse_object(result['content'], schema)

    async def stream_object(
        self,
        model: str,
        schema: Type[BaseModel],
        system_prompt: Optional[str],
        prompt: str,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        max_retries: Optional[int] = None,
        **kwargs
    ) -> ObjectStream:
        """
        Start a streamed object generation.

        Transport errors (including rate limits) are raised here, before any
        partial value is produced. An error event sent mid-stream is raised
        the same way from the partials iteration. Validation happens in
        ``ObjectStream.result``.
        """
        messages = self._build_messages(prompt, system_prompt)
        request_data = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "stream": True,
            "response_format": self._response_format(schema),
            **kwargs
        }
        if max_tokens:
            request_data["max_tokens"] = max_tokens

        self.logger.debug(f"Stream request: model={model}, schema={schema.__name__}, max_retries={max_retries}")
        response = await self._post(request_data, max_retries)
        return ObjectStream(self._stream_content(response, model, messages), schema)

    async def _stream_content(
        self,
        response: aiohttp.ClientResponse,
        model: str,
        messages: List[Dict[str, str]]
    ) -> AsyncIterator[str]:
        content = ""
        usage: Dict[str, int] = {}
        finish_reason = None

        try:
            async for event in iter_sse_events(response):
                if event.get('error'):
                    raise self._stream_error(event['error'], len(content))
                if event.get('usage'):
                    usage = event['usage']
                for choice in event.get('choices', []):
                    delta = choice.get('delta', {}).get('content')
                    if choice.get('finish_reason'):
                        finish_reason = choice['finish_reason']
                    if delta:
                        content += delta
                        yield delta
        except aiohttp.ClientError as e:
            raise TransportError(f"Stream interrupted after {len(content)} chars: {e}") from e
        finally:
            response.release()

        session_logger = get_session_logger()
        if session_logger:
            session_logger.log_api_call(
                model=model,
                messages=messages,
                response=content,
                tokens=usage,
                request_params={"stream": True},
                finish_reason=finish_reason
            )
        self._record_usage(usage)

    def _stream_error(self, error: Any, received: int) -> GenerationError:
        """Map an error event sent after the HTTP status was already 200."""
        if not isinstance(error, dict):
            error = {"message": str(error)}

        code = error.get('code')
        try:
            status = int(code)
        except (TypeError, ValueError):
            status = None
        message = f"OpenRouter stream failed after {received} chars: {error.get('message', code)}"

        if status == 429:
            metadata = error.get('metadata')
            headers = metadata.get('headers') if isinstance(metadata, dict) else None
            if not isinstance(headers, dict):
                headers = {}
            return RateLimitError(message, retry_after_ms=parse_retry_after(headers))
        return TransportError(message, status=status, body=json.dumps(error))

    def _display_usage(self, usage: Dict[str, int]):
        """Display token usage information in a compact format."""
        prompt = usage.get('prompt_tokens', 0)
        completion = usage.get('completion_tokens', 0)
        total = usage.get('total_tokens', 0)

        status = Text()
        status.append(f"{prompt:,} + {completion:,} = {total:,} tokens", style="dim")
        self.console.print(status)

    def get_usage_summary(self) -> Dict[str, Any]:
        """Get token usage summary for the session."""
        return self.token_counter.get_summary()

    def reset_usage(self):
        """Reset token usage counters."""
        self.token_counter.reset()
