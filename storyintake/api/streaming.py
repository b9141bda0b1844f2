"""Streaming response handling for structured generation."""
import copy
import json
from typing import Any, AsyncIterator, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from .errors import SchemaValidationError, StreamNotDrainedError
from ..utils.logging import get_logger


def extract_json_from_markdown(content: str) -> str:
    """
    Strip a markdown code fence around JSON, if there is one.

    Args:
        content: The content that might contain JSON in markdown

    Returns:
        The JSON text without fences (unchanged when no fence is present)
    """
    content = content.strip()

    # Pattern 1: ```json ... ``` or ``` ... ```
    if content.startswith("```"):
        content = content[7:] if content.startswith("```json") else content[3:]
        if "```" in content:
            content = content[:content.index("```")]
        return content.strip()

    # Pattern 2: prose followed by a fenced block
    if content.endswith("```") and "```" in content[:-3]:
        start = content.index("```")
        if content[start:].startswith("```json"):
            return content[start + 7:-3].strip()
        return content[start + 3:-3].strip()

    return content


def parse_object(text: str, schema: Type[BaseModel]) -> BaseModel:
    """
    Parse generated text and validate it against a schema.

    Raises:
        SchemaValidationError: carrying the raw text and the JSON or pydantic error
    """
    try:
        data = json.loads(extract_json_from_markdown(text))
    except json.JSONDecodeError as e:
        raise SchemaValidationError(text, e) from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError(text, e) from e


def _close_json(text: str) -> str:
    """Close any open string, object and array at the end of a JSON prefix."""
    closers = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == '{':
            closers.append('}')
        elif ch == '[':
            closers.append(']')
        elif ch in '}]' and closers:
            closers.pop()

    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'

    return text + ''.join(reversed(closers))


def parse_partial_json(text: str) -> Optional[Any]:
    """
    Best-effort parse of an incomplete JSON document.

    Open strings and containers are closed; when that is not enough the text is
    cut back to the previous separator until something parses.

    Returns:
        The parsed prefix, or None when nothing usable has arrived yet
    """
    text = extract_json_from_markdown(text) if text.lstrip().startswith("```") else text
    starts = [i for i in (text.find('{'), text.find('[')) if i >= 0]
    if not starts:
        return None
    candidate = text[min(starts):]

    while candidate:
        try:
            return json.loads(_close_json(candidate.rstrip().rstrip(',')))
        except json.JSONDecodeError:
            cut = max(candidate.rfind(','), candidate.rfind('{'), candidate.rfind('['))
            if cut < 0:
                return None
            # Keep an opening bracket, drop a separator
            shorter = candidate[:cut + 1] if candidate[cut] in '{[' else candidate[:cut]
            if shorter == candidate:
                return None
            candidate = shorter

    return None


async def iter_sse_events(response) -> AsyncIterator[Dict[str, Any]]:
    """Yield decoded JSON events from an OpenRouter SSE response."""
    logger = get_logger("streaming")

    async for raw_line in response.content:
        line = raw_line.decode('utf-8').strip()
        if not line or line.startswith(':'):
            # Blank separators and keep-alive comments
            continue
        if not line.startswith('data: '):
            continue

        data = line[6:]
        if data == '[DONE]':
            break

        try:
            yield json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed SSE event: {data[:200]}")


class ObjectStream:
    """
    Incremental view of a streamed structured generation.

    Iterate ``partials`` to completion, then await ``result()`` for the final
    validated object. The provider only knows the final object once the text
    stream has ended, so ``result()`` refuses to run before that.
    """

    def __init__(self, chunks: AsyncIterator[str], schema: Type[BaseModel]):
        self.schema = schema
        self.text = ""
        self._chunks = chunks
        self._done = False
        self._consumed = False

    @property
    def done(self) -> bool:
        return self._done

    @property
    def partials(self) -> AsyncIterator[Any]:
        if self._consumed:
            raise RuntimeError("ObjectStream partials can only be iterated once")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        last = None
        async for chunk in self._chunks:
            self.text += chunk
            partial = parse_partial_json(self.text)
            if partial is not None and partial != last:
                last = partial
                yield copy.deepcopy(partial)
        self._done = True

    async def drain(self) -> None:
        """Consume the rest of the stream without looking at partials."""
        if not self._consumed:
            async for _ in self.partials:
                pass

    async def result(self) -> BaseModel:
        """Validate the full text against the schema."""
        if not self._done:
            raise StreamNotDrainedError("Stream must be fully consumed before the final object is available")
        return parse_object(self.text, self.schema)


class TokenCounter:
    """Track token usage across requests."""

    def __init__(self):
        """Initialize token counter."""
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.request_count = 0

    def update(self, usage: Dict[str, int]):
        """Update token counts from usage data."""
        self.prompt_tokens += usage.get('prompt_tokens', 0)
        self.completion_tokens += usage.get('completion_tokens', 0)
        self.total_tokens += usage.get('total_tokens', 0)
        self.request_count += 1

    def get_summary(self) -> Dict[str, Any]:
        """Get usage summary."""
        return {
            'prompt_tokens': self.prompt_tokens,
            'completion_tokens': self.completion_tokens,
            'total_tokens': self.total_tokens,
            'request_count': self.request_count,
            'avg_tokens_per_request': (
                self.total_tokens / self.request_count if self.request_count > 0 else 0
            )
        }

    def reset(self):
        """Reset all counters."""
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.request_count = 0
