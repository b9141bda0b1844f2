"""Conversational story intake: one extraction turn at a time."""
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel

from ..api import ProgressSummarizer, RepairFunction, ResilientInvoker
from ..merge import merge_with_schema
from ..models import BeatPurpose, ExtractionResult, Story
from ..prompts import get_prompt_loader
from ..schema import get_missing_required_fields, strip_nulls, to_extractable_partial

PROMPT_NAME = "extraction/story"


class StoryExtractor:
    """
    Extracts story facts from free-form user messages.

    Each turn asks the model for the extractable variant of the record
    schema, strips the nulls it used for unknown values, merges the remaining
    facts into the accumulated record and reports the required fields that
    are still missing.
    """

    def __init__(
        self,
        client,
        model: Optional[str] = None,
        repair: Optional[RepairFunction] = None,
        schema: Type[BaseModel] = Story,
        available_styles: Optional[List[str]] = None
    ):
        """
        Initialize story extractor.

        Args:
            client: Generation client (normally OpenRouterClient)
            model: Model to use (settings default when None)
            repair: Optional repair strategy for invalid output
            schema: Record schema to fill
            available_styles: Style preset names the model may pick from
        """
        self.schema = schema
        self.extractable = to_extractable_partial(schema)
        self.available_styles = available_styles or []
        self.invoker = ResilientInvoker(client, model, repair=repair, component="story_extractor")

    def _request(self, user_message: str, current: Mapping[str, Any], question: Optional[str]) -> Dict[str, Any]:
        return get_prompt_loader().build_request(
            PROMPT_NAME,
            user_message=user_message,
            current_story=dict(current),
            question=question,
            beat_purposes=[p.value for p in BeatPurpose],
            available_styles=self.available_styles
        )

    def _fold(self, extracted: Any, current: Mapping[str, Any]) -> ExtractionResult:
        merged = merge_with_schema(current, strip_nulls(extracted), self.schema)
        return ExtractionResult(
            data=merged,
            missing_fields=get_missing_required_fields(merged, self.schema)
        )

    async def extract(
        self,
        user_message: str,
        current: Optional[Mapping[str, Any]] = None,
        question: Optional[str] = None
    ) -> ExtractionResult:
        """
        Run one extraction turn.

        Args:
            user_message: What the user said
            current: Record accumulated so far
            question: The question the user was answering, if any

        Returns:
            Merged record and the required fields still missing
        """
        current = current or {}
        extracted = await self.invoker.generate_object(
            self.extractable,
            **self._request(user_message, current, question)
        )
        return self._fold(extracted, current)

    async def extract_streaming(
        self,
        user_message: str,
        current: Optional[Mapping[str, Any]] = None,
        question: Optional[str] = None,
        on_partial: Optional[Callable[[Any], None]] = None,
        progress: Optional[ProgressSummarizer] = None
    ) -> ExtractionResult:
        """Same as ``extract``, streaming partial values while the model answers."""
        current = current or {}
        extracted = await self.invoker.stream_object(
            self.extractable,
            on_partial=on_partial,
            progress=progress,
            **self._request(user_message, current, question)
        )
        return self._fold(extracted, current)

    def finalize(self, result: ExtractionResult) -> BaseModel:
        """
        Validate a complete record against the full schema.

        Raises:
            pydantic.ValidationError: if the record is incomplete or invalid
        """
        return self.schema.model_validate(result.data)
