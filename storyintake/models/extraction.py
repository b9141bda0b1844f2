"""Result of one extraction turn."""
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ExtractionResult(BaseModel):
    """Merged partial record plus what is still missing from it."""

    data: Dict[str, Any] = Field(default_factory=dict, description="Accumulated partial record")
    missing_fields: List[str] = Field(default_factory=list, description="Required fields still missing, in schema order")

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields
