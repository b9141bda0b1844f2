"""StoryIntake - conversational story intake with structured LLM extraction."""

__version__ = "0.1.0"
__author__ = "StoryIntake"

from .api import OpenRouterClient, ResilientInvoker
from .generation import StoryExtractor
from .models import Story, ExtractionResult

__all__ = [
    'OpenRouterClient',
    'ResilientInvoker',
    'StoryExtractor',
    'Story',
    'ExtractionResult',
]
