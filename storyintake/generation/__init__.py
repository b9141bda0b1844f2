"""Intake generation for StoryIntake."""

from .extractor import StoryExtractor

__all__ = ['StoryExtractor']
