"""CLI for StoryIntake."""

from .main import app

__all__ = ['app']
