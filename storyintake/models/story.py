"""Story schema progressively filled during intake."""
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, StringConstraints, model_validator

from ..schema.policies import FieldPolicy, policy_field

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]


class BeatPurpose(str, Enum):
    """Narrative function of a plot beat."""

    SETUP = "setup"          # Establish setting/characters
    BUILD = "build"          # Rising action
    CONFLICT = "conflict"    # Obstacle, struggle, complication
    TWIST = "twist"          # Surprise, reversal
    CLIMAX = "climax"        # Peak moment
    PAYOFF = "payoff"        # Resolution, reward
    BUTTON = "button"        # Closing beat


class AgeRange(BaseModel):
    """Target reader age range."""

    min: int = Field(ge=2, le=18, description="Minimum age of target reader (2-18)")
    max: int = Field(ge=2, le=18, description="Maximum age of target reader (2-18)")

    @model_validator(mode='after')
    def check_order(self) -> "AgeRange":
        if self.min > self.max:
            raise ValueError("age_range.min must be <= age_range.max")
        return self


class StoryCharacter(BaseModel):
    """A character in the story, identified by name."""

    name: str = Field(min_length=1, description="Character name")
    description: str = Field(min_length=1, description="Brief physical and personality description")
    role: Optional[str] = Field(None, description='Role in the story (e.g., "protagonist", "sidekick")')
    traits: List[NonEmptyStr] = Field(default_factory=list, description='Personality traits (e.g., "curious", "brave")')
    notes: List[NonEmptyStr] = Field(default_factory=list, description="Additional notes for illustration consistency")
    visual_description: Optional[str] = Field(None, description="Visual appearance: body type, colors, clothing, props")


class PlotBeat(BaseModel):
    """One key moment of the plot."""

    purpose: BeatPurpose = Field(description="Narrative function of this beat")
    description: str = Field(min_length=1, description="One sentence summary of what happens")


class Story(BaseModel):
    """Unified story record."""

    # Required - must be filled before intake is complete
    title: str = policy_field(
        FieldPolicy.REQUIRED, min_length=1,
        description="Working title for the story"
    )
    story_arc: str = policy_field(
        FieldPolicy.REQUIRED, min_length=1,
        description='The narrative arc (e.g., "hero overcomes fear")'
    )
    setting: str = policy_field(
        FieldPolicy.REQUIRED, min_length=1,
        description="Where and when the story takes place"
    )
    characters: List[StoryCharacter] = policy_field(
        FieldPolicy.REQUIRED, min_length=1, natural_key="name",
        description="Story characters - each needs name and description"
    )
    plot_beats: List[PlotBeat] = policy_field(
        FieldPolicy.REQUIRED, min_length=3,
        description="Key story beats (setup, conflict, climax, resolution)"
    )

    # Prompted - optional but worth mentioning
    age_range: Optional[AgeRange] = policy_field(
        FieldPolicy.PROMPTED, None,
        description="Target reader age range (e.g., 4-8)"
    )
    style_preset: Optional[str] = policy_field(
        FieldPolicy.PROMPTED, None,
        description="Visual style preset name"
    )

    # Optional - never actively asked for
    page_count: int = Field(24, ge=8, le=32, description="Number of pages (8-32)")
    tone: Optional[str] = Field(None, description='Emotional tone (e.g., "whimsical", "heartfelt")')
    moral: Optional[str] = Field(None, description="Lesson or takeaway for the reader")
    interests: List[NonEmptyStr] = Field(default_factory=list, description="Topics the child enjoys")
    custom_instructions: Optional[str] = Field(None, description="Special requests from the user")
    allow_creative_liberty: bool = Field(True, description="Whether the author can embellish beyond the plot beats")
