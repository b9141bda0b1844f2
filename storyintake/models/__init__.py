from .story import Story, StoryCharacter, PlotBeat, AgeRange, BeatPurpose
from .extraction import ExtractionResult

__all__ = [
    'Story', 'StoryCharacter', 'PlotBeat', 'AgeRange', 'BeatPurpose',
    'ExtractionResult'
]
