"""Data models for the runner profile."""

from .field import ProfileField
from .records import (
    Basics,
    Goals,
    ChatContext,
    ChatMessage,
    RunnerSignals,
    NegativeSignals,
    Discovery,
    FeelPreferences,
    ShoeRequest,
    Gap,
    Analysis,
)
from .rotation import CurrentShoe, toggle_role
from .profile import ProfileAggregate, ProfileState

__all__ = [
    'ProfileField',
    'Basics',
    'Goals',
    'ChatContext',
    'ChatMessage',
    'RunnerSignals',
    'NegativeSignals',
    'Discovery',
    'FeelPreferences',
    'ShoeRequest',
    'Gap',
    'Analysis',
    'CurrentShoe',
    'toggle_role',
    'ProfileAggregate',
    'ProfileState',
]
