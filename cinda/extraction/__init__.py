"""Free-text signal extraction."""

from .signal_extractor import (
    SignalExtractor,
    SignalProposal,
    FieldUpdate,
    ExtractionPolicy,
    extract_signals,
)
from .negative_signals import NegativeSignalDetector

__all__ = [
    'SignalExtractor',
    'SignalProposal',
    'FieldUpdate',
    'ExtractionPolicy',
    'extract_signals',
    'NegativeSignalDetector',
]
