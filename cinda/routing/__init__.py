"""Mode routing and analyze request assembly."""

from .mode_router import ModeRouter, detect_mode
from .payload_builder import PayloadBuilder, DiscoveryRequest, AnalysisRequest
from .results import AnalysisOutcome, parse_analyze_response, apply_outcome

__all__ = [
    'ModeRouter',
    'detect_mode',
    'PayloadBuilder',
    'DiscoveryRequest',
    'AnalysisRequest',
    'AnalysisOutcome',
    'parse_analyze_response',
    'apply_outcome',
]
