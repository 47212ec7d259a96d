"""
ModeRouter - Picks discovery or analysis from stored artifacts.

Precedence:
1. Stored shoe requests (at least one usable) -> discovery, whatever gap is stored
2. Stored gap (with a known type and severity) -> analysis
3. Neither -> InvalidRoutingState (restart the wizard)
"""

import logging
from typing import Any, List, Optional, Tuple

from cinda.errors import InvalidRoutingState
from cinda.models.records import Gap, coerce_shoe_requests
from cinda.storage.persistence import PersistenceLayer
from cinda.utils.constants import MODE_DISCOVERY, MODE_ANALYSIS


logger = logging.getLogger(__name__)


def detect_mode(shoe_requests: Optional[List[Any]], gap: Optional[Any]) -> str:
    """
    Select the analysis mode.

    Artifacts are judged by their coerced shape, so unreadable requests or
    a gap without a known type and severity count as absent.

    Args:
        shoe_requests: Stored shoe requests (may be None or empty)
        gap: Stored gap (may be None)

    Returns:
        "discovery" or "analysis"

    Raises:
        InvalidRoutingState: Neither shoe requests nor a gap

    Examples:
        >>> detect_mode([{"archetype": "race_shoe"}], {"type": "coverage", "severity": "high"})
        'discovery'
        >>> detect_mode([], {"type": "coverage", "severity": "high"})
        'analysis'
    """
    if coerce_shoe_requests(shoe_requests):
        return MODE_DISCOVERY
    if Gap.coerce(gap) is not None:
        return MODE_ANALYSIS
    raise InvalidRoutingState()


class ModeRouter:
    """Reads stored artifacts and decides where the runner's data goes."""

    def __init__(self, persistence: PersistenceLayer) -> None:
        self.persistence = persistence

    def load_artifacts(self) -> Tuple[Optional[List[Any]], Optional[Any]]:
        """Stored (shoe requests, gap)."""
        requests = self.persistence.shoe_requests.load()
        gap = self.persistence.gap.load()
        return (requests if isinstance(requests, list) else None), gap

    def route(self) -> str:
        """
        Mode for the stored state.

        Raises:
            InvalidRoutingState: Nothing to analyse; restart at basics
        """
        requests, gap = self.load_artifacts()
        try:
            mode = detect_mode(requests, gap)
        except InvalidRoutingState:
            logger.warning("No shoe requests or gap stored, restarting wizard")
            raise
        logger.info("Routing to %s mode", mode)
        return mode
