"""
Analyze response handling - Writes results back into the profile.

Analysis mode returns a gap, recommendations, a summary and a rotation
summary. Discovery mode returns one group of recommendations per shoe
request, flattened here for storage.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cinda.errors import ServerError
from cinda.models.profile import ProfileAggregate
from cinda.models.records import Gap
from cinda.storage.persistence import PersistenceLayer
from cinda.utils.constants import MODE_DISCOVERY


logger = logging.getLogger(__name__)


@dataclass
class AnalysisOutcome:
    """Parsed analyze result."""

    mode: str
    gap: Optional[Gap] = None
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    rotation_summary: List[Dict[str, Any]] = field(default_factory=list)
    summary_reasoning: str = ""
    discovery_results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """No recommendations and, in analysis mode, no rotation summary either."""
        return not self.recommendations and not self.rotation_summary


def _dict_list(value: Any) -> List[Dict[str, Any]]:
    return [dict(v) for v in value if isinstance(v, dict)] if isinstance(value, list) else []


def parse_analyze_response(mode: str, body: Any) -> AnalysisOutcome:
    """
    Parse an analyze response body.

    Args:
        mode: Mode the request was sent in
        body: ``{success, result?, error?}``

    Raises:
        ServerError: ``success`` is false or the result is missing
    """
    if not isinstance(body, dict) or not body.get("success"):
        error = body.get("error") if isinstance(body, dict) else None
        raise ServerError(error or "Failed to get recommendations")
    result = body.get("result")
    if not isinstance(result, dict):
        raise ServerError("Analyze response has no result")

    if mode == MODE_DISCOVERY:
        groups = _dict_list(result.get("discoveryResults"))
        flattened = [rec for group in groups for rec in _dict_list(group.get("recommendations"))]
        return AnalysisOutcome(mode=mode, recommendations=flattened, discovery_results=groups)

    reasoning = result.get("summaryReasoning")
    return AnalysisOutcome(
        mode=mode,
        gap=Gap.coerce(result.get("gap")),
        recommendations=_dict_list(result.get("recommendations")),
        rotation_summary=_dict_list(result.get("rotationSummary")),
        summary_reasoning=reasoning if isinstance(reasoning, str) else "",
    )


def apply_outcome(
    outcome: AnalysisOutcome,
    profile: ProfileAggregate,
    persistence: Optional[PersistenceLayer] = None,
) -> bool:
    """
    Record an outcome in the profile and the recommendations domain.

    Returns:
        False if saving the recommendations failed
    """
    profile.record_analysis_result({
        "recommendations": outcome.recommendations,
        "rotation_summary": outcome.rotation_summary,
        "summary_reasoning": outcome.summary_reasoning,
    })
    if outcome.gap is not None:
        profile.record_gap(outcome.gap)

    if persistence is None:
        return True
    saved = persistence.save_recommendations(
        outcome.gap.to_payload() if outcome.gap else None,
        outcome.recommendations,
        outcome.summary_reasoning,
    )
    if not saved:
        logger.warning("Recommendations were not persisted")
    return saved
