"""
Signal extractor using regex pattern matching.

Scans one free-text message and proposes profile field updates for shoe
purpose, foot width/volume, stability need, experience and cushioning
preference, followed by a negative pass for exclusions. The extractor never
mutates the profile; callers apply the proposal through
``ProfileAggregate.apply_proposal``.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from cinda.catalog.shoe_catalog import ShoeCatalog
from cinda.models.field import ProfileField
from cinda.models.profile import ProfileState
from cinda.models.records import NegativeSignals
from cinda.utils.constants import (
    SOURCE_INFERRED,
    CONFIDENCE_MEDIUM,
    CATEGORY_SHOE_PURPOSE,
    CATEGORY_EXPERIENCE,
    SIGNAL_CATEGORIES,
    SIGNAL_PATTERNS,
    EXPERIENCE_BEGINNER,
    BEGINNER_DEFAULT_PURPOSE,
)
from cinda.utils.text import normalise, is_blank
from .negative_signals import NegativeSignalDetector


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionPolicy:
    """
    How inferred values interact with existing ones.

    Attributes:
        fill_only_empty: Only propose values for empty fields. With False, a
            later message may correct an earlier inference, still subject
            to the field overwrite rules.
    """

    fill_only_empty: bool = True


@dataclass
class FieldUpdate:
    """One proposed field write."""

    name: str
    value: str
    confidence: str
    raw: str
    source: str = SOURCE_INFERRED
    pattern: Optional[str] = None


@dataclass
class SignalProposal:
    """Non-destructive result of extracting one message."""

    updates: List[FieldUpdate] = field(default_factory=list)
    negative: NegativeSignals = field(default_factory=NegativeSignals)

    @property
    def is_empty(self) -> bool:
        return not self.updates and self.negative.is_empty

    def get(self, name: str) -> Optional[FieldUpdate]:
        for update in self.updates:
            if update.name == name:
                return update
        return None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly form for the HTTP wrapper."""
        return {
            "updates": [
                {
                    "name": u.name,
                    "value": u.value,
                    "confidence": u.confidence,
                    "source": u.source,
                    "raw": u.raw,
                }
                for u in self.updates
            ],
            "negative": self.negative.model_dump(mode="json"),
        }


class SignalExtractor:
    """
    Pattern-based extractor for runner profile signals.

    Categories are evaluated in a fixed order and, within a category, values
    are checked in priority order: the first value with a matching pattern
    wins, wherever the keyword sits in the message. For shoe purpose:
    1. race
    2. trail
    3. tempo_workout
    4. easy_recovery
    5. daily_trainer

    Example usage:
        extractor = SignalExtractor()
        proposal = extractor.extract("Mostly trail, some tempo work")
        # proposal.get("shoe_purpose").value == "trail"
    """

    CATEGORY_ORDER = SIGNAL_CATEGORIES

    def __init__(
        self,
        catalog: Optional[ShoeCatalog] = None,
        policy: Optional[ExtractionPolicy] = None,
    ) -> None:
        """Initialize extractor with compiled regex patterns."""
        self.policy = policy or ExtractionPolicy()
        self.negative_detector = NegativeSignalDetector(catalog)
        self._compiled_patterns: Dict[str, List[Tuple[str, str, List[re.Pattern]]]] = {}
        for category, rules in SIGNAL_PATTERNS.items():
            self._compiled_patterns[category] = [
                (value, confidence, [re.compile(p, re.IGNORECASE) for p in patterns])
                for value, confidence, patterns in rules
            ]

    def classify(self, text: str, category: str) -> Optional[Tuple[str, str]]:
        """
        Classify text for a single category.

        Args:
            text: Message text (normalised internally)
            category: One of the signal categories

        Returns:
            (value, confidence) of the first matching rule, or None

        Examples:
            >>> extractor = SignalExtractor()
            >>> extractor.classify("trail runs and tempo sessions", "shoe_purpose")
            ('trail', 'high')
            >>> extractor.classify("I have wide feet", "foot_width_volume")
            ('wide', 'high')
        """
        hit = self._first_match(normalise(text), category)
        return (hit[0], hit[1]) if hit else None

    def _first_match(self, text_norm: str, category: str) -> Optional[Tuple[str, str, str]]:
        if not text_norm:
            return None
        for value, confidence, patterns in self._compiled_patterns.get(category, []):
            for pattern in patterns:
                if pattern.search(text_norm):
                    return value, confidence, pattern.pattern
        return None

    def extract(self, text: str, profile: Optional[ProfileState] = None) -> SignalProposal:
        """
        Propose updates for one message.

        Args:
            text: Raw user utterance
            profile: Current profile snapshot (None is treated as empty)

        Returns:
            SignalProposal; empty for blank input
        """
        if is_blank(text):
            return SignalProposal()

        raw = str(text).strip()
        text_norm = normalise(raw)
        # Rejections such as "I don't like racing" must not read as purposes
        _, masked = self.negative_detector.find_rejections(text_norm)

        proposal = SignalProposal()
        classified: Dict[str, Tuple[str, str, str]] = {}
        for category in self.CATEGORY_ORDER:
            hit = self._first_match(masked, category)
            if hit is None:
                continue
            classified[category] = hit
            current = self._current_field(profile, category)
            if not self._should_propose(current, hit[0], hit[1]):
                continue
            proposal.updates.append(FieldUpdate(
                name=category,
                value=hit[0],
                confidence=hit[1],
                raw=raw,
                pattern=hit[2],
            ))

        purpose_field = self._current_field(profile, CATEGORY_SHOE_PURPOSE)
        experience_hit = classified.get(CATEGORY_EXPERIENCE)
        if (
            experience_hit is not None
            and experience_hit[0] == EXPERIENCE_BEGINNER
            and purpose_field.is_empty
            and proposal.get(CATEGORY_SHOE_PURPOSE) is None
        ):
            proposal.updates.append(FieldUpdate(
                name=CATEGORY_SHOE_PURPOSE,
                value=BEGINNER_DEFAULT_PURPOSE,
                confidence=CONFIDENCE_MEDIUM,
                raw=raw,
            ))

        purpose_update = proposal.get(CATEGORY_SHOE_PURPOSE)
        purpose = purpose_update.value if purpose_update else purpose_field.value
        proposal.negative = self.negative_detector.detect(raw, shoe_purpose=purpose)

        if not proposal.is_empty:
            logger.debug(
                "Extracted %s",
                {u.name: u.value for u in proposal.updates},
            )
        return proposal

    def _should_propose(self, current: ProfileField, value: str, confidence: str) -> bool:
        if current.is_empty:
            return True
        if self.policy.fill_only_empty:
            return False
        return current.value != value and current.accepts(SOURCE_INFERRED, confidence)

    @staticmethod
    def _current_field(profile: Optional[ProfileState], category: str) -> ProfileField:
        if profile is None:
            return ProfileField()
        return getattr(profile.signals, category)

    def get_pattern_match(self, text: str, category: str) -> Optional[str]:
        """
        Get the specific pattern that matched for debugging.

        Args:
            text: Text to check
            category: Signal category

        Returns:
            The pattern string that matched, or None
        """
        hit = self._first_match(normalise(text), category)
        return hit[2] if hit else None


# Module-level convenience function
_default_extractor = None


def extract_signals(text: str, profile: Optional[ProfileState] = None) -> SignalProposal:
    """
    Extract signals using the default extractor.

    Args:
        text: Raw user utterance
        profile: Current profile snapshot

    Returns:
        SignalProposal
    """
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = SignalExtractor()
    return _default_extractor.extract(text, profile)
