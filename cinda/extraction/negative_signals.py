"""
Negative signal detection - Exclusions found in free text.

Runs after the positive pass. Finds rejected shoe purposes ("I don't like
racing"), dislike reasons with a severity, brand-level dislikes and disliked
curated shoes. Results are exclusions only; they never set positive fields.
"""

import logging
import re
from typing import List, Optional, Tuple

from cinda.catalog.shoe_catalog import ShoeCatalog, CatalogMatch, get_default_catalog
from cinda.models.records import (
    NegativeSignals,
    FeatureDislike,
    BrandDislike,
    ShoeFeedbackItem,
)
from cinda.utils.constants import (
    BRAND_LIST,
    NEGATIVE_VERBS,
    GENERAL_NEGATIVE_PHRASES,
    GENERALISATION_CUES,
    SEVERITY_PATTERNS,
    DEFAULT_SEVERITY,
    PURPOSE_REJECTION_PATTERNS,
    REASON_TAG_PATTERNS,
    NEGATABLE_REASON_WORDS,
    NEGATION_TEMPLATE,
)
from cinda.utils.text import normalise


logger = logging.getLogger(__name__)


def contains_phrase(text_norm: str, phrase: str) -> bool:
    """Whole-word phrase containment on normalised text."""
    phrase = phrase.strip()
    return bool(phrase) and f" {phrase} " in f" {text_norm} "


def contains_any(text_norm: str, phrases: List[str]) -> bool:
    return any(contains_phrase(text_norm, p) for p in phrases)


class NegativeSignalDetector:
    """
    Rule-based detector for exclusions.

    Example usage:
        detector = NegativeSignalDetector()
        signals = detector.detect("I hated the Hoka Bondi 9, way too soft")
        # signals.features[0].tag == "too_soft", strength 3
        # signals.shoe_dislikes[0].display_name == "Hoka Bondi 9"
    """

    def __init__(self, catalog: Optional[ShoeCatalog] = None) -> None:
        """Compile reason and rejection patterns."""
        self.catalog = catalog if catalog is not None else get_default_catalog()
        self._reason_patterns = {
            tag: [re.compile(p) for p in patterns]
            for tag, patterns in REASON_TAG_PATTERNS.items()
        }
        self._negations = {
            tag: re.compile(NEGATION_TEMPLATE.format(word=word))
            for tag, word in NEGATABLE_REASON_WORDS.items()
        }
        self._rejections = {
            purpose: [re.compile(p) for p in patterns]
            for purpose, patterns in PURPOSE_REJECTION_PATTERNS.items()
        }

    # =========================================================================
    # Individual detectors
    # =========================================================================

    def detect_severity(self, text_norm: str) -> int:
        """3 for hate / never again, 2 for didn't like / not for me, else 1."""
        for severity, phrases in SEVERITY_PATTERNS:
            if contains_any(text_norm, phrases):
                return severity
        return DEFAULT_SEVERITY

    def detect_reason_tags(self, text_norm: str) -> List[str]:
        """Dislike reasons in table order, skipping negated mentions."""
        tags = []
        for tag, patterns in self._reason_patterns.items():
            if not any(p.search(text_norm) for p in patterns):
                continue
            negation = self._negations.get(tag)
            if negation is not None and negation.search(text_norm):
                continue
            tags.append(tag)
        return tags

    def find_rejections(self, text_norm: str) -> Tuple[List[str], str]:
        """
        Find rejected purposes.

        Returns:
            (rejected purposes, text with the rejection phrases blanked out)
        """
        rejected = []
        masked = text_norm
        for purpose, patterns in self._rejections.items():
            for pattern in patterns:
                if pattern.search(masked):
                    if purpose not in rejected:
                        rejected.append(purpose)
                    masked = pattern.sub(" ", masked)
        return rejected, masked

    def detect_brand(self, text_norm: str) -> Optional[str]:
        """
        Brand-level dislike.

        Needs an explicit general negative and a generalisation cue
        ("always", "in general", "as a brand", ...), so a dislike of one
        model does not exclude the whole brand.
        """
        if not contains_any(text_norm, GENERAL_NEGATIVE_PHRASES):
            return None
        if not contains_any(text_norm, GENERALISATION_CUES):
            return None
        for brand in BRAND_LIST:
            if contains_phrase(text_norm, brand):
                return brand.title()
        return None

    # =========================================================================
    # Full pass
    # =========================================================================

    def detect(self, text: str, shoe_purpose: Optional[str] = None) -> NegativeSignals:
        """
        Run the negative pass over one message.

        Args:
            text: Raw user message
            shoe_purpose: Current purpose, recorded as the context of
                feature dislikes

        Returns:
            NegativeSignals (empty when the message carries no negative content)
        """
        text_norm = normalise(text)
        if not text_norm:
            return NegativeSignals()

        rejected, _ = self.find_rejections(text_norm)
        severity = self.detect_severity(text_norm)
        tags = self.detect_reason_tags(text_norm)
        match = self.catalog.match(text_norm)
        has_negative_verb = contains_any(text_norm, NEGATIVE_VERBS)

        if not (has_negative_verb or tags or match or rejected):
            return NegativeSignals()

        raw = str(text).strip()
        contexts = [shoe_purpose] if shoe_purpose else []
        features = [
            FeatureDislike(tag=tag, strength=severity, contexts=list(contexts), raw=raw)
            for tag in tags
        ]

        brands = []
        brand = self.detect_brand(text_norm)
        if brand:
            brands.append(BrandDislike(brand=brand, strength=severity, raw=raw))

        shoe_dislikes = []
        if match is not None and (has_negative_verb or tags):
            shoe_dislikes.append(self._shoe_dislike(raw, match, tags, severity))

        signals = NegativeSignals(
            features=features,
            brands=brands,
            rejected_purposes=rejected,
            shoe_dislikes=shoe_dislikes,
        )
        if not signals.is_empty:
            logger.debug(
                "Negative signals: tags=%s brands=%s rejected=%s shoes=%d",
                tags, [b.brand for b in brands], rejected, len(shoe_dislikes),
            )
        return signals

    @staticmethod
    def _shoe_dislike(raw: str, match: CatalogMatch, tags: List[str], severity: int) -> ShoeFeedbackItem:
        return ShoeFeedbackItem(
            raw_text=raw,
            display_name=match.shoe.name,
            brand=match.shoe.brand,
            reasons=list(tags),
            match_confidence=match.confidence,
            severity=severity,
        )
