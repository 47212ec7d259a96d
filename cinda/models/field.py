"""
ProfileField model - A single attribute slot with provenance.

Each field carries its value plus how it was obtained: explicit wizard input
or inference from free text, a confidence level, the raw text it came from
and when it was last written.
"""

from datetime import datetime, timezone
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel

from cinda.utils.constants import (
    SOURCE_EXPLICIT,
    SOURCE_INFERRED,
    CONFIDENCE_HIGH,
    CONFIDENCE_RANK,
)


T = TypeVar("T")

Source = Literal["explicit", "inferred"]
Confidence = Literal["low", "medium", "high"]


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class ProfileField(BaseModel, Generic[T]):
    """
    Attribute slot with provenance.

    Overwrite rules:
    - an empty field accepts any update
    - explicit updates always apply
    - an inferred update never replaces an explicit/high value
    - an inferred update never replaces data of strictly higher confidence
    """

    value: Optional[T] = None
    raw: Optional[str] = None
    source: Optional[Source] = None
    confidence: Optional[Confidence] = None
    updated_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        """True when no value has been recorded."""
        return self.value is None

    @property
    def is_locked(self) -> bool:
        """True for explicit/high values, which inference cannot touch."""
        return (
            not self.is_empty
            and self.source == SOURCE_EXPLICIT
            and self.confidence == CONFIDENCE_HIGH
        )

    def accepts(self, source: str, confidence: str) -> bool:
        """
        Decide whether an update with the given provenance may overwrite.

        Args:
            source: "explicit" or "inferred"
            confidence: "low", "medium" or "high"

        Returns:
            True if the update should be applied
        """
        if self.is_empty or source == SOURCE_EXPLICIT:
            return True
        if source != SOURCE_INFERRED:
            return False
        if self.is_locked:
            return False
        current_rank = CONFIDENCE_RANK.get(self.confidence or "", 0)
        return CONFIDENCE_RANK.get(confidence, 0) >= current_rank

    def updated(
        self,
        value: Optional[T],
        raw: Optional[str],
        source: str,
        confidence: str,
    ) -> "ProfileField[T]":
        """Return a new field carrying the given value and provenance."""
        return self.__class__(
            value=value,
            raw=raw,
            source=source,
            confidence=confidence,
            updated_at=utcnow(),
        )

    @classmethod
    def empty(cls) -> "ProfileField[T]":
        """Create an empty field."""
        return cls()
