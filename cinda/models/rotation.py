"""
CurrentShoe model - One shoe in the runner's rotation.

Role selection goes through a single transition function, ``toggle_role``,
which keeps ``all_runs`` mutually exclusive with every other role.
"""

import logging
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from cinda.utils.constants import (
    ROLE_ALL_RUNS,
    RUN_TYPES,
    RUN_TYPE_ALIASES,
    SHOE_SENTIMENTS,
    DEFAULT_SENTIMENT,
)
from .records import string_list


logger = logging.getLogger(__name__)


def normalize_run_type(value: Any) -> Optional[str]:
    """
    Map a run type (including legacy labels) onto the canonical set.

    Examples:
        >>> normalize_run_type("all_my_runs")
        'all_runs'
        >>> normalize_run_type("sprinting") is None
        True
    """
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    key = RUN_TYPE_ALIASES.get(key, key)
    return key if key in RUN_TYPES else None


def normalize_run_types(values: Any) -> List[str]:
    """
    Canonical, de-duplicated run types in selection order.

    A list holding ``all_runs`` next to other roles is collapsed to
    ``["all_runs"]``.
    """
    result: List[str] = []
    for value in string_list(values):
        run_type = normalize_run_type(value)
        if run_type and run_type not in result:
            result.append(run_type)
    if ROLE_ALL_RUNS in result:
        return [ROLE_ALL_RUNS]
    return result


def toggle_role(run_types: List[str], role: str) -> List[str]:
    """
    Apply one role toggle and return the new role list.

    - toggling ``all_runs`` switches between ``[]`` and ``["all_runs"]``
    - any other role is a no-op while ``all_runs`` is selected
    - otherwise the role is added or removed

    Examples:
        >>> toggle_role(["recovery", "long_runs"], "all_runs")
        ['all_runs']
        >>> toggle_role(["all_runs"], "races")
        ['all_runs']
        >>> toggle_role(["recovery"], "recovery")
        []
    """
    role = normalize_run_type(role)
    current = normalize_run_types(run_types)
    if role is None:
        return current
    if role == ROLE_ALL_RUNS:
        return [] if ROLE_ALL_RUNS in current else [ROLE_ALL_RUNS]
    if ROLE_ALL_RUNS in current:
        return current
    if role in current:
        return [r for r in current if r != role]
    return current + [role]


class CurrentShoe(BaseModel):
    """
    A shoe the runner owns, with the runs it is used for.

    Attributes:
        shoe_id: Catalogue identifier
        shoe_name: Display name, when known
        run_types: Selected roles (``all_runs`` is exclusive)
        sentiment: love / like / neutral / dislike, None until chosen
        love_tags: Things the runner loves about the shoe
        dislike_tags: Things the runner dislikes about the shoe
    """

    shoe_id: str
    shoe_name: Optional[str] = None
    run_types: List[str] = Field(default_factory=list)
    sentiment: Optional[str] = None
    love_tags: List[str] = Field(default_factory=list)
    dislike_tags: List[str] = Field(default_factory=list)

    KEY_ALIASES: ClassVar[Dict[str, str]] = {
        "shoeId": "shoe_id",
        "runTypes": "run_types",
        "loveTags": "love_tags",
        "dislikeTags": "dislike_tags",
        "shoeName": "shoe_name",
    }

    @property
    def is_complete(self) -> bool:
        """A listed shoe needs at least one role and a sentiment."""
        return bool(self.run_types) and self.sentiment is not None

    def toggled(self, role: str) -> "CurrentShoe":
        """Copy of this shoe with one role toggled."""
        return self.model_copy(update={"run_types": toggle_role(self.run_types, role)})

    @classmethod
    def from_raw(cls, raw: Any, default_sentiment: Optional[str] = None) -> Optional["CurrentShoe"]:
        """
        Build a shoe from any stored representation.

        Older records nest a ``shoe`` object carrying ``shoe_id``; newer ones
        store a flat ``shoeId``. Entries without an id yield None.

        Args:
            raw: Stored or submitted shoe dict
            default_sentiment: Sentiment to use when none is stored

        Returns:
            CurrentShoe or None
        """
        if isinstance(raw, CurrentShoe):
            return raw.model_copy(deep=True)
        if not isinstance(raw, dict):
            return None

        data = {cls.KEY_ALIASES.get(k, k): v for k, v in raw.items()}
        nested = data.get("shoe") if isinstance(data.get("shoe"), dict) else {}
        shoe_id = nested.get("shoe_id") or nested.get("shoeId") or data.get("shoe_id")
        if not isinstance(shoe_id, (str, int)) or not str(shoe_id).strip():
            logger.warning("Skipping shoe without an id: %r", raw)
            return None

        name = data.get("shoe_name") or nested.get("full_name") or nested.get("name")
        sentiment = data.get("sentiment")
        if not (isinstance(sentiment, str) and sentiment in SHOE_SENTIMENTS):
            sentiment = default_sentiment

        return cls(
            shoe_id=str(shoe_id).strip(),
            shoe_name=name if isinstance(name, str) else None,
            run_types=normalize_run_types(data.get("run_types")),
            sentiment=sentiment,
            love_tags=string_list(data.get("love_tags")),
            dislike_tags=string_list(data.get("dislike_tags")),
        )

    def to_payload(self) -> Dict[str, Any]:
        """Canonical outbound shape, with the default sentiment filled in."""
        return {
            "shoeId": self.shoe_id,
            "runTypes": list(self.run_types),
            "sentiment": self.sentiment or DEFAULT_SENTIMENT,
            "loveTags": list(self.love_tags),
            "dislikeTags": list(self.dislike_tags),
        }

    def to_stored(self) -> Dict[str, Any]:
        """camelCase shape persisted under the shoes domain."""
        stored = self.to_payload()
        stored["sentiment"] = self.sentiment
        if self.shoe_name:
            stored["shoeName"] = self.shoe_name
        return stored


def coerce_rotation(raw: Any) -> List[CurrentShoe]:
    """Coerce a stored or submitted rotation, dropping unusable entries."""
    shoes: List[CurrentShoe] = []
    seen = set()
    for item in raw if isinstance(raw, list) else []:
        shoe = CurrentShoe.from_raw(item)
        if shoe is None or shoe.shoe_id in seen:
            continue
        seen.add(shoe.shoe_id)
        shoes.append(shoe)
    return shoes
