"""
PayloadBuilder - Assembles the outbound analyze request.

Stored shoes come in more than one shape (nested ``shoe`` objects from older
records, flat ``shoeId`` in newer ones); they are normalised to
``{shoeId, runTypes, sentiment, loveTags, dislikeTags}``. The race time
always comes from the picker input when it is available. Negative signals
are folded in: disliked brands extend each request's brand exclusion.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from cinda.models.records import ChatContext, FeelPreferences, Gap, coerce_shoe_requests
from cinda.models.rotation import CurrentShoe
from cinda.utils.constants import (
    MODE_DISCOVERY,
    MODE_ANALYSIS,
    MODE_GAP_DETECTION,
    DEFAULT_SENTIMENT,
)
from cinda.utils.race_time import normalize_race_time_for_api
from cinda.utils.text import normalise


logger = logging.getLogger(__name__)


# Profile keys sent to the analysis service
PROFILE_FIELDS: List[str] = [
    "firstName",
    "age",
    "height",
    "weight",
    "experience",
    "primaryGoal",
    "runningPattern",
    "trailRunning",
    "footStrike",
    "weeklyVolume",
    "raceTime",
    "brandPreference",
    "currentNiggles",
]


class CamelModel(BaseModel):
    """Outbound models serialise with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DiscoveryRequest(CamelModel):
    mode: str = MODE_DISCOVERY
    profile: Dict[str, Any]
    current_shoes: List[Dict[str, Any]]
    shoe_requests: List[Dict[str, Any]]
    chat_context: Dict[str, Any]
    negative_signals: Optional[Dict[str, Any]] = None


class AnalysisRequest(CamelModel):
    mode: str = MODE_ANALYSIS
    profile: Dict[str, Any]
    current_shoes: List[Dict[str, Any]]
    gap: Optional[Dict[str, Any]] = None
    feel_preferences: Optional[Dict[str, Any]] = None
    chat_context: Dict[str, Any]
    negative_signals: Optional[Dict[str, Any]] = None


class PayloadBuilder:
    """
    Builds DiscoveryRequest / AnalysisRequest payloads from stored data.

    Example usage:
        builder = PayloadBuilder()
        request = builder.build_discovery(profile, shoes, shoe_requests, chat_context)
        # request.to_json_dict()["mode"] == "discovery"
    """

    # =========================================================================
    # Pieces
    # =========================================================================

    def build_profile(self, stored: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Profile subset with the race time normalised for the API."""
        stored = stored if isinstance(stored, dict) else {}
        profile = {key: stored.get(key) for key in PROFILE_FIELDS if stored.get(key) is not None}

        race_time = normalize_race_time_for_api(stored.get("raceTime"), stored.get("raceTimeInput"))
        if race_time:
            profile["raceTime"] = race_time
        else:
            profile.pop("raceTime", None)
        return profile

    def normalize_shoes(self, shoes: Optional[List[Any]]) -> List[Dict[str, Any]]:
        """Canonical shoe list; entries without an id are skipped."""
        normalized = []
        for raw in shoes if isinstance(shoes, list) else []:
            shoe = CurrentShoe.from_raw(raw, default_sentiment=DEFAULT_SENTIMENT)
            if shoe is not None:
                normalized.append(shoe.to_payload())
        return normalized

    def build_chat_context(self, stored: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        context = ChatContext.model_validate(ChatContext.coerce(stored or {}))
        return {
            "injuries": context.injuries,
            "pastShoes": [
                p.model_dump(exclude_none=True) if isinstance(p, BaseModel) else p
                for p in context.past_shoes
            ],
            "fit": context.fit,
            "climate": context.climate,
            "requests": context.requests,
        }

    def build_negative_signals(self, stored_profile: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Exclusions from the stored profile signals, or None if there are none."""
        negative = _stored_negative(stored_profile)
        if not negative:
            return None
        payload = {
            "rejectedPurposes": list(negative.get("rejected_purposes") or []),
            "features": [
                {"tag": f.get("tag"), "strength": f.get("strength", 1)}
                for f in negative.get("features") or [] if isinstance(f, dict) and f.get("tag")
            ],
            "brands": [
                {"brand": b.get("brand"), "strength": b.get("strength", 1)}
                for b in negative.get("brands") or [] if isinstance(b, dict) and b.get("brand")
            ],
            "dislikedShoes": [
                {
                    "displayName": s.get("display_name"),
                    "reasons": list(s.get("reasons") or []),
                    "severity": s.get("severity", 1),
                }
                for s in negative.get("shoe_dislikes") or [] if isinstance(s, dict)
            ],
        }
        if not any(payload.values()):
            return None
        return payload

    def build_shoe_requests(
        self,
        shoe_requests: Optional[List[Any]],
        disliked_brands: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """camelCase shoe requests with disliked brands folded into each brand filter."""
        built = []
        for request in coerce_shoe_requests(shoe_requests or []):
            prefs = _fold_brand_dislikes(request.feel_preferences, disliked_brands or [])
            built.append({
                "archetype": request.archetype,
                "feelPreferences": feel_preferences_payload(prefs),
            })
        return built

    # =========================================================================
    # Requests
    # =========================================================================

    def build_discovery(
        self,
        stored_profile: Optional[Dict[str, Any]],
        shoes: Optional[List[Any]],
        shoe_requests: Optional[List[Any]],
        chat_context: Optional[Dict[str, Any]] = None,
    ) -> DiscoveryRequest:
        negative = self.build_negative_signals(stored_profile)
        disliked = [b["brand"] for b in negative["brands"]] if negative else []
        return DiscoveryRequest(
            profile=self.build_profile(stored_profile),
            current_shoes=self.normalize_shoes(shoes),
            shoe_requests=self.build_shoe_requests(shoe_requests, disliked),
            chat_context=self.build_chat_context(chat_context),
            negative_signals=negative,
        )

    def build_analysis(
        self,
        stored_profile: Optional[Dict[str, Any]],
        shoes: Optional[List[Any]],
        gap: Optional[Any] = None,
        feel_preferences: Optional[Any] = None,
        chat_context: Optional[Dict[str, Any]] = None,
        gap_detection: bool = False,
    ) -> AnalysisRequest:
        """
        Analysis request. With ``gap_detection`` the service detects the gap
        itself and none is sent.
        """
        parsed_gap = Gap.coerce(gap)
        prefs = None
        if feel_preferences is not None:
            prefs = feel_preferences_payload(FeelPreferences.coerce(feel_preferences))
        return AnalysisRequest(
            mode=MODE_GAP_DETECTION if gap_detection else MODE_ANALYSIS,
            profile=self.build_profile(stored_profile),
            current_shoes=self.normalize_shoes(shoes),
            gap=parsed_gap.to_payload() if parsed_gap and not gap_detection else None,
            feel_preferences=prefs,
            chat_context=self.build_chat_context(chat_context),
            negative_signals=self.build_negative_signals(stored_profile),
        )


def feel_preferences_payload(prefs: FeelPreferences) -> Dict[str, Any]:
    """camelCase feel preferences as the analysis service expects them."""
    payload: Dict[str, Any] = {}
    for name in ("cushion_amount", "stability_amount", "energy_return", "rocker", "ground_feel"):
        slider = getattr(prefs, name)
        entry: Dict[str, Any] = {"mode": slider.mode}
        if slider.value is not None:
            entry["value"] = slider.value
        payload[to_camel(name)] = entry
    payload["heelDropPreference"] = {"mode": prefs.heel_drop.mode, "values": list(prefs.heel_drop.values)}
    payload["brandPreference"] = {"mode": prefs.brand_preference.mode, "brands": list(prefs.brand_preference.brands)}
    return payload


def _fold_brand_dislikes(prefs: FeelPreferences, disliked: List[str]) -> FeelPreferences:
    """
    Exclude disliked brands from a request's brand filter.

    - all: becomes exclude with the disliked brands
    - exclude: the disliked brands are added
    - include: disliked brands are dropped from the list; if none remain the
      filter becomes exclude with the disliked brands
    """
    if not disliked:
        return prefs
    brand = prefs.brand_preference
    disliked_keys = {normalise(b) for b in disliked}

    if brand.mode == "include":
        kept = [b for b in brand.brands if normalise(b) not in disliked_keys]
        if kept:
            new_brand = brand.model_copy(update={"brands": kept})
        else:
            new_brand = brand.model_copy(update={"mode": "exclude", "brands": list(disliked)})
    else:
        existing = list(brand.brands) if brand.mode == "exclude" else []
        known = {normalise(b) for b in existing}
        merged = existing + [b for b in disliked if normalise(b) not in known]
        new_brand = brand.model_copy(update={"mode": "exclude", "brands": merged})
    return prefs.model_copy(update={"brand_preference": new_brand})


def _stored_negative(stored_profile: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(stored_profile, dict):
        return {}
    signals = stored_profile.get("signals")
    if not isinstance(signals, dict):
        return {}
    negative = signals.get("negative")
    return negative if isinstance(negative, dict) else {}
