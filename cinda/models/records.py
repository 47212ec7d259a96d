"""
Step records - The per-step building blocks of the runner profile.

Each record is a Pydantic v2 model with an accompanying ``coerce`` classmethod
that turns a loosely-typed partial (wizard edits, stored JSON, camelCase keys
from older clients) into clean values. Coercion never raises: anything
malformed becomes None or the field default, since this is user-entered
data that is expected to be incomplete.
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from cinda.utils.constants import (
    EXPERIENCE_LEVELS,
    EXPERIENCE_ALIASES,
    PRIMARY_GOALS,
    RUNNING_PATTERNS,
    TRAIL_RUNNING_OPTIONS,
    FOOT_STRIKES,
    RACE_DISTANCE_MAP,
    WIZARD_MODES,
    ARCHETYPES,
    MAX_SELECTED_ARCHETYPES,
    PREFERENCE_MODES,
    PREFERENCE_CINDA_DECIDES,
    PREFERENCE_USER_SET,
    SLIDER_DIMENSIONS,
    FEEL_VALUE_RANGE,
    HEEL_DROP_OPTIONS,
    BRAND_MODES,
    GAP_TYPES,
    GAP_SEVERITIES,
)
from cinda.utils.race_time import picker_to_minutes
from cinda.utils.validators import coerce_int, coerce_float, weekly_volume_safe
from .field import ProfileField, utcnow


# =============================================================================
# Coercion helpers
# =============================================================================

def choice(value: Any, allowed: Iterable[str], aliases: Optional[Dict[str, str]] = None) -> Optional[str]:
    """Return value if it is one of the allowed options (after aliasing)."""
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    if aliases and key in aliases:
        key = aliases[key]
    return key if key in allowed else None


def string_list(value: Any) -> List[str]:
    """Coerce to a list of non-empty stripped strings."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def rename_keys(partial: Any, aliases: Dict[str, str]) -> Dict[str, Any]:
    """Map camelCase keys onto field names; non-dicts become empty."""
    if not isinstance(partial, dict):
        return {}
    return {aliases.get(key, key): value for key, value in partial.items()}


# =============================================================================
# Step 1 - Basics
# =============================================================================

class Basics(BaseModel):
    """Name, body metrics and running experience."""

    first_name: str = ""
    age: Optional[int] = None
    height_cm: Optional[int] = None
    weight_kg: Optional[float] = None
    experience: Optional[str] = None

    KEY_ALIASES: ClassVar[Dict[str, str]] = {
        "firstName": "first_name",
        "name": "first_name",
        "heightCm": "height_cm",
        "height": "height_cm",
        "weightKg": "weight_kg",
        "weight": "weight_kg",
    }

    @classmethod
    def coerce(cls, partial: Any) -> Dict[str, Any]:
        data = rename_keys(partial, cls.KEY_ALIASES)
        out: Dict[str, Any] = {}
        if "first_name" in data:
            name = data["first_name"]
            out["first_name"] = name.strip() if isinstance(name, str) else ""
        if "age" in data:
            out["age"] = coerce_int(data["age"])
        if "height_cm" in data:
            out["height_cm"] = coerce_int(data["height_cm"])
        if "weight_kg" in data:
            out["weight_kg"] = coerce_float(data["weight_kg"])
        if "experience" in data:
            out["experience"] = choice(data["experience"], EXPERIENCE_LEVELS, EXPERIENCE_ALIASES)
        return out


# =============================================================================
# Step 2 - Goals
# =============================================================================

class WeeklyVolume(BaseModel):
    """Weekly distance with its unit."""

    value: int
    unit: str


class RaceTimeInput(BaseModel):
    """Race time exactly as entered in the picker."""

    distance: str
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def time_minutes(self) -> int:
        return self.hours * 60 + self.minutes


class Goals(BaseModel):
    """Training goal, running pattern, volume and race times."""

    primary_goal: Optional[str] = None
    running_pattern: Optional[str] = None
    trail_running: Optional[str] = None
    foot_strike: Optional[str] = None
    weekly_volume: Optional[WeeklyVolume] = None
    race_time_input: Optional[RaceTimeInput] = None
    # distance -> minutes, always derived from picker input
    race_times: Dict[str, int] = Field(default_factory=dict)

    KEY_ALIASES: ClassVar[Dict[str, str]] = {
        "primaryGoal": "primary_goal",
        "runningPattern": "running_pattern",
        "trailRunning": "trail_running",
        "footStrike": "foot_strike",
        "weeklyVolume": "weekly_volume",
        "raceTimeInput": "race_time_input",
        "personalBests": "race_times",
    }

    @classmethod
    def coerce(cls, partial: Any, current: Optional["Goals"] = None) -> Dict[str, Any]:
        data = rename_keys(partial, cls.KEY_ALIASES)
        race_times = dict(current.race_times) if current else {}
        out: Dict[str, Any] = {}

        if "primary_goal" in data:
            out["primary_goal"] = choice(data["primary_goal"], PRIMARY_GOALS)
        if "running_pattern" in data:
            out["running_pattern"] = choice(data["running_pattern"], RUNNING_PATTERNS)
        if "trail_running" in data:
            out["trail_running"] = choice(data["trail_running"], TRAIL_RUNNING_OPTIONS)
        if "foot_strike" in data:
            out["foot_strike"] = choice(data["foot_strike"], FOOT_STRIKES)
        if "weekly_volume" in data:
            volume = weekly_volume_safe(data["weekly_volume"])
            out["weekly_volume"] = WeeklyVolume(**volume) if volume else None

        if "race_times" in data and isinstance(data["race_times"], dict):
            for distance, entry in data["race_times"].items():
                api_distance = RACE_DISTANCE_MAP.get(str(distance))
                minutes = cls._entry_minutes(entry)
                if api_distance and minutes is not None:
                    race_times[api_distance] = minutes
            out["race_times"] = race_times

        if "race_time_input" in data:
            picker = cls._coerce_picker(data["race_time_input"])
            out["race_time_input"] = picker
            if picker is not None:
                race_times[RACE_DISTANCE_MAP[picker.distance]] = picker.time_minutes
                out["race_times"] = race_times
        return out

    @staticmethod
    def _entry_minutes(entry: Any) -> Optional[int]:
        if isinstance(entry, dict):
            return picker_to_minutes(entry)
        minutes = coerce_int(entry)
        return minutes if minutes is not None and minutes > 0 else None

    @staticmethod
    def _coerce_picker(raw: Any) -> Optional[RaceTimeInput]:
        if not isinstance(raw, dict):
            return None
        distance = str(raw.get("distance", "")).strip()
        if distance not in RACE_DISTANCE_MAP:
            return None
        hours = coerce_int(raw.get("hours"), 0) or 0
        minutes = coerce_int(raw.get("minutes"), 0) or 0
        seconds = coerce_int(raw.get("seconds"), 0) or 0
        if hours < 0 or not 0 <= minutes < 60 or not 0 <= seconds < 60:
            return None
        return RaceTimeInput(distance=distance, hours=hours, minutes=minutes, seconds=seconds)


# =============================================================================
# Chat
# =============================================================================

class ChatMessage(BaseModel):
    """One turn of the conversation."""

    role: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class PastShoe(BaseModel):
    """A shoe mentioned in chat, with the runner's feeling about it."""

    brand: str
    model: Optional[str] = None
    sentiment: Optional[str] = None


class ChatContext(BaseModel):
    """
    Facts accumulated from free text.

    Append-only: entries are only ever added, de-duplicated by their
    normalised value. Climate keeps the latest non-null value.
    """

    injuries: List[str] = Field(default_factory=list)
    past_shoes: List[Union[PastShoe, str]] = Field(default_factory=list)
    fit: Dict[str, Any] = Field(default_factory=dict)
    climate: Optional[str] = None
    requests: List[str] = Field(default_factory=list)

    KEY_ALIASES: ClassVar[Dict[str, str]] = {"pastShoes": "past_shoes"}

    @classmethod
    def coerce(cls, partial: Any) -> Dict[str, Any]:
        data = rename_keys(partial, cls.KEY_ALIASES)
        out: Dict[str, Any] = {
            "injuries": string_list(data.get("injuries")),
            "requests": string_list(data.get("requests")),
            "past_shoes": [],
            "fit": data["fit"] if isinstance(data.get("fit"), dict) else {},
            "climate": None,
        }
        climate = data.get("climate")
        if isinstance(climate, str) and climate.strip():
            out["climate"] = climate.strip()

        past = data.get("past_shoes")
        if isinstance(past, (str, dict)):
            past = [past]
        for item in past if isinstance(past, (list, tuple)) else []:
            if isinstance(item, str) and item.strip():
                out["past_shoes"].append(item.strip())
            elif isinstance(item, dict) and isinstance(item.get("brand"), str) and item["brand"].strip():
                out["past_shoes"].append(PastShoe(
                    brand=item["brand"].strip(),
                    model=item.get("model") if isinstance(item.get("model"), str) else None,
                    sentiment=choice(item.get("sentiment"), {"liked", "disliked", "neutral"}),
                ))
        return out


# =============================================================================
# Signals extracted from free text
# =============================================================================

class FeatureDislike(BaseModel):
    """A disliked shoe characteristic (e.g. too_firm), strength 1-3."""

    tag: str
    strength: int = 1
    contexts: List[str] = Field(default_factory=list)
    raw: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class BrandDislike(BaseModel):
    """A brand the runner rejects in general."""

    brand: str
    strength: int = 1
    raw: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class ShoeFeedbackItem(BaseModel):
    """A specific curated shoe the runner disliked."""

    raw_text: str
    display_name: Optional[str] = None
    brand: Optional[str] = None
    reasons: List[str] = Field(default_factory=list)
    match_confidence: str = "medium"
    severity: int = 1
    updated_at: datetime = Field(default_factory=utcnow)


class NegativeSignals(BaseModel):
    """Exclusions collected by the negative-signal pass."""

    features: List[FeatureDislike] = Field(default_factory=list)
    brands: List[BrandDislike] = Field(default_factory=list)
    rejected_purposes: List[str] = Field(default_factory=list)
    shoe_dislikes: List[ShoeFeedbackItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.features or self.brands or self.rejected_purposes or self.shoe_dislikes)


class RunnerSignals(BaseModel):
    """Attributes derived from chat, each with provenance."""

    stability_need: ProfileField[str] = Field(default_factory=ProfileField[str])
    foot_width_volume: ProfileField[str] = Field(default_factory=ProfileField[str])
    cushioning_preference: ProfileField[str] = Field(default_factory=ProfileField[str])
    experience_level: ProfileField[str] = Field(default_factory=ProfileField[str])
    shoe_purpose: ProfileField[str] = Field(default_factory=ProfileField[str])
    notes: str = ""
    negative: NegativeSignals = Field(default_factory=NegativeSignals)


# =============================================================================
# Step 4 - Mode and feel preferences
# =============================================================================

class SliderPreference(BaseModel):
    """One feel dimension; value is only set in user_set mode."""

    mode: str = PREFERENCE_CINDA_DECIDES
    value: Optional[int] = None

    @classmethod
    def coerce(cls, raw: Any) -> "SliderPreference":
        # Older clients stored a bare 1-5 number
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            raw = {"mode": PREFERENCE_USER_SET, "value": raw}
        if not isinstance(raw, dict):
            return cls()
        mode = choice(raw.get("mode"), PREFERENCE_MODES) or PREFERENCE_CINDA_DECIDES
        if mode != PREFERENCE_USER_SET:
            return cls(mode=mode)
        value = coerce_int(raw.get("value"))
        low, high = FEEL_VALUE_RANGE
        if value is None or not low <= value <= high:
            return cls()
        return cls(mode=mode, value=value)


class HeelDropPreference(BaseModel):
    """Heel-drop filter; values are only set in user_set mode."""

    mode: str = PREFERENCE_CINDA_DECIDES
    values: List[str] = Field(default_factory=list)

    @classmethod
    def coerce(cls, raw: Any) -> "HeelDropPreference":
        if not isinstance(raw, dict):
            return cls()
        mode = choice(raw.get("mode"), PREFERENCE_MODES) or PREFERENCE_CINDA_DECIDES
        values = [v for v in string_list(raw.get("values")) if v in HEEL_DROP_OPTIONS]
        if mode != PREFERENCE_USER_SET or not values:
            return cls(mode=mode if mode != PREFERENCE_USER_SET else PREFERENCE_CINDA_DECIDES)
        return cls(mode=mode, values=values)


class BrandPreference(BaseModel):
    """Brand filter: all brands, only some, or all but some."""

    mode: str = "all"
    brands: List[str] = Field(default_factory=list)

    @classmethod
    def coerce(cls, raw: Any) -> "BrandPreference":
        if not isinstance(raw, dict):
            return cls()
        mode = choice(raw.get("mode"), BRAND_MODES) or "all"
        brands = string_list(raw.get("brands"))
        return cls(mode=mode, brands=[] if mode == "all" else brands)


class FeelPreferences(BaseModel):
    """Feel preferences for one archetype."""

    cushion_amount: SliderPreference = Field(default_factory=SliderPreference)
    stability_amount: SliderPreference = Field(default_factory=SliderPreference)
    energy_return: SliderPreference = Field(default_factory=SliderPreference)
    rocker: SliderPreference = Field(default_factory=SliderPreference)
    ground_feel: SliderPreference = Field(default_factory=SliderPreference)
    heel_drop: HeelDropPreference = Field(default_factory=HeelDropPreference)
    brand_preference: BrandPreference = Field(default_factory=BrandPreference)

    KEY_ALIASES: ClassVar[Dict[str, str]] = {
        "cushionAmount": "cushion_amount",
        "stabilityAmount": "stability_amount",
        "energyReturn": "energy_return",
        "groundFeel": "ground_feel",
        "heelDropPreference": "heel_drop",
        "heelDrop": "heel_drop",
        "brandPreference": "brand_preference",
    }

    @classmethod
    def coerce(cls, partial: Any, current: Optional["FeelPreferences"] = None) -> "FeelPreferences":
        data = rename_keys(partial, cls.KEY_ALIASES)
        update: Dict[str, Any] = {}
        for dimension in SLIDER_DIMENSIONS:
            if dimension in data:
                update[dimension] = SliderPreference.coerce(data[dimension])
        if "heel_drop" in data:
            update["heel_drop"] = HeelDropPreference.coerce(data["heel_drop"])
        if "brand_preference" in data:
            update["brand_preference"] = BrandPreference.coerce(data["brand_preference"])
        base = current if current is not None else cls()
        return base.model_copy(update=update, deep=True)


class ShoeRequest(BaseModel):
    """A request for one new shoe of the given archetype."""

    archetype: str
    feel_preferences: FeelPreferences = Field(default_factory=FeelPreferences)


class Discovery(BaseModel):
    """Mode selection and per-archetype preferences."""

    mode: Optional[str] = None
    selected_archetypes: List[str] = Field(default_factory=list)
    current_archetype_index: int = 0
    feel_preferences: Dict[str, FeelPreferences] = Field(default_factory=dict)
    shoe_requests: List[ShoeRequest] = Field(default_factory=list)

    KEY_ALIASES: ClassVar[Dict[str, str]] = {
        "selectedArchetypes": "selected_archetypes",
        "currentArchetypeIndex": "current_archetype_index",
        "feelPreferences": "feel_preferences",
        "shoeRequests": "shoe_requests",
    }

    @classmethod
    def coerce(cls, partial: Any, current: Optional["Discovery"] = None) -> Dict[str, Any]:
        data = rename_keys(partial, cls.KEY_ALIASES)
        current = current or cls()
        out: Dict[str, Any] = {}

        if "mode" in data:
            out["mode"] = choice(data["mode"], WIZARD_MODES, {"shopping": "discovery"})
        if "selected_archetypes" in data:
            selected: List[str] = []
            for item in string_list(data["selected_archetypes"]):
                archetype = choice(item, ARCHETYPES)
                if archetype and archetype not in selected:
                    selected.append(archetype)
            out["selected_archetypes"] = selected[:MAX_SELECTED_ARCHETYPES]
        if "current_archetype_index" in data:
            index = coerce_int(data["current_archetype_index"], 0) or 0
            out["current_archetype_index"] = max(0, index)
        if "feel_preferences" in data and isinstance(data["feel_preferences"], dict):
            merged = {k: v.model_copy(deep=True) for k, v in current.feel_preferences.items()}
            for archetype, prefs in data["feel_preferences"].items():
                if choice(archetype, ARCHETYPES) is None:
                    continue
                merged[archetype] = FeelPreferences.coerce(prefs, merged.get(archetype))
            out["feel_preferences"] = merged
        if "shoe_requests" in data:
            out["shoe_requests"] = coerce_shoe_requests(data["shoe_requests"])
        return out


def coerce_shoe_requests(raw: Any) -> List[ShoeRequest]:
    """Coerce a stored or partial list of shoe requests."""
    requests: List[ShoeRequest] = []
    for item in raw if isinstance(raw, list) else []:
        if isinstance(item, ShoeRequest):
            requests.append(item.model_copy(deep=True))
            continue
        if not isinstance(item, dict):
            continue
        archetype = choice(item.get("archetype") or item.get("role"), ARCHETYPES)
        if archetype is None:
            continue
        prefs = item.get("feel_preferences", item.get("feelPreferences"))
        requests.append(ShoeRequest(
            archetype=archetype,
            feel_preferences=FeelPreferences.coerce(prefs),
        ))
    return requests


# =============================================================================
# Analysis
# =============================================================================

class Gap(BaseModel):
    """A missing capability detected in the runner's rotation."""

    type: str
    severity: str
    reasoning: str = ""
    missing_capability: Optional[str] = None
    recommended_archetype: Optional[str] = None

    @classmethod
    def coerce(cls, raw: Any) -> Optional["Gap"]:
        if isinstance(raw, Gap):
            return raw.model_copy()
        if not isinstance(raw, dict):
            return None
        gap_type = choice(raw.get("type"), GAP_TYPES)
        severity = choice(raw.get("severity"), GAP_SEVERITIES)
        if gap_type is None or severity is None:
            return None
        reasoning = raw.get("reasoning")
        missing = raw.get("missing_capability", raw.get("missingCapability"))
        archetype = raw.get("recommended_archetype", raw.get("recommendedArchetype"))
        return cls(
            type=gap_type,
            severity=severity,
            reasoning=reasoning if isinstance(reasoning, str) else "",
            missing_capability=missing if isinstance(missing, str) else None,
            recommended_archetype=choice(archetype, ARCHETYPES),
        )

    def to_payload(self) -> Dict[str, Any]:
        """camelCase dict in the shape the analysis service expects."""
        return {
            "type": self.type,
            "severity": self.severity,
            "reasoning": self.reasoning,
            "missingCapability": self.missing_capability,
            "recommendedArchetype": self.recommended_archetype,
        }


class Analysis(BaseModel):
    """Last gap and the results returned by the analysis service."""

    gap: Optional[Gap] = None
    rotation_summary: List[Dict[str, Any]] = Field(default_factory=list)
    recommendations: List[Dict[str, Any]] = Field(default_factory=list)
    summary_reasoning: str = ""

    KEY_ALIASES: ClassVar[Dict[str, str]] = {
        "rotationSummary": "rotation_summary",
        "summaryReasoning": "summary_reasoning",
    }

    @classmethod
    def coerce(cls, partial: Any) -> Dict[str, Any]:
        data = rename_keys(partial, cls.KEY_ALIASES)
        out: Dict[str, Any] = {}
        if "gap" in data:
            out["gap"] = Gap.coerce(data["gap"])
        for key in ("rotation_summary", "recommendations"):
            if key in data:
                value = data[key]
                out[key] = [dict(v) for v in value if isinstance(v, dict)] if isinstance(value, list) else []
        if "summary_reasoning" in data:
            reasoning = data["summary_reasoning"]
            out["summary_reasoning"] = reasoning if isinstance(reasoning, str) else ""
        return out
