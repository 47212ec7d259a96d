"""
Wizard step definitions and inline validation of local edits.

Each edit is validated as it is made. A ProfileValidationError blocks only
the offending field; the value is never staged or persisted.
"""

from typing import Any, Dict, List

from cinda.errors import ProfileValidationError
from cinda.models.records import (
    Basics,
    Goals,
    FeelPreferences,
    SliderPreference,
    HeelDropPreference,
    BrandPreference,
    choice,
    string_list,
)
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
    PREFERENCE_USER_SET,
    SLIDER_DIMENSIONS,
    FEEL_VALUE_RANGE,
    HEEL_DROP_OPTIONS,
    BRAND_MODES,
    VOLUME_UNIT_KM,
)
from cinda.utils.validators import (
    validate_weekly_volume,
    height_to_cm,
    weight_to_kg,
    validate_age,
    coerce_int,
)


STEP_BASICS = "basics"
STEP_GOALS = "goals"
STEP_ROTATION = "rotation"
STEP_MODE_SELECT = "mode_select"
STEP_PREFERENCES = "preferences"
STEP_SUBMITTED = "submitted"

STEP_ORDER: List[str] = [
    STEP_BASICS,
    STEP_GOALS,
    STEP_ROTATION,
    STEP_MODE_SELECT,
    STEP_PREFERENCES,
    STEP_SUBMITTED,
]

# Defaults used by the dirty check
STEP_DEFAULTS: Dict[str, Any] = {
    STEP_BASICS: Basics().model_dump(),
    STEP_GOALS: Goals().model_dump(),
    STEP_ROTATION: {"current_shoes": []},
    STEP_MODE_SELECT: {"mode": None, "selected_archetypes": []},
    STEP_PREFERENCES: FeelPreferences().model_dump(),
}


def _choice_or_error(field: str, value: Any, allowed, aliases=None) -> str:
    result = choice(value, allowed, aliases)
    if result is None:
        raise ProfileValidationError(field, f"'{value}' is not a valid option")
    return result


# =============================================================================
# Per-step validators
# =============================================================================

def _validate_basics(field: str, value: Any) -> Dict[str, Any]:
    if field == "first_name":
        return {"first_name": value.strip() if isinstance(value, str) else ""}
    if field == "age":
        return {"age": None if value in (None, "") else validate_age(value)}
    if field == "height":
        if value in (None, ""):
            return {"height_cm": None}
        if isinstance(value, dict):
            unit = value.get("unit", "cm")
            return {"height_cm": height_to_cm(
                value.get("value"), unit, value.get("feet"), value.get("inches")
            )}
        return {"height_cm": height_to_cm(value)}
    if field == "weight":
        if value in (None, ""):
            return {"weight_kg": None}
        if isinstance(value, dict):
            return {"weight_kg": weight_to_kg(value.get("value"), value.get("unit", "kg"))}
        return {"weight_kg": weight_to_kg(value)}
    if field == "experience":
        return {"experience": _choice_or_error(field, value, EXPERIENCE_LEVELS, EXPERIENCE_ALIASES)}
    raise ProfileValidationError(field, "unknown field for basics")


def _validate_goals(field: str, value: Any) -> Dict[str, Any]:
    options = {
        "primary_goal": PRIMARY_GOALS,
        "running_pattern": RUNNING_PATTERNS,
        "trail_running": TRAIL_RUNNING_OPTIONS,
        "foot_strike": FOOT_STRIKES,
    }
    if field in options:
        return {field: _choice_or_error(field, value, options[field])}
    if field == "weekly_volume":
        if value in (None, ""):
            return {"weekly_volume": None}
        if isinstance(value, dict):
            return {"weekly_volume": validate_weekly_volume(value.get("value"), value.get("unit", VOLUME_UNIT_KM))}
        return {"weekly_volume": validate_weekly_volume(value)}
    if field == "race_time_input":
        if value is None:
            return {"race_time_input": None}
        if not isinstance(value, dict) or str(value.get("distance", "")) not in RACE_DISTANCE_MAP:
            raise ProfileValidationError(field, "choose a race distance")
        hours = coerce_int(value.get("hours"), 0) or 0
        minutes = coerce_int(value.get("minutes"), 0) or 0
        seconds = coerce_int(value.get("seconds"), 0) or 0
        if hours < 0 or not 0 <= minutes < 60 or not 0 <= seconds < 60:
            raise ProfileValidationError(field, "enter a valid time")
        if hours == 0 and minutes == 0:
            raise ProfileValidationError(field, "enter a valid time")
        return {"race_time_input": {
            "distance": str(value["distance"]),
            "hours": hours,
            "minutes": minutes,
            "seconds": seconds,
        }}
    raise ProfileValidationError(field, "unknown field for goals")


def _validate_mode_select(field: str, value: Any) -> Dict[str, Any]:
    if field == "mode":
        return {"mode": _choice_or_error(field, value, WIZARD_MODES)}
    if field == "selected_archetypes":
        selected: List[str] = []
        for item in string_list(value):
            archetype = _choice_or_error(field, item, ARCHETYPES)
            if archetype not in selected:
                selected.append(archetype)
        if len(selected) > MAX_SELECTED_ARCHETYPES:
            raise ProfileValidationError(field, f"choose at most {MAX_SELECTED_ARCHETYPES}")
        return {"selected_archetypes": selected}
    raise ProfileValidationError(field, "unknown field for mode selection")


def _validate_preferences(field: str, value: Any) -> Dict[str, Any]:
    if field in SLIDER_DIMENSIONS:
        if isinstance(value, dict):
            mode = _choice_or_error(field, value.get("mode"), PREFERENCE_MODES)
            if mode == PREFERENCE_USER_SET:
                _check_feel_value(field, value.get("value"))
            return {field: SliderPreference.coerce(value).model_dump()}
        _check_feel_value(field, value)
        return {field: SliderPreference.coerce(value).model_dump()}
    if field == "heel_drop":
        values = string_list(value.get("values") if isinstance(value, dict) else None)
        unknown = [v for v in values if v not in HEEL_DROP_OPTIONS]
        if unknown:
            raise ProfileValidationError(field, f"unknown heel drop {unknown}")
        return {field: HeelDropPreference.coerce(value).model_dump()}
    if field == "brand_preference":
        mode = value.get("mode") if isinstance(value, dict) else None
        _choice_or_error(field, mode, BRAND_MODES)
        return {field: BrandPreference.coerce(value).model_dump()}
    raise ProfileValidationError(field, "unknown field for preferences")


def _check_feel_value(field: str, value: Any) -> None:
    number = coerce_int(value)
    low, high = FEEL_VALUE_RANGE
    if number is None or not low <= number <= high or (isinstance(value, float) and not value.is_integer()):
        raise ProfileValidationError(field, f"must be a whole number from {low} to {high}")


VALIDATORS = {
    STEP_BASICS: _validate_basics,
    STEP_GOALS: _validate_goals,
    STEP_MODE_SELECT: _validate_mode_select,
    STEP_PREFERENCES: _validate_preferences,
}


def validate_edit(step: str, field: str, value: Any) -> Dict[str, Any]:
    """
    Validate one edit and return the canonical values to stage.

    Args:
        step: Current wizard step
        field: Edited field name (e.g. "height", "weekly_volume")
        value: Raw input

    Returns:
        Dict of record keys to canonical values (e.g. {"height_cm": 180})

    Raises:
        ProfileValidationError: Malformed or out-of-range input
    """
    validator = VALIDATORS.get(step)
    if validator is None:
        raise ProfileValidationError(field, f"step '{step}' has no editable fields")
    return validator(field, value)


def missing_for_step(step: str, values: Dict[str, Any]) -> List[str]:
    """
    Required fields still missing on a step.

    Args:
        step: Wizard step
        values: Committed record merged with local edits

    Returns:
        Names of missing fields; empty when the step can proceed
    """
    missing: List[str] = []
    if step == STEP_BASICS:
        if not (values.get("first_name") or "").strip():
            missing.append("first_name")
        if not values.get("experience"):
            missing.append("experience")
    elif step == STEP_GOALS:
        if not values.get("primary_goal"):
            missing.append("primary_goal")
    elif step == STEP_ROTATION:
        for shoe in values.get("current_shoes", []):
            if not shoe.is_complete:
                missing.append(f"current_shoes.{shoe.shoe_id}")
    elif step == STEP_MODE_SELECT:
        if not values.get("mode"):
            missing.append("mode")
        count = len(values.get("selected_archetypes") or [])
        if not 1 <= count <= MAX_SELECTED_ARCHETYPES:
            missing.append("selected_archetypes")
    return missing
