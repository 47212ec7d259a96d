"""
Validation and unit conversion for wizard inputs.

Strict validators raise ProfileValidationError so the wizard can show the
message next to the field. The ``*_safe`` variants return a default instead
and are used when merging partial records, which must never fail.
"""

import math
from typing import Any, Dict, Optional, Union

from cinda.errors import ProfileValidationError
from .constants import (
    CM_PER_INCH,
    KG_PER_LB,
    HEIGHT_CM_RANGE,
    WEIGHT_KG_RANGE,
    WEEKLY_VOLUME_LIMITS,
    VOLUME_UNIT_KM,
)


Number = Union[int, float]


def _to_number(field: str, value: Any) -> float:
    """Convert user input to a finite float or raise."""
    if isinstance(value, bool) or value is None:
        raise ProfileValidationError(field, "a number is required")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", ".")
        if not text:
            raise ProfileValidationError(field, "a number is required")
        try:
            number = float(text)
        except ValueError:
            raise ProfileValidationError(field, f"'{value}' is not a number")
    if math.isnan(number) or math.isinf(number):
        raise ProfileValidationError(field, f"'{value}' is not a number")
    return number


def validate_weekly_volume(value: Any, unit: str = VOLUME_UNIT_KM) -> Dict[str, Any]:
    """
    Validate weekly running volume.

    Args:
        value: Distance per week (whole number)
        unit: "km" or "mi"

    Returns:
        Dict with keys value (int) and unit

    Raises:
        ProfileValidationError: Unknown unit, non-numeric, fractional or
            outside 0-300 km / 0-186 mi

    Examples:
        >>> validate_weekly_volume(300, "km")
        {'value': 300, 'unit': 'km'}
        >>> validate_weekly_volume(187, "mi")
        Traceback (most recent call last):
        ...
        cinda.errors.ProfileValidationError: weekly_volume: must be between 0 and 186 mi
    """
    unit = str(unit or "").strip().lower()
    if unit not in WEEKLY_VOLUME_LIMITS:
        raise ProfileValidationError("weekly_volume", f"unknown unit '{unit}'")

    number = _to_number("weekly_volume", value)
    if not number.is_integer():
        raise ProfileValidationError("weekly_volume", "must be a whole number")

    limit = WEEKLY_VOLUME_LIMITS[unit]
    if number < 0 or number > limit:
        raise ProfileValidationError(
            "weekly_volume", f"must be between 0 and {limit} {unit}"
        )
    return {"value": int(number), "unit": unit}


def height_to_cm(value: Any = None, unit: str = "cm", feet: Any = None, inches: Any = None) -> int:
    """
    Convert a height entry to canonical centimetres.

    Args:
        value: Height in cm when unit is "cm"
        unit: "cm" or "ft/in"
        feet: Feet component when unit is "ft/in"
        inches: Inches component when unit is "ft/in"

    Returns:
        Height in whole centimetres

    Raises:
        ProfileValidationError: Non-numeric or implausible height
    """
    if unit == "ft/in":
        ft = _to_number("height", feet) if feet not in (None, "") else 0.0
        inch = _to_number("height", inches) if inches not in (None, "") else 0.0
        if ft == 0 and inch == 0:
            raise ProfileValidationError("height", "a number is required")
        cm = round((ft * 12 + inch) * CM_PER_INCH)
    elif unit == "cm":
        cm = round(_to_number("height", value))
    else:
        raise ProfileValidationError("height", f"unknown unit '{unit}'")

    low, high = HEIGHT_CM_RANGE
    if cm < low or cm > high:
        raise ProfileValidationError("height", f"must be between {low} and {high} cm")
    return int(cm)


def weight_to_kg(value: Any, unit: str = "kg") -> float:
    """
    Convert a weight entry to canonical kilograms (one decimal place).

    Raises:
        ProfileValidationError: Non-numeric, unknown unit or implausible weight
    """
    number = _to_number("weight", value)
    if unit == "lbs":
        kg = round(number * KG_PER_LB * 10) / 10
    elif unit == "kg":
        kg = round(number * 10) / 10
    else:
        raise ProfileValidationError("weight", f"unknown unit '{unit}'")

    low, high = WEIGHT_KG_RANGE
    if kg < low or kg > high:
        raise ProfileValidationError("weight", f"must be between {low:g} and {high:g} kg")
    return kg


def validate_age(value: Any) -> int:
    """Validate an age entry (whole years, 5-110)."""
    number = _to_number("age", value)
    if not number.is_integer() or number < 5 or number > 110:
        raise ProfileValidationError("age", "must be a whole number between 5 and 110")
    return int(number)


def coerce_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Best-effort integer conversion, returning default on failure."""
    try:
        number = _to_number("value", value)
    except ProfileValidationError:
        return default
    return int(round(number))


def coerce_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Best-effort float conversion, returning default on failure."""
    try:
        return _to_number("value", value)
    except ProfileValidationError:
        return default


def weekly_volume_safe(value: Any) -> Optional[Dict[str, Any]]:
    """Coerce a stored or partial weekly volume dict, or None if invalid."""
    if not isinstance(value, dict):
        return None
    try:
        return validate_weekly_volume(value.get("value"), value.get("unit", VOLUME_UNIT_KM))
    except ProfileValidationError:
        return None
