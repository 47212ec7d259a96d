"""
Race time conversion between the picker input and the API format.

The picker stores hours, minutes and seconds. The API wants a distance plus
whole minutes, always derived as ``hours * 60 + minutes``.
"""

import logging
from typing import Any, Dict, Optional

from .constants import (
    RACE_DISTANCE_MAP,
    LEGACY_HOURS_THRESHOLDS,
    LEGACY_HOURS_DEFAULT_THRESHOLD,
)
from .validators import coerce_int, coerce_float


logger = logging.getLogger(__name__)


def picker_to_minutes(picker: Dict[str, Any]) -> int:
    """
    Derive whole minutes from a picker entry.

    Examples:
        >>> picker_to_minutes({"hours": 1, "minutes": 45})
        105
    """
    hours = coerce_int(picker.get("hours"), 0) or 0
    minutes = coerce_int(picker.get("minutes"), 0) or 0
    return hours * 60 + minutes


def build_api_race_time(picker: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Convert a picker race time into API format.

    Args:
        picker: {distance, hours, minutes, seconds}

    Returns:
        {distance, timeMinutes} or None if the distance is unknown
    """
    distance = RACE_DISTANCE_MAP.get(str(picker.get("distance", "")).strip())
    if distance is None:
        return None
    return {"distance": distance, "timeMinutes": picker_to_minutes(picker)}


def repair_legacy_race_time(race_time: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Repair stored race times that older builds saved as decimal hours.

    A fractional value under the distance threshold (e.g. 2.2833 for a
    marathon) is read as hours and converted to minutes.
    """
    if not isinstance(race_time, dict):
        return None
    value = coerce_float(race_time.get("timeMinutes"))
    if value is None or value <= 0:
        return dict(race_time)

    threshold = LEGACY_HOURS_THRESHOLDS.get(
        race_time.get("distance"), LEGACY_HOURS_DEFAULT_THRESHOLD
    )
    if value < threshold and not float(value).is_integer():
        repaired = dict(race_time)
        repaired["timeMinutes"] = int(round(value * 60))
        logger.info(
            "Repaired legacy race time %s -> %s minutes",
            value, repaired["timeMinutes"],
        )
        return repaired
    return dict(race_time)


def normalize_race_time_for_api(
    stored: Optional[Dict[str, Any]],
    picker: Optional[Dict[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Pick the race time to send to the API.

    The original picker input always wins over a stored derived value, which
    may come from a legacy record that stored hours as minutes.

    Examples:
        >>> normalize_race_time_for_api(
        ...     {"distance": "half", "timeMinutes": 45},
        ...     {"distance": "13.1mi", "hours": 1, "minutes": 45},
        ... )
        {'distance': 'half', 'timeMinutes': 105}
    """
    if isinstance(picker, dict):
        built = build_api_race_time(picker)
        if built is not None:
            return built
    return repair_legacy_race_time(stored)
