"""
StoredRecord model - Versioned envelope around every persisted payload.

On the wire the envelope is camelCase JSON:
``{"schemaVersion": 1, "payload": ..., "createdAt": ..., "updatedAt": ...}``.
Older builds stored the payload under a domain-specific key (``profile``,
``shoes``, ``gap``...); those envelopes are still readable.
"""

import json
from datetime import datetime
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from cinda.models.field import utcnow
from cinda.utils.constants import SCHEMA_VERSION


T = TypeVar("T")

ENVELOPE_KEYS = {"schemaVersion", "payload", "createdAt", "updatedAt"}


class StoredRecord(BaseModel, Generic[T]):
    """
    Persistence envelope.

    Why: explicit versioning and a validated shape before trusting stored data.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    schema_version: int = SCHEMA_VERSION
    payload: T
    created_at: datetime
    updated_at: datetime

    @classmethod
    def new(cls, payload: Any, created_at: Optional[datetime] = None) -> "StoredRecord":
        """Wrap a payload, keeping an existing creation time if given."""
        now = utcnow()
        return cls(payload=payload, created_at=created_at or now, updated_at=now)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str, legacy_key: Optional[str] = None) -> "StoredRecord":
        """
        Parse a stored envelope.

        Args:
            raw: JSON text from the backend
            legacy_key: Domain-specific key older builds used for the payload

        Returns:
            StoredRecord

        Raises:
            ValueError: Corrupt JSON or a shape that is not an envelope
                (pydantic's ValidationError is a ValueError)
        """
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
        return cls.model_validate(_upgrade_legacy(data, legacy_key))


def _upgrade_legacy(data: Dict[str, Any], legacy_key: Optional[str]) -> Dict[str, Any]:
    """Map an older envelope onto the current field names."""
    data = dict(data)
    if "payload" not in data and legacy_key:
        if legacy_key == "*":
            # Whole-object payload (e.g. stored recommendations)
            rest = {k: v for k, v in data.items() if k not in ENVELOPE_KEYS}
            if rest:
                data["payload"] = rest
        elif legacy_key in data:
            data["payload"] = data.pop(legacy_key)
    if "updatedAt" not in data and "createdAt" in data:
        data["updatedAt"] = data["createdAt"]
    return data
