"""
PersistenceLayer - Durable storage keyed by logical domain.

Each domain (profile, shoes, recommendations, gap, shoe requests, chat
context) lives under its own key in a versioned envelope. Saving never
raises: failures are logged and reported as ``False`` with the previous
value left in place. Loading never raises either: corrupt or foreign data
reads as None.
"""

import logging
import threading
import warnings
from typing import Any, Dict, List, Optional

from pydantic_core import PydanticSerializationError

from cinda.errors import PersistenceError, SchemaDriftWarning
from cinda.utils.constants import (
    SCHEMA_VERSION,
    STORAGE_KEY_PROFILE,
    STORAGE_KEY_SHOES,
    STORAGE_KEY_RECOMMENDATIONS,
    STORAGE_KEY_GAP,
    STORAGE_KEY_SHOE_REQUESTS,
    STORAGE_KEY_CHAT_CONTEXT,
    STORAGE_KEY_LEGACY_ANALYSIS,
)
from cinda.utils.race_time import repair_legacy_race_time
from .backends import StorageBackend, MemoryBackend
from .envelope import StoredRecord


logger = logging.getLogger(__name__)


EXPECTED_RECOMMENDATION_COUNT = 3


class DomainStore:
    """
    Load/save/clear for one storage key.

    Writes for the key are serialised by a lock, so they land in the order
    they were made.

    Attributes:
        warnings: Schema drift and corrupt-data messages seen on load
    """

    def __init__(
        self,
        backend: StorageBackend,
        key: str,
        legacy_key: Optional[str] = None,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self.backend = backend
        self.key = key
        self.legacy_key = legacy_key
        self.warnings: List[str] = []
        self._lock = lock or threading.RLock()

    def get_existing(self) -> Optional[StoredRecord]:
        """
        Full stored envelope, or None if absent or unreadable.
        """
        try:
            raw = self.backend.get(self.key)
        except PersistenceError as e:
            logger.error("Failed to read %s: %s", self.key, e)
            return None
        if raw is None:
            return None
        try:
            return StoredRecord.from_json(raw, legacy_key=self.legacy_key)
        except ValueError as e:
            message = f"Ignoring unreadable data under '{self.key}': {e}"
            self.warnings.append(message)
            logger.warning(message)
            return None

    def load(self) -> Any:
        """
        Stored payload, or None.

        A schema version other than the current one is reported as a
        warning and the payload is returned unchanged.
        """
        record = self.get_existing()
        if record is None:
            return None
        if record.schema_version != SCHEMA_VERSION:
            message = (
                f"'{self.key}' schema version {record.schema_version} "
                f"differs from {SCHEMA_VERSION}, may need migration"
            )
            self.warnings.append(message)
            logger.warning(message)
            warnings.warn(message, SchemaDriftWarning, stacklevel=2)
        return record.payload

    def save(self, payload: Any) -> bool:
        """
        Store a payload, keeping the original creation time.

        The envelope is fully serialised before a single backend write, so a
        failure leaves the previous value untouched.

        Returns:
            True on success, False on serialization or backend failure
        """
        with self._lock:
            existing = self.get_existing()
            try:
                record = StoredRecord.new(
                    payload,
                    created_at=existing.created_at if existing else None,
                )
                serialized = record.to_json()
            except (ValueError, TypeError, PydanticSerializationError) as e:
                logger.error("Failed to serialize %s: %s", self.key, e)
                return False
            try:
                self.backend.set(self.key, serialized)
            except PersistenceError as e:
                logger.error("Failed to save %s: %s", self.key, e)
                return False
            return True

    def clear(self) -> None:
        with self._lock:
            try:
                self.backend.delete(self.key)
            except PersistenceError as e:
                logger.error("Failed to clear %s: %s", self.key, e)


class PersistenceLayer:
    """
    All durable domains over one backend.

    Example usage:
        layer = PersistenceLayer(MemoryBackend())
        layer.shoes.save([{"shoeId": "hoka-bondi-9", "runTypes": ["all_runs"]}])
        layer.has_added_shoes()
        # Returns: True
    """

    def __init__(self, backend: Optional[StorageBackend] = None) -> None:
        self.backend = backend if backend is not None else MemoryBackend()
        self._lock = threading.RLock()

        self.profile = DomainStore(self.backend, STORAGE_KEY_PROFILE, "profile", self._lock)
        self.shoes = DomainStore(self.backend, STORAGE_KEY_SHOES, "shoes", self._lock)
        self.recommendations = DomainStore(self.backend, STORAGE_KEY_RECOMMENDATIONS, "*", self._lock)
        self.gap = DomainStore(self.backend, STORAGE_KEY_GAP, "gap", self._lock)
        self.shoe_requests = DomainStore(self.backend, STORAGE_KEY_SHOE_REQUESTS, "shoeRequests", self._lock)
        self.chat_context = DomainStore(self.backend, STORAGE_KEY_CHAT_CONTEXT, "chatContext", self._lock)

    @property
    def stores(self) -> List[DomainStore]:
        return [
            self.profile,
            self.shoes,
            self.recommendations,
            self.gap,
            self.shoe_requests,
            self.chat_context,
        ]

    @property
    def warnings(self) -> List[str]:
        return [w for store in self.stores for w in store.warnings]

    # =========================================================================
    # Profile
    # =========================================================================

    def load_profile(self) -> Optional[Dict[str, Any]]:
        """
        Stored profile, with legacy decimal-hour race times repaired.

        The repair happens in memory only; storage is untouched until
        ``migrate_profile`` is called.
        """
        profile = self.profile.load()
        if not isinstance(profile, dict):
            return None
        race_time = profile.get("raceTime")
        if isinstance(race_time, dict):
            repaired = repair_legacy_race_time(race_time)
            if repaired != race_time:
                profile = {**profile, "raceTime": repaired}
        return profile

    def migrate_profile(self) -> bool:
        """
        Write the repaired profile back if loading changed it.

        Returns:
            True if a migrated profile was saved
        """
        with self._lock:
            stored = self.profile.load()
            profile = self.load_profile()
            if profile is None or profile == stored:
                return False
            logger.info("Migrating stored profile race time")
            return self.profile.save(profile)

    # =========================================================================
    # Shoes
    # =========================================================================

    def load_shoes(self) -> List[Dict[str, Any]]:
        shoes = self.shoes.load()
        return [s for s in shoes if isinstance(s, dict)] if isinstance(shoes, list) else []

    def add_shoe(self, shoe: Dict[str, Any]) -> bool:
        return self.shoes.save(self.load_shoes() + [shoe])

    def remove_shoe(self, shoe_id: str) -> bool:
        return self.shoes.save([s for s in self.load_shoes() if _shoe_id(s) != shoe_id])

    def update_shoe(self, shoe_id: str, updates: Dict[str, Any]) -> bool:
        updated = [
            {**s, **updates} if _shoe_id(s) == shoe_id else s
            for s in self.load_shoes()
        ]
        return self.shoes.save(updated)

    # =========================================================================
    # Recommendations
    # =========================================================================

    def save_recommendations(
        self,
        gap: Optional[Dict[str, Any]],
        recommendations: List[Dict[str, Any]],
        summary_reasoning: str = "",
    ) -> bool:
        return self.recommendations.save({
            "gap": gap,
            "recommendations": recommendations,
            "summaryReasoning": summary_reasoning,
        })

    def load_recommendations(self) -> Optional[Dict[str, Any]]:
        stored = self.recommendations.load()
        return stored if isinstance(stored, dict) else None

    # =========================================================================
    # Progress
    # =========================================================================

    def has_completed_profile(self) -> bool:
        profile = self.profile.load()
        if not isinstance(profile, dict):
            return False
        return bool(profile.get("firstName") and profile.get("experience") and profile.get("primaryGoal"))

    def has_added_shoes(self) -> bool:
        return len(self.load_shoes()) > 0

    def has_recommendations(self) -> bool:
        stored = self.load_recommendations()
        recs = stored.get("recommendations") if stored else None
        return isinstance(recs, list) and len(recs) == EXPECTED_RECOMMENDATION_COUNT

    def user_progress(self) -> Dict[str, Any]:
        """
        Where the runner is in the overall flow.

        Returns:
            Dict with completed_profile, added_shoes, has_recommendations and
            current_step (profile, shoes, recommendations or chat)
        """
        completed = self.has_completed_profile()
        added = self.has_added_shoes()
        has_recs = self.has_recommendations()

        if not completed:
            step = "profile"
        elif not added:
            step = "shoes"
        elif not has_recs:
            step = "recommendations"
        else:
            step = "chat"

        return {
            "completed_profile": completed,
            "added_shoes": added,
            "has_recommendations": has_recs,
            "current_step": step,
        }

    # =========================================================================
    # Reset
    # =========================================================================

    def clear_all(self) -> bool:
        """
        Remove every domain key, plus the legacy analysis key.

        All-or-nothing: if a delete fails, keys already deleted are written
        back and False is returned.
        """
        keys = [store.key for store in self.stores] + [STORAGE_KEY_LEGACY_ANALYSIS]
        with self._lock:
            try:
                previous = {key: self.backend.get(key) for key in keys}
            except PersistenceError as e:
                logger.error("Failed to snapshot storage before clearing: %s", e)
                return False

            deleted: List[str] = []
            try:
                for key in keys:
                    if previous[key] is None:
                        continue
                    self.backend.delete(key)
                    deleted.append(key)
            except PersistenceError as e:
                logger.error("Failed to clear storage, restoring %d keys: %s", len(deleted), e)
                self._restore(deleted, previous)
                return False

            for store in self.stores:
                store.warnings.clear()
            logger.info("Cleared all stored data (%d keys)", len(deleted))
            return True

    def _restore(self, keys: List[str], previous: Dict[str, Optional[str]]) -> None:
        for key in keys:
            try:
                self.backend.set(key, previous[key])
            except PersistenceError as e:
                logger.error("Failed to restore %s: %s", key, e)


def _shoe_id(shoe: Dict[str, Any]) -> Optional[str]:
    nested = shoe.get("shoe") if isinstance(shoe.get("shoe"), dict) else {}
    return shoe.get("shoeId") or shoe.get("shoe_id") or nested.get("shoe_id")
