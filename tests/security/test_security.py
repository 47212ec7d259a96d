"""
Security tests for the Cinda profile core.

Tests cover:
- Path traversal in storage keys
- SQL passed as data to PostgreSQL
- Oversized writes against the storage quota
- Hostile or foreign stored data
- Pathological free text
"""

import json
from unittest.mock import patch

import pytest

from cinda.errors import PersistenceError, StorageQuotaExceeded
from cinda.extraction.signal_extractor import SignalExtractor
from cinda.models.profile import ProfileAggregate
from cinda.storage.backends import FileBackend, MemoryBackend, PostgresBackend
from cinda.storage.persistence import PersistenceLayer


class TestPathTraversal:
    """Storage keys cannot escape the storage directory."""

    @pytest.mark.parametrize("key", ["../etc/passwd", "a/b", "..\\windows", ".hidden", ""])
    def test_reject_unsafe_keys(self, tmp_path, key):
        """Keys with separators or a leading dot are rejected."""
        backend = FileBackend(tmp_path)
        with pytest.raises(PersistenceError):
            backend.set(key, "x")

    def test_store_with_unsafe_key_fails_softly(self, tmp_path):
        """A domain store over an unsafe key reports failure instead of raising."""
        layer = PersistenceLayer(FileBackend(tmp_path))
        layer.profile.key = "../escape"

        assert layer.profile.save({"firstName": "Sam"}) is False
        assert not (tmp_path.parent / "escape.json").exists()


class TestSQLInjectionPrevention:
    """Keys and values are passed as query parameters."""

    def test_malicious_key_is_a_parameter(self):
        """SQL in a key never reaches the statement text."""
        with patch("cinda.storage.backends.pool.SimpleConnectionPool") as pool_cls:
            conn = pool_cls.return_value.getconn.return_value
            cursor = conn.cursor.return_value.__enter__.return_value

            malicious = "x'; DROP TABLE cinda_storage; --"
            PostgresBackend("postgresql://test").set(malicious, "{}")

            sql, params = cursor.execute.call_args[0]
            assert "DROP TABLE" not in sql
            assert malicious in params


class TestQuota:
    """Oversized writes are refused."""

    def test_quota_exceeded(self):
        """The memory backend enforces its byte quota."""
        backend = MemoryBackend(quota_bytes=100)
        with pytest.raises(StorageQuotaExceeded):
            backend.set("k", "x" * 200)

    def test_overwrite_counts_once(self):
        """Replacing a value only counts the new size."""
        backend = MemoryBackend(quota_bytes=100)
        backend.set("k", "x" * 90)
        backend.set("k", "y" * 90)
        assert backend.get("k") == "y" * 90

    def test_non_string_values_refused(self):
        """Backends only store strings."""
        with pytest.raises(PersistenceError):
            MemoryBackend().set("k", {"a": 1})


class TestHostileStoredData:
    """Foreign data in storage never crashes loading."""

    @pytest.mark.parametrize("raw", [
        "null",
        "42",
        "\"profile\"",
        json.dumps({"schemaVersion": "one", "payload": {}, "createdAt": "x", "updatedAt": "y"}),
        "\x00\x01binary",
    ])
    def test_unreadable_profile_is_none(self, raw):
        """Every kind of garbage reads as None."""
        layer = PersistenceLayer(MemoryBackend())
        layer.backend.set("cindaProfile", raw)

        assert layer.load_profile() is None
        assert layer.has_completed_profile() is False

    def test_malformed_fields_coerced(self):
        """A readable profile with wrong types is coerced field by field."""
        profile = ProfileAggregate.from_stored(
            profile={
                "firstName": ["not", "a", "string"],
                "age": "ninety",
                "weeklyVolume": {"value": 10 ** 9, "unit": "km"},
                "signals": {"shoe_purpose": "not a field"},
            },
            shoes="not a list",
            chat_context={"injuries": "knee", "fit": ["bad"]},
            gap={"type": "unknown"},
        )
        state = profile.snapshot()

        assert state.basics.first_name == ""
        assert state.basics.age is None
        assert state.goals.weekly_volume is None
        assert state.rotation == []
        assert state.chat_context.injuries == ["knee"]
        assert state.chat_context.fit == {}
        assert state.analysis.gap is None


class TestPathologicalText:
    """Extraction handles hostile input."""

    def test_very_long_message(self):
        """A long message is processed."""
        extractor = SignalExtractor()
        proposal = extractor.extract("I run trails " * 5000)
        assert proposal.get("shoe_purpose").value == "trail"

    def test_regex_metacharacters(self):
        """Regex metacharacters in text are treated as text."""
        extractor = SignalExtractor()
        assert extractor.extract("(.*)+[a-z]{1000}\\1 ??? $$$").updates == []

    def test_non_string_input(self):
        """Non-string input is stringified rather than crashing."""
        assert SignalExtractor().extract(12345).is_empty
