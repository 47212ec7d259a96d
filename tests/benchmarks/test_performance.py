"""
Performance benchmarks for the Cinda profile core.

Performance targets:
- Signal extraction: <2s for 1000 messages
- Persistence save/load: <1s for 200 round trips (memory)
- Request assembly: <1s for 200 discovery requests
"""

import time

import pytest

from cinda.extraction.signal_extractor import SignalExtractor
from cinda.models.profile import ProfileAggregate
from cinda.routing.payload_builder import PayloadBuilder
from cinda.storage.backends import MemoryBackend
from cinda.storage.persistence import PersistenceLayer


MESSAGES = [
    "I have wide feet and mostly run trails",
    "Training for a marathon, want something bouncy",
    "I hated the Hoka Bondi 9, way too soft",
    "Don't like Nike in general, they always give me blisters",
    "New to running, doing couch to 5k",
    "Flat feet, I overpronate, need stability",
    "Tempo on Tuesdays, intervals on Thursdays, easy runs otherwise",
    "The toe box was too narrow and I had heel slip",
]


def generate_messages(count: int) -> list:
    """Cycle sample messages with a varying suffix."""
    return [f"{MESSAGES[i % len(MESSAGES)]} ({i})" for i in range(count)]


def build_profile() -> ProfileAggregate:
    profile = ProfileAggregate()
    profile.merge_step("basics", {"first_name": "Sam", "experience": "intermediate"})
    profile.merge_step("goals", {
        "primary_goal": "race_training",
        "race_time_input": {"distance": "26.2mi", "hours": 3, "minutes": 30},
    })
    profile.merge_step("rotation", [{"shoeId": f"shoe-{i}", "runTypes": ["recovery"]} for i in range(5)])
    return profile


class TestExtractionPerformance:
    """Benchmarks for signal extraction."""

    @pytest.fixture
    def extractor(self):
        """Create extractor instance."""
        return SignalExtractor()

    def test_extract_1000_messages(self, extractor):
        """Extract 1000 messages in under 2 seconds."""
        messages = generate_messages(1000)
        snapshot = ProfileAggregate().snapshot()

        start = time.perf_counter()
        proposals = [extractor.extract(m, snapshot) for m in messages]
        elapsed = time.perf_counter() - start

        assert len(proposals) == 1000
        assert elapsed < 2.0, f"Extraction took {elapsed:.3f}s (target: <2s)"

    def test_apply_1000_proposals(self, extractor):
        """Apply 1000 proposals to one profile in under 2 seconds."""
        profile = ProfileAggregate()
        proposals = [extractor.extract(m) for m in generate_messages(1000)]

        start = time.perf_counter()
        for proposal in proposals:
            profile.apply_proposal(proposal)
        elapsed = time.perf_counter() - start

        assert elapsed < 2.0, f"Applying took {elapsed:.3f}s (target: <2s)"


class TestStoragePerformance:
    """Benchmarks for persistence."""

    def test_save_load_round_trips(self):
        """200 profile save/load round trips in under 1 second."""
        layer = PersistenceLayer(MemoryBackend())
        stored = build_profile().to_stored_profile()

        start = time.perf_counter()
        for _ in range(200):
            layer.profile.save(stored)
            layer.load_profile()
        elapsed = time.perf_counter() - start

        assert elapsed < 1.0, f"Round trips took {elapsed:.3f}s (target: <1s)"


class TestRoutingPerformance:
    """Benchmarks for request assembly."""

    def test_build_discovery_requests(self):
        """Build 200 discovery requests in under 1 second."""
        profile = build_profile()
        stored = profile.to_stored_profile()
        shoes = profile.to_stored_shoes()
        requests = [{"archetype": "race_shoe"}, {"archetype": "trail_shoe"}]
        builder = PayloadBuilder()

        start = time.perf_counter()
        for _ in range(200):
            builder.build_discovery(stored, shoes, requests, {}).to_json_dict()
        elapsed = time.perf_counter() - start

        assert elapsed < 1.0, f"Assembly took {elapsed:.3f}s (target: <1s)"
