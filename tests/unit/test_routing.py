"""
Unit tests for mode routing, request assembly and response handling.

Tests cover:
- Mode precedence (shoe requests > gap > invalid)
- Shoe normalisation
- Race time normalisation
- Negative signals and brand folding
- Analyze response parsing and write-back
"""

import pytest

from cinda.errors import InvalidRoutingState, ServerError
from cinda.extraction.signal_extractor import SignalExtractor
from cinda.models.profile import ProfileAggregate
from cinda.models.records import FeelPreferences
from cinda.routing.mode_router import ModeRouter, detect_mode
from cinda.routing.payload_builder import PayloadBuilder, _fold_brand_dislikes
from cinda.routing.results import parse_analyze_response, apply_outcome
from cinda.storage.backends import MemoryBackend
from cinda.storage.persistence import PersistenceLayer


GAP = {"type": "performance", "severity": "medium", "reasoning": "No fast shoe", "recommendedArchetype": "race_shoe"}


class TestModeRouter:
    """Tests for mode precedence."""

    def test_requests_win_over_gap(self):
        """Stored shoe requests route to discovery even with a gap."""
        assert detect_mode([{"archetype": "race_shoe"}], GAP) == "discovery"

    def test_gap_routes_to_analysis(self):
        """A gap without requests routes to analysis."""
        assert detect_mode([], GAP) == "analysis"
        assert detect_mode(None, GAP) == "analysis"

    def test_nothing_stored(self):
        """Neither is fatal and restarts at basics."""
        with pytest.raises(InvalidRoutingState) as exc:
            detect_mode(None, None)
        assert exc.value.restart_step == "basics"

    def test_unusable_requests_do_not_route(self):
        """Requests with no known archetype count as absent."""
        with pytest.raises(InvalidRoutingState):
            detect_mode([{"archetype": "bogus"}, "junk"], None)
        assert detect_mode([{"archetype": "bogus"}], GAP) == "analysis"

    def test_malformed_gap_does_not_route(self):
        """A gap without a known type and severity counts as absent."""
        with pytest.raises(InvalidRoutingState):
            detect_mode([], {"foo": "bar"})
        with pytest.raises(InvalidRoutingState):
            detect_mode(None, {"type": "coverage"})

    def test_router_rejects_malformed_stored_gap(self):
        """A stored gap of the wrong shape restarts the wizard."""
        layer = PersistenceLayer(MemoryBackend())
        layer.gap.save({"foo": "bar"})

        with pytest.raises(InvalidRoutingState) as exc:
            ModeRouter(layer).route()
        assert exc.value.restart_step == "basics"

    def test_router_reads_storage(self):
        """ModeRouter reads the stored artifacts."""
        layer = PersistenceLayer(MemoryBackend())
        router = ModeRouter(layer)

        with pytest.raises(InvalidRoutingState):
            router.route()

        layer.gap.save(GAP)
        assert router.route() == "analysis"

        layer.shoe_requests.save([{"archetype": "trail_shoe"}])
        assert router.route() == "discovery"

    def test_corrupt_requests_ignored(self):
        """Unreadable requests fall through to the gap."""
        layer = PersistenceLayer(MemoryBackend())
        layer.backend.set("cindaShoeRequests", "garbage")
        layer.gap.save(GAP)

        assert ModeRouter(layer).route() == "analysis"


class TestPayloadBuilder:
    """Tests for request assembly."""

    @pytest.fixture
    def builder(self):
        """Create builder instance."""
        return PayloadBuilder()

    def test_normalize_shoes(self, builder):
        """Nested and flat shoes become one canonical shape."""
        shoes = builder.normalize_shoes([
            {"shoe": {"shoe_id": "bondi-9"}, "runTypes": ["easy_recovery"]},
            {"shoeId": "peg-41", "runTypes": ["all_runs", "races"], "sentiment": "love", "loveTags": ["bouncy"]},
            {"runTypes": ["races"]},
        ])

        assert shoes == [
            {"shoeId": "bondi-9", "runTypes": ["recovery"], "sentiment": "neutral", "loveTags": [], "dislikeTags": []},
            {"shoeId": "peg-41", "runTypes": ["all_runs"], "sentiment": "love", "loveTags": ["bouncy"], "dislikeTags": []},
        ]

    def test_picker_race_time_wins(self, builder):
        """1h45 overrides a stale stored 45."""
        profile = builder.build_profile({
            "firstName": "Sam",
            "raceTime": {"distance": "half", "timeMinutes": 45},
            "raceTimeInput": {"distance": "13.1mi", "hours": 1, "minutes": 45},
        })
        assert profile["raceTime"] == {"distance": "half", "timeMinutes": 105}
        assert "raceTimeInput" not in profile

    def test_profile_without_race_time(self, builder):
        """No race time, no raceTime key."""
        assert builder.build_profile({"firstName": "Sam"}) == {"firstName": "Sam"}

    def test_discovery_request_shape(self, builder):
        """Discovery requests serialise with camelCase keys."""
        request = builder.build_discovery(
            {"firstName": "Sam", "experience": "beginner"},
            [{"shoeId": "a", "runTypes": ["all_runs"]}],
            [{"archetype": "daily_trainer", "feelPreferences": {"cushionAmount": 4}}],
            {"injuries": ["knee"], "pastShoes": [{"brand": "Nike", "model": "Pegasus"}]},
        ).to_json_dict()

        assert request["mode"] == "discovery"
        assert set(request) == {"mode", "profile", "currentShoes", "shoeRequests", "chatContext"}
        prefs = request["shoeRequests"][0]["feelPreferences"]
        assert prefs["cushionAmount"] == {"mode": "user_set", "value": 4}
        assert prefs["brandPreference"] == {"mode": "all", "brands": []}
        assert request["chatContext"]["pastShoes"] == [{"brand": "Nike", "model": "Pegasus"}]

    def test_analysis_request(self, builder):
        """Analysis requests carry the gap."""
        request = builder.build_analysis({"firstName": "Sam"}, [], gap=GAP).to_json_dict()

        assert request["mode"] == "analysis"
        assert request["gap"]["recommendedArchetype"] == "race_shoe"

    def test_gap_detection_request(self, builder):
        """Gap detection leaves the gap to the service."""
        request = builder.build_analysis({}, [], gap=GAP, gap_detection=True).to_json_dict()

        assert request["mode"] == "gap_detection"
        assert "gap" not in request

    def test_negative_signals_folded_in(self, builder):
        """Disliked brands from chat are excluded in every request."""
        profile = ProfileAggregate()
        profile.apply_proposal(SignalExtractor().extract("I don't like Nike in general, too firm for me"))

        request = builder.build_discovery(
            profile.to_stored_profile(),
            [],
            [{"archetype": "race_shoe"}],
        ).to_json_dict()

        negative = request["negativeSignals"]
        assert negative["brands"] == [{"brand": "Nike", "strength": 1}]
        assert negative["features"] == [{"tag": "too_firm", "strength": 1}]
        assert request["shoeRequests"][0]["feelPreferences"]["brandPreference"] == {
            "mode": "exclude",
            "brands": ["Nike"],
        }


class TestBrandFolding:
    """Tests for merging disliked brands into brand filters."""

    def _prefs(self, mode, brands):
        return FeelPreferences.coerce({"brand_preference": {"mode": mode, "brands": brands}})

    def test_exclude_extended(self):
        """Existing exclusions are kept and extended without duplicates."""
        folded = _fold_brand_dislikes(self._prefs("exclude", ["Hoka"]), ["Nike", "hoka"])
        assert folded.brand_preference.brands == ["Hoka", "Nike"]

    def test_include_drops_disliked(self):
        """Disliked brands are removed from an include list."""
        folded = _fold_brand_dislikes(self._prefs("include", ["Nike", "Saucony"]), ["Nike"])

        assert folded.brand_preference.mode == "include"
        assert folded.brand_preference.brands == ["Saucony"]

    def test_include_emptied_becomes_exclude(self):
        """An include list emptied by dislikes becomes an exclusion."""
        folded = _fold_brand_dislikes(self._prefs("include", ["Nike"]), ["Nike"])

        assert folded.brand_preference.mode == "exclude"
        assert folded.brand_preference.brands == ["Nike"]

    def test_no_dislikes(self):
        """Without dislikes the filter is unchanged."""
        prefs = self._prefs("all", [])
        assert _fold_brand_dislikes(prefs, []) == prefs


class TestResults:
    """Tests for analyze response handling."""

    def test_discovery_results_flattened(self):
        """Discovery groups are flattened into one list."""
        outcome = parse_analyze_response("discovery", {
            "success": True,
            "result": {"discoveryResults": [
                {"archetype": "race_shoe", "recommendations": [{"id": 1}, {"id": 2}]},
                {"archetype": "trail_shoe", "recommendations": [{"id": 3}]},
            ]},
        })

        assert [r["id"] for r in outcome.recommendations] == [1, 2, 3]
        assert len(outcome.discovery_results) == 2

    def test_analysis_result(self):
        """Analysis results carry gap, summary and reasoning."""
        outcome = parse_analyze_response("analysis", {
            "success": True,
            "result": {
                "gap": GAP,
                "recommendations": [{"id": 1}],
                "rotationSummary": [{"shoeId": "a", "role": "daily"}],
                "summaryReasoning": "You need speed.",
            },
        })

        assert outcome.gap.type == "performance"
        assert outcome.summary_reasoning == "You need speed."
        assert outcome.is_empty is False

    def test_unsuccessful(self):
        """success false raises ServerError."""
        with pytest.raises(ServerError, match="boom"):
            parse_analyze_response("analysis", {"success": False, "error": "boom"})

    def test_missing_result(self):
        """A successful body without a result is an error."""
        with pytest.raises(ServerError):
            parse_analyze_response("analysis", {"success": True})

    def test_apply_outcome(self):
        """Outcomes land in the profile and the recommendations domain."""
        layer = PersistenceLayer(MemoryBackend())
        profile = ProfileAggregate()
        outcome = parse_analyze_response("analysis", {
            "success": True,
            "result": {"gap": GAP, "recommendations": [{"id": 1}, {"id": 2}, {"id": 3}]},
        })

        assert apply_outcome(outcome, profile, layer) is True

        state = profile.snapshot()
        assert state.analysis.gap.recommended_archetype == "race_shoe"
        assert len(state.analysis.recommendations) == 3
        assert layer.has_recommendations() is True
        assert layer.load_recommendations()["gap"]["type"] == "performance"
