"""
Unit tests for the profile builder wizard.

Tests cover:
- Inline validation and can_proceed
- Navigation (back never discards)
- Rotation editing on the rotation step
- Preference steps once per archetype
- Analysis mode falling back to the gap's archetype
- Abandon and the request guard
"""

import pytest

from cinda.errors import IncompleteStepError, DuplicateSubmissionError
from cinda.storage.backends import MemoryBackend
from cinda.storage.persistence import PersistenceLayer
from cinda.wizard.controller import WizardController
from cinda.wizard.steps import validate_edit, missing_for_step


@pytest.fixture
def persistence():
    """In-memory persistence layer."""
    return PersistenceLayer(MemoryBackend())


@pytest.fixture
def wizard(persistence):
    """Wizard with autosave to memory."""
    return WizardController(persistence=persistence)


def fill_basics(wizard):
    wizard.edit("first_name", "Sam")
    wizard.edit("experience", "intermediate")
    wizard.next()


def fill_to_mode_select(wizard):
    fill_basics(wizard)
    wizard.edit("primary_goal", "race_training")
    wizard.next()
    wizard.add_shoe({"shoeId": "peg", "runTypes": ["all_runs"], "sentiment": "like"})
    wizard.next()


class TestValidation:
    """Tests for inline validation."""

    def test_empty_basics_cannot_proceed(self, wizard):
        """Name and experience are required."""
        assert wizard.can_proceed() is False
        assert wizard.missing() == ["first_name", "experience"]

    def test_next_raises_when_incomplete(self, wizard):
        """next() refuses an incomplete step."""
        with pytest.raises(IncompleteStepError) as exc:
            wizard.next()
        assert exc.value.step == "basics"

    def test_invalid_edit_blocks_only_that_field(self, wizard):
        """A bad value is reported and never staged."""
        fill_basics(wizard)
        wizard.edit("primary_goal", "get_faster")

        assert wizard.edit("weekly_volume", {"value": 301, "unit": "km"}) is False
        assert "weekly_volume" in wizard.errors
        assert wizard.values()["weekly_volume"] is None
        assert wizard.can_proceed() is False

        assert wizard.edit("weekly_volume", {"value": 300, "unit": "km"}) is True
        assert wizard.can_proceed() is True

    def test_height_and_weight_converted(self, wizard):
        """Imperial entries are stored in canonical units."""
        wizard.edit("height", {"unit": "ft/in", "feet": 5, "inches": 10})
        wizard.edit("weight", {"value": 160, "unit": "lbs"})

        values = wizard.values()
        assert values["height_cm"] == 178
        assert values["weight_kg"] == 72.6

    def test_non_numeric_height(self, wizard):
        """Non-numeric height is rejected inline."""
        assert wizard.edit("height", "tall") is False
        assert "height" in wizard.errors

    def test_race_time_needs_a_time(self):
        """A race time of zero is rejected."""
        with pytest.raises(ValueError):
            validate_edit("goals", "race_time_input", {"distance": "5k", "hours": 0, "minutes": 0})

    def test_too_many_archetypes(self):
        """At most two archetypes can be selected."""
        with pytest.raises(ValueError):
            validate_edit("mode_select", "selected_archetypes", ["race_shoe", "trail_shoe", "daily_trainer"])

    def test_mode_select_requires_archetype(self):
        """Mode selection needs a mode and one or two archetypes."""
        assert missing_for_step("mode_select", {"mode": "discovery", "selected_archetypes": []}) == ["selected_archetypes"]

    def test_is_dirty(self, wizard):
        """Dirty once a field differs from its default."""
        assert wizard.is_dirty() is False
        wizard.edit("first_name", "Sam")
        assert wizard.is_dirty() is True


class TestNavigation:
    """Tests for next/back."""

    def test_next_autosaves_profile(self, wizard, persistence):
        """Committing basics saves the profile."""
        fill_basics(wizard)

        assert wizard.step == "goals"
        assert persistence.profile.load()["firstName"] == "Sam"

    def test_back_never_discards(self, wizard):
        """Edits made before going back are kept."""
        fill_basics(wizard)
        wizard.edit("primary_goal", "injury_comeback")
        wizard.edit("weekly_volume", {"value": 20, "unit": "mi"})

        assert wizard.back() == "basics"
        assert wizard.values()["first_name"] == "Sam"

        wizard.next()
        values = wizard.values()
        assert values["primary_goal"] == "injury_comeback"
        assert values["weekly_volume"] == {"value": 20, "unit": "mi"}

    def test_back_on_basics_stays(self, wizard):
        """Back on the first step is a no-op."""
        assert wizard.back() == "basics"

    def test_back_clears_errors(self, wizard):
        """Failed inline edits do not follow the runner back."""
        fill_basics(wizard)
        wizard.edit("weekly_volume", {"value": 999, "unit": "km"})
        wizard.back()
        assert wizard.errors == {}


class TestRotationStep:
    """Tests for rotation editing."""

    def test_incomplete_shoe_blocks(self, wizard):
        """Each shoe needs a role and a sentiment."""
        fill_basics(wizard)
        wizard.edit("primary_goal", "general_fitness")
        wizard.next()

        wizard.add_shoe({"shoeId": "bondi"})
        assert wizard.missing() == ["current_shoes.bondi"]

        assert wizard.toggle_shoe_role("bondi", "recovery") == ["recovery"]
        assert wizard.toggle_shoe_role("bondi", "all_runs") == ["all_runs"]
        assert wizard.set_shoe_sentiment("bondi", "love") is True
        assert wizard.can_proceed() is True

    def test_bad_sentiment_rejected(self, wizard):
        """Unknown sentiments are not applied."""
        fill_basics(wizard)
        wizard.edit("primary_goal", "general_fitness")
        wizard.next()
        wizard.add_shoe({"shoeId": "bondi"})

        assert wizard.set_shoe_sentiment("bondi", "meh") is False

    def test_rotation_saved_on_next(self, wizard, persistence):
        """Committing the rotation saves the shoes domain."""
        fill_to_mode_select(wizard)
        assert persistence.load_shoes()[0]["shoeId"] == "peg"

    def test_shoe_edits_only_on_rotation_step(self, wizard):
        """Rotation helpers are not available on other steps."""
        with pytest.raises(ValueError):
            wizard.add_shoe({"shoeId": "peg"})


class TestPreferences:
    """Tests for the per-archetype preference steps."""

    def test_each_archetype_visited_once(self, wizard, persistence):
        """One preference step per selected archetype, then submit."""
        fill_to_mode_select(wizard)
        wizard.edit("mode", "discovery")
        wizard.edit("selected_archetypes", ["race_shoe", "trail_shoe"])
        wizard.next()

        visited = []
        while wizard.step == "preferences":
            visited.append(wizard.current_archetype)
            wizard.edit("cushion_amount", {"mode": "user_set", "value": 2})
            wizard.next()

        assert visited == ["race_shoe", "trail_shoe"]
        assert wizard.step == "submitted"

        stored = persistence.shoe_requests.load()
        assert [r["archetype"] for r in stored] == ["race_shoe", "trail_shoe"]
        assert stored[0]["feelPreferences"]["cushion_amount"] == {"mode": "user_set", "value": 2}

    def test_back_from_submitted(self, wizard):
        """Back from submitted returns to the last archetype."""
        fill_to_mode_select(wizard)
        wizard.edit("mode", "discovery")
        wizard.edit("selected_archetypes", ["race_shoe", "trail_shoe"])
        wizard.next()
        wizard.next()
        wizard.next()

        wizard.back()
        assert wizard.step == "preferences"
        assert wizard.current_archetype == "trail_shoe"

    def test_analysis_mode_uses_gap_archetype(self, wizard, persistence):
        """Analysis mode shops for the gap's recommended archetype."""
        wizard.profile.record_gap({
            "type": "coverage",
            "severity": "high",
            "recommendedArchetype": "race_shoe",
        })
        fill_to_mode_select(wizard)
        wizard.edit("mode", "analysis")

        assert wizard.can_proceed() is True
        wizard.next()
        assert wizard.current_archetype == "race_shoe"

        wizard.next()
        assert wizard.step == "submitted"
        assert persistence.shoe_requests.load()[0]["archetype"] == "race_shoe"
        assert persistence.gap.load()["recommendedArchetype"] == "race_shoe"


class TestAbandonAndGuard:
    """Tests for start-over and the request guard."""

    def test_abandon_clears_everything(self, wizard, persistence):
        """Abandon resets the profile, storage and session."""
        fill_basics(wizard)
        session = wizard.session_id

        assert wizard.abandon() is True
        assert wizard.step == "basics"
        assert wizard.session_id != session
        assert wizard.profile.is_empty
        assert persistence.profile.load() is None

    def test_double_submit_rejected(self, wizard):
        """Only one request may be pending per step."""
        wizard.begin_request()
        with pytest.raises(DuplicateSubmissionError):
            wizard.begin_request()

    def test_finished_request_is_current(self, wizard):
        """A response on the same step is applied and releases the guard."""
        ticket = wizard.begin_request()
        assert wizard.end_request(ticket) is True
        wizard.begin_request()

    def test_stale_after_navigation(self, wizard):
        """A response after navigating away is dropped."""
        wizard.edit("first_name", "Sam")
        wizard.edit("experience", "beginner")
        ticket = wizard.begin_request()
        wizard.next()

        assert wizard.end_request(ticket) is False

    def test_stale_after_abandon(self, wizard):
        """A response after abandoning is dropped."""
        ticket = wizard.begin_request()
        wizard.abandon()
        assert wizard.is_current(ticket) is False
