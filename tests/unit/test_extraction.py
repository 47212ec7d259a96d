"""
Unit tests for free-text signal extraction.

Tests cover:
- Category priority (first matching value wins)
- Overwrite guard and extraction policy
- Beginner default purpose
- Purpose rejections
- Reason tags, negation and severity
- Brand-level dislikes and curated shoe matches
"""

import pytest

from cinda.catalog.shoe_catalog import ShoeCatalog, DEFAULT_CURATED_SHOES
from cinda.extraction.negative_signals import NegativeSignalDetector
from cinda.extraction.signal_extractor import (
    SignalExtractor,
    ExtractionPolicy,
    extract_signals,
)
from cinda.models.profile import ProfileAggregate


@pytest.fixture
def catalog():
    """Built-in curated catalogue."""
    return ShoeCatalog.from_names(DEFAULT_CURATED_SHOES)


class TestSignalExtractor:
    """Tests for the positive pass."""

    @pytest.fixture
    def extractor(self, catalog):
        """Create extractor instance."""
        return SignalExtractor(catalog=catalog)

    # =========================================================================
    # Priority
    # =========================================================================

    def test_trail_beats_tempo(self, extractor):
        """Trail outranks tempo wherever the words appear."""
        assert extractor.classify("Mostly tempo, some trail", "shoe_purpose") == ("trail", "high")

    def test_race_beats_everything(self, extractor):
        """Race is the highest-priority purpose."""
        assert extractor.classify("trail ultra and a marathon in spring", "shoe_purpose") == ("race", "high")

    def test_foot_width(self, extractor):
        """Wide feet are detected with high confidence."""
        assert extractor.classify("I have wide feet", "foot_width_volume") == ("wide", "high")

    def test_half_alone_is_not_racing(self, extractor):
        """'half my runs' leaves the trail signal intact."""
        assert extractor.classify("I do half my runs on trails", "shoe_purpose") == ("trail", "high")
        assert extractor.extract("I do half my runs on trails").get("shoe_purpose").value == "trail"

    def test_half_marathon_is_racing(self, extractor):
        """Half marathon in any spelling is a race cue."""
        assert extractor.classify("training for a half-marathon", "shoe_purpose") == ("race", "high")
        assert extractor.classify("my first halfmarathon", "shoe_purpose") == ("race", "high")

    def test_wide_without_feet_is_ignored(self, extractor):
        """'wide' about something other than feet is not a width signal."""
        assert extractor.classify("a wide range of easy runs", "foot_width_volume") is None

    def test_feet_described_as_wide(self, extractor):
        """Feet described as wide still count."""
        assert extractor.classify("my feet are really wide", "foot_width_volume") == ("wide", "high")
        assert extractor.classify("I need an extra wide shoe", "foot_width_volume") == ("wide", "high")

    def test_stability(self, extractor):
        """Overpronation reads as a stability need."""
        assert extractor.classify("I overpronate a lot", "stability_need") == ("stability", "high")

    def test_no_match(self, extractor):
        """Text without keywords classifies to None."""
        assert extractor.classify("hello there", "shoe_purpose") is None

    def test_get_pattern_match(self, extractor):
        """The matching pattern is exposed for debugging."""
        assert extractor.get_pattern_match("speed work on the track", "shoe_purpose") is not None
        assert extractor.get_pattern_match("hello", "shoe_purpose") is None

    # =========================================================================
    # Proposals
    # =========================================================================

    def test_blank_text_is_empty(self, extractor):
        """Blank input proposes nothing."""
        assert extractor.extract("   ").is_empty

    def test_proposal_does_not_mutate_profile(self, extractor):
        """The extractor only proposes."""
        profile = ProfileAggregate()
        extractor.extract("I have wide feet", profile.snapshot())
        assert profile.get_field("foot_width_volume").is_empty

    def test_explicit_purpose_not_overwritten(self, extractor):
        """A later tempo mention does not touch an explicit race purpose."""
        profile = ProfileAggregate()
        profile.set_field("shoe_purpose", "race", confidence="high", source="explicit")

        proposal = extractor.extract("I do a lot of tempo runs", profile.snapshot())
        assert proposal.get("shoe_purpose") is None

        profile.apply_proposal(proposal)
        assert profile.get_field("shoe_purpose").value == "race"

    def test_correction_policy_still_respects_lock(self, catalog):
        """With corrections enabled, explicit/high values stay locked."""
        extractor = SignalExtractor(catalog=catalog, policy=ExtractionPolicy(fill_only_empty=False))
        profile = ProfileAggregate()
        profile.set_field("shoe_purpose", "race", confidence="high", source="explicit")

        assert extractor.extract("tempo tuesdays", profile.snapshot()).get("shoe_purpose") is None

    def test_correction_policy_replaces_inference(self, catalog):
        """With corrections enabled, an equal-confidence inference may replace another."""
        extractor = SignalExtractor(catalog=catalog, policy=ExtractionPolicy(fill_only_empty=False))
        profile = ProfileAggregate()
        profile.set_field("shoe_purpose", "easy_recovery", confidence="medium", source="inferred")

        update = extractor.extract("mostly tempo now", profile.snapshot()).get("shoe_purpose")
        assert update.value == "tempo_workout"

    def test_beginner_gets_daily_trainer(self, extractor):
        """Beginners without a purpose get a daily trainer."""
        proposal = extractor.extract("I'm new to running")

        assert proposal.get("experience_level").value == "beginner"
        purpose = proposal.get("shoe_purpose")
        assert purpose.value == "daily_trainer"
        assert purpose.confidence == "medium"

    def test_beginner_keeps_stated_purpose(self, extractor):
        """A stated purpose wins over the beginner default."""
        proposal = extractor.extract("Beginner here, training for my first half")
        assert proposal.get("shoe_purpose").value == "race"

    def test_rejected_purpose_not_proposed(self, extractor):
        """'I don't like racing' is an exclusion, not a purpose."""
        proposal = extractor.extract("I don't like racing, I mostly do easy runs")

        assert proposal.get("shoe_purpose").value == "easy_recovery"
        assert proposal.negative.rejected_purposes == ["race"]

    def test_apply_proposal_is_idempotent(self, extractor):
        """Applying the same proposal twice changes nothing the second time."""
        profile = ProfileAggregate()
        proposal = extractor.extract("wide feet, flat feet, love a plush ride", profile.snapshot())

        first = profile.apply_proposal(proposal)
        second = profile.apply_proposal(proposal)

        assert set(first) == {"foot_width_volume", "stability_need", "cushioning_preference"}
        assert second == []

    def test_too_soft_is_not_a_soft_preference(self, extractor):
        """'too soft' is a complaint, not a cushioning preference."""
        proposal = extractor.extract("the last pair was way too soft")
        assert proposal.get("cushioning_preference") is None

    def test_module_convenience(self):
        """extract_signals uses a shared default extractor."""
        assert extract_signals("I have wide feet").get("foot_width_volume").value == "wide"


class TestNegativeSignalDetector:
    """Tests for the negative pass."""

    @pytest.fixture
    def detector(self, catalog):
        """Create detector instance."""
        return NegativeSignalDetector(catalog=catalog)

    def test_severity_tiers(self, detector):
        """hate > didn't like > anything else."""
        assert detector.detect_severity("never again") == 3
        assert detector.detect_severity("i hated it") == 3
        assert detector.detect_severity("it was not for me") == 2
        assert detector.detect_severity("meh") == 1

    def test_negated_reason_skipped(self, detector):
        """'not too soft' cancels the too_soft tag."""
        assert detector.detect_reason_tags("not too soft but too firm") == ["too_firm"]

    def test_reason_tags(self, detector):
        """Fit complaints are tagged."""
        tags = detector.detect_reason_tags("heel slip and the toe box was narrow")
        assert tags == ["heel_slip", "toe_box_too_narrow"]

    def test_curated_shoe_dislike(self, detector):
        """A disliked curated shoe carries its reasons and severity."""
        signals = detector.detect("I hated the Hoka Bondi 9, way too soft", shoe_purpose="race")

        assert [f.tag for f in signals.features] == ["too_soft"]
        assert signals.features[0].strength == 3
        assert signals.features[0].contexts == ["race"]

        shoe = signals.shoe_dislikes[0]
        assert shoe.display_name == "Hoka Bondi 9"
        assert shoe.brand == "Hoka"
        assert shoe.match_confidence == "high"
        assert shoe.reasons == ["too_soft"]
        assert signals.brands == []

    def test_token_match_is_medium(self, detector):
        """Two distinctive tokens give a medium-confidence match."""
        signals = detector.detect("didn't like the bondi from hoka")

        assert signals.shoe_dislikes[0].display_name == "Hoka Bondi 9"
        assert signals.shoe_dislikes[0].match_confidence == "medium"
        assert signals.shoe_dislikes[0].severity == 2

    def test_brand_needs_generalisation(self, detector):
        """A brand dislike needs a general negative and a cue."""
        assert detector.detect("I don't like Nike in general").brands[0].brand == "Nike"
        assert detector.detect("I don't like the Nike I have").brands == []

    def test_multi_word_brand(self, detector):
        """Multi-word brands are matched as phrases."""
        signals = detector.detect("New Balance just doesnt work for me, never again")
        assert signals.brands[0].brand == "New Balance"

    def test_casual_mention_is_not_negative(self, detector):
        """Mentioning a shoe without complaint yields nothing."""
        assert detector.detect("I run in Nike shoes").is_empty

    def test_rejection_masks_text(self, detector):
        """Rejection phrases are blanked out of the text."""
        rejected, masked = detector.find_rejections("i never run trails but love tempo")

        assert rejected == ["trail"]
        assert "trail" not in masked
        assert "tempo" in masked
