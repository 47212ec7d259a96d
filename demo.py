#!/usr/bin/env python3
"""
Cinda Profile Core Demo

Walks through the complete flow without any network calls:
1. Fill in the wizard (basics, goals, rotation, mode, preferences)
2. Extract signals from a chat message
3. Persist every domain
4. Route to a mode and build the analyze request

Usage:
    python demo.py ["chat message"]
"""

import json
import sys

from cinda.extraction.signal_extractor import SignalExtractor
from cinda.routing.mode_router import ModeRouter
from cinda.routing.payload_builder import PayloadBuilder
from cinda.storage.backends import MemoryBackend
from cinda.storage.persistence import PersistenceLayer
from cinda.wizard.controller import WizardController


DEFAULT_MESSAGE = (
    "I have wide feet and mostly run trails, with some tempo work. "
    "I hated the Hoka Bondi 9, way too soft, and I don't like Nike in general."
)


def main(message: str = None):
    """Run the demo flow."""
    print("=" * 50)
    print("Cinda Profile Core Demo")
    print("=" * 50)

    persistence = PersistenceLayer(MemoryBackend())
    wizard = WizardController(persistence=persistence)
    profile = wizard.profile

    # =========================================================================
    # Step 1: Wizard
    # =========================================================================
    print()
    print("[1] Filling in the wizard...")

    wizard.edit("first_name", "Sam")
    wizard.edit("experience", "intermediate")
    wizard.edit("height", {"unit": "ft/in", "feet": 5, "inches": 10})
    wizard.edit("weight", {"value": 160, "unit": "lbs"})
    wizard.next()

    wizard.edit("primary_goal", "race_training")
    if not wizard.edit("weekly_volume", {"value": 301, "unit": "km"}):
        print(f"    -> Rejected weekly volume: {wizard.errors['weekly_volume']}")
    wizard.edit("weekly_volume", {"value": 50, "unit": "km"})
    wizard.edit("race_time_input", {"distance": "13.1mi", "hours": 1, "minutes": 45})
    wizard.next()

    wizard.add_shoe({"shoeId": "nike-pegasus-41", "sentiment": "like"})
    wizard.toggle_shoe_role("nike-pegasus-41", "recovery")
    wizard.toggle_shoe_role("nike-pegasus-41", "long_runs")
    wizard.next()

    wizard.edit("mode", "discovery")
    wizard.edit("selected_archetypes", ["race_shoe", "trail_shoe"])
    wizard.next()

    for archetype in wizard.archetypes:
        wizard.edit("cushion_amount", {"mode": "user_set", "value": 4})
        print(f"    -> Preferences set for {archetype}")
        wizard.next()

    state = profile.snapshot()
    print(f"    -> Step: {wizard.step}")
    print(f"    -> Height: {state.basics.height_cm} cm, weight: {state.basics.weight_kg} kg")
    print(f"    -> Race times: {state.goals.race_times}")
    print(f"    -> Shoe requests: {[r.archetype for r in state.discovery.shoe_requests]}")

    # =========================================================================
    # Step 2: Signal extraction
    # =========================================================================
    print()
    print("[2] Extracting signals from chat...")

    extractor = SignalExtractor()
    proposal = extractor.extract(message or DEFAULT_MESSAGE, profile.snapshot())
    for update in proposal.updates:
        print(f"    -> {update.name}: {update.value} ({update.confidence})")
    negative = proposal.negative
    print(f"    -> Disliked features: {[f.tag for f in negative.features]}")
    print(f"    -> Disliked brands: {[b.brand for b in negative.brands]}")
    print(f"    -> Disliked shoes: {[s.display_name for s in negative.shoe_dislikes]}")

    applied = profile.apply_proposal(proposal)
    print(f"    -> Applied: {applied}")

    # =========================================================================
    # Step 3: Persist
    # =========================================================================
    print()
    print("[3] Persisting...")

    saved = persistence.profile.save(profile.to_stored_profile())
    print(f"    -> Profile saved: {saved}")
    print(f"    -> Migrated legacy data: {persistence.migrate_profile()}")
    print(f"    -> Progress: {persistence.user_progress()}")

    # =========================================================================
    # Step 4: Route and build the request
    # =========================================================================
    print()
    print("[4] Routing...")

    mode = ModeRouter(persistence).route()
    print(f"    -> Mode: {mode}")

    request = PayloadBuilder().build_discovery(
        persistence.load_profile(),
        persistence.load_shoes(),
        persistence.shoe_requests.load(),
        persistence.chat_context.load(),
    )

    print()
    print("=" * 50)
    print("Analyze request (JSON):")
    print("-" * 30)
    print(json.dumps(request.to_json_dict(), indent=2))

    return 0


if __name__ == "__main__":
    text = sys.argv[1] if len(sys.argv) > 1 else None
    sys.exit(main(text))
