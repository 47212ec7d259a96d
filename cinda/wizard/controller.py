"""
WizardController - Step sequencing for the profile builder.

States: basics -> goals -> rotation -> mode_select -> preferences (once per
selected archetype) -> submitted. Moving back never discards anything: both
directions commit the current step's edits first. Only ``abandon`` clears
the profile and storage.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from uuid import uuid4

from cinda.errors import (
    ProfileValidationError,
    IncompleteStepError,
    DuplicateSubmissionError,
)
from cinda.models.profile import ProfileAggregate
from cinda.models.rotation import CurrentShoe, coerce_rotation
from cinda.storage.persistence import PersistenceLayer
from cinda.utils.constants import MODE_ANALYSIS
from .steps import (
    STEP_BASICS,
    STEP_GOALS,
    STEP_ROTATION,
    STEP_MODE_SELECT,
    STEP_PREFERENCES,
    STEP_SUBMITTED,
    STEP_ORDER,
    STEP_DEFAULTS,
    validate_edit,
    missing_for_step,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestTicket:
    """Identity of an in-flight request, used to drop stale responses."""

    session_id: str
    step: str
    preference_index: int
    seq: int


class WizardController:
    """
    Drives the multi-step profile builder over one ProfileAggregate.

    Example usage:
        wizard = WizardController(persistence=PersistenceLayer())
        wizard.edit("first_name", "Sam")
        wizard.edit("experience", "beginner")
        wizard.next()
        # wizard.step == "goals"
    """

    def __init__(
        self,
        profile: Optional[ProfileAggregate] = None,
        persistence: Optional[PersistenceLayer] = None,
        autosave: bool = True,
    ) -> None:
        self.profile = profile if profile is not None else ProfileAggregate()
        self.persistence = persistence
        self.autosave = autosave and persistence is not None

        self.step = STEP_BASICS
        self.preference_index = 0
        self.session_id = uuid4().hex
        self.errors: Dict[str, str] = {}

        self._local: Dict[str, Any] = {}
        self._pending: Optional[RequestTicket] = None
        self._seq = 0

    # =========================================================================
    # Current step state
    # =========================================================================

    @property
    def archetypes(self) -> List[str]:
        """Archetypes the preference steps iterate over."""
        discovery = self.profile.snapshot().discovery
        if discovery.selected_archetypes:
            return list(discovery.selected_archetypes)
        return self._gap_archetypes(discovery.mode)

    def _gap_archetypes(self, mode: Optional[str]) -> List[str]:
        # Analysis mode may shop for the gap's recommended archetype
        if mode != MODE_ANALYSIS:
            return []
        gap = self.profile.snapshot().analysis.gap
        if gap is not None and gap.recommended_archetype:
            return [gap.recommended_archetype]
        return []

    @property
    def current_archetype(self) -> Optional[str]:
        if self.step != STEP_PREFERENCES:
            return None
        archetypes = self.archetypes
        if 0 <= self.preference_index < len(archetypes):
            return archetypes[self.preference_index]
        return None

    def values(self) -> Dict[str, Any]:
        """Committed values of the current step overlaid with local edits."""
        state = self.profile.snapshot()
        if self.step == STEP_BASICS:
            base = state.basics.model_dump()
        elif self.step == STEP_GOALS:
            base = state.goals.model_dump()
        elif self.step == STEP_ROTATION:
            base = {"current_shoes": state.rotation}
        elif self.step == STEP_MODE_SELECT:
            base = {
                "mode": state.discovery.mode,
                "selected_archetypes": list(state.discovery.selected_archetypes),
            }
        elif self.step == STEP_PREFERENCES:
            prefs = state.discovery.feel_preferences.get(self.current_archetype or "")
            base = prefs.model_dump() if prefs else dict(STEP_DEFAULTS[STEP_PREFERENCES])
        else:
            base = {}
        base.update(self._local)

        if self.step == STEP_MODE_SELECT and not base["selected_archetypes"]:
            base["selected_archetypes"] = self._gap_archetypes(base["mode"])
        return base

    # =========================================================================
    # Edits
    # =========================================================================

    def edit(self, field: str, value: Any) -> bool:
        """
        Stage a local edit on the current step.

        Invalid input is recorded in ``errors`` and not staged.

        Returns:
            True if the edit was staged
        """
        try:
            staged = validate_edit(self.step, field, value)
        except ProfileValidationError as e:
            self.errors[field] = e.message
            logger.debug("Rejected %s edit on %s: %s", field, self.step, e)
            return False
        self.errors.pop(field, None)
        self._local.update(staged)
        return True

    def _local_rotation(self) -> List[CurrentShoe]:
        if "current_shoes" not in self._local:
            self._local["current_shoes"] = self.profile.snapshot().rotation
        return self._local["current_shoes"]

    def add_shoe(self, shoe: Any) -> bool:
        """Add a shoe to the rotation being edited."""
        self._require_step(STEP_ROTATION)
        parsed = CurrentShoe.from_raw(shoe)
        rotation = self._local_rotation()
        if parsed is None or any(s.shoe_id == parsed.shoe_id for s in rotation):
            return False
        rotation.append(parsed)
        return True

    def remove_shoe(self, shoe_id: str) -> bool:
        self._require_step(STEP_ROTATION)
        rotation = self._local_rotation()
        kept = [s for s in rotation if s.shoe_id != shoe_id]
        self._local["current_shoes"] = kept
        return len(kept) != len(rotation)

    def toggle_shoe_role(self, shoe_id: str, role: str) -> Optional[List[str]]:
        """Toggle a role on a shoe being edited; returns its new roles."""
        self._require_step(STEP_ROTATION)
        rotation = self._local_rotation()
        for index, shoe in enumerate(rotation):
            if shoe.shoe_id == shoe_id:
                rotation[index] = shoe.toggled(role)
                return list(rotation[index].run_types)
        return None

    def set_shoe_sentiment(self, shoe_id: str, sentiment: str) -> bool:
        self._require_step(STEP_ROTATION)
        rotation = self._local_rotation()
        for index, shoe in enumerate(rotation):
            if shoe.shoe_id == shoe_id:
                updated = coerce_rotation([{**shoe.model_dump(), "sentiment": sentiment}])
                if not updated or updated[0].sentiment != sentiment:
                    return False
                rotation[index] = updated[0]
                return True
        return False

    def _require_step(self, step: str) -> None:
        if self.step != step:
            raise ValueError(f"Only available on the {step} step (current: {self.step})")

    # =========================================================================
    # Predicates
    # =========================================================================

    def missing(self) -> List[str]:
        """Required fields still missing on the current step, plus fields with errors."""
        return missing_for_step(self.step, self.values()) + sorted(self.errors)

    def can_proceed(self) -> bool:
        if self.step == STEP_SUBMITTED:
            return False
        return not self.missing()

    def is_dirty(self) -> bool:
        """True if any field on the current step differs from its default."""
        if self.step == STEP_SUBMITTED:
            return False
        values = self.values()
        if self.step == STEP_ROTATION:
            return bool(values["current_shoes"])
        defaults = STEP_DEFAULTS[self.step]
        return any(values.get(key) != default for key, default in defaults.items())

    # =========================================================================
    # Commit / navigation
    # =========================================================================

    def commit(self) -> bool:
        """
        Merge local edits into the profile and, with autosave, persist.

        Returns:
            False if an autosave failed (the profile is still updated)
        """
        local, self._local = self._local, {}
        if self.step == STEP_BASICS:
            self.profile.merge_step("basics", local)
            return self._autosave_profile()
        if self.step == STEP_GOALS:
            self.profile.merge_step("goals", local)
            return self._autosave_profile()
        if self.step == STEP_ROTATION:
            if "current_shoes" in local:
                self.profile.merge_step("rotation", {"current_shoes": local["current_shoes"]})
            if self.autosave:
                return self.persistence.shoes.save(self.profile.to_stored_shoes())
            return True
        if self.step == STEP_MODE_SELECT:
            self.profile.merge_step("discovery", local)
            return True
        if self.step == STEP_PREFERENCES:
            archetype = self.current_archetype
            update: Dict[str, Any] = {"current_archetype_index": self.preference_index}
            if archetype and local:
                update["feel_preferences"] = {archetype: local}
            self.profile.merge_step("discovery", update)
            return True
        return True

    def _autosave_profile(self) -> bool:
        if not self.autosave:
            return True
        return self.persistence.profile.save(self.profile.to_stored_profile())

    def next(self) -> str:
        """
        Commit and advance.

        Raises:
            IncompleteStepError: The current step cannot proceed

        Returns:
            The new step
        """
        if not self.can_proceed():
            raise IncompleteStepError(self.step, self.missing())
        self.commit()

        if self.step == STEP_MODE_SELECT:
            self._move(STEP_PREFERENCES, 0)
        elif self.step == STEP_PREFERENCES:
            if self.preference_index + 1 < len(self.archetypes):
                self._move(STEP_PREFERENCES, self.preference_index + 1)
            else:
                self._submit()
                self._move(STEP_SUBMITTED, self.preference_index)
        else:
            self._move(STEP_ORDER[STEP_ORDER.index(self.step) + 1], 0)
        return self.step

    def back(self) -> str:
        """
        Commit and move back one step, keeping everything entered.

        Returns:
            The new step
        """
        self.commit()
        # Failed inline edits were never staged
        self.errors.clear()

        if self.step == STEP_BASICS:
            return self.step
        if self.step == STEP_SUBMITTED:
            self._move(STEP_PREFERENCES, max(len(self.archetypes) - 1, 0))
        elif self.step == STEP_PREFERENCES and self.preference_index > 0:
            self._move(STEP_PREFERENCES, self.preference_index - 1)
        else:
            self._move(STEP_ORDER[STEP_ORDER.index(self.step) - 1], 0)
        return self.step

    def _move(self, step: str, preference_index: int) -> None:
        self.step = step
        self.preference_index = preference_index
        self._local = {}
        self._pending = None
        if step == STEP_PREFERENCES:
            self.profile.merge_step("discovery", {"current_archetype_index": preference_index})

    def _submit(self) -> None:
        """Build shoe requests and persist them (and the gap in analysis mode)."""
        requests = self.profile.build_shoe_requests()
        if not requests and self.archetypes:
            # Analysis mode shopping for the gap's archetype
            self.profile.merge_step("discovery", {"selected_archetypes": self.archetypes})
            requests = self.profile.build_shoe_requests()
        self.profile.merge_step("discovery", {"shoe_requests": [r.model_dump() for r in requests]})

        if not self.autosave:
            return
        state = self.profile.snapshot()
        self.persistence.shoe_requests.save([
            {"archetype": r.archetype, "feelPreferences": r.feel_preferences.model_dump()}
            for r in requests
        ])
        if state.discovery.mode == MODE_ANALYSIS and state.analysis.gap is not None:
            self.persistence.gap.save(state.analysis.gap.to_payload())
        self.persistence.chat_context.save(self.profile.to_stored_chat_context())

    def abandon(self) -> bool:
        """
        Start over: clear the profile and storage, back to basics.

        Returns:
            False if storage could not be cleared (the profile is still reset)
        """
        self.profile.clear_all()
        cleared = self.persistence.clear_all() if self.persistence is not None else True
        self.step = STEP_BASICS
        self.preference_index = 0
        self.session_id = uuid4().hex
        self.errors = {}
        self._local = {}
        self._pending = None
        logger.info("Wizard abandoned, new session %s", self.session_id)
        return cleared

    # =========================================================================
    # Request guard
    # =========================================================================

    def begin_request(self) -> RequestTicket:
        """
        Mark a request as in flight for the current step.

        Raises:
            DuplicateSubmissionError: A request is already pending on this step
        """
        if self._pending is not None:
            raise DuplicateSubmissionError(
                f"A request is already pending on step '{self.step}'"
            )
        self._seq += 1
        self._pending = RequestTicket(
            session_id=self.session_id,
            step=self.step,
            preference_index=self.preference_index,
            seq=self._seq,
        )
        return self._pending

    def is_current(self, ticket: RequestTicket) -> bool:
        """False once the runner has navigated away or abandoned."""
        return (
            self._pending == ticket
            and ticket.session_id == self.session_id
            and ticket.step == self.step
            and ticket.preference_index == self.preference_index
        )

    def end_request(self, ticket: RequestTicket) -> bool:
        """
        Release the guard for a finished request.

        Returns:
            True if the response should be applied, False if it is stale
        """
        current = self.is_current(ticket)
        if self._pending == ticket:
            self._pending = None
        return current
