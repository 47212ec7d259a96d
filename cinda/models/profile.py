"""
ProfileAggregate - The canonical runner profile.

Owns every per-step record. Wizard steps commit partial updates through
``merge_step``; free-text inference lands through ``set_field`` and
``apply_proposal``. Consumers only ever receive deep-copied snapshots.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from cinda.utils.constants import (
    SOURCE_EXPLICIT,
    SOURCE_INFERRED,
    VALID_SOURCES,
    CONFIDENCE_HIGH,
    CONFIDENCE_RANK,
    EXPERIENCE_RACING_FOCUSED,
    EXPERIENCE_ADVANCED,
    SHOE_SENTIMENTS,
    CATEGORY_EXPERIENCE,
    SIGNAL_CATEGORIES,
)
from cinda.utils.race_time import build_api_race_time, repair_legacy_race_time
from cinda.utils.text import dedup_key
from .field import ProfileField
from .records import (
    Basics,
    Goals,
    ChatContext,
    ChatMessage,
    PastShoe,
    RunnerSignals,
    NegativeSignals,
    FeatureDislike,
    BrandDislike,
    ShoeFeedbackItem,
    Discovery,
    ShoeRequest,
    FeelPreferences,
    Gap,
    Analysis,
)
from .rotation import CurrentShoe, coerce_rotation


logger = logging.getLogger(__name__)


STEP_BASICS = "basics"
STEP_GOALS = "goals"
STEP_ROTATION = "rotation"
STEP_CHAT_CONTEXT = "chat_context"
STEP_DISCOVERY = "discovery"
STEP_ANALYSIS = "analysis"

MERGEABLE_STEPS = (
    STEP_BASICS,
    STEP_GOALS,
    STEP_ROTATION,
    STEP_CHAT_CONTEXT,
    STEP_DISCOVERY,
    STEP_ANALYSIS,
)

CHAT_ROLES = ("user", "assistant")


class ProfileState(BaseModel):
    """Everything the aggregate owns. Returned to callers as a deep copy."""

    basics: Basics = Field(default_factory=Basics)
    goals: Goals = Field(default_factory=Goals)
    rotation: List[CurrentShoe] = Field(default_factory=list)
    chat_context: ChatContext = Field(default_factory=ChatContext)
    chat_history: List[ChatMessage] = Field(default_factory=list)
    signals: RunnerSignals = Field(default_factory=RunnerSignals)
    discovery: Discovery = Field(default_factory=Discovery)
    analysis: Analysis = Field(default_factory=Analysis)


class ProfileAggregate:
    """
    Canonical runner profile built up across the wizard and chat.

    Why: a single owner for all sub-records so merges, overwrite rules and
    resets happen in one place.

    Examples:
        >>> profile = ProfileAggregate()
        >>> profile.merge_step("basics", {"firstName": "Sam", "experience": "beginner"})
        >>> profile.snapshot().basics.first_name
        'Sam'
    """

    def __init__(self, state: Optional[ProfileState] = None):
        self._state = state.model_copy(deep=True) if state is not None else ProfileState()

    # =========================================================================
    # Read access
    # =========================================================================

    def snapshot(self) -> ProfileState:
        """
        Detached deep copy of the current state.

        The copy itself is a mutable ``ProfileState``. Nothing in it is
        shared with the aggregate, so edits to it are never seen here.
        """
        return self._state.model_copy(deep=True)

    @property
    def is_empty(self) -> bool:
        return self._state == ProfileState()

    def get_field(self, name: str) -> ProfileField:
        """Copy of one signal field."""
        self._check_field_name(name)
        return getattr(self._state.signals, name).model_copy()

    def find_shoe(self, shoe_id: str) -> Optional[CurrentShoe]:
        for shoe in self._state.rotation:
            if shoe.shoe_id == shoe_id:
                return shoe.model_copy(deep=True)
        return None

    # =========================================================================
    # Signal fields
    # =========================================================================

    def set_field(
        self,
        name: str,
        value: Any,
        raw: Optional[str] = None,
        confidence: str = CONFIDENCE_HIGH,
        source: str = SOURCE_EXPLICIT,
    ) -> bool:
        """
        Write one signal field, honouring the overwrite rules.

        Args:
            name: Signal name (e.g. "shoe_purpose")
            value: New value; None clears the field on explicit writes
            raw: Text the value came from
            confidence: "low", "medium" or "high"
            source: "explicit" or "inferred"

        Returns:
            True if the update landed (or the field already held it)
        """
        self._check_field_name(name)
        if source not in VALID_SOURCES or confidence not in CONFIDENCE_RANK:
            logger.warning("Ignoring %s update with source=%r confidence=%r", name, source, confidence)
            return False

        current: ProfileField = getattr(self._state.signals, name)
        if (
            current.value == value
            and current.source == source
            and current.confidence == confidence
            and current.raw == raw
        ):
            return True
        if not current.accepts(source, confidence):
            logger.debug("Kept %s=%r over %s update %r", name, current.value, source, value)
            return False

        setattr(self._state.signals, name, current.updated(value, raw, source, confidence))
        return True

    @staticmethod
    def _check_field_name(name: str) -> None:
        if name not in SIGNAL_CATEGORIES:
            raise KeyError(f"Unknown profile field '{name}'")

    def apply_proposal(self, proposal: Any) -> List[str]:
        """
        Apply a SignalExtractor proposal.

        Field updates go through ``set_field``; exclusions from the negative
        pass are always appended, whatever the positive fields hold.

        Returns:
            Names of the fields that changed
        """
        applied: List[str] = []
        for update in getattr(proposal, "updates", []):
            before = getattr(self._state.signals, update.name).model_copy()
            landed = self.set_field(
                update.name,
                update.value,
                raw=update.raw,
                confidence=update.confidence,
                source=update.source,
            )
            if landed and getattr(self._state.signals, update.name) != before:
                applied.append(update.name)

        negative = getattr(proposal, "negative", None)
        if negative is not None and not negative.is_empty:
            self._state.signals.negative = merge_negative_signals(
                self._state.signals.negative, negative
            )
        return applied

    # =========================================================================
    # Step merges
    # =========================================================================

    def merge_step(self, step: str, partial: Any) -> None:
        """
        Shallow-merge a step's partial record into the aggregate.

        Keys missing from the partial are left alone; malformed values are
        coerced to None or defaults. Never raises, and merging the same
        partial twice gives the same result as merging it once.

        Args:
            step: basics, goals, rotation, chat_context, discovery or analysis
            partial: Dict of field updates (snake_case or camelCase keys)
        """
        try:
            self._merge_step(step, partial)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("Discarded malformed %s update: %s", step, e)

    def _merge_step(self, step: str, partial: Any) -> None:
        state = self._state
        if step == STEP_BASICS:
            update = Basics.coerce(partial)
            state.basics = state.basics.model_copy(update=update)
            if update.get("experience"):
                self._mirror_experience(update["experience"])
        elif step == STEP_GOALS:
            state.goals = state.goals.model_copy(update=Goals.coerce(partial, state.goals))
        elif step == STEP_ROTATION:
            if isinstance(partial, dict):
                if "current_shoes" not in partial and "currentShoes" not in partial:
                    return
                partial = partial.get("current_shoes", partial.get("currentShoes"))
            state.rotation = coerce_rotation(partial)
        elif step == STEP_CHAT_CONTEXT:
            self.merge_chat_context(partial)
        elif step == STEP_DISCOVERY:
            update = Discovery.coerce(partial, state.discovery)
            state.discovery = state.discovery.model_copy(update=update)
        elif step == STEP_ANALYSIS:
            state.analysis = state.analysis.model_copy(update=Analysis.coerce(partial))
        else:
            logger.warning("Ignoring update for unknown step '%s'", step)

    def _mirror_experience(self, experience: str) -> None:
        """Wizard experience is explicit input for the experience signal."""
        value = EXPERIENCE_ADVANCED if experience == EXPERIENCE_RACING_FOCUSED else experience
        self.set_field(
            CATEGORY_EXPERIENCE, value, raw=experience,
            confidence=CONFIDENCE_HIGH, source=SOURCE_EXPLICIT,
        )

    # =========================================================================
    # Rotation editing
    # =========================================================================

    def add_shoe(self, shoe: Any) -> bool:
        """Append a shoe to the rotation. Returns False for duplicates or bad input."""
        parsed = CurrentShoe.from_raw(shoe)
        if parsed is None or self.find_shoe(parsed.shoe_id) is not None:
            return False
        self._state.rotation.append(parsed)
        return True

    def remove_shoe(self, shoe_id: str) -> bool:
        before = len(self._state.rotation)
        self._state.rotation = [s for s in self._state.rotation if s.shoe_id != shoe_id]
        return len(self._state.rotation) != before

    def toggle_shoe_role(self, shoe_id: str, role: str) -> Optional[List[str]]:
        """
        Toggle one role on a shoe.

        Returns:
            The shoe's new run types, or None if the shoe is not in the rotation
        """
        for index, shoe in enumerate(self._state.rotation):
            if shoe.shoe_id == shoe_id:
                toggled = shoe.toggled(role)
                self._state.rotation[index] = toggled
                return list(toggled.run_types)
        return None

    def set_shoe_sentiment(self, shoe_id: str, sentiment: Optional[str]) -> bool:
        if sentiment is not None and sentiment not in SHOE_SENTIMENTS:
            return False
        for index, shoe in enumerate(self._state.rotation):
            if shoe.shoe_id == shoe_id:
                self._state.rotation[index] = shoe.model_copy(update={"sentiment": sentiment})
                return True
        return False

    # =========================================================================
    # Chat
    # =========================================================================

    def merge_chat_context(self, partial: Any) -> ChatContext:
        """
        Append newly extracted chat facts.

        Lists are extended with entries not already present (compared by
        normalised value), fit notes are merged key by key and climate keeps
        the latest non-null value.

        Returns:
            Copy of the merged chat context
        """
        incoming = ChatContext.coerce(partial)
        context = self._state.chat_context

        injuries = _append_unique(context.injuries, incoming["injuries"])
        requests = _append_unique(context.requests, incoming["requests"])
        past_shoes = _append_unique(context.past_shoes, incoming["past_shoes"])
        fit = {**context.fit, **incoming["fit"]}
        climate = incoming["climate"] if incoming["climate"] is not None else context.climate

        self._state.chat_context = ChatContext(
            injuries=injuries,
            past_shoes=past_shoes,
            fit=fit,
            climate=climate,
            requests=requests,
        )
        return self._state.chat_context.model_copy(deep=True)

    def append_chat_message(self, role: str, content: str) -> ChatMessage:
        """Record one conversation turn."""
        if role not in CHAT_ROLES:
            raise ValueError(f"Unknown chat role '{role}'")
        message = ChatMessage(role=role, content=str(content))
        self._state.chat_history.append(message)
        return message.model_copy()

    def conversation_history(self) -> List[Dict[str, str]]:
        """History in the {role, content} shape the chat service expects."""
        return [{"role": m.role, "content": m.content} for m in self._state.chat_history]

    # =========================================================================
    # Discovery / analysis
    # =========================================================================

    def build_shoe_requests(self) -> List[ShoeRequest]:
        """One shoe request per selected archetype, carrying its feel preferences."""
        discovery = self._state.discovery
        return [
            ShoeRequest(
                archetype=archetype,
                feel_preferences=discovery.feel_preferences.get(archetype, FeelPreferences()).model_copy(deep=True),
            )
            for archetype in discovery.selected_archetypes
        ]

    def record_gap(self, gap: Any) -> Optional[Gap]:
        """Store the latest detected gap. Malformed gaps are ignored."""
        parsed = Gap.coerce(gap)
        if parsed is None:
            logger.warning("Ignoring malformed gap: %r", gap)
            return None
        self._state.analysis = self._state.analysis.model_copy(update={"gap": parsed})
        return parsed.model_copy()

    def record_analysis_result(self, result: Dict[str, Any]) -> Analysis:
        """
        Write an analyze response back into the profile.

        Args:
            result: ``result`` object from the analyze response; may carry
                gap, rotationSummary, recommendations and summaryReasoning

        Returns:
            Copy of the updated analysis record
        """
        if not isinstance(result, dict):
            logger.warning("Ignoring analysis result of type %s", type(result).__name__)
            return self._state.analysis.model_copy(deep=True)

        update = Analysis.coerce(result)
        if update.get("gap") is None:
            update.pop("gap", None)
        self._state.analysis = self._state.analysis.model_copy(update=update)
        return self._state.analysis.model_copy(deep=True)

    # =========================================================================
    # Persistence shapes
    # =========================================================================

    def to_stored_profile(self) -> Dict[str, Any]:
        """
        Flat camelCase profile persisted under the profile domain.

        ``raceTime`` is the API form derived from the picker input, which is
        stored alongside it as ``raceTimeInput``.
        """
        basics = self._state.basics
        goals = self._state.goals
        picker = goals.race_time_input.model_dump() if goals.race_time_input else None

        return {
            "firstName": basics.first_name,
            "age": basics.age,
            "height": basics.height_cm,
            "weight": basics.weight_kg,
            "experience": basics.experience,
            "primaryGoal": goals.primary_goal,
            "runningPattern": goals.running_pattern,
            "trailRunning": goals.trail_running,
            "footStrike": goals.foot_strike,
            "weeklyVolume": goals.weekly_volume.model_dump() if goals.weekly_volume else None,
            "raceTime": build_api_race_time(picker) if picker else None,
            "raceTimeInput": picker,
            "personalBests": dict(goals.race_times),
            "signals": self._state.signals.model_dump(mode="json"),
        }

    def to_stored_shoes(self) -> List[Dict[str, Any]]:
        return [shoe.to_stored() for shoe in self._state.rotation]

    def to_stored_chat_context(self) -> Dict[str, Any]:
        return self._state.chat_context.model_dump(mode="json")

    @classmethod
    def from_stored(
        cls,
        profile: Optional[Dict[str, Any]] = None,
        shoes: Optional[List[Any]] = None,
        chat_context: Optional[Dict[str, Any]] = None,
        shoe_requests: Optional[List[Any]] = None,
        gap: Optional[Dict[str, Any]] = None,
    ) -> "ProfileAggregate":
        """
        Rebuild an aggregate from persisted domain payloads.

        Any payload may be None or malformed; what can be read is kept.
        """
        aggregate = cls()
        if isinstance(profile, dict):
            aggregate.merge_step(STEP_BASICS, profile)
            aggregate.merge_step(STEP_GOALS, profile)
            if not profile.get("raceTimeInput"):
                stored = repair_legacy_race_time(profile.get("raceTime"))
                if stored and stored.get("distance"):
                    aggregate.merge_step(STEP_GOALS, {"race_times": {stored["distance"]: stored.get("timeMinutes")}})
            aggregate._restore_signals(profile.get("signals"))
        if shoes is not None:
            aggregate.merge_step(STEP_ROTATION, shoes)
        if chat_context is not None:
            aggregate.merge_chat_context(chat_context)
        if shoe_requests:
            aggregate.merge_step(STEP_DISCOVERY, {"shoe_requests": shoe_requests})
        if gap is not None:
            aggregate.record_gap(gap)
        return aggregate

    def _restore_signals(self, raw: Any) -> None:
        if not isinstance(raw, dict):
            return
        try:
            self._state.signals = RunnerSignals.model_validate(raw)
        except ValidationError as e:
            logger.warning("Discarded stored signals: %s", e)
        if self._state.basics.experience:
            self._mirror_experience(self._state.basics.experience)

    # =========================================================================
    # Reset
    # =========================================================================

    def clear_all(self) -> None:
        """Reset to the empty aggregate."""
        self._state = ProfileState()


def _append_unique(existing: List[Any], incoming: List[Any]) -> List[Any]:
    """Extend a list with entries whose normalised key is not yet present."""
    result = [_copy_entry(e) for e in existing]
    seen = {_entry_key(e) for e in existing}
    for entry in incoming:
        key = _entry_key(entry)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(_copy_entry(entry))
    return result


def _entry_key(entry: Any) -> str:
    if isinstance(entry, PastShoe):
        return dedup_key(entry.model_dump())
    return dedup_key(entry)


def _copy_entry(entry: Any) -> Any:
    return entry.model_copy() if isinstance(entry, BaseModel) else entry


def merge_negative_signals(existing: NegativeSignals, incoming: NegativeSignals) -> NegativeSignals:
    """
    Upsert exclusions.

    Features and brands keep the strongest strength seen; feature contexts
    and shoe reasons are unioned. Nothing already recorded is dropped.
    """
    features: Dict[str, FeatureDislike] = {f.tag: f.model_copy(deep=True) for f in existing.features}
    for item in incoming.features:
        current = features.get(item.tag)
        if current is None:
            features[item.tag] = item.model_copy(deep=True)
            continue
        contexts = current.contexts + [c for c in item.contexts if c not in current.contexts]
        features[item.tag] = current.model_copy(update={
            "strength": max(current.strength, item.strength),
            "contexts": contexts,
            "raw": item.raw or current.raw,
            "updated_at": item.updated_at,
        })

    brands: Dict[str, BrandDislike] = {b.brand: b.model_copy() for b in existing.brands}
    for item in incoming.brands:
        current = brands.get(item.brand)
        if current is None:
            brands[item.brand] = item.model_copy()
        else:
            brands[item.brand] = current.model_copy(update={
                "strength": max(current.strength, item.strength),
                "updated_at": item.updated_at,
            })

    rejected = list(existing.rejected_purposes)
    rejected += [p for p in incoming.rejected_purposes if p not in rejected]

    shoes: Dict[str, ShoeFeedbackItem] = {
        dedup_key(s.display_name or s.raw_text): s.model_copy(deep=True) for s in existing.shoe_dislikes
    }
    for item in incoming.shoe_dislikes:
        key = dedup_key(item.display_name or item.raw_text)
        current = shoes.get(key)
        if current is None:
            shoes[key] = item.model_copy(deep=True)
            continue
        reasons = current.reasons + [r for r in item.reasons if r not in current.reasons]
        shoes[key] = current.model_copy(update={
            "reasons": reasons,
            "severity": max(current.severity, item.severity),
            "match_confidence": "high" if current.match_confidence == "high" else item.match_confidence,
            "updated_at": item.updated_at,
        })

    return NegativeSignals(
        features=list(features.values()),
        brands=list(brands.values()),
        rejected_purposes=rejected,
        shoe_dislikes=list(shoes.values()),
    )
