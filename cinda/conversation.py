"""
ChatSession - Free-text chat that feeds the runner profile.

Each message is first run through the local SignalExtractor, then sent to
the chat service. Context the service extracts is merged into the profile's
append-only chat context. A failed call adds a neutral retry message and
leaves the earlier history untouched; a response that arrives after the
runner has navigated away is dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from cinda.client.api_client import CindaApiClient
from cinda.errors import ApiError
from cinda.extraction.signal_extractor import SignalExtractor, SignalProposal
from cinda.models.profile import ProfileAggregate
from cinda.storage.persistence import PersistenceLayer
from cinda.utils.constants import CHAT_RETRY_MESSAGE
from cinda.utils.text import is_blank
from cinda.wizard.controller import WizardController


logger = logging.getLogger(__name__)


@dataclass
class ChatTurn:
    """Outcome of one message."""

    reply: str
    proposal: SignalProposal = field(default_factory=SignalProposal)
    applied: List[str] = field(default_factory=list)
    retry_available: bool = False
    stale: bool = False


class ChatSession:
    """
    One conversation bound to a profile.

    Args:
        profile: Aggregate the conversation writes into
        client: Chat service client
        extractor: Local signal extractor
        persistence: Where chat context and profile are saved (optional)
        wizard: Controller whose request guard covers chat calls (optional)
    """

    def __init__(
        self,
        profile: ProfileAggregate,
        client: Optional[CindaApiClient] = None,
        extractor: Optional[SignalExtractor] = None,
        persistence: Optional[PersistenceLayer] = None,
        wizard: Optional[WizardController] = None,
    ) -> None:
        self.profile = profile
        self.client = client or CindaApiClient()
        self.extractor = extractor or SignalExtractor()
        self.persistence = persistence
        self.wizard = wizard

    def extract(self, message: str) -> ChatTurn:
        """Run local extraction only and apply it to the profile."""
        try:
            proposal = self.extractor.extract(message, self.profile.snapshot())
        except Exception as e:
            logger.warning("Signal extraction failed: %s", e)
            return ChatTurn(reply="")
        applied = self.profile.apply_proposal(proposal)
        return ChatTurn(reply="", proposal=proposal, applied=applied)

    def send(self, message: str) -> ChatTurn:
        """
        Handle one runner message.

        Raises:
            DuplicateSubmissionError: Another request is pending on this step

        Returns:
            ChatTurn; ``retry_available`` is set when the service failed and
            ``stale`` when the response arrived after navigation
        """
        if is_blank(message):
            return ChatTurn(reply="")

        ticket = self.wizard.begin_request() if self.wizard is not None else None
        local = self.extract(message)
        history = self.profile.conversation_history()
        self.profile.append_chat_message("user", message)

        try:
            body = self.client.chat(message, history, self.profile.to_stored_profile())
        except ApiError as e:
            if not self._finish(ticket):
                return ChatTurn(reply="", proposal=local.proposal, applied=local.applied, stale=True)
            logger.warning("Chat request failed: %s", e)
            self.profile.append_chat_message("assistant", CHAT_RETRY_MESSAGE)
            return ChatTurn(
                reply=CHAT_RETRY_MESSAGE,
                proposal=local.proposal,
                applied=local.applied,
                retry_available=True,
            )
        except Exception:
            self._finish(ticket)
            raise

        if not self._finish(ticket):
            logger.info("Dropping chat response that arrived after navigation")
            return ChatTurn(reply="", proposal=local.proposal, applied=local.applied, stale=True)

        reply = body["response"]
        self.profile.append_chat_message("assistant", reply)
        extracted = body.get("extractedContext")
        if isinstance(extracted, dict):
            self.profile.merge_chat_context(extracted)
        self._save()
        return ChatTurn(reply=reply, proposal=local.proposal, applied=local.applied)

    def _finish(self, ticket) -> bool:
        if ticket is None:
            return True
        return self.wizard.end_request(ticket)

    def _save(self) -> None:
        if self.persistence is None:
            return
        self.persistence.chat_context.save(self.profile.to_stored_chat_context())
        self.persistence.profile.save(self.profile.to_stored_profile())
