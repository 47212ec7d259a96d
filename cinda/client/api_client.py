"""
HTTP client for the chat and analyze endpoints.

Built on ``requests``. Transport failures become NetworkError, HTTP 400
becomes InvalidRequestError (fix the profile, go back a step) and any other
failure becomes ServerError. All of them carry a retry flag.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from cinda.errors import NetworkError, ServerError, InvalidRequestError
from cinda.utils import settings
from cinda.utils.constants import INVALID_REQUEST_MESSAGE, SERVER_ERROR_MESSAGE


logger = logging.getLogger(__name__)


class CindaApiClient:
    """
    Client for ``POST /api/chat`` and ``POST /api/analyze``.

    Args:
        base_url: Service root (defaults to CINDA_API_BASE_URL)
        timeout: Seconds per request (defaults to CINDA_API_TIMEOUT)
        session: Optional requests.Session to reuse connections
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.API_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error("Request to %s failed: %s", url, e)
            raise NetworkError(SERVER_ERROR_MESSAGE) from e

        if r.status_code == 400:
            logger.warning("Request to %s rejected as invalid: %s", url, r.text[:200])
            raise InvalidRequestError(INVALID_REQUEST_MESSAGE, status_code=400)
        if not 200 <= r.status_code < 300:
            logger.error("Request to %s returned %s", url, r.status_code)
            raise ServerError(SERVER_ERROR_MESSAGE, status_code=r.status_code)

        try:
            body = r.json()
        except ValueError as e:
            raise ServerError("Response was not valid JSON", status_code=r.status_code) from e
        if not isinstance(body, dict):
            raise ServerError("Response was not a JSON object", status_code=r.status_code)
        return body

    def chat(
        self,
        message: str,
        conversation_history: List[Dict[str, str]],
        profile: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Send one chat message.

        Returns:
            ``{response, extractedContext?}``

        Raises:
            ApiError: Network failure or non-2xx status
        """
        body = self._post("/api/chat", {
            "message": message,
            "conversationHistory": conversation_history,
            "profile": profile,
        })
        if not isinstance(body.get("response"), str):
            raise ServerError("Chat response has no text")
        return body

    def analyze(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Request recommendations or a gap analysis.

        Args:
            payload: DiscoveryRequest / AnalysisRequest JSON dict

        Returns:
            ``{success, result?, error?}``; ``success`` false raises

        Raises:
            ApiError: Network failure, non-2xx status or unsuccessful body
        """
        body = self._post("/api/analyze", payload)
        if not body.get("success"):
            raise ServerError(body.get("error") or "Failed to get recommendations")
        return body

    def close(self) -> None:
        self.session.close()
