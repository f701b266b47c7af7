"""
Calls the downstream gateway (APIM) on behalf of the signed-in user.

Every outcome is turned into display text: the chat surface renders whatever
comes back, success or failure.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from auth.broker import TokenBroker
from auth.errors import ConfigurationError, DownstreamCallError

logger = logging.getLogger(__name__)

TEST_PATH = "/test"
USER_MESSAGE_HEADER = "X-User-Message"


@dataclass(frozen=True)
class DownstreamResult:
    text: str
    ok: bool
    status_code: Optional[int] = None

    def __str__(self) -> str:
        return self.text


class DownstreamApiInvoker:
    """
    Wrapper for the gateway's /test endpoint.

    This service:
      - Uses TokenBroker for an On-Behalf-Of token for the downstream scope
      - Sends the user's message as the X-User-Message header
      - Pretty-prints JSON responses; reports anything else verbatim
    """

    def __init__(
        self,
        broker: TokenBroker,
        base_url: Optional[str],
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ):
        self.broker = broker
        self.base_url = (base_url or "").rstrip("/")
        # requests.get per call unless a caller hands in its own session
        self.http = session if session is not None else requests
        self.timeout = timeout

    def _headers(self, user_token: str, message: str) -> Dict[str, str]:
        try:
            message.encode("latin-1")
        except UnicodeEncodeError as e:
            raise ValueError(
                f"Message contains characters that cannot be sent in the {USER_MESSAGE_HEADER} "
                "header (only Latin-1 text is supported)"
            ) from e
        access_token = self.broker.acquire_token_on_behalf_of(user_token)
        return {
            "Authorization": f"Bearer {access_token.token}",
            USER_MESSAGE_HEADER: message,
            "Accept": "application/json",
        }

    def _send(self, message: str, user_token: str) -> DownstreamResult:
        if not self.base_url:
            raise ConfigurationError("APIM_BASE_URL is not configured")

        headers = self._headers(user_token, message)
        url = f"{self.base_url}{TEST_PATH}"
        logger.info("Access token acquired, calling APIM at %s", self.base_url)

        resp = self.http.get(url, headers=headers, timeout=self.timeout)
        if not 200 <= resp.status_code < 300:
            raise DownstreamCallError(resp.status_code, resp.reason or "", resp.text or "")

        logger.info("APIM call successful")
        return DownstreamResult(json.dumps(resp.json(), indent=2), ok=True, status_code=resp.status_code)

    def call(self, message: str, user_token: str) -> DownstreamResult:
        try:
            return self._send(message, user_token)
        except DownstreamCallError as e:
            logger.error("APIM call failed with status %s: %s", e.status_code, e.body)
            return DownstreamResult(f"{e}\n{e.body}", ok=False, status_code=e.status_code)
        except Exception as e:
            logger.exception("Failed to call APIM")
            return DownstreamResult(f"Exception: {e}", ok=False)
