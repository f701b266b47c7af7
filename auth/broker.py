# auth/broker.py
"""
TokenBroker: the single entry point callers use to get access tokens.

The broker is stateless; the credential strategy it dispatches to owns the
confidential client (and therefore MSAL's token cache).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from azure.core.credentials import AccessToken

from .credentials import CredentialStrategy
from .errors import (
    ConfigurationError,
    CredentialUnavailableError,
    DelegationError,
    TokenAcquisitionError,
)

logger = logging.getLogger(__name__)

# Raised unchanged; anything else is wrapped in TokenAcquisitionError
PASSTHROUGH_ERRORS = (
    ConfigurationError,
    CredentialUnavailableError,
    DelegationError,
    TokenAcquisitionError,
)


def build_scope(app_id: Optional[str], scope_name: Optional[str]) -> str:
    """api://<app_id>/<scope_name>"""
    missing = [k for k, v in {"API_APP_ID": app_id, "OAUTH_SCOPE": scope_name}.items() if not v]
    if missing:
        raise ConfigurationError("Missing required configuration: " + ", ".join(missing))
    return f"api://{app_id}/{scope_name}"


@dataclass(frozen=True)
class TokenRequest:
    scopes: Tuple[str, ...]
    user_assertion: Optional[str] = None

    @property
    def on_behalf_of(self) -> bool:
        return self.user_assertion is not None


class TokenBroker:
    def __init__(
        self,
        strategy: CredentialStrategy,
        *,
        api_app_id: Optional[str],
        oauth_scope: Optional[str],
    ):
        self.strategy = strategy
        self.api_app_id = api_app_id
        self.oauth_scope = oauth_scope

    @property
    def downstream_scope(self) -> str:
        return build_scope(self.api_app_id, self.oauth_scope)

    def _resolve_scopes(self, scopes: Optional[Iterable[str]]) -> Tuple[str, ...]:
        if scopes is None:
            return (self.downstream_scope,)
        resolved = tuple(scopes)
        if not resolved or any(not s or not s.strip() for s in resolved):
            raise ConfigurationError(f"Invalid scopes requested: {list(resolved)}")
        return resolved

    def acquire_token_for_user(self, scopes: Optional[Iterable[str]] = None) -> AccessToken:
        return self.acquire(TokenRequest(scopes=self._resolve_scopes(scopes)))

    def acquire_token_on_behalf_of(
        self, user_token: str, scopes: Optional[Iterable[str]] = None
    ) -> AccessToken:
        return self.acquire(
            TokenRequest(scopes=self._resolve_scopes(scopes), user_assertion=user_token or "")
        )

    def acquire(self, request: TokenRequest) -> AccessToken:
        flow = "on-behalf-of" if request.on_behalf_of else "client credentials"
        logger.info(
            "Acquiring %s token for scopes %s using %s credential",
            flow,
            " ".join(request.scopes),
            self.strategy.kind.value,
        )
        try:
            if request.on_behalf_of:
                return self.strategy.acquire_token_on_behalf_of(
                    request.user_assertion, request.scopes
                )
            return self.strategy.acquire_token_for_client(request.scopes)
        except PASSTHROUGH_ERRORS as e:
            logger.error("Failed to acquire %s token: %s", flow, e)
            raise
        except Exception as e:
            logger.error("Failed to acquire %s token: %s", flow, e)
            raise TokenAcquisitionError(f"Failed to acquire {flow} token: {e}") from e
