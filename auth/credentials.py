# auth/credentials.py
"""
Credential strategies for the confidential client.

Two ways of proving this application's identity to Azure AD:

- SecretCredential: a pre-shared client secret (local / dev)
- FederatedCredential: a managed-identity token presented as a client
  assertion (AKS workload identity, production)

Both expose the same two operations: an app-only token and an
On-Behalf-Of exchange of an incoming user token.
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Type

import jwt
import msal
from azure.core.credentials import AccessToken
from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential

from .client_factory import ClientBuilder, ClientCredential, ConfidentialClientFactory
from .config import CredentialConfig, CredentialKind
from .errors import (
    CredentialUnavailableError,
    DelegationError,
    TokenAcquisitionError,
)

logger = logging.getLogger(__name__)

# Audience a managed identity token must carry to be accepted as a client assertion
TOKEN_EXCHANGE_SCOPE = "api://AzureADTokenExchange/.default"

# MSAL error codes that mean the user assertion itself was refused
DELEGATION_ERRORS = {"invalid_grant", "interaction_required", "consent_required"}


def _scope_list(scopes: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(scopes))


def check_user_assertion(user_token: str, audiences: Iterable[str]) -> Dict[str, Any]:
    """
    Local sanity check of a user token before it is sent for exchange.

    The signature is not verified here (Azure AD does that during the
    exchange); expiry, shape and audience are.

    Raises:
        DelegationError: token empty, malformed, expired or for another audience
    """
    if not user_token:
        raise DelegationError("No user token available for On-Behalf-Of exchange")

    valid_audiences = [a for a in audiences if a]
    try:
        return jwt.decode(
            user_token,
            options={
                "verify_signature": False,
                "verify_exp": True,
                "verify_aud": bool(valid_audiences),
            },
            audience=valid_audiences or None,
        )
    except jwt.ExpiredSignatureError as e:
        raise DelegationError("User token has expired") from e
    except jwt.InvalidAudienceError as e:
        raise DelegationError(
            f"User token was not issued for this application. Expected one of: {valid_audiences}"
        ) from e
    except jwt.DecodeError as e:
        raise DelegationError(f"Malformed user token: {e}") from e
    except jwt.InvalidTokenError as e:
        raise DelegationError(f"User token rejected: {e}") from e


def access_token_from_result(result: Optional[Dict], *, on_behalf_of: bool = False) -> AccessToken:
    """Turn an MSAL result dict into an AccessToken, or raise."""
    if result and "access_token" in result:
        expires_in = int(result.get("expires_in") or 3600)
        return AccessToken(str(result["access_token"]), int(time.time()) + expires_in)

    result = result or {}
    error = result.get("error")
    description = result.get("error_description")
    correlation_id = result.get("correlation_id")

    if on_behalf_of and error in DELEGATION_ERRORS:
        raise DelegationError(f"On-Behalf-Of exchange rejected: {error}: {description}")

    raise TokenAcquisitionError(
        f"Token request failed: {error or 'no_access_token_in_response'}: {description} "
        f"(correlation_id={correlation_id})",
        error=error,
        error_description=description,
        correlation_id=correlation_id,
    )


class CredentialStrategy(abc.ABC):
    kind: CredentialKind

    def __init__(
        self,
        config: CredentialConfig,
        *,
        client_builder: ClientBuilder = msal.ConfidentialClientApplication,
    ):
        self.config = config
        self.client_factory = ConfidentialClientFactory(
            config, self.client_credential(), builder=client_builder
        )

    @abc.abstractmethod
    def client_credential(self) -> Optional[ClientCredential]:
        """The trust mechanism handed to the confidential client."""

    def verify_trust(self) -> None:
        """Startup check that the trust mechanism works. Nothing to do for a static secret."""

    @property
    def user_token_audiences(self) -> List[str]:
        client_id = self.config.client_id
        if not client_id:
            return []
        return [client_id, f"api://{client_id}"]

    def acquire_token_for_client(self, scopes: Iterable[str]) -> AccessToken:
        client = self.client_factory.get_client()
        result = client.acquire_token_for_client(scopes=_scope_list(scopes))
        return access_token_from_result(result)

    def acquire_token_on_behalf_of(self, user_token: str, scopes: Iterable[str]) -> AccessToken:
        check_user_assertion(user_token, self.user_token_audiences)
        client = self.client_factory.get_client()
        result = client.acquire_token_on_behalf_of(
            user_assertion=user_token,
            scopes=_scope_list(scopes),
        )
        return access_token_from_result(result, on_behalf_of=True)


class SecretCredential(CredentialStrategy):
    kind = CredentialKind.SECRET

    def client_credential(self) -> Optional[ClientCredential]:
        return self.config.client_secret


class FederatedCredential(CredentialStrategy):
    """
    Workload identity federation. MSAL calls fetch_client_assertion whenever it
    needs to authenticate the app; the managed identity token returned is the
    client assertion. azure-identity refreshes that token itself, nothing is
    kept here.
    """

    kind = CredentialKind.FEDERATED

    def __init__(
        self,
        config: CredentialConfig,
        *,
        azure_credential: Optional[Any] = None,
        client_builder: ClientBuilder = msal.ConfidentialClientApplication,
    ):
        self.azure_credential = azure_credential or DefaultAzureCredential(
            managed_identity_client_id=config.managed_identity_client_id
        )
        super().__init__(config, client_builder=client_builder)

    def client_credential(self) -> Optional[ClientCredential]:
        return {"client_assertion": self.fetch_client_assertion}

    def verify_trust(self) -> None:
        self.fetch_client_assertion()
        logger.info("Managed identity assertion available")

    def fetch_client_assertion(self) -> str:
        try:
            token = self.azure_credential.get_token(TOKEN_EXCHANGE_SCOPE)
        except AzureError as e:
            logger.error("Managed identity token request failed: %s", e)
            raise CredentialUnavailableError(
                "Failed to acquire a managed identity assertion. "
                f"Ensure workload identity is configured: {e}"
            ) from e
        return token.token


CREDENTIAL_STRATEGIES: Dict[CredentialKind, Type[CredentialStrategy]] = {
    CredentialKind.SECRET: SecretCredential,
    CredentialKind.FEDERATED: FederatedCredential,
}


def build_credential_strategy(config: CredentialConfig, **kwargs: Any) -> CredentialStrategy:
    strategy_cls = CREDENTIAL_STRATEGIES[config.kind]
    logger.info("Using %s for %s credential", strategy_cls.__name__, config.kind.value)
    return strategy_cls(config, **kwargs)
