# auth/config.py
"""
Environment-sourced configuration, read once at process start.

Settings mirrors the raw environment; CredentialConfig is the immutable
record the credential strategies and the confidential-client factory are
built from. Neither is mutated after startup.
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

from .errors import ConfigurationError

DEFAULT_OAUTH_SCOPE = "access_as_user"
DEFAULT_INSTANCE = "https://login.microsoftonline.com/"

# Key Vault secret consulted before AZURE_CLIENT_SECRET
CLIENT_SECRET_SECRET_NAME = "azure-client-secret"

PRODUCTION = "production"


class CredentialKind(enum.Enum):
    SECRET = "secret"
    FEDERATED = "federated"


def select_credential_kind(environment: Optional[str]) -> CredentialKind:
    """Production runs on workload identity, everything else on a client secret."""
    if environment and environment.strip().lower() == PRODUCTION:
        return CredentialKind.FEDERATED
    return CredentialKind.SECRET


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    environment: str
    api_app_id: Optional[str]
    oauth_scope: Optional[str]
    apim_base_url: Optional[str]
    client_id: Optional[str]
    tenant_id: Optional[str]
    client_secret: Optional[str]
    managed_identity_client_id: Optional[str]
    instance: str
    authority: Optional[str]
    validate_user_token: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        client_id = _blank_to_none(env.get("AZURE_CLIENT_ID"))
        # OAUTH_SCOPE falls back to its default only when absent; an explicit
        # empty value is kept so token acquisition can reject it.
        oauth_scope = env.get("OAUTH_SCOPE", DEFAULT_OAUTH_SCOPE).strip()

        return cls(
            environment=env.get("ENVIRONMENT", "Development"),
            api_app_id=_blank_to_none(env.get("API_APP_ID")),
            oauth_scope=oauth_scope,
            apim_base_url=_blank_to_none(env.get("APIM_BASE_URL")),
            client_id=client_id,
            tenant_id=_blank_to_none(env.get("AZURE_TENANT_ID")),
            client_secret=_blank_to_none(env.get("AZURE_CLIENT_SECRET")),
            managed_identity_client_id=(
                _blank_to_none(env.get("AZURE_MANAGED_IDENTITY_CLIENT_ID")) or client_id
            ),
            instance=_blank_to_none(env.get("AZUREAD_INSTANCE")) or DEFAULT_INSTANCE,
            authority=_blank_to_none(env.get("AZUREAD_AUTHORITY")),
            validate_user_token=env.get("VALIDATE_USER_TOKEN", "true").lower() == "true",
        )

    @property
    def credential_kind(self) -> CredentialKind:
        return select_credential_kind(self.environment)


@dataclass(frozen=True)
class CredentialConfig:
    tenant_id: Optional[str]
    client_id: Optional[str]
    kind: CredentialKind
    authority: Optional[str] = None
    client_secret: Optional[str] = None
    managed_identity_client_id: Optional[str] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        secret_lookup: Optional[Callable[[str, Optional[str]], Optional[str]]] = None,
    ) -> "CredentialConfig":
        """
        Build the credential record for the active environment.

        secret_lookup(name, fallback) is consulted for the client secret so a
        Key Vault value wins over AZURE_CLIENT_SECRET. It is only called for
        the secret variant.
        """
        kind = settings.credential_kind

        authority = settings.authority
        if not authority and settings.tenant_id:
            authority = f"{settings.instance.rstrip('/')}/{settings.tenant_id}"

        client_secret = None
        managed_identity_client_id = None
        if kind is CredentialKind.SECRET:
            client_secret = settings.client_secret
            if secret_lookup is not None:
                client_secret = secret_lookup(CLIENT_SECRET_SECRET_NAME, client_secret)
        else:
            managed_identity_client_id = settings.managed_identity_client_id

        return cls(
            tenant_id=settings.tenant_id,
            client_id=settings.client_id,
            kind=kind,
            authority=authority,
            client_secret=client_secret,
            managed_identity_client_id=managed_identity_client_id,
        )

    def missing_fields(self) -> List[str]:
        required: Dict[str, Optional[str]] = {
            "AZURE_TENANT_ID": self.tenant_id,
            "AZURE_CLIENT_ID": self.client_id,
        }
        if self.kind is CredentialKind.SECRET:
            required["AZURE_CLIENT_SECRET"] = self.client_secret
        else:
            required["AZURE_MANAGED_IDENTITY_CLIENT_ID / AZURE_CLIENT_ID"] = (
                self.managed_identity_client_id
            )
        return [name for name, value in required.items() if not value]

    def validate(self) -> None:
        missing = self.missing_fields()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration for {self.kind.value} credential: "
                + ", ".join(missing)
            )

    def status(self) -> Dict[str, object]:
        """Configuration summary for diagnostics. Never includes the secret."""
        return {
            "credential_kind": self.kind.value,
            "tenant_id_configured": bool(self.tenant_id),
            "client_id_configured": bool(self.client_id),
            "client_secret_configured": bool(self.client_secret),
            "managed_identity_client_id_configured": bool(self.managed_identity_client_id),
            "authority": self.authority,
            "missing": self.missing_fields(),
        }
