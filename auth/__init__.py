# auth/__init__.py
"""
Token acquisition for calling the downstream API.

- config: environment settings and the immutable credential record
- credentials: client-secret and workload-identity credential strategies
- client_factory: the per-process MSAL confidential client
- broker: TokenBroker facade (client credentials and On-Behalf-Of)
- azure_ad: validation of the signed-in user's bearer token
"""

from .broker import TokenBroker, TokenRequest, build_scope
from .config import CredentialConfig, CredentialKind, Settings, select_credential_kind
from .credentials import FederatedCredential, SecretCredential, build_credential_strategy
from .errors import (
    ConfigurationError,
    CredentialUnavailableError,
    DelegationError,
    DownstreamCallError,
    TokenAcquisitionError,
    TokenBrokerError,
)

__all__ = [
    "TokenBroker",
    "TokenRequest",
    "build_scope",
    "CredentialConfig",
    "CredentialKind",
    "Settings",
    "select_credential_kind",
    "SecretCredential",
    "FederatedCredential",
    "build_credential_strategy",
    "ConfigurationError",
    "CredentialUnavailableError",
    "DelegationError",
    "DownstreamCallError",
    "TokenAcquisitionError",
    "TokenBrokerError",
]
