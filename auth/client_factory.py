# auth/client_factory.py
"""
One MSAL ConfidentialClientApplication per process.

Building the application runs authority discovery against the identity
provider, so it is built once and shared by every token request. The
application also owns MSAL's in-memory token cache.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional, Union

import msal

from .config import CredentialConfig
from .errors import ConfigurationError, TokenAcquisitionError

logger = logging.getLogger(__name__)

# Either a secret string or {"client_assertion": <callable returning a JWT>}
ClientCredential = Union[str, dict]
ClientBuilder = Callable[..., Any]


class ConfidentialClientFactory:
    """
    Lazily builds and memoizes the confidential client.

    Usage:
        factory = ConfidentialClientFactory(config, strategy.client_credential())
        app = factory.get_client()
    """

    def __init__(
        self,
        config: CredentialConfig,
        client_credential: Optional[ClientCredential],
        *,
        builder: ClientBuilder = msal.ConfidentialClientApplication,
    ):
        self.config = config
        self._client_credential = client_credential
        self._builder = builder
        self._client: Optional[Any] = None
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    def get_client(self) -> Any:
        client = self._client
        if client is not None:
            return client

        with self._lock:
            if self._client is None:
                self._client = self._build()
            return self._client

    def _build(self) -> Any:
        self.config.validate()
        if not self._client_credential:
            raise ConfigurationError(
                f"No client credential available for {self.config.kind.value} credential"
            )

        logger.info(
            "Building confidential client for %s using %s credential",
            self.config.authority,
            self.config.kind.value,
        )
        try:
            return self._builder(
                self.config.client_id,
                client_credential=self._client_credential,
                authority=self.config.authority,
            )
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid identity provider configuration for authority "
                f"'{self.config.authority}': {e}"
            ) from e
        except Exception as e:
            logger.error("Confidential client construction failed: %s", e)
            raise TokenAcquisitionError(
                f"Unable to initialize confidential client: {e}"
            ) from e
