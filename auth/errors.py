# auth/errors.py
"""
Error taxonomy for token brokering and downstream calls.

- ConfigurationError: a required setting is missing or empty (fatal at startup)
- CredentialUnavailableError: managed identity / identity provider unreachable
- DelegationError: the On-Behalf-Of exchange was rejected
- TokenAcquisitionError: any other identity provider failure
- DownstreamCallError: the gateway answered with a non-2xx status
"""

from __future__ import annotations

from typing import Optional


class TokenBrokerError(Exception):
    """Base class for everything raised by the auth and services packages."""


class ConfigurationError(TokenBrokerError):
    pass


class CredentialUnavailableError(TokenBrokerError):
    pass


class DelegationError(TokenBrokerError):
    pass


class TokenAcquisitionError(TokenBrokerError):
    """
    Identity provider failure. MSAL reports errors as a dict rather than an
    exception, so the interesting fields are copied onto the error.
    """

    def __init__(
        self,
        message: str,
        *,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description
        self.correlation_id = correlation_id


class DownstreamCallError(TokenBrokerError):
    def __init__(self, status_code: int, reason: str, body: str):
        super().__init__(f"Error: {status_code} {reason}".rstrip())
        self.status_code = status_code
        self.reason = reason
        self.body = body
