"""Shared fixtures: fake MSAL client, fake HTTP session and user tokens."""
import time
from typing import Dict, List, Optional

import jwt
import pytest
import requests
from azure.core.credentials import AccessToken

from auth.config import CredentialConfig, CredentialKind, Settings

TENANT_ID = "tenant-1234"
CLIENT_ID = "client-5678"
API_APP_ID = "api-9999"
SIGNING_KEY = "test-signing-key-0123456789abcdef0123456789"


class FakeConfidentialClient:
    """Stands in for msal.ConfidentialClientApplication."""

    instances: List["FakeConfidentialClient"] = []

    def __init__(self, client_id, client_credential=None, authority=None, **kwargs):
        self.client_id = client_id
        self.client_credential = client_credential
        self.authority = authority
        self.client_calls: List[List[str]] = []
        self.obo_calls: List[Dict] = []
        self.result: Optional[Dict] = {"access_token": "app-token", "expires_in": 3600}
        self.obo_result: Optional[Dict] = {"access_token": "obo-token", "expires_in": 3600}
        FakeConfidentialClient.instances.append(self)

    def _authenticate(self):
        # MSAL calls the assertion provider whenever it talks to the token endpoint
        if isinstance(self.client_credential, dict):
            self.client_credential["client_assertion"]()

    def acquire_token_for_client(self, scopes, **kwargs):
        self._authenticate()
        self.client_calls.append(list(scopes))
        return self.result

    def acquire_token_on_behalf_of(self, user_assertion, scopes, **kwargs):
        self._authenticate()
        self.obo_calls.append({"user_assertion": user_assertion, "scopes": list(scopes)})
        return self.obo_result


class FakeManagedIdentity:
    """Stands in for DefaultAzureCredential bound to a managed identity."""

    def __init__(self, error=None):
        self.error = error
        self.requests = []

    def get_token(self, *scopes, **kwargs):
        self.requests.append(scopes)
        if self.error is not None:
            raise self.error
        return AccessToken(f"mi-assertion-{len(self.requests)}", int(time.time()) + 600)


class FakeResponse(requests.Response):
    def __init__(self, status_code: int, body: str, reason: str = ""):
        super().__init__()
        self.status_code = status_code
        self.reason = reason
        self._content = body.encode("utf-8")
        self.encoding = "utf-8"


class FakeSession(requests.Session):
    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None):
        super().__init__()
        self.response = response
        self.error = error
        self.calls: List[Dict] = []
        self.closed = False

    def get(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True
        super().close()


def make_user_token(**claims) -> str:
    now = int(time.time())
    payload = {
        "aud": CLIENT_ID,
        "iss": f"https://login.microsoftonline.com/{TENANT_ID}/v2.0",
        "iat": now,
        "exp": now + 3600,
        "name": "Alice Example",
    }
    payload.update(claims)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


@pytest.fixture(autouse=True)
def reset_fake_clients():
    FakeConfidentialClient.instances = []
    yield
    FakeConfidentialClient.instances = []


@pytest.fixture
def user_token() -> str:
    return make_user_token()


@pytest.fixture
def secret_config() -> CredentialConfig:
    return CredentialConfig(
        tenant_id=TENANT_ID,
        client_id=CLIENT_ID,
        kind=CredentialKind.SECRET,
        authority=f"https://login.microsoftonline.com/{TENANT_ID}",
        client_secret="s3cret",
    )


@pytest.fixture
def federated_config() -> CredentialConfig:
    return CredentialConfig(
        tenant_id=TENANT_ID,
        client_id=CLIENT_ID,
        kind=CredentialKind.FEDERATED,
        authority=f"https://login.microsoftonline.com/{TENANT_ID}",
        managed_identity_client_id=CLIENT_ID,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings.from_env(
        {
            "ENVIRONMENT": "Development",
            "API_APP_ID": API_APP_ID,
            "APIM_BASE_URL": "https://apim.example.com/",
            "AZURE_CLIENT_ID": CLIENT_ID,
            "AZURE_TENANT_ID": TENANT_ID,
            "AZURE_CLIENT_SECRET": "s3cret",
            "VALIDATE_USER_TOKEN": "false",
        }
    )
