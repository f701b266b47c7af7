import pytest

from auth.config import (
    CLIENT_SECRET_SECRET_NAME,
    DEFAULT_OAUTH_SCOPE,
    CredentialConfig,
    CredentialKind,
    Settings,
    select_credential_kind,
)
from auth.errors import ConfigurationError

from conftest import CLIENT_ID, TENANT_ID


@pytest.mark.parametrize("environment", ["Production", "production", " PRODUCTION "])
def test_production_selects_federated(environment):
    assert select_credential_kind(environment) is CredentialKind.FEDERATED


@pytest.mark.parametrize("environment", ["Development", "Staging", "Prod", "", None])
def test_anything_else_selects_secret(environment):
    assert select_credential_kind(environment) is CredentialKind.SECRET


def test_oauth_scope_defaults_when_absent():
    settings = Settings.from_env({})
    assert settings.oauth_scope == DEFAULT_OAUTH_SCOPE
    assert settings.environment == "Development"
    assert settings.credential_kind is CredentialKind.SECRET


def test_explicitly_empty_oauth_scope_is_kept_empty():
    settings = Settings.from_env({"OAUTH_SCOPE": ""})
    assert settings.oauth_scope == ""


def test_managed_identity_client_id_falls_back_to_client_id():
    settings = Settings.from_env({"AZURE_CLIENT_ID": CLIENT_ID})
    assert settings.managed_identity_client_id == CLIENT_ID

    settings = Settings.from_env(
        {"AZURE_CLIENT_ID": CLIENT_ID, "AZURE_MANAGED_IDENTITY_CLIENT_ID": "mi-1"}
    )
    assert settings.managed_identity_client_id == "mi-1"


def test_settings_are_immutable(settings):
    with pytest.raises(AttributeError):
        settings.environment = "Production"


def test_authority_built_from_instance_and_tenant(settings):
    config = CredentialConfig.from_settings(settings)
    assert config.authority == f"https://login.microsoftonline.com/{TENANT_ID}"
    assert config.kind is CredentialKind.SECRET
    assert config.client_secret == "s3cret"
    assert config.managed_identity_client_id is None


def test_authority_override():
    settings = Settings.from_env(
        {"AZURE_TENANT_ID": TENANT_ID, "AZUREAD_AUTHORITY": "https://login.example.com/custom"}
    )
    assert CredentialConfig.from_settings(settings).authority == "https://login.example.com/custom"


def test_secret_lookup_wins_over_environment(settings):
    seen = []

    def lookup(name, fallback):
        seen.append((name, fallback))
        return "from-vault"

    config = CredentialConfig.from_settings(settings, secret_lookup=lookup)
    assert config.client_secret == "from-vault"
    assert seen == [(CLIENT_SECRET_SECRET_NAME, "s3cret")]


def test_production_config_needs_no_secret():
    settings = Settings.from_env(
        {
            "ENVIRONMENT": "Production",
            "AZURE_CLIENT_ID": CLIENT_ID,
            "AZURE_TENANT_ID": TENANT_ID,
        }
    )

    def lookup(name, fallback):
        raise AssertionError("secret lookup must not run in production")

    config = CredentialConfig.from_settings(settings, secret_lookup=lookup)
    assert config.kind is CredentialKind.FEDERATED
    assert config.client_secret is None
    config.validate()


def test_missing_secret_is_a_configuration_error():
    settings = Settings.from_env({"AZURE_CLIENT_ID": CLIENT_ID, "AZURE_TENANT_ID": TENANT_ID})
    config = CredentialConfig.from_settings(settings)

    with pytest.raises(ConfigurationError) as excinfo:
        config.validate()
    assert "AZURE_CLIENT_SECRET" in str(excinfo.value)


def test_status_never_contains_secret(secret_config):
    status = secret_config.status()
    assert status["client_secret_configured"] is True
    assert "s3cret" not in str(status)
    assert status["missing"] == []
