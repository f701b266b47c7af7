import logging
import os
from typing import Dict, Optional

from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient

logger = logging.getLogger(__name__)

# ======================================================
# KEY VAULT (Managed Identity)
# ======================================================

KEYVAULT_NAME = os.getenv("KEYVAULT_NAME")  # optional; env vars are used when unset
KEYVAULT_URL = f"https://{KEYVAULT_NAME}.vault.azure.net/" if KEYVAULT_NAME else None

_secret_client: Optional[SecretClient] = None


def _get_secret_client() -> SecretClient:
    """Lazily create a Key Vault SecretClient."""
    global _secret_client

    if not KEYVAULT_URL:
        raise RuntimeError("KEYVAULT_NAME environment variable is not set.")

    if _secret_client is None:
        _secret_client = SecretClient(vault_url=KEYVAULT_URL, credential=DefaultAzureCredential())

    return _secret_client


def keyvault_status() -> Dict[str, object]:
    """
    Lightweight status info for diagnostics.
    Does not call Key Vault; just reports readiness/config.
    """
    return {
        "keyvault_name_set": bool(KEYVAULT_NAME),
        "keyvault_url": KEYVAULT_URL,
        "client_initialized": _secret_client is not None,
    }


def get_secret(name: str) -> Optional[str]:
    """
    Read a secret from Azure Key Vault using Managed Identity.
    Only read at startup, while the credential config is built.
    """
    return _get_secret_client().get_secret(name).value


def kv(name: str, fallback: Optional[str] = None) -> Optional[str]:
    """
    Key Vault value for `name`, or `fallback` when Key Vault is not configured
    or the secret is missing/blank.
    """
    if not KEYVAULT_URL:
        return fallback
    try:
        val = get_secret(name)
    except Exception as e:
        logger.warning("Key Vault lookup of %s failed, using fallback: %s", name, e)
        return fallback
    if val is None or val.strip() == "":
        return fallback
    return val
