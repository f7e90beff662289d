import logging
from typing import Any, Optional

import requests

from azkeyvault.clients.certificates import VaultCertificates
from azkeyvault.clients.keys import VaultKeys
from azkeyvault.clients.secrets import VaultSecrets
from azkeyvault.clients.storage import VaultStorageAccounts
from azkeyvault.clients.vault_api import VaultEndpoint
from azkeyvault.core.config import settings
from azkeyvault.core.errors import MalformedInput
from azkeyvault.utils.confirm import ConfirmCallback

logger = logging.getLogger(__name__)


class KeyVault:
    """
    Entry point for one vault: `secrets`, `keys`, `certificates` and
    `storage` all share the same endpoint.
    """

    def __init__(self, endpoint: VaultEndpoint):
        self.endpoint = endpoint
        self.secrets = VaultSecrets(endpoint)
        self.keys = VaultKeys(endpoint)
        self.certificates = VaultCertificates(endpoint)
        self.storage = VaultStorageAccounts(endpoint)

    @property
    def url(self) -> str:
        return self.endpoint.url

    def __repr__(self):
        return f"<Azure Key Vault '{self.url}'>"


def key_vault(url: Optional[str] = None, credential: Any = None, api_version: Optional[str] = None,
              session: Optional[requests.Session] = None,
              confirm_callback: Optional[ConfirmCallback] = None,
              poll_interval: Optional[float] = None) -> KeyVault:
    """
    Connect to a vault.

    `url` may be a full URL or a bare vault name; it defaults to
    KEY_VAULT_URL. `credential` is an azure-identity credential or a bearer
    token string; without one, service-principal settings or
    DefaultAzureCredential are used.
    """
    url = url or settings.KEY_VAULT_URL
    if not url:
        raise MalformedInput("No vault given: pass a URL or set KEY_VAULT_URL")
    endpoint = VaultEndpoint(
        url,
        token=credential,
        api_version=api_version or settings.KEY_VAULT_API_VERSION,
        session=session,
        confirm_callback=confirm_callback,
        poll_interval=settings.KEY_VAULT_POLL_INTERVAL if poll_interval is None else poll_interval,
    )
    logger.debug(f"Using vault {endpoint.url} (api-version {endpoint.api_version})")
    return KeyVault(endpoint)
