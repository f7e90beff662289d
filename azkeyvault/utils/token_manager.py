import logging
import time
from typing import Any, Optional, Union

from azure.identity import ClientSecretCredential, DefaultAzureCredential

from azkeyvault.core.config import VAULT_SCOPE, settings

logger = logging.getLogger(__name__)

# refresh this long before the token actually expires
EXPIRY_MARGIN = 300


class TokenManager:
    """
    Supplies bearer tokens for vault requests.

    Wraps an azure-identity credential (anything with `get_token(scope)`) and
    caches the AccessToken until shortly before it expires. A plain string is
    accepted as a fixed token, which is what tests and short scripts use.
    """

    def __init__(self, credential: Union[str, Any, None] = None, scope: str = VAULT_SCOPE):
        self.scope = scope
        self._static: Optional[str] = None
        self._token = None
        if isinstance(credential, str):
            self._static = credential
            self.credential = None
        else:
            self.credential = credential if credential is not None else self._default_credential()

    @staticmethod
    def _default_credential():
        if settings.has_service_principal:
            return ClientSecretCredential(
                client_id=settings.SP_APP_CLIENT_ID,
                client_secret=settings.SP_APP_CLIENT_SECRET,
                tenant_id=settings.SP_APP_TENANT_ID,
            )
        return DefaultAzureCredential()

    def get_access_token(self) -> str:
        if self._static is not None:
            return self._static
        if self._token is None or self._token.expires_on - EXPIRY_MARGIN <= time.time():
            return self.refresh_access_token()
        return self._token.token

    def refresh_access_token(self) -> str:
        if self._static is not None:
            return self._static
        logger.debug(f"Acquiring token for scope {self.scope}")
        self._token = self.credential.get_token(self.scope)
        return self._token.token
