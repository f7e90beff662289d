from typing import Any, Dict, Optional


class KeyVaultError(Exception):
    """Base class for everything raised by azkeyvault."""


class ServiceError(KeyVaultError):
    """
    A non-2xx response from the vault service.

    The service's error code and message are kept verbatim.
    """

    def __init__(self, status_code: int, code: Optional[str], message: str,
                 inner_error: Optional[Dict[str, Any]] = None, url: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        self.inner_error = inner_error
        self.url = url
        super().__init__(f"{status_code} {code or 'Unknown'}: {message}")

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class InvalidBackup(ServiceError):
    """The server refused to restore a backup blob into this vault."""


class MalformedInput(KeyVaultError, ValueError):
    """Client-side validation failed; no request was sent."""


class IssuanceTimeout(KeyVaultError, TimeoutError):
    def __init__(self, name: str, timeout: float, certificate=None):
        self.name = name
        self.timeout = timeout
        self.certificate = certificate
        super().__init__(f"Certificate '{name}' was not issued within {timeout} seconds")
