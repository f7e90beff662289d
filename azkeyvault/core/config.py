import os
from dotenv import load_dotenv, find_dotenv
from threading import Lock

DEFAULT_API_VERSION = "7.4"
DEFAULT_POLL_INTERVAL = 5.0
VAULT_SCOPE = "https://vault.azure.net/.default"


class _Config:
    """
    Singleton class for configuration loaded from environment variables.
    """
    _instance = None
    _lock = Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._load()
        return cls._instance

    def _load(self):
        # Load environment variables from .env if exists
        load_dotenv(find_dotenv())

        # Vault endpoint
        self.KEY_VAULT_URL = os.getenv("KEY_VAULT_URL")
        self.KEY_VAULT_API_VERSION = os.getenv("KEY_VAULT_API_VERSION", DEFAULT_API_VERSION)
        self.KEY_VAULT_POLL_INTERVAL = float(os.getenv("KEY_VAULT_POLL_INTERVAL", DEFAULT_POLL_INTERVAL))

        # Service Principal (optional, DefaultAzureCredential otherwise)
        self.SP_APP_CLIENT_ID = os.getenv("SP_APP_CLIENT_ID")
        self.SP_APP_CLIENT_SECRET = os.getenv("SP_APP_CLIENT_SECRET")
        self.SP_APP_TENANT_ID = os.getenv("SP_APP_TENANT_ID")

    def reload(self):
        """Re-read the environment, e.g. after tests patch it."""
        self._load()

    @property
    def has_service_principal(self) -> bool:
        return all((self.SP_APP_CLIENT_ID, self.SP_APP_CLIENT_SECRET, self.SP_APP_TENANT_ID))


# Singleton instance
settings = _Config()
