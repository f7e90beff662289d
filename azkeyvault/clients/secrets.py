import logging
from typing import Any, Dict, List, Optional

from azkeyvault.clients.collection import VaultCollection
from azkeyvault.clients.stored_object import ObjectHandle, object_body
from azkeyvault.clients.vault_api import VaultEndpoint, basename
from azkeyvault.core.attributes import ObjectAttributes, VersionInfo, vault_object_attrs

logger = logging.getLogger(__name__)


class SecretValue(str):
    """A secret's value. Its repr shows `<hidden>`; formatting and str() give the value."""

    def __repr__(self):
        return "<hidden>"

    def reveal(self) -> str:
        return str.__str__(self)


class StoredSecret:
    """
    A secret stored in a vault.

    A secret gets a new version whenever it is written under an existing
    name. By default the current version is used; `list_versions` and
    `set_version` switch between them.
    """

    def __init__(self, endpoint: VaultEndpoint, name: str, version: Optional[str] = None,
                 props: Optional[Dict[str, Any]] = None):
        self._handle = ObjectHandle(endpoint, "secrets", name, version)
        self.name = name
        self._apply(props if props is not None else self._handle.fetch())

    def _apply(self, props: Dict[str, Any]):
        self.id = props.get("id")
        self.kid = props.get("kid")
        value = props.get("value")
        self.value = SecretValue(value) if value is not None else None
        self.content_type = props.get("contentType")
        self.managed = bool(props.get("managed", False))
        self.attributes = ObjectAttributes.from_response(props.get("attributes"))
        self.tags = props.get("tags") or {}

    @property
    def version(self) -> Optional[str]:
        return basename(self.id) if self.id else self._handle.version

    def refresh(self) -> "StoredSecret":
        self._apply(self._handle.fetch())
        return self

    sync = refresh

    def list_versions(self) -> List[VersionInfo]:
        return self._handle.versions()

    def set_version(self, version: Optional[str] = None) -> "StoredSecret":
        self._handle.version = version
        return self.refresh()

    def update_attributes(self, attributes: Optional[ObjectAttributes] = None,
                          content_type: Optional[str] = None, tags: Optional[Dict[str, Any]] = None) -> "StoredSecret":
        body = object_body(attributes, tags, contentType=content_type)
        self._apply(self._handle.patch(body))
        return self

    def delete(self, confirm: bool = True) -> None:
        return self._handle.delete(confirm)

    def __repr__(self):
        return f"<Key Vault stored secret '{self.name}' version {self._handle.version or '<default>'}>"


class VaultSecrets(VaultCollection):
    """The secrets held in a vault."""
    type = "secrets"
    label = "secret"

    def _wrap(self, name, props, version=None) -> StoredSecret:
        return StoredSecret(self.endpoint, name, version, props)

    def create(self, name: str, value: str, content_type: Optional[str] = None,
               attributes: Optional[ObjectAttributes] = None, **tags) -> StoredSecret:
        """Store a secret; writing an existing name creates a new version."""
        body = object_body(
            attributes if attributes is not None else vault_object_attrs(),
            tags,
            value=value,
            contentType=content_type,
        )
        props = self.do_operation(name, body=body, http_verb="PUT")
        logger.info(f"Stored secret '{name}'")
        return self._wrap(name, props)

    # secret text is always supplied by the caller
    import_ = create
