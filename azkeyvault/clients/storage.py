import logging
from typing import Any, Dict, List, Optional

from azkeyvault.clients.collection import VaultCollection
from azkeyvault.clients.stored_object import ObjectHandle, object_body
from azkeyvault.clients.vault_api import VaultEndpoint, basename, get_vault_paged_list
from azkeyvault.core.attributes import ObjectAttributes
from azkeyvault.utils.confirm import delete_confirmed

logger = logging.getLogger(__name__)


class StoredStorageAccount:
    """
    A storage account whose access keys the vault manages.

    Storage accounts are not versioned. SAS definitions hang off the account
    and each one is backed by a vault secret that holds the generated token.
    """

    def __init__(self, endpoint: VaultEndpoint, name: str, props: Optional[Dict[str, Any]] = None):
        self._handle = ObjectHandle(endpoint, "storage", name, label="storage account")
        self.name = name
        self._apply(props if props is not None else self._handle.fetch())

    def _apply(self, props: Dict[str, Any]):
        self.id = props.get("id")
        self.resource_id = props.get("resourceId")
        self.active_key_name = props.get("activeKeyName")
        self.auto_regenerate_key = props.get("autoRegenerateKey")
        self.regeneration_period = props.get("regenerationPeriod")
        self.attributes = ObjectAttributes.from_response(props.get("attributes"))
        self.tags = props.get("tags") or {}

    def refresh(self) -> "StoredStorageAccount":
        self._apply(self._handle.fetch())
        return self

    sync = refresh

    def update_attributes(self, attributes: Optional[ObjectAttributes] = None,
                          active_key_name: Optional[str] = None, auto_regenerate_key: Optional[bool] = None,
                          regeneration_period: Optional[str] = None,
                          tags: Optional[Dict[str, Any]] = None) -> "StoredStorageAccount":
        body = object_body(attributes, tags,
                           activeKeyName=active_key_name,
                           autoRegenerateKey=auto_regenerate_key,
                           regenerationPeriod=regeneration_period)
        self._apply(self._handle.patch(body))
        return self

    def delete(self, confirm: bool = True) -> None:
        return self._handle.delete(confirm)

    def regenerate_key(self, key_name: str) -> "StoredStorageAccount":
        self._apply(self._handle.post("regeneratekey", {"keyName": key_name}))
        logger.info(f"Regenerated key '{key_name}' of storage account '{self.name}'")
        return self

    def _sas(self, sas_name: Optional[str] = None) -> List[Optional[str]]:
        return self._handle.path("sas", sas_name)

    def create_sas_definition(self, sas_name: str, sas_template: str, validity_period: str,
                              sas_type: str = "account", enabled: bool = True,
                              **tags) -> Dict[str, Any]:
        """
        Define a SAS the vault can generate on demand.

        `sas_template` is a SAS URI (or token) used as the template and
        `validity_period` an ISO 8601 duration such as `PT12H`.
        """
        body = object_body(
            {"enabled": enabled},
            tags,
            templateUri=sas_template,
            sasType=sas_type,
            validityPeriod=validity_period,
        )
        return self._handle.endpoint.do_operation(self._sas(sas_name), body=body, http_verb="PUT")

    def get_sas_definition(self, sas_name: str) -> Dict[str, Any]:
        return self._handle.endpoint.do_operation(self._sas(sas_name))

    def delete_sas_definition(self, sas_name: str, confirm: bool = True) -> None:
        endpoint = self._handle.endpoint
        if not delete_confirmed(confirm, sas_name, "SAS definition", endpoint.confirm_callback):
            return None
        endpoint.do_operation(self._sas(sas_name), http_verb="DELETE")
        return None

    def list_sas_definitions(self) -> List[str]:
        endpoint = self._handle.endpoint
        items = get_vault_paged_list(endpoint.do_operation(self._sas()), endpoint)
        return [basename(item["id"]) for item in items]

    def show_sas(self, sas_name: str) -> str:
        """A SAS token generated from the named definition."""
        endpoint = self._handle.endpoint
        sid = self.get_sas_definition(sas_name)["sid"]
        secret = endpoint.call_vault_url(sid, params={"api-version": endpoint.api_version})
        return secret["value"]

    def __repr__(self):
        return f"<Key Vault managed storage account '{self.name}'>"


class VaultStorageAccounts(VaultCollection):
    """The storage accounts a vault manages keys for."""
    type = "storage"
    label = "storage account"

    def _wrap(self, name, props, version=None) -> StoredStorageAccount:
        return StoredStorageAccount(self.endpoint, name, props)

    def get(self, name: str) -> StoredStorageAccount:
        return self._wrap(name, self.do_operation(name))

    def add(self, name: str, storage_account: Any, key_name: str, regen_key: bool = True,
            regen_period: str = "P30D", attributes: Optional[ObjectAttributes] = None,
            **tags) -> StoredStorageAccount:
        """
        Put a storage account under vault management.

        `storage_account` is the account's Azure resource ID, or any object
        with an `id` attribute holding it.
        """
        resource_id = storage_account if isinstance(storage_account, str) else storage_account.id
        body = object_body(
            attributes,
            tags,
            resourceId=resource_id,
            activeKeyName=key_name,
            autoRegenerateKey=regen_key,
            regenerationPeriod=regen_period if regen_key else None,
        )
        props = self.do_operation(name, body=body, http_verb="PUT")
        logger.info(f"Added storage account '{name}'")
        return self._wrap(name, props)

    create = add
    remove = VaultCollection.delete
