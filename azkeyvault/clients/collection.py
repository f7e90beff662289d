import logging
from typing import Any, Dict, List, Optional

from azkeyvault.clients.stored_object import ObjectHandle
from azkeyvault.clients.vault_api import VaultEndpoint, basename, get_vault_paged_list, object_name
from azkeyvault.core.attributes import VersionInfo
from azkeyvault.core.errors import MalformedInput
from azkeyvault.utils.confirm import delete_confirmed

logger = logging.getLogger(__name__)


class VaultCollection:
    """
    Operations every collection (secrets, keys, certificates, storage) shares:
    list, delete, backup and restore. Subclasses set `type` and `_wrap`.
    """
    type = ""
    label = ""
    id_field = "id"

    def __init__(self, endpoint: VaultEndpoint):
        self.endpoint = endpoint

    def __repr__(self):
        return f"<key vault endpoint '{self.endpoint.url}/{self.type}'>"

    def do_operation(self, op=None, body: Optional[Dict[str, Any]] = None,
                     options: Optional[Dict[str, Any]] = None, http_verb: str = "GET") -> Dict[str, Any]:
        segments = [op] if isinstance(op, str) or op is None else list(op)
        return self.endpoint.do_operation([self.type, *segments], body=body, options=options,
                                          http_verb=http_verb)

    def _wrap(self, name: str, props: Dict[str, Any], version: Optional[str] = None):
        raise NotImplementedError

    def _object_id(self, props: Dict[str, Any]) -> str:
        return props.get("id", "")

    def get(self, name: str, version: Optional[str] = None):
        return self._wrap(name, self.do_operation([name, version]), version)

    def list(self, maxresults: Optional[int] = None) -> List[str]:
        options = {"maxresults": maxresults} if maxresults else None
        items = get_vault_paged_list(self.do_operation(options=options), self.endpoint)
        return [basename(item[self.id_field]) for item in items]

    def list_versions(self, name: str) -> List[VersionInfo]:
        """Versions of `name` without fetching the object itself."""
        return ObjectHandle(self.endpoint, self.type, name, label=self.label).versions(self.id_field)

    def delete(self, name: str, confirm: bool = True) -> None:
        if not delete_confirmed(confirm, name, self.label, self.endpoint.confirm_callback):
            return None
        logger.info(f"Deleting {self.label} '{name}'")
        self.do_operation(name, http_verb="DELETE")
        return None

    def backup(self, name: str) -> str:
        return self.do_operation([name, "backup"], http_verb="POST")["value"]

    def restore(self, backup: str):
        if not isinstance(backup, str):
            raise MalformedInput(f"Backup blob must be a string, got {type(backup).__name__}")
        props = self.do_operation("restore", body={"value": backup}, http_verb="POST")
        name = object_name(self._object_id(props))
        logger.info(f"Restored {self.label} '{name}'")
        return self._wrap(name, props)
