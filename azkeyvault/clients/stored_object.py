"""
Request plumbing shared by every object stored in a vault.

Secrets, keys, certificates and storage accounts each hold an
`ObjectHandle` and delegate their fetch/update/delete calls to it; the
handle knows the object's path and its bound version but nothing about the
object's fields.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from azkeyvault.clients.vault_api import VaultEndpoint, get_vault_paged_list
from azkeyvault.core.attributes import ObjectAttributes, VersionInfo, attributes_body
from azkeyvault.core.errors import MalformedInput
from azkeyvault.utils.confirm import delete_confirmed

logger = logging.getLogger(__name__)


@runtime_checkable
class VersionedObject(Protocol):
    name: str

    def refresh(self) -> "VersionedObject": ...

    def list_versions(self) -> List[VersionInfo]: ...

    def set_version(self, version: Optional[str] = None) -> "VersionedObject": ...

    def update_attributes(self, attributes: Optional[ObjectAttributes] = None, **extra) -> "VersionedObject": ...

    def delete(self, confirm: bool = True) -> None: ...


def validate_tags(tags: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Tags go to the service as a JSON object, so values must serialise."""
    tags = dict(tags or {})
    for key, value in tags.items():
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise MalformedInput(f"Tag '{key}' is not JSON-serialisable: {e}") from e
    return tags


def object_body(attributes=None, tags: Optional[Dict[str, Any]] = None, **fields) -> Dict[str, Any]:
    """Request body with attributes, tags and any non-None extra fields."""
    body = {k: v for k, v in fields.items() if v is not None}
    attrs = attributes_body(attributes)
    if attrs:
        body["attributes"] = attrs
    if tags:
        body["tags"] = validate_tags(tags)
    return body


class ObjectHandle:

    def __init__(self, endpoint: VaultEndpoint, type: str, name: str,
                 version: Optional[str] = None, label: Optional[str] = None):
        self.endpoint = endpoint
        self.type = type
        self.name = name
        self.version = version
        self.label = label or type.rstrip("s")

    def path(self, *extra: Optional[str], versioned: bool = True,
             version: Optional[str] = None) -> List[Optional[str]]:
        return [self.type, self.name, version or (self.version if versioned else None), *extra]

    def fetch(self) -> Dict[str, Any]:
        return self.endpoint.do_operation(self.path())

    def patch(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return self.endpoint.do_operation(self.path(), body=body, http_verb="PATCH")

    def versions(self, id_field: str = "id") -> List[VersionInfo]:
        first = self.endpoint.do_operation(self.path("versions", versioned=False))
        return [VersionInfo.from_item(item, id_field) for item in get_vault_paged_list(first, self.endpoint)]

    def delete(self, confirm: bool = True) -> None:
        if not delete_confirmed(confirm, self.name, self.label, self.endpoint.confirm_callback):
            return None
        logger.info(f"Deleting {self.label} '{self.name}'")
        self.endpoint.do_operation(self.path(versioned=False), http_verb="DELETE")
        return None

    def post(self, op: str, body: Optional[Dict[str, Any]] = None, versioned: bool = True,
             version: Optional[str] = None) -> Dict[str, Any]:
        path = self.path(op, versioned=versioned, version=version)
        return self.endpoint.do_operation(path, body=body, http_verb="POST")
