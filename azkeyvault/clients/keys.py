import hashlib
import logging
import os
from typing import Any, Dict, List, Optional, Union

from cryptography.hazmat.primitives import serialization

from azkeyvault.clients.collection import VaultCollection
from azkeyvault.clients.stored_object import ObjectHandle, object_body
from azkeyvault.clients.vault_api import VaultEndpoint, basename
from azkeyvault.core.attributes import ObjectAttributes, VersionInfo, vault_object_attrs
from azkeyvault.core.errors import MalformedInput
from azkeyvault.utils.files import read_material
from azkeyvault.utils.jwk import b64url_decode, b64url_encode, jwk_to_public_key, private_key_to_jwk

logger = logging.getLogger(__name__)

DEFAULT_KEY_OPS = ["sign", "verify", "encrypt", "decrypt", "wrapKey", "unwrapKey"]

# signing algorithm -> digest the vault expects
SIGN_DIGESTS = {
    "RS256": "sha256", "PS256": "sha256", "ES256": "sha256", "ES256K": "sha256",
    "RS384": "sha384", "PS384": "sha384", "ES384": "sha384",
    "RS512": "sha512", "PS512": "sha512", "ES512": "sha512",
}


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


class StoredKey:
    """
    An encryption key stored in a vault.

    Cryptographic operations are carried out by the vault using the bound
    version of the key; nothing is computed locally.
    """

    def __init__(self, endpoint: VaultEndpoint, name: str, version: Optional[str] = None,
                 props: Optional[Dict[str, Any]] = None):
        self._handle = ObjectHandle(endpoint, "keys", name, version)
        self.name = name
        self._apply(props if props is not None else self._handle.fetch())

    def _apply(self, props: Dict[str, Any]):
        self.key = props.get("key") or {}
        self.kid = self.key.get("kid")
        self.managed = bool(props.get("managed", False))
        self.attributes = ObjectAttributes.from_response(props.get("attributes"))
        self.tags = props.get("tags") or {}

    @property
    def version(self) -> Optional[str]:
        return basename(self.kid) if self.kid else self._handle.version

    @property
    def key_ops(self) -> List[str]:
        return self.key.get("key_ops", [])

    def refresh(self) -> "StoredKey":
        self._apply(self._handle.fetch())
        return self

    sync = refresh

    def list_versions(self) -> List[VersionInfo]:
        return self._handle.versions(id_field="kid")

    def set_version(self, version: Optional[str] = None) -> "StoredKey":
        self._handle.version = version
        return self.refresh()

    def update_attributes(self, attributes: Optional[ObjectAttributes] = None,
                          key_ops: Optional[List[str]] = None, tags: Optional[Dict[str, Any]] = None) -> "StoredKey":
        self._apply(self._handle.patch(object_body(attributes, tags, key_ops=key_ops)))
        return self

    def delete(self, confirm: bool = True) -> None:
        return self._handle.delete(confirm)

    def _crypto(self, op: str, algorithm: str, value: bytes, **extra) -> Dict[str, Any]:
        body = {"alg": algorithm, "value": b64url_encode(value)}
        body.update(extra)
        return self._handle.post(op, body, version=self.version)

    def encrypt(self, plaintext: Union[str, bytes], algorithm: str = "RSA-OAEP") -> bytes:
        return b64url_decode(self._crypto("encrypt", algorithm, _to_bytes(plaintext))["value"])

    def decrypt(self, ciphertext: bytes, algorithm: str = "RSA-OAEP",
                as_str: bool = False) -> Union[bytes, str]:
        out = b64url_decode(self._crypto("decrypt", algorithm, ciphertext)["value"])
        return out.decode("utf-8") if as_str else out

    @staticmethod
    def _digest(data: Union[str, bytes], algorithm: str, hash: bool) -> bytes:
        data = _to_bytes(data)
        if not hash:
            return data
        if algorithm not in SIGN_DIGESTS:
            raise MalformedInput(f"Unknown signing algorithm '{algorithm}'")
        return hashlib.new(SIGN_DIGESTS[algorithm], data).digest()

    def sign(self, digest: Union[str, bytes], algorithm: str = "RS256", hash: bool = False) -> bytes:
        """Sign a digest; with `hash=True` the input is digested first."""
        return b64url_decode(self._crypto("sign", algorithm, self._digest(digest, algorithm, hash))["value"])

    def verify(self, signature: bytes, digest: Union[str, bytes], algorithm: str = "RS256",
               hash: bool = False) -> bool:
        body = {
            "alg": algorithm,
            "digest": b64url_encode(self._digest(digest, algorithm, hash)),
            "value": b64url_encode(signature),
        }
        return bool(self._handle.post("verify", body, version=self.version)["value"])

    def wrap_key(self, value: Union[str, bytes], algorithm: str = "RSA-OAEP") -> bytes:
        return b64url_decode(self._crypto("wrapkey", algorithm, _to_bytes(value))["value"])

    def unwrap_key(self, value: bytes, algorithm: str = "RSA-OAEP", as_str: bool = False) -> Union[bytes, str]:
        out = b64url_decode(self._crypto("unwrapkey", algorithm, value)["value"])
        return out.decode("utf-8") if as_str else out

    def export_public(self, pem: bool = False):
        """The public half of the key, as a cryptography object or PEM bytes."""
        public = jwk_to_public_key(self.key)
        if not pem:
            return public
        return public.public_bytes(serialization.Encoding.PEM,
                                   serialization.PublicFormat.SubjectPublicKeyInfo)

    def __repr__(self):
        return (f"<Key Vault stored key '{self.name}' type {self.key.get('kty')} "
                f"version {self._handle.version or '<default>'}>")


class VaultKeys(VaultCollection):
    """The keys held in a vault."""
    type = "keys"
    label = "key"
    id_field = "kid"

    def _wrap(self, name, props, version=None) -> StoredKey:
        return StoredKey(self.endpoint, name, version, props)

    def _object_id(self, props):
        return (props.get("key") or {}).get("kid", "")

    def create(self, name: str, type: str = "RSA", hardware: bool = False, ec_curve: Optional[str] = None,
               rsa_key_size: int = 2048, key_ops: Optional[List[str]] = None,
               attributes: Optional[ObjectAttributes] = None, **tags) -> StoredKey:
        """Have the vault generate a new key (or new version of an existing key)."""
        type = type.upper()
        if type not in ("RSA", "EC", "OCT"):
            raise MalformedInput(f"Unknown key type '{type}'")
        kty = "oct" if type == "OCT" else type
        body = object_body(
            attributes if attributes is not None else vault_object_attrs(),
            tags,
            kty=f"{kty}-HSM" if hardware else kty,
            key_ops=key_ops or DEFAULT_KEY_OPS,
            key_size=rsa_key_size if type == "RSA" else None,
            crv=(ec_curve or "P-256") if type == "EC" else None,
        )
        props = self.do_operation([name, "create"], body=body, http_verb="POST")
        logger.info(f"Created key '{name}'")
        return self._wrap(name, props)

    def import_(self, name: str, key: Union[Dict[str, Any], str, bytes, os.PathLike], pwd: Optional[str] = None,
                hardware: bool = False, attributes: Optional[ObjectAttributes] = None, **tags) -> StoredKey:
        """
        Import an externally generated key.

        `key` is a JWK dict, PEM text or bytes, or the path of a PEM file.
        PEM private keys are converted to JWK before upload.
        """
        jwk = dict(key) if isinstance(key, dict) else private_key_to_jwk(read_material(key), pwd)
        body = object_body(
            attributes if attributes is not None else vault_object_attrs(),
            tags,
            key=jwk,
            hsm=hardware,
        )
        props = self.do_operation(name, body=body, http_verb="PUT")
        logger.info(f"Imported key '{name}'")
        return self._wrap(name, props)
