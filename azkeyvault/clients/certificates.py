import base64
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Union

from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12

from azkeyvault.clients.collection import VaultCollection
from azkeyvault.clients.stored_object import ObjectHandle, object_body
from azkeyvault.clients.vault_api import VaultEndpoint, basename, get_vault_paged_list
from azkeyvault.core.attributes import ObjectAttributes, VersionInfo, vault_object_attrs
from azkeyvault.core.errors import MalformedInput
from azkeyvault.core.poller import wait_for_issuance
from azkeyvault.core.policy import (PEM_CONTENT_TYPE, PFX_CONTENT_TYPE, CertificatePolicy,
                                    CertIssuerProperties, CertKeyProperties, CertX509Properties,
                                    LifetimeAction, build_policy)
from azkeyvault.utils.files import read_material

logger = logging.getLogger(__name__)


def _policy_body(policy: Union[CertificatePolicy, Dict[str, Any]]) -> Dict[str, Any]:
    return policy.to_body() if isinstance(policy, CertificatePolicy) else dict(policy)


class StoredCertificate:
    """
    A certificate stored in a vault.

    `cer` holds the DER bytes of the certificate and stays empty until the
    vault has finished issuing it; call `sync()` to pick up a pending issue.
    """

    def __init__(self, endpoint: VaultEndpoint, name: str, version: Optional[str] = None,
                 props: Optional[Dict[str, Any]] = None):
        self._handle = ObjectHandle(endpoint, "certificates", name, version)
        self.name = name
        self._apply(props if props is not None else self._handle.fetch())

    def _apply(self, props: Dict[str, Any]):
        self.id = props.get("id")
        self.kid = props.get("kid")
        self.sid = props.get("sid")
        self.x5t = props.get("x5t")
        cer = props.get("cer")
        self.cer = base64.b64decode(cer) if cer else None
        self.policy = props.get("policy") or {}
        self.attributes = ObjectAttributes.from_response(props.get("attributes"))
        self.tags = props.get("tags") or {}

    @property
    def version(self) -> Optional[str]:
        return basename(self.id) if self.id else self._handle.version

    @property
    def issued(self) -> bool:
        return bool(self.cer)

    def refresh(self) -> "StoredCertificate":
        self._apply(self._handle.fetch())
        return self

    sync = refresh

    def list_versions(self) -> List[VersionInfo]:
        return self._handle.versions()

    def set_version(self, version: Optional[str] = None) -> "StoredCertificate":
        self._handle.version = version
        return self.refresh()

    def update_attributes(self, attributes: Optional[ObjectAttributes] = None,
                          policy: Union[CertificatePolicy, Dict[str, Any], None] = None,
                          tags: Optional[Dict[str, Any]] = None) -> "StoredCertificate":
        body = object_body(attributes, tags, policy=_policy_body(policy) if policy is not None else None)
        self._apply(self._handle.patch(body))
        return self

    def delete(self, confirm: bool = True) -> None:
        return self._handle.delete(confirm)

    def x509(self) -> x509.Certificate:
        if not self.cer:
            raise MalformedInput(f"Certificate '{self.name}' has not been issued yet")
        return x509.load_der_x509_certificate(self.cer)

    def export(self, file: Union[str, os.PathLike, None] = None) -> str:
        """
        Write the certificate and its private key to `file`.

        The format (PEM or PFX) follows the certificate policy; the default
        file name is the certificate name with a matching extension.
        """
        if not self.sid:
            raise MalformedInput(f"Certificate '{self.name}' has no backing secret to export")
        endpoint = self._handle.endpoint
        secret = endpoint.call_vault_url(self.sid, params={"api-version": endpoint.api_version})
        is_pem = secret.get("contentType") == PEM_CONTENT_TYPE
        if file is None:
            file = f"{self.name}.{'pem' if is_pem else 'pfx'}"
        value = secret.get("value") or ""
        if is_pem:
            with open(file, "w", encoding="utf-8") as f:
                f.write(value)
        else:
            with open(file, "wb") as f:
                f.write(base64.b64decode(value))
        logger.info(f"Exported certificate '{self.name}' to {file}")
        return os.fspath(file)

    def get_policy(self) -> Dict[str, Any]:
        return self._handle.endpoint.do_operation(self._handle.path("policy", versioned=False))

    def set_policy(self, policy: Union[CertificatePolicy, Dict[str, Any]]) -> Dict[str, Any]:
        self.policy = self._handle.endpoint.do_operation(
            self._handle.path("policy", versioned=False), body=_policy_body(policy), http_verb="PATCH")
        return self.policy

    def get_pending(self) -> Dict[str, Any]:
        """Status of an issuance the vault is still working on."""
        return self._handle.endpoint.do_operation(self._handle.path("pending", versioned=False))

    def cancel_pending(self) -> Dict[str, Any]:
        return self._handle.endpoint.do_operation(
            self._handle.path("pending", versioned=False),
            body={"cancellation_requested": True}, http_verb="PATCH")

    def __repr__(self):
        state = "issued" if self.issued else "pending"
        return f"<Key Vault stored certificate '{self.name}' ({state}) version {self._handle.version or '<default>'}>"


def _certificate_payload(data: bytes, pwd: Optional[str]) -> Dict[str, Any]:
    """Import body for PEM or PFX material, checked locally before upload."""
    if data.lstrip().startswith(b"-----BEGIN"):
        try:
            x509.load_pem_x509_certificates(data)
        except ValueError as e:
            raise MalformedInput(f"Could not read PEM certificate: {e}") from e
        return {"value": data.decode("utf-8"), "policy": {"secret_props": {"contentType": PEM_CONTENT_TYPE}}}
    try:
        pkcs12.load_key_and_certificates(data, pwd.encode() if pwd else None)
    except ValueError as e:
        raise MalformedInput(f"Could not read PFX certificate: {e}") from e
    return {
        "value": base64.b64encode(data).decode("ascii"),
        "pwd": pwd,
        "policy": {"secret_props": {"contentType": PFX_CONTENT_TYPE}},
    }


class VaultCertificates(VaultCollection):
    """
    The certificates held in a vault, plus the vault-wide certificate
    contacts and issuers.
    """
    type = "certificates"
    label = "certificate"

    def _wrap(self, name, props, version=None) -> StoredCertificate:
        return StoredCertificate(self.endpoint, name, version, props)

    def _finish(self, name: str, wait: bool, timeout: Optional[float]) -> StoredCertificate:
        cert = self.get(name)
        if not wait:
            logger.info(f"Certificate '{name}' creation started. Call the sync() method to update status.")
            return cert
        return wait_for_issuance(
            name,
            fetch=lambda: self.get(name),
            is_issued=lambda c: c.issued,
            interval=self.endpoint.poll_interval,
            timeout=timeout,
            first=cert,
        )

    def create(self, name: str, subject: str, x509: Optional[CertX509Properties] = None,
               issuer: Optional[CertIssuerProperties] = None, key: Optional[CertKeyProperties] = None,
               format: str = "pem", expiry_action: Optional[List[LifetimeAction]] = None,
               attributes: Optional[ObjectAttributes] = None, wait: bool = True,
               timeout: Optional[float] = None, **tags) -> StoredCertificate:
        """
        Start issuing a certificate.

        With `wait=True` this blocks until the vault has issued it, polling
        every `poll_interval` seconds; `timeout` bounds the wait. With
        `wait=False` the certificate comes back pending.
        """
        attributes = attributes if attributes is not None else vault_object_attrs()
        policy = build_policy(subject, x509=x509, issuer=issuer, key=key, format=format,
                              expiry_action=expiry_action, attributes=attributes)
        body = object_body(attributes, tags, policy=policy.to_body())
        self.do_operation([name, "create"], body=body, http_verb="POST")
        logger.info(f"Requested certificate '{name}' for {subject}")
        return self._finish(name, wait, timeout)

    def import_(self, name: str, value: Union[str, bytes, os.PathLike], pwd: Optional[str] = None,
                attributes: Optional[ObjectAttributes] = None, wait: bool = True,
                timeout: Optional[float] = None, **tags) -> StoredCertificate:
        """Import a PFX or PEM certificate, given as bytes, PEM text or a file path."""
        payload = _certificate_payload(read_material(value, "certificate"), pwd)
        body = object_body(attributes if attributes is not None else vault_object_attrs(), tags, **payload)
        self.do_operation([name, "import"], body=body, http_verb="POST")
        logger.info(f"Imported certificate '{name}'")
        return self._finish(name, wait, timeout)

    def get_contacts(self) -> Dict[str, Any]:
        return self.do_operation("contacts")

    def set_contacts(self, email: Union[str, Sequence[str]]) -> Dict[str, Any]:
        emails = [email] if isinstance(email, str) else list(email)
        return self.do_operation("contacts", body={"contacts": [{"email": e} for e in emails]},
                                 http_verb="PUT")

    def delete_contacts(self) -> None:
        self.do_operation("contacts", http_verb="DELETE")

    def add_issuer(self, issuer: str, provider: str, credentials: Optional[Dict[str, str]] = None,
                   details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Register a certificate issuer.

        `credentials` takes `account_id` and `password`; `details` is the
        organisation details block of the issuer API.
        """
        body = {"provider": provider}
        if credentials:
            body["credentials"] = {"account_id": credentials.get("account_id"), "pwd": credentials.get("password")}
        if details:
            body["org_details"] = details
        return self.do_operation(["issuers", issuer], body=body, http_verb="PUT")

    def get_issuer(self, issuer: str) -> Dict[str, Any]:
        return self.do_operation(["issuers", issuer])

    def remove_issuer(self, issuer: str) -> None:
        self.do_operation(["issuers", issuer], http_verb="DELETE")

    def list_issuers(self) -> List[str]:
        items = get_vault_paged_list(self.do_operation("issuers"), self.endpoint)
        return [basename(item["id"]) for item in items]
