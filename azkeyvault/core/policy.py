"""
Certificate policy pieces.

Each model dumps to the snake_case wire form the certificates API expects
inside `policy` (`key_props`, `x509_props`, `issuer`, `lifetime_actions`).
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from azkeyvault.core.attributes import ObjectAttributes, attributes_body
from azkeyvault.core.errors import MalformedInput

PEM_CONTENT_TYPE = "application/x-pem-file"
PFX_CONTENT_TYPE = "application/x-pkcs12"


class _WireModel(BaseModel):
    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CertKeyProperties(_WireModel):
    kty: Literal["RSA", "RSA-HSM", "EC", "EC-HSM"] = "RSA"
    key_size: Optional[int] = 2048
    crv: Optional[Literal["P-256", "P-384", "P-521", "P-256K"]] = None
    exportable: bool = True
    reuse_key: bool = False


def cert_key_properties(type: str = "RSA", hardware: bool = False, ec_curve: Optional[str] = None,
                        rsa_key_size: int = 2048, key_exportable: bool = True,
                        reuse_key: bool = False) -> CertKeyProperties:
    type = type.upper()
    if type not in ("RSA", "EC"):
        raise MalformedInput(f"Unsupported certificate key type '{type}'")
    kty = f"{type}-HSM" if hardware else type
    if type == "RSA":
        return CertKeyProperties(kty=kty, key_size=rsa_key_size, exportable=key_exportable,
                                 reuse_key=reuse_key)
    return CertKeyProperties(kty=kty, key_size=None, crv=ec_curve or "P-256",
                             exportable=key_exportable, reuse_key=reuse_key)


class SubjectAlternativeNames(_WireModel):
    emails: Optional[List[str]] = None
    dns_names: Optional[List[str]] = None
    upns: Optional[List[str]] = None


class CertX509Properties(_WireModel):
    sans: Optional[SubjectAlternativeNames] = None
    key_usage: Optional[List[str]] = None
    ekus: Optional[List[str]] = None
    validity_months: Optional[int] = None


def cert_x509_properties(dns_names: Optional[List[str]] = None, emails: Optional[List[str]] = None,
                         upns: Optional[List[str]] = None, key_usages: Optional[List[str]] = None,
                         enhanced_key_usages: Optional[List[str]] = None,
                         valid: Optional[int] = 12) -> CertX509Properties:
    sans = None
    if dns_names or emails or upns:
        sans = SubjectAlternativeNames(dns_names=dns_names, emails=emails, upns=upns)
    return CertX509Properties(
        sans=sans,
        key_usage=key_usages if key_usages is not None else ["digitalSignature", "keyEncipherment"],
        ekus=enhanced_key_usages if enhanced_key_usages is not None
        else ["1.3.6.1.5.5.7.3.1", "1.3.6.1.5.5.7.3.2"],
        validity_months=valid,
    )


class CertIssuerProperties(_WireModel):
    name: str = "Self"
    cty: Optional[str] = None
    cert_transparency: Optional[bool] = None


def cert_issuer_properties(issuer: str = "self", cert_type: Optional[str] = None,
                           transparent: Optional[bool] = None) -> CertIssuerProperties:
    name = "Self" if issuer.lower() == "self" else issuer
    return CertIssuerProperties(name=name, cty=cert_type, cert_transparency=transparent)


class _Trigger(_WireModel):
    lifetime_percentage: Optional[int] = None
    days_before_expiry: Optional[int] = None


class LifetimeAction(_WireModel):
    trigger: _Trigger
    action: Dict[str, str]


def cert_expiry_action(remaining_pct: Optional[int] = None, remaining_days: Optional[int] = None,
                       action: Literal["AutoRenew", "EmailContacts"] = "AutoRenew") -> List[LifetimeAction]:
    """
    What the vault does as the certificate nears expiry.

    Give at most one of `remaining_pct` (percentage of lifetime left) or
    `remaining_days`. With neither, the service default applies.
    """
    if remaining_pct is not None and remaining_days is not None:
        raise MalformedInput("Specify either remaining_pct or remaining_days, not both")
    if remaining_pct is None and remaining_days is None:
        return []
    if remaining_pct is not None:
        trigger = _Trigger(lifetime_percentage=100 - remaining_pct)
    else:
        trigger = _Trigger(days_before_expiry=remaining_days)
    return [LifetimeAction(trigger=trigger, action={"action_type": action})]


class CertificatePolicy(_WireModel):
    """Governs issuance and renewal of a certificate."""
    issuer: CertIssuerProperties = Field(default_factory=CertIssuerProperties)
    key_props: CertKeyProperties = Field(default_factory=CertKeyProperties)
    secret_props: Dict[str, str] = Field(default_factory=lambda: {"contentType": PEM_CONTENT_TYPE})
    x509_props: Dict[str, Any] = Field(default_factory=dict)
    lifetime_actions: List[LifetimeAction] = Field(default_factory=list)
    attributes: Optional[ObjectAttributes] = None

    @model_validator(mode="after")
    def _check_subject(self):
        if self.x509_props and not self.x509_props.get("subject"):
            raise MalformedInput("Certificate policy needs an X.500 subject, e.g. 'CN=mydomain.com'")
        return self

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        if not self.lifetime_actions:
            body.pop("lifetime_actions", None)
        if self.attributes is not None:
            body["attributes"] = attributes_body(self.attributes)
        return body

    @property
    def content_type(self) -> str:
        return self.secret_props.get("contentType", PEM_CONTENT_TYPE)


def build_policy(subject: str, x509: Optional[CertX509Properties] = None,
                 issuer: Optional[CertIssuerProperties] = None, key: Optional[CertKeyProperties] = None,
                 format: Literal["pem", "pfx"] = "pem", expiry_action: Optional[List[LifetimeAction]] = None,
                 attributes: Optional[ObjectAttributes] = None) -> CertificatePolicy:
    if format not in ("pem", "pfx"):
        raise MalformedInput(f"Unknown certificate format '{format}'")
    x509_props = {"subject": subject}
    x509_props.update((x509 or cert_x509_properties()).to_body())
    return CertificatePolicy(
        issuer=issuer or cert_issuer_properties(),
        key_props=key or cert_key_properties(),
        secret_props={"contentType": PEM_CONTENT_TYPE if format == "pem" else PFX_CONTENT_TYPE},
        x509_props=x509_props,
        lifetime_actions=expiry_action or [],
        attributes=attributes,
    )
