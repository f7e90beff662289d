"""
Attribute model shared by every object stored in a vault.

The service sends timestamps as integer epoch seconds (`created`, `updated`,
`nbf`, `exp`). They are held client-side as timezone-aware datetimes and
converted back to integers when a request body is built.
"""
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DateLike = Union[datetime, date, str, int, float, None]


def to_datetime(value: DateLike) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_epoch(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp())


class ObjectAttributes(BaseModel):
    """
    Metadata attached to secrets, keys, certificates and storage accounts.

    Attributes:
        enabled: Whether the object can be used
        not_before: Activation time (nbf)
        expires: Expiry time (exp)
        created: Server-assigned creation time, read-only
        updated: Server-assigned update time, read-only
        recovery_level: Soft-delete recovery level, read-only
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: Optional[bool] = None
    not_before: Optional[datetime] = Field(default=None, alias="nbf")
    expires: Optional[datetime] = Field(default=None, alias="exp")
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    recovery_level: Optional[str] = Field(default=None, alias="recoveryLevel")

    @field_validator("not_before", "expires", "created", "updated", mode="before")
    @classmethod
    def _coerce_time(cls, v):
        return to_datetime(v)

    def to_body(self) -> Dict[str, Any]:
        """Client-settable fields in wire form; unset fields are left out."""
        body: Dict[str, Any] = {}
        if self.enabled is not None:
            body["enabled"] = self.enabled
        if self.not_before is not None:
            body["nbf"] = to_epoch(self.not_before)
        if self.expires is not None:
            body["exp"] = to_epoch(self.expires)
        return body

    @classmethod
    def from_response(cls, props: Optional[Dict[str, Any]]) -> "ObjectAttributes":
        return cls.model_validate(props or {})


def vault_object_attrs(enabled: bool = True, expiry_date: DateLike = None,
                       activation_date: DateLike = None) -> ObjectAttributes:
    """Convenience constructor for the attributes accepted by create/update calls."""
    return ObjectAttributes(
        enabled=enabled,
        expires=to_datetime(expiry_date),
        not_before=to_datetime(activation_date),
    )


def attributes_body(attributes: Union[ObjectAttributes, Dict[str, Any], None]) -> Dict[str, Any]:
    if attributes is None:
        return {}
    if isinstance(attributes, ObjectAttributes):
        return attributes.to_body()
    return ObjectAttributes.model_validate(attributes).to_body()


class VersionInfo(BaseModel):
    """One row of a `list_versions()` result."""
    version: str
    content_type: Optional[str] = None
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    expires: Optional[datetime] = None
    not_before: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: Dict[str, Any], id_field: str = "id") -> "VersionInfo":
        attrs = ObjectAttributes.from_response(item.get("attributes"))
        return cls(
            version=item[id_field].rstrip("/").rsplit("/", 1)[-1],
            content_type=item.get("contentType"),
            created=attrs.created,
            updated=attrs.updated,
            expires=attrs.expires,
            not_before=attrs.not_before,
        )
